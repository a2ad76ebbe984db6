"""Logging setup for perfrival.

Competition progress ("Run 2, total runs (expected): 3.") and the
competition messages mirrored by :mod:`perfrival.state` all go through the
``perfrival`` logger.  The console shows progress lines as they are and
prefixes warnings and errors with their level; the optional log file keeps
everything at DEBUG with timestamps.
"""

from __future__ import annotations

import logging
from pathlib import Path

_LOGGER_NAME = "perfrival"
_FILE_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


class ConsoleFormatter(logging.Formatter):
    """Bare messages below WARNING, ``LEVEL: message`` from WARNING up."""

    def format(self, record: logging.LogRecord) -> str:
        text = super().format(record)
        if record.levelno >= logging.WARNING:
            return f"{record.levelname}: {text}"
        return text


def console_level(*, verbose: bool = False, quiet: bool = False) -> int:
    """Console level for the CLI flags.  *verbose* wins over *quiet*."""
    if verbose:
        return logging.DEBUG
    if quiet:
        return logging.WARNING
    return logging.INFO


def setup_logging(
    *,
    verbose: bool = False,
    quiet: bool = False,
    log_file: Path | None = None,
) -> logging.Logger:
    """Configure and return the ``perfrival`` logger.

    Calling it again replaces the handlers from the previous call.

    Args:
        verbose: Show debug output on the console.
        quiet: Only show warnings and errors on the console.
        log_file: Also write a DEBUG log here.  Missing parent directories
            are created.
    """
    logger = logging.getLogger(_LOGGER_NAME)
    logger.setLevel(logging.DEBUG)
    for handler in list(logger.handlers):
        handler.close()
    logger.handlers.clear()

    console = logging.StreamHandler()
    console.setLevel(console_level(verbose=verbose, quiet=quiet))
    console.setFormatter(ConsoleFormatter("%(message)s"))
    logger.addHandler(console)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(_FILE_FORMAT))
        logger.addHandler(file_handler)

    return logger


def get_logger(name: str) -> logging.Logger:
    """Child logger ``perfrival.<name>``."""
    return logging.getLogger(f"{_LOGGER_NAME}.{name}")
