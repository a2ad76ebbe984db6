"""Competition messages and the per-session message log.

Every noteworthy event of a competition session (run progress, rerun
requests, validation failures, analyser findings, execution errors) is
recorded as a :class:`Message`.  Messages are immutable and carry the
run they belong to, a sequence number within that run, the component
that produced them and a severity.

Severities are totally ordered::

    Informational < Warning < TestError < SetupError < ExecutionError

Callers decide how to surface them: anything at ``TestError`` or above
usually fails a test, the rest is only logged.
"""

from __future__ import annotations

import enum
import threading
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Callable


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class MessageSource(enum.Enum):
    """Component that produced a message."""

    UNKNOWN = "Unknown"
    RUNNER = "Runner"
    VALIDATOR = "Validator"
    ANALYSER = "Analyser"
    DIAGNOSER = "Diagnoser"
    EXPORTER = "Exporter"


class MessageSeverity(enum.IntEnum):
    """Severity of a message, ordered from least to most severe."""

    INFORMATIONAL = 0
    WARNING = 1
    TEST_ERROR = 2
    SETUP_ERROR = 3
    EXECUTION_ERROR = 4

    @property
    def label(self) -> str:
        """CamelCase label used in reports (``TestError``, ``Warning``...)."""
        return "".join(part.capitalize() for part in self.name.split("_"))

    @property
    def is_test_error_or_higher(self) -> bool:
        return self >= MessageSeverity.TEST_ERROR

    @property
    def is_critical_error(self) -> bool:
        """Setup and execution errors make the run results unusable."""
        return self >= MessageSeverity.SETUP_ERROR

    @classmethod
    def parse(cls, text: str, default: MessageSeverity | None = None) -> MessageSeverity:
        """Parse a severity from its name or label, case-insensitively.

        Raises:
            ValueError: If *text* is unknown and no *default* is given.
        """
        key = text.strip().replace("_", "").lower()
        for member in cls:
            if member.name.replace("_", "").lower() == key:
                return member
        if default is not None:
            return default
        raise ValueError(f"Unknown message severity: {text!r}")


# ---------------------------------------------------------------------------
# Message
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Message:
    """A single severity-tagged record in the competition log."""

    run_number: int
    run_message_number: int
    elapsed: timedelta
    source: MessageSource
    severity: MessageSeverity
    text: str
    hint: str | None = None

    def format(self) -> str:
        """One-line human-readable form: ``#2.3  TestError@Analyser: text``."""
        line = (
            f"#{self.run_number}.{self.run_message_number:<3d} "
            f"{self.severity.label}@{self.source.value}: {self.text}"
        )
        if self.hint:
            line += f" (hint: {self.hint})"
        return line

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dict."""
        d: dict[str, Any] = {
            "run_number": self.run_number,
            "run_message_number": self.run_message_number,
            "elapsed_s": round(self.elapsed.total_seconds(), 6),
            "source": self.source.value,
            "severity": self.severity.label,
            "text": self.text,
        }
        if self.hint:
            d["hint"] = self.hint
        return d


# Called with each message right after it is appended.
MessageListener = Callable[[Message], None]


# ---------------------------------------------------------------------------
# MessageLog
# ---------------------------------------------------------------------------


class MessageLog:
    """Ordered, append-only list of messages for one competition session.

    Appends are guarded by a re-entrant lock: analysers running inside a
    benchmark run may write messages while another write on the same
    thread is still notifying its listener.
    """

    def __init__(self, listener: MessageListener | None = None) -> None:
        self._lock = threading.RLock()
        self._messages: list[Message] = []
        self._started = time.monotonic()
        self._messages_in_run = 0
        self._highest_in_run: MessageSeverity | None = None
        self.listener = listener

    def start_run(self) -> None:
        """Reset the per-run counters before a new run."""
        with self._lock:
            self._messages_in_run = 0
            self._highest_in_run = None

    def write(
        self,
        run_number: int,
        source: MessageSource,
        severity: MessageSeverity,
        text: str,
        hint: str | None = None,
    ) -> Message:
        """Append a message and return it."""
        with self._lock:
            self._messages_in_run += 1
            if self._highest_in_run is None or severity > self._highest_in_run:
                self._highest_in_run = severity

            message = Message(
                run_number=run_number,
                run_message_number=self._messages_in_run,
                elapsed=timedelta(seconds=time.monotonic() - self._started),
                source=source,
                severity=severity,
                text=text,
                hint=hint,
            )
            self._messages.append(message)

            if self.listener is not None:
                self.listener(message)

        return message

    @property
    def messages_in_run(self) -> int:
        return self._messages_in_run

    @property
    def highest_severity_in_run(self) -> MessageSeverity | None:
        return self._highest_in_run

    def messages(self) -> list[Message]:
        """Snapshot of all messages in write order."""
        with self._lock:
            return list(self._messages)

    def highest_severity(self) -> MessageSeverity | None:
        """Most severe message over the whole session, or None if empty."""
        with self._lock:
            if not self._messages:
                return None
            return max(m.severity for m in self._messages)

    def with_severity(self, minimum: MessageSeverity) -> list[Message]:
        """Messages at *minimum* severity or above, in write order."""
        with self._lock:
            return [m for m in self._messages if m.severity >= minimum]

    def __len__(self) -> int:
        with self._lock:
            return len(self._messages)
