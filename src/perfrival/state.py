"""Competition session state.

One :class:`CompetitionState` lives for a whole multi-run competition
session.  It counts runs, tracks how many reruns are still pending and
owns the session's message log.  The orchestrator drives it through
``first_time_init -> (prepare_for_run -> run_completed)* -> mark_completed``;
analysers running inside a run call :meth:`CompetitionState.request_reruns`
and :meth:`CompetitionState.write_message`.
"""

from __future__ import annotations

import enum
import logging
from typing import Any

from perfrival.messages import (
    Message,
    MessageLog,
    MessageSeverity,
    MessageSource,
)

log = logging.getLogger("perfrival")

# Upper bound accepted by request_reruns().
MAX_RERUNS_REQUEST = 1000

_LOG_LEVELS = {
    MessageSeverity.INFORMATIONAL: logging.INFO,
    MessageSeverity.WARNING: logging.WARNING,
    MessageSeverity.TEST_ERROR: logging.ERROR,
    MessageSeverity.SETUP_ERROR: logging.ERROR,
    MessageSeverity.EXECUTION_ERROR: logging.ERROR,
}


class CompetitionPhase(enum.Enum):
    NOT_STARTED = "not_started"
    RUNNING = "running"
    COMPLETED = "completed"


def _log_message(message: Message) -> None:
    log.log(
        _LOG_LEVELS[message.severity],
        "[%s] %s",
        message.source.value,
        message.text,
    )


class CompetitionState:
    """Run counters, rerun requests and the message log of one session."""

    def __init__(self) -> None:
        self._log = MessageLog(listener=_log_message)
        self._phase = CompetitionPhase.NOT_STARTED
        self._max_runs_allowed = 0
        self._run_number = 0
        self._runs_left = 0
        self._last_run_summary: Any = None

    # -- State properties ---------------------------------------------------

    @property
    def phase(self) -> CompetitionPhase:
        return self._phase

    @property
    def max_runs_allowed(self) -> int:
        return self._max_runs_allowed

    @property
    def run_number(self) -> int:
        """Number of the current run, 1-based.  0 before the first run."""
        return self._run_number

    @property
    def runs_left(self) -> int:
        """Expected count of runs still to do."""
        return self._runs_left

    @property
    def last_run(self) -> bool:
        """The run limit is reached; no more runs will be started."""
        return self._run_number >= self._max_runs_allowed

    @property
    def run_limit_exceeded(self) -> bool:
        """The run limit is reached while reruns are still pending."""
        return self.last_run and self._runs_left > 0

    @property
    def looks_like_last_run(self) -> bool:
        """No additional runs are requested so far."""
        return self._runs_left <= 0

    @property
    def last_run_summary(self) -> Any:
        """Summary of the last completed run, None while a run is in progress."""
        return self._last_run_summary

    @property
    def messages_in_run(self) -> int:
        return self._log.messages_in_run

    @property
    def highest_severity_in_run(self) -> MessageSeverity | None:
        return self._log.highest_severity_in_run

    @property
    def has_critical_errors_in_run(self) -> bool:
        highest = self._log.highest_severity_in_run
        return highest is not None and highest.is_critical_error

    @property
    def highest_message_severity(self) -> MessageSeverity | None:
        return self._log.highest_severity()

    # -- State modification -------------------------------------------------

    def first_time_init(self, max_runs_allowed: int) -> None:
        """Start the session.  Exactly one run is expected until reruns are requested.

        A completed state can be started again.  The run counters and the last
        summary are reset; messages from earlier sessions are kept.
        """
        if max_runs_allowed < 1:
            raise ValueError(f"max_runs_allowed should be at least 1 (got {max_runs_allowed}).")
        if self._phase is CompetitionPhase.RUNNING:
            raise RuntimeError("The competition is already running.")

        self._max_runs_allowed = max_runs_allowed
        self._run_number = 0
        self._runs_left = 1
        self._last_run_summary = None
        self._phase = CompetitionPhase.RUNNING

    def prepare_for_run(self) -> None:
        """Advance to the next run."""
        if self._phase is not CompetitionPhase.RUNNING:
            raise RuntimeError(
                f"Cannot start a run in the '{self._phase.value}' phase; "
                "call first_time_init() first."
            )
        self._run_number += 1
        self._runs_left = max(self._runs_left - 1, 0)
        self._last_run_summary = None
        self._log.start_run()

    def run_completed(self, summary: Any) -> None:
        self._last_run_summary = summary

    def mark_completed(self) -> None:
        self._phase = CompetitionPhase.COMPLETED

    def request_reruns(self, count: int, reason: str) -> None:
        """Request *count* additional runs.  Pending reruns never decrease.

        Raises:
            ValueError: If *count* is outside ``[0, 1000]`` or *reason* is empty.
        """
        if not 0 <= count <= MAX_RERUNS_REQUEST:
            raise ValueError(
                f"Rerun count should be in range [0, {MAX_RERUNS_REQUEST}] (got {count})."
            )
        if not reason:
            raise ValueError("A reason is required when requesting reruns.")

        if count == 0:
            self.write_message(
                MessageSource.RUNNER,
                MessageSeverity.INFORMATIONAL,
                f"No reruns requested: {reason}",
            )
        else:
            self.write_message(
                MessageSource.RUNNER,
                MessageSeverity.INFORMATIONAL,
                f"Requesting {count} run(s): {reason}",
            )
            self._runs_left = max(count, self._runs_left)

    # -- Messages -----------------------------------------------------------

    def write_message(
        self,
        source: MessageSource,
        severity: MessageSeverity,
        text: str,
        hint: str | None = None,
    ) -> Message:
        return self._log.write(self._run_number, source, severity, text, hint)

    def messages(self) -> list[Message]:
        """All messages of the session, in the order they were written."""
        return self._log.messages()

    def messages_with_severity(self, minimum: MessageSeverity) -> list[Message]:
        return self._log.with_severity(minimum)

    def __repr__(self) -> str:
        return (
            f"CompetitionState(phase={self._phase.value}, run_number={self._run_number}, "
            f"runs_left={self._runs_left}, max_runs_allowed={self._max_runs_allowed}, "
            f"messages={len(self._log)})"
        )
