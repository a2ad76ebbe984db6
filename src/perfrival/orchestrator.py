"""Competition run loop.

Drives a :class:`~perfrival.state.CompetitionState` through one session:

1. Validate that the configuration carries a run registry.
2. Fetch (or create) the session state from the registry and start it.
3. Run the execution engine and the configured analysers until no rerun
   is pending or the run limit is reached.
4. Report the run count, then the validation errors of the last run.

Engine and analyser failures never escape: they are recorded as a single
``ExecutionError`` message and the partially completed state is returned.
"""

from __future__ import annotations

import logging

from perfrival.config import CompetitionConfig
from perfrival.engine import ExecutionEngine
from perfrival.limits import CompetitionTarget
from perfrival.messages import MessageSeverity, MessageSource
from perfrival.registry import ADJUSTED_TARGETS, COMPETITION_STATE
from perfrival.results import Summary
from perfrival.state import CompetitionState

log = logging.getLogger("perfrival")


class CompetitionRunner:
    """Runs one competition session.

    Usage::

        config = CompetitionConfig(...)
        runner = CompetitionRunner(config, CommandEngine())
        state = runner.run("sorting")
    """

    def __init__(
        self,
        config: CompetitionConfig,
        engine: ExecutionEngine,
        *,
        max_runs_allowed: int | None = None,
    ) -> None:
        self.config = config
        self.engine = engine
        self.max_runs_allowed = (
            config.max_runs_allowed if max_runs_allowed is None else max_runs_allowed
        )

    def run(self, benchmark_id: str) -> CompetitionState:
        """Execute the session and return its state.

        Raises:
            ValueError: If the configuration has no run registry.
        """
        registry = self.config.registry
        if registry is None:
            raise ValueError("The competition config should include a run registry.")

        state = registry.get(COMPETITION_STATE)
        try:
            state.first_time_init(self.max_runs_allowed)
            self._run_core(benchmark_id, state)
        except Exception as exc:
            log.debug("Competition %s failed", benchmark_id, exc_info=True)
            state.write_message(
                MessageSource.RUNNER,
                MessageSeverity.EXECUTION_ERROR,
                str(exc) or type(exc).__name__,
            )

        self._fill_messages_after_last_run(state)
        state.mark_completed()
        return state

    def _run_core(self, benchmark_id: str, state: CompetitionState) -> None:
        while state.runs_left > 0:
            state.prepare_for_run()

            runs_expected = state.run_number + state.runs_left
            if state.last_run:
                log.info(
                    "Run %d, total runs (expected): %d (rerun limit exceeded, last run).",
                    state.run_number,
                    runs_expected,
                )
            else:
                log.info("Run %d, total runs (expected): %d.", state.run_number, runs_expected)

            summary = self.engine.execute(benchmark_id, self.config)
            self._run_analysers(summary)
            state.run_completed(summary)

            if state.last_run:
                break

            if state.has_critical_errors_in_run:
                log.info("Breaking the run. High severity error occurred.")
                break

            if state.runs_left > 0:
                log.info("Rerun requested. Runs left: %d.", state.runs_left)

        if state.run_limit_exceeded:
            state.write_message(
                MessageSource.RUNNER,
                MessageSeverity.TEST_ERROR,
                "The benchmark run count exceeded max rerun limits (read log for details). "
                "Consider to adjust competition setup.",
            )
        elif state.run_number > 1:
            state.write_message(
                MessageSource.RUNNER,
                MessageSeverity.WARNING,
                f"The benchmark was run {state.run_number} times (read log for details). "
                "Consider to adjust competition setup.",
            )

    def _run_analysers(self, summary: Summary) -> None:
        for analyser in self.config.analysers:
            analyser.analyse(summary, self.config)

    @staticmethod
    def _fill_messages_after_last_run(state: CompetitionState) -> None:
        summary = state.last_run_summary
        if summary is None:
            return

        for error in summary.validation_errors:
            severity = MessageSeverity.TEST_ERROR if error.is_critical else MessageSeverity.WARNING
            if error.benchmark is None:
                text = error.message
            else:
                text = f"Benchmark {error.benchmark.short_info}:\n\t{error.message}"
            state.write_message(MessageSource.VALIDATOR, severity, text)


def run_competition(
    benchmark_id: str,
    config: CompetitionConfig,
    engine: ExecutionEngine,
    max_runs_allowed: int | None = None,
) -> CompetitionState:
    """Run a competition session.  See :class:`CompetitionRunner`."""
    runner = CompetitionRunner(config, engine, max_runs_allowed=max_runs_allowed)
    return runner.run(benchmark_id)


def adjusted_targets(config: CompetitionConfig) -> list[CompetitionTarget]:
    """Targets widened by annotation during the session, in order of first change."""
    if config.registry is None:
        return []
    adjusted = config.registry.peek(ADJUSTED_TARGETS)
    return list(adjusted.values()) if adjusted else []
