"""Tests for perfrival.orchestrator: the competition run loop."""

from __future__ import annotations

import unittest
from typing import Any
from unittest.mock import Mock

from competition_test_helpers import (
    FailingEngine,
    FakeEngine,
    RerunAnalyser,
    make_config,
    make_summary,
)

from perfrival.analysis import CompetitionAnalyser, LimitAdjustmentAnalyser
from perfrival.config import CompetitionConfig, LimitSpec
from perfrival.messages import MessageSeverity, MessageSource
from perfrival.orchestrator import CompetitionRunner, adjusted_targets, run_competition
from perfrival.registry import COMPETITION_STATE
from perfrival.results import BenchmarkId, Summary, SummaryValidationError
from perfrival.state import CompetitionPhase


def _summary() -> Summary:
    return make_summary({"base": 1000.0, "fast": 500.0})


class SilentError(Exception):
    pass


class RerunOnce:
    """Requests a single rerun after the first run only."""

    def analyse(self, summary: Summary, config: CompetitionConfig) -> list[Any]:
        assert config.registry is not None
        state = config.registry.get(COMPETITION_STATE)
        if state.run_number == 1:
            state.request_reruns(1, "Warming up.")
        return []


class TestRunLoop(unittest.TestCase):
    def test_single_run(self) -> None:
        config = make_config()
        engine = FakeEngine(_summary())

        state = run_competition("sorting", config, engine)

        self.assertEqual(len(engine.calls), 1)
        self.assertEqual(engine.calls[0], ("sorting", config))
        self.assertEqual(state.run_number, 1)
        self.assertEqual(state.runs_left, 0)
        self.assertEqual(state.phase, CompetitionPhase.COMPLETED)
        self.assertIsNone(state.highest_message_severity)
        self.assertIs(state.last_run_summary, engine.summaries)

    def test_state_lives_in_registry(self) -> None:
        config = make_config()
        state = run_competition("sorting", config, FakeEngine(_summary()))
        assert config.registry is not None
        self.assertIs(config.registry.get(COMPETITION_STATE), state)

    def test_requires_registry(self) -> None:
        with self.assertRaises(ValueError):
            run_competition("sorting", make_config(registry=None), FakeEngine(_summary()))

    def test_rerun_is_reported(self) -> None:
        config = make_config(analysers=[RerunOnce()])
        engine = FakeEngine(_summary())

        state = run_competition("sorting", config, engine)

        self.assertEqual(len(engine.calls), 2)
        self.assertEqual(state.run_number, 2)
        self.assertFalse(state.run_limit_exceeded)
        last = state.messages()[-1]
        self.assertEqual(last.source, MessageSource.RUNNER)
        self.assertEqual(last.severity, MessageSeverity.WARNING)
        self.assertEqual(
            last.text,
            "The benchmark was run 2 times (read log for details). "
            "Consider to adjust competition setup.",
        )

    def test_rerun_limit_exceeded(self) -> None:
        analyser = RerunAnalyser()
        config = make_config(max_runs_allowed=3, analysers=[analyser])
        engine = FakeEngine(_summary())

        state = run_competition("sorting", config, engine)

        self.assertEqual(len(engine.calls), 3)
        self.assertEqual(analyser.calls, 3)
        self.assertEqual(state.run_number, 3)
        self.assertTrue(state.last_run)
        self.assertTrue(state.run_limit_exceeded)
        last = state.messages()[-1]
        self.assertEqual(last.severity, MessageSeverity.TEST_ERROR)
        self.assertEqual(last.run_number, 3)
        self.assertIn("exceeded max rerun limits", last.text)

    def test_max_runs_override(self) -> None:
        config = make_config(max_runs_allowed=10, analysers=[RerunAnalyser()])
        engine = FakeEngine(_summary())

        state = run_competition("sorting", config, engine, max_runs_allowed=2)

        self.assertEqual(len(engine.calls), 2)
        self.assertEqual(state.max_runs_allowed, 2)
        self.assertTrue(state.run_limit_exceeded)

    def test_runner_defaults_to_config_limit(self) -> None:
        config = make_config(max_runs_allowed=7)
        self.assertEqual(CompetitionRunner(config, FakeEngine(_summary())).max_runs_allowed, 7)

    def test_each_run_gets_fresh_summary(self) -> None:
        summaries = [_summary(), _summary()]
        config = make_config(analysers=[RerunOnce()])

        state = run_competition("sorting", config, FakeEngine(summaries))

        self.assertIs(state.last_run_summary, summaries[1])

    def test_analysers_run_in_order(self) -> None:
        calls: list[str] = []
        first, second = Mock(), Mock()
        first.analyse.side_effect = lambda s, c: calls.append("first")
        second.analyse.side_effect = lambda s, c: calls.append("second")
        config = make_config(analysers=[first, second])
        summary = _summary()

        run_competition("sorting", config, FakeEngine(summary))

        self.assertEqual(calls, ["first", "second"])
        first.analyse.assert_called_once_with(summary, config)

    def test_critical_error_stops_reruns(self) -> None:
        config = make_config(analysers=[RerunAnalyser(), CompetitionAnalyser()])
        engine = FakeEngine(make_summary({"fast": 500.0}, baseline="none"))

        state = run_competition("sorting", config, engine)

        self.assertEqual(len(engine.calls), 1)
        self.assertEqual(state.highest_message_severity, MessageSeverity.SETUP_ERROR)
        self.assertFalse(state.run_limit_exceeded)
        [error] = state.messages_with_severity(MessageSeverity.SETUP_ERROR)
        self.assertEqual(error.text, "The competition has no baseline")

    def test_same_config_twice(self) -> None:
        config = make_config(analysers=[RerunOnce()])
        engine = FakeEngine(_summary())

        first = run_competition("sorting", config, engine)
        second = run_competition("sorting", config, engine)

        self.assertIs(first, second)
        self.assertEqual(len(engine.calls), 4)
        self.assertEqual(second.run_number, 2)
        self.assertEqual(second.phase, CompetitionPhase.COMPLETED)
        self.assertEqual(second.messages_with_severity(MessageSeverity.EXECUTION_ERROR), [])
        # Each session reports its own reruns.
        warnings = second.messages_with_severity(MessageSeverity.WARNING)
        self.assertEqual(len(warnings), 2)
        self.assertTrue(all("was run 2 times" in m.text for m in warnings))

    def test_invalid_run_limit_is_reported(self) -> None:
        engine = FakeEngine(_summary())

        state = run_competition("sorting", make_config(), engine, max_runs_allowed=0)

        self.assertEqual(engine.calls, [])
        self.assertEqual(state.phase, CompetitionPhase.COMPLETED)
        [error] = state.messages()
        self.assertEqual(error.severity, MessageSeverity.EXECUTION_ERROR)
        self.assertIn("max_runs_allowed should be at least 1", error.text)

    def test_progress_is_logged(self) -> None:
        config = make_config(max_runs_allowed=2, analysers=[RerunAnalyser()])

        with self.assertLogs("perfrival", level="INFO") as logs:
            run_competition("sorting", config, FakeEngine(_summary()))

        output = "\n".join(logs.output)
        self.assertIn("Run 1, total runs (expected): 1.", output)
        self.assertIn("Rerun requested. Runs left: 1.", output)
        self.assertIn("Run 2, total runs (expected): 2 (rerun limit exceeded, last run).", output)


class TestFailures(unittest.TestCase):
    def test_engine_exception(self) -> None:
        config = make_config()
        state = run_competition("sorting", config, FailingEngine(RuntimeError("engine broke")))

        [message] = state.messages()
        self.assertEqual(message.source, MessageSource.RUNNER)
        self.assertEqual(message.severity, MessageSeverity.EXECUTION_ERROR)
        self.assertEqual(message.text, "engine broke")
        self.assertEqual(state.phase, CompetitionPhase.COMPLETED)
        self.assertIsNone(state.last_run_summary)

    def test_exception_without_message(self) -> None:
        state = run_competition("sorting", make_config(), FailingEngine(SilentError()))
        self.assertEqual(state.messages()[-1].text, "SilentError")

    def test_exception_in_later_run(self) -> None:
        engine = FailingEngine(OSError("disk full"), fail_on_call=2)
        config = make_config(analysers=[RerunAnalyser()])

        state = run_competition("sorting", config, engine)

        self.assertEqual(engine.calls, 2)
        self.assertEqual(state.run_number, 2)
        errors = state.messages_with_severity(MessageSeverity.EXECUTION_ERROR)
        self.assertEqual([m.text for m in errors], ["disk full"])

    def test_analyser_exception(self) -> None:
        analyser = Mock()
        analyser.analyse.side_effect = ValueError("bad ratio")
        config = make_config(analysers=[analyser])

        state = run_competition("sorting", config, FakeEngine(_summary()))

        self.assertEqual(state.highest_message_severity, MessageSeverity.EXECUTION_ERROR)
        self.assertEqual(state.messages()[-1].text, "bad ratio")


class TestValidationMessages(unittest.TestCase):
    def test_last_run_errors_are_reported(self) -> None:
        summary = make_summary(
            {"base": 1000.0, "fast": 500.0},
            errors=[
                SummaryValidationError(
                    "exited with code 1", benchmark=BenchmarkId.create("fast")
                ),
                SummaryValidationError("engine crashed", is_critical=True),
            ],
        )
        state = run_competition("sorting", make_config(), FakeEngine(summary))

        warning, error = state.messages()
        self.assertEqual(warning.source, MessageSource.VALIDATOR)
        self.assertEqual(warning.severity, MessageSeverity.WARNING)
        self.assertEqual(warning.text, "Benchmark fast:\n\texited with code 1")
        self.assertEqual(error.severity, MessageSeverity.TEST_ERROR)
        self.assertEqual(error.text, "engine crashed")

    def test_only_last_run_is_reported(self) -> None:
        failing = make_summary(
            {"base": 1000.0, "fast": 500.0}, errors=[SummaryValidationError("flaky")]
        )
        config = make_config(analysers=[RerunOnce()])

        state = run_competition("sorting", config, FakeEngine([failing, _summary()]))

        self.assertNotIn("flaky", [m.text for m in state.messages()])


class TestCompetitionFlow(unittest.TestCase):
    def test_failed_limits_are_rerun_then_reported(self) -> None:
        config = make_config(
            max_runs_allowed=10,
            limits={"fast": LimitSpec(min=0.6, max=0.8)},
            analysers=[CompetitionAnalyser()],
        )
        engine = FakeEngine(_summary())

        state = run_competition("sorting", config, engine)

        # max_reruns_if_validation_failed defaults to 3.
        self.assertEqual(len(engine.calls), 3)
        errors = state.messages_with_severity(MessageSeverity.TEST_ERROR)
        self.assertEqual(
            [(m.run_number, m.text) for m in errors],
            [(3, "Method fast runs faster than 0.60x baseline. Actual ratio: 0.50x")],
        )
        self.assertIn("was run 3 times", state.messages()[-1].text)

    def test_annotation_session(self) -> None:
        writer = Mock()
        writer.write.side_effect = lambda targets, config: list(targets)
        config = make_config(
            max_runs_allowed=10, annotate=True, analysers=[LimitAdjustmentAnalyser(writer)]
        )
        engine = FakeEngine(_summary())

        state = run_competition("sorting", config, engine)

        # One annotating run plus two confirmation runs.
        self.assertEqual(len(engine.calls), 3)
        self.assertEqual(state.highest_message_severity, MessageSeverity.WARNING)
        [target] = adjusted_targets(config)
        self.assertEqual(target.target, "fast")
        actual = config.metric_calculator.try_get_relative_actual_values([500.0], [1000.0])
        self.assertTrue(target.limit.check_limits_for(actual))
        writer.write.assert_called_once()

    def test_adjusted_targets_without_session(self) -> None:
        self.assertEqual(adjusted_targets(make_config()), [])
        self.assertEqual(adjusted_targets(make_config(registry=None)), [])


if __name__ == "__main__":
    unittest.main()
