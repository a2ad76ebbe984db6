"""Tests for perfrival.engine: the command execution engine."""

from __future__ import annotations

import unittest
from unittest.mock import patch

from competition_test_helpers import make_command_config, make_timed_result

from perfrival.engine import CommandEngine, EngineProgress
from perfrival.results import BenchmarkId


def _quiet_engine() -> CommandEngine:
    return CommandEngine(progress_callback=lambda p: None)


class TestCommandEngine(unittest.TestCase):
    @patch("perfrival.engine.run_timed")
    def test_samples_in_ns_per_operation(self, mock_run) -> None:
        mock_run.return_value = make_timed_result(wall_time_s=0.002)
        config = make_command_config(iterations=3, warmup=0)

        summary = _quiet_engine().execute("sorting", config)

        self.assertEqual(summary.title, "sorting")
        base = summary.report_for(BenchmarkId.create("base"))
        fast = summary.report_for(BenchmarkId.create("fast"))
        assert base is not None and fast is not None
        self.assertTrue(base.baseline)
        self.assertFalse(fast.baseline)
        self.assertEqual(len(base.samples), 3)
        self.assertAlmostEqual(base.samples[0], 2_000_000.0)
        # "fast" runs 10 operations per invocation.
        self.assertAlmostEqual(fast.samples[0], 200_000.0)
        self.assertEqual(summary.validation_errors, [])
        self.assertEqual(base.gc_stats["peak_rss_mb"], 20.0)

    @patch("perfrival.engine.run_timed")
    def test_warmup_not_measured(self, mock_run) -> None:
        mock_run.return_value = make_timed_result()
        config = make_command_config(iterations=2, warmup=3)

        summary = _quiet_engine().execute("sorting", config)

        self.assertEqual(mock_run.call_count, 2 * (2 + 3))
        self.assertEqual([len(r.samples) for r in summary.reports], [2, 2])

    @patch("perfrival.engine.run_timed")
    def test_command_options(self, mock_run) -> None:
        mock_run.return_value = make_timed_result()
        config = make_command_config(iterations=1, timeout=42)
        config.benchmarks["fast"].env = {"N": "10"}

        _quiet_engine().execute("sorting", config)

        first, second = mock_run.call_args_list
        self.assertEqual(first.args, ("true",))
        self.assertEqual(first.kwargs["timeout"], 42)
        self.assertIsNone(first.kwargs["env"])
        self.assertEqual(second.kwargs["env"], {"N": "10"})

    @patch("perfrival.engine.run_timed")
    def test_nonzero_exit_is_non_critical(self, mock_run) -> None:
        mock_run.side_effect = [
            make_timed_result(),
            make_timed_result(),
            make_timed_result(exit_code=1, stderr="Traceback\nValueError: bad"),
            make_timed_result(),
        ]
        config = make_command_config(iterations=2)

        summary = _quiet_engine().execute("sorting", config)

        fast = summary.report_for(BenchmarkId.create("fast"))
        assert fast is not None
        self.assertEqual(len(fast.samples), 1)
        self.assertEqual(len(summary.validation_errors), 1)
        error = summary.validation_errors[0]
        self.assertFalse(error.is_critical)
        self.assertEqual(error.benchmark, BenchmarkId.create("fast"))
        self.assertIn("exited with code 1", error.message)
        self.assertIn("ValueError: bad", error.message)
        self.assertFalse(summary.has_critical_validation_errors)

    @patch("perfrival.engine.run_timed")
    def test_timeout_is_critical(self, mock_run) -> None:
        mock_run.side_effect = [
            make_timed_result(),
            make_timed_result(timed_out=True, exit_code=-1),
            make_timed_result(),
            make_timed_result(),
            make_timed_result(),
        ]
        config = make_command_config(iterations=3, timeout=5)

        summary = _quiet_engine().execute("sorting", config)

        base = summary.report_for(BenchmarkId.create("base"))
        assert base is not None
        self.assertFalse(base.executed)
        self.assertTrue(summary.has_critical_validation_errors)
        self.assertIn("timed out after 5s", summary.validation_errors[0].message)
        # The competitor still runs.
        fast = summary.report_for(BenchmarkId.create("fast"))
        assert fast is not None
        self.assertEqual(len(fast.samples), 3)

    @patch("perfrival.engine.run_timed")
    def test_progress_callback(self, mock_run) -> None:
        mock_run.return_value = make_timed_result(wall_time_s=0.5)
        seen: list[EngineProgress] = []
        config = make_command_config(iterations=1, warmup=1)

        CommandEngine(progress_callback=seen.append).execute("sorting", config)

        self.assertEqual([p.phase for p in seen], ["warmup", "measure", "warmup", "measure"])
        self.assertEqual(seen[1].benchmark, "base")
        self.assertEqual(seen[1].status, "ok")

    def test_no_benchmarks(self) -> None:
        config = make_command_config()
        config.benchmarks = {}
        with self.assertRaises(ValueError):
            _quiet_engine().execute("sorting", config)


if __name__ == "__main__":
    unittest.main()
