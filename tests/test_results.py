"""Tests for perfrival.results: run summaries and their persistence."""

from __future__ import annotations

import json
import tempfile
import unittest
from pathlib import Path

from competition_test_helpers import make_report, make_summary

from perfrival.results import (
    BenchmarkId,
    BenchmarkReport,
    Summary,
    SummaryValidationError,
    load_summary,
    save_summary,
)


class TestBenchmarkId(unittest.TestCase):
    def test_params_are_sorted_and_hashable(self) -> None:
        a = BenchmarkId.create("sort", params={"n": 10, "kind": "random"})
        b = BenchmarkId.create("sort", params={"kind": "random", "n": "10"})
        self.assertEqual(a, b)
        self.assertEqual(hash(a), hash(b))
        self.assertEqual(a.params, (("kind", "random"), ("n", "10")))

    def test_condition(self) -> None:
        a = BenchmarkId.create("a", job="fast", params={"n": 1})
        b = BenchmarkId.create("b", job="fast", params={"n": 1})
        c = BenchmarkId.create("b", job="fast", params={"n": 2})
        self.assertEqual(a.condition, b.condition)
        self.assertNotEqual(b.condition, c.condition)

    def test_short_info(self) -> None:
        self.assertEqual(BenchmarkId.create("sort").short_info, "sort")
        bid = BenchmarkId.create("sort", job="quick", params={"n": 10})
        self.assertEqual(str(bid), "sort [quick] (n=10)")

    def test_dict_form(self) -> None:
        bid = BenchmarkId.create("sort", params={"n": 10})
        self.assertEqual(bid.to_dict(), {"method": "sort", "job": "default", "params": {"n": "10"}})
        self.assertEqual(BenchmarkId.from_dict(bid.to_dict()), bid)


class TestBenchmarkReport(unittest.TestCase):
    def test_executed(self) -> None:
        self.assertTrue(make_report("a", [1.0]).executed)
        self.assertFalse(make_report("a", []).executed)

    def test_stats(self) -> None:
        stats = make_report("a", [100.0, 200.0, 300.0]).stats
        self.assertEqual(stats.n, 3)
        self.assertAlmostEqual(stats.mean, 200.0)

    def test_from_dict_defaults(self) -> None:
        report = BenchmarkReport.from_dict({"benchmark": {"method": "a"}})
        self.assertEqual(report.samples, [])
        self.assertFalse(report.baseline)


class TestSummary(unittest.TestCase):
    def _grouped_summary(self) -> Summary:
        return Summary(
            reports=[
                make_report("base", [100.0], baseline=True, params={"n": 1}),
                make_report("fast", [50.0], params={"n": 1}),
                make_report("base", [1000.0], baseline=True, params={"n": 2}),
                make_report("fast", [600.0], params={"n": 2}),
            ]
        )

    def test_same_condition_groups(self) -> None:
        groups = self._grouped_summary().same_condition_groups()
        self.assertEqual(len(groups), 2)
        self.assertEqual([r.benchmark.method for r in groups[0]], ["base", "fast"])
        self.assertEqual(groups[1][0].samples, [1000.0])

    def test_baseline_for_uses_same_condition(self) -> None:
        summary = self._grouped_summary()
        fast_n2 = summary.reports[3].benchmark
        baseline = summary.baseline_for(fast_n2)
        assert baseline is not None
        self.assertEqual(baseline.samples, [1000.0])

    def test_baseline_for_missing(self) -> None:
        summary = Summary(reports=[make_report("fast", [1.0])])
        self.assertIsNone(summary.baseline_for(summary.reports[0].benchmark))

    def test_report_for(self) -> None:
        summary = make_summary({"base": 100.0, "fast": 50.0})
        report = summary.report_for(BenchmarkId.create("fast"))
        assert report is not None
        self.assertEqual(report.samples[0], 50.0)
        self.assertIsNone(summary.report_for(BenchmarkId.create("missing")))

    def test_critical_validation_errors(self) -> None:
        summary = make_summary({"base": 1.0})
        self.assertFalse(summary.has_critical_validation_errors)
        summary.validation_errors.append(SummaryValidationError("minor"))
        self.assertFalse(summary.has_critical_validation_errors)
        summary.validation_errors.append(SummaryValidationError("major", is_critical=True))
        self.assertTrue(summary.has_critical_validation_errors)


class TestSummaryIO(unittest.TestCase):
    def test_save_and_load(self) -> None:
        summary = make_summary(
            {"base": 1000.0, "fast": 500.0},
            errors=[
                SummaryValidationError(
                    "exit code 1", benchmark=BenchmarkId.create("fast")
                )
            ],
        )
        with tempfile.TemporaryDirectory() as tmp:
            path = save_summary(Path(tmp) / "out", summary)
            self.assertEqual(path.name, "summary.json")
            data = json.loads(path.read_text())
            self.assertEqual(len(data["reports"]), 2)

            loaded = load_summary(path)
        self.assertEqual(loaded.benchmarks, summary.benchmarks)
        self.assertEqual(loaded.validation_errors[0].benchmark, BenchmarkId.create("fast"))
        self.assertTrue(loaded.reports[0].baseline)

    def test_load_missing(self) -> None:
        with self.assertRaises(FileNotFoundError):
            load_summary(Path("/nonexistent/summary.json"))


if __name__ == "__main__":
    unittest.main()
