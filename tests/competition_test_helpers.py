"""Shared test fixtures for competition tests."""

from __future__ import annotations

from typing import Any, Callable

from perfrival.config import BenchmarkDef, CompetitionConfig, LimitSpec
from perfrival.registry import RunRegistry
from perfrival.results import BenchmarkId, BenchmarkReport, Summary, SummaryValidationError
from perfrival.timing import TimedResult


def make_report(
    method: str,
    samples: list[float],
    *,
    baseline: bool = False,
    job: str = "default",
    params: dict[str, Any] | None = None,
) -> BenchmarkReport:
    """Create a BenchmarkReport with ns-per-operation samples."""
    return BenchmarkReport(
        benchmark=BenchmarkId.create(method, job=job, params=params),
        samples=list(samples),
        baseline=baseline,
    )


def make_summary(
    means: dict[str, float],
    *,
    baseline: str = "base",
    spread: float = 0.0,
    count: int = 5,
    errors: list[SummaryValidationError] | None = None,
) -> Summary:
    """Create a Summary from method -> mean ns.

    Each report gets *count* samples spread by ``+-spread`` (a fraction
    of the mean) around the mean.
    """
    reports = []
    for method, mean in means.items():
        if spread and count > 1:
            samples = [
                mean * (1 - spread + 2 * spread * i / (count - 1)) for i in range(count)
            ]
        else:
            samples = [mean] * count
        reports.append(make_report(method, samples, baseline=method == baseline))
    return Summary(title="test", reports=reports, validation_errors=list(errors or []))


def make_config(**kwargs: Any) -> CompetitionConfig:
    """Create a CompetitionConfig with a fresh registry and test defaults."""
    defaults: dict[str, Any] = {
        "competition_id": "test_competition",
        "name": "test",
        "max_runs_allowed": 3,
        "iterations": 3,
        "warmup": 0,
        "timeout": 60,
    }
    defaults.update(kwargs)
    if "registry" not in defaults:
        defaults["registry"] = RunRegistry()
    return CompetitionConfig(**defaults)


def make_command_config(**kwargs: Any) -> CompetitionConfig:
    """Config with a baseline and one competitor command."""
    config = make_config(**kwargs)
    config.benchmarks = {
        "base": BenchmarkDef(name="base", command="true", baseline=True),
        "fast": BenchmarkDef(name="fast", command="true", operations=10),
    }
    config.limits = {"fast": LimitSpec(min=0.05, max=0.2)}
    return config


def make_timed_result(**kwargs: Any) -> TimedResult:
    """Create a TimedResult with sensible defaults."""
    defaults: dict[str, Any] = {
        "wall_time_s": 0.01,
        "user_time_s": 0.008,
        "sys_time_s": 0.001,
        "peak_rss_mb": 20.0,
        "exit_code": 0,
        "stdout": "",
        "stderr": "",
    }
    defaults.update(kwargs)
    return TimedResult(**defaults)


class FakeEngine:
    """Execution engine returning canned summaries.

    *summaries* is either a fixed Summary, a list consumed one per call
    (the last one repeats) or a callable taking the call number.
    """

    def __init__(self, summaries: Summary | list[Summary] | Callable[[int], Summary]) -> None:
        self.summaries = summaries
        self.calls: list[tuple[str, CompetitionConfig]] = []

    def execute(self, benchmark_id: str, config: CompetitionConfig) -> Summary:
        self.calls.append((benchmark_id, config))
        n = len(self.calls)
        if callable(self.summaries):
            return self.summaries(n)
        if isinstance(self.summaries, list):
            return self.summaries[min(n, len(self.summaries)) - 1]
        return self.summaries


class FailingEngine:
    """Execution engine that raises on a given call."""

    def __init__(self, exc: Exception, *, fail_on_call: int = 1, summary: Summary | None = None):
        self.exc = exc
        self.fail_on_call = fail_on_call
        self.summary = summary or make_summary({"base": 1000.0, "fast": 2000.0})
        self.calls = 0

    def execute(self, benchmark_id: str, config: CompetitionConfig) -> Summary:
        self.calls += 1
        if self.calls == self.fail_on_call:
            raise self.exc
        return self.summary


class RerunAnalyser:
    """Analyser that requests *count* reruns after every run."""

    def __init__(self, count: int = 1, reason: str = "Needs another run.") -> None:
        self.count = count
        self.reason = reason
        self.calls = 0

    def analyse(self, summary: Summary, config: CompetitionConfig) -> list[Any]:
        from perfrival.registry import COMPETITION_STATE

        self.calls += 1
        assert config.registry is not None
        config.registry.get(COMPETITION_STATE).request_reruns(self.count, self.reason)
        return []
