"""Execution engines.

The orchestrator only depends on the :class:`ExecutionEngine` contract:
``execute(benchmark_id, config) -> Summary``.  :class:`CommandEngine` is
the bundled implementation; it times the shell commands configured in
``config.benchmarks``.

Execution strategy of :class:`CommandEngine`: block.  All warm-up and
measured iterations of one benchmark run before the next benchmark
starts, in configuration order.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

from perfrival.config import BenchmarkDef, CompetitionConfig
from perfrival.logging import get_logger
from perfrival.results import BenchmarkId, BenchmarkReport, Summary, SummaryValidationError
from perfrival.timing import TimedResult, run_timed

log = get_logger("engine")

NS_PER_SECOND = 1_000_000_000


class ExecutionEngine(Protocol):
    """Runs every benchmark of a competition once and reports the results."""

    def execute(self, benchmark_id: str, config: CompetitionConfig) -> Summary: ...


# ---------------------------------------------------------------------------
# Progress callback
# ---------------------------------------------------------------------------


@dataclass
class EngineProgress:
    """Progress info passed to the callback."""

    phase: str  # "warmup", "measure"
    benchmark: str
    iteration: int  # 1-based
    total_iterations: int
    wall_time_s: float = 0.0
    status: str = ""


ProgressCallback = Any  # Callable[[EngineProgress], None] | None


# ---------------------------------------------------------------------------
# CommandEngine
# ---------------------------------------------------------------------------


class CommandEngine:
    """Times configured shell commands.

    Each measured iteration contributes one sample: the wall time of the
    command divided by the benchmark's ``operations`` count, in
    nanoseconds.  Failing iterations are reported as non-critical
    validation errors and contribute no sample; a timeout is critical and
    stops that benchmark.

    Usage::

        engine = CommandEngine(cwd=Path("benchmarks"))
        summary = engine.execute("sorting", config)
    """

    def __init__(
        self,
        cwd: Path | None = None,
        progress_callback: ProgressCallback = None,
    ) -> None:
        self.cwd = cwd
        self.progress: Any = progress_callback or self._default_progress

    def execute(self, benchmark_id: str, config: CompetitionConfig) -> Summary:
        if not config.benchmarks:
            raise ValueError("The competition config has no benchmarks to execute.")

        summary = Summary(title=benchmark_id)
        for bench in config.benchmarks.values():
            summary.reports.append(self._run_benchmark(bench, config, summary))
        return summary

    def _run_benchmark(
        self,
        bench: BenchmarkDef,
        config: CompetitionConfig,
        summary: Summary,
    ) -> BenchmarkReport:
        bench_id = BenchmarkId.create(bench.name)
        report = BenchmarkReport(benchmark=bench_id, baseline=bench.baseline)
        peak_rss = 0.0

        for i in range(config.warmup):
            timed = self._run_once(bench, config)
            self.progress(
                EngineProgress(
                    "warmup", bench.name, i + 1, config.warmup, timed.wall_time_s, _status(timed)
                )
            )
            if timed.timed_out:
                self._add_timeout(summary, bench_id, config)
                report.samples.clear()
                return report

        for i in range(config.iterations):
            timed = self._run_once(bench, config)
            self.progress(
                EngineProgress(
                    "measure",
                    bench.name,
                    i + 1,
                    config.iterations,
                    timed.wall_time_s,
                    _status(timed),
                )
            )

            if timed.timed_out:
                self._add_timeout(summary, bench_id, config)
                report.samples.clear()
                return report
            if timed.exit_code != 0:
                stderr_tail = timed.stderr.strip().splitlines()[-1:] if timed.stderr else []
                detail = f": {stderr_tail[0]}" if stderr_tail else ""
                summary.validation_errors.append(
                    SummaryValidationError(
                        f"Benchmark {bench.name} exited with code {timed.exit_code} "
                        f"on iteration {i + 1}{detail}",
                        is_critical=False,
                        benchmark=bench_id,
                    )
                )
                continue

            report.samples.append(timed.wall_time_s * NS_PER_SECOND / bench.operations)
            peak_rss = max(peak_rss, timed.peak_rss_mb)

        if report.samples:
            report.gc_stats["peak_rss_mb"] = peak_rss
        return report

    def _run_once(self, bench: BenchmarkDef, config: CompetitionConfig) -> TimedResult:
        return run_timed(
            bench.command,
            cwd=self.cwd,
            env=bench.env or None,
            timeout=config.timeout,
        )

    @staticmethod
    def _add_timeout(summary: Summary, bench_id: BenchmarkId, config: CompetitionConfig) -> None:
        summary.validation_errors.append(
            SummaryValidationError(
                f"Benchmark {bench_id.method} timed out after {config.timeout}s",
                is_critical=True,
                benchmark=bench_id,
            )
        )

    @staticmethod
    def _default_progress(progress: EngineProgress) -> None:
        """Default progress callback: log at debug level."""
        marker = "W" if progress.phase == "warmup" else "M"
        log.debug(
            "  %-30s %s%d/%d %8.3fs [%s]",
            progress.benchmark,
            marker,
            progress.iteration,
            progress.total_iterations,
            progress.wall_time_s,
            progress.status,
        )


def _status(timed: TimedResult) -> str:
    if timed.timed_out:
        return "timeout"
    if timed.exit_code == 0:
        return "ok"
    if timed.exit_code < 0:
        return "error"
    return "fail"
