"""Benchmark run summaries.

The execution engine hands one :class:`Summary` back per run::

    Summary
      -> reports: list[BenchmarkReport]
        -> benchmark: BenchmarkId (method, job, params)
        -> samples: list[float]      (nanoseconds per operation)
        -> gc_stats: dict[str, float]
      -> validation_errors: list[SummaryValidationError]

Benchmarks sharing the same job and parameters form a *condition
group*; ratios are always taken against the baseline of the same group.

Files produced by :func:`save_summary`::

    summary.json  -- one Summary
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from perfrival.stats import DescriptiveStats, describe

log = logging.getLogger("perfrival")


# ---------------------------------------------------------------------------
# Benchmark identity
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BenchmarkId:
    """Identity of one benchmark case: a method run under a job with parameters."""

    method: str
    job: str = "default"
    params: tuple[tuple[str, str], ...] = ()

    @classmethod
    def create(
        cls, method: str, job: str = "default", params: dict[str, Any] | None = None
    ) -> BenchmarkId:
        items = tuple(sorted((str(k), str(v)) for k, v in (params or {}).items()))
        return cls(method=method, job=job, params=items)

    @property
    def condition(self) -> tuple[str, tuple[tuple[str, str], ...]]:
        """Key shared by benchmarks run under identical job and parameters."""
        return (self.job, self.params)

    @property
    def short_info(self) -> str:
        text = self.method
        if self.job != "default":
            text += f" [{self.job}]"
        if self.params:
            text += " (" + ", ".join(f"{k}={v}" for k, v in self.params) + ")"
        return text

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"method": self.method, "job": self.job}
        if self.params:
            d["params"] = dict(self.params)
        return d

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BenchmarkId:
        return cls.create(
            data["method"],
            job=data.get("job", "default"),
            params=data.get("params"),
        )

    def __str__(self) -> str:
        return self.short_info


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------


@dataclass
class BenchmarkReport:
    """Measurements of one benchmark case in one run."""

    benchmark: BenchmarkId
    samples: list[float] = field(default_factory=list)  # ns per operation
    baseline: bool = False
    gc_stats: dict[str, float] = field(default_factory=dict)

    @property
    def executed(self) -> bool:
        return bool(self.samples)

    @property
    def stats(self) -> DescriptiveStats:
        return describe(self.samples)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dict."""
        d: dict[str, Any] = {
            "benchmark": self.benchmark.to_dict(),
            "samples": [round(s, 3) for s in self.samples],
            "baseline": self.baseline,
        }
        if self.gc_stats:
            d["gc_stats"] = self.gc_stats
        return d

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BenchmarkReport:
        return cls(
            benchmark=BenchmarkId.from_dict(data["benchmark"]),
            samples=[float(s) for s in data.get("samples", [])],
            baseline=data.get("baseline", False),
            gc_stats=data.get("gc_stats", {}),
        )


@dataclass
class SummaryValidationError:
    """A problem the engine found while validating or executing the run."""

    message: str
    is_critical: bool = False
    benchmark: BenchmarkId | None = None

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"message": self.message, "is_critical": self.is_critical}
        if self.benchmark is not None:
            d["benchmark"] = self.benchmark.to_dict()
        return d

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SummaryValidationError:
        bench = data.get("benchmark")
        return cls(
            message=data["message"],
            is_critical=data.get("is_critical", False),
            benchmark=BenchmarkId.from_dict(bench) if bench else None,
        )


# ---------------------------------------------------------------------------
# Summary
# ---------------------------------------------------------------------------


@dataclass
class Summary:
    """Everything one run produced."""

    title: str = ""
    reports: list[BenchmarkReport] = field(default_factory=list)
    validation_errors: list[SummaryValidationError] = field(default_factory=list)

    @property
    def benchmarks(self) -> list[BenchmarkId]:
        return [r.benchmark for r in self.reports]

    @property
    def has_critical_validation_errors(self) -> bool:
        return any(e.is_critical for e in self.validation_errors)

    def report_for(self, benchmark: BenchmarkId) -> BenchmarkReport | None:
        for report in self.reports:
            if report.benchmark == benchmark:
                return report
        return None

    def same_condition_groups(self) -> list[list[BenchmarkReport]]:
        """Reports grouped by identical job and parameters, in first-seen order."""
        groups: dict[Any, list[BenchmarkReport]] = {}
        for report in self.reports:
            groups.setdefault(report.benchmark.condition, []).append(report)
        return list(groups.values())

    def baseline_for(self, benchmark: BenchmarkId) -> BenchmarkReport | None:
        """The baseline report of the condition group *benchmark* belongs to."""
        for report in self.reports:
            if report.baseline and report.benchmark.condition == benchmark.condition:
                return report
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "reports": [r.to_dict() for r in self.reports],
            "validation_errors": [e.to_dict() for e in self.validation_errors],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Summary:
        return cls(
            title=data.get("title", ""),
            reports=[BenchmarkReport.from_dict(r) for r in data.get("reports", [])],
            validation_errors=[
                SummaryValidationError.from_dict(e) for e in data.get("validation_errors", [])
            ],
        )


# ---------------------------------------------------------------------------
# I/O functions
# ---------------------------------------------------------------------------


def save_summary(output_dir: Path, summary: Summary) -> Path:
    """Write ``output_dir/summary.json`` and return its path."""
    output_dir.mkdir(parents=True, exist_ok=True)
    path = output_dir / "summary.json"
    path.write_text(json.dumps(summary.to_dict(), indent=2) + "\n")
    log.info("Wrote %s", path)
    return path


def load_summary(path: Path) -> Summary:
    """Load a summary written by :func:`save_summary`.

    Raises:
        FileNotFoundError: If *path* does not exist.
    """
    if not path.exists():
        raise FileNotFoundError(f"Summary not found: {path}")
    return Summary.from_dict(json.loads(path.read_text()))
