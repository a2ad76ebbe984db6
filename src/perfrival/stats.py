"""Descriptive statistics for benchmark samples.

Pure Python summary statistics used for reports and for the timing
postconditions checked after each run.  The competition decisions
themselves go through :mod:`perfrival.metrics`.
"""

from __future__ import annotations

import math
import statistics
from dataclasses import dataclass
from typing import Sequence


@dataclass
class DescriptiveStats:
    """Summary statistics for a sample."""

    n: int
    mean: float
    median: float
    stdev: float
    min: float
    max: float
    p85: float  # 85th percentile
    p95: float  # 95th percentile
    cv: float  # coefficient of variation (stdev/mean)

    def to_dict(self) -> dict[str, float | int]:
        """Serialize to a dict with rounded values."""
        return {
            "n": self.n,
            "mean": round(self.mean, 6),
            "median": round(self.median, 6),
            "stdev": round(self.stdev, 6),
            "min": round(self.min, 6),
            "max": round(self.max, 6),
            "p85": round(self.p85, 6),
            "p95": round(self.p95, 6),
            "cv": round(self.cv, 6),
        }


def describe(values: Sequence[float]) -> DescriptiveStats:
    """Compute descriptive statistics for a sample.

    If the sample is empty every field is NaN.  With a single value,
    stdev and CV are 0.0.
    """
    if not values:
        nan = float("nan")
        return DescriptiveStats(
            n=0,
            mean=nan,
            median=nan,
            stdev=nan,
            min=nan,
            max=nan,
            p85=nan,
            p95=nan,
            cv=nan,
        )

    sorted_v = sorted(values)
    n = len(sorted_v)
    mean = statistics.mean(sorted_v)

    if n >= 2:
        stdev = statistics.stdev(sorted_v)
        cv = stdev / mean if mean != 0 else float("inf")
    else:
        stdev = 0.0
        cv = 0.0

    return DescriptiveStats(
        n=n,
        mean=mean,
        median=statistics.median(sorted_v),
        stdev=stdev,
        min=sorted_v[0],
        max=sorted_v[-1],
        p85=percentile(sorted_v, 0.85),
        p95=percentile(sorted_v, 0.95),
        cv=cv,
    )


def percentile(sorted_values: Sequence[float], p: float) -> float:
    """Compute the p-th percentile using linear interpolation.

    Equivalent to numpy.percentile with interpolation='linear'.
    Assumes sorted_values is already sorted in ascending order.
    """
    n = len(sorted_values)
    if n == 0:
        return float("nan")
    if n == 1:
        return sorted_values[0]

    k = (n - 1) * p
    f = math.floor(k)
    c = math.ceil(k)
    if f == c:
        return sorted_values[int(k)]
    d = k - f
    return sorted_values[int(f)] * (1 - d) + sorted_values[int(c)] * d


def sample_mean_and_variance(values: Sequence[float]) -> tuple[float, float]:
    """Mean and sample variance; variance is 0.0 for fewer than two values."""
    mean = statistics.mean(values)
    variance = statistics.variance(values, mean) if len(values) >= 2 else 0.0
    return mean, variance
