"""Metric calculation strategies.

A metric calculator turns raw sample arrays (timings, allocation
counts...) into a mean, a variance and value ranges, either absolute or
relative to a baseline sample.  Two strategies exist:

- :class:`SingleValueCalculator` for metrics that only ever produce one
  value per benchmark (e.g. total bytes allocated).
- :class:`LogNormalCalculator` for timings, which are assumed to be
  log-normally distributed.  Means are geometric means; relative values
  are ratios of geometric means.

"No data" (an empty or missing array) is a normal outcome: every
``try_get_*`` method returns ``None`` or :data:`MetricRange.EMPTY`
instead of raising.

Reference for the ratio of two log-normal variables:
    https://stats.stackexchange.com/questions/21735
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, Sequence

from perfrival.stats import sample_mean_and_variance

# Samples may be missing entirely.
Samples = Optional[Sequence[float]]

# Accuracy envelope for absolute limits: [mean * 0.99, mean * 1.01].
ABSOLUTE_ACCURACY = 0.01

# Accuracy envelope for relative limits: both the values and the baseline
# carry +-1%, compounded to [ratio * 0.98, ratio * 1.02].
RELATIVE_ACCURACY = 0.02


class MetricCalculatorError(ValueError):
    """Raised when a calculator receives input it cannot handle by contract."""


# ---------------------------------------------------------------------------
# MetricRange
# ---------------------------------------------------------------------------


@dataclass(frozen=True, eq=False)
class MetricRange:
    """Closed interval of metric values.  NaN bounds mean "empty"."""

    min: float
    max: float

    @classmethod
    def create(cls, min_value: float | None, max_value: float | None) -> MetricRange:
        """Create a range, swapping reversed bounds.

        ``None`` for either bound produces an empty range.
        """
        if min_value is None or max_value is None:
            return cls.EMPTY
        if min_value > max_value:
            min_value, max_value = max_value, min_value
        return cls(float(min_value), float(max_value))

    @property
    def is_empty(self) -> bool:
        return math.isnan(self.min) or math.isnan(self.max)

    def contains(self, other: MetricRange) -> bool:
        """True if *other* lies within this range.  Empty ranges are contained anywhere."""
        if other.is_empty:
            return True
        if self.is_empty:
            return False
        return self.min <= other.min and other.max <= self.max

    def union(self, other: MetricRange) -> MetricRange:
        """Smallest range containing both ranges."""
        if other.is_empty:
            return self
        if self.is_empty:
            return other
        if self.contains(other):
            return self
        return MetricRange(min(self.min, other.min), max(self.max, other.max))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, MetricRange):
            return NotImplemented
        if self.is_empty or other.is_empty:
            return self.is_empty and other.is_empty
        return self.min == other.min and self.max == other.max

    def __hash__(self) -> int:
        if self.is_empty:
            return hash(("MetricRange", "empty"))
        return hash(("MetricRange", self.min, self.max))

    def __str__(self) -> str:
        if self.is_empty:
            return "[empty]"
        return f"[{self.min:.2f}..{self.max:.2f}]"


MetricRange.EMPTY = MetricRange(float("nan"), float("nan"))  # type: ignore[attr-defined]


# ---------------------------------------------------------------------------
# Calculator interface
# ---------------------------------------------------------------------------


class MetricCalculator(ABC):
    """Converts sample arrays into mean, variance and ranges."""

    name: str = ""

    @abstractmethod
    def try_get_mean_value(self, values: Samples) -> float | None:
        """Mean of *values*, or None if there are none."""

    @abstractmethod
    def try_get_relative_mean_value(
        self, values: Samples, baseline_values: Samples
    ) -> float | None:
        """Mean of *values* relative to the baseline, or None."""

    @abstractmethod
    def try_get_variance(self, values: Samples) -> float | None:
        """Variance estimate of *values*, or None."""

    @abstractmethod
    def try_get_relative_variance(
        self, values: Samples, baseline_values: Samples
    ) -> float | None:
        """Variance estimate of the ratio against the baseline, or None."""

    def try_get_actual_values(self, values: Samples) -> MetricRange:
        """Observed value as a degenerate ``[mean, mean]`` range."""
        result = self.try_get_mean_value(values)
        return MetricRange.EMPTY if result is None else MetricRange(result, result)

    def try_get_relative_actual_values(
        self, values: Samples, baseline_values: Samples
    ) -> MetricRange:
        """Observed ratio as a degenerate ``[ratio, ratio]`` range."""
        result = self.try_get_relative_mean_value(values, baseline_values)
        return MetricRange.EMPTY if result is None else MetricRange(result, result)

    @abstractmethod
    def try_get_limit_values(self, values: Samples) -> MetricRange:
        """Expected limits for *values*."""

    @abstractmethod
    def try_get_relative_limit_values(
        self, values: Samples, baseline_values: Samples
    ) -> MetricRange:
        """Expected limits for the ratio against the baseline."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


# ---------------------------------------------------------------------------
# Single value
# ---------------------------------------------------------------------------


class SingleValueCalculator(MetricCalculator):
    """Calculator for metrics that provide exactly one value per benchmark."""

    name = "single_value"

    @staticmethod
    def _single_value(values: Samples) -> float | None:
        if not values:
            return None
        if len(values) > 1:
            raise MetricCalculatorError(
                f"{SingleValueCalculator.__name__} should be used for single item "
                f"arrays only (got {len(values)} values)."
            )
        return float(values[0])

    def try_get_mean_value(self, values: Samples) -> float | None:
        return self._single_value(values)

    def try_get_relative_mean_value(
        self, values: Samples, baseline_values: Samples
    ) -> float | None:
        x = self._single_value(values)
        y = self._single_value(baseline_values)
        if x is None or y is None or y == 0:
            return None
        return x / y

    def try_get_variance(self, values: Samples) -> float | None:
        return None

    def try_get_relative_variance(
        self, values: Samples, baseline_values: Samples
    ) -> float | None:
        return None

    def try_get_limit_values(self, values: Samples) -> MetricRange:
        return self.try_get_actual_values(values)

    def try_get_relative_limit_values(
        self, values: Samples, baseline_values: Samples
    ) -> MetricRange:
        return self.try_get_relative_actual_values(values, baseline_values)


# ---------------------------------------------------------------------------
# Log-normal
# ---------------------------------------------------------------------------


def _to_log_values(values: Samples) -> list[float] | None:
    """Map samples into log space; non-positive samples become 0."""
    if not values:
        return None
    return [math.log(v) if v > 0 else 0.0 for v in values]


class LogNormalCalculator(MetricCalculator):
    """Calculator assuming log-normally distributed samples.

    Args:
        absolute_accuracy: Half-width of the absolute limit envelope as a
            fraction of the mean.
        relative_accuracy: Half-width of the relative limit envelope as a
            fraction of the ratio.
    """

    name = "log_normal"

    def __init__(
        self,
        absolute_accuracy: float = ABSOLUTE_ACCURACY,
        relative_accuracy: float = RELATIVE_ACCURACY,
    ) -> None:
        if not 0 <= absolute_accuracy < 1 or not 0 <= relative_accuracy < 1:
            raise ValueError("Accuracy envelopes must be in the [0, 1) range.")
        self.absolute_accuracy = absolute_accuracy
        self.relative_accuracy = relative_accuracy

    def try_get_mean_value(self, values: Samples) -> float | None:
        logs = _to_log_values(values)
        if logs is None:
            return None
        # mu = exp([ln a0 + ln a1 + ... + ln aN] / N)
        return math.exp(math.fsum(logs) / len(logs))

    def try_get_relative_mean_value(
        self, values: Samples, baseline_values: Samples
    ) -> float | None:
        logs = _to_log_values(values)
        baseline_logs = _to_log_values(baseline_values)
        if logs is None or baseline_logs is None:
            return None
        return math.exp(
            math.fsum(logs) / len(logs) - math.fsum(baseline_logs) / len(baseline_logs)
        )

    def try_get_variance(self, values: Samples) -> float | None:
        logs = _to_log_values(values)
        if logs is None:
            return None
        _, variance = sample_mean_and_variance(logs)
        return math.exp(math.sqrt(variance))

    def try_get_relative_variance(
        self, values: Samples, baseline_values: Samples
    ) -> float | None:
        logs = _to_log_values(values)
        baseline_logs = _to_log_values(baseline_values)
        if logs is None or baseline_logs is None:
            return None

        mean, variance = sample_mean_and_variance(logs)
        baseline_mean, baseline_variance = sample_mean_and_variance(baseline_logs)

        # Z = ln(X) - ln(Y); covariance is taken as 0 (independent runs).
        result_mean = mean - baseline_mean
        result_variance = variance + baseline_variance

        # Var(e^Z) = exp(2mu + 2sigma^2) - exp(2mu + sigma^2)
        return math.sqrt(
            math.exp(2 * result_mean + 2 * result_variance)
            - math.exp(2 * result_mean + result_variance)
        )

    def try_get_limit_values(self, values: Samples) -> MetricRange:
        result = self.try_get_mean_value(values)
        if result is None:
            return MetricRange.EMPTY
        return MetricRange.create(
            result * (1 - self.absolute_accuracy),
            result * (1 + self.absolute_accuracy),
        )

    def try_get_relative_limit_values(
        self, values: Samples, baseline_values: Samples
    ) -> MetricRange:
        result = self.try_get_relative_mean_value(values, baseline_values)
        if result is None:
            return MetricRange.EMPTY
        return MetricRange.create(
            result * (1 - self.relative_accuracy),
            result * (1 + self.relative_accuracy),
        )

    def __repr__(self) -> str:
        return (
            f"LogNormalCalculator(absolute_accuracy={self.absolute_accuracy}, "
            f"relative_accuracy={self.relative_accuracy})"
        )


# ---------------------------------------------------------------------------
# Lookup
# ---------------------------------------------------------------------------

SINGLE_VALUE = SingleValueCalculator()
LOG_NORMAL = LogNormalCalculator()

_CALCULATORS: dict[str, MetricCalculator] = {
    SINGLE_VALUE.name: SINGLE_VALUE,
    LOG_NORMAL.name: LOG_NORMAL,
}


def calculator_names() -> list[str]:
    """Names accepted by :func:`get_calculator`."""
    return sorted(_CALCULATORS)


def get_calculator(name: str) -> MetricCalculator:
    """Look up a calculator strategy by name.

    Raises:
        ValueError: If *name* is not a known strategy.
    """
    key = name.strip().lower().replace("-", "_")
    try:
        return _CALCULATORS[key]
    except KeyError:
        raise ValueError(
            f"Unknown metric calculator '{name}'. Valid names: {', '.join(calculator_names())}"
        ) from None
