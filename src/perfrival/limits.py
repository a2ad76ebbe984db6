"""Competition limits and targets.

A competition limit is the accepted ``[min, max]`` band for the timing
ratio of a benchmark relative to the baseline.  Each bound is either a
positive number, the *empty* sentinel (unset, filled in during
annotation) or the *ignore* sentinel (no bound, never checked).

During an annotation pass limits only ever widen: a min bound can only
decrease, a max bound can only increase, and an ignored bound stays
ignored.  Only explicit replacement of the limit changes that.
"""

from __future__ import annotations

import copy
import math
from dataclasses import dataclass, field
from typing import Any, Hashable, Iterable, Iterator

from perfrival.metrics import MetricRange

# Unset bound, to be filled by annotation.
EMPTY_VALUE = 0.0

# Ignored bound.  Any negative input is normalised to this value.
IGNORE_VALUE = -1.0

# Largest percent accepted by CompetitionTarget.loose_limits_and_mark_as_saved().
MAX_LOOSE_PERCENT = 99


def _is_invalid(value: float) -> bool:
    return math.isinf(value) or math.isnan(value)


def _is_ignored(value: float) -> bool:
    return value < EMPTY_VALUE


def _is_empty(value: float) -> bool:
    return value == EMPTY_VALUE


def _check_bound(value: float, name: str) -> float:
    if _is_invalid(value):
        raise ValueError(f"The {name} value ({value}) should be a finite number.")
    return IGNORE_VALUE if _is_ignored(value) else float(value)


def _format_bound(value: float) -> str:
    if _is_ignored(value):
        return "-1"
    return f"{value:.2f}"


def is_min_limit_ok(min_limit: float, value: float) -> bool:
    """Check *value* against a min bound.

    Missing, ignored or invalid values always pass; an empty bound never
    accepts a real value.
    """
    if _is_invalid(value) or _is_ignored(value) or _is_empty(value):
        return True
    if _is_ignored(min_limit):
        return True
    if _is_empty(min_limit):
        return False
    return value >= min_limit


def is_max_limit_ok(max_limit: float, value: float) -> bool:
    """Check *value* against a max bound.  Mirrors :func:`is_min_limit_ok`."""
    if _is_invalid(value) or _is_ignored(value) or _is_empty(value):
        return True
    if _is_ignored(max_limit):
        return True
    if _is_empty(max_limit):
        return False
    return value <= max_limit


# ---------------------------------------------------------------------------
# CompetitionLimit
# ---------------------------------------------------------------------------


class CompetitionLimit:
    """Accepted ratio band ``[min, max]`` for one benchmark.

    Raises:
        ValueError: If a bound is infinite or NaN, or if both bounds are
            real numbers and ``min > max``.
    """

    EMPTY: CompetitionLimit
    IGNORED: CompetitionLimit

    __slots__ = ("_min", "_max")

    def __init__(self, min_ratio: float = EMPTY_VALUE, max_ratio: float = EMPTY_VALUE) -> None:
        min_ratio = _check_bound(min_ratio, "min_ratio")
        max_ratio = _check_bound(max_ratio, "max_ratio")
        if not is_min_limit_ok(min_ratio, max_ratio) and not _is_empty(min_ratio):
            raise ValueError(
                f"Please check competition limits. The min_ratio ({min_ratio}) "
                f"should not be greater than the max_ratio ({max_ratio})."
            )
        self._min = min_ratio
        self._max = max_ratio

    @property
    def min(self) -> float:
        return self._min

    @property
    def max(self) -> float:
        return self._max

    @property
    def is_empty(self) -> bool:
        return _is_empty(self._min) and _is_empty(self._max)

    @property
    def ignore_min(self) -> bool:
        return _is_ignored(self._min)

    @property
    def ignore_max(self) -> bool:
        return _is_ignored(self._max)

    @property
    def ignore_all(self) -> bool:
        return self.ignore_min and self.ignore_max

    @property
    def min_text(self) -> str:
        return _format_bound(self._min)

    @property
    def max_text(self) -> str:
        return _format_bound(self._max)

    def union_with_min(self, new_min: float) -> bool:
        """Widen the min bound to *new_min*.  Returns True if it changed."""
        if self.ignore_min or _is_invalid(new_min) or new_min <= 0:
            return False
        if _is_empty(self._min) or new_min < self._min:
            self._min = float(new_min)
            return True
        return False

    def union_with_max(self, new_max: float) -> bool:
        """Widen the max bound to *new_max*.  Returns True if it changed."""
        if self.ignore_max or _is_invalid(new_max) or new_max <= 0:
            return False
        if _is_empty(self._max) or new_max > self._max:
            self._max = float(new_max)
            return True
        return False

    def check_limits_for(self, actual: MetricRange) -> bool:
        """True if the actual values fit into this limit.

        Bounds are compared against the actual range rounded to two
        digits, the precision limits are stored with.
        """
        if actual.is_empty:
            return True
        return is_min_limit_ok(self._min, round(actual.min, 2)) and is_max_limit_ok(
            self._max, round(actual.max, 2)
        )

    def to_range(self) -> MetricRange:
        """The limit as a metric range; ignored bounds become infinite."""
        if self.is_empty:
            return MetricRange.EMPTY
        low = -math.inf if self.ignore_min else self._min
        high = math.inf if self.ignore_max else self._max
        return MetricRange(low, high)

    def copy(self) -> CompetitionLimit:
        result = CompetitionLimit.__new__(CompetitionLimit)
        result._min = self._min
        result._max = self._max
        return result

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, CompetitionLimit):
            return NotImplemented
        return self._min == other._min and self._max == other._max

    def __hash__(self) -> int:
        return hash((self._min, self._max))

    def __repr__(self) -> str:
        return f"CompetitionLimit({self._min!r}, {self._max!r})"

    def __str__(self) -> str:
        return f"[{self.min_text}..{self.max_text}]"


CompetitionLimit.EMPTY = CompetitionLimit(EMPTY_VALUE, EMPTY_VALUE)
CompetitionLimit.IGNORED = CompetitionLimit(IGNORE_VALUE, IGNORE_VALUE)


# ---------------------------------------------------------------------------
# CompetitionTarget
# ---------------------------------------------------------------------------


@dataclass(eq=False)
class CompetitionTarget:
    """The limit of one benchmark method within a competition.

    Tracks which bounds were widened since the target was last saved, so
    the annotation writer only has to persist real changes.
    """

    target: Hashable
    limit: CompetitionLimit = field(default_factory=CompetitionLimit)
    uses_external_annotation: bool = False
    _changed: set[str] = field(default_factory=set, init=False, repr=False)
    _was_updated: bool = field(default=False, init=False, repr=False)

    def __post_init__(self) -> None:
        # Targets own their limit; the shared EMPTY/IGNORED constants must not be mutated.
        self.limit = self.limit.copy()

    @property
    def min(self) -> float:
        return self.limit.min

    @property
    def max(self) -> float:
        return self.limit.max

    @property
    def is_empty(self) -> bool:
        return self.limit.is_empty

    @property
    def has_unsaved_changes(self) -> bool:
        return bool(self._changed)

    @property
    def was_updated(self) -> bool:
        """True once any union widened this target, saved or not."""
        return self._was_updated

    def is_changed(self, bound: str) -> bool:
        """Whether the ``"min"`` or ``"max"`` bound has unsaved changes."""
        if bound not in ("min", "max"):
            raise ValueError(f"Unknown bound '{bound}', expected 'min' or 'max'.")
        return bound in self._changed

    def union_with_min(self, new_min: float) -> bool:
        if self.limit.union_with_min(new_min):
            self._changed.add("min")
            self._was_updated = True
            return True
        return False

    def union_with_max(self, new_max: float) -> bool:
        if self.limit.union_with_max(new_max):
            self._changed.add("max")
            self._was_updated = True
            return True
        return False

    def union_with(self, other: MetricRange | CompetitionLimit) -> bool:
        """Widen both bounds to cover *other*.  Returns True if anything changed."""
        if isinstance(other, CompetitionLimit):
            new_min, new_max = other.min, other.max
        else:
            if other.is_empty:
                return False
            new_min, new_max = other.min, other.max
            if new_min > new_max:
                new_min, new_max = new_max, new_min

        min_changed = self.union_with_min(new_min)
        max_changed = self.union_with_max(new_max)
        return min_changed or max_changed

    def loose_limits_and_mark_as_saved(self, percent: int) -> None:
        """Relax the changed bounds outward by *percent* and clear the change flags.

        Raises:
            ValueError: If *percent* is outside ``[0, 99]``.
        """
        if not 0 <= percent <= MAX_LOOSE_PERCENT:
            raise ValueError(
                f"percent should be in range [0, {MAX_LOOSE_PERCENT}] (got {percent})."
            )

        if "min" in self._changed:
            self.limit.union_with_min(self.limit.min * (100 - percent) / 100)
        if "max" in self._changed:
            self.limit.union_with_max(self.limit.max * (100 + percent) / 100)

        self._changed.clear()

    def clone(self) -> CompetitionTarget:
        return copy.deepcopy(self)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON/YAML-compatible dict."""
        return {
            "target": str(self.target),
            "min": self.limit.min,
            "max": self.limit.max,
            "uses_external_annotation": self.uses_external_annotation,
        }

    def __str__(self) -> str:
        return f"{self.target} {self.limit}"


# ---------------------------------------------------------------------------
# CompetitionTargets
# ---------------------------------------------------------------------------


class CompetitionTargets:
    """Competition targets keyed by benchmark method.

    The key set is fixed once :meth:`initialize` has run; adding a target
    afterwards is a programming error.
    """

    def __init__(self) -> None:
        self._targets: dict[Hashable, CompetitionTarget] = {}
        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    def add(self, target: CompetitionTarget) -> None:
        if self._initialized:
            raise RuntimeError(
                f"Cannot add target '{target.target}': competition targets are already initialized."
            )
        if target.target in self._targets:
            raise ValueError(f"Duplicate competition target '{target.target}'.")
        self._targets[target.target] = target

    def initialize(self, targets: Iterable[CompetitionTarget] = ()) -> None:
        """Add *targets* and freeze the key set."""
        for target in targets:
            self.add(target)
        self._initialized = True

    def get(self, key: Hashable) -> CompetitionTarget | None:
        return self._targets.get(key)

    def __getitem__(self, key: Hashable) -> CompetitionTarget:
        return self._targets[key]

    def __contains__(self, key: object) -> bool:
        return key in self._targets

    def __iter__(self) -> Iterator[CompetitionTarget]:
        return iter(self._targets.values())

    def __len__(self) -> int:
        return len(self._targets)

    def keys(self) -> list[Hashable]:
        return list(self._targets)
