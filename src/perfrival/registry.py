"""Config-scoped store for state shared across competition runs.

A :class:`RunRegistry` is attached to a competition configuration and
handed to every component that needs state surviving between reruns:
the :class:`~perfrival.state.CompetitionState`, the competition targets
and the accumulated adjusted targets.  Values are created lazily on
first access through the factory of their :class:`StateKey`.

Creation is atomic: when several threads ask for the same key at once,
exactly one factory call wins and everyone observes that instance.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Any, Callable, Generic, TypeVar

from perfrival.limits import CompetitionTarget, CompetitionTargets
from perfrival.state import CompetitionState

T = TypeVar("T")


@dataclass(frozen=True, eq=False)
class StateKey(Generic[T]):
    """Opaque key for one kind of shared state.

    Keys compare by identity, so two keys with the same name are still
    distinct slots.
    """

    name: str
    factory: Callable[[], T]

    def __repr__(self) -> str:
        return f"StateKey({self.name!r})"


class RunRegistry:
    """Keyed, lazily populated state store with atomic get-or-create."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._values: dict[StateKey[Any], Any] = {}

    def get(self, key: StateKey[T]) -> T:
        """Return the value for *key*, creating it on first access."""
        # Fast path without the lock: dict reads are atomic.
        try:
            return self._values[key]  # type: ignore[no-any-return]
        except KeyError:
            pass

        with self._lock:
            if key not in self._values:
                self._values[key] = key.factory()
            return self._values[key]  # type: ignore[no-any-return]

    def peek(self, key: StateKey[T]) -> T | None:
        """Return the value for *key* without creating it."""
        return self._values.get(key)

    def discard(self, key: StateKey[Any]) -> None:
        with self._lock:
            self._values.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._values.clear()

    def __contains__(self, key: object) -> bool:
        return key in self._values

    def __len__(self) -> int:
        return len(self._values)


# ---------------------------------------------------------------------------
# Well-known slots
# ---------------------------------------------------------------------------

COMPETITION_STATE: StateKey[CompetitionState] = StateKey("competition_state", CompetitionState)

COMPETITION_TARGETS: StateKey[CompetitionTargets] = StateKey(
    "competition_targets", CompetitionTargets
)

# Targets changed by annotation over the whole session, in order of first change.
ADJUSTED_TARGETS: StateKey[dict[Any, CompetitionTarget]] = StateKey("adjusted_targets", dict)
