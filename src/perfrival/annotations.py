"""Persisting adjusted competition limits.

Limits found by the annotation pass are written to a standalone YAML
file (``annotations.yaml`` by default) instead of the benchmark sources::

    heap_sort:
      min: 1.52
      max: 2.97
    merge_sort:
      min: 0.88
      max: 1.14

The same file is read back by :func:`load_annotations` on the next
session, so stored limits take precedence over the profile's own.
"""

from __future__ import annotations

import math
from pathlib import Path
from typing import Any, Protocol, Sequence

import yaml

from perfrival.config import CompetitionConfig, LimitSpec
from perfrival.limits import CompetitionTarget
from perfrival.logging import get_logger

log = get_logger("annotations")

DEFAULT_ANNOTATIONS_FILE = "annotations.yaml"


class AnnotationWriter(Protocol):
    """Receives the targets whose limits changed in the current run."""

    def write(
        self, targets: Sequence[CompetitionTarget], config: CompetitionConfig
    ) -> list[CompetitionTarget]:
        """Persist *targets* and return the ones actually written."""
        ...


def _floor2(value: float) -> float:
    return math.floor(value * 100) / 100


def _ceil2(value: float) -> float:
    return math.ceil(value * 100) / 100


def target_to_annotation(target: CompetitionTarget) -> dict[str, float]:
    """Stored form of a target.  Bounds are rounded outward to two digits."""
    data: dict[str, float] = {}
    if target.limit.ignore_min:
        data["min"] = -1
    elif target.min > 0:
        data["min"] = _floor2(target.min)
    if target.limit.ignore_max:
        data["max"] = -1
    elif target.max > 0:
        data["max"] = _ceil2(target.max)
    return data


# ---------------------------------------------------------------------------
# Annotation file I/O
# ---------------------------------------------------------------------------


def load_annotations(path: Path) -> dict[str, LimitSpec]:
    """Read limits stored by :class:`YamlAnnotationWriter`.

    A missing or empty file yields no limits.

    Raises:
        ValueError: If the file is not a mapping of name -> {min, max}.
    """
    if not path.exists():
        return {}
    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"Annotations file {path} must be a YAML mapping")

    result: dict[str, LimitSpec] = {}
    for name, entry in data.items():
        if not isinstance(entry, dict):
            raise ValueError(f"Annotation for '{name}' in {path} must be a mapping")
        result[str(name)] = LimitSpec(
            min=None if entry.get("min") is None else float(entry["min"]),
            max=None if entry.get("max") is None else float(entry["max"]),
            unit=entry.get("unit", "ratio"),
        )
    return result


def save_annotations(path: Path, targets: Sequence[CompetitionTarget]) -> None:
    """Merge *targets* into the annotation file at *path*."""
    data: dict[str, Any] = {}
    if path.exists():
        existing = yaml.safe_load(path.read_text(encoding="utf-8"))
        if isinstance(existing, dict):
            data.update(existing)

    for target in targets:
        data[str(target.target)] = target_to_annotation(target)

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        yaml.dump(data, default_flow_style=False, sort_keys=True, allow_unicode=True),
        encoding="utf-8",
    )
    log.debug("Saved %d annotation(s) to %s", len(targets), path)


# ---------------------------------------------------------------------------
# Writers
# ---------------------------------------------------------------------------


class YamlAnnotationWriter:
    """Writes adjusted limits into a YAML annotations file.

    The file defaults to ``config.annotations_path`` or, when that is not
    set, ``annotations.yaml`` inside the competition output directory.
    """

    def __init__(self, path: Path | None = None) -> None:
        self.path = path

    def resolve_path(self, config: CompetitionConfig) -> Path:
        if self.path is not None:
            return self.path
        if config.annotations_path is not None:
            return config.annotations_path
        return config.output_dir / DEFAULT_ANNOTATIONS_FILE

    def write(
        self, targets: Sequence[CompetitionTarget], config: CompetitionConfig
    ) -> list[CompetitionTarget]:
        if not targets:
            return []
        path = self.resolve_path(config)
        save_annotations(path, targets)
        log.info("Updated %d annotation(s) in %s", len(targets), path)
        return list(targets)


class LoggingAnnotationWriter:
    """Only logs the new limits.  Nothing is persisted."""

    def write(
        self, targets: Sequence[CompetitionTarget], config: CompetitionConfig
    ) -> list[CompetitionTarget]:
        for target in targets:
            log.info("New limits for %s: %s", target.target, target.limit)
        return []
