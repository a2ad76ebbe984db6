"""Competition configuration and profile loading.

Handles:
- The resolved :class:`CompetitionConfig` for one competition session.
- Explicit per-target limit records (:class:`LimitSpec`).
- Loading competition profiles from YAML files and merging CLI overrides.
- Validating the final configuration before the first run.
"""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from perfrival.limits import IGNORE_VALUE, CompetitionLimit
from perfrival.metrics import SINGLE_VALUE, MetricCalculator, calculator_names, get_calculator
from perfrival.registry import RunRegistry

log = logging.getLogger("perfrival")


# ---------------------------------------------------------------------------
# Definitions
# ---------------------------------------------------------------------------


@dataclass
class LimitSpec:
    """Declared limit of one competition target.

    A missing bound is ignored when the other one is set; when both are
    missing the limit is empty and will be filled by annotation.
    """

    min: float | None = None
    max: float | None = None
    unit: str = "ratio"

    def to_limit(self) -> CompetitionLimit:
        if self.min is None and self.max is None:
            return CompetitionLimit.EMPTY.copy()
        return CompetitionLimit(
            IGNORE_VALUE if self.min is None else self.min,
            IGNORE_VALUE if self.max is None else self.max,
        )

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {}
        if self.min is not None:
            d["min"] = self.min
        if self.max is not None:
            d["max"] = self.max
        if self.unit != "ratio":
            d["unit"] = self.unit
        return d


@dataclass
class BenchmarkDef:
    """A command benchmark for :class:`perfrival.engine.CommandEngine`."""

    name: str
    command: str
    baseline: bool = False
    description: str = ""
    operations: int = 1  # operations per invocation
    env: dict[str, str] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# CompetitionConfig
# ---------------------------------------------------------------------------


@dataclass
class CompetitionConfig:
    """Resolved configuration for a competition session."""

    # Identity
    competition_id: str = ""  # Auto-generated if empty
    name: str = ""
    description: str = ""

    # Competition members and their limits
    benchmarks: dict[str, BenchmarkDef] = field(default_factory=dict)
    limits: dict[str, LimitSpec] = field(default_factory=dict)

    # Rerun control
    max_runs_allowed: int = 10
    max_reruns_if_validation_failed: int = 3

    # Analysis
    calculator: str = "log_normal"
    annotate: bool = False
    additional_runs_on_annotate: int = 2
    loose_by_percent: int = 3
    allow_slow_benchmarks: bool = False
    ignore_existing_limits: bool = False

    # Command engine iteration control
    iterations: int = 10
    warmup: int = 1
    timeout: int = 600

    # Paths
    results_dir: Path = field(default_factory=lambda: Path("results"))
    annotations_path: Path | None = None

    # Shared state and pluggable passes
    registry: RunRegistry | None = field(default_factory=RunRegistry, repr=False)
    analysers: list[Any] = field(default_factory=list, repr=False)
    annotation_writer: Any = field(default=None, repr=False)

    def __post_init__(self) -> None:
        if not self.competition_id:
            self.competition_id = f"competition_{time.strftime('%Y%m%d_%H%M%S')}"

    @property
    def metric_calculator(self) -> MetricCalculator:
        return get_calculator(self.calculator)

    @property
    def baseline_names(self) -> list[str]:
        return [name for name, b in self.benchmarks.items() if b.baseline]

    @property
    def output_dir(self) -> Path:
        return self.results_dir / self.competition_id


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


@dataclass
class ValidationError:
    """A single configuration validation error."""

    field: str
    message: str
    severity: str = "error"  # "error" or "warning"


def validate_config(config: CompetitionConfig) -> list[ValidationError]:
    """Validate a competition configuration.

    Returns a list of validation errors.  Empty list means valid.
    """
    errors: list[ValidationError] = []

    if config.registry is None:
        errors.append(
            ValidationError(
                field="registry",
                message="The competition config should include a run registry.",
            )
        )

    if config.max_runs_allowed < 1:
        errors.append(
            ValidationError(
                field="max_runs_allowed",
                message=f"At least one run must be allowed (got {config.max_runs_allowed}).",
            )
        )

    if config.max_reruns_if_validation_failed < 0:
        errors.append(
            ValidationError(
                field="max_reruns_if_validation_failed",
                message=(
                    "Reruns on failed validation cannot be negative "
                    f"(got {config.max_reruns_if_validation_failed})."
                ),
            )
        )

    calculator = config.calculator.strip().lower().replace("-", "_")
    if calculator not in calculator_names():
        errors.append(
            ValidationError(
                field="calculator",
                message=(
                    f"Unknown metric calculator '{config.calculator}'. "
                    f"Valid names: {', '.join(calculator_names())}."
                ),
            )
        )
    elif calculator == SINGLE_VALUE.name and config.iterations != 1:
        errors.append(
            ValidationError(
                field="calculator",
                message=(
                    f"The {SINGLE_VALUE.name} calculator needs exactly one measured "
                    f"iteration per benchmark (got iterations={config.iterations})."
                ),
            )
        )

    if not 0 <= config.loose_by_percent <= 99:
        errors.append(
            ValidationError(
                field="loose_by_percent",
                message=f"Loose percent must be in [0, 99] (got {config.loose_by_percent}).",
            )
        )

    if not 0 <= config.additional_runs_on_annotate <= 1000:
        errors.append(
            ValidationError(
                field="additional_runs_on_annotate",
                message=(
                    "Additional runs on annotate must be in [0, 1000] "
                    f"(got {config.additional_runs_on_annotate})."
                ),
            )
        )

    if config.iterations < 1:
        errors.append(
            ValidationError(
                field="iterations",
                message=f"Need at least 1 measured iteration (got {config.iterations}).",
            )
        )

    if config.warmup < 0:
        errors.append(
            ValidationError(
                field="warmup",
                message=f"Warmup iterations cannot be negative (got {config.warmup}).",
            )
        )

    if config.timeout <= 0:
        errors.append(
            ValidationError(
                field="timeout",
                message=f"Timeout must be positive (got {config.timeout}).",
            )
        )

    if len(config.baseline_names) > 1:
        errors.append(
            ValidationError(
                field="benchmarks",
                message=(
                    "Only one baseline benchmark is allowed, got: "
                    + ", ".join(config.baseline_names)
                ),
            )
        )
    elif config.benchmarks and not config.baseline_names:
        errors.append(
            ValidationError(
                field="benchmarks",
                message="The competition has no baseline benchmark.",
            )
        )

    for name, bench in config.benchmarks.items():
        if not bench.command.strip():
            errors.append(
                ValidationError(
                    field=f"benchmarks.{name}.command",
                    message=f"Benchmark '{name}' has no command.",
                )
            )
        if bench.operations < 1:
            errors.append(
                ValidationError(
                    field=f"benchmarks.{name}.operations",
                    message=(
                        f"Benchmark '{name}' must run at least one operation "
                        f"(got {bench.operations})."
                    ),
                )
            )

    for name, spec in config.limits.items():
        try:
            spec.to_limit()
        except ValueError as exc:
            errors.append(ValidationError(field=f"limits.{name}", message=str(exc)))
        if config.benchmarks and name not in config.benchmarks:
            errors.append(
                ValidationError(
                    field=f"limits.{name}",
                    message=f"Limit declared for unknown benchmark '{name}'.",
                    severity="warning",
                )
            )
        elif name in config.baseline_names:
            errors.append(
                ValidationError(
                    field=f"limits.{name}",
                    message=f"Limit declared for baseline benchmark '{name}' is not checked.",
                    severity="warning",
                )
            )

    return errors


# ---------------------------------------------------------------------------
# YAML profile loading
# ---------------------------------------------------------------------------


def load_profile(profile_path: Path) -> dict[str, Any]:
    """Load a competition profile from a YAML file.

    Profile format::

        name: "sorting"
        max_runs: 5
        calculator: log_normal
        annotate: true
        iterations: 10
        warmup: 1

        benchmarks:
          builtin_sorted:
            command: "python -c 'sorted(range(100000))'"
            baseline: true
          heap_sort:
            command: "python heap_sort.py"
            min: 1.5
            max: 3.0

    Returns:
        The parsed YAML as a dict.
    """
    try:
        import yaml
    except ImportError as exc:
        raise ImportError(
            "PyYAML is required for loading competition profiles. "
            "Install it with: pip install pyyaml"
        ) from exc

    if not profile_path.exists():
        raise FileNotFoundError(f"Profile not found: {profile_path}")

    data = yaml.safe_load(profile_path.read_text())

    if not isinstance(data, dict):
        raise ValueError(f"Profile must be a YAML mapping, got {type(data).__name__}")

    return data


def _optional_float(value: Any, where: str) -> float | None:
    if value is None:
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        raise ValueError(f"{where} must be a number, got {value!r}") from None
    if math.isnan(result):
        raise ValueError(f"{where} must be a number, got NaN")
    return result


def config_from_profile(
    profile_data: dict[str, Any],
    *,
    cli_overrides: dict[str, Any] | None = None,
) -> CompetitionConfig:
    """Build a CompetitionConfig from a parsed YAML profile.

    CLI overrides take precedence over profile values.  Keys match
    CompetitionConfig field names (``max_runs`` is accepted as an alias
    of ``max_runs_allowed``).
    """
    cli = {k: v for k, v in (cli_overrides or {}).items() if v is not None}
    merged = dict(profile_data)
    if "max_runs" in merged:
        merged.setdefault("max_runs_allowed", merged.pop("max_runs"))
    if "max_runs" in cli:
        cli.setdefault("max_runs_allowed", cli.pop("max_runs"))
    merged.update({k: v for k, v in cli.items() if k != "benchmarks"})

    config = CompetitionConfig(
        competition_id=merged.get("competition_id", ""),
        name=merged.get("name", ""),
        description=merged.get("description", ""),
        max_runs_allowed=int(merged.get("max_runs_allowed", 10)),
        max_reruns_if_validation_failed=int(merged.get("max_reruns_if_validation_failed", 3)),
        calculator=merged.get("calculator", "log_normal"),
        annotate=bool(merged.get("annotate", False)),
        additional_runs_on_annotate=int(merged.get("additional_runs_on_annotate", 2)),
        loose_by_percent=int(merged.get("loose_by_percent", 3)),
        allow_slow_benchmarks=bool(merged.get("allow_slow_benchmarks", False)),
        ignore_existing_limits=bool(merged.get("ignore_existing_limits", False)),
        iterations=int(merged.get("iterations", 10)),
        warmup=int(merged.get("warmup", 1)),
        timeout=int(merged.get("timeout", 600)),
    )

    if merged.get("results_dir"):
        config.results_dir = Path(merged["results_dir"])
    if merged.get("annotations_path"):
        config.annotations_path = Path(merged["annotations_path"])

    benchmarks_data = profile_data.get("benchmarks", {})
    if not isinstance(benchmarks_data, dict):
        raise ValueError("Profile 'benchmarks' must be a mapping of name -> definition")

    for name, bench_data in benchmarks_data.items():
        if isinstance(bench_data, str):
            bench_data = {"command": bench_data}
        if not isinstance(bench_data, dict):
            raise ValueError(
                f"Benchmark '{name}' must be a mapping or a command string, "
                f"got {type(bench_data).__name__}"
            )

        config.benchmarks[name] = BenchmarkDef(
            name=name,
            command=bench_data.get("command", ""),
            baseline=bool(bench_data.get("baseline", False)),
            description=bench_data.get("description", ""),
            operations=int(bench_data.get("operations", 1)),
            env={str(k): str(v) for k, v in bench_data.get("env", {}).items()},
        )

        min_value = _optional_float(bench_data.get("min"), f"Benchmark '{name}' min")
        max_value = _optional_float(bench_data.get("max"), f"Benchmark '{name}' max")
        if min_value is not None or max_value is not None or "unit" in bench_data:
            config.limits[name] = LimitSpec(
                min=min_value,
                max=max_value,
                unit=bench_data.get("unit", "ratio"),
            )

    from perfrival.analysis import default_analysers

    config.analysers = default_analysers(config)
    return config
