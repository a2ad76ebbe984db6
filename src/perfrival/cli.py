"""Command-line interface for perfrival.

Subcommands:
    perfrival run     Run a competition from a YAML profile
    perfrival check   Validate a competition profile
"""

from __future__ import annotations

import logging
from pathlib import Path

import click

from perfrival import __version__
from perfrival.logging import setup_logging
from perfrival.messages import MessageSeverity

log = logging.getLogger("perfrival")


@click.group()
@click.version_option(version=__version__)
def main() -> None:
    """perfrival: adaptive benchmark competitions with self-adjusting limits."""


# ---------------------------------------------------------------------------
# run
# ---------------------------------------------------------------------------


@main.command()
@click.option(
    "--profile",
    "profile_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    required=True,
    help="YAML profile defining the competition.",
)
@click.option("--max-runs", type=int, default=None, help="Maximum runs allowed (default: 10).")
@click.option(
    "--annotate/--no-annotate",
    default=None,
    help="Widen limits to the observed ratios and store them.",
)
@click.option(
    "--annotations",
    "annotations_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="YAML file the adjusted limits are read from and written to.",
)
@click.option("--iterations", type=int, default=None, help="Measured iterations per run.")
@click.option("--warmup", type=int, default=None, help="Warm-up iterations per run.")
@click.option("--timeout", type=int, default=None, help="Per-iteration timeout in seconds.")
@click.option(
    "--results-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Directory for run summaries (default: ./results).",
)
@click.option(
    "--export",
    "export_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Write the session report as JSON to this path.",
)
@click.option("-v", "--verbose", is_flag=True, default=False, help="Enable debug output.")
@click.option("-q", "--quiet", is_flag=True, default=False, help="Only show warnings and errors.")
@click.option(
    "--log-file",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Also write a debug log to this file.",
)
def run(  # noqa: PLR0913
    profile_path: Path,
    max_runs: int | None,
    annotate: bool | None,
    annotations_path: Path | None,
    iterations: int | None,
    warmup: int | None,
    timeout: int | None,
    results_dir: Path | None,
    export_path: Path | None,
    verbose: bool,
    quiet: bool,
    log_file: Path | None,
) -> None:
    """Run a competition until its limits hold or the run limit is reached.

    Exits with status 1 when the session ends with a TestError or worse.

    \b
    Examples:
        perfrival run --profile sorting.yaml
        perfrival run --profile sorting.yaml --annotate --max-runs 5
    """
    from perfrival.config import config_from_profile, load_profile, validate_config
    from perfrival.display import format_state
    from perfrival.engine import CommandEngine
    from perfrival.export import export_json
    from perfrival.orchestrator import adjusted_targets, run_competition
    from perfrival.registry import COMPETITION_TARGETS
    from perfrival.results import save_summary

    setup_logging(verbose=verbose, quiet=quiet, log_file=log_file)

    cli_overrides: dict[str, object] = {
        "max_runs_allowed": max_runs,
        "annotate": annotate,
        "annotations_path": annotations_path,
        "iterations": iterations,
        "warmup": warmup,
        "timeout": timeout,
        "results_dir": results_dir,
    }
    try:
        config = config_from_profile(load_profile(profile_path), cli_overrides=cli_overrides)
    except (OSError, ValueError) as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(1) from exc

    errors = validate_config(config)
    for w in (e for e in errors if e.severity == "warning"):
        log.warning("Config warning: %s: %s", w.field, w.message)
    fatal = [e for e in errors if e.severity == "error"]
    if fatal:
        click.echo("Invalid competition configuration:", err=True)
        for e in fatal:
            click.echo(f"  {e.field}: {e.message}", err=True)
        raise SystemExit(1)

    engine = CommandEngine(cwd=profile_path.parent)
    try:
        state = run_competition(config.name or config.competition_id, config, engine)
    except KeyboardInterrupt:
        click.echo("\nCompetition interrupted.", err=True)
        raise SystemExit(130)  # noqa: B904

    targets = (
        list(config.registry.get(COMPETITION_TARGETS)) if config.registry is not None else []
    )

    click.echo()
    click.echo(format_state(state, targets=targets, calculator=config.metric_calculator))

    if state.last_run_summary is not None:
        saved = save_summary(config.output_dir, state.last_run_summary)
        click.echo(f"\nLast run summary saved to: {saved}")

    if export_path is not None:
        export_json(
            export_path,
            state,
            competition_id=config.competition_id,
            adjusted_targets=adjusted_targets(config),
        )
        click.echo(f"Session report written to: {export_path}")

    highest = state.highest_message_severity
    if highest is not None and highest >= MessageSeverity.TEST_ERROR:
        raise SystemExit(1)


# ---------------------------------------------------------------------------
# check
# ---------------------------------------------------------------------------


@main.command()
@click.argument("profile_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def check(profile_path: Path) -> None:
    """Validate a competition profile without running it."""
    from perfrival.config import config_from_profile, load_profile, validate_config

    try:
        config = config_from_profile(load_profile(profile_path))
    except ValueError as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(1) from exc

    errors = validate_config(config)
    for e in errors:
        marker = "WARNING" if e.severity == "warning" else "ERROR"
        click.echo(f"  {marker} {e.field}: {e.message}")

    if any(e.severity == "error" for e in errors):
        raise SystemExit(1)

    click.echo(
        f"OK: {len(config.benchmarks)} benchmark(s), "
        f"{len(config.limits)} limit(s), calculator {config.calculator}."
    )
