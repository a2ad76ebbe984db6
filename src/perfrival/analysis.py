"""Per-run analysis passes.

Analysers run right after the execution engine returns a summary and
before the orchestrator decides whether another run is needed:

- :class:`CompetitionAnalyser` checks the summary, initialises the
  competition targets and validates each benchmark's ratio to the
  baseline against its limit.
- :class:`LimitAdjustmentAnalyser` additionally widens the targets to
  cover the observed ratios, hands the changed ones to an annotation
  writer and asks for confirmation reruns.

Analyser warnings are collected per run and only written into the
competition state when no rerun is pending, so the message log reports
the outcome of the final run.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from perfrival.annotations import AnnotationWriter, YamlAnnotationWriter, load_annotations
from perfrival.config import CompetitionConfig
from perfrival.limits import (
    CompetitionLimit,
    CompetitionTarget,
    CompetitionTargets,
    is_max_limit_ok,
    is_min_limit_ok,
)
from perfrival.messages import MessageSeverity, MessageSource
from perfrival.metrics import MetricRange
from perfrival.registry import ADJUSTED_TARGETS, COMPETITION_STATE, COMPETITION_TARGETS
from perfrival.results import BenchmarkId, BenchmarkReport, Summary
from perfrival.state import CompetitionState

log = logging.getLogger("perfrival")

# Per-operation timings outside this band cannot be trusted.
TOO_FAST_NS = 400
TOO_SLOW_NS = 500 * 1000 * 1000


@dataclass
class AnalyserWarning:
    """A finding of an analyser about one run."""

    severity: MessageSeverity
    message: str
    benchmark: BenchmarkId | None = None


def fill_analyser_messages(state: CompetitionState, warnings: list[AnalyserWarning]) -> None:
    """Write *warnings* into the state unless another run is already requested."""
    if not state.looks_like_last_run:
        return
    for warning in warnings:
        state.write_message(MessageSource.ANALYSER, warning.severity, warning.message)


def _method_names(reports: list[BenchmarkReport]) -> list[str]:
    return list(dict.fromkeys(r.benchmark.method for r in reports))


# ---------------------------------------------------------------------------
# Competition analyser
# ---------------------------------------------------------------------------


class CompetitionAnalyser:
    """Validates competition limits of every non-baseline benchmark."""

    name = "CompetitionAnalyser"

    def analyse(self, summary: Summary, config: CompetitionConfig) -> list[AnalyserWarning]:
        if config.registry is None:
            raise ValueError("The competition config should include a run registry.")

        state = config.registry.get(COMPETITION_STATE)
        targets = config.registry.get(COMPETITION_TARGETS)
        warnings: list[AnalyserWarning] = []

        self.validate_preconditions(summary, state)

        if not targets.initialized and not state.has_critical_errors_in_run:
            self.init_targets(summary, config, state, targets)

        if not state.has_critical_errors_in_run:
            self.validate_summary(summary, config, state, targets, warnings)
            self.validate_postconditions(summary, config, state, warnings)

        fill_analyser_messages(state, warnings)
        return warnings

    # -- Preconditions -------------------------------------------------------

    def validate_preconditions(self, summary: Summary, state: CompetitionState) -> None:
        if summary.has_critical_validation_errors:
            state.write_message(
                MessageSource.ANALYSER,
                MessageSeverity.EXECUTION_ERROR,
                "Summary has validation errors.",
            )

        missing = _method_names([r for r in summary.reports if not r.executed])
        if missing:
            state.write_message(
                MessageSource.ANALYSER,
                MessageSeverity.EXECUTION_ERROR,
                "No reports for benchmarks: " + ", ".join(missing),
            )

    # -- Targets -------------------------------------------------------------

    def init_targets(
        self,
        summary: Summary,
        config: CompetitionConfig,
        state: CompetitionState,
        targets: CompetitionTargets,
    ) -> None:
        """Create a target for each non-baseline method and freeze the set.

        Limits stored in the annotations file win over the profile's own.
        """
        if config.ignore_existing_limits:
            state.write_message(
                MessageSource.ANALYSER,
                MessageSeverity.INFORMATIONAL,
                "Existing benchmark limits are ignored due to ignore_existing_limits setting.",
            )

        stored = {}
        if config.annotations_path is not None:
            stored = load_annotations(config.annotations_path)

        has_baseline = any(r.baseline for r in summary.reports)
        new_targets: list[CompetitionTarget] = []
        for method in _method_names([r for r in summary.reports if not r.baseline]):
            if config.ignore_existing_limits:
                target = CompetitionTarget(method, CompetitionLimit.EMPTY)
            elif method in stored:
                target = CompetitionTarget(
                    method, stored[method].to_limit(), uses_external_annotation=True
                )
            elif method in config.limits:
                target = CompetitionTarget(method, config.limits[method].to_limit())
            else:
                target = CompetitionTarget(method, CompetitionLimit.EMPTY)
            new_targets.append(target)

        targets.initialize(new_targets)

        if not has_baseline and new_targets:
            state.write_message(
                MessageSource.ANALYSER,
                MessageSeverity.SETUP_ERROR,
                "The competition has no baseline",
            )

    # -- Validation ----------------------------------------------------------

    def validate_summary(
        self,
        summary: Summary,
        config: CompetitionConfig,
        state: CompetitionState,
        targets: CompetitionTargets,
        warnings: list[AnalyserWarning],
    ) -> None:
        validated = True
        for group in summary.same_condition_groups():
            for report in group:
                target = targets.get(report.benchmark.method)
                if target is None or report.baseline:
                    continue
                validated &= self.validate_benchmark(summary, config, report, target, warnings)

        if not validated and config.max_reruns_if_validation_failed > state.run_number:
            state.request_reruns(1, "Competition validation failed.")

    def validate_benchmark(
        self,
        summary: Summary,
        config: CompetitionConfig,
        report: BenchmarkReport,
        target: CompetitionTarget,
        warnings: list[AnalyserWarning],
    ) -> bool:
        method = report.benchmark.method
        baseline = summary.baseline_for(report.benchmark)
        actual = MetricRange.EMPTY
        if baseline is not None:
            actual = config.metric_calculator.try_get_relative_actual_values(
                report.samples, baseline.samples
            )
        if actual.is_empty:
            baseline_info = baseline.benchmark.short_info if baseline is not None else "<none>"
            warnings.append(
                AnalyserWarning(
                    MessageSeverity.TEST_ERROR,
                    f"Baseline benchmark {baseline_info} does not compute",
                    report.benchmark,
                )
            )
            return False

        limit = target.limit
        if limit.is_empty:
            warnings.append(
                AnalyserWarning(
                    MessageSeverity.TEST_ERROR,
                    f"Method {method} has empty limit. Please fill it. "
                    f"Actual ratio: {actual.min:.2f}x",
                    report.benchmark,
                )
            )
            return False

        if limit.check_limits_for(actual):
            return True

        if not is_min_limit_ok(limit.min, round(actual.min, 2)):
            warnings.append(
                AnalyserWarning(
                    MessageSeverity.TEST_ERROR,
                    f"Method {method} runs faster than {limit.min_text}x baseline. "
                    f"Actual ratio: {actual.min:.2f}x",
                    report.benchmark,
                )
            )
        if not is_max_limit_ok(limit.max, round(actual.max, 2)):
            warnings.append(
                AnalyserWarning(
                    MessageSeverity.TEST_ERROR,
                    f"Method {method} runs slower than {limit.max_text}x baseline. "
                    f"Actual ratio: {actual.max:.2f}x",
                    report.benchmark,
                )
            )
        return False

    # -- Postconditions ------------------------------------------------------

    def validate_postconditions(
        self,
        summary: Summary,
        config: CompetitionConfig,
        state: CompetitionState,
        warnings: list[AnalyserWarning],
    ) -> None:
        executed = [r for r in summary.reports if r.executed]

        too_fast = _method_names([r for r in executed if r.stats.mean < TOO_FAST_NS])
        if too_fast:
            warnings.append(
                AnalyserWarning(
                    MessageSeverity.WARNING,
                    "The benchmarks " + ", ".join(too_fast)
                    + " run faster than 400 nanoseconds. Results cannot be trusted.",
                )
            )

        if not config.allow_slow_benchmarks:
            too_slow = _method_names([r for r in executed if r.stats.mean > TOO_SLOW_NS])
            if too_slow:
                warnings.append(
                    AnalyserWarning(
                        MessageSeverity.WARNING,
                        "The benchmarks " + ", ".join(too_slow)
                        + " run longer than half a second. Consider to rewrite the test"
                        " as the peak timings will be hidden by averages"
                        " or set allow_slow_benchmarks to true.",
                    )
                )

        if not warnings:
            state.write_message(
                MessageSource.ANALYSER,
                MessageSeverity.INFORMATIONAL,
                f"Analyser {self.name}: no warnings.",
            )


# ---------------------------------------------------------------------------
# Limit adjustment
# ---------------------------------------------------------------------------


class LimitAdjustmentAnalyser(CompetitionAnalyser):
    """Validates limits, then widens them to cover the observed ratios."""

    name = "LimitAdjustmentAnalyser"

    def __init__(self, writer: AnnotationWriter | None = None) -> None:
        self.writer = writer

    def validate_summary(
        self,
        summary: Summary,
        config: CompetitionConfig,
        state: CompetitionState,
        targets: CompetitionTargets,
        warnings: list[AnalyserWarning],
    ) -> None:
        super().validate_summary(summary, config, state, targets, warnings)

        if not config.annotate:
            log.info("Skipping annotation: annotate setting is disabled.")
            return
        if state.has_critical_errors_in_run:
            log.info("Skipping annotation: there are critical errors in run.")
            return

        to_annotate = [t for t in targets if t.has_unsaved_changes]
        for target in to_annotate:
            target.loose_limits_and_mark_as_saved(0)

        adjusted = self.adjust_targets(summary, config, targets)
        for target in adjusted:
            target.loose_limits_and_mark_as_saved(config.loose_by_percent)
            if target not in to_annotate:
                to_annotate.append(target)

        if config.registry is not None:
            session_adjusted = config.registry.get(ADJUSTED_TARGETS)
            for target in adjusted:
                session_adjusted[target.target] = target

        if adjusted:
            state.request_reruns(config.additional_runs_on_annotate, "Annotations updated.")
        else:
            state.request_reruns(0, "All competition benchmarks do not require annotation.")

        if to_annotate and self.writer is not None:
            written = self.writer.write(to_annotate, config)
            if written:
                warnings.append(
                    AnalyserWarning(
                        MessageSeverity.WARNING,
                        "The annotations were updated with new limits. "
                        "Please check them before committing the changes.",
                    )
                )

    def adjust_targets(
        self,
        summary: Summary,
        config: CompetitionConfig,
        targets: CompetitionTargets,
    ) -> list[CompetitionTarget]:
        """Union the observed ratio ranges into the targets.

        Returns the targets that changed, in first-changed order.
        """
        calculator = config.metric_calculator
        adjusted: list[CompetitionTarget] = []

        for group in summary.same_condition_groups():
            for report in group:
                if report.baseline:
                    continue
                target = targets.get(report.benchmark.method)
                if target is None:
                    continue
                baseline = summary.baseline_for(report.benchmark)
                if baseline is None:
                    continue

                # Missing values are reported by the validation above.
                ratios = calculator.try_get_relative_limit_values(
                    report.samples, baseline.samples
                )
                if ratios.is_empty:
                    continue

                if target.union_with(ratios) and target not in adjusted:
                    log.debug("Adjusted %s to %s", target.target, target.limit)
                    adjusted.append(target)

        return adjusted


def default_analysers(config: CompetitionConfig) -> list[Any]:
    """Analysers used when a session is configured from a profile."""
    if config.annotate:
        writer = config.annotation_writer or YamlAnnotationWriter()
        return [LimitAdjustmentAnalyser(writer)]
    return [CompetitionAnalyser()]
