"""Terminal display formatting for competition sessions."""

from __future__ import annotations

from typing import Iterable

from perfrival.formatting import format_ns, format_ratio, format_section_header, format_table
from perfrival.limits import CompetitionTarget
from perfrival.messages import Message, MessageSeverity
from perfrival.metrics import MetricCalculator
from perfrival.results import Summary
from perfrival.state import CompetitionState


def format_messages(messages: Iterable[Message]) -> str:
    """One line per message, in log order."""
    lines = [m.format() for m in messages]
    if not lines:
        return "  (no messages)"
    return "\n".join("  " + line for line in lines)


def format_targets(targets: Iterable[CompetitionTarget]) -> str:
    """Table of competition targets and their current limits."""
    rows = []
    for target in targets:
        rows.append(
            [
                str(target.target),
                target.limit.min_text,
                target.limit.max_text,
                "yes" if target.was_updated else "",
            ]
        )
    if not rows:
        return "  (no targets)"
    return format_table(
        ["Target", "Min", "Max", "Adjusted"],
        rows,
        alignments=["l", "r", "r", "l"],
    )


def format_summary(summary: Summary, calculator: MetricCalculator) -> str:
    """Per-benchmark timings and ratio to the baseline of the same condition."""
    rows = []
    for group in summary.same_condition_groups():
        for report in group:
            stats = report.stats
            baseline = summary.baseline_for(report.benchmark)
            ratio = None
            if report.baseline:
                ratio = 1.0
            elif baseline is not None and report.executed:
                ratio = calculator.try_get_relative_mean_value(report.samples, baseline.samples)
            rows.append(
                [
                    report.benchmark.short_info + (" *" if report.baseline else ""),
                    str(stats.n),
                    format_ns(stats.mean),
                    format_ns(stats.median),
                    f"{stats.cv * 100:.1f}%" if stats.n else "N/A",
                    format_ratio(ratio),
                ]
            )
    if not rows:
        return "  (no reports)"
    return format_table(
        ["Benchmark", "N", "Mean", "Median", "CV", "Ratio"],
        rows,
        alignments=["l", "r", "r", "r", "r", "r"],
    )


def format_state(
    state: CompetitionState,
    *,
    targets: Iterable[CompetitionTarget] = (),
    calculator: MetricCalculator | None = None,
) -> str:
    """Full session report: runs, last summary, targets and messages."""
    highest = state.highest_message_severity
    lines = [
        format_section_header("Competition"),
        f"  Runs:          {state.run_number} of {state.max_runs_allowed} allowed",
        f"  Phase:         {state.phase.value}",
        f"  Highest issue: {highest.label if highest is not None else 'none'}",
    ]

    summary = state.last_run_summary
    if summary is not None and calculator is not None:
        lines += ["", format_section_header("Last run"), format_summary(summary, calculator)]

    targets = list(targets)
    if targets:
        lines += ["", format_section_header("Targets"), format_targets(targets)]

    lines += ["", format_section_header("Messages"), format_messages(state.messages())]

    if highest is not None and highest >= MessageSeverity.TEST_ERROR:
        lines += ["", "  Competition FAILED."]
    return "\n".join(lines)
