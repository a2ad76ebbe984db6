"""Shared text formatting helpers for perfrival."""

from __future__ import annotations

import math


def format_ns(nanoseconds: float, precision: int = 2) -> str:
    """Format a per-operation time with adaptive units.

    Examples: ``'350ns'``, ``'12.50us'``, ``'3.20ms'``, ``'1.25s'``.
    """
    if math.isnan(nanoseconds):
        return "N/A"
    if nanoseconds < 1_000:
        return f"{nanoseconds:.0f}ns"
    if nanoseconds < 1_000_000:
        return f"{nanoseconds / 1_000:.{precision}f}us"
    if nanoseconds < 1_000_000_000:
        return f"{nanoseconds / 1_000_000:.{precision}f}ms"
    return f"{nanoseconds / 1_000_000_000:.{precision}f}s"


def format_ratio(value: float | None) -> str:
    if value is None or math.isnan(value):
        return "N/A"
    return f"{value:.2f}x"


def format_table(
    headers: list[str],
    rows: list[list[str]],
    *,
    alignments: list[str] | None = None,
    indent: int = 2,
) -> str:
    """Format rows as an aligned text table.

    Column widths come from the content.  Columns marked ``'r'`` in
    *alignments* are right-aligned, everything else is left-aligned.
    """
    if not headers:
        return ""

    ncols = len(headers)
    aligns = list(alignments or [])
    aligns += ["l"] * (ncols - len(aligns))

    cells = [(list(row) + [""] * ncols)[:ncols] for row in rows]
    widths = [len(h) for h in headers]
    for row in cells:
        for ci, cell in enumerate(row):
            widths[ci] = max(widths[ci], len(cell))

    def _line(row: list[str]) -> str:
        parts = [
            cell.rjust(widths[ci]) if aligns[ci] == "r" else cell.ljust(widths[ci])
            for ci, cell in enumerate(row)
        ]
        return " " * indent + "  ".join(parts).rstrip()

    return "\n".join([_line(list(headers))] + [_line(row) for row in cells])


def format_section_header(title: str, width: int = 80) -> str:
    """Format a section header: ``'─── Title ──...'``."""
    prefix = "─── "
    fill = max(0, width - len(prefix) - len(title) - 1)
    return f"{prefix}{title} " + "─" * fill
