"""Shared text formatting helpers for benchtrend.

Provides functions for formatting durations, values, percentage changes,
tables and sparklines used by the display module and the CLI.
"""

from __future__ import annotations

import math


def format_duration(seconds: float) -> str:
    """Format a span duration.

    Examples: ``'850ms'``, ``'2.35s'``, ``'1m 23s'``.
    """
    if seconds < 1:
        return f"{seconds * 1000:.0f}ms"
    if seconds < 60:
        return f"{seconds:.2f}s"
    total = int(seconds)
    return f"{total // 60}m {total % 60:2d}s"


def format_value(value: float | None, precision: int = 2) -> str:
    """Format a measured value; ``'-'`` for missing, ``'N/A'`` for NaN."""
    if value is None:
        return "-"
    if math.isnan(value):
        return "N/A"
    if math.isinf(value):
        return "inf" if value > 0 else "-inf"
    return f"{value:.{precision}f}"


def format_change(change_m: float, precision: int = 1) -> str:
    """Format a percentage change with sign: ``'+12.5%'``, ``'-3.0%'``."""
    if math.isnan(change_m):
        return "N/A"
    if math.isinf(change_m):
        return "+inf%" if change_m > 0 else "-inf%"
    sign = "+" if change_m >= 0 else ""
    return f"{sign}{change_m:.{precision}f}%"


def truncate(text: str, max_len: int, suffix: str = "...") -> str:
    """Truncate text to *max_len*, adding *suffix* if truncated."""
    if len(text) <= max_len:
        return text
    if max_len <= len(suffix):
        return suffix[:max_len]
    return text[: max_len - len(suffix)] + suffix


def format_table(
    headers: list[str],
    rows: list[list[str]],
    *,
    alignments: list[str] | None = None,
    max_col_width: dict[int, int] | None = None,
    indent: int = 2,
) -> str:
    """Format rows as an aligned text table.

    Column widths follow the content.  Cells of columns listed in
    *max_col_width* are truncated with ``'...'``.

    Args:
        headers: Column header strings.
        rows: List of rows, each a list of cell strings.  Short rows are
            padded with empty cells.
        alignments: Per-column ``'l'`` or ``'r'``; left by default.
        max_col_width: Column index to max width mapping.
        indent: Number of leading spaces per line.
    """
    if not headers:
        return ""

    ncols = len(headers)
    aligns = list(alignments or [])
    aligns += ["l"] * (ncols - len(aligns))
    limits = max_col_width or {}

    def _cell(row: list[str], ci: int) -> str:
        text = row[ci] if ci < len(row) else ""
        if ci in limits:
            text = truncate(text, limits[ci])
        return text

    table = [[_cell(headers, ci) for ci in range(ncols)]]
    table += [[_cell(row, ci) for ci in range(ncols)] for row in rows]
    widths = [max(len(r[ci]) for r in table) for ci in range(ncols)]

    prefix = " " * indent
    lines = []
    for r in table:
        cells = [
            r[ci].rjust(widths[ci]) if aligns[ci] == "r" else r[ci].ljust(widths[ci])
            for ci in range(ncols)
        ]
        lines.append((prefix + "  ".join(cells)).rstrip())
    return "\n".join(lines)


_SPARK_CHARS = "▁▂▃▄▅▆▇█"


def format_sparkline(values: list[float]) -> str:
    """One block character per value, scaled between min and max."""
    if not values:
        return ""
    lo = min(values)
    span = max(values) - lo
    top = len(_SPARK_CHARS) - 1
    if span == 0:
        return _SPARK_CHARS[top // 2] * len(values)
    return "".join(_SPARK_CHARS[int((v - lo) / span * top)] for v in values)


def format_section_header(title: str, width: int = 72) -> str:
    """Format a section header: ``'─── Title ──...'``."""
    prefix = "─── "
    fill = width - len(prefix) - len(title) - 1
    return f"{prefix}{title} " + "─" * max(0, fill)
