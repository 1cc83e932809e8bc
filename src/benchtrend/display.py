"""Terminal display formatting for collated results, comparisons and timelines.

Produces aligned tables and summaries with Unicode section rules.
No external dependencies.
"""

from __future__ import annotations

import statistics as _stats

from benchtrend.change import ComparisonSummary, OverviewPoint
from benchtrend.db import InMemoryDatabase
from benchtrend.formatting import (
    format_change,
    format_duration,
    format_section_header,
    format_sparkline,
    format_table,
    format_value,
)
from benchtrend.perf import PerfTracker
from benchtrend.results import (
    Measurements,
    ResultsByExeSuiteBenchmark,
    iter_processed_results,
)

_CMDLINE_WIDTH = 40


def _invocation_medians(series: Measurements) -> list[float]:
    medians = []
    for invocation in series.values:
        present = [v for v in invocation if v is not None]
        if present:
            medians.append(_stats.median(present))
    return medians


# ---------------------------------------------------------------------------
# Collated hierarchy
# ---------------------------------------------------------------------------


def format_collated(results: ResultsByExeSuiteBenchmark) -> str:
    """One section per exe and suite, one row per series.

    The trend column shows the median of each invocation.
    """
    if not results:
        return "No measurements."

    lines: list[str] = []
    for exe, by_suite in results.items():
        for suite_name, suite in by_suite.items():
            lines.append(format_section_header(f"{exe} / {suite_name}"))
            criteria = ", ".join(f"{c.name} [{c.unit}]" for c in suite.criteria.values())
            lines.append(f"  Criteria: {criteria}")

            rows: list[list[str]] = []
            for bench, result in suite.benchmarks.items():
                for series in result.measurements:
                    values = series.all_values()
                    rows.append(
                        [
                            bench,
                            series.criterion.name,
                            series.commit_id,
                            str(series.env_id),
                            str(series.num_invocations),
                            str(len(values)),
                            format_value(_stats.median(values) if values else None),
                            format_sparkline(_invocation_medians(series)),
                        ]
                    )
            lines.append(
                format_table(
                    ["Benchmark", "Criterion", "Commit", "Env", "Inv", "N", "Median", "Trend"],
                    rows,
                    alignments=["l", "l", "l", "r", "r", "r", "r", "l"],
                    max_col_width={2: 12},
                )
            )
            lines.append("")

    return "\n".join(lines).rstrip()


# ---------------------------------------------------------------------------
# Comparison
# ---------------------------------------------------------------------------


def format_comparison(
    results: ResultsByExeSuiteBenchmark,
    summary: ComparisonSummary,
    *,
    criterion: str | None = None,
) -> str:
    """Per-configuration changes followed by the per-criterion summary.

    Insignificant changes are marked with ``~``.
    """
    rows: list[list[str]] = []
    for result in iter_processed_results(results):
        for comparison in result.comparisons:
            for name, stats in comparison.statistics.items():
                if criterion is not None and name != criterion:
                    continue
                rows.append(
                    [
                        f"{result.exe}/{result.suite}/{result.bench}",
                        comparison.run_settings.simplified_cmdline,
                        name,
                        format_value(stats.base_median),
                        format_value(stats.median),
                        str(stats.samples),
                        format_change(stats.change_m),
                        "" if stats.significant else "~",
                    ]
                )

    lines = [format_section_header("Changes")]
    if rows:
        lines.append(
            format_table(
                ["Benchmark", "Command", "Criterion", "Base", "Change", "N", "Change %", ""],
                rows,
                alignments=["l", "l", "l", "r", "r", "r", "r", "l"],
                max_col_width={1: _CMDLINE_WIDTH},
            )
        )
    else:
        lines.append("  No run configuration present in both revisions.")

    lines.append("")
    lines.append(format_comparison_summary(summary))
    return "\n".join(lines)


def format_comparison_summary(summary: ComparisonSummary) -> str:
    """Ratio range, geometric mean and significant count per criterion."""
    lines = [format_section_header("Summary")]
    lines.append(f"  Run configurations compared: {summary.num_run_configs}")
    if not summary.stats:
        return "\n".join(lines)

    rows = [
        [
            name,
            format_value(s.min, 3),
            format_value(s.geomean, 3),
            format_value(s.max, 3),
            str(s.num_significant),
        ]
        for name, s in summary.stats.items()
    ]
    lines.append(
        format_table(
            ["Criterion", "Min ratio", "Geomean", "Max ratio", "Significant"],
            rows,
            alignments=["l", "r", "r", "r", "r"],
        )
    )
    return "\n".join(lines)


def format_overview(points: list[OverviewPoint], criterion: str) -> str:
    """Ratios of every run configuration for one criterion."""
    lines = [format_section_header(f"Overview: {criterion}")]
    if not points:
        lines.append(f"  No comparisons for criterion '{criterion}'.")
        return "\n".join(lines)

    rows = [
        [
            f"{p.exe}/{p.suite}/{p.bench}",
            p.cmdline,
            str(p.env_id),
            format_value(p.ratio, 3),
            format_change(p.change_m),
        ]
        for p in points
    ]
    lines.append(
        format_table(
            ["Benchmark", "Command", "Env", "Ratio", "Change %"],
            rows,
            alignments=["l", "l", "r", "r", "r"],
            max_col_width={1: _CMDLINE_WIDTH},
        )
    )
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Timeline
# ---------------------------------------------------------------------------


def format_timeline(db: InMemoryDatabase) -> str:
    """One row per timeline entry with median and 95% bootstrap interval."""
    entries = db.timeline_entries()
    lines = [format_section_header("Timeline")]
    if not entries:
        lines.append("  No timeline entries.")
        return "\n".join(lines)

    rows: list[list[str]] = []
    for entry in entries:
        run = db.describe_run(entry.run_id)
        crit = db.describe_criterion(entry.criterion_id)
        stats = entry.stats
        if stats.has_confidence_interval:
            ci = f"[{format_value(stats.bci95low)}, {format_value(stats.bci95up)}]"
        else:
            ci = "-"
        rows.append(
            [
                f"{run.exe}/{run.suite}/{run.bench}" if run else str(entry.run_id),
                str(entry.trial_id),
                f"{crit[0]} [{crit[1]}]" if crit else str(entry.criterion_id),
                str(stats.num_samples),
                format_value(stats.median),
                ci,
            ]
        )

    lines.append(
        format_table(
            ["Benchmark", "Trial", "Criterion", "N", "Median", "95% CI"],
            rows,
            alignments=["l", "r", "l", "r", "r", "l"],
        )
    )
    return "\n".join(lines)


def format_perf(perf: PerfTracker) -> str:
    """Count and mean duration of each tracked request kind."""
    lines = [format_section_header("Requests")]
    summary = perf.summary()
    if not summary:
        lines.append("  No completed requests.")
        return "\n".join(lines)
    rows = [[s.name, str(s.count), format_duration(s.mean_s)] for s in summary]
    lines.append(format_table(["Request", "Count", "Mean"], rows, alignments=["l", "r", "r"]))
    return "\n".join(lines)
