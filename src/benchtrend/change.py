"""Change statistics between a baseline and a change revision.

Works on the hierarchy produced by
:func:`benchtrend.collate.collate_measurements`.  Within each benchmark,
series are grouped into run configurations (command line and
environment) and criterion.  The commits of a group are ordered and two
of them, picked by index, are compared by their medians.
"""

from __future__ import annotations

import logging
import math
import statistics as _stats
from dataclasses import dataclass, field

from benchtrend.results import (
    Measurements,
    ProcessedResult,
    ResultsByExeSuiteBenchmark,
    RunSettings,
    iter_processed_results,
)
from benchtrend.stats import geomean

log = logging.getLogger("benchtrend")

SIGNIFICANCE_POLICIES = ("flag", "suppress")


# ---------------------------------------------------------------------------
# Per-series comparison
# ---------------------------------------------------------------------------


@dataclass
class ComparisonStatistics:
    """Median comparison of one criterion of one run configuration."""

    median: float
    samples: int
    change_m: float  # percentage change of the median
    base_median: float
    significant: bool = True

    @property
    def ratio(self) -> float:
        """Change median divided by baseline median."""
        if self.base_median == 0:
            return 1.0 if self.median == 0 else math.inf
        return self.median / self.base_median


@dataclass
class RunComparison:
    """All compared criteria of one run configuration."""

    run_settings: RunSettings
    env_id: int
    base_commit_id: str
    change_commit_id: str
    statistics: dict[str, ComparisonStatistics] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Summary
# ---------------------------------------------------------------------------


@dataclass
class OverviewSummaryStatistics:
    """Aggregate of one criterion's change ratios across a comparison."""

    min: float
    max: float
    geomean: float
    num_significant: int = 0


@dataclass
class ComparisonSummary:
    """Result of :func:`calculate_all_change_statistics`."""

    num_run_configs: int = 0
    stats: dict[str, OverviewSummaryStatistics] = field(default_factory=dict)


@dataclass
class OverviewPoint:
    """One run configuration's change for a single criterion."""

    exe: str
    suite: str
    bench: str
    cmdline: str
    env_id: int
    ratio: float
    change_m: float
    significant: bool


# ---------------------------------------------------------------------------
# Core calculations
# ---------------------------------------------------------------------------


def revision_offsets(base_commit_id: str, change_commit_id: str) -> tuple[int, int]:
    """Indices of baseline and change within commit-ordered series.

    Raises:
        ValueError: If both commit ids are the same.
    """
    if base_commit_id == change_commit_id:
        raise ValueError(f"Baseline and change are the same commit: {base_commit_id}")
    if base_commit_id < change_commit_id:
        return 0, 1
    return 1, 0


def percent_change(base_median: float, change_median: float) -> float:
    """``(change / base - 1) * 100`` with a zero baseline handled."""
    if base_median == 0:
        return 0.0 if change_median == 0 else math.inf
    return (change_median / base_median - 1) * 100


def calculate_change_statistics(
    base_values: list[float],
    change_values: list[float],
    significance_threshold: float | None = None,
    *,
    policy: str = "flag",
) -> ComparisonStatistics | None:
    """Compare two value lists by their medians.

    Returns ``None`` if either side has no values.
    """
    if not base_values or not change_values:
        return None

    base_median = _stats.median(base_values)
    change_median = _stats.median(change_values)
    change_m = percent_change(base_median, change_median)

    significant = True
    if significance_threshold is not None:
        significant = abs(change_m) >= significance_threshold
        if not significant and policy == "suppress":
            change_m = 0.0

    return ComparisonStatistics(
        median=change_median,
        samples=len(change_values),
        change_m=change_m,
        base_median=base_median,
        significant=significant,
    )


def _group_run_configs(
    result: ProcessedResult,
) -> dict[tuple[str, int], dict[str, dict[str, list[Measurements]]]]:
    """``{(cmdline, env_id): {criterion: {commit_id: [series]}}}`` in discovery order."""
    groups: dict[tuple[str, int], dict[str, dict[str, list[Measurements]]]] = {}
    for series in result.measurements:
        key = (series.run_settings.cmdline, series.env_id)
        by_commit = groups.setdefault(key, {}).setdefault(series.criterion.name, {})
        by_commit.setdefault(series.commit_id, []).append(series)
    return groups


def _compare_result(
    result: ProcessedResult,
    base_index: int,
    change_index: int,
    significance_threshold: float | None,
    policy: str,
) -> list[RunComparison]:
    comparisons: list[RunComparison] = []
    needed = max(base_index, change_index)

    for (_cmdline, env_id), by_criterion in _group_run_configs(result).items():
        comparison: RunComparison | None = None
        for criterion, by_commit in by_criterion.items():
            commits = sorted(by_commit)
            if len(commits) <= needed:
                continue
            base_series = by_commit[commits[base_index]]
            change_series = by_commit[commits[change_index]]
            stats = calculate_change_statistics(
                [v for s in base_series for v in s.all_values()],
                [v for s in change_series for v in s.all_values()],
                significance_threshold,
                policy=policy,
            )
            if stats is None:
                continue
            if comparison is None:
                comparison = RunComparison(
                    run_settings=change_series[0].run_settings,
                    env_id=env_id,
                    base_commit_id=commits[base_index],
                    change_commit_id=commits[change_index],
                )
            comparison.statistics[criterion] = stats
        if comparison is not None:
            comparisons.append(comparison)

    return comparisons


def calculate_all_change_statistics(
    results: ResultsByExeSuiteBenchmark,
    base_index: int,
    change_index: int,
    significance_threshold: float | None,
    *,
    policy: str = "flag",
) -> ComparisonSummary:
    """Compute change statistics for every benchmark and summarize them.

    Each :class:`ProcessedResult` gets its ``comparisons`` replaced.  Run
    configurations present in only one revision are left out.

    Args:
        results: Collated measurements of (at least) two revisions.
        base_index: Position of the baseline in commit order.
        change_index: Position of the change in commit order.
        significance_threshold: Minimum ``abs(change_m)`` for a change to be
            significant; ``None`` treats every change as significant.
        policy: ``"flag"`` only marks insignificant changes; ``"suppress"``
            also zeroes their ``change_m``.

    Raises:
        ValueError: For an unknown *policy* or a negative index.
    """
    if policy not in SIGNIFICANCE_POLICIES:
        raise ValueError(f"Unknown significance policy: {policy!r}")
    if base_index < 0 or change_index < 0:
        raise ValueError("Revision indices must not be negative")

    summary = ComparisonSummary()
    ratios: dict[str, list[float]] = {}
    significant: dict[str, int] = {}

    for result in iter_processed_results(results):
        result.comparisons = _compare_result(
            result, base_index, change_index, significance_threshold, policy
        )
        summary.num_run_configs += len(result.comparisons)
        for comparison in result.comparisons:
            for criterion, stats in comparison.statistics.items():
                ratios.setdefault(criterion, []).append(stats.ratio)
                significant.setdefault(criterion, 0)
                if stats.significant:
                    significant[criterion] += 1

    for criterion, values in ratios.items():
        summary.stats[criterion] = OverviewSummaryStatistics(
            min=min(values),
            max=max(values),
            geomean=geomean(values),
            num_significant=significant[criterion],
        )

    log.debug(
        "Compared %d run configurations across %d criteria",
        summary.num_run_configs,
        len(summary.stats),
    )
    return summary


def calculate_data_for_overview_plot(
    results: ResultsByExeSuiteBenchmark,
    criterion: str,
) -> list[OverviewPoint]:
    """One point per run configuration with a comparison for *criterion*.

    Expects :func:`calculate_all_change_statistics` to have run.
    """
    points: list[OverviewPoint] = []
    for result in iter_processed_results(results):
        for comparison in result.comparisons:
            stats = comparison.statistics.get(criterion)
            if stats is None:
                continue
            points.append(
                OverviewPoint(
                    exe=result.exe,
                    suite=result.suite,
                    bench=result.bench,
                    cmdline=comparison.run_settings.simplified_cmdline,
                    env_id=comparison.env_id,
                    ratio=stats.ratio,
                    change_m=stats.change_m,
                    significant=stats.significant,
                )
            )
    return points
