"""Group flat measurement rows into the exe -> suite -> benchmark hierarchy.

The collation pass does no statistics.  Rows may arrive in any order, so
there is no point at which a series is known to be complete; statistics
are computed afterwards by :mod:`benchtrend.change` and the timeline
updater.
"""

from __future__ import annotations

import logging
import re
from typing import Iterable

from benchtrend.results import (
    CriterionData,
    MeasurementRow,
    Measurements,
    ProcessedResult,
    ResultsByBenchmark,
    ResultsByExeSuiteBenchmark,
    RunSettings,
)

log = logging.getLogger("benchtrend")

_EXECUTABLE_DIR_RE = re.compile(r"^([^\s]*)/([^\s]+\s.*$)")
_DIGITS_RE = re.compile(r"([0-9]+)")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def simplify_cmdline(cmdline: str) -> str:
    """Drop the directory of the executable when the command has arguments.

    >>> simplify_cmdline("/usr/bin/som -cp core-lib Bench")
    'som -cp core-lib Bench'
    >>> simplify_cmdline("/usr/bin/som")
    '/usr/bin/som'
    """
    return _EXECUTABLE_DIR_RE.sub(r"\2", cmdline)


def natural_sort_key(name: str) -> tuple:
    """Case-insensitive sort key that orders digit runs numerically.

    ``"bench2"`` sorts before ``"bench10"``.  The original string is the
    final tie-break so distinct names never compare equal.
    """
    parts = []
    for i, chunk in enumerate(_DIGITS_RE.split(name)):
        if not chunk:
            continue
        if i % 2:
            parts.append((0, int(chunk), chunk))
        else:
            parts.append((1, 0, chunk.casefold()))
    return (tuple(parts), name)


def _sorted_by_name(mapping: dict) -> dict:
    return {k: mapping[k] for k in sorted(mapping, key=natural_sort_key)}


# ---------------------------------------------------------------------------
# Collation
# ---------------------------------------------------------------------------


class _Collator:
    """State for one collation pass."""

    def __init__(self) -> None:
        self.by_exe: ResultsByExeSuiteBenchmark = {}
        self.run_settings: dict[str, RunSettings] = {}
        self.criteria: dict[tuple[str, str], CriterionData] = {}

    def criterion_for(self, row: MeasurementRow) -> CriterionData:
        key = (row.criterion, row.unit)
        criterion = self.criteria.get(key)
        if criterion is None:
            criterion = CriterionData(name=row.criterion, unit=row.unit)
            self.criteria[key] = criterion
        return criterion

    def run_settings_for(self, row: MeasurementRow) -> RunSettings:
        settings = self.run_settings.get(row.cmdline)
        if settings is None:
            settings = RunSettings(
                cmdline=row.cmdline,
                simplified_cmdline=simplify_cmdline(row.cmdline),
                var_value=row.var_value,
                cores=row.cores,
                input_size=row.input_size,
                extra_args=row.extra_args,
                warmup=row.warmup,
            )
            self.run_settings[row.cmdline] = settings
        return settings

    def suite_for(self, row: MeasurementRow) -> ResultsByBenchmark:
        by_suite = self.by_exe.setdefault(row.exe, {})
        suite = by_suite.get(row.suite)
        if suite is None:
            suite = ResultsByBenchmark()
            by_suite[row.suite] = suite
        return suite

    def add(self, row: MeasurementRow) -> None:
        criterion = self.criterion_for(row)
        settings = self.run_settings_for(row)
        suite = self.suite_for(row)

        result = suite.benchmarks.get(row.bench)
        if result is None:
            result = ProcessedResult(exe=row.exe, suite=row.suite, bench=row.bench)
            suite.benchmarks[row.bench] = result

        series = _find_series(result, row)
        if series is None:
            series = Measurements(
                criterion=criterion,
                run_settings=settings,
                env_id=row.env_id,
                commit_id=row.commit_id,
                run_id=row.run_id,
                trial_id=row.trial_id,
                exp_id=row.exp_id,
            )
            result.measurements.append(series)
            result.criteria.setdefault(criterion.name, criterion)
            suite.criteria.setdefault(criterion.name, criterion)

        series.set_value(row.invocation, row.iteration, row.value)

    def sorted_results(self) -> ResultsByExeSuiteBenchmark:
        for exe, by_suite in self.by_exe.items():
            for suite in by_suite.values():
                suite.benchmarks = _sorted_by_name(suite.benchmarks)
            self.by_exe[exe] = _sorted_by_name(by_suite)
        return _sorted_by_name(self.by_exe)


def _find_series(result: ProcessedResult, row: MeasurementRow) -> Measurements | None:
    # Linear scan; a benchmark rarely has more than a handful of series.
    for series in result.measurements:
        if series.matches(row):
            return series
    return None


def collate_measurements(rows: Iterable[MeasurementRow]) -> ResultsByExeSuiteBenchmark:
    """Turn flat rows into ``{exe: {suite: ResultsByBenchmark}}``.

    Exe, suite and benchmark names are ordered with :func:`natural_sort_key`.
    Criteria records keep the order in which criteria were first seen.

    Raises:
        ValueError: If a row has an invocation or iteration below 1.
    """
    collator = _Collator()
    count = 0
    for row in rows:
        collator.add(row)
        count += 1

    results = collator.sorted_results()
    log.debug(
        "Collated %d rows into %d exes, %d run settings, %d criteria",
        count,
        len(results),
        len(collator.run_settings),
        len(collator.criteria),
    )
    return results
