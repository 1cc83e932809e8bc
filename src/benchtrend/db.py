"""Database collaborator.

The timeline updater only needs :class:`Database`, i.e. a
``record_timeline`` method.  :class:`InMemoryDatabase` is the reference
implementation: it assigns ids, stores measurements per
(run, trial, criterion, invocation) and keeps one timeline entry per
(run, trial, criterion).

Files::

    timeline.jsonl — one TimelineEntry per line
"""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterator, Protocol

from benchtrend.results import MeasurementRow
from benchtrend.stats import SummaryStatistics

log = logging.getLogger("benchtrend")


class Database(Protocol):
    def record_timeline(
        self,
        run_id: int,
        trial_id: int,
        criterion_id: int,
        stats: SummaryStatistics,
    ) -> None: ...


# ---------------------------------------------------------------------------
# Stored records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RunInfo:
    """What a run id stands for: one benchmark with one command line."""

    exe: str
    suite: str
    bench: str
    cmdline: str
    var_value: str | None = None
    cores: str | None = None
    input_size: str | None = None
    extra_args: str | None = None
    warmup: int | None = None


@dataclass(frozen=True)
class TrialInfo:
    """One execution of an experiment in one environment."""

    exp_id: int
    env_id: int
    commit_id: str
    start_time: str


@dataclass
class TimelineEntry:
    """Summary statistics of one (run, trial, criterion)."""

    run_id: int
    trial_id: int
    criterion_id: int
    stats: SummaryStatistics

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "trial_id": self.trial_id,
            "criterion_id": self.criterion_id,
            "stats": self.stats.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TimelineEntry:
        return cls(
            run_id=data["run_id"],
            trial_id=data["trial_id"],
            criterion_id=data["criterion_id"],
            stats=SummaryStatistics.from_dict(data["stats"]),
        )


# ---------------------------------------------------------------------------
# In-memory database
# ---------------------------------------------------------------------------


class InMemoryDatabase:
    """Thread-safe in-memory store.

    ``record_timeline`` is called from the timeline worker's listener
    thread while ingestion writes from the caller's thread.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._runs: dict[RunInfo, int] = {}
        self._trials: dict[tuple[int, int, str], int] = {}
        self._trial_info: dict[int, TrialInfo] = {}
        self._criteria: dict[tuple[str, str], int] = {}
        self._environments: dict[str, int] = {}
        self._experiments: dict[tuple[str, str], int] = {}
        # (run_id, trial_id, criterion_id, invocation) -> iteration values
        self._measurements: dict[tuple[int, int, int, int], list[float | None]] = {}
        self._timeline: dict[tuple[int, int, int], SummaryStatistics] = {}

    # -- ids ---------------------------------------------------------------

    @staticmethod
    def _get_or_assign(table: dict, key: Any) -> int:
        ident = table.get(key)
        if ident is None:
            ident = len(table) + 1
            table[key] = ident
        return ident

    def run_id(self, run: RunInfo) -> int:
        with self._lock:
            return self._get_or_assign(self._runs, run)

    def criterion_id(self, name: str, unit: str) -> int:
        with self._lock:
            return self._get_or_assign(self._criteria, (name, unit))

    def environment_id(self, host_name: str) -> int:
        with self._lock:
            return self._get_or_assign(self._environments, host_name)

    def experiment_id(self, project: str, name: str) -> int:
        with self._lock:
            return self._get_or_assign(self._experiments, (project, name))

    def trial_id(self, exp_id: int, env_id: int, start_time: str, commit_id: str) -> int:
        """Id of the trial started at *start_time* in an experiment and environment.

        Trials are keyed on ``(exp_id, env_id, start_time)``.  The commit is
        recorded when the trial is first seen; a later call naming another
        commit gets the existing trial and a warning.
        """
        with self._lock:
            key = (exp_id, env_id, start_time)
            ident = self._trials.get(key)
            if ident is not None:
                known = self._trial_info[ident].commit_id
                if known != commit_id:
                    log.warning(
                        "Trial %d started at %s belongs to commit %s, not %s",
                        ident,
                        start_time,
                        known,
                        commit_id,
                    )
            else:
                ident = self._get_or_assign(self._trials, key)
                self._trial_info[ident] = TrialInfo(
                    exp_id=exp_id,
                    env_id=env_id,
                    commit_id=commit_id,
                    start_time=start_time,
                )
            return ident

    # -- measurements ------------------------------------------------------

    def record_measurement(
        self,
        run_id: int,
        trial_id: int,
        criterion_id: int,
        invocation: int,
        iteration: int,
        value: float,
    ) -> bool:
        """Store one value.  Returns False if the slot was already filled."""
        if invocation < 1 or iteration < 1:
            raise ValueError(
                f"Invocation and iteration are 1-based (got {invocation}, {iteration})"
            )
        with self._lock:
            values = self._measurements.setdefault((run_id, trial_id, criterion_id, invocation), [])
            while len(values) < iteration:
                values.append(None)
            if values[iteration - 1] is not None:
                return False
            values[iteration - 1] = value
            return True

    @property
    def num_measurements(self) -> int:
        with self._lock:
            return sum(
                1 for values in self._measurements.values() for v in values if v is not None
            )

    def iter_invocations(self) -> Iterator[tuple[int, int, int, int, list[float | None]]]:
        """Yield ``(run_id, trial_id, criterion_id, invocation, values)`` in key order."""
        with self._lock:
            snapshot = sorted(
                (key, list(values)) for key, values in self._measurements.items()
            )
        for (run_id, trial_id, criterion_id, invocation), values in snapshot:
            yield run_id, trial_id, criterion_id, invocation, values

    def measurement_rows(self) -> list[MeasurementRow]:
        """All stored values as flat rows, ready for collation."""
        with self._lock:
            runs = {ident: run for run, ident in self._runs.items()}
            criteria = {ident: key for key, ident in self._criteria.items()}
            trials = dict(self._trial_info)

        rows: list[MeasurementRow] = []
        for run_id, trial_id, criterion_id, invocation, values in self.iter_invocations():
            run = runs[run_id]
            trial = trials[trial_id]
            name, unit = criteria[criterion_id]
            for iteration, value in enumerate(values, start=1):
                if value is None:
                    continue
                rows.append(
                    MeasurementRow(
                        exe=run.exe,
                        suite=run.suite,
                        bench=run.bench,
                        criterion=name,
                        unit=unit,
                        cmdline=run.cmdline,
                        env_id=trial.env_id,
                        commit_id=trial.commit_id,
                        run_id=run_id,
                        trial_id=trial_id,
                        invocation=invocation,
                        iteration=iteration,
                        value=value,
                        exp_id=trial.exp_id,
                        var_value=run.var_value,
                        cores=run.cores,
                        input_size=run.input_size,
                        extra_args=run.extra_args,
                        warmup=run.warmup,
                    )
                )
        return rows

    # -- timeline ----------------------------------------------------------

    def record_timeline(
        self,
        run_id: int,
        trial_id: int,
        criterion_id: int,
        stats: SummaryStatistics,
    ) -> None:
        """Insert or replace the timeline entry of one (run, trial, criterion)."""
        with self._lock:
            self._timeline[(run_id, trial_id, criterion_id)] = stats

    def get_timeline(self, run_id: int, trial_id: int, criterion_id: int) -> SummaryStatistics | None:
        with self._lock:
            return self._timeline.get((run_id, trial_id, criterion_id))

    def timeline_entries(self) -> list[TimelineEntry]:
        """All timeline entries ordered by (run, trial, criterion)."""
        with self._lock:
            items = sorted(self._timeline.items())
        return [
            TimelineEntry(run_id=r, trial_id=t, criterion_id=c, stats=stats)
            for (r, t, c), stats in items
        ]

    def describe_run(self, run_id: int) -> RunInfo | None:
        with self._lock:
            for run, ident in self._runs.items():
                if ident == run_id:
                    return run
        return None

    def describe_criterion(self, criterion_id: int) -> tuple[str, str] | None:
        with self._lock:
            for key, ident in self._criteria.items():
                if ident == criterion_id:
                    return key
        return None

    def export_timeline(self, path: Path) -> int:
        """Write the timeline to a JSONL file.  Returns the number of entries."""
        entries = self.timeline_entries()
        with open(path, "w", encoding="utf-8") as f:
            for entry in entries:
                f.write(json.dumps(entry.to_dict(), separators=(",", ":")) + "\n")
        log.info("Exported %d timeline entries to %s", len(entries), path)
        return len(entries)

    def import_timeline(self, path: Path) -> int:
        """Load timeline entries from a JSONL file, replacing existing keys."""
        if not path.exists():
            raise FileNotFoundError(f"No timeline file at {path}")

        count = 0
        for line in path.read_text(encoding="utf-8").splitlines():
            line = line.strip()
            if not line:
                continue
            entry = TimelineEntry.from_dict(json.loads(line))
            self.record_timeline(entry.run_id, entry.trial_id, entry.criterion_id, entry.stats)
            count += 1
        log.info("Imported %d timeline entries from %s", count, path)
        return count
