"""Measurement data structures and row serialization.

Hierarchy produced by :func:`benchtrend.collate.collate_measurements`::

    dict[exe, dict[suite, ResultsByBenchmark]]
      ResultsByBenchmark
        -> benchmarks: dict[str, ProcessedResult]   (sorted by name)
        -> criteria: dict[str, CriterionData]       (discovery order)
      ProcessedResult (one per exe/suite/bench)
        -> measurements: list[Measurements]
        -> criteria: dict[str, CriterionData]       (discovery order)
        -> comparisons: list[RunComparison]         (set by benchtrend.change)
      Measurements (one series)
        -> values[invocation - 1][iteration - 1]

Files::

    *.jsonl — one MeasurementRow per line
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Iterable

if TYPE_CHECKING:
    from benchtrend.change import RunComparison

log = logging.getLogger("benchtrend")


# ---------------------------------------------------------------------------
# Flat rows
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MeasurementRow:
    """One measured value, as read from storage."""

    exe: str
    suite: str
    bench: str
    criterion: str
    unit: str
    cmdline: str
    env_id: int
    commit_id: str
    run_id: int
    trial_id: int
    invocation: int  # 1-based
    iteration: int  # 1-based
    value: float
    exp_id: int = 0
    var_value: str | None = None
    cores: str | None = None
    input_size: str | None = None
    extra_args: str | None = None
    warmup: int | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dict."""
        return {f: getattr(self, f) for f in self.__dataclass_fields__}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MeasurementRow:
        """Deserialize from a dict, ignoring unknown fields."""
        known = {f.name for f in cls.__dataclass_fields__.values()}
        filtered = {k: v for k, v in data.items() if k in known}
        return cls(**filtered)


# ---------------------------------------------------------------------------
# Shared, immutable descriptors
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RunSettings:
    """Settings of one command line, shared by every series that uses it."""

    cmdline: str
    simplified_cmdline: str
    var_value: str | None = None
    cores: str | None = None
    input_size: str | None = None
    extra_args: str | None = None
    warmup: int | None = None


@dataclass(frozen=True)
class CriterionData:
    """A measured quantity and its unit."""

    name: str
    unit: str


# ---------------------------------------------------------------------------
# Series and per-benchmark results
# ---------------------------------------------------------------------------


@dataclass(eq=False)
class Measurements:
    """One series: a fixed identity plus its invocation/iteration grid.

    ``values[i][j]`` is the value of invocation ``i + 1``, iteration
    ``j + 1``.  Slots not (yet) filled are ``None``.
    """

    criterion: CriterionData
    run_settings: RunSettings
    env_id: int
    commit_id: str
    run_id: int
    trial_id: int
    exp_id: int = 0
    values: list[list[float | None]] = field(default_factory=list)

    def matches(self, row: MeasurementRow) -> bool:
        """True if *row* belongs to this series."""
        return (
            self.env_id == row.env_id
            and self.commit_id == row.commit_id
            and self.run_id == row.run_id
            and self.trial_id == row.trial_id
            and self.criterion.name == row.criterion
        )

    def set_value(self, invocation: int, iteration: int, value: float) -> None:
        """Store *value* at the 1-based (invocation, iteration) slot."""
        if invocation < 1 or iteration < 1:
            raise ValueError(
                f"Invocation and iteration are 1-based (got {invocation}, {iteration})"
            )
        while len(self.values) < invocation:
            self.values.append([])
        iterations = self.values[invocation - 1]
        while len(iterations) < iteration:
            iterations.append(None)
        iterations[iteration - 1] = value

    @property
    def num_invocations(self) -> int:
        return len(self.values)

    def all_values(self) -> list[float]:
        """All present values, invocation by invocation."""
        return [v for invocation in self.values for v in invocation if v is not None]


@dataclass(eq=False)
class ProcessedResult:
    """All series of one benchmark within one exe and suite."""

    exe: str
    suite: str
    bench: str
    measurements: list[Measurements] = field(default_factory=list)
    criteria: dict[str, CriterionData] = field(default_factory=dict)
    comparisons: list[RunComparison] = field(default_factory=list)


@dataclass(eq=False)
class ResultsByBenchmark:
    """The benchmarks of one suite and the criteria seen across them."""

    benchmarks: dict[str, ProcessedResult] = field(default_factory=dict)
    criteria: dict[str, CriterionData] = field(default_factory=dict)


ResultsByExeSuiteBenchmark = dict[str, dict[str, ResultsByBenchmark]]


def iter_processed_results(results: ResultsByExeSuiteBenchmark) -> Iterable[ProcessedResult]:
    """Yield every ProcessedResult in hierarchy order."""
    for by_suite in results.values():
        for by_bench in by_suite.values():
            yield from by_bench.benchmarks.values()


# ---------------------------------------------------------------------------
# I/O functions
# ---------------------------------------------------------------------------


def save_rows(path: Path, rows: Iterable[MeasurementRow]) -> int:
    """Write rows to a JSONL file.  Returns the number of rows written."""
    count = 0
    with open(path, "w", encoding="utf-8") as f:
        for row in rows:
            f.write(json.dumps(row.to_dict(), separators=(",", ":")) + "\n")
            count += 1
    log.info("Wrote %d measurement rows to %s", count, path)
    return count


def load_rows(path: Path) -> list[MeasurementRow]:
    """Load measurement rows from a JSONL file.

    Raises:
        FileNotFoundError: If *path* does not exist.
        ValueError: If a line is not a JSON object.
    """
    if not path.exists():
        raise FileNotFoundError(f"No measurement file at {path}")

    rows: list[MeasurementRow] = []
    for lineno, line in enumerate(path.read_text(encoding="utf-8").splitlines(), start=1):
        line = line.strip()
        if not line:
            continue
        data = json.loads(line)
        if not isinstance(data, dict):
            raise ValueError(f"{path}:{lineno}: expected a JSON object, got {type(data).__name__}")
        rows.append(MeasurementRow.from_dict(data))
    return rows
