"""Recording of benchmark result payloads.

A payload is the JSON document a benchmark harness uploads after a run::

    {
      "projectName": "...", "experimentName": "...", "startTime": "...",
      "source": {"commitId": "...", ...},
      "env": {"hostName": "...", ...},
      "criteria": [{"i": 0, "c": "total", "u": "ms"}, ...],
      "data": [
        {"run_id": {"benchmark": {"name": ..., "suite": {"name": ...,
                     "executor": {"name": ...}}, "run_details": {"warmup": ...}},
                    "cmdline": ..., "var_value": ..., "cores": ...,
                    "input_size": ..., "extra_args": ...},
         "d": [{"in": 1, "it": 1, "m": [{"c": 0, "v": 12.3}, ...]}, ...]},
        ...
      ]
    }

:class:`MeasurementRecorder` stores the values and queues them for the
timeline updater, one ``add_values`` call per (run, trial, criterion,
invocation).
"""

from __future__ import annotations

import logging
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Any

from benchtrend.config import EngineConfig
from benchtrend.db import InMemoryDatabase, RunInfo
from benchtrend.timeline.updater import BatchingTimelineUpdater, WorkerFactory

log = logging.getLogger("benchtrend")


class PayloadError(ValueError):
    """A payload is missing required fields or is malformed."""


@dataclass
class RecordedPayload:
    """Outcome of :meth:`MeasurementRecorder.record_payload`."""

    trial_id: int
    num_runs: int
    num_measurements: int
    timeline_future: Future[int] | None = None


# ---------------------------------------------------------------------------
# Payload parsing helpers
# ---------------------------------------------------------------------------


def _require(data: dict[str, Any], key: str, where: str) -> Any:
    if not isinstance(data, dict):
        raise PayloadError(f"{where} must be an object, got {type(data).__name__}")
    value = data.get(key)
    if value is None:
        raise PayloadError(f"{where} misses '{key}'")
    return value


def _optional_str(value: Any) -> str | None:
    return None if value is None else str(value)


def _as_float(value: Any) -> float:
    if isinstance(value, bool):
        raise PayloadError(f"Measured value must be a number, got {value!r}")
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise PayloadError(f"Measured value must be a number, got {value!r}") from exc


def _as_slot(value: Any, key: str) -> int:
    """Validate a 1-based invocation or iteration number."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise PayloadError(f"Data point '{key}' must be an integer, got {value!r}")
    if value < 1:
        raise PayloadError(f"Data point '{key}' is 1-based, got {value}")
    return value


def parse_run_info(run_id: dict[str, Any]) -> RunInfo:
    """Build a RunInfo from a payload's ``run_id`` object."""
    benchmark = _require(run_id, "benchmark", "run_id")
    suite = _require(benchmark, "suite", "run_id.benchmark")
    executor = _require(suite, "executor", "run_id.benchmark.suite")
    run_details = benchmark.get("run_details") or {}

    return RunInfo(
        exe=str(_require(executor, "name", "executor")),
        suite=str(_require(suite, "name", "suite")),
        bench=str(_require(benchmark, "name", "benchmark")),
        cmdline=str(_require(run_id, "cmdline", "run_id")),
        var_value=_optional_str(run_id.get("var_value")),
        cores=_optional_str(run_id.get("cores")),
        input_size=_optional_str(run_id.get("input_size")),
        extra_args=_optional_str(run_id.get("extra_args")),
        warmup=run_details.get("warmup"),
    )


# (invocation, iteration, criterion index, value)
_Point = tuple[int, int, Any, float]


def _parse_points(run: dict[str, Any], criteria: dict[Any, tuple[str, str]]) -> list[_Point]:
    points: list[_Point] = []
    for point in run.get("d") or []:
        invocation = _as_slot(_require(point, "in", "data point"), "in")
        iteration = _as_slot(_require(point, "it", "data point"), "it")
        for measure in point.get("m") or []:
            index = _require(measure, "c", "measure")
            if not isinstance(index, (int, str)) or index not in criteria:
                raise PayloadError(f"Measure refers to unknown criterion index {index!r}")
            value = _as_float(_require(measure, "v", "measure"))
            points.append((invocation, iteration, index, value))
    return points


# ---------------------------------------------------------------------------
# Recorder
# ---------------------------------------------------------------------------


class MeasurementRecorder:
    """Stores payloads and keeps the timeline up to date.

    With ``config.timeline_enabled`` (the default) a
    :class:`BatchingTimelineUpdater` and its worker process are started;
    call :meth:`shutdown` (or use the recorder as a context manager) to
    stop them.
    """

    def __init__(
        self,
        db: InMemoryDatabase | None = None,
        config: EngineConfig | None = None,
        *,
        worker_factory: WorkerFactory | None = None,
    ) -> None:
        self.db = db if db is not None else InMemoryDatabase()
        self.config = config or EngineConfig()
        self.updater: BatchingTimelineUpdater | None = None
        if self.config.timeline_enabled:
            self.updater = BatchingTimelineUpdater(
                self.db,
                self.config.num_bootstrap_samples,
                seed=self.config.bootstrap_seed,
                worker_factory=worker_factory,
            )

    def __enter__(self) -> MeasurementRecorder:
        return self

    def __exit__(self, *exc: object) -> None:
        self.shutdown()

    def record_payload(self, payload: dict[str, Any]) -> RecordedPayload:
        """Store all measurements of *payload* and submit timeline jobs.

        Values already stored for the same slot are not stored or queued
        again.

        The whole payload is validated before anything is stored, so a
        rejected payload leaves the database unchanged.

        Raises:
            PayloadError: If required fields are missing or malformed.
        """
        start_time = _require(payload, "startTime", "payload")
        source = _require(payload, "source", "payload")
        commit_id = str(_require(source, "commitId", "source"))
        env = payload.get("env") or {}
        project = str(payload.get("projectName") or "default")
        experiment = str(payload.get("experimentName") or start_time)

        criteria: dict[Any, tuple[str, str]] = {}
        for criterion in payload.get("criteria") or []:
            key = _require(criterion, "i", "criterion")
            if not isinstance(key, (int, str)):
                raise PayloadError(f"Criterion index must be an integer or string, got {key!r}")
            criteria[key] = (
                str(_require(criterion, "c", "criterion")),
                str(_require(criterion, "u", "criterion")),
            )

        runs = payload.get("data") or []
        parsed = [
            (parse_run_info(_require(run, "run_id", "run")), _parse_points(run, criteria))
            for run in runs
        ]

        criterion_ids = {
            key: self.db.criterion_id(name, unit) for key, (name, unit) in criteria.items()
        }
        env_id = self.db.environment_id(str(env.get("hostName") or "unknown"))
        exp_id = self.db.experiment_id(project, experiment)
        trial_id = self.db.trial_id(exp_id, env_id, str(start_time), commit_id)

        num_measurements = 0
        for run_info, points in parsed:
            run_id = self.db.run_id(run_info)
            num_measurements += self._record_run(run_id, trial_id, points, criterion_ids)

        log.info(
            "Stored %d measurements of %d runs for %s/%s",
            num_measurements,
            len(runs),
            project,
            experiment,
        )

        future = self.updater.submit_update_jobs() if self.updater is not None else None
        return RecordedPayload(
            trial_id=trial_id,
            num_runs=len(runs),
            num_measurements=num_measurements,
            timeline_future=future,
        )

    def _record_run(
        self,
        run_id: int,
        trial_id: int,
        points: list[_Point],
        criterion_ids: dict[Any, int],
    ) -> int:
        # (criterion_id, invocation) -> newly stored values in iteration order
        queued: dict[tuple[int, int], list[float]] = {}
        count = 0

        for invocation, iteration, index, value in points:
            criterion_id = criterion_ids[index]
            if self.db.record_measurement(
                run_id, trial_id, criterion_id, invocation, iteration, value
            ):
                queued.setdefault((criterion_id, invocation), []).append(value)
                count += 1

        if self.updater is not None:
            for (criterion_id, _invocation), values in queued.items():
                self.updater.add_values(run_id, trial_id, criterion_id, values)
        return count

    def perform_timeline_update(self) -> Future[int] | None:
        """Re-queue every stored measurement and submit one wave.

        Returns without waiting for the wave.  Failures are logged.
        """
        if self.updater is None:
            log.warning("Timeline updates are disabled; nothing to do")
            return None
        try:
            for run_id, trial_id, criterion_id, _inv, values in self.db.iter_invocations():
                self.updater.add_values(run_id, trial_id, criterion_id, values)
            return self.updater.submit_update_jobs()
        except Exception:
            log.exception("Timeline update failed")
            return None

    def await_quiescent_timeline_updater(self, timeout: float | None = None) -> int:
        """Wait for the most recent timeline wave; 0 if timelines are disabled."""
        if self.updater is None:
            return 0
        if timeout is None:
            timeout = self.config.quiescence_timeout
        return self.updater.await_quiescence(timeout)

    def shutdown(self, timeout: float | None = None) -> None:
        """Stop the timeline worker and wait until it has exited."""
        if self.updater is None:
            return
        self.updater.shutdown().result(timeout=timeout)
