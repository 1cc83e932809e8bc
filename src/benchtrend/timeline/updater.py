"""Batching of timeline statistics work.

Ingestion calls :meth:`BatchingTimelineUpdater.add_values` for every
(run, trial, criterion) it records; values for the same key accumulate in
one pending job.  :meth:`~BatchingTimelineUpdater.submit_update_jobs`
sends everything pending to the worker as one wave and returns a
:class:`~concurrent.futures.Future` that resolves to the number of jobs
once every result has been recorded in the database.

Only one wave is tracked at a time.  Values added while a wave is in
flight go into the next one.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future
from typing import Callable, Iterable

from benchtrend.db import Database
from benchtrend.perf import PerfTracker
from benchtrend.timeline.jobs import (
    ComputeJob,
    ComputeRequest,
    ComputeResults,
    job_key,
)
from benchtrend.timeline.worker import ResultReceiver, TimelineWorker

log = logging.getLogger("benchtrend")

WorkerFactory = Callable[..., TimelineWorker]

GENERATE_TIMELINE = "generate-timeline"


class BatchingTimelineUpdater:
    """Coalesces timeline updates into waves of worker requests.

    Args:
        db: Receives one ``record_timeline`` call per computed result.
        num_bootstrap_samples: Passed once to the worker.
        seed: Optional bootstrap seed, passed to the worker.
        perf: Tracker for the ``generate-timeline`` span.
        worker_factory: Called as ``worker_factory(num_bootstrap_samples,
            receiver, seed=seed)``; defaults to :class:`TimelineWorker`.
    """

    def __init__(
        self,
        db: Database,
        num_bootstrap_samples: int,
        *,
        seed: int | None = None,
        perf: PerfTracker | None = None,
        worker_factory: WorkerFactory | None = None,
    ) -> None:
        self._db = db
        self._perf = perf or PerfTracker()
        self._lock = threading.Lock()

        self._jobs: dict[str, ComputeJob] = {}
        self.active_requests = 0
        self._requests_at_start = 0
        self._future: Future[int] | None = None

        factory = worker_factory or TimelineWorker
        receiver: ResultReceiver = self
        self._worker = factory(num_bootstrap_samples, receiver, seed=seed)

    @property
    def perf(self) -> PerfTracker:
        return self._perf

    @property
    def num_pending_jobs(self) -> int:
        with self._lock:
            return len(self._jobs)

    def pending_values(self, run_id: int, trial_id: int, criterion_id: int) -> list[float]:
        """Copy of the values queued for one key (empty if none)."""
        with self._lock:
            job = self._jobs.get(job_key(run_id, trial_id, criterion_id))
            return list(job.values) if job is not None else []

    # -- ingestion side ----------------------------------------------------

    def add_values(
        self,
        run_id: int,
        trial_id: int,
        criterion_id: int,
        values: Iterable[float | None],
    ) -> None:
        """Queue *values*, dropping ``None`` entries.  Never blocks on the worker."""
        present = [v for v in values if v is not None]
        if not present:
            return

        key = job_key(run_id, trial_id, criterion_id)
        with self._lock:
            job = self._jobs.get(key)
            if job is None:
                self._jobs[key] = ComputeJob(
                    run_id=run_id,
                    trial_id=trial_id,
                    criterion_id=criterion_id,
                    values=present,
                )
            else:
                job.values.extend(present)

    def submit_update_jobs(self) -> Future[int]:
        """Send all pending jobs to the worker as one wave.

        The returned future resolves to the number of jobs sent, or
        immediately to 0 if nothing was pending.
        """
        request_start = self._perf.start_request()
        jobs = self.consume_update_jobs()
        return self.process_update_jobs(jobs, request_start)

    def consume_update_jobs(self) -> list[ComputeJob]:
        """Take and clear the pending jobs."""
        with self._lock:
            jobs = list(self._jobs.values())
            self._jobs.clear()
        return jobs

    def process_update_jobs(self, jobs: list[ComputeJob], request_start: float) -> Future[int]:
        """Dispatch *jobs* as one request and track their completion."""
        future: Future[int] = Future()
        if not jobs:
            future.set_result(0)
            return future

        with self._lock:
            if self.active_requests:
                log.warning(
                    "Starting a timeline wave while %d jobs of the previous wave are outstanding",
                    self.active_requests,
                )
            self.active_requests += len(jobs)
            self._requests_at_start = self.active_requests
            self._future = future

        log.debug("Submitting %d timeline jobs", len(jobs))
        self._worker.send_request(ComputeRequest(jobs=jobs, request_start=request_start))
        return future

    # -- worker side -------------------------------------------------------

    def receive_results(self, results: ComputeResults) -> None:
        """Record *results* in arrival order and complete the wave when done.

        A failing ``record_timeline`` call propagates and the remaining
        results of this message are not recorded; the wave then never
        completes.
        """
        for result in results.results:
            self._db.record_timeline(
                result.run_id,
                result.trial_id,
                result.criterion_id,
                result.stats,
            )

        with self._lock:
            self.active_requests -= len(results.results)
            if self.active_requests < 0:
                log.warning("Received %d more timeline results than requested", -self.active_requests)
                self.active_requests = 0
                return
            if self.active_requests != 0:
                return
            future = self._future
            num_jobs = self._requests_at_start

        if future is None or future.done():
            return
        future.set_result(num_jobs)
        self._perf.complete_request(results.request_start, GENERATE_TIMELINE)
        log.info("Timeline wave of %d jobs completed", num_jobs)

    # -- completion --------------------------------------------------------

    def get_quiescence_future(self) -> Future[int] | None:
        """The future of the most recent wave, or ``None`` before the first."""
        with self._lock:
            return self._future

    def await_quiescence(self, timeout: float | None = None) -> int:
        """Block until the most recent wave completes; 0 if there was none.

        Raises:
            concurrent.futures.TimeoutError: If *timeout* elapses first.
        """
        future = self.get_quiescence_future()
        if future is None:
            return 0
        return future.result(timeout=timeout)

    def shutdown(self) -> Future[None]:
        """Stop the worker.  Repeated calls return the same future."""
        return self._worker.shutdown()
