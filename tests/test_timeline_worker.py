"""Tests for benchtrend.timeline.jobs and benchtrend.timeline.worker."""

from __future__ import annotations

import multiprocessing
import os
import queue
import signal
import threading
import time
import unittest
from concurrent.futures import TimeoutError as FutureTimeoutError

from benchtrend.db import InMemoryDatabase
from benchtrend.timeline.jobs import (
    EXIT,
    EXITING,
    ComputeJob,
    ComputeRequest,
    ComputeResults,
    WorkerFailure,
    compute_job,
    compute_request,
    job_key,
)
from benchtrend.timeline.updater import BatchingTimelineUpdater
from benchtrend.timeline.worker import TimelineWorker, _worker_main

# Spawned interpreters can be slow to start on loaded CI machines.
_PROCESS_TIMEOUT = 60


class CollectingReceiver:
    def __init__(self) -> None:
        self.received: queue.Queue[ComputeResults] = queue.Queue()

    def receive_results(self, results: ComputeResults) -> None:
        self.received.put(results)


def _wait_until_stopped(worker: TimelineWorker, timeout: float = _PROCESS_TIMEOUT) -> None:
    deadline = time.monotonic() + timeout
    while worker.is_running:
        if time.monotonic() > deadline:
            raise AssertionError("timeline worker did not stop")
        time.sleep(0.01)


class TestJobs(unittest.TestCase):
    def test_job_key(self) -> None:
        self.assertEqual(job_key(run_id=1, trial_id=2, criterion_id=3), "2-1-3")
        self.assertEqual(ComputeJob(1, 2, 3, [1.0]).key, "2-1-3")

    def test_compute_job(self) -> None:
        result = compute_job(ComputeJob(4, 5, 6, [3.0, 1.0, 2.0]), 100, seed=1)
        self.assertEqual((result.run_id, result.trial_id, result.criterion_id), (4, 5, 6))
        self.assertEqual(result.stats.median, 2.0)
        self.assertEqual(result.stats.num_samples, 3)
        self.assertTrue(result.stats.has_confidence_interval)

    def test_seeded_jobs_independent_of_order(self) -> None:
        a = ComputeJob(1, 1, 1, [1.0, 4.0, 2.0, 8.0, 5.0])
        b = ComputeJob(2, 1, 1, [3.0, 9.0, 1.0, 7.0])
        forward = compute_request(ComputeRequest([a, b], 1.0), 200, seed=3)
        backward = compute_request(ComputeRequest([b, a], 1.0), 200, seed=3)
        self.assertEqual(forward.results[0].stats, backward.results[1].stats)
        self.assertEqual(forward.results[1].stats, backward.results[0].stats)
        self.assertEqual(forward.request_start, 1.0)


class TestWorkerMain(unittest.TestCase):
    """Runs the worker loop on a thread over an in-process pipe."""

    def setUp(self) -> None:
        self.parent, child = multiprocessing.Pipe(duplex=True)
        self.thread = threading.Thread(target=_worker_main, args=(child, 20, 0), daemon=True)
        self.thread.start()

    def tearDown(self) -> None:
        if self.thread.is_alive():
            self.parent.send(EXIT)
            self.parent.recv()
        self.thread.join(5)
        self.parent.close()

    def test_request_and_exit(self) -> None:
        self.parent.send(ComputeRequest([ComputeJob(1, 1, 1, [1.0, 2.0])], 12.5))
        response = self.parent.recv()
        self.assertIsInstance(response, ComputeResults)
        self.assertEqual(response.request_start, 12.5)
        self.assertEqual(response.results[0].stats.median, 1.5)

        self.parent.send(EXIT)
        self.assertEqual(self.parent.recv(), EXITING)
        self.thread.join(5)
        self.assertFalse(self.thread.is_alive())

    def test_failure_is_reported(self) -> None:
        self.parent.send(ComputeRequest([ComputeJob(1, 1, 1, ["x"])], 3.0))
        response = self.parent.recv()
        self.assertIsInstance(response, WorkerFailure)
        self.assertEqual(response.request_start, 3.0)
        self.assertIn("TypeError", response.message)

        # The worker keeps serving after a failure.
        self.parent.send(ComputeRequest([ComputeJob(1, 1, 1, [4.0])], 4.0))
        self.assertIsInstance(self.parent.recv(), ComputeResults)


class TestTimelineWorker(unittest.TestCase):
    """Exercises the real worker process."""

    def test_round_trip_and_shutdown(self) -> None:
        receiver = CollectingReceiver()
        worker = TimelineWorker(50, receiver, seed=1)
        try:
            self.assertTrue(worker.is_running)
            worker.send_request(ComputeRequest([ComputeJob(1, 2, 3, [5.0, 6.0, 7.0])], 1.0))
            response = receiver.received.get(timeout=_PROCESS_TIMEOUT)
            self.assertEqual(response.results[0].stats.median, 6.0)
        finally:
            first = worker.shutdown()
        second = worker.shutdown()
        self.assertIs(first, second)
        self.assertIsNone(first.result(timeout=_PROCESS_TIMEOUT))
        self.assertFalse(worker.is_running)

    def test_send_after_shutdown_is_dropped(self) -> None:
        worker = TimelineWorker(10, CollectingReceiver())
        worker.shutdown().result(timeout=_PROCESS_TIMEOUT)
        with self.assertLogs("benchtrend", level="ERROR"):
            worker.send_request(ComputeRequest([ComputeJob(1, 1, 1, [1.0])], 0.0))

    @unittest.skipUnless(hasattr(signal, "SIGKILL"), "needs SIGKILL")
    def test_crash_is_logged_and_shutdown_still_resolves(self) -> None:
        worker = TimelineWorker(10, CollectingReceiver())
        with self.assertLogs("benchtrend", level="ERROR") as cm:
            os.kill(worker.pid, signal.SIGKILL)
            _wait_until_stopped(worker)
        self.assertTrue(any("exited unexpectedly" in line for line in cm.output))
        self.assertIsNone(worker.shutdown().result(timeout=5))


class TestUpdaterWithWorkerProcess(unittest.TestCase):
    def test_wave_completes(self) -> None:
        db = InMemoryDatabase()
        updater = BatchingTimelineUpdater(db, 50, seed=2)
        try:
            updater.add_values(1, 1, 1, [1.0, 2.0, 3.0])
            updater.add_values(2, 1, 1, [4.0, None, 6.0])
            future = updater.submit_update_jobs()
            self.assertEqual(future.result(timeout=_PROCESS_TIMEOUT), 2)
            self.assertEqual(db.get_timeline(2, 1, 1).median, 5.0)
        finally:
            updater.shutdown().result(timeout=_PROCESS_TIMEOUT)

    def test_worker_error_leaves_wave_unresolved(self) -> None:
        db = InMemoryDatabase()
        updater = BatchingTimelineUpdater(db, 10)
        updater.add_values(1, 1, 1, ["not a number"])
        future = updater.submit_update_jobs()

        with self.assertLogs("benchtrend", level="ERROR") as cm:
            with self.assertRaises(FutureTimeoutError):
                future.result(timeout=2)
            # Requests are served in order, so the failure is logged before exit.
            updater.shutdown().result(timeout=_PROCESS_TIMEOUT)

        self.assertTrue(any("failed to process" in line for line in cm.output))
        self.assertFalse(future.done())
        self.assertEqual(db.timeline_entries(), [])


if __name__ == "__main__":
    unittest.main()
