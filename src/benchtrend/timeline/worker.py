"""Out-of-process statistics worker and its parent-side handle.

The worker runs in a ``spawn``-context process and talks to the parent
over a duplex pipe.  The parent side, :class:`TimelineWorker`, owns a
daemon listener thread that hands results to a :class:`ResultReceiver`.

Faults are only logged:

- a :class:`WorkerFailure` reported by the worker,
- the pipe closing without an ``"exiting"`` acknowledgement (crash),
- an exception raised by the receiver while recording results.

In every case the affected wave is never completed and nothing is retried.
"""

from __future__ import annotations

import logging
import multiprocessing
import threading
from concurrent.futures import Future
from multiprocessing.connection import Connection
from typing import Protocol

from benchtrend.timeline.jobs import (
    EXIT,
    EXITING,
    ComputeRequest,
    ComputeResults,
    WorkerFailure,
    compute_request,
)

log = logging.getLogger("benchtrend")

_JOIN_TIMEOUT_S = 5.0


class ResultReceiver(Protocol):
    def receive_results(self, results: ComputeResults) -> None: ...


# ---------------------------------------------------------------------------
# Worker process
# ---------------------------------------------------------------------------


def _worker_main(conn: Connection, num_bootstrap_samples: int, seed: int | None) -> None:
    """Serve compute requests until ``"exit"`` arrives or the pipe closes."""
    try:
        while True:
            try:
                message = conn.recv()
            except EOFError:
                break
            if message == EXIT:
                conn.send(EXITING)
                break
            try:
                response = compute_request(message, num_bootstrap_samples, seed)
            except Exception as exc:
                conn.send(
                    WorkerFailure(
                        message=f"{type(exc).__name__}: {exc}",
                        request_start=getattr(message, "request_start", None),
                    )
                )
                continue
            conn.send(response)
    finally:
        conn.close()


# ---------------------------------------------------------------------------
# Parent-side handle
# ---------------------------------------------------------------------------


class TimelineWorker:
    """Starts the statistics worker and relays its responses.

    Args:
        num_bootstrap_samples: Fixed for the lifetime of the worker.
        receiver: Gets every :class:`ComputeResults`, on the listener thread.
        seed: Makes bootstrap resampling reproducible.
    """

    def __init__(
        self,
        num_bootstrap_samples: int,
        receiver: ResultReceiver,
        *,
        seed: int | None = None,
    ) -> None:
        self._receiver = receiver
        self._lock = threading.Lock()
        self._released = False
        self._shutdown_future: Future[None] | None = None

        ctx = multiprocessing.get_context("spawn")
        self._conn, child_conn = ctx.Pipe(duplex=True)
        self._process = ctx.Process(
            target=_worker_main,
            args=(child_conn, num_bootstrap_samples, seed),
            name="benchtrend-timeline-worker",
            daemon=True,
        )
        self._process.start()
        child_conn.close()
        self.pid = self._process.pid

        self._listener = threading.Thread(
            target=self._listen,
            name="timeline-listener",
            daemon=True,
        )
        self._listener.start()
        log.info(
            "Started timeline worker (pid %s, %d bootstrap samples)",
            self.pid,
            num_bootstrap_samples,
        )

    @property
    def is_running(self) -> bool:
        with self._lock:
            return not self._released

    def send_request(self, request: ComputeRequest) -> None:
        """Send *request* to the worker; dropped with an error log if it is gone."""
        self._send(request)

    def _send(self, message: object) -> bool:
        with self._lock:
            if self._released:
                log.error("Timeline worker is not running; dropping %s", type(message).__name__)
                return False
            try:
                self._conn.send(message)
            except OSError as exc:
                log.error("Could not send to timeline worker: %s", exc)
                return False
        return True

    # -- listener thread ---------------------------------------------------

    def _listen(self) -> None:
        while True:
            try:
                message = self._conn.recv()
            except (EOFError, OSError):
                log.error("Timeline worker exited unexpectedly")
                break
            if message == EXITING:
                log.debug("Timeline worker acknowledged exit")
                break
            self._process_response(message)
        self._release()

    def _process_response(self, message: object) -> None:
        if isinstance(message, WorkerFailure):
            log.error("Timeline worker failed to process request: %s", message.message)
            return
        if not isinstance(message, ComputeResults):
            log.error("Unexpected message from timeline worker: %r", message)
            return
        try:
            self._receiver.receive_results(message)
        except Exception:
            log.exception("Failed to record timeline results")

    def _release(self) -> None:
        self._process.join(_JOIN_TIMEOUT_S)
        if self._process.is_alive():
            log.warning("Timeline worker did not exit; terminating it")
            self._process.terminate()
            self._process.join()
        log.info("Timeline worker exited with code %s", self._process.exitcode)
        self._process.close()

        with self._lock:
            self._released = True
            self._conn.close()
            future = self._shutdown_future
        if future is not None and not future.done():
            future.set_result(None)

    # -- shutdown ----------------------------------------------------------

    def shutdown(self) -> Future[None]:
        """Ask the worker to exit.

        Idempotent: every call returns the same future, which resolves once
        the worker has acknowledged and its process and pipe are released.
        """
        with self._lock:
            if self._shutdown_future is not None:
                return self._shutdown_future
            future: Future[None] = Future()
            self._shutdown_future = future
            released = self._released

        if released:
            future.set_result(None)
        elif not self._send(EXIT):
            # The listener releases resources when the pipe reports EOF.
            log.warning("Could not ask timeline worker to exit; waiting for it to stop")
        return future
