"""Request performance tracking.

Spans are measured with the monotonic clock and kept in memory.  The
timeline updater closes a ``generate-timeline`` span when a wave
completes, from the worker listener thread, so the tracker is guarded by
a lock.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass

log = logging.getLogger("benchtrend")


@dataclass
class PerfSpan:
    """One completed request."""

    name: str
    start: float  # time.monotonic() value
    duration_s: float


@dataclass
class PerfSummary:
    name: str
    count: int
    total_s: float

    @property
    def mean_s(self) -> float:
        return self.total_s / self.count if self.count else 0.0


class PerfTracker:
    """Collects durations of named requests."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._spans: list[PerfSpan] = []

    @staticmethod
    def start_request() -> float:
        """Return a start marker for :meth:`complete_request`."""
        return time.monotonic()

    def complete_request(self, start: float, name: str) -> float:
        """Record a span from *start* until now.  Returns its duration."""
        duration = time.monotonic() - start
        with self._lock:
            self._spans.append(PerfSpan(name=name, start=start, duration_s=duration))
        log.debug("Request %s completed in %.3fs", name, duration)
        return duration

    @property
    def spans(self) -> list[PerfSpan]:
        with self._lock:
            return list(self._spans)

    def summary(self) -> list[PerfSummary]:
        """Count and total duration per span name, in first-seen order."""
        by_name: dict[str, PerfSummary] = {}
        for span in self.spans:
            entry = by_name.get(span.name)
            if entry is None:
                entry = PerfSummary(name=span.name, count=0, total_s=0.0)
                by_name[span.name] = entry
            entry.count += 1
            entry.total_s += span.duration_s
        return list(by_name.values())
