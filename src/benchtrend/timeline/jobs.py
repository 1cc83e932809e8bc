"""Messages exchanged with the timeline statistics worker.

Requests and responses are plain dataclasses so they pickle across the
process boundary.  Besides these, the parent may send :data:`EXIT` and
the worker answers it with :data:`EXITING`.
"""

from __future__ import annotations

import random
from dataclasses import dataclass, field

from benchtrend.stats import SummaryStatistics, calculate_summary_statistics

EXIT = "exit"
EXITING = "exiting"


def job_key(run_id: int, trial_id: int, criterion_id: int) -> str:
    """Key of the pending-job table: ``"trial-run-criterion"``."""
    return f"{trial_id}-{run_id}-{criterion_id}"


@dataclass
class ComputeJob:
    """Raw values of one (run, trial, criterion), missing entries removed."""

    run_id: int
    trial_id: int
    criterion_id: int
    values: list[float] = field(default_factory=list)

    @property
    def key(self) -> str:
        return job_key(self.run_id, self.trial_id, self.criterion_id)


@dataclass
class ComputeRequest:
    jobs: list[ComputeJob]
    request_start: float


@dataclass
class ComputeResult:
    run_id: int
    trial_id: int
    criterion_id: int
    stats: SummaryStatistics


@dataclass
class ComputeResults:
    results: list[ComputeResult]
    request_start: float


@dataclass
class WorkerFailure:
    """An error the worker caught while handling a request."""

    message: str
    request_start: float | None = None


def compute_job(
    job: ComputeJob,
    num_bootstrap_samples: int,
    seed: int | None = None,
) -> ComputeResult:
    """Reduce one job to summary statistics.

    Each job draws from its own generator.  With a *seed*, the generator is
    derived from the seed and the job key, so results do not depend on the
    order in which jobs are processed.
    """
    rng = random.Random(None if seed is None else f"{seed}-{job.key}")
    stats = calculate_summary_statistics(job.values, num_bootstrap_samples, rng=rng)
    return ComputeResult(
        run_id=job.run_id,
        trial_id=job.trial_id,
        criterion_id=job.criterion_id,
        stats=stats,
    )


def compute_request(
    request: ComputeRequest,
    num_bootstrap_samples: int,
    seed: int | None = None,
) -> ComputeResults:
    """Reduce every job of *request*, keeping its start marker."""
    results = [compute_job(job, num_bootstrap_samples, seed) for job in request.jobs]
    return ComputeResults(results=results, request_start=request.request_start)
