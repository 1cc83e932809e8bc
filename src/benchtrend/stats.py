"""Summary statistics for timeline entries and comparisons.

Provides descriptive statistics, linear-interpolation percentiles, a
bootstrap confidence interval for the median, and the geometric mean used
to summarize change ratios.  All pure Python; the timeline worker process
imports this module to reduce raw value arrays.

References:
    Bootstrap CI: Efron, B. & Tibshirani, R. J. (1993). "An
        Introduction to the Bootstrap."
"""

from __future__ import annotations

import math
import random
import statistics
from dataclasses import dataclass
from typing import Any, Sequence


# ---------------------------------------------------------------------------
# Descriptive statistics
# ---------------------------------------------------------------------------


@dataclass
class DescriptiveStats:
    """Summary statistics for a sample."""

    n: int
    mean: float
    median: float
    stdev: float
    min: float
    max: float


def describe(values: Sequence[float]) -> DescriptiveStats:
    """Compute descriptive statistics for a sample.

    If n < 2, stdev is 0.0.  An empty sample yields NaN everywhere.
    """
    if not values:
        nan = float("nan")
        return DescriptiveStats(n=0, mean=nan, median=nan, stdev=nan, min=nan, max=nan)

    sorted_v = sorted(values)
    n = len(sorted_v)
    stdev = statistics.stdev(sorted_v) if n >= 2 else 0.0

    return DescriptiveStats(
        n=n,
        mean=statistics.fmean(sorted_v),
        median=statistics.median(sorted_v),
        stdev=stdev,
        min=sorted_v[0],
        max=sorted_v[-1],
    )


def _percentile(sorted_values: Sequence[float], p: float) -> float:
    """Compute the p-th percentile using linear interpolation.

    Equivalent to numpy.percentile with interpolation='linear'.
    Assumes sorted_values is already sorted in ascending order.
    """
    n = len(sorted_values)
    if n == 0:
        return float("nan")
    if n == 1:
        return sorted_values[0]

    k = (n - 1) * p
    f = math.floor(k)
    c = math.ceil(k)
    if f == c:
        return sorted_values[int(k)]
    d = k - f
    return sorted_values[int(f)] * (1 - d) + sorted_values[int(c)] * d


# ---------------------------------------------------------------------------
# Bootstrap confidence interval of the median
# ---------------------------------------------------------------------------


@dataclass
class BootstrapCI:
    """Percentile bootstrap confidence interval for a single sample's median."""

    lower: float
    upper: float
    confidence_level: float
    n_bootstrap: int


def bootstrap_median_ci(
    values: Sequence[float],
    *,
    n_bootstrap: int,
    confidence: float = 0.95,
    rng: random.Random | None = None,
) -> BootstrapCI:
    """Compute a percentile bootstrap confidence interval for the median.

    Draws *n_bootstrap* resamples with replacement, takes the median of
    each, and returns the interpolated percentiles at ``alpha/2`` and
    ``1 - alpha/2``.

    Args:
        values: The observed sample.
        n_bootstrap: Number of resamples (must be positive).
        confidence: Confidence level (default 0.95 for a 95% CI).
        rng: Random generator; a fresh unseeded one if omitted.
    """
    if n_bootstrap < 1:
        raise ValueError(f"n_bootstrap must be positive (got {n_bootstrap})")
    if not values:
        return BootstrapCI(float("nan"), float("nan"), confidence, 0)

    data = list(values)
    if len(data) == 1:
        return BootstrapCI(data[0], data[0], confidence, n_bootstrap)

    rng = rng or random.Random()
    k = len(data)
    medians = sorted(statistics.median(rng.choices(data, k=k)) for _ in range(n_bootstrap))

    alpha = 1 - confidence
    return BootstrapCI(
        lower=_percentile(medians, alpha / 2),
        upper=_percentile(medians, 1 - alpha / 2),
        confidence_level=confidence,
        n_bootstrap=n_bootstrap,
    )


# ---------------------------------------------------------------------------
# Timeline summary statistics
# ---------------------------------------------------------------------------


@dataclass
class SummaryStatistics:
    """Reduced statistics for one (run, trial, criterion) timeline entry."""

    min: float
    max: float
    sd: float
    mean: float
    median: float
    num_samples: int
    bci95low: float | None = None
    bci95up: float | None = None

    @property
    def has_confidence_interval(self) -> bool:
        return self.bci95low is not None and self.bci95up is not None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dict."""
        return {
            "min": self.min,
            "max": self.max,
            "sd": self.sd,
            "mean": self.mean,
            "median": self.median,
            "num_samples": self.num_samples,
            "bci95low": self.bci95low,
            "bci95up": self.bci95up,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SummaryStatistics:
        """Deserialize from a dict, ignoring unknown fields."""
        known = {f.name for f in cls.__dataclass_fields__.values()}
        filtered = {k: v for k, v in data.items() if k in known}
        return cls(**filtered)


def calculate_summary_statistics(
    values: Sequence[float],
    num_bootstrap_samples: int,
    *,
    rng: random.Random | None = None,
) -> SummaryStatistics:
    """Reduce a raw value array to timeline summary statistics.

    With ``num_bootstrap_samples < 1`` the confidence bounds stay ``None``.

    Raises:
        ValueError: If *values* is empty.
    """
    if not values:
        raise ValueError("Cannot summarize an empty sample")

    desc = describe(values)
    stats = SummaryStatistics(
        min=desc.min,
        max=desc.max,
        sd=desc.stdev,
        mean=desc.mean,
        median=desc.median,
        num_samples=desc.n,
    )

    if num_bootstrap_samples > 0:
        ci = bootstrap_median_ci(values, n_bootstrap=num_bootstrap_samples, rng=rng)
        stats.bci95low = ci.lower
        stats.bci95up = ci.upper

    return stats


# ---------------------------------------------------------------------------
# Geometric mean
# ---------------------------------------------------------------------------


def geomean(values: Sequence[float]) -> float:
    """Geometric mean of the positive, finite entries of *values*.

    Returns NaN if no entry qualifies.
    """
    usable = [v for v in values if v > 0 and math.isfinite(v)]
    if not usable:
        return float("nan")
    return statistics.geometric_mean(usable)
