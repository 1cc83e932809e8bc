"""Tests for benchtrend.stats — descriptive and bootstrap statistics."""

from __future__ import annotations

import math
import random
import unittest

from benchtrend.stats import (
    SummaryStatistics,
    _percentile,
    bootstrap_median_ci,
    calculate_summary_statistics,
    describe,
    geomean,
)


class TestDescribe(unittest.TestCase):
    def test_basic_sample(self) -> None:
        d = describe([3.0, 1.0, 2.0, 4.0])
        self.assertEqual(d.n, 4)
        self.assertAlmostEqual(d.mean, 2.5)
        self.assertAlmostEqual(d.median, 2.5)
        self.assertEqual(d.min, 1.0)
        self.assertEqual(d.max, 4.0)
        self.assertGreater(d.stdev, 0)

    def test_single_value_has_zero_stdev(self) -> None:
        d = describe([7.0])
        self.assertEqual(d.stdev, 0.0)
        self.assertEqual(d.median, 7.0)

    def test_empty_is_nan(self) -> None:
        d = describe([])
        self.assertEqual(d.n, 0)
        self.assertTrue(math.isnan(d.mean))


class TestPercentile(unittest.TestCase):
    def test_interpolates(self) -> None:
        self.assertAlmostEqual(_percentile([1.0, 2.0, 3.0, 4.0], 0.5), 2.5)
        self.assertEqual(_percentile([1.0, 2.0, 3.0], 0.0), 1.0)
        self.assertEqual(_percentile([1.0, 2.0, 3.0], 1.0), 3.0)

    def test_degenerate(self) -> None:
        self.assertTrue(math.isnan(_percentile([], 0.5)))
        self.assertEqual(_percentile([5.0], 0.3), 5.0)


class TestBootstrapMedianCI(unittest.TestCase):
    def test_interval_contains_median(self) -> None:
        values = [10.0, 11.0, 12.0, 13.0, 14.0, 15.0, 16.0]
        ci = bootstrap_median_ci(values, n_bootstrap=500, rng=random.Random(1))
        self.assertLessEqual(ci.lower, 13.0)
        self.assertGreaterEqual(ci.upper, 13.0)
        self.assertGreaterEqual(ci.lower, min(values))
        self.assertLessEqual(ci.upper, max(values))
        self.assertEqual(ci.n_bootstrap, 500)

    def test_seeded_is_reproducible(self) -> None:
        values = [1.0, 5.0, 2.0, 8.0, 3.0]
        a = bootstrap_median_ci(values, n_bootstrap=200, rng=random.Random(42))
        b = bootstrap_median_ci(values, n_bootstrap=200, rng=random.Random(42))
        self.assertEqual((a.lower, a.upper), (b.lower, b.upper))

    def test_single_value(self) -> None:
        ci = bootstrap_median_ci([4.0], n_bootstrap=10)
        self.assertEqual((ci.lower, ci.upper), (4.0, 4.0))

    def test_empty_sample_is_nan(self) -> None:
        ci = bootstrap_median_ci([], n_bootstrap=10)
        self.assertTrue(math.isnan(ci.lower))

    def test_rejects_non_positive_resamples(self) -> None:
        with self.assertRaises(ValueError):
            bootstrap_median_ci([1.0, 2.0], n_bootstrap=0)


class TestSummaryStatistics(unittest.TestCase):
    def test_reduces_values(self) -> None:
        stats = calculate_summary_statistics([1.0, 2.0, 3.0], 100, rng=random.Random(0))
        self.assertEqual(stats.min, 1.0)
        self.assertEqual(stats.max, 3.0)
        self.assertEqual(stats.median, 2.0)
        self.assertAlmostEqual(stats.mean, 2.0)
        self.assertAlmostEqual(stats.sd, 1.0)
        self.assertEqual(stats.num_samples, 3)
        self.assertTrue(stats.has_confidence_interval)

    def test_no_bootstrap(self) -> None:
        stats = calculate_summary_statistics([1.0, 2.0], 0)
        self.assertIsNone(stats.bci95low)
        self.assertIsNone(stats.bci95up)
        self.assertFalse(stats.has_confidence_interval)

    def test_empty_raises(self) -> None:
        with self.assertRaises(ValueError):
            calculate_summary_statistics([], 10)

    def test_dict_round_trip_ignores_unknown(self) -> None:
        stats = SummaryStatistics(1.0, 2.0, 0.5, 1.5, 1.5, 2, 1.1, 1.9)
        data = stats.to_dict()
        data["extra"] = "ignored"
        self.assertEqual(SummaryStatistics.from_dict(data), stats)


class TestGeomean(unittest.TestCase):
    def test_geomean(self) -> None:
        self.assertAlmostEqual(geomean([1.0, 4.0]), 2.0)

    def test_skips_non_positive_and_infinite(self) -> None:
        self.assertAlmostEqual(geomean([2.0, 0.0, -1.0, math.inf, 8.0]), 4.0)

    def test_nothing_usable(self) -> None:
        self.assertTrue(math.isnan(geomean([0.0, math.inf])))


if __name__ == "__main__":
    unittest.main()
