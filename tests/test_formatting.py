"""Tests for benchtrend.formatting — shared text formatting helpers."""

from __future__ import annotations

import math
import unittest

from benchtrend.formatting import (
    format_change,
    format_duration,
    format_section_header,
    format_sparkline,
    format_table,
    format_value,
    truncate,
)


class TestFormatDuration(unittest.TestCase):
    def test_milliseconds(self) -> None:
        self.assertEqual(format_duration(0.25), "250ms")

    def test_seconds(self) -> None:
        self.assertEqual(format_duration(2.5), "2.50s")

    def test_minutes(self) -> None:
        self.assertEqual(format_duration(83), "1m 23s")


class TestFormatValue(unittest.TestCase):
    def test_values(self) -> None:
        self.assertEqual(format_value(1.23456), "1.23")
        self.assertEqual(format_value(1.23456, 3), "1.235")
        self.assertEqual(format_value(None), "-")
        self.assertEqual(format_value(math.nan), "N/A")
        self.assertEqual(format_value(math.inf), "inf")


class TestFormatChange(unittest.TestCase):
    def test_signs(self) -> None:
        self.assertEqual(format_change(12.5), "+12.5%")
        self.assertEqual(format_change(-3.0), "-3.0%")
        self.assertEqual(format_change(0.0), "+0.0%")
        self.assertEqual(format_change(math.inf), "+inf%")
        self.assertEqual(format_change(math.nan), "N/A")


class TestTruncate(unittest.TestCase):
    def test_truncate(self) -> None:
        self.assertEqual(truncate("abcdef", 10), "abcdef")
        self.assertEqual(truncate("abcdefghij", 6), "abc...")
        self.assertEqual(truncate("abcdef", 2), "..")


class TestFormatTable(unittest.TestCase):
    def test_alignment(self) -> None:
        table = format_table(["Name", "N"], [["a", "1"], ["bbb", "22"]], alignments=["l", "r"])
        self.assertEqual(table.splitlines(), ["  Name   N", "  a      1", "  bbb   22"])

    def test_short_rows_padded(self) -> None:
        table = format_table(["A", "B"], [["x"]], indent=0)
        self.assertEqual(table.splitlines()[1], "x")

    def test_max_width(self) -> None:
        table = format_table(["Cmd"], [["a-very-long-command"]], max_col_width={0: 8}, indent=0)
        self.assertEqual(table.splitlines()[1], "a-ver...")

    def test_no_headers(self) -> None:
        self.assertEqual(format_table([], [["x"]]), "")


class TestSparkline(unittest.TestCase):
    def test_scaled(self) -> None:
        self.assertEqual(format_sparkline([1.0, 2.0, 3.0]), "▁▄█")

    def test_flat(self) -> None:
        self.assertEqual(len(format_sparkline([2.0, 2.0])), 2)

    def test_empty(self) -> None:
        self.assertEqual(format_sparkline([]), "")


class TestSectionHeader(unittest.TestCase):
    def test_width(self) -> None:
        header = format_section_header("Timeline", width=30)
        self.assertTrue(header.startswith("─── Timeline "))
        self.assertEqual(len(header), 30)


if __name__ == "__main__":
    unittest.main()
