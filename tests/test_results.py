"""Tests for benchtrend.results — data model and row files."""

from __future__ import annotations

import json
import tempfile
import unittest
from pathlib import Path

from benchtrend.results import (
    CriterionData,
    MeasurementRow,
    Measurements,
    RunSettings,
    load_rows,
    save_rows,
)

from trend_test_helpers import make_row


def _series() -> Measurements:
    return Measurements(
        criterion=CriterionData("total", "ms"),
        run_settings=RunSettings(cmdline="som B", simplified_cmdline="som B"),
        env_id=1,
        commit_id="c1",
        run_id=1,
        trial_id=1,
    )


class TestMeasurements(unittest.TestCase):
    def test_set_value_extends_grid(self) -> None:
        m = _series()
        m.set_value(2, 3, 5.0)
        self.assertEqual(m.values, [[], [None, None, 5.0]])
        self.assertEqual(m.num_invocations, 2)
        self.assertEqual(m.all_values(), [5.0])

    def test_out_of_order_fills_gaps(self) -> None:
        m = _series()
        m.set_value(1, 2, 20.0)
        m.set_value(1, 1, 10.0)
        self.assertEqual(m.values, [[10.0, 20.0]])

    def test_rejects_zero_based_slots(self) -> None:
        m = _series()
        with self.assertRaises(ValueError):
            m.set_value(0, 1, 1.0)
        with self.assertRaises(ValueError):
            m.set_value(1, 0, 1.0)

    def test_matches_identity(self) -> None:
        m = _series()
        self.assertTrue(m.matches(make_row(1.0)))
        self.assertFalse(m.matches(make_row(1.0, trial_id=2)))
        self.assertFalse(m.matches(make_row(1.0, criterion="GC")))
        self.assertFalse(m.matches(make_row(1.0, commit_id="c2")))


class TestRowFiles(unittest.TestCase):
    def test_save_and_load(self) -> None:
        rows = [make_row(1.5), make_row(2.5, iteration=2)]
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "rows.jsonl"
            self.assertEqual(save_rows(path, rows), 2)
            self.assertEqual(load_rows(path), rows)

    def test_unknown_fields_ignored(self) -> None:
        data = make_row(3.0).to_dict()
        data["future_field"] = 1
        self.assertEqual(MeasurementRow.from_dict(data), make_row(3.0))

    def test_blank_lines_skipped(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "rows.jsonl"
            path.write_text("\n" + json.dumps(make_row(1.0).to_dict()) + "\n\n")
            self.assertEqual(len(load_rows(path)), 1)

    def test_non_object_line_rejected(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "rows.jsonl"
            path.write_text("[1, 2]\n")
            with self.assertRaises(ValueError):
                load_rows(path)

    def test_missing_file(self) -> None:
        with self.assertRaises(FileNotFoundError):
            load_rows(Path("/nonexistent/rows.jsonl"))


if __name__ == "__main__":
    unittest.main()
