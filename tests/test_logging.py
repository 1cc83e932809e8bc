"""Tests for benchtrend.logging — logger setup."""

from __future__ import annotations

import logging
import tempfile
import unittest
from pathlib import Path

from benchtrend.logging import get_logger, setup_logging


class TestSetupLogging(unittest.TestCase):
    def tearDown(self) -> None:
        logger = logging.getLogger("benchtrend")
        for handler in logger.handlers:
            handler.close()
        logger.handlers.clear()

    def _console(self, logger: logging.Logger) -> logging.Handler:
        return next(h for h in logger.handlers if not isinstance(h, logging.FileHandler))

    def test_levels(self) -> None:
        self.assertEqual(self._console(setup_logging()).level, logging.INFO)
        self.assertEqual(self._console(setup_logging(verbose=True)).level, logging.DEBUG)
        self.assertEqual(self._console(setup_logging(quiet=True)).level, logging.WARNING)
        self.assertEqual(
            self._console(setup_logging(verbose=True, quiet=True)).level, logging.DEBUG
        )

    def test_reconfiguration_replaces_handlers(self) -> None:
        setup_logging()
        logger = setup_logging()
        self.assertEqual(len(logger.handlers), 1)

    def test_log_file(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "trend.log"
            logger = setup_logging(quiet=True, log_file=path)
            get_logger("timeline").debug("wave submitted")
            for handler in logger.handlers:
                handler.flush()
            text = path.read_text()
            self.assertIn("benchtrend.timeline", text)
            self.assertIn("wave submitted", text)
            self.tearDown()


class TestGetLogger(unittest.TestCase):
    def test_child_name(self) -> None:
        self.assertEqual(get_logger("ingest").name, "benchtrend.ingest")


if __name__ == "__main__":
    unittest.main()
