"""Tests for simulation logging setup."""

import logging
import os
import tempfile
import unittest
from unittest.mock import patch

from core.logger import setup_logger, get_logger, LOG_FILE_ENV


class TestLogger(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.names = []

    def tearDown(self):
        for name in self.names:
            logger = logging.getLogger(name)
            for handler in list(logger.handlers):
                handler.close()
                logger.removeHandler(handler)
            logger.propagate = True
        self.tmpdir.cleanup()

    def _name(self, suffix):
        name = f"statecraft_test_{suffix}"
        self.names.append(name)
        return name

    def test_without_file_records_propagate(self):
        with patch.dict(os.environ, {}, clear=True):
            logger = setup_logger(self._name("plain"))
        self.assertEqual(logger.handlers, [])
        self.assertTrue(logger.propagate)

    def test_log_file_captures_records(self):
        path = os.path.join(self.tmpdir.name, "trace.log")
        logger = setup_logger(self._name("file"), log_file=path)
        logger.info("Week 3 resolved")
        logger.handlers[0].flush()

        with open(path) as f:
            self.assertIn("Week 3 resolved", f.read())
        self.assertFalse(logger.propagate)

    def test_log_file_from_environment(self):
        path = os.path.join(self.tmpdir.name, "env.log")
        with patch.dict(os.environ, {LOG_FILE_ENV: path}):
            logger = setup_logger(self._name("env"))
        self.assertIsInstance(logger.handlers[0], logging.FileHandler)

    def test_repeated_setup_does_not_duplicate_handlers(self):
        path = os.path.join(self.tmpdir.name, "twice.log")
        name = self._name("twice")
        setup_logger(name, log_file=path)
        logger = setup_logger(name, log_file=path)
        self.assertEqual(len(logger.handlers), 1)

    def test_module_loggers_are_children(self):
        self.assertEqual(get_logger("systems.crisis").name, "statecraft.systems.crisis")


if __name__ == "__main__":
    unittest.main()
