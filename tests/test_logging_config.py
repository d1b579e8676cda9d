import json
import logging
import os
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from compose_pilot import config, logger


class AppDirTests(unittest.TestCase):
    def setUp(self):
        self._td = tempfile.TemporaryDirectory()
        self.home = Path(self._td.name) / "home"
        patcher = mock.patch.object(config, "_APP_DIR", None)
        patcher.start()
        self.addCleanup(patcher.stop)

    def tearDown(self):
        self._td.cleanup()

    def test_resolved_on_first_use_and_cached(self):
        with mock.patch.dict(os.environ, {"COMPOSE_PILOT_HOME": str(self.home)}):
            self.assertFalse(self.home.exists())
            self.assertEqual(config.app_dir(), self.home)
            self.assertTrue(self.home.is_dir())
            with mock.patch.object(config, "_resolve_app_dir") as resolve:
                self.assertEqual(config.config_path(), self.home / "config.json")
                resolve.assert_not_called()

    def test_load_config_creates_defaults(self):
        with mock.patch.dict(os.environ, {"COMPOSE_PILOT_HOME": str(self.home)}):
            cfg = config.load_config()
            self.assertEqual(cfg.max_depth, 6)
            self.assertTrue((self.home / "config.json").exists())
            self.assertTrue((self.home / "state").is_dir())
            cfg.max_depth = 2
            config.save_config(cfg)
            self.assertEqual(config.load_config().max_depth, 2)


class LoggingTests(unittest.TestCase):
    def setUp(self):
        self._td = tempfile.TemporaryDirectory()
        self.log_dir = Path(self._td.name)

    def tearDown(self):
        log = logger.get_logger()
        for h in list(log.handlers):
            h.close()
        log.handlers.clear()
        self._td.cleanup()

    def test_events_are_written_as_json_lines(self):
        with mock.patch("sys.stderr"):
            logger.setup_logging(log_dir=self.log_dir)
            logger.log_event("discovery_complete", {"root": Path("/srv"), "candidates": 2})
            logger.log_event("walk_skipped_dir", {"path": "/srv/x"}, level=logging.DEBUG)
        for h in logger.get_logger().handlers:
            h.flush()
        lines = (self.log_dir / logger.LOG_FILENAME).read_text(encoding="utf-8").splitlines()
        first, second = [json.loads(line) for line in lines]
        self.assertEqual(first["event"], "discovery_complete")
        self.assertEqual(first["root"], str(Path("/srv")))
        self.assertEqual(first["candidates"], 2)
        self.assertEqual(first["level"], "INFO")
        self.assertEqual(second["level"], "DEBUG")

    def test_setup_twice_keeps_one_handler_pair(self):
        with mock.patch("sys.stderr"):
            logger.setup_logging(log_dir=self.log_dir)
            logger.setup_logging(log_dir=self.log_dir)
        self.assertEqual(len(logger.get_logger().handlers), 2)


if __name__ == "__main__":
    unittest.main()
