import json
import logging
import os
import tempfile
import unittest
from unittest.mock import patch

from equiptrack.exceptions import InsufficientStock, ItemNotFound, NotFound
from equiptrack.log import open_event_log
from equiptrack.log.local_log import LocalEventLog
from equiptrack.log.memory_log import MemoryEventLog
from equiptrack.log.sqlite_log import SQLiteEventLog
from equiptrack.settings import Settings
from equiptrack.utils.logging import ConsoleFormatter, JSONFormatter, get_logger
from equiptrack.utils.metrics import MetricsManager


class TestSettings(unittest.TestCase):
    def test_defaults(self):
        config = Settings(_env_file=None)
        self.assertEqual(config.TOP_ITEMS, 5)
        self.assertEqual(config.DISCREPANCY_WINDOW_DAYS, 30)
        self.assertEqual(config.LOG_BACKEND, "file")

    def test_environment_overrides(self):
        env = {"EQUIPTRACK_LOG_BACKEND": "sqlite", "EQUIPTRACK_TOP_ITEMS": "3", "EQUIPTRACK_LOG_LEVEL": "debug"}
        with patch.dict(os.environ, env):
            config = Settings(_env_file=None)
        self.assertEqual(config.LOG_BACKEND, "sqlite")
        self.assertEqual(config.TOP_ITEMS, 3)
        self.assertEqual(config.LOG_LEVEL, "DEBUG")

    def test_backend_selection(self):
        base = Settings(_env_file=None)
        memory = open_event_log(base.model_copy(update={"LOG_BACKEND": "memory"}))
        self.assertIsInstance(memory, MemoryEventLog)

        sqlite = open_event_log(base.model_copy(update={"LOG_BACKEND": "sqlite"}), data_dir="/tmp/equiptrack-x")
        self.assertIsInstance(sqlite, SQLiteEventLog)
        self.assertEqual(sqlite.path, os.path.join("/tmp/equiptrack-x", "events.db"))

    def test_file_backend_selection(self):
        with tempfile.TemporaryDirectory() as data_dir:
            log = open_event_log(Settings(_env_file=None), data_dir=data_dir)
            self.assertIsInstance(log, LocalEventLog)


class TestLogging(unittest.TestCase):
    def _record(self, **extra):
        logger = get_logger("test")
        return logger.makeRecord(logger.name, logging.WARNING, __file__, 1, "stock low", None, None, extra=extra)

    def test_json_formatter_includes_ledger_fields(self):
        line = JSONFormatter().format(self._record(ledger={"seq": 4, "kind": "item_issued"}))
        payload = json.loads(line)
        self.assertEqual(payload["logger"], "equiptrack.test")
        self.assertEqual(payload["level"], "WARNING")
        self.assertEqual(payload["ledger"], {"seq": 4, "kind": "item_issued"})

    def test_console_formatter(self):
        line = ConsoleFormatter().format(self._record())
        self.assertIn("[WARNING] [equiptrack.test] stock low", line)


class TestMetricsAndErrors(unittest.TestCase):
    def test_metrics_manager_is_shared(self):
        self.assertIs(MetricsManager(), MetricsManager())

    def test_counters_accumulate(self):
        metrics = MetricsManager()
        before = metrics.get_all().get("equiptrack_discrepancies_reported", 0)
        metrics.discrepancy_reported()
        metrics.discrepancy_reported()
        self.assertEqual(metrics.get_all()["equiptrack_discrepancies_reported"], before + 2)

    def test_error_payloads(self):
        error = InsufficientStock(7, requested=5, available=2)
        self.assertEqual(error.to_dict()["code"], "insufficient_stock")
        self.assertEqual(error.details, {"item_id": 7, "requested": 5, "available": 2})
        self.assertIsInstance(ItemNotFound(3), NotFound)


if __name__ == '__main__':
    unittest.main()
