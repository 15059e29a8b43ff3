"""
Tests for structured logging
"""

import json
import logging
import sys

from savings_ledger.logging_config import JSONFormatter, log_action, setup_logging


class TestStructuredLogging:
    """Test JSON log output"""

    def setup_method(self):
        self.logger_name = "savings_ledger.test_logging"

    def teardown_method(self):
        logger = logging.getLogger(self.logger_name)
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()

    def _read_entries(self, path):
        with open(path) as f:
            return [json.loads(line) for line in f if line.strip()]

    def test_log_action_writes_context_fields(self, tmp_path):
        log_file = tmp_path / "ledger.log"
        logger = setup_logging("INFO", logger_name=self.logger_name, log_file=str(log_file))

        log_action(logger, "info", "Deposit opened", account="alice",
                   action="deposit", resource="deposit:0", details={"rate": 25})

        entries = self._read_entries(log_file)
        assert len(entries) == 1
        entry = entries[0]
        assert entry["message"] == "Deposit opened"
        assert entry["level"] == "INFO"
        assert entry["account"] == "alice"
        assert entry["action"] == "deposit"
        assert entry["resource"] == "deposit:0"
        assert entry["details"] == {"rate": 25}

    def test_unset_fields_are_omitted(self, tmp_path):
        log_file = tmp_path / "ledger.log"
        logger = setup_logging("INFO", logger_name=self.logger_name, log_file=str(log_file))

        log_action(logger, "warning", "Rejected")

        entry = self._read_entries(log_file)[0]
        assert entry["level"] == "WARNING"
        assert "account" not in entry
        assert "details" not in entry

    def test_level_filters_records(self, tmp_path):
        log_file = tmp_path / "ledger.log"
        logger = setup_logging("WARNING", logger_name=self.logger_name, log_file=str(log_file))

        log_action(logger, "info", "Ignored")
        log_action(logger, "error", "Kept")

        assert [e["message"] for e in self._read_entries(log_file)] == ["Kept"]

    def test_setup_twice_keeps_one_handler(self, tmp_path):
        setup_logging("INFO", logger_name=self.logger_name, log_file=str(tmp_path / "a.log"))
        logger = setup_logging("INFO", logger_name=self.logger_name, log_file=str(tmp_path / "b.log"))

        assert len(logger.handlers) == 1

    def test_formatter_includes_exception(self):
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record = logging.getLogger(self.logger_name).makeRecord(
                self.logger_name, logging.ERROR, __file__, 1, "failed", (), sys.exc_info()
            )

        entry = json.loads(JSONFormatter().format(record))
        assert entry["message"] == "failed"
        assert "RuntimeError: boom" in entry["exception"]
