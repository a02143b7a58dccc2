"""
Tests for structured logging
"""

import json
import logging

from finflow.logging_config import JSONFormatter, get_logger, log_action, setup_logging


class TestJSONFormatter:

    def test_includes_structured_fields(self):
        """Test structured fields appear in the JSON line"""
        logger = get_logger("finflow.testformatter")
        record = logger.makeRecord(logger.name, logging.INFO, __name__, 0,
                                   "Transaction committed", (), None)
        record.user_id = "acc-1"
        record.action = "ledger.deposit"
        record.extra = {"amount": "10.00"}

        entry = json.loads(JSONFormatter().format(record))

        assert entry["level"] == "INFO"
        assert entry["message"] == "Transaction committed"
        assert entry["user_id"] == "acc-1"
        assert entry["action"] == "ledger.deposit"
        assert entry["extra"] == {"amount": "10.00"}
        assert "correlation_id" not in entry
        assert entry["logger"] == "finflow.testformatter"

    def test_credentials_are_masked(self):
        """Test credential keys are masked in extra"""
        record = logging.makeLogRecord({"msg": "Account created", "levelname": "INFO"})
        record.extra = {"username": "demo", "password": "demo",
                        "nested": [{"credential_hash": "abc"}]}

        entry = json.loads(JSONFormatter().format(record))

        assert entry["extra"]["username"] == "demo"
        assert entry["extra"]["password"] == "***"
        assert entry["extra"]["nested"] == [{"credential_hash": "***"}]


class TestSetupLogging:

    def test_json_file_output(self, tmp_path):
        """Test JSON lines are written to the log file"""
        log_file = tmp_path / "finflow.log"
        logger = setup_logging("DEBUG", "finflow.testlogger", "json", str(log_file))
        try:
            log_action(logger, "info", "Login succeeded", user_id="acc-1",
                       action="session.login", resource="session")
            for handler in logger.handlers:
                handler.flush()

            entry = json.loads(log_file.read_text().strip().splitlines()[-1])
            assert entry["action"] == "session.login"
            assert entry["resource"] == "session"
        finally:
            for handler in logger.handlers[:]:
                handler.close()
                logger.removeHandler(handler)

    def test_repeated_setup_does_not_duplicate_handlers(self):
        """Test setup replaces existing handlers"""
        setup_logging("INFO", "finflow.testlogger")
        logger = setup_logging("WARNING", "finflow.testlogger", "text")

        assert len(logger.handlers) == 1
        assert logger.level == logging.WARNING
        assert not logger.propagate
        logger.removeHandler(logger.handlers[0])

    def test_log_action_respects_level(self, tmp_path):
        """Test records below the logger level are dropped"""
        log_file = tmp_path / "quiet.log"
        logger = setup_logging("WARNING", "finflow.testlogger", "json", str(log_file))
        try:
            log_action(logger, "info", "Ignored")
            log_action(logger, "warning", "Kept")
            for handler in logger.handlers:
                handler.flush()

            lines = log_file.read_text().strip().splitlines()
            assert [json.loads(line)["message"] for line in lines] == ["Kept"]
        finally:
            for handler in logger.handlers[:]:
                handler.close()
                logger.removeHandler(handler)
