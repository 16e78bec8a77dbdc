"""
Unit tests for logging setup and helper utilities.
"""

import json
import logging
import sys
from datetime import datetime

import pytest
from rich.logging import RichHandler

from policy_migration.utils.helpers import format_bytes, format_duration, pick
from policy_migration.utils.logging import (
    LogEntry,
    MigrationLogger,
    StructuredFormatter,
    get_logger,
    setup_logging,
)


class TestLogEntry:
    """Test cases for LogEntry dataclass."""

    def test_to_json(self):
        """Test JSON conversion."""
        entry = LogEntry(
            timestamp=datetime(2024, 1, 2, 3, 4, 5),
            level="ERROR",
            message="upload failed",
            metadata={"stage": "upload"},
        )

        data = json.loads(entry.to_json())

        assert data["timestamp"] == "2024-01-02T03:04:05"
        assert data["level"] == "ERROR"
        assert data["logger"] == "policy_migration"
        assert data["metadata"] == {"stage": "upload"}


class TestStructuredFormatter:
    """Test cases for StructuredFormatter."""

    def test_format_with_extra(self):
        """Test extra record attributes become metadata."""
        record = logging.LogRecord(
            name="policy_migration.test",
            level=logging.INFO,
            pathname="test.py",
            lineno=10,
            msg="Starting stage: %s",
            args=("export",),
            exc_info=None,
        )
        record.migration = "10.0.0.2:443:42"

        data = json.loads(StructuredFormatter().format(record))

        assert data["message"] == "Starting stage: export"
        assert data["logger"] == "policy_migration.test"
        assert data["metadata"]["migration"] == "10.0.0.2:443:42"
        assert data["metadata"]["line"] == 10

    def test_format_with_exception(self):
        """Test exceptions are included."""
        try:
            raise ValueError("boom")
        except ValueError:
            record = logging.LogRecord(
                name="policy_migration.test",
                level=logging.ERROR,
                pathname="test.py",
                lineno=1,
                msg="failed",
                args=(),
                exc_info=sys.exc_info(),
            )

        data = json.loads(StructuredFormatter().format(record))

        assert "ValueError: boom" in data["metadata"]["exception"]


class TestSetupLogging:
    """Test cases for setup_logging."""

    def teardown_method(self):
        """Remove handlers added by the tests."""
        logger = logging.getLogger("policy_migration")
        for handler in list(logger.handlers):
            handler.close()
        logger.handlers.clear()

    def test_rich_console(self):
        """Test the default console handler."""
        logger = setup_logging(level="debug")

        assert logger.name == "policy_migration"
        assert logger.level == logging.DEBUG
        assert len(logger.handlers) == 1
        assert isinstance(logger.handlers[0], RichHandler)

    def test_structured_with_file(self, tmp_path):
        """Test structured logging to a rotating file."""
        log_file = tmp_path / "logs" / "migration.log"
        logger = setup_logging(log_file=str(log_file), structured_logging=True)

        get_logger("test").info("hello", extra={"stage": "import"})
        for handler in logger.handlers:
            handler.flush()

        assert all(isinstance(h.formatter, StructuredFormatter) for h in logger.handlers)
        line = json.loads(log_file.read_text().splitlines()[-1])
        assert line["message"] == "hello"
        assert line["metadata"]["stage"] == "import"

    def test_repeated_setup_replaces_handlers(self):
        """Test calling setup twice does not duplicate handlers."""
        setup_logging()
        logger = setup_logging(rich_console=False)

        assert len(logger.handlers) == 1
        assert not isinstance(logger.handlers[0], RichHandler)


class TestMigrationLogger:
    """Test cases for MigrationLogger."""

    def test_stage_records(self, caplog):
        """Test stage helpers tag records with the migration and stage."""
        log = MigrationLogger("10.0.0.2:443:42")

        with caplog.at_level(logging.INFO, logger="policy_migration"):
            log.stage_start("upload")
            log.stage_complete("upload", 1.5)
            log.stage_failed("import", "task failed", error_code="TaskFailedError")

        started, completed, failed = caplog.records
        assert started.migration == "10.0.0.2:443:42"
        assert started.stage_status == "started"
        assert completed.duration == 1.5
        assert "took 1.50s" in completed.getMessage()
        assert failed.levelno == logging.ERROR
        assert failed.error_code == "TaskFailedError"
        assert failed.name == "policy_migration.migration.10.0.0.2:443:42"


class TestHelpers:
    """Test cases for helper utilities."""

    @pytest.mark.parametrize("value,expected", [
        (512, "512.0 B"),
        (512000, "500.0 KB"),
        (3 * 1024 * 1024, "3.0 MB"),
    ])
    def test_format_bytes(self, value, expected):
        """Test byte formatting."""
        assert format_bytes(value) == expected

    @pytest.mark.parametrize("value,expected", [
        (2.0, "2.0s"),
        (120, "2.0m"),
        (5400, "1.5h"),
    ])
    def test_format_duration(self, value, expected):
        """Test duration formatting."""
        assert format_duration(value) == expected

    def test_pick_prefers_body(self):
        """Test body values win over query values."""
        assert pick({"policyId": "7"}, {"policyId": "42"}, "policyId") == "42"

    def test_pick_name_order(self):
        """Test names are tried in order within a source."""
        assert pick({"sourceUUID": "uuid-a", "sourceHost": "10.0.0.3"}, None, "sourceHost", "sourceUUID") == "10.0.0.3"

    def test_pick_skips_empty(self):
        """Test empty values fall through."""
        assert pick({"policyId": "7"}, {"policyId": ""}, "policyId") == "7"
        assert pick({}, {}, "policyId") is None
