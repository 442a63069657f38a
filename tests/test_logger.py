"""
Unit tests for centralized logging system.

Tests cover:
- Structured JSON logging format
- Context variables (actor_id, shipment_id, role)
- Log directory, daily file and rotation settings
- Cleanup of old log files
"""

import json
import logging
import os
import shutil
import sys
import tempfile
import time
from datetime import datetime, timedelta
from pathlib import Path
from unittest.mock import patch
import configparser
import pytest

from logger import (
    AppLogger,
    StructuredJSONFormatter,
    get_logger,
    set_actor_context,
    set_shipment_context,
    clear_logging_context,
)


@pytest.fixture
def temp_dir_with_cleanup():
    """Create temp directory with proper cleanup of file handlers."""
    temp_dir = tempfile.mkdtemp()

    yield temp_dir

    # Close all handlers before cleanup
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        handler.close()
        root_logger.removeHandler(handler)

    try:
        shutil.rmtree(temp_dir)
    except PermissionError:
        time.sleep(0.1)
        shutil.rmtree(temp_dir, ignore_errors=True)


def make_config(log_dir: str, level: str = 'INFO', **extra) -> configparser.ConfigParser:
    config = configparser.ConfigParser()
    config.add_section('Logging')
    config.set('Logging', 'LogDir', log_dir)
    config.set('Logging', 'LogLevel', level)
    for key, value in extra.items():
        config.set('Logging', key, value)
    return config


def make_record(msg="Test message", level=logging.INFO, exc_info=None):
    return logging.LogRecord(
        name="TestLogger",
        level=level,
        pathname="test.py",
        lineno=42,
        msg=msg,
        args=(),
        exc_info=exc_info,
        func="test_function"
    )


def close_root_handlers():
    for handler in logging.getLogger().handlers[:]:
        handler.close()


class TestStructuredJSONFormatter:
    """Test the JSON formatter for structured logging."""

    def test_basic_json_format(self):
        """Test that log records are formatted as valid JSON."""
        log_data = json.loads(StructuredJSONFormatter().format(make_record()))

        assert log_data["level"] == "INFO"
        assert log_data["tool"] == "receiving_tool"
        assert log_data["module"] == "TestLogger"
        assert log_data["function"] == "test_function"
        assert log_data["line"] == 42
        assert log_data["message"] == "Test message"
        datetime.fromisoformat(log_data["timestamp"])

    def test_json_format_with_context(self):
        """Test JSON formatting includes context variables."""
        set_actor_context("wh-07", "warehouse")
        set_shipment_context("SHP-4521")

        log_data = json.loads(StructuredJSONFormatter().format(make_record("Test with context")))

        assert log_data["actor_id"] == "wh-07"
        assert log_data["role"] == "warehouse"
        assert log_data["shipment_id"] == "SHP-4521"

        clear_logging_context()

    def test_json_format_with_exception(self):
        """Test JSON formatting includes exception information."""
        try:
            raise ValueError("Test exception")
        except ValueError:
            exc_info = sys.exc_info()

        log_data = json.loads(StructuredJSONFormatter().format(
            make_record("Error occurred", logging.ERROR, exc_info)
        ))

        assert "ValueError" in log_data["exc_info"]
        assert "Test exception" in log_data["exc_info"]


class TestContextVariables:
    """Test context variable management."""

    def test_set_actor_context(self):
        from logger import _actor_id, _role
        set_actor_context("tr-01", "transporter")
        assert _actor_id.get() == "tr-01"
        assert _role.get() == "transporter"

        set_actor_context(None)
        assert _actor_id.get() is None
        assert _role.get() is None

    def test_set_shipment_context(self):
        from logger import _shipment_id
        set_shipment_context("SHP-1")
        assert _shipment_id.get() == "SHP-1"

        set_shipment_context(None)
        assert _shipment_id.get() is None

    def test_clear_logging_context(self):
        """Test clearing all context variables."""
        set_actor_context("wh-07", "warehouse")
        set_shipment_context("SHP-1")

        clear_logging_context()

        from logger import _actor_id, _shipment_id, _role
        assert _actor_id.get() is None
        assert _shipment_id.get() is None
        assert _role.get() is None


class TestAppLogger:
    """Test AppLogger class and logging setup."""

    @pytest.fixture(autouse=True)
    def reset_logger(self):
        """Reset logger state before each test."""
        AppLogger._initialized = False
        root_logger = logging.getLogger()
        for handler in root_logger.handlers[:]:
            root_logger.removeHandler(handler)
        clear_logging_context()
        yield
        AppLogger._initialized = False

    def test_logger_creates_log_directory_and_file(self, temp_dir_with_cleanup):
        log_dir = Path(temp_dir_with_cleanup) / "logs" / "receiving"
        with patch('logger.AppLogger._load_config') as mock_config:
            mock_config.return_value = make_config(str(log_dir))

            logger = get_logger("Test")
            logger.info("Test message")
            close_root_handlers()

        assert log_dir.is_dir()
        assert (log_dir / f"{datetime.now():%Y-%m-%d}.log").exists()
        assert AppLogger._log_file == log_dir / f"{datetime.now():%Y-%m-%d}.log"

    def test_logger_writes_json_format(self, temp_dir_with_cleanup):
        """Test that logger writes logs in JSON format with context."""
        with patch('logger.AppLogger._load_config') as mock_config:
            mock_config.return_value = make_config(temp_dir_with_cleanup)

            logger = get_logger("Test")
            set_actor_context("wh-07", "warehouse")
            set_shipment_context("SHP-4521")
            logger.info("Item accepted: BOX-0003 (3/20)")
            clear_logging_context()
            logger.info("Session closed")
            close_root_handlers()

        log_file = Path(temp_dir_with_cleanup) / f"{datetime.now():%Y-%m-%d}.log"
        with open(log_file, 'r', encoding='utf-8') as f:
            entries = [json.loads(line) for line in f if line.strip()]

        accepted = next(e for e in entries if e["message"] == "Item accepted: BOX-0003 (3/20)")
        assert accepted["actor_id"] == "wh-07"
        assert accepted["shipment_id"] == "SHP-4521"
        assert accepted["role"] == "warehouse"

        closed = next(e for e in entries if e["message"] == "Session closed")
        assert closed["actor_id"] is None
        assert closed["shipment_id"] is None

    def test_logger_rotation_settings(self, temp_dir_with_cleanup):
        """Test that logger uses correct rotation settings."""
        with patch('logger.AppLogger._load_config') as mock_config:
            mock_config.return_value = make_config(temp_dir_with_cleanup, MaxLogSizeMB='5')

            get_logger("Test")

            rotating_handlers = [h for h in logging.getLogger().handlers if hasattr(h, 'maxBytes')]
            assert len(rotating_handlers) == 1
            assert rotating_handlers[0].maxBytes == 5 * 1024 * 1024
            assert rotating_handlers[0].backupCount == 30
            close_root_handlers()

    def test_log_level_from_config(self, temp_dir_with_cleanup):
        with patch('logger.AppLogger._load_config') as mock_config:
            mock_config.return_value = make_config(temp_dir_with_cleanup, level='WARNING')

            get_logger("Test")

            assert logging.getLogger().level == logging.WARNING
            close_root_handlers()

    def test_cleanup_old_logs(self):
        """Test that old log files are cleaned up."""
        with tempfile.TemporaryDirectory() as temp_dir:
            log_dir = Path(temp_dir)

            old_date = datetime.now() - timedelta(days=35)
            old_log = log_dir / f"{old_date:%Y-%m-%d}.log"
            old_log.write_text("old log")
            os.utime(old_log, (old_date.timestamp(), old_date.timestamp()))

            recent_date = datetime.now() - timedelta(days=5)
            recent_log = log_dir / f"{recent_date:%Y-%m-%d}.log"
            recent_log.write_text("recent log")
            os.utime(recent_log, (recent_date.timestamp(), recent_date.timestamp()))

            AppLogger._cleanup_old_logs(log_dir, retention_days=30)

            assert not old_log.exists()
            assert recent_log.exists()

    def test_cleanup_respects_zero_retention(self):
        """Test that cleanup is disabled when retention_days is 0."""
        with tempfile.TemporaryDirectory() as temp_dir:
            old_date = datetime.now() - timedelta(days=100)
            old_log = Path(temp_dir) / f"{old_date:%Y-%m-%d}.log"
            old_log.write_text("old log")
            os.utime(old_log, (old_date.timestamp(), old_date.timestamp()))

            AppLogger._cleanup_old_logs(Path(temp_dir), retention_days=0)

            assert old_log.exists()


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
