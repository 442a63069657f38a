r"""
Centralized logging configuration for the Receiving Tool.

This module provides the logging setup shared by every component:
- Structured JSON logging for easy parsing and analysis
- Automatic file rotation (prevents log files from growing indefinitely)
- Configurable log levels (DEBUG, INFO, WARNING, ERROR, CRITICAL)
- Automatic cleanup of old logs (retention policy)
- Both file and console output
- Context-aware logging (actor_id, shipment_id, role)

Receiving is audited per scan: every accepted or rejected item should be
traceable to the actor and shipment that produced it, which is why the
context variables end up in each JSON line.

Log file location: [Logging] LogDir in config.ini, or ~/.receiving_tool/logs
Log file format: YYYY-MM-DD.log

Example log entry (JSON format):
    {"timestamp": "2026-03-05T14:30:45.123", "level": "INFO", "tool": "receiving_tool",
     "actor_id": "wh-07", "shipment_id": "SHP-4521", "role": "warehouse",
     "module": "session_coordinator", "function": "scan_item", "line": 212,
     "message": "Item accepted: BOX-0003 (3/20)"}
"""

import logging
import json
import os
from datetime import datetime, timedelta
from pathlib import Path
from logging.handlers import RotatingFileHandler
from typing import Optional, Dict, Any
import configparser
from contextvars import ContextVar


# Context variables for structured logging
_actor_id: ContextVar[Optional[str]] = ContextVar('actor_id', default=None)
_shipment_id: ContextVar[Optional[str]] = ContextVar('shipment_id', default=None)
_role: ContextVar[Optional[str]] = ContextVar('role', default=None)

CONFIG_FILE = 'config.ini'
TOOL_NAME = 'receiving_tool'


class StructuredJSONFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Outputs log records as JSON with fields:
    - timestamp: ISO 8601 format with milliseconds
    - level: Log level
    - tool: Always "receiving_tool"
    - actor_id / shipment_id / role: current receiving context (if set)
    - module, function, line: origin of the record
    - message: Log message
    - exc_info: Exception information (if present)
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            'timestamp': datetime.fromtimestamp(record.created).isoformat(),
            'level': record.levelname,
            'tool': TOOL_NAME,
            'actor_id': _actor_id.get(),
            'shipment_id': _shipment_id.get(),
            'role': _role.get(),
            'module': record.name,
            'function': record.funcName,
            'line': record.lineno,
            'message': record.getMessage(),
        }

        if record.exc_info:
            log_data['exc_info'] = self.formatException(record.exc_info)

        if hasattr(record, 'extra_data'):
            log_data['extra'] = record.extra_data

        return json.dumps(log_data, ensure_ascii=False, default=str)


class AppLogger:
    """
    Centralized application logger with file rotation and cleanup.

    Logging is configured once, on the first call to get_logger(), no matter
    how many modules import it.

    The logging system is configured from config.ini:
    - LogLevel: DEBUG, INFO, WARNING, ERROR, CRITICAL
    - LogDir: Directory for daily log files (optional)
    - MaxLogSizeMB: Maximum size per log file before rotation
    - LogRetentionDays: How many days of logs to keep

    Attributes:
        _initialized: Whether logging has been configured (class-level)
        _log_file: Path of the active log file once configured
    """

    _initialized: bool = False
    _log_file: Optional[Path] = None

    @classmethod
    def get_logger(cls, name: str = 'ReceivingTool') -> logging.Logger:
        """
        Get or create a logger with lazy initialization.

        Usage in modules:
            from logger import get_logger
            logger = get_logger(__name__)
            logger.info("Shipment loaded")

        Args:
            name: Logger name, typically the module name (__name__)

        Returns:
            Configured logger instance for the specified name
        """
        if not cls._initialized:
            cls._setup_logging()
            cls._initialized = True

        return logging.getLogger(name)

    @classmethod
    def _setup_logging(cls):
        """
        Setup logging configuration from config.ini.

        Configures:
        1. Log directory and file path
        2. Log level (from config or default to INFO)
        3. JSON file handler with rotation
        4. Human-readable console handler
        5. Old log cleanup
        """
        config = cls._load_config()

        # === LOG DIRECTORY SETUP ===
        configured_dir = config.get('Logging', 'LogDir', fallback='').strip()
        default_dir = Path(os.path.expanduser("~")) / ".receiving_tool" / "logs"
        log_dir = Path(configured_dir) if configured_dir else default_dir

        try:
            log_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            log_dir = default_dir
            log_dir.mkdir(parents=True, exist_ok=True)
            print(f"Warning: Could not create log directory {configured_dir}. Using: {log_dir}. Error: {e}")

        log_file = log_dir / f"{datetime.now():%Y-%m-%d}.log"
        cls._log_file = log_file

        # === LOG LEVEL CONFIGURATION ===
        log_level_str = config.get('Logging', 'LogLevel', fallback='INFO')
        log_level = getattr(logging, log_level_str.upper(), logging.INFO)

        # === FILE ROTATION CONFIGURATION ===
        max_log_size = config.getint('Logging', 'MaxLogSizeMB', fallback=10) * 1024 * 1024

        # === LOG FORMATTERS ===
        json_formatter = StructuredJSONFormatter()
        console_formatter = logging.Formatter(
            fmt='%(asctime)s | %(name)s | %(levelname)s | %(funcName)s:%(lineno)d | %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )

        # === FILE HANDLER ===
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=max_log_size,
            backupCount=30,
            encoding='utf-8'
        )
        file_handler.setLevel(log_level)
        file_handler.setFormatter(json_formatter)

        # === CONSOLE HANDLER ===
        console_handler = logging.StreamHandler()
        console_handler.setLevel(log_level)
        console_handler.setFormatter(console_formatter)

        root_logger = logging.getLogger()
        root_logger.setLevel(log_level)
        root_logger.addHandler(file_handler)
        root_logger.addHandler(console_handler)

        # === CLEANUP OLD LOGS ===
        retention_days = config.getint('Logging', 'LogRetentionDays', fallback=30)
        cls._cleanup_old_logs(log_dir, retention_days)

        logger = logging.getLogger('ReceivingTool')
        logger.info("=" * 80)
        logger.info("Receiving Tool Started")
        logger.info(f"Log Level: {log_level_str}")
        logger.info(f"Log File: {log_file}")
        logger.info("=" * 80)

    @staticmethod
    def _load_config() -> configparser.ConfigParser:
        """
        Load configuration from config.ini in the working directory.

        Returns an empty ConfigParser when the file is missing, so every
        setting falls back to its default.
        """
        config = configparser.ConfigParser()
        config_path = Path(CONFIG_FILE)

        if config_path.exists():
            config.read(config_path, encoding='utf-8')

        return config

    @staticmethod
    def _cleanup_old_logs(log_dir: Path, retention_days: int):
        """
        Delete log files older than the retention period.

        Args:
            log_dir: Directory containing log files
            retention_days: Number of days to keep logs; 0 or negative keeps all
        """
        if retention_days <= 0:
            return

        cutoff_date = datetime.now() - timedelta(days=retention_days)

        try:
            for log_file in log_dir.glob("*.log*"):
                file_mtime = datetime.fromtimestamp(log_file.stat().st_mtime)
                if file_mtime < cutoff_date:
                    log_file.unlink()
                    logging.getLogger('ReceivingTool').debug(f"Deleted old log: {log_file.name}")

        except OSError as e:
            # Non-fatal: a locked or vanished file must not stop startup
            logging.getLogger('ReceivingTool').warning(f"Failed to cleanup old logs: {e}")


def get_logger(name: str = 'ReceivingTool') -> logging.Logger:
    """
    Get application logger.

    Example:
        >>> from logger import get_logger
        >>> logger = get_logger(__name__)
        >>> logger.info("Starting receiving")
    """
    return AppLogger.get_logger(name)


def set_actor_context(actor_id: Optional[str], role: Optional[str] = None) -> None:
    """
    Set the scanning actor for structured logging context.

    Args:
        actor_id: Actor identifier (e.g. "wh-07") or None to clear
        role: Actor role (e.g. "warehouse") or None
    """
    _actor_id.set(actor_id)
    _role.set(role)


def set_shipment_context(shipment_id: Optional[str]) -> None:
    """
    Set the shipment being received for structured logging context.

    Args:
        shipment_id: Shipment identifier or None to clear
    """
    _shipment_id.set(shipment_id)


def clear_logging_context() -> None:
    """Clear all logging context (actor_id, shipment_id, role)."""
    _actor_id.set(None)
    _shipment_id.set(None)
    _role.set(None)
