"""
Centralized logging configuration for Packer's Assistant.

Every module obtains its logger through get_logger(__name__). The first call
configures the root logger once for the whole process:
- JSON lines in a daily log file, rotated when MaxLogSizeMB is exceeded
- Human-readable lines on the console
- Old log files removed after LogRetentionDays
- Operator, order and device context attached to every JSON entry

Configuration comes from the [Logging] section of config.ini:
    [Logging]
    LogLevel = INFO
    LogDir = /srv/packing/logs
    MaxLogSizeMB = 10
    LogRetentionDays = 30

Example log entry:
    {"timestamp": "2025-11-05T14:30:45.123", "level": "INFO", "tool": "packer_assistant",
     "operator_id": "ops@example.com", "order_id": "ORD-1001", "device_id": "DOCK-2",
     "module": "packing_session", "function": "on_scan", "line": 88,
     "message": "SKU SKU-A recorded (1/2)"}
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
_operator_id: ContextVar[Optional[str]] = ContextVar('operator_id', default=None)
_order_id: ContextVar[Optional[str]] = ContextVar('order_id', default=None)
_device_id: ContextVar[Optional[str]] = ContextVar('device_id', default=None)

DEFAULT_LOG_DIR = Path(os.path.expanduser("~")) / ".packers_assistant" / "logs"


class StructuredJSONFormatter(logging.Formatter):
    """
    JSON formatter for the log file.

    Each record becomes one JSON object with the fields timestamp, level,
    tool, operator_id, order_id, device_id, module, function, line and
    message, plus exc_info and extra when present.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            'timestamp': datetime.fromtimestamp(record.created).isoformat(timespec='milliseconds'),
            'level': record.levelname,
            'tool': 'packer_assistant',
            'operator_id': _operator_id.get(),
            'order_id': _order_id.get(),
            'device_id': _device_id.get(),
            'module': record.name,
            'function': record.funcName,
            'line': record.lineno,
            'message': record.getMessage(),
        }

        if record.exc_info:
            log_data['exc_info'] = self.formatException(record.exc_info)

        if hasattr(record, 'extra_data'):
            log_data['extra'] = record.extra_data

        return json.dumps(log_data, ensure_ascii=False)


class AppLogger:
    """
    One-time logging setup shared by every module.

    The root logger is configured on the first get_logger() call; later calls
    only return named loggers that inherit the same handlers.

    Attributes:
        _initialized: Whether logging has been configured (class-level)
        config_path: config.ini consulted on first setup (class-level)
    """

    _initialized: bool = False
    config_path: Path = Path('config.ini')

    @classmethod
    def get_logger(cls, name: str = 'PackerAssistant') -> logging.Logger:
        if not cls._initialized:
            cls._setup_logging()
            cls._initialized = True
        return logging.getLogger(name)

    @classmethod
    def _setup_logging(cls):
        """
        Configure root handlers from config.ini.

        Log file naming: <LogDir>/YYYY-MM-DD.log, rotated to .log.1 ... .log.30
        when the size limit is reached. If LogDir cannot be created the
        per-user directory ~/.packers_assistant/logs is used instead.
        """
        config = cls._load_config()

        log_dir = Path(config.get('Logging', 'LogDir', fallback=str(DEFAULT_LOG_DIR)))
        try:
            log_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            log_dir = DEFAULT_LOG_DIR
            log_dir.mkdir(parents=True, exist_ok=True)
            print(f"Warning: Could not create log directory. Using local: {log_dir}. Error: {e}")

        log_file = log_dir / f"{datetime.now():%Y-%m-%d}.log"

        log_level_str = config.get('Logging', 'LogLevel', fallback='INFO')
        log_level = getattr(logging, log_level_str.upper(), logging.INFO)

        max_log_size = config.getint('Logging', 'MaxLogSizeMB', fallback=10) * 1024 * 1024

        console_formatter = logging.Formatter(
            fmt='%(asctime)s | %(name)s | %(levelname)s | %(funcName)s:%(lineno)d | %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )

        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=max_log_size,
            backupCount=30,
            encoding='utf-8'
        )
        file_handler.setLevel(log_level)
        file_handler.setFormatter(StructuredJSONFormatter())

        console_handler = logging.StreamHandler()
        console_handler.setLevel(log_level)
        console_handler.setFormatter(console_formatter)

        root_logger = logging.getLogger()
        root_logger.setLevel(log_level)
        root_logger.addHandler(file_handler)
        root_logger.addHandler(console_handler)

        retention_days = config.getint('Logging', 'LogRetentionDays', fallback=30)
        cls._cleanup_old_logs(log_dir, retention_days)

        logger = logging.getLogger('PackerAssistant')
        logger.info("=" * 80)
        logger.info("Packer's Assistant Started")
        logger.info(f"Log Level: {log_level_str}")
        logger.info(f"Log File: {log_file}")
        logger.info("=" * 80)

    @classmethod
    def _load_config(cls) -> configparser.ConfigParser:
        """Read config.ini if present; an empty parser means all defaults."""
        config = configparser.ConfigParser()
        if cls.config_path.exists():
            config.read(cls.config_path, encoding='utf-8')
        return config

    @staticmethod
    def _cleanup_old_logs(log_dir: Path, retention_days: int):
        """
        Delete log files whose modification time is older than retention_days.

        Args:
            log_dir: Directory containing *.log and rotated *.log.N files
            retention_days: Days to keep; 0 or negative keeps everything
        """
        if retention_days <= 0:
            return

        cutoff_date = datetime.now() - timedelta(days=retention_days)

        try:
            for log_file in log_dir.glob("*.log*"):
                file_mtime = datetime.fromtimestamp(log_file.stat().st_mtime)
                if file_mtime < cutoff_date:
                    log_file.unlink()
                    logging.getLogger('PackerAssistant').debug(f"Deleted old log: {log_file.name}")
        except OSError as e:
            # File in use or share disconnected; cleanup is retried on next start
            logging.getLogger('PackerAssistant').warning(f"Failed to cleanup old logs: {e}")


def get_logger(name: str = 'PackerAssistant') -> logging.Logger:
    """
    Get application logger.

    Example:
        >>> from logger import get_logger
        >>> logger = get_logger(__name__)
        >>> logger.info("Scanner connected")
    """
    return AppLogger.get_logger(name)


def set_operator_context(operator_id: Optional[str]) -> None:
    """Attach the signed-in operator (email) to subsequent log entries."""
    _operator_id.set(operator_id)


def set_order_context(order_id: Optional[str]) -> None:
    """Attach the order being packed to subsequent log entries."""
    _order_id.set(order_id)


def set_device_context(device_id: Optional[str]) -> None:
    """Attach the packing station / device name to subsequent log entries."""
    _device_id.set(device_id)


def clear_logging_context() -> None:
    """Clear operator, order and device context."""
    _operator_id.set(None)
    _order_id.set(None)
    _device_id.set(None)
