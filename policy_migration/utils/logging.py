"""
Logging setup for the policy migration service.

Console output goes through a Rich handler unless structured JSON logging
is requested; an optional rotating log file can be added. MigrationLogger
gives each migration its own child logger with stage helpers.
"""

import json
import logging
import logging.handlers
import sys
from dataclasses import asdict, dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from rich.console import Console
from rich.logging import RichHandler

ROOT_LOGGER = "policy_migration"

_RESERVED_ATTRS = {
    'name', 'msg', 'args', 'levelname', 'levelno', 'pathname', 'filename',
    'module', 'lineno', 'funcName', 'created', 'msecs', 'relativeCreated',
    'thread', 'threadName', 'processName', 'process', 'getMessage',
    'exc_info', 'exc_text', 'stack_info', 'taskName', 'message',
}


@dataclass
class LogEntry:
    """Structured log entry with metadata."""
    timestamp: datetime = field(default_factory=datetime.now)
    level: str = "INFO"
    logger: str = ROOT_LOGGER
    message: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_json(self) -> str:
        """Convert log entry to JSON string."""
        data = asdict(self)
        data['timestamp'] = self.timestamp.isoformat()
        return json.dumps(data, default=str)


class StructuredFormatter(logging.Formatter):
    """Formatter for structured JSON logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as structured JSON."""
        entry = LogEntry(
            timestamp=datetime.fromtimestamp(record.created),
            level=record.levelname,
            logger=record.name,
            message=record.getMessage(),
            metadata={
                'module': record.module,
                'function': record.funcName,
                'line': record.lineno,
            }
        )

        # Add extra fields from record
        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                entry.metadata[key] = value

        if record.exc_info:
            entry.metadata['exception'] = self.formatException(record.exc_info)

        return entry.to_json()


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    rich_console: bool = True,
    structured_logging: bool = False,
    max_log_size: int = 10 * 1024 * 1024,  # 10MB
    backup_count: int = 5
) -> logging.Logger:
    """
    Set up logging for the policy migration service.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional log file path
        rich_console: Whether to use the Rich console handler
        structured_logging: Whether to emit structured JSON
        max_log_size: Maximum log file size before rotation
        backup_count: Number of rotated log files to keep

    Returns:
        The package root logger
    """
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(getattr(logging, level.upper()))
    logger.handlers.clear()

    if rich_console and not structured_logging:
        console_handler = RichHandler(
            console=Console(stderr=True),
            show_time=True,
            show_path=False,
            rich_tracebacks=True
        )
    else:
        console_handler = logging.StreamHandler(sys.stderr)
        if structured_logging:
            console_handler.setFormatter(StructuredFormatter())
        else:
            console_handler.setFormatter(logging.Formatter(
                fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S"
            ))
    logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=max_log_size,
            backupCount=backup_count
        )
        if structured_logging:
            file_handler.setFormatter(StructuredFormatter())
        else:
            file_handler.setFormatter(logging.Formatter(
                fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S"
            ))
        logger.addHandler(file_handler)

    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance below the package root logger."""
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


class MigrationLogger:
    """Logger for one migration, keyed by its registry key."""

    def __init__(self, migration_key: str):
        self.migration_key = migration_key
        self.logger = get_logger(f"migration.{migration_key}")

    def _extra(self, **metadata) -> Dict[str, Any]:
        return {'migration': self.migration_key, **metadata}

    def info(self, message: str, **metadata):
        self.logger.info(message, extra=self._extra(**metadata))

    def error(self, message: str, **metadata):
        self.logger.error(message, extra=self._extra(**metadata))

    def stage_start(self, stage: str):
        """Log stage start."""
        self.info(f"Starting stage: {stage}", stage=stage, stage_status='started')

    def stage_complete(self, stage: str, duration: float):
        """Log stage completion."""
        self.info(
            f"Completed stage: {stage} (took {duration:.2f}s)",
            stage=stage,
            stage_status='completed',
            duration=duration,
        )

    def stage_failed(self, stage: str, error: str, error_code: Optional[str] = None):
        """Log stage failure."""
        self.error(
            f"Failed stage: {stage} - {error}",
            stage=stage,
            stage_status='failed',
            error_code=error_code,
        )
