"""
Centralized logging configuration with structured JSON output.

Provides:
- JSON structured logging for production
- Human-readable console logging for development
- Automatic context injection (timestamp, module, level)
- File output (always JSON, size-rotated)
- Scheduled job name attached to every record logged while the job runs

Usage:
    from seo_monitor.core.logging_config import get_logger

    logger = get_logger(__name__)
    logger.info("Poll cycle complete", extra={
        "metric_count": 8,
        "duration_ms": 412
    })
"""

import json
import logging
import sys
from collections.abc import Generator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

# Attributes every LogRecord carries; anything else came in through extra={...}
_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None)).keys() | {"message", "asctime"}
)

_current_job: ContextVar[str | None] = ContextVar("seo_monitor_job", default=None)


@contextmanager
def job_context(job_name: str) -> Generator[None, None, None]:
    """Tag records logged inside the block (and tasks/threads started from it) with ``job``."""
    token = _current_job.set(job_name)
    try:
        yield
    finally:
        _current_job.reset(token)


class JobContextFilter(logging.Filter):
    """Copy the running job's name onto records that do not already carry one."""

    def filter(self, record: logging.LogRecord) -> bool:
        job_name = _current_job.get()
        if job_name is not None and not hasattr(record, "job"):
            record.job = job_name
        return True


class JSONFormatter(logging.Formatter):
    """
    Format log records as JSON for structured logging.

    Fields passed via ``extra={...}`` are merged into the top-level object so
    log aggregators can index them.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON string"""
        log_data: dict[str, Any] = {
            "timestamp": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # log_with_context() nests its fields under extra_fields
        if hasattr(record, "extra_fields"):
            log_data.update(record.extra_fields)

        for key, value in vars(record).items():
            if key not in _RESERVED_ATTRS and key != "extra_fields":
                log_data[key] = value

        return json.dumps(log_data, default=str)


class ContextFormatter(logging.Formatter):
    """
    Human-readable formatter for console output.

    Includes color coding for log levels (when supported).
    """

    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        """Format log record with color coding"""
        levelname = record.levelname
        if sys.stderr.isatty():
            color = self.COLORS.get(levelname, "")
            record.levelname = f"{color}{levelname}{self.RESET}"
        try:
            return super().format(record)
        finally:
            record.levelname = levelname


def setup_logging(
    level: str = "INFO",
    log_file: Path | None = None,
    json_output: bool = False,
    max_bytes: int = 10_000_000,
    backup_count: int = 5,
) -> None:
    """
    Configure application-wide logging.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional file path for log output
        json_output: If True, use JSON formatter; if False, use human-readable format
        max_bytes: Rotate the log file once it reaches this size
        backup_count: Rotated files to keep

    Example:
        # Development (human-readable console)
        setup_logging(level="DEBUG")

        # Production (JSON to file)
        setup_logging(
            level="INFO",
            log_file=Path(".tmp/seo_monitor/logs/monitor.log"),
            json_output=True
        )
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.addFilter(JobContextFilter())

    if json_output:
        console_handler.setFormatter(JSONFormatter())
    else:
        console_handler.setFormatter(
            ContextFormatter(
                fmt="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )

    root_logger.addHandler(console_handler)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)

        file_handler = RotatingFileHandler(log_file, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8")
        file_handler.setLevel(log_level)
        file_handler.addFilter(JobContextFilter())
        file_handler.setFormatter(JSONFormatter())

        root_logger.addHandler(file_handler)

    # Reduce noise from HTTP libraries
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("requests").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger for the specified module.

    Args:
        name: Module name (use __name__ in calling module)

    Returns:
        Configured logger instance
    """
    return logging.getLogger(name)


def log_with_context(logger: logging.Logger, level: str, message: str, **context: Any) -> None:
    """
    Log message with additional context fields.

    Args:
        logger: Logger instance
        level: Log level (debug, info, warning, error, critical)
        message: Log message
        **context: Additional context fields (key-value pairs)

    Example:
        log_with_context(
            logger,
            "info",
            "Readings stored",
            metric_key="ranking.plumber_near_me",
            value=18,
        )
    """
    log_func = getattr(logger, level.lower())
    log_func(message, extra={"extra_fields": context})
