"""
Core Infrastructure - Logging and Observability

Usage:
    from seo_monitor.core import get_logger, setup_logging

    setup_logging(level="INFO", json_output=True)
    logger = get_logger(__name__)
"""

from .logging_config import get_logger, log_with_context, setup_logging
from .observability import capture_exception, setup_observability, track_performance

__all__ = [
    "get_logger",
    "log_with_context",
    "setup_logging",
    "capture_exception",
    "setup_observability",
    "track_performance",
]
