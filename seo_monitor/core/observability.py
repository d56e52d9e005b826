"""
Observability Module - Error Tracking and Performance Monitoring

Provides:
- Sentry error tracking (enabled when SENTRY_DSN is set)
- Operational Slack notifications (enabled when OPS_SLACK_WEBHOOK_URL is set)
- Performance tracking for scheduled jobs

Usage:
    from seo_monitor.core.observability import setup_observability, track_performance

    setup_observability(environment="production")

    with track_performance("poll_cycle"):
        await pipeline.poll_cycle()
"""

import time
from collections.abc import Generator
from contextlib import contextmanager
from datetime import datetime
from typing import Any

import requests
import sentry_sdk
from sentry_sdk.integrations.logging import LoggingIntegration

from seo_monitor.core.logging_config import get_logger

logger = get_logger(__name__)


class ObservabilityConfig:
    """
    Configuration for observability features.

    Attributes:
        sentry_dsn: Sentry Data Source Name for error tracking
        slack_webhook_url: Slack webhook URL for operational notifications
        environment: Environment name (development, staging, production)
    """

    def __init__(
        self,
        sentry_dsn: str | None = None,
        slack_webhook_url: str | None = None,
        environment: str = "development",
        enable_sentry: bool = False,
        enable_slack: bool = False,
    ):
        self.sentry_dsn = sentry_dsn
        self.slack_webhook_url = slack_webhook_url
        self.environment = environment
        self.enable_sentry = bool(enable_sentry and sentry_dsn)
        self.enable_slack = bool(enable_slack and slack_webhook_url)


_observability_config: ObservabilityConfig | None = None


def setup_observability(
    sentry_dsn: str | None = None,
    slack_webhook_url: str | None = None,
    environment: str = "development",
    enable_sentry: bool = True,
    enable_slack: bool = True,
) -> ObservabilityConfig:
    """
    Initialize observability features.

    Args:
        sentry_dsn: Sentry DSN (or set SENTRY_DSN env var)
        slack_webhook_url: Ops Slack webhook (or set OPS_SLACK_WEBHOOK_URL env var)
        environment: Environment name (development, staging, production)
        enable_sentry: Enable Sentry error tracking
        enable_slack: Enable Slack notifications for slow jobs

    Returns:
        The active ObservabilityConfig
    """
    global _observability_config

    from seo_monitor.secure_config import get_config

    config = get_config()
    sentry_dsn = sentry_dsn or config.get_optional_env("SENTRY_DSN")
    slack_webhook_url = slack_webhook_url or config.get_optional_env("OPS_SLACK_WEBHOOK_URL")

    _observability_config = ObservabilityConfig(
        sentry_dsn=sentry_dsn,
        slack_webhook_url=slack_webhook_url,
        environment=environment,
        enable_sentry=enable_sentry,
        enable_slack=enable_slack,
    )

    if _observability_config.enable_sentry:
        sentry_logging = LoggingIntegration(
            level=None,
            event_level="ERROR",  # Send errors and above to Sentry
        )

        sentry_sdk.init(
            dsn=sentry_dsn,
            environment=environment,
            integrations=[sentry_logging],
            traces_sample_rate=0.1,
        )

        logger.info("Sentry error tracking initialized", extra={"environment": environment})
    else:
        logger.info("Sentry error tracking disabled (no SENTRY_DSN)")

    if _observability_config.enable_slack:
        logger.info("Ops Slack notifications enabled", extra={"environment": environment})

    return _observability_config


def reset_observability() -> None:
    """Forget the active configuration (used by tests)."""
    global _observability_config
    _observability_config = None


def capture_exception(exception: BaseException, context: dict[str, Any] | None = None) -> None:
    """
    Capture an exception for error tracking.

    Args:
        exception: The exception to capture
        context: Tags to attach (job name, metric key, ...)

    Example:
        try:
            await pipeline.poll_cycle()
        except Exception as e:
            capture_exception(e, context={"job": "poll"})
    """
    if _observability_config and _observability_config.enable_sentry:
        with sentry_sdk.new_scope() as scope:
            for key, value in (context or {}).items():
                scope.set_tag(key, value)
            sentry_sdk.capture_exception(exception)

        logger.debug(
            "Exception captured by Sentry",
            extra={"exception_type": type(exception).__name__, "context": context or {}},
        )


def send_slack_notification(message: str, severity: str = "info", context: dict[str, Any] | None = None) -> bool:
    """
    Send an operational notification to Slack.

    Alert state changes go through seo_monitor.notifiers; this channel is
    for the monitor's own health (slow jobs and similar).

    Returns:
        True if sent successfully, False otherwise
    """
    if not _observability_config or not _observability_config.enable_slack:
        logger.debug("Slack notifications disabled, skipping", extra={"notification": message})
        return False

    colors = {
        "info": "#36a64f",
        "warning": "#ff9900",
        "error": "#ff0000",
        "critical": "#8b0000",
    }

    fields = [
        {"title": "Environment", "value": _observability_config.environment, "short": True},
        {"title": "Timestamp", "value": datetime.now().isoformat(), "short": True},
    ]
    for key, value in (context or {}).items():
        fields.append({"title": key, "value": str(value), "short": True})

    payload = {
        "text": f"*{severity.upper()}*: {message}",
        "attachments": [{"color": colors.get(severity, "#808080"), "fields": fields}],
    }

    from seo_monitor.http_client import post

    try:
        response = post(
            _observability_config.slack_webhook_url, json=payload, headers={"Content-Type": "application/json"}
        )
    except requests.RequestException as e:
        logger.error("Error sending Slack notification", extra={"error": str(e)})
        return False

    if response.status_code != 200:
        logger.error("Slack notification failed", extra={"status_code": response.status_code})
        return False

    logger.info("Slack notification sent", extra={"severity": severity})
    return True


@contextmanager
def track_performance(operation_name: str, alert_threshold_ms: float = 5000.0) -> Generator[dict[str, Any], None, None]:
    """
    Context manager to track operation performance.

    Args:
        operation_name: Name of the operation being tracked
        alert_threshold_ms: Warn if operation takes longer than this (milliseconds)

    Yields:
        Dictionary to store additional context

    Example:
        with track_performance("report_cycle") as ctx:
            report = generator.generate(start, end)
            ctx["report_id"] = report.id
    """
    context: dict[str, Any] = {}
    start_time = time.perf_counter()

    try:
        yield context
    finally:
        duration_ms = (time.perf_counter() - start_time) * 1000

        logger.info(
            f"Performance: {operation_name}",
            extra={"operation": operation_name, "duration_ms": round(duration_ms, 2), **context},
        )

        if duration_ms > alert_threshold_ms:
            logger.warning(
                f"Slow operation detected: {operation_name}",
                extra={
                    "operation": operation_name,
                    "duration_ms": round(duration_ms, 2),
                    "threshold_ms": alert_threshold_ms,
                    **context,
                },
            )

            if duration_ms > alert_threshold_ms * 2:
                send_slack_notification(
                    f"Slow operation: {operation_name} took {duration_ms:.0f}ms (threshold: {alert_threshold_ms:.0f}ms)",
                    severity="warning",
                    context={"duration_ms": round(duration_ms, 2)},
                )
