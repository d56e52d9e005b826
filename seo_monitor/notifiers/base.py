"""
Notifier boundary

Notifiers deliver alert state changes to people (Slack, email, webhooks).
``notify`` either returns normally or raises NotifyError; retrying is the
notifier's own business, never the alert engine's.
"""

from abc import ABC, abstractmethod
from collections.abc import Iterable

from seo_monitor.core.logging_config import get_logger
from seo_monitor.domain.alerts import Alert
from seo_monitor.errors import NotifyError

logger = get_logger(__name__)

# Slack attachment colors by severity
SEVERITY_COLORS = {
    "info": "#36a64f",  # Green
    "warning": "#ff9900",  # Orange
    "critical": "#8b0000",  # Dark red
}


def alert_headline(alert: Alert) -> str:
    """One-line summary used as notification title."""
    return f"[{alert.severity.upper()}] {alert.status}: {alert.message}"


class Notifier(ABC):
    """Base class for all alert notifiers."""

    name = "notifier"

    @abstractmethod
    def notify(self, alert: Alert) -> None:
        """
        Deliver one alert state change.

        Raises:
            NotifyError: If delivery failed
        """


class LogNotifier(Notifier):
    """Writes alert state changes to the application log."""

    name = "log"

    def __init__(self, level: str = "warning") -> None:
        self.level = level

    def notify(self, alert: Alert) -> None:
        getattr(logger, self.level)(
            alert_headline(alert),
            extra={
                "alert_id": alert.id,
                "metric_key": alert.metric_key,
                "severity": alert.severity,
                "status": alert.status,
                "alert_type": alert.alert_type,
            },
        )


class MultiNotifier(Notifier):
    """
    Fan out to several notifiers.

    Every member is attempted; if any failed, a single NotifyError naming the
    failed members is raised afterwards.
    """

    name = "multi"

    def __init__(self, notifiers: Iterable[Notifier]) -> None:
        self.notifiers = list(notifiers)

    def notify(self, alert: Alert) -> None:
        failures: list[str] = []
        for notifier in self.notifiers:
            try:
                notifier.notify(alert)
            except NotifyError as e:
                failures.append(f"{notifier.name}: {e}")

        if failures:
            raise NotifyError(f"{len(failures)} notifier(s) failed for alert {alert.id}: " + "; ".join(failures))
