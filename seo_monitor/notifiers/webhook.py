"""
HTTP notifiers - Slack incoming webhooks and generic JSON webhooks
"""

from datetime import datetime
from typing import Any

import requests

from seo_monitor import http_client
from seo_monitor.core.logging_config import get_logger
from seo_monitor.domain.alerts import Alert
from seo_monitor.errors import NotifyError
from seo_monitor.notifiers.base import SEVERITY_COLORS, Notifier, alert_headline
from seo_monitor.utils.error_handling import with_retry

logger = get_logger(__name__)


@with_retry(max_attempts=3, backoff_seconds=1.0, exceptions=(requests.ConnectionError, requests.Timeout))
def _post_json(url: str, payload: dict[str, Any], timeout: float) -> requests.Response:
    return http_client.post(url, json=payload, headers={"Content-Type": "application/json"}, timeout=timeout)


class SlackWebhookNotifier(Notifier):
    """
    Post alert state changes to a Slack incoming webhook.

    Message layout: bold severity headline plus a colored attachment with
    metric, status and value fields.
    """

    name = "slack"

    def __init__(self, webhook_url: str, environment: str = "production", timeout: float = 10.0) -> None:
        self.webhook_url = webhook_url
        self.environment = environment
        self.timeout = timeout

    def build_payload(self, alert: Alert) -> dict[str, Any]:
        fields = [
            {"title": "Metric", "value": alert.metric_key, "short": True},
            {"title": "Status", "value": alert.status, "short": True},
            {"title": "Environment", "value": self.environment, "short": True},
            {"title": "Triggered", "value": alert.triggered_at.isoformat(), "short": True},
        ]
        if alert.previous_value is not None:
            fields.append({"title": "Previous", "value": f"{alert.previous_value:g}", "short": True})
        if alert.last_value is not None:
            fields.append({"title": "Latest", "value": f"{alert.last_value:g}", "short": True})

        return {
            "text": f"*{alert.severity.upper()}*: {alert.message}",
            "attachments": [
                {
                    "color": SEVERITY_COLORS.get(alert.severity, "#808080"),
                    "fields": fields,
                    "footer": f"alert {alert.id}",
                }
            ],
        }

    def notify(self, alert: Alert) -> None:
        try:
            response = _post_json(self.webhook_url, self.build_payload(alert), self.timeout)
        except requests.RequestException as e:
            raise NotifyError(f"Slack webhook request failed: {e}") from e

        if response.status_code != 200:
            raise NotifyError(f"Slack webhook returned HTTP {response.status_code}: {response.text[:200]}")

        logger.info("Slack notification sent", extra={"alert_id": alert.id, "status": alert.status})


class WebhookNotifier(Notifier):
    """POST the alert as JSON to an arbitrary endpoint; any 2xx counts as delivered."""

    name = "webhook"

    def __init__(self, url: str, headers: dict[str, str] | None = None, timeout: float = 10.0) -> None:
        self.url = url
        self.headers = headers or {}
        self.timeout = timeout

    def notify(self, alert: Alert) -> None:
        payload = {
            "event": "alert.state_changed",
            "title": alert_headline(alert),
            "sent_at": datetime.now().astimezone().isoformat(),
            "alert": alert.to_dict(),
        }
        try:
            response = http_client.post(
                self.url, json=payload, headers={"Content-Type": "application/json", **self.headers}, timeout=self.timeout
            )
        except requests.RequestException as e:
            raise NotifyError(f"Webhook request failed: {e}") from e

        if not 200 <= response.status_code < 300:
            raise NotifyError(f"Webhook returned HTTP {response.status_code}")

        logger.info("Webhook notification sent", extra={"alert_id": alert.id, "url": self.url})
