"""
Alert notifiers

Usage:
    from seo_monitor.notifiers import LogNotifier, MultiNotifier, SlackWebhookNotifier

    notifier = MultiNotifier([LogNotifier(), SlackWebhookNotifier(webhook_url)])
"""

from .base import LogNotifier, MultiNotifier, Notifier
from .email import EmailNotifier
from .webhook import SlackWebhookNotifier, WebhookNotifier

__all__ = [
    "Notifier",
    "LogNotifier",
    "MultiNotifier",
    "SlackWebhookNotifier",
    "WebhookNotifier",
    "EmailNotifier",
]
