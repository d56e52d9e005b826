"""
Email notifier - send alert state changes over SMTP (STARTTLS)
"""

import smtplib
from email.mime.text import MIMEText
from email.utils import formatdate

from seo_monitor.core.logging_config import get_logger
from seo_monitor.domain.alerts import Alert
from seo_monitor.errors import NotifyError
from seo_monitor.notifiers.base import Notifier, alert_headline
from seo_monitor.secure_config import EmailConfig

logger = get_logger(__name__)


def render_alert_body(alert: Alert) -> str:
    lines = [
        alert.message,
        "",
        f"Metric:    {alert.metric_key}",
        f"Severity:  {alert.severity}",
        f"Status:    {alert.status}",
        f"Type:      {alert.alert_type}",
        f"Triggered: {alert.triggered_at.isoformat()}",
    ]
    if alert.previous_value is not None:
        lines.append(f"Previous:  {alert.previous_value:g}")
    if alert.last_value is not None:
        lines.append(f"Latest:    {alert.last_value:g}")
    lines += ["", f"Alert id: {alert.id}"]
    return "\n".join(lines)


class EmailNotifier(Notifier):
    """
    Email each alert state change to a fixed recipient list.

    SMTP errors are reported as NotifyError; delivery is attempted once.
    """

    name = "email"

    def __init__(self, config: EmailConfig, recipients: list[str], timeout: float = 30.0) -> None:
        if not recipients:
            raise ValueError("EmailNotifier needs at least one recipient")
        self.config = config
        self.recipients = recipients
        self.timeout = timeout

    def build_message(self, alert: Alert) -> MIMEText:
        msg = MIMEText(render_alert_body(alert), "plain", "utf-8")
        msg["From"] = self.config.sender_email
        msg["To"] = ", ".join(self.recipients)
        msg["Subject"] = f"[SEO Monitor] {alert_headline(alert)}"
        msg["Date"] = formatdate(localtime=True)
        return msg

    def notify(self, alert: Alert) -> None:
        msg = self.build_message(alert)
        try:
            with smtplib.SMTP(self.config.smtp_server, self.config.smtp_port, timeout=self.timeout) as server:
                server.ehlo()
                server.starttls()
                server.ehlo()
                server.login(self.config.sender_email, self.config.sender_password)
                server.send_message(msg, to_addrs=self.recipients)
        except smtplib.SMTPAuthenticationError as e:
            raise NotifyError(f"SMTP authentication failed: {e}") from e
        except (smtplib.SMTPException, OSError) as e:
            raise NotifyError(f"Failed to send alert email: {e}") from e

        logger.info("Alert email sent", extra={"alert_id": alert.id, "recipients": len(self.recipients)})
