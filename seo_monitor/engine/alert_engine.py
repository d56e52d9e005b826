"""
Alert engine for metric threshold breaches and stale data.

Turns DeltaEvents into deduplicated alerts and drives each alert through its
lifecycle (active -> acknowledged -> resolved -> expired). State changes are
handed to a Notifier without blocking the caller.

Usage::

    from seo_monitor.engine.alert_engine import AlertEngine

    engine = AlertEngine(notifier=SlackWebhookNotifier(url), dedup_window=timedelta(minutes=5))
    changed = engine.evaluate(detector.detect(store))
    engine.acknowledge(changed[0].id)
    active = engine.list_active()
"""

import asyncio
import uuid
from collections import deque
from collections.abc import Callable, Iterable
from datetime import datetime, timedelta

from seo_monitor.core.logging_config import get_logger
from seo_monitor.domain.alerts import (
    ALERT_TYPE_STALE,
    ALERT_TYPE_THRESHOLD,
    STATUS_ACKNOWLEDGED,
    STATUS_ACTIVE,
    STATUS_EXPIRED,
    STATUS_RESOLVED,
    Alert,
)
from seo_monitor.domain.metrics import SEVERITY_RANK, SEVERITY_WARNING, DeltaEvent
from seo_monitor.errors import AlertNotFound, InvalidAlertTransition, NotifyError
from seo_monitor.notifiers.base import Notifier
from seo_monitor.utils.datetime_utils import utc_now
from seo_monitor.utils.error_handling import log_and_continue

logger = get_logger(__name__)

DEFAULT_DEDUP_WINDOW = timedelta(minutes=5)
DEFAULT_ALERT_RETENTION = timedelta(hours=24)
DEFAULT_HISTORY_LIMIT = 200
DEFAULT_RECENT_LIMIT = 50


def _new_alert_id() -> str:
    return f"alert-{uuid.uuid4().hex[:12]}"


class AlertEngine:
    """
    Owns every Alert from creation to expiry.

    Alerts never leave the engine by reference: every public method returns
    copies, so callers cannot change alert state behind the engine's back.
    """

    def __init__(
        self,
        notifier: Notifier | None = None,
        dedup_window: timedelta = DEFAULT_DEDUP_WINDOW,
        alert_retention: timedelta = DEFAULT_ALERT_RETENTION,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
        clock: Callable[[], datetime] = utc_now,
        id_factory: Callable[[], str] = _new_alert_id,
    ) -> None:
        self.notifier = notifier
        self.dedup_window = dedup_window
        self.alert_retention = alert_retention
        self.clock = clock
        self.id_factory = id_factory

        # Working set: every alert that has not expired yet
        self._alerts: dict[str, Alert] = {}
        # Historical log, oldest evicted first
        self._history: deque[Alert] = deque(maxlen=history_limit)
        self._pending_notifications: set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def evaluate(self, delta_events: Iterable[DeltaEvent], evaluated_keys: Iterable[str] | None = None) -> list[Alert]:
        """
        Raise, refresh and auto-resolve threshold alerts for one evaluation cycle.

        Args:
            delta_events: Events fired by the ChangeDetector this cycle
            evaluated_keys: Metric keys that were evaluated this cycle. Open
                alerts for these keys with no firing event are resolved.
                None means every key was evaluated.

        Returns:
            Copies of alerts created or changed this cycle
        """
        now = self.clock()
        changed: dict[str, Alert] = {}

        by_key: dict[str, list[DeltaEvent]] = {}
        for event in delta_events:
            by_key.setdefault(event.metric_key, []).append(event)

        for metric_key, events in by_key.items():
            top = max(events, key=lambda e: SEVERITY_RANK[e.severity])
            existing = self._find_open(metric_key, ALERT_TYPE_THRESHOLD)

            if existing is not None and now - existing.last_seen_at <= self.dedup_window:
                if self._refresh(existing, top, now):
                    changed[existing.id] = existing
                continue

            if existing is not None:
                # Condition outlived the dedup window without being observed
                self._transition(existing, STATUS_RESOLVED, now)
                changed[existing.id] = existing

            alert = self._create(
                metric_key=metric_key,
                severity=top.severity,
                message=top.describe(),
                now=now,
                last_value=top.latest_value,
                previous_value=top.previous_value,
                alert_type=ALERT_TYPE_THRESHOLD,
            )
            changed[alert.id] = alert

        evaluated = None if evaluated_keys is None else set(evaluated_keys)
        for alert in list(self._alerts.values()):
            if alert.alert_type != ALERT_TYPE_THRESHOLD or not alert.is_open:
                continue
            if alert.metric_key in by_key:
                continue
            if evaluated is not None and alert.metric_key not in evaluated:
                continue
            self._transition(alert, STATUS_RESOLVED, now)
            changed[alert.id] = alert

        if changed:
            logger.info(
                "Alert evaluation complete",
                extra={"changed": len(changed), "open": sum(1 for a in self._alerts.values() if a.is_open)},
            )
        return [alert.copy() for alert in changed.values()]

    def raise_stale(self, metric_key: str, missed_cycles: int, severity: str = SEVERITY_WARNING) -> Alert | None:
        """
        Raise a stale-data alert for a key that stopped producing readings.

        Returns:
            Copy of the new alert, or None if a stale alert for the key is already open
        """
        now = self.clock()
        message = f"No fresh data for {metric_key} in {missed_cycles} consecutive poll cycles"

        existing = self._find_open(metric_key, ALERT_TYPE_STALE)
        if existing is not None:
            existing.last_seen_at = now
            existing.message = message
            return None

        alert = self._create(
            metric_key=metric_key,
            severity=severity,
            message=message,
            now=now,
            last_value=None,
            previous_value=None,
            alert_type=ALERT_TYPE_STALE,
        )
        return alert.copy()

    def clear_stale(self, metric_key: str) -> Alert | None:
        """Resolve the open stale-data alert for a key, if any."""
        existing = self._find_open(metric_key, ALERT_TYPE_STALE)
        if existing is None:
            return None
        self._transition(existing, STATUS_RESOLVED, self.clock())
        return existing.copy()

    # ------------------------------------------------------------------
    # Explicit lifecycle operations
    # ------------------------------------------------------------------

    def acknowledge(self, alert_id: str) -> Alert:
        """
        Mark an active alert as acknowledged.

        Raises:
            AlertNotFound: If the id is not in the working set
            InvalidAlertTransition: If the alert is not active
        """
        alert = self._get(alert_id)
        self._transition(alert, STATUS_ACKNOWLEDGED, self.clock())
        return alert.copy()

    def resolve(self, alert_id: str) -> Alert:
        """
        Resolve an active or acknowledged alert.

        Raises:
            AlertNotFound: If the id is not in the working set
            InvalidAlertTransition: If the alert is already resolved
        """
        alert = self._get(alert_id)
        self._transition(alert, STATUS_RESOLVED, self.clock())
        return alert.copy()

    def expire(self, now: datetime | None = None) -> list[Alert]:
        """
        Expire resolved alerts older than the retention period.

        Expired alerts leave the working set but stay in the historical log.

        Returns:
            Copies of alerts expired by this call
        """
        now = now or self.clock()
        expired: list[Alert] = []

        for alert in list(self._alerts.values()):
            if alert.status != STATUS_RESOLVED or alert.resolved_at is None:
                continue
            if now - alert.resolved_at < self.alert_retention:
                continue
            self._transition(alert, STATUS_EXPIRED, now)
            del self._alerts[alert.id]
            expired.append(alert.copy())

        if expired:
            logger.info("Expired resolved alerts", extra={"count": len(expired)})
        return expired

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    def list_active(self) -> list[Alert]:
        """Open (active or acknowledged) alerts, most severe first."""
        open_alerts = [a for a in self._alerts.values() if a.is_open]
        open_alerts.sort(key=lambda a: (-SEVERITY_RANK.get(a.severity, 0), a.triggered_at))
        return [alert.copy() for alert in open_alerts]

    def get(self, alert_id: str) -> Alert:
        return self._get(alert_id).copy()

    def history(self, since: datetime | None = None, until: datetime | None = None) -> list[Alert]:
        """
        Alerts from the historical log triggered within [since, until], oldest first.
        """
        return [
            alert.copy()
            for alert in self._history
            if (since is None or alert.triggered_at >= since) and (until is None or alert.triggered_at <= until)
        ]

    def recent(self, limit: int = DEFAULT_RECENT_LIMIT) -> list[Alert]:
        """Most recently triggered alerts, newest first."""
        return [alert.copy() for alert in list(self._history)[::-1][:limit]]

    async def wait_for_notifications(self) -> None:
        """Wait until every in-flight notification delivery has finished."""
        while self._pending_notifications:
            await asyncio.gather(*list(self._pending_notifications))

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _get(self, alert_id: str) -> Alert:
        try:
            return self._alerts[alert_id]
        except KeyError:
            raise AlertNotFound(f"No alert with id {alert_id!r}") from None

    def _find_open(self, metric_key: str, alert_type: str) -> Alert | None:
        for alert in self._alerts.values():
            if alert.metric_key == metric_key and alert.alert_type == alert_type and alert.is_open:
                return alert
        return None

    def _create(
        self,
        metric_key: str,
        severity: str,
        message: str,
        now: datetime,
        last_value: float | None,
        previous_value: float | None,
        alert_type: str,
    ) -> Alert:
        alert = Alert(
            id=self.id_factory(),
            metric_key=metric_key,
            severity=severity,
            message=message,
            triggered_at=now,
            status=STATUS_ACTIVE,
            last_value=last_value,
            previous_value=previous_value,
            alert_type=alert_type,
        )
        self._alerts[alert.id] = alert
        self._history.append(alert)

        logger.warning(
            "Alert raised",
            extra={"alert_id": alert.id, "metric_key": metric_key, "severity": severity, "alert_type": alert_type},
        )
        self._dispatch(alert)
        return alert

    def _refresh(self, alert: Alert, event: DeltaEvent, now: datetime) -> bool:
        """Record a repeat firing on an open alert; returns True if severity escalated."""
        alert.last_value = event.latest_value
        alert.last_seen_at = now
        logger.debug("Duplicate alert suppressed", extra={"alert_id": alert.id, "metric_key": alert.metric_key})
        if SEVERITY_RANK[event.severity] > SEVERITY_RANK.get(alert.severity, 0):
            logger.info(
                "Alert severity escalated",
                extra={"alert_id": alert.id, "from": alert.severity, "to": event.severity},
            )
            alert.severity = event.severity
            alert.message = event.describe()
            return True
        return False

    def _transition(self, alert: Alert, status: str, now: datetime) -> None:
        if not alert.can_transition_to(status):
            raise InvalidAlertTransition(f"Alert {alert.id} cannot move from {alert.status} to {status}")

        previous_status = alert.status
        alert.status = status
        if status == STATUS_ACKNOWLEDGED:
            alert.acknowledged_at = now
        elif status == STATUS_RESOLVED:
            alert.resolved_at = now
        elif status == STATUS_EXPIRED:
            alert.expired_at = now

        logger.info(
            "Alert status changed",
            extra={"alert_id": alert.id, "metric_key": alert.metric_key, "from": previous_status, "to": status},
        )
        self._dispatch(alert)

    def _dispatch(self, alert: Alert) -> None:
        """Hand a copy of the alert to the notifier without blocking the caller."""
        if self.notifier is None:
            return

        snapshot = alert.copy()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No event loop (synchronous use): deliver inline
            self._deliver(snapshot)
            return

        task = loop.create_task(asyncio.to_thread(self._deliver, snapshot))
        self._pending_notifications.add(task)
        task.add_done_callback(self._pending_notifications.discard)

    def _deliver(self, alert: Alert) -> None:
        notifier = self.notifier
        if notifier is None:
            # Detached after the notification was queued
            logger.debug("No notifier attached, dropping notification", extra={"alert_id": alert.id})
            return

        try:
            notifier.notify(alert)
        except NotifyError as e:
            log_and_continue(
                logger,
                e,
                context={"alert_id": alert.id, "status": alert.status, "notifier": notifier.name},
                error_type="Alert notification",
            )
        except Exception as e:
            logger.error(
                "Unexpected notifier failure",
                exc_info=True,
                extra={"alert_id": alert.id, "notifier": notifier.name, "error": str(e)},
            )
