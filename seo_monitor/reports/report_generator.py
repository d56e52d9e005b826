"""
Report Generator - periodic summaries of metric history and alerts

Builds a Report with four fixed sections:

    summary        counts of metrics, readings and alerts for the period
    metric_trends  per-metric first/latest/min/max/average/change
    alert_log      alerts triggered within the period, oldest first
    top_movers     metrics with the largest relative change

Output depends only on the store contents, the alert log and the requested
period; ``generated_at`` is the only clock-dependent field.

Usage::

    generator = ReportGenerator(store, alert_engine, metric_keys=config.metric_keys)
    start, end = period_for("weekly", utc_now())
    report = generator.generate(start, end)
"""

from collections import Counter, deque
from collections.abc import Callable, Iterable
from datetime import datetime
from typing import Any

from seo_monitor.core.logging_config import get_logger
from seo_monitor.domain.metrics import SEVERITY_RANK, TrendData
from seo_monitor.domain.reports import (
    PERIODS,
    SECTION_ALERT_LOG,
    SECTION_METRIC_TRENDS,
    SECTION_SUMMARY,
    SECTION_TOP_MOVERS,
    Report,
)
from seo_monitor.engine.alert_engine import AlertEngine
from seo_monitor.storage.snapshot_store import SnapshotStore
from seo_monitor.utils.datetime_utils import utc_now

logger = get_logger(__name__)

DEFAULT_REPORT_HISTORY_LIMIT = 50
DEFAULT_TOP_MOVERS_LIMIT = 5


def period_for(kind: str, now: datetime) -> tuple[datetime, datetime]:
    """
    Reporting window ending at ``now``.

    Args:
        kind: 'daily', 'weekly' or 'monthly'
        now: End of the period

    Raises:
        ValueError: If kind is unknown
    """
    try:
        length = PERIODS[kind]
    except KeyError:
        raise ValueError(f"Unknown report period {kind!r}, expected one of {sorted(PERIODS)}") from None
    return now - length, now


def _round(value: float | None, digits: int = 4) -> float | None:
    return None if value is None else round(value, digits)


class ReportGenerator:
    """
    Assembles Reports from the SnapshotStore and the AlertEngine's log.

    Keeps a bounded history of generated reports (oldest dropped first).
    """

    def __init__(
        self,
        store: SnapshotStore,
        alert_engine: AlertEngine,
        metric_keys: Iterable[str] | None = None,
        history_limit: int = DEFAULT_REPORT_HISTORY_LIMIT,
        top_movers_limit: int = DEFAULT_TOP_MOVERS_LIMIT,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.store = store
        self.alert_engine = alert_engine
        self.metric_keys = tuple(sorted(metric_keys)) if metric_keys is not None else None
        self.top_movers_limit = top_movers_limit
        self.clock = clock
        self._reports: deque[Report] = deque(maxlen=history_limit)
        self._sequence = 0

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    def generate(self, period_start: datetime, period_end: datetime) -> Report:
        """
        Build a report for [period_start, period_end].

        Metric keys without readings in the period are left out of every
        section and logged at warning; they never fail the report.

        Raises:
            ValueError: If period_end is before period_start
        """
        if period_end < period_start:
            raise ValueError("period_end must not be before period_start")

        keys = self.metric_keys if self.metric_keys is not None else tuple(sorted(self.store.metric_keys()))

        trends: dict[str, TrendData] = {}
        omitted: list[str] = []
        for key in keys:
            readings = list(self.store.history(key, since=period_start, until=period_end))
            if not readings:
                omitted.append(key)
                logger.warning(
                    "No readings for metric in report period, omitting",
                    extra={"metric_key": key, "period_start": period_start.isoformat()},
                )
                continue
            trends[key] = TrendData.from_readings(readings, label=key)

        alerts = self.alert_engine.history(since=period_start, until=period_end)

        sections = {
            SECTION_SUMMARY: self._summary(keys, trends, omitted, alerts),
            SECTION_METRIC_TRENDS: {key: self._trend_entry(trend) for key, trend in trends.items()},
            SECTION_ALERT_LOG: [alert.to_dict() for alert in alerts],
            SECTION_TOP_MOVERS: self._top_movers(trends),
        }

        self._sequence += 1
        report = Report(
            id=f"report-{period_end.strftime('%Y%m%dT%H%M%S')}-{self._sequence:04d}",
            period_start=period_start,
            period_end=period_end,
            generated_at=self.clock(),
            sections=sections,
        )
        self._reports.append(report)

        logger.info(
            "Report generated",
            extra={
                "report_id": report.id,
                "metrics_reported": len(trends),
                "metrics_omitted": len(omitted),
                "alerts": len(alerts),
            },
        )
        return report

    def reports(self) -> list[Report]:
        """Generated reports, oldest first."""
        return list(self._reports)

    def latest(self) -> Report | None:
        return self._reports[-1] if self._reports else None

    # ------------------------------------------------------------------
    # Sections
    # ------------------------------------------------------------------

    def _summary(self, keys, trends: dict[str, TrendData], omitted: list[str], alerts) -> dict[str, Any]:
        by_severity = Counter(alert.severity for alert in alerts)
        by_status = Counter(alert.status for alert in alerts)
        return {
            "metrics_tracked": len(keys),
            "metrics_reported": len(trends),
            "metrics_omitted": omitted,
            "readings": sum(len(trend.values) for trend in trends.values()),
            "alerts_raised": len(alerts),
            "alerts_by_severity": {
                severity: by_severity[severity]
                for severity in sorted(by_severity, key=lambda s: -SEVERITY_RANK.get(s, 0))
            },
            "alerts_by_status": dict(sorted(by_status.items())),
        }

    @staticmethod
    def _trend_entry(trend: TrendData) -> dict[str, Any]:
        return {
            "readings": len(trend.values),
            "first": trend.earliest(),
            "latest": trend.latest(),
            "minimum": trend.minimum(),
            "maximum": trend.maximum(),
            "average": _round(trend.average()),
            "change": _round(trend.total_change()),
            "percent_change": _round(trend.total_percent_change(), 2),
            "first_at": trend.timestamps[0].isoformat(),
            "latest_at": trend.timestamps[-1].isoformat(),
        }

    def _top_movers(self, trends: dict[str, TrendData]) -> list[dict[str, Any]]:
        movers = []
        for key, trend in trends.items():
            change = trend.total_change()
            if change is None or change == 0:
                continue
            movers.append(
                {
                    "metric_key": key,
                    "change": _round(change),
                    "percent_change": _round(trend.total_percent_change(), 2),
                    "direction": "increase" if change > 0 else "decrease",
                }
            )

        # Relative movers first (largest magnitude), then zero-baseline movers by absolute change
        movers.sort(key=lambda m: m["metric_key"])
        movers.sort(
            key=lambda m: (
                m["percent_change"] is not None,
                abs(m["percent_change"] or 0),
                abs(m["change"]),
            ),
            reverse=True,
        )
        return movers[: self.top_movers_limit]
