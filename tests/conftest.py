"""
Pytest configuration and shared fixtures

Provides a controllable clock, metric readings, a recording notifier and
pre-wired pipeline components.
"""

from datetime import UTC, datetime, timedelta

import pytest

from seo_monitor.domain.alerts import Alert
from seo_monitor.domain.metrics import MetricReading, ThresholdRule
from seo_monitor.errors import NotifyError
from seo_monitor.notifiers.base import Notifier
from seo_monitor.storage.snapshot_store import SnapshotStore


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class RecordingNotifier(Notifier):
    """Keeps every delivered alert; optionally fails every delivery."""

    name = "recording"

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.delivered: list[Alert] = []

    def notify(self, alert: Alert) -> None:
        if self.fail:
            raise NotifyError("delivery refused")
        self.delivered.append(alert)

    def statuses(self) -> list[tuple[str, str]]:
        return [(alert.metric_key, alert.status) for alert in self.delivered]


# ===== Time =====


@pytest.fixture
def base_time():
    """Provide a consistent timezone-aware timestamp for testing"""
    return datetime(2026, 3, 2, 9, 0, 0, tzinfo=UTC)


@pytest.fixture
def clock(base_time):
    return FakeClock(base_time)


# ===== Domain =====


@pytest.fixture
def make_reading(base_time):
    """Factory: make_reading(key, value, minutes_after_base)"""

    def _make(metric_key: str, value: float, minutes: float = 0) -> MetricReading:
        return MetricReading(metric_key=metric_key, value=value, captured_at=base_time + timedelta(minutes=minutes))

    return _make


@pytest.fixture
def ranking_rule():
    """Ranking position rising by 5+ places (a drop in search visibility)"""
    return ThresholdRule(metric_key="ranking.plumber_near_me", direction="increase", absolute_delta=5)


@pytest.fixture
def seo_score_rule():
    return ThresholdRule(
        metric_key="pagespeed.seo", direction="decrease", absolute_delta=15, relative_delta=0.1, severity="critical"
    )


# ===== Components =====


@pytest.fixture
def store():
    return SnapshotStore(retention_count=10)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def failing_notifier():
    return RecordingNotifier(fail=True)


@pytest.fixture
def monitor_config_data():
    """Minimal valid monitor configuration file contents"""
    return {
        "metric_keys": ["rankingKeywordA", "pagespeed.seo"],
        "threshold_rules": [
            {"metricKey": "rankingKeywordA", "direction": "decrease", "absoluteDelta": 5, "severity": "warning"},
            {"metric_key": "pagespeed.seo", "direction": "decrease", "relative_delta": 0.1, "severity": "critical"},
        ],
        "poll_interval_ms": 30_000,
        "report_interval_ms": 3_600_000,
        "dedup_window_ms": 300_000,
        "retention_count": 50,
        "alert_retention_ms": 600_000,
        "fetch_timeout_ms": 5_000,
        "stale_after_cycles": 2,
        "sources": [{"type": "static", "snapshots": [{"rankingKeywordA": 25, "pagespeed.seo": 92}]}],
    }
