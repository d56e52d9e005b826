"""
Alert domain model

Alerts move through a fixed lifecycle owned by the AlertEngine:

    active -> acknowledged -> resolved -> expired
    active -> resolved -> expired
"""

from dataclasses import asdict, dataclass, replace
from datetime import datetime
from typing import Any

STATUS_ACTIVE = "active"
STATUS_ACKNOWLEDGED = "acknowledged"
STATUS_RESOLVED = "resolved"
STATUS_EXPIRED = "expired"

OPEN_STATUSES = frozenset({STATUS_ACTIVE, STATUS_ACKNOWLEDGED})

# Allowed status changes: current status -> next statuses
TRANSITIONS: dict[str, frozenset[str]] = {
    STATUS_ACTIVE: frozenset({STATUS_ACKNOWLEDGED, STATUS_RESOLVED}),
    STATUS_ACKNOWLEDGED: frozenset({STATUS_RESOLVED}),
    STATUS_RESOLVED: frozenset({STATUS_EXPIRED}),
    STATUS_EXPIRED: frozenset(),
}

ALERT_TYPE_THRESHOLD = "threshold"
ALERT_TYPE_STALE = "stale"


@dataclass
class Alert:
    """
    A single alert raised for a metric key.

    Attributes:
        id: Unique alert identifier
        metric_key: Metric the alert is about
        severity: "info" | "warning" | "critical"
        message: Human-readable description
        triggered_at: When the alert was created
        status: Lifecycle status (see TRANSITIONS)
        last_value: Most recent value of the metric when the alert fired or was refreshed
        previous_value: Value the change was measured against
        alert_type: "threshold" for rule breaches, "stale" for missing data
        last_seen_at: Last time the condition was observed (dedup reference)
    """

    id: str
    metric_key: str
    severity: str
    message: str
    triggered_at: datetime
    status: str = STATUS_ACTIVE
    last_value: float | None = None
    previous_value: float | None = None
    alert_type: str = ALERT_TYPE_THRESHOLD
    last_seen_at: datetime | None = None
    acknowledged_at: datetime | None = None
    resolved_at: datetime | None = None
    expired_at: datetime | None = None

    def __post_init__(self) -> None:
        if self.status not in TRANSITIONS:
            raise ValueError(f"Unknown alert status: {self.status!r}")
        if self.last_seen_at is None:
            self.last_seen_at = self.triggered_at

    @property
    def is_open(self) -> bool:
        """True while the alert is active or acknowledged."""
        return self.status in OPEN_STATUSES

    def can_transition_to(self, status: str) -> bool:
        return status in TRANSITIONS[self.status]

    def copy(self) -> "Alert":
        return replace(self)

    def to_dict(self) -> dict[str, Any]:
        """JSON-friendly representation (datetimes as ISO strings)."""
        data = asdict(self)
        for key, value in data.items():
            if isinstance(value, datetime):
                data[key] = value.isoformat()
        return data
