"""
Report domain model

A Report is produced by the ReportGenerator and never mutated afterwards.
Section content is frozen all the way down: mappings become read-only
mapping proxies and lists become tuples. ``to_dict`` returns plain,
JSON-serializable copies.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from types import MappingProxyType
from typing import Any

SECTION_SUMMARY = "summary"
SECTION_METRIC_TRENDS = "metric_trends"
SECTION_ALERT_LOG = "alert_log"
SECTION_TOP_MOVERS = "top_movers"

SECTION_ORDER = (SECTION_SUMMARY, SECTION_METRIC_TRENDS, SECTION_ALERT_LOG, SECTION_TOP_MOVERS)

# Named report periods: length of the window ending at generation time
PERIODS = {
    "daily": timedelta(days=1),
    "weekly": timedelta(days=7),
    "monthly": timedelta(days=30),
}


def freeze(value: Any) -> Any:
    """Deep read-only copy of nested mappings and sequences."""
    if isinstance(value, Mapping):
        return MappingProxyType({key: freeze(item) for key, item in value.items()})
    if isinstance(value, list | tuple | set | frozenset):
        return tuple(freeze(item) for item in value)
    return value


def thaw(value: Any) -> Any:
    """Inverse of freeze: plain dicts and lists."""
    if isinstance(value, Mapping):
        return {key: thaw(item) for key, item in value.items()}
    if isinstance(value, tuple):
        return [thaw(item) for item in value]
    return value


@dataclass(frozen=True)
class Report:
    """
    Aggregated view of metric history and alerts over a period.

    Attributes:
        id: Report identifier
        period_start: Inclusive start of the reporting period
        period_end: Inclusive end of the reporting period
        generated_at: When the report was assembled
        sections: Section name -> section content (deeply read-only)
    """

    id: str
    period_start: datetime
    period_end: datetime
    generated_at: datetime
    sections: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.period_end < self.period_start:
            raise ValueError(
                f"period_end ({self.period_end.isoformat()}) is before period_start ({self.period_start.isoformat()})"
            )
        object.__setattr__(self, "sections", freeze(self.sections))

    def to_dict(self) -> dict[str, Any]:
        """JSON-friendly representation."""
        return {
            "id": self.id,
            "period_start": self.period_start.isoformat(),
            "period_end": self.period_end.isoformat(),
            "generated_at": self.generated_at.isoformat(),
            "sections": thaw(self.sections),
        }
