"""
Metric domain models

Foundation types flowing through the pipeline:
    - MetricReading: immutable point-in-time value for one metric key
    - ThresholdRule: configuration deciding when a change is alert-worthy
    - DeltaEvent: a fired rule with the deltas that fired it
    - TrendData: chronological values with summary helpers (used by reports)
"""

import math
from dataclasses import dataclass
from datetime import datetime

DIRECTION_INCREASE = "increase"
DIRECTION_DECREASE = "decrease"
DIRECTIONS = (DIRECTION_INCREASE, DIRECTION_DECREASE)

SEVERITY_INFO = "info"
SEVERITY_WARNING = "warning"
SEVERITY_CRITICAL = "critical"
SEVERITY_RANK: dict[str, int] = {SEVERITY_INFO: 0, SEVERITY_WARNING: 1, SEVERITY_CRITICAL: 2}

# Placeholders a rule's message_template may use
TEMPLATE_FIELDS = ("metric_key", "previous", "value", "delta", "relative")


@dataclass(frozen=True)
class MetricReading:
    """
    A single captured value for a metric key.

    Attributes:
        metric_key: Metric identifier (e.g., "ranking.plumber_near_me", "pagespeed.seo")
        value: Numeric value as reported by the provider
        captured_at: When the provider observed the value

    Example:
        reading = MetricReading("ranking.plumber_near_me", 18, datetime(2026, 3, 1, 9, 0, tzinfo=UTC))
    """

    metric_key: str
    value: float
    captured_at: datetime

    def __post_init__(self) -> None:
        """
        Validate key, value and timestamp.

        Raises:
            TypeError: If captured_at is not a datetime or value is not numeric
            ValueError: If metric_key is empty or value is NaN/infinite
        """
        if not isinstance(self.captured_at, datetime):
            raise TypeError(f"captured_at must be datetime, got {type(self.captured_at)}")
        if not self.metric_key:
            raise ValueError("metric_key must be a non-empty string")
        if isinstance(self.value, bool) or not isinstance(self.value, int | float):
            raise TypeError(f"value must be numeric, got {type(self.value)}")
        if not math.isfinite(self.value):
            raise ValueError(f"value must be finite, got {self.value}")


@dataclass(frozen=True)
class ThresholdRule:
    """
    Defines when a change in a metric qualifies as alert-worthy.

    A rule fires when the change goes in ``direction`` and its magnitude meets
    ``absolute_delta`` or ``relative_delta`` (either one suffices when both
    are set). ``relative_delta`` is a fraction: 0.2 means 20%.

    Example:
        ThresholdRule(
            metric_key="analytics.organic_sessions",
            direction="decrease",
            relative_delta=0.2,
            severity="critical",
        )
    """

    metric_key: str
    direction: str  # "increase" | "decrease"
    absolute_delta: float | None = None
    relative_delta: float | None = None
    severity: str = SEVERITY_WARNING
    message_template: str | None = None

    def __post_init__(self) -> None:
        if not self.metric_key:
            raise ValueError("metric_key must be a non-empty string")
        if self.direction not in DIRECTIONS:
            raise ValueError(f"direction must be one of {DIRECTIONS}, got {self.direction!r}")
        if self.severity not in SEVERITY_RANK:
            raise ValueError(f"severity must be one of {tuple(SEVERITY_RANK)}, got {self.severity!r}")
        if self.absolute_delta is None and self.relative_delta is None:
            raise ValueError(f"Rule for {self.metric_key} needs absolute_delta or relative_delta")
        for name in ("absolute_delta", "relative_delta"):
            threshold = getattr(self, name)
            if threshold is not None and threshold < 0:
                raise ValueError(f"{name} must be non-negative, got {threshold}")
        if self.message_template:
            try:
                self.message_template.format(
                    metric_key=self.metric_key, previous=25.0, value=18.0, delta=-7.0, relative=-28.0
                )
            except (KeyError, IndexError, ValueError) as e:
                raise ValueError(
                    f"Invalid message_template for {self.metric_key}: {type(e).__name__}: {e} "
                    f"(placeholders: {', '.join(TEMPLATE_FIELDS)})"
                ) from e

    @classmethod
    def from_dict(cls, data: dict) -> "ThresholdRule":
        """Build a rule from a config mapping (accepts camelCase keys too)."""
        return cls(
            metric_key=data.get("metric_key") or data.get("metricKey", ""),
            direction=data.get("direction", ""),
            absolute_delta=data.get("absolute_delta", data.get("absoluteDelta")),
            relative_delta=data.get("relative_delta", data.get("relativeDelta")),
            severity=data.get("severity", SEVERITY_WARNING),
            message_template=data.get("message_template", data.get("messageTemplate")),
        )


@dataclass(frozen=True)
class DeltaEvent:
    """A fired ThresholdRule together with the change that fired it."""

    metric_key: str
    rule: ThresholdRule
    absolute_delta: float
    relative_delta: float | None
    previous_value: float
    latest_value: float
    captured_at: datetime

    @property
    def severity(self) -> str:
        return self.rule.severity

    def describe(self) -> str:
        """
        Render the rule's message template, or a default description.

        ``relative`` is the percent change, or None when it is undefined
        (zero baseline). A template whose format spec cannot take None
        falls back to the default description.
        """
        if self.rule.message_template:
            relative = self.relative_delta * 100 if self.relative_delta is not None else None
            try:
                return self.rule.message_template.format(
                    metric_key=self.metric_key,
                    previous=self.previous_value,
                    value=self.latest_value,
                    delta=self.absolute_delta,
                    relative=relative,
                )
            except TypeError:
                # e.g. "{relative:.0f}" with relative=None
                pass

        change = f"{self.absolute_delta:+g}"
        if self.relative_delta is not None:
            change += f" ({self.relative_delta * 100:+.1f}%)"
        return f"{self.metric_key} {self.rule.direction}d from {self.previous_value:g} to {self.latest_value:g} {change}"


@dataclass
class TrendData:
    """
    Time series values with summary helpers.

    Attributes:
        values: Metric values (chronological order)
        timestamps: Corresponding capture times
        label: Optional label (metric key)
    """

    values: list[float]
    timestamps: list[datetime]
    label: str | None = None

    def __post_init__(self) -> None:
        if len(self.values) != len(self.timestamps):
            raise ValueError(
                f"values and timestamps must have same length: " f"{len(self.values)} != {len(self.timestamps)}"
            )

    @classmethod
    def from_readings(cls, readings: "list[MetricReading]", label: str | None = None) -> "TrendData":
        return cls(
            values=[r.value for r in readings],
            timestamps=[r.captured_at for r in readings],
            label=label,
        )

    def latest(self) -> float | None:
        return self.values[-1] if self.values else None

    def earliest(self) -> float | None:
        return self.values[0] if self.values else None

    def total_change(self) -> float | None:
        """
        Latest minus earliest value.

        Returns:
            Change across the series, or None if fewer than two points
        """
        if len(self.values) < 2:
            return None
        return self.values[-1] - self.values[0]

    def total_percent_change(self) -> float | None:
        """
        Percent change from earliest to latest value.

        Returns:
            Percent change, or None with fewer than two points or a zero baseline
        """
        if len(self.values) < 2 or self.values[0] == 0:
            return None
        return ((self.values[-1] - self.values[0]) / self.values[0]) * 100

    def average(self) -> float | None:
        if not self.values:
            return None
        return sum(self.values) / len(self.values)

    def minimum(self) -> float | None:
        return min(self.values) if self.values else None

    def maximum(self) -> float | None:
        return max(self.values) if self.values else None
