"""
Change detector for metric snapshots.

Compares the latest reading of each metric key with the one before it and
evaluates the configured ThresholdRules against the change.

Usage::

    from seo_monitor.engine.change_detector import ChangeDetector

    detector = ChangeDetector(rules)
    events = detector.detect(store)   # list[DeltaEvent]
"""

from collections import defaultdict
from collections.abc import Iterable

from seo_monitor.core.logging_config import get_logger
from seo_monitor.domain.metrics import DIRECTION_DECREASE, DIRECTION_INCREASE, DeltaEvent, MetricReading, ThresholdRule
from seo_monitor.errors import DivisionUndefined
from seo_monitor.storage.snapshot_store import SnapshotStore

logger = get_logger(__name__)


def relative_delta(previous: float, latest: float) -> float:
    """
    Change relative to the previous value.

    Raises:
        DivisionUndefined: If previous is zero
    """
    if previous == 0:
        raise DivisionUndefined("Relative delta is undefined for a previous value of 0")
    return (latest - previous) / previous


def compute_deltas(previous: MetricReading, latest: MetricReading) -> tuple[float, float | None]:
    """
    Absolute and relative change between two readings.

    Returns:
        (absolute_delta, relative_delta); relative_delta is None when the
        previous value is zero.
    """
    absolute = latest.value - previous.value
    try:
        relative: float | None = relative_delta(previous.value, latest.value)
    except DivisionUndefined:
        logger.debug(
            "Relative delta undefined, skipping relative thresholds",
            extra={"metric_key": latest.metric_key},
        )
        relative = None
    return absolute, relative


def rule_fires(rule: ThresholdRule, absolute: float, relative: float | None) -> bool:
    """
    Whether a rule fires for the given change.

    The change must go in the rule's direction, and its magnitude must meet
    the absolute or the relative threshold (whichever are configured; either
    suffices). Relative thresholds are skipped when relative is None.
    """
    if rule.direction == DIRECTION_INCREASE and absolute <= 0:
        return False
    if rule.direction == DIRECTION_DECREASE and absolute >= 0:
        return False

    if rule.absolute_delta is not None and abs(absolute) >= rule.absolute_delta:
        return True
    if rule.relative_delta is not None and relative is not None and abs(relative) >= rule.relative_delta:
        return True
    return False


class ChangeDetector:
    """
    Evaluate ThresholdRules against the latest change of each metric key.

    The detector only reads from the store; it keeps no state between calls.
    """

    def __init__(self, rules: Iterable[ThresholdRule]) -> None:
        grouped: dict[str, list[ThresholdRule]] = defaultdict(list)
        for rule in rules:
            grouped[rule.metric_key].append(rule)
        self._rules: dict[str, tuple[ThresholdRule, ...]] = {key: tuple(group) for key, group in grouped.items()}

    @property
    def rules(self) -> tuple[ThresholdRule, ...]:
        return tuple(rule for group in self._rules.values() for rule in group)

    def rules_for(self, metric_key: str) -> tuple[ThresholdRule, ...]:
        return self._rules.get(metric_key, ())

    def detect(self, store: SnapshotStore, metric_keys: Iterable[str] | None = None) -> list[DeltaEvent]:
        """
        Compute delta events for the given keys (default: every key with rules).

        Args:
            store: Snapshot store to read previous/latest readings from
            metric_keys: Keys to evaluate this cycle

        Returns:
            One DeltaEvent per fired rule; keys with no fired rule produce nothing
        """
        keys = self._rules.keys() if metric_keys is None else metric_keys
        events: list[DeltaEvent] = []

        for metric_key in sorted(keys):
            rules = self._rules.get(metric_key)
            if not rules:
                continue

            previous = store.previous(metric_key)
            latest = store.latest(metric_key)
            if previous is None or latest is None:
                continue

            absolute, relative = compute_deltas(previous, latest)
            for rule in rules:
                if rule_fires(rule, absolute, relative):
                    events.append(
                        DeltaEvent(
                            metric_key=metric_key,
                            rule=rule,
                            absolute_delta=absolute,
                            relative_delta=relative,
                            previous_value=previous.value,
                            latest_value=latest.value,
                            captured_at=latest.captured_at,
                        )
                    )

        if events:
            logger.info("Threshold rules fired", extra={"event_count": len(events)})
        return events
