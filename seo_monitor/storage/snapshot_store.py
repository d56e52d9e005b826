"""
In-memory snapshot store for metric readings.

Holds one bounded, chronologically ordered series per metric key. Series are
stored as immutable tuples and replaced wholesale on append, so a reader
holding a series (or a SeriesView over it) never observes a partial update.

Usage::

    from seo_monitor.storage import SnapshotStore

    store = SnapshotStore(retention_count=200)
    store.append(MetricReading("pagespeed.seo", 92, now))
    store.latest("pagespeed.seo")
    list(store.history("pagespeed.seo", since=now - timedelta(days=1)))
"""

from collections.abc import Iterator
from datetime import datetime, timedelta

from seo_monitor.core.logging_config import get_logger
from seo_monitor.domain.metrics import MetricReading
from seo_monitor.errors import OutOfOrderReading

logger = get_logger(__name__)

DEFAULT_RETENTION_COUNT = 200


class SeriesView:
    """
    Lazy, restartable view over a series snapshot.

    Each iteration walks the snapshot taken when the view was created,
    oldest to newest, applying the optional [since, until] bounds.
    """

    def __init__(
        self,
        readings: tuple[MetricReading, ...],
        since: datetime | None = None,
        until: datetime | None = None,
    ) -> None:
        self._readings = readings
        self.since = since
        self.until = until

    def __iter__(self) -> Iterator[MetricReading]:
        for reading in self._readings:
            if self.since is not None and reading.captured_at < self.since:
                continue
            if self.until is not None and reading.captured_at > self.until:
                # Series is chronological, nothing later can match
                return
            yield reading

    def __len__(self) -> int:
        return sum(1 for _ in self)

    def __bool__(self) -> bool:
        return any(True for _ in self)

    def __repr__(self) -> str:
        return f"SeriesView(size={len(self._readings)}, since={self.since}, until={self.until})"


class SnapshotStore:
    """
    Append-only, bounded time series per metric key.

    Invariants:
        - readings within a series are non-decreasing in captured_at
        - a series holds at most ``retention_count`` readings
        - with ``retention_window`` set, readings older than the newest reading
          minus the window are dropped on append
    """

    def __init__(
        self,
        retention_count: int = DEFAULT_RETENTION_COUNT,
        retention_window: timedelta | None = None,
    ) -> None:
        if retention_count < 2:
            raise ValueError(f"retention_count must be at least 2 to compute deltas, got {retention_count}")
        if retention_window is not None and retention_window <= timedelta(0):
            raise ValueError(f"retention_window must be positive, got {retention_window}")

        self.retention_count = retention_count
        self.retention_window = retention_window
        self._series: dict[str, tuple[MetricReading, ...]] = {}

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def append(self, reading: MetricReading) -> None:
        """
        Append a reading to its metric key's series.

        Args:
            reading: Reading to store

        Raises:
            OutOfOrderReading: If the reading is older than the key's latest
                reading. The stored series is left untouched.
        """
        series = self._series.get(reading.metric_key, ())

        if series and reading.captured_at < series[-1].captured_at:
            error = OutOfOrderReading(reading.metric_key, reading.captured_at, series[-1].captured_at)
            logger.warning(
                "Rejected out-of-order reading",
                extra={
                    "metric_key": reading.metric_key,
                    "captured_at": reading.captured_at.isoformat(),
                    "latest_at": series[-1].captured_at.isoformat(),
                },
            )
            raise error

        updated = self._evict(series + (reading,))
        evicted = len(series) + 1 - len(updated)
        self._series[reading.metric_key] = updated

        if evicted:
            logger.debug(
                "Evicted readings past retention",
                extra={"metric_key": reading.metric_key, "evicted": evicted},
            )

    def _evict(self, series: tuple[MetricReading, ...]) -> tuple[MetricReading, ...]:
        """Drop oldest readings until both retention bounds hold."""
        start = max(0, len(series) - self.retention_count)

        if self.retention_window is not None:
            cutoff = series[-1].captured_at - self.retention_window
            while start < len(series) - 1 and series[start].captured_at < cutoff:
                start += 1

        return series[start:]

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def latest(self, metric_key: str) -> MetricReading | None:
        """Most recent reading for the key, or None."""
        series = self._series.get(metric_key, ())
        return series[-1] if series else None

    def previous(self, metric_key: str) -> MetricReading | None:
        """Second most recent reading for the key, or None."""
        series = self._series.get(metric_key, ())
        return series[-2] if len(series) >= 2 else None

    def history(
        self,
        metric_key: str,
        since: datetime | None = None,
        until: datetime | None = None,
    ) -> SeriesView:
        """
        Readings for the key ordered oldest to newest.

        Args:
            metric_key: Metric to read
            since: Inclusive lower bound on captured_at
            until: Inclusive upper bound on captured_at

        Returns:
            Restartable SeriesView (empty for unknown keys)
        """
        return SeriesView(self._series.get(metric_key, ()), since=since, until=until)

    def metric_keys(self) -> tuple[str, ...]:
        """Tracked metric keys in insertion order."""
        return tuple(self._series)

    def __contains__(self, metric_key: object) -> bool:
        return metric_key in self._series

    def __len__(self) -> int:
        return len(self._series)
