"""
Metric source boundary

A MetricSource pulls the current values of a set of metric keys from one
provider. It either returns readings or raises a FetchError subclass; it
never substitutes default or cached values, so callers always know whether
the data is real.

Provided here:
    - MetricSource: abstract base class for providers
    - fetch_with_timeout(): enforce a caller-supplied timeout on any source
    - StaticSource: deterministic canned snapshots (tests, dry runs)
    - CompositeSource: merge readings from several providers
"""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Mapping, Sequence
from datetime import datetime

from seo_monitor.core.logging_config import get_logger
from seo_monitor.domain.metrics import MetricReading
from seo_monitor.errors import FetchError, FetchTimeout, InvalidResponse
from seo_monitor.utils.datetime_utils import utc_now

logger = get_logger(__name__)


class MetricSource(ABC):
    """Base class for metric providers (ranking, analytics, page speed)."""

    name = "source"

    @abstractmethod
    async def fetch_readings(self, metric_keys: set[str]) -> list[MetricReading]:
        """
        Fetch current readings for the requested metric keys.

        Keys the provider does not know are left out of the result.

        Raises:
            FetchTimeout: Provider did not answer in time
            ProviderError: Provider answered with an error status
            InvalidResponse: Provider payload could not be interpreted
        """

    def provides(self, metric_key: str) -> bool:
        """Whether this source can produce the given key (default: any key)."""
        return True


async def fetch_with_timeout(source: MetricSource, metric_keys: set[str], timeout_seconds: float) -> list[MetricReading]:
    """
    Run source.fetch_readings() bounded by a timeout.

    Raises:
        FetchTimeout: If the source did not finish within timeout_seconds
        FetchError: Whatever the source raised
    """
    try:
        return await asyncio.wait_for(source.fetch_readings(metric_keys), timeout=timeout_seconds)
    except TimeoutError:
        raise FetchTimeout(
            f"{source.name} did not respond within {timeout_seconds:.1f}s", source=source.name
        ) from None


def readings_from_mapping(
    values: Mapping[str, object],
    metric_keys: set[str],
    captured_at: datetime,
    source_name: str,
) -> list[MetricReading]:
    """
    Build readings for the requested keys out of a {key: value} payload.

    Raises:
        InvalidResponse: If a requested value is present but not numeric
    """
    readings: list[MetricReading] = []
    for key in sorted(metric_keys):
        if key not in values:
            continue
        value = values[key]
        if isinstance(value, bool) or not isinstance(value, int | float):
            raise InvalidResponse(f"{source_name} returned non-numeric value for {key}: {value!r}", source=source_name)
        try:
            readings.append(MetricReading(metric_key=key, value=float(value), captured_at=captured_at))
        except ValueError as e:
            raise InvalidResponse(f"{source_name} returned invalid value for {key}: {e}", source=source_name) from e
    return readings


class StaticSource(MetricSource):
    """
    Replays a fixed sequence of snapshots, one per fetch.

    Each snapshot is a {metric_key: value} mapping, or a FetchError instance to
    raise on that fetch. After the last snapshot the final one repeats.

    Example:
        source = StaticSource([{"ranking.plumber_near_me": 25}, {"ranking.plumber_near_me": 18}])
    """

    name = "static"

    def __init__(
        self,
        snapshots: Sequence[Mapping[str, float] | FetchError],
        clock: Callable[[], datetime] = utc_now,
        delay_seconds: float = 0.0,
    ) -> None:
        if not snapshots:
            raise ValueError("StaticSource needs at least one snapshot")
        self.snapshots = list(snapshots)
        self.clock = clock
        self.delay_seconds = delay_seconds
        self.fetch_count = 0

    async def fetch_readings(self, metric_keys: set[str]) -> list[MetricReading]:
        snapshot = self.snapshots[min(self.fetch_count, len(self.snapshots) - 1)]
        self.fetch_count += 1

        if self.delay_seconds:
            await asyncio.sleep(self.delay_seconds)
        if isinstance(snapshot, FetchError):
            raise snapshot

        return readings_from_mapping(snapshot, metric_keys, self.clock(), self.name)


class CompositeSource(MetricSource):
    """
    Fan a fetch out to several sources concurrently and merge the readings.

    Each member only receives the keys it provides. A failing member is
    logged and skipped; the fetch fails only when every member failed.
    """

    name = "composite"

    def __init__(self, sources: Iterable[MetricSource]) -> None:
        self.sources = list(sources)
        if not self.sources:
            raise ValueError("CompositeSource needs at least one source")

    def provides(self, metric_key: str) -> bool:
        return any(source.provides(metric_key) for source in self.sources)

    async def fetch_readings(self, metric_keys: set[str]) -> list[MetricReading]:
        assignments = [
            (source, {key for key in metric_keys if source.provides(key)}) for source in self.sources
        ]
        assignments = [(source, keys) for source, keys in assignments if keys]
        if not assignments:
            return []

        results = await asyncio.gather(
            *(source.fetch_readings(keys) for source, keys in assignments), return_exceptions=True
        )

        readings: list[MetricReading] = []
        errors: list[FetchError] = []
        for (source, keys), result in zip(assignments, results):
            if isinstance(result, FetchError):
                errors.append(result)
                logger.warning(
                    "Metric source failed",
                    extra={"source": source.name, "error": str(result), "metric_keys": sorted(keys)},
                )
            elif isinstance(result, BaseException):
                raise result
            else:
                readings.extend(result)

        if errors and len(errors) == len(assignments):
            raise errors[0]
        return readings
