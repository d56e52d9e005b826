"""
Generic JSON endpoint metric source

For ranking trackers and analytics exports that expose current values over
HTTP as::

    {"captured_at": "2026-03-01T09:00:00Z", "metrics": {"ranking.plumber_near_me": 18}}

``captured_at`` is optional; the fetch time is used when it is missing.
"""

from collections.abc import Callable
from datetime import datetime

from seo_monitor.async_http_client import AsyncSecureHTTPClient
from seo_monitor.domain.metrics import MetricReading
from seo_monitor.errors import InvalidResponse
from seo_monitor.sources.base import MetricSource, readings_from_mapping
from seo_monitor.utils.datetime_utils import parse_iso_timestamp, utc_now


class JsonEndpointSource(MetricSource):
    """Provider that reads {"metrics": {key: value}} from a JSON endpoint."""

    def __init__(
        self,
        name: str,
        url: str,
        key_prefix: str | None = None,
        headers: dict[str, str] | None = None,
        http_client_factory: Callable[[], AsyncSecureHTTPClient] = AsyncSecureHTTPClient,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.name = name
        self.url = url
        self.key_prefix = key_prefix
        self.headers = headers or {}
        self.http_client_factory = http_client_factory
        self.clock = clock

    def provides(self, metric_key: str) -> bool:
        return self.key_prefix is None or metric_key.startswith(self.key_prefix)

    async def fetch_readings(self, metric_keys: set[str]) -> list[MetricReading]:
        wanted = {key for key in metric_keys if self.provides(key)}
        if not wanted:
            return []

        async with self.http_client_factory() as client:
            payload = await client.get_json(self.url, source=self.name, headers=self.headers)

        metrics = payload.get("metrics") if isinstance(payload, dict) else None
        if not isinstance(metrics, dict):
            raise InvalidResponse(f"{self.name} response has no 'metrics' object", source=self.name)

        try:
            captured_at = parse_iso_timestamp(payload.get("captured_at"))
        except ValueError as e:
            raise InvalidResponse(f"{self.name} returned invalid captured_at: {e}", source=self.name) from e

        return readings_from_mapping(metrics, wanted, captured_at or self.clock(), self.name)
