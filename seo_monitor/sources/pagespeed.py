"""
Google PageSpeed Insights metric source

Calls the PageSpeed Insights v5 API for one page and turns the Lighthouse
result into metric readings:

    pagespeed.performance, pagespeed.accessibility,
    pagespeed.best_practices, pagespeed.seo    -> category scores, 0-100
    pagespeed.fcp_ms, pagespeed.lcp_ms,
    pagespeed.tbt_ms                           -> audit timings in milliseconds
    pagespeed.cls                              -> cumulative layout shift

Usage::

    source = PageSpeedInsightsSource(page_url="https://example.com/", api_key=key)
    readings = await source.fetch_readings({"pagespeed.seo", "pagespeed.lcp_ms"})
"""

from collections.abc import Callable
from datetime import datetime
from typing import Any

from seo_monitor.async_http_client import AsyncSecureHTTPClient
from seo_monitor.core.logging_config import get_logger
from seo_monitor.domain.metrics import MetricReading
from seo_monitor.errors import InvalidResponse
from seo_monitor.sources.base import MetricSource, readings_from_mapping
from seo_monitor.utils.datetime_utils import parse_iso_timestamp, utc_now

logger = get_logger(__name__)

PAGESPEED_API_URL = "https://www.googleapis.com/pagespeedonline/v5/runPagespeed"
KEY_PREFIX = "pagespeed."

# Lighthouse category id -> metric key
CATEGORY_KEYS = {
    "performance": "pagespeed.performance",
    "accessibility": "pagespeed.accessibility",
    "best-practices": "pagespeed.best_practices",
    "seo": "pagespeed.seo",
}

# Lighthouse audit id -> metric key
AUDIT_KEYS = {
    "first-contentful-paint": "pagespeed.fcp_ms",
    "largest-contentful-paint": "pagespeed.lcp_ms",
    "total-blocking-time": "pagespeed.tbt_ms",
    "cumulative-layout-shift": "pagespeed.cls",
}


def parse_lighthouse_result(payload: dict[str, Any]) -> tuple[dict[str, float], datetime | None]:
    """
    Extract metric values from a PageSpeed Insights response.

    Returns:
        ({metric_key: value}, fetch time reported by Lighthouse or None)

    Raises:
        InvalidResponse: If the payload has no lighthouseResult/categories
    """
    lighthouse = payload.get("lighthouseResult")
    if not isinstance(lighthouse, dict) or not isinstance(lighthouse.get("categories"), dict):
        raise InvalidResponse("PageSpeed response has no lighthouseResult.categories", source="pagespeed")

    values: dict[str, float] = {}
    for category_id, key in CATEGORY_KEYS.items():
        score = lighthouse["categories"].get(category_id, {}).get("score")
        # Lighthouse reports null scores for categories it could not compute
        if isinstance(score, int | float):
            values[key] = round(score * 100)

    audits = lighthouse.get("audits") or {}
    for audit_id, key in AUDIT_KEYS.items():
        numeric = audits.get(audit_id, {}).get("numericValue")
        if isinstance(numeric, int | float):
            values[key] = float(numeric)

    try:
        fetched_at = parse_iso_timestamp(lighthouse.get("fetchTime"))
    except ValueError:
        fetched_at = None
    return values, fetched_at


class PageSpeedInsightsSource(MetricSource):
    """Page-speed provider backed by the PageSpeed Insights API."""

    name = "pagespeed"

    def __init__(
        self,
        page_url: str,
        api_key: str | None = None,
        strategy: str = "mobile",
        http_client_factory: Callable[[], AsyncSecureHTTPClient] = AsyncSecureHTTPClient,
        clock: Callable[[], datetime] = utc_now,
        api_url: str = PAGESPEED_API_URL,
    ) -> None:
        if strategy not in ("mobile", "desktop"):
            raise ValueError(f"strategy must be 'mobile' or 'desktop', got {strategy!r}")
        self.page_url = page_url
        self.api_key = api_key
        self.strategy = strategy
        self.http_client_factory = http_client_factory
        self.clock = clock
        self.api_url = api_url

    def provides(self, metric_key: str) -> bool:
        return metric_key.startswith(KEY_PREFIX)

    def _params(self) -> list[tuple[str, str]]:
        params = [("url", self.page_url), ("strategy", self.strategy)]
        params.extend(("category", category.upper().replace("-", "_")) for category in CATEGORY_KEYS)
        if self.api_key:
            params.append(("key", self.api_key))
        return params

    async def fetch_readings(self, metric_keys: set[str]) -> list[MetricReading]:
        wanted = {key for key in metric_keys if self.provides(key)}
        if not wanted:
            return []

        async with self.http_client_factory() as client:
            payload = await client.get_json(self.api_url, source=self.name, params=self._params())

        if not isinstance(payload, dict):
            raise InvalidResponse("PageSpeed returned a non-object JSON payload", source=self.name)

        values, fetched_at = parse_lighthouse_result(payload)
        logger.debug(
            "PageSpeed audit parsed",
            extra={"page_url": self.page_url, "strategy": self.strategy, "metric_count": len(values)},
        )
        return readings_from_mapping(values, wanted, fetched_at or self.clock(), self.name)
