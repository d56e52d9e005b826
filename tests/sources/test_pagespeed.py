"""
Tests for seo_monitor/sources/pagespeed.py

HTTP is served by httpx.MockTransport; no network access.
"""

import httpx
import pytest

from seo_monitor.async_http_client import AsyncSecureHTTPClient
from seo_monitor.errors import FetchTimeout, InvalidResponse, ProviderError
from seo_monitor.sources.pagespeed import PageSpeedInsightsSource, parse_lighthouse_result

LIGHTHOUSE_PAYLOAD = {
    "lighthouseResult": {
        "fetchTime": "2026-03-02T08:55:00.000Z",
        "categories": {
            "performance": {"score": 0.56},
            "accessibility": {"score": 0.91},
            "best-practices": {"score": None},
            "seo": {"score": 0.92},
        },
        "audits": {
            "first-contentful-paint": {"numericValue": 1830.5},
            "largest-contentful-paint": {"numericValue": 4210.0},
            "cumulative-layout-shift": {"numericValue": 0.12},
        },
    }
}


def _source(handler, **kwargs) -> PageSpeedInsightsSource:
    transport = httpx.MockTransport(handler)
    return PageSpeedInsightsSource(
        page_url="https://www.example-plumbing.co.uk/",
        http_client_factory=lambda: AsyncSecureHTTPClient(transport=transport),
        **kwargs,
    )


class TestParseLighthouseResult:
    def test_scores_and_audits(self):
        values, fetched_at = parse_lighthouse_result(LIGHTHOUSE_PAYLOAD)

        assert values["pagespeed.performance"] == 56
        assert values["pagespeed.seo"] == 92
        assert values["pagespeed.lcp_ms"] == 4210.0
        assert values["pagespeed.cls"] == 0.12
        assert "pagespeed.best_practices" not in values
        assert "pagespeed.tbt_ms" not in values
        assert fetched_at.isoformat() == "2026-03-02T08:55:00+00:00"

    def test_missing_lighthouse_result(self):
        with pytest.raises(InvalidResponse):
            parse_lighthouse_result({"error": {"code": 500}})


class TestPageSpeedInsightsSource:
    @pytest.mark.asyncio
    async def test_fetch_readings(self):
        requests_seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests_seen.append(request)
            return httpx.Response(200, json=LIGHTHOUSE_PAYLOAD)

        source = _source(handler, api_key="AIzaTestKey123", strategy="desktop")
        readings = await source.fetch_readings({"pagespeed.seo", "pagespeed.lcp_ms", "ranking.other"})

        assert sorted((r.metric_key, r.value) for r in readings) == [
            ("pagespeed.lcp_ms", 4210.0),
            ("pagespeed.seo", 92),
        ]
        params = requests_seen[0].url.params
        assert params["url"] == "https://www.example-plumbing.co.uk/"
        assert params["strategy"] == "desktop"
        assert params["key"] == "AIzaTestKey123"
        assert "SEO" in params.get_list("category")

    @pytest.mark.asyncio
    async def test_skips_request_for_foreign_keys(self):
        def handler(request):
            raise AssertionError("should not be called")

        assert await _source(handler).fetch_readings({"ranking.a"}) == []

    @pytest.mark.asyncio
    async def test_http_error_is_provider_error(self):
        source = _source(lambda request: httpx.Response(429, json={"error": "quota"}))

        with pytest.raises(ProviderError) as exc_info:
            await source.fetch_readings({"pagespeed.seo"})

        assert exc_info.value.code == 429

    @pytest.mark.asyncio
    async def test_timeout_is_fetch_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(FetchTimeout):
            await _source(handler).fetch_readings({"pagespeed.seo"})

    @pytest.mark.asyncio
    async def test_connection_error_is_provider_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(ProviderError):
            await _source(handler).fetch_readings({"pagespeed.seo"})

    @pytest.mark.asyncio
    async def test_invalid_json(self):
        source = _source(lambda request: httpx.Response(200, content=b"<html>"))

        with pytest.raises(InvalidResponse):
            await source.fetch_readings({"pagespeed.seo"})

    def test_invalid_strategy(self):
        with pytest.raises(ValueError):
            PageSpeedInsightsSource("https://example.com/", strategy="tablet")
