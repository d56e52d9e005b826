"""
Tests for seo_monitor/sources/base.py

StaticSource, CompositeSource and timeout enforcement.
"""

import asyncio

import pytest

from seo_monitor.errors import FetchTimeout, InvalidResponse, ProviderError
from seo_monitor.sources.base import CompositeSource, MetricSource, StaticSource, fetch_with_timeout


class PrefixSource(MetricSource):
    """Returns fixed values for keys with its prefix, or raises a given error."""

    def __init__(self, name, prefix, values=None, error=None):
        self.name = name
        self.prefix = prefix
        self.values = values or {}
        self.error = error
        self.requested = []

    def provides(self, metric_key):
        return metric_key.startswith(self.prefix)

    async def fetch_readings(self, metric_keys):
        self.requested.append(set(metric_keys))
        if self.error:
            raise self.error
        source = StaticSource([self.values])
        return await source.fetch_readings(metric_keys)


class TestStaticSource:
    @pytest.mark.asyncio
    async def test_replays_snapshots_in_order(self, clock):
        source = StaticSource([{"k": 25}, {"k": 18}], clock=clock)

        first = await source.fetch_readings({"k"})
        second = await source.fetch_readings({"k"})
        third = await source.fetch_readings({"k"})

        assert [r.value for r in first + second + third] == [25, 18, 18]
        assert first[0].captured_at == clock()
        assert source.fetch_count == 3

    @pytest.mark.asyncio
    async def test_only_requested_keys_returned(self):
        source = StaticSource([{"a": 1, "b": 2}])

        readings = await source.fetch_readings({"b", "missing"})

        assert [(r.metric_key, r.value) for r in readings] == [("b", 2)]

    @pytest.mark.asyncio
    async def test_error_snapshot_raised(self):
        source = StaticSource([ProviderError("quota exceeded", code=429), {"a": 1}])

        with pytest.raises(ProviderError) as exc_info:
            await source.fetch_readings({"a"})

        assert exc_info.value.code == 429
        assert len(await source.fetch_readings({"a"})) == 1

    @pytest.mark.asyncio
    async def test_non_numeric_value_is_invalid_response(self):
        source = StaticSource([{"a": "n/a"}])

        with pytest.raises(InvalidResponse):
            await source.fetch_readings({"a"})

    def test_needs_snapshots(self):
        with pytest.raises(ValueError):
            StaticSource([])


class TestFetchWithTimeout:
    @pytest.mark.asyncio
    async def test_slow_source_times_out(self):
        source = StaticSource([{"a": 1}], delay_seconds=1.0)

        with pytest.raises(FetchTimeout) as exc_info:
            await fetch_with_timeout(source, {"a"}, timeout_seconds=0.01)

        assert exc_info.value.source == "static"

    @pytest.mark.asyncio
    async def test_fast_source_returns_readings(self):
        readings = await fetch_with_timeout(StaticSource([{"a": 1}]), {"a"}, timeout_seconds=1.0)
        assert len(readings) == 1


class TestCompositeSource:
    @pytest.mark.asyncio
    async def test_merges_and_routes_keys(self):
        ranks = PrefixSource("ranks", "ranking.", {"ranking.a": 3})
        speed = PrefixSource("speed", "pagespeed.", {"pagespeed.seo": 90})
        composite = CompositeSource([ranks, speed])

        readings = await composite.fetch_readings({"ranking.a", "pagespeed.seo"})

        assert sorted(r.metric_key for r in readings) == ["pagespeed.seo", "ranking.a"]
        assert ranks.requested == [{"ranking.a"}]
        assert speed.requested == [{"pagespeed.seo"}]

    @pytest.mark.asyncio
    async def test_partial_failure_returns_remaining(self, caplog):
        ranks = PrefixSource("ranks", "ranking.", error=ProviderError("HTTP 503", code=503))
        speed = PrefixSource("speed", "pagespeed.", {"pagespeed.seo": 90})

        readings = await CompositeSource([ranks, speed]).fetch_readings({"ranking.a", "pagespeed.seo"})

        assert [r.metric_key for r in readings] == ["pagespeed.seo"]
        assert any(getattr(r, "source", None) == "ranks" for r in caplog.records)

    @pytest.mark.asyncio
    async def test_total_failure_raises(self):
        composite = CompositeSource(
            [
                PrefixSource("ranks", "ranking.", error=ProviderError("down")),
                PrefixSource("speed", "pagespeed.", error=FetchTimeout("slow")),
            ]
        )

        with pytest.raises((ProviderError, FetchTimeout)):
            await composite.fetch_readings({"ranking.a", "pagespeed.seo"})

    @pytest.mark.asyncio
    async def test_unexpected_errors_propagate(self):
        composite = CompositeSource([PrefixSource("broken", "", error=RuntimeError("bug"))])

        with pytest.raises(RuntimeError):
            await composite.fetch_readings({"a"})

    @pytest.mark.asyncio
    async def test_members_run_concurrently(self):
        slow = [StaticSource([{"a": 1}], delay_seconds=0.1), StaticSource([{"a": 2}], delay_seconds=0.1)]
        composite = CompositeSource(slow)

        readings = await asyncio.wait_for(composite.fetch_readings({"a"}), timeout=0.18)

        assert len(readings) == 2
