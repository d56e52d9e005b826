"""
Tests for seo_monitor/reports/report_generator.py
"""

from datetime import timedelta

import pytest

from seo_monitor.domain.reports import SECTION_ORDER
from seo_monitor.engine.alert_engine import AlertEngine
from seo_monitor.reports.report_generator import ReportGenerator, period_for


@pytest.fixture
def alert_engine(clock):
    return AlertEngine(clock=clock)


@pytest.fixture
def populated_store(store, make_reading):
    for minute, (rank, seo, perf) in enumerate([(25, 90, 70), (20, 92, 70), (18, 95, 56)]):
        store.append(make_reading("ranking.plumber_near_me", rank, minute * 10))
        store.append(make_reading("pagespeed.seo", seo, minute * 10))
        store.append(make_reading("pagespeed.performance", perf, minute * 10))
    return store


class TestGenerate:
    def test_has_all_sections(self, populated_store, alert_engine, clock, base_time):
        generator = ReportGenerator(populated_store, alert_engine, clock=clock)

        report = generator.generate(base_time, base_time + timedelta(hours=1))

        assert tuple(report.sections) == SECTION_ORDER
        assert report.generated_at == clock()
        assert report.period_start == base_time

    def test_metric_trends(self, populated_store, alert_engine, clock, base_time):
        generator = ReportGenerator(populated_store, alert_engine, clock=clock)

        trends = generator.generate(base_time, base_time + timedelta(hours=1)).sections["metric_trends"]

        ranking = trends["ranking.plumber_near_me"]
        assert ranking["readings"] == 3
        assert ranking["first"] == 25
        assert ranking["latest"] == 18
        assert ranking["minimum"] == 18
        assert ranking["maximum"] == 25
        assert ranking["change"] == -7
        assert ranking["percent_change"] == -28.0

    def test_period_bounds_filter_readings(self, populated_store, alert_engine, clock, base_time):
        generator = ReportGenerator(populated_store, alert_engine, clock=clock)

        report = generator.generate(base_time + timedelta(minutes=5), base_time + timedelta(minutes=15))

        assert report.sections["metric_trends"]["pagespeed.seo"]["readings"] == 1
        assert report.sections["summary"]["readings"] == 3

    def test_key_without_readings_is_omitted(self, populated_store, alert_engine, clock, base_time, caplog):
        generator = ReportGenerator(
            populated_store,
            alert_engine,
            metric_keys=["pagespeed.seo", "analytics.organic_sessions"],
            clock=clock,
        )

        report = generator.generate(base_time, base_time + timedelta(hours=1))

        assert "analytics.organic_sessions" not in report.sections["metric_trends"]
        assert report.sections["summary"]["metrics_omitted"] == ("analytics.organic_sessions",)
        assert report.sections["summary"]["metrics_tracked"] == 2
        assert report.sections["summary"]["metrics_reported"] == 1
        assert any(getattr(r, "metric_key", None) == "analytics.organic_sessions" for r in caplog.records)

    def test_empty_period_still_produces_report(self, populated_store, alert_engine, clock, base_time):
        generator = ReportGenerator(populated_store, alert_engine, clock=clock)

        report = generator.generate(base_time - timedelta(days=2), base_time - timedelta(days=1))

        assert report.sections["metric_trends"] == {}
        assert report.sections["top_movers"] == ()
        assert report.sections["alert_log"] == ()

    def test_alert_log_filtered_to_period(self, store, alert_engine, clock, base_time):
        alert_engine.raise_stale("pagespeed.seo", 3)
        clock.advance(hours=3)
        alert_engine.raise_stale("ranking.plumber_near_me", 3)
        generator = ReportGenerator(store, alert_engine, metric_keys=[], clock=clock)

        report = generator.generate(base_time + timedelta(hours=1), clock())

        log = report.sections["alert_log"]
        assert [entry["metric_key"] for entry in log] == ["ranking.plumber_near_me"]
        assert report.sections["summary"]["alerts_raised"] == 1
        assert report.sections["summary"]["alerts_by_severity"] == {"warning": 1}

    def test_top_movers_by_relative_change(self, populated_store, alert_engine, clock, base_time):
        generator = ReportGenerator(populated_store, alert_engine, clock=clock, top_movers_limit=2)

        movers = generator.generate(base_time, base_time + timedelta(hours=1)).sections["top_movers"]

        assert [m["metric_key"] for m in movers] == ["ranking.plumber_near_me", "pagespeed.performance"]
        assert movers[0]["direction"] == "decrease"

    def test_deterministic_for_identical_inputs(self, populated_store, alert_engine, clock, base_time):
        end = base_time + timedelta(hours=1)
        first = ReportGenerator(populated_store, alert_engine, clock=clock).generate(base_time, end)
        second = ReportGenerator(populated_store, alert_engine, clock=clock).generate(base_time, end)

        assert first.to_dict() == second.to_dict()

    def test_invalid_period_rejected(self, store, alert_engine, base_time):
        with pytest.raises(ValueError):
            ReportGenerator(store, alert_engine).generate(base_time, base_time - timedelta(seconds=1))

    def test_report_history_bounded(self, store, alert_engine, clock, base_time):
        generator = ReportGenerator(store, alert_engine, metric_keys=[], history_limit=2, clock=clock)

        ids = [generator.generate(base_time, base_time).id for _ in range(3)]

        assert [r.id for r in generator.reports()] == ids[1:]
        assert generator.latest().id == ids[-1]

    def test_sections_are_read_only(self, store, alert_engine, base_time):
        report = ReportGenerator(store, alert_engine, metric_keys=[]).generate(base_time, base_time)

        with pytest.raises(TypeError):
            report.sections["summary"] = {}


class TestPeriodFor:
    @pytest.mark.parametrize("kind, days", [("daily", 1), ("weekly", 7), ("monthly", 30)])
    def test_periods(self, kind, days, base_time):
        start, end = period_for(kind, base_time)

        assert end == base_time
        assert end - start == timedelta(days=days)

    def test_unknown_period(self, base_time):
        with pytest.raises(ValueError):
            period_for("hourly", base_time)
