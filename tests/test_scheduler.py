"""
Tests for seo_monitor/scheduler.py

Timing-based: intervals are a few milliseconds so each test runs well under a second.
"""

import asyncio
import logging
from unittest.mock import patch

import pytest

from seo_monitor.core.logging_config import JobContextFilter
from seo_monitor.scheduler import Job, Scheduler


class OverlapCounter:
    """Async work that records how many invocations overlap."""

    def __init__(self, duration: float):
        self.duration = duration
        self.current = 0
        self.max_seen = 0
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        self.current += 1
        self.max_seen = max(self.max_seen, self.current)
        try:
            await asyncio.sleep(self.duration)
        finally:
            self.current -= 1


class TestRegistration:
    def test_duplicate_name_rejected(self):
        scheduler = Scheduler()
        scheduler.schedule("poll", 1000, lambda: None)

        with pytest.raises(ValueError):
            scheduler.schedule("poll", 1000, lambda: None)

    def test_invalid_interval_rejected(self):
        with pytest.raises(ValueError):
            Scheduler().schedule("poll", 0, lambda: None)

    def test_jobs_returns_snapshots(self):
        scheduler = Scheduler()
        scheduler.schedule("poll", 1000, lambda: None)

        job = scheduler.get_job("poll")
        job.run_count = 99

        assert isinstance(job, Job)
        assert scheduler.get_job("poll").run_count == 0
        assert [j.name for j in scheduler.jobs()] == ["poll"]
        assert scheduler.get_job("missing") is None

    def test_cancel_unknown_job(self):
        assert Scheduler().cancel("missing") is False

    def test_registered_as_single_instance_interval_job(self):
        scheduler = Scheduler()
        scheduler.schedule("poll", 300_000, lambda: None)

        aps_job = scheduler._scheduler.get_job("poll")
        assert aps_job.max_instances == 1
        assert aps_job.coalesce is True
        assert aps_job.trigger.interval.total_seconds() == 300

    def test_cancel_removes_underlying_job(self):
        scheduler = Scheduler()
        scheduler.schedule("poll", 1000, lambda: None)

        assert scheduler.cancel("poll") is True
        assert scheduler._scheduler.get_job("poll") is None
        assert scheduler.cancel("poll") is False


class TestNoOverlap:
    @pytest.mark.asyncio
    async def test_slow_work_never_runs_concurrently(self, caplog):
        counter = OverlapCounter(duration=0.05)
        scheduler = Scheduler()
        scheduler.schedule("poll", 10, counter, run_immediately=True)

        await scheduler.start()
        await asyncio.sleep(0.25)
        job = scheduler.get_job("poll")
        await scheduler.stop()

        assert counter.max_seen == 1
        assert counter.calls >= 2
        assert job.skipped_count > 0
        assert any("previous run still in progress" in r.getMessage() for r in caplog.records)

    @pytest.mark.asyncio
    async def test_run_now_refused_while_running(self):
        counter = OverlapCounter(duration=0.05)
        scheduler = Scheduler()
        scheduler.schedule("report", 60_000, counter)

        first = asyncio.create_task(scheduler.run_now("report"))
        await asyncio.sleep(0.01)
        second = await scheduler.run_now("report")

        assert await first is True
        assert second is False
        assert counter.max_seen == 1
        assert counter.calls == 1

    @pytest.mark.asyncio
    async def test_interval_run_skipped_during_manual_run(self):
        counter = OverlapCounter(duration=0.08)
        scheduler = Scheduler()
        scheduler.schedule("poll", 10, counter)

        await scheduler.start()
        manual = asyncio.create_task(scheduler.run_now("poll"))
        await asyncio.sleep(0.05)
        job = scheduler.get_job("poll")
        await manual
        await scheduler.stop(wait=False)

        assert counter.max_seen == 1
        assert job.skipped_count > 0


class TestFaultIsolation:
    @pytest.mark.asyncio
    async def test_failing_job_keeps_running_and_others_unaffected(self, caplog):
        good_calls = []

        def failing():
            raise RuntimeError("provider exploded")

        scheduler = Scheduler()
        scheduler.schedule("bad", 10, failing, run_immediately=True)
        scheduler.schedule("good", 10, lambda: good_calls.append(1), run_immediately=True)

        with patch("seo_monitor.scheduler.capture_exception") as mock_capture:
            await scheduler.start()
            await asyncio.sleep(0.1)
            await scheduler.stop()

        bad = scheduler.get_job("bad")
        assert bad.failure_count >= 2
        assert bad.last_error == "RuntimeError: provider exploded"
        assert len(good_calls) >= 2
        assert mock_capture.called
        assert mock_capture.call_args[1]["context"] == {"job": "bad"}

        failures = [r for r in caplog.records if r.getMessage() == "Scheduled job failed"]
        assert failures
        assert failures[0].job == "bad"
        assert failures[0].timestamp

    @pytest.mark.asyncio
    async def test_async_failure_caught(self):
        async def failing():
            await asyncio.sleep(0)
            raise ValueError("bad payload")

        scheduler = Scheduler()
        scheduler.schedule("poll", 60_000, failing)

        with patch("seo_monitor.scheduler.capture_exception"):
            assert await scheduler.run_now("poll") is True

        job = scheduler.get_job("poll")
        assert job.failure_count == 1
        assert job.run_count == 0
        assert not job.is_running


class TestRunNowAndCancel:
    @pytest.mark.asyncio
    async def test_run_now_sync_work(self, clock):
        calls = []
        scheduler = Scheduler(clock=clock)
        scheduler.schedule("report", 60_000, lambda: calls.append("ran"))

        assert await scheduler.run_now("report") is True

        job = scheduler.get_job("report")
        assert calls == ["ran"]
        assert job.run_count == 1
        assert job.last_run_at == clock()

    @pytest.mark.asyncio
    async def test_run_now_unknown_job(self):
        with pytest.raises(KeyError):
            await Scheduler().run_now("missing")

    @pytest.mark.asyncio
    async def test_cancel_stops_future_runs_but_finishes_in_flight(self):
        finished = []

        async def work():
            await asyncio.sleep(0.05)
            finished.append(True)

        scheduler = Scheduler()
        scheduler.schedule("poll", 10, work, run_immediately=True)
        await scheduler.start()
        await asyncio.sleep(0.01)

        assert scheduler.cancel("poll") is True
        await asyncio.sleep(0.15)

        assert finished == [True]
        assert scheduler.get_job("poll") is None
        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_schedule_after_start_begins_ticking(self):
        calls = []
        scheduler = Scheduler()
        await scheduler.start()

        scheduler.schedule("late", 10, lambda: calls.append(1))
        await asyncio.sleep(0.06)
        await scheduler.stop()

        assert len(calls) >= 2

    @pytest.mark.asyncio
    async def test_stop_without_wait_cancels_in_flight(self):
        finished = []

        async def work():
            await asyncio.sleep(1)
            finished.append(True)

        scheduler = Scheduler()
        scheduler.schedule("poll", 60_000, work, run_immediately=True)
        await scheduler.start()
        await asyncio.sleep(0.01)

        with patch("seo_monitor.scheduler.capture_exception") as mock_capture:
            await scheduler.stop(wait=False)

        assert finished == []
        assert not scheduler.running
        assert scheduler.get_job("poll").failure_count == 0
        mock_capture.assert_not_called()


class TestJobLogContext:
    @pytest.mark.asyncio
    async def test_records_logged_by_work_carry_job_name(self):
        records = []

        class _Collect(logging.Handler):
            def emit(self, record):
                records.append(record)

        work_logger = logging.getLogger("seo_monitor.test.work")
        handler = _Collect()
        handler.addFilter(JobContextFilter())
        work_logger.addHandler(handler)
        work_logger.setLevel(logging.INFO)

        async def work():
            work_logger.info("Polling providers")

        scheduler = Scheduler()
        scheduler.schedule("poll", 60_000, work)
        try:
            await scheduler.run_now("poll")
            work_logger.info("Outside any job")
        finally:
            work_logger.removeHandler(handler)

        assert records[0].job == "poll"
        assert not hasattr(records[1], "job")
