"""
Monitoring pipeline - wires sources, store, detector, alert engine and reports
into schedulable jobs.

Jobs:
    poll               fetch readings, store them, detect changes, evaluate alerts
    report             generate a report for the last report interval and persist it
    alert-maintenance  expire resolved alerts past their retention period
    report-<kind>      one job per configured report kind (daily, weekly, monthly)

Components are passed in explicitly; ``build_pipeline`` assembles the default
set from a MonitorConfig.

Usage::

    config = get_config().get_monitor_config()
    pipeline = build_pipeline(config)
    scheduler = Scheduler()
    pipeline.register_jobs(scheduler)
    await scheduler.start()
"""

import asyncio
import functools
import os
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime

from seo_monitor.core.logging_config import get_logger
from seo_monitor.domain.alerts import Alert
from seo_monitor.domain.metrics import DeltaEvent
from seo_monitor.domain.reports import PERIODS, Report
from seo_monitor.engine.alert_engine import AlertEngine
from seo_monitor.engine.change_detector import ChangeDetector
from seo_monitor.errors import FetchError, OutOfOrderReading
from seo_monitor.notifiers import EmailNotifier, LogNotifier, MultiNotifier, Notifier, SlackWebhookNotifier, WebhookNotifier
from seo_monitor.reports.report_generator import ReportGenerator, period_for
from seo_monitor.reports.sinks import FileReportSink, HttpReportSink, ReportSink
from seo_monitor.scheduler import Scheduler
from seo_monitor.secure_config import ConfigurationError, MonitorConfig, SecureConfig, get_config
from seo_monitor.sources import CompositeSource, JsonEndpointSource, MetricSource, PageSpeedInsightsSource, StaticSource
from seo_monitor.sources.base import fetch_with_timeout
from seo_monitor.storage.snapshot_store import SnapshotStore
from seo_monitor.utils.datetime_utils import utc_now

logger = get_logger(__name__)

JOB_POLL = "poll"
JOB_REPORT = "report"
JOB_MAINTENANCE = "alert-maintenance"


@dataclass
class PollResult:
    """Outcome of one poll cycle."""

    stored: list[str] = field(default_factory=list)
    rejected: list[str] = field(default_factory=list)
    missing: list[str] = field(default_factory=list)
    events: list[DeltaEvent] = field(default_factory=list)
    alerts: list[Alert] = field(default_factory=list)


class MonitoringPipeline:
    """
    One poll/report/maintenance implementation per monitored site.

    Holds the stale-data bookkeeping: consecutive poll cycles without a fresh
    reading per metric key.
    """

    def __init__(
        self,
        config: MonitorConfig,
        source: MetricSource,
        store: SnapshotStore,
        detector: ChangeDetector,
        alert_engine: AlertEngine,
        report_generator: ReportGenerator,
        report_sink: ReportSink | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.config = config
        self.source = source
        self.store = store
        self.detector = detector
        self.alert_engine = alert_engine
        self.report_generator = report_generator
        self.report_sink = report_sink
        self.clock = clock
        self._missed_cycles: dict[str, int] = {}

    # ------------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------------

    async def poll_cycle(self) -> PollResult:
        """
        Fetch, store, detect and evaluate once.

        Raises:
            FetchError: If the source failed entirely (after stale bookkeeping)
        """
        keys = set(self.config.metric_keys)
        try:
            readings = await fetch_with_timeout(self.source, keys, self.config.fetch_timeout_seconds)
        except FetchError:
            self._record_misses(keys)
            raise

        result = PollResult()
        fresh: set[str] = set()
        for reading in readings:
            if reading.metric_key not in keys:
                logger.debug("Ignoring untracked metric", extra={"metric_key": reading.metric_key})
                continue
            try:
                self.store.append(reading)
            except OutOfOrderReading:
                # Caller policy: drop the reading, the store already logged it
                result.rejected.append(reading.metric_key)
                continue
            fresh.add(reading.metric_key)

        result.stored = sorted(fresh)
        result.missing = sorted(keys - fresh)
        self._record_misses(keys - fresh)
        self._record_fresh(fresh)

        result.events = self.detector.detect(self.store, metric_keys=fresh)
        result.alerts = self.alert_engine.evaluate(result.events, evaluated_keys=fresh)

        logger.info(
            "Poll cycle complete",
            extra={
                "stored": len(result.stored),
                "missing": len(result.missing),
                "rejected": len(result.rejected),
                "events": len(result.events),
                "alerts_changed": len(result.alerts),
            },
        )
        return result

    async def report_cycle(self, period_end: datetime | None = None) -> Report:
        """
        Generate a report covering the last report interval and persist it.

        Raises:
            PersistError: If the sink failed
        """
        end = period_end or self.clock()
        return await self._generate_and_persist(end - self.config.report_interval, end)

    async def period_report_cycle(self, kind: str, period_end: datetime | None = None) -> Report:
        """
        Generate a named-period report ('daily', 'weekly', 'monthly') ending now.

        Raises:
            ValueError: If kind is unknown
            PersistError: If the sink failed
        """
        start, end = period_for(kind, period_end or self.clock())
        logger.info("Generating period report", extra={"kind": kind, "period_start": start.isoformat()})
        return await self._generate_and_persist(start, end)

    async def _generate_and_persist(self, start: datetime, end: datetime) -> Report:
        report = self.report_generator.generate(start, end)
        if self.report_sink is not None:
            await asyncio.to_thread(self.report_sink.persist, report)
        return report

    def maintenance_cycle(self) -> list[Alert]:
        """Expire resolved alerts older than the alert retention period."""
        return self.alert_engine.expire()

    def register_jobs(self, scheduler: Scheduler) -> None:
        scheduler.schedule(JOB_POLL, self.config.poll_interval_ms, self.poll_cycle, run_immediately=True)
        scheduler.schedule(JOB_REPORT, self.config.report_interval_ms, self.report_cycle)
        scheduler.schedule(JOB_MAINTENANCE, self.config.maintenance_interval_ms, self.maintenance_cycle)
        for kind in self.config.report_kinds:
            scheduler.schedule(
                f"{JOB_REPORT}-{kind}",
                int(PERIODS[kind].total_seconds() * 1000),
                functools.partial(self.period_report_cycle, kind),
            )

    async def run_once(self) -> Report:
        """Single poll followed by a report; fetch failures are logged, not raised."""
        try:
            await self.poll_cycle()
        except FetchError as e:
            logger.error("Poll cycle failed", extra={"error": str(e), "source": e.source})
        report = await self.report_cycle()
        await self.alert_engine.wait_for_notifications()
        return report

    async def shutdown(self) -> None:
        await self.alert_engine.wait_for_notifications()

    # ------------------------------------------------------------------
    # Stale data
    # ------------------------------------------------------------------

    def missed_cycles(self, metric_key: str) -> int:
        return self._missed_cycles.get(metric_key, 0)

    def _record_misses(self, metric_keys: set[str]) -> None:
        for key in sorted(metric_keys):
            missed = self._missed_cycles.get(key, 0) + 1
            self._missed_cycles[key] = missed
            if missed >= self.config.stale_after_cycles:
                self.alert_engine.raise_stale(key, missed)

    def _record_fresh(self, metric_keys: set[str]) -> None:
        for key in sorted(metric_keys):
            if self._missed_cycles.pop(key, 0) >= self.config.stale_after_cycles:
                self.alert_engine.clear_stale(key)


# ----------------------------------------------------------------------
# Assembly
# ----------------------------------------------------------------------


def build_source(config: MonitorConfig, secure_config: SecureConfig | None = None) -> MetricSource:
    """
    Build the metric source from the ``sources`` list in the monitor config.

    Supported entry types: ``pagespeed``, ``json``, ``static``.

    Raises:
        ConfigurationError: If no source is configured or an entry is invalid
    """
    secure_config = secure_config or get_config()
    sources: list[MetricSource] = []

    for entry in config.sources:
        kind = entry.get("type")
        try:
            if kind == "pagespeed":
                pagespeed = secure_config.get_pagespeed_config()
                page_url = entry.get("page_url") or config.site_url
                if not page_url:
                    raise ConfigurationError("pagespeed source needs page_url (or site_url in the monitor config)")
                sources.append(
                    PageSpeedInsightsSource(
                        page_url=page_url,
                        api_key=pagespeed.api_key,
                        strategy=entry.get("strategy", pagespeed.strategy),
                    )
                )
            elif kind == "json":
                sources.append(
                    JsonEndpointSource(
                        name=entry["name"],
                        url=entry["url"],
                        key_prefix=entry.get("key_prefix"),
                        headers=entry.get("headers"),
                    )
                )
            elif kind == "static":
                sources.append(StaticSource(entry["snapshots"]))
            else:
                raise ConfigurationError(f"Unknown source type: {kind!r}")
        except (KeyError, ValueError) as e:
            raise ConfigurationError(f"Invalid {kind} source entry: {e}") from e

    if not sources:
        raise ConfigurationError("No metric sources configured")
    return sources[0] if len(sources) == 1 else CompositeSource(sources)


def build_notifier(config: MonitorConfig, secure_config: SecureConfig | None = None) -> Notifier:
    """
    Log notifier plus every channel whose credentials are present in the
    environment (Slack, generic webhook, email).
    """
    secure_config = secure_config or get_config()
    notifiers: list[Notifier] = [LogNotifier()]
    environment = secure_config.get_optional_env("SEO_ENVIRONMENT", "production")

    if secure_config.get_optional_env("SLACK_WEBHOOK_URL"):
        slack = secure_config.get_slack_config()
        notifiers.append(SlackWebhookNotifier(slack.webhook_url, environment=environment))

    webhook_url = secure_config.get_optional_env("ALERT_WEBHOOK_URL")
    if webhook_url:
        notifiers.append(WebhookNotifier(webhook_url))

    if config.email_recipients and secure_config.get_optional_env("EMAIL_SENDER"):
        notifiers.append(EmailNotifier(secure_config.get_email_config(), list(config.email_recipients)))

    logger.info("Notifiers configured", extra={"notifiers": [n.name for n in notifiers]})
    return notifiers[0] if len(notifiers) == 1 else MultiNotifier(notifiers)


def build_report_sink(config: MonitorConfig) -> ReportSink:
    endpoint = os.getenv("SEO_REPORT_ENDPOINT_URL")
    if endpoint:
        return HttpReportSink(endpoint)
    return FileReportSink(config.report_dir)


def build_pipeline(
    config: MonitorConfig,
    source: MetricSource | None = None,
    notifier: Notifier | None = None,
    report_sink: ReportSink | None = None,
    clock: Callable[[], datetime] = utc_now,
) -> MonitoringPipeline:
    """Construct every component from the config; any of the I/O collaborators may be injected."""
    store = SnapshotStore(retention_count=config.retention_count, retention_window=config.retention_window)
    detector = ChangeDetector(config.threshold_rules)
    alert_engine = AlertEngine(
        notifier=notifier if notifier is not None else build_notifier(config),
        dedup_window=config.dedup_window,
        alert_retention=config.alert_retention,
        history_limit=config.alert_history_limit,
        clock=clock,
    )
    report_generator = ReportGenerator(
        store,
        alert_engine,
        metric_keys=config.metric_keys,
        history_limit=config.report_history_limit,
        clock=clock,
    )
    return MonitoringPipeline(
        config=config,
        source=source if source is not None else build_source(config),
        store=store,
        detector=detector,
        alert_engine=alert_engine,
        report_generator=report_generator,
        report_sink=report_sink if report_sink is not None else build_report_sink(config),
        clock=clock,
    )
