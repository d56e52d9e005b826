#!/usr/bin/env python3
"""
SEO Monitor - run the metrics polling and alerting pipeline

Runs the poll, report and alert-maintenance jobs until interrupted, or a
single poll plus report with ``--once``.

Usage:
    seo-monitor --config config/monitor.json
    seo-monitor --once --log-level DEBUG
    python -m seo_monitor.run_monitor --dry-run

Environment Variables:
    SEO_MONITOR_CONFIG: Monitor configuration file (default: config/monitor.json)
    SLACK_WEBHOOK_URL: Slack webhook for alert notifications (optional)
    ALERT_WEBHOOK_URL: Generic JSON webhook for alert notifications (optional)
    EMAIL_SENDER / EMAIL_PASSWORD: SMTP credentials for email alerts (optional)
    PAGESPEED_API_KEY: PageSpeed Insights API key (optional)
    SENTRY_DSN: Sentry DSN for error tracking (optional)
"""

import argparse
import asyncio
import signal
import sys
from pathlib import Path

from seo_monitor.core.logging_config import get_logger, setup_logging
from seo_monitor.core.observability import setup_observability
from seo_monitor.pipeline import MonitoringPipeline, build_pipeline
from seo_monitor.scheduler import Scheduler
from seo_monitor.secure_config import ConfigurationError, get_config

logger = get_logger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Poll SEO and site-health metrics, raise alerts and build reports")
    parser.add_argument("--config", type=str, help="Monitor configuration file (overrides SEO_MONITOR_CONFIG)")
    parser.add_argument("--once", action="store_true", help="Run a single poll and report, then exit")
    parser.add_argument("--dry-run", action="store_true", help="Validate configuration and list jobs without polling")
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    parser.add_argument("--log-file", type=Path, help="Also write JSON logs to this file")
    parser.add_argument("--json-logs", action="store_true", help="JSON console output")
    return parser.parse_args(argv)


async def run_forever(pipeline: MonitoringPipeline) -> None:
    """Run the scheduled jobs until SIGINT/SIGTERM."""
    scheduler = Scheduler(clock=pipeline.clock)
    pipeline.register_jobs(scheduler)

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Windows event loops: fall back to KeyboardInterrupt
            pass

    await scheduler.start()
    try:
        await stop_event.wait()
    finally:
        logger.info("Shutting down monitor")
        await scheduler.stop(wait=True)
        await pipeline.shutdown()


def main(argv: list[str] | None = None) -> int:
    """
    Entry point.

    Returns:
        Exit code (0 = success, 1 = configuration error, 2 = crash)
    """
    args = parse_args(argv)
    setup_logging(level=args.log_level, log_file=args.log_file, json_output=args.json_logs)

    secure_config = get_config()
    setup_observability(environment=secure_config.get_optional_env("SEO_ENVIRONMENT", "production"))

    try:
        config = secure_config.get_monitor_config(args.config)
        pipeline = build_pipeline(config)
    except ConfigurationError as e:
        logger.error("Invalid configuration", extra={"error": str(e)})
        return 1

    logger.info(
        "Monitor configured",
        extra={
            "metric_keys": sorted(config.metric_keys),
            "rules": len(config.threshold_rules),
            "poll_interval_ms": config.poll_interval_ms,
            "report_interval_ms": config.report_interval_ms,
        },
    )

    if args.dry_run:
        scheduler = Scheduler()
        pipeline.register_jobs(scheduler)
        for job in scheduler.jobs():
            logger.info("Job", extra={"job": job.name, "interval_seconds": job.interval.total_seconds()})
        return 0

    try:
        if args.once:
            report = asyncio.run(pipeline.run_once())
            logger.info("Single run complete", extra={"report_id": report.id})
        else:
            asyncio.run(run_forever(pipeline))
    except KeyboardInterrupt:
        logger.info("Interrupted")
    except Exception:
        logger.error("Monitor crashed", exc_info=True)
        return 2
    return 0


if __name__ == "__main__":
    sys.exit(main())
