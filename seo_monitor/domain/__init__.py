"""
Domain Models - Type-safe data structures for the monitoring pipeline

    - metrics: MetricReading, ThresholdRule, DeltaEvent, TrendData
    - alerts: Alert and its lifecycle statuses
    - reports: Report

Usage:
    from seo_monitor.domain import MetricReading, ThresholdRule

    rule = ThresholdRule(metric_key="ranking.plumber_near_me", direction="increase", absolute_delta=3)
"""

from .alerts import Alert
from .metrics import DeltaEvent, MetricReading, ThresholdRule, TrendData
from .reports import Report

__all__ = [
    "MetricReading",
    "ThresholdRule",
    "DeltaEvent",
    "TrendData",
    "Alert",
    "Report",
]
