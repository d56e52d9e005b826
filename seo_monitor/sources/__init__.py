"""
Metric sources - pluggable providers of metric readings

    - PageSpeedInsightsSource: Google PageSpeed Insights (page speed, SEO score)
    - JsonEndpointSource: ranking/analytics services exposing JSON metrics
    - CompositeSource: merge several providers
    - StaticSource: canned snapshots for tests and dry runs
"""

from .base import CompositeSource, MetricSource, StaticSource, fetch_with_timeout
from .json_endpoint import JsonEndpointSource
from .pagespeed import PageSpeedInsightsSource

__all__ = [
    "MetricSource",
    "fetch_with_timeout",
    "StaticSource",
    "CompositeSource",
    "JsonEndpointSource",
    "PageSpeedInsightsSource",
]
