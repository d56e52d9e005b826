"""
SEO Monitor - metrics polling, change detection, alerting and reporting for
site-health and search metrics.
"""

__version__ = "1.0.0"
