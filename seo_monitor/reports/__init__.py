"""Report generation and persistence"""

from .report_generator import ReportGenerator, period_for
from .sinks import FileReportSink, HttpReportSink, ReportSink

__all__ = ["ReportGenerator", "period_for", "ReportSink", "FileReportSink", "HttpReportSink"]
