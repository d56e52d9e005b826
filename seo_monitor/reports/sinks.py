"""
Report sinks - persist generated reports

Every sink raises PersistError on failure; the pipeline lets it propagate to
the scheduler's job boundary.
"""

import re
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

import requests

from seo_monitor import http_client
from seo_monitor.core.logging_config import get_logger
from seo_monitor.domain.reports import Report
from seo_monitor.errors import PersistError
from seo_monitor.utils_atomic_json import atomic_json_save, load_json_with_recovery

logger = get_logger(__name__)


class ReportSink(ABC):
    """Destination for finished reports."""

    name = "sink"

    @abstractmethod
    def persist(self, report: Report) -> None:
        """
        Store the report.

        Raises:
            PersistError: If the report could not be stored
        """


class FileReportSink(ReportSink):
    """
    One JSON file per report under ``directory``, written atomically.

    Usage::

        sink = FileReportSink(".tmp/seo_monitor/reports")
        sink.persist(report)
        data = sink.load(report.id)
    """

    name = "file"

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)

    def path_for(self, report_id: str) -> Path:
        safe_id = re.sub(r"[^A-Za-z0-9._-]", "_", report_id)
        return self.directory / f"{safe_id}.json"

    def persist(self, report: Report) -> None:
        path = self.path_for(report.id)
        try:
            atomic_json_save(report.to_dict(), path)
        except (OSError, TypeError, ValueError) as e:
            raise PersistError(f"Failed to write report {report.id} to {path}: {e}") from e
        logger.info("Report persisted", extra={"report_id": report.id, "path": str(path)})

    def load(self, report_id: str) -> dict[str, Any]:
        """Read a persisted report back (empty dict if missing or corrupt)."""
        return load_json_with_recovery(self.path_for(report_id), default_value={})

    def list_ids(self) -> list[str]:
        if not self.directory.exists():
            return []
        return sorted(path.stem for path in self.directory.glob("*.json"))


class HttpReportSink(ReportSink):
    """POST the report as JSON; any 2xx response counts as stored."""

    name = "http"

    def __init__(self, url: str, headers: dict[str, str] | None = None, timeout: float = 30.0) -> None:
        if not url.startswith("https://"):
            raise ValueError(f"Report endpoint must use HTTPS: {url}")
        self.url = url
        self.headers = headers or {}
        self.timeout = timeout

    def persist(self, report: Report) -> None:
        try:
            response = http_client.post(
                self.url,
                json=report.to_dict(),
                headers={"Content-Type": "application/json", **self.headers},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise PersistError(f"Report upload failed: {e}") from e

        if not 200 <= response.status_code < 300:
            raise PersistError(f"Report endpoint returned HTTP {response.status_code}")

        logger.info("Report uploaded", extra={"report_id": report.id, "url": self.url})
