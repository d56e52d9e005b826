"""
Tests for seo_monitor/reports/sinks.py
"""

import json
from datetime import timedelta
from unittest.mock import Mock, patch

import pytest
import requests

from seo_monitor.domain.reports import Report
from seo_monitor.errors import PersistError
from seo_monitor.reports.sinks import FileReportSink, HttpReportSink


@pytest.fixture
def report(base_time):
    return Report(
        id="report-20260302T100000-0001",
        period_start=base_time,
        period_end=base_time + timedelta(hours=1),
        generated_at=base_time + timedelta(hours=1),
        sections={"summary": {"metrics_tracked": 2}, "alert_log": []},
    )


class TestFileReportSink:
    def test_persist_writes_json(self, tmp_path, report):
        sink = FileReportSink(tmp_path / "reports")

        sink.persist(report)

        path = tmp_path / "reports" / f"{report.id}.json"
        data = json.loads(path.read_text(encoding="utf-8"))
        assert data["id"] == report.id
        assert data["sections"]["summary"] == {"metrics_tracked": 2}
        assert data["period_start"] == report.period_start.isoformat()

    def test_load_and_list(self, tmp_path, report):
        sink = FileReportSink(tmp_path)
        sink.persist(report)

        assert sink.list_ids() == [report.id]
        assert sink.load(report.id)["id"] == report.id
        assert sink.load("missing") == {}

    def test_unsafe_id_characters_replaced(self, tmp_path):
        path = FileReportSink(tmp_path).path_for("../../etc/passwd")
        assert path.parent == tmp_path

    def test_write_failure_raises_persist_error(self, tmp_path, report):
        sink = FileReportSink(tmp_path)

        with patch("seo_monitor.reports.sinks.atomic_json_save", side_effect=OSError("disk full")):
            with pytest.raises(PersistError, match="disk full"):
                sink.persist(report)


class TestHttpReportSink:
    def test_requires_https(self):
        with pytest.raises(ValueError):
            HttpReportSink("http://reports.example.net/ingest")

    @patch("seo_monitor.reports.sinks.http_client.post")
    def test_persist_posts_report(self, mock_post, report):
        mock_post.return_value = Mock(status_code=201)
        sink = HttpReportSink("https://reports.example.net/ingest", headers={"Authorization": "Bearer t"})

        sink.persist(report)

        args, kwargs = mock_post.call_args
        assert args[0] == "https://reports.example.net/ingest"
        assert kwargs["json"]["id"] == report.id
        assert kwargs["headers"]["Authorization"] == "Bearer t"

    @patch("seo_monitor.reports.sinks.http_client.post")
    def test_error_status_raises(self, mock_post, report):
        mock_post.return_value = Mock(status_code=500)

        with pytest.raises(PersistError, match="500"):
            HttpReportSink("https://reports.example.net/ingest").persist(report)

    @patch("seo_monitor.reports.sinks.http_client.post")
    def test_connection_error_raises(self, mock_post, report):
        mock_post.side_effect = requests.ConnectionError("refused")

        with pytest.raises(PersistError):
            HttpReportSink("https://reports.example.net/ingest").persist(report)
