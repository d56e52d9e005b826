#!/usr/bin/env python3
"""
Tests for datetime_utils module

Timestamp parsing for provider payloads and millisecond config conversion.
"""

from datetime import UTC, datetime, timedelta

import pytest

from seo_monitor.utils.datetime_utils import ms_to_timedelta, parse_iso_timestamp, utc_now


class TestUtcNow:
    def test_is_timezone_aware_utc(self):
        now = utc_now()
        assert now.tzinfo is not None
        assert now.utcoffset() == timedelta(0)


class TestParseIsoTimestamp:
    """Tests for parse_iso_timestamp function."""

    def test_z_suffix(self):
        assert parse_iso_timestamp("2026-03-02T09:00:00Z") == datetime(2026, 3, 2, 9, 0, tzinfo=UTC)

    def test_milliseconds(self):
        """Lighthouse fetchTime carries milliseconds."""
        result = parse_iso_timestamp("2026-03-02T08:55:00.250Z")
        assert result == datetime(2026, 3, 2, 8, 55, 0, 250000, tzinfo=UTC)

    def test_offset_converted_to_utc(self):
        result = parse_iso_timestamp("2026-03-02T11:00:00+02:00")
        assert result == datetime(2026, 3, 2, 9, 0, tzinfo=UTC)
        assert result.tzinfo == UTC

    def test_naive_assumed_utc(self):
        assert parse_iso_timestamp("2026-03-02T09:00:00") == datetime(2026, 3, 2, 9, 0, tzinfo=UTC)

    @pytest.mark.parametrize("value", [None, ""])
    def test_empty_input(self, value):
        assert parse_iso_timestamp(value) is None

    def test_invalid_format(self):
        with pytest.raises(ValueError, match="Invalid timestamp format"):
            parse_iso_timestamp("last tuesday")

    def test_non_string(self):
        with pytest.raises(ValueError):
            parse_iso_timestamp(1709370000)


class TestMsToTimedelta:
    def test_conversion(self):
        assert ms_to_timedelta(300_000) == timedelta(minutes=5)
        assert ms_to_timedelta(1.5) == timedelta(microseconds=1500)

    def test_negative_rejected(self):
        with pytest.raises(ValueError):
            ms_to_timedelta(-1)
