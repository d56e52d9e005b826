"""
Datetime Utility Functions

Centralized helpers for the timestamps flowing through the pipeline:
- Current time in UTC (the default clock for every component)
- Provider timestamps in ISO 8601 with or without 'Z' suffix
- Millisecond configuration values to timedelta
"""

from datetime import UTC, datetime, timedelta


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(UTC)


def parse_iso_timestamp(timestamp_str: str | None) -> datetime | None:
    """
    Parse an ISO 8601 timestamp into a timezone-aware UTC datetime.

    Handles:
    - "2026-02-10T10:00:00Z" (UTC with Z)
    - "2026-02-10T10:00:00+02:00" (explicit offset, converted to UTC)
    - "2026-02-10T10:00:00" (naive, assumed UTC)

    Args:
        timestamp_str: ISO 8601 timestamp string, or None

    Returns:
        datetime in UTC, or None if input is None/empty

    Raises:
        ValueError: If timestamp format is invalid

    Examples:
        >>> parse_iso_timestamp("2026-02-10T10:00:00Z")
        datetime.datetime(2026, 2, 10, 10, 0, tzinfo=datetime.timezone.utc)
    """
    if not timestamp_str:
        return None

    if not isinstance(timestamp_str, str):
        raise ValueError(f"Timestamp must be a string, got {type(timestamp_str)}")

    try:
        parsed = datetime.fromisoformat(timestamp_str.replace("Z", "+00:00"))
    except ValueError as e:
        raise ValueError(f"Invalid timestamp format: {timestamp_str}") from e

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def ms_to_timedelta(milliseconds: int | float) -> timedelta:
    """
    Convert a millisecond configuration value to a timedelta.

    Raises:
        ValueError: If milliseconds is negative
    """
    if milliseconds < 0:
        raise ValueError(f"Duration must be non-negative, got {milliseconds}ms")
    return timedelta(milliseconds=milliseconds)
