"""Timestamps for index records and file details."""

from __future__ import annotations

from datetime import datetime, timezone

import pendulum

# Human-facing output format: YYYY-MM-DD HH:MM:SS±TZ
DISPLAY_FORMAT = "%Y-%m-%d %H:%M:%S%z"


def now_utc() -> datetime:
    """Return the current UTC datetime."""
    return datetime.now(timezone.utc)


def format_iso(dt: datetime) -> str:
    """Format datetime as ISO 8601 for storage in the index."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.isoformat()


def from_timestamp(ts: float, tz: str = "UTC") -> datetime:
    """Convert a filesystem timestamp (seconds since epoch) to an aware datetime."""
    return pendulum.from_timestamp(ts, tz=tz)


def format_display(dt: datetime) -> str:
    """Format a datetime for the shell."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.strftime(DISPLAY_FORMAT)
