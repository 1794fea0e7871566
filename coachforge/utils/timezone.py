"""Timezone helpers.

SQLite hands back naive datetimes even for timezone-aware columns, so every
comparison against "now" goes through to_utc first.
"""

from datetime import datetime, timezone


def to_utc(dt: datetime) -> datetime:
    """Convert a datetime to an aware UTC datetime.

    Args:
        dt: Naive (assumed UTC) or aware datetime

    Returns:
        Timezone-aware datetime in UTC
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)
