"""
Time Utilities

Every timestamp persisted by the market cache (record lastUpdated, the
last-update key, UpdateStatus fields) is an integer number of epoch
milliseconds. These helpers produce and convert those values.
"""

import math
from datetime import datetime, timezone
from typing import Optional


def datetime_to_timestamp(dt: datetime, milliseconds: bool = False) -> int:
    """
    Convert a datetime object to Unix timestamp.

    Args:
        dt: Datetime object (naive datetimes are treated as UTC)
        milliseconds: If True, return milliseconds (sub-second precision kept)

    Examples:
        >>> dt = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
        >>> datetime_to_timestamp(dt)
        1704110400
        >>> datetime_to_timestamp(dt, milliseconds=True)
        1704110400000
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)

    if milliseconds:
        return int(dt.timestamp() * 1000)
    return int(dt.timestamp())


def current_utc_timestamp(milliseconds: bool = False) -> int:
    """
    Get current UTC timestamp.

    Examples:
        >>> current_utc_timestamp(milliseconds=True)
        1704110400123
    """
    return datetime_to_timestamp(datetime.now(timezone.utc), milliseconds)


def current_utc_datetime() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(timezone.utc)


def age_in_seconds(timestamp_ms: Optional[int], now_ms: Optional[int] = None) -> Optional[int]:
    """
    Whole seconds elapsed since an epoch-millisecond timestamp.

    Returns None when no timestamp is known (0 counts as unknown).

    Example:
        >>> age_in_seconds(1704110400000, now_ms=1704110812500)
        412
    """
    if not timestamp_ms:
        return None
    if now_ms is None:
        now_ms = current_utc_timestamp(milliseconds=True)
    return math.floor((now_ms - timestamp_ms) / 1000)


def time_range_seconds(hours_back: int, now: Optional[datetime] = None) -> tuple:
    """
    (start, end) epoch-second window ending now, used for open interest queries.

    Example:
        >>> time_range_seconds(1, datetime(2024, 1, 1, 12, tzinfo=timezone.utc))
        (1704106800, 1704110400)
    """
    end = datetime_to_timestamp(now or current_utc_datetime())
    return end - hours_back * 3600, end
