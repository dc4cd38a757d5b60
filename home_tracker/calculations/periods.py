"""
Date/period helpers.

Both functions fail gracefully: a missing date yields 0 days.
Plain dates are taken as midnight UTC.
"""

import math
from datetime import date, datetime, time, timezone
from typing import Optional, Union

DateLike = Union[date, datetime, str]

SECONDS_PER_DAY = 86400


def as_utc_datetime(value: DateLike) -> datetime:
    """Normalize a date, datetime or ISO-8601 string to an aware UTC datetime."""
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    return datetime.combine(value, time.min, tzinfo=timezone.utc)


def _now(now: Optional[datetime]) -> datetime:
    return as_utc_datetime(now) if now is not None else datetime.now(timezone.utc)


def days_remaining(target: Optional[DateLike], now: Optional[datetime] = None) -> int:
    """Whole days until target, rounded up (a partial day counts). 0 if no target."""
    if not target:
        return 0
    delta = as_utc_datetime(target) - _now(now)
    return math.ceil(delta.total_seconds() / SECONDS_PER_DAY)


def days_elapsed(since: Optional[DateLike], now: Optional[datetime] = None) -> int:
    """Whole days since a past moment, rounded down. 0 if no date."""
    if not since:
        return 0
    delta = _now(now) - as_utc_datetime(since)
    return math.floor(delta.total_seconds() / SECONDS_PER_DAY)
