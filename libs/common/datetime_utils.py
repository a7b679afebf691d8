"""Datetime utilities for timezone-aware UTC timestamps and calendar dates.

Usage:
    from libs.common.datetime_utils import utc_now

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )

Session dates are plain calendar dates. They never pass through the server's
local timezone, so the same input always maps to the same day.
"""

from datetime import date, datetime, time, timezone
from typing import Optional, Union
from zoneinfo import ZoneInfo


def utc_now() -> datetime:
    """Return timezone-aware UTC datetime.

    This replaces the deprecated datetime.utcnow() which returns naive datetimes.
    Always use this for timestamps in the database.
    """
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime] = None) -> datetime:
    """Normalise an instant to aware UTC, defaulting to now.

    Naive values are taken to already be UTC.
    """
    if value is None:
        return utc_now()
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_calendar_date(value: Union[date, datetime]) -> date:
    """Return the calendar date a value names.

    A datetime contributes its own wall-clock date, whatever its tzinfo.
    """
    if isinstance(value, datetime):
        return value.date()
    return value


def local_datetime(day: date, wall_time: time, tz_name: str) -> datetime:
    """Combine a club-local date and wall-clock time into an aware datetime."""
    return datetime.combine(day, wall_time, tzinfo=ZoneInfo(tz_name))
