"""Utilities for working with the aggregation clock and calendar days."""

from __future__ import annotations

import math
from datetime import date, datetime, timezone
from typing import Optional, Union

DateLike = Union[date, datetime, str]

_SECONDS_PER_DAY = 86400


def utc_now() -> datetime:
    """Return the current time as a timezone-aware ``datetime`` in UTC."""

    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """Normalise ``dt`` to a timezone-aware UTC ``datetime``."""

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def days_between(first: datetime, second: datetime) -> int:
    """Return the whole number of days separating two instants.

    The magnitude is rounded up so a difference of one second counts as one
    day; the result is never negative.
    """

    seconds = abs((ensure_utc(second) - ensure_utc(first)).total_seconds())
    return math.ceil(seconds / _SECONDS_PER_DAY)


def days_until(now: datetime, due: datetime) -> int:
    """Return :func:`days_between` signed negative when ``due`` has passed."""

    magnitude = days_between(now, due)
    if ensure_utc(due) < ensure_utc(now):
        return -magnitude
    return magnitude


def to_calendar_date(value: Optional[DateLike]) -> Optional[date]:
    """Coerce ``value`` to a calendar ``date``.

    Strings may be plain ``YYYY-MM-DD`` values or full ISO timestamps, in which
    case only the date part is kept.
    """

    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if not text:
        return None
    if "T" in text:
        text = text.split("T", 1)[0]
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        return None


def sunday_first_weekday(day: date) -> int:
    """Return the weekday numbered 0=Sunday through 6=Saturday."""

    return (day.weekday() + 1) % 7


__all__ = [
    "utc_now",
    "ensure_utc",
    "days_between",
    "days_until",
    "to_calendar_date",
    "sunday_first_weekday",
]
