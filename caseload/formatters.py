"""Default display helpers used when rendering timesheet notes."""

from __future__ import annotations

from datetime import datetime
from typing import Optional, Union

TimeValue = Union[datetime, str]


def _as_datetime(value: TimeValue) -> datetime:
    if isinstance(value, datetime):
        return value
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text)


def format_time_12_hour(value: TimeValue) -> str:
    """Return ``value`` as ``h:mmam``/``h:mmpm`` in its own timezone."""

    dt = _as_datetime(value)
    suffix = "pm" if dt.hour >= 12 else "am"
    hour = dt.hour % 12 or 12
    return f"{hour}:{dt.minute:02d}{suffix}"


def format_time_range(start: TimeValue, end: Optional[TimeValue] = None) -> str:
    """Return ``start-end`` in 12 hour form, or just the start without an end."""

    if end is None:
        return format_time_12_hour(start)
    return f"{format_time_12_hour(start)}-{format_time_12_hour(end)}"


def student_initials(name: Optional[str]) -> str:
    """First letters of the first and last name; ``??`` when there is no name."""

    parts = (name or "").split()
    if not parts:
        return "??"
    if len(parts) == 1:
        return parts[0][0].upper()
    return (parts[0][0] + parts[-1][0]).upper()


__all__ = ["format_time_12_hour", "format_time_range", "student_initials"]
