"""Project recurring scheduled sessions onto a single calendar day."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Iterable, List, Optional, Tuple

import structlog

from caseload.config import get_settings
from caseload.models import ScheduledSession, parse_records
from caseload.time_utils import DateLike, sunday_first_weekday, to_calendar_date


logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ProjectedOccurrence:
    """One student's slot produced by a scheduled session on a given day."""

    student_id: str
    start: datetime
    end: datetime
    is_direct_services: bool
    scheduled_session_id: str


def _within_range(schedule: ScheduledSession, target: date) -> bool:
    if target < schedule.start_date:
        return False
    if schedule.end_date is not None and target > schedule.end_date:
        return False
    return True


def matches_date(schedule: ScheduledSession, target: date) -> bool:
    """Return ``True`` when ``schedule`` produces a session on ``target``."""

    if not schedule.active:
        return False
    if target in schedule.cancelled_dates:
        return False
    if not _within_range(schedule, target):
        return False

    pattern = schedule.recurrence_pattern
    if pattern == "weekly":
        return sunday_first_weekday(target) in schedule.day_of_week
    if pattern == "daily":
        return True
    if pattern == "specific-dates":
        return target in schedule.specific_dates
    if pattern == "none":
        return target == schedule.start_date
    return False


def occurrence_window(
    schedule: ScheduledSession,
    target: date,
    *,
    default_minutes: Optional[int] = None,
) -> Tuple[datetime, datetime]:
    """Return the start and end instants of ``schedule`` on ``target``.

    The end is the explicit end time when present, else start plus the
    duration, else start plus the default session length.
    """

    start = datetime.combine(target, schedule.start_time)
    if schedule.end_time is not None:
        end = datetime.combine(target, schedule.end_time)
    elif schedule.duration:
        end = start + timedelta(minutes=schedule.duration)
    else:
        if default_minutes is None:
            default_minutes = get_settings().default_session_minutes
        end = start + timedelta(minutes=default_minutes)
    return start, end


def expand_for_date(
    scheduled_sessions: Iterable[ScheduledSession],
    target_date: DateLike,
    *,
    default_minutes: Optional[int] = None,
) -> List[ProjectedOccurrence]:
    """Expand ``scheduled_sessions`` into per-student occurrences on ``target_date``.

    Raw rows are validated first.  An unparseable ``target_date`` yields no
    occurrences.
    """

    target = to_calendar_date(target_date)
    if target is None:
        logger.warning("schedule.invalid_target_date", target_date=str(target_date))
        return []

    occurrences: List[ProjectedOccurrence] = []
    for schedule in parse_records(ScheduledSession, scheduled_sessions):
        if not matches_date(schedule, target):
            continue
        start, end = occurrence_window(schedule, target, default_minutes=default_minutes)
        for student_id in schedule.student_ids:
            occurrences.append(
                ProjectedOccurrence(
                    student_id=student_id,
                    start=start,
                    end=end,
                    is_direct_services=schedule.is_direct_services,
                    scheduled_session_id=schedule.id,
                )
            )
    return occurrences


__all__ = ["ProjectedOccurrence", "matches_date", "occurrence_window", "expand_for_date"]
