"""Select the records that belong to a single calendar day."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Iterable, List, Optional, Type

import structlog

from caseload.models import (
    ArticulationScreener,
    Communication,
    Meeting,
    RecordT,
    Session,
    parse_records,
)
from caseload.time_utils import DateLike, to_calendar_date
from caseload.timesheet import (
    FormatTimeRange,
    StudentSource,
    build_group_lookup,
    generate_timesheet_note,
)


logger = structlog.get_logger(__name__)


@dataclass
class DayActivity:
    """Realized records for one day, in input order."""

    day: date
    sessions: List[Session] = field(default_factory=list)
    screeners: List[ArticulationScreener] = field(default_factory=list)
    meetings: List[Meeting] = field(default_factory=list)
    communications: List[Communication] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.sessions or self.screeners or self.meetings or self.communications)


def _on_day(value: Optional[datetime], day: date) -> bool:
    return value is not None and value.date() == day


def _records_on(model: Type[RecordT], rows: Iterable[Any], day: date) -> List[RecordT]:
    return [record for record in parse_records(model, rows) if _on_day(record.date, day)]


def select_day_activity(
    target_date: DateLike,
    *,
    sessions: Iterable[Session] = (),
    screeners: Iterable[ArticulationScreener] = (),
    meetings: Iterable[Meeting] = (),
    communications: Iterable[Communication] = (),
) -> Optional[DayActivity]:
    """Return the records dated on ``target_date``.

    Timestamps are compared by their own calendar date.  Returns ``None``
    when ``target_date`` cannot be parsed.
    """

    day = to_calendar_date(target_date)
    if day is None:
        logger.warning("day_activity.invalid_target_date", target_date=str(target_date))
        return None
    return DayActivity(
        day=day,
        sessions=_records_on(Session, sessions, day),
        screeners=_records_on(ArticulationScreener, screeners, day),
        meetings=_records_on(Meeting, meetings, day),
        communications=_records_on(Communication, communications, day),
    )


def timesheet_note_for_day(
    target_date: DateLike,
    *,
    students: StudentSource = None,
    sessions: Iterable[Session] = (),
    screeners: Iterable[ArticulationScreener] = (),
    meetings: Iterable[Meeting] = (),
    communications: Iterable[Communication] = (),
    is_teletherapy: bool = False,
    use_specific_times: bool = False,
    format_time_range: Optional[FormatTimeRange] = None,
) -> str:
    """Select a day's records from full histories and render its note."""

    sessions = parse_records(Session, sessions)
    activity = select_day_activity(
        target_date,
        sessions=sessions,
        screeners=screeners,
        meetings=meetings,
        communications=communications,
    )
    if activity is None:
        return ""
    return generate_timesheet_note(
        activity.sessions,
        students=students,
        screeners=activity.screeners,
        meetings=activity.meetings,
        communications=activity.communications,
        group_sessions=build_group_lookup(sessions),
        is_teletherapy=is_teletherapy,
        use_specific_times=use_specific_times,
        format_time_range=format_time_range,
    )


__all__ = ["DayActivity", "select_day_activity", "timesheet_note_for_day", "build_group_lookup"]
