"""Typed clinical records consumed by the reminder and timesheet engines.

The persistence layer hands over loosely shaped rows (camelCase keys, ISO
strings, ``0``/``1`` flags, JSON encoded lists).  The models below validate and
normalise those rows once, at the boundary, so the rule engines can work with
explicit optional fields instead of guessing at shapes.  ``parse_records``
is the tolerant entry point: invalid rows are logged and dropped rather than
aborting a whole aggregation.
"""

from __future__ import annotations

import json
from datetime import date, datetime, time
from enum import Enum
from typing import Any, Dict, Iterable, List, Literal, Mapping, Optional, Type, TypeVar, Union

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from caseload.time_utils import to_calendar_date


logger = structlog.get_logger(__name__)


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


def _coerce_datetime(value: Any) -> Any:
    value = _blank_to_none(value)
    if isinstance(value, str) and len(value.strip()) == 10:
        # Plain ``YYYY-MM-DD`` values mean local midnight.
        value = to_calendar_date(value) or value
    if isinstance(value, date) and not isinstance(value, datetime):
        return datetime.combine(value, time.min)
    return value


def _coerce_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


def _coerce_date_list(value: Any) -> List[date]:
    if value is None:
        return []
    if isinstance(value, (str, date)):
        value = [value]
    dates: List[date] = []
    for item in value:
        parsed = to_calendar_date(item)
        if parsed is not None:
            dates.append(parsed)
    return dates


def _coerce_text_list(value: Any) -> List[str]:
    """Accept a list or the JSON text the persistence layer stores; unreadable text is empty."""

    if value is None or value == "":
        return []
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except ValueError:
            return []
    if not isinstance(value, (list, tuple)):
        return []
    return [str(item) for item in value]


def _coerce_clock(value: Any) -> Any:
    """Accept ``H:MM`` as well as ``HH:MM[:SS]`` wall-clock strings."""

    value = _blank_to_none(value)
    if not isinstance(value, str):
        return value
    parts = value.strip().split(":")
    if len(parts) < 2:
        return value
    try:
        hour, minute = int(parts[0]), int(parts[1])
    except ValueError:
        return value
    return time(hour=hour, minute=minute)


class _Record(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)


class Student(_Record):
    id: str
    name: str = ""
    grade: str = ""
    school: str = ""
    status: Literal["active", "discharged"] = "active"
    archived: Optional[bool] = None
    date_added: Optional[datetime] = Field(default=None, alias="dateAdded")
    frequency_per_week: Optional[int] = Field(default=None, alias="frequencyPerWeek")
    frequency_type: Optional[Literal["per-week", "per-month"]] = Field(
        default=None, alias="frequencyType"
    )
    annual_review_date: Optional[datetime] = Field(default=None, alias="annualReviewDate")
    iep_date: Optional[datetime] = Field(default=None, alias="iepDate")

    @field_validator("name", "grade", "school", mode="before")
    @classmethod
    def _text(cls, value: Any) -> str:  # noqa: N805
        return _coerce_text(value)

    @field_validator("date_added", "annual_review_date", "iep_date", mode="before")
    @classmethod
    def _dates(cls, value: Any) -> Any:  # noqa: N805
        return _coerce_datetime(value)

    @field_validator("frequency_type", "frequency_per_week", mode="before")
    @classmethod
    def _optional(cls, value: Any) -> Any:  # noqa: N805
        return _blank_to_none(value)

    @property
    def is_active(self) -> bool:
        """Only active, non-archived students take part in reminders."""

        return self.status == "active" and not self.archived


class Goal(_Record):
    id: str
    student_id: str = Field(alias="studentId")
    description: str = ""
    baseline: str = ""
    target: str = ""
    status: Literal["in-progress", "achieved", "modified"] = "in-progress"
    date_created: datetime = Field(alias="dateCreated")
    parent_goal_id: Optional[str] = Field(default=None, alias="parentGoalId")
    domain: Optional[str] = None

    @field_validator("description", "baseline", "target", mode="before")
    @classmethod
    def _text(cls, value: Any) -> str:  # noqa: N805
        return _coerce_text(value)

    @field_validator("date_created", mode="before")
    @classmethod
    def _dates(cls, value: Any) -> Any:  # noqa: N805
        return _coerce_datetime(value)

    @field_validator("parent_goal_id", mode="before")
    @classmethod
    def _parent(cls, value: Any) -> Any:  # noqa: N805
        return _blank_to_none(value)


class Session(_Record):
    id: str
    student_id: str = Field(alias="studentId")
    date: datetime
    end_time: Optional[datetime] = Field(default=None, alias="endTime")
    is_direct_services: bool = Field(default=True, alias="isDirectServices")
    missed_session: bool = Field(default=False, alias="missedSession")
    # Either a list of goal ids or the JSON text stored by the persistence
    # layer; decoded per record by the rule engine.
    goals_targeted: Union[List[str], str, None] = Field(
        default_factory=list, alias="goalsTargeted"
    )
    activities_used: List[str] = Field(default_factory=list, alias="activitiesUsed")
    group_session_id: Optional[str] = Field(default=None, alias="groupSessionId")

    @field_validator("date", "end_time", mode="before")
    @classmethod
    def _dates(cls, value: Any) -> Any:  # noqa: N805
        return _coerce_datetime(value)

    @field_validator("is_direct_services", mode="before")
    @classmethod
    def _direct(cls, value: Any) -> Any:  # noqa: N805
        return True if value is None else value

    @field_validator("missed_session", mode="before")
    @classmethod
    def _missed(cls, value: Any) -> Any:  # noqa: N805
        return False if value is None else value

    @field_validator("activities_used", mode="before")
    @classmethod
    def _activities(cls, value: Any) -> Any:  # noqa: N805
        return _coerce_text_list(value)

    @field_validator("group_session_id", mode="before")
    @classmethod
    def _group(cls, value: Any) -> Any:  # noqa: N805
        return _blank_to_none(value)


class Meeting(_Record):
    id: str
    date: datetime
    end_time: Optional[datetime] = Field(default=None, alias="endTime")
    title: Optional[str] = None
    category: Optional[str] = None
    activity_subtype: Optional[str] = Field(default=None, alias="activitySubtype")
    student_id: Optional[str] = Field(default=None, alias="studentId")

    @field_validator("date", "end_time", mode="before")
    @classmethod
    def _dates(cls, value: Any) -> Any:  # noqa: N805
        return _coerce_datetime(value)

    @field_validator("category", "activity_subtype", "student_id", mode="before")
    @classmethod
    def _optional(cls, value: Any) -> Any:  # noqa: N805
        return _blank_to_none(value)


class ArticulationScreener(_Record):
    id: str
    student_id: str = Field(alias="studentId")
    date: datetime

    @field_validator("date", mode="before")
    @classmethod
    def _dates(cls, value: Any) -> Any:  # noqa: N805
        return _coerce_datetime(value)


class Communication(_Record):
    id: str
    student_id: Optional[str] = Field(default=None, alias="studentId")
    date: Optional[datetime] = None
    related_to: Optional[str] = Field(default=None, alias="relatedTo")
    contact_name: Optional[str] = Field(default=None, alias="contactName")
    subject: Optional[str] = None

    @field_validator("date", mode="before")
    @classmethod
    def _dates(cls, value: Any) -> Any:  # noqa: N805
        return _coerce_datetime(value)

    @field_validator("student_id", "related_to", mode="before")
    @classmethod
    def _optional(cls, value: Any) -> Any:  # noqa: N805
        return _blank_to_none(value)


class Evaluation(_Record):
    id: str
    student_id: str = Field(alias="studentId")
    evaluation_type: str = Field(default="", alias="evaluationType")
    grade: Optional[str] = None
    due_date: Optional[datetime] = Field(default=None, alias="dueDate")
    report_completed: Optional[str] = Field(default=None, alias="reportCompleted")

    @field_validator("evaluation_type", mode="before")
    @classmethod
    def _text(cls, value: Any) -> str:  # noqa: N805
        return _coerce_text(value)

    @field_validator("due_date", mode="before")
    @classmethod
    def _dates(cls, value: Any) -> Any:  # noqa: N805
        return _coerce_datetime(value)

    @property
    def is_report_completed(self) -> bool:
        return (self.report_completed or "").strip().lower() == "yes"


class ProgressReport(_Record):
    id: str
    student_id: str = Field(alias="studentId")
    report_type: Literal["quarterly", "annual"] = Field(default="quarterly", alias="reportType")
    due_date: Optional[datetime] = Field(default=None, alias="dueDate")
    status: str = "scheduled"

    @field_validator("due_date", mode="before")
    @classmethod
    def _dates(cls, value: Any) -> Any:  # noqa: N805
        return _coerce_datetime(value)


class ScheduledSession(_Record):
    id: str
    student_ids: List[str] = Field(default_factory=list, alias="studentIds")
    start_time: time = Field(alias="startTime")
    end_time: Optional[time] = Field(default=None, alias="endTime")
    duration: Optional[int] = None
    recurrence_pattern: Literal["weekly", "daily", "specific-dates", "none"] = Field(
        default="none", alias="recurrencePattern"
    )
    day_of_week: List[int] = Field(default_factory=list, alias="dayOfWeek")
    specific_dates: List[date] = Field(default_factory=list, alias="specificDates")
    start_date: date = Field(alias="startDate")
    end_date: Optional[date] = Field(default=None, alias="endDate")
    active: bool = True
    cancelled_dates: List[date] = Field(default_factory=list, alias="cancelledDates")
    is_direct_services: bool = Field(default=True, alias="isDirectServices")

    @field_validator("start_time", "end_time", mode="before")
    @classmethod
    def _clock(cls, value: Any) -> Any:  # noqa: N805
        return _coerce_clock(value)

    @field_validator("start_date", "end_date", mode="before")
    @classmethod
    def _date(cls, value: Any) -> Any:  # noqa: N805
        if value is None or isinstance(value, date):
            return value.date() if isinstance(value, datetime) else value
        return to_calendar_date(value)

    @field_validator("specific_dates", "cancelled_dates", mode="before")
    @classmethod
    def _date_lists(cls, value: Any) -> List[date]:  # noqa: N805
        return _coerce_date_list(value)

    @field_validator("student_ids", "day_of_week", mode="before")
    @classmethod
    def _lists(cls, value: Any) -> Any:  # noqa: N805
        return [] if value is None else value

    @field_validator("active", "is_direct_services", mode="before")
    @classmethod
    def _flags(cls, value: Any) -> Any:  # noqa: N805
        return True if value is None else value


class ReminderType(str, Enum):
    GOAL_REVIEW = "goal-review"
    RE_EVALUATION = "re-evaluation"
    REPORT_DEADLINE = "report-deadline"
    ANNUAL_REVIEW = "annual-review"
    FREQUENCY_ALERT = "frequency-alert"
    NO_GOALS = "no-goals"
    NO_TARGET = "no-target"


class Priority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {Priority.HIGH: 0, Priority.MEDIUM: 1, Priority.LOW: 2}


class Reminder(_Record):
    """A derived to-do item; created fresh on every aggregation."""

    id: str
    type: ReminderType
    title: str
    description: str
    student_id: str = Field(alias="studentId")
    student_name: str = Field(alias="studentName")
    related_id: Optional[str] = Field(default=None, alias="relatedId")
    due_date: Optional[datetime] = Field(default=None, alias="dueDate")
    priority: Priority
    days_until_due: Optional[int] = Field(default=None, alias="daysUntilDue")
    date_created: datetime = Field(alias="dateCreated")

    def to_payload(self) -> Dict[str, Any]:
        """Return the camelCase JSON payload served to the UI."""

        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


RecordT = TypeVar("RecordT", bound=BaseModel)


def parse_records(model: Type[RecordT], rows: Iterable[Union[RecordT, Mapping[str, Any]]]) -> List[RecordT]:
    """Validate ``rows`` into ``model`` instances, dropping rows that fail.

    Rows that are already instances of ``model`` pass through untouched.
    """

    records: List[RecordT] = []
    for index, row in enumerate(rows or []):
        if isinstance(row, model):
            records.append(row)
            continue
        try:
            records.append(model.model_validate(row))
        except ValidationError as exc:
            row_id = row.get("id") if isinstance(row, Mapping) else None
            logger.warning(
                "records.row_rejected",
                model=model.__name__,
                index=index,
                row_id=row_id,
                error_count=exc.error_count(),
            )
    return records


def active_goals(goals: Iterable[Goal]) -> List[Goal]:
    """Return in-progress goals that do not sit under an achieved parent goal."""

    goals = list(goals)
    status_by_id = {goal.id: goal.status for goal in goals}
    return [
        goal
        for goal in goals
        if goal.status == "in-progress"
        and status_by_id.get(goal.parent_goal_id or "") != "achieved"
    ]


__all__ = [
    "Student",
    "Goal",
    "Session",
    "Meeting",
    "ArticulationScreener",
    "Communication",
    "Evaluation",
    "ProgressReport",
    "ScheduledSession",
    "Reminder",
    "ReminderType",
    "Priority",
    "parse_records",
    "active_goals",
]
