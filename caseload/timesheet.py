"""Timesheet note classification and rendering.

A timesheet note summarises one day of clinical activity for billing.  Work
is sorted into *direct* services (therapy, direct assessments, screenings)
and *indirect* services (documentation, correspondence, planning, meetings),
each sub-bucket listing students as ``INITIALS (grade)``.

The module works in two passes:

``classify_day`` / ``classify_schedule``
    Turn realized records (or projected scheduled sessions) into a
    :class:`TimesheetClassification`: one ordered bucket per
    :class:`~caseload.meeting_categories.TimesheetLine`, deduplicated by
    student id.  Group sessions are expanded to every member exactly once.
    Missed direct sessions are never billed; their students move to the
    documentation and lesson planning buckets.

``render_timesheet``
    Turn a classification into the plain-text note shown to the clinician.

Neither pass raises for incomplete data: unknown students render with ``??``
initials and an empty grade.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import (
    Callable,
    Dict,
    Iterable,
    List,
    Mapping,
    Optional,
    Sequence,
    Set,
    Tuple,
    Union,
)

import structlog

from caseload import formatters
from caseload.meeting_categories import (
    DIRECT_LINES,
    INDIRECT_LINES,
    TimesheetLine,
    classify_meeting,
    requires_student,
)
from caseload.models import (
    ArticulationScreener,
    Communication,
    Meeting,
    ScheduledSession,
    Session,
    Student,
    parse_records,
)
from caseload.schedule_expansion import ProjectedOccurrence, expand_for_date
from caseload.time_utils import DateLike, ensure_utc


logger = structlog.get_logger(__name__)

FormatTimeRange = Callable[[datetime, Optional[datetime]], str]
GroupLookup = Union[Mapping[str, Sequence[Session]], Callable[[str], Sequence[Session]]]
StudentSource = Union["StudentDirectory", Mapping[str, Student], Iterable[Student], None]

DIRECT_LABEL = "Direct services:"
INDIRECT_LABEL = "Indirect services including:"
TELETHERAPY_DIRECT_LABEL = "Offsite Direct Services:"
TELETHERAPY_INDIRECT_LABEL = "Offsite Indirect Services Including:"

_NON_EMAIL_TOPICS = ("iep", "evaluation", "eval")


class StudentDirectory:
    """Resolve student ids to display fields, falling back to safe defaults."""

    def __init__(self, students: StudentSource = None) -> None:
        if isinstance(students, StudentDirectory):
            self._students: Dict[str, Student] = dict(students._students)
        elif isinstance(students, Mapping):
            self._students = {student.id: student for student in parse_records(Student, students.values())}
        else:
            self._students = {student.id: student for student in parse_records(Student, students or [])}

    @classmethod
    def coerce(cls, students: StudentSource) -> "StudentDirectory":
        if isinstance(students, StudentDirectory):
            return students
        return cls(students)

    def get(self, student_id: str) -> Optional[Student]:
        return self._students.get(student_id)

    def name(self, student_id: str) -> str:
        student = self.get(student_id)
        return student.name if student and student.name else "Unknown"

    def grade(self, student_id: str) -> str:
        student = self.get(student_id)
        return student.grade if student else ""

    def initials(self, student_id: str) -> str:
        student = self.get(student_id)
        return formatters.student_initials(student.name if student else None)

    def label(self, student_id: str) -> str:
        return f"{self.initials(student_id)} ({self.grade(student_id)})"


@dataclass(frozen=True)
class TimesheetEntry:
    student_id: str
    start: Optional[datetime] = None
    end: Optional[datetime] = None


@dataclass
class TimesheetBucket:
    """Students credited to one timesheet line, first-seen record wins."""

    line: TimesheetLine
    entries: List[TimesheetEntry] = field(default_factory=list)
    unassigned: bool = False
    _seen: Set[str] = field(default_factory=set, repr=False)

    def add(self, student_id: str, start: Optional[datetime] = None, end: Optional[datetime] = None) -> None:
        if student_id in self._seen:
            return
        self._seen.add(student_id)
        self.entries.append(TimesheetEntry(student_id=student_id, start=start, end=end))

    def mark_unassigned(self) -> None:
        """Record activity on this line that was not tied to a student."""

        self.unassigned = True

    @property
    def student_ids(self) -> List[str]:
        return [entry.student_id for entry in self.entries]

    def __bool__(self) -> bool:
        return bool(self.entries) or self.unassigned


@dataclass
class TimesheetClassification:
    buckets: Dict[TimesheetLine, TimesheetBucket] = field(
        default_factory=lambda: {
            line: TimesheetBucket(line) for line in DIRECT_LINES + INDIRECT_LINES
        }
    )

    def bucket(self, line: TimesheetLine) -> TimesheetBucket:
        return self.buckets[line]

    def direct_buckets(self) -> List[TimesheetBucket]:
        return [self.buckets[line] for line in DIRECT_LINES if self.buckets[line]]

    def indirect_buckets(self) -> List[TimesheetBucket]:
        return [self.buckets[line] for line in INDIRECT_LINES if self.buckets[line]]


def build_group_lookup(sessions: Iterable[Session]) -> Dict[str, List[Session]]:
    """Index sessions by ``group_session_id`` in input order."""

    groups: Dict[str, List[Session]] = {}
    for session in sessions:
        if session.group_session_id:
            groups.setdefault(session.group_session_id, []).append(session)
    return groups


def _resolve_group(lookup: GroupLookup, session: Session) -> List[Session]:
    group_id = session.group_session_id or ""
    if callable(lookup):
        members = lookup(group_id)
    else:
        members = lookup.get(group_id, ())
    members = parse_records(Session, members or ())
    # An unresolvable group still credits the session that referenced it.
    return members or [session]


def partition_sessions(
    sessions: Iterable[Session],
    group_sessions: Optional[GroupLookup] = None,
) -> Tuple[List[Session], List[Session], List[Session]]:
    """Split sessions into ``(direct, missed_direct, indirect)``.

    Group sessions are expanded to every member of the group once per kind;
    each kind holds at most one session per student.
    """

    sessions = parse_records(Session, sessions)
    lookup: GroupLookup = group_sessions if group_sessions is not None else build_group_lookup(sessions)
    kinds = ("direct", "missed", "indirect")
    selected: Dict[str, List[Session]] = {kind: [] for kind in kinds}
    seen_students: Dict[str, Set[str]] = {kind: set() for kind in kinds}
    seen_groups: Dict[str, Set[str]] = {kind: set() for kind in kinds}

    for session in sessions:
        if session.is_direct_services:
            kind = "missed" if session.missed_session else "direct"
        else:
            kind = "indirect"

        members = [session]
        if session.group_session_id:
            if session.group_session_id in seen_groups[kind]:
                continue
            seen_groups[kind].add(session.group_session_id)
            members = _resolve_group(lookup, session)

        for member in members:
            if member.student_id in seen_students[kind]:
                continue
            seen_students[kind].add(member.student_id)
            selected[kind].append(member)

    return selected["direct"], selected["missed"], selected["indirect"]


def _add_screeners(classification: TimesheetClassification, screeners: Iterable[ArticulationScreener]) -> None:
    for screener in screeners:
        classification.bucket(TimesheetLine.SPEECH_SCREENING).add(screener.student_id, screener.date)
        classification.bucket(TimesheetLine.SESSION_DOCUMENTATION).add(screener.student_id)
        classification.bucket(TimesheetLine.SPEECH_SCREENING_WRITE_UP).add(screener.student_id)


def _add_meetings(classification: TimesheetClassification, meetings: Iterable[Meeting]) -> None:
    for meeting in meetings:
        for line in classify_meeting(meeting.category, meeting.activity_subtype):
            bucket = classification.bucket(line)
            if meeting.student_id:
                bucket.add(meeting.student_id, meeting.date, meeting.end_time)
            elif not requires_student(line):
                bucket.mark_unassigned()


def _add_communications(classification: TimesheetClassification, communications: Iterable[Communication]) -> None:
    for communication in communications:
        if not communication.student_id:
            continue
        topic = (communication.related_to or "").lower()
        if not any(keyword in topic for keyword in _NON_EMAIL_TOPICS):
            classification.bucket(TimesheetLine.EMAIL_CORRESPONDENCE).add(communication.student_id)
        if "iep" in topic:
            classification.bucket(TimesheetLine.IEP_UPDATES).add(communication.student_id)


def classify_day(
    sessions: Iterable[Session] = (),
    *,
    screeners: Iterable[ArticulationScreener] = (),
    meetings: Iterable[Meeting] = (),
    communications: Iterable[Communication] = (),
    group_sessions: Optional[GroupLookup] = None,
) -> TimesheetClassification:
    """Classify one day of realized records into timesheet buckets."""

    sessions = parse_records(Session, sessions)
    screeners = parse_records(ArticulationScreener, screeners)
    meetings = parse_records(Meeting, meetings)
    communications = parse_records(Communication, communications)
    direct, missed, indirect = partition_sessions(sessions, group_sessions)
    classification = TimesheetClassification()

    therapy = classification.bucket(TimesheetLine.DIRECT_THERAPY)
    documentation = classification.bucket(TimesheetLine.SESSION_DOCUMENTATION)
    lesson_planning = classification.bucket(TimesheetLine.LESSON_PLANNING)

    for session in direct:
        therapy.add(session.student_id, session.date, session.end_time)
        documentation.add(session.student_id)
        lesson_planning.add(session.student_id)
    # Missed sessions are not billed; the time goes to documentation and planning.
    for session in missed:
        documentation.add(session.student_id)
        lesson_planning.add(session.student_id)
    for session in indirect:
        lesson_planning.add(session.student_id)

    _add_screeners(classification, screeners)
    _add_meetings(classification, meetings)
    _add_communications(classification, communications)
    return classification


def classify_schedule(
    occurrences: Iterable[ProjectedOccurrence],
    *,
    screeners: Iterable[ArticulationScreener] = (),
    meetings: Iterable[Meeting] = (),
) -> TimesheetClassification:
    """Classify projected scheduled sessions; correspondence cannot be predicted."""

    screeners = parse_records(ArticulationScreener, screeners)
    meetings = parse_records(Meeting, meetings)
    classification = TimesheetClassification()
    therapy = classification.bucket(TimesheetLine.DIRECT_THERAPY)
    documentation = classification.bucket(TimesheetLine.SESSION_DOCUMENTATION)
    lesson_planning = classification.bucket(TimesheetLine.LESSON_PLANNING)

    for occurrence in occurrences:
        if occurrence.is_direct_services:
            therapy.add(occurrence.student_id, occurrence.start, occurrence.end)
            documentation.add(occurrence.student_id)
        lesson_planning.add(occurrence.student_id)

    _add_screeners(classification, screeners)
    _add_meetings(classification, meetings)
    return classification


def _start_key(entry: TimesheetEntry) -> Tuple[int, float]:
    if entry.start is None:
        return (1, 0.0)
    return (0, ensure_utc(entry.start).timestamp())


def _render_bucket(
    bucket: TimesheetBucket,
    directory: StudentDirectory,
    *,
    timed: bool,
    format_time_range: FormatTimeRange,
) -> str:
    if timed:
        parts = []
        for entry in sorted(bucket.entries, key=_start_key):
            text = directory.label(entry.student_id)
            if entry.start is not None:
                text = f"{text} {format_time_range(entry.start, entry.end)}"
            parts.append(text)
    else:
        parts = sorted(directory.label(entry.student_id) for entry in bucket.entries)
    if bucket.unassigned:
        parts.append(bucket.line.value)
    return ", ".join(parts)


def _render_section(
    label: str,
    buckets: Sequence[TimesheetBucket],
    directory: StudentDirectory,
    *,
    timed: bool,
    format_time_range: FormatTimeRange,
) -> List[str]:
    lines = [label, ""]
    for index, bucket in enumerate(buckets):
        if index:
            lines.append("")
        lines.append(f"{bucket.line.value}:")
        lines.append(
            _render_bucket(bucket, directory, timed=timed, format_time_range=format_time_range)
        )
    lines.append("")
    return lines


def render_timesheet(
    classification: TimesheetClassification,
    students: StudentSource = None,
    *,
    is_teletherapy: bool = False,
    use_specific_times: bool = False,
    format_time_range: Optional[FormatTimeRange] = None,
) -> str:
    """Render ``classification`` as the plain-text timesheet note.

    Teletherapy always shows specific times on direct lines.  The indirect
    heading is emitted even when no indirect work was logged.
    """

    directory = StudentDirectory.coerce(students)
    format_time_range = format_time_range or formatters.format_time_range
    timed = use_specific_times or is_teletherapy

    lines: List[str] = []
    direct = classification.direct_buckets()
    if direct:
        lines.extend(
            _render_section(
                TELETHERAPY_DIRECT_LABEL if is_teletherapy else DIRECT_LABEL,
                direct,
                directory,
                timed=timed,
                format_time_range=format_time_range,
            )
        )
    indirect = classification.indirect_buckets()
    lines.extend(
        _render_section(
            TELETHERAPY_INDIRECT_LABEL if is_teletherapy else INDIRECT_LABEL,
            indirect,
            directory,
            timed=False,
            format_time_range=format_time_range,
        )
    )
    if lines and lines[-1] == "":
        lines.pop()

    logger.debug(
        "timesheet.rendered",
        direct_lines=[bucket.line.value for bucket in direct],
        indirect_lines=[bucket.line.value for bucket in indirect],
        teletherapy=is_teletherapy,
        timed=timed,
    )
    return "\n".join(lines)


def generate_timesheet_note(
    sessions: Iterable[Session] = (),
    *,
    students: StudentSource = None,
    screeners: Iterable[ArticulationScreener] = (),
    meetings: Iterable[Meeting] = (),
    communications: Iterable[Communication] = (),
    group_sessions: Optional[GroupLookup] = None,
    is_teletherapy: bool = False,
    use_specific_times: bool = False,
    format_time_range: Optional[FormatTimeRange] = None,
) -> str:
    """Build the timesheet note for a day's realized activity.

    ``group_sessions`` maps a group session id to every session of that
    group (or is a callable doing the same); it defaults to an index of
    ``sessions``.
    """

    classification = classify_day(
        sessions,
        screeners=screeners,
        meetings=meetings,
        communications=communications,
        group_sessions=group_sessions,
    )
    return render_timesheet(
        classification,
        students,
        is_teletherapy=is_teletherapy,
        use_specific_times=use_specific_times,
        format_time_range=format_time_range,
    )


def generate_prospective_timesheet_note(
    scheduled_sessions: Iterable[ScheduledSession],
    target_date: DateLike,
    *,
    students: StudentSource = None,
    screeners: Iterable[ArticulationScreener] = (),
    meetings: Iterable[Meeting] = (),
    is_teletherapy: bool = False,
    use_specific_times: bool = False,
    format_time_range: Optional[FormatTimeRange] = None,
) -> str:
    """Build the timesheet note a day's schedule is expected to produce."""

    occurrences = expand_for_date(scheduled_sessions, target_date)
    classification = classify_schedule(occurrences, screeners=screeners, meetings=meetings)
    return render_timesheet(
        classification,
        students,
        is_teletherapy=is_teletherapy,
        use_specific_times=use_specific_times,
        format_time_range=format_time_range,
    )


__all__ = [
    "StudentDirectory",
    "TimesheetEntry",
    "TimesheetBucket",
    "TimesheetClassification",
    "build_group_lookup",
    "partition_sessions",
    "classify_day",
    "classify_schedule",
    "render_timesheet",
    "generate_timesheet_note",
    "generate_prospective_timesheet_note",
    "DIRECT_LABEL",
    "INDIRECT_LABEL",
    "TELETHERAPY_DIRECT_LABEL",
    "TELETHERAPY_INDIRECT_LABEL",
]
