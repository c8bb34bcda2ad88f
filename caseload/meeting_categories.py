"""Meeting category taxonomy and the timesheet lines each category feeds.

Meetings are stored with a free-text ``category`` plus an optional
``activitySubtype``.  The timesheet only cares about a handful of them, and
the mapping from (category, subtype) to a timesheet line is kept here as one
decision table so it can be tested without rendering a note.

* Direct contact: ``Initial Assessment`` and ``3 Year Reassessment``.  The
  legacy ``Assessment`` category counts as a direct 3 year reassessment only
  when its subtype is ``assessment``; otherwise it is 3 year reassessment
  planning.
* Planning categories (IEP, Assessment, 3 year reassessment) split into a
  meeting line and an updates line.
* ``IEP`` additionally has an assessment line.
* ``Assessment documentation`` has no subtype.
* ``Speech screening`` is both a direct contact and an indirect write-up.
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, Mapping, Optional, Tuple


class MeetingCategory(str, Enum):
    INITIAL_ASSESSMENT = "Initial Assessment"
    THREE_YEAR_REASSESSMENT = "3 Year Reassessment"
    LEGACY_ASSESSMENT = "Assessment"
    IEP_PLANNING = "IEP planning"
    ASSESSMENT_PLANNING = "Assessment planning"
    THREE_YEAR_PLANNING = "3 year reassessment planning"
    IEP = "IEP"
    STAFF_MEETING = "Staff Meeting"
    TEAM_MEETING = "Team Meeting"
    PARENT_MEETING = "Parent Meeting"
    PROFESSIONAL_DEVELOPMENT = "Professional Development"
    SPEECH_SCREENING = "Speech screening"
    ASSESSMENT_DOCUMENTATION = "Assessment documentation"
    OTHER = "Other"


class ActivitySubtype(str, Enum):
    MEETING = "meeting"
    UPDATES = "updates"
    ASSESSMENT = "assessment"


class TimesheetLine(str, Enum):
    """Sub-bucket headings of a timesheet note, valued by their label."""

    DIRECT_THERAPY = "Direct Therapy"
    INITIAL_ASSESSMENT = "Initial Assessment"
    THREE_YEAR_REASSESSMENT = "3 Year Reassessment"
    SPEECH_SCREENING = "Speech screening"
    SESSION_DOCUMENTATION = "Session Documentation"
    EMAIL_CORRESPONDENCE = "Email Correspondence"
    LESSON_PLANNING = "Lesson Planning"
    SPEECH_SCREENING_WRITE_UP = "Speech Screening Write-Up and Staff Collaboration"
    IEP_MEETING = "IEP meeting"
    IEP_UPDATES = "IEP updates"
    IEP_ASSESSMENT = "IEP assessment"
    IEP_PLANNING_MEETING = "IEP planning meeting"
    IEP_PLANNING_UPDATES = "IEP planning updates"
    ASSESSMENT_PLANNING_MEETING = "Assessment planning meeting"
    ASSESSMENT_PLANNING_UPDATES = "Assessment planning updates"
    THREE_YEAR_PLANNING_MEETING = "3 year reassessment planning meeting"
    THREE_YEAR_PLANNING_UPDATES = "3 year reassessment planning updates"
    ASSESSMENT_DOCUMENTATION = "Assessment documentation"


DIRECT_LINES: Tuple[TimesheetLine, ...] = (
    TimesheetLine.DIRECT_THERAPY,
    TimesheetLine.INITIAL_ASSESSMENT,
    TimesheetLine.THREE_YEAR_REASSESSMENT,
    TimesheetLine.SPEECH_SCREENING,
)

# Lines that come from meeting records and may be logged without a student.
MEETING_LINES: Tuple[TimesheetLine, ...] = (
    TimesheetLine.IEP_MEETING,
    TimesheetLine.IEP_UPDATES,
    TimesheetLine.IEP_ASSESSMENT,
    TimesheetLine.IEP_PLANNING_MEETING,
    TimesheetLine.IEP_PLANNING_UPDATES,
    TimesheetLine.ASSESSMENT_PLANNING_MEETING,
    TimesheetLine.ASSESSMENT_PLANNING_UPDATES,
    TimesheetLine.THREE_YEAR_PLANNING_MEETING,
    TimesheetLine.THREE_YEAR_PLANNING_UPDATES,
    TimesheetLine.ASSESSMENT_DOCUMENTATION,
)

INDIRECT_LINES: Tuple[TimesheetLine, ...] = (
    TimesheetLine.SESSION_DOCUMENTATION,
    TimesheetLine.EMAIL_CORRESPONDENCE,
    TimesheetLine.LESSON_PLANNING,
    TimesheetLine.SPEECH_SCREENING_WRITE_UP,
) + MEETING_LINES


MEETING_CATEGORY_GROUPS: Dict[str, Tuple[MeetingCategory, ...]] = {
    "Direct Contact": (
        MeetingCategory.INITIAL_ASSESSMENT,
        MeetingCategory.THREE_YEAR_REASSESSMENT,
        MeetingCategory.LEGACY_ASSESSMENT,
    ),
    "Planning": (
        MeetingCategory.IEP_PLANNING,
        MeetingCategory.ASSESSMENT_PLANNING,
        MeetingCategory.THREE_YEAR_PLANNING,
    ),
    "Meetings": (
        MeetingCategory.IEP,
        MeetingCategory.STAFF_MEETING,
        MeetingCategory.TEAM_MEETING,
        MeetingCategory.PARENT_MEETING,
        MeetingCategory.PROFESSIONAL_DEVELOPMENT,
        MeetingCategory.SPEECH_SCREENING,
        MeetingCategory.ASSESSMENT_DOCUMENTATION,
    ),
    "Other": (MeetingCategory.OTHER,),
}

DIRECT_CONTACT_CATEGORIES = (
    MeetingCategory.INITIAL_ASSESSMENT,
    MeetingCategory.THREE_YEAR_REASSESSMENT,
)

CATEGORIES_WITH_ACTIVITY_SUBTYPE = (
    MeetingCategory.IEP,
    MeetingCategory.IEP_PLANNING,
    MeetingCategory.ASSESSMENT_PLANNING,
    MeetingCategory.THREE_YEAR_PLANNING,
    MeetingCategory.LEGACY_ASSESSMENT,
)


_FIXED_LINES: Mapping[MeetingCategory, Tuple[TimesheetLine, ...]] = {
    MeetingCategory.INITIAL_ASSESSMENT: (TimesheetLine.INITIAL_ASSESSMENT,),
    MeetingCategory.THREE_YEAR_REASSESSMENT: (TimesheetLine.THREE_YEAR_REASSESSMENT,),
    MeetingCategory.SPEECH_SCREENING: (
        TimesheetLine.SPEECH_SCREENING,
        TimesheetLine.SPEECH_SCREENING_WRITE_UP,
    ),
    MeetingCategory.ASSESSMENT_DOCUMENTATION: (TimesheetLine.ASSESSMENT_DOCUMENTATION,),
}

# Subtype tables; a missing or unrecognised subtype falls back to ``meeting``.
_SUBTYPE_LINES: Mapping[MeetingCategory, Mapping[ActivitySubtype, TimesheetLine]] = {
    MeetingCategory.IEP: {
        ActivitySubtype.MEETING: TimesheetLine.IEP_MEETING,
        ActivitySubtype.UPDATES: TimesheetLine.IEP_UPDATES,
        ActivitySubtype.ASSESSMENT: TimesheetLine.IEP_ASSESSMENT,
    },
    MeetingCategory.IEP_PLANNING: {
        ActivitySubtype.MEETING: TimesheetLine.IEP_PLANNING_MEETING,
        ActivitySubtype.UPDATES: TimesheetLine.IEP_PLANNING_UPDATES,
    },
    MeetingCategory.ASSESSMENT_PLANNING: {
        ActivitySubtype.MEETING: TimesheetLine.ASSESSMENT_PLANNING_MEETING,
        ActivitySubtype.UPDATES: TimesheetLine.ASSESSMENT_PLANNING_UPDATES,
    },
    MeetingCategory.THREE_YEAR_PLANNING: {
        ActivitySubtype.MEETING: TimesheetLine.THREE_YEAR_PLANNING_MEETING,
        ActivitySubtype.UPDATES: TimesheetLine.THREE_YEAR_PLANNING_UPDATES,
    },
    MeetingCategory.LEGACY_ASSESSMENT: {
        ActivitySubtype.MEETING: TimesheetLine.THREE_YEAR_PLANNING_MEETING,
        ActivitySubtype.UPDATES: TimesheetLine.THREE_YEAR_PLANNING_UPDATES,
        ActivitySubtype.ASSESSMENT: TimesheetLine.THREE_YEAR_REASSESSMENT,
    },
}


def _as_category(category: Optional[str]) -> Optional[MeetingCategory]:
    if not category:
        return None
    try:
        return MeetingCategory(category)
    except ValueError:
        return None


def _as_subtype(subtype: Optional[str]) -> ActivitySubtype:
    try:
        return ActivitySubtype(subtype or ActivitySubtype.MEETING.value)
    except ValueError:
        return ActivitySubtype.MEETING


def classify_meeting(category: Optional[str], activity_subtype: Optional[str] = None) -> Tuple[TimesheetLine, ...]:
    """Return the timesheet lines a meeting with this category/subtype feeds.

    Unknown and untracked categories (staff meetings, professional
    development ...) return an empty tuple.
    """

    resolved = _as_category(category)
    if resolved is None:
        return ()
    if resolved in _FIXED_LINES:
        return _FIXED_LINES[resolved]
    table = _SUBTYPE_LINES.get(resolved)
    if table is None:
        return ()
    subtype = _as_subtype(activity_subtype)
    line = table.get(subtype, table[ActivitySubtype.MEETING])
    return (line,)


def requires_student(line: TimesheetLine) -> bool:
    """Return ``True`` when a meeting on ``line`` only counts with a student."""

    return line not in MEETING_LINES


def get_category_group(category: Optional[str]) -> Optional[str]:
    resolved = _as_category(category)
    for group, members in MEETING_CATEGORY_GROUPS.items():
        if resolved in members:
            return group
    return None


def is_direct_contact_category(category: Optional[str]) -> bool:
    return _as_category(category) in DIRECT_CONTACT_CATEGORIES


def is_legacy_direct_assessment(category: Optional[str], activity_subtype: Optional[str]) -> bool:
    """Old ``Assessment`` meetings with an ``assessment`` subtype are direct contact."""

    return (
        category == MeetingCategory.LEGACY_ASSESSMENT.value
        and activity_subtype == ActivitySubtype.ASSESSMENT.value
    )


def is_category_with_activity_subtype(category: Optional[str]) -> bool:
    return _as_category(category) in CATEGORIES_WITH_ACTIVITY_SUBTYPE


__all__ = [
    "MeetingCategory",
    "ActivitySubtype",
    "TimesheetLine",
    "DIRECT_LINES",
    "INDIRECT_LINES",
    "MEETING_LINES",
    "MEETING_CATEGORY_GROUPS",
    "DIRECT_CONTACT_CATEGORIES",
    "CATEGORIES_WITH_ACTIVITY_SUBTYPE",
    "classify_meeting",
    "requires_student",
    "get_category_group",
    "is_direct_contact_category",
    "is_legacy_direct_assessment",
    "is_category_with_activity_subtype",
]
