"""Dashboard counters for a caseload."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, List, Optional

import structlog

from caseload.models import Goal, Session, Student, active_goals, parse_records
from caseload.reminders import active_students
from caseload.time_utils import ensure_utc


logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class CaseloadSummary:
    active_students: int
    active_goals: int
    recent_sessions: List[Session] = field(default_factory=list)


def caseload_summary(
    students: Iterable[Student],
    goals: Iterable[Goal],
    sessions: Iterable[Session],
    school: Optional[str] = None,
    *,
    recent_limit: int = 5,
) -> CaseloadSummary:
    """Count active students and goals and list their most recent sessions.

    Goals count only when they are in progress, belong to an active student
    and do not sit under an achieved parent goal.
    """

    students_by_id = active_students(parse_records(Student, students), school)
    goals_in_scope = [
        goal for goal in active_goals(parse_records(Goal, goals)) if goal.student_id in students_by_id
    ]
    recent = sorted(
        (session for session in parse_records(Session, sessions) if session.student_id in students_by_id),
        key=lambda session: ensure_utc(session.date),
        reverse=True,
    )[: max(0, recent_limit)]

    summary = CaseloadSummary(
        active_students=len(students_by_id),
        active_goals=len(goals_in_scope),
        recent_sessions=recent,
    )
    logger.debug(
        "stats.summarised",
        school=school,
        active_students=summary.active_students,
        active_goals=summary.active_goals,
    )
    return summary


__all__ = ["CaseloadSummary", "caseload_summary"]
