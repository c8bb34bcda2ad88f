"""Reminder rules for the caseload dashboard.

Seven independent detectors scan goals, evaluations, progress reports,
students and sessions and emit :class:`~caseload.models.Reminder` objects.
``get_all_reminders`` runs them against a single clock reading and sorts the
merged feed by priority and urgency.  The detectors never raise on a bad
record; malformed rows are logged and skipped so one broken session cannot
hide every other reminder.
"""

from __future__ import annotations

import json
import re
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

import structlog

from caseload.config import Settings, get_settings
from caseload.models import (
    Evaluation,
    Goal,
    Priority,
    ProgressReport,
    Reminder,
    ReminderType,
    Session,
    Student,
    active_goals,
    parse_records,
)
from caseload.time_utils import days_between, days_until, ensure_utc, utc_now


logger = structlog.get_logger(__name__)

_DESCRIPTION_PREVIEW = 60

_PERCENT_RE = re.compile(r"(\d+(?:\.\d+)?)\s*%")
_NUMBER_RE = re.compile(r"(\d+(?:\.\d+)?)")


def _normalise_school(school: Optional[str]) -> Optional[str]:
    if school is None:
        return None
    school = school.strip()
    return school or None


def active_students(students: Iterable[Student], school: Optional[str] = None) -> Dict[str, Student]:
    """Return active, non-archived students keyed by id, optionally for one school."""

    school = _normalise_school(school)
    selected: Dict[str, Student] = {}
    for student in students:
        if not student.is_active:
            continue
        if school is not None and student.school.strip() != school:
            continue
        selected[student.id] = student
    return selected


def parse_goal_ids(raw: object) -> List[str]:
    """Decode the ``goalsTargeted`` value of a session.

    Raises ``ValueError`` for JSON that cannot be decoded into a list.
    """

    if raw is None or raw == "":
        return []
    if isinstance(raw, str):
        decoded = json.loads(raw)
    else:
        decoded = raw
    if not isinstance(decoded, (list, tuple)):
        raise ValueError("goalsTargeted must decode to a list")
    return [str(item) for item in decoded]


def extract_percentage(target: Optional[str]) -> Optional[float]:
    """Return the percentage embedded in a goal target, if any.

    A number followed by ``%`` wins; otherwise the first bare number is used.
    """

    if not target:
        return None
    match = _PERCENT_RE.search(target)
    if match is None:
        match = _NUMBER_RE.search(target)
    if match is None:
        return None
    return float(match.group(1))


def _sessions_by_student(sessions: Iterable[Session]) -> Dict[str, List[Session]]:
    grouped: Dict[str, List[Session]] = {}
    for session in sessions:
        grouped.setdefault(session.student_id, []).append(session)
    for rows in grouped.values():
        rows.sort(key=lambda s: ensure_utc(s.date), reverse=True)
    return grouped


def _last_targeted(goal: Goal, sessions: Sequence[Session]) -> Optional[datetime]:
    for session in sessions:
        try:
            goal_ids = parse_goal_ids(session.goals_targeted)
        except ValueError:
            logger.debug(
                "reminders.session_skipped",
                session_id=session.id,
                reason="goals_targeted_unparsable",
            )
            continue
        if goal.id in goal_ids:
            return session.date
    return None


def _preview(text: str) -> str:
    if len(text) > _DESCRIPTION_PREVIEW:
        return text[:_DESCRIPTION_PREVIEW] + "..."
    return text


def _due_phrase(days: int) -> str:
    if days < 0:
        return f"overdue by {abs(days)} days"
    return f"due in {days} days"


def goal_review_reminders(
    goals: Iterable[Goal],
    students: Mapping[str, Student],
    sessions: Iterable[Session],
    *,
    now: datetime,
    settings: Settings,
) -> List[Reminder]:
    """Flag in-progress goals not targeted in a session for a while."""

    reminders: List[Reminder] = []
    by_student = _sessions_by_student(sessions)
    for goal in active_goals(goals):
        student = students.get(goal.student_id)
        if student is None:
            continue
        last_date = _last_targeted(goal, by_student.get(goal.student_id, []))
        if last_date is None:
            last_date = goal.date_created
        elapsed = days_between(now, last_date)
        if elapsed < settings.goal_review_days:
            continue
        reminders.append(
            Reminder(
                id=f"goal-review-{goal.id}",
                type=ReminderType.GOAL_REVIEW,
                title="Goal Review Needed",
                description=(
                    f"Goal hasn't been targeted in {elapsed} days: "
                    f'"{_preview(goal.description)}"'
                ),
                student_id=goal.student_id,
                student_name=student.name,
                related_id=goal.id,
                priority=Priority.HIGH if elapsed >= settings.goal_review_high_days else Priority.MEDIUM,
                days_until_due=-elapsed,
                date_created=now,
            )
        )
    return reminders


def re_evaluation_reminders(
    evaluations: Iterable[Evaluation],
    students: Mapping[str, Student],
    *,
    now: datetime,
    settings: Settings,
) -> List[Reminder]:
    """Flag evaluations whose due date is close or already passed."""

    reminders: List[Reminder] = []
    for evaluation in evaluations:
        if evaluation.due_date is None or evaluation.is_report_completed:
            continue
        student = students.get(evaluation.student_id)
        if student is None:
            continue
        remaining = days_until(now, evaluation.due_date)
        if remaining > settings.evaluation_alert_days:
            continue
        high = remaining < 0 or remaining <= settings.evaluation_high_days
        reminders.append(
            Reminder(
                id=f"re-evaluation-{evaluation.id}",
                type=ReminderType.RE_EVALUATION,
                title="Re-evaluation Due",
                description=f"{evaluation.evaluation_type} evaluation is {_due_phrase(remaining)}".strip(),
                student_id=evaluation.student_id,
                student_name=student.name,
                related_id=evaluation.id,
                due_date=evaluation.due_date,
                priority=Priority.HIGH if high else Priority.MEDIUM,
                days_until_due=remaining,
                date_created=now,
            )
        )
    return reminders


def report_deadline_reminders(
    reports: Iterable[ProgressReport],
    students: Mapping[str, Student],
    *,
    now: datetime,
    settings: Settings,
) -> List[Reminder]:
    """Flag progress reports that are not completed and due within a week."""

    reminders: List[Reminder] = []
    for report in reports:
        if report.status == "completed" or report.due_date is None:
            continue
        student = students.get(report.student_id)
        if student is None:
            continue
        remaining = days_until(now, report.due_date)
        if remaining > settings.report_alert_days:
            continue
        label = "Quarterly" if report.report_type == "quarterly" else "Annual"
        reminders.append(
            Reminder(
                id=f"report-deadline-{report.id}",
                type=ReminderType.REPORT_DEADLINE,
                title="Progress Report Due",
                description=f"{label} progress report is {_due_phrase(remaining)}",
                student_id=report.student_id,
                student_name=student.name,
                related_id=report.id,
                due_date=report.due_date,
                priority=Priority.HIGH,
                days_until_due=remaining,
                date_created=now,
            )
        )
    return reminders


def annual_review_reminders(
    students: Mapping[str, Student],
    *,
    now: datetime,
    settings: Settings,
) -> List[Reminder]:
    """Flag annual IEP reviews coming up within the alert window."""

    reminders: List[Reminder] = []
    for student in students.values():
        if student.annual_review_date is None:
            continue
        remaining = days_until(now, student.annual_review_date)
        if remaining < 0 or remaining > settings.annual_review_alert_days:
            continue
        when = "today" if remaining == 0 else f"in {remaining} days"
        review_iso = ensure_utc(student.annual_review_date).isoformat()
        reminders.append(
            Reminder(
                id=f"annual-review-{student.id}-{review_iso}",
                type=ReminderType.ANNUAL_REVIEW,
                title="Annual Review Approaching",
                description=(
                    f"Annual IEP review is {when}. "
                    "Prepare meeting materials and review progress."
                ),
                student_id=student.id,
                student_name=student.name,
                due_date=student.annual_review_date,
                priority=(
                    Priority.HIGH
                    if remaining <= settings.annual_review_high_days
                    else Priority.MEDIUM
                ),
                days_until_due=remaining,
                date_created=now,
            )
        )
    return reminders


def frequency_reminders(
    students: Mapping[str, Student],
    sessions: Iterable[Session],
    *,
    now: datetime,
    settings: Settings,
) -> List[Reminder]:
    """Flag students receiving fewer direct sessions than their service frequency."""

    counts: Dict[str, List[Session]] = {}
    for session in sessions:
        if session.is_direct_services and not session.missed_session:
            counts.setdefault(session.student_id, []).append(session)

    now_utc = ensure_utc(now)
    reminders: List[Reminder] = []
    for student in students.values():
        if not student.frequency_per_week or not student.frequency_type:
            continue
        if student.frequency_type == "per-week":
            lookback = settings.weekly_lookback_days
            expected = student.frequency_per_week * settings.weeks_per_lookback
            unit = "week"
        else:
            lookback = settings.monthly_lookback_days
            expected = student.frequency_per_week
            unit = "month"
        window_start = now_utc - timedelta(days=lookback)
        actual = sum(
            1
            for session in counts.get(student.id, [])
            if window_start <= ensure_utc(session.date) <= now_utc
        )
        behind = expected - actual
        if behind < 1:
            continue
        if behind >= 3:
            priority = Priority.HIGH
        elif behind >= 2:
            priority = Priority.MEDIUM
        else:
            priority = Priority.LOW
        reminders.append(
            Reminder(
                id=f"frequency-alert-{student.id}",
                type=ReminderType.FREQUENCY_ALERT,
                title="Sessions Behind Schedule",
                description=(
                    f"{actual} of {expected} expected sessions in the last {lookback} days "
                    f"({student.frequency_per_week}x per {unit}); {behind} behind"
                ),
                student_id=student.id,
                student_name=student.name,
                priority=priority,
                days_until_due=-behind,
                date_created=now,
            )
        )
    return reminders


def _is_older_than(value: Optional[datetime], now: datetime, days: int) -> bool:
    if value is None:
        return False
    if ensure_utc(value) > ensure_utc(now):
        return False
    return days_between(value, now) >= days


def no_goals_reminders(
    goals: Iterable[Goal],
    students: Mapping[str, Student],
    *,
    now: datetime,
    settings: Settings,
) -> List[Reminder]:
    """Flag active students that have no goals at all."""

    with_goals = {goal.student_id for goal in goals}
    reminders: List[Reminder] = []
    for student in students.values():
        if student.id in with_goals:
            continue
        established = _is_older_than(student.date_added, now, settings.new_record_grace_days)
        reminders.append(
            Reminder(
                id=f"no-goals-{student.id}",
                type=ReminderType.NO_GOALS,
                title="No Goals Set",
                description=f"{student.name or 'Student'} has no goals. Add goals to start tracking progress.",
                student_id=student.id,
                student_name=student.name,
                priority=Priority.HIGH if established else Priority.MEDIUM,
                date_created=now,
            )
        )
    return reminders


def no_target_reminders(
    goals: Iterable[Goal],
    students: Mapping[str, Student],
    *,
    now: datetime,
    settings: Settings,
) -> List[Reminder]:
    """Flag in-progress goals whose target carries no measurable percentage."""

    reminders: List[Reminder] = []
    for goal in active_goals(goals):
        student = students.get(goal.student_id)
        if student is None:
            continue
        if extract_percentage(goal.target) is not None:
            continue
        established = _is_older_than(goal.date_created, now, settings.new_record_grace_days)
        reminders.append(
            Reminder(
                id=f"no-target-{goal.id}",
                type=ReminderType.NO_TARGET,
                title="Goal Missing Target",
                description=f'Goal has no target percentage: "{_preview(goal.description)}"',
                student_id=goal.student_id,
                student_name=student.name,
                related_id=goal.id,
                priority=Priority.HIGH if established else Priority.MEDIUM,
                date_created=now,
            )
        )
    return reminders


def _sort_key(reminder: Reminder) -> tuple:
    days = reminder.days_until_due
    return (reminder.priority.rank, float("inf") if days is None else days)


def sort_reminders(reminders: Iterable[Reminder]) -> List[Reminder]:
    """Order by priority, then soonest/most overdue first; ties keep input order."""

    return sorted(reminders, key=_sort_key)


def get_all_reminders(
    goals: Iterable[Goal],
    evaluations: Iterable[Evaluation],
    progress_reports: Iterable[ProgressReport],
    students: Iterable[Student],
    sessions: Iterable[Session],
    school: Optional[str] = None,
    *,
    now: Optional[datetime] = None,
    settings: Optional[Settings] = None,
) -> List[Reminder]:
    """Run every reminder rule for one instant and return the sorted feed."""

    now = ensure_utc(now or utc_now())
    settings = settings or get_settings()
    goals = parse_records(Goal, goals)
    sessions = parse_records(Session, sessions)
    evaluations = parse_records(Evaluation, evaluations)
    progress_reports = parse_records(ProgressReport, progress_reports)
    selected = active_students(parse_records(Student, students), school)

    reminders: List[Reminder] = []
    reminders.extend(goal_review_reminders(goals, selected, sessions, now=now, settings=settings))
    reminders.extend(re_evaluation_reminders(evaluations, selected, now=now, settings=settings))
    reminders.extend(report_deadline_reminders(progress_reports, selected, now=now, settings=settings))
    reminders.extend(annual_review_reminders(selected, now=now, settings=settings))
    reminders.extend(frequency_reminders(selected, sessions, now=now, settings=settings))
    reminders.extend(no_goals_reminders(goals, selected, now=now, settings=settings))
    reminders.extend(no_target_reminders(goals, selected, now=now, settings=settings))

    ordered = sort_reminders(reminders)
    logger.info(
        "reminders.aggregated",
        count=len(ordered),
        students=len(selected),
        school=_normalise_school(school),
    )
    return ordered


__all__ = [
    "active_students",
    "parse_goal_ids",
    "extract_percentage",
    "goal_review_reminders",
    "re_evaluation_reminders",
    "report_deadline_reminders",
    "annual_review_reminders",
    "frequency_reminders",
    "no_goals_reminders",
    "no_target_reminders",
    "sort_reminders",
    "get_all_reminders",
]
