from datetime import timedelta

import pytest

from caseload.config import Settings
from caseload.models import Evaluation, Priority, ProgressReport, ReminderType
from caseload.reminders import (
    active_students,
    annual_review_reminders,
    extract_percentage,
    frequency_reminders,
    get_all_reminders,
    goal_review_reminders,
    no_goals_reminders,
    no_target_reminders,
    parse_goal_ids,
    re_evaluation_reminders,
    report_deadline_reminders,
    sort_reminders,
)


def _iso(dt):
    return dt.isoformat()


def test_active_students_filters_status_archive_and_school(make_student):
    students = [
        make_student('s1'),
        make_student('s2', status='discharged'),
        make_student('s3', archived=True),
        make_student('s4', school='  Oak Middle '),
    ]

    assert list(active_students(students)) == ['s1', 's4']
    assert list(active_students(students, ' Oak Middle')) == ['s4']
    assert list(active_students(students, '   ')) == ['s1', 's4']


def test_parse_goal_ids_accepts_json_and_lists():
    assert parse_goal_ids('["g1", "g2"]') == ['g1', 'g2']
    assert parse_goal_ids(['g3']) == ['g3']
    assert parse_goal_ids(None) == []
    with pytest.raises(ValueError):
        parse_goal_ids('{not json')
    with pytest.raises(ValueError):
        parse_goal_ids('{"id": "g1"}')


@pytest.mark.parametrize(
    'target,expected',
    [
        ('80% accuracy', 80.0),
        ('3 of 4 trials at 75 %', 75.0),
        ('90 accuracy over 3 sessions', 90.0),
        ('with minimal cues', None),
        ('', None),
    ],
)
def test_extract_percentage(target, expected):
    assert extract_percentage(target) == expected


def test_goal_review_uses_most_recent_targeting_session(now, settings, make_student, make_goal, make_session):
    students = active_students([make_student()])
    goal = make_goal(dateCreated=_iso(now - timedelta(days=200)))
    sessions = [
        make_session('x1', date=_iso(now - timedelta(days=90)), goalsTargeted='["g1"]'),
        make_session('x2', date=_iso(now - timedelta(days=45)), goalsTargeted=['g1']),
        make_session('x3', date=_iso(now - timedelta(days=2)), goalsTargeted=['other']),
    ]

    reminders = goal_review_reminders([goal], students, sessions, now=now, settings=settings)

    assert len(reminders) == 1
    reminder = reminders[0]
    assert reminder.type is ReminderType.GOAL_REVIEW
    assert reminder.days_until_due == -45
    assert reminder.priority is Priority.MEDIUM
    assert reminder.related_id == 'g1'
    assert reminder.id == 'goal-review-g1'


def test_goal_review_falls_back_to_creation_date(now, settings, make_student, make_goal):
    students = active_students([make_student()])
    stale = make_goal('g1', dateCreated=_iso(now - timedelta(days=60)))
    fresh = make_goal('g2', dateCreated=_iso(now - timedelta(days=29)))
    achieved = make_goal('g3', status='achieved', dateCreated=_iso(now - timedelta(days=100)))

    reminders = goal_review_reminders([stale, fresh, achieved], students, [], now=now, settings=settings)

    assert [r.related_id for r in reminders] == ['g1']
    assert reminders[0].priority is Priority.HIGH
    assert reminders[0].days_until_due == -60


def test_goal_review_skips_unparsable_sessions(now, settings, make_student, make_goal, make_session):
    students = active_students([make_student()])
    goal = make_goal(dateCreated=_iso(now - timedelta(days=40)))
    sessions = [
        make_session('bad', date=_iso(now - timedelta(days=1)), goalsTargeted='[g1'),
        make_session('ok', date=_iso(now - timedelta(days=31)), goalsTargeted='["g1"]'),
    ]

    reminders = goal_review_reminders([goal], students, sessions, now=now, settings=settings)

    assert reminders[0].days_until_due == -31


def _evaluation(now, days, **overrides):
    data = {
        'id': f'e{days}',
        'studentId': 's1',
        'evaluationType': 'Triennial',
        'dueDate': _iso(now + timedelta(days=days)),
    }
    data.update(overrides)
    return Evaluation.model_validate(data)


def test_re_evaluation_window_boundary(now, settings, make_student):
    students = active_students([make_student()])
    evaluations = [_evaluation(now, 14), _evaluation(now, 15)]

    reminders = re_evaluation_reminders(evaluations, students, now=now, settings=settings)

    assert [r.related_id for r in reminders] == ['e14']
    assert reminders[0].days_until_due == 14
    assert reminders[0].priority is Priority.MEDIUM


def test_re_evaluation_overdue_and_completed(now, settings, make_student):
    students = active_students([make_student()])
    evaluations = [
        _evaluation(now, -3),
        _evaluation(now, 7),
        _evaluation(now, 2, id='done', reportCompleted='Yes'),
    ]

    reminders = re_evaluation_reminders(evaluations, students, now=now, settings=settings)

    assert [(r.related_id, r.days_until_due, r.priority) for r in reminders] == [
        ('e-3', -3, Priority.HIGH),
        ('e7', 7, Priority.HIGH),
    ]
    assert 'overdue by 3 days' in reminders[0].description


def test_report_deadline_is_always_high(now, settings, make_student):
    students = active_students([make_student()])
    reports = [
        ProgressReport.model_validate(
            {'id': 'r1', 'studentId': 's1', 'reportType': 'annual', 'dueDate': _iso(now + timedelta(days=7))}
        ),
        ProgressReport.model_validate(
            {'id': 'r2', 'studentId': 's1', 'dueDate': _iso(now + timedelta(days=8))}
        ),
        ProgressReport.model_validate(
            {'id': 'r3', 'studentId': 's1', 'status': 'completed', 'dueDate': _iso(now)}
        ),
    ]

    reminders = report_deadline_reminders(reports, students, now=now, settings=settings)

    assert [r.related_id for r in reminders] == ['r1']
    assert reminders[0].priority is Priority.HIGH
    assert reminders[0].description.startswith('Annual progress report')


def test_annual_review_window(now, settings, make_student):
    students = active_students(
        [
            make_student('soon', annualReviewDate=_iso(now + timedelta(days=10))),
            make_student('later', annualReviewDate=_iso(now + timedelta(days=20))),
            make_student('past', annualReviewDate=_iso(now - timedelta(days=1))),
            make_student('far', annualReviewDate=_iso(now + timedelta(days=31))),
        ]
    )

    reminders = annual_review_reminders(students, now=now, settings=settings)

    assert [(r.student_id, r.priority) for r in reminders] == [
        ('soon', Priority.HIGH),
        ('later', Priority.MEDIUM),
    ]


def _weekly_sessions(make_session, now, count):
    return [make_session(f'x{i}', date=_iso(now - timedelta(days=i * 2))) for i in range(count)]


def test_frequency_on_track_produces_no_alert(now, settings, make_student, make_session):
    students = active_students([make_student(frequencyPerWeek=3, frequencyType='per-week')])

    reminders = frequency_reminders(students, _weekly_sessions(make_session, now, 12), now=now, settings=settings)

    assert reminders == []


def test_frequency_one_behind_is_low_priority(now, settings, make_student, make_session):
    students = active_students([make_student(frequencyPerWeek=3, frequencyType='per-week')])

    reminders = frequency_reminders(students, _weekly_sessions(make_session, now, 11), now=now, settings=settings)

    assert len(reminders) == 1
    assert reminders[0].days_until_due == -1
    assert reminders[0].priority is Priority.LOW


def test_frequency_ignores_missed_indirect_and_old_sessions(now, settings, make_student, make_session):
    students = active_students([make_student(frequencyPerWeek=2, frequencyType='per-month')])
    sessions = [
        make_session('a', date=_iso(now - timedelta(days=1)), missedSession=True),
        make_session('b', date=_iso(now - timedelta(days=2)), isDirectServices=False),
        make_session('c', date=_iso(now - timedelta(days=31))),
    ]

    reminders = frequency_reminders(students, sessions, now=now, settings=settings)

    assert reminders[0].days_until_due == -2
    assert reminders[0].priority is Priority.MEDIUM


def test_frequency_requires_both_fields(now, settings, make_student):
    students = active_students([make_student(frequencyPerWeek=3)])

    assert frequency_reminders(students, [], now=now, settings=settings) == []


def test_no_goals_priority_depends_on_age(now, settings, make_student, make_goal):
    students = active_students(
        [
            make_student('old', dateAdded=_iso(now - timedelta(days=7))),
            make_student('new', dateAdded=_iso(now - timedelta(days=2))),
            make_student('unknown', dateAdded=None),
            make_student('covered'),
        ]
    )
    goals = [make_goal(student_id='covered', status='achieved')]

    reminders = no_goals_reminders(goals, students, now=now, settings=settings)

    assert [(r.student_id, r.priority) for r in reminders] == [
        ('old', Priority.HIGH),
        ('new', Priority.MEDIUM),
        ('unknown', Priority.MEDIUM),
    ]


def test_no_target_reminders(now, settings, make_student, make_goal):
    students = active_students([make_student()])
    goals = [
        make_goal('g1', target='with minimal cues', dateCreated=_iso(now - timedelta(days=10))),
        make_goal('g2', target='', dateCreated=_iso(now - timedelta(days=1))),
        make_goal('g3', target='80%'),
    ]

    reminders = no_target_reminders(goals, students, now=now, settings=settings)

    assert [(r.related_id, r.priority) for r in reminders] == [
        ('g1', Priority.HIGH),
        ('g2', Priority.MEDIUM),
    ]


def test_sort_reminders_orders_by_priority_then_days(now, settings, make_student, make_goal):
    students = [
        make_student('a', frequencyPerWeek=1, frequencyType='per-week'),
        make_student('b', annualReviewDate=_iso(now + timedelta(days=20))),
    ]
    goals = [make_goal('g1', student_id='a', dateCreated=_iso(now - timedelta(days=70)))]
    evaluations = [_evaluation(now, 3, studentId='b')]

    reminders = get_all_reminders(goals, evaluations, [], students, [], now=now, settings=settings)

    for first, second in zip(reminders, reminders[1:]):
        first_days = first.days_until_due if first.days_until_due is not None else float('inf')
        second_days = second.days_until_due if second.days_until_due is not None else float('inf')
        assert (first.priority.rank, first_days) <= (second.priority.rank, second_days)
    assert [r.type for r in reminders] == [
        ReminderType.GOAL_REVIEW,
        ReminderType.FREQUENCY_ALERT,
        ReminderType.RE_EVALUATION,
        ReminderType.NO_GOALS,
        ReminderType.ANNUAL_REVIEW,
    ]


def test_sort_is_stable_for_ties(now, settings, make_student):
    students = active_students([make_student('a'), make_student('b')])
    reminders = no_goals_reminders([], students, now=now, settings=settings)

    assert [r.student_id for r in sort_reminders(reminders)] == ['a', 'b']


def test_get_all_reminders_accepts_raw_rows_and_drops_invalid(now, settings):
    students = [
        {'id': 's1', 'name': 'Ada Brown', 'status': 'active', 'dateAdded': _iso(now - timedelta(days=30))},
        {'name': 'missing id'},
    ]
    sessions = [{'id': 'x1', 'studentId': 's1', 'date': 'not-a-date'}]

    reminders = get_all_reminders([], [], [], students, sessions, now=now, settings=settings)

    assert [(r.type, r.student_id) for r in reminders] == [(ReminderType.NO_GOALS, 's1')]
    payload = reminders[0].to_payload()
    assert payload['studentName'] == 'Ada Brown'
    assert payload['type'] == 'no-goals'
    assert 'daysUntilDue' not in payload


def test_get_all_reminders_limits_to_school(now, settings, make_student):
    students = [make_student('a'), make_student('b', school='Oak Middle')]

    reminders = get_all_reminders([], [], [], students, [], 'Oak Middle', now=now, settings=settings)

    assert [r.student_id for r in reminders] == ['b']


def test_settings_change_thresholds(now, make_student, make_goal):
    students = active_students([make_student()])
    goal = make_goal(dateCreated=_iso(now - timedelta(days=10)))
    tight = Settings(goal_review_days=7, goal_review_high_days=10)

    reminders = goal_review_reminders([goal], students, [], now=now, settings=tight)

    assert reminders[0].priority is Priority.HIGH


def test_get_all_reminders_keeps_raw_sessions_with_json_activities(now, settings):
    students = [
        {
            'id': 's1',
            'name': 'Ada Brown',
            'status': 'active',
            'frequencyPerWeek': 1,
            'frequencyType': 'per-month',
        }
    ]
    goals = [
        {
            'id': 'g1',
            'studentId': 's1',
            'target': '80%',
            'dateCreated': _iso(now - timedelta(days=200)),
        }
    ]
    sessions = [
        {
            'id': 'x1',
            'studentId': 's1',
            'date': _iso(now - timedelta(days=2)),
            'goalsTargeted': '["g1"]',
            'activitiesUsed': '["cards"]',
        }
    ]

    reminders = get_all_reminders(goals, [], [], students, sessions, now=now, settings=settings)

    assert reminders == []


def test_goals_under_achieved_parent_are_not_reviewed(now, settings, make_student, make_goal):
    students = active_students([make_student()])
    old = _iso(now - timedelta(days=90))
    goals = [
        make_goal('parent', status='achieved', dateCreated=old),
        make_goal('child', parentGoalId='parent', target='with cues', dateCreated=old),
    ]

    assert goal_review_reminders(goals, students, [], now=now, settings=settings) == []
    assert no_target_reminders(goals, students, now=now, settings=settings) == []
