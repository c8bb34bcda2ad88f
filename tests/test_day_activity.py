from datetime import date

from caseload.day_activity import select_day_activity, timesheet_note_for_day
from caseload.models import ArticulationScreener, Communication, Meeting


def test_select_day_activity_filters_by_calendar_date(make_session):
    sessions = [
        make_session('x1', date='2024-03-04T08:10:00'),
        make_session('x2', date='2024-03-05T08:10:00'),
    ]
    meetings = [Meeting.model_validate({'id': 'm1', 'date': '2024-03-04T14:00:00', 'category': 'IEP'})]
    screeners = [ArticulationScreener.model_validate({'id': 'a1', 'studentId': 's1', 'date': '2024-03-03'})]
    communications = [
        Communication.model_validate({'id': 'c1', 'studentId': 's1', 'date': '2024-03-04T16:00:00'}),
        Communication.model_validate({'id': 'c2', 'studentId': 's1'}),
    ]

    activity = select_day_activity(
        '2024-03-04',
        sessions=sessions,
        screeners=screeners,
        meetings=meetings,
        communications=communications,
    )

    assert activity.day == date(2024, 3, 4)
    assert [s.id for s in activity.sessions] == ['x1']
    assert [m.id for m in activity.meetings] == ['m1']
    assert activity.screeners == []
    assert [c.id for c in activity.communications] == ['c1']
    assert not activity.is_empty()


def test_select_day_activity_rejects_bad_dates():
    assert select_day_activity('tomorrow-ish') is None
    assert select_day_activity(date(2024, 3, 4)).is_empty()


def test_timesheet_note_for_day_expands_groups_from_history(make_student, make_session):
    students = [make_student('s1', name='Ada Brown', grade='3'), make_student('s2', name='Cole Diaz', grade='K')]
    sessions = [
        make_session('x1', 's1', groupSessionId='grp'),
        make_session('x2', 's2', groupSessionId='grp'),
        make_session('x3', 's1', date='2024-03-05T08:10:00'),
    ]

    note = timesheet_note_for_day('2024-03-04', students=students, sessions=sessions)

    assert note.startswith('Direct services:\n\nDirect Therapy:\nAB (3), CD (K)\n')
    assert timesheet_note_for_day('garbage', students=students, sessions=sessions) == ''


def test_select_day_activity_accepts_raw_rows():
    activity = select_day_activity(
        '2024-03-04',
        sessions=[{'id': 'x1', 'studentId': 's1', 'date': '2024-03-04T08:00:00'}, {'id': 'bad'}],
        meetings=[{'id': 'm1', 'date': '2024-03-05T08:00:00'}],
    )

    assert [s.id for s in activity.sessions] == ['x1']
    assert activity.meetings == []
