import os
import sys
from datetime import datetime, timezone
from typing import Callable, Iterator

import pytest

# Ensure the repository root is on sys.path so tests can import the caseload package
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from caseload.config import Settings, get_settings  # noqa: E402
from caseload.models import Goal, Session, Student  # noqa: E402


FROZEN_NOW = datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def now() -> datetime:
    """Single clock reading shared by a test's detectors."""

    return FROZEN_NOW


@pytest.fixture
def settings() -> Settings:
    return Settings()


@pytest.fixture(autouse=True)
def _reset_settings_cache() -> Iterator[None]:
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def make_student() -> Callable[..., Student]:
    def _make(student_id: str = 's1', **overrides) -> Student:
        data = {
            'id': student_id,
            'name': 'Ada Brown',
            'grade': '3',
            'school': 'Maple Elementary',
            'status': 'active',
            'dateAdded': '2023-09-01T00:00:00Z',
        }
        data.update(overrides)
        return Student.model_validate(data)

    return _make


@pytest.fixture
def make_goal() -> Callable[..., Goal]:
    def _make(goal_id: str = 'g1', student_id: str = 's1', **overrides) -> Goal:
        data = {
            'id': goal_id,
            'studentId': student_id,
            'description': 'Produce /r/ in initial position',
            'baseline': '20%',
            'target': '80% accuracy',
            'status': 'in-progress',
            'dateCreated': '2023-09-05T00:00:00Z',
        }
        data.update(overrides)
        return Goal.model_validate(data)

    return _make


@pytest.fixture
def make_session() -> Callable[..., Session]:
    def _make(session_id: str = 'x1', student_id: str = 's1', **overrides) -> Session:
        data = {
            'id': session_id,
            'studentId': student_id,
            'date': '2024-03-04T08:10:00',
            'endTime': '2024-03-04T08:30:00',
        }
        data.update(overrides)
        return Session.model_validate(data)

    return _make
