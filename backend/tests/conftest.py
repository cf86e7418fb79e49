"""
Pytest configuration and fixtures for backend tests
"""

import pytest
from datetime import datetime, timedelta, timezone
import uuid
from starlette.testclient import TestClient

from quizguard.main import app
from quizguard.core.security import create_user_token
from quizguard.models.attempt import Question, Quiz
from quizguard.models.proctoring import AntiCheatPolicy, ProctoringSession
from quizguard.services.grading import AttemptGrader, EssayGradingPolicy
from quizguard.services.proctoring_service import ProctoringService, get_proctoring_service
from quizguard.services.repositories import InMemoryAttemptRepository, InMemoryQuizCatalog
from quizguard.services.session_store import InMemorySessionStore


START = datetime(2024, 1, 20, 10, 0, tzinfo=timezone.utc)


class FakeClock:
    """Deterministic clock, advanced by hand"""

    def __init__(self, start: datetime = START):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def policy():
    """Default classroom policy: 3 tab changes, 5 seconds away, refresh disqualifies"""
    return AntiCheatPolicy(
        enabled=True,
        tab_change_limit=3,
        time_away_threshold_seconds=5,
        auto_disqualify_on_refresh=True,
        auto_submit_on_disqualification=True,
    )


@pytest.fixture
def make_session(policy):
    """Factory for fresh sessions"""
    def _make(**overrides) -> ProctoringSession:
        values = {
            "id": str(uuid.uuid4()),
            "quiz_id": "quiz-1",
            "user_id": "student-1",
            "student_name": "Test Student",
            "student_email": "student@example.com",
            "started_at": START,
            "last_activity_at": START,
            "policy": policy,
        }
        values.update(overrides)
        return ProctoringSession(**values)
    return _make


@pytest.fixture
def sample_questions():
    """Four multiple-choice questions keyed Paris / 42 / true / Blue"""
    return [
        Question(type="multiple_choice", question="Capital of France?",
                 choices=["Paris", "Rome", "Madrid"], answer="Paris"),
        Question(type="multiple_choice", question="6 x 7?",
                 choices=["41", "42", "43"], answer="42"),
        Question(type="multiple_choice", question="Water is wet?",
                 choices=["true", "false"], answer="true"),
        Question(type="multiple_choice", question="Colour of the sky?",
                 choices=["Blue", "Green"], answer="Blue"),
    ]


@pytest.fixture
def grader():
    return AttemptGrader(essay_policy=EssayGradingPolicy.EXCLUDE)


@pytest.fixture
def mock_teacher():
    return {"id": "teacher-1", "role": "teacher", "email": "teacher@example.com", "name": "Test Teacher"}


@pytest.fixture
def mock_other_teacher():
    return {"id": "teacher-2", "role": "teacher", "email": "other@example.com", "name": "Other Teacher"}


@pytest.fixture
def mock_student():
    return {"id": "student-1", "role": "student", "email": "student@example.com", "name": "Test Student"}


@pytest.fixture
def mock_other_student():
    return {"id": "student-2", "role": "student", "email": "student2@example.com", "name": "Second Student"}


@pytest.fixture
def mock_quiz(mock_teacher, sample_questions):
    return Quiz(
        id="quiz-1",
        teacher_id=mock_teacher["id"],
        title="Geography and Arithmetic",
        questions=sample_questions,
        anti_cheat={
            "enabled": True,
            "tabChangeLimit": 3,
            "timeAwayThreshold": 5,
            "autoDisqualifyOnRefresh": True,
            "autoSubmitOnDisqualification": True,
        },
    )


@pytest.fixture
def catalog(mock_quiz):
    return InMemoryQuizCatalog([mock_quiz])


@pytest.fixture
def service(catalog, clock, grader):
    """Proctoring service over in-memory storage"""
    return ProctoringService(
        InMemorySessionStore(),
        InMemoryAttemptRepository(),
        catalog,
        grader=grader,
        clock=clock,
    )


def _headers_for(user: dict) -> dict:
    token = create_user_token(user["id"], user["role"], user["email"], user["name"])
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth_headers(mock_student):
    """Generate auth headers for the student"""
    return _headers_for(mock_student)


@pytest.fixture
def other_student_headers(mock_other_student):
    return _headers_for(mock_other_student)


@pytest.fixture
def teacher_auth_headers(mock_teacher):
    """Generate auth headers for the quiz owner"""
    return _headers_for(mock_teacher)


@pytest.fixture
def other_teacher_headers(mock_other_teacher):
    return _headers_for(mock_other_teacher)


@pytest.fixture
def client(service):
    """FastAPI test client wired to the in-memory service"""
    app.dependency_overrides[get_proctoring_service] = lambda: service
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
