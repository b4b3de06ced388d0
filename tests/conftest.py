"""
Pytest configuration and fixtures for MedGate tests
"""

import sys
from pathlib import Path

import pytest

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from medgate.audit import AuditLogger, InMemoryAuditSink  # noqa: E402
from medgate.config import Settings  # noqa: E402
from medgate.gateway import LearningGateway  # noqa: E402
from medgate.learning.evaluator import CompletionEvaluator  # noqa: E402
from medgate.learning.models import Course, CourseAssignment, CourseStatus, LearningStep  # noqa: E402
from medgate.learning.store import InMemoryProgressStore  # noqa: E402
from medgate.security.anomaly import AnomalyDetector  # noqa: E402
from medgate.security.sessions import SessionManager  # noqa: E402
from medgate.security.tokens import TokenIssuer  # noqa: E402

USER_ID = "user-1"
STUDENT_ID = "student-1"
COURSE_ID = "course-1"


@pytest.fixture
def settings():
    """Isolated settings that ignore any local .env file"""
    return Settings(
        _env_file=None,
        SESSION_TOKEN_SECRET="test-session-secret",
        JWT_SECRET="test-jwt-secret",
        ENABLE_FILE_LOGS=False,
    )


@pytest.fixture
def course_steps():
    """Three mandatory steps: a video, a reading and an MCQ"""
    return [
        LearningStep(step_id="step-1", course_id=COURSE_ID, step_order=1, step_type="VIDEO", title="Intro video"),
        LearningStep(step_id="step-2", course_id=COURSE_ID, step_order=2, step_type="BOOK", title="Chapter 1"),
        LearningStep(step_id="step-3", course_id=COURSE_ID, step_order=3, step_type="MCQ", title="Quiz"),
    ]


@pytest.fixture
def store(course_steps):
    """In-memory store with one enrolled student in one published course"""
    store = InMemoryProgressStore()
    store.add_student(USER_ID, STUDENT_ID)
    store.add_course(Course(course_id=COURSE_ID, title="Anatomy", status=CourseStatus.PUBLISHED), course_steps)
    store.add_assignment(CourseAssignment(assignment_id="assignment-1", student_id=STUDENT_ID, course_id=COURSE_ID))
    return store


@pytest.fixture
def audit_sink():
    return InMemoryAuditSink()


@pytest.fixture
def audit(audit_sink):
    return AuditLogger(audit_sink)


@pytest.fixture
def tokens():
    return TokenIssuer("test-session-secret")


@pytest.fixture
def gateway(store, audit, tokens, settings):
    """Gateway over the in-memory store with default thresholds"""
    return LearningGateway(
        store=store,
        audit=audit,
        sessions=SessionManager(tokens, audit, max_concurrent_sessions=2),
        tokens=tokens,
        anomaly=AnomalyDetector(audit),
        evaluator=CompletionEvaluator(),
        settings=settings,
    )
