"""
Unit tests for progress submission and assignment status
"""

import threading
from datetime import datetime, timezone

import pytest

from medgate.audit import AuditEventType
from medgate.errors import StepLockedError, TelemetryMismatchError
from medgate.learning.access import StepAccessController
from medgate.learning.evaluator import CompletionEvaluator
from medgate.learning.models import AssignmentStatus, CompletionTelemetry, CourseAssignment, VideoTelemetry
from medgate.learning.progression import ProgressionService, next_assignment_state

from .conftest import COURSE_ID, STUDENT_ID, USER_ID

T0 = datetime(2026, 1, 1, tzinfo=timezone.utc)
T1 = datetime(2026, 1, 2, tzinfo=timezone.utc)


@pytest.fixture
def service(store, audit):
    return ProgressionService(store, StepAccessController(store, audit), CompletionEvaluator(), audit)


def assignment(status=AssignmentStatus.ASSIGNED, **kwargs):
    return CourseAssignment(assignment_id="a", student_id="s", course_id="c", status=status, **kwargs)


class TestAssignmentStateMachine:
    """Test the pure status transition"""

    def test_stays_assigned_without_completions(self):
        result = next_assignment_state(assignment(), 0, 3, T0)

        assert result.status == AssignmentStatus.ASSIGNED
        assert result.started_at is None

    def test_first_completion_starts(self):
        result = next_assignment_state(assignment(), 1, 3, T0)

        assert result.status == AssignmentStatus.IN_PROGRESS
        assert result.started_at == T0
        assert result.completed_at is None

    def test_all_steps_complete(self):
        result = next_assignment_state(assignment(), 3, 3, T0)

        assert result.status == AssignmentStatus.COMPLETED
        assert result.started_at == T0
        assert result.completed_at == T0

    def test_started_at_is_kept(self):
        current = assignment(AssignmentStatus.IN_PROGRESS, started_at=T0)
        result = next_assignment_state(current, 3, 3, T1)

        assert result.started_at == T0
        assert result.completed_at == T1

    def test_completed_regresses_to_in_progress(self):
        current = assignment(AssignmentStatus.COMPLETED, started_at=T0, completed_at=T0)
        result = next_assignment_state(current, 2, 3, T1)

        assert result.status == AssignmentStatus.IN_PROGRESS
        assert result.completed_at is None

    def test_never_returns_to_assigned(self):
        current = assignment(AssignmentStatus.COMPLETED, started_at=T0, completed_at=T0)
        result = next_assignment_state(current, 0, 3, T1)

        assert result.status == AssignmentStatus.IN_PROGRESS

    def test_empty_course_is_not_completed(self):
        result = next_assignment_state(assignment(), 0, 0, T0)
        assert result.status == AssignmentStatus.ASSIGNED

    def test_idempotent(self):
        once = next_assignment_state(assignment(), 3, 3, T0)
        twice = next_assignment_state(once, 3, 3, T1)

        assert once == twice


class TestSubmitCompletion:
    """Test telemetry submission end to end against the in-memory store"""

    def test_partial_video_saves_progress(self, service, store):
        result = service.submit_completion(USER_ID, "step-1", CompletionTelemetry(watch_percent=60))

        assert result.is_complete is False
        assert result.completion_percent == 60
        assert result.message == "Must watch at least 80% of the video (currently 60%)"
        assert result.assignment_status == AssignmentStatus.ASSIGNED
        assert store.get_progress(STUDENT_ID, "step-1").completion_percent == 60

    def test_video_complete_at_threshold_does_not_unlock_next_step(self, service):
        result = service.submit_completion(USER_ID, "step-1", CompletionTelemetry(watch_percent=85))

        assert result.is_complete is True
        assert result.completion_percent == 85
        assert result.message == "Step completed!"

        # Sequencing requires a stored 100%
        with pytest.raises(StepLockedError):
            service.submit_completion(USER_ID, "step-2", {"read_duration_seconds": 300})

    def test_full_course_completes_assignment(self, service, store, audit_sink):
        service.submit_completion(USER_ID, "step-1", {"watch_percent": 100})
        result = service.submit_completion(USER_ID, "step-2", {"read_duration_seconds": 300})
        assert result.assignment_status == AssignmentStatus.IN_PROGRESS

        result = service.submit_completion(USER_ID, "step-3", {"scroll_percent": 100})

        assert result.assignment_status == AssignmentStatus.COMPLETED
        stored = store.get_assignment(STUDENT_ID, COURSE_ID)
        assert stored.status == AssignmentStatus.COMPLETED
        assert stored.started_at is not None
        assert stored.completed_at is not None
        assert len(audit_sink.events(AuditEventType.STEP_COMPLETED.value)) == 3

    def test_time_spent_accumulates(self, service, store):
        service.submit_completion(USER_ID, "step-1", {"watch_percent": 30, "time_spent_seconds": 40})
        service.submit_completion(USER_ID, "step-1", {"watch_percent": 50, "time_spent_seconds": 25})

        progress = store.get_progress(STUDENT_ID, "step-1")
        assert progress.completion_percent == 50
        assert progress.time_spent_seconds == 65

    def test_time_spent_from_tagged_telemetry(self, service, store):
        service.submit_completion(USER_ID, "step-1", {"kind": "VIDEO", "watch_percent": 100, "time_spent_seconds": 40})
        service.submit_completion(USER_ID, "step-1", VideoTelemetry(watch_percent=100, time_spent_seconds=15))

        assert store.get_progress(STUDENT_ID, "step-1").time_spent_seconds == 55

    def test_mismatched_telemetry_writes_nothing(self, service, store):
        with pytest.raises(TelemetryMismatchError):
            service.submit_completion(USER_ID, "step-1", {"kind": "BOOK", "read_duration_seconds": 600})

        assert store.get_progress(STUDENT_ID, "step-1") is None

    def test_lower_resubmission_regresses_assignment(self, service, store):
        service.submit_completion(USER_ID, "step-1", {"watch_percent": 100})
        service.submit_completion(USER_ID, "step-2", {"read_duration_seconds": 300})
        service.submit_completion(USER_ID, "step-3", {"scroll_percent": 100})

        result = service.submit_completion(USER_ID, "step-1", {"watch_percent": 40})

        assert result.assignment_status == AssignmentStatus.IN_PROGRESS
        assert store.get_assignment(STUDENT_ID, COURSE_ID).completed_at is None

    def test_locked_step_writes_nothing(self, service, store):
        with pytest.raises(StepLockedError):
            service.submit_completion(USER_ID, "step-3", {"scroll_percent": 100})

        assert store.get_progress(STUDENT_ID, "step-3") is None

    def test_failing_audit_sink_does_not_block_submission(self, store):
        from medgate.audit import AuditLogger, AuditSink

        class BrokenSink(AuditSink):
            def append(self, entry):
                raise RuntimeError("audit store down")

        audit = AuditLogger(BrokenSink())
        service = ProgressionService(store, StepAccessController(store, audit), CompletionEvaluator(), audit)

        result = service.submit_completion(USER_ID, "step-1", {"watch_percent": 100})

        assert result.is_complete is True

    def test_concurrent_submissions_keep_one_row(self, service, store):
        errors = []

        def submit():
            try:
                service.submit_completion(USER_ID, "step-1", {"watch_percent": 100, "time_spent_seconds": 1})
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=submit) for _ in range(20)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert store.get_progress(STUDENT_ID, "step-1").time_spent_seconds == 20
        assert len(store.list_progress(STUDENT_ID, COURSE_ID)) == 1
        assert store.get_assignment(STUDENT_ID, COURSE_ID).status == AssignmentStatus.IN_PROGRESS
