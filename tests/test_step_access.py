"""
Unit tests for step sequencing
"""

import pytest

from medgate.audit import AuditEventType
from medgate.errors import (
    CourseNotFoundError,
    CourseUnavailableError,
    NotEnrolledError,
    StepLockedError,
    StepNotFoundError,
    StudentNotFoundError,
)
from medgate.learning.access import StepAccessController
from medgate.learning.models import Course, CourseStatus, LearningStep

from .conftest import COURSE_ID, STUDENT_ID, USER_ID


@pytest.fixture
def controller(store, audit):
    return StepAccessController(store, audit)


def complete(store, step_id):
    store.upsert_progress(STUDENT_ID, store.get_step(step_id), 100, 0)


class TestCanAccessStep:
    """Test the sequencing decision"""

    def test_first_step_is_always_open(self, controller):
        result = controller.can_access_step(USER_ID, "step-1")

        assert result.allowed is True
        assert result.step.step_id == "step-1"

    def test_second_step_locked_until_first_complete(self, controller, audit_sink):
        result = controller.can_access_step(USER_ID, "step-2")

        assert result.allowed is False
        assert result.denial == "step_locked"
        assert result.reason == "You must complete Step 1 (Intro video) first"
        assert result.blocking_step.step_id == "step-1"

        blocked = audit_sink.events(AuditEventType.BLOCKED_ACCESS.value)
        assert len(blocked) == 1
        assert blocked[0].metadata["blockedByStepId"] == "step-1"
        assert blocked[0].metadata["attemptedStepId"] == "step-2"

    def test_earliest_incomplete_step_blocks(self, controller, store):
        store.upsert_progress(STUDENT_ID, store.get_step("step-1"), 80, 0)

        result = controller.can_access_step(USER_ID, "step-3")

        assert result.allowed is False
        assert result.blocking_step.step_id == "step-1"

    def test_next_incomplete_step_becomes_blocker(self, controller, store):
        complete(store, "step-1")

        assert controller.can_access_step(USER_ID, "step-2").allowed is True
        result = controller.can_access_step(USER_ID, "step-3")
        assert result.allowed is False
        assert result.blocking_step.step_id == "step-2"
        assert result.reason == "You must complete Step 2 (Chapter 1) first"

    def test_unlocked_after_previous_complete(self, controller, store):
        complete(store, "step-1")
        complete(store, "step-2")

        assert controller.can_access_step(USER_ID, "step-3").allowed is True

    def test_optional_steps_do_not_block(self, controller, store):
        store.add_step(
            LearningStep(step_id="extra", course_id=COURSE_ID, step_order=4, step_type="OTHER", mandatory=False)
        )
        store.add_step(LearningStep(step_id="final", course_id=COURSE_ID, step_order=5, step_type="OTHER"))
        for step_id in ("step-1", "step-2", "step-3"):
            complete(store, step_id)

        assert controller.can_access_step(USER_ID, "final").allowed is True

    def test_not_enrolled(self, controller, store):
        store.add_student("user-2", "student-2")

        result = controller.can_access_step("user-2", "step-1")

        assert result.allowed is False
        assert result.denial == "not_enrolled"
        assert result.reason == "You are not enrolled in this course"

    def test_unpublished_course(self, controller, store):
        store.add_course(Course(course_id=COURSE_ID, title="Anatomy", status=CourseStatus.DRAFT))

        result = controller.can_access_step(USER_ID, "step-1")

        assert result.allowed is False
        assert result.denial == "course_unavailable"
        assert result.reason == "This course is not yet available"

    def test_unknown_step(self, controller):
        with pytest.raises(StepNotFoundError):
            controller.can_access_step(USER_ID, "missing")

    def test_unknown_student(self, controller):
        with pytest.raises(StudentNotFoundError):
            controller.can_access_step("nobody", "step-1")

    def test_regression_relocks_later_steps(self, controller, store):
        complete(store, "step-1")
        assert controller.can_access_step(USER_ID, "step-2").allowed is True

        store.upsert_progress(STUDENT_ID, store.get_step("step-1"), 60, 0)

        assert controller.can_access_step(USER_ID, "step-2").allowed is False


class TestRequireAccess:
    """Test the raising variant"""

    def test_locked_step_raises_with_blocker(self, controller):
        with pytest.raises(StepLockedError) as exc_info:
            controller.require_access(USER_ID, "step-2")

        assert exc_info.value.status_code == 403
        assert exc_info.value.detail["error"] == "step_locked"
        assert exc_info.value.detail["blocking_step"]["step_id"] == "step-1"

    def test_not_enrolled_raises(self, controller, store):
        store.add_student("user-2", "student-2")
        with pytest.raises(NotEnrolledError):
            controller.require_access("user-2", "step-1")

    def test_unpublished_raises(self, controller, store):
        store.add_course(Course(course_id=COURSE_ID, status=CourseStatus.ARCHIVED))
        with pytest.raises(CourseUnavailableError):
            controller.require_access(USER_ID, "step-1")


class TestCourseViews:
    """Test step listing and course progress"""

    def test_unlocked_steps(self, controller, store):
        complete(store, "step-1")

        steps = controller.get_unlocked_steps(USER_ID, COURSE_ID)

        assert [s.step_id for s in steps] == ["step-1", "step-2", "step-3"]
        assert [s.is_locked for s in steps] == [False, False, True]
        assert [s.is_completed for s in steps] == [True, False, False]

    def test_course_progress(self, controller, store):
        complete(store, "step-1")

        progress = controller.get_course_progress(USER_ID, COURSE_ID)

        assert progress.completed_steps == 1
        assert progress.total_steps == 3
        assert progress.progress_percentage == 33.33

    def test_course_progress_unknown_course(self, controller):
        with pytest.raises(CourseNotFoundError):
            controller.get_course_progress(USER_ID, "missing")

    def test_course_progress_not_enrolled(self, controller, store):
        store.add_student("user-2", "student-2")
        with pytest.raises(NotEnrolledError):
            controller.get_course_progress("user-2", COURSE_ID)
