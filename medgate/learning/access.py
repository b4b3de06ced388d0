"""
Step sequencing

Decides, fresh on every call, whether a learner may open a step: every
mandatory step ordered before it must already be at 100%.
"""

import logging
from typing import List

from ..audit import AuditLogger
from ..errors import (
    CourseNotFoundError,
    CourseUnavailableError,
    NotEnrolledError,
    StepLockedError,
    StepNotFoundError,
    StudentNotFoundError,
)
from .models import BlockingStep, CourseProgress, LearningStep, StepAccessResult, StepOverview
from .store import ProgressStore

logger = logging.getLogger(__name__)


class StepAccessController:
    """Sequencing checks against the progress store"""

    def __init__(self, store: ProgressStore, audit: AuditLogger):
        self.store = store
        self.audit = audit

    def resolve_student(self, user_id: str) -> str:
        student_id = self.store.get_student_id(user_id)
        if student_id is None:
            raise StudentNotFoundError("Student record not found", context={"user_id": user_id})
        return student_id

    def resolve_step(self, step_id: str) -> LearningStep:
        step = self.store.get_step(step_id)
        if step is None:
            raise StepNotFoundError("Learning step not found", context={"step_id": step_id})
        return step

    def can_access_step(self, user_id: str, step_id: str) -> StepAccessResult:
        """
        Check whether a learner may open a step

        Args:
            user_id: Account of the learner
            step_id: Requested step

        Returns:
            StepAccessResult; when not allowed it carries the reason and, for a
            sequencing block, the earliest incomplete mandatory step

        Raises:
            StudentNotFoundError: user has no student record
            StepNotFoundError: step does not exist
        """
        student_id = self.resolve_student(user_id)
        step = self.resolve_step(step_id)

        if self.store.get_assignment(student_id, step.course_id) is None:
            return StepAccessResult(allowed=False, denial="not_enrolled", reason="You are not enrolled in this course")

        course = self.store.get_course(step.course_id)
        if course is None or not course.is_published:
            return StepAccessResult(allowed=False, denial="course_unavailable", reason="This course is not yet available")

        for previous in self.store.list_previous_mandatory_steps(step):
            progress = self.store.get_progress(student_id, previous.step_id)
            if progress is not None and progress.is_completed:
                continue

            self.audit.blocked_access(user_id, student_id, step.step_id, previous.step_id)
            logger.info(f"Blocked access to step {step.step_id} for user {user_id}: {previous.step_id} incomplete")

            return StepAccessResult(
                allowed=False,
                denial="step_locked",
                reason=f"You must complete {previous.label} first",
                blocking_step=BlockingStep(
                    step_id=previous.step_id,
                    step_order=previous.step_order,
                    step_type=previous.step_type,
                    title=previous.title,
                ),
            )

        return StepAccessResult(allowed=True, step=step)

    def require_access(self, user_id: str, step_id: str) -> StepAccessResult:
        """Like can_access_step, but raises a Forbidden error when not allowed"""
        result = self.can_access_step(user_id, step_id)
        if result.allowed:
            return result

        if result.blocking_step is not None:
            raise StepLockedError(
                result.reason,
                context={"step_id": step_id, "blocking_step": result.blocking_step.model_dump()},
            )
        if result.denial == "not_enrolled":
            raise NotEnrolledError(result.reason, context={"step_id": step_id})
        raise CourseUnavailableError(result.reason, context={"step_id": step_id})

    def get_unlocked_steps(self, user_id: str, course_id: str) -> List[StepOverview]:
        """List every step of a course with its lock and completion state for the learner"""
        student_id = self.resolve_student(user_id)
        return self._overview(student_id, course_id)

    def get_course_progress(self, user_id: str, course_id: str) -> CourseProgress:
        student_id = self.resolve_student(user_id)

        course = self.store.get_course(course_id)
        if course is None:
            raise CourseNotFoundError("Course not found", context={"course_id": course_id})

        assignment = self.store.get_assignment(student_id, course_id)
        if assignment is None:
            raise NotEnrolledError("You are not enrolled in this course", context={"course_id": course_id})

        steps = self._overview(student_id, course_id)
        completed = sum(1 for s in steps if s.is_completed)
        total = len(steps)

        return CourseProgress(
            course=course,
            assignment=assignment,
            steps=steps,
            completed_steps=completed,
            total_steps=total,
            progress_percentage=round(completed / total * 100, 2) if total else 0.0,
        )

    def _overview(self, student_id: str, course_id: str) -> List[StepOverview]:
        progress_by_step = {p.step_id: p for p in self.store.list_progress(student_id, course_id)}

        result = []
        previous_mandatory_completed = True

        for step in self.store.list_steps(course_id):
            progress = progress_by_step.get(step.step_id)
            is_completed = progress is not None and progress.is_completed

            result.append(
                StepOverview(
                    step_id=step.step_id,
                    step_order=step.step_order,
                    step_type=step.step_type,
                    mandatory=step.mandatory,
                    title=step.title,
                    learning_unit_id=step.learning_unit_id,
                    is_locked=not previous_mandatory_completed,
                    is_completed=is_completed,
                    completion_percent=progress.completion_percent if progress else 0,
                    time_spent_seconds=progress.time_spent_seconds if progress else 0,
                    last_accessed_at=progress.last_accessed_at if progress else None,
                )
            )

            if step.mandatory and not is_completed:
                previous_mandatory_completed = False

        return result
