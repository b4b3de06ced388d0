"""
Progress submission and course assignment status

Telemetry flows: re-check reachability, evaluate, upsert the step row, then
re-derive the assignment status from all of the course's step rows.
"""

import logging
from datetime import datetime
from typing import Optional, Union

from ..audit import AuditLogger
from ..utils import KeyedLock, utcnow
from .access import StepAccessController
from .evaluator import CompletionEvaluator
from .models import (
    AssignmentStatus,
    CompletionTelemetry,
    CourseAssignment,
    StepTelemetry,
    SubmissionResult,
)
from .store import ProgressStore

logger = logging.getLogger(__name__)

STEP_COMPLETED_MESSAGE = "Step completed!"
PROGRESS_SAVED_MESSAGE = "Progress saved"


def next_assignment_state(
    assignment: CourseAssignment, completed_steps: int, total_steps: int, now: datetime
) -> CourseAssignment:
    """
    Derive the assignment record implied by the current completion counts.

    ASSIGNED moves to IN_PROGRESS on the first completed step and to COMPLETED
    once every step is complete. A COMPLETED assignment whose count falls short
    again returns to IN_PROGRESS and loses its completed_at. Nothing returns to
    ASSIGNED. Applying the same counts twice yields the same record.
    """
    status = assignment.status
    started_at = assignment.started_at
    completed_at = assignment.completed_at

    if total_steps > 0 and completed_steps == total_steps:
        status = AssignmentStatus.COMPLETED
    elif completed_steps > 0 or status == AssignmentStatus.COMPLETED:
        status = AssignmentStatus.IN_PROGRESS

    if status != AssignmentStatus.ASSIGNED and started_at is None:
        started_at = now

    if status == AssignmentStatus.COMPLETED:
        completed_at = completed_at or now
    else:
        completed_at = None

    return assignment.model_copy(update={"status": status, "started_at": started_at, "completed_at": completed_at})


class ProgressionService:
    """Applies learner telemetry to step progress and assignment status"""

    def __init__(
        self,
        store: ProgressStore,
        access: StepAccessController,
        evaluator: CompletionEvaluator,
        audit: AuditLogger,
        locks: Optional[KeyedLock] = None,
    ):
        self.store = store
        self.access = access
        self.evaluator = evaluator
        self.audit = audit
        self.locks = locks or KeyedLock()

    def submit_completion(
        self,
        user_id: str,
        step_id: str,
        telemetry: Union[CompletionTelemetry, StepTelemetry, dict, None] = None,
    ) -> SubmissionResult:
        """
        Record learner telemetry for a step.

        Args:
            user_id: Account of the learner
            step_id: Step the telemetry belongs to
            telemetry: Observed watch/read/scroll values and time spent

        Returns:
            SubmissionResult with the stored progress row and the verdict

        Raises:
            StepLockedError / NotEnrolledError / CourseUnavailableError: the step
                is not currently reachable for this learner
            StudentNotFoundError / StepNotFoundError: unknown learner or step
            TelemetryMismatchError: telemetry that does not fit the step
        """
        access = self.access.require_access(user_id, step_id)
        step = access.step
        student_id = self.access.resolve_student(user_id)

        variant = self.evaluator.narrow(step, telemetry)
        time_spent = variant.time_spent_seconds or 0
        verdict = self.evaluator.evaluate(step, variant)

        # One in-flight write per (student, course): the step upsert and the
        # assignment recompute that reads every step row of the course
        with self.locks.hold((student_id, step.course_id)):
            now = utcnow()
            progress = self.store.upsert_progress(
                student_id, step, verdict.completion_percent, time_spent, now=now
            )
            assignment = self._recompute_assignment(student_id, step.course_id, now)

        if verdict.is_complete:
            self.audit.step_completed(user_id, step.step_id, step.step_order, step.step_type, verdict.completion_percent)
            logger.info(f"User {user_id} completed step {step.step_id} ({verdict.completion_percent}%)")

        if verdict.reason:
            message = verdict.reason
        else:
            message = STEP_COMPLETED_MESSAGE if verdict.is_complete else PROGRESS_SAVED_MESSAGE

        return SubmissionResult(
            progress=progress,
            is_complete=verdict.is_complete,
            completion_percent=verdict.completion_percent,
            message=message,
            assignment_status=assignment.status if assignment else None,
        )

    def recompute_assignment(self, student_id: str, course_id: str) -> Optional[CourseAssignment]:
        """Re-derive and persist the assignment status from current progress rows"""
        with self.locks.hold((student_id, course_id)):
            return self._recompute_assignment(student_id, course_id, utcnow())

    def _recompute_assignment(self, student_id: str, course_id: str, now: datetime) -> Optional[CourseAssignment]:
        assignment = self.store.get_assignment(student_id, course_id)
        if assignment is None:
            return None

        total_steps = len(self.store.list_steps(course_id))
        completed_steps = self.store.count_completed_steps(student_id, course_id)

        updated = next_assignment_state(assignment, completed_steps, total_steps, now)
        if updated != assignment:
            self.store.save_assignment(updated)
            logger.info(
                f"Assignment {assignment.assignment_id} {assignment.status.value} -> {updated.status.value} "
                f"({completed_steps}/{total_steps} steps)"
            )
        return updated
