"""
Progress storage contract and an in-process implementation.

The gating layer reads course structure, enrollments and step progress through
``ProgressStore`` and writes only step progress and assignment status. Course
authoring and enrollment live elsewhere; the in-memory store exposes
``add_*`` helpers so single-process deployments and tests can load them.
"""

import threading
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from ..utils import utcnow
from .models import Course, CourseAssignment, LearningStep, StepProgress


class ProgressStore(ABC):
    """Persistence collaborator used by the gating layer"""

    @abstractmethod
    def get_student_id(self, user_id: str) -> Optional[str]:
        """Resolve the student record owned by a user account"""

    @abstractmethod
    def get_course(self, course_id: str) -> Optional[Course]:
        ...

    @abstractmethod
    def get_step(self, step_id: str) -> Optional[LearningStep]:
        ...

    @abstractmethod
    def list_steps(self, course_id: str) -> List[LearningStep]:
        """All steps of a course in ascending step_order"""

    def list_previous_mandatory_steps(self, step: LearningStep) -> List[LearningStep]:
        """Mandatory steps strictly before ``step`` in ascending step_order"""
        return [
            s for s in self.list_steps(step.course_id) if s.mandatory and s.step_order < step.step_order
        ]

    @abstractmethod
    def get_assignment(self, student_id: str, course_id: str) -> Optional[CourseAssignment]:
        ...

    @abstractmethod
    def save_assignment(self, assignment: CourseAssignment) -> CourseAssignment:
        ...

    @abstractmethod
    def get_progress(self, student_id: str, step_id: str) -> Optional[StepProgress]:
        ...

    @abstractmethod
    def list_progress(self, student_id: str, course_id: str) -> List[StepProgress]:
        ...

    @abstractmethod
    def upsert_progress(
        self,
        student_id: str,
        step: LearningStep,
        completion_percent: int,
        time_spent_seconds: int,
        now: Optional[datetime] = None,
    ) -> StepProgress:
        """
        Create or update the (student, step) row.

        The completion percent replaces the stored value; time spent is added
        to the stored total.
        """

    def count_completed_steps(self, student_id: str, course_id: str) -> int:
        step_ids = {s.step_id for s in self.list_steps(course_id)}
        return sum(1 for p in self.list_progress(student_id, course_id) if p.is_completed and p.step_id in step_ids)


class InMemoryProgressStore(ProgressStore):
    """Thread-safe dictionary-backed store"""

    def __init__(self):
        self._lock = threading.RLock()
        self._students: Dict[str, str] = {}  # user_id -> student_id
        self._courses: Dict[str, Course] = {}
        self._steps: Dict[str, LearningStep] = {}
        self._assignments: Dict[Tuple[str, str], CourseAssignment] = {}
        self._progress: Dict[Tuple[str, str], StepProgress] = {}

    # ---- loading -------------------------------------------------------

    def add_student(self, user_id: str, student_id: str) -> None:
        with self._lock:
            self._students[user_id] = student_id

    def add_course(self, course: Course, steps: Optional[List[LearningStep]] = None) -> None:
        with self._lock:
            self._courses[course.course_id] = course
            for step in steps or []:
                self.add_step(step)

    def add_step(self, step: LearningStep) -> None:
        with self._lock:
            for existing in self._steps.values():
                if (
                    existing.course_id == step.course_id
                    and existing.step_order == step.step_order
                    and existing.step_id != step.step_id
                ):
                    raise ValueError(f"step_order {step.step_order} already used in course {step.course_id}")
            self._steps[step.step_id] = step

    def add_assignment(self, assignment: CourseAssignment) -> None:
        with self._lock:
            if assignment.assigned_at is None:
                assignment = assignment.model_copy(update={"assigned_at": utcnow()})
            self._assignments[(assignment.student_id, assignment.course_id)] = assignment

    # ---- reads ---------------------------------------------------------

    def get_student_id(self, user_id: str) -> Optional[str]:
        with self._lock:
            return self._students.get(user_id)

    def get_course(self, course_id: str) -> Optional[Course]:
        with self._lock:
            return self._courses.get(course_id)

    def get_step(self, step_id: str) -> Optional[LearningStep]:
        with self._lock:
            return self._steps.get(step_id)

    def list_steps(self, course_id: str) -> List[LearningStep]:
        with self._lock:
            steps = [s for s in self._steps.values() if s.course_id == course_id]
        return sorted(steps, key=lambda s: s.step_order)

    def get_assignment(self, student_id: str, course_id: str) -> Optional[CourseAssignment]:
        with self._lock:
            assignment = self._assignments.get((student_id, course_id))
            return assignment.model_copy() if assignment else None

    def get_progress(self, student_id: str, step_id: str) -> Optional[StepProgress]:
        with self._lock:
            progress = self._progress.get((student_id, step_id))
            return progress.model_copy() if progress else None

    def list_progress(self, student_id: str, course_id: str) -> List[StepProgress]:
        with self._lock:
            return [
                p.model_copy()
                for (sid, _), p in self._progress.items()
                if sid == student_id and p.course_id == course_id
            ]

    # ---- writes --------------------------------------------------------

    def save_assignment(self, assignment: CourseAssignment) -> CourseAssignment:
        with self._lock:
            self._assignments[(assignment.student_id, assignment.course_id)] = assignment.model_copy()
        return assignment

    def upsert_progress(
        self,
        student_id: str,
        step: LearningStep,
        completion_percent: int,
        time_spent_seconds: int,
        now: Optional[datetime] = None,
    ) -> StepProgress:
        now = now or utcnow()
        key = (student_id, step.step_id)

        with self._lock:
            existing = self._progress.get(key)
            if existing is None:
                progress = StepProgress(
                    student_id=student_id,
                    step_id=step.step_id,
                    course_id=step.course_id,
                    completion_percent=completion_percent,
                    time_spent_seconds=time_spent_seconds,
                    last_accessed_at=now,
                    created_at=now,
                    updated_at=now,
                )
            else:
                progress = existing.model_copy(
                    update={
                        "completion_percent": completion_percent,
                        "time_spent_seconds": existing.time_spent_seconds + time_spent_seconds,
                        "last_accessed_at": now,
                        "updated_at": now,
                    }
                )
            self._progress[key] = progress
            return progress.model_copy()
