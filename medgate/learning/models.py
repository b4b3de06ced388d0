"""
MedGate Learning Models

Pydantic models for learning steps, progress, assignments and telemetry.
"""

from datetime import datetime
from enum import Enum
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, Field


class StepType(str, Enum):
    """Learning step types"""

    VIDEO = "VIDEO"
    BOOK = "BOOK"
    MCQ = "MCQ"
    OTHER = "OTHER"


class CourseStatus(str, Enum):
    """Course lifecycle states"""

    DRAFT = "DRAFT"
    PUBLISHED = "PUBLISHED"
    ARCHIVED = "ARCHIVED"


class AssignmentStatus(str, Enum):
    """Student course assignment lifecycle"""

    ASSIGNED = "ASSIGNED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"


# ============================================
# Course / Step Models
# ============================================


class CompletionCriteria(BaseModel):
    """Type-specific completion thresholds; None falls back to the configured default"""

    video_min_watch_percent: Optional[float] = Field(default=None, ge=0, le=100)
    book_min_read_seconds: Optional[int] = None
    mcq_min_scroll_percent: Optional[float] = Field(default=None, ge=0, le=100)


class Course(BaseModel):
    """Course header as seen by the gating layer"""

    course_id: str
    title: Optional[str] = None
    status: CourseStatus = CourseStatus.DRAFT

    class Config:
        from_attributes = True

    @property
    def is_published(self) -> bool:
        return self.status == CourseStatus.PUBLISHED


class LearningStep(BaseModel):
    """One ordered unit of a course's learning flow"""

    step_id: str
    course_id: str
    step_order: int
    step_type: str = StepType.OTHER.value
    mandatory: bool = True
    title: Optional[str] = None
    learning_unit_id: Optional[str] = None
    completion_criteria: CompletionCriteria = Field(default_factory=CompletionCriteria)

    class Config:
        from_attributes = True

    @property
    def label(self) -> str:
        if self.title:
            return f"Step {self.step_order} ({self.title})"
        return f"Step {self.step_order}"


class BlockingStep(BaseModel):
    """The earliest incomplete mandatory step preventing access"""

    step_id: str
    step_order: int
    step_type: str
    title: Optional[str] = None


# ============================================
# Progress Models
# ============================================


class StepProgress(BaseModel):
    """Per (student, step) completion record"""

    student_id: str
    step_id: str
    course_id: str
    completion_percent: int = Field(default=0, ge=0, le=100)
    time_spent_seconds: int = Field(default=0, ge=0)
    last_accessed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

    @property
    def is_completed(self) -> bool:
        return self.completion_percent >= 100


class CourseAssignment(BaseModel):
    """Per (student, course) enrollment and lifecycle status"""

    assignment_id: str
    student_id: str
    course_id: str
    status: AssignmentStatus = AssignmentStatus.ASSIGNED
    assigned_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# ============================================
# Telemetry Models
# ============================================


class CompletionTelemetry(BaseModel):
    """Telemetry as submitted by the client; every field is optional"""

    watch_percent: Optional[float] = Field(default=None, ge=0, le=100)
    read_duration_seconds: Optional[float] = Field(default=None, ge=0)
    scroll_percent: Optional[float] = Field(default=None, ge=0, le=100)
    time_spent_seconds: Optional[int] = Field(default=None, ge=0)

    def for_step_type(self, step_type: str) -> "StepTelemetry":
        """Narrow to the variant carrying only what the step type's evaluator reads"""
        spent = self.time_spent_seconds
        if step_type == StepType.VIDEO:
            return VideoTelemetry(watch_percent=self.watch_percent or 0, time_spent_seconds=spent)
        if step_type == StepType.BOOK:
            return BookTelemetry(read_duration_seconds=self.read_duration_seconds or 0, time_spent_seconds=spent)
        if step_type == StepType.MCQ:
            # Absent MCQ telemetry counts as fully scrolled
            scroll = 100 if self.scroll_percent is None else self.scroll_percent
            return McqTelemetry(scroll_percent=scroll, time_spent_seconds=spent)
        return GenericTelemetry(time_spent_seconds=spent)


class _TimedTelemetry(BaseModel):
    time_spent_seconds: Optional[int] = Field(default=None, ge=0)


class VideoTelemetry(_TimedTelemetry):
    kind: Literal["VIDEO"] = "VIDEO"
    watch_percent: float = Field(default=0, ge=0, le=100)


class BookTelemetry(_TimedTelemetry):
    kind: Literal["BOOK"] = "BOOK"
    read_duration_seconds: float = Field(default=0, ge=0)


class McqTelemetry(_TimedTelemetry):
    kind: Literal["MCQ"] = "MCQ"
    scroll_percent: float = Field(default=100, ge=0, le=100)


class GenericTelemetry(_TimedTelemetry):
    kind: Literal["OTHER"] = "OTHER"


StepTelemetry = Annotated[
    Union[VideoTelemetry, BookTelemetry, McqTelemetry, GenericTelemetry],
    Field(discriminator="kind"),
]


# ============================================
# Result Models
# ============================================


class CompletionResult(BaseModel):
    """Verdict of the completion evaluator"""

    is_complete: bool
    completion_percent: int
    reason: Optional[str] = None


class StepAccessResult(BaseModel):
    """Outcome of a sequencing check"""

    allowed: bool
    denial: Optional[Literal["not_enrolled", "course_unavailable", "step_locked"]] = None
    reason: Optional[str] = None
    blocking_step: Optional[BlockingStep] = None
    step: Optional[LearningStep] = None


class SubmissionResult(BaseModel):
    """Outcome of a telemetry submission"""

    progress: StepProgress
    is_complete: bool
    completion_percent: int
    message: str
    assignment_status: Optional[AssignmentStatus] = None


class StepOverview(BaseModel):
    """A step as listed in a learner's course view"""

    step_id: str
    step_order: int
    step_type: str
    mandatory: bool
    title: Optional[str] = None
    learning_unit_id: Optional[str] = None
    is_locked: bool = False
    is_completed: bool = False
    completion_percent: int = 0
    time_spent_seconds: int = 0
    last_accessed_at: Optional[datetime] = None


class CourseProgress(BaseModel):
    """A learner's progress through one course"""

    course: Course
    assignment: CourseAssignment
    steps: List[StepOverview] = []
    completed_steps: int = 0
    total_steps: int = 0
    progress_percentage: float = 0.0
