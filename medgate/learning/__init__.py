# MedGate Learning Progression Module
"""
Step sequencing, completion evaluation and progress submission for
(student, course) pairs.
"""

from .access import StepAccessController
from .evaluator import CompletionEvaluator
from .models import (
    AssignmentStatus,
    CompletionCriteria,
    CompletionResult,
    CompletionTelemetry,
    Course,
    CourseAssignment,
    CourseProgress,
    CourseStatus,
    LearningStep,
    StepAccessResult,
    StepOverview,
    StepProgress,
    StepType,
    SubmissionResult,
)
from .progression import ProgressionService, next_assignment_state
from .store import InMemoryProgressStore, ProgressStore

__all__ = [
    "AssignmentStatus",
    "CompletionCriteria",
    "CompletionEvaluator",
    "CompletionResult",
    "CompletionTelemetry",
    "Course",
    "CourseAssignment",
    "CourseProgress",
    "CourseStatus",
    "InMemoryProgressStore",
    "LearningStep",
    "ProgressStore",
    "ProgressionService",
    "StepAccessController",
    "StepAccessResult",
    "StepOverview",
    "StepProgress",
    "StepType",
    "SubmissionResult",
    "next_assignment_state",
]
