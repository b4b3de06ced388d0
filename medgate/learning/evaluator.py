"""
Completion evaluation

Maps a step's type, its configured criteria and the learner's telemetry to a
completion percentage and a pass/fail verdict. Never touches storage.
"""

import math
from typing import Optional, Union

from pydantic import TypeAdapter, ValidationError

from ..config import Settings, get_settings
from ..errors import TelemetryMismatchError
from ..utils import round_half_up
from .models import (
    BookTelemetry,
    CompletionResult,
    CompletionTelemetry,
    LearningStep,
    McqTelemetry,
    StepTelemetry,
    StepType,
    VideoTelemetry,
)

_step_telemetry_adapter = TypeAdapter(StepTelemetry)


class CompletionEvaluator:
    """Pure per-step-type completion rules"""

    def __init__(
        self,
        video_min_watch_percent: float = 80,
        book_min_read_seconds: int = 300,
        mcq_min_scroll_percent: float = 90,
    ):
        self.video_min_watch_percent = video_min_watch_percent
        self.book_min_read_seconds = book_min_read_seconds
        self.mcq_min_scroll_percent = mcq_min_scroll_percent

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "CompletionEvaluator":
        settings = settings or get_settings()
        return cls(
            video_min_watch_percent=settings.VIDEO_MIN_WATCH_PERCENT,
            book_min_read_seconds=settings.BOOK_MIN_READ_SECONDS,
            mcq_min_scroll_percent=settings.MCQ_MIN_SCROLL_PERCENT,
        )

    def evaluate(
        self,
        step: LearningStep,
        telemetry: Union[CompletionTelemetry, StepTelemetry, dict, None] = None,
    ) -> CompletionResult:
        """
        Evaluate telemetry against the step's completion criteria.

        Args:
            step: The step being completed
            telemetry: Raw client telemetry, an already narrowed variant, or None

        Returns:
            CompletionResult with the verdict, the percent to record and, when
            incomplete, a human-readable reason

        Raises:
            TelemetryMismatchError: telemetry that does not fit the step
        """
        variant = self.narrow(step, telemetry)

        if isinstance(variant, VideoTelemetry):
            return self._evaluate_video(step, variant)
        if isinstance(variant, BookTelemetry):
            return self._evaluate_book(step, variant)
        if isinstance(variant, McqTelemetry):
            return self._evaluate_mcq(step, variant)

        # No criteria for this type
        return CompletionResult(is_complete=True, completion_percent=100)

    def narrow(self, step: LearningStep, telemetry) -> StepTelemetry:
        """
        Resolve raw, tagged or already narrowed telemetry to the step's variant

        Raises:
            TelemetryMismatchError: malformed telemetry, or a variant of another step type
        """
        if telemetry is None:
            telemetry = CompletionTelemetry()
        elif isinstance(telemetry, dict):
            try:
                if "kind" in telemetry:
                    telemetry = _step_telemetry_adapter.validate_python(telemetry)
                else:
                    telemetry = CompletionTelemetry(**telemetry)
            except ValidationError as e:
                raise TelemetryMismatchError(
                    "Invalid telemetry", context={"step_id": step.step_id, "errors": e.errors(include_url=False, include_context=False, include_input=False)}
                ) from e

        if isinstance(telemetry, CompletionTelemetry):
            return telemetry.for_step_type(step.step_type)

        expected = step.step_type if step.step_type in _KNOWN_TYPES else StepType.OTHER.value
        if telemetry.kind != expected:
            raise TelemetryMismatchError(
                f"{telemetry.kind} telemetry submitted for a {step.step_type} step",
                context={"step_id": step.step_id, "expected_kind": expected},
            )
        return telemetry

    def _evaluate_video(self, step: LearningStep, telemetry: VideoTelemetry) -> CompletionResult:
        minimum = _configured(step.completion_criteria.video_min_watch_percent, self.video_min_watch_percent)
        percent = round_half_up(telemetry.watch_percent)
        is_complete = telemetry.watch_percent >= minimum

        reason = None
        if not is_complete:
            reason = f"Must watch at least {_fmt(minimum)}% of the video (currently {percent}%)"

        return CompletionResult(is_complete=is_complete, completion_percent=percent, reason=reason)

    def _evaluate_book(self, step: LearningStep, telemetry: BookTelemetry) -> CompletionResult:
        minimum = step.completion_criteria.book_min_read_seconds
        if minimum is None or minimum <= 0:
            minimum = self.book_min_read_seconds

        observed = telemetry.read_duration_seconds
        percent = min(100, round_half_up(observed / minimum * 100))
        is_complete = observed >= minimum

        reason = None
        if not is_complete:
            remaining_minutes = math.ceil((minimum - observed) / 60)
            reason = (
                f"Must read for at least {math.ceil(minimum / 60)} minutes "
                f"({remaining_minutes} more minutes needed)"
            )

        return CompletionResult(is_complete=is_complete, completion_percent=percent, reason=reason)

    def _evaluate_mcq(self, step: LearningStep, telemetry: McqTelemetry) -> CompletionResult:
        minimum = _configured(step.completion_criteria.mcq_min_scroll_percent, self.mcq_min_scroll_percent)
        percent = round_half_up(telemetry.scroll_percent)
        is_complete = telemetry.scroll_percent >= minimum

        reason = None
        if not is_complete:
            reason = f"Must complete at least {_fmt(minimum)}% of the content"

        return CompletionResult(is_complete=is_complete, completion_percent=percent, reason=reason)


_KNOWN_TYPES = {StepType.VIDEO.value, StepType.BOOK.value, StepType.MCQ.value}


def _configured(value: Optional[float], default: float) -> float:
    return default if value is None else value


def _fmt(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)


