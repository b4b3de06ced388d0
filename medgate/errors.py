"""
Error taxonomy for the gating and session-security layer.

Every per-request failure is an ``HTTPException`` so request handlers can let
it propagate unchanged; ``detail`` always carries a machine-readable ``error``
code, a human-readable ``message`` and any structured context the caller needs
to render an actionable response.
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException


class LearningGateError(HTTPException):
    """Base class for outcomes surfaced to the caller"""

    status = 400
    code = "learning_gate_error"

    def __init__(
        self,
        message: str,
        *,
        context: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(
            status_code=self.status,
            detail={"error": self.code, "message": message, **self.context},
            headers=headers,
        )

    def __str__(self) -> str:
        return self.message


# ============================================
# Invalid input
# ============================================


class TelemetryMismatchError(LearningGateError):
    """Telemetry that does not fit the step it was submitted for"""

    status = 422
    code = "telemetry_mismatch"


# ============================================
# NotFound
# ============================================


class NotFoundError(LearningGateError):
    status = 404
    code = "not_found"


class StepNotFoundError(NotFoundError):
    code = "step_not_found"


class StudentNotFoundError(NotFoundError):
    code = "student_not_found"


class CourseNotFoundError(NotFoundError):
    code = "course_not_found"


class SessionNotFoundError(NotFoundError):
    code = "session_not_found"


# ============================================
# Forbidden
# ============================================


class ForbiddenError(LearningGateError):
    status = 403
    code = "forbidden"


class NotEnrolledError(ForbiddenError):
    code = "not_enrolled"


class CourseUnavailableError(ForbiddenError):
    code = "course_unavailable"


class StepLockedError(ForbiddenError):
    """Raised when an earlier mandatory step is incomplete; context names the blocker"""

    code = "step_locked"


class SessionLimitError(ForbiddenError):
    code = "concurrent_session_limit"


class SessionHijackError(ForbiddenError):
    code = "session_user_mismatch"


class DeviceMismatchError(ForbiddenError):
    code = "device_mismatch"


class TokenMismatchError(ForbiddenError):
    code = "token_mismatch"


class AccessVerificationError(ForbiddenError):
    """Access could not be verified (e.g. storage read failure); always denies"""

    code = "access_unverifiable"


# ============================================
# RateLimited
# ============================================


class RateLimitedError(LearningGateError):
    status = 429
    code = "rate_limited"

    def __init__(self, message: str, *, retry_after: int, context: Optional[Dict[str, Any]] = None):
        self.retry_after = retry_after
        super().__init__(
            message,
            context={"retry_after": retry_after, **(context or {})},
            headers={"Retry-After": str(retry_after)},
        )


class RapidAccessError(RateLimitedError):
    code = "rapid_access_detected"


# ============================================
# Storage
# ============================================


class ProgressStoreError(Exception):
    """Raised by a progress store when its backend cannot serve a request"""
