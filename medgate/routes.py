"""
MedGate Learning API Routes

FastAPI routes exposing learning sessions, gated content access and progress
submission to the request-handling layer.
"""

import logging
import threading
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Header, Request
from pydantic import BaseModel, Field

from .gateway import LearningGateway
from .learning.models import CompletionTelemetry, CourseProgress, StepOverview, SubmissionResult
from .security.jwt_auth import get_current_user_id

logger = logging.getLogger(__name__)

learning_router = APIRouter(prefix="/api/learning", tags=["Learning"])

_gateway: Optional[LearningGateway] = None
_gateway_lock = threading.Lock()


def get_gateway() -> LearningGateway:
    """Process-wide gateway, built from settings on first use"""
    global _gateway

    if _gateway is not None:
        return _gateway

    with _gateway_lock:
        if _gateway is None:
            _gateway = LearningGateway.build()
        return _gateway


def set_gateway(gateway: Optional[LearningGateway]) -> None:
    global _gateway
    with _gateway_lock:
        _gateway = gateway


def get_client_ip(request: Request) -> str:
    """Get client IP address"""
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip

    return request.client.host if request.client else "unknown"


# ============================================
# Request / Response Models
# ============================================


class SessionCreateRequest(BaseModel):
    """Client signals not carried in standard headers"""

    screen_resolution: Optional[str] = Field(default=None, max_length=32)
    timezone: Optional[str] = Field(default=None, max_length=64)


class SessionCreated(BaseModel):
    session_id: str
    token: str
    device_fingerprint: str


class SessionView(BaseModel):
    session_id: str
    device_fingerprint: str
    ip_address: str
    user_agent: str
    created_at: datetime
    last_activity: datetime


class StepAccessGranted(BaseModel):
    allowed: bool
    step: dict


class SessionContext(BaseModel):
    session_id: str
    request_token: str
    device_fingerprint: str


def request_fingerprint(
    request: Request,
    x_screen_resolution: Optional[str] = Header(default=None, alias="X-Screen-Resolution"),
    x_timezone: Optional[str] = Header(default=None, alias="X-Timezone"),
) -> str:
    """Fingerprint of the calling device, recomputed from this request's headers"""
    return LearningGateway.device_fingerprint(
        request.headers.get("User-Agent", ""),
        request.headers.get("Accept-Language", ""),
        x_screen_resolution,
        x_timezone,
    )


def session_context(
    x_session_id: str = Header(..., alias="X-Session-Id"),
    x_request_token: str = Header(..., alias="X-Request-Token"),
    device_fingerprint: str = Depends(request_fingerprint),
) -> SessionContext:
    return SessionContext(session_id=x_session_id, request_token=x_request_token, device_fingerprint=device_fingerprint)


# ============================================
# Session Endpoints
# ============================================


@learning_router.post("/sessions", response_model=SessionCreated)
async def create_learning_session(
    body: SessionCreateRequest,
    request: Request,
    user_id: str = Depends(get_current_user_id),
    gateway: LearningGateway = Depends(get_gateway),
):
    """
    Open a learning session bound to the calling device.

    The device fingerprint is derived from User-Agent, Accept-Language and the
    screen resolution / timezone from the body, falling back to the
    X-Screen-Resolution / X-Timezone headers. Later requests must send the same
    values in those headers; the fingerprint is recomputed on every request.
    """
    user_agent = request.headers.get("User-Agent", "")
    fingerprint = gateway.device_fingerprint(
        user_agent,
        request.headers.get("Accept-Language", ""),
        body.screen_resolution or request.headers.get("X-Screen-Resolution"),
        body.timezone or request.headers.get("X-Timezone"),
    )

    session_id, token = gateway.create_session(user_id, fingerprint, get_client_ip(request), user_agent)
    return SessionCreated(session_id=session_id, token=token, device_fingerprint=fingerprint)


@learning_router.get("/sessions", response_model=List[SessionView])
async def list_learning_sessions(
    user_id: str = Depends(get_current_user_id),
    gateway: LearningGateway = Depends(get_gateway),
):
    """List the caller's active learning sessions"""
    return [
        SessionView(
            session_id=s.session_id,
            device_fingerprint=s.device_fingerprint,
            ip_address=s.ip_address,
            user_agent=s.user_agent,
            created_at=s.created_at,
            last_activity=s.last_activity,
        )
        for s in gateway.get_active_sessions(user_id)
    ]


@learning_router.delete("/sessions/{session_id}")
async def end_learning_session(
    session_id: str,
    user_id: str = Depends(get_current_user_id),
    gateway: LearningGateway = Depends(get_gateway),
):
    """Log out of one learning session"""
    return {"invalidated": gateway.invalidate_session(session_id, user_id)}


@learning_router.delete("/sessions")
async def end_all_learning_sessions(
    user_id: str = Depends(get_current_user_id),
    gateway: LearningGateway = Depends(get_gateway),
):
    """Log out of every learning session of the caller"""
    return {"invalidated": gateway.invalidate_all_sessions(user_id)}


# ============================================
# Step Endpoints
# ============================================


@learning_router.get("/steps/{step_id}/access", response_model=StepAccessGranted)
async def access_step(
    step_id: str,
    request: Request,
    context: SessionContext = Depends(session_context),
    user_id: str = Depends(get_current_user_id),
    gateway: LearningGateway = Depends(get_gateway),
):
    """
    Authorize content delivery for a step.

    Runs session/device validation, request token validation, anomaly checks
    and step sequencing; any failure is returned as 403/404/429.
    """
    client_ip = get_client_ip(request)
    gateway.record_api_access(user_id, request.url.path, request.method, client_ip, request.headers.get("User-Agent"))

    result = gateway.validate_content_access(
        user_id,
        step_id,
        context.session_id,
        context.request_token,
        context.device_fingerprint,
        client_ip,
    )
    return StepAccessGranted(allowed=True, step=result.step.model_dump())


@learning_router.post("/steps/{step_id}/completion", response_model=SubmissionResult)
async def submit_step_completion(
    step_id: str,
    telemetry: CompletionTelemetry,
    request: Request,
    context: SessionContext = Depends(session_context),
    user_id: str = Depends(get_current_user_id),
    gateway: LearningGateway = Depends(get_gateway),
):
    """Submit watch/read/scroll telemetry for a step"""
    client_ip = get_client_ip(request)
    gateway.record_api_access(user_id, request.url.path, request.method, client_ip, request.headers.get("User-Agent"))

    gateway.verify_request(
        user_id,
        context.session_id,
        context.request_token,
        context.device_fingerprint,
        client_ip,
        step_id,
    )
    return gateway.submit_completion(user_id, step_id, telemetry)


# ============================================
# Course Endpoints
# ============================================


@learning_router.get("/courses/{course_id}/steps", response_model=List[StepOverview])
async def list_course_steps(
    course_id: str,
    user_id: str = Depends(get_current_user_id),
    gateway: LearningGateway = Depends(get_gateway),
):
    """Steps of a course with lock and completion state for the caller"""
    return gateway.get_unlocked_steps(user_id, course_id)


@learning_router.get("/courses/{course_id}/progress", response_model=CourseProgress)
async def get_course_progress(
    course_id: str,
    user_id: str = Depends(get_current_user_id),
    gateway: LearningGateway = Depends(get_gateway),
):
    """The caller's assignment status and step progress for a course"""
    return gateway.get_course_progress(user_id, course_id)
