"""
Learning gateway

In-process entry point used by request handlers. Content access runs, in
order: session and device check, request token check, anomaly check, then
step sequencing. Every stage fails closed.
"""

import logging
from typing import List, Optional, Tuple, Union

from .audit import AuditLogger, AuditSink, LoggingAuditSink, SecurityEventType
from .config import Settings, get_settings
from .errors import AccessVerificationError, ProgressStoreError, TokenMismatchError
from .learning.access import StepAccessController
from .learning.evaluator import CompletionEvaluator
from .learning.models import (
    CompletionTelemetry,
    CourseProgress,
    StepAccessResult,
    StepOverview,
    StepTelemetry,
    SubmissionResult,
)
from .learning.progression import ProgressionService
from .learning.store import InMemoryProgressStore, ProgressStore
from .security.anomaly import AnomalyDetector, AnomalyReport
from .security.sessions import SessionInfo, SessionManager
from .security.tokens import TokenIssuer, generate_device_fingerprint

logger = logging.getLogger(__name__)


class LearningGateway:
    """Composes the session-security layer and the progression layer"""

    def __init__(
        self,
        store: ProgressStore,
        audit: AuditLogger,
        sessions: SessionManager,
        tokens: TokenIssuer,
        anomaly: AnomalyDetector,
        evaluator: CompletionEvaluator,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.store = store
        self.audit = audit
        self.sessions = sessions
        self.tokens = tokens
        self.anomaly = anomaly
        self.access = StepAccessController(store, audit)
        self.progression = ProgressionService(store, self.access, evaluator, audit)

    @classmethod
    def build(
        cls,
        settings: Optional[Settings] = None,
        store: Optional[ProgressStore] = None,
        audit_sink: Optional[AuditSink] = None,
    ) -> "LearningGateway":
        """Wire every component from settings; explicit store/sink override the configured ones"""
        settings = settings or get_settings()

        if store is None or audit_sink is None:
            if settings.PROGRESS_STORE == "mysql":
                from .learning.mysql_store import MySQLAuditSink, MySQLProgressStore

                store = store or MySQLProgressStore()
                audit_sink = audit_sink or MySQLAuditSink()
            else:
                store = store or InMemoryProgressStore()
                audit_sink = audit_sink or LoggingAuditSink()

        audit = AuditLogger(audit_sink)
        tokens = TokenIssuer.from_settings(settings)
        return cls(
            store=store,
            audit=audit,
            sessions=SessionManager.from_settings(tokens, audit, settings),
            tokens=tokens,
            anomaly=AnomalyDetector.from_settings(audit, settings),
            evaluator=CompletionEvaluator.from_settings(settings),
            settings=settings,
        )

    # ============================================
    # Sessions
    # ============================================

    def create_session(
        self, user_id: str, device_fingerprint: str, ip_address: str, user_agent: str
    ) -> Tuple[str, str]:
        return self.sessions.create_session(user_id, device_fingerprint, ip_address, user_agent)

    def invalidate_session(self, session_id: str, user_id: str) -> bool:
        return self.sessions.invalidate_session(session_id, user_id)

    def invalidate_all_sessions(self, user_id: str) -> int:
        return self.sessions.invalidate_all_sessions(user_id)

    def get_active_sessions(self, user_id: str) -> List[SessionInfo]:
        return self.sessions.get_active_sessions(user_id)

    def cleanup_expired_sessions(self, max_age_minutes: Optional[int] = None) -> int:
        if max_age_minutes is None:
            max_age_minutes = self.settings.SESSION_IDLE_TIMEOUT_MINUTES
        removed = self.sessions.cleanup_expired_sessions(max_age_minutes)
        self.anomaly.prune()
        return removed

    @staticmethod
    def device_fingerprint(
        user_agent: str,
        accept_language: str,
        screen_resolution: Optional[str] = None,
        timezone: Optional[str] = None,
    ) -> str:
        return generate_device_fingerprint(user_agent, accept_language, screen_resolution, timezone)

    # ============================================
    # Request verification
    # ============================================

    def verify_request(
        self,
        user_id: str,
        session_id: str,
        request_token: Optional[str],
        device_fingerprint: str,
        ip_address: str,
        step_id: Optional[str] = None,
    ) -> None:
        """
        Session, device and token checks shared by every learning-area request

        Raises:
            SessionNotFoundError / SessionHijackError / DeviceMismatchError
            TokenMismatchError
        """
        self.sessions.validate_session(session_id, user_id, device_fingerprint, ip_address)

        if not self.tokens.verify(request_token, session_id, user_id, device_fingerprint):
            self.audit.security_event(
                user_id,
                SecurityEventType.TOKEN_MISMATCH,
                ip_address=ip_address,
                sessionId=session_id,
                stepId=step_id,
            )
            logger.warning(
                f"Token mismatch on session {session_id} for user {user_id}",
                extra={"user_id": user_id, "session_id": session_id, "ip_address": ip_address},
            )
            raise TokenMismatchError("Invalid request token")

    def validate_content_access(
        self,
        user_id: str,
        step_id: str,
        session_id: str,
        request_token: Optional[str],
        device_fingerprint: str,
        ip_address: str,
    ) -> StepAccessResult:
        """
        Full content-access pipeline

        Returns:
            An allowed StepAccessResult carrying the step's metadata

        Raises:
            NotFoundError, ForbiddenError or RateLimitedError subclasses;
            nothing is ever returned for a denied request
        """
        self.verify_request(user_id, session_id, request_token, device_fingerprint, ip_address, step_id)

        report: AnomalyReport = self.anomaly.check_suspicious(user_id, step_id, ip_address)
        if report.warnings:
            logger.info(f"Content access for user {user_id} proceeding with warnings: {report.warnings}")

        try:
            result = self.access.require_access(user_id, step_id)
        except ProgressStoreError as e:
            logger.error(
                f"Could not verify access to step {step_id} for user {user_id}: {e}",
                extra={"user_id": user_id, "session_id": session_id, "step_id": step_id},
            )
            raise AccessVerificationError(
                "Unable to verify access to this step. Please try again later.", context={"step_id": step_id}
            ) from e

        self.audit.content_access(user_id, step_id, session_id, ip_address)
        return result

    # ============================================
    # Progression
    # ============================================

    def can_access_step(self, user_id: str, step_id: str) -> StepAccessResult:
        return self.access.can_access_step(user_id, step_id)

    def submit_completion(
        self,
        user_id: str,
        step_id: str,
        telemetry: Union[CompletionTelemetry, StepTelemetry, dict, None] = None,
    ) -> SubmissionResult:
        return self.progression.submit_completion(user_id, step_id, telemetry)

    def get_unlocked_steps(self, user_id: str, course_id: str) -> List[StepOverview]:
        return self.access.get_unlocked_steps(user_id, course_id)

    def get_course_progress(self, user_id: str, course_id: str) -> CourseProgress:
        return self.access.get_course_progress(user_id, course_id)

    def record_api_access(
        self, user_id: str, endpoint: str, method: str, ip_address: Optional[str], user_agent: Optional[str]
    ) -> bool:
        return self.audit.api_access(user_id, endpoint, method, ip_address, user_agent)
