"""
Integration tests for the content-access pipeline
"""

import pytest

from medgate.audit import AuditEventType, SecurityEventType
from medgate.errors import (
    AccessVerificationError,
    DeviceMismatchError,
    ProgressStoreError,
    RapidAccessError,
    SessionNotFoundError,
    StepLockedError,
    TokenMismatchError,
)
from medgate.gateway import LearningGateway
from medgate.learning.store import InMemoryProgressStore

from .conftest import USER_ID

FINGERPRINT = LearningGateway.device_fingerprint("Mozilla/5.0", "en-US", "1920x1080", "UTC")


@pytest.fixture
def session(gateway):
    session_id, token = gateway.create_session(USER_ID, FINGERPRINT, "10.0.0.1", "Mozilla/5.0")
    return session_id, token


class TestValidateContentAccess:
    """Test the ordered access checks"""

    def test_open_step_is_granted(self, gateway, session, audit_sink):
        session_id, token = session

        result = gateway.validate_content_access(USER_ID, "step-1", session_id, token, FINGERPRINT, "10.0.0.1")

        assert result.allowed is True
        assert result.step.step_id == "step-1"
        assert audit_sink.events(AuditEventType.CONTENT_ACCESS.value)[0].entity_id == "step-1"

    def test_locked_step_is_denied(self, gateway, session):
        session_id, token = session

        with pytest.raises(StepLockedError):
            gateway.validate_content_access(USER_ID, "step-2", session_id, token, FINGERPRINT, "10.0.0.1")

    def test_device_mismatch_reported_before_token(self, gateway, session):
        session_id, token = session

        with pytest.raises(DeviceMismatchError):
            gateway.validate_content_access(USER_ID, "step-1", session_id, token, "other-device", "10.0.0.1")

    def test_wrong_token(self, gateway, session, audit_sink):
        session_id, _ = session

        with pytest.raises(TokenMismatchError):
            gateway.validate_content_access(USER_ID, "step-1", session_id, "forged", FINGERPRINT, "10.0.0.1")

        assert audit_sink.events(SecurityEventType.TOKEN_MISMATCH.value)

    def test_unknown_session(self, gateway):
        with pytest.raises(SessionNotFoundError):
            gateway.validate_content_access(USER_ID, "step-1", "missing", "token", FINGERPRINT, "10.0.0.1")

    def test_rapid_access_is_rejected(self, gateway, session):
        session_id, token = session
        for _ in range(10):
            gateway.validate_content_access(USER_ID, "step-1", session_id, token, FINGERPRINT, "10.0.0.1")

        with pytest.raises(RapidAccessError):
            gateway.validate_content_access(USER_ID, "step-1", session_id, token, FINGERPRINT, "10.0.0.1")

    def test_storage_failure_denies(self, audit, settings):
        class FailingStore(InMemoryProgressStore):
            def get_student_id(self, user_id):
                raise ProgressStoreError("database unavailable")

        gateway = LearningGateway.build(settings=settings, store=FailingStore(), audit_sink=audit.sink)
        session_id, token = gateway.create_session(USER_ID, FINGERPRINT, "10.0.0.1", "UA")

        with pytest.raises(AccessVerificationError) as exc_info:
            gateway.validate_content_access(USER_ID, "step-1", session_id, token, FINGERPRINT, "10.0.0.1")

        assert exc_info.value.status_code == 403


class TestSessionLifecycle:
    """Test logout through the gateway"""

    def test_logout_then_access_fails(self, gateway, session):
        session_id, token = session

        assert gateway.invalidate_session(session_id, USER_ID) is True

        with pytest.raises(SessionNotFoundError):
            gateway.validate_content_access(USER_ID, "step-1", session_id, token, FINGERPRINT, "10.0.0.1")

    def test_cleanup_uses_configured_idle_timeout(self, gateway, session):
        assert gateway.cleanup_expired_sessions() == 0
        assert len(gateway.get_active_sessions(USER_ID)) == 1


class TestBuild:
    """Test wiring from settings"""

    def test_memory_build(self, settings):
        gateway = LearningGateway.build(settings=settings)

        assert isinstance(gateway.store, InMemoryProgressStore)
        assert gateway.sessions.max_concurrent_sessions == settings.MAX_CONCURRENT_SESSIONS
        assert gateway.anomaly.rapid_access_threshold == settings.RAPID_ACCESS_THRESHOLD
