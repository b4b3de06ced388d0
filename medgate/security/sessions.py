"""
Learning session registry

In-process map of active sessions with a per-user concurrency cap and device
binding. All mutations of the map and the per-user counters happen under the
registry lock; check-then-create for one user is additionally serialized by a
per-user lock so two simultaneous logins cannot both pass the cap check.
"""

import logging
import threading
import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Tuple

from ..audit import AuditLogger, SecurityEventType
from ..config import Settings, get_settings
from ..errors import DeviceMismatchError, SessionHijackError, SessionLimitError, SessionNotFoundError
from ..utils import KeyedLock, utcnow
from .tokens import TokenIssuer

logger = logging.getLogger(__name__)


@dataclass
class SessionInfo:
    session_id: str
    user_id: str
    device_fingerprint: str
    ip_address: str
    user_agent: str
    created_at: datetime
    last_activity: datetime


class SessionManager:
    """Concurrency-capped, device-bound learning sessions"""

    def __init__(
        self,
        tokens: TokenIssuer,
        audit: AuditLogger,
        max_concurrent_sessions: int = 2,
        clock: Callable[[], datetime] = utcnow,
    ):
        if max_concurrent_sessions < 1:
            raise ValueError("max_concurrent_sessions must be at least 1")
        self.tokens = tokens
        self.audit = audit
        self.max_concurrent_sessions = max_concurrent_sessions
        self._clock = clock

        self._registry_lock = threading.Lock()
        self._user_locks = KeyedLock()
        self._active_sessions: Dict[str, SessionInfo] = {}
        self._user_session_count: Dict[str, int] = {}

    @classmethod
    def from_settings(
        cls, tokens: TokenIssuer, audit: AuditLogger, settings: Optional[Settings] = None
    ) -> "SessionManager":
        settings = settings or get_settings()
        return cls(tokens, audit, max_concurrent_sessions=settings.MAX_CONCURRENT_SESSIONS)

    def create_session(
        self, user_id: str, device_fingerprint: str, ip_address: str, user_agent: str
    ) -> Tuple[str, str]:
        """
        Create a learning session bound to a device

        Returns:
            (session_id, token)

        Raises:
            SessionLimitError: the user already holds the maximum number of sessions
        """
        with self._user_locks.hold(user_id):
            with self._registry_lock:
                current_sessions = self._user_session_count.get(user_id, 0)

            if current_sessions >= self.max_concurrent_sessions:
                # Potential credential sharing
                self.audit.security_event(
                    user_id,
                    SecurityEventType.CONCURRENT_SESSION_LIMIT,
                    ip_address=ip_address,
                    attemptedDeviceFingerprint=device_fingerprint,
                    currentSessions=current_sessions,
                )
                logger.warning(f"Session limit reached for user {user_id} ({current_sessions} active)")
                raise SessionLimitError(
                    "Maximum concurrent sessions reached. Please log out from another device.",
                    context={"max_sessions": self.max_concurrent_sessions, "active_sessions": current_sessions},
                )

            session_id = str(uuid.uuid4())
            token = self.tokens.token(session_id, user_id, device_fingerprint)
            now = self._clock()

            with self._registry_lock:
                self._active_sessions[session_id] = SessionInfo(
                    session_id=session_id,
                    user_id=user_id,
                    device_fingerprint=device_fingerprint,
                    ip_address=ip_address,
                    user_agent=user_agent,
                    created_at=now,
                    last_activity=now,
                )
                self._user_session_count[user_id] = self._user_session_count.get(user_id, 0) + 1

        self.audit.security_event(
            user_id,
            SecurityEventType.SESSION_CREATED,
            ip_address=ip_address,
            sessionId=session_id,
            deviceFingerprint=device_fingerprint,
        )
        logger.info(f"Learning session {session_id} created for user {user_id}")

        return session_id, token

    def validate_session(self, session_id: str, user_id: str, device_fingerprint: str, ip_address: str) -> bool:
        """
        Check existence, then owner, then device binding; refreshes last activity

        Raises:
            SessionNotFoundError: no such active session
            SessionHijackError: session belongs to another user
            DeviceMismatchError: session was created on another device
        """
        with self._registry_lock:
            session = self._active_sessions.get(session_id)
            snapshot = replace(session) if session else None

        if snapshot is None:
            self.audit.security_event(
                user_id,
                SecurityEventType.INVALID_SESSION,
                ip_address=ip_address,
                sessionId=session_id,
                deviceFingerprint=device_fingerprint,
            )
            raise SessionNotFoundError("Session not found or expired", context={"session_id": session_id})

        if snapshot.user_id != user_id:
            self.audit.security_event(
                user_id,
                SecurityEventType.SESSION_HIJACK_ATTEMPT,
                ip_address=ip_address,
                sessionId=session_id,
                expectedUserId=snapshot.user_id,
                attemptedUserId=user_id,
            )
            logger.warning(f"Session {session_id} presented by user {user_id}, owned by {snapshot.user_id}")
            raise SessionHijackError("Session validation failed")

        if snapshot.device_fingerprint != device_fingerprint:
            self.audit.security_event(
                user_id,
                SecurityEventType.DEVICE_MISMATCH,
                ip_address=ip_address,
                sessionId=session_id,
                expectedFingerprint=snapshot.device_fingerprint,
                attemptedFingerprint=device_fingerprint,
            )
            logger.warning(f"Device mismatch on session {session_id} for user {user_id}")
            raise DeviceMismatchError("Device mismatch detected. Please re-authenticate.")

        with self._registry_lock:
            # May have been invalidated meanwhile; then there is nothing to refresh
            live = self._active_sessions.get(session_id)
            if live is None:
                raise SessionNotFoundError("Session not found or expired", context={"session_id": session_id})
            live.last_activity = self._clock()

        return True

    def invalidate_session(self, session_id: str, user_id: str) -> bool:
        """Remove one of the user's sessions; returns False if it was not theirs or not active"""
        with self._user_locks.hold(user_id):
            with self._registry_lock:
                session = self._active_sessions.get(session_id)
                if session is None or session.user_id != user_id:
                    return False
                del self._active_sessions[session_id]
                self._decrement(user_id)

        self.audit.security_event(user_id, SecurityEventType.SESSION_INVALIDATED, sessionId=session_id)
        logger.info(f"Learning session {session_id} invalidated for user {user_id}")
        return True

    def invalidate_all_sessions(self, user_id: str) -> int:
        """Remove every session of a user; returns how many were removed"""
        with self._user_locks.hold(user_id):
            with self._registry_lock:
                owned = [sid for sid, s in self._active_sessions.items() if s.user_id == user_id]
                for sid in owned:
                    del self._active_sessions[sid]
                self._user_session_count.pop(user_id, None)

        self.audit.security_event(user_id, SecurityEventType.ALL_SESSIONS_INVALIDATED, count=len(owned))
        logger.info(f"Invalidated {len(owned)} learning sessions for user {user_id}")
        return len(owned)

    def get_active_sessions(self, user_id: str) -> List[SessionInfo]:
        with self._registry_lock:
            return [replace(s) for s in self._active_sessions.values() if s.user_id == user_id]

    def active_session_count(self, user_id: str) -> int:
        with self._registry_lock:
            return self._user_session_count.get(user_id, 0)

    def get_session(self, session_id: str) -> Optional[SessionInfo]:
        with self._registry_lock:
            session = self._active_sessions.get(session_id)
            return replace(session) if session else None

    def cleanup_expired_sessions(self, max_age_minutes: int = 30) -> int:
        """Remove sessions idle longer than the cutoff; returns how many were removed"""
        cutoff = self._clock() - timedelta(minutes=max_age_minutes)

        with self._registry_lock:
            expired = [s for s in self._active_sessions.values() if s.last_activity < cutoff]
            for session in expired:
                del self._active_sessions[session.session_id]
                self._decrement(session.user_id)

        for session in expired:
            self.audit.security_event(
                session.user_id,
                SecurityEventType.SESSION_EXPIRED,
                sessionId=session.session_id,
                lastActivity=session.last_activity.isoformat(),
            )

        if expired:
            logger.info(f"Cleaned up {len(expired)} idle learning sessions")
        return len(expired)

    def _decrement(self, user_id: str) -> None:
        # Caller holds the registry lock
        remaining = max(0, self._user_session_count.get(user_id, 0) - 1)
        if remaining:
            self._user_session_count[user_id] = remaining
        else:
            self._user_session_count.pop(user_id, None)
