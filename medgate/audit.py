"""
Audit trail contract

The gating layer only appends to the audit trail. A failed append is logged to
a fallback channel and never interrupts the operation that produced it.
"""

import json
import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from .logger_config import AUDIT_FALLBACK_LOGGER_NAME, AUDIT_LOGGER_NAME
from .utils import utcnow

logger = logging.getLogger(__name__)
fallback_logger = logging.getLogger(AUDIT_FALLBACK_LOGGER_NAME)


class SecurityEventType(str, Enum):
    """Security event tags written under entity type ``SecurityEvent``"""

    SESSION_CREATED = "SESSION_CREATED"
    SESSION_INVALIDATED = "SESSION_INVALIDATED"
    ALL_SESSIONS_INVALIDATED = "ALL_SESSIONS_INVALIDATED"
    SESSION_EXPIRED = "SESSION_EXPIRED"
    CONCURRENT_SESSION_LIMIT = "CONCURRENT_SESSION_LIMIT"
    INVALID_SESSION = "INVALID_SESSION"
    SESSION_HIJACK_ATTEMPT = "SESSION_HIJACK_ATTEMPT"
    DEVICE_MISMATCH = "DEVICE_MISMATCH"
    TOKEN_MISMATCH = "TOKEN_MISMATCH"
    RAPID_ACCESS_DETECTED = "RAPID_ACCESS_DETECTED"
    MULTIPLE_IP_ADDRESSES = "MULTIPLE_IP_ADDRESSES"


class AuditEventType(str, Enum):
    """Non-security audit tags"""

    BLOCKED_ACCESS = "BLOCKED_ACCESS"
    STEP_COMPLETED = "STEP_COMPLETED"
    CONTENT_ACCESS = "CONTENT_ACCESS"
    API_ACCESS = "API_ACCESS"


class AuditEntry(BaseModel):
    """One append-only audit record"""

    user_id: str
    event_type: str
    entity_type: str
    entity_id: str
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    description: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=utcnow)


class AuditSink(ABC):
    """Append-only destination for audit entries"""

    @abstractmethod
    def append(self, entry: AuditEntry) -> None:
        ...


class LoggingAuditSink(AuditSink):
    """Writes each entry as one JSON line on the audit logger"""

    def __init__(self, logger_name: str = AUDIT_LOGGER_NAME):
        self._logger = logging.getLogger(logger_name)

    def append(self, entry: AuditEntry) -> None:
        self._logger.info(json.dumps(entry.model_dump(mode="json"), sort_keys=True))


class InMemoryAuditSink(AuditSink):
    """Keeps entries in a list; useful for tests and local runs"""

    def __init__(self):
        self._lock = threading.Lock()
        self.entries: List[AuditEntry] = []

    def append(self, entry: AuditEntry) -> None:
        with self._lock:
            self.entries.append(entry)

    def events(self, event_type: Optional[str] = None) -> List[AuditEntry]:
        with self._lock:
            if event_type is None:
                return list(self.entries)
            return [e for e in self.entries if e.event_type == event_type]


class AuditLogger:
    """Fire-and-forget facade over an AuditSink"""

    def __init__(self, sink: AuditSink):
        self.sink = sink

    def record(self, entry: AuditEntry) -> bool:
        """Append an entry; returns False (after logging) if the sink failed"""
        try:
            self.sink.append(entry)
            return True
        except Exception as e:
            fallback_logger.error(
                f"Audit write failed for {entry.event_type} ({entry.entity_type}/{entry.entity_id}): {e} | "
                f"{json.dumps(entry.model_dump(mode='json'), sort_keys=True)}"
            )
            return False

    def security_event(
        self,
        user_id: str,
        event_type: SecurityEventType,
        ip_address: Optional[str] = None,
        **metadata: Any,
    ) -> bool:
        event = SecurityEventType(event_type).value
        return self.record(
            AuditEntry(
                user_id=user_id,
                event_type=event,
                entity_type="SecurityEvent",
                entity_id=event,
                ip_address=ip_address,
                description=f"Security event: {event}",
                metadata={"eventType": event, **metadata},
            )
        )

    def blocked_access(self, user_id: str, student_id: str, attempted_step_id: str, blocked_by_step_id: str) -> bool:
        return self.record(
            AuditEntry(
                user_id=user_id,
                event_type=AuditEventType.BLOCKED_ACCESS.value,
                entity_type="BlockedAccess",
                entity_id=attempted_step_id,
                description="Attempted to access locked step",
                metadata={
                    "studentId": student_id,
                    "attemptedStepId": attempted_step_id,
                    "blockedByStepId": blocked_by_step_id,
                },
            )
        )

    def step_completed(self, user_id: str, step_id: str, step_order: int, step_type: str, completion_percent: int) -> bool:
        return self.record(
            AuditEntry(
                user_id=user_id,
                event_type=AuditEventType.STEP_COMPLETED.value,
                entity_type="StepProgress",
                entity_id=step_id,
                description=f"Completed step {step_order} in course",
                metadata={"stepType": step_type, "completionPercent": completion_percent},
            )
        )

    def content_access(self, user_id: str, step_id: str, session_id: str, ip_address: Optional[str]) -> bool:
        return self.record(
            AuditEntry(
                user_id=user_id,
                event_type=AuditEventType.CONTENT_ACCESS.value,
                entity_type="ContentAccess",
                entity_id=step_id,
                ip_address=ip_address,
                metadata={"sessionId": session_id},
            )
        )

    def api_access(self, user_id: str, endpoint: str, method: str, ip_address: Optional[str], user_agent: Optional[str]) -> bool:
        return self.record(
            AuditEntry(
                user_id=user_id,
                event_type=AuditEventType.API_ACCESS.value,
                entity_type="ApiAccess",
                entity_id=endpoint,
                ip_address=ip_address,
                user_agent=user_agent,
                description=f"API {method} {endpoint}",
                metadata={"method": method, "endpoint": endpoint},
            )
        )
