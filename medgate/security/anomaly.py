"""
Access-pattern anomaly detection

Keeps a trailing window of content accesses per user. Too many accesses in the
window is treated as automation and rejected; too many distinct source IPs is
only reported, since VPN and proxy rotation produce the same pattern.
"""

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Deque, Dict, List, Optional, Tuple

from ..audit import AuditLogger, SecurityEventType
from ..config import Settings, get_settings
from ..errors import RapidAccessError

logger = logging.getLogger(__name__)


@dataclass
class AnomalyReport:
    request_count: int
    distinct_ips: int
    warnings: List[str] = field(default_factory=list)


class AnomalyDetector:
    """Rate and pattern checks over recent content accesses"""

    def __init__(
        self,
        audit: AuditLogger,
        window_seconds: int = 60,
        rapid_access_threshold: int = 10,
        multi_ip_threshold: int = 3,
        clock: Callable[[], float] = time.time,
    ):
        self.audit = audit
        self.window_seconds = window_seconds
        self.rapid_access_threshold = rapid_access_threshold
        self.multi_ip_threshold = multi_ip_threshold
        self._clock = clock

        self._lock = threading.Lock()
        self._history: Dict[str, Deque[Tuple[float, Optional[str]]]] = {}

    @classmethod
    def from_settings(cls, audit: AuditLogger, settings: Optional[Settings] = None) -> "AnomalyDetector":
        settings = settings or get_settings()
        return cls(
            audit,
            window_seconds=settings.ANOMALY_WINDOW_SECONDS,
            rapid_access_threshold=settings.RAPID_ACCESS_THRESHOLD,
            multi_ip_threshold=settings.MULTI_IP_THRESHOLD,
        )

    def check_suspicious(self, user_id: str, step_id: str, ip_address: Optional[str]) -> AnomalyReport:
        """
        Record this access and inspect the user's trailing window

        Raises:
            RapidAccessError: more than ``rapid_access_threshold`` accesses in the window
        """
        now = self._clock()
        window_start = now - self.window_seconds

        with self._lock:
            history = self._history.setdefault(user_id, deque())
            while history and history[0][0] <= window_start:
                history.popleft()

            request_count = len(history) + 1
            rapid = request_count > self.rapid_access_threshold
            if not rapid:
                # Rejected accesses are not recorded
                history.append((now, ip_address))
            elif not history:
                del self._history[user_id]

            distinct_ips = {ip for _, ip in history if ip}
            if ip_address:
                distinct_ips.add(ip_address)

        if rapid:
            self.audit.security_event(
                user_id,
                SecurityEventType.RAPID_ACCESS_DETECTED,
                ip_address=ip_address,
                requestCount=request_count,
                stepId=step_id,
            )
            logger.warning(f"Rapid access detected for user {user_id}: {request_count} requests in {self.window_seconds}s")
            raise RapidAccessError(
                "Too many requests. Please slow down.",
                retry_after=self.window_seconds,
                context={"request_count": request_count},
            )

        report = AnomalyReport(request_count=request_count, distinct_ips=len(distinct_ips))

        if len(distinct_ips) > self.multi_ip_threshold:
            # Logged only; could be VPN usage
            self.audit.security_event(
                user_id,
                SecurityEventType.MULTIPLE_IP_ADDRESSES,
                ip_address=ip_address,
                ipCount=len(distinct_ips),
                ips=sorted(distinct_ips),
                stepId=step_id,
            )
            logger.warning(f"User {user_id} accessed content from {len(distinct_ips)} IPs in {self.window_seconds}s")
            report.warnings.append(SecurityEventType.MULTIPLE_IP_ADDRESSES.value)

        return report

    def reset(self, user_id: str) -> None:
        with self._lock:
            self._history.pop(user_id, None)

    def prune(self) -> int:
        """Drop users with no access inside the window; returns how many"""
        window_start = self._clock() - self.window_seconds

        with self._lock:
            idle = [
                user_id
                for user_id, history in self._history.items()
                if not history or history[-1][0] <= window_start
            ]
            for user_id in idle:
                del self._history[user_id]

        if idle:
            logger.debug(f"Dropped access history for {len(idle)} idle users")
        return len(idle)

    def tracked_users(self) -> int:
        with self._lock:
            return len(self._history)
