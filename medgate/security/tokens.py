"""
Request tokens and device fingerprints

A request token is an HMAC-SHA256 over ``session_id:user_id:device_fingerprint``.
It is recomputed on every request and compared with the presented value, so a
session id alone (or a token lifted from another device) is never enough.
"""

import hashlib
import hmac
import logging
from typing import Optional

from ..config import Settings, get_settings

logger = logging.getLogger(__name__)

FINGERPRINT_LENGTH = 32
_DEV_FALLBACK_SECRET = "dev-session-token-secret-please-set-SESSION_TOKEN_SECRET"  # nosec B105


def generate_device_fingerprint(
    user_agent: str,
    accept_language: str,
    screen_resolution: Optional[str] = None,
    timezone: Optional[str] = None,
) -> str:
    """
    Derive a stable device fingerprint from client signals

    Identical inputs always produce the identical 32-character hex digest.
    """
    components = [
        user_agent or "",
        accept_language or "",
        screen_resolution or "unknown",
        timezone or "unknown",
    ]
    return hashlib.sha256("|".join(components).encode("utf-8")).hexdigest()[:FINGERPRINT_LENGTH]


class TokenIssuer:
    """Mints and verifies context-bound request tokens"""

    def __init__(self, secret: str):
        if not secret:
            raise ValueError("TokenIssuer requires a non-empty secret")
        self._key = secret.encode("utf-8")

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "TokenIssuer":
        settings = settings or get_settings()
        secret = settings.SESSION_TOKEN_SECRET
        if not secret:
            if settings.is_production:
                raise RuntimeError("SESSION_TOKEN_SECRET must be set to a strong secret in production")
            # Development fallback only (avoid breaking local setups)
            logger.warning("SESSION_TOKEN_SECRET not set; using development fallback secret")
            secret = _DEV_FALLBACK_SECRET
        return cls(secret)

    def token(self, session_id: str, user_id: str, device_fingerprint: str) -> str:
        """Deterministic token for the (session, user, device) triple"""
        data = f"{session_id}:{user_id}:{device_fingerprint}"
        return hmac.new(self._key, data.encode("utf-8"), hashlib.sha256).hexdigest()

    def verify(self, presented: Optional[str], session_id: str, user_id: str, device_fingerprint: str) -> bool:
        """Constant-time comparison of a presented token against the expected one"""
        if not presented:
            return False
        expected = self.token(session_id, user_id, device_fingerprint)
        return hmac.compare_digest(expected.encode("utf-8"), presented.encode("utf-8"))
