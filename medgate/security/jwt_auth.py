"""
JWT Authentication for the learning area
Identifies the calling user; session binding is layered on top by SessionManager
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import HTTPException, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ..config import Settings, get_settings

logger = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"
_DEV_FALLBACK_SECRET = "dev-jwt-secret-please-set-JWT_SECRET"  # nosec B105

security = HTTPBearer()


def _jwt_secret(settings: Optional[Settings] = None) -> str:
    settings = settings or get_settings()
    if settings.JWT_SECRET:
        return settings.JWT_SECRET
    if settings.is_production:
        raise RuntimeError("JWT_SECRET must be set to a strong secret in production")
    logger.warning("JWT_SECRET not set; using development fallback secret")
    return _DEV_FALLBACK_SECRET


def create_access_token(user_id: str, role: str = "STUDENT", settings: Optional[Settings] = None) -> str:
    """
    Create JWT access token

    Args:
        user_id: Account identifier
        role: Tenant role of the account

    Returns:
        JWT token string
    """
    settings = settings or get_settings()
    now = datetime.now(timezone.utc)
    expiration = now + timedelta(hours=settings.JWT_EXPIRATION_HOURS)

    payload = {"sub": user_id, "role": role, "exp": expiration, "iat": now}

    return jwt.encode(payload, _jwt_secret(settings), algorithm=JWT_ALGORITHM)


def verify_token(token: str, settings: Optional[Settings] = None) -> dict:
    """
    Verify and decode JWT token

    Raises:
        HTTPException: If token is invalid or expired
    """
    try:
        payload: dict = jwt.decode(token, _jwt_secret(settings), algorithms=[JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token has expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")

    if not payload.get("sub"):
        raise HTTPException(status_code=401, detail="Invalid token")
    return payload


def get_current_user(credentials: HTTPAuthorizationCredentials = Security(security)) -> dict:
    """Get current user claims from the bearer token"""
    return verify_token(credentials.credentials)


def get_current_user_id(credentials: HTTPAuthorizationCredentials = Security(security)) -> str:
    """Get the current user's id from the bearer token"""
    return verify_token(credentials.credentials)["sub"]
