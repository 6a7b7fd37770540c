"""
Password hashing (bcrypt), JWT access/refresh tokens (python-jose) and
invitation tokens.
"""

import secrets
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Optional
from uuid import UUID

import bcrypt
from jose import jwt

from nitpickr.config.settings import get_settings

settings = get_settings()


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, hashed_password: str) -> bool:
    """True if ``password`` matches; a malformed hash never matches."""
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed_password.encode("utf-8"))
    except ValueError:
        return False


def _encode(claims: dict[str, Any], token_type: str, lifetime: timedelta) -> str:
    issued_at = datetime.now(timezone.utc)
    claims = {
        **claims,
        "type": token_type,
        "iat": issued_at,
        "exp": issued_at + lifetime,
        # Distinguishes tokens issued within the same second
        "jti": str(uuid.uuid4()),
    }
    return jwt.encode(claims, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def create_access_token(user_id: UUID, email: str, expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a JWT access token carrying the user id (``sub``) and email.

    Args:
        user_id: User UUID
        email: User email
        expires_delta: Lifetime; defaults to ``access_token_expire_minutes``
    """
    lifetime = expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    return _encode({"sub": str(user_id), "email": email}, "access", lifetime)


def create_refresh_token(user_id: UUID, expires_delta: Optional[timedelta] = None) -> str:
    """Create a long-lived JWT refresh token; it carries only the user id."""
    lifetime = expires_delta or timedelta(days=settings.refresh_token_expire_days)
    return _encode({"sub": str(user_id)}, "refresh", lifetime)


def verify_token(token: str, token_type: str = "access") -> dict:
    """
    Decode a JWT and check its ``type`` claim.

    Raises:
        JWTError: If the token is malformed, badly signed or expired
        ValueError: If the token is not of ``token_type``
    """
    payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])

    actual_type = payload.get("type")
    if actual_type != token_type:
        raise ValueError(f"Invalid token type. Expected {token_type}, got {actual_type}")
    return payload


def generate_invitation_token() -> str:
    """Random URL-safe token for team invitations."""
    return secrets.token_urlsafe(32)
