"""Account authentication: bcrypt passwords and Bearer JWTs for marketers and creators."""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone

import bcrypt
from fastapi import Header
from jose import JWTError, jwt

from creatordeals.config import settings
from creatordeals.core.exceptions import UnauthorizedError


def hash_password(password: str) -> str:
    """Hash a password using bcrypt."""
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, hashed: str | None) -> bool:
    """Verify a password against a bcrypt hash. Accounts without a password never match."""
    if not hashed:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Stored value is not a bcrypt hash
        return False


def create_user_token(user_id: str, phone: str, user_type: str) -> str:
    """Create a JWT for a marketer or creator (type=user)."""
    now = datetime.now(timezone.utc)
    payload = {
        "sub": user_id,
        "phone": phone,
        "user_type": user_type,
        "type": "user",
        "jti": str(uuid.uuid4()),
        "exp": now + timedelta(hours=settings.jwt_expire_hours),
        "iat": now,
    }
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> dict:
    """Decode and validate a user JWT. Raises UnauthorizedError if invalid."""
    try:
        payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError as exc:
        raise UnauthorizedError("Invalid or expired token") from exc
    if payload.get("type") != "user":
        raise UnauthorizedError("Not a user token")
    if not payload.get("sub"):
        raise UnauthorizedError("Token missing subject")
    return payload


def get_current_user_id(authorization: str | None = Header(default=None)) -> str:
    """Extract user_id from Authorization: Bearer <token>."""
    if not authorization:
        raise UnauthorizedError("Missing Authorization header")
    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise UnauthorizedError("Authorization header must be: Bearer <token>")
    return decode_token(parts[1])["sub"]


__all__ = [
    "create_user_token",
    "decode_token",
    "get_current_user_id",
    "hash_password",
    "verify_password",
]
