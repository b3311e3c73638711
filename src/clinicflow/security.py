"""
Password hashing, bearer tokens and the current-user dependencies.
"""
from __future__ import annotations

import hashlib
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import UUID

import bcrypt
from fastapi import Depends, Header, Request
from jose import JWTError, jwt
from sqlalchemy.ext.asyncio import AsyncSession

from clinicflow.config import get_settings
from clinicflow.core.errors import AuthenticationError, PermissionDeniedError
from clinicflow.core.logging import user_id_ctx
from clinicflow.db import get_session
from clinicflow.models import User


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: str | None) -> bool:
    if not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # malformed stored hash
        return False


def hash_token(raw_token: str) -> str:
    """SHA-256 hex of a one-time token; only the digest is stored."""
    return hashlib.sha256(raw_token.encode()).hexdigest()


def new_url_token() -> str:
    return secrets.token_urlsafe(32)


def create_access_token(user: User) -> str:
    settings = get_settings()
    now = datetime.now(timezone.utc)
    expire = now + timedelta(days=settings.ACCESS_TOKEN_EXPIRE_DAYS)

    payload: dict[str, Any] = {
        "sub": str(user.id),
        "email": user.email,
        "role": user.role,
        "iat": int(now.timestamp()),
        "exp": int(expire.timestamp()),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str) -> dict[str, Any]:
    settings = get_settings()
    try:
        return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except JWTError as e:
        raise AuthenticationError("Invalid or expired token") from e


async def get_current_user(
    request: Request,
    authorization: str | None = Header(default=None),
    session: AsyncSession = Depends(get_session),
) -> User:
    """
    FastAPI dependency: resolves the bearer token to an active user.

    Sets request.state.user_id so check_rate_limit can key on it.
    """
    if not authorization or not authorization.lower().startswith("bearer "):
        raise AuthenticationError("Missing bearer token")

    payload = decode_access_token(authorization[7:].strip())
    try:
        user_id = UUID(str(payload.get("sub")))
    except ValueError as e:
        raise AuthenticationError("Invalid or expired token") from e

    user = await session.get(User, user_id)
    if user is None or not user.is_active:
        raise AuthenticationError("User not found or inactive")

    request.state.user_id = str(user.id)
    user_id_ctx.set(str(user.id))
    return user


def require_roles(*roles: str):
    """Dependency factory: 403 unless the current user has one of ``roles``."""

    async def _checker(user: User = Depends(get_current_user)) -> User:
        if user.role not in roles:
            raise PermissionDeniedError("Access denied for this role")
        return user

    return _checker
