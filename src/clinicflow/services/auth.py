from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from clinicflow.config import get_settings
from clinicflow.core.errors import (
    AuthenticationError,
    ConflictError,
    PermissionDeniedError,
    ValidationFailedError,
)
from clinicflow.models import PasswordResetToken, User, utcnow
from clinicflow.models.accounts import ROLE_DOCTOR, ROLE_PATIENT_NOCLINIC
from clinicflow.security import create_access_token, hash_password, hash_token, new_url_token, verify_password
from clinicflow.services.clinics import ensure_doctor_has_clinic
from clinicflow.services.email import queue_email
from clinicflow.services.membership import get_user_clinic
from clinicflow.services.referrals import ensure_user_has_referral_code

_log = logging.getLogger("clinicflow.auth")

MIN_PASSWORD_LENGTH = 6
SET_PASSWORD_EXPIRE_HOURS = 72


def normalize_email(email: str) -> str:
    return email.strip().lower()


def check_password(password: str) -> None:
    if len(password or "") < MIN_PASSWORD_LENGTH:
        raise ValidationFailedError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")


async def get_user_by_email(session: AsyncSession, email: str) -> User | None:
    return (
        await session.execute(select(User).where(User.email == normalize_email(email)))
    ).scalar_one_or_none()


async def _ensure_email_free(session: AsyncSession, email: str) -> None:
    if await get_user_by_email(session, email) is not None:
        raise ConflictError("Email already registered")


async def register_doctor(session: AsyncSession, *, name: str, email: str, password: str) -> tuple[User, str]:
    check_password(password)
    await _ensure_email_free(session, email)

    user = User(
        name=name.strip(),
        email=normalize_email(email),
        password_hash=hash_password(password),
        role=ROLE_DOCTOR,
    )
    session.add(user)
    await session.flush()

    await ensure_doctor_has_clinic(session, user)
    await ensure_user_has_referral_code(session, user)
    _log.info("doctor registered", extra={"user_id": str(user.id)})
    return user, create_access_token(user)


async def register_patient(
    session: AsyncSession,
    *,
    name: str,
    email: str,
    password: str,
    phone: str | None = None,
) -> tuple[User, str]:
    check_password(password)
    await _ensure_email_free(session, email)

    user = User(
        name=name.strip(),
        email=normalize_email(email),
        phone=phone,
        password_hash=hash_password(password),
        role=ROLE_PATIENT_NOCLINIC,
        doctor_id=None,
    )
    session.add(user)
    await session.flush()

    await ensure_user_has_referral_code(session, user)
    _log.info("patient self-registered", extra={"user_id": str(user.id)})
    return user, create_access_token(user)


async def login(session: AsyncSession, *, email: str, password: str) -> tuple[User, str]:
    user = await get_user_by_email(session, email)
    if user is None or not user.password_hash or not verify_password(password, user.password_hash):
        raise AuthenticationError("Invalid credentials")
    if not user.is_active:
        raise PermissionDeniedError("Account is inactive")
    return user, create_access_token(user)


async def profile(session: AsyncSession, user: User) -> dict[str, Any]:
    clinic = await get_user_clinic(session, user.id)
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "phone": user.phone,
        "image": user.image,
        "role": user.role,
        "doctor_id": user.doctor_id,
        "referral_code": user.referral_code,
        "clinic": (
            {"id": clinic.id, "name": clinic.name, "slug": clinic.slug, "logo": clinic.logo}
            if clinic is not None
            else None
        ),
        "needs_clinic": user.role == ROLE_PATIENT_NOCLINIC,
    }


# ── password reset ────────────────────────────────────────────────────────────

async def issue_password_token(session: AsyncSession, user: User, *, hours: int) -> str:
    """Store a hashed one-time token and return the raw value for the link."""
    raw = new_url_token()
    session.add(
        PasswordResetToken(
            user_id=user.id,
            token_hash=hash_token(raw),
            expires_at=utcnow() + timedelta(hours=hours),
        )
    )
    await session.flush()
    return raw


def reset_url(raw_token: str) -> str:
    return f"{get_settings().APP_URL}/auth/reset-password?token={raw_token}"


async def forgot_password(session: AsyncSession, email: str) -> None:
    """Never reveals whether the account exists."""
    user = await get_user_by_email(session, email)
    if user is None or not user.is_active:
        _log.info("password reset requested for unknown account")
        return

    settings = get_settings()
    raw = await issue_password_token(session, user, hours=settings.PASSWORD_RESET_EXPIRE_HOURS)
    await queue_email(
        session,
        to=user.email,
        template="reset_password",
        name=user.name,
        reset_url=reset_url(raw),
        expire_hours=settings.PASSWORD_RESET_EXPIRE_HOURS,
    )


async def _usable_token(session: AsyncSession, raw_token: str) -> PasswordResetToken | None:
    if not raw_token:
        return None
    row = (
        await session.execute(select(PasswordResetToken).where(PasswordResetToken.token_hash == hash_token(raw_token)))
    ).scalar_one_or_none()
    if row is None or row.used_at is not None or row.expires_at <= utcnow():
        return None
    return row


async def validate_reset_token(session: AsyncSession, raw_token: str) -> bool:
    return await _usable_token(session, raw_token) is not None


async def reset_password(session: AsyncSession, *, token: str, password: str) -> User:
    check_password(password)
    row = await _usable_token(session, token)
    if row is None:
        raise ValidationFailedError("Invalid or expired token")

    user = await session.get(User, row.user_id)
    if user is None:
        raise ValidationFailedError("Invalid or expired token")

    user.password_hash = hash_password(password)
    row.used_at = utcnow()
    await session.flush()
    _log.info("password reset", extra={"user_id": str(user.id)})
    return user
