"""
Bootstrap router: one-shot provisioning of the first SUPER_ADMIN.
Requires BOOTSTRAP_TOKEN to be set. Disabled if not set.
"""
from __future__ import annotations

import logging
import secrets

from fastapi import APIRouter, Depends, Header, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from clinicflow.api.schemas import BootstrapIn, BootstrapOut, PlanOut, UserOut
from clinicflow.config import get_settings
from clinicflow.core.errors import AuthenticationError, ConflictError
from clinicflow.db import get_session
from clinicflow.models import User
from clinicflow.models.accounts import ROLE_SUPER_ADMIN
from clinicflow.security import create_access_token, hash_password
from clinicflow.services import auth as auth_service, subscriptions as sub_service

_log = logging.getLogger("clinicflow.bootstrap")

router = APIRouter(prefix="/bootstrap", tags=["bootstrap"])

DEFAULT_PLAN = {
    "name": "Starter",
    "description": "Default plan for new clinics",
    "max_doctors": 3,
    "max_patients": 50,
    "max_protocols": 20,
    "max_courses": 10,
    "is_default": True,
}


def _check_token(authorization: str | None) -> None:
    # read per call so the token can be rotated without a restart
    configured = get_settings().BOOTSTRAP_TOKEN
    if not configured:
        raise HTTPException(status_code=503, detail="Bootstrap is disabled (BOOTSTRAP_TOKEN not set)")
    expected = f"Bearer {configured}"
    if not authorization or not secrets.compare_digest(authorization, expected):
        raise AuthenticationError("Invalid bootstrap token")


@router.post("", response_model=BootstrapOut, status_code=201)
async def bootstrap_admin(
    payload: BootstrapIn,
    authorization: str | None = Header(default=None, alias="Authorization"),
    session: AsyncSession = Depends(get_session),
):
    """
    Create the first SUPER_ADMIN, plus a default plan when none exists.
    Requires Authorization: Bearer <BOOTSTRAP_TOKEN>.
    """
    _check_token(authorization)

    existing = (await session.execute(select(User.id).where(User.role == ROLE_SUPER_ADMIN).limit(1))).first()
    if existing:
        raise ConflictError("A super admin already exists")
    if await auth_service.get_user_by_email(session, payload.email) is not None:
        raise ConflictError("Email already registered")
    auth_service.check_password(payload.password)

    admin = User(
        name=payload.name.strip(),
        email=auth_service.normalize_email(payload.email),
        password_hash=hash_password(payload.password),
        role=ROLE_SUPER_ADMIN,
    )
    session.add(admin)

    plan = None
    if await sub_service.get_default_plan(session) is None:
        plan = await sub_service.create_plan(session, dict(DEFAULT_PLAN))
    await session.flush()

    _log.info("super admin bootstrapped", extra={"user_id": str(admin.id)})
    return BootstrapOut(
        admin=UserOut.model_validate(admin),
        token=create_access_token(admin),
        default_plan=PlanOut.model_validate(plan) if plan else None,
    )
