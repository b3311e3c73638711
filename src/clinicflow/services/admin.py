"""Platform-wide views for SUPER_ADMIN."""
from __future__ import annotations

from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from clinicflow.models import Clinic, ClinicSubscription, Course, Protocol, User
from clinicflow.models.accounts import PATIENT_ROLES, ROLE_DOCTOR
from clinicflow.models.clinics import SUB_ACTIVE, SUB_TRIAL


async def _count(session: AsyncSession, stmt) -> int:
    return int(await session.scalar(stmt) or 0)


async def dashboard(session: AsyncSession) -> dict[str, Any]:
    return {
        "doctors": await _count(session, select(func.count()).select_from(User).where(User.role == ROLE_DOCTOR)),
        "patients": await _count(
            session, select(func.count()).select_from(User).where(User.role.in_(PATIENT_ROLES))
        ),
        "clinics": await _count(session, select(func.count()).select_from(Clinic)),
        "active_subscriptions": await _count(
            session,
            select(func.count()).select_from(ClinicSubscription).where(ClinicSubscription.status == SUB_ACTIVE),
        ),
        "trial_subscriptions": await _count(
            session,
            select(func.count()).select_from(ClinicSubscription).where(ClinicSubscription.status == SUB_TRIAL),
        ),
        "protocols": await _count(session, select(func.count()).select_from(Protocol)),
        "courses": await _count(session, select(func.count()).select_from(Course)),
    }


async def list_clinics(session: AsyncSession) -> list[tuple[Clinic, ClinicSubscription | None, User]]:
    res = await session.execute(
        select(Clinic, ClinicSubscription, User)
        .outerjoin(ClinicSubscription, ClinicSubscription.clinic_id == Clinic.id)
        .join(User, User.id == Clinic.owner_id)
        .order_by(Clinic.created_at.desc())
    )
    return [tuple(row) for row in res.all()]
