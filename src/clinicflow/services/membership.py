"""Who belongs to which clinic."""
from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from clinicflow.models import Clinic, ClinicMember, User
from clinicflow.models.clinics import MEMBER_ADMIN


async def get_user_clinic(session: AsyncSession, user_id: UUID) -> Clinic | None:
    """Clinic owned by the user, else the clinic of an active membership."""
    owned = (
        await session.execute(
            select(Clinic).where(Clinic.owner_id == user_id).order_by(Clinic.created_at).limit(1)
        )
    ).scalar_one_or_none()
    if owned is not None:
        return owned

    return (
        await session.execute(
            select(Clinic)
            .join(ClinicMember, ClinicMember.clinic_id == Clinic.id)
            .where(ClinicMember.user_id == user_id, ClinicMember.is_active.is_(True))
            .order_by(ClinicMember.joined_at)
            .limit(1)
        )
    ).scalar_one_or_none()


async def active_doctor_ids(session: AsyncSession, clinic: Clinic) -> list[UUID]:
    """Owner plus every active member; limits are counted across all of them."""
    rows = await session.execute(
        select(ClinicMember.user_id).where(
            ClinicMember.clinic_id == clinic.id,
            ClinicMember.is_active.is_(True),
        )
    )
    ids = {clinic.owner_id}
    ids.update(rows.scalars())
    return sorted(ids, key=str)


async def is_clinic_admin(session: AsyncSession, user: User, clinic: Clinic) -> bool:
    if clinic.owner_id == user.id:
        return True
    member = (
        await session.execute(
            select(ClinicMember).where(
                ClinicMember.clinic_id == clinic.id,
                ClinicMember.user_id == user.id,
                ClinicMember.is_active.is_(True),
                ClinicMember.role == MEMBER_ADMIN,
            )
        )
    ).scalar_one_or_none()
    return member is not None
