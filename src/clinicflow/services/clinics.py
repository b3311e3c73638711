from __future__ import annotations

import logging
import re
import unicodedata
from datetime import timedelta
from typing import Any
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from clinicflow.config import get_settings
from clinicflow.core.errors import ConflictError, NotFoundError, PermissionDeniedError, ValidationFailedError
from clinicflow.models import Clinic, ClinicMember, ClinicSubscription, Course, Protocol, User, utcnow
from clinicflow.models.accounts import PATIENT_ROLES, ROLE_DOCTOR
from clinicflow.models.clinics import MEMBER_ADMIN, MEMBER_DOCTOR, SUB_TRIAL
from clinicflow.services import audit
from clinicflow.services.membership import active_doctor_ids, get_user_clinic, is_clinic_admin
from clinicflow.services.subscriptions import enforce_limit, get_default_plan

_log = logging.getLogger("clinicflow.clinics")


def generate_slug(name: str) -> str:
    normalized = unicodedata.normalize("NFD", name or "")
    ascii_only = "".join(ch for ch in normalized if not unicodedata.combining(ch))
    slug = ascii_only.lower()
    slug = re.sub(r"[^a-z0-9\s-]", "", slug)
    slug = re.sub(r"\s+", "-", slug)
    slug = re.sub(r"-+", "-", slug)
    return slug.strip("-")


async def ensure_unique_slug(session: AsyncSession, base: str, exclude_id: UUID | None = None) -> str:
    base = base or "clinic"
    stmt = select(Clinic.slug).where((Clinic.slug == base) | Clinic.slug.like(f"{base}-%"))
    if exclude_id is not None:
        stmt = stmt.where(Clinic.id != exclude_id)
    taken = set((await session.execute(stmt)).scalars())

    candidate = base
    counter = 1
    while candidate in taken:
        candidate = f"{base}-{counter}"
        counter += 1
    return candidate


async def _create_clinic(session: AsyncSession, owner: User, name: str, **fields: Any) -> Clinic:
    plan = await get_default_plan(session)
    if plan is None:
        raise NotFoundError("No default subscription plan configured")

    settings = get_settings()
    now = utcnow()

    clinic = Clinic(
        owner_id=owner.id,
        name=name,
        slug=await ensure_unique_slug(session, generate_slug(name)),
        **fields,
    )
    session.add(clinic)
    await session.flush()

    session.add(
        ClinicSubscription(
            clinic_id=clinic.id,
            plan_id=plan.id,
            plan=plan,
            status=SUB_TRIAL,
            max_doctors=settings.DEFAULT_MAX_DOCTORS,
            start_date=now,
            trial_end_date=now + timedelta(days=plan.trial_days or settings.DEFAULT_TRIAL_DAYS),
        )
    )
    session.add(ClinicMember(clinic_id=clinic.id, user_id=owner.id, role=MEMBER_ADMIN))
    await session.flush()

    await audit.record(
        session,
        clinic_id=clinic.id,
        actor_user_id=owner.id,
        action="clinic.created",
        target_type="clinic",
        target_id=clinic.id,
        meta={"slug": clinic.slug, "plan": plan.name},
    )
    _log.info("clinic created", extra={"clinic_id": str(clinic.id), "slug": clinic.slug})
    return clinic


async def ensure_doctor_has_clinic(session: AsyncSession, doctor: User) -> Clinic:
    existing = await get_user_clinic(session, doctor.id)
    if existing is not None:
        return existing
    return await _create_clinic(session, doctor, f"{doctor.name or doctor.email.split('@')[0]} Clinic")


async def create_clinic(session: AsyncSession, owner: User, name: str, **fields: Any) -> Clinic:
    if await get_user_clinic(session, owner.id) is not None:
        raise ConflictError("User already belongs to a clinic")
    return await _create_clinic(session, owner, name, **fields)


async def require_user_clinic(session: AsyncSession, user: User) -> Clinic:
    clinic = await get_user_clinic(session, user.id)
    if clinic is None:
        raise NotFoundError("Clinic not found")
    return clinic


async def require_admin(session: AsyncSession, user: User, clinic: Clinic) -> None:
    if not await is_clinic_admin(session, user, clinic):
        raise PermissionDeniedError("Only clinic admins can do this")


async def update_clinic(session: AsyncSession, user: User, clinic: Clinic, data: dict[str, Any]) -> Clinic:
    await require_admin(session, user, clinic)

    new_name = data.pop("name", None)
    if new_name and new_name != clinic.name:
        clinic.name = new_name
        clinic.slug = await ensure_unique_slug(session, generate_slug(new_name), exclude_id=clinic.id)
    for key, value in data.items():
        setattr(clinic, key, value)
    await session.flush()

    await audit.record(
        session,
        clinic_id=clinic.id,
        actor_user_id=user.id,
        action="clinic.updated",
        target_type="clinic",
        target_id=clinic.id,
    )
    return clinic


async def list_members(session: AsyncSession, clinic: Clinic) -> list[dict[str, Any]]:
    rows = await session.execute(
        select(ClinicMember, User)
        .join(User, User.id == ClinicMember.user_id)
        .where(ClinicMember.clinic_id == clinic.id, ClinicMember.is_active.is_(True))
        .order_by(ClinicMember.joined_at)
    )
    return [
        {
            "user_id": u.id,
            "name": u.name,
            "email": u.email,
            "image": u.image,
            "role": m.role,
            "is_owner": u.id == clinic.owner_id,
            "joined_at": m.joined_at,
        }
        for m, u in rows.all()
    ]


async def get_clinic_by_slug(session: AsyncSession, slug: str) -> tuple[Clinic, list[dict[str, Any]]]:
    clinic = (
        await session.execute(select(Clinic).where(Clinic.slug == slug, Clinic.is_active.is_(True)))
    ).scalar_one_or_none()
    if clinic is None:
        raise NotFoundError("Clinic not found")
    return clinic, await list_members(session, clinic)


async def add_member(
    session: AsyncSession,
    actor: User,
    clinic: Clinic,
    email: str,
    role: str = MEMBER_DOCTOR,
) -> ClinicMember:
    await require_admin(session, actor, clinic)
    if role not in (MEMBER_DOCTOR, MEMBER_ADMIN):
        raise ValidationFailedError("Invalid member role")

    doctor = (
        await session.execute(select(User).where(User.email == email.strip().lower()))
    ).scalar_one_or_none()
    if doctor is None or doctor.role != ROLE_DOCTOR:
        raise NotFoundError("Doctor not found")

    member = (
        await session.execute(
            select(ClinicMember).where(ClinicMember.clinic_id == clinic.id, ClinicMember.user_id == doctor.id)
        )
    ).scalar_one_or_none()
    if member is not None and member.is_active:
        raise ConflictError("Doctor is already a member of this clinic")

    await enforce_limit(session, actor, "doctors")

    if member is None:
        member = ClinicMember(clinic_id=clinic.id, user_id=doctor.id, role=role)
        session.add(member)
    else:
        member.is_active = True
        member.role = role
        member.joined_at = utcnow()
    await session.flush()

    await audit.record(
        session,
        clinic_id=clinic.id,
        actor_user_id=actor.id,
        action="clinic.member_added",
        target_type="user",
        target_id=doctor.id,
        meta={"role": role},
    )
    return member


async def remove_member(session: AsyncSession, actor: User, clinic: Clinic, user_id: UUID) -> None:
    await require_admin(session, actor, clinic)
    if user_id == clinic.owner_id:
        raise ValidationFailedError("The clinic owner cannot be removed")

    member = (
        await session.execute(
            select(ClinicMember).where(
                ClinicMember.clinic_id == clinic.id,
                ClinicMember.user_id == user_id,
                ClinicMember.is_active.is_(True),
            )
        )
    ).scalar_one_or_none()
    if member is None:
        raise NotFoundError("Member not found")

    member.is_active = False
    await session.flush()
    await audit.record(
        session,
        clinic_id=clinic.id,
        actor_user_id=actor.id,
        action="clinic.member_removed",
        target_type="user",
        target_id=user_id,
    )


async def clinic_stats(session: AsyncSession, clinic: Clinic) -> dict[str, int]:
    doctor_ids = await active_doctor_ids(session, clinic)

    patients = await session.scalar(
        select(func.count()).select_from(User).where(
            User.doctor_id.in_(doctor_ids),
            User.role.in_(PATIENT_ROLES),
            User.is_active.is_(True),
        )
    )
    protocols = await session.scalar(
        select(func.count()).select_from(Protocol).where(Protocol.doctor_id.in_(doctor_ids))
    )
    courses = await session.scalar(
        select(func.count()).select_from(Course).where(Course.doctor_id.in_(doctor_ids))
    )
    return {
        "doctors": len(doctor_ids),
        "patients": int(patients or 0),
        "protocols": int(protocols or 0),
        "courses": int(courses or 0),
    }


async def backfill_slugs(session: AsyncSession) -> int:
    """Give every clinic without a slug (or with a blank one) a unique slug."""
    rows = await session.execute(
        select(Clinic).where((Clinic.slug.is_(None)) | (Clinic.slug == "")).order_by(Clinic.created_at)
    )
    changed = 0
    for clinic in rows.scalars():
        clinic.slug = await ensure_unique_slug(session, generate_slug(clinic.name), exclude_id=clinic.id)
        await session.flush()
        changed += 1
    return changed
