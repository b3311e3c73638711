"""Patients as seen by their doctor."""
from __future__ import annotations

import logging
from typing import Any
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from clinicflow.core.errors import ConflictError, NotFoundError
from clinicflow.models import DoctorPatientRelationship, User
from clinicflow.models.accounts import PATIENT_ROLES, ROLE_PATIENT, ROLE_PATIENT_NOCLINIC
from clinicflow.services import audit
from clinicflow.services.auth import (
    SET_PASSWORD_EXPIRE_HOURS,
    get_user_by_email,
    issue_password_token,
    normalize_email,
    reset_url,
)
from clinicflow.services.email import queue_email
from clinicflow.services.membership import get_user_clinic
from clinicflow.services.protocols import apply_default_protocols
from clinicflow.services.referrals import ensure_user_has_referral_code
from clinicflow.services.relationships import has_active_relationship, upsert_relationship
from clinicflow.services.subscriptions import enforce_limit

_log = logging.getLogger("clinicflow.patients")

_UPDATABLE = ("name", "phone", "image")


async def create_patient(
    session: AsyncSession,
    doctor: User,
    *,
    name: str,
    email: str,
    phone: str | None = None,
) -> User:
    email = normalize_email(email)
    existing = await get_user_by_email(session, email)

    if existing is not None:
        if existing.role not in PATIENT_ROLES:
            raise ConflictError("Email already in use")
        if existing.role == ROLE_PATIENT and await has_active_relationship(session, doctor.id, existing):
            raise ConflictError("This patient is already registered with you")

    await enforce_limit(session, doctor, "patients")
    clinic = await get_user_clinic(session, doctor.id)

    if existing is None:
        patient = User(name=name.strip(), email=email, phone=phone, role=ROLE_PATIENT, doctor_id=doctor.id)
        session.add(patient)
        await session.flush()
        is_primary = True
    elif existing.role == ROLE_PATIENT_NOCLINIC:
        # self-registered patient adopted by this doctor
        patient = existing
        patient.role = ROLE_PATIENT
        patient.doctor_id = doctor.id
        patient.phone = patient.phone or phone
        patient.name = patient.name or name.strip()
        is_primary = True
    else:
        # already followed by another doctor
        patient = existing
        is_primary = False

    await ensure_user_has_referral_code(session, patient)
    await upsert_relationship(
        session,
        doctor_id=doctor.id,
        patient_id=patient.id,
        clinic_id=clinic.id if clinic else None,
        is_primary=is_primary,
    )
    await apply_default_protocols(session, doctor, patient)

    if not patient.password_hash:
        raw = await issue_password_token(session, patient, hours=SET_PASSWORD_EXPIRE_HOURS)
        await queue_email(
            session,
            to=patient.email,
            template="set_password",
            name=patient.name,
            doctor_name=doctor.name,
            reset_url=reset_url(raw),
        )

    await audit.record(
        session,
        clinic_id=clinic.id if clinic else None,
        actor_user_id=doctor.id,
        action="patient.created",
        target_type="user",
        target_id=patient.id,
    )
    _log.info("patient created", extra={"patient_id": str(patient.id), "doctor_id": str(doctor.id)})
    return patient


def _doctor_patients_stmt(doctor: User):
    related = select(DoctorPatientRelationship.patient_id).where(
        DoctorPatientRelationship.doctor_id == doctor.id,
        DoctorPatientRelationship.is_active.is_(True),
    )
    return select(User).where(
        User.role.in_(PATIENT_ROLES),
        or_(User.doctor_id == doctor.id, User.id.in_(related)),
    )


async def list_patients(
    session: AsyncSession,
    doctor: User,
    *,
    search: str | None = None,
    active: bool | None = None,
) -> list[User]:
    stmt = _doctor_patients_stmt(doctor).order_by(User.name, User.email)
    if search:
        like = f"%{search.strip().lower()}%"
        stmt = stmt.where(or_(User.name.ilike(like), User.email.ilike(like)))
    if active is not None:
        stmt = stmt.where(User.is_active.is_(active))
    return list((await session.execute(stmt)).scalars())


async def get_patient(session: AsyncSession, doctor: User, patient_id: UUID) -> User:
    patient = (
        await session.execute(_doctor_patients_stmt(doctor).where(User.id == patient_id))
    ).scalar_one_or_none()
    if patient is None:
        raise NotFoundError("Patient not found")
    return patient


async def update_patient(session: AsyncSession, doctor: User, patient_id: UUID, data: dict[str, Any]) -> User:
    patient = await get_patient(session, doctor, patient_id)

    if data.get("email"):
        email = normalize_email(data["email"])
        if email != patient.email:
            if await get_user_by_email(session, email) is not None:
                raise ConflictError("Email already in use")
            patient.email = email
    if "is_active" in data and data["is_active"] is not None:
        patient.is_active = bool(data["is_active"])
    for key in _UPDATABLE:
        if key in data:
            setattr(patient, key, data[key])

    await session.flush()
    return patient


async def deactivate_patient(session: AsyncSession, doctor: User, patient_id: UUID) -> User:
    patient = await get_patient(session, doctor, patient_id)
    patient.is_active = False
    await session.flush()

    clinic = await get_user_clinic(session, doctor.id)
    await audit.record(
        session,
        clinic_id=clinic.id if clinic else None,
        actor_user_id=doctor.id,
        action="patient.deactivated",
        target_type="user",
        target_id=patient.id,
    )
    return patient
