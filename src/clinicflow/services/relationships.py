"""
Doctor/patient relationships.

A patient may see several doctors but has at most one primary relationship;
marking one primary clears the flag on the others in the same transaction.
"""
from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from clinicflow.core.errors import NotFoundError
from clinicflow.models import DoctorPatientRelationship, User, utcnow

_log = logging.getLogger("clinicflow.relationships")

_UPDATABLE = ("clinic_id", "speciality", "notes", "is_active")


async def _clear_other_primaries(session: AsyncSession, patient_id: UUID, keep_id: UUID) -> None:
    await session.execute(
        update(DoctorPatientRelationship)
        .where(
            DoctorPatientRelationship.patient_id == patient_id,
            DoctorPatientRelationship.id != keep_id,
            DoctorPatientRelationship.is_primary.is_(True),
        )
        .values(is_primary=False, updated_at=utcnow())
        .execution_options(synchronize_session="fetch")
    )


async def get_relationship(
    session: AsyncSession, doctor_id: UUID, patient_id: UUID
) -> DoctorPatientRelationship | None:
    return (
        await session.execute(
            select(DoctorPatientRelationship).where(
                DoctorPatientRelationship.doctor_id == doctor_id,
                DoctorPatientRelationship.patient_id == patient_id,
            )
        )
    ).scalar_one_or_none()


async def upsert_relationship(
    session: AsyncSession,
    *,
    doctor_id: UUID,
    patient_id: UUID,
    clinic_id: UUID | None = None,
    is_primary: bool = False,
    speciality: str | None = None,
    notes: str | None = None,
) -> tuple[DoctorPatientRelationship, bool]:
    """Create the pair or re-activate the existing one. Returns (row, created)."""
    rel = await get_relationship(session, doctor_id, patient_id)
    created = rel is None

    if rel is None:
        rel = DoctorPatientRelationship(
            doctor_id=doctor_id,
            patient_id=patient_id,
            clinic_id=clinic_id,
            is_primary=is_primary,
            is_active=True,
            speciality=speciality,
            notes=notes,
        )
        session.add(rel)
    else:
        rel.is_active = True
        rel.end_date = None
        rel.is_primary = is_primary or rel.is_primary
        if clinic_id is not None:
            rel.clinic_id = clinic_id
        if speciality is not None:
            rel.speciality = speciality
        if notes is not None:
            rel.notes = notes
    await session.flush()

    if rel.is_primary:
        await _clear_other_primaries(session, patient_id, rel.id)
    return rel, created


async def update_relationship(
    session: AsyncSession, rel: DoctorPatientRelationship, data: dict[str, Any]
) -> DoctorPatientRelationship:
    for key in _UPDATABLE:
        if key in data:
            setattr(rel, key, data[key])

    if data.get("is_active") is False:
        rel.end_date = utcnow()
        rel.is_primary = False
    else:
        if data.get("is_active") is True:
            rel.end_date = None
        if "is_primary" in data:
            rel.is_primary = bool(data["is_primary"])
    await session.flush()

    if rel.is_primary:
        await _clear_other_primaries(session, rel.patient_id, rel.id)
    return rel


async def require_relationship(session: AsyncSession, rel_id: UUID, doctor: User) -> DoctorPatientRelationship:
    rel = await session.get(DoctorPatientRelationship, rel_id)
    if rel is None or rel.doctor_id != doctor.id:
        raise NotFoundError("Relationship not found")
    return rel


async def list_relationships(
    session: AsyncSession,
    *,
    patient_id: UUID | None = None,
    doctor_id: UUID | None = None,
    active_only: bool = True,
) -> list[DoctorPatientRelationship]:
    stmt = select(DoctorPatientRelationship).order_by(DoctorPatientRelationship.created_at)
    if patient_id is not None:
        stmt = stmt.where(DoctorPatientRelationship.patient_id == patient_id)
    if doctor_id is not None:
        stmt = stmt.where(DoctorPatientRelationship.doctor_id == doctor_id)
    if active_only:
        stmt = stmt.where(DoctorPatientRelationship.is_active.is_(True))
    return list((await session.execute(stmt)).scalars())


async def has_active_relationship(session: AsyncSession, doctor_id: UUID, patient: User) -> bool:
    if patient.doctor_id == doctor_id:
        return True
    rel = await get_relationship(session, doctor_id, patient.id)
    return rel is not None and rel.is_active


async def doctors_of_patient(session: AsyncSession, patient: User) -> list[dict[str, Any]]:
    rows = await session.execute(
        select(DoctorPatientRelationship, User)
        .join(User, User.id == DoctorPatientRelationship.doctor_id)
        .where(
            DoctorPatientRelationship.patient_id == patient.id,
            DoctorPatientRelationship.is_active.is_(True),
        )
        .order_by(DoctorPatientRelationship.is_primary.desc(), DoctorPatientRelationship.created_at)
    )
    return [
        {
            "relationship_id": rel.id,
            "doctor_id": doc.id,
            "name": doc.name,
            "email": doc.email,
            "image": doc.image,
            "is_primary": rel.is_primary,
            "speciality": rel.speciality,
            "clinic_id": rel.clinic_id,
        }
        for rel, doc in rows.all()
    ]


async def dedupe_primary_relationships(session: AsyncSession) -> int:
    """Keep only the oldest primary relationship per patient. Returns rows demoted."""
    rows = await session.execute(
        select(DoctorPatientRelationship)
        .where(DoctorPatientRelationship.is_primary.is_(True))
        .order_by(DoctorPatientRelationship.created_at, DoctorPatientRelationship.id)
    )
    by_patient: dict[UUID, list[DoctorPatientRelationship]] = defaultdict(list)
    for rel in rows.scalars():
        by_patient[rel.patient_id].append(rel)

    changed = 0
    for patient_id, rels in by_patient.items():
        for extra in rels[1:]:
            extra.is_primary = False
            changed += 1
        if len(rels) > 1:
            _log.info(
                "primary relationships deduplicated",
                extra={"patient_id": str(patient_id), "demoted": len(rels) - 1},
            )
    await session.flush()
    return changed
