from __future__ import annotations

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from clinicflow.api.deps import AUTHENTICATED, doctor_only, patient_only
from clinicflow.api.schemas import (
    DoctorLinkOut,
    PatientCreateIn,
    PatientOut,
    PatientUpdateIn,
    PrescriptionOut,
    RelationshipIn,
    RelationshipOut,
    RelationshipUpdateIn,
)
from clinicflow.db import get_session
from clinicflow.models import User
from clinicflow.services import patients as patient_service, relationships as rel_service
from clinicflow.services.membership import get_user_clinic
from clinicflow.services.protocols import apply_default_protocols

router = APIRouter(prefix="/patients", tags=["patients"], dependencies=AUTHENTICATED)
relationships_router = APIRouter(prefix="/relationships", tags=["relationships"], dependencies=AUTHENTICATED)


@router.post("", response_model=PatientOut, status_code=201)
async def create_patient(
    payload: PatientCreateIn,
    doctor: User = Depends(doctor_only),
    session: AsyncSession = Depends(get_session),
):
    return await patient_service.create_patient(
        session, doctor, name=payload.name, email=payload.email, phone=payload.phone
    )


@router.get("", response_model=list[PatientOut])
async def list_patients(
    search: Optional[str] = Query(default=None),
    active: Optional[bool] = Query(default=None),
    doctor: User = Depends(doctor_only),
    session: AsyncSession = Depends(get_session),
):
    return await patient_service.list_patients(session, doctor, search=search, active=active)


@router.get("/me/doctors", response_model=list[DoctorLinkOut])
async def my_doctors(
    patient: User = Depends(patient_only),
    session: AsyncSession = Depends(get_session),
):
    return await rel_service.doctors_of_patient(session, patient)


@router.get("/{patient_id}", response_model=PatientOut)
async def get_patient(
    patient_id: UUID,
    doctor: User = Depends(doctor_only),
    session: AsyncSession = Depends(get_session),
):
    return await patient_service.get_patient(session, doctor, patient_id)


@router.patch("/{patient_id}", response_model=PatientOut)
async def update_patient(
    patient_id: UUID,
    payload: PatientUpdateIn,
    doctor: User = Depends(doctor_only),
    session: AsyncSession = Depends(get_session),
):
    return await patient_service.update_patient(session, doctor, patient_id, payload.model_dump(exclude_unset=True))


@router.delete("/{patient_id}", response_model=PatientOut)
async def deactivate_patient(
    patient_id: UUID,
    doctor: User = Depends(doctor_only),
    session: AsyncSession = Depends(get_session),
):
    return await patient_service.deactivate_patient(session, doctor, patient_id)


@router.post("/{patient_id}/apply-default-protocols", response_model=list[PrescriptionOut])
async def apply_defaults(
    patient_id: UUID,
    doctor: User = Depends(doctor_only),
    session: AsyncSession = Depends(get_session),
):
    patient = await patient_service.get_patient(session, doctor, patient_id)
    return await apply_default_protocols(session, doctor, patient)


# ── relationships ─────────────────────────────────────────────────────────────

@relationships_router.post("", response_model=RelationshipOut, status_code=201)
async def create_relationship(
    payload: RelationshipIn,
    doctor: User = Depends(doctor_only),
    session: AsyncSession = Depends(get_session),
):
    patient = await patient_service.get_patient(session, doctor, payload.patient_id)
    clinic = await get_user_clinic(session, doctor.id)
    rel, _ = await rel_service.upsert_relationship(
        session,
        doctor_id=doctor.id,
        patient_id=patient.id,
        clinic_id=clinic.id if clinic else None,
        is_primary=payload.is_primary,
        speciality=payload.speciality,
        notes=payload.notes,
    )
    return rel


@relationships_router.get("", response_model=list[RelationshipOut])
async def list_relationships(
    patient_id: Optional[UUID] = Query(default=None),
    doctor: User = Depends(doctor_only),
    session: AsyncSession = Depends(get_session),
):
    if patient_id is not None:
        # full picture for one of the doctor's own patients
        await patient_service.get_patient(session, doctor, patient_id)
        return await rel_service.list_relationships(session, patient_id=patient_id)
    return await rel_service.list_relationships(session, doctor_id=doctor.id)


@relationships_router.patch("/{relationship_id}", response_model=RelationshipOut)
async def update_relationship(
    relationship_id: UUID,
    payload: RelationshipUpdateIn,
    doctor: User = Depends(doctor_only),
    session: AsyncSession = Depends(get_session),
):
    rel = await rel_service.require_relationship(session, relationship_id, doctor)
    return await rel_service.update_relationship(session, rel, payload.model_dump(exclude_unset=True))
