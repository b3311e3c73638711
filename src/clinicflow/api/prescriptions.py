from __future__ import annotations

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from clinicflow.api.deps import AUTHENTICATED, doctor_only, patient_only
from clinicflow.api.schemas import (
    AbandonIn,
    ActivateIn,
    PrescribeIn,
    PrescribeOut,
    PrescriptionDetailOut,
    PrescriptionOut,
    TaskProgressOut,
    ToggleTaskOut,
)
from clinicflow.db import get_session
from clinicflow.models import User
from clinicflow.models.protocols import ACTIVE
from clinicflow.security import get_current_user
from clinicflow.services import prescriptions as rx

router = APIRouter(prefix="/prescriptions", tags=["prescriptions"], dependencies=AUTHENTICATED)


@router.post("", response_model=PrescribeOut, status_code=201)
async def prescribe(
    payload: PrescribeIn,
    doctor: User = Depends(doctor_only),
    session: AsyncSession = Depends(get_session),
):
    p, updated = await rx.prescribe(
        session,
        doctor,
        protocol_id=payload.protocol_id,
        patient_id=payload.patient_id,
        planned_start=payload.planned_start_date,
        planned_end=payload.planned_end_date,
        consultation_date=payload.consultation_date,
    )
    return PrescribeOut(prescription=PrescriptionOut.model_validate(p), updated=updated)


@router.get("", response_model=list[PrescriptionOut])
async def list_prescriptions(
    status: Optional[str] = Query(default=None),
    patient_id: Optional[UUID] = Query(default=None),
    doctor: User = Depends(doctor_only),
    session: AsyncSession = Depends(get_session),
):
    return await rx.list_for_doctor(session, doctor, status=status, patient_id=patient_id)


@router.get("/me", response_model=list[PrescriptionDetailOut])
async def my_prescriptions(
    patient: User = Depends(patient_only),
    session: AsyncSession = Depends(get_session),
):
    rows = await rx.list_for_patient(session, patient)
    for p in rows:
        if p.status == ACTIVE:
            p.current_day = rx.current_day(p)
    return rows


@router.get("/{prescription_id}", response_model=PrescriptionDetailOut)
async def get_prescription(
    prescription_id: UUID,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    return await rx.get_for_user(session, user, prescription_id)


@router.post("/{prescription_id}/activate", response_model=PrescriptionDetailOut)
async def activate(
    prescription_id: UUID,
    payload: ActivateIn,
    patient: User = Depends(patient_only),
    session: AsyncSession = Depends(get_session),
):
    return await rx.activate(session, patient, prescription_id, payload.actual_start_date)


@router.post("/{prescription_id}/pause", response_model=PrescriptionOut)
async def pause(
    prescription_id: UUID,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    return await rx.pause(session, user, prescription_id)


@router.post("/{prescription_id}/resume", response_model=PrescriptionOut)
async def resume(
    prescription_id: UUID,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    return await rx.resume(session, user, prescription_id)


@router.post("/{prescription_id}/abandon", response_model=PrescriptionOut)
async def abandon(
    prescription_id: UUID,
    payload: AbandonIn,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    return await rx.abandon(session, user, prescription_id, payload.reason)


@router.post("/{prescription_id}/complete", response_model=PrescriptionOut)
async def complete(
    prescription_id: UUID,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    return await rx.complete(session, user, prescription_id)


@router.post("/{prescription_id}/reset", response_model=PrescriptionOut)
async def reset(
    prescription_id: UUID,
    doctor: User = Depends(doctor_only),
    session: AsyncSession = Depends(get_session),
):
    return await rx.reset(session, doctor, prescription_id)


@router.post("/{prescription_id}/tasks/{progress_id}/toggle", response_model=ToggleTaskOut)
async def toggle_task(
    prescription_id: UUID,
    progress_id: UUID,
    patient: User = Depends(patient_only),
    session: AsyncSession = Depends(get_session),
):
    p, row = await rx.toggle_task(session, patient, prescription_id, progress_id)
    return ToggleTaskOut(
        prescription=PrescriptionOut.model_validate(p),
        progress=TaskProgressOut.model_validate(row),
    )
