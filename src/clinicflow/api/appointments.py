from __future__ import annotations

from datetime import date, datetime
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from clinicflow.api.deps import AUTHENTICATED, doctor_only, patient_only
from clinicflow.api.schemas import (
    AppointmentIn,
    AppointmentOut,
    AppointmentUpdateIn,
    BookIn,
    SlotOut,
)
from clinicflow.db import get_session
from clinicflow.models import User
from clinicflow.services import appointments as appt_service

router = APIRouter(prefix="/appointments", tags=["appointments"], dependencies=AUTHENTICATED)


# ── patient ───────────────────────────────────────────────────────────────────

@router.get("/me", response_model=list[AppointmentOut])
async def my_appointments(
    patient: User = Depends(patient_only),
    session: AsyncSession = Depends(get_session),
):
    return await appt_service.list_for_patient(session, patient)


@router.get("/slots", response_model=list[SlotOut])
async def available_slots(
    doctor_id: UUID,
    day: date = Query(alias="date"),
    patient: User = Depends(patient_only),
    session: AsyncSession = Depends(get_session),
):
    return await appt_service.available_slots(session, patient, doctor_id, day)


@router.post("/book", response_model=AppointmentOut, status_code=201)
async def book(
    payload: BookIn,
    patient: User = Depends(patient_only),
    session: AsyncSession = Depends(get_session),
):
    return await appt_service.book_slot(
        session, patient, payload.doctor_id, payload.start_time, title=payload.title, notes=payload.notes
    )


# ── doctor ────────────────────────────────────────────────────────────────────

@router.post("", response_model=AppointmentOut, status_code=201)
async def create_appointment(
    payload: AppointmentIn,
    doctor: User = Depends(doctor_only),
    session: AsyncSession = Depends(get_session),
):
    return await appt_service.create_appointment(session, doctor, payload.model_dump())


@router.get("", response_model=list[AppointmentOut])
async def list_appointments(
    start: Optional[datetime] = Query(default=None),
    end: Optional[datetime] = Query(default=None),
    patient_id: Optional[UUID] = Query(default=None),
    status: Optional[str] = Query(default=None),
    doctor: User = Depends(doctor_only),
    session: AsyncSession = Depends(get_session),
):
    return await appt_service.list_for_doctor(
        session, doctor, start=start, end=end, patient_id=patient_id, status=status
    )


@router.get("/{appointment_id}", response_model=AppointmentOut)
async def get_appointment(
    appointment_id: UUID,
    doctor: User = Depends(doctor_only),
    session: AsyncSession = Depends(get_session),
):
    return await appt_service.get_for_doctor(session, doctor, appointment_id)


@router.patch("/{appointment_id}", response_model=AppointmentOut)
async def update_appointment(
    appointment_id: UUID,
    payload: AppointmentUpdateIn,
    doctor: User = Depends(doctor_only),
    session: AsyncSession = Depends(get_session),
):
    return await appt_service.update_appointment(
        session, doctor, appointment_id, payload.model_dump(exclude_unset=True)
    )


@router.post("/{appointment_id}/cancel", response_model=AppointmentOut)
async def cancel_appointment(
    appointment_id: UUID,
    doctor: User = Depends(doctor_only),
    session: AsyncSession = Depends(get_session),
):
    return await appt_service.cancel_appointment(session, doctor, appointment_id)
