"""
Appointments.

Slots run 09:00-17:00 UTC in 30-minute steps; a slot is taken when it
overlaps any non-cancelled appointment of the doctor.
"""
from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from clinicflow.core.errors import ConflictError, NotFoundError, PermissionDeniedError, ValidationFailedError
from clinicflow.models import Appointment, User
from clinicflow.models.accounts import PATIENT_ROLES, ROLE_DOCTOR
from clinicflow.models.engagement import APPOINTMENT_STATUSES, APPT_CANCELLED, APPT_SCHEDULED
from clinicflow.services.relationships import has_active_relationship

_log = logging.getLogger("clinicflow.appointments")

DAY_START = time(9, 0)
DAY_END = time(17, 0)
SLOT_MINUTES = 30


def _aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


async def _overlapping(
    session: AsyncSession,
    doctor_id: UUID,
    start: datetime,
    end: datetime,
    exclude_id: UUID | None = None,
) -> list[Appointment]:
    stmt = select(Appointment).where(
        Appointment.doctor_id == doctor_id,
        Appointment.status != APPT_CANCELLED,
        Appointment.start_time < end,
        Appointment.end_time > start,
    )
    if exclude_id is not None:
        stmt = stmt.where(Appointment.id != exclude_id)
    return list((await session.execute(stmt)).scalars())


async def _check_window(
    session: AsyncSession, doctor_id: UUID, start: datetime, end: datetime, exclude_id: UUID | None = None
) -> None:
    if end <= start:
        raise ValidationFailedError("end_time must be after start_time")
    if await _overlapping(session, doctor_id, start, end, exclude_id):
        raise ConflictError("This time overlaps another appointment")


async def create_appointment(session: AsyncSession, doctor: User, data: dict[str, Any]) -> Appointment:
    patient = await session.get(User, data["patient_id"])
    if patient is None or patient.role not in PATIENT_ROLES:
        raise NotFoundError("Patient not found")

    start, end = _aware(data["start_time"]), _aware(data["end_time"])
    await _check_window(session, doctor.id, start, end)

    status = data.get("status") or APPT_SCHEDULED
    if status not in APPOINTMENT_STATUSES:
        raise ValidationFailedError(f"Invalid status: {status}")

    appt = Appointment(
        doctor_id=doctor.id,
        patient_id=patient.id,
        title=data["title"],
        description=data.get("description"),
        start_time=start,
        end_time=end,
        status=status,
        notes=data.get("notes"),
    )
    session.add(appt)
    await session.flush()
    _log.info("appointment created", extra={"appointment_id": str(appt.id)})
    return appt


async def list_for_doctor(
    session: AsyncSession,
    doctor: User,
    *,
    start: datetime | None = None,
    end: datetime | None = None,
    patient_id: UUID | None = None,
    status: str | None = None,
) -> list[Appointment]:
    stmt = select(Appointment).where(Appointment.doctor_id == doctor.id).order_by(Appointment.start_time)
    if start is not None:
        stmt = stmt.where(Appointment.start_time >= _aware(start))
    if end is not None:
        stmt = stmt.where(Appointment.start_time <= _aware(end))
    if patient_id is not None:
        stmt = stmt.where(Appointment.patient_id == patient_id)
    if status:
        stmt = stmt.where(Appointment.status == status)
    return list((await session.execute(stmt)).scalars())


async def get_for_doctor(session: AsyncSession, doctor: User, appointment_id: UUID) -> Appointment:
    appt = await session.get(Appointment, appointment_id)
    if appt is None or appt.doctor_id != doctor.id:
        raise NotFoundError("Appointment not found")
    return appt


async def update_appointment(
    session: AsyncSession, doctor: User, appointment_id: UUID, data: dict[str, Any]
) -> Appointment:
    appt = await get_for_doctor(session, doctor, appointment_id)

    start = _aware(data["start_time"]) if data.get("start_time") else appt.start_time
    end = _aware(data["end_time"]) if data.get("end_time") else appt.end_time
    status = data.get("status") or appt.status
    if status not in APPOINTMENT_STATUSES:
        raise ValidationFailedError(f"Invalid status: {status}")

    if status != APPT_CANCELLED and (start != appt.start_time or end != appt.end_time or appt.status == APPT_CANCELLED):
        await _check_window(session, doctor.id, start, end, exclude_id=appt.id)

    appt.start_time, appt.end_time, appt.status = start, end, status
    for key in ("title", "description", "notes"):
        if key in data and data[key] is not None:
            setattr(appt, key, data[key])
    await session.flush()
    return appt


async def cancel_appointment(session: AsyncSession, doctor: User, appointment_id: UUID) -> Appointment:
    appt = await get_for_doctor(session, doctor, appointment_id)
    appt.status = APPT_CANCELLED
    await session.flush()
    return appt


# ── patient side ──────────────────────────────────────────────────────────────

async def list_for_patient(session: AsyncSession, patient: User) -> list[Appointment]:
    res = await session.execute(
        select(Appointment).where(Appointment.patient_id == patient.id).order_by(Appointment.start_time)
    )
    return list(res.scalars())


async def _doctor_for_patient(session: AsyncSession, patient: User, doctor_id: UUID) -> User:
    doctor = await session.get(User, doctor_id)
    if doctor is None or doctor.role != ROLE_DOCTOR:
        raise NotFoundError("Doctor not found")
    if not await has_active_relationship(session, doctor.id, patient):
        raise PermissionDeniedError("You are not a patient of this doctor")
    return doctor


def day_slots(day: date) -> list[tuple[datetime, datetime]]:
    start = datetime.combine(day, DAY_START, tzinfo=timezone.utc)
    close = datetime.combine(day, DAY_END, tzinfo=timezone.utc)
    step = timedelta(minutes=SLOT_MINUTES)
    slots = []
    while start + step <= close:
        slots.append((start, start + step))
        start += step
    return slots


async def available_slots(session: AsyncSession, patient: User, doctor_id: UUID, day: date) -> list[dict[str, Any]]:
    doctor = await _doctor_for_patient(session, patient, doctor_id)
    slots = day_slots(day)
    booked = await _overlapping(session, doctor.id, slots[0][0], slots[-1][1])
    return [
        {
            "start_time": start,
            "end_time": end,
            "available": not any(a.start_time < end and a.end_time > start for a in booked),
        }
        for start, end in slots
    ]


async def book_slot(
    session: AsyncSession,
    patient: User,
    doctor_id: UUID,
    start_time: datetime,
    *,
    title: str | None = None,
    notes: str | None = None,
) -> Appointment:
    doctor = await _doctor_for_patient(session, patient, doctor_id)
    start = _aware(start_time)
    if start not in {s for s, _ in day_slots(start.date())}:
        raise ValidationFailedError("Not a bookable slot")
    end = start + timedelta(minutes=SLOT_MINUTES)
    await _check_window(session, doctor.id, start, end)

    appt = Appointment(
        doctor_id=doctor.id,
        patient_id=patient.id,
        title=title or "Consultation",
        start_time=start,
        end_time=end,
        status=APPT_SCHEDULED,
        notes=notes,
    )
    session.add(appt)
    await session.flush()
    _log.info("slot booked", extra={"appointment_id": str(appt.id)})
    return appt
