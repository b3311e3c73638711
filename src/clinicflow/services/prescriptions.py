"""
Protocol prescriptions and their status table.

    PRESCRIBED -> ACTIVE | ABANDONED
    ACTIVE     -> PAUSED | COMPLETED | ABANDONED
    PAUSED     -> ACTIVE | ABANDONED

``reset`` is the only way back to PRESCRIBED. Status is derived from task
progress: once every task is completed the prescription is COMPLETED.
"""
from __future__ import annotations

import logging
import math
from datetime import date, timedelta
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from clinicflow.core.errors import (
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    PermissionDeniedError,
    ValidationFailedError,
)
from clinicflow.models import Protocol, ProtocolPrescription, ProtocolTaskProgress, User, utcnow
from clinicflow.models.accounts import PATIENT_ROLES, ROLE_DOCTOR
from clinicflow.models.protocols import (
    ABANDONED,
    ACTIVE,
    COMPLETED,
    PAUSED,
    PRESCRIBED,
    TASK_COMPLETED,
    TASK_PENDING,
)
from clinicflow.services import audit
from clinicflow.services.membership import get_user_clinic
from clinicflow.services.relationships import has_active_relationship, upsert_relationship

_log = logging.getLogger("clinicflow.prescriptions")

TRANSITIONS: dict[str, frozenset[str]] = {
    PRESCRIBED: frozenset({ACTIVE, ABANDONED}),
    ACTIVE: frozenset({PAUSED, COMPLETED, ABANDONED}),
    PAUSED: frozenset({ACTIVE, ABANDONED}),
    COMPLETED: frozenset(),
    ABANDONED: frozenset(),
}

OPEN_STATUSES = (PRESCRIBED, ACTIVE, PAUSED)


def ensure_transition(current: str, target: str) -> None:
    if target not in TRANSITIONS.get(current, frozenset()):
        raise InvalidTransitionError(f"Cannot change prescription from {current} to {target}")


def adherence_rate(completed: int, total: int) -> int:
    if total <= 0:
        return 0
    # half-up, not banker's rounding
    return int(math.floor(completed / total * 100 + 0.5))


def current_day(p: ProtocolPrescription, today: date | None = None) -> int:
    if p.actual_start_date is None:
        return 0
    today = today or date.today()
    elapsed = (today - p.actual_start_date).days + 1
    return max(1, min(elapsed, p.protocol.duration))


# ── loading / access ──────────────────────────────────────────────────────────

async def _load(session: AsyncSession, prescription_id: UUID) -> ProtocolPrescription:
    p = await session.get(ProtocolPrescription, prescription_id)
    if p is None:
        raise NotFoundError("Prescription not found")
    return p


def _is_prescriber(user: User, p: ProtocolPrescription) -> bool:
    return user.role == ROLE_DOCTOR and (p.prescribed_by == user.id or p.protocol.doctor_id == user.id)


async def get_for_user(session: AsyncSession, user: User, prescription_id: UUID) -> ProtocolPrescription:
    p = await _load(session, prescription_id)
    if p.patient_id == user.id or _is_prescriber(user, p):
        return p
    raise NotFoundError("Prescription not found")


async def _get_for_patient(session: AsyncSession, patient: User, prescription_id: UUID) -> ProtocolPrescription:
    p = await _load(session, prescription_id)
    if p.patient_id != patient.id:
        raise NotFoundError("Prescription not found")
    return p


async def _get_for_doctor(session: AsyncSession, doctor: User, prescription_id: UUID) -> ProtocolPrescription:
    p = await _load(session, prescription_id)
    if not _is_prescriber(doctor, p):
        raise NotFoundError("Prescription not found")
    return p


async def _audit(session: AsyncSession, p: ProtocolPrescription, actor: User, action: str, **meta: Any) -> None:
    clinic = await get_user_clinic(session, p.prescribed_by)
    await audit.record(
        session,
        clinic_id=clinic.id if clinic else None,
        actor_user_id=actor.id,
        action=f"prescription.{action}",
        target_type="protocol_prescription",
        target_id=p.id,
        meta={"status": p.status, **meta},
    )


# ── prescribing ───────────────────────────────────────────────────────────────

async def prescribe(
    session: AsyncSession,
    doctor: User,
    *,
    protocol_id: UUID,
    patient_id: UUID,
    planned_start: date,
    planned_end: date | None = None,
    consultation_date: date | None = None,
) -> tuple[ProtocolPrescription, bool]:
    """Returns (prescription, updated). A pending PRESCRIBED row is updated in place."""
    protocol = await session.get(Protocol, protocol_id)
    if protocol is None or protocol.doctor_id != doctor.id:
        raise NotFoundError("Protocol not found")

    patient = await session.get(User, patient_id)
    if patient is None or patient.role not in PATIENT_ROLES:
        raise NotFoundError("Patient not found")

    if planned_end is None:
        planned_end = planned_start + timedelta(days=protocol.duration - 1)
    if planned_end < planned_start:
        raise ValidationFailedError("planned_end must not be before planned_start")

    if not await has_active_relationship(session, doctor.id, patient):
        clinic = await get_user_clinic(session, doctor.id)
        await upsert_relationship(
            session,
            doctor_id=doctor.id,
            patient_id=patient.id,
            clinic_id=clinic.id if clinic else None,
            is_primary=patient.doctor_id in (None, doctor.id),
        )

    existing = (
        await session.execute(
            select(ProtocolPrescription)
            .where(
                ProtocolPrescription.protocol_id == protocol.id,
                ProtocolPrescription.patient_id == patient.id,
                ProtocolPrescription.status.in_(OPEN_STATUSES),
            )
            .order_by(ProtocolPrescription.prescribed_at.desc())
            .limit(1)
        )
    ).scalar_one_or_none()

    if existing is not None and existing.status in (ACTIVE, PAUSED):
        raise ConflictError("Patient already has this protocol in progress")

    if existing is not None:
        existing.planned_start_date = planned_start
        existing.planned_end_date = planned_end
        existing.consultation_date = consultation_date
        existing.prescribed_by = doctor.id
        existing.prescribed_at = utcnow()
        await session.flush()
        await _audit(session, existing, doctor, "updated")
        return existing, True

    p = ProtocolPrescription(
        protocol_id=protocol.id,
        protocol=protocol,
        patient_id=patient.id,
        prescribed_by=doctor.id,
        status=PRESCRIBED,
        planned_start_date=planned_start,
        planned_end_date=planned_end,
        consultation_date=consultation_date,
        current_day=1,
        adherence_rate=0,
        progress=[],
    )
    session.add(p)
    await session.flush()
    await _audit(session, p, doctor, "prescribed", protocol_id=str(protocol.id))
    _log.info("protocol prescribed", extra={"prescription_id": str(p.id), "patient_id": str(patient.id)})
    return p, False


# ── status changes ────────────────────────────────────────────────────────────

def _schedule(p: ProtocolPrescription, start: date) -> list[ProtocolTaskProgress]:
    rows = []
    for day in p.protocol.days:
        scheduled = start + timedelta(days=day.day_number - 1)
        for s in day.sessions:
            for task in s.tasks:
                rows.append(
                    ProtocolTaskProgress(
                        task_id=task.id,
                        scheduled_date=scheduled,
                        status=TASK_PENDING,
                    )
                )
    return rows


def _task_days(p: ProtocolPrescription) -> dict[UUID, int]:
    return {task.id: day.day_number for day in p.protocol.days for s in day.sessions for task in s.tasks}


async def activate(
    session: AsyncSession,
    patient: User,
    prescription_id: UUID,
    actual_start: date | None = None,
) -> ProtocolPrescription:
    p = await _get_for_patient(session, patient, prescription_id)
    start = actual_start or date.today()

    if p.status == ACTIVE:
        # reschedule only
        days = _task_days(p)
        p.actual_start_date = start
        for row in p.progress:
            row.scheduled_date = start + timedelta(days=days.get(row.task_id, 1) - 1)
        p.current_day = current_day(p)
        await session.flush()
        await _audit(session, p, patient, "rescheduled", start=start.isoformat())
        return p

    if p.status != PRESCRIBED:
        raise InvalidTransitionError(f"Cannot change prescription from {p.status} to {ACTIVE}")

    p.progress.clear()
    await session.flush()

    p.status = ACTIVE
    p.actual_start_date = start
    p.actual_end_date = None
    p.current_day = 1
    p.adherence_rate = 0
    p.progress.extend(_schedule(p, start))
    await session.flush()
    await _audit(session, p, patient, "activated", start=start.isoformat())
    return p


async def _get_for_actor(session: AsyncSession, user: User, prescription_id: UUID) -> ProtocolPrescription:
    p = await _load(session, prescription_id)
    if p.patient_id == user.id or _is_prescriber(user, p):
        return p
    raise PermissionDeniedError("Not allowed to change this prescription")


async def pause(session: AsyncSession, user: User, prescription_id: UUID) -> ProtocolPrescription:
    p = await _get_for_actor(session, user, prescription_id)
    ensure_transition(p.status, PAUSED)
    p.status = PAUSED
    p.paused_at = utcnow()
    await session.flush()
    await _audit(session, p, user, "paused")
    return p


async def resume(session: AsyncSession, user: User, prescription_id: UUID) -> ProtocolPrescription:
    p = await _get_for_actor(session, user, prescription_id)
    if p.status != PAUSED:
        raise InvalidTransitionError(f"Cannot resume a prescription in status {p.status}")
    ensure_transition(p.status, ACTIVE)
    p.status = ACTIVE
    p.paused_at = None
    await session.flush()
    await _audit(session, p, user, "resumed")
    return p


async def abandon(
    session: AsyncSession, user: User, prescription_id: UUID, reason: str | None = None
) -> ProtocolPrescription:
    p = await _get_for_actor(session, user, prescription_id)
    ensure_transition(p.status, ABANDONED)
    p.status = ABANDONED
    p.abandoned_at = utcnow()
    p.abandon_reason = reason
    p.actual_end_date = date.today()
    await session.flush()
    await _audit(session, p, user, "abandoned", reason=reason)
    return p


async def complete(session: AsyncSession, user: User, prescription_id: UUID) -> ProtocolPrescription:
    p = await _get_for_actor(session, user, prescription_id)
    ensure_transition(p.status, COMPLETED)
    p.status = COMPLETED
    p.actual_end_date = date.today()
    await session.flush()
    await _audit(session, p, user, "completed")
    return p


async def toggle_task(
    session: AsyncSession,
    patient: User,
    prescription_id: UUID,
    progress_id: UUID,
) -> tuple[ProtocolPrescription, ProtocolTaskProgress]:
    p = await _get_for_patient(session, patient, prescription_id)
    if p.status != ACTIVE:
        raise InvalidTransitionError("Tasks can only be updated on an active prescription")

    row = next((r for r in p.progress if r.id == progress_id), None)
    if row is None:
        raise NotFoundError("Task progress not found")

    now = utcnow()
    if row.status == TASK_COMPLETED:
        row.status = TASK_PENDING
        row.completed_at = None
    else:
        row.status = TASK_COMPLETED
        row.completed_at = now

    total = len(p.progress)
    done = sum(1 for r in p.progress if r.status == TASK_COMPLETED)
    p.adherence_rate = adherence_rate(done, total)
    p.last_progress_date = now
    p.current_day = current_day(p)

    if total and done == total:
        ensure_transition(p.status, COMPLETED)
        p.status = COMPLETED
        p.actual_end_date = date.today()
        await _audit(session, p, patient, "completed", derived=True)

    await session.flush()
    return p, row


async def reset(session: AsyncSession, doctor: User, prescription_id: UUID) -> ProtocolPrescription:
    p = await _get_for_doctor(session, doctor, prescription_id)

    p.progress.clear()
    p.status = PRESCRIBED
    p.actual_start_date = None
    p.actual_end_date = None
    p.current_day = 1
    p.adherence_rate = 0
    p.last_progress_date = None
    p.paused_at = None
    p.abandoned_at = None
    p.abandon_reason = None
    await session.flush()
    await _audit(session, p, doctor, "reset")
    return p


# ── listings ──────────────────────────────────────────────────────────────────

async def list_for_doctor(
    session: AsyncSession,
    doctor: User,
    *,
    status: str | None = None,
    patient_id: UUID | None = None,
) -> list[ProtocolPrescription]:
    stmt = (
        select(ProtocolPrescription)
        .where(ProtocolPrescription.prescribed_by == doctor.id)
        .order_by(ProtocolPrescription.prescribed_at.desc())
    )
    if status:
        stmt = stmt.where(ProtocolPrescription.status == status)
    if patient_id:
        stmt = stmt.where(ProtocolPrescription.patient_id == patient_id)
    return list((await session.execute(stmt)).scalars())


async def list_for_patient(session: AsyncSession, patient: User) -> list[ProtocolPrescription]:
    res = await session.execute(
        select(ProtocolPrescription)
        .where(ProtocolPrescription.patient_id == patient.id)
        .order_by(ProtocolPrescription.prescribed_at.desc())
    )
    return list(res.scalars())
