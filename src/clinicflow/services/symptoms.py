"""
Symptom reports filed by patients against a prescribed protocol day.

The patient files and lists their own reports. The doctor who owns the
protocol lists them and moves them through review.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from clinicflow.core.errors import NotFoundError, PermissionDeniedError, ValidationFailedError
from clinicflow.models import Protocol, ProtocolPrescription, SymptomReport, User, utcnow
from clinicflow.models.protocols import ABANDONED, SYMPTOM_STATUSES
from clinicflow.services.relationships import has_active_relationship

_log = logging.getLogger("clinicflow.symptoms")

_FIELDS = ("title", "description", "symptoms", "severity")


async def create_report(session: AsyncSession, patient: User, data: dict[str, Any]) -> SymptomReport:
    protocol_id: UUID = data["protocol_id"]
    prescribed = (
        await session.execute(
            select(ProtocolPrescription.id).where(
                ProtocolPrescription.patient_id == patient.id,
                ProtocolPrescription.protocol_id == protocol_id,
                ProtocolPrescription.status != ABANDONED,
            )
        )
    ).first()
    if not prescribed:
        raise PermissionDeniedError("Access denied to this protocol")

    protocol = await session.get(Protocol, protocol_id)
    day_number = data["day_number"]
    if not 1 <= day_number <= protocol.duration:
        raise ValidationFailedError(f"day_number must be between 1 and {protocol.duration}")

    report_time: datetime | None = data.get("report_time")
    report = SymptomReport(
        patient_id=patient.id,
        protocol_id=protocol.id,
        day_number=day_number,
        report_time=report_time or utcnow(),
        **{k: v for k, v in data.items() if k in _FIELDS and v is not None},
    )
    session.add(report)
    await session.flush()
    _log.info(
        "symptom report filed",
        extra={"report_id": str(report.id), "protocol_id": str(protocol.id), "severity": report.severity},
    )
    return report


def _filtered(stmt, *, protocol_id: UUID | None, status: str | None, day_number: int | None):
    if protocol_id is not None:
        stmt = stmt.where(SymptomReport.protocol_id == protocol_id)
    if status is not None:
        stmt = stmt.where(SymptomReport.status == status)
    if day_number is not None:
        stmt = stmt.where(SymptomReport.day_number == day_number)
    return stmt.order_by(SymptomReport.report_time.desc(), SymptomReport.created_at.desc())


async def list_for_patient(
    session: AsyncSession,
    patient: User,
    *,
    protocol_id: UUID | None = None,
    status: str | None = None,
    day_number: int | None = None,
) -> list[SymptomReport]:
    stmt = select(SymptomReport).where(SymptomReport.patient_id == patient.id)
    stmt = _filtered(stmt, protocol_id=protocol_id, status=status, day_number=day_number)
    return list((await session.execute(stmt)).scalars())


async def list_for_doctor(
    session: AsyncSession,
    doctor: User,
    *,
    patient_id: UUID | None = None,
    protocol_id: UUID | None = None,
    status: str | None = None,
    day_number: int | None = None,
) -> list[SymptomReport]:
    stmt = (
        select(SymptomReport)
        .join(Protocol, Protocol.id == SymptomReport.protocol_id)
        .where(Protocol.doctor_id == doctor.id)
    )
    if patient_id is not None:
        patient = await session.get(User, patient_id)
        if patient is None or not await has_active_relationship(session, doctor.id, patient):
            raise NotFoundError("Patient not found")
        stmt = stmt.where(SymptomReport.patient_id == patient.id)
    stmt = _filtered(stmt, protocol_id=protocol_id, status=status, day_number=day_number)
    return list((await session.execute(stmt)).scalars())


async def review_report(
    session: AsyncSession, doctor: User, report_id: UUID, status: str, doctor_notes: str | None = None
) -> SymptomReport:
    if status not in SYMPTOM_STATUSES:
        raise ValidationFailedError(f"Unknown status: {status}")

    report = await session.get(SymptomReport, report_id)
    protocol = await session.get(Protocol, report.protocol_id) if report else None
    if protocol is None or protocol.doctor_id != doctor.id:
        raise NotFoundError("Symptom report not found")

    report.status = status
    report.doctor_notes = doctor_notes or None
    report.reviewed_at = utcnow()
    report.reviewed_by = doctor.id
    await session.flush()
    _log.info("symptom report reviewed", extra={"report_id": str(report.id), "status": status})
    return report
