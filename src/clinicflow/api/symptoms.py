from __future__ import annotations

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from clinicflow.api.deps import AUTHENTICATED, doctor_only, patient_only
from clinicflow.api.schemas import SymptomReportIn, SymptomReportOut, SymptomReviewIn, SymptomStatus
from clinicflow.db import get_session
from clinicflow.models import User
from clinicflow.services import symptoms as symptom_service

router = APIRouter(prefix="/symptom-reports", tags=["symptom-reports"], dependencies=AUTHENTICATED)


# ── patient ───────────────────────────────────────────────────────────────────

@router.post("", response_model=SymptomReportOut, status_code=201)
async def file_report(
    payload: SymptomReportIn,
    patient: User = Depends(patient_only),
    session: AsyncSession = Depends(get_session),
):
    return await symptom_service.create_report(session, patient, payload.model_dump())


@router.get("/me", response_model=list[SymptomReportOut])
async def my_reports(
    protocol_id: Optional[UUID] = Query(default=None),
    status: Optional[SymptomStatus] = Query(default=None),
    day_number: Optional[int] = Query(default=None, ge=1),
    patient: User = Depends(patient_only),
    session: AsyncSession = Depends(get_session),
):
    return await symptom_service.list_for_patient(
        session, patient, protocol_id=protocol_id, status=status, day_number=day_number
    )


# ── doctor ────────────────────────────────────────────────────────────────────

@router.get("", response_model=list[SymptomReportOut])
async def list_reports(
    patient_id: Optional[UUID] = Query(default=None),
    protocol_id: Optional[UUID] = Query(default=None),
    status: Optional[SymptomStatus] = Query(default=None),
    day_number: Optional[int] = Query(default=None, ge=1),
    doctor: User = Depends(doctor_only),
    session: AsyncSession = Depends(get_session),
):
    return await symptom_service.list_for_doctor(
        session, doctor, patient_id=patient_id, protocol_id=protocol_id, status=status, day_number=day_number
    )


@router.patch("/{report_id}/status", response_model=SymptomReportOut)
async def review_report(
    report_id: UUID,
    payload: SymptomReviewIn,
    doctor: User = Depends(doctor_only),
    session: AsyncSession = Depends(get_session),
):
    return await symptom_service.review_report(session, doctor, report_id, payload.status, payload.doctor_notes)
