from __future__ import annotations

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from clinicflow.api.deps import AUTHENTICATED, doctor_only, patient_only
from clinicflow.api.schemas import LeadIn, LeadListOut, LeadOut, LeadUpdateIn, ReferralSummaryOut
from clinicflow.db import get_session
from clinicflow.models import User
from clinicflow.services import referrals as referral_service

router = APIRouter(prefix="/referrals", tags=["referrals"], dependencies=AUTHENTICATED)
public_router = APIRouter(prefix="/referrals", tags=["public"])


@public_router.post("/leads", response_model=LeadOut, status_code=201)
async def submit_lead(payload: LeadIn, session: AsyncSession = Depends(get_session)):
    return await referral_service.submit_lead(
        session,
        name=payload.name,
        email=payload.email,
        phone=payload.phone,
        doctor_id=payload.doctor_id,
        referrer_code=payload.referrer_code,
    )


@router.get("/leads", response_model=LeadListOut)
async def list_leads(
    status: Optional[str] = Query(default=None),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    doctor: User = Depends(doctor_only),
    session: AsyncSession = Depends(get_session),
):
    return await referral_service.list_leads(session, doctor, status=status, page=page, limit=limit)


@router.patch("/leads/{lead_id}", response_model=LeadOut)
async def update_lead(
    lead_id: UUID,
    payload: LeadUpdateIn,
    doctor: User = Depends(doctor_only),
    session: AsyncSession = Depends(get_session),
):
    return await referral_service.update_lead(session, doctor, lead_id, status=payload.status, notes=payload.notes)


@router.get("/me", response_model=ReferralSummaryOut)
async def my_referrals(
    patient: User = Depends(patient_only),
    session: AsyncSession = Depends(get_session),
):
    return await referral_service.patient_summary(session, patient)
