"""
Admin API: plans, clinic subscriptions and platform metrics.
Every endpoint requires a SUPER_ADMIN bearer token.
"""
from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from clinicflow.api.deps import AUTHENTICATED, admin_only
from clinicflow.api.schemas import (
    AdminClinicOut,
    ClinicOut,
    DashboardOut,
    OwnerOut,
    PlanIn,
    PlanOut,
    PlanUpdateIn,
    SubscriptionOut,
    SubscriptionUpdateIn,
)
from clinicflow.db import get_session
from clinicflow.services import admin as admin_service, subscriptions as sub_service

router = APIRouter(
    prefix="/admin",
    tags=["admin"],
    dependencies=[*AUTHENTICATED, Depends(admin_only)],
)


@router.get("/dashboard", response_model=DashboardOut)
async def dashboard(session: AsyncSession = Depends(get_session)):
    return await admin_service.dashboard(session)


@router.get("/plans", response_model=list[PlanOut])
async def list_plans(session: AsyncSession = Depends(get_session)):
    return await sub_service.list_plans(session, include_inactive=True)


@router.post("/plans", response_model=PlanOut, status_code=201)
async def create_plan(payload: PlanIn, session: AsyncSession = Depends(get_session)):
    return await sub_service.create_plan(session, payload.model_dump())


@router.patch("/plans/{plan_id}", response_model=PlanOut)
async def update_plan(plan_id: UUID, payload: PlanUpdateIn, session: AsyncSession = Depends(get_session)):
    return await sub_service.update_plan(session, plan_id, payload.model_dump(exclude_unset=True))


@router.delete("/plans/{plan_id}", status_code=204)
async def delete_plan(plan_id: UUID, session: AsyncSession = Depends(get_session)):
    await sub_service.delete_plan(session, plan_id)


@router.get("/clinics", response_model=list[AdminClinicOut])
async def list_clinics(session: AsyncSession = Depends(get_session)):
    return [
        AdminClinicOut(
            clinic=ClinicOut.model_validate(clinic),
            owner=OwnerOut.model_validate(owner),
            subscription=SubscriptionOut.model_validate(sub) if sub else None,
        )
        for clinic, sub, owner in await admin_service.list_clinics(session)
    ]


@router.patch("/clinics/{clinic_id}/subscription", response_model=SubscriptionOut)
async def update_subscription(
    clinic_id: UUID,
    payload: SubscriptionUpdateIn,
    session: AsyncSession = Depends(get_session),
):
    return await sub_service.update_clinic_subscription(
        session,
        clinic_id,
        status=payload.status,
        plan_id=payload.plan_id,
        max_doctors=payload.max_doctors,
        end_date=payload.end_date,
        trial_end_date=payload.trial_end_date,
    )
