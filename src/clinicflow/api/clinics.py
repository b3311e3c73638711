from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from clinicflow.api.deps import AUTHENTICATED, doctor_only
from clinicflow.api.schemas import (
    AddMemberIn,
    AuditLogOut,
    ClinicDetailOut,
    ClinicIn,
    ClinicOut,
    ClinicStatsOut,
    ClinicUpdateIn,
    LimitOut,
    MemberOut,
    PlanOut,
    PublicClinicOut,
    PublicDoctorOut,
    SubscriptionOut,
)
from clinicflow.core.errors import NotFoundError
from clinicflow.db import get_session
from clinicflow.models import Clinic, User
from clinicflow.services import audit, clinics as clinic_service, subscriptions as sub_service
from clinicflow.services.membership import is_clinic_admin

router = APIRouter(prefix="/clinic", tags=["clinics"], dependencies=AUTHENTICATED)
public_router = APIRouter(tags=["public"])


async def _detail(session: AsyncSession, user: User, clinic: Clinic) -> ClinicDetailOut:
    sub = await sub_service.get_clinic_subscription(session, clinic.id)
    return ClinicDetailOut(
        clinic=ClinicOut.model_validate(clinic),
        members=[MemberOut(**m) for m in await clinic_service.list_members(session, clinic)],
        subscription=SubscriptionOut.model_validate(sub) if sub else None,
        is_admin=await is_clinic_admin(session, user, clinic),
    )


@router.get("", response_model=ClinicDetailOut)
async def get_my_clinic(
    user: User = Depends(doctor_only),
    session: AsyncSession = Depends(get_session),
):
    clinic = await clinic_service.require_user_clinic(session, user)
    return await _detail(session, user, clinic)


@router.post("", response_model=ClinicDetailOut, status_code=201)
async def create_clinic(
    payload: ClinicIn,
    user: User = Depends(doctor_only),
    session: AsyncSession = Depends(get_session),
):
    data = payload.model_dump(exclude_unset=True)
    name = data.pop("name")
    clinic = await clinic_service.create_clinic(session, user, name, **data)
    return await _detail(session, user, clinic)


@router.patch("", response_model=ClinicDetailOut)
async def update_clinic(
    payload: ClinicUpdateIn,
    user: User = Depends(doctor_only),
    session: AsyncSession = Depends(get_session),
):
    clinic = await clinic_service.require_user_clinic(session, user)
    clinic = await clinic_service.update_clinic(session, user, clinic, payload.model_dump(exclude_unset=True))
    return await _detail(session, user, clinic)


@router.get("/stats", response_model=ClinicStatsOut)
async def clinic_stats(
    user: User = Depends(doctor_only),
    session: AsyncSession = Depends(get_session),
):
    clinic = await clinic_service.require_user_clinic(session, user)
    return await clinic_service.clinic_stats(session, clinic)


@router.post("/members", response_model=MemberOut, status_code=201)
async def add_member(
    payload: AddMemberIn,
    user: User = Depends(doctor_only),
    session: AsyncSession = Depends(get_session),
):
    clinic = await clinic_service.require_user_clinic(session, user)
    member = await clinic_service.add_member(session, user, clinic, payload.email, payload.role)
    members = await clinic_service.list_members(session, clinic)
    return next(MemberOut(**m) for m in members if m["user_id"] == member.user_id)


@router.delete("/members/{user_id}", status_code=204)
async def remove_member(
    user_id: UUID,
    user: User = Depends(doctor_only),
    session: AsyncSession = Depends(get_session),
):
    clinic = await clinic_service.require_user_clinic(session, user)
    await clinic_service.remove_member(session, user, clinic, user_id)


@router.get("/audit-log", response_model=list[AuditLogOut])
async def audit_log(
    limit: int = Query(default=100, ge=1, le=500),
    user: User = Depends(doctor_only),
    session: AsyncSession = Depends(get_session),
):
    clinic = await clinic_service.require_user_clinic(session, user)
    await clinic_service.require_admin(session, user, clinic)
    return await audit.list_for_clinic(session, clinic.id, limit=limit)


@router.get("/subscription", response_model=SubscriptionOut)
async def get_subscription(
    user: User = Depends(doctor_only),
    session: AsyncSession = Depends(get_session),
):
    clinic = await clinic_service.require_user_clinic(session, user)
    sub = await sub_service.get_clinic_subscription(session, clinic.id)
    if sub is None:
        raise NotFoundError("Subscription not found")
    return sub


@router.get("/limits/{kind}", response_model=LimitOut)
async def check_limit(
    kind: str,
    user: User = Depends(doctor_only),
    session: AsyncSession = Depends(get_session),
):
    result = await sub_service.check_limit(session, user, kind)
    return result.as_dict()


# ── public ────────────────────────────────────────────────────────────────────

@public_router.get("/clinics/{slug}", response_model=PublicClinicOut)
async def get_clinic_by_slug(slug: str, session: AsyncSession = Depends(get_session)):
    clinic, members = await clinic_service.get_clinic_by_slug(session, slug)
    return PublicClinicOut(
        name=clinic.name,
        slug=clinic.slug,
        description=clinic.description,
        logo=clinic.logo,
        city=clinic.city,
        state=clinic.state,
        country=clinic.country,
        phone=clinic.phone,
        email=clinic.email,
        website=clinic.website,
        doctors=[PublicDoctorOut(id=m["user_id"], name=m["name"], image=m["image"]) for m in members],
    )


@public_router.get("/plans", response_model=list[PlanOut])
async def list_public_plans(session: AsyncSession = Depends(get_session)):
    return await sub_service.list_plans(session)
