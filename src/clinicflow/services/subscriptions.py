"""
Plans, clinic subscriptions and tier limits.

A plan limit of None means unlimited. Limits are counted across every active
doctor of the caller's clinic.
"""
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from clinicflow.core.errors import LimitExceededError, NotFoundError, ValidationFailedError
from clinicflow.models import (
    Clinic,
    ClinicMember,
    ClinicSubscription,
    Course,
    Protocol,
    SubscriptionPlan,
    User,
    utcnow,
)
from clinicflow.models.accounts import PATIENT_ROLES
from clinicflow.models.clinics import SUB_ACTIVE, SUB_TRIAL, SUBSCRIPTION_STATUSES
from clinicflow.services.membership import active_doctor_ids, get_user_clinic

_log = logging.getLogger("clinicflow.subscriptions")

LIMIT_KINDS = ("patients", "protocols", "courses", "doctors")

_NOT_NULL_PLAN_FIELDS = ("name", "price", "is_default", "is_active")


@dataclass
class LimitCheck:
    allowed: bool
    current: int
    limit: int | None
    message: str | None = None

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


# ── plans ─────────────────────────────────────────────────────────────────────

async def get_default_plan(session: AsyncSession) -> SubscriptionPlan | None:
    return (
        await session.execute(
            select(SubscriptionPlan)
            .where(SubscriptionPlan.is_default.is_(True), SubscriptionPlan.is_active.is_(True))
            .limit(1)
        )
    ).scalar_one_or_none()


async def list_plans(session: AsyncSession, *, include_inactive: bool = False) -> list[SubscriptionPlan]:
    stmt = select(SubscriptionPlan).order_by(SubscriptionPlan.price, SubscriptionPlan.name)
    if not include_inactive:
        stmt = stmt.where(SubscriptionPlan.is_active.is_(True))
    return list((await session.execute(stmt)).scalars())


async def _clear_other_defaults(session: AsyncSession, keep_id: UUID) -> None:
    await session.execute(
        update(SubscriptionPlan)
        .where(SubscriptionPlan.id != keep_id, SubscriptionPlan.is_default.is_(True))
        .values(is_default=False)
        .execution_options(synchronize_session="fetch")
    )


async def create_plan(session: AsyncSession, data: dict[str, Any]) -> SubscriptionPlan:
    exists = (
        await session.execute(select(SubscriptionPlan.id).where(SubscriptionPlan.name == data["name"]))
    ).first()
    if exists:
        raise ValidationFailedError("A plan with this name already exists")

    plan = SubscriptionPlan(**data)
    session.add(plan)
    await session.flush()
    if plan.is_default:
        await _clear_other_defaults(session, plan.id)
    _log.info("plan created", extra={"plan_id": str(plan.id)})
    return plan


async def update_plan(session: AsyncSession, plan_id: UUID, data: dict[str, Any]) -> SubscriptionPlan:
    plan = await session.get(SubscriptionPlan, plan_id)
    if plan is None:
        raise NotFoundError("Plan not found")

    for key, value in data.items():
        if value is None and key in _NOT_NULL_PLAN_FIELDS:
            continue
        setattr(plan, key, value)
    await session.flush()
    if plan.is_default:
        await _clear_other_defaults(session, plan.id)
    return plan


async def delete_plan(session: AsyncSession, plan_id: UUID) -> None:
    plan = await session.get(SubscriptionPlan, plan_id)
    if plan is None:
        raise NotFoundError("Plan not found")

    in_use = await session.scalar(
        select(func.count()).select_from(ClinicSubscription).where(ClinicSubscription.plan_id == plan_id)
    )
    if in_use:
        # keep history intact, just retire it
        plan.is_active = False
        plan.is_default = False
        return
    await session.delete(plan)


# ── subscriptions ─────────────────────────────────────────────────────────────

def subscription_is_usable(sub: ClinicSubscription | None, now: datetime | None = None) -> bool:
    if sub is None:
        return False
    now = now or utcnow()
    if sub.status == SUB_ACTIVE:
        return sub.end_date is None or sub.end_date > now
    if sub.status == SUB_TRIAL:
        return sub.trial_end_date is None or sub.trial_end_date > now
    return False


async def get_clinic_subscription(session: AsyncSession, clinic_id: UUID) -> ClinicSubscription | None:
    return (
        await session.execute(select(ClinicSubscription).where(ClinicSubscription.clinic_id == clinic_id))
    ).scalar_one_or_none()


def apply_status_dates(
    sub: ClinicSubscription,
    status: str,
    *,
    end_date: datetime | None = None,
    trial_end_date: datetime | None = None,
) -> None:
    """TRIAL keeps only trial_end_date, ACTIVE keeps only end_date, anything else clears both."""
    if status not in SUBSCRIPTION_STATUSES:
        raise ValidationFailedError(f"Unknown subscription status: {status}")

    sub.status = status
    if status == SUB_TRIAL:
        if trial_end_date is not None:
            sub.trial_end_date = trial_end_date
        sub.end_date = None
    elif status == SUB_ACTIVE:
        sub.end_date = end_date
        sub.trial_end_date = None
    else:
        sub.end_date = None
        sub.trial_end_date = None


async def update_clinic_subscription(
    session: AsyncSession,
    clinic_id: UUID,
    *,
    status: str,
    plan_id: UUID | None = None,
    max_doctors: int | None = None,
    end_date: datetime | None = None,
    trial_end_date: datetime | None = None,
) -> ClinicSubscription:
    sub = await get_clinic_subscription(session, clinic_id)
    if sub is None:
        raise NotFoundError("Subscription not found")

    if plan_id is not None:
        plan = await session.get(SubscriptionPlan, plan_id)
        if plan is None:
            raise NotFoundError("Plan not found")
        sub.plan_id = plan.id
        sub.plan = plan
    if max_doctors is not None:
        if max_doctors < 1:
            raise ValidationFailedError("max_doctors must be at least 1")
        sub.max_doctors = max_doctors

    apply_status_dates(sub, status, end_date=end_date, trial_end_date=trial_end_date)
    await session.flush()
    _log.info("subscription updated", extra={"clinic_id": str(clinic_id), "status": status})
    return sub


# ── limits ────────────────────────────────────────────────────────────────────

async def _count(session: AsyncSession, kind: str, clinic: Clinic, doctor_ids: list[UUID]) -> int:
    if kind == "patients":
        stmt = select(func.count()).select_from(User).where(
            User.doctor_id.in_(doctor_ids),
            User.role.in_(PATIENT_ROLES),
            User.is_active.is_(True),
        )
    elif kind == "protocols":
        stmt = select(func.count()).select_from(Protocol).where(Protocol.doctor_id.in_(doctor_ids))
    elif kind == "courses":
        stmt = select(func.count()).select_from(Course).where(Course.doctor_id.in_(doctor_ids))
    else:
        stmt = select(func.count()).select_from(ClinicMember).where(
            ClinicMember.clinic_id == clinic.id,
            ClinicMember.is_active.is_(True),
        )
    return int(await session.scalar(stmt) or 0)


async def check_limit(session: AsyncSession, user: User, kind: str) -> LimitCheck:
    if kind not in LIMIT_KINDS:
        raise ValidationFailedError(f"Unknown limit: {kind}")

    clinic = await get_user_clinic(session, user.id)
    if clinic is None:
        return LimitCheck(False, 0, 0, "No clinic found for this user")

    sub = await get_clinic_subscription(session, clinic.id)
    if not subscription_is_usable(sub):
        return LimitCheck(False, 0, 0, "No active subscription")

    doctor_ids = await active_doctor_ids(session, clinic)
    current = await _count(session, kind, clinic, doctor_ids)

    if kind == "doctors":
        limit = sub.max_doctors
    else:
        limit = getattr(sub.plan, f"max_{kind}")

    if limit is None:
        return LimitCheck(True, current, None)
    if current >= limit:
        return LimitCheck(
            False,
            current,
            limit,
            f"You have reached the limit of {limit} {kind} for your plan",
        )
    return LimitCheck(True, current, limit)


async def enforce_limit(session: AsyncSession, user: User, kind: str) -> LimitCheck:
    result = await check_limit(session, user, kind)
    if not result.allowed:
        raise LimitExceededError(result.message)
    return result
