"""
Referral codes, referral leads and referral credits.
"""
from __future__ import annotations

import logging
import math
import secrets
import string
from typing import Any
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from clinicflow.config import get_settings
from clinicflow.core.errors import ConflictError, NotFoundError, ValidationFailedError
from clinicflow.models import DoctorPatientRelationship, ReferralCredit, ReferralLead, User
from clinicflow.models.accounts import PATIENT_ROLES, ROLE_DOCTOR
from clinicflow.models.engagement import (
    CREDIT_SUCCESSFUL_REFERRAL,
    LEAD_CONTACTED,
    LEAD_CONVERTED,
    LEAD_PENDING,
    LEAD_STATUSES,
)
from clinicflow.services.email import queue_email

_log = logging.getLogger("clinicflow.referrals")

CODE_ALPHABET = string.ascii_uppercase + string.digits
USER_CODE_LENGTH = 6
LEAD_CODE_LENGTH = 8
MAX_ATTEMPTS = 10


def random_code(length: int) -> str:
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


async def _unique_code(session: AsyncSession, column, length: int) -> str:
    for _ in range(MAX_ATTEMPTS):
        code = random_code(length)
        taken = (await session.execute(select(column).where(column == code))).first()
        if not taken:
            return code
    raise ConflictError("Could not generate a unique referral code")


async def ensure_user_has_referral_code(session: AsyncSession, user: User) -> str:
    if user.referral_code:
        return user.referral_code
    user.referral_code = await _unique_code(session, User.referral_code, USER_CODE_LENGTH)
    await session.flush()
    return user.referral_code


async def backfill_referral_codes(session: AsyncSession) -> int:
    rows = await session.execute(select(User).where(User.referral_code.is_(None)).order_by(User.created_at))
    changed = 0
    for user in rows.scalars():
        await ensure_user_has_referral_code(session, user)
        changed += 1
    return changed


async def _is_patient_of(session: AsyncSession, user: User, doctor_id: UUID) -> bool:
    if user.doctor_id == doctor_id:
        return True
    rel = (
        await session.execute(
            select(DoctorPatientRelationship.id).where(
                DoctorPatientRelationship.patient_id == user.id,
                DoctorPatientRelationship.doctor_id == doctor_id,
                DoctorPatientRelationship.is_active.is_(True),
            )
        )
    ).first()
    return rel is not None


async def submit_lead(
    session: AsyncSession,
    *,
    name: str,
    email: str,
    doctor_id: UUID,
    phone: str | None = None,
    referrer_code: str | None = None,
) -> ReferralLead:
    doctor = await session.get(User, doctor_id)
    if doctor is None or doctor.role != ROLE_DOCTOR:
        raise NotFoundError("Doctor not found")

    email = email.strip().lower()

    existing_user = (await session.execute(select(User).where(User.email == email))).scalar_one_or_none()
    if existing_user is not None and await _is_patient_of(session, existing_user, doctor.id):
        raise ValidationFailedError("This person is already a patient of this doctor")

    open_lead = (
        await session.execute(
            select(ReferralLead.id).where(
                ReferralLead.doctor_id == doctor.id,
                ReferralLead.email == email,
                ReferralLead.status.in_((LEAD_PENDING, LEAD_CONTACTED)),
            )
        )
    ).first()
    if open_lead:
        raise ValidationFailedError("A referral for this email is already being processed")

    referrer: User | None = None
    if referrer_code:
        referrer = (
            await session.execute(select(User).where(User.referral_code == referrer_code.strip().upper()))
        ).scalar_one_or_none()
        if (
            referrer is None
            or referrer.role not in PATIENT_ROLES
            or not await _is_patient_of(session, referrer, doctor.id)
        ):
            raise ValidationFailedError("Invalid referral code")

    lead = ReferralLead(
        doctor_id=doctor.id,
        referrer_id=referrer.id if referrer else None,
        name=name.strip(),
        email=email,
        phone=phone,
        referral_code=await _unique_code(session, ReferralLead.referral_code, LEAD_CODE_LENGTH),
        status=LEAD_PENDING,
    )
    session.add(lead)
    await session.flush()

    await queue_email(
        session,
        to=doctor.email,
        template="referral_notification",
        doctor_name=doctor.name,
        lead_name=lead.name,
        lead_email=lead.email,
        lead_phone=lead.phone,
        lead_code=lead.referral_code,
        referrer_name=referrer.name if referrer else None,
    )
    _log.info("referral lead submitted", extra={"lead_id": str(lead.id), "doctor_id": str(doctor.id)})
    return lead


async def list_leads(
    session: AsyncSession,
    doctor: User,
    *,
    status: str | None = None,
    page: int = 1,
    limit: int = 20,
) -> dict[str, Any]:
    page = max(page, 1)
    limit = min(max(limit, 1), 100)

    base = select(ReferralLead).where(ReferralLead.doctor_id == doctor.id)
    if status:
        base = base.where(ReferralLead.status == status)

    total = int(await session.scalar(select(func.count()).select_from(base.subquery())) or 0)
    leads = list(
        (
            await session.execute(
                base.order_by(ReferralLead.created_at.desc()).offset((page - 1) * limit).limit(limit)
            )
        ).scalars()
    )

    stat_rows = await session.execute(
        select(ReferralLead.status, func.count())
        .where(ReferralLead.doctor_id == doctor.id)
        .group_by(ReferralLead.status)
    )
    stats = {s: 0 for s in LEAD_STATUSES}
    stats.update({s: int(c) for s, c in stat_rows.all()})

    return {
        "leads": leads,
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": math.ceil(total / limit) if total else 0,
        },
        "stats": stats,
    }


async def update_lead(
    session: AsyncSession,
    doctor: User,
    lead_id: UUID,
    *,
    status: str | None = None,
    notes: str | None = None,
) -> ReferralLead:
    lead = await session.get(ReferralLead, lead_id)
    if lead is None or lead.doctor_id != doctor.id:
        raise NotFoundError("Referral not found")

    if status is not None:
        if status not in LEAD_STATUSES:
            raise ValidationFailedError(f"Invalid status: {status}")
        becomes_converted = status == LEAD_CONVERTED and lead.status != LEAD_CONVERTED
        lead.status = status
        if becomes_converted and lead.referrer_id is not None:
            await _grant_credit(session, lead)
    if notes is not None:
        lead.notes = notes

    await session.flush()
    return lead


async def _grant_credit(session: AsyncSession, lead: ReferralLead) -> None:
    already = (
        await session.execute(select(ReferralCredit.id).where(ReferralCredit.lead_id == lead.id))
    ).first()
    if already:
        return
    session.add(
        ReferralCredit(
            user_id=lead.referrer_id,
            lead_id=lead.id,
            amount=1,
            type=CREDIT_SUCCESSFUL_REFERRAL,
            description=f"Referral of {lead.name} converted",
        )
    )
    _log.info("referral credit granted", extra={"lead_id": str(lead.id)})


async def patient_summary(session: AsyncSession, patient: User) -> dict[str, Any]:
    code = await ensure_user_has_referral_code(session, patient)
    settings = get_settings()

    balance = await session.scalar(
        select(func.coalesce(func.sum(ReferralCredit.amount), 0)).where(
            ReferralCredit.user_id == patient.id,
            ReferralCredit.is_used.is_(False),
        )
    )
    leads = list(
        (
            await session.execute(
                select(ReferralLead)
                .where(ReferralLead.referrer_id == patient.id)
                .order_by(ReferralLead.created_at.desc())
            )
        ).scalars()
    )

    link = None
    if patient.doctor_id is not None:
        link = f"{settings.APP_URL}/referral/{patient.doctor_id}?code={code}"

    return {
        "referral_code": code,
        "referral_link": link,
        "credits_balance": int(balance or 0),
        "leads": leads,
    }
