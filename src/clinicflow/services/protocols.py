"""
Treatment protocols: day -> session -> task trees owned by a doctor.

Numbering inside a tree is never taken from the client; it is normalised from
list position (day 1..n, session 1..n, task order 0..n).
"""
from __future__ import annotations

import logging
from datetime import date
from typing import Any
from uuid import UUID

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from clinicflow.core.errors import ConflictError, NotFoundError, ValidationFailedError
from clinicflow.models import (
    DoctorDefaultProtocol,
    OnboardingTemplate,
    Protocol,
    ProtocolDay,
    ProtocolPrescription,
    ProtocolSession,
    ProtocolTask,
    ProtocolTaskProgress,
    SymptomReport,
    User,
)
from clinicflow.models.accounts import PATIENT_ROLES
from clinicflow.models.protocols import ACTIVE, PAUSED, PRESCRIBED
from clinicflow.services import prescriptions
from clinicflow.services.subscriptions import enforce_limit

_log = logging.getLogger("clinicflow.protocols")

PROTOCOL_TEMPLATES: list[dict[str, Any]] = [
    {
        "name": "Post Facial Filler",
        "duration": 7,
        "description": "Aftercare following a facial filler procedure",
        "days": [
            {
                "tasks": [
                    {"title": "Drink 2L of water", "description": "Keep well hydrated"},
                    {"title": "Apply moisturising serum", "description": "Apply gently without massaging"},
                    {"title": "Avoid sun exposure", "description": "Use SPF 60+ sunscreen"},
                ],
            },
            {
                "tasks": [
                    {"title": "Avoid make-up", "description": "No make-up on the treated area"},
                    {"title": "Use sunscreen", "description": "Reapply every 2 hours"},
                    {"title": "Cold compresses", "description": "15 minutes, 3 times a day if swollen"},
                ],
            },
            {
                "tasks": [
                    {"title": "Take collagen supplement", "description": "As prescribed"},
                    {"title": "Gentle facial drainage", "description": "Light movements, no pressure"},
                ],
            },
        ],
    },
    {
        "name": "21-Day Aesthetic Detox",
        "duration": 21,
        "description": "Complete aesthetic detox programme",
        "days": [
            {
                "tasks": [
                    {"title": "Drink 3L of water", "description": "Spread across the day"},
                    {"title": "Drink green tea", "description": "2 cups a day"},
                    {"title": "Apply detox mask", "description": "Green clay for 15 minutes"},
                ],
            },
        ],
    },
    {
        "name": "Post Botox",
        "duration": 14,
        "description": "Aftercare following botulinum toxin injections",
        "days": [
            {
                "tasks": [
                    {"title": "Stay upright for 4 hours", "description": "Do not lie down"},
                    {"title": "Do not massage the area", "description": "Avoid touching the injection sites"},
                    {"title": "Avoid exercise", "description": "Rest for the first 24 hours"},
                ],
            },
        ],
    },
]

_SCALARS = (
    "name",
    "description",
    "duration",
    "is_template",
    "cover_image",
    "show_modal",
    "modal_title",
    "modal_video_url",
    "modal_description",
    "modal_button_text",
    "modal_button_url",
    "onboarding_template_id",
)
_REQUIRED = ("name", "duration", "is_template", "show_modal")


def build_days(days: list[dict[str, Any]]) -> list[ProtocolDay]:
    """Build a fresh day tree. A day given as a flat task list gets one session."""
    out: list[ProtocolDay] = []
    for i, day in enumerate(days, start=1):
        sessions = day.get("sessions")
        if sessions is None:
            sessions = [{"title": day.get("title") or f"Day {i}", "tasks": day.get("tasks") or []}]

        out.append(
            ProtocolDay(
                day_number=i,
                title=day.get("title") or f"Day {i}",
                sessions=[
                    ProtocolSession(
                        session_number=j,
                        title=s.get("title") or f"Session {j}",
                        description=s.get("description"),
                        tasks=[
                            ProtocolTask(
                                order_index=k,
                                title=t["title"],
                                description=t.get("description"),
                                has_more_info=bool(t.get("has_more_info", False)),
                                video_url=t.get("video_url"),
                                full_explanation=t.get("full_explanation"),
                            )
                            for k, t in enumerate(s.get("tasks") or [])
                        ],
                    )
                    for j, s in enumerate(sessions, start=1)
                ],
            )
        )
    return out


def _validate_tree(duration: int, days: list | None) -> None:
    if duration < 1:
        raise ValidationFailedError("duration must be at least 1 day")
    if days is not None and len(days) > duration:
        raise ValidationFailedError("A protocol cannot have more days than its duration")


async def _check_onboarding_template(session: AsyncSession, doctor: User, template_id: UUID | None) -> None:
    if template_id is None:
        return
    tpl = await session.get(OnboardingTemplate, template_id)
    if tpl is None or tpl.doctor_id != doctor.id:
        raise NotFoundError("Onboarding template not found")


async def create_protocol(session: AsyncSession, doctor: User, data: dict[str, Any]) -> Protocol:
    await enforce_limit(session, doctor, "protocols")

    days = data.pop("days", None) or []
    _validate_tree(data["duration"], days)
    await _check_onboarding_template(session, doctor, data.get("onboarding_template_id"))

    protocol = Protocol(doctor_id=doctor.id, days=build_days(days), **{k: v for k, v in data.items() if k in _SCALARS})
    session.add(protocol)
    await session.flush()
    _log.info("protocol created", extra={"protocol_id": str(protocol.id), "days": len(days)})
    return protocol


async def get_owned(session: AsyncSession, doctor: User, protocol_id: UUID) -> Protocol:
    protocol = await session.get(Protocol, protocol_id)
    if protocol is None or protocol.doctor_id != doctor.id:
        raise NotFoundError("Protocol not found")
    return protocol


async def get_for_user(session: AsyncSession, user: User, protocol_id: UUID) -> Protocol:
    protocol = await session.get(Protocol, protocol_id)
    if protocol is None:
        raise NotFoundError("Protocol not found")
    if protocol.doctor_id == user.id:
        return protocol

    if user.role in PATIENT_ROLES:
        prescribed = (
            await session.execute(
                select(ProtocolPrescription.id).where(
                    ProtocolPrescription.protocol_id == protocol.id,
                    ProtocolPrescription.patient_id == user.id,
                )
            )
        ).first()
        if prescribed:
            return protocol
    raise NotFoundError("Protocol not found")


async def list_protocols(session: AsyncSession, doctor: User, *, is_template: bool | None = None) -> list[Protocol]:
    stmt = select(Protocol).where(Protocol.doctor_id == doctor.id).order_by(Protocol.created_at.desc())
    if is_template is not None:
        stmt = stmt.where(Protocol.is_template.is_(is_template))
    return list((await session.execute(stmt)).scalars())


async def _count_prescriptions(session: AsyncSession, protocol_id: UUID, statuses: tuple[str, ...]) -> int:
    return int(
        await session.scalar(
            select(func.count())
            .select_from(ProtocolPrescription)
            .where(ProtocolPrescription.protocol_id == protocol_id, ProtocolPrescription.status.in_(statuses))
        )
        or 0
    )


async def update_protocol(session: AsyncSession, doctor: User, protocol_id: UUID, data: dict[str, Any]) -> Protocol:
    protocol = await get_owned(session, doctor, protocol_id)

    days = data.pop("days", None)
    _validate_tree(data.get("duration") or protocol.duration, protocol.days if days is None else days)
    if "onboarding_template_id" in data:
        await _check_onboarding_template(session, doctor, data["onboarding_template_id"])

    for key, value in data.items():
        if key not in _SCALARS or (value is None and key in _REQUIRED):
            continue
        setattr(protocol, key, value)

    if days is not None:
        if await _count_prescriptions(session, protocol.id, (ACTIVE, PAUSED)):
            raise ConflictError("Cannot replace the days of a protocol that is in progress for a patient")
        # old tree has to be gone before the renumbered one goes in
        protocol.days.clear()
        await session.flush()
        protocol.days.extend(build_days(days))

    await session.flush()
    return protocol


async def delete_protocol(session: AsyncSession, doctor: User, protocol_id: UUID) -> None:
    protocol = await get_owned(session, doctor, protocol_id)
    if await _count_prescriptions(session, protocol.id, (ACTIVE, PAUSED)):
        raise ConflictError("Protocol has active prescriptions")

    prescription_ids = select(ProtocolPrescription.id).where(ProtocolPrescription.protocol_id == protocol.id)
    await session.execute(
        delete(ProtocolTaskProgress)
        .where(ProtocolTaskProgress.prescription_id.in_(prescription_ids))
        .execution_options(synchronize_session=False)
    )
    await session.execute(
        delete(ProtocolPrescription)
        .where(ProtocolPrescription.protocol_id == protocol.id)
        .execution_options(synchronize_session=False)
    )
    await session.execute(delete(SymptomReport).where(SymptomReport.protocol_id == protocol.id))
    await session.execute(delete(DoctorDefaultProtocol).where(DoctorDefaultProtocol.protocol_id == protocol.id))
    await session.delete(protocol)
    await session.flush()
    _log.info("protocol deleted", extra={"protocol_id": str(protocol_id)})


# ── templates ─────────────────────────────────────────────────────────────────

def list_builtin_templates() -> list[dict[str, Any]]:
    return [
        {
            "index": i,
            "name": t["name"],
            "description": t["description"],
            "duration": t["duration"],
            "days": len(t["days"]),
        }
        for i, t in enumerate(PROTOCOL_TEMPLATES)
    ]


async def create_from_template(session: AsyncSession, doctor: User, index: int) -> Protocol:
    if index < 0 or index >= len(PROTOCOL_TEMPLATES):
        raise NotFoundError("Template not found")
    tpl = PROTOCOL_TEMPLATES[index]
    return await create_protocol(
        session,
        doctor,
        {
            "name": tpl["name"],
            "description": tpl["description"],
            "duration": tpl["duration"],
            "is_template": False,
            "days": [dict(d) for d in tpl["days"]],
        },
    )


# ── default protocols ─────────────────────────────────────────────────────────

async def list_default_protocols(session: AsyncSession, doctor: User) -> list[Protocol]:
    res = await session.execute(
        select(Protocol)
        .join(DoctorDefaultProtocol, DoctorDefaultProtocol.protocol_id == Protocol.id)
        .where(DoctorDefaultProtocol.doctor_id == doctor.id)
        .order_by(DoctorDefaultProtocol.created_at)
    )
    return list(res.scalars())


async def set_default(session: AsyncSession, doctor: User, protocol_id: UUID, is_default: bool) -> None:
    protocol = await get_owned(session, doctor, protocol_id)
    row = (
        await session.execute(
            select(DoctorDefaultProtocol).where(
                DoctorDefaultProtocol.doctor_id == doctor.id,
                DoctorDefaultProtocol.protocol_id == protocol.id,
            )
        )
    ).scalar_one_or_none()

    if is_default and row is None:
        session.add(DoctorDefaultProtocol(doctor_id=doctor.id, protocol_id=protocol.id))
    elif not is_default and row is not None:
        await session.delete(row)
    await session.flush()


async def apply_default_protocols(
    session: AsyncSession, doctor: User, patient: User, start: date | None = None
) -> list[ProtocolPrescription]:
    """Prescribe every default protocol the patient does not already have open."""
    created: list[ProtocolPrescription] = []
    for protocol in await list_default_protocols(session, doctor):
        already = (
            await session.execute(
                select(ProtocolPrescription.id).where(
                    ProtocolPrescription.protocol_id == protocol.id,
                    ProtocolPrescription.patient_id == patient.id,
                    ProtocolPrescription.status.in_((PRESCRIBED, ACTIVE, PAUSED)),
                )
            )
        ).first()
        if already:
            continue
        p, _ = await prescriptions.prescribe(
            session,
            doctor,
            protocol_id=protocol.id,
            patient_id=patient.id,
            planned_start=start or date.today(),
        )
        created.append(p)
    return created


async def apply_default_protocols_to_all(session: AsyncSession) -> int:
    rows = await session.execute(
        select(User, DoctorDefaultProtocol.doctor_id)
        .join(DoctorDefaultProtocol, DoctorDefaultProtocol.doctor_id == User.doctor_id)
        .where(User.role.in_(PATIENT_ROLES), User.is_active.is_(True))
        .distinct()
    )
    total = 0
    for patient, doctor_id in rows.all():
        doctor = await session.get(User, doctor_id)
        if doctor is None:
            continue
        total += len(await apply_default_protocols(session, doctor, patient))
    return total
