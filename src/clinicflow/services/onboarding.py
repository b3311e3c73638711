"""
Onboarding questionnaires.

A doctor builds a template of ordered steps, then hands a patient a link
carrying a short token. The public form is read and submitted by token only.
"""
from __future__ import annotations

import logging
import secrets
import string
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from clinicflow.config import get_settings
from clinicflow.core.errors import ConflictError, NotFoundError, ValidationFailedError
from clinicflow.models import (
    OnboardingAnswer,
    OnboardingResponse,
    OnboardingStep,
    OnboardingTemplate,
    User,
    utcnow,
)
from clinicflow.models.accounts import PATIENT_ROLES
from clinicflow.models.onboarding import (
    CHOICE_STEP_TYPES,
    RESPONSE_COMPLETED,
    RESPONSE_IN_PROGRESS,
    RESPONSE_PENDING,
    STEP_TYPES,
)
from clinicflow.services.email import queue_email
from clinicflow.services.relationships import has_active_relationship

_log = logging.getLogger("clinicflow.onboarding")

TOKEN_ALPHABET = string.digits + string.ascii_lowercase
TOKEN_LENGTH = 10
MAX_ATTEMPTS = 10


def _build_steps(steps: list[dict[str, Any]]) -> list[OnboardingStep]:
    out = []
    for i, step in enumerate(steps):
        step_type = step["type"]
        if step_type not in STEP_TYPES:
            raise ValidationFailedError(f"Unknown step type: {step_type}")
        options = [o for o in (step.get("options") or []) if str(o).strip()]
        if step_type in CHOICE_STEP_TYPES and not options:
            raise ValidationFailedError(f"Step '{step['question']}' needs at least one option")
        out.append(
            OnboardingStep(
                question=step["question"],
                description=step.get("description"),
                type=step_type,
                options=options,
                required=bool(step.get("required", False)),
                show_to_doctor=bool(step.get("show_to_doctor", True)),
                order=i if step.get("order") is None else step["order"],
            )
        )
    return out


async def create_template(session: AsyncSession, doctor: User, data: dict[str, Any]) -> OnboardingTemplate:
    steps = _build_steps(data.pop("steps", None) or [])
    tpl = OnboardingTemplate(
        doctor_id=doctor.id,
        name=data["name"],
        description=data.get("description"),
        is_active=data.get("is_active", True),
        is_default=data.get("is_default", False),
        steps=steps,
    )
    session.add(tpl)
    await session.flush()
    return tpl


async def get_template(session: AsyncSession, doctor: User, template_id: UUID) -> OnboardingTemplate:
    tpl = await session.get(OnboardingTemplate, template_id)
    if tpl is None or tpl.doctor_id != doctor.id:
        raise NotFoundError("Template not found")
    return tpl


async def list_templates(session: AsyncSession, doctor: User) -> list[OnboardingTemplate]:
    res = await session.execute(
        select(OnboardingTemplate)
        .where(OnboardingTemplate.doctor_id == doctor.id)
        .order_by(OnboardingTemplate.created_at.desc())
    )
    return list(res.scalars())


async def update_template(
    session: AsyncSession, doctor: User, template_id: UUID, data: dict[str, Any]
) -> OnboardingTemplate:
    tpl = await get_template(session, doctor, template_id)
    steps = data.pop("steps", None)
    for key in ("name", "description", "is_active", "is_default"):
        if key in data and data[key] is not None:
            setattr(tpl, key, data[key])

    if steps is not None:
        answered = (
            await session.execute(
                select(OnboardingAnswer.id)
                .join(OnboardingStep, OnboardingStep.id == OnboardingAnswer.step_id)
                .where(OnboardingStep.template_id == tpl.id)
                .limit(1)
            )
        ).first()
        if answered:
            raise ConflictError("Template already has answers; create a new template instead")
        new_steps = _build_steps(steps)
        tpl.steps.clear()
        await session.flush()
        tpl.steps.extend(new_steps)

    await session.flush()
    return tpl


async def delete_template(session: AsyncSession, doctor: User, template_id: UUID) -> None:
    tpl = await get_template(session, doctor, template_id)
    await session.delete(tpl)
    await session.flush()


# ── links & public form ───────────────────────────────────────────────────────

async def _new_token(session: AsyncSession) -> str:
    for _ in range(MAX_ATTEMPTS):
        token = "".join(secrets.choice(TOKEN_ALPHABET) for _ in range(TOKEN_LENGTH))
        taken = (
            await session.execute(select(OnboardingResponse.id).where(OnboardingResponse.token == token))
        ).first()
        if not taken:
            return token
    raise ConflictError("Could not generate a unique onboarding token")


async def generate_link(
    session: AsyncSession,
    doctor: User,
    template_id: UUID,
    *,
    patient_id: UUID | None = None,
    email: str | None = None,
) -> dict[str, Any]:
    tpl = await get_template(session, doctor, template_id)

    patient: User | None = None
    if patient_id is not None:
        patient = await session.get(User, patient_id)
        if (
            patient is None
            or patient.role not in PATIENT_ROLES
            or not await has_active_relationship(session, doctor.id, patient)
        ):
            raise NotFoundError("Patient not found")
        email = email or patient.email
    if email:
        email = email.strip().lower()
    if patient is None and not email:
        raise ValidationFailedError("Provide a patient or an email")

    response = OnboardingResponse(
        template_id=tpl.id,
        doctor_id=doctor.id,
        patient_id=patient.id if patient else None,
        email=email,
        token=await _new_token(session),
        status=RESPONSE_PENDING,
        answers=[],
    )
    session.add(response)
    await session.flush()

    link = f"{get_settings().APP_URL}/onboarding/{response.token}"
    if email:
        await queue_email(
            session,
            to=email,
            template="onboarding_invite",
            doctor_name=doctor.name,
            template_name=tpl.name,
            link=link,
        )
    _log.info("onboarding link generated", extra={"response_id": str(response.id)})
    return {"token": response.token, "link": link, "response_id": response.id}


async def _by_token(session: AsyncSession, token: str) -> OnboardingResponse:
    response = (
        await session.execute(select(OnboardingResponse).where(OnboardingResponse.token == token))
    ).scalar_one_or_none()
    if response is None:
        raise NotFoundError("Onboarding form not found")
    return response


async def open_form(session: AsyncSession, token: str) -> OnboardingResponse:
    response = await _by_token(session, token)
    if response.status == RESPONSE_COMPLETED:
        raise ValidationFailedError("This form has already been completed")
    if response.status == RESPONSE_PENDING:
        response.status = RESPONSE_IN_PROGRESS
        await session.flush()
    return response


def _blank(answer: Any) -> bool:
    if answer is None:
        return True
    if isinstance(answer, (list, tuple)):
        return not any(str(a).strip() for a in answer)
    return not str(answer).strip()


def _as_text(answer: Any) -> str:
    if isinstance(answer, (list, tuple)):
        return ", ".join(str(a) for a in answer)
    return str(answer)


async def submit(
    session: AsyncSession,
    token: str,
    *,
    email: str | None,
    answers: list[dict[str, Any]],
) -> OnboardingResponse:
    response = await _by_token(session, token)
    if response.status == RESPONSE_COMPLETED:
        raise ValidationFailedError("This form has already been completed")

    steps = {s.id: s for s in response.template.steps}
    given: dict[UUID, Any] = {}
    for item in answers:
        step_id = UUID(str(item["step_id"]))
        if step_id not in steps:
            raise ValidationFailedError("Answer refers to a step that is not part of this form")
        given[step_id] = item.get("answer")

    missing = [s.question for s in steps.values() if s.required and _blank(given.get(s.id))]
    if missing:
        raise ValidationFailedError(f"Required questions not answered: {', '.join(missing)}")

    response.answers = [
        OnboardingAnswer(step_id=step_id, answer=_as_text(value))
        for step_id, value in given.items()
        if not _blank(value)
    ]
    if email:
        response.email = email.strip().lower()
    response.status = RESPONSE_COMPLETED
    response.completed_at = utcnow()
    await session.flush()
    _log.info("onboarding submitted", extra={"response_id": str(response.id)})
    return response


async def list_responses(
    session: AsyncSession, doctor: User, *, template_id: UUID | None = None
) -> list[dict[str, Any]]:
    stmt = (
        select(OnboardingResponse)
        .where(OnboardingResponse.doctor_id == doctor.id)
        .order_by(OnboardingResponse.created_at.desc())
    )
    if template_id is not None:
        stmt = stmt.where(OnboardingResponse.template_id == template_id)

    out = []
    for response in (await session.execute(stmt)).scalars():
        visible = {s.id: s for s in response.template.steps if s.show_to_doctor}
        shown = sorted((a for a in response.answers if a.step_id in visible), key=lambda a: visible[a.step_id].order)
        out.append(
            {
                "id": response.id,
                "template_id": response.template_id,
                "template_name": response.template.name,
                "patient_id": response.patient_id,
                "email": response.email,
                "status": response.status,
                "completed_at": response.completed_at,
                "created_at": response.created_at,
                "answers": [
                    {"step_id": a.step_id, "question": visible[a.step_id].question, "answer": a.answer}
                    for a in shown
                ],
            }
        )
    return out
