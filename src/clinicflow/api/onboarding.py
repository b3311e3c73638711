from __future__ import annotations

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from clinicflow.api.deps import AUTHENTICATED, doctor_only
from clinicflow.api.schemas import (
    GenerateLinkIn,
    LinkOut,
    MessageOut,
    OnboardingResponseOut,
    OnboardingTemplateIn,
    OnboardingTemplateOut,
    OnboardingTemplateUpdateIn,
    PublicFormOut,
    StepOut,
    SubmitIn,
)
from clinicflow.db import get_session
from clinicflow.models import User
from clinicflow.services import onboarding as onboarding_service

router = APIRouter(prefix="/onboarding", tags=["onboarding"], dependencies=AUTHENTICATED)
public_router = APIRouter(prefix="/onboarding", tags=["public"])


@router.post("/templates", response_model=OnboardingTemplateOut, status_code=201)
async def create_template(
    payload: OnboardingTemplateIn,
    doctor: User = Depends(doctor_only),
    session: AsyncSession = Depends(get_session),
):
    return await onboarding_service.create_template(session, doctor, payload.model_dump())


@router.get("/templates", response_model=list[OnboardingTemplateOut])
async def list_templates(
    doctor: User = Depends(doctor_only),
    session: AsyncSession = Depends(get_session),
):
    return await onboarding_service.list_templates(session, doctor)


@router.get("/templates/{template_id}", response_model=OnboardingTemplateOut)
async def get_template(
    template_id: UUID,
    doctor: User = Depends(doctor_only),
    session: AsyncSession = Depends(get_session),
):
    return await onboarding_service.get_template(session, doctor, template_id)


@router.patch("/templates/{template_id}", response_model=OnboardingTemplateOut)
async def update_template(
    template_id: UUID,
    payload: OnboardingTemplateUpdateIn,
    doctor: User = Depends(doctor_only),
    session: AsyncSession = Depends(get_session),
):
    return await onboarding_service.update_template(
        session, doctor, template_id, payload.model_dump(exclude_unset=True)
    )


@router.delete("/templates/{template_id}", status_code=204)
async def delete_template(
    template_id: UUID,
    doctor: User = Depends(doctor_only),
    session: AsyncSession = Depends(get_session),
):
    await onboarding_service.delete_template(session, doctor, template_id)


@router.post("/links", response_model=LinkOut, status_code=201)
async def generate_link(
    payload: GenerateLinkIn,
    doctor: User = Depends(doctor_only),
    session: AsyncSession = Depends(get_session),
):
    return await onboarding_service.generate_link(
        session, doctor, payload.template_id, patient_id=payload.patient_id, email=payload.email
    )


@router.get("/responses", response_model=list[OnboardingResponseOut])
async def list_responses(
    template_id: Optional[UUID] = Query(default=None),
    doctor: User = Depends(doctor_only),
    session: AsyncSession = Depends(get_session),
):
    return await onboarding_service.list_responses(session, doctor, template_id=template_id)


# ── public form ───────────────────────────────────────────────────────────────

@public_router.get("/{token}", response_model=PublicFormOut)
async def open_form(token: str, session: AsyncSession = Depends(get_session)):
    response = await onboarding_service.open_form(session, token)
    return PublicFormOut(
        token=response.token,
        status=response.status,
        template_name=response.template.name,
        template_description=response.template.description,
        steps=[StepOut.model_validate(s) for s in response.template.steps],
    )


@public_router.post("/{token}/submit", response_model=MessageOut)
async def submit(token: str, payload: SubmitIn, session: AsyncSession = Depends(get_session)):
    await onboarding_service.submit(
        session,
        token,
        email=payload.email,
        answers=[a.model_dump() for a in payload.answers],
    )
    return MessageOut(message="Thank you, your answers were saved")
