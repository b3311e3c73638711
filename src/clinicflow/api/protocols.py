from __future__ import annotations

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from clinicflow.api.deps import AUTHENTICATED, doctor_only
from clinicflow.api.schemas import (
    BuiltinTemplateOut,
    DefaultFlagIn,
    ProtocolIn,
    ProtocolOut,
    ProtocolUpdateIn,
    TemplateListOut,
)
from clinicflow.db import get_session
from clinicflow.models import User
from clinicflow.security import get_current_user
from clinicflow.services import protocols as protocol_service

router = APIRouter(prefix="/protocols", tags=["protocols"], dependencies=AUTHENTICATED)


@router.post("", response_model=ProtocolOut, status_code=201)
async def create_protocol(
    payload: ProtocolIn,
    doctor: User = Depends(doctor_only),
    session: AsyncSession = Depends(get_session),
):
    return await protocol_service.create_protocol(session, doctor, payload.model_dump())


@router.get("", response_model=list[ProtocolOut])
async def list_protocols(
    is_template: Optional[bool] = Query(default=None),
    doctor: User = Depends(doctor_only),
    session: AsyncSession = Depends(get_session),
):
    return await protocol_service.list_protocols(session, doctor, is_template=is_template)


@router.get("/templates", response_model=TemplateListOut)
async def list_templates(
    doctor: User = Depends(doctor_only),
    session: AsyncSession = Depends(get_session),
):
    return TemplateListOut(
        predefined=[BuiltinTemplateOut(**t) for t in protocol_service.list_builtin_templates()],
        custom=[
            ProtocolOut.model_validate(p)
            for p in await protocol_service.list_protocols(session, doctor, is_template=True)
        ],
    )


@router.post("/templates/{index}", response_model=ProtocolOut, status_code=201)
async def create_from_template(
    index: int,
    doctor: User = Depends(doctor_only),
    session: AsyncSession = Depends(get_session),
):
    return await protocol_service.create_from_template(session, doctor, index)


@router.get("/defaults", response_model=list[ProtocolOut])
async def list_defaults(
    doctor: User = Depends(doctor_only),
    session: AsyncSession = Depends(get_session),
):
    return await protocol_service.list_default_protocols(session, doctor)


@router.put("/{protocol_id}/default", status_code=204)
async def set_default(
    protocol_id: UUID,
    payload: DefaultFlagIn,
    doctor: User = Depends(doctor_only),
    session: AsyncSession = Depends(get_session),
):
    await protocol_service.set_default(session, doctor, protocol_id, payload.is_default)


@router.get("/{protocol_id}", response_model=ProtocolOut)
async def get_protocol(
    protocol_id: UUID,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    return await protocol_service.get_for_user(session, user, protocol_id)


@router.patch("/{protocol_id}", response_model=ProtocolOut)
async def update_protocol(
    protocol_id: UUID,
    payload: ProtocolUpdateIn,
    doctor: User = Depends(doctor_only),
    session: AsyncSession = Depends(get_session),
):
    return await protocol_service.update_protocol(
        session, doctor, protocol_id, payload.model_dump(exclude_unset=True)
    )


@router.delete("/{protocol_id}", status_code=204)
async def delete_protocol(
    protocol_id: UUID,
    doctor: User = Depends(doctor_only),
    session: AsyncSession = Depends(get_session),
):
    await protocol_service.delete_protocol(session, doctor, protocol_id)
