from __future__ import annotations

from datetime import date, timedelta
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from clinicflow.api.deps import AUTHENTICATED, patient_only
from clinicflow.api.schemas import (
    HabitIn,
    HabitOut,
    HabitUpdateIn,
    HabitWithProgressOut,
    ToggleProgressIn,
    ToggleProgressOut,
)
from clinicflow.db import get_session
from clinicflow.models import User
from clinicflow.services import habits as habit_service

router = APIRouter(prefix="/habits", tags=["habits"], dependencies=AUTHENTICATED)


@router.get("", response_model=list[HabitWithProgressOut])
async def list_habits(
    start: Optional[date] = Query(default=None),
    end: Optional[date] = Query(default=None),
    patient: User = Depends(patient_only),
    session: AsyncSession = Depends(get_session),
):
    end = end or date.today()
    start = start or end - timedelta(days=6)
    return await habit_service.list_with_progress(session, patient, start=start, end=end)


@router.post("", response_model=HabitOut, status_code=201)
async def create_habit(
    payload: HabitIn,
    patient: User = Depends(patient_only),
    session: AsyncSession = Depends(get_session),
):
    return await habit_service.create_habit(session, patient, payload.model_dump())


@router.patch("/{habit_id}", response_model=HabitOut)
async def update_habit(
    habit_id: UUID,
    payload: HabitUpdateIn,
    patient: User = Depends(patient_only),
    session: AsyncSession = Depends(get_session),
):
    return await habit_service.update_habit(session, patient, habit_id, payload.model_dump(exclude_unset=True))


@router.delete("/{habit_id}", status_code=204)
async def delete_habit(
    habit_id: UUID,
    patient: User = Depends(patient_only),
    session: AsyncSession = Depends(get_session),
):
    await habit_service.delete_habit(session, patient, habit_id)


@router.post("/{habit_id}/toggle", response_model=ToggleProgressOut)
async def toggle_progress(
    habit_id: UUID,
    payload: ToggleProgressIn,
    patient: User = Depends(patient_only),
    session: AsyncSession = Depends(get_session),
):
    return await habit_service.toggle_progress(session, patient, habit_id, payload.date)
