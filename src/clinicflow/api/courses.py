from __future__ import annotations

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from clinicflow.api.deps import AUTHENTICATED, doctor_only, patient_only
from clinicflow.api.schemas import (
    AssignedCourseOut,
    AssignIn,
    AssignmentOut,
    CourseIn,
    CourseOut,
    CourseUpdateIn,
    PatientCourseOut,
)
from clinicflow.db import get_session
from clinicflow.models import User
from clinicflow.services import courses as course_service

router = APIRouter(prefix="/courses", tags=["courses"], dependencies=AUTHENTICATED)


# ── patient ───────────────────────────────────────────────────────────────────

@router.get("/me", response_model=list[AssignedCourseOut])
async def my_courses(
    patient: User = Depends(patient_only),
    session: AsyncSession = Depends(get_session),
):
    return await course_service.list_assigned(session, patient)


@router.get("/me/{course_id}", response_model=PatientCourseOut)
async def my_course(
    course_id: UUID,
    patient: User = Depends(patient_only),
    session: AsyncSession = Depends(get_session),
):
    data = await course_service.get_assigned_course(session, patient, course_id)
    data["completed_lesson_ids"] = sorted(data["completed_lesson_ids"], key=str)
    return data


@router.post("/me/{course_id}/lessons/{lesson_id}/complete", response_model=AssignmentOut)
async def complete_lesson(
    course_id: UUID,
    lesson_id: UUID,
    patient: User = Depends(patient_only),
    session: AsyncSession = Depends(get_session),
):
    return await course_service.complete_lesson(session, patient, course_id, lesson_id)


@router.delete("/me/{course_id}/lessons/{lesson_id}/complete", response_model=AssignmentOut)
async def uncomplete_lesson(
    course_id: UUID,
    lesson_id: UUID,
    patient: User = Depends(patient_only),
    session: AsyncSession = Depends(get_session),
):
    return await course_service.uncomplete_lesson(session, patient, course_id, lesson_id)


# ── doctor ────────────────────────────────────────────────────────────────────

@router.post("", response_model=CourseOut, status_code=201)
async def create_course(
    payload: CourseIn,
    doctor: User = Depends(doctor_only),
    session: AsyncSession = Depends(get_session),
):
    return await course_service.create_course(session, doctor, payload.model_dump())


@router.get("", response_model=list[CourseOut])
async def list_courses(
    status: Optional[str] = Query(default=None),
    doctor: User = Depends(doctor_only),
    session: AsyncSession = Depends(get_session),
):
    return await course_service.list_courses(session, doctor, status=status)


@router.get("/{course_id}", response_model=CourseOut)
async def get_course(
    course_id: UUID,
    doctor: User = Depends(doctor_only),
    session: AsyncSession = Depends(get_session),
):
    return await course_service.get_owned(session, doctor, course_id)


@router.patch("/{course_id}", response_model=CourseOut)
async def update_course(
    course_id: UUID,
    payload: CourseUpdateIn,
    doctor: User = Depends(doctor_only),
    session: AsyncSession = Depends(get_session),
):
    return await course_service.update_course(session, doctor, course_id, payload.model_dump(exclude_unset=True))


@router.post("/{course_id}/publish", response_model=CourseOut)
async def publish(
    course_id: UUID,
    doctor: User = Depends(doctor_only),
    session: AsyncSession = Depends(get_session),
):
    return await course_service.set_published(session, doctor, course_id, True)


@router.post("/{course_id}/unpublish", response_model=CourseOut)
async def unpublish(
    course_id: UUID,
    doctor: User = Depends(doctor_only),
    session: AsyncSession = Depends(get_session),
):
    return await course_service.set_published(session, doctor, course_id, False)


@router.delete("/{course_id}", status_code=204)
async def delete_course(
    course_id: UUID,
    doctor: User = Depends(doctor_only),
    session: AsyncSession = Depends(get_session),
):
    await course_service.delete_course(session, doctor, course_id)


@router.post("/{course_id}/assign", response_model=AssignmentOut, status_code=201)
async def assign(
    course_id: UUID,
    payload: AssignIn,
    doctor: User = Depends(doctor_only),
    session: AsyncSession = Depends(get_session),
):
    return await course_service.assign_course(session, doctor, course_id, payload.patient_id)
