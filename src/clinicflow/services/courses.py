from __future__ import annotations

import logging
from typing import Any
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from clinicflow.core.errors import NotFoundError, PermissionDeniedError, ValidationFailedError
from clinicflow.models import Course, CourseModule, Lesson, User, UserCourse, UserLesson, utcnow
from clinicflow.models.accounts import PATIENT_ROLES
from clinicflow.models.courses import (
    ASSIGNMENT_ACTIVE,
    ASSIGNMENT_COMPLETED,
    COURSE_DRAFT,
    COURSE_PUBLISHED,
)
from clinicflow.services.prescriptions import adherence_rate
from clinicflow.services.relationships import has_active_relationship
from clinicflow.services.subscriptions import enforce_limit

_log = logging.getLogger("clinicflow.courses")

_SCALARS = (
    "title",
    "description",
    "cover_image",
    "show_modal",
    "modal_title",
    "modal_video_url",
    "modal_description",
    "modal_button_text",
    "modal_button_url",
)


def build_modules(modules: list[dict[str, Any]]) -> list[CourseModule]:
    return [
        CourseModule(
            title=m["title"],
            description=m.get("description"),
            order=i,
            lessons=[
                Lesson(
                    title=item["title"],
                    description=item.get("description"),
                    content=item.get("content"),
                    video_url=item.get("video_url"),
                    duration_minutes=item.get("duration_minutes"),
                    order=j,
                )
                for j, item in enumerate(m.get("lessons") or [])
            ],
        )
        for i, m in enumerate(modules)
    ]


def all_lessons(course: Course) -> list[Lesson]:
    return [lesson for module in course.modules for lesson in module.lessons]


async def create_course(session: AsyncSession, doctor: User, data: dict[str, Any]) -> Course:
    await enforce_limit(session, doctor, "courses")

    modules = data.pop("modules", None) or []
    course = Course(
        doctor_id=doctor.id,
        status=COURSE_DRAFT,
        modules=build_modules(modules),
        **{k: v for k, v in data.items() if k in _SCALARS},
    )
    session.add(course)
    await session.flush()
    _log.info("course created", extra={"course_id": str(course.id)})
    return course


async def get_owned(session: AsyncSession, doctor: User, course_id: UUID) -> Course:
    course = await session.get(Course, course_id)
    if course is None or course.doctor_id != doctor.id:
        raise NotFoundError("Course not found")
    return course


async def list_courses(session: AsyncSession, doctor: User, *, status: str | None = None) -> list[Course]:
    stmt = select(Course).where(Course.doctor_id == doctor.id).order_by(Course.created_at.desc())
    if status:
        stmt = stmt.where(Course.status == status)
    return list((await session.execute(stmt)).scalars())


async def update_course(session: AsyncSession, doctor: User, course_id: UUID, data: dict[str, Any]) -> Course:
    course = await get_owned(session, doctor, course_id)
    modules = data.pop("modules", None)
    for key, value in data.items():
        if key not in _SCALARS or (value is None and key in ("title", "show_modal")):
            continue
        setattr(course, key, value)

    if modules is not None:
        course.modules.clear()
        await session.flush()
        course.modules.extend(build_modules(modules))

    await session.flush()
    return course


async def set_published(session: AsyncSession, doctor: User, course_id: UUID, published: bool) -> Course:
    course = await get_owned(session, doctor, course_id)
    if published:
        if not all_lessons(course):
            raise ValidationFailedError("A course needs at least one lesson before it can be published")
        course.status = COURSE_PUBLISHED
        course.published_at = utcnow()
    else:
        course.status = COURSE_DRAFT
        course.published_at = None
    await session.flush()
    return course


async def delete_course(session: AsyncSession, doctor: User, course_id: UUID) -> None:
    course = await get_owned(session, doctor, course_id)
    lesson_ids = [lesson.id for lesson in all_lessons(course)]
    if lesson_ids:
        await session.execute(delete(UserLesson).where(UserLesson.lesson_id.in_(lesson_ids)))
    await session.execute(delete(UserCourse).where(UserCourse.course_id == course.id))
    await session.delete(course)
    await session.flush()


# ── assignment ────────────────────────────────────────────────────────────────

async def assign_course(session: AsyncSession, doctor: User, course_id: UUID, patient_id: UUID) -> UserCourse:
    course = await get_owned(session, doctor, course_id)
    if course.status != COURSE_PUBLISHED:
        raise ValidationFailedError("Only published courses can be assigned")

    patient = await session.get(User, patient_id)
    if patient is None or patient.role not in PATIENT_ROLES or not await has_active_relationship(session, doctor.id, patient):
        raise NotFoundError("Patient not found")

    existing = (
        await session.execute(
            select(UserCourse).where(UserCourse.user_id == patient.id, UserCourse.course_id == course.id)
        )
    ).scalar_one_or_none()
    if existing is not None:
        return existing

    assignment = UserCourse(user_id=patient.id, course_id=course.id, course=course, assigned_by=doctor.id)
    session.add(assignment)
    await session.flush()
    _log.info("course assigned", extra={"course_id": str(course.id), "patient_id": str(patient.id)})
    return assignment


async def _completed_lesson_ids(session: AsyncSession, user_id: UUID, lesson_ids: list[UUID]) -> set[UUID]:
    if not lesson_ids:
        return set()
    res = await session.execute(
        select(UserLesson.lesson_id).where(UserLesson.user_id == user_id, UserLesson.lesson_id.in_(lesson_ids))
    )
    return set(res.scalars())


async def list_assigned(session: AsyncSession, patient: User) -> list[dict[str, Any]]:
    res = await session.execute(
        select(UserCourse).where(UserCourse.user_id == patient.id).order_by(UserCourse.assigned_at.desc())
    )
    out = []
    for assignment in res.scalars():
        lessons = all_lessons(assignment.course)
        done = await _completed_lesson_ids(session, patient.id, [lesson.id for lesson in lessons])
        out.append(
            {
                "assignment": assignment,
                "course": assignment.course,
                "total_lessons": len(lessons),
                "completed_lessons": len(done),
                "progress": adherence_rate(len(done), len(lessons)),
            }
        )
    return out


async def _assignment(session: AsyncSession, patient: User, course_id: UUID) -> UserCourse:
    assignment = (
        await session.execute(
            select(UserCourse).where(UserCourse.user_id == patient.id, UserCourse.course_id == course_id)
        )
    ).scalar_one_or_none()
    if assignment is None:
        raise PermissionDeniedError("Course not assigned to you")
    return assignment


async def get_assigned_course(session: AsyncSession, patient: User, course_id: UUID) -> dict[str, Any]:
    assignment = await _assignment(session, patient, course_id)
    lessons = all_lessons(assignment.course)
    done = await _completed_lesson_ids(session, patient.id, [lesson.id for lesson in lessons])
    return {
        "assignment": assignment,
        "course": assignment.course,
        "completed_lesson_ids": done,
        "total_lessons": len(lessons),
        "completed_lessons": len(done),
        "progress": adherence_rate(len(done), len(lessons)),
    }


async def _sync_assignment_status(session: AsyncSession, patient: User, assignment: UserCourse) -> UserCourse:
    lessons = all_lessons(assignment.course)
    done = await _completed_lesson_ids(session, patient.id, [lesson.id for lesson in lessons])
    if lessons and len(done) == len(lessons):
        if assignment.status != ASSIGNMENT_COMPLETED:
            assignment.status = ASSIGNMENT_COMPLETED
            assignment.completed_at = utcnow()
    else:
        assignment.status = ASSIGNMENT_ACTIVE
        assignment.completed_at = None
    await session.flush()
    return assignment


def _lesson_in(course: Course, lesson_id: UUID) -> Lesson:
    lesson = next((x for x in all_lessons(course) if x.id == lesson_id), None)
    if lesson is None:
        raise NotFoundError("Lesson not found in this course")
    return lesson


async def complete_lesson(session: AsyncSession, patient: User, course_id: UUID, lesson_id: UUID) -> UserCourse:
    assignment = await _assignment(session, patient, course_id)
    lesson = _lesson_in(assignment.course, lesson_id)

    exists = (
        await session.execute(
            select(UserLesson.id).where(UserLesson.user_id == patient.id, UserLesson.lesson_id == lesson.id)
        )
    ).first()
    if not exists:
        session.add(UserLesson(user_id=patient.id, lesson_id=lesson.id))
        await session.flush()
    return await _sync_assignment_status(session, patient, assignment)


async def uncomplete_lesson(session: AsyncSession, patient: User, course_id: UUID, lesson_id: UUID) -> UserCourse:
    assignment = await _assignment(session, patient, course_id)
    lesson = _lesson_in(assignment.course, lesson_id)
    await session.execute(
        delete(UserLesson).where(UserLesson.user_id == patient.id, UserLesson.lesson_id == lesson.id)
    )
    return await _sync_assignment_status(session, patient, assignment)
