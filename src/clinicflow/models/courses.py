from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Integer, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from clinicflow.models.base import Base, UTCDateTime, created_at_column, updated_at_column, uuid_pk

COURSE_DRAFT = "DRAFT"
COURSE_PUBLISHED = "PUBLISHED"

ASSIGNMENT_ACTIVE = "ACTIVE"
ASSIGNMENT_COMPLETED = "COMPLETED"


class Course(Base):
    __tablename__ = "courses"

    id: Mapped[UUID] = uuid_pk()
    doctor_id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    cover_image: Mapped[str | None] = mapped_column(String(500), nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=COURSE_DRAFT)
    published_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    show_modal: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    modal_title: Mapped[str | None] = mapped_column(String(200), nullable=True)
    modal_video_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    modal_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    modal_button_text: Mapped[str | None] = mapped_column(String(80), nullable=True)
    modal_button_url: Mapped[str | None] = mapped_column(String(500), nullable=True)

    created_at: Mapped[datetime] = created_at_column()
    updated_at: Mapped[datetime] = updated_at_column()

    modules: Mapped[list[CourseModule]] = relationship(
        back_populates="course",
        cascade="all, delete-orphan",
        order_by="CourseModule.order",
        lazy="selectin",
    )


class CourseModule(Base):
    __tablename__ = "course_modules"

    id: Mapped[UUID] = uuid_pk()
    course_id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), ForeignKey("courses.id", ondelete="CASCADE"), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    course: Mapped[Course] = relationship(back_populates="modules")
    lessons: Mapped[list[Lesson]] = relationship(
        back_populates="module",
        cascade="all, delete-orphan",
        order_by="Lesson.order",
        lazy="selectin",
    )


class Lesson(Base):
    __tablename__ = "lessons"

    id: Mapped[UUID] = uuid_pk()
    module_id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), ForeignKey("course_modules.id", ondelete="CASCADE"), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    content: Mapped[str | None] = mapped_column(Text, nullable=True)
    video_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    duration_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    module: Mapped[CourseModule] = relationship(back_populates="lessons")


class UserCourse(Base):
    __tablename__ = "user_courses"

    id: Mapped[UUID] = uuid_pk()
    user_id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    course_id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), ForeignKey("courses.id", ondelete="CASCADE"), nullable=False, index=True)
    assigned_by: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default=ASSIGNMENT_ACTIVE)
    assigned_at: Mapped[datetime] = created_at_column()
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    course: Mapped[Course] = relationship(lazy="selectin")

    __table_args__ = (UniqueConstraint("user_id", "course_id", name="uq_user_courses_user_course"),)


class UserLesson(Base):
    __tablename__ = "user_lessons"

    id: Mapped[UUID] = uuid_pk()
    user_id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    lesson_id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), ForeignKey("lessons.id", ondelete="CASCADE"), nullable=False)
    completed_at: Mapped[datetime] = created_at_column()

    __table_args__ = (UniqueConstraint("user_id", "lesson_id", name="uq_user_lessons_user_lesson"),)
