from __future__ import annotations

from datetime import date, datetime
from uuid import UUID

from sqlalchemy import Boolean, Date, ForeignKey, Index, Integer, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from clinicflow.models.base import Base, UTCDateTime, created_at_column, updated_at_column, uuid_pk

PRESCRIBED = "PRESCRIBED"
ACTIVE = "ACTIVE"
PAUSED = "PAUSED"
COMPLETED = "COMPLETED"
ABANDONED = "ABANDONED"
PRESCRIPTION_STATUSES = (PRESCRIBED, ACTIVE, PAUSED, COMPLETED, ABANDONED)

TASK_PENDING = "PENDING"
TASK_COMPLETED = "COMPLETED"

SYMPTOM_PENDING = "PENDING"
SYMPTOM_REVIEWED = "REVIEWED"
SYMPTOM_REQUIRES_ATTENTION = "REQUIRES_ATTENTION"
SYMPTOM_RESOLVED = "RESOLVED"
SYMPTOM_STATUSES = (SYMPTOM_PENDING, SYMPTOM_REVIEWED, SYMPTOM_REQUIRES_ATTENTION, SYMPTOM_RESOLVED)


class Protocol(Base):
    __tablename__ = "protocols"

    id: Mapped[UUID] = uuid_pk()
    doctor_id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    onboarding_template_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("onboarding_templates.id", ondelete="SET NULL"), nullable=True
    )

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    duration: Mapped[int] = mapped_column(Integer, nullable=False)
    is_template: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    cover_image: Mapped[str | None] = mapped_column(String(500), nullable=True)

    show_modal: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    modal_title: Mapped[str | None] = mapped_column(String(200), nullable=True)
    modal_video_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    modal_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    modal_button_text: Mapped[str | None] = mapped_column(String(80), nullable=True)
    modal_button_url: Mapped[str | None] = mapped_column(String(500), nullable=True)

    created_at: Mapped[datetime] = created_at_column()
    updated_at: Mapped[datetime] = updated_at_column()

    days: Mapped[list[ProtocolDay]] = relationship(
        back_populates="protocol",
        cascade="all, delete-orphan",
        order_by="ProtocolDay.day_number",
        lazy="selectin",
    )


class ProtocolDay(Base):
    __tablename__ = "protocol_days"

    id: Mapped[UUID] = uuid_pk()
    protocol_id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), ForeignKey("protocols.id", ondelete="CASCADE"), nullable=False, index=True)
    day_number: Mapped[int] = mapped_column(Integer, nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)

    protocol: Mapped[Protocol] = relationship(back_populates="days")
    sessions: Mapped[list[ProtocolSession]] = relationship(
        back_populates="day",
        cascade="all, delete-orphan",
        order_by="ProtocolSession.session_number",
        lazy="selectin",
    )

    __table_args__ = (UniqueConstraint("protocol_id", "day_number", name="uq_protocol_days_protocol_day"),)


class ProtocolSession(Base):
    __tablename__ = "protocol_sessions"

    id: Mapped[UUID] = uuid_pk()
    day_id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), ForeignKey("protocol_days.id", ondelete="CASCADE"), nullable=False, index=True)
    session_number: Mapped[int] = mapped_column(Integer, nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    day: Mapped[ProtocolDay] = relationship(back_populates="sessions")
    tasks: Mapped[list[ProtocolTask]] = relationship(
        back_populates="session",
        cascade="all, delete-orphan",
        order_by="ProtocolTask.order_index",
        lazy="selectin",
    )


class ProtocolTask(Base):
    __tablename__ = "protocol_tasks"

    id: Mapped[UUID] = uuid_pk()
    session_id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), ForeignKey("protocol_sessions.id", ondelete="CASCADE"), nullable=False, index=True)
    order_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    title: Mapped[str] = mapped_column(String(300), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    has_more_info: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    video_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    full_explanation: Mapped[str | None] = mapped_column(Text, nullable=True)

    session: Mapped[ProtocolSession] = relationship(back_populates="tasks")


class DoctorDefaultProtocol(Base):
    __tablename__ = "doctor_default_protocols"

    id: Mapped[UUID] = uuid_pk()
    doctor_id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    protocol_id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), ForeignKey("protocols.id", ondelete="CASCADE"), nullable=False)
    created_at: Mapped[datetime] = created_at_column()

    __table_args__ = (UniqueConstraint("doctor_id", "protocol_id", name="uq_doctor_default_protocols_pair"),)


class ProtocolPrescription(Base):
    __tablename__ = "protocol_prescriptions"

    id: Mapped[UUID] = uuid_pk()
    protocol_id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), ForeignKey("protocols.id", ondelete="CASCADE"), nullable=False, index=True)
    patient_id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    prescribed_by: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default=PRESCRIBED)
    prescribed_at: Mapped[datetime] = created_at_column()
    planned_start_date: Mapped[date] = mapped_column(Date, nullable=False)
    planned_end_date: Mapped[date] = mapped_column(Date, nullable=False)
    actual_start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    actual_end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    consultation_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    current_day: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    adherence_rate: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_progress_date: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    paused_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    abandoned_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    abandon_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = created_at_column()
    updated_at: Mapped[datetime] = updated_at_column()

    protocol: Mapped[Protocol] = relationship(lazy="selectin")
    progress: Mapped[list[ProtocolTaskProgress]] = relationship(
        back_populates="prescription",
        cascade="all, delete-orphan",
        lazy="selectin",
    )


class ProtocolTaskProgress(Base):
    __tablename__ = "protocol_task_progress"

    id: Mapped[UUID] = uuid_pk()
    prescription_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("protocol_prescriptions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    task_id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), ForeignKey("protocol_tasks.id", ondelete="CASCADE"), nullable=False)

    scheduled_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=TASK_PENDING)
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = created_at_column()
    updated_at: Mapped[datetime] = updated_at_column()

    prescription: Mapped[ProtocolPrescription] = relationship(back_populates="progress")

    __table_args__ = (UniqueConstraint("prescription_id", "task_id", name="uq_protocol_task_progress_task"),)


class SymptomReport(Base):
    __tablename__ = "symptom_reports"

    id: Mapped[UUID] = uuid_pk()
    patient_id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    protocol_id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), ForeignKey("protocols.id", ondelete="CASCADE"), nullable=False)
    reviewed_by: Mapped[UUID | None] = mapped_column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    day_number: Mapped[int] = mapped_column(Integer, nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False, default="Symptom report")
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    symptoms: Mapped[str] = mapped_column(Text, nullable=False)
    severity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    report_time: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default=SYMPTOM_PENDING)
    doctor_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    created_at: Mapped[datetime] = created_at_column()
    updated_at: Mapped[datetime] = updated_at_column()

    __table_args__ = (Index("ix_symptom_reports_protocol_day", "protocol_id", "day_number"),)
