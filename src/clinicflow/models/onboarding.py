from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import JSON, Boolean, ForeignKey, Integer, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from clinicflow.models.base import Base, UTCDateTime, created_at_column, updated_at_column, uuid_pk

STEP_TYPES = (
    "TEXT",
    "TEXTAREA",
    "SELECT",
    "MULTISELECT",
    "RADIO",
    "CHECKBOX",
    "NUMBER",
    "DATE",
    "SCALE",
    "YES_NO",
)
CHOICE_STEP_TYPES = ("SELECT", "MULTISELECT", "RADIO", "CHECKBOX")

RESPONSE_PENDING = "PENDING"
RESPONSE_IN_PROGRESS = "IN_PROGRESS"
RESPONSE_COMPLETED = "COMPLETED"


class OnboardingTemplate(Base):
    __tablename__ = "onboarding_templates"

    id: Mapped[UUID] = uuid_pk()
    doctor_id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = created_at_column()
    updated_at: Mapped[datetime] = updated_at_column()

    steps: Mapped[list[OnboardingStep]] = relationship(
        back_populates="template",
        cascade="all, delete-orphan",
        order_by="OnboardingStep.order",
        lazy="selectin",
    )


class OnboardingStep(Base):
    __tablename__ = "onboarding_steps"

    id: Mapped[UUID] = uuid_pk()
    template_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("onboarding_templates.id", ondelete="CASCADE"), nullable=False, index=True
    )
    question: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    options: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    required: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    show_to_doctor: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    template: Mapped[OnboardingTemplate] = relationship(back_populates="steps")


class OnboardingResponse(Base):
    __tablename__ = "onboarding_responses"

    id: Mapped[UUID] = uuid_pk()
    template_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("onboarding_templates.id", ondelete="CASCADE"), nullable=False, index=True
    )
    doctor_id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    patient_id: Mapped[UUID | None] = mapped_column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    token: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=RESPONSE_PENDING)
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    created_at: Mapped[datetime] = created_at_column()
    updated_at: Mapped[datetime] = updated_at_column()

    template: Mapped[OnboardingTemplate] = relationship(lazy="selectin")
    answers: Mapped[list[OnboardingAnswer]] = relationship(
        back_populates="response",
        cascade="all, delete-orphan",
        lazy="selectin",
    )


class OnboardingAnswer(Base):
    __tablename__ = "onboarding_answers"

    id: Mapped[UUID] = uuid_pk()
    response_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("onboarding_responses.id", ondelete="CASCADE"), nullable=False, index=True
    )
    step_id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), ForeignKey("onboarding_steps.id", ondelete="CASCADE"), nullable=False)
    answer: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = created_at_column()

    response: Mapped[OnboardingResponse] = relationship(back_populates="answers")

    __table_args__ = (UniqueConstraint("response_id", "step_id", name="uq_onboarding_answers_step"),)
