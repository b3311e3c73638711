"""Appointments, referrals and habits."""
from __future__ import annotations

import datetime as dt
from datetime import datetime
from uuid import UUID

from sqlalchemy import Boolean, Date, ForeignKey, Index, Integer, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from clinicflow.models.base import Base, UTCDateTime, created_at_column, updated_at_column, uuid_pk

APPT_SCHEDULED = "SCHEDULED"
APPT_CONFIRMED = "CONFIRMED"
APPT_COMPLETED = "COMPLETED"
APPT_CANCELLED = "CANCELLED"
APPT_NO_SHOW = "NO_SHOW"
APPOINTMENT_STATUSES = (APPT_SCHEDULED, APPT_CONFIRMED, APPT_COMPLETED, APPT_CANCELLED, APPT_NO_SHOW)

LEAD_PENDING = "PENDING"
LEAD_CONTACTED = "CONTACTED"
LEAD_CONVERTED = "CONVERTED"
LEAD_REJECTED = "REJECTED"
LEAD_EXPIRED = "EXPIRED"
LEAD_STATUSES = (LEAD_PENDING, LEAD_CONTACTED, LEAD_CONVERTED, LEAD_REJECTED, LEAD_EXPIRED)

CREDIT_SUCCESSFUL_REFERRAL = "SUCCESSFUL_REFERRAL"


class Appointment(Base):
    __tablename__ = "appointments"

    id: Mapped[UUID] = uuid_pk()
    doctor_id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    patient_id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    start_time: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    end_time: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=APPT_SCHEDULED)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = created_at_column()
    updated_at: Mapped[datetime] = updated_at_column()

    __table_args__ = (Index("ix_appointments_doctor_start", "doctor_id", "start_time"),)


class ReferralLead(Base):
    __tablename__ = "referral_leads"

    id: Mapped[UUID] = uuid_pk()
    doctor_id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    referrer_id: Mapped[UUID | None] = mapped_column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[str] = mapped_column(String(320), nullable=False)
    phone: Mapped[str | None] = mapped_column(String(40), nullable=True)
    referral_code: Mapped[str] = mapped_column(String(16), unique=True, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=LEAD_PENDING)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = created_at_column()
    updated_at: Mapped[datetime] = updated_at_column()


class ReferralCredit(Base):
    __tablename__ = "referral_credits"

    id: Mapped[UUID] = uuid_pk()
    user_id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    lead_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("referral_leads.id", ondelete="SET NULL"), nullable=True, unique=True
    )
    amount: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    type: Mapped[str] = mapped_column(String(40), nullable=False, default=CREDIT_SUCCESSFUL_REFERRAL)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_used: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    used_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    created_at: Mapped[datetime] = created_at_column()


class Habit(Base):
    __tablename__ = "habits"

    id: Mapped[UUID] = uuid_pk()
    user_id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    category: Mapped[str] = mapped_column(String(40), nullable=False, default="personal")
    order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = created_at_column()
    updated_at: Mapped[datetime] = updated_at_column()


class HabitProgress(Base):
    __tablename__ = "habit_progress"

    id: Mapped[UUID] = uuid_pk()
    habit_id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), ForeignKey("habits.id", ondelete="CASCADE"), nullable=False, index=True)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    is_checked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = created_at_column()
    updated_at: Mapped[datetime] = updated_at_column()

    __table_args__ = (UniqueConstraint("habit_id", "date", name="uq_habit_progress_habit_date"),)
