from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Integer, Numeric, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from clinicflow.models.base import Base, UTCDateTime, created_at_column, updated_at_column, uuid_pk

MEMBER_DOCTOR = "DOCTOR"
MEMBER_ADMIN = "ADMIN"

SUB_TRIAL = "TRIAL"
SUB_ACTIVE = "ACTIVE"
SUB_SUSPENDED = "SUSPENDED"
SUB_CANCELLED = "CANCELLED"
SUB_EXPIRED = "EXPIRED"
SUBSCRIPTION_STATUSES = (SUB_TRIAL, SUB_ACTIVE, SUB_SUSPENDED, SUB_CANCELLED, SUB_EXPIRED)


class Clinic(Base):
    __tablename__ = "clinics"

    id: Mapped[UUID] = uuid_pk()
    owner_id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    slug: Mapped[str] = mapped_column(String(220), unique=True, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    logo: Mapped[str | None] = mapped_column(String(500), nullable=True)

    address: Mapped[str | None] = mapped_column(String(300), nullable=True)
    city: Mapped[str | None] = mapped_column(String(120), nullable=True)
    state: Mapped[str | None] = mapped_column(String(120), nullable=True)
    zip_code: Mapped[str | None] = mapped_column(String(20), nullable=True)
    country: Mapped[str | None] = mapped_column(String(80), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(40), nullable=True)
    email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    website: Mapped[str | None] = mapped_column(String(300), nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = created_at_column()
    updated_at: Mapped[datetime] = updated_at_column()


class ClinicMember(Base):
    __tablename__ = "clinic_members"

    id: Mapped[UUID] = uuid_pk()
    clinic_id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), ForeignKey("clinics.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    role: Mapped[str] = mapped_column(String(20), nullable=False, default=MEMBER_DOCTOR)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    joined_at: Mapped[datetime] = created_at_column()

    __table_args__ = (UniqueConstraint("clinic_id", "user_id", name="uq_clinic_members_clinic_user"),)


class SubscriptionPlan(Base):
    __tablename__ = "subscription_plans"

    id: Mapped[UUID] = uuid_pk()
    name: Mapped[str] = mapped_column(String(120), unique=True, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0"))

    # None means unlimited
    max_doctors: Mapped[int | None] = mapped_column(Integer, nullable=True)
    max_patients: Mapped[int | None] = mapped_column(Integer, nullable=True)
    max_protocols: Mapped[int | None] = mapped_column(Integer, nullable=True)
    max_courses: Mapped[int | None] = mapped_column(Integer, nullable=True)

    trial_days: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = created_at_column()
    updated_at: Mapped[datetime] = updated_at_column()


class ClinicSubscription(Base):
    __tablename__ = "clinic_subscriptions"

    id: Mapped[UUID] = uuid_pk()
    clinic_id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), ForeignKey("clinics.id", ondelete="CASCADE"), nullable=False, unique=True)
    plan_id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), ForeignKey("subscription_plans.id"), nullable=False, index=True)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default=SUB_TRIAL)
    max_doctors: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    start_date: Mapped[datetime] = created_at_column()
    end_date: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    trial_end_date: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    auto_renew: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = created_at_column()
    updated_at: Mapped[datetime] = updated_at_column()

    plan: Mapped[SubscriptionPlan] = relationship(lazy="selectin")


class DoctorPatientRelationship(Base):
    __tablename__ = "doctor_patient_relationships"

    id: Mapped[UUID] = uuid_pk()
    doctor_id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    patient_id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    clinic_id: Mapped[UUID | None] = mapped_column(Uuid(as_uuid=True), ForeignKey("clinics.id", ondelete="SET NULL"), nullable=True)

    is_primary: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    speciality: Mapped[str | None] = mapped_column(String(120), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    start_date: Mapped[datetime] = created_at_column()
    end_date: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    created_at: Mapped[datetime] = created_at_column()
    updated_at: Mapped[datetime] = updated_at_column()

    __table_args__ = (UniqueConstraint("patient_id", "doctor_id", name="uq_doctor_patient_relationships_pair"),)
