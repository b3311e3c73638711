# src/clinicflow/api/schemas.py
from __future__ import annotations

import datetime as dt
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Literal, Optional, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field

SubscriptionStatus = Literal["TRIAL", "ACTIVE", "SUSPENDED", "CANCELLED", "EXPIRED"]
LeadStatus = Literal["PENDING", "CONTACTED", "CONVERTED", "REJECTED", "EXPIRED"]
AppointmentStatus = Literal["SCHEDULED", "CONFIRMED", "COMPLETED", "CANCELLED", "NO_SHOW"]
SymptomStatus = Literal["PENDING", "REVIEWED", "REQUIRES_ATTENTION", "RESOLVED"]
StepType = Literal[
    "TEXT", "TEXTAREA", "SELECT", "MULTISELECT", "RADIO", "CHECKBOX", "NUMBER", "DATE", "SCALE", "YES_NO"
]


class ORMModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class MessageOut(BaseModel):
    message: str


# ── auth ──────────────────────────────────────────────────────────────────────

class RegisterDoctorIn(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    email: EmailStr
    password: str


class RegisterPatientIn(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    email: EmailStr
    password: str
    phone: Optional[str] = None


class LoginIn(BaseModel):
    email: EmailStr
    password: str


class UserOut(ORMModel):
    id: UUID
    name: Optional[str] = None
    email: str
    phone: Optional[str] = None
    image: Optional[str] = None
    role: str
    doctor_id: Optional[UUID] = None
    referral_code: Optional[str] = None
    is_active: bool = True


class TokenOut(BaseModel):
    token: str
    token_type: str = "bearer"
    user: UserOut
    needs_clinic: bool = False


class ClinicBrief(BaseModel):
    id: UUID
    name: str
    slug: str
    logo: Optional[str] = None


class ProfileOut(BaseModel):
    id: UUID
    name: Optional[str] = None
    email: str
    phone: Optional[str] = None
    image: Optional[str] = None
    role: str
    doctor_id: Optional[UUID] = None
    referral_code: Optional[str] = None
    clinic: Optional[ClinicBrief] = None
    needs_clinic: bool = False


class ForgotPasswordIn(BaseModel):
    email: EmailStr


class ValidateTokenOut(BaseModel):
    valid: bool


class ResetPasswordIn(BaseModel):
    token: str = Field(min_length=1)
    password: str


# ── subscriptions ─────────────────────────────────────────────────────────────

class PlanIn(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    description: Optional[str] = None
    price: Decimal = Field(default=Decimal("0"), ge=0)
    max_doctors: Optional[int] = Field(default=None, ge=1)
    max_patients: Optional[int] = Field(default=None, ge=0)
    max_protocols: Optional[int] = Field(default=None, ge=0)
    max_courses: Optional[int] = Field(default=None, ge=0)
    trial_days: Optional[int] = Field(default=None, ge=0)
    is_default: bool = False
    is_active: bool = True


class PlanUpdateIn(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=120)
    description: Optional[str] = None
    price: Optional[Decimal] = Field(default=None, ge=0)
    max_doctors: Optional[int] = Field(default=None, ge=1)
    max_patients: Optional[int] = Field(default=None, ge=0)
    max_protocols: Optional[int] = Field(default=None, ge=0)
    max_courses: Optional[int] = Field(default=None, ge=0)
    trial_days: Optional[int] = Field(default=None, ge=0)
    is_default: Optional[bool] = None
    is_active: Optional[bool] = None


class PlanOut(ORMModel):
    id: UUID
    name: str
    description: Optional[str] = None
    price: Decimal
    max_doctors: Optional[int] = None
    max_patients: Optional[int] = None
    max_protocols: Optional[int] = None
    max_courses: Optional[int] = None
    trial_days: Optional[int] = None
    is_default: bool
    is_active: bool


class SubscriptionOut(ORMModel):
    id: UUID
    clinic_id: UUID
    status: str
    max_doctors: int
    start_date: datetime
    end_date: Optional[datetime] = None
    trial_end_date: Optional[datetime] = None
    auto_renew: bool
    plan: PlanOut


class SubscriptionUpdateIn(BaseModel):
    status: SubscriptionStatus
    plan_id: Optional[UUID] = None
    max_doctors: Optional[int] = None
    end_date: Optional[datetime] = None
    trial_end_date: Optional[datetime] = None


class LimitOut(BaseModel):
    allowed: bool
    current: int
    limit: Optional[int] = None
    message: Optional[str] = None


# ── clinics ───────────────────────────────────────────────────────────────────

class ClinicIn(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    description: Optional[str] = None
    logo: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[EmailStr] = None
    website: Optional[str] = None


class ClinicUpdateIn(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None
    logo: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[EmailStr] = None
    website: Optional[str] = None


class ClinicOut(ORMModel):
    id: UUID
    owner_id: UUID
    name: str
    slug: str
    description: Optional[str] = None
    logo: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    website: Optional[str] = None
    is_active: bool
    created_at: datetime


class MemberOut(BaseModel):
    user_id: UUID
    name: Optional[str] = None
    email: str
    image: Optional[str] = None
    role: str
    is_owner: bool
    joined_at: datetime


class ClinicDetailOut(BaseModel):
    clinic: ClinicOut
    members: list[MemberOut]
    subscription: Optional[SubscriptionOut] = None
    is_admin: bool


class PublicDoctorOut(BaseModel):
    id: UUID
    name: Optional[str] = None
    image: Optional[str] = None


class PublicClinicOut(BaseModel):
    name: str
    slug: str
    description: Optional[str] = None
    logo: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    website: Optional[str] = None
    doctors: list[PublicDoctorOut]


class AddMemberIn(BaseModel):
    email: EmailStr
    role: Literal["DOCTOR", "ADMIN"] = "DOCTOR"


class ClinicStatsOut(BaseModel):
    doctors: int
    patients: int
    protocols: int
    courses: int


class AuditLogOut(ORMModel):
    id: UUID
    actor_user_id: Optional[UUID] = None
    action: str
    target_type: str
    target_id: Optional[UUID] = None
    meta: dict[str, Any]
    occurred_at: datetime


# ── patients & relationships ──────────────────────────────────────────────────

class PatientCreateIn(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    email: EmailStr
    phone: Optional[str] = None


class PatientUpdateIn(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    image: Optional[str] = None
    is_active: Optional[bool] = None


class PatientOut(ORMModel):
    id: UUID
    name: Optional[str] = None
    email: str
    phone: Optional[str] = None
    image: Optional[str] = None
    role: str
    doctor_id: Optional[UUID] = None
    referral_code: Optional[str] = None
    is_active: bool
    created_at: datetime


class RelationshipIn(BaseModel):
    patient_id: UUID
    is_primary: bool = False
    speciality: Optional[str] = None
    notes: Optional[str] = None


class RelationshipUpdateIn(BaseModel):
    is_primary: Optional[bool] = None
    is_active: Optional[bool] = None
    speciality: Optional[str] = None
    notes: Optional[str] = None


class RelationshipOut(ORMModel):
    id: UUID
    doctor_id: UUID
    patient_id: UUID
    clinic_id: Optional[UUID] = None
    is_primary: bool
    is_active: bool
    speciality: Optional[str] = None
    notes: Optional[str] = None
    start_date: datetime
    end_date: Optional[datetime] = None


class DoctorLinkOut(BaseModel):
    relationship_id: UUID
    doctor_id: UUID
    name: Optional[str] = None
    email: str
    image: Optional[str] = None
    is_primary: bool
    speciality: Optional[str] = None
    clinic_id: Optional[UUID] = None


# ── protocols ─────────────────────────────────────────────────────────────────

class TaskIn(BaseModel):
    title: str = Field(min_length=1, max_length=300)
    description: Optional[str] = None
    has_more_info: bool = False
    video_url: Optional[str] = None
    full_explanation: Optional[str] = None


class SessionIn(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    tasks: list[TaskIn] = Field(default_factory=list)


class DayIn(BaseModel):
    title: Optional[str] = None
    sessions: Optional[list[SessionIn]] = None
    tasks: Optional[list[TaskIn]] = None


class ProtocolIn(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    description: Optional[str] = None
    duration: int = Field(ge=1)
    is_template: bool = False
    cover_image: Optional[str] = None
    show_modal: bool = False
    modal_title: Optional[str] = None
    modal_video_url: Optional[str] = None
    modal_description: Optional[str] = None
    modal_button_text: Optional[str] = None
    modal_button_url: Optional[str] = None
    onboarding_template_id: Optional[UUID] = None
    days: list[DayIn] = Field(default_factory=list)


class ProtocolUpdateIn(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None
    duration: Optional[int] = Field(default=None, ge=1)
    is_template: Optional[bool] = None
    cover_image: Optional[str] = None
    show_modal: Optional[bool] = None
    modal_title: Optional[str] = None
    modal_video_url: Optional[str] = None
    modal_description: Optional[str] = None
    modal_button_text: Optional[str] = None
    modal_button_url: Optional[str] = None
    onboarding_template_id: Optional[UUID] = None
    days: Optional[list[DayIn]] = None


class TaskOut(ORMModel):
    id: UUID
    order_index: int
    title: str
    description: Optional[str] = None
    has_more_info: bool
    video_url: Optional[str] = None
    full_explanation: Optional[str] = None


class SessionOut(ORMModel):
    id: UUID
    session_number: int
    title: str
    description: Optional[str] = None
    tasks: list[TaskOut]


class DayOut(ORMModel):
    id: UUID
    day_number: int
    title: str
    sessions: list[SessionOut]


class ProtocolOut(ORMModel):
    id: UUID
    doctor_id: UUID
    name: str
    description: Optional[str] = None
    duration: int
    is_template: bool
    cover_image: Optional[str] = None
    show_modal: bool
    modal_title: Optional[str] = None
    modal_video_url: Optional[str] = None
    modal_description: Optional[str] = None
    modal_button_text: Optional[str] = None
    modal_button_url: Optional[str] = None
    onboarding_template_id: Optional[UUID] = None
    created_at: datetime
    days: list[DayOut]


class BuiltinTemplateOut(BaseModel):
    index: int
    name: str
    description: str
    duration: int
    days: int


class TemplateListOut(BaseModel):
    predefined: list[BuiltinTemplateOut]
    custom: list[ProtocolOut]


class DefaultFlagIn(BaseModel):
    is_default: bool


# ── prescriptions ─────────────────────────────────────────────────────────────

class PrescribeIn(BaseModel):
    protocol_id: UUID
    patient_id: UUID
    planned_start_date: date
    planned_end_date: Optional[date] = None
    consultation_date: Optional[date] = None


class ActivateIn(BaseModel):
    actual_start_date: Optional[date] = None


class AbandonIn(BaseModel):
    reason: Optional[str] = None


class TaskProgressOut(ORMModel):
    id: UUID
    task_id: UUID
    scheduled_date: date
    status: str
    completed_at: Optional[datetime] = None


class PrescriptionOut(ORMModel):
    id: UUID
    protocol_id: UUID
    patient_id: UUID
    prescribed_by: UUID
    status: str
    prescribed_at: datetime
    planned_start_date: date
    planned_end_date: date
    actual_start_date: Optional[date] = None
    actual_end_date: Optional[date] = None
    consultation_date: Optional[date] = None
    current_day: int
    adherence_rate: int
    last_progress_date: Optional[datetime] = None
    abandon_reason: Optional[str] = None


class PrescriptionDetailOut(PrescriptionOut):
    protocol: ProtocolOut
    progress: list[TaskProgressOut]


class PrescribeOut(BaseModel):
    prescription: PrescriptionOut
    updated: bool


class ToggleTaskOut(BaseModel):
    prescription: PrescriptionOut
    progress: TaskProgressOut


# ── symptom reports ───────────────────────────────────────────────────────────

class SymptomReportIn(BaseModel):
    protocol_id: UUID
    day_number: int = Field(ge=1)
    symptoms: str = Field(min_length=1)
    severity: int = Field(default=1, ge=1, le=10)
    title: Optional[str] = Field(default=None, max_length=200)
    description: Optional[str] = None
    report_time: Optional[datetime] = None


class SymptomReviewIn(BaseModel):
    status: SymptomStatus
    doctor_notes: Optional[str] = None


class SymptomReportOut(ORMModel):
    id: UUID
    patient_id: UUID
    protocol_id: UUID
    day_number: int
    title: str
    description: Optional[str] = None
    symptoms: str
    severity: int
    report_time: datetime
    status: str
    doctor_notes: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    reviewed_by: Optional[UUID] = None
    created_at: datetime


# ── onboarding ────────────────────────────────────────────────────────────────

class StepIn(BaseModel):
    question: str = Field(min_length=1)
    description: Optional[str] = None
    type: StepType
    options: list[str] = Field(default_factory=list)
    required: bool = False
    show_to_doctor: bool = True
    order: Optional[int] = None


class OnboardingTemplateIn(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    description: Optional[str] = None
    is_active: bool = True
    is_default: bool = False
    steps: list[StepIn] = Field(default_factory=list)


class OnboardingTemplateUpdateIn(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None
    is_active: Optional[bool] = None
    is_default: Optional[bool] = None
    steps: Optional[list[StepIn]] = None


class StepOut(ORMModel):
    id: UUID
    question: str
    description: Optional[str] = None
    type: str
    options: list[str]
    required: bool
    show_to_doctor: bool
    order: int


class OnboardingTemplateOut(ORMModel):
    id: UUID
    name: str
    description: Optional[str] = None
    is_active: bool
    is_default: bool
    created_at: datetime
    steps: list[StepOut]


class GenerateLinkIn(BaseModel):
    template_id: UUID
    patient_id: Optional[UUID] = None
    email: Optional[EmailStr] = None


class LinkOut(BaseModel):
    token: str
    link: str
    response_id: UUID


class PublicFormOut(BaseModel):
    token: str
    status: str
    template_name: str
    template_description: Optional[str] = None
    steps: list[StepOut]


class AnswerIn(BaseModel):
    step_id: UUID
    answer: Union[str, list[str], int, float, bool, None] = None


class SubmitIn(BaseModel):
    email: Optional[EmailStr] = None
    answers: list[AnswerIn] = Field(default_factory=list)


class AnswerOut(BaseModel):
    step_id: UUID
    question: str
    answer: str


class OnboardingResponseOut(BaseModel):
    id: UUID
    template_id: UUID
    template_name: str
    patient_id: Optional[UUID] = None
    email: Optional[str] = None
    status: str
    completed_at: Optional[datetime] = None
    created_at: datetime
    answers: list[AnswerOut]


# ── courses ───────────────────────────────────────────────────────────────────

class LessonIn(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    description: Optional[str] = None
    content: Optional[str] = None
    video_url: Optional[str] = None
    duration_minutes: Optional[int] = Field(default=None, ge=0)


class ModuleIn(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    description: Optional[str] = None
    lessons: list[LessonIn] = Field(default_factory=list)


class CourseIn(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    description: Optional[str] = None
    cover_image: Optional[str] = None
    show_modal: bool = False
    modal_title: Optional[str] = None
    modal_video_url: Optional[str] = None
    modal_description: Optional[str] = None
    modal_button_text: Optional[str] = None
    modal_button_url: Optional[str] = None
    modules: list[ModuleIn] = Field(default_factory=list)


class CourseUpdateIn(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None
    cover_image: Optional[str] = None
    show_modal: Optional[bool] = None
    modal_title: Optional[str] = None
    modal_video_url: Optional[str] = None
    modal_description: Optional[str] = None
    modal_button_text: Optional[str] = None
    modal_button_url: Optional[str] = None
    modules: Optional[list[ModuleIn]] = None


class LessonOut(ORMModel):
    id: UUID
    title: str
    description: Optional[str] = None
    content: Optional[str] = None
    video_url: Optional[str] = None
    duration_minutes: Optional[int] = None
    order: int


class ModuleOut(ORMModel):
    id: UUID
    title: str
    description: Optional[str] = None
    order: int
    lessons: list[LessonOut]


class CourseOut(ORMModel):
    id: UUID
    doctor_id: UUID
    title: str
    description: Optional[str] = None
    cover_image: Optional[str] = None
    status: str
    published_at: Optional[datetime] = None
    show_modal: bool
    modal_title: Optional[str] = None
    modal_video_url: Optional[str] = None
    modal_description: Optional[str] = None
    modal_button_text: Optional[str] = None
    modal_button_url: Optional[str] = None
    created_at: datetime
    modules: list[ModuleOut]


class AssignIn(BaseModel):
    patient_id: UUID


class AssignmentOut(ORMModel):
    id: UUID
    user_id: UUID
    course_id: UUID
    status: str
    assigned_at: datetime
    completed_at: Optional[datetime] = None


class AssignedCourseOut(BaseModel):
    assignment: AssignmentOut
    course: CourseOut
    total_lessons: int
    completed_lessons: int
    progress: int


class PatientCourseOut(AssignedCourseOut):
    completed_lesson_ids: list[UUID]


# ── appointments ──────────────────────────────────────────────────────────────

class AppointmentIn(BaseModel):
    patient_id: UUID
    title: str = Field(min_length=1, max_length=200)
    description: Optional[str] = None
    start_time: datetime
    end_time: datetime
    status: Optional[AppointmentStatus] = None
    notes: Optional[str] = None


class AppointmentUpdateIn(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    status: Optional[AppointmentStatus] = None
    notes: Optional[str] = None


class AppointmentOut(ORMModel):
    id: UUID
    doctor_id: UUID
    patient_id: UUID
    title: str
    description: Optional[str] = None
    start_time: datetime
    end_time: datetime
    status: str
    notes: Optional[str] = None


class SlotOut(BaseModel):
    start_time: datetime
    end_time: datetime
    available: bool


class BookIn(BaseModel):
    doctor_id: UUID
    start_time: datetime
    title: Optional[str] = None
    notes: Optional[str] = None


# ── referrals ─────────────────────────────────────────────────────────────────

class LeadIn(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    email: EmailStr
    phone: Optional[str] = None
    doctor_id: UUID
    referrer_code: Optional[str] = None


class LeadOut(ORMModel):
    id: UUID
    doctor_id: UUID
    referrer_id: Optional[UUID] = None
    name: str
    email: str
    phone: Optional[str] = None
    referral_code: str
    status: str
    notes: Optional[str] = None
    created_at: datetime


class LeadUpdateIn(BaseModel):
    status: Optional[LeadStatus] = None
    notes: Optional[str] = None


class PaginationOut(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class LeadListOut(BaseModel):
    leads: list[LeadOut]
    pagination: PaginationOut
    stats: dict[str, int]


class ReferralSummaryOut(BaseModel):
    referral_code: str
    referral_link: Optional[str] = None
    credits_balance: int
    leads: list[LeadOut]


# ── habits ────────────────────────────────────────────────────────────────────

class HabitIn(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    description: Optional[str] = None
    category: str = "personal"
    order: Optional[int] = None


class HabitUpdateIn(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None
    category: Optional[str] = None
    order: Optional[int] = None


class HabitOut(ORMModel):
    id: UUID
    title: str
    description: Optional[str] = None
    category: str
    order: int
    is_active: bool
    created_at: datetime


class ToggleProgressIn(BaseModel):
    date: dt.date


class ToggleProgressOut(BaseModel):
    date: dt.date
    is_checked: bool
    is_update: bool


class HabitDayOut(BaseModel):
    date: dt.date
    is_checked: bool


class HabitWithProgressOut(BaseModel):
    habit: HabitOut
    progress: list[HabitDayOut]


# ── admin ─────────────────────────────────────────────────────────────────────

class DashboardOut(BaseModel):
    doctors: int
    patients: int
    clinics: int
    active_subscriptions: int
    trial_subscriptions: int
    protocols: int
    courses: int


class OwnerOut(ORMModel):
    id: UUID
    name: Optional[str] = None
    email: str


class AdminClinicOut(BaseModel):
    clinic: ClinicOut
    owner: OwnerOut
    subscription: Optional[SubscriptionOut] = None


class BootstrapIn(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    email: EmailStr
    password: str


class BootstrapOut(BaseModel):
    admin: UserOut
    token: str
    default_plan: Optional[PlanOut] = None
