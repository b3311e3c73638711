"""ORM models. Importing this package registers every table on Base.metadata."""
from clinicflow.models.base import Base, utcnow
from clinicflow.models.accounts import (
    AuditLog,
    EmailOutbox,
    PasswordResetToken,
    User,
)
from clinicflow.models.clinics import (
    Clinic,
    ClinicMember,
    ClinicSubscription,
    DoctorPatientRelationship,
    SubscriptionPlan,
)
from clinicflow.models.protocols import (
    DoctorDefaultProtocol,
    Protocol,
    ProtocolDay,
    ProtocolPrescription,
    ProtocolSession,
    ProtocolTask,
    ProtocolTaskProgress,
    SymptomReport,
)
from clinicflow.models.onboarding import (
    OnboardingAnswer,
    OnboardingResponse,
    OnboardingStep,
    OnboardingTemplate,
)
from clinicflow.models.courses import Course, CourseModule, Lesson, UserCourse, UserLesson
from clinicflow.models.engagement import (
    Appointment,
    Habit,
    HabitProgress,
    ReferralCredit,
    ReferralLead,
)

__all__ = [
    "Base",
    "utcnow",
    "User",
    "PasswordResetToken",
    "AuditLog",
    "EmailOutbox",
    "Clinic",
    "ClinicMember",
    "SubscriptionPlan",
    "ClinicSubscription",
    "DoctorPatientRelationship",
    "Protocol",
    "ProtocolDay",
    "ProtocolSession",
    "ProtocolTask",
    "DoctorDefaultProtocol",
    "ProtocolPrescription",
    "ProtocolTaskProgress",
    "SymptomReport",
    "OnboardingTemplate",
    "OnboardingStep",
    "OnboardingResponse",
    "OnboardingAnswer",
    "Course",
    "CourseModule",
    "Lesson",
    "UserCourse",
    "UserLesson",
    "Appointment",
    "ReferralLead",
    "ReferralCredit",
    "Habit",
    "HabitProgress",
]
