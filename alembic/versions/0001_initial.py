"""0001_initial

clinicflow schema: accounts, clinics + subscriptions, protocols, onboarding,
symptom reports, courses, appointments, referrals, habits + RLS on audit_logs
"""

from alembic import op
import sqlalchemy as sa

revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def _id() -> sa.Column:
    return sa.Column("id", sa.Uuid(), primary_key=True)


def _fk(name: str, target: str, *, nullable: bool = False, ondelete: str | None = "CASCADE", **kw) -> sa.Column:
    return sa.Column(name, sa.Uuid(), sa.ForeignKey(target, ondelete=ondelete), nullable=nullable, **kw)


def _ts(name: str, *, nullable: bool = False) -> sa.Column:
    if nullable:
        return sa.Column(name, sa.DateTime(timezone=True), nullable=True)
    return sa.Column(name, sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now())


def _modal_columns() -> list[sa.Column]:
    return [
        sa.Column("show_modal", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("modal_title", sa.String(200), nullable=True),
        sa.Column("modal_video_url", sa.String(500), nullable=True),
        sa.Column("modal_description", sa.Text(), nullable=True),
        sa.Column("modal_button_text", sa.String(80), nullable=True),
        sa.Column("modal_button_url", sa.String(500), nullable=True),
    ]


def upgrade() -> None:
    # ── accounts ──────────────────────────────────────────────────────────────
    op.create_table(
        "users",
        _id(),
        sa.Column("email", sa.String(320), nullable=False, unique=True),
        sa.Column("name", sa.String(200), nullable=True),
        sa.Column("phone", sa.String(40), nullable=True),
        sa.Column("image", sa.String(500), nullable=True),
        sa.Column("password_hash", sa.String(200), nullable=True),
        sa.Column("role", sa.String(30), nullable=False),
        _fk("doctor_id", "users.id", nullable=True, ondelete=None, index=True),
        sa.Column("referral_code", sa.String(16), nullable=True, unique=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        _ts("created_at"),
        _ts("updated_at"),
    )
    op.create_index("ix_users_role_doctor", "users", ["role", "doctor_id"])

    op.create_table(
        "password_reset_tokens",
        _id(),
        _fk("user_id", "users.id", index=True),
        sa.Column("token_hash", sa.String(64), nullable=False, unique=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        _ts("used_at", nullable=True),
        _ts("created_at"),
    )

    op.create_table(
        "email_outbox",
        _id(),
        sa.Column("to_email", sa.String(320), nullable=False),
        sa.Column("subject", sa.String(300), nullable=False),
        sa.Column("template", sa.String(80), nullable=False),
        sa.Column("html_body", sa.Text(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="PENDING"),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_error", sa.Text(), nullable=True),
        _ts("created_at"),
        _ts("sent_at", nullable=True),
    )
    op.create_index("ix_email_outbox_claim", "email_outbox", ["status", "created_at"])

    # ── clinics & billing ─────────────────────────────────────────────────────
    op.create_table(
        "subscription_plans",
        _id(),
        sa.Column("name", sa.String(120), nullable=False, unique=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("price", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("max_doctors", sa.Integer(), nullable=True),
        sa.Column("max_patients", sa.Integer(), nullable=True),
        sa.Column("max_protocols", sa.Integer(), nullable=True),
        sa.Column("max_courses", sa.Integer(), nullable=True),
        sa.Column("trial_days", sa.Integer(), nullable=True),
        sa.Column("is_default", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        _ts("created_at"),
        _ts("updated_at"),
    )

    op.create_table(
        "clinics",
        _id(),
        _fk("owner_id", "users.id", ondelete=None, index=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("slug", sa.String(220), nullable=False, unique=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("logo", sa.String(500), nullable=True),
        sa.Column("address", sa.String(300), nullable=True),
        sa.Column("city", sa.String(120), nullable=True),
        sa.Column("state", sa.String(120), nullable=True),
        sa.Column("zip_code", sa.String(20), nullable=True),
        sa.Column("country", sa.String(80), nullable=True),
        sa.Column("phone", sa.String(40), nullable=True),
        sa.Column("email", sa.String(320), nullable=True),
        sa.Column("website", sa.String(300), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        _ts("created_at"),
        _ts("updated_at"),
    )

    op.create_table(
        "clinic_members",
        _id(),
        _fk("clinic_id", "clinics.id", index=True),
        _fk("user_id", "users.id", index=True),
        sa.Column("role", sa.String(20), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        _ts("joined_at"),
        sa.UniqueConstraint("clinic_id", "user_id", name="uq_clinic_members_clinic_user"),
    )

    op.create_table(
        "clinic_subscriptions",
        _id(),
        _fk("clinic_id", "clinics.id", unique=True),
        _fk("plan_id", "subscription_plans.id", ondelete=None, index=True),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("max_doctors", sa.Integer(), nullable=False, server_default="1"),
        _ts("start_date"),
        _ts("end_date", nullable=True),
        _ts("trial_end_date", nullable=True),
        sa.Column("auto_renew", sa.Boolean(), nullable=False, server_default=sa.true()),
        _ts("created_at"),
        _ts("updated_at"),
    )

    op.create_table(
        "doctor_patient_relationships",
        _id(),
        _fk("doctor_id", "users.id", index=True),
        _fk("patient_id", "users.id", index=True),
        _fk("clinic_id", "clinics.id", nullable=True, ondelete="SET NULL"),
        sa.Column("is_primary", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("speciality", sa.String(120), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        _ts("start_date"),
        _ts("end_date", nullable=True),
        _ts("created_at"),
        _ts("updated_at"),
        sa.UniqueConstraint("patient_id", "doctor_id", name="uq_doctor_patient_relationships_pair"),
    )

    op.create_table(
        "audit_logs",
        _id(),
        _fk("clinic_id", "clinics.id", index=True),
        _fk("actor_user_id", "users.id", nullable=True, ondelete="SET NULL"),
        sa.Column("action", sa.String(80), nullable=False),
        sa.Column("target_type", sa.String(80), nullable=False),
        sa.Column("target_id", sa.Uuid(), nullable=True),
        sa.Column("meta", sa.JSON(), nullable=False),
        _ts("occurred_at"),
    )

    # ── onboarding ────────────────────────────────────────────────────────────
    op.create_table(
        "onboarding_templates",
        _id(),
        _fk("doctor_id", "users.id", index=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("is_default", sa.Boolean(), nullable=False, server_default=sa.false()),
        _ts("created_at"),
        _ts("updated_at"),
    )

    op.create_table(
        "onboarding_steps",
        _id(),
        _fk("template_id", "onboarding_templates.id", index=True),
        sa.Column("question", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("type", sa.String(20), nullable=False),
        sa.Column("options", sa.JSON(), nullable=False),
        sa.Column("required", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("show_to_doctor", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("order", sa.Integer(), nullable=False, server_default="0"),
    )

    op.create_table(
        "onboarding_responses",
        _id(),
        _fk("template_id", "onboarding_templates.id", index=True),
        _fk("doctor_id", "users.id", index=True),
        _fk("patient_id", "users.id", nullable=True, ondelete="SET NULL"),
        sa.Column("email", sa.String(320), nullable=True),
        sa.Column("token", sa.String(32), nullable=False, unique=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="PENDING"),
        _ts("completed_at", nullable=True),
        _ts("created_at"),
        _ts("updated_at"),
    )

    op.create_table(
        "onboarding_answers",
        _id(),
        _fk("response_id", "onboarding_responses.id", index=True),
        _fk("step_id", "onboarding_steps.id"),
        sa.Column("answer", sa.Text(), nullable=False),
        _ts("created_at"),
        sa.UniqueConstraint("response_id", "step_id", name="uq_onboarding_answers_step"),
    )

    # ── protocols ─────────────────────────────────────────────────────────────
    op.create_table(
        "protocols",
        _id(),
        _fk("doctor_id", "users.id", index=True),
        _fk("onboarding_template_id", "onboarding_templates.id", nullable=True, ondelete="SET NULL"),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("duration", sa.Integer(), nullable=False),
        sa.Column("is_template", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("cover_image", sa.String(500), nullable=True),
        *_modal_columns(),
        _ts("created_at"),
        _ts("updated_at"),
    )

    op.create_table(
        "protocol_days",
        _id(),
        _fk("protocol_id", "protocols.id", index=True),
        sa.Column("day_number", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.UniqueConstraint("protocol_id", "day_number", name="uq_protocol_days_protocol_day"),
    )

    op.create_table(
        "protocol_sessions",
        _id(),
        _fk("day_id", "protocol_days.id", index=True),
        sa.Column("session_number", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
    )

    op.create_table(
        "protocol_tasks",
        _id(),
        _fk("session_id", "protocol_sessions.id", index=True),
        sa.Column("order_index", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("title", sa.String(300), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("has_more_info", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("video_url", sa.String(500), nullable=True),
        sa.Column("full_explanation", sa.Text(), nullable=True),
    )

    op.create_table(
        "doctor_default_protocols",
        _id(),
        _fk("doctor_id", "users.id", index=True),
        _fk("protocol_id", "protocols.id"),
        _ts("created_at"),
        sa.UniqueConstraint("doctor_id", "protocol_id", name="uq_doctor_default_protocols_pair"),
    )

    op.create_table(
        "protocol_prescriptions",
        _id(),
        _fk("protocol_id", "protocols.id", index=True),
        _fk("patient_id", "users.id", index=True),
        _fk("prescribed_by", "users.id", ondelete=None, index=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="PRESCRIBED"),
        _ts("prescribed_at"),
        sa.Column("planned_start_date", sa.Date(), nullable=False),
        sa.Column("planned_end_date", sa.Date(), nullable=False),
        sa.Column("actual_start_date", sa.Date(), nullable=True),
        sa.Column("actual_end_date", sa.Date(), nullable=True),
        sa.Column("consultation_date", sa.Date(), nullable=True),
        sa.Column("current_day", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("adherence_rate", sa.Integer(), nullable=False, server_default="0"),
        _ts("last_progress_date", nullable=True),
        _ts("paused_at", nullable=True),
        _ts("abandoned_at", nullable=True),
        sa.Column("abandon_reason", sa.Text(), nullable=True),
        _ts("created_at"),
        _ts("updated_at"),
    )

    op.create_table(
        "protocol_task_progress",
        _id(),
        _fk("prescription_id", "protocol_prescriptions.id", index=True),
        _fk("task_id", "protocol_tasks.id"),
        sa.Column("scheduled_date", sa.Date(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="PENDING"),
        _ts("completed_at", nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        _ts("created_at"),
        _ts("updated_at"),
        sa.UniqueConstraint("prescription_id", "task_id", name="uq_protocol_task_progress_task"),
    )

    op.create_table(
        "symptom_reports",
        _id(),
        _fk("patient_id", "users.id", index=True),
        _fk("protocol_id", "protocols.id"),
        _fk("reviewed_by", "users.id", nullable=True, ondelete="SET NULL"),
        sa.Column("day_number", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(200), nullable=False, server_default="Symptom report"),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("symptoms", sa.Text(), nullable=False),
        sa.Column("severity", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("report_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="PENDING"),
        sa.Column("doctor_notes", sa.Text(), nullable=True),
        _ts("reviewed_at", nullable=True),
        _ts("created_at"),
        _ts("updated_at"),
    )
    op.create_index("ix_symptom_reports_protocol_day", "symptom_reports", ["protocol_id", "day_number"])

    # ── courses ───────────────────────────────────────────────────────────────
    op.create_table(
        "courses",
        _id(),
        _fk("doctor_id", "users.id", index=True),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("cover_image", sa.String(500), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="DRAFT"),
        _ts("published_at", nullable=True),
        *_modal_columns(),
        _ts("created_at"),
        _ts("updated_at"),
    )

    op.create_table(
        "course_modules",
        _id(),
        _fk("course_id", "courses.id", index=True),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("order", sa.Integer(), nullable=False, server_default="0"),
    )

    op.create_table(
        "lessons",
        _id(),
        _fk("module_id", "course_modules.id", index=True),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("content", sa.Text(), nullable=True),
        sa.Column("video_url", sa.String(500), nullable=True),
        sa.Column("duration_minutes", sa.Integer(), nullable=True),
        sa.Column("order", sa.Integer(), nullable=False, server_default="0"),
    )

    op.create_table(
        "user_courses",
        _id(),
        _fk("user_id", "users.id", index=True),
        _fk("course_id", "courses.id", index=True),
        _fk("assigned_by", "users.id", ondelete=None),
        sa.Column("status", sa.String(20), nullable=False, server_default="ACTIVE"),
        _ts("assigned_at"),
        _ts("completed_at", nullable=True),
        sa.UniqueConstraint("user_id", "course_id", name="uq_user_courses_user_course"),
    )

    op.create_table(
        "user_lessons",
        _id(),
        _fk("user_id", "users.id", index=True),
        _fk("lesson_id", "lessons.id"),
        _ts("completed_at"),
        sa.UniqueConstraint("user_id", "lesson_id", name="uq_user_lessons_user_lesson"),
    )

    # ── engagement ────────────────────────────────────────────────────────────
    op.create_table(
        "appointments",
        _id(),
        _fk("doctor_id", "users.id"),
        _fk("patient_id", "users.id", index=True),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="SCHEDULED"),
        sa.Column("notes", sa.Text(), nullable=True),
        _ts("created_at"),
        _ts("updated_at"),
    )
    op.create_index("ix_appointments_doctor_start", "appointments", ["doctor_id", "start_time"])

    op.create_table(
        "referral_leads",
        _id(),
        _fk("doctor_id", "users.id", index=True),
        _fk("referrer_id", "users.id", nullable=True, ondelete="SET NULL", index=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("phone", sa.String(40), nullable=True),
        sa.Column("referral_code", sa.String(16), nullable=False, unique=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="PENDING"),
        sa.Column("notes", sa.Text(), nullable=True),
        _ts("created_at"),
        _ts("updated_at"),
    )

    op.create_table(
        "referral_credits",
        _id(),
        _fk("user_id", "users.id", index=True),
        _fk("lead_id", "referral_leads.id", nullable=True, ondelete="SET NULL", unique=True),
        sa.Column("amount", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("type", sa.String(40), nullable=False, server_default="SUCCESSFUL_REFERRAL"),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_used", sa.Boolean(), nullable=False, server_default=sa.false()),
        _ts("used_at", nullable=True),
        _ts("created_at"),
    )

    op.create_table(
        "habits",
        _id(),
        _fk("user_id", "users.id", index=True),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("category", sa.String(40), nullable=False, server_default="personal"),
        sa.Column("order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        _ts("created_at"),
        _ts("updated_at"),
    )

    op.create_table(
        "habit_progress",
        _id(),
        _fk("habit_id", "habits.id", index=True),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("is_checked", sa.Boolean(), nullable=False, server_default=sa.true()),
        _ts("created_at"),
        _ts("updated_at"),
        sa.UniqueConstraint("habit_id", "date", name="uq_habit_progress_habit_date"),
    )

    # ── row-level security (PostgreSQL only) ──────────────────────────────────
    if op.get_bind().dialect.name == "postgresql":
        op.execute("ALTER TABLE audit_logs ENABLE ROW LEVEL SECURITY;")
        op.execute("ALTER TABLE audit_logs FORCE ROW LEVEL SECURITY;")
        op.execute("""
        CREATE POLICY tenant_isolation_audit_logs ON audit_logs
        USING (
            clinic_id = NULLIF(current_setting('app.tenant_id', true), '')::uuid
        )
        WITH CHECK (
            clinic_id = NULLIF(current_setting('app.tenant_id', true), '')::uuid
        );
        """)


def downgrade() -> None:
    if op.get_bind().dialect.name == "postgresql":
        op.execute("DROP POLICY IF EXISTS tenant_isolation_audit_logs ON audit_logs;")

    for table in (
        "habit_progress",
        "habits",
        "referral_credits",
        "referral_leads",
        "appointments",
        "user_lessons",
        "user_courses",
        "lessons",
        "course_modules",
        "courses",
        "symptom_reports",
        "protocol_task_progress",
        "protocol_prescriptions",
        "doctor_default_protocols",
        "protocol_tasks",
        "protocol_sessions",
        "protocol_days",
        "protocols",
        "onboarding_answers",
        "onboarding_responses",
        "onboarding_steps",
        "onboarding_templates",
        "audit_logs",
        "doctor_patient_relationships",
        "clinic_subscriptions",
        "clinic_members",
        "clinics",
        "subscription_plans",
        "email_outbox",
        "password_reset_tokens",
        "users",
    ):
        op.drop_table(table)
