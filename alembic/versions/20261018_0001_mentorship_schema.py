"""Mentorship sessions schema

Revision ID: 20261018_0001
Revises:
Create Date: 2026-10-18 09:30:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "20261018_0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


role_enum = sa.Enum("mentee", "mentor", "admin", name="role_enum", native_enum=False)
session_type_enum = sa.Enum("one_on_one", "group", name="session_type_enum", native_enum=False)
session_status_enum = sa.Enum(
    "pending",
    "confirmed",
    "in_progress",
    "completed",
    "cancelled",
    "pending_reschedule",
    "no_show",
    name="session_status_enum",
    native_enum=False,
)
payment_status_enum = sa.Enum("pending", "captured", "failed", "refunded", name="payment_status_enum", native_enum=False)
payout_status_enum = sa.Enum(
    "pending",
    "processing",
    "completed",
    "failed",
    "cancelled",
    name="payout_status_enum",
    native_enum=False,
)
reschedule_status_enum = sa.Enum("pending", "approved", "rejected", name="reschedule_status_enum", native_enum=False)
dispute_status_enum = sa.Enum(
    "pending",
    "under_review",
    "resolved",
    "rejected",
    name="dispute_status_enum",
    native_enum=False,
)
dispute_reason_enum = sa.Enum(
    "no_show",
    "poor_quality",
    "technical_issues",
    "other",
    name="dispute_reason_enum",
    native_enum=False,
)
dispute_resolution_enum = sa.Enum(
    "full_refund",
    "partial_refund",
    "no_refund",
    name="dispute_resolution_enum",
    native_enum=False,
)
job_status_enum = sa.Enum("pending", "completed", "cancelled", "failed", name="job_status_enum", native_enum=False)
outbox_status_enum = sa.Enum("pending", "processed", "failed", name="outbox_status_enum", native_enum=False)


def _id_col() -> sa.Column:
    return sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False)


def _created_col() -> sa.Column:
    return sa.Column("created_at", sa.DateTime(timezone=True), nullable=False)


def _updated_col() -> sa.Column:
    return sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False)


def _money(name: str, nullable: bool = False) -> sa.Column:
    return sa.Column(name, sa.Numeric(12, 2), nullable=nullable)


def upgrade() -> None:
    op.create_table(
        "mentor_profiles",
        _id_col(),
        _created_col(),
        _updated_col(),
        sa.Column("mentor_id", postgresql.UUID(as_uuid=True), nullable=False),
        _money("rate_30_min"),
        _money("rate_60_min"),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.UniqueConstraint("mentor_id", name="uq_mentor_profiles_mentor_id"),
    )

    op.create_table(
        "time_slots",
        _id_col(),
        _created_col(),
        _updated_col(),
        sa.Column("mentor_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("start_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=False),
        sa.Column("is_booked", sa.Boolean(), nullable=False),
        sa.Column("session_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.CheckConstraint(
            "(is_booked AND session_id IS NOT NULL) OR (NOT is_booked AND session_id IS NULL)",
            name="ck_time_slots_booking_binding",
        ),
        sa.CheckConstraint("end_at > start_at", name="ck_time_slots_positive_duration"),
        sa.UniqueConstraint("session_id", name="uq_time_slots_session_id"),
    )
    op.create_index("ix_time_slots_mentor_id", "time_slots", ["mentor_id"], unique=False)
    op.create_index("ix_time_slots_start_at", "time_slots", ["start_at"], unique=False)
    op.create_index("ix_time_slots_is_booked", "time_slots", ["is_booked"], unique=False)
    op.create_index("ix_time_slots_mentor_start", "time_slots", ["mentor_id", "start_at"], unique=False)

    op.create_table(
        "mentorship_sessions",
        _id_col(),
        _created_col(),
        _updated_col(),
        sa.Column("mentee_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("mentor_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("time_slot_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("session_type", session_type_enum, nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=False),
        sa.Column("scheduled_start_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("scheduled_end_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", session_status_enum, nullable=False),
        _money("price"),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("conference_reference", sa.String(length=512), nullable=True),
        sa.Column("payment_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("active_reschedule_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.Column("cancelled_by_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("refund_percentage", sa.Integer(), nullable=True),
        _money("refund_amount", nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("actual_duration_minutes", sa.Integer(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(
            ["time_slot_id"],
            ["time_slots.id"],
            name="fk_mentorship_sessions_time_slot_id_time_slots",
            ondelete="SET NULL",
        ),
        sa.CheckConstraint("scheduled_end_at > scheduled_start_at", name="ck_mentorship_sessions_scheduled_window"),
        sa.CheckConstraint("price >= 0", name="ck_mentorship_sessions_non_negative_price"),
    )
    op.create_index("ix_mentorship_sessions_mentee_id", "mentorship_sessions", ["mentee_id"], unique=False)
    op.create_index("ix_mentorship_sessions_mentor_id", "mentorship_sessions", ["mentor_id"], unique=False)
    op.create_index("ix_mentorship_sessions_time_slot_id", "mentorship_sessions", ["time_slot_id"], unique=False)
    op.create_index(
        "ix_mentorship_sessions_scheduled_start_at",
        "mentorship_sessions",
        ["scheduled_start_at"],
        unique=False,
    )
    op.create_index("ix_mentorship_sessions_status", "mentorship_sessions", ["status"], unique=False)

    op.create_table(
        "payments",
        _id_col(),
        _created_col(),
        _updated_col(),
        sa.Column("session_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("mentee_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("mentor_id", postgresql.UUID(as_uuid=True), nullable=False),
        _money("amount"),
        _money("platform_commission", nullable=True),
        _money("mentor_payout_amount", nullable=True),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("provider", sa.String(length=64), nullable=False),
        sa.Column("provider_intent_id", sa.String(length=128), nullable=True),
        sa.Column("provider_transaction_id", sa.String(length=128), nullable=True),
        sa.Column("status", payment_status_enum, nullable=False),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        _money("refund_amount", nullable=True),
        sa.Column("refund_percentage", sa.Integer(), nullable=True),
        sa.Column("refunded_at", sa.DateTime(timezone=True), nullable=True),
        _money("payout_adjustment"),
        sa.Column("payout_release_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("payout_released_at", sa.DateTime(timezone=True), nullable=True),
        _money("released_amount", nullable=True),
        sa.ForeignKeyConstraint(
            ["session_id"],
            ["mentorship_sessions.id"],
            name="fk_payments_session_id_mentorship_sessions",
            ondelete="CASCADE",
        ),
        sa.CheckConstraint(
            "platform_commission IS NULL OR platform_commission + mentor_payout_amount = amount",
            name="ck_payments_split_sums_to_gross",
        ),
        sa.UniqueConstraint("session_id", name="uq_payments_session_id"),
        sa.UniqueConstraint("provider_intent_id", name="uq_payments_provider_intent_id"),
    )
    op.create_index("ix_payments_mentee_id", "payments", ["mentee_id"], unique=False)
    op.create_index("ix_payments_mentor_id", "payments", ["mentor_id"], unique=False)
    op.create_index("ix_payments_status", "payments", ["status"], unique=False)

    op.create_table(
        "mentor_balances",
        _created_col(),
        _updated_col(),
        sa.Column("mentor_id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        _money("available_balance"),
        _money("pending_balance"),
        _money("total_earnings"),
    )

    op.create_table(
        "payouts",
        _id_col(),
        _created_col(),
        _updated_col(),
        sa.Column("mentor_id", postgresql.UUID(as_uuid=True), nullable=False),
        _money("amount"),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("status", payout_status_enum, nullable=False),
        sa.Column("failure_reason", sa.Text(), nullable=True),
        sa.Column("requested_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("amount > 0", name="ck_payouts_positive_amount"),
    )
    op.create_index("ix_payouts_mentor_id", "payouts", ["mentor_id"], unique=False)
    op.create_index("ix_payouts_status", "payouts", ["status"], unique=False)

    op.create_table(
        "reschedule_requests",
        _id_col(),
        _created_col(),
        _updated_col(),
        sa.Column("session_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("requested_by_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("requester_role", role_enum, nullable=False),
        sa.Column("original_start_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("proposed_start_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("target_slot_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("status", reschedule_status_enum, nullable=False),
        sa.Column("requested_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("decided_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("decided_by_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.ForeignKeyConstraint(
            ["session_id"],
            ["mentorship_sessions.id"],
            name="fk_reschedule_requests_session_id_mentorship_sessions",
            ondelete="CASCADE",
        ),
    )
    op.create_index("ix_reschedule_requests_session_id", "reschedule_requests", ["session_id"], unique=False)
    op.create_index("ix_reschedule_requests_status", "reschedule_requests", ["status"], unique=False)
    op.create_index(
        "uq_reschedule_requests_one_pending_per_session",
        "reschedule_requests",
        ["session_id"],
        unique=True,
        postgresql_where=sa.text("status = 'pending'"),
    )

    op.create_table(
        "session_disputes",
        _id_col(),
        _created_col(),
        _updated_col(),
        sa.Column("session_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("mentee_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("reason", dispute_reason_enum, nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", dispute_status_enum, nullable=False),
        sa.Column("resolution", dispute_resolution_enum, nullable=True),
        _money("refund_amount", nullable=True),
        sa.Column("admin_notes", sa.Text(), nullable=True),
        sa.Column("resolved_by_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(
            ["session_id"],
            ["mentorship_sessions.id"],
            name="fk_session_disputes_session_id_mentorship_sessions",
            ondelete="CASCADE",
        ),
        sa.UniqueConstraint("session_id", name="uq_session_disputes_session_id"),
    )
    op.create_index("ix_session_disputes_mentee_id", "session_disputes", ["mentee_id"], unique=False)
    op.create_index("ix_session_disputes_status", "session_disputes", ["status"], unique=False)

    op.create_table(
        "scheduled_jobs",
        _id_col(),
        _created_col(),
        _updated_col(),
        sa.Column("job_type", sa.String(length=64), nullable=False),
        sa.Column("aggregate_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("due_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", job_status_enum, nullable=False),
        sa.Column("attempts", sa.Integer(), nullable=False),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("job_type", "aggregate_id", name="uq_scheduled_jobs_type_aggregate"),
    )
    op.create_index("ix_scheduled_jobs_due_at", "scheduled_jobs", ["due_at"], unique=False)
    op.create_index("ix_scheduled_jobs_status", "scheduled_jobs", ["status"], unique=False)

    op.create_table(
        "audit_logs",
        _id_col(),
        _created_col(),
        _updated_col(),
        sa.Column("actor_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("action", sa.String(length=128), nullable=False),
        sa.Column("entity_type", sa.String(length=64), nullable=False),
        sa.Column("entity_id", sa.String(length=64), nullable=True),
        sa.Column("payload", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
    )
    op.create_index("ix_audit_logs_entity", "audit_logs", ["entity_type", "entity_id"], unique=False)
    op.create_index("ix_audit_logs_actor_id", "audit_logs", ["actor_id"], unique=False)
    op.create_index("ix_audit_logs_action", "audit_logs", ["action"], unique=False)

    op.create_table(
        "outbox_events",
        _id_col(),
        _created_col(),
        _updated_col(),
        sa.Column("aggregate_type", sa.String(length=64), nullable=False),
        sa.Column("aggregate_id", sa.String(length=64), nullable=False),
        sa.Column("event_type", sa.String(length=64), nullable=False),
        sa.Column("schema_version", sa.Integer(), nullable=False),
        sa.Column("payload", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("status", outbox_status_enum, nullable=False),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("retries", sa.Integer(), nullable=False),
        sa.Column("error_message", sa.Text(), nullable=True),
    )
    op.create_index(
        "ix_outbox_events_status_occurred_at",
        "outbox_events",
        ["status", "occurred_at"],
        unique=False,
    )
    op.create_index(
        "ix_outbox_events_aggregate",
        "outbox_events",
        ["aggregate_type", "aggregate_id"],
        unique=False,
    )
    op.create_index("ix_outbox_events_event_type", "outbox_events", ["event_type"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_outbox_events_event_type", table_name="outbox_events")
    op.drop_index("ix_outbox_events_aggregate", table_name="outbox_events")
    op.drop_index("ix_outbox_events_status_occurred_at", table_name="outbox_events")
    op.drop_table("outbox_events")

    op.drop_index("ix_audit_logs_action", table_name="audit_logs")
    op.drop_index("ix_audit_logs_actor_id", table_name="audit_logs")
    op.drop_index("ix_audit_logs_entity", table_name="audit_logs")
    op.drop_table("audit_logs")

    op.drop_index("ix_scheduled_jobs_status", table_name="scheduled_jobs")
    op.drop_index("ix_scheduled_jobs_due_at", table_name="scheduled_jobs")
    op.drop_table("scheduled_jobs")

    op.drop_index("ix_session_disputes_status", table_name="session_disputes")
    op.drop_index("ix_session_disputes_mentee_id", table_name="session_disputes")
    op.drop_table("session_disputes")

    op.drop_index("uq_reschedule_requests_one_pending_per_session", table_name="reschedule_requests")
    op.drop_index("ix_reschedule_requests_status", table_name="reschedule_requests")
    op.drop_index("ix_reschedule_requests_session_id", table_name="reschedule_requests")
    op.drop_table("reschedule_requests")

    op.drop_index("ix_payouts_status", table_name="payouts")
    op.drop_index("ix_payouts_mentor_id", table_name="payouts")
    op.drop_table("payouts")

    op.drop_table("mentor_balances")

    op.drop_index("ix_payments_status", table_name="payments")
    op.drop_index("ix_payments_mentor_id", table_name="payments")
    op.drop_index("ix_payments_mentee_id", table_name="payments")
    op.drop_table("payments")

    op.drop_index("ix_mentorship_sessions_status", table_name="mentorship_sessions")
    op.drop_index("ix_mentorship_sessions_scheduled_start_at", table_name="mentorship_sessions")
    op.drop_index("ix_mentorship_sessions_time_slot_id", table_name="mentorship_sessions")
    op.drop_index("ix_mentorship_sessions_mentor_id", table_name="mentorship_sessions")
    op.drop_index("ix_mentorship_sessions_mentee_id", table_name="mentorship_sessions")
    op.drop_table("mentorship_sessions")

    op.drop_index("ix_time_slots_mentor_start", table_name="time_slots")
    op.drop_index("ix_time_slots_is_booked", table_name="time_slots")
    op.drop_index("ix_time_slots_start_at", table_name="time_slots")
    op.drop_index("ix_time_slots_mentor_id", table_name="time_slots")
    op.drop_table("time_slots")

    op.drop_table("mentor_profiles")
