"""Core enums used across modules."""

from enum import StrEnum


class RoleEnum(StrEnum):
    """Actor roles supplied by the identity gateway."""

    MENTEE = "mentee"
    MENTOR = "mentor"
    ADMIN = "admin"


class SessionStatusEnum(StrEnum):
    """Mentorship session lifecycle status."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    PENDING_RESCHEDULE = "pending_reschedule"
    NO_SHOW = "no_show"


class SessionTypeEnum(StrEnum):
    """Session audience type."""

    ONE_ON_ONE = "one_on_one"
    GROUP = "group"


class PaymentStatusEnum(StrEnum):
    """Payment processing status."""

    PENDING = "pending"
    CAPTURED = "captured"
    FAILED = "failed"
    REFUNDED = "refunded"


class PayoutStatusEnum(StrEnum):
    """Mentor withdrawal status."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class RescheduleStatusEnum(StrEnum):
    """Reschedule request status."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class DisputeStatusEnum(StrEnum):
    """Session dispute status."""

    PENDING = "pending"
    UNDER_REVIEW = "under_review"
    RESOLVED = "resolved"
    REJECTED = "rejected"


class DisputeReasonEnum(StrEnum):
    """Why a mentee disputes a completed session."""

    NO_SHOW = "no_show"
    POOR_QUALITY = "poor_quality"
    TECHNICAL_ISSUES = "technical_issues"
    OTHER = "other"


class DisputeResolutionEnum(StrEnum):
    """Admin decision for a dispute."""

    FULL_REFUND = "full_refund"
    PARTIAL_REFUND = "partial_refund"
    NO_REFUND = "no_refund"


class JobStatusEnum(StrEnum):
    """Durable scheduled job status."""

    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


class JobTypeEnum(StrEnum):
    """Kinds of deferred work persisted in the jobs table."""

    RELEASE_UNPAID_SESSION = "session.release_unpaid"
    RELEASE_PAYOUT = "payout.release"


class OutboxStatusEnum(StrEnum):
    """Outbox event status for integration publishing."""

    PENDING = "pending"
    PROCESSED = "processed"
    FAILED = "failed"
