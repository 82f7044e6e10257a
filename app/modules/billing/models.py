"""Billing ORM models."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy import Enum as SAEnum
from sqlalchemy.dialects.postgresql import UUID as PGUUID
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base, BaseModelMixin, Money, TimestampMixin
from app.core.enums import PaymentStatusEnum, PayoutStatusEnum


class Payment(BaseModelMixin, Base):
    """Payment for a single session, settled once on capture."""

    __tablename__ = "payments"
    __table_args__ = (
        CheckConstraint(
            "platform_commission IS NULL OR platform_commission + mentor_payout_amount = amount",
            name="split_sums_to_gross",
        ),
    )

    session_id: Mapped[UUID] = mapped_column(
        ForeignKey("mentorship_sessions.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    mentee_id: Mapped[UUID] = mapped_column(PGUUID(as_uuid=True), nullable=False, index=True)
    mentor_id: Mapped[UUID] = mapped_column(PGUUID(as_uuid=True), nullable=False, index=True)
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    platform_commission: Mapped[Decimal | None] = mapped_column(Money, nullable=True)
    mentor_payout_amount: Mapped[Decimal | None] = mapped_column(Money, nullable=True)
    currency: Mapped[str] = mapped_column(String(3), default="USD", nullable=False)
    provider: Mapped[str] = mapped_column(String(64), nullable=False)
    provider_intent_id: Mapped[str | None] = mapped_column(String(128), nullable=True, unique=True)
    provider_transaction_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    status: Mapped[PaymentStatusEnum] = mapped_column(
        SAEnum(PaymentStatusEnum, name="payment_status_enum", native_enum=False),
        default=PaymentStatusEnum.PENDING,
        nullable=False,
        index=True,
    )
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    refund_amount: Mapped[Decimal | None] = mapped_column(Money, nullable=True)
    refund_percentage: Mapped[int | None] = mapped_column(Integer, nullable=True)
    refunded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    payout_adjustment: Mapped[Decimal] = mapped_column(Money, default=Decimal("0.00"), nullable=False)
    payout_release_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    payout_released_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    released_amount: Mapped[Decimal | None] = mapped_column(Money, nullable=True)


class MentorBalance(TimestampMixin, Base):
    """Running earnings of a mentor."""

    __tablename__ = "mentor_balances"

    mentor_id: Mapped[UUID] = mapped_column(PGUUID(as_uuid=True), primary_key=True)
    available_balance: Mapped[Decimal] = mapped_column(Money, default=Decimal("0.00"), nullable=False)
    pending_balance: Mapped[Decimal] = mapped_column(Money, default=Decimal("0.00"), nullable=False)
    total_earnings: Mapped[Decimal] = mapped_column(Money, default=Decimal("0.00"), nullable=False)


class Payout(BaseModelMixin, Base):
    """Mentor withdrawal of released earnings."""

    __tablename__ = "payouts"
    __table_args__ = (CheckConstraint("amount > 0", name="positive_amount"),)

    mentor_id: Mapped[UUID] = mapped_column(PGUUID(as_uuid=True), nullable=False, index=True)
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="USD", nullable=False)
    status: Mapped[PayoutStatusEnum] = mapped_column(
        SAEnum(PayoutStatusEnum, name="payout_status_enum", native_enum=False),
        default=PayoutStatusEnum.PENDING,
        nullable=False,
        index=True,
    )
    failure_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    requested_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
