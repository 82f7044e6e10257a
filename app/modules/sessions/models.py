"""Mentorship session ORM model."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy import Enum as SAEnum
from sqlalchemy.dialects.postgresql import UUID as PGUUID
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base, BaseModelMixin, Money
from app.core.enums import SessionStatusEnum, SessionTypeEnum


class MentorshipSession(BaseModelMixin, Base):
    """Booked engagement between a mentee and a mentor."""

    __tablename__ = "mentorship_sessions"
    __table_args__ = (
        CheckConstraint("scheduled_end_at > scheduled_start_at", name="scheduled_window"),
        CheckConstraint("price >= 0", name="non_negative_price"),
    )

    mentee_id: Mapped[UUID] = mapped_column(PGUUID(as_uuid=True), nullable=False, index=True)
    mentor_id: Mapped[UUID] = mapped_column(PGUUID(as_uuid=True), nullable=False, index=True)
    time_slot_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("time_slots.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    session_type: Mapped[SessionTypeEnum] = mapped_column(
        SAEnum(SessionTypeEnum, name="session_type_enum", native_enum=False),
        default=SessionTypeEnum.ONE_ON_ONE,
        nullable=False,
    )
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    scheduled_start_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        index=True,
    )
    scheduled_end_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    status: Mapped[SessionStatusEnum] = mapped_column(
        SAEnum(SessionStatusEnum, name="session_status_enum", native_enum=False),
        default=SessionStatusEnum.PENDING,
        nullable=False,
        index=True,
    )
    price: Mapped[Decimal] = mapped_column(Money, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="USD", nullable=False)
    conference_reference: Mapped[str | None] = mapped_column(String(512), nullable=True)
    payment_id: Mapped[UUID | None] = mapped_column(PGUUID(as_uuid=True), nullable=True)
    active_reschedule_id: Mapped[UUID | None] = mapped_column(PGUUID(as_uuid=True), nullable=True)

    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    cancelled_by_id: Mapped[UUID | None] = mapped_column(PGUUID(as_uuid=True), nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    refund_percentage: Mapped[int | None] = mapped_column(Integer, nullable=True)
    refund_amount: Mapped[Decimal | None] = mapped_column(Money, nullable=True)

    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    actual_duration_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}
