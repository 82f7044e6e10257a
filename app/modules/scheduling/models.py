"""Scheduling ORM models."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import Boolean, CheckConstraint, DateTime, Integer, Index
from sqlalchemy.dialects.postgresql import UUID as PGUUID
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base, BaseModelMixin


class TimeSlot(BaseModelMixin, Base):
    """Mentor-published bookable window.

    ``session_id`` is a plain reference rather than a foreign key: the slot is
    claimed before the session row exists, inside the same transaction.
    """

    __tablename__ = "time_slots"
    __table_args__ = (
        CheckConstraint(
            "(is_booked AND session_id IS NOT NULL) OR (NOT is_booked AND session_id IS NULL)",
            name="booking_binding",
        ),
        CheckConstraint("end_at > start_at", name="positive_duration"),
        Index("ix_time_slots_mentor_start", "mentor_id", "start_at"),
    )

    mentor_id: Mapped[UUID] = mapped_column(PGUUID(as_uuid=True), nullable=False, index=True)
    start_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    end_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    is_booked: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False, index=True)
    session_id: Mapped[UUID | None] = mapped_column(
        PGUUID(as_uuid=True),
        nullable=True,
        unique=True,
    )
