"""Reschedule ORM models."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import DateTime, ForeignKey, Index, Text, text
from sqlalchemy import Enum as SAEnum
from sqlalchemy.dialects.postgresql import UUID as PGUUID
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base, BaseModelMixin
from app.core.enums import RescheduleStatusEnum, RoleEnum


class RescheduleRequest(BaseModelMixin, Base):
    """Proposal by one participant to move a confirmed session."""

    __tablename__ = "reschedule_requests"
    __table_args__ = (
        Index(
            "uq_reschedule_requests_one_pending_per_session",
            "session_id",
            unique=True,
            postgresql_where=text("status = 'pending'"),
        ),
    )

    session_id: Mapped[UUID] = mapped_column(
        ForeignKey("mentorship_sessions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    requested_by_id: Mapped[UUID] = mapped_column(PGUUID(as_uuid=True), nullable=False)
    requester_role: Mapped[RoleEnum] = mapped_column(
        SAEnum(RoleEnum, name="role_enum", native_enum=False),
        nullable=False,
    )
    original_start_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    proposed_start_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    target_slot_id: Mapped[UUID | None] = mapped_column(PGUUID(as_uuid=True), nullable=True)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[RescheduleStatusEnum] = mapped_column(
        SAEnum(RescheduleStatusEnum, name="reschedule_status_enum", native_enum=False),
        default=RescheduleStatusEnum.PENDING,
        nullable=False,
        index=True,
    )
    requested_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    decided_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    decided_by_id: Mapped[UUID | None] = mapped_column(PGUUID(as_uuid=True), nullable=True)
