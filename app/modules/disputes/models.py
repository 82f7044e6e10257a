"""Dispute ORM models."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import DateTime, ForeignKey, Text
from sqlalchemy import Enum as SAEnum
from sqlalchemy.dialects.postgresql import UUID as PGUUID
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base, BaseModelMixin, Money
from app.core.enums import DisputeReasonEnum, DisputeResolutionEnum, DisputeStatusEnum


class SessionDispute(BaseModelMixin, Base):
    """Mentee complaint about a completed session."""

    __tablename__ = "session_disputes"

    session_id: Mapped[UUID] = mapped_column(
        ForeignKey("mentorship_sessions.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    mentee_id: Mapped[UUID] = mapped_column(PGUUID(as_uuid=True), nullable=False, index=True)
    reason: Mapped[DisputeReasonEnum] = mapped_column(
        SAEnum(DisputeReasonEnum, name="dispute_reason_enum", native_enum=False),
        nullable=False,
    )
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[DisputeStatusEnum] = mapped_column(
        SAEnum(DisputeStatusEnum, name="dispute_status_enum", native_enum=False),
        default=DisputeStatusEnum.PENDING,
        nullable=False,
        index=True,
    )
    resolution: Mapped[DisputeResolutionEnum | None] = mapped_column(
        SAEnum(DisputeResolutionEnum, name="dispute_resolution_enum", native_enum=False),
        nullable=True,
    )
    refund_amount: Mapped[Decimal | None] = mapped_column(Money, nullable=True)
    admin_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    resolved_by_id: Mapped[UUID | None] = mapped_column(PGUUID(as_uuid=True), nullable=True)
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
