"""Dispute schemas."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.core.enums import DisputeReasonEnum, DisputeResolutionEnum, DisputeStatusEnum


class DisputeCreate(BaseModel):
    reason: DisputeReasonEnum
    description: str | None = Field(default=None, max_length=2000)


class DisputeResolve(BaseModel):
    """Admin decision; ``refund_amount`` is only read for partial refunds."""

    resolution: DisputeResolutionEnum
    refund_amount: Decimal | None = Field(default=None, gt=0, max_digits=12, decimal_places=2)
    admin_notes: str | None = Field(default=None, max_length=2000)


class DisputeRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    session_id: UUID
    mentee_id: UUID
    reason: DisputeReasonEnum
    description: str | None
    status: DisputeStatusEnum
    resolution: DisputeResolutionEnum | None
    refund_amount: Decimal | None
    admin_notes: str | None
    resolved_by_id: UUID | None
    resolved_at: datetime | None
    created_at: datetime
