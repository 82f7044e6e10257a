"""Session schemas."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.core.enums import SessionStatusEnum, SessionTypeEnum


class SessionBookRequest(BaseModel):
    """Book an open slot."""

    slot_id: UUID
    session_type: SessionTypeEnum = SessionTypeEnum.ONE_ON_ONE


class SessionCancelRequest(BaseModel):
    reason: str = Field(max_length=2000)


class SessionRead(BaseModel):
    """Session response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    mentee_id: UUID
    mentor_id: UUID
    time_slot_id: UUID | None
    session_type: SessionTypeEnum
    duration_minutes: int
    scheduled_start_at: datetime
    scheduled_end_at: datetime
    status: SessionStatusEnum
    price: Decimal
    currency: str
    conference_reference: str | None
    payment_id: UUID | None
    active_reschedule_id: UUID | None
    cancellation_reason: str | None
    cancelled_at: datetime | None
    refund_percentage: int | None
    refund_amount: Decimal | None
    started_at: datetime | None
    completed_at: datetime | None
    actual_duration_minutes: int | None
    created_at: datetime
    updated_at: datetime


class JoinRead(BaseModel):
    session_id: UUID
    status: SessionStatusEnum
    conference_reference: str
    minutes_until_start: int
