"""Scheduling schemas."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class SlotCreate(BaseModel):
    """Create time slot request."""

    mentor_id: UUID | None = None
    start_at: datetime
    duration_minutes: int


class SlotRead(BaseModel):
    """Time slot response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    mentor_id: UUID
    start_at: datetime
    end_at: datetime
    duration_minutes: int
    is_booked: bool
    session_id: UUID | None
    created_at: datetime


@dataclass(frozen=True, slots=True)
class SlotReservation:
    """Slot-derived fields handed to the session on a successful claim."""

    slot_id: UUID
    mentor_id: UUID
    duration_minutes: int
    start_at: datetime
    end_at: datetime
    price: Decimal
