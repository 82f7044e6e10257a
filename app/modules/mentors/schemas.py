"""Mentor rate card schemas."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class MentorRatesUpdate(BaseModel):
    """Set mentor prices per slot duration."""

    rate_30_min: Decimal = Field(ge=0, max_digits=12, decimal_places=2)
    rate_60_min: Decimal = Field(ge=0, max_digits=12, decimal_places=2)
    is_active: bool = True


class MentorProfileRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    mentor_id: UUID
    rate_30_min: Decimal
    rate_60_min: Decimal
    is_active: bool
    updated_at: datetime
