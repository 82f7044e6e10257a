"""Reschedule schemas."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

from app.core.enums import RescheduleStatusEnum, RoleEnum


class RescheduleCreate(BaseModel):
    """Propose a new time either as a free-form start or as one of the mentor's open slots."""

    proposed_start_at: datetime | None = None
    target_slot_id: UUID | None = None
    reason: str = Field(max_length=2000)

    @model_validator(mode="after")
    def validate_target(self) -> RescheduleCreate:
        if (self.proposed_start_at is None) == (self.target_slot_id is None):
            raise ValueError("Provide exactly one of proposed_start_at or target_slot_id")
        return self


class RescheduleRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    session_id: UUID
    requested_by_id: UUID
    requester_role: RoleEnum
    original_start_at: datetime
    proposed_start_at: datetime
    target_slot_id: UUID | None
    reason: str
    status: RescheduleStatusEnum
    requested_at: datetime
    decided_at: datetime | None
    decided_by_id: UUID | None
    is_expired: bool = False
