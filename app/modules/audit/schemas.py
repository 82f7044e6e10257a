"""Read models for the operator-facing audit API."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from app.core.enums import OutboxStatusEnum


class AuditLogRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    created_at: datetime
    actor_id: UUID | None
    action: str
    entity_type: str
    entity_id: str | None
    payload: dict


class OutboxEventRead(BaseModel):
    """Stored event plus its delivery bookkeeping."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    event_type: str
    schema_version: int
    aggregate_type: str
    aggregate_id: str
    occurred_at: datetime
    status: OutboxStatusEnum
    retries: int
    processed_at: datetime | None
    error_message: str | None
    payload: dict


class OutboxSummaryRead(BaseModel):
    by_status: dict[str, int]
    dead_letter: int
    max_retries: int
    oldest_pending_at: datetime | None = None
