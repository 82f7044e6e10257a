"""Versioned domain events published through the transactional outbox.

Every event is a frozen pydantic model tagged by ``event_type`` and carrying
``schema_version``. Consumers parse with :func:`parse_event`; unknown tags or
missing fields are rejected instead of guessed.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Annotated, ClassVar, Literal, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from app.core.enums import (
    DisputeReasonEnum,
    DisputeResolutionEnum,
    DisputeStatusEnum,
    PayoutStatusEnum,
    RoleEnum,
    SessionStatusEnum,
)

SCHEMA_VERSION = 1


class DomainEvent(BaseModel):
    """Common envelope fields."""

    model_config = ConfigDict(frozen=True)

    aggregate_type: ClassVar[str] = "session"
    aggregate_field: ClassVar[str] = "session_id"

    schema_version: Literal[1] = SCHEMA_VERSION
    occurred_at: datetime

    @property
    def aggregate_id(self) -> str:
        return str(getattr(self, self.aggregate_field))


class SessionBooked(DomainEvent):
    event_type: Literal["session.booked"] = "session.booked"
    session_id: UUID
    slot_id: UUID
    mentee_id: UUID
    mentor_id: UUID
    scheduled_start_at: datetime
    scheduled_end_at: datetime
    price: Decimal
    currency: str


class SessionConfirmed(DomainEvent):
    event_type: Literal["session.confirmed"] = "session.confirmed"
    session_id: UUID
    payment_id: UUID
    mentee_id: UUID
    mentor_id: UUID
    conference_reference: str
    scheduled_start_at: datetime


class SessionStarted(DomainEvent):
    event_type: Literal["session.started"] = "session.started"
    session_id: UUID
    mentee_id: UUID
    mentor_id: UUID
    started_at: datetime


class SessionCancelled(DomainEvent):
    event_type: Literal["session.cancelled"] = "session.cancelled"
    session_id: UUID
    mentee_id: UUID
    mentor_id: UUID
    cancelled_by_id: UUID | None
    previous_status: SessionStatusEnum
    reason: str
    refund_percentage: int
    refund_amount: Decimal


class SessionNoShow(DomainEvent):
    event_type: Literal["session.no_show"] = "session.no_show"
    session_id: UUID
    mentee_id: UUID
    mentor_id: UUID
    marked_by_id: UUID
    previous_status: SessionStatusEnum


class SessionCompleted(DomainEvent):
    event_type: Literal["session.completed"] = "session.completed"
    session_id: UUID
    mentee_id: UUID
    mentor_id: UUID
    completed_at: datetime
    actual_duration_minutes: int
    payout_release_at: datetime | None


class RescheduleRequested(DomainEvent):
    aggregate_type: ClassVar[str] = "reschedule_request"
    aggregate_field: ClassVar[str] = "request_id"

    event_type: Literal["reschedule.requested"] = "reschedule.requested"
    request_id: UUID
    session_id: UUID
    requested_by_id: UUID
    requester_role: RoleEnum
    proposed_start_at: datetime
    reason: str


class RescheduleApproved(DomainEvent):
    aggregate_type: ClassVar[str] = "reschedule_request"
    aggregate_field: ClassVar[str] = "request_id"

    event_type: Literal["reschedule.approved"] = "reschedule.approved"
    request_id: UUID
    session_id: UUID
    decided_by_id: UUID
    scheduled_start_at: datetime
    scheduled_end_at: datetime


class RescheduleRejected(DomainEvent):
    aggregate_type: ClassVar[str] = "reschedule_request"
    aggregate_field: ClassVar[str] = "request_id"

    event_type: Literal["reschedule.rejected"] = "reschedule.rejected"
    request_id: UUID
    session_id: UUID
    decided_by_id: UUID | None


class PayoutReleased(DomainEvent):
    aggregate_type: ClassVar[str] = "payment"
    aggregate_field: ClassVar[str] = "payment_id"

    event_type: Literal["payout.released"] = "payout.released"
    payment_id: UUID
    session_id: UUID
    mentor_id: UUID
    amount: Decimal


class PayoutRequested(DomainEvent):
    aggregate_type: ClassVar[str] = "payout"
    aggregate_field: ClassVar[str] = "payout_id"

    event_type: Literal["payout.requested"] = "payout.requested"
    payout_id: UUID
    mentor_id: UUID
    amount: Decimal


class PayoutStatusChanged(DomainEvent):
    aggregate_type: ClassVar[str] = "payout"
    aggregate_field: ClassVar[str] = "payout_id"

    event_type: Literal["payout.status_changed"] = "payout.status_changed"
    payout_id: UUID
    mentor_id: UUID
    from_status: PayoutStatusEnum
    to_status: PayoutStatusEnum


class DisputeOpened(DomainEvent):
    aggregate_type: ClassVar[str] = "dispute"
    aggregate_field: ClassVar[str] = "dispute_id"

    event_type: Literal["dispute.opened"] = "dispute.opened"
    dispute_id: UUID
    session_id: UUID
    mentee_id: UUID
    reason: DisputeReasonEnum


class DisputeResolved(DomainEvent):
    aggregate_type: ClassVar[str] = "dispute"
    aggregate_field: ClassVar[str] = "dispute_id"

    event_type: Literal["dispute.resolved"] = "dispute.resolved"
    dispute_id: UUID
    session_id: UUID
    status: DisputeStatusEnum
    resolution: DisputeResolutionEnum
    refund_amount: Decimal


AnyDomainEvent = Annotated[
    Union[
        SessionBooked,
        SessionConfirmed,
        SessionStarted,
        SessionCancelled,
        SessionNoShow,
        SessionCompleted,
        RescheduleRequested,
        RescheduleApproved,
        RescheduleRejected,
        PayoutReleased,
        PayoutRequested,
        PayoutStatusChanged,
        DisputeOpened,
        DisputeResolved,
    ],
    Field(discriminator="event_type"),
]

_event_adapter: TypeAdapter[AnyDomainEvent] = TypeAdapter(AnyDomainEvent)


def parse_event(payload: dict) -> DomainEvent:
    """Validate a stored payload against the event schema."""
    return _event_adapter.validate_python(payload)
