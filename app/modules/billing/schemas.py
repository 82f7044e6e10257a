"""Billing schemas."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.core.enums import PaymentStatusEnum, PayoutStatusEnum


class PaymentRead(BaseModel):
    """Payment response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    session_id: UUID
    mentee_id: UUID
    mentor_id: UUID
    amount: Decimal
    platform_commission: Decimal | None
    mentor_payout_amount: Decimal | None
    currency: str
    provider: str
    provider_intent_id: str | None
    provider_transaction_id: str | None
    status: PaymentStatusEnum
    paid_at: datetime | None
    refund_amount: Decimal | None
    refund_percentage: int | None
    refunded_at: datetime | None
    payout_release_at: datetime | None
    payout_released_at: datetime | None
    released_amount: Decimal | None
    created_at: datetime


class PaymentIntentRead(BaseModel):
    """Payment intent handed to the client to complete checkout."""

    payment: PaymentRead
    client_secret: str | None


class BalanceRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    mentor_id: UUID
    available_balance: Decimal
    pending_balance: Decimal
    total_earnings: Decimal


class WithdrawalRequest(BaseModel):
    """Mentor request to withdraw released earnings."""

    amount: Decimal = Field(gt=0, max_digits=12, decimal_places=2)


class PayoutStatusUpdate(BaseModel):
    """Operator transition of a payout."""

    status: PayoutStatusEnum
    failure_reason: str | None = Field(default=None, max_length=1000)


class PayoutRead(BaseModel):
    """Payout response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    mentor_id: UUID
    amount: Decimal
    currency: str
    status: PayoutStatusEnum
    failure_reason: str | None
    requested_at: datetime
    processed_at: datetime | None
    completed_at: datetime | None
    cancelled_at: datetime | None


@dataclass(frozen=True, slots=True)
class PayoutReleaseResult:
    released: bool
    amount: Decimal
    deferred_until: datetime | None = None
