"""Billing API router."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from app.core.security import Actor, get_current_actor
from app.modules.billing.schemas import (
    BalanceRead,
    PaymentRead,
    PayoutRead,
    PayoutStatusUpdate,
    WithdrawalRequest,
)
from app.modules.billing.service import BillingService, get_billing_service
from app.shared.pagination import Page, build_page, get_pagination_params

router = APIRouter(prefix="/billing", tags=["billing"])


@router.get("/payments/sessions/{session_id}", response_model=PaymentRead)
async def get_session_payment(
    session_id: UUID,
    service: BillingService = Depends(get_billing_service),
    actor: Actor = Depends(get_current_actor),
) -> PaymentRead:
    """Payment record of a session."""
    payment = await service.get_session_payment(session_id, actor)
    return PaymentRead.model_validate(payment)


@router.get("/balances/{mentor_id}", response_model=BalanceRead)
async def get_balance(
    mentor_id: UUID,
    service: BillingService = Depends(get_billing_service),
    actor: Actor = Depends(get_current_actor),
) -> BalanceRead:
    """Available, pending and lifetime earnings of a mentor."""
    return await service.get_balance(mentor_id, actor)


@router.post("/payouts", response_model=PayoutRead, status_code=status.HTTP_201_CREATED)
async def request_withdrawal(
    payload: WithdrawalRequest,
    service: BillingService = Depends(get_billing_service),
    actor: Actor = Depends(get_current_actor),
) -> PayoutRead:
    """Request a withdrawal of released earnings."""
    payout = await service.request_withdrawal(payload, actor)
    return PayoutRead.model_validate(payout)


@router.get("/payouts", response_model=Page[PayoutRead])
async def list_payouts(
    mentor_id: UUID | None = Query(default=None),
    pagination=Depends(get_pagination_params),
    service: BillingService = Depends(get_billing_service),
    actor: Actor = Depends(get_current_actor),
) -> Page[PayoutRead]:
    items, total = await service.list_payouts(actor, mentor_id, pagination.limit, pagination.offset)
    serialized = [PayoutRead.model_validate(item) for item in items]
    return build_page(serialized, total, pagination)


@router.patch("/payouts/{payout_id}/status", response_model=PayoutRead)
async def update_payout_status(
    payout_id: UUID,
    payload: PayoutStatusUpdate,
    service: BillingService = Depends(get_billing_service),
    actor: Actor = Depends(get_current_actor),
) -> PayoutRead:
    """Move a payout through processing (admin) or cancel it (owner)."""
    payout = await service.update_payout_status(payout_id, payload, actor)
    return PayoutRead.model_validate(payout)
