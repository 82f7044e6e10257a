"""Sessions API router."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from app.core.enums import SessionStatusEnum
from app.core.security import Actor, get_current_actor
from app.modules.billing.schemas import PaymentIntentRead, PaymentRead
from app.modules.sessions.schemas import (
    JoinRead,
    SessionBookRequest,
    SessionCancelRequest,
    SessionRead,
)
from app.modules.sessions.service import SessionsService, get_sessions_service
from app.shared.pagination import Page, build_page, get_pagination_params

router = APIRouter(prefix="/sessions", tags=["sessions"])


@router.post("", response_model=SessionRead, status_code=status.HTTP_201_CREATED)
async def book_session(
    payload: SessionBookRequest,
    service: SessionsService = Depends(get_sessions_service),
    actor: Actor = Depends(get_current_actor),
) -> SessionRead:
    """Book an open slot; the session starts in pending until paid."""
    session = await service.book_session(payload, actor)
    return SessionRead.model_validate(session)


@router.post(
    "/{session_id}/payments",
    response_model=PaymentIntentRead,
    status_code=status.HTTP_201_CREATED,
)
async def create_payment_intent(
    session_id: UUID,
    service: SessionsService = Depends(get_sessions_service),
    actor: Actor = Depends(get_current_actor),
) -> PaymentIntentRead:
    payment, client_secret = await service.create_payment_intent(session_id, actor)
    return PaymentIntentRead(payment=PaymentRead.model_validate(payment), client_secret=client_secret)


@router.post("/{session_id}/payments/{payment_id}/confirm", response_model=SessionRead)
async def confirm_payment(
    session_id: UUID,
    payment_id: UUID,
    service: SessionsService = Depends(get_sessions_service),
    actor: Actor = Depends(get_current_actor),
) -> SessionRead:
    """Capture payment and confirm the session."""
    session = await service.confirm_payment(session_id, payment_id, actor)
    return SessionRead.model_validate(session)


@router.post("/{session_id}/join", response_model=JoinRead)
async def join_session(
    session_id: UUID,
    service: SessionsService = Depends(get_sessions_service),
    actor: Actor = Depends(get_current_actor),
) -> JoinRead:
    return await service.request_join(session_id, actor)


@router.post("/{session_id}/complete", response_model=SessionRead)
async def complete_session(
    session_id: UUID,
    service: SessionsService = Depends(get_sessions_service),
    actor: Actor = Depends(get_current_actor),
) -> SessionRead:
    session = await service.complete_session(session_id, actor)
    return SessionRead.model_validate(session)


@router.post("/{session_id}/cancel", response_model=SessionRead)
async def cancel_session(
    session_id: UUID,
    payload: SessionCancelRequest,
    service: SessionsService = Depends(get_sessions_service),
    actor: Actor = Depends(get_current_actor),
) -> SessionRead:
    """Cancel with a tiered refund."""
    session = await service.cancel_session(session_id, payload.reason, actor)
    return SessionRead.model_validate(session)


@router.post("/{session_id}/no-show", response_model=SessionRead)
async def mark_no_show(
    session_id: UUID,
    service: SessionsService = Depends(get_sessions_service),
    actor: Actor = Depends(get_current_actor),
) -> SessionRead:
    session = await service.mark_no_show(session_id, actor)
    return SessionRead.model_validate(session)


@router.get("/{session_id}", response_model=SessionRead)
async def get_session(
    session_id: UUID,
    service: SessionsService = Depends(get_sessions_service),
    actor: Actor = Depends(get_current_actor),
) -> SessionRead:
    session = await service.get_session(session_id, actor)
    return SessionRead.model_validate(session)


@router.get("", response_model=Page[SessionRead])
async def list_sessions(
    status_filter: SessionStatusEnum | None = Query(default=None, alias="status"),
    pagination=Depends(get_pagination_params),
    service: SessionsService = Depends(get_sessions_service),
    actor: Actor = Depends(get_current_actor),
) -> Page[SessionRead]:
    """List sessions visible to the caller."""
    items, total = await service.list_sessions(actor, status_filter, pagination.limit, pagination.offset)
    serialized = [SessionRead.model_validate(item) for item in items]
    return build_page(serialized, total, pagination)
