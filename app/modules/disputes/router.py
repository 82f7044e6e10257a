"""Disputes API router."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from app.core.enums import DisputeStatusEnum
from app.core.security import Actor, get_current_actor
from app.modules.disputes.schemas import DisputeCreate, DisputeRead, DisputeResolve
from app.modules.disputes.service import DisputesService, get_disputes_service
from app.shared.pagination import Page, build_page, get_pagination_params

router = APIRouter(prefix="/disputes", tags=["disputes"])


@router.post(
    "/sessions/{session_id}",
    response_model=DisputeRead,
    status_code=status.HTTP_201_CREATED,
)
async def open_dispute(
    session_id: UUID,
    payload: DisputeCreate,
    service: DisputesService = Depends(get_disputes_service),
    actor: Actor = Depends(get_current_actor),
) -> DisputeRead:
    """Dispute a completed session; holds back the mentor payout."""
    dispute = await service.open_dispute(session_id, payload, actor)
    return DisputeRead.model_validate(dispute)


@router.post("/{dispute_id}/review", response_model=DisputeRead)
async def start_review(
    dispute_id: UUID,
    service: DisputesService = Depends(get_disputes_service),
    actor: Actor = Depends(get_current_actor),
) -> DisputeRead:
    dispute = await service.start_review(dispute_id, actor)
    return DisputeRead.model_validate(dispute)


@router.post("/{dispute_id}/resolve", response_model=DisputeRead)
async def resolve_dispute(
    dispute_id: UUID,
    payload: DisputeResolve,
    service: DisputesService = Depends(get_disputes_service),
    actor: Actor = Depends(get_current_actor),
) -> DisputeRead:
    dispute = await service.resolve(dispute_id, payload, actor)
    return DisputeRead.model_validate(dispute)


@router.get("/{dispute_id}", response_model=DisputeRead)
async def get_dispute(
    dispute_id: UUID,
    service: DisputesService = Depends(get_disputes_service),
    actor: Actor = Depends(get_current_actor),
) -> DisputeRead:
    dispute = await service.get_dispute(dispute_id, actor)
    return DisputeRead.model_validate(dispute)


@router.get("", response_model=Page[DisputeRead])
async def list_disputes(
    status_filter: DisputeStatusEnum | None = Query(default=None, alias="status"),
    pagination=Depends(get_pagination_params),
    service: DisputesService = Depends(get_disputes_service),
    actor: Actor = Depends(get_current_actor),
) -> Page[DisputeRead]:
    """Admins see all disputes, mentees their own."""
    items, total = await service.list_disputes(actor, status_filter, pagination.limit, pagination.offset)
    serialized = [DisputeRead.model_validate(item) for item in items]
    return build_page(serialized, total, pagination)
