"""Reschedule API router."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, status

from app.core.security import Actor, get_current_actor
from app.modules.reschedule.schemas import RescheduleCreate, RescheduleRead
from app.modules.reschedule.service import (
    RescheduleService,
    build_reschedule_read,
    get_reschedule_service,
)

router = APIRouter(tags=["reschedule"])


@router.post(
    "/sessions/{session_id}/reschedule",
    response_model=RescheduleRead,
    status_code=status.HTTP_201_CREATED,
)
async def propose_reschedule(
    session_id: UUID,
    payload: RescheduleCreate,
    service: RescheduleService = Depends(get_reschedule_service),
    actor: Actor = Depends(get_current_actor),
) -> RescheduleRead:
    """Propose a new time for a confirmed session."""
    request = await service.propose(session_id, payload, actor)
    return build_reschedule_read(request)


@router.get("/sessions/{session_id}/reschedule", response_model=list[RescheduleRead])
async def list_session_reschedules(
    session_id: UUID,
    service: RescheduleService = Depends(get_reschedule_service),
    actor: Actor = Depends(get_current_actor),
) -> list[RescheduleRead]:
    requests = await service.list_for_session(session_id, actor)
    return [build_reschedule_read(item) for item in requests]


@router.get("/reschedule/{request_id}", response_model=RescheduleRead)
async def get_reschedule(
    request_id: UUID,
    service: RescheduleService = Depends(get_reschedule_service),
    actor: Actor = Depends(get_current_actor),
) -> RescheduleRead:
    request = await service.get_request(request_id, actor)
    return build_reschedule_read(request)


@router.post("/reschedule/{request_id}/approve", response_model=RescheduleRead)
async def approve_reschedule(
    request_id: UUID,
    service: RescheduleService = Depends(get_reschedule_service),
    actor: Actor = Depends(get_current_actor),
) -> RescheduleRead:
    """Counterparty or admin accepts the proposed time."""
    request = await service.approve(request_id, actor)
    return build_reschedule_read(request)


@router.post("/reschedule/{request_id}/reject", response_model=RescheduleRead)
async def reject_reschedule(
    request_id: UUID,
    service: RescheduleService = Depends(get_reschedule_service),
    actor: Actor = Depends(get_current_actor),
) -> RescheduleRead:
    request = await service.reject(request_id, actor)
    return build_reschedule_read(request)
