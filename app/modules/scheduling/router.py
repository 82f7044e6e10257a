"""Scheduling API router."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status

from app.core.security import Actor, get_current_actor
from app.modules.scheduling.schemas import SlotCreate, SlotRead
from app.modules.scheduling.service import SchedulingService, get_scheduling_service
from app.shared.pagination import Page, build_page, get_pagination_params

router = APIRouter(prefix="/scheduling", tags=["scheduling"])


@router.post("/slots", response_model=SlotRead, status_code=status.HTTP_201_CREATED)
async def create_slot(
    payload: SlotCreate,
    service: SchedulingService = Depends(get_scheduling_service),
    actor: Actor = Depends(get_current_actor),
) -> SlotRead:
    """Publish a bookable slot."""
    slot = await service.create_slot(payload, actor)
    return SlotRead.model_validate(slot)


@router.get("/slots/open", response_model=Page[SlotRead])
async def list_open_slots(
    mentor_id: UUID | None = Query(default=None),
    pagination=Depends(get_pagination_params),
    service: SchedulingService = Depends(get_scheduling_service),
) -> Page[SlotRead]:
    """List unbooked future slots."""
    items, total = await service.list_open_slots(mentor_id, pagination.limit, pagination.offset)
    serialized = [SlotRead.model_validate(item) for item in items]
    return build_page(serialized, total, pagination)


@router.get("/slots/{slot_id}", response_model=SlotRead)
async def get_slot(
    slot_id: UUID,
    service: SchedulingService = Depends(get_scheduling_service),
) -> SlotRead:
    slot = await service.get_slot(slot_id)
    return SlotRead.model_validate(slot)


@router.delete("/slots/{slot_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_slot(
    slot_id: UUID,
    service: SchedulingService = Depends(get_scheduling_service),
    actor: Actor = Depends(get_current_actor),
) -> Response:
    """Delete an unbooked slot."""
    await service.delete_slot(slot_id, actor)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
