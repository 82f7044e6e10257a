"""Mentor rate card API router."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends

from app.core.security import Actor, get_current_actor
from app.modules.mentors.schemas import MentorProfileRead, MentorRatesUpdate
from app.modules.mentors.service import MentorsService, get_mentors_service

router = APIRouter(prefix="/mentors", tags=["mentors"])


@router.put("/{mentor_id}/rates", response_model=MentorProfileRead)
async def set_rates(
    mentor_id: UUID,
    payload: MentorRatesUpdate,
    service: MentorsService = Depends(get_mentors_service),
    actor: Actor = Depends(get_current_actor),
) -> MentorProfileRead:
    """Create or update mentor rates."""
    profile = await service.set_rates(mentor_id, payload, actor)
    return MentorProfileRead.model_validate(profile)


@router.get("/{mentor_id}", response_model=MentorProfileRead)
async def get_profile(
    mentor_id: UUID,
    service: MentorsService = Depends(get_mentors_service),
) -> MentorProfileRead:
    """Public rate card of a mentor."""
    profile = await service.get_profile(mentor_id)
    return MentorProfileRead.model_validate(profile)
