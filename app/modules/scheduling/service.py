"""Slot ledger business logic."""

from __future__ import annotations

import logging
from datetime import timedelta
from uuid import UUID

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.database import get_db_session
from app.core.enums import RoleEnum
from app.core.metrics import record_slot_claim
from app.core.security import Actor
from app.modules.audit.repository import AuditRepository
from app.modules.mentors.repository import MentorsRepository
from app.modules.mentors.service import MentorsService
from app.modules.scheduling.models import TimeSlot
from app.modules.scheduling.repository import SchedulingRepository
from app.modules.scheduling.schemas import SlotCreate, SlotReservation
from app.shared.exceptions import (
    ConflictException,
    ForbiddenException,
    NotFoundException,
    TooSoonException,
    ValidationFailedException,
)
from app.shared.utils import ensure_utc, utc_now

settings = get_settings()
logger = logging.getLogger(__name__)


class SchedulingService:
    """Owns time slots and their atomic booking flag."""

    def __init__(
        self,
        repository: SchedulingRepository,
        mentors_service: MentorsService,
        audit_repository: AuditRepository,
    ) -> None:
        self.repository = repository
        self.mentors_service = mentors_service
        self.audit_repository = audit_repository

    async def create_slot(self, payload: SlotCreate, actor: Actor) -> TimeSlot:
        """Publish a slot for the acting mentor, or for any mentor when admin."""
        mentor_id = payload.mentor_id or actor.id
        is_owner = actor.has_role(RoleEnum.MENTOR) and mentor_id == actor.id
        if not (is_owner or actor.is_admin):
            raise ForbiddenException(
                "Only the mentor or an admin can publish slots",
                context={"guard": "mentor_or_admin"},
            )

        if payload.duration_minutes not in settings.allowed_slot_durations:
            raise ValidationFailedException(
                f"Slot duration must be one of {list(settings.allowed_slot_durations)} minutes",
                context={"field": "duration_minutes", "guard": "allowed_duration"},
            )

        start_at = ensure_utc(payload.start_at)
        earliest = utc_now() + timedelta(hours=settings.booking_min_notice_hours)
        if start_at < earliest:
            raise TooSoonException(
                f"Slots must start at least {settings.booking_min_notice_hours} hours from now",
                context={"guard": "min_notice", "earliest_start_at": earliest.isoformat()},
            )

        end_at = start_at + timedelta(minutes=payload.duration_minutes)
        if await self.repository.has_overlapping_slot(mentor_id, start_at, end_at):
            raise ConflictException(
                "Slot overlaps an existing slot",
                context={"guard": "no_overlap"},
            )

        slot = await self.repository.create_slot(mentor_id, start_at, end_at, payload.duration_minutes)
        logger.info("Slot %s published for mentor %s at %s", slot.id, mentor_id, start_at.isoformat())
        return slot

    async def reserve_slot(self, slot_id: UUID, mentee_id: UUID, session_id: UUID) -> SlotReservation:
        """Atomically bind the slot to ``session_id`` and return its booking terms."""
        slot = await self.repository.get_slot_by_id(slot_id)
        if slot is None:
            raise NotFoundException("Slot not found")
        if slot.is_booked:
            raise ConflictException(
                "Slot is already booked",
                context={"current_state": "booked", "guard": "slot_available"},
            )
        if slot.mentor_id == mentee_id:
            raise ForbiddenException(
                "Mentors cannot book their own slots",
                context={"guard": "not_own_slot"},
            )

        now = utc_now()
        if ensure_utc(slot.start_at) < now + timedelta(hours=settings.booking_min_notice_hours):
            raise TooSoonException(
                f"Slot starts in less than {settings.booking_min_notice_hours} hours",
                context={"current_state": "open", "guard": "min_notice"},
            )

        price = await self.mentors_service.rate_for(slot.mentor_id, slot.duration_minutes)

        if not await self.repository.claim_slot(slot.id, session_id):
            record_slot_claim("lost")
            logger.warning("Slot %s claim lost to a concurrent booking", slot.id)
            raise ConflictException(
                "Slot is already booked",
                context={"current_state": "booked", "guard": "slot_available"},
            )
        record_slot_claim("claimed")

        return SlotReservation(
            slot_id=slot.id,
            mentor_id=slot.mentor_id,
            duration_minutes=slot.duration_minutes,
            start_at=ensure_utc(slot.start_at),
            end_at=ensure_utc(slot.end_at),
            price=price,
        )

    async def claim_for_reschedule(self, slot_id: UUID, session_id: UUID) -> bool:
        return await self.repository.claim_slot(slot_id, session_id)

    async def release_slot(self, slot_id: UUID | None) -> bool:
        """Clear the booking flag. Releasing a free or missing slot is a no-op."""
        if slot_id is None:
            return False
        released = await self.repository.release_slot(slot_id)
        if released:
            logger.info("Slot %s released", slot_id)
        return released

    async def delete_slot(self, slot_id: UUID, actor: Actor) -> None:
        slot = await self.repository.get_slot_by_id(slot_id)
        if slot is None:
            raise NotFoundException("Slot not found")
        if not (actor.is_admin or (actor.has_role(RoleEnum.MENTOR) and slot.mentor_id == actor.id)):
            raise ForbiddenException(
                "Only the slot owner or an admin can delete a slot",
                context={"guard": "mentor_or_admin"},
            )
        if slot.is_booked or not await self.repository.delete_unbooked_slot(slot.id):
            raise ConflictException(
                "Booked slots cannot be deleted",
                context={"current_state": "booked", "guard": "slot_unbooked"},
            )
        await self.audit_repository.create_audit_log(
            actor_id=actor.id,
            action="scheduling.slot.delete",
            entity_type="time_slot",
            entity_id=str(slot_id),
            payload={"mentor_id": str(slot.mentor_id), "start_at": ensure_utc(slot.start_at).isoformat()},
        )

    async def get_slot(self, slot_id: UUID) -> TimeSlot:
        slot = await self.repository.get_slot_by_id(slot_id)
        if slot is None:
            raise NotFoundException("Slot not found")
        return slot

    async def list_open_slots(
        self,
        mentor_id: UUID | None,
        limit: int,
        offset: int,
    ) -> tuple[list[TimeSlot], int]:
        """List unbooked future slots with pagination."""
        return await self.repository.list_open_slots(
            mentor_id=mentor_id,
            not_before=utc_now(),
            limit=limit,
            offset=offset,
        )


def build_scheduling_service(session: AsyncSession) -> SchedulingService:
    audit_repository = AuditRepository(session)
    return SchedulingService(
        repository=SchedulingRepository(session),
        mentors_service=MentorsService(MentorsRepository(session), audit_repository),
        audit_repository=audit_repository,
    )


async def get_scheduling_service(session: AsyncSession = Depends(get_db_session)) -> SchedulingService:
    """Dependency provider for scheduling service."""
    return build_scheduling_service(session)
