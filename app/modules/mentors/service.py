"""Mentor rate card business logic."""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db_session
from app.core.enums import RoleEnum
from app.core.security import Actor
from app.modules.audit.repository import AuditRepository
from app.modules.billing.settlement import quantize_money
from app.modules.mentors.models import MentorProfile
from app.modules.mentors.repository import MentorsRepository
from app.modules.mentors.schemas import MentorRatesUpdate
from app.shared.exceptions import ForbiddenException, NotFoundException


class MentorsService:
    def __init__(self, repository: MentorsRepository, audit_repository: AuditRepository) -> None:
        self.repository = repository
        self.audit_repository = audit_repository

    async def set_rates(self, mentor_id: UUID, payload: MentorRatesUpdate, actor: Actor) -> MentorProfile:
        """Create or update a mentor's rate card.

        Existing sessions keep the price captured at booking.
        """
        is_self = actor.id == mentor_id and actor.has_role(RoleEnum.MENTOR)
        if not (is_self or actor.is_admin):
            raise ForbiddenException(
                "Only the mentor or an admin can change rates",
                context={"guard": "mentor_or_admin"},
            )

        previous = await self.repository.get_profile(mentor_id)
        previous_rates = (
            {"rate_30_min": str(previous.rate_30_min), "rate_60_min": str(previous.rate_60_min)}
            if previous is not None
            else None
        )
        profile = await self.repository.upsert_profile(
            mentor_id=mentor_id,
            rate_30_min=quantize_money(payload.rate_30_min),
            rate_60_min=quantize_money(payload.rate_60_min),
            is_active=payload.is_active,
        )
        await self.audit_repository.create_audit_log(
            actor_id=actor.id,
            action="mentors.rates.update",
            entity_type="mentor_profile",
            entity_id=str(mentor_id),
            payload={
                "previous": previous_rates,
                "rate_30_min": str(profile.rate_30_min),
                "rate_60_min": str(profile.rate_60_min),
                "is_active": profile.is_active,
            },
        )
        return profile

    async def get_profile(self, mentor_id: UUID) -> MentorProfile:
        profile = await self.repository.get_profile(mentor_id)
        if profile is None:
            raise NotFoundException("Mentor profile not found")
        return profile

    async def rate_for(self, mentor_id: UUID, duration_minutes: int) -> Decimal:
        """Current price for a slot of this duration."""
        profile = await self.repository.get_profile(mentor_id)
        if profile is None or not profile.is_active:
            raise NotFoundException(
                "Mentor is not accepting bookings",
                context={"guard": "mentor_active"},
            )
        rate = profile.rate_for(duration_minutes)
        if rate is None:
            raise NotFoundException(
                f"No rate for {duration_minutes} minute sessions",
                context={"guard": "rate_defined"},
            )
        return quantize_money(rate)


async def get_mentors_service(session: AsyncSession = Depends(get_db_session)) -> MentorsService:
    """Dependency provider for mentors service."""
    return MentorsService(MentorsRepository(session), AuditRepository(session))
