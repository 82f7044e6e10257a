"""Mentor rate card repository."""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.modules.mentors.models import MentorProfile


class MentorsRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_profile(self, mentor_id: UUID) -> MentorProfile | None:
        stmt = select(MentorProfile).where(MentorProfile.mentor_id == mentor_id)
        return await self.session.scalar(stmt)

    async def upsert_profile(
        self,
        mentor_id: UUID,
        rate_30_min: Decimal,
        rate_60_min: Decimal,
        is_active: bool,
    ) -> MentorProfile:
        profile = await self.get_profile(mentor_id)
        if profile is None:
            profile = MentorProfile(mentor_id=mentor_id)
            self.session.add(profile)
        profile.rate_30_min = rate_30_min
        profile.rate_60_min = rate_60_min
        profile.is_active = is_active
        await self.session.flush()
        return profile
