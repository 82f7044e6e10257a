"""Scheduling repository layer."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import Select, delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.modules.scheduling.models import TimeSlot


class SchedulingRepository:
    """DB access for the slot ledger."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create_slot(
        self,
        mentor_id: UUID,
        start_at: datetime,
        end_at: datetime,
        duration_minutes: int,
    ) -> TimeSlot:
        slot = TimeSlot(
            mentor_id=mentor_id,
            start_at=start_at,
            end_at=end_at,
            duration_minutes=duration_minutes,
            is_booked=False,
            session_id=None,
        )
        self.session.add(slot)
        await self.session.flush()
        return slot

    async def get_slot_by_id(self, slot_id: UUID) -> TimeSlot | None:
        stmt = select(TimeSlot).where(TimeSlot.id == slot_id)
        return await self.session.scalar(stmt)

    async def has_overlapping_slot(
        self,
        mentor_id: UUID,
        start_at: datetime,
        end_at: datetime,
        exclude_slot_id: UUID | None = None,
    ) -> bool:
        stmt = select(func.count()).where(
            TimeSlot.mentor_id == mentor_id,
            TimeSlot.start_at < end_at,
            TimeSlot.end_at > start_at,
        )
        if exclude_slot_id is not None:
            stmt = stmt.where(TimeSlot.id != exclude_slot_id)
        return int((await self.session.scalar(stmt)) or 0) > 0

    async def claim_slot(self, slot_id: UUID, session_id: UUID) -> bool:
        """Compare-and-set on the booking flag; True only for the single winner."""
        stmt = (
            update(TimeSlot)
            .where(TimeSlot.id == slot_id, TimeSlot.is_booked.is_(False))
            .values(is_booked=True, session_id=session_id)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        claimed = result.rowcount == 1
        if claimed:
            slot = await self.session.get(TimeSlot, slot_id)
            if slot is not None:
                await self.session.refresh(slot)
        return claimed

    async def release_slot(self, slot_id: UUID) -> bool:
        stmt = (
            update(TimeSlot)
            .where(TimeSlot.id == slot_id, TimeSlot.is_booked.is_(True))
            .values(is_booked=False, session_id=None)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        released = result.rowcount == 1
        if released:
            slot = await self.session.get(TimeSlot, slot_id)
            if slot is not None:
                await self.session.refresh(slot)
        return released

    async def delete_unbooked_slot(self, slot_id: UUID) -> bool:
        stmt = delete(TimeSlot).where(TimeSlot.id == slot_id, TimeSlot.is_booked.is_(False))
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def list_open_slots(
        self,
        mentor_id: UUID | None,
        not_before: datetime,
        limit: int,
        offset: int,
    ) -> tuple[list[TimeSlot], int]:
        base_stmt: Select[tuple[TimeSlot]] = select(TimeSlot).where(
            TimeSlot.is_booked.is_(False),
            TimeSlot.start_at >= not_before,
        )
        if mentor_id is not None:
            base_stmt = base_stmt.where(TimeSlot.mentor_id == mentor_id)

        count_stmt = select(func.count()).select_from(base_stmt.subquery())
        total = int((await self.session.scalar(count_stmt)) or 0)

        stmt = base_stmt.order_by(TimeSlot.start_at.asc()).limit(limit).offset(offset)
        items = (await self.session.scalars(stmt)).all()
        return items, total
