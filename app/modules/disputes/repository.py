"""Disputes repository layer."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.enums import DisputeReasonEnum, DisputeStatusEnum
from app.modules.disputes.models import SessionDispute

OPEN_DISPUTE_STATUSES = (DisputeStatusEnum.PENDING, DisputeStatusEnum.UNDER_REVIEW)


class DisputesRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create_dispute(
        self,
        session_id: UUID,
        mentee_id: UUID,
        reason: DisputeReasonEnum,
        description: str | None,
    ) -> SessionDispute:
        dispute = SessionDispute(
            session_id=session_id,
            mentee_id=mentee_id,
            reason=reason,
            description=description,
            status=DisputeStatusEnum.PENDING,
        )
        self.session.add(dispute)
        await self.session.flush()
        return dispute

    async def get_dispute_by_id(self, dispute_id: UUID, *, for_update: bool = False) -> SessionDispute | None:
        stmt = select(SessionDispute).where(SessionDispute.id == dispute_id)
        if for_update:
            stmt = stmt.with_for_update()
        return await self.session.scalar(stmt)

    async def get_dispute_by_session_id(self, session_id: UUID) -> SessionDispute | None:
        stmt = select(SessionDispute).where(SessionDispute.session_id == session_id)
        return await self.session.scalar(stmt)

    async def has_open_dispute(self, session_id: UUID) -> bool:
        """True while a dispute on the session is pending or under review."""
        stmt = select(func.count()).where(
            SessionDispute.session_id == session_id,
            SessionDispute.status.in_(OPEN_DISPUTE_STATUSES),
        )
        return int((await self.session.scalar(stmt)) or 0) > 0

    async def save(self, dispute: SessionDispute) -> SessionDispute:
        await self.session.flush()
        return dispute

    async def list_disputes(
        self,
        status: DisputeStatusEnum | None,
        mentee_id: UUID | None,
        limit: int,
        offset: int,
    ) -> tuple[list[SessionDispute], int]:
        base_stmt: Select[tuple[SessionDispute]] = select(SessionDispute)
        if status is not None:
            base_stmt = base_stmt.where(SessionDispute.status == status)
        if mentee_id is not None:
            base_stmt = base_stmt.where(SessionDispute.mentee_id == mentee_id)

        count_stmt = select(func.count()).select_from(base_stmt.subquery())
        total = int((await self.session.scalar(count_stmt)) or 0)

        stmt = base_stmt.order_by(SessionDispute.created_at.desc()).limit(limit).offset(offset)
        items = (await self.session.scalars(stmt)).all()
        return items, total
