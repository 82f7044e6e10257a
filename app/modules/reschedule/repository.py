"""Reschedule repository layer."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.enums import RescheduleStatusEnum, RoleEnum
from app.modules.reschedule.models import RescheduleRequest


class RescheduleRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create_request(
        self,
        session_id: UUID,
        requested_by_id: UUID,
        requester_role: RoleEnum,
        original_start_at: datetime,
        proposed_start_at: datetime,
        target_slot_id: UUID | None,
        reason: str,
        requested_at: datetime,
    ) -> RescheduleRequest:
        request = RescheduleRequest(
            session_id=session_id,
            requested_by_id=requested_by_id,
            requester_role=requester_role,
            original_start_at=original_start_at,
            proposed_start_at=proposed_start_at,
            target_slot_id=target_slot_id,
            reason=reason,
            status=RescheduleStatusEnum.PENDING,
            requested_at=requested_at,
        )
        self.session.add(request)
        await self.session.flush()
        return request

    async def get_request_by_id(self, request_id: UUID, *, for_update: bool = False) -> RescheduleRequest | None:
        stmt = select(RescheduleRequest).where(RescheduleRequest.id == request_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return await self.session.scalar(stmt)

    async def get_pending_for_session(self, session_id: UUID) -> RescheduleRequest | None:
        stmt = select(RescheduleRequest).where(
            RescheduleRequest.session_id == session_id,
            RescheduleRequest.status == RescheduleStatusEnum.PENDING,
        )
        return await self.session.scalar(stmt)

    async def list_for_session(self, session_id: UUID) -> list[RescheduleRequest]:
        stmt = (
            select(RescheduleRequest)
            .where(RescheduleRequest.session_id == session_id)
            .order_by(RescheduleRequest.requested_at.desc())
        )
        return (await self.session.scalars(stmt)).all()

    async def save(self, request: RescheduleRequest) -> RescheduleRequest:
        await self.session.flush()
        return request
