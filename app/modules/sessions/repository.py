"""Session repository layer."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Select, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from app.core.enums import SessionStatusEnum, SessionTypeEnum
from app.modules.sessions.models import MentorshipSession
from app.shared.exceptions import ConflictException

ACTIVE_SESSION_STATUSES = (
    SessionStatusEnum.PENDING,
    SessionStatusEnum.CONFIRMED,
    SessionStatusEnum.IN_PROGRESS,
    SessionStatusEnum.PENDING_RESCHEDULE,
)


class SessionsRepository:
    """DB operations for mentorship sessions."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create_session(
        self,
        session_id: UUID,
        mentee_id: UUID,
        mentor_id: UUID,
        time_slot_id: UUID,
        session_type: SessionTypeEnum,
        duration_minutes: int,
        scheduled_start_at: datetime,
        scheduled_end_at: datetime,
        price: Decimal,
        currency: str,
    ) -> MentorshipSession:
        mentorship_session = MentorshipSession(
            id=session_id,
            mentee_id=mentee_id,
            mentor_id=mentor_id,
            time_slot_id=time_slot_id,
            session_type=session_type,
            duration_minutes=duration_minutes,
            scheduled_start_at=scheduled_start_at,
            scheduled_end_at=scheduled_end_at,
            status=SessionStatusEnum.PENDING,
            price=price,
            currency=currency,
        )
        self.session.add(mentorship_session)
        await self.session.flush()
        return mentorship_session

    async def get_session_by_id(
        self,
        session_id: UUID,
        *,
        for_update: bool = False,
    ) -> MentorshipSession | None:
        stmt = select(MentorshipSession).where(MentorshipSession.id == session_id)
        if for_update:
            stmt = stmt.with_for_update()
        return await self.session.scalar(stmt)

    async def has_overlapping_session(
        self,
        mentee_id: UUID,
        start_at: datetime,
        end_at: datetime,
        exclude_session_id: UUID | None = None,
    ) -> bool:
        stmt = select(func.count()).where(
            MentorshipSession.mentee_id == mentee_id,
            MentorshipSession.status.in_(ACTIVE_SESSION_STATUSES),
            MentorshipSession.scheduled_start_at < end_at,
            MentorshipSession.scheduled_end_at > start_at,
        )
        if exclude_session_id is not None:
            stmt = stmt.where(MentorshipSession.id != exclude_session_id)
        return int((await self.session.scalar(stmt)) or 0) > 0

    async def list_sessions(
        self,
        participant_id: UUID | None,
        status: SessionStatusEnum | None,
        limit: int,
        offset: int,
    ) -> tuple[list[MentorshipSession], int]:
        base_stmt: Select[tuple[MentorshipSession]] = select(MentorshipSession)
        if participant_id is not None:
            base_stmt = base_stmt.where(
                or_(
                    MentorshipSession.mentee_id == participant_id,
                    MentorshipSession.mentor_id == participant_id,
                ),
            )
        if status is not None:
            base_stmt = base_stmt.where(MentorshipSession.status == status)

        count_stmt = select(func.count()).select_from(base_stmt.subquery())
        total = int((await self.session.scalar(count_stmt)) or 0)

        stmt = base_stmt.order_by(MentorshipSession.scheduled_start_at.desc()).limit(limit).offset(offset)
        items = (await self.session.scalars(stmt)).all()
        return items, total

    async def save(self, mentorship_session: MentorshipSession) -> MentorshipSession:
        """Flush pending changes; a concurrent writer surfaces as a conflict."""
        try:
            await self.session.flush()
        except StaleDataError as exc:
            raise ConflictException(
                "Session was modified concurrently",
                context={"current_state": str(mentorship_session.status), "guard": "version_current"},
            ) from exc
        return mentorship_session
