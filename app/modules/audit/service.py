"""Operator views over the audit trail and the outbox."""

from __future__ import annotations

import logging
from uuid import UUID

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.database import get_db_session
from app.core.enums import OutboxStatusEnum
from app.core.security import Actor
from app.modules.audit.models import AuditLog, OutboxEvent
from app.modules.audit.repository import AuditRepository
from app.modules.audit.schemas import OutboxSummaryRead
from app.shared.exceptions import ConflictException, ForbiddenException, NotFoundException

logger = logging.getLogger(__name__)


class AuditService:
    """Every operation here is admin-only."""

    def __init__(self, repository: AuditRepository, *, max_retries: int | None = None) -> None:
        self.repository = repository
        self.max_retries = max_retries or get_settings().outbox_max_retries

    @staticmethod
    def _require_admin(actor: Actor) -> None:
        if not actor.is_admin:
            raise ForbiddenException("Audit data is restricted to admins", context={"guard": "admin_only"})

    async def list_logs(
        self,
        actor: Actor,
        limit: int,
        offset: int,
        *,
        entity_type: str | None = None,
        entity_id: str | None = None,
        actor_id: UUID | None = None,
        action_prefix: str | None = None,
    ) -> tuple[list[AuditLog], int]:
        self._require_admin(actor)
        return await self.repository.list_audit_logs(
            limit=limit,
            offset=offset,
            entity_type=entity_type,
            entity_id=entity_id,
            actor_id=actor_id,
            action_prefix=action_prefix,
        )

    async def list_pending_outbox(self, actor: Actor, limit: int) -> list[OutboxEvent]:
        self._require_admin(actor)
        return await self.repository.list_pending_outbox(limit)

    async def list_dead_letters(self, actor: Actor, limit: int, event_type: str | None = None) -> list[OutboxEvent]:
        self._require_admin(actor)
        return await self.repository.list_dead_letter_outbox(limit, self.max_retries, event_type=event_type)

    async def replay_dead_letter(self, event_id: UUID, actor: Actor) -> OutboxEvent:
        """Put an exhausted event back in the queue with a fresh retry budget."""
        self._require_admin(actor)
        event = await self.repository.get_outbox_event_for_update(event_id)
        if event is None:
            raise NotFoundException("Outbox event not found")
        if event.status != OutboxStatusEnum.FAILED or event.retries < self.max_retries:
            raise ConflictException(
                "Only dead-lettered events can be replayed",
                context={"current_state": str(event.status), "guard": "dead_letter"},
            )
        await self.repository.create_audit_log(
            actor_id=actor.id,
            action="outbox.replay",
            entity_type="outbox_event",
            entity_id=str(event.id),
            payload={"event_type": event.event_type, "last_error": event.error_message},
        )
        logger.info("Outbox event %s (%s) replayed by %s", event.id, event.event_type, actor.id)
        return await self.repository.replay_dead_letter(event)

    async def outbox_summary(self, actor: Actor) -> OutboxSummaryRead:
        self._require_admin(actor)
        counts = await self.repository.count_outbox_by_status()
        return OutboxSummaryRead(
            by_status={str(status): count for status, count in counts.items()},
            dead_letter=await self.repository.count_dead_letter_outbox(self.max_retries),
            max_retries=self.max_retries,
            oldest_pending_at=await self.repository.oldest_pending_occurred_at(),
        )


async def get_audit_service(session: AsyncSession = Depends(get_db_session)) -> AuditService:
    return AuditService(AuditRepository(session))
