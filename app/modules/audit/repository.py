"""Persistence for the audit trail and the transactional outbox."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import ColumnElement, Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.enums import OutboxStatusEnum
from app.modules.audit.events import DomainEvent
from app.modules.audit.models import AuditLog, OutboxEvent

ERROR_MESSAGE_LIMIT = 2000


class AuditRepository:
    """Writes happen inside the caller's unit of work; nothing here commits."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create_audit_log(
        self,
        actor_id: UUID | None,
        action: str,
        entity_type: str,
        entity_id: str | None,
        payload: dict,
    ) -> AuditLog:
        entry = AuditLog(
            actor_id=actor_id,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            payload=payload,
        )
        self.session.add(entry)
        await self.session.flush()
        return entry

    async def list_audit_logs(
        self,
        limit: int,
        offset: int,
        entity_type: str | None = None,
        entity_id: str | None = None,
        actor_id: UUID | None = None,
        action_prefix: str | None = None,
    ) -> tuple[list[AuditLog], int]:
        filters: list[ColumnElement[bool]] = []
        if entity_type is not None:
            filters.append(AuditLog.entity_type == entity_type)
        if entity_id is not None:
            filters.append(AuditLog.entity_id == entity_id)
        if actor_id is not None:
            filters.append(AuditLog.actor_id == actor_id)
        if action_prefix:
            filters.append(AuditLog.action.startswith(action_prefix))

        total = int(
            (await self.session.scalar(select(func.count(AuditLog.id)).where(*filters))) or 0
        )
        stmt = (
            select(AuditLog)
            .where(*filters)
            .order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
            .limit(limit)
            .offset(offset)
        )
        return list((await self.session.scalars(stmt)).all()), total

    async def record_event(self, event: DomainEvent) -> OutboxEvent:
        """Append a typed event; it becomes visible to the relay only if the caller commits."""
        row = OutboxEvent(
            aggregate_type=event.aggregate_type,
            aggregate_id=event.aggregate_id,
            event_type=event.event_type,
            schema_version=event.schema_version,
            payload=event.model_dump(mode="json"),
            status=OutboxStatusEnum.PENDING,
            occurred_at=event.occurred_at,
        )
        self.session.add(row)
        await self.session.flush()
        return row

    def _locked_batch(self, limit: int, *conditions: ColumnElement[bool]) -> Select[tuple[OutboxEvent]]:
        # Rows claimed by a concurrent relay are skipped rather than waited on.
        return (
            select(OutboxEvent)
            .where(*conditions)
            .order_by(OutboxEvent.occurred_at.asc(), OutboxEvent.id.asc())
            .limit(limit)
            .with_for_update(skip_locked=True)
        )

    async def list_pending_outbox(self, limit: int) -> list[OutboxEvent]:
        stmt = self._locked_batch(limit, OutboxEvent.status == OutboxStatusEnum.PENDING)
        return list((await self.session.scalars(stmt)).all())

    async def list_failed_outbox(self, limit: int, max_retries: int) -> list[OutboxEvent]:
        stmt = self._locked_batch(
            limit,
            OutboxEvent.status == OutboxStatusEnum.FAILED,
            OutboxEvent.retries < max_retries,
        )
        return list((await self.session.scalars(stmt)).all())

    async def list_dead_letter_outbox(
        self,
        limit: int,
        max_retries: int,
        event_type: str | None = None,
    ) -> list[OutboxEvent]:
        stmt = (
            select(OutboxEvent)
            .where(
                OutboxEvent.status == OutboxStatusEnum.FAILED,
                OutboxEvent.retries >= max_retries,
            )
            .order_by(OutboxEvent.updated_at.desc())
            .limit(limit)
        )
        if event_type is not None:
            stmt = stmt.where(OutboxEvent.event_type == event_type)
        return list((await self.session.scalars(stmt)).all())

    async def get_outbox_event_for_update(self, event_id: UUID) -> OutboxEvent | None:
        stmt = select(OutboxEvent).where(OutboxEvent.id == event_id).with_for_update()
        return await self.session.scalar(stmt)

    async def _transition(
        self,
        event: OutboxEvent,
        status: OutboxStatusEnum,
        *,
        processed_at: datetime | None = None,
        error_message: str | None = None,
    ) -> OutboxEvent:
        event.status = status
        event.processed_at = processed_at
        event.error_message = error_message[:ERROR_MESSAGE_LIMIT] if error_message else None
        await self.session.flush()
        return event

    async def mark_outbox_pending(self, event: OutboxEvent) -> OutboxEvent:
        return await self._transition(event, OutboxStatusEnum.PENDING)

    async def mark_outbox_processed(self, event: OutboxEvent, processed_at: datetime) -> OutboxEvent:
        return await self._transition(event, OutboxStatusEnum.PROCESSED, processed_at=processed_at)

    async def mark_outbox_failed(self, event: OutboxEvent, error_message: str) -> OutboxEvent:
        event.retries += 1
        return await self._transition(event, OutboxStatusEnum.FAILED, error_message=error_message)

    async def replay_dead_letter(self, event: OutboxEvent) -> OutboxEvent:
        """Give a dead-lettered event a fresh retry budget."""
        event.retries = 0
        return await self._transition(event, OutboxStatusEnum.PENDING)

    async def count_outbox_by_status(self) -> dict[OutboxStatusEnum, int]:
        rows = await self.session.execute(
            select(OutboxEvent.status, func.count(OutboxEvent.id)).group_by(OutboxEvent.status)
        )
        return {status: int(count) for status, count in rows.all()}

    async def count_dead_letter_outbox(self, max_retries: int) -> int:
        stmt = select(func.count(OutboxEvent.id)).where(
            OutboxEvent.status == OutboxStatusEnum.FAILED,
            OutboxEvent.retries >= max_retries,
        )
        return int((await self.session.scalar(stmt)) or 0)

    async def oldest_pending_occurred_at(self) -> datetime | None:
        stmt = select(func.min(OutboxEvent.occurred_at)).where(
            OutboxEvent.status == OutboxStatusEnum.PENDING
        )
        return await self.session.scalar(stmt)
