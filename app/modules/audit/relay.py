"""Moves committed outbox rows to the event sink with bounded retries."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Literal

from pydantic import ValidationError

from app.core.metrics import record_outbox_results
from app.modules.audit.dispatch import EventDispatcher
from app.modules.audit.events import parse_event
from app.modules.audit.models import OutboxEvent
from app.modules.audit.repository import AuditRepository
from app.shared.utils import utc_now

logger = logging.getLogger(__name__)

Outcome = Literal["dispatched", "failed", "rejected"]


def retry_backoff(retries: int, base_seconds: int, max_seconds: int) -> timedelta:
    """Exponential delay after the n-th failure, capped at ``max_seconds``."""
    exponent = max(retries, 1) - 1
    return timedelta(seconds=min(max_seconds, base_seconds * 2**exponent))


class OutboxRelay:
    """One relay pass: requeue failures whose backoff elapsed, then deliver pending rows.

    Delivery is at-least-once. A row whose payload no longer parses as a known
    event is parked with an exhausted retry budget, so it shows up in the dead
    letter count instead of being retried forever.
    """

    def __init__(
        self,
        audit_repository: AuditRepository,
        dispatcher: EventDispatcher,
        *,
        batch_size: int = 100,
        max_retries: int = 5,
        base_backoff_seconds: int = 30,
        max_backoff_seconds: int = 300,
        now_provider=utc_now,
    ) -> None:
        self.audit_repository = audit_repository
        self.dispatcher = dispatcher
        self.batch_size = batch_size
        self.max_retries = max_retries
        self.base_backoff_seconds = base_backoff_seconds
        self.max_backoff_seconds = max_backoff_seconds
        self.now_provider = now_provider

    async def run_once(self) -> dict[str, int]:
        stats = {"requeued": await self._requeue_due_failures(), "dispatched": 0, "failed": 0, "rejected": 0}
        for row in await self.audit_repository.list_pending_outbox(limit=self.batch_size):
            stats[await self._deliver(row)] += 1
        record_outbox_results(stats)
        return stats

    async def _deliver(self, row: OutboxEvent) -> Outcome:
        try:
            event = parse_event(row.payload or {})
        except ValidationError as exc:
            logger.error("Outbox row %s (%s) rejected by schema: %s", row.id, row.event_type, exc)
            row.retries = max(row.retries, self.max_retries - 1)
            await self.audit_repository.mark_outbox_failed(row, f"schema: {exc}")
            return "rejected"

        try:
            await self.dispatcher.dispatch(row.id, event)
        except Exception as exc:
            logger.warning("Outbox row %s delivery attempt %d failed: %s", row.id, row.retries + 1, exc)
            await self.audit_repository.mark_outbox_failed(row, str(exc))
            return "failed"

        await self.audit_repository.mark_outbox_processed(row, self.now_provider())
        return "dispatched"

    async def _requeue_due_failures(self) -> int:
        now = self.now_provider()
        rows = await self.audit_repository.list_failed_outbox(limit=self.batch_size, max_retries=self.max_retries)
        due = [row for row in rows if self._retry_due(row, now)]
        for row in due:
            await self.audit_repository.mark_outbox_pending(row)
        return len(due)

    def _retry_due(self, row: OutboxEvent, now: datetime) -> bool:
        last_attempt = row.updated_at or row.occurred_at
        delay = retry_backoff(row.retries, self.base_backoff_seconds, self.max_backoff_seconds)
        return now >= last_attempt + delay
