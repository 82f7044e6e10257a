"""Event sink clients used by the outbox relay."""

from __future__ import annotations

import logging
from typing import Protocol
from uuid import UUID

import httpx

from app.core.config import Settings
from app.modules.audit.events import DomainEvent

logger = logging.getLogger(__name__)


class EventDispatcher(Protocol):
    """Delivers one event to the external sink; raises on failure."""

    async def dispatch(self, outbox_id: UUID, event: DomainEvent) -> None:
        """Send event to the sink."""


class LoggingEventDispatcher:
    """Writes events to the log when no sink is configured."""

    async def dispatch(self, outbox_id: UUID, event: DomainEvent) -> None:
        logger.info(
            "Domain event %s %s aggregate=%s",
            outbox_id,
            event.event_type,
            event.aggregate_id,
        )


class HttpEventDispatcher:
    """POSTs events as JSON to the configured sink URL.

    The outbox id is sent as ``Idempotency-Key`` so the sink can deduplicate
    redeliveries after a relay crash.
    """

    def __init__(self, url: str, *, timeout_seconds: float = 10.0, client: httpx.AsyncClient | None = None) -> None:
        self.url = url
        self.timeout_seconds = timeout_seconds
        self._client = client

    async def dispatch(self, outbox_id: UUID, event: DomainEvent) -> None:
        body = {
            "id": str(outbox_id),
            "event_type": event.event_type,
            "schema_version": event.schema_version,
            "aggregate_type": event.aggregate_type,
            "aggregate_id": event.aggregate_id,
            "data": event.model_dump(mode="json"),
        }
        headers = {"Idempotency-Key": str(outbox_id)}
        if self._client is not None:
            response = await self._client.post(self.url, json=body, headers=headers)
            response.raise_for_status()
            return
        async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
            response = await client.post(self.url, json=body, headers=headers)
            response.raise_for_status()


def build_event_dispatcher(settings: Settings) -> EventDispatcher:
    if settings.event_sink_url:
        return HttpEventDispatcher(
            settings.event_sink_url,
            timeout_seconds=settings.event_sink_timeout_seconds,
        )
    return LoggingEventDispatcher()
