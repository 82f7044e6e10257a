"""Relay committed outbox events to the event sink.

Run with ``python -m app.workers.outbox_events_worker [--loop]``.
"""

from __future__ import annotations

import asyncio

from app.core.config import get_settings
from app.core.database import unit_of_work
from app.modules.audit.dispatch import build_event_dispatcher
from app.modules.audit.relay import OutboxRelay
from app.modules.audit.repository import AuditRepository
from app.workers.loop import parse_worker_args, run_worker


async def relay_cycle() -> dict[str, int]:
    settings = get_settings()
    async with unit_of_work() as session:
        relay = OutboxRelay(
            AuditRepository(session),
            build_event_dispatcher(settings),
            batch_size=settings.outbox_batch_size,
            max_retries=settings.outbox_max_retries,
            base_backoff_seconds=settings.outbox_base_backoff_seconds,
            max_backoff_seconds=settings.outbox_max_backoff_seconds,
        )
        return await relay.run_once()


def main() -> None:
    args = parse_worker_args("Outbox events relay", get_settings().outbox_poll_seconds)
    asyncio.run(run_worker("outbox-relay", relay_cycle, loop=args.loop, poll_seconds=args.poll_seconds))


if __name__ == "__main__":
    main()
