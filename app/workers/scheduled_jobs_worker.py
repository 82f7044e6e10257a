"""Run due scheduled jobs: unpaid booking release and payout release.

Run with ``python -m app.workers.scheduled_jobs_worker [--loop]``.
"""

from __future__ import annotations

import asyncio

from app.core.config import get_settings
from app.core.database import unit_of_work
from app.core.enums import JobTypeEnum
from app.modules.billing.service import build_billing_service
from app.modules.jobs.repository import JobsRepository
from app.modules.jobs.runner import ScheduledJobsRunner
from app.modules.sessions.service import build_sessions_service
from app.workers.loop import parse_worker_args, run_worker


async def jobs_cycle() -> dict[str, int]:
    settings = get_settings()
    async with unit_of_work() as session:
        runner = ScheduledJobsRunner(
            jobs_repository=JobsRepository(session),
            handlers={
                JobTypeEnum.RELEASE_UNPAID_SESSION.value: build_sessions_service(session).release_unpaid_session,
                JobTypeEnum.RELEASE_PAYOUT.value: build_billing_service(session).run_payout_release_job,
            },
            savepoint=session.begin_nested,
            batch_size=settings.jobs_batch_size,
            max_attempts=settings.jobs_max_attempts,
            retry_delay_seconds=settings.jobs_retry_delay_seconds,
        )
        return await runner.run_once()


def main() -> None:
    args = parse_worker_args("Scheduled jobs runner", get_settings().jobs_poll_seconds)
    asyncio.run(run_worker("scheduled-jobs", jobs_cycle, loop=args.loop, poll_seconds=args.poll_seconds))


if __name__ == "__main__":
    main()
