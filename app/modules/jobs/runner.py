"""Executes due scheduled jobs against registered handlers."""

from __future__ import annotations

import contextlib
import logging
from collections.abc import Awaitable, Callable, Mapping
from datetime import datetime, timedelta
from typing import AsyncContextManager
from uuid import UUID

from app.core.metrics import record_scheduled_job
from app.modules.jobs.repository import JobsRepository
from app.shared.utils import utc_now

logger = logging.getLogger(__name__)

# Returns a new due time to defer the job, or None when the work is done.
JobHandler = Callable[[UUID, datetime], Awaitable[datetime | None]]


def _no_savepoint() -> AsyncContextManager[None]:
    return contextlib.nullcontext()


class ScheduledJobsRunner:
    """Run one polling cycle over due jobs.

    Each handler runs inside its own savepoint so that one failing job rolls
    back only its own changes and the rest of the batch still commits.
    """

    def __init__(
        self,
        jobs_repository: JobsRepository,
        handlers: Mapping[str, JobHandler],
        *,
        savepoint: Callable[[], AsyncContextManager] = _no_savepoint,
        batch_size: int = 50,
        max_attempts: int = 5,
        retry_delay_seconds: int = 60,
        now_provider=utc_now,
    ) -> None:
        self.jobs_repository = jobs_repository
        self.handlers = handlers
        self.savepoint = savepoint
        self.batch_size = batch_size
        self.max_attempts = max_attempts
        self.retry_delay_seconds = retry_delay_seconds
        self.now_provider = now_provider

    async def run_once(self) -> dict[str, int]:
        stats = {"claimed": 0, "completed": 0, "deferred": 0, "failed": 0}
        now = self.now_provider()
        jobs = await self.jobs_repository.claim_due(now, limit=self.batch_size)
        stats["claimed"] = len(jobs)

        for job in jobs:
            handler = self.handlers.get(str(job.job_type))
            if handler is None:
                logger.error("No handler registered for job type %s", job.job_type)
                await self.jobs_repository.mark_attempt_failed(
                    job,
                    f"unknown job type {job.job_type}",
                    retry_at=None,
                )
                stats["failed"] += 1
                record_scheduled_job(job.job_type, "unknown")
                continue

            try:
                async with self.savepoint():
                    deferred_until = await handler(job.aggregate_id, now)
            except Exception as exc:
                logger.exception("Job %s %s failed", job.job_type, job.aggregate_id)
                retry_at = None
                if job.attempts + 1 < self.max_attempts:
                    retry_at = now + timedelta(seconds=self.retry_delay_seconds * (2**job.attempts))
                await self.jobs_repository.mark_attempt_failed(job, str(exc), retry_at=retry_at)
                stats["failed"] += 1
                record_scheduled_job(job.job_type, "failed")
                continue

            if deferred_until is not None:
                await self.jobs_repository.reschedule(job, deferred_until)
                stats["deferred"] += 1
                record_scheduled_job(job.job_type, "deferred")
            else:
                await self.jobs_repository.mark_completed(job, self.now_provider())
                stats["completed"] += 1
                record_scheduled_job(job.job_type, "completed")
        return stats
