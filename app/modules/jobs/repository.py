"""Scheduled jobs repository layer."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.enums import JobStatusEnum, JobTypeEnum
from app.modules.jobs.models import ScheduledJob


class JobsRepository:
    """DB access for durable timers."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_job(self, job_type: JobTypeEnum, aggregate_id: UUID) -> ScheduledJob | None:
        stmt = select(ScheduledJob).where(
            ScheduledJob.job_type == str(job_type),
            ScheduledJob.aggregate_id == aggregate_id,
        )
        return await self.session.scalar(stmt)

    async def schedule(self, job_type: JobTypeEnum, aggregate_id: UUID, due_at: datetime) -> ScheduledJob:
        """Create the job or re-arm the existing one for this aggregate."""
        job = await self.get_job(job_type, aggregate_id)
        if job is None:
            job = ScheduledJob(
                job_type=str(job_type),
                aggregate_id=aggregate_id,
                due_at=due_at,
                status=JobStatusEnum.PENDING,
                attempts=0,
            )
            self.session.add(job)
        else:
            job.due_at = due_at
            job.status = JobStatusEnum.PENDING
            job.last_error = None
            job.completed_at = None
        await self.session.flush()
        return job

    async def cancel(self, job_type: JobTypeEnum, aggregate_id: UUID) -> bool:
        job = await self.get_job(job_type, aggregate_id)
        if job is None or job.status != JobStatusEnum.PENDING:
            return False
        job.status = JobStatusEnum.CANCELLED
        await self.session.flush()
        return True

    async def claim_due(self, now: datetime, limit: int) -> list[ScheduledJob]:
        stmt = (
            select(ScheduledJob)
            .where(
                ScheduledJob.status == JobStatusEnum.PENDING,
                ScheduledJob.due_at <= now,
            )
            .order_by(ScheduledJob.due_at.asc())
            .limit(limit)
            .with_for_update(skip_locked=True)
        )
        return (await self.session.scalars(stmt)).all()

    async def reschedule(self, job: ScheduledJob, due_at: datetime) -> ScheduledJob:
        job.due_at = due_at
        job.status = JobStatusEnum.PENDING
        await self.session.flush()
        return job

    async def mark_completed(self, job: ScheduledJob, completed_at: datetime) -> ScheduledJob:
        job.status = JobStatusEnum.COMPLETED
        job.completed_at = completed_at
        job.last_error = None
        await self.session.flush()
        return job

    async def mark_attempt_failed(
        self,
        job: ScheduledJob,
        error_message: str,
        *,
        retry_at: datetime | None,
    ) -> ScheduledJob:
        job.attempts += 1
        job.last_error = error_message[:2000]
        if retry_at is None:
            job.status = JobStatusEnum.FAILED
        else:
            job.due_at = retry_at
            job.status = JobStatusEnum.PENDING
        await self.session.flush()
        return job
