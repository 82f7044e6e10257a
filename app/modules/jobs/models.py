"""Durable scheduled job ORM model."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import DateTime, Integer, String, Text, UniqueConstraint
from sqlalchemy import Enum as SAEnum
from sqlalchemy.dialects.postgresql import UUID as PGUUID
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base, BaseModelMixin
from app.core.enums import JobStatusEnum


class ScheduledJob(BaseModelMixin, Base):
    """Deferred work item keyed by type and aggregate, polled by due time."""

    __tablename__ = "scheduled_jobs"
    __table_args__ = (UniqueConstraint("job_type", "aggregate_id", name="uq_scheduled_jobs_type_aggregate"),)

    job_type: Mapped[str] = mapped_column(String(64), nullable=False)
    aggregate_id: Mapped[UUID] = mapped_column(PGUUID(as_uuid=True), nullable=False)
    due_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    status: Mapped[JobStatusEnum] = mapped_column(
        SAEnum(JobStatusEnum, name="job_status_enum", native_enum=False),
        default=JobStatusEnum.PENDING,
        nullable=False,
        index=True,
    )
    attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
