"""Mentor rate card ORM model."""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean
from sqlalchemy.dialects.postgresql import UUID as PGUUID
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base, BaseModelMixin, Money


class MentorProfile(BaseModelMixin, Base):
    """Prices a mentor charges per slot duration."""

    __tablename__ = "mentor_profiles"

    mentor_id: Mapped[UUID] = mapped_column(PGUUID(as_uuid=True), nullable=False, unique=True)
    rate_30_min: Mapped[Decimal] = mapped_column(Money, nullable=False)
    rate_60_min: Mapped[Decimal] = mapped_column(Money, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def rate_for(self, duration_minutes: int) -> Decimal | None:
        if duration_minutes == 30:
            return self.rate_30_min
        if duration_minutes == 60:
            return self.rate_60_min
        return None
