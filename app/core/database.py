"""Async SQLAlchemy engine, declarative base and unit-of-work helpers."""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator, AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import DateTime, MetaData, Numeric
from sqlalchemy.dialects.postgresql import UUID as PGUUID
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import (
    AsyncAttrs,
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.orm.exc import StaleDataError

from app.core.config import Settings, get_settings
from app.shared.exceptions import ConflictException
from app.shared.utils import utc_now

logger = logging.getLogger(__name__)

# Constraint names are deterministic so migrations and error mapping agree.
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

# Fixed-point money column; values map to Decimal.
Money = Numeric(12, 2, asdecimal=True)


class Base(AsyncAttrs, DeclarativeBase):
    metadata = MetaData(naming_convention=NAMING_CONVENTION)


class TimestampMixin:
    """UTC created/updated timestamps."""

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        onupdate=utc_now,
        nullable=False,
    )


class BaseModelMixin(TimestampMixin):
    """UUID primary key on top of the timestamps."""

    id: Mapped[UUID] = mapped_column(PGUUID(as_uuid=True), primary_key=True, default=uuid4)


def build_engine(settings: Settings) -> AsyncEngine:
    return create_async_engine(
        settings.database_url,
        echo=settings.debug,
        pool_pre_ping=True,
    )


engine = build_engine(get_settings())
SessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@asynccontextmanager
async def unit_of_work() -> AsyncIterator[AsyncSession]:
    """One transaction: commit on success, roll back on any error.

    Lost optimistic-lock races and unique-constraint violations raised at
    commit time are reported as conflicts rather than server errors.
    """
    async with SessionLocal() as session:
        try:
            yield session
            await session.commit()
        except StaleDataError as exc:
            await session.rollback()
            raise ConflictException(
                "Record was modified concurrently",
                context={"guard": "version_current"},
            ) from exc
        except IntegrityError as exc:
            await session.rollback()
            logger.info("Integrity violation on commit: %s", exc.orig)
            raise ConflictException(
                "Operation conflicts with existing data",
                context={"guard": "unique_constraint"},
            ) from exc
        except BaseException:
            await session.rollback()
            raise


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency: each request runs in its own unit of work."""
    async with unit_of_work() as session:
        yield session


async def close_engine() -> None:
    await engine.dispose()
