"""Create a demo mentor with a rate card and a week of open slots.

Safe to re-run: the rate card is upserted and slots that already exist at the
same start time are left alone. Refuses to touch production unless told to.
"""

from __future__ import annotations

import argparse
import asyncio
from dataclasses import dataclass, field
from datetime import UTC, datetime, time, timedelta
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from app.core.config import get_settings
from app.core.database import close_engine, unit_of_work
from app.core.enums import RoleEnum
from app.core.security import Actor
from app.modules.audit.repository import AuditRepository
from app.modules.mentors.repository import MentorsRepository
from app.modules.mentors.schemas import MentorRatesUpdate
from app.modules.mentors.service import MentorsService
from app.modules.scheduling.models import TimeSlot
from app.modules.scheduling.schemas import SlotCreate
from app.modules.scheduling.service import build_scheduling_service

DEMO_IDENTITIES = {
    RoleEnum.ADMIN: UUID("00000000-0000-4000-8000-00000000a001"),
    RoleEnum.MENTOR: UUID("00000000-0000-4000-8000-00000000b001"),
    RoleEnum.MENTEE: UUID("00000000-0000-4000-8000-00000000c001"),
}
DEMO_RATES = MentorRatesUpdate(rate_30_min=Decimal("35.00"), rate_60_min=Decimal("60.00"))
# (hour of day in UTC, duration in minutes)
DAILY_OPENINGS = ((10, 30), (14, 60), (18, 60))


@dataclass(slots=True)
class SeedReport:
    rate_card_created: bool = False
    created: list[datetime] = field(default_factory=list)
    already_present: int = 0


def demo_openings(today: datetime, first_day: int, days: int) -> list[tuple[datetime, int]]:
    """Slot starts for ``days`` consecutive days beginning ``first_day`` days out."""
    openings = []
    for offset in range(first_day, first_day + days):
        day = (today + timedelta(days=offset)).date()
        openings.extend(
            (datetime.combine(day, time(hour=hour, tzinfo=UTC)), minutes) for hour, minutes in DAILY_OPENINGS
        )
    return openings


async def seed(*, days: int) -> SeedReport:
    admin = Actor(id=DEMO_IDENTITIES[RoleEnum.ADMIN], roles=frozenset({RoleEnum.ADMIN}))
    mentor_id = DEMO_IDENTITIES[RoleEnum.MENTOR]
    settings = get_settings()
    # Start past the booking notice window so every demo slot is bookable.
    first_day = settings.booking_min_notice_hours // 24 + 1
    report = SeedReport()

    async with unit_of_work() as session:
        mentors = MentorsService(MentorsRepository(session), AuditRepository(session))
        report.rate_card_created = await mentors.repository.get_profile(mentor_id) is None
        await mentors.set_rates(mentor_id, DEMO_RATES, admin)

        ledger = build_scheduling_service(session)
        for start_at, minutes in demo_openings(datetime.now(UTC), first_day, days):
            taken = await session.scalar(
                select(TimeSlot.id).where(TimeSlot.mentor_id == mentor_id, TimeSlot.start_at == start_at)
            )
            if taken is not None:
                report.already_present += 1
                continue
            await ledger.create_slot(
                SlotCreate(mentor_id=mentor_id, start_at=start_at, duration_minutes=minutes),
                admin,
            )
            report.created.append(start_at)
    return report


def describe(report: SeedReport) -> str:
    lines = [
        f"rate card: {'created' if report.rate_card_created else 'updated'}",
        f"slots created: {len(report.created)}, already present: {report.already_present}",
        "identities (X-Actor-Id / X-Actor-Roles):",
    ]
    lines.extend(f"  {role}: {actor_id}" for role, actor_id in DEMO_IDENTITIES.items())
    return "\n".join(lines)


async def _main(args: argparse.Namespace) -> int:
    env = get_settings().app_env.strip().lower()
    if env in {"production", "prod"} and not args.allow_production:
        print(f"APP_ENV={env}: refusing to seed demo data (pass --allow-production to override)")
        return 2
    try:
        report = await seed(days=args.days)
    finally:
        await close_engine()
    print(describe(report))
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--days", type=int, default=5, help="Number of days with openings.")
    parser.add_argument("--allow-production", action="store_true", help="Seed even when APP_ENV is production.")
    return asyncio.run(_main(parser.parse_args()))


if __name__ == "__main__":
    raise SystemExit(main())
