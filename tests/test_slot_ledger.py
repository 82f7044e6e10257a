from __future__ import annotations

import asyncio
from datetime import timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from app.modules.scheduling.schemas import SlotCreate
from app.shared.exceptions import (
    ConflictException,
    ForbiddenException,
    NotFoundException,
    TooSoonException,
    ValidationFailedException,
)


@pytest.mark.asyncio
async def test_concurrent_reservations_have_exactly_one_winner(world) -> None:
    mentor = world.add_mentor()
    slot = world.add_slot(mentor, hours_ahead=30)
    mentees = [world.add_mentee() for _ in range(5)]

    results = await asyncio.gather(
        *(world.slot_ledger.reserve_slot(slot.id, mentee.id, uuid4()) for mentee in mentees),
        return_exceptions=True,
    )

    winners = [item for item in results if not isinstance(item, Exception)]
    losers = [item for item in results if isinstance(item, Exception)]
    assert len(winners) == 1
    assert len(losers) == 4
    assert all(isinstance(item, ConflictException) for item in losers)
    assert all(item.context["guard"] == "slot_available" for item in losers)
    assert slot.is_booked is True
    assert winners[0].price == Decimal("60.00")


@pytest.mark.asyncio
async def test_reserve_returns_slot_terms_and_current_rate(world) -> None:
    mentor = world.add_mentor(rate_30="35.00")
    slot = world.add_slot(mentor, hours_ahead=26, duration_minutes=30)
    session_id = uuid4()

    reservation = await world.slot_ledger.reserve_slot(slot.id, uuid4(), session_id)

    assert reservation.mentor_id == mentor.id
    assert reservation.duration_minutes == 30
    assert reservation.end_at - reservation.start_at == timedelta(minutes=30)
    assert reservation.price == Decimal("35.00")
    assert slot.session_id == session_id


@pytest.mark.asyncio
async def test_reserve_rejects_slot_inside_notice_window(world) -> None:
    mentor = world.add_mentor()
    slot = world.add_slot(mentor, hours_ahead=23)

    with pytest.raises(TooSoonException):
        await world.slot_ledger.reserve_slot(slot.id, uuid4(), uuid4())

    assert slot.is_booked is False


@pytest.mark.asyncio
async def test_mentor_cannot_reserve_own_slot(world) -> None:
    mentor = world.add_mentor()
    slot = world.add_slot(mentor, hours_ahead=30)

    with pytest.raises(ForbiddenException):
        await world.slot_ledger.reserve_slot(slot.id, mentor.id, uuid4())


@pytest.mark.asyncio
async def test_reserve_requires_active_mentor_rate(world) -> None:
    mentor = world.add_mentor()
    world.mentors.profiles[mentor.id].is_active = False
    slot = world.add_slot(mentor, hours_ahead=30)

    with pytest.raises(NotFoundException):
        await world.slot_ledger.reserve_slot(slot.id, uuid4(), uuid4())

    assert slot.is_booked is False


@pytest.mark.asyncio
async def test_create_slot_validates_duration_and_notice(world, clock) -> None:
    mentor = world.add_mentor()

    with pytest.raises(ValidationFailedException):
        await world.slot_ledger.create_slot(
            SlotCreate(start_at=clock.now + timedelta(hours=30), duration_minutes=45),
            mentor,
        )
    with pytest.raises(TooSoonException):
        await world.slot_ledger.create_slot(
            SlotCreate(start_at=clock.now + timedelta(hours=2), duration_minutes=60),
            mentor,
        )

    slot = await world.slot_ledger.create_slot(
        SlotCreate(start_at=clock.now + timedelta(hours=30), duration_minutes=60),
        mentor,
    )
    assert slot.end_at == clock.now + timedelta(hours=31)

    with pytest.raises(ConflictException):
        await world.slot_ledger.create_slot(
            SlotCreate(start_at=clock.now + timedelta(hours=30, minutes=30), duration_minutes=30),
            mentor,
        )


@pytest.mark.asyncio
async def test_create_slot_for_another_mentor_requires_admin(world, clock) -> None:
    mentor = world.add_mentor()
    other_mentor = world.add_mentor()
    payload = SlotCreate(mentor_id=mentor.id, start_at=clock.now + timedelta(hours=30), duration_minutes=60)

    with pytest.raises(ForbiddenException):
        await world.slot_ledger.create_slot(payload, other_mentor)

    slot = await world.slot_ledger.create_slot(payload, world.admin)
    assert slot.mentor_id == mentor.id


@pytest.mark.asyncio
async def test_booked_slot_cannot_be_deleted(world) -> None:
    mentor = world.add_mentor()
    slot = world.add_slot(mentor, hours_ahead=30)
    await world.slot_ledger.reserve_slot(slot.id, uuid4(), uuid4())

    with pytest.raises(ConflictException) as exc_info:
        await world.slot_ledger.delete_slot(slot.id, mentor)

    assert exc_info.value.context["guard"] == "slot_unbooked"
    assert slot.id in world.slots.slots


@pytest.mark.asyncio
async def test_open_slot_can_be_deleted_by_owner(world) -> None:
    mentor = world.add_mentor()
    slot = world.add_slot(mentor, hours_ahead=30)

    await world.slot_ledger.delete_slot(slot.id, mentor)

    assert slot.id not in world.slots.slots
    assert world.audit.logs[-1]["action"] == "scheduling.slot.delete"


@pytest.mark.asyncio
async def test_release_is_idempotent(world) -> None:
    mentor = world.add_mentor()
    slot = world.add_slot(mentor, hours_ahead=30)
    await world.slot_ledger.reserve_slot(slot.id, uuid4(), uuid4())

    assert await world.slot_ledger.release_slot(slot.id) is True
    assert await world.slot_ledger.release_slot(slot.id) is False
    assert await world.slot_ledger.release_slot(None) is False
    assert slot.is_booked is False
    assert slot.session_id is None
