from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

import pytest

from app.core.enums import (
    JobStatusEnum,
    JobTypeEnum,
    PaymentStatusEnum,
    SessionStatusEnum,
)
from app.modules.billing.gateway import GatewayCharge, SandboxPaymentGateway
from app.shared.exceptions import (
    ConflictException,
    ForbiddenException,
    GoneException,
    PaymentFailedException,
    ValidationFailedException,
)


class DecliningGateway(SandboxPaymentGateway):
    async def confirm(self, intent_id: str) -> GatewayCharge:
        return GatewayCharge(status="declined", amount=Decimal("0.00"), transaction_id=None)


@pytest.mark.asyncio
async def test_full_lifecycle_books_pays_joins_and_holds_payout(world, clock) -> None:
    mentor = world.add_mentor(rate_60="60.00")
    mentee = world.add_mentee()
    slot = world.add_slot(mentor, hours_ahead=30)

    session = await world.book(mentee, slot)
    assert session.status == SessionStatusEnum.PENDING
    assert session.price == Decimal("60.00")
    assert slot.is_booked is True
    unpaid_job = await world.jobs.get_job(JobTypeEnum.RELEASE_UNPAID_SESSION, session.id)
    assert unpaid_job.due_at == clock.now + timedelta(minutes=15)

    payment, client_secret = await world.sessions.create_payment_intent(session.id, mentee)
    assert client_secret is not None
    assert session.payment_id == payment.id

    await world.sessions.confirm_payment(session.id, payment.id, mentee)
    assert session.status == SessionStatusEnum.CONFIRMED
    assert session.conference_reference == f"https://meet.test/room/{session.id.hex}"
    assert payment.status == PaymentStatusEnum.CAPTURED
    assert payment.platform_commission == Decimal("9.00")
    assert payment.mentor_payout_amount == Decimal("51.00")
    assert unpaid_job.status == JobStatusEnum.CANCELLED

    clock.now = slot.start_at - timedelta(minutes=10)
    join = await world.sessions.request_join(session.id, mentee)
    assert join.minutes_until_start == 10
    assert join.status == SessionStatusEnum.IN_PROGRESS
    assert session.started_at == clock.now

    second_join = await world.sessions.request_join(session.id, mentor)
    assert second_join.status == SessionStatusEnum.IN_PROGRESS
    assert session.started_at == slot.start_at - timedelta(minutes=10)

    clock.now = slot.start_at + timedelta(minutes=60)
    await world.sessions.complete_session(session.id, mentor)

    assert session.status == SessionStatusEnum.COMPLETED
    assert session.actual_duration_minutes == 70
    assert payment.payout_release_at == clock.now + timedelta(hours=72)
    balance = world.billing_repo.balances[mentor.id]
    assert balance.pending_balance == Decimal("51.00")
    assert balance.available_balance == Decimal("0.00")
    assert balance.total_earnings == Decimal("51.00")
    release_job = await world.jobs.get_job(JobTypeEnum.RELEASE_PAYOUT, payment.id)
    assert release_job.due_at == payment.payout_release_at
    assert world.audit.event_types() == [
        "session.booked",
        "session.confirmed",
        "session.started",
        "session.completed",
    ]


@pytest.mark.asyncio
async def test_booking_requires_mentee_role(world) -> None:
    mentor = world.add_mentor()
    other_mentor = world.add_mentor()
    slot = world.add_slot(mentor, hours_ahead=30)

    with pytest.raises(ForbiddenException):
        await world.book(other_mentor, slot)


@pytest.mark.asyncio
async def test_mentee_cannot_double_book_overlapping_time(world) -> None:
    mentee = world.add_mentee()
    first = world.add_slot(world.add_mentor(), hours_ahead=30)
    second = world.add_slot(world.add_mentor(), hours_ahead=30.5)
    await world.book(mentee, first)

    with pytest.raises(ConflictException) as exc_info:
        await world.book(mentee, second)

    assert exc_info.value.context["guard"] == "mentee_available"
    assert second.is_booked is False


@pytest.mark.asyncio
async def test_second_confirmation_is_rejected_and_changes_nothing(world) -> None:
    mentee = world.add_mentee()
    slot = world.add_slot(world.add_mentor(), hours_ahead=30)
    session = await world.book_confirmed(mentee, slot)
    payment = world.billing_repo.payments[session.payment_id]

    with pytest.raises(ConflictException) as exc_info:
        await world.sessions.confirm_payment(session.id, payment.id, mentee)

    assert exc_info.value.context == {"current_state": "confirmed", "guard": "status_pending"}
    assert session.status == SessionStatusEnum.CONFIRMED
    assert payment.platform_commission == Decimal("9.00")
    assert payment.mentor_payout_amount == Decimal("51.00")


@pytest.mark.asyncio
async def test_declined_payment_keeps_session_pending(world) -> None:
    mentee = world.add_mentee()
    slot = world.add_slot(world.add_mentor(), hours_ahead=30)
    session = await world.book(mentee, slot)
    payment, _ = await world.sessions.create_payment_intent(session.id, mentee)
    world.billing.gateway = DecliningGateway()

    with pytest.raises(PaymentFailedException):
        await world.sessions.confirm_payment(session.id, payment.id, mentee)

    assert session.status == SessionStatusEnum.PENDING
    assert payment.status == PaymentStatusEnum.PENDING
    assert slot.is_booked is True


@pytest.mark.asyncio
async def test_cancel_reason_length_is_enforced(world) -> None:
    mentee = world.add_mentee()
    slot = world.add_slot(world.add_mentor(), hours_ahead=30)
    session = await world.book(mentee, slot)

    with pytest.raises(ValidationFailedException):
        await world.sessions.cancel_session(session.id, "short", mentee)
    assert session.status == SessionStatusEnum.PENDING

    await world.sessions.cancel_session(session.id, "need to cancel", mentee)
    assert session.status == SessionStatusEnum.CANCELLED
    assert session.cancellation_reason == "need to cancel"
    assert session.refund_amount == Decimal("0.00")
    assert slot.is_booked is False
    assert session.time_slot_id is None


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("hours_ahead", "expected_percentage", "expected_refund", "expected_payment_status"),
    [
        (72, 100, Decimal("60.00"), PaymentStatusEnum.REFUNDED),
        (30, 50, Decimal("30.00"), PaymentStatusEnum.REFUNDED),
    ],
)
async def test_cancel_refund_tier_follows_notice(
    world,
    hours_ahead: int,
    expected_percentage: int,
    expected_refund: Decimal,
    expected_payment_status: PaymentStatusEnum,
) -> None:
    mentor = world.add_mentor()
    mentee = world.add_mentee()
    slot = world.add_slot(mentor, hours_ahead=hours_ahead)
    session = await world.book_confirmed(mentee, slot)

    await world.sessions.cancel_session(session.id, "plans changed, sorry", mentor)

    payment = world.billing_repo.payments[session.payment_id]
    assert session.status == SessionStatusEnum.CANCELLED
    assert session.refund_percentage == expected_percentage
    assert session.refund_amount == expected_refund
    assert session.cancelled_by_id == mentor.id
    assert payment.refund_amount == expected_refund
    assert payment.status == expected_payment_status
    assert slot.is_booked is False


@pytest.mark.asyncio
async def test_cancel_inside_last_day_refunds_nothing(world, clock) -> None:
    mentee = world.add_mentee()
    slot = world.add_slot(world.add_mentor(), hours_ahead=30)
    session = await world.book_confirmed(mentee, slot)
    clock.now = slot.start_at - timedelta(hours=10)

    await world.sessions.cancel_session(session.id, "cannot make it anymore", mentee)

    payment = world.billing_repo.payments[session.payment_id]
    assert session.refund_percentage == 0
    assert session.refund_amount == Decimal("0.00")
    assert payment.status == PaymentStatusEnum.CAPTURED


@pytest.mark.asyncio
async def test_outsider_cannot_cancel(world) -> None:
    mentee = world.add_mentee()
    slot = world.add_slot(world.add_mentor(), hours_ahead=30)
    session = await world.book(mentee, slot)

    with pytest.raises(ForbiddenException):
        await world.sessions.cancel_session(session.id, "not my session at all", world.add_mentee())


@pytest.mark.asyncio
async def test_join_window_bounds(world, clock) -> None:
    mentee = world.add_mentee()
    slot = world.add_slot(world.add_mentor(), hours_ahead=30)
    session = await world.book_confirmed(mentee, slot)

    clock.now = slot.start_at - timedelta(minutes=16)
    with pytest.raises(ConflictException) as too_early:
        await world.sessions.request_join(session.id, mentee)
    assert too_early.value.context["guard"] == "join_window_open"

    clock.now = slot.end_at + timedelta(minutes=16)
    with pytest.raises(GoneException):
        await world.sessions.request_join(session.id, mentee)

    assert session.status == SessionStatusEnum.CONFIRMED


@pytest.mark.asyncio
async def test_join_after_start_reports_zero_minutes(world, clock) -> None:
    mentee = world.add_mentee()
    slot = world.add_slot(world.add_mentor(), hours_ahead=30)
    session = await world.book_confirmed(mentee, slot)
    clock.now = slot.start_at + timedelta(minutes=5)

    join = await world.sessions.request_join(session.id, mentee)

    assert join.minutes_until_start == 0


@pytest.mark.asyncio
async def test_unpaid_session_cannot_be_joined(world, clock) -> None:
    mentee = world.add_mentee()
    slot = world.add_slot(world.add_mentor(), hours_ahead=30)
    session = await world.book(mentee, slot)
    clock.now = slot.start_at

    with pytest.raises(ConflictException):
        await world.sessions.request_join(session.id, mentee)


@pytest.mark.asyncio
async def test_only_mentor_or_admin_completes_and_only_once(world, clock) -> None:
    mentor = world.add_mentor()
    mentee = world.add_mentee()
    slot = world.add_slot(mentor, hours_ahead=30)
    session = await world.book_confirmed(mentee, slot)
    clock.now = slot.end_at

    with pytest.raises(ForbiddenException):
        await world.sessions.complete_session(session.id, mentee)

    await world.sessions.complete_session(session.id, world.admin)
    assert session.status == SessionStatusEnum.COMPLETED
    assert session.actual_duration_minutes == 60

    with pytest.raises(ConflictException):
        await world.sessions.complete_session(session.id, mentor)


@pytest.mark.asyncio
async def test_confirmed_session_completes_only_after_scheduled_start(world, clock) -> None:
    mentor = world.add_mentor()
    slot = world.add_slot(mentor, hours_ahead=30)
    session = await world.book_confirmed(world.add_mentee(), slot)
    clock.now = slot.start_at - timedelta(minutes=1)

    with pytest.raises(ConflictException) as exc_info:
        await world.sessions.complete_session(session.id, mentor)

    assert exc_info.value.context == {"current_state": "confirmed", "guard": "scheduled_start_reached"}
    assert world.billing_repo.payments[session.payment_id].payout_release_at is None
    assert (str(JobTypeEnum.RELEASE_PAYOUT), session.payment_id) not in world.jobs.jobs

    clock.now = slot.start_at
    await world.sessions.complete_session(session.id, mentor)
    assert session.status == SessionStatusEnum.COMPLETED
    assert session.actual_duration_minutes == 0


@pytest.mark.asyncio
async def test_pending_session_cannot_be_completed(world) -> None:
    mentor = world.add_mentor()
    slot = world.add_slot(mentor, hours_ahead=30)
    session = await world.book(world.add_mentee(), slot)

    with pytest.raises(ConflictException):
        await world.sessions.complete_session(session.id, mentor)


@pytest.mark.asyncio
async def test_no_show_is_admin_only_and_releases_slot(world) -> None:
    mentor = world.add_mentor()
    mentee = world.add_mentee()
    slot = world.add_slot(mentor, hours_ahead=30)
    session = await world.book_confirmed(mentee, slot)

    with pytest.raises(ForbiddenException):
        await world.sessions.mark_no_show(session.id, mentor)

    await world.sessions.mark_no_show(session.id, world.admin)

    assert session.status == SessionStatusEnum.NO_SHOW
    assert session.refund_amount == Decimal("0.00")
    assert slot.is_booked is False
    assert world.audit.logs[-1]["action"] == "sessions.no_show.mark"

    with pytest.raises(ConflictException):
        await world.sessions.mark_no_show(session.id, world.admin)
    with pytest.raises(ConflictException):
        await world.sessions.cancel_session(session.id, "too late to cancel", mentee)


@pytest.mark.asyncio
async def test_release_unpaid_session_cancels_and_frees_slot(world, clock) -> None:
    mentee = world.add_mentee()
    slot = world.add_slot(world.add_mentor(), hours_ahead=30)
    session = await world.book(mentee, slot)

    await world.sessions.release_unpaid_session(session.id, clock.now + timedelta(minutes=15))

    assert session.status == SessionStatusEnum.CANCELLED
    assert session.cancelled_by_id is None
    assert session.cancellation_reason == "Payment window expired"
    assert slot.is_booked is False
    assert world.audit.event_types()[-1] == "session.cancelled"


@pytest.mark.asyncio
async def test_release_unpaid_session_leaves_confirmed_session_alone(world, clock) -> None:
    mentee = world.add_mentee()
    slot = world.add_slot(world.add_mentor(), hours_ahead=30)
    session = await world.book_confirmed(mentee, slot)

    await world.sessions.release_unpaid_session(session.id, clock.now + timedelta(minutes=15))

    assert session.status == SessionStatusEnum.CONFIRMED
    assert slot.is_booked is True


@pytest.mark.asyncio
async def test_list_sessions_scopes_to_participant(world) -> None:
    mentee = world.add_mentee()
    other_mentee = world.add_mentee()
    mentor = world.add_mentor()
    await world.book(mentee, world.add_slot(mentor, hours_ahead=30))
    await world.book(other_mentee, world.add_slot(mentor, hours_ahead=40))

    own, own_total = await world.sessions.list_sessions(mentee, None, limit=10, offset=0)
    mentor_view, mentor_total = await world.sessions.list_sessions(mentor, None, limit=10, offset=0)
    _, admin_total = await world.sessions.list_sessions(world.admin, SessionStatusEnum.PENDING, 10, 0)

    assert own_total == 1
    assert own[0].mentee_id == mentee.id
    assert mentor_total == 2
    assert len(mentor_view) == 2
    assert admin_total == 2

    with pytest.raises(ForbiddenException):
        await world.sessions.get_session(own[0].id, other_mentee)
