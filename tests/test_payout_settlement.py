from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

import pytest

from app.core.enums import (
    DisputeReasonEnum,
    DisputeResolutionEnum,
    DisputeStatusEnum,
    JobStatusEnum,
    JobTypeEnum,
    PaymentStatusEnum,
    PayoutStatusEnum,
)
from app.modules.billing.schemas import PayoutStatusUpdate, WithdrawalRequest
from app.modules.disputes.schemas import DisputeCreate, DisputeResolve
from app.shared.exceptions import (
    BelowMinimumException,
    ConflictException,
    ForbiddenException,
    GoneException,
    InsufficientBalanceException,
    ValidationFailedException,
)


async def _completed_session(world, clock):
    mentor = world.add_mentor(rate_60="60.00")
    mentee = world.add_mentee()
    slot = world.add_slot(mentor, hours_ahead=30)
    session = await world.book_confirmed(mentee, slot)
    clock.now = slot.end_at
    await world.sessions.complete_session(session.id, mentor)
    payment = world.billing_repo.payments[session.payment_id]
    return mentor, mentee, session, payment


def _dispute_payload() -> DisputeCreate:
    return DisputeCreate(reason=DisputeReasonEnum.POOR_QUALITY, description="Mentor left after twenty minutes")


@pytest.mark.asyncio
async def test_release_waits_for_hold_then_moves_to_available(world, clock) -> None:
    mentor, _, _, payment = await _completed_session(world, clock)
    release_at = payment.payout_release_at

    early = await world.billing.release_payout(payment.id)
    assert early.released is False
    assert early.deferred_until == release_at

    clock.now = release_at
    result = await world.billing.release_payout(payment.id)

    balance = world.billing_repo.balances[mentor.id]
    assert result.released is True
    assert result.amount == Decimal("51.00")
    assert balance.available_balance == Decimal("51.00")
    assert balance.pending_balance == Decimal("0.00")
    assert payment.released_amount == Decimal("51.00")
    assert world.audit.event_types()[-1] == "payout.released"

    repeated = await world.billing.release_payout(payment.id)
    assert repeated.released is False
    assert balance.available_balance == Decimal("51.00")


@pytest.mark.asyncio
async def test_release_job_judges_the_hold_by_the_runner_clock(world, clock) -> None:
    mentor, _, _, payment = await _completed_session(world, clock)
    release_at = payment.payout_release_at

    deferred_until = await world.billing.run_payout_release_job(payment.id, release_at - timedelta(minutes=1))
    assert deferred_until == release_at

    assert await world.billing.run_payout_release_job(payment.id, release_at) is None
    assert payment.payout_released_at == release_at
    assert world.billing_repo.balances[mentor.id].available_balance == Decimal("51.00")


@pytest.mark.asyncio
async def test_open_dispute_defers_release_until_resolved(world, clock) -> None:
    mentor, mentee, session, payment = await _completed_session(world, clock)
    clock.now = clock.now + timedelta(hours=1)
    dispute = await world.disputes.open_dispute(session.id, _dispute_payload(), mentee)
    assert dispute.status == DisputeStatusEnum.PENDING

    clock.now = payment.payout_release_at
    deferred_until = await world.billing.run_payout_release_job(payment.id, clock.now)
    assert deferred_until == clock.now + timedelta(minutes=60)
    assert world.billing_repo.balances[mentor.id].available_balance == Decimal("0.00")

    await world.disputes.start_review(dispute.id, world.admin)
    assert dispute.status == DisputeStatusEnum.UNDER_REVIEW

    clock.now = clock.now + timedelta(minutes=5)
    await world.disputes.resolve(
        dispute.id,
        DisputeResolve(resolution=DisputeResolutionEnum.NO_REFUND, admin_notes="Session took place"),
        world.admin,
    )
    assert dispute.status == DisputeStatusEnum.REJECTED
    release_job = await world.jobs.get_job(JobTypeEnum.RELEASE_PAYOUT, payment.id)
    assert release_job.status == JobStatusEnum.PENDING
    assert release_job.due_at == clock.now

    result = await world.billing.release_payout(payment.id)
    assert result.released is True
    assert world.billing_repo.balances[mentor.id].available_balance == Decimal("51.00")


@pytest.mark.asyncio
async def test_partial_refund_deducts_mentor_share_from_held_payout(world, clock) -> None:
    mentor, mentee, session, payment = await _completed_session(world, clock)
    dispute = await world.disputes.open_dispute(session.id, _dispute_payload(), mentee)

    await world.disputes.resolve(
        dispute.id,
        DisputeResolve(resolution=DisputeResolutionEnum.PARTIAL_REFUND, refund_amount=Decimal("20.00")),
        world.admin,
    )

    balance = world.billing_repo.balances[mentor.id]
    assert dispute.status == DisputeStatusEnum.RESOLVED
    assert dispute.refund_amount == Decimal("20.00")
    assert payment.status == PaymentStatusEnum.REFUNDED
    assert payment.refund_amount == Decimal("20.00")
    assert payment.payout_adjustment == Decimal("17.00")
    assert balance.pending_balance == Decimal("34.00")
    assert balance.total_earnings == Decimal("34.00")

    clock.now = payment.payout_release_at
    result = await world.billing.release_payout(payment.id)
    assert result.amount == Decimal("34.00")
    assert balance.available_balance == Decimal("34.00")
    assert balance.pending_balance == Decimal("0.00")


@pytest.mark.asyncio
async def test_full_refund_after_release_debits_available_balance(world, clock) -> None:
    mentor, mentee, session, payment = await _completed_session(world, clock)
    clock.now = payment.payout_release_at
    await world.billing.release_payout(payment.id)
    dispute = await world.disputes.open_dispute(session.id, _dispute_payload(), mentee)

    await world.disputes.resolve(
        dispute.id,
        DisputeResolve(resolution=DisputeResolutionEnum.FULL_REFUND),
        world.admin,
    )

    balance = world.billing_repo.balances[mentor.id]
    assert payment.refund_amount == Decimal("60.00")
    assert balance.available_balance == Decimal("0.00")
    assert balance.total_earnings == Decimal("0.00")


@pytest.mark.asyncio
async def test_partial_refund_must_be_below_paid_amount(world, clock) -> None:
    _, mentee, session, payment = await _completed_session(world, clock)
    dispute = await world.disputes.open_dispute(session.id, _dispute_payload(), mentee)

    with pytest.raises(ValidationFailedException):
        await world.disputes.resolve(
            dispute.id,
            DisputeResolve(resolution=DisputeResolutionEnum.PARTIAL_REFUND, refund_amount=Decimal("60.00")),
            world.admin,
        )

    assert dispute.status == DisputeStatusEnum.PENDING
    assert payment.status == PaymentStatusEnum.CAPTURED


@pytest.mark.asyncio
async def test_dispute_rules(world, clock) -> None:
    mentor, mentee, session, _ = await _completed_session(world, clock)

    with pytest.raises(ForbiddenException):
        await world.disputes.open_dispute(session.id, _dispute_payload(), mentor)
    with pytest.raises(ForbiddenException):
        await world.disputes.resolve(
            session.id,
            DisputeResolve(resolution=DisputeResolutionEnum.NO_REFUND),
            mentee,
        )

    clock.now = session.completed_at + timedelta(hours=73)
    with pytest.raises(GoneException):
        await world.disputes.open_dispute(session.id, _dispute_payload(), mentee)

    clock.now = session.completed_at + timedelta(hours=71)
    await world.disputes.open_dispute(session.id, _dispute_payload(), mentee)
    with pytest.raises(ConflictException):
        await world.disputes.open_dispute(session.id, _dispute_payload(), mentee)
    assert await world.disputes.has_open_dispute(session.id) is True


@pytest.mark.asyncio
async def test_only_completed_sessions_can_be_disputed(world) -> None:
    mentee = world.add_mentee()
    slot = world.add_slot(world.add_mentor(), hours_ahead=30)
    session = await world.book_confirmed(mentee, slot)

    with pytest.raises(ConflictException):
        await world.disputes.open_dispute(session.id, _dispute_payload(), mentee)


@pytest.mark.asyncio
async def test_withdrawal_rules(world) -> None:
    mentor = world.add_mentor()
    balance = await world.billing_repo.get_balance_for_update(mentor.id)
    balance.available_balance = Decimal("300.00")

    with pytest.raises(ForbiddenException):
        await world.billing.request_withdrawal(WithdrawalRequest(amount=Decimal("260.00")), world.add_mentee())
    with pytest.raises(BelowMinimumException):
        await world.billing.request_withdrawal(WithdrawalRequest(amount=Decimal("100.00")), mentor)
    with pytest.raises(InsufficientBalanceException):
        await world.billing.request_withdrawal(WithdrawalRequest(amount=Decimal("400.00")), mentor)

    payout = await world.billing.request_withdrawal(WithdrawalRequest(amount=Decimal("260.00")), mentor)

    assert payout.status == PayoutStatusEnum.PENDING
    assert payout.amount == Decimal("260.00")
    assert balance.available_balance == Decimal("40.00")
    assert world.audit.event_types()[-1] == "payout.requested"


@pytest.mark.asyncio
async def test_payout_status_transitions(world) -> None:
    mentor = world.add_mentor()
    balance = await world.billing_repo.get_balance_for_update(mentor.id)
    balance.available_balance = Decimal("600.00")
    first = await world.billing.request_withdrawal(WithdrawalRequest(amount=Decimal("300.00")), mentor)
    second = await world.billing.request_withdrawal(WithdrawalRequest(amount=Decimal("300.00")), mentor)
    assert balance.available_balance == Decimal("0.00")

    with pytest.raises(ForbiddenException):
        await world.billing.update_payout_status(
            first.id,
            PayoutStatusUpdate(status=PayoutStatusEnum.PROCESSING),
            mentor,
        )

    await world.billing.update_payout_status(first.id, PayoutStatusUpdate(status=PayoutStatusEnum.PROCESSING), world.admin)
    await world.billing.update_payout_status(first.id, PayoutStatusUpdate(status=PayoutStatusEnum.COMPLETED), world.admin)
    assert first.status == PayoutStatusEnum.COMPLETED
    assert first.completed_at is not None

    with pytest.raises(ConflictException):
        await world.billing.update_payout_status(
            first.id,
            PayoutStatusUpdate(status=PayoutStatusEnum.PENDING),
            world.admin,
        )

    await world.billing.update_payout_status(second.id, PayoutStatusUpdate(status=PayoutStatusEnum.CANCELLED), mentor)
    assert second.status == PayoutStatusEnum.CANCELLED
    assert balance.available_balance == Decimal("300.00")


@pytest.mark.asyncio
async def test_balance_reads_are_cached_and_invalidated(world, clock) -> None:
    mentor, _, _, payment = await _completed_session(world, clock)

    first = await world.billing.get_balance(mentor.id, mentor)
    assert first.pending_balance == Decimal("51.00")
    assert await world.cache.get(f"balance:{mentor.id}") is not None

    clock.now = payment.payout_release_at
    await world.billing.release_payout(payment.id)
    assert await world.cache.get(f"balance:{mentor.id}") is None

    second = await world.billing.get_balance(mentor.id, mentor)
    assert second.available_balance == Decimal("51.00")
    assert second.pending_balance == Decimal("0.00")

    with pytest.raises(ForbiddenException):
        await world.billing.get_balance(mentor.id, world.add_mentor())
