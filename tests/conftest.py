from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from types import SimpleNamespace
from uuid import UUID, uuid4

import pytest

import app.modules.billing.service as billing_service_module
import app.modules.disputes.service as disputes_service_module
import app.modules.reschedule.service as reschedule_service_module
import app.modules.scheduling.service as scheduling_service_module
import app.modules.sessions.service as sessions_service_module
from app.core.cache import InMemoryCacheBackend
from app.core.enums import (
    DisputeStatusEnum,
    JobStatusEnum,
    PaymentStatusEnum,
    PayoutStatusEnum,
    RescheduleStatusEnum,
    RoleEnum,
    SessionStatusEnum,
    SessionTypeEnum,
)
from app.core.security import Actor
from app.modules.billing.gateway import SandboxPaymentGateway
from app.modules.billing.service import BillingService
from app.modules.disputes.service import DisputesService
from app.modules.mentors.service import MentorsService
from app.modules.reschedule.service import RescheduleService
from app.modules.scheduling.service import SchedulingService
from app.modules.sessions.conference import UrlConferenceProvider
from app.modules.sessions.service import SessionsService

FIXED_NOW = datetime(2026, 2, 19, 12, 0, tzinfo=UTC)
ZERO = Decimal("0.00")


@dataclass
class FakeSlot:
    id: UUID
    mentor_id: UUID
    start_at: datetime
    end_at: datetime
    duration_minutes: int
    is_booked: bool = False
    session_id: UUID | None = None


@dataclass
class FakeMentorProfile:
    mentor_id: UUID
    rate_30_min: Decimal
    rate_60_min: Decimal
    is_active: bool = True

    def rate_for(self, duration_minutes: int) -> Decimal | None:
        return {30: self.rate_30_min, 60: self.rate_60_min}.get(duration_minutes)


@dataclass
class FakeSession:
    id: UUID
    mentee_id: UUID
    mentor_id: UUID
    time_slot_id: UUID | None
    session_type: SessionTypeEnum
    duration_minutes: int
    scheduled_start_at: datetime
    scheduled_end_at: datetime
    price: Decimal
    currency: str
    status: SessionStatusEnum = SessionStatusEnum.PENDING
    conference_reference: str | None = None
    payment_id: UUID | None = None
    active_reschedule_id: UUID | None = None
    cancellation_reason: str | None = None
    cancelled_by_id: UUID | None = None
    cancelled_at: datetime | None = None
    refund_percentage: int | None = None
    refund_amount: Decimal | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    actual_duration_minutes: int | None = None


@dataclass
class FakePayment:
    id: UUID
    session_id: UUID
    mentee_id: UUID
    mentor_id: UUID
    amount: Decimal
    currency: str
    provider: str
    provider_intent_id: str | None
    status: PaymentStatusEnum = PaymentStatusEnum.PENDING
    platform_commission: Decimal | None = None
    mentor_payout_amount: Decimal | None = None
    provider_transaction_id: str | None = None
    paid_at: datetime | None = None
    refund_amount: Decimal | None = None
    refund_percentage: int | None = None
    refunded_at: datetime | None = None
    payout_adjustment: Decimal = ZERO
    payout_release_at: datetime | None = None
    payout_released_at: datetime | None = None
    released_amount: Decimal | None = None


@dataclass
class FakeBalance:
    mentor_id: UUID
    available_balance: Decimal = ZERO
    pending_balance: Decimal = ZERO
    total_earnings: Decimal = ZERO


@dataclass
class FakePayout:
    id: UUID
    mentor_id: UUID
    amount: Decimal
    currency: str
    requested_at: datetime
    status: PayoutStatusEnum = PayoutStatusEnum.PENDING
    failure_reason: str | None = None
    processed_at: datetime | None = None
    completed_at: datetime | None = None
    cancelled_at: datetime | None = None


@dataclass
class FakeRescheduleRequest:
    id: UUID
    session_id: UUID
    requested_by_id: UUID
    requester_role: RoleEnum
    original_start_at: datetime
    proposed_start_at: datetime
    target_slot_id: UUID | None
    reason: str
    requested_at: datetime
    status: RescheduleStatusEnum = RescheduleStatusEnum.PENDING
    decided_at: datetime | None = None
    decided_by_id: UUID | None = None


@dataclass
class FakeDispute:
    id: UUID
    session_id: UUID
    mentee_id: UUID
    reason: object
    description: str | None
    status: DisputeStatusEnum = DisputeStatusEnum.PENDING
    resolution: object = None
    refund_amount: Decimal | None = None
    admin_notes: str | None = None
    resolved_by_id: UUID | None = None
    resolved_at: datetime | None = None
    created_at: datetime = field(default_factory=lambda: FIXED_NOW)


@dataclass
class FakeJob:
    id: UUID
    job_type: str
    aggregate_id: UUID
    due_at: datetime
    status: JobStatusEnum = JobStatusEnum.PENDING
    attempts: int = 0
    last_error: str | None = None
    completed_at: datetime | None = None


class FakeSchedulingRepository:
    def __init__(self, slots: dict[UUID, FakeSlot] | None = None) -> None:
        self.slots = slots if slots is not None else {}

    async def create_slot(self, mentor_id: UUID, start_at: datetime, end_at: datetime, duration_minutes: int):
        slot = FakeSlot(
            id=uuid4(),
            mentor_id=mentor_id,
            start_at=start_at,
            end_at=end_at,
            duration_minutes=duration_minutes,
        )
        self.slots[slot.id] = slot
        return slot

    async def get_slot_by_id(self, slot_id: UUID) -> FakeSlot | None:
        await asyncio.sleep(0)
        return self.slots.get(slot_id)

    async def has_overlapping_slot(self, mentor_id: UUID, start_at: datetime, end_at: datetime) -> bool:
        return any(
            slot.mentor_id == mentor_id and slot.start_at < end_at and slot.end_at > start_at
            for slot in self.slots.values()
        )

    async def claim_slot(self, slot_id: UUID, session_id: UUID) -> bool:
        # Yield first so concurrent claimers interleave between read and write.
        await asyncio.sleep(0)
        slot = self.slots.get(slot_id)
        if slot is None or slot.is_booked:
            return False
        slot.is_booked = True
        slot.session_id = session_id
        return True

    async def release_slot(self, slot_id: UUID) -> bool:
        slot = self.slots.get(slot_id)
        if slot is None or not slot.is_booked:
            return False
        slot.is_booked = False
        slot.session_id = None
        return True

    async def delete_unbooked_slot(self, slot_id: UUID) -> bool:
        slot = self.slots.get(slot_id)
        if slot is None or slot.is_booked:
            return False
        del self.slots[slot_id]
        return True

    async def list_open_slots(self, mentor_id, not_before, limit, offset):
        items = [
            slot
            for slot in self.slots.values()
            if not slot.is_booked and slot.start_at >= not_before and (mentor_id is None or slot.mentor_id == mentor_id)
        ]
        items.sort(key=lambda slot: slot.start_at)
        return items[offset : offset + limit], len(items)


class FakeMentorsRepository:
    def __init__(self) -> None:
        self.profiles: dict[UUID, FakeMentorProfile] = {}

    async def get_profile(self, mentor_id: UUID) -> FakeMentorProfile | None:
        return self.profiles.get(mentor_id)

    async def upsert_profile(self, mentor_id, rate_30_min, rate_60_min, is_active) -> FakeMentorProfile:
        profile = FakeMentorProfile(mentor_id, rate_30_min, rate_60_min, is_active)
        self.profiles[mentor_id] = profile
        return profile


class FakeSessionsRepository:
    def __init__(self) -> None:
        self.sessions: dict[UUID, FakeSession] = {}

    async def create_session(self, session_id: UUID, **fields) -> FakeSession:
        session = FakeSession(id=session_id, **fields)
        self.sessions[session.id] = session
        return session

    async def get_session_by_id(self, session_id: UUID, *, for_update: bool = False) -> FakeSession | None:
        return self.sessions.get(session_id)

    async def has_overlapping_session(self, mentee_id, start_at, end_at, exclude_session_id=None) -> bool:
        active = {
            SessionStatusEnum.PENDING,
            SessionStatusEnum.CONFIRMED,
            SessionStatusEnum.IN_PROGRESS,
            SessionStatusEnum.PENDING_RESCHEDULE,
        }
        return any(
            session.mentee_id == mentee_id
            and session.id != exclude_session_id
            and session.status in active
            and session.scheduled_start_at < end_at
            and session.scheduled_end_at > start_at
            for session in self.sessions.values()
        )

    async def list_sessions(self, participant_id, status, limit, offset):
        items = [
            session
            for session in self.sessions.values()
            if (participant_id is None or participant_id in (session.mentee_id, session.mentor_id))
            and (status is None or session.status == status)
        ]
        return items[offset : offset + limit], len(items)

    async def save(self, session: FakeSession) -> FakeSession:
        return session


class FakeBillingRepository:
    def __init__(self) -> None:
        self.payments: dict[UUID, FakePayment] = {}
        self.balances: dict[UUID, FakeBalance] = {}
        self.payouts: dict[UUID, FakePayout] = {}

    async def create_payment(self, session_id, mentee_id, mentor_id, amount, currency, provider, provider_intent_id):
        payment = FakePayment(
            id=uuid4(),
            session_id=session_id,
            mentee_id=mentee_id,
            mentor_id=mentor_id,
            amount=amount,
            currency=currency,
            provider=provider,
            provider_intent_id=provider_intent_id,
        )
        self.payments[payment.id] = payment
        return payment

    async def get_payment_by_id(self, payment_id: UUID, *, for_update: bool = False) -> FakePayment | None:
        return self.payments.get(payment_id)

    async def get_payment_by_session_id(self, session_id: UUID) -> FakePayment | None:
        return next((item for item in self.payments.values() if item.session_id == session_id), None)

    async def save_payment(self, payment: FakePayment) -> FakePayment:
        return payment

    async def get_balance(self, mentor_id: UUID) -> FakeBalance | None:
        return self.balances.get(mentor_id)

    async def get_balance_for_update(self, mentor_id: UUID) -> FakeBalance:
        return self.balances.setdefault(mentor_id, FakeBalance(mentor_id=mentor_id))

    async def save_balance(self, balance: FakeBalance) -> FakeBalance:
        return balance

    async def create_payout(self, mentor_id, amount, currency, requested_at) -> FakePayout:
        payout = FakePayout(id=uuid4(), mentor_id=mentor_id, amount=amount, currency=currency, requested_at=requested_at)
        self.payouts[payout.id] = payout
        return payout

    async def get_payout_by_id(self, payout_id: UUID, *, for_update: bool = False) -> FakePayout | None:
        return self.payouts.get(payout_id)

    async def save_payout(self, payout: FakePayout) -> FakePayout:
        return payout

    async def list_payouts(self, mentor_id, limit, offset):
        items = [item for item in self.payouts.values() if mentor_id is None or item.mentor_id == mentor_id]
        return items[offset : offset + limit], len(items)


class FakeRescheduleRepository:
    def __init__(self) -> None:
        self.requests: dict[UUID, FakeRescheduleRequest] = {}

    async def create_request(self, **fields) -> FakeRescheduleRequest:
        request = FakeRescheduleRequest(id=uuid4(), **fields)
        self.requests[request.id] = request
        return request

    async def get_request_by_id(self, request_id: UUID, *, for_update: bool = False):
        return self.requests.get(request_id)

    async def get_pending_for_session(self, session_id: UUID):
        return next(
            (
                item
                for item in self.requests.values()
                if item.session_id == session_id and item.status == RescheduleStatusEnum.PENDING
            ),
            None,
        )

    async def list_for_session(self, session_id: UUID):
        return [item for item in self.requests.values() if item.session_id == session_id]

    async def save(self, request):
        return request


class FakeDisputesRepository:
    def __init__(self) -> None:
        self.disputes: dict[UUID, FakeDispute] = {}

    async def create_dispute(self, session_id, mentee_id, reason, description) -> FakeDispute:
        dispute = FakeDispute(
            id=uuid4(),
            session_id=session_id,
            mentee_id=mentee_id,
            reason=reason,
            description=description,
        )
        self.disputes[dispute.id] = dispute
        return dispute

    async def get_dispute_by_id(self, dispute_id: UUID, *, for_update: bool = False):
        return self.disputes.get(dispute_id)

    async def get_dispute_by_session_id(self, session_id: UUID):
        return next((item for item in self.disputes.values() if item.session_id == session_id), None)

    async def has_open_dispute(self, session_id: UUID) -> bool:
        return any(
            item.session_id == session_id
            and item.status in (DisputeStatusEnum.PENDING, DisputeStatusEnum.UNDER_REVIEW)
            for item in self.disputes.values()
        )

    async def save(self, dispute):
        return dispute

    async def list_disputes(self, status, mentee_id, limit, offset):
        items = [
            item
            for item in self.disputes.values()
            if (status is None or item.status == status) and (mentee_id is None or item.mentee_id == mentee_id)
        ]
        return items[offset : offset + limit], len(items)


class FakeJobsRepository:
    def __init__(self) -> None:
        self.jobs: dict[tuple[str, UUID], FakeJob] = {}

    async def get_job(self, job_type, aggregate_id: UUID) -> FakeJob | None:
        return self.jobs.get((str(job_type), aggregate_id))

    async def schedule(self, job_type, aggregate_id: UUID, due_at: datetime) -> FakeJob:
        job = self.jobs.get((str(job_type), aggregate_id))
        if job is None:
            job = FakeJob(id=uuid4(), job_type=str(job_type), aggregate_id=aggregate_id, due_at=due_at)
            self.jobs[(job.job_type, aggregate_id)] = job
        else:
            job.due_at = due_at
            job.status = JobStatusEnum.PENDING
            job.last_error = None
            job.completed_at = None
        return job

    async def cancel(self, job_type, aggregate_id: UUID) -> bool:
        job = self.jobs.get((str(job_type), aggregate_id))
        if job is None or job.status != JobStatusEnum.PENDING:
            return False
        job.status = JobStatusEnum.CANCELLED
        return True

    async def claim_due(self, now: datetime, limit: int) -> list[FakeJob]:
        due = [job for job in self.jobs.values() if job.status == JobStatusEnum.PENDING and job.due_at <= now]
        due.sort(key=lambda job: job.due_at)
        return due[:limit]

    async def reschedule(self, job: FakeJob, due_at: datetime) -> FakeJob:
        job.due_at = due_at
        job.status = JobStatusEnum.PENDING
        return job

    async def mark_completed(self, job: FakeJob, completed_at: datetime) -> FakeJob:
        job.status = JobStatusEnum.COMPLETED
        job.completed_at = completed_at
        job.last_error = None
        return job

    async def mark_attempt_failed(self, job: FakeJob, error_message: str, *, retry_at: datetime | None) -> FakeJob:
        job.attempts += 1
        job.last_error = error_message
        if retry_at is None:
            job.status = JobStatusEnum.FAILED
        else:
            job.due_at = retry_at
            job.status = JobStatusEnum.PENDING
        return job


class FakeAuditRepository:
    def __init__(self) -> None:
        self.events: list = []
        self.logs: list[dict] = []

    async def record_event(self, event):
        self.events.append(event)
        return event

    async def create_audit_log(self, **fields) -> dict:
        self.logs.append(fields)
        return fields

    def event_types(self) -> list[str]:
        return [event.event_type for event in self.events]


def make_actor(*roles: RoleEnum, actor_id: UUID | None = None) -> Actor:
    return Actor(id=actor_id or uuid4(), roles=frozenset(roles))


class World:
    """Services wired to in-memory repositories sharing one clock."""

    def __init__(self, clock: SimpleNamespace) -> None:
        self.clock = clock
        self.slots = FakeSchedulingRepository()
        self.mentors = FakeMentorsRepository()
        self.sessions_repo = FakeSessionsRepository()
        self.billing_repo = FakeBillingRepository()
        self.reschedule_repo = FakeRescheduleRepository()
        self.disputes_repo = FakeDisputesRepository()
        self.jobs = FakeJobsRepository()
        self.audit = FakeAuditRepository()
        self.gateway = SandboxPaymentGateway()
        self.cache = InMemoryCacheBackend()

        self.mentors_service = MentorsService(self.mentors, self.audit)
        self.slot_ledger = SchedulingService(self.slots, self.mentors_service, self.audit)
        self.billing = BillingService(
            repository=self.billing_repo,
            audit_repository=self.audit,
            jobs_repository=self.jobs,
            disputes_repository=self.disputes_repo,
            gateway=self.gateway,
            cache=self.cache,
        )
        self.sessions = SessionsService(
            repository=self.sessions_repo,
            slot_ledger=self.slot_ledger,
            settlement=self.billing,
            reschedule_repository=self.reschedule_repo,
            jobs_repository=self.jobs,
            audit_repository=self.audit,
            conference_provider=UrlConferenceProvider("https://meet.test/room"),
        )
        self.reschedule = RescheduleService(
            repository=self.reschedule_repo,
            sessions_repository=self.sessions_repo,
            slot_ledger=self.slot_ledger,
            audit_repository=self.audit,
        )
        self.disputes = DisputesService(
            repository=self.disputes_repo,
            sessions_repository=self.sessions_repo,
            settlement=self.billing,
            audit_repository=self.audit,
        )
        self.admin = make_actor(RoleEnum.ADMIN)

    def add_mentor(self, rate_30: str = "35.00", rate_60: str = "60.00") -> Actor:
        mentor = make_actor(RoleEnum.MENTOR)
        self.mentors.profiles[mentor.id] = FakeMentorProfile(mentor.id, Decimal(rate_30), Decimal(rate_60))
        return mentor

    def add_mentee(self) -> Actor:
        return make_actor(RoleEnum.MENTEE)

    def add_slot(self, mentor: Actor, *, hours_ahead: float, duration_minutes: int = 60) -> FakeSlot:
        start_at = self.clock.now + timedelta(hours=hours_ahead)
        slot = FakeSlot(
            id=uuid4(),
            mentor_id=mentor.id,
            start_at=start_at,
            end_at=start_at + timedelta(minutes=duration_minutes),
            duration_minutes=duration_minutes,
        )
        self.slots.slots[slot.id] = slot
        return slot

    async def book(self, mentee: Actor, slot: FakeSlot) -> FakeSession:
        from app.modules.sessions.schemas import SessionBookRequest

        return await self.sessions.book_session(SessionBookRequest(slot_id=slot.id), mentee)

    async def book_confirmed(self, mentee: Actor, slot: FakeSlot) -> FakeSession:
        session = await self.book(mentee, slot)
        payment, _ = await self.sessions.create_payment_intent(session.id, mentee)
        return await self.sessions.confirm_payment(session.id, payment.id, mentee)


@pytest.fixture
def clock(monkeypatch: pytest.MonkeyPatch) -> SimpleNamespace:
    state = SimpleNamespace(now=FIXED_NOW)
    for module in (
        billing_service_module,
        disputes_service_module,
        reschedule_service_module,
        scheduling_service_module,
        sessions_service_module,
    ):
        monkeypatch.setattr(module, "utc_now", lambda: state.now)
    return state


@pytest.fixture
def world(clock: SimpleNamespace) -> World:
    return World(clock)
