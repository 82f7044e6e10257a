"""Session state machine."""

from __future__ import annotations

import logging
import math
from datetime import datetime, timedelta
from decimal import Decimal
from uuid import UUID, uuid4

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.database import get_db_session
from app.core.enums import (
    JobTypeEnum,
    PaymentStatusEnum,
    RescheduleStatusEnum,
    RoleEnum,
    SessionStatusEnum,
)
from app.core.metrics import record_session_transition
from app.core.security import Actor
from app.modules.audit.events import (
    SessionBooked,
    SessionCancelled,
    SessionCompleted,
    SessionConfirmed,
    SessionNoShow,
    SessionStarted,
)
from app.modules.audit.repository import AuditRepository
from app.modules.billing.models import Payment
from app.modules.billing.service import BillingService, build_billing_service
from app.modules.billing.settlement import refund_percentage
from app.modules.jobs.repository import JobsRepository
from app.modules.reschedule.repository import RescheduleRepository
from app.modules.scheduling.service import SchedulingService, build_scheduling_service
from app.modules.sessions.conference import ConferenceProvider, get_conference_provider
from app.modules.sessions.models import MentorshipSession
from app.modules.sessions.repository import SessionsRepository
from app.modules.sessions.schemas import JoinRead, SessionBookRequest
from app.shared.exceptions import (
    ConflictException,
    ForbiddenException,
    GoneException,
    NotFoundException,
    ValidationFailedException,
)
from app.shared.utils import ensure_utc, hours_between, normalize_reason, utc_now

settings = get_settings()
logger = logging.getLogger(__name__)

CANCELLABLE_STATUSES = (
    SessionStatusEnum.PENDING,
    SessionStatusEnum.CONFIRMED,
    SessionStatusEnum.PENDING_RESCHEDULE,
)
NO_SHOW_STATUSES = CANCELLABLE_STATUSES + (SessionStatusEnum.IN_PROGRESS,)
UNPAID_RELEASE_REASON = "Payment window expired"
ZERO_AMOUNT = Decimal("0.00")


def _state_context(session: MentorshipSession, guard: str, **extra: object) -> dict:
    return {"current_state": str(session.status), "guard": guard, **extra}


class SessionsService:
    """Owns session lifecycle transitions and their side effects."""

    def __init__(
        self,
        repository: SessionsRepository,
        slot_ledger: SchedulingService,
        settlement: BillingService,
        reschedule_repository: RescheduleRepository,
        jobs_repository: JobsRepository,
        audit_repository: AuditRepository,
        conference_provider: ConferenceProvider,
    ) -> None:
        self.repository = repository
        self.slot_ledger = slot_ledger
        self.settlement = settlement
        self.reschedule_repository = reschedule_repository
        self.jobs_repository = jobs_repository
        self.audit_repository = audit_repository
        self.conference_provider = conference_provider

    @staticmethod
    def _is_participant(session: MentorshipSession, actor: Actor) -> bool:
        return actor.id in (session.mentee_id, session.mentor_id)

    def _ensure_participant_or_admin(self, session: MentorshipSession, actor: Actor) -> None:
        if actor.is_admin or self._is_participant(session, actor):
            return
        raise ForbiddenException(
            "You are not a participant of this session",
            context={"guard": "participant_or_admin"},
        )

    async def _load(self, session_id: UUID, *, for_update: bool = True) -> MentorshipSession:
        session = await self.repository.get_session_by_id(session_id, for_update=for_update)
        if session is None:
            raise NotFoundException("Session not found")
        return session

    @staticmethod
    def _transition(session: MentorshipSession, to_status: SessionStatusEnum) -> None:
        from_status = session.status
        session.status = to_status
        record_session_transition(from_status, to_status)
        logger.info("Session %s: %s -> %s", session.id, from_status, to_status)

    async def _close_pending_reschedule(self, session: MentorshipSession, decided_by_id: UUID | None) -> None:
        request = await self.reschedule_repository.get_pending_for_session(session.id)
        if request is not None:
            request.status = RescheduleStatusEnum.REJECTED
            request.decided_at = utc_now()
            request.decided_by_id = decided_by_id
            await self.reschedule_repository.save(request)
        session.active_reschedule_id = None

    async def _detach_slot(self, session: MentorshipSession) -> None:
        await self.slot_ledger.release_slot(session.time_slot_id)
        session.time_slot_id = None

    async def book_session(self, payload: SessionBookRequest, actor: Actor) -> MentorshipSession:
        """Claim the slot and create the session in ``pending``."""
        if not actor.has_role(RoleEnum.MENTEE):
            raise ForbiddenException("Only mentees can book sessions", context={"guard": "mentee_only"})

        slot = await self.slot_ledger.get_slot(payload.slot_id)
        if await self.repository.has_overlapping_session(actor.id, ensure_utc(slot.start_at), ensure_utc(slot.end_at)):
            raise ConflictException(
                "You already have a session at this time",
                context={"guard": "mentee_available"},
            )

        session_id = uuid4()
        reservation = await self.slot_ledger.reserve_slot(payload.slot_id, actor.id, session_id)
        session = await self.repository.create_session(
            session_id=session_id,
            mentee_id=actor.id,
            mentor_id=reservation.mentor_id,
            time_slot_id=reservation.slot_id,
            session_type=payload.session_type,
            duration_minutes=reservation.duration_minutes,
            scheduled_start_at=reservation.start_at,
            scheduled_end_at=reservation.end_at,
            price=reservation.price,
            currency=settings.currency,
        )
        record_session_transition("none", SessionStatusEnum.PENDING)

        now = utc_now()
        await self.jobs_repository.schedule(
            JobTypeEnum.RELEASE_UNPAID_SESSION,
            session.id,
            now + timedelta(minutes=settings.booking_payment_window_minutes),
        )
        await self.audit_repository.record_event(
            SessionBooked(
                occurred_at=now,
                session_id=session.id,
                slot_id=reservation.slot_id,
                mentee_id=session.mentee_id,
                mentor_id=session.mentor_id,
                scheduled_start_at=session.scheduled_start_at,
                scheduled_end_at=session.scheduled_end_at,
                price=session.price,
                currency=session.currency,
            ),
        )
        logger.info("Session %s booked on slot %s", session.id, reservation.slot_id)
        return session

    async def create_payment_intent(self, session_id: UUID, actor: Actor) -> tuple[Payment, str | None]:
        session = await self._load(session_id)
        if actor.id != session.mentee_id:
            raise ForbiddenException("Only the mentee can pay for a session", context={"guard": "mentee_owner"})
        if session.status != SessionStatusEnum.PENDING:
            raise ConflictException(
                "Only pending sessions can be paid",
                context=_state_context(session, "status_pending"),
            )
        payment, client_secret = await self.settlement.open_payment(session)
        session.payment_id = payment.id
        await self.repository.save(session)
        return payment, client_secret

    async def confirm_payment(self, session_id: UUID, payment_id: UUID, actor: Actor) -> MentorshipSession:
        """Capture the payment and confirm the session.

        Only legal from ``pending``; a repeated confirmation is rejected with a
        conflict and leaves the session and its payment untouched.
        """
        session = await self._load(session_id)
        if not (actor.is_admin or actor.id == session.mentee_id):
            raise ForbiddenException("Only the mentee can confirm payment", context={"guard": "mentee_owner"})
        if session.status != SessionStatusEnum.PENDING:
            raise ConflictException(
                "Session is not awaiting payment",
                context=_state_context(session, "status_pending"),
            )

        payment = await self.settlement.get_payment(payment_id, for_update=True)
        if payment is None or payment.session_id != session.id:
            raise NotFoundException("Payment not found for session")

        await self.settlement.capture_payment(payment, session)

        session.payment_id = payment.id
        session.conference_reference = self.conference_provider.room_for(session.id)
        self._transition(session, SessionStatusEnum.CONFIRMED)
        await self.repository.save(session)
        await self.jobs_repository.cancel(JobTypeEnum.RELEASE_UNPAID_SESSION, session.id)
        await self.audit_repository.record_event(
            SessionConfirmed(
                occurred_at=utc_now(),
                session_id=session.id,
                payment_id=payment.id,
                mentee_id=session.mentee_id,
                mentor_id=session.mentor_id,
                conference_reference=session.conference_reference,
                scheduled_start_at=session.scheduled_start_at,
            ),
        )
        return session

    async def request_join(self, session_id: UUID, actor: Actor) -> JoinRead:
        """Admit a participant inside the join window; the first join starts the session."""
        session = await self._load(session_id)
        if not self._is_participant(session, actor):
            raise ForbiddenException("Only participants can join", context={"guard": "participant"})
        if session.status == SessionStatusEnum.PENDING_RESCHEDULE:
            raise ConflictException(
                "Session cannot be joined while a reschedule is pending",
                context=_state_context(session, "no_pending_reschedule"),
            )
        if session.status not in (SessionStatusEnum.CONFIRMED, SessionStatusEnum.IN_PROGRESS):
            raise ConflictException(
                "Session is not joinable",
                context=_state_context(session, "confirmed_or_in_progress"),
            )

        now = utc_now()
        start_at = ensure_utc(session.scheduled_start_at)
        window = timedelta(minutes=settings.join_window_minutes)
        opens_at = start_at - window
        closes_at = ensure_utc(session.scheduled_end_at) + window
        if now < opens_at:
            raise ConflictException(
                "Join window has not opened yet",
                context=_state_context(session, "join_window_open", opens_at=opens_at.isoformat()),
            )
        if now > closes_at:
            raise GoneException(
                "Join window has closed",
                context=_state_context(session, "join_window_open", closed_at=closes_at.isoformat()),
            )

        if session.status == SessionStatusEnum.CONFIRMED:
            session.started_at = now
            self._transition(session, SessionStatusEnum.IN_PROGRESS)
            await self.repository.save(session)
            await self.audit_repository.record_event(
                SessionStarted(
                    occurred_at=now,
                    session_id=session.id,
                    mentee_id=session.mentee_id,
                    mentor_id=session.mentor_id,
                    started_at=now,
                ),
            )

        minutes_until_start = max(0, math.ceil((start_at - now).total_seconds() / 60))
        return JoinRead(
            session_id=session.id,
            status=session.status,
            conference_reference=session.conference_reference or "",
            minutes_until_start=minutes_until_start,
        )

    async def complete_session(self, session_id: UUID, actor: Actor) -> MentorshipSession:
        """Mark the session completed and put the mentor payout on hold.

        Completion is accepted from ``in_progress`` and also from
        ``confirmed`` when the mentor closes a session nobody joined through
        the platform, once its scheduled start has passed.
        """
        session = await self._load(session_id)
        if not (actor.is_admin or actor.id == session.mentor_id):
            raise ForbiddenException(
                "Only the mentor or an admin can complete a session",
                context={"guard": "mentor_or_admin"},
            )
        if session.status == SessionStatusEnum.COMPLETED:
            raise ConflictException("Session is already completed", context=_state_context(session, "not_completed"))
        if session.status not in (SessionStatusEnum.IN_PROGRESS, SessionStatusEnum.CONFIRMED):
            raise ConflictException(
                "Session cannot be completed from its current state",
                context=_state_context(session, "in_progress_or_confirmed"),
            )

        now = utc_now()
        if session.status == SessionStatusEnum.CONFIRMED and now < ensure_utc(session.scheduled_start_at):
            raise ConflictException(
                "Session has not started yet",
                context=_state_context(session, "scheduled_start_reached"),
            )
        started_at = ensure_utc(session.started_at or session.scheduled_start_at)
        session.completed_at = now
        session.actual_duration_minutes = max(0, round((now - started_at).total_seconds() / 60))
        self._transition(session, SessionStatusEnum.COMPLETED)
        await self.repository.save(session)

        payment = await self.settlement.hold_payout(session, now)
        await self.audit_repository.record_event(
            SessionCompleted(
                occurred_at=now,
                session_id=session.id,
                mentee_id=session.mentee_id,
                mentor_id=session.mentor_id,
                completed_at=now,
                actual_duration_minutes=session.actual_duration_minutes,
                payout_release_at=payment.payout_release_at if payment is not None else None,
            ),
        )
        return session

    async def cancel_session(self, session_id: UUID, reason: str, actor: Actor) -> MentorshipSession:
        """Cancel with a tiered refund keyed by hours until the scheduled start."""
        session = await self._load(session_id)
        self._ensure_participant_or_admin(session, actor)

        reason = normalize_reason(reason)
        if not settings.cancel_reason_min_length <= len(reason) <= settings.cancel_reason_max_length:
            raise ValidationFailedException(
                f"Cancellation reason must be between {settings.cancel_reason_min_length} "
                f"and {settings.cancel_reason_max_length} characters",
                context={"field": "reason", "guard": "reason_length", "current_state": str(session.status)},
            )
        if session.status not in CANCELLABLE_STATUSES:
            raise ConflictException(
                "Session cannot be cancelled from its current state",
                context=_state_context(session, "cancellable"),
            )

        now = utc_now()
        previous_status = session.status
        payment = await self.settlement.find_session_payment(session.id)
        percentage = 0
        if payment is not None and payment.status == PaymentStatusEnum.CAPTURED:
            percentage = refund_percentage(
                hours_between(now, session.scheduled_start_at),
                full_threshold_hours=settings.refund_full_threshold_hours,
                partial_threshold_hours=settings.refund_partial_threshold_hours,
                partial_percentage=settings.refund_partial_percentage,
            )
        refunded = await self.settlement.refund_cancellation(payment, percentage)

        await self._detach_slot(session)
        await self._close_pending_reschedule(session, actor.id)
        await self.jobs_repository.cancel(JobTypeEnum.RELEASE_UNPAID_SESSION, session.id)

        session.cancellation_reason = reason
        session.cancelled_by_id = actor.id
        session.cancelled_at = now
        session.refund_percentage = percentage
        session.refund_amount = refunded
        self._transition(session, SessionStatusEnum.CANCELLED)
        await self.repository.save(session)

        await self.audit_repository.record_event(
            SessionCancelled(
                occurred_at=now,
                session_id=session.id,
                mentee_id=session.mentee_id,
                mentor_id=session.mentor_id,
                cancelled_by_id=actor.id,
                previous_status=previous_status,
                reason=reason,
                refund_percentage=percentage,
                refund_amount=refunded,
            ),
        )
        return session

    async def mark_no_show(self, session_id: UUID, actor: Actor) -> MentorshipSession:
        """Administrative terminal marking; no refund, slot returned to the ledger."""
        if not actor.is_admin:
            raise ForbiddenException("Only admin can mark no-show", context={"guard": "admin_only"})
        session = await self._load(session_id)
        if session.status not in NO_SHOW_STATUSES:
            raise ConflictException(
                "Session cannot be marked as no-show",
                context=_state_context(session, "not_terminal"),
            )

        now = utc_now()
        previous_status = session.status
        await self._detach_slot(session)
        await self._close_pending_reschedule(session, actor.id)
        await self.jobs_repository.cancel(JobTypeEnum.RELEASE_UNPAID_SESSION, session.id)
        session.refund_percentage = 0
        session.refund_amount = ZERO_AMOUNT
        self._transition(session, SessionStatusEnum.NO_SHOW)
        await self.repository.save(session)

        await self.audit_repository.create_audit_log(
            actor_id=actor.id,
            action="sessions.no_show.mark",
            entity_type="session",
            entity_id=str(session.id),
            payload={"from_status": str(previous_status)},
        )
        await self.audit_repository.record_event(
            SessionNoShow(
                occurred_at=now,
                session_id=session.id,
                mentee_id=session.mentee_id,
                mentor_id=session.mentor_id,
                marked_by_id=actor.id,
                previous_status=previous_status,
            ),
        )
        return session

    async def release_unpaid_session(self, session_id: UUID, now: datetime) -> None:
        """Job handler: cancel a booking whose payment window lapsed."""
        session = await self.repository.get_session_by_id(session_id, for_update=True)
        if session is None or session.status != SessionStatusEnum.PENDING:
            return None
        payment = await self.settlement.find_session_payment(session.id)
        if payment is not None and payment.status == PaymentStatusEnum.CAPTURED:
            return None

        await self._detach_slot(session)
        session.cancellation_reason = UNPAID_RELEASE_REASON
        session.cancelled_at = now
        session.refund_percentage = 0
        session.refund_amount = ZERO_AMOUNT
        self._transition(session, SessionStatusEnum.CANCELLED)
        await self.repository.save(session)
        await self.audit_repository.record_event(
            SessionCancelled(
                occurred_at=now,
                session_id=session.id,
                mentee_id=session.mentee_id,
                mentor_id=session.mentor_id,
                cancelled_by_id=None,
                previous_status=SessionStatusEnum.PENDING,
                reason=UNPAID_RELEASE_REASON,
                refund_percentage=0,
                refund_amount=ZERO_AMOUNT,
            ),
        )
        return None

    async def get_session(self, session_id: UUID, actor: Actor) -> MentorshipSession:
        session = await self._load(session_id, for_update=False)
        self._ensure_participant_or_admin(session, actor)
        return session

    async def list_sessions(
        self,
        actor: Actor,
        status: SessionStatusEnum | None,
        limit: int,
        offset: int,
    ) -> tuple[list[MentorshipSession], int]:
        """Admins see every session; everyone else sees their own."""
        participant_id = None if actor.is_admin else actor.id
        return await self.repository.list_sessions(participant_id, status, limit, offset)


def build_sessions_service(session: AsyncSession) -> SessionsService:
    return SessionsService(
        repository=SessionsRepository(session),
        slot_ledger=build_scheduling_service(session),
        settlement=build_billing_service(session),
        reschedule_repository=RescheduleRepository(session),
        jobs_repository=JobsRepository(session),
        audit_repository=AuditRepository(session),
        conference_provider=get_conference_provider(),
    )


async def get_sessions_service(session: AsyncSession = Depends(get_db_session)) -> SessionsService:
    """Dependency provider for sessions service."""
    return build_sessions_service(session)
