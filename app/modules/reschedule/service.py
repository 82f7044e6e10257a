"""Reschedule workflow: mutual-consent time changes for confirmed sessions."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from uuid import UUID

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.database import get_db_session
from app.core.enums import RescheduleStatusEnum, RoleEnum, SessionStatusEnum
from app.core.metrics import record_session_transition
from app.core.security import Actor
from app.modules.audit.events import RescheduleApproved, RescheduleRejected, RescheduleRequested
from app.modules.audit.repository import AuditRepository
from app.modules.reschedule.models import RescheduleRequest
from app.modules.reschedule.repository import RescheduleRepository
from app.modules.reschedule.schemas import RescheduleCreate, RescheduleRead
from app.modules.scheduling.service import SchedulingService, build_scheduling_service
from app.modules.sessions.models import MentorshipSession
from app.modules.sessions.repository import SessionsRepository
from app.shared.exceptions import (
    ConflictException,
    ForbiddenException,
    GoneException,
    NotFoundException,
    TooSoonException,
    ValidationFailedException,
)
from app.shared.utils import ensure_utc, normalize_reason, utc_now

settings = get_settings()
logger = logging.getLogger(__name__)


def is_request_expired(
    request: RescheduleRequest,
    now: datetime,
    expiry_hours: int = 48,
) -> bool:
    """A pending request left unanswered for ``expiry_hours`` is expired.

    Nothing auto-rejects the request, but an expired request can no longer
    be approved.
    """
    if request.status != RescheduleStatusEnum.PENDING:
        return False
    return ensure_utc(now) >= ensure_utc(request.requested_at) + timedelta(hours=expiry_hours)


def build_reschedule_read(request: RescheduleRequest, now: datetime | None = None) -> RescheduleRead:
    read = RescheduleRead.model_validate(request)
    expired = is_request_expired(request, now or utc_now(), settings.reschedule_expiry_hours)
    return read.model_copy(update={"is_expired": expired})


class RescheduleService:
    """Propose, approve and reject reschedule requests."""

    def __init__(
        self,
        repository: RescheduleRepository,
        sessions_repository: SessionsRepository,
        slot_ledger: SchedulingService,
        audit_repository: AuditRepository,
    ) -> None:
        self.repository = repository
        self.sessions_repository = sessions_repository
        self.slot_ledger = slot_ledger
        self.audit_repository = audit_repository

    async def _load_session(self, session_id: UUID) -> MentorshipSession:
        session = await self.sessions_repository.get_session_by_id(session_id, for_update=True)
        if session is None:
            raise NotFoundException("Session not found")
        return session

    async def _load_for_decision(self, request_id: UUID) -> tuple[RescheduleRequest, MentorshipSession]:
        """Lock the session row, then the request row.

        Cancellation locks the session before touching its pending request,
        so deciding must take the locks in the same order.
        """
        request = await self.repository.get_request_by_id(request_id)
        if request is None:
            raise NotFoundException("Reschedule request not found")
        session = await self._load_session(request.session_id)
        request = await self.repository.get_request_by_id(request_id, for_update=True)
        if request is None or request.session_id != session.id:
            raise NotFoundException("Reschedule request not found")
        return request, session

    @staticmethod
    def _validate_reason(reason: str) -> str:
        reason = normalize_reason(reason)
        if not settings.reschedule_reason_min_length <= len(reason) <= settings.reschedule_reason_max_length:
            raise ValidationFailedException(
                f"Reschedule reason must be between {settings.reschedule_reason_min_length} "
                f"and {settings.reschedule_reason_max_length} characters",
                context={"field": "reason", "guard": "reason_length"},
            )
        return reason

    @staticmethod
    def _ensure_decider(request: RescheduleRequest, session: MentorshipSession, actor: Actor) -> None:
        if actor.id == request.requested_by_id:
            raise ForbiddenException(
                "The requester cannot decide their own reschedule request",
                context={"guard": "counterparty_or_admin"},
            )
        if not (actor.is_admin or actor.id in (session.mentee_id, session.mentor_id)):
            raise ForbiddenException(
                "Only the counterparty or an admin can decide",
                context={"guard": "counterparty_or_admin"},
            )

    @staticmethod
    def _ensure_pending(request: RescheduleRequest) -> None:
        if request.status != RescheduleStatusEnum.PENDING:
            raise ConflictException(
                "Reschedule request was already decided",
                context={"current_state": str(request.status), "guard": "request_pending"},
            )

    @staticmethod
    def _return_to_confirmed(session: MentorshipSession) -> None:
        from_status = session.status
        session.status = SessionStatusEnum.CONFIRMED
        session.active_reschedule_id = None
        record_session_transition(from_status, SessionStatusEnum.CONFIRMED)

    async def propose(self, session_id: UUID, payload: RescheduleCreate, actor: Actor) -> RescheduleRequest:
        session = await self._load_session(session_id)
        if actor.id == session.mentee_id:
            requester_role = RoleEnum.MENTEE
        elif actor.id == session.mentor_id:
            requester_role = RoleEnum.MENTOR
        else:
            raise ForbiddenException("Only participants can reschedule", context={"guard": "participant"})

        if session.status == SessionStatusEnum.PENDING_RESCHEDULE:
            raise ConflictException(
                "A reschedule request is already pending",
                context={"current_state": str(session.status), "guard": "single_pending_request"},
            )
        if session.status != SessionStatusEnum.CONFIRMED:
            raise ConflictException(
                "Only confirmed sessions can be rescheduled",
                context={"current_state": str(session.status), "guard": "status_confirmed"},
            )

        reason = self._validate_reason(payload.reason)

        proposed_start_at = payload.proposed_start_at
        if payload.target_slot_id is not None:
            slot = await self.slot_ledger.get_slot(payload.target_slot_id)
            if slot.mentor_id != session.mentor_id or slot.duration_minutes != session.duration_minutes:
                raise ValidationFailedException(
                    "Target slot must belong to the same mentor and have the same duration",
                    context={"field": "target_slot_id", "guard": "compatible_slot"},
                )
            if slot.is_booked:
                raise ConflictException(
                    "Target slot is already booked",
                    context={"current_state": "booked", "guard": "slot_available"},
                )
            proposed_start_at = slot.start_at
        proposed_start_at = ensure_utc(proposed_start_at)

        now = utc_now()
        notice = timedelta(hours=settings.reschedule_min_notice_hours)
        if proposed_start_at < now + notice:
            raise TooSoonException(
                f"New time must be at least {settings.reschedule_min_notice_hours} hours from now",
                context={"current_state": str(session.status), "guard": "proposed_min_notice"},
            )
        if now > ensure_utc(session.scheduled_start_at) - notice:
            raise TooSoonException(
                f"Sessions can only be rescheduled {settings.reschedule_min_notice_hours} hours before start",
                context={"current_state": str(session.status), "guard": "current_min_notice"},
            )

        request = await self.repository.create_request(
            session_id=session.id,
            requested_by_id=actor.id,
            requester_role=requester_role,
            original_start_at=session.scheduled_start_at,
            proposed_start_at=proposed_start_at,
            target_slot_id=payload.target_slot_id,
            reason=reason,
            requested_at=now,
        )
        from_status = session.status
        session.status = SessionStatusEnum.PENDING_RESCHEDULE
        session.active_reschedule_id = request.id
        record_session_transition(from_status, session.status)
        await self.sessions_repository.save(session)

        await self.audit_repository.record_event(
            RescheduleRequested(
                occurred_at=now,
                request_id=request.id,
                session_id=session.id,
                requested_by_id=actor.id,
                requester_role=requester_role,
                proposed_start_at=proposed_start_at,
                reason=reason,
            ),
        )
        logger.info("Reschedule %s proposed for session %s", request.id, session.id)
        return request

    async def approve(self, request_id: UUID, actor: Actor) -> RescheduleRequest:
        """Move the session to the proposed time.

        A request naming a target slot claims that slot and frees the old one.
        A free-form time frees the old slot and detaches the session from the
        slot ledger.
        """
        request, session = await self._load_for_decision(request_id)
        self._ensure_decider(request, session, actor)
        self._ensure_pending(request)

        now = utc_now()
        if is_request_expired(request, now, settings.reschedule_expiry_hours):
            raise GoneException(
                "Reschedule request has expired",
                context={"current_state": str(request.status), "guard": "request_not_expired"},
            )
        new_start = ensure_utc(request.proposed_start_at)
        if new_start < now + timedelta(hours=settings.reschedule_min_notice_hours):
            raise GoneException(
                "Proposed time is now inside the minimum notice window",
                context={"current_state": str(request.status), "guard": "proposed_min_notice"},
            )
        new_end = new_start + timedelta(minutes=session.duration_minutes)
        if await self.sessions_repository.has_overlapping_session(
            session.mentee_id,
            new_start,
            new_end,
            exclude_session_id=session.id,
        ):
            raise ConflictException(
                "Mentee already has a session at the proposed time",
                context={"current_state": str(session.status), "guard": "mentee_available"},
            )

        await self.slot_ledger.release_slot(session.time_slot_id)
        session.time_slot_id = None
        if request.target_slot_id is not None:
            if not await self.slot_ledger.claim_for_reschedule(request.target_slot_id, session.id):
                raise ConflictException(
                    "Target slot is no longer available",
                    context={"current_state": "booked", "guard": "slot_available"},
                )
            session.time_slot_id = request.target_slot_id

        session.scheduled_start_at = new_start
        session.scheduled_end_at = new_end
        self._return_to_confirmed(session)
        await self.sessions_repository.save(session)

        request.status = RescheduleStatusEnum.APPROVED
        request.decided_at = now
        request.decided_by_id = actor.id
        await self.repository.save(request)

        await self.audit_repository.record_event(
            RescheduleApproved(
                occurred_at=now,
                request_id=request.id,
                session_id=session.id,
                decided_by_id=actor.id,
                scheduled_start_at=new_start,
                scheduled_end_at=new_end,
            ),
        )
        logger.info("Reschedule %s approved, session %s moved to %s", request.id, session.id, new_start.isoformat())
        return request

    async def reject(self, request_id: UUID, actor: Actor) -> RescheduleRequest:
        request, session = await self._load_for_decision(request_id)
        self._ensure_decider(request, session, actor)
        self._ensure_pending(request)

        now = utc_now()
        self._return_to_confirmed(session)
        await self.sessions_repository.save(session)

        request.status = RescheduleStatusEnum.REJECTED
        request.decided_at = now
        request.decided_by_id = actor.id
        await self.repository.save(request)

        await self.audit_repository.record_event(
            RescheduleRejected(
                occurred_at=now,
                request_id=request.id,
                session_id=session.id,
                decided_by_id=actor.id,
            ),
        )
        return request

    async def get_request(self, request_id: UUID, actor: Actor) -> RescheduleRequest:
        request = await self.repository.get_request_by_id(request_id)
        if request is None:
            raise NotFoundException("Reschedule request not found")
        session = await self.sessions_repository.get_session_by_id(request.session_id)
        if session is None:
            raise NotFoundException("Session not found")
        if not (actor.is_admin or actor.id in (session.mentee_id, session.mentor_id)):
            raise ForbiddenException("Not allowed to view this request", context={"guard": "participant_or_admin"})
        return request

    async def list_for_session(self, session_id: UUID, actor: Actor) -> list[RescheduleRequest]:
        session = await self.sessions_repository.get_session_by_id(session_id)
        if session is None:
            raise NotFoundException("Session not found")
        if not (actor.is_admin or actor.id in (session.mentee_id, session.mentor_id)):
            raise ForbiddenException("Not allowed to view this session", context={"guard": "participant_or_admin"})
        return await self.repository.list_for_session(session_id)


def build_reschedule_service(session: AsyncSession) -> RescheduleService:
    return RescheduleService(
        repository=RescheduleRepository(session),
        sessions_repository=SessionsRepository(session),
        slot_ledger=build_scheduling_service(session),
        audit_repository=AuditRepository(session),
    )


async def get_reschedule_service(session: AsyncSession = Depends(get_db_session)) -> RescheduleService:
    """Dependency provider for reschedule service."""
    return build_reschedule_service(session)
