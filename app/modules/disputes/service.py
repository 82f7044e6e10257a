"""Disputes business logic and the hook that holds back payouts."""

from __future__ import annotations

import logging
from datetime import timedelta
from decimal import Decimal
from uuid import UUID

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.database import get_db_session
from app.core.enums import (
    DisputeResolutionEnum,
    DisputeStatusEnum,
    PaymentStatusEnum,
    SessionStatusEnum,
)
from app.core.security import Actor
from app.modules.audit.events import DisputeOpened, DisputeResolved
from app.modules.audit.repository import AuditRepository
from app.modules.billing.service import BillingService, build_billing_service
from app.modules.disputes.models import SessionDispute
from app.modules.disputes.repository import OPEN_DISPUTE_STATUSES, DisputesRepository
from app.modules.disputes.schemas import DisputeCreate, DisputeResolve
from app.modules.sessions.repository import SessionsRepository
from app.shared.exceptions import (
    ConflictException,
    ForbiddenException,
    GoneException,
    NotFoundException,
    ValidationFailedException,
)
from app.shared.utils import ensure_utc, utc_now

settings = get_settings()
logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


class DisputesService:
    def __init__(
        self,
        repository: DisputesRepository,
        sessions_repository: SessionsRepository,
        settlement: BillingService,
        audit_repository: AuditRepository,
    ) -> None:
        self.repository = repository
        self.sessions_repository = sessions_repository
        self.settlement = settlement
        self.audit_repository = audit_repository

    @staticmethod
    def _require_admin(actor: Actor) -> None:
        if not actor.is_admin:
            raise ForbiddenException("Only admin can manage disputes", context={"guard": "admin_only"})

    async def _load_for_update(self, dispute_id: UUID) -> SessionDispute:
        dispute = await self.repository.get_dispute_by_id(dispute_id, for_update=True)
        if dispute is None:
            raise NotFoundException("Dispute not found")
        return dispute

    async def open_dispute(self, session_id: UUID, payload: DisputeCreate, actor: Actor) -> SessionDispute:
        """Mentee files a dispute within the window after completion."""
        session = await self.sessions_repository.get_session_by_id(session_id)
        if session is None:
            raise NotFoundException("Session not found")
        if actor.id != session.mentee_id:
            raise ForbiddenException("Only the mentee can dispute a session", context={"guard": "mentee_owner"})
        if session.status != SessionStatusEnum.COMPLETED or session.completed_at is None:
            raise ConflictException(
                "Only completed sessions can be disputed",
                context={"current_state": str(session.status), "guard": "status_completed"},
            )

        now = utc_now()
        closes_at = ensure_utc(session.completed_at) + timedelta(hours=settings.dispute_window_hours)
        if now > closes_at:
            raise GoneException(
                "Dispute window has closed",
                context={"current_state": str(session.status), "guard": "dispute_window", "closed_at": closes_at.isoformat()},
            )
        if await self.repository.get_dispute_by_session_id(session.id) is not None:
            raise ConflictException(
                "Session already has a dispute",
                context={"current_state": str(session.status), "guard": "single_dispute"},
            )

        dispute = await self.repository.create_dispute(
            session_id=session.id,
            mentee_id=actor.id,
            reason=payload.reason,
            description=payload.description,
        )
        await self.audit_repository.record_event(
            DisputeOpened(
                occurred_at=now,
                dispute_id=dispute.id,
                session_id=session.id,
                mentee_id=actor.id,
                reason=payload.reason,
            ),
        )
        logger.info("Dispute %s opened for session %s", dispute.id, session.id)
        return dispute

    async def start_review(self, dispute_id: UUID, actor: Actor) -> SessionDispute:
        self._require_admin(actor)
        dispute = await self._load_for_update(dispute_id)
        if dispute.status != DisputeStatusEnum.PENDING:
            raise ConflictException(
                "Only pending disputes can be taken into review",
                context={"current_state": str(dispute.status), "guard": "dispute_pending"},
            )
        dispute.status = DisputeStatusEnum.UNDER_REVIEW
        return await self.repository.save(dispute)

    async def resolve(self, dispute_id: UUID, payload: DisputeResolve, actor: Actor) -> SessionDispute:
        """Close a dispute, refund the mentee if granted, and re-arm payout release.

        The mentor's share of any refund is deducted from the held payout, or
        from available balance when the payout was already released.
        """
        self._require_admin(actor)
        dispute = await self._load_for_update(dispute_id)
        if dispute.status not in OPEN_DISPUTE_STATUSES:
            raise ConflictException(
                "Dispute is already closed",
                context={"current_state": str(dispute.status), "guard": "dispute_open"},
            )

        payment = await self.settlement.find_session_payment(dispute.session_id)
        refund = ZERO
        if payload.resolution != DisputeResolutionEnum.NO_REFUND:
            if payment is None or payment.status != PaymentStatusEnum.CAPTURED:
                raise ConflictException(
                    "Session has no captured payment to refund",
                    context={"current_state": str(dispute.status), "guard": "payment_captured"},
                )
            if payload.resolution == DisputeResolutionEnum.FULL_REFUND:
                refund = payment.amount
            else:
                refund = payload.refund_amount or ZERO
                if not ZERO < refund < payment.amount:
                    raise ValidationFailedException(
                        "Partial refund must be greater than zero and less than the paid amount",
                        context={"field": "refund_amount", "guard": "partial_refund_range"},
                    )
            await self.settlement.apply_dispute_refund(payment, refund)

        now = utc_now()
        previous_status = dispute.status
        dispute.status = (
            DisputeStatusEnum.REJECTED
            if payload.resolution == DisputeResolutionEnum.NO_REFUND
            else DisputeStatusEnum.RESOLVED
        )
        dispute.resolution = payload.resolution
        dispute.refund_amount = refund
        dispute.admin_notes = payload.admin_notes
        dispute.resolved_by_id = actor.id
        dispute.resolved_at = now
        await self.repository.save(dispute)

        if payment is not None:
            await self.settlement.rearm_payout_release(payment, now)

        await self.audit_repository.create_audit_log(
            actor_id=actor.id,
            action="disputes.resolve",
            entity_type="session_dispute",
            entity_id=str(dispute.id),
            payload={
                "from_status": str(previous_status),
                "to_status": str(dispute.status),
                "resolution": str(payload.resolution),
                "refund_amount": str(refund),
            },
        )
        await self.audit_repository.record_event(
            DisputeResolved(
                occurred_at=now,
                dispute_id=dispute.id,
                session_id=dispute.session_id,
                status=dispute.status,
                resolution=payload.resolution,
                refund_amount=refund,
            ),
        )
        logger.info("Dispute %s closed as %s", dispute.id, dispute.status)
        return dispute

    async def has_open_dispute(self, session_id: UUID) -> bool:
        return await self.repository.has_open_dispute(session_id)

    async def get_dispute(self, dispute_id: UUID, actor: Actor) -> SessionDispute:
        dispute = await self.repository.get_dispute_by_id(dispute_id)
        if dispute is None:
            raise NotFoundException("Dispute not found")
        if not (actor.is_admin or actor.id == dispute.mentee_id):
            raise ForbiddenException("Access denied", context={"guard": "owner_or_admin"})
        return dispute

    async def list_disputes(
        self,
        actor: Actor,
        status: DisputeStatusEnum | None,
        limit: int,
        offset: int,
    ) -> tuple[list[SessionDispute], int]:
        mentee_id = None if actor.is_admin else actor.id
        return await self.repository.list_disputes(status, mentee_id, limit, offset)


def build_disputes_service(session: AsyncSession) -> DisputesService:
    return DisputesService(
        repository=DisputesRepository(session),
        sessions_repository=SessionsRepository(session),
        settlement=build_billing_service(session),
        audit_repository=AuditRepository(session),
    )


async def get_disputes_service(session: AsyncSession = Depends(get_db_session)) -> DisputesService:
    """Dependency provider for disputes service."""
    return build_disputes_service(session)
