"""Settlement engine: payments, mentor balances, payout hold and withdrawals."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.cache import CacheBackend, get_cache_backend
from app.core.config import get_settings
from app.core.database import get_db_session
from app.core.enums import JobTypeEnum, PaymentStatusEnum, PayoutStatusEnum, RoleEnum
from app.core.metrics import record_payout_release
from app.core.security import Actor
from app.modules.audit.events import PayoutReleased, PayoutRequested, PayoutStatusChanged
from app.modules.audit.repository import AuditRepository
from app.modules.billing.gateway import PaymentGateway, get_payment_gateway
from app.modules.billing.models import MentorBalance, Payment, Payout
from app.modules.billing.repository import BillingRepository
from app.modules.billing.schemas import (
    BalanceRead,
    PayoutReleaseResult,
    PayoutStatusUpdate,
    WithdrawalRequest,
)
from app.modules.billing.settlement import (
    SettlementSplit,
    payout_share_of_refund,
    quantize_money,
    refund_amount,
    split_amount,
)
from app.modules.disputes.repository import DisputesRepository
from app.modules.jobs.repository import JobsRepository
from app.shared.exceptions import (
    BelowMinimumException,
    ConflictException,
    ForbiddenException,
    InsufficientBalanceException,
    NotFoundException,
    PaymentFailedException,
    ValidationFailedException,
)
from app.shared.utils import ensure_utc, utc_now

if TYPE_CHECKING:
    from app.modules.sessions.models import MentorshipSession

settings = get_settings()
logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


def _balance_cache_key(mentor_id: UUID) -> str:
    return f"balance:{mentor_id}"


class BillingService:
    """Billing domain service."""

    def __init__(
        self,
        repository: BillingRepository,
        audit_repository: AuditRepository,
        jobs_repository: JobsRepository,
        disputes_repository: DisputesRepository,
        gateway: PaymentGateway,
        cache: CacheBackend,
    ) -> None:
        self.repository = repository
        self.audit_repository = audit_repository
        self.jobs_repository = jobs_repository
        self.disputes_repository = disputes_repository
        self.gateway = gateway
        self.cache = cache

    async def _invalidate_balance(self, mentor_id: UUID) -> None:
        await self.cache.delete(_balance_cache_key(mentor_id))

    async def open_payment(self, session: MentorshipSession) -> tuple[Payment, str | None]:
        """Create the session's payment intent, reusing a pending one on retry."""
        existing = await self.repository.get_payment_by_session_id(session.id)
        if existing is not None:
            if existing.status != PaymentStatusEnum.PENDING:
                raise ConflictException(
                    "Session payment already settled",
                    context={"current_state": str(existing.status), "guard": "payment_pending"},
                )
            return existing, None

        intent = await self.gateway.create_intent(session.price, session.currency, str(session.id))
        payment = await self.repository.create_payment(
            session_id=session.id,
            mentee_id=session.mentee_id,
            mentor_id=session.mentor_id,
            amount=quantize_money(session.price),
            currency=session.currency,
            provider=self.gateway.name,
            provider_intent_id=intent.intent_id,
        )
        return payment, intent.client_secret

    async def capture_payment(self, payment: Payment, session: MentorshipSession) -> Payment:
        """Confirm the intent with the provider and freeze the commission split once."""
        if payment.status == PaymentStatusEnum.CAPTURED:
            return payment
        if payment.status != PaymentStatusEnum.PENDING:
            raise ConflictException(
                "Payment cannot be captured",
                context={"current_state": str(payment.status), "guard": "payment_pending"},
            )

        charge = await self.gateway.confirm(payment.provider_intent_id or "")
        if not charge.is_captured:
            logger.warning("Payment %s not captured by provider: %s", payment.id, charge.status)
            raise PaymentFailedException(
                "Payment was not captured by the provider",
                context={
                    "current_state": str(session.status),
                    "guard": "payment_captured",
                    "provider_status": charge.status,
                },
            )
        if quantize_money(charge.amount) != payment.amount or payment.amount != quantize_money(session.price):
            raise PaymentFailedException(
                "Captured amount does not match session price",
                context={"current_state": str(session.status), "guard": "amount_matches_price"},
            )

        split = split_amount(payment.amount, settings.platform_commission_rate)
        payment.platform_commission = split.commission
        payment.mentor_payout_amount = split.payout
        payment.provider_transaction_id = charge.transaction_id
        payment.status = PaymentStatusEnum.CAPTURED
        payment.paid_at = utc_now()
        return await self.repository.save_payment(payment)

    async def refund_cancellation(self, payment: Payment | None, percentage: int) -> Decimal:
        """Refund the tiered share of a captured payment. Returns the refunded amount."""
        if payment is None or payment.status != PaymentStatusEnum.CAPTURED:
            return ZERO
        if payment.refunded_at is not None:
            raise ConflictException(
                "Payment was already refunded",
                context={"current_state": str(payment.status), "guard": "single_refund"},
            )

        amount = refund_amount(payment.amount, percentage)
        payment.refund_percentage = percentage
        payment.refund_amount = amount
        if amount > ZERO:
            await self.gateway.refund(payment.provider_transaction_id or "", amount)
            payment.status = PaymentStatusEnum.REFUNDED
            payment.refunded_at = utc_now()
        await self.repository.save_payment(payment)
        return amount

    async def hold_payout(self, session: MentorshipSession, completed_at: datetime) -> Payment | None:
        """Credit the payout to pending balance and schedule its release."""
        payment = await self.repository.get_payment_by_session_id(session.id)
        if payment is None or payment.status != PaymentStatusEnum.CAPTURED:
            logger.warning("Session %s completed without a captured payment", session.id)
            return None
        if payment.payout_release_at is not None:
            return payment

        release_at = ensure_utc(completed_at) + timedelta(hours=settings.payout_hold_hours)
        payout = payment.mentor_payout_amount or ZERO

        balance = await self.repository.get_balance_for_update(payment.mentor_id)
        balance.pending_balance += payout
        balance.total_earnings += payout
        await self.repository.save_balance(balance)

        payment.payout_release_at = release_at
        await self.repository.save_payment(payment)
        await self.jobs_repository.schedule(JobTypeEnum.RELEASE_PAYOUT, payment.id, release_at)
        await self._invalidate_balance(payment.mentor_id)
        logger.info("Payout %s for session %s held until %s", payout, session.id, release_at.isoformat())
        return payment

    async def release_payout(self, payment_id: UUID, now: datetime | None = None) -> PayoutReleaseResult:
        """Move a held payout to available balance unless a dispute is open."""
        payment = await self.repository.get_payment_by_id(payment_id, for_update=True)
        if payment is None:
            raise NotFoundException("Payment not found")
        if payment.payout_released_at is not None:
            return PayoutReleaseResult(released=False, amount=payment.released_amount or ZERO)
        if payment.payout_release_at is None or payment.mentor_payout_amount is None:
            raise ConflictException(
                "Payout is not on hold",
                context={"current_state": str(payment.status), "guard": "payout_held"},
            )

        now = ensure_utc(now or utc_now())
        release_at = ensure_utc(payment.payout_release_at)
        if now < release_at:
            return PayoutReleaseResult(released=False, amount=ZERO, deferred_until=release_at)

        if await self.disputes_repository.has_open_dispute(payment.session_id):
            deferred_until = now + timedelta(minutes=settings.payout_dispute_recheck_minutes)
            record_payout_release("deferred")
            logger.info("Payout for payment %s deferred by open dispute", payment.id)
            return PayoutReleaseResult(released=False, amount=ZERO, deferred_until=deferred_until)

        amount = max(payment.mentor_payout_amount - payment.payout_adjustment, ZERO)
        balance = await self.repository.get_balance_for_update(payment.mentor_id)
        balance.pending_balance -= amount
        balance.available_balance += amount
        await self.repository.save_balance(balance)

        payment.payout_released_at = now
        payment.released_amount = amount
        await self.repository.save_payment(payment)
        await self.audit_repository.record_event(
            PayoutReleased(
                occurred_at=now,
                payment_id=payment.id,
                session_id=payment.session_id,
                mentor_id=payment.mentor_id,
                amount=amount,
            ),
        )
        await self._invalidate_balance(payment.mentor_id)
        record_payout_release("released")
        logger.info("Released payout %s for payment %s", amount, payment.id)
        return PayoutReleaseResult(released=True, amount=amount)

    async def run_payout_release_job(self, payment_id: UUID, now: datetime) -> datetime | None:
        """Job handler adapter; returns the next due time when deferred."""
        result = await self.release_payout(payment_id, now)
        return result.deferred_until

    async def rearm_payout_release(self, payment: Payment, now: datetime) -> datetime | None:
        """Re-schedule a held payout's release after a dispute closes, never before the hold ends."""
        if payment.payout_release_at is None or payment.payout_released_at is not None:
            return None
        due_at = max(ensure_utc(payment.payout_release_at), ensure_utc(now))
        await self.jobs_repository.schedule(JobTypeEnum.RELEASE_PAYOUT, payment.id, due_at)
        return due_at

    async def apply_dispute_refund(self, payment: Payment, refund: Decimal) -> Decimal:
        """Refund a captured payment after a dispute; returns the mentor's share of it."""
        if payment.status != PaymentStatusEnum.CAPTURED or payment.refunded_at is not None:
            raise ConflictException(
                "Payment cannot be refunded",
                context={"current_state": str(payment.status), "guard": "single_refund"},
            )
        refund = quantize_money(refund)
        if refund <= ZERO or refund > payment.amount:
            raise ValidationFailedException(
                "Refund must be positive and not exceed the paid amount",
                context={"field": "refund_amount", "guard": "refund_within_amount"},
            )

        await self.gateway.refund(payment.provider_transaction_id or "", refund)
        payment.status = PaymentStatusEnum.REFUNDED
        payment.refund_amount = refund
        payment.refund_percentage = int(
            (refund * 100 / payment.amount).quantize(Decimal("1"), rounding=ROUND_HALF_UP),
        )
        payment.refunded_at = utc_now()

        split = SettlementSplit(
            gross=payment.amount,
            commission=payment.platform_commission or ZERO,
            payout=payment.mentor_payout_amount or ZERO,
        )
        deduction = payout_share_of_refund(split, refund)
        balance = await self.repository.get_balance_for_update(payment.mentor_id)
        if payment.payout_released_at is None:
            payment.payout_adjustment += deduction
            balance.pending_balance -= deduction
        else:
            balance.available_balance -= deduction
        balance.total_earnings -= deduction
        await self.repository.save_balance(balance)
        await self.repository.save_payment(payment)
        await self._invalidate_balance(payment.mentor_id)
        return deduction

    async def request_withdrawal(self, payload: WithdrawalRequest, actor: Actor) -> Payout:
        """Withdraw released earnings; debits available balance immediately."""
        if not actor.has_role(RoleEnum.MENTOR):
            raise ForbiddenException("Only mentors can request payouts", context={"guard": "mentor_only"})

        amount = quantize_money(payload.amount)
        if amount < settings.payout_minimum_amount:
            raise BelowMinimumException(
                f"Minimum payout is {settings.payout_minimum_amount}",
                context={"guard": "payout_minimum", "minimum": str(settings.payout_minimum_amount)},
            )

        balance = await self.repository.get_balance_for_update(actor.id)
        if amount > balance.available_balance:
            raise InsufficientBalanceException(
                "Requested amount exceeds available balance",
                context={"guard": "available_balance", "available": str(balance.available_balance)},
            )

        balance.available_balance -= amount
        await self.repository.save_balance(balance)
        now = utc_now()
        payout = await self.repository.create_payout(actor.id, amount, settings.currency, now)
        await self.audit_repository.create_audit_log(
            actor_id=actor.id,
            action="billing.payout.request",
            entity_type="payout",
            entity_id=str(payout.id),
            payload={"amount": str(amount)},
        )
        await self.audit_repository.record_event(
            PayoutRequested(occurred_at=now, payout_id=payout.id, mentor_id=actor.id, amount=amount),
        )
        await self._invalidate_balance(actor.id)
        return payout

    async def update_payout_status(
        self,
        payout_id: UUID,
        payload: PayoutStatusUpdate,
        actor: Actor,
    ) -> Payout:
        """Operator transition; mentors may only cancel their own pending payout."""
        payout = await self.repository.get_payout_by_id(payout_id, for_update=True)
        if payout is None:
            raise NotFoundException("Payout not found")

        status = payload.status
        if not actor.is_admin:
            is_owner_cancel = payout.mentor_id == actor.id and status == PayoutStatusEnum.CANCELLED
            if not is_owner_cancel:
                raise ForbiddenException(
                    "Only admin can change payout status",
                    context={"guard": "admin_only"},
                )

        if payout.status == status:
            return payout
        previous_status = payout.status

        allowed_transitions: dict[PayoutStatusEnum, set[PayoutStatusEnum]] = {
            PayoutStatusEnum.PENDING: {PayoutStatusEnum.PROCESSING, PayoutStatusEnum.CANCELLED},
            PayoutStatusEnum.PROCESSING: {PayoutStatusEnum.COMPLETED, PayoutStatusEnum.FAILED},
            PayoutStatusEnum.COMPLETED: set(),
            PayoutStatusEnum.FAILED: set(),
            PayoutStatusEnum.CANCELLED: set(),
        }
        if status not in allowed_transitions[payout.status]:
            raise ConflictException(
                f"Invalid payout status transition: {payout.status} -> {status}",
                context={"current_state": str(payout.status), "guard": "payout_transition"},
            )

        now = utc_now()
        if status == PayoutStatusEnum.PROCESSING:
            payout.processed_at = now
        elif status == PayoutStatusEnum.COMPLETED:
            payout.completed_at = now
        elif status in (PayoutStatusEnum.FAILED, PayoutStatusEnum.CANCELLED):
            if status == PayoutStatusEnum.CANCELLED:
                payout.cancelled_at = now
            payout.failure_reason = payload.failure_reason
            balance = await self.repository.get_balance_for_update(payout.mentor_id)
            balance.available_balance += payout.amount
            await self.repository.save_balance(balance)
            await self._invalidate_balance(payout.mentor_id)

        payout.status = status
        await self.repository.save_payout(payout)
        await self.audit_repository.create_audit_log(
            actor_id=actor.id,
            action="billing.payout.status.update",
            entity_type="payout",
            entity_id=str(payout.id),
            payload={
                "from_status": str(previous_status),
                "to_status": str(status),
                "failure_reason": payload.failure_reason,
            },
        )
        await self.audit_repository.record_event(
            PayoutStatusChanged(
                occurred_at=now,
                payout_id=payout.id,
                mentor_id=payout.mentor_id,
                from_status=previous_status,
                to_status=status,
            ),
        )
        return payout

    async def get_balance(self, mentor_id: UUID, actor: Actor) -> BalanceRead:
        """Balance read served from cache when possible."""
        if not actor.is_admin and actor.id != mentor_id:
            raise ForbiddenException("Access denied", context={"guard": "owner_or_admin"})

        cached = await self.cache.get(_balance_cache_key(mentor_id))
        if cached is not None:
            return BalanceRead.model_validate_json(cached)

        balance = await self.repository.get_balance(mentor_id)
        if balance is None:
            balance = MentorBalance(
                mentor_id=mentor_id,
                available_balance=ZERO,
                pending_balance=ZERO,
                total_earnings=ZERO,
            )
        result = BalanceRead.model_validate(balance)
        await self.cache.set(
            _balance_cache_key(mentor_id),
            result.model_dump_json(),
            ttl_seconds=settings.cache_ttl_seconds,
        )
        return result

    async def get_payment(self, payment_id: UUID, *, for_update: bool = False) -> Payment | None:
        return await self.repository.get_payment_by_id(payment_id, for_update=for_update)

    async def find_session_payment(self, session_id: UUID) -> Payment | None:
        return await self.repository.get_payment_by_session_id(session_id)

    async def get_session_payment(self, session_id: UUID, actor: Actor) -> Payment:
        payment = await self.repository.get_payment_by_session_id(session_id)
        if payment is None:
            raise NotFoundException("Payment not found")
        if not actor.is_admin and actor.id not in (payment.mentee_id, payment.mentor_id):
            raise ForbiddenException("Access denied", context={"guard": "participant_or_admin"})
        return payment

    async def list_payouts(
        self,
        actor: Actor,
        mentor_id: UUID | None,
        limit: int,
        offset: int,
    ) -> tuple[list[Payout], int]:
        """List payouts; mentors see only their own."""
        if not actor.is_admin:
            if mentor_id is not None and mentor_id != actor.id:
                raise ForbiddenException("Access denied", context={"guard": "owner_or_admin"})
            mentor_id = actor.id
        return await self.repository.list_payouts(mentor_id=mentor_id, limit=limit, offset=offset)


def build_billing_service(session: AsyncSession, gateway: PaymentGateway | None = None) -> BillingService:
    return BillingService(
        repository=BillingRepository(session),
        audit_repository=AuditRepository(session),
        jobs_repository=JobsRepository(session),
        disputes_repository=DisputesRepository(session),
        gateway=gateway or get_payment_gateway(),
        cache=get_cache_backend(),
    )


async def get_billing_service(session: AsyncSession = Depends(get_db_session)) -> BillingService:
    """Dependency provider for billing service."""
    return build_billing_service(session)
