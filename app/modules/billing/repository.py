"""Billing repository layer."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.enums import PaymentStatusEnum, PayoutStatusEnum
from app.modules.billing.models import MentorBalance, Payment, Payout

ZERO = Decimal("0.00")


class BillingRepository:
    """DB access methods for payments, balances and payouts."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create_payment(
        self,
        session_id: UUID,
        mentee_id: UUID,
        mentor_id: UUID,
        amount: Decimal,
        currency: str,
        provider: str,
        provider_intent_id: str | None,
    ) -> Payment:
        payment = Payment(
            session_id=session_id,
            mentee_id=mentee_id,
            mentor_id=mentor_id,
            amount=amount,
            currency=currency.upper(),
            provider=provider,
            provider_intent_id=provider_intent_id,
            status=PaymentStatusEnum.PENDING,
            payout_adjustment=ZERO,
        )
        self.session.add(payment)
        await self.session.flush()
        return payment

    async def get_payment_by_id(self, payment_id: UUID, *, for_update: bool = False) -> Payment | None:
        stmt = select(Payment).where(Payment.id == payment_id)
        if for_update:
            stmt = stmt.with_for_update()
        return await self.session.scalar(stmt)

    async def get_payment_by_session_id(self, session_id: UUID) -> Payment | None:
        stmt = select(Payment).where(Payment.session_id == session_id)
        return await self.session.scalar(stmt)

    async def save_payment(self, payment: Payment) -> Payment:
        await self.session.flush()
        return payment

    async def get_balance(self, mentor_id: UUID) -> MentorBalance | None:
        stmt = select(MentorBalance).where(MentorBalance.mentor_id == mentor_id)
        return await self.session.scalar(stmt)

    async def get_balance_for_update(self, mentor_id: UUID) -> MentorBalance:
        """Lock the mentor's balance row, creating it on first use."""
        stmt = select(MentorBalance).where(MentorBalance.mentor_id == mentor_id).with_for_update()
        balance = await self.session.scalar(stmt)
        if balance is None:
            balance = MentorBalance(
                mentor_id=mentor_id,
                available_balance=ZERO,
                pending_balance=ZERO,
                total_earnings=ZERO,
            )
            self.session.add(balance)
            await self.session.flush()
        return balance

    async def save_balance(self, balance: MentorBalance) -> MentorBalance:
        await self.session.flush()
        return balance

    async def create_payout(
        self,
        mentor_id: UUID,
        amount: Decimal,
        currency: str,
        requested_at: datetime,
    ) -> Payout:
        payout = Payout(
            mentor_id=mentor_id,
            amount=amount,
            currency=currency,
            status=PayoutStatusEnum.PENDING,
            requested_at=requested_at,
        )
        self.session.add(payout)
        await self.session.flush()
        return payout

    async def get_payout_by_id(self, payout_id: UUID, *, for_update: bool = False) -> Payout | None:
        stmt = select(Payout).where(Payout.id == payout_id)
        if for_update:
            stmt = stmt.with_for_update()
        return await self.session.scalar(stmt)

    async def save_payout(self, payout: Payout) -> Payout:
        await self.session.flush()
        return payout

    async def list_payouts(
        self,
        mentor_id: UUID | None,
        limit: int,
        offset: int,
    ) -> tuple[list[Payout], int]:
        base_stmt: Select[tuple[Payout]] = select(Payout)
        if mentor_id is not None:
            base_stmt = base_stmt.where(Payout.mentor_id == mentor_id)

        count_stmt = select(func.count()).select_from(base_stmt.subquery())
        total = int((await self.session.scalar(count_stmt)) or 0)

        stmt = base_stmt.order_by(Payout.requested_at.desc()).limit(limit).offset(offset)
        items = (await self.session.scalars(stmt)).all()
        return items, total
