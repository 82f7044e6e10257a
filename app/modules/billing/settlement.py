"""Money arithmetic for commission splits and cancellation refunds.

All amounts are ``Decimal`` quantized to cents with half-up rounding. The
mentor payout is derived by subtraction so that ``payout + commission``
always equals the gross amount, whatever the rounding of the commission.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

CENT = Decimal("0.01")
HUNDRED = Decimal("100")

DEFAULT_COMMISSION_RATE = Decimal("0.15")


def quantize_money(value: Decimal | int | str) -> Decimal:
    """Round to cents, half-up."""
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True, slots=True)
class SettlementSplit:
    gross: Decimal
    commission: Decimal
    payout: Decimal


def commission_for(amount: Decimal, rate: Decimal = DEFAULT_COMMISSION_RATE) -> Decimal:
    return quantize_money(Decimal(amount) * rate)


def split_amount(amount: Decimal, rate: Decimal = DEFAULT_COMMISSION_RATE) -> SettlementSplit:
    """Split a gross amount into platform commission and mentor payout."""
    gross = quantize_money(amount)
    if gross < 0:
        raise ValueError("Amount must not be negative")
    commission = commission_for(gross, rate)
    return SettlementSplit(gross=gross, commission=commission, payout=gross - commission)


def refund_percentage(
    hours_until_start: float,
    *,
    full_threshold_hours: int = 48,
    partial_threshold_hours: int = 24,
    partial_percentage: int = 50,
) -> int:
    """Refund tier keyed by notice given.

    Strictly more than ``full_threshold_hours`` returns everything; anything in
    ``[partial_threshold_hours, full_threshold_hours]`` returns the partial
    share; less than ``partial_threshold_hours`` returns nothing.
    """
    if hours_until_start > full_threshold_hours:
        return 100
    if hours_until_start >= partial_threshold_hours:
        return partial_percentage
    return 0


def refund_amount(price: Decimal, percentage: int) -> Decimal:
    return quantize_money(Decimal(price) * Decimal(percentage) / HUNDRED)


def payout_share_of_refund(split: SettlementSplit, refund: Decimal) -> Decimal:
    """Portion of a refund that comes out of the mentor payout.

    The refund is borne proportionally by mentor and platform, so the mentor
    loses the payout side of splitting the refunded amount.
    """
    if refund <= 0 or split.gross == 0:
        return Decimal("0.00")
    if refund >= split.gross:
        return split.payout
    return quantize_money(refund * split.payout / split.gross)
