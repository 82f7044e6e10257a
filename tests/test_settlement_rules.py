from __future__ import annotations

from decimal import Decimal

import pytest
from hypothesis import given
from hypothesis import strategies as st

from app.modules.billing.settlement import (
    SettlementSplit,
    payout_share_of_refund,
    quantize_money,
    refund_amount,
    refund_percentage,
    split_amount,
)

amounts = st.decimals(
    min_value=Decimal("0.00"),
    max_value=Decimal("100000.00"),
    places=2,
    allow_nan=False,
    allow_infinity=False,
)
rates = st.decimals(
    min_value=Decimal("0.01"),
    max_value=Decimal("0.99"),
    places=2,
    allow_nan=False,
    allow_infinity=False,
)


@given(amount=amounts, rate=rates)
def test_split_parts_always_sum_to_gross(amount: Decimal, rate: Decimal) -> None:
    split = split_amount(amount, rate)

    assert split.commission + split.payout == split.gross
    assert split.commission == split.commission.quantize(Decimal("0.01"))
    assert split.payout >= Decimal("0.00")


def test_split_rounds_commission_half_up_and_derives_payout() -> None:
    assert split_amount(Decimal("33.33")) == SettlementSplit(
        gross=Decimal("33.33"),
        commission=Decimal("5.00"),
        payout=Decimal("28.33"),
    )
    assert split_amount(Decimal("60.00")) == SettlementSplit(
        gross=Decimal("60.00"),
        commission=Decimal("9.00"),
        payout=Decimal("51.00"),
    )


def test_split_rejects_negative_amount() -> None:
    with pytest.raises(ValueError):
        split_amount(Decimal("-1.00"))


def test_quantize_money_uses_half_up() -> None:
    assert quantize_money(Decimal("0.005")) == Decimal("0.01")
    assert quantize_money("2.675") == Decimal("2.68")


@pytest.mark.parametrize(
    ("hours_until_start", "expected"),
    [
        (72, 100),
        (49, 100),
        (48.01, 100),
        (48, 50),
        (30, 50),
        (24, 50),
        (23.9, 0),
        (0.5, 0),
        (-2, 0),
    ],
)
def test_refund_percentage_tiers(hours_until_start: float, expected: int) -> None:
    assert refund_percentage(hours_until_start) == expected


def test_refund_percentage_honours_configured_thresholds() -> None:
    assert refund_percentage(13, full_threshold_hours=12, partial_threshold_hours=6, partial_percentage=25) == 100
    assert refund_percentage(8, full_threshold_hours=12, partial_threshold_hours=6, partial_percentage=25) == 25


def test_refund_amount_is_share_of_price() -> None:
    assert refund_amount(Decimal("60.00"), 100) == Decimal("60.00")
    assert refund_amount(Decimal("60.00"), 50) == Decimal("30.00")
    assert refund_amount(Decimal("35.55"), 50) == Decimal("17.78")
    assert refund_amount(Decimal("60.00"), 0) == Decimal("0.00")


def test_payout_share_of_refund_is_proportional() -> None:
    split = split_amount(Decimal("60.00"))

    assert payout_share_of_refund(split, Decimal("20.00")) == Decimal("17.00")
    assert payout_share_of_refund(split, Decimal("60.00")) == Decimal("51.00")
    assert payout_share_of_refund(split, Decimal("0.00")) == Decimal("0.00")
