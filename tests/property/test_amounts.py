from __future__ import annotations

from decimal import Decimal

from hypothesis import given, strategies as st

from volbot.domain.models import from_raw, to_raw
from volbot.engines.volume_engine import plan_sell_quantity

_amounts = st.decimals(min_value="0", max_value="1000000", places=12, allow_nan=False, allow_infinity=False)


@given(amount=_amounts, decimals=st.integers(min_value=0, max_value=12))
def test_to_raw_never_rounds_up(amount, decimals):
    raw = to_raw(amount, decimals)

    # Invariant: truncation, never overspend
    assert from_raw(raw, decimals) <= amount
    assert amount - from_raw(raw, decimals) < Decimal(1).scaleb(-decimals)


@given(
    target_usd=st.decimals(min_value="0.01", max_value="10000", places=4),
    unit_usd=st.decimals(min_value="0.000001", max_value="100000", places=6),
    balance=st.decimals(min_value="0", max_value="1000000", places=6),
)
def test_sell_quantity_never_exceeds_balance(target_usd, unit_usd, balance):
    quantity = plan_sell_quantity(target_usd, unit_usd, balance)

    assert quantity <= balance
    assert quantity >= 0
    if target_usd / unit_usd <= balance:
        assert quantity == target_usd / unit_usd
