"""
Property-based checks of order pricing.

Generated quantities, prices and discounts must always give totals that
are non-negative, never above the gross, and internally consistent.
"""

from decimal import Decimal

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from ledger_kernel.domain.pricing import line_totals, order_totals
from ledger_kernel.domain.values import DiscountType
from ledger_kernel.exceptions import ValidationFailedError

quantities = st.decimals(min_value=Decimal("0.001"), max_value=Decimal("10000"), places=3)
prices = st.decimals(min_value=Decimal("0"), max_value=Decimal("1000000"), places=2)
percents = st.decimals(min_value=Decimal("0"), max_value=Decimal("100"), places=2)


class TestLineTotalProperties:

    @settings(max_examples=200)
    @given(quantity=quantities, price=prices, percent=percents)
    def test_percent_discount_bounded(self, quantity, price, percent):
        totals = line_totals(quantity, price, percent, DiscountType.PERCENT)
        assert Decimal("0") <= totals.total <= totals.gross
        assert totals.total + totals.discount_amount == totals.gross

    @settings(max_examples=100)
    @given(quantity=quantities, price=prices)
    def test_full_percent_discount_is_free(self, quantity, price):
        assert line_totals(quantity, price, Decimal("100"), DiscountType.PERCENT).total == 0

    @settings(max_examples=100)
    @given(quantity=quantities, price=prices, fraction=st.fractions(min_value=0, max_value=1))
    def test_flat_discount_up_to_gross(self, quantity, price, fraction):
        gross = line_totals(quantity, price).gross
        discount = (gross * fraction.numerator / fraction.denominator).quantize(Decimal("0.0001"))
        if discount > gross:
            discount = gross
        assert line_totals(quantity, price, discount, DiscountType.AMOUNT).total >= 0

    @settings(max_examples=50)
    @given(percent=st.decimals(min_value=Decimal("100.01"), max_value=Decimal("1000"), places=2))
    def test_percent_above_hundred_rejected(self, percent):
        with pytest.raises(ValidationFailedError):
            line_totals(Decimal("1"), Decimal("10"), percent, DiscountType.PERCENT)


class TestOrderTotalProperties:

    @settings(max_examples=100)
    @given(
        items=st.lists(prices, min_size=1, max_size=20),
        percent=percents,
    )
    def test_header_total_consistent(self, items, percent):
        totals = order_totals(items, percent, DiscountType.PERCENT)
        assert totals.subtotal == sum(items, Decimal("0"))
        assert totals.total == totals.subtotal - totals.discount_amount
        assert Decimal("0") <= totals.total <= totals.subtotal
