"""Order line and header totals (ledger_kernel.domain.pricing)."""

from decimal import Decimal

import pytest

from ledger_kernel.domain.pricing import (
    discount_amount,
    line_totals,
    order_totals,
    round_money,
)
from ledger_kernel.domain.values import DiscountType
from ledger_kernel.exceptions import ValidationFailedError


class TestLineTotals:

    def test_no_discount(self):
        totals = line_totals(Decimal("2"), Decimal("100"))
        assert totals.gross == Decimal("200")
        assert totals.discount_amount == Decimal("0")
        assert totals.total == Decimal("200")

    def test_percent_discount(self):
        totals = line_totals(Decimal("4"), Decimal("25"), Decimal("10"), DiscountType.PERCENT)
        assert totals.discount_amount == Decimal("10")
        assert totals.total == Decimal("90")

    def test_amount_discount(self):
        totals = line_totals(Decimal("3"), Decimal("10"), Decimal("5"), DiscountType.AMOUNT)
        assert totals.total == Decimal("25")

    def test_zero_quantity_rejected(self):
        with pytest.raises(ValidationFailedError, match="quantity"):
            line_totals(Decimal("0"), Decimal("10"))

    def test_negative_price_rejected(self):
        with pytest.raises(ValidationFailedError, match="unit_price"):
            line_totals(Decimal("1"), Decimal("-1"))

    def test_amount_discount_above_gross_rejected(self):
        with pytest.raises(ValidationFailedError):
            line_totals(Decimal("1"), Decimal("10"), Decimal("11"), DiscountType.AMOUNT)


class TestOrderTotals:

    def test_header_percent_discount(self):
        totals = order_totals([Decimal("150"), Decimal("50")], Decimal("10"), DiscountType.PERCENT)
        assert totals.subtotal == Decimal("200")
        assert totals.discount_amount == Decimal("20")
        assert totals.total == Decimal("180")

    def test_full_percent_discount_gives_zero_total(self):
        totals = order_totals([Decimal("200")], Decimal("100"), DiscountType.PERCENT)
        assert totals.total == Decimal("0")

    def test_percent_over_hundred_rejected(self):
        with pytest.raises(ValidationFailedError, match="100"):
            order_totals([Decimal("200")], Decimal("101"), DiscountType.PERCENT)

    def test_negative_discount_rejected(self):
        with pytest.raises(ValidationFailedError):
            order_totals([Decimal("200")], Decimal("-1"), DiscountType.AMOUNT)

    def test_empty_items_rejected(self):
        with pytest.raises(ValidationFailedError, match="at least one item"):
            order_totals([])


class TestRounding:

    def test_half_up(self):
        assert round_money(Decimal("1.00005")) == Decimal("1.0001")
        assert round_money(Decimal("1.00004")) == Decimal("1.0000")

    def test_percent_discount_rounded(self):
        assert discount_amount(Decimal("10"), Decimal("33.333"), DiscountType.PERCENT) == Decimal("3.3333")
