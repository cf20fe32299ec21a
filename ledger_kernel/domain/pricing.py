"""
Pricing -- order line and header total arithmetic.

    item.discount_amount = base * d / 100   (percent)   | d   (amount)
    item.total           = quantity * unit_price - item.discount_amount
    subtotal             = sum(item.total)
    discount_amount      = subtotal * d / 100 (percent) | d   (amount)
    total                = subtotal - discount_amount

Percent discounts must lie in [0, 100]; flat discounts in [0, base].  A 100%
discount yields a zero total.  Amounts are rounded half-up to MONEY_QUANTUM.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from ledger_kernel.domain.values import DiscountType
from ledger_kernel.exceptions import ValidationFailedError

MONEY_QUANTUM = Decimal("0.0001")
HUNDRED = Decimal(100)


def round_money(amount: Decimal) -> Decimal:
    return Decimal(amount).quantize(MONEY_QUANTUM, rounding=ROUND_HALF_UP)


def discount_amount(
    base: Decimal, discount: Decimal, discount_type: DiscountType, field: str = "discount"
) -> Decimal:
    """Resolve a discount against its base amount."""
    discount = Decimal(discount or 0)
    if discount < 0:
        raise ValidationFailedError(f"{field} cannot be negative", field=field)
    if discount_type is DiscountType.PERCENT:
        if discount > HUNDRED:
            raise ValidationFailedError(
                f"{field} percent cannot exceed 100", field=field
            )
        return round_money(base * discount / HUNDRED)
    if discount > base:
        raise ValidationFailedError(
            f"{field} {discount} exceeds amount {base}", field=field
        )
    return round_money(discount)


@dataclass(frozen=True)
class LineTotals:
    gross: Decimal
    discount_amount: Decimal
    total: Decimal


@dataclass(frozen=True)
class OrderTotals:
    subtotal: Decimal
    discount_amount: Decimal
    total: Decimal


def line_totals(
    quantity: Decimal,
    unit_price: Decimal,
    discount: Decimal = Decimal(0),
    discount_type: DiscountType = DiscountType.AMOUNT,
) -> LineTotals:
    """Compute one order line. Quantity must be positive, price non-negative."""
    if quantity <= 0:
        raise ValidationFailedError("quantity must be greater than 0", field="quantity")
    if unit_price < 0:
        raise ValidationFailedError("unit_price cannot be negative", field="unit_price")
    gross = round_money(quantity * unit_price)
    disc = discount_amount(gross, discount, discount_type, field="item discount")
    return LineTotals(gross=gross, discount_amount=disc, total=gross - disc)


def order_totals(
    item_totals: list[Decimal],
    discount: Decimal = Decimal(0),
    discount_type: DiscountType = DiscountType.AMOUNT,
) -> OrderTotals:
    """Compute the header from already-computed line totals."""
    if not item_totals:
        raise ValidationFailedError("Order must have at least one item", field="items")
    subtotal = sum(item_totals, Decimal(0))
    disc = discount_amount(subtotal, discount, discount_type)
    return OrderTotals(subtotal=subtotal, discount_amount=disc, total=subtotal - disc)
