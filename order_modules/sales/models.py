"""
Sales Domain Models.

Inputs for sale orders and the read view every sales operation returns.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from ledger_kernel.domain.values import DiscountType, PaymentMethod


class SaleOrderStatus(str, Enum):
    """Sale order lifecycle states."""
    DRAFT = "draft"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"  # every item returned


@dataclass(frozen=True)
class SaleOrderLine:
    """One line of a sale order as submitted by the caller."""
    product_id: UUID
    quantity: Decimal
    unit_price: Decimal
    unit_id: UUID | None = None
    discount: Decimal = Decimal("0")
    discount_type: DiscountType | str = DiscountType.AMOUNT


@dataclass(frozen=True)
class SaleOrderSpec:
    """
    Input for ``SalesService.create_order``.

    ``customer_id`` may be omitted for walk-in cash sales; credit sales need
    it.  ``warehouse_id`` defaults to the default warehouse on completion.
    """
    items: tuple[SaleOrderLine, ...]
    customer_id: UUID | None = None
    warehouse_id: UUID | None = None
    status: SaleOrderStatus | str = SaleOrderStatus.DRAFT
    order_date: date | None = None
    payment_due_date: date | None = None
    discount: Decimal = Decimal("0")
    discount_type: DiscountType | str = DiscountType.AMOUNT
    payment_method: PaymentMethod | str = PaymentMethod.CASH
    paid_amount: Decimal = Decimal("0")
    notes: str | None = None


@dataclass(frozen=True)
class SaleOrderPatch:
    """Draft edit; ``None`` keeps the current value, ``items`` replaces all items."""
    customer_id: UUID | None = None
    warehouse_id: UUID | None = None
    items: tuple[SaleOrderLine, ...] | None = None
    payment_due_date: date | None = None
    discount: Decimal | None = None
    discount_type: DiscountType | str | None = None
    payment_method: PaymentMethod | str | None = None
    paid_amount: Decimal | None = None
    notes: str | None = None


@dataclass(frozen=True)
class SaleOrderItemView:
    id: UUID
    product_id: UUID
    product_name: str | None
    unit_id: UUID
    unit_name: str | None
    quantity: Decimal
    returned_quantity: Decimal
    unit_price: Decimal
    cost_price: Decimal
    discount: Decimal
    discount_type: str
    discount_amount: Decimal
    total: Decimal

    @property
    def returnable_quantity(self) -> Decimal:
        return self.quantity - self.returned_quantity


@dataclass(frozen=True)
class SaleOrderView:
    """A sale order with resolved customer, warehouse, product and unit names."""
    id: UUID
    code: str
    status: SaleOrderStatus
    customer_id: UUID | None
    customer_name: str | None
    warehouse_id: UUID | None
    warehouse_name: str | None
    order_date: date
    payment_due_date: date | None
    completed_at: datetime | None
    subtotal: Decimal
    discount: Decimal
    discount_type: str
    discount_amount: Decimal
    total: Decimal
    payment_method: str
    paid_amount: Decimal
    refunded_amount: Decimal
    invoice_posted: bool
    notes: str | None
    items: tuple[SaleOrderItemView, ...] = field(default_factory=tuple)

    @property
    def remaining_amount(self) -> Decimal:
        return max(self.total - self.paid_amount - self.refunded_amount, Decimal("0"))
