"""
Returns Domain Models.

A return order sends goods from a completed sale back into stock and
refunds the customer, either against receivables (credit sales) or in cash.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from ledger_kernel.domain.values import PaymentMethod


class ReturnOrderStatus(str, Enum):
    """Return order lifecycle states."""
    DRAFT = "draft"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class ReturnLine:
    """Quantity returned against one sale order item, in that item's unit."""
    sale_order_item_id: UUID
    quantity: Decimal


@dataclass(frozen=True)
class ReturnOrderSpec:
    """
    Input for ``ReturnsService.create_return``.

    ``warehouse_id`` defaults to the sale's warehouse.  ``refund_method``
    defaults to the sale's payment method, or cash for credit sales.
    ``complete=False`` leaves the return as a draft with no ledger effects.
    """
    sale_order_id: UUID
    items: tuple[ReturnLine, ...]
    reason: str | None = None
    warehouse_id: UUID | None = None
    refund_method: PaymentMethod | str | None = None
    return_date: date | None = None
    update_receivables: bool = True
    create_cashbook_entry: bool = True
    complete: bool = True
    notes: str | None = None


@dataclass(frozen=True)
class ReturnOrderPatch:
    """Draft edit; ``items`` replaces the return lines wholesale."""
    items: tuple[ReturnLine, ...] | None = None
    reason: str | None = None
    warehouse_id: UUID | None = None
    refund_method: PaymentMethod | str | None = None
    notes: str | None = None


@dataclass(frozen=True)
class ReturnOrderItemView:
    id: UUID
    sale_order_item_id: UUID
    product_id: UUID
    product_name: str | None
    unit_id: UUID
    unit_name: str | None
    quantity: Decimal
    unit_price: Decimal
    total: Decimal


@dataclass(frozen=True)
class ReturnOrderView:
    """A return order with resolved sale, customer, warehouse, product and unit names."""
    id: UUID
    code: str
    status: ReturnOrderStatus
    sale_order_id: UUID
    sale_order_code: str | None
    customer_id: UUID | None
    customer_name: str | None
    warehouse_id: UUID | None
    warehouse_name: str | None
    reason: str | None
    return_date: date
    completed_at: datetime | None
    subtotal: Decimal
    total: Decimal
    refund_amount: Decimal
    refund_method: str
    payment_method: str
    paid_amount: Decimal
    notes: str | None
    items: tuple[ReturnOrderItemView, ...] = field(default_factory=tuple)
