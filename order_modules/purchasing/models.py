"""
Purchasing Domain Models.

The nouns of purchasing: purchase order inputs (spec, patch, receipt
lines) and the read view returned by every service call.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from ledger_kernel.domain.values import DiscountType, PaymentMethod


class PurchaseOrderStatus(str, Enum):
    """Purchase order lifecycle states."""
    DRAFT = "draft"
    ORDERED = "ordered"
    PARTIAL_RECEIVED = "partial_received"
    RECEIVED = "received"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class PurchaseOrderLine:
    """One line of a purchase order as submitted by the caller."""
    product_id: UUID
    quantity: Decimal
    unit_price: Decimal
    unit_id: UUID | None = None  # product's default unit when omitted
    discount: Decimal = Decimal("0")
    discount_type: DiscountType | str = DiscountType.AMOUNT
    expiry_date: date | None = None


@dataclass(frozen=True)
class PurchaseOrderSpec:
    """Input for ``PurchasingService.create_order``."""
    supplier_id: UUID
    items: tuple[PurchaseOrderLine, ...]
    status: PurchaseOrderStatus | str = PurchaseOrderStatus.DRAFT
    order_date: date | None = None
    expected_delivery_date: date | None = None
    discount: Decimal = Decimal("0")
    discount_type: DiscountType | str = DiscountType.AMOUNT
    payment_method: PaymentMethod | str = PaymentMethod.CASH
    paid_amount: Decimal = Decimal("0")
    notes: str | None = None


@dataclass(frozen=True)
class PurchaseOrderPatch:
    """
    Input for ``PurchasingService.update_order``.

    ``None`` leaves a header field unchanged; ``items`` replaces the whole
    item collection when given.
    """
    supplier_id: UUID | None = None
    items: tuple[PurchaseOrderLine, ...] | None = None
    expected_delivery_date: date | None = None
    discount: Decimal | None = None
    discount_type: DiscountType | str | None = None
    payment_method: PaymentMethod | str | None = None
    paid_amount: Decimal | None = None
    notes: str | None = None


@dataclass(frozen=True)
class ReceiveLine:
    """Goods received against one purchase order item."""
    item_id: UUID
    received_quantity: Decimal
    expiry_date: date | None = None


@dataclass(frozen=True)
class PurchaseOrderItemView:
    id: UUID
    product_id: UUID
    product_name: str | None
    unit_id: UUID
    unit_name: str | None
    quantity: Decimal
    received_quantity: Decimal
    unit_price: Decimal
    discount: Decimal
    discount_type: str
    discount_amount: Decimal
    total: Decimal
    expiry_date: date | None = None

    @property
    def remaining_quantity(self) -> Decimal:
        return self.quantity - self.received_quantity


@dataclass(frozen=True)
class PurchaseOrderView:
    """A purchase order with resolved supplier, product and unit names."""
    id: UUID
    code: str
    status: PurchaseOrderStatus
    supplier_id: UUID
    supplier_name: str | None
    order_date: date
    expected_delivery_date: date | None
    received_date: datetime | None
    subtotal: Decimal
    discount: Decimal
    discount_type: str
    discount_amount: Decimal
    total: Decimal
    payment_method: str
    paid_amount: Decimal
    invoice_posted: bool
    notes: str | None
    items: tuple[PurchaseOrderItemView, ...] = field(default_factory=tuple)

    @property
    def remaining_amount(self) -> Decimal:
        return self.total - self.paid_amount
