"""
SQLAlchemy ORM persistence models for the Purchasing module.

Responsibility
--------------
Persist purchase order headers and their items.

Architecture position
---------------------
**Modules layer** -- ORM models consumed by ``PurchasingService``.  Inherit
from ``TrackedBase`` (kernel db layer).

Invariants enforced
-------------------
* All monetary and quantity fields use ``Decimal`` (Numeric(38,9)).
* Enum fields stored as String(20) holding the enum ``value``.
* ``code`` is unique.
* ``total = subtotal - discount_amount``; ``subtotal = sum(item.total)``.
* ``0 <= item.received_quantity <= item.quantity``.
* ``version`` is the optimistic version counter of the header row.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import TrackedBase

# ---------------------------------------------------------------------------
# PurchaseOrderModel
# ---------------------------------------------------------------------------


class PurchaseOrderModel(TrackedBase):
    """
    A purchase order placed with a supplier.

    Guarantees:
        - ``status`` follows the purchase workflow:
          draft -> ordered -> partial_received <-> received; cancelled.
        - ``received_date`` is set on the first receipt and never changed.
        - ``invoice_posted`` records that the unpaid remainder was invoiced to
          the supplier's payables balance and is still open there; cleared
          when cancellation reverses it.
    """

    __tablename__ = "purchase_orders"

    __table_args__ = (
        UniqueConstraint("code", name="uq_purchase_order_code"),
        CheckConstraint("paid_amount >= 0", name="chk_purchase_order_paid_non_negative"),
        Index("idx_purchase_order_supplier", "supplier_id"),
        Index("idx_purchase_order_status", "status"),
        Index("idx_purchase_order_date", "order_date"),
    )

    code: Mapped[str] = mapped_column(String(50), nullable=False)
    supplier_id: Mapped[UUID] = mapped_column(ForeignKey("suppliers.id"), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="draft")

    order_date: Mapped[date] = mapped_column(nullable=False)
    expected_delivery_date: Mapped[date | None] = mapped_column(nullable=True)
    received_date: Mapped[datetime | None] = mapped_column(nullable=True)

    subtotal: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    discount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    discount_type: Mapped[str] = mapped_column(String(20), nullable=False, default="amount")
    discount_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    total: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    payment_method: Mapped[str] = mapped_column(String(20), nullable=False, default="cash")
    paid_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    invoice_posted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    items: Mapped[list["PurchaseOrderItemModel"]] = relationship(
        "PurchaseOrderItemModel",
        back_populates="order",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="PurchaseOrderItemModel.line_number",
    )

    def __repr__(self) -> str:
        return f"<PurchaseOrder {self.code} [{self.status}] total={self.total}>"


# ---------------------------------------------------------------------------
# PurchaseOrderItemModel
# ---------------------------------------------------------------------------


class PurchaseOrderItemModel(TrackedBase):
    """One product line on a purchase order. Quantities are in ``unit_id``."""

    __tablename__ = "purchase_order_items"

    __table_args__ = (
        CheckConstraint("quantity > 0", name="chk_purchase_item_quantity_positive"),
        CheckConstraint("received_quantity >= 0", name="chk_purchase_item_received_non_negative"),
        Index("idx_purchase_item_order", "purchase_order_id"),
        Index("idx_purchase_item_product", "product_id"),
    )

    purchase_order_id: Mapped[UUID] = mapped_column(
        ForeignKey("purchase_orders.id", ondelete="CASCADE"), nullable=False
    )
    line_number: Mapped[int] = mapped_column(Integer, nullable=False)
    product_id: Mapped[UUID] = mapped_column(ForeignKey("products.id"), nullable=False)
    unit_id: Mapped[UUID] = mapped_column(ForeignKey("units_of_measure.id"), nullable=False)

    quantity: Mapped[Decimal] = mapped_column(nullable=False)
    received_quantity: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    unit_price: Mapped[Decimal] = mapped_column(nullable=False)
    discount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    discount_type: Mapped[str] = mapped_column(String(20), nullable=False, default="amount")
    discount_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    total: Mapped[Decimal] = mapped_column(nullable=False)

    expiry_date: Mapped[date | None] = mapped_column(nullable=True)

    order: Mapped[PurchaseOrderModel] = relationship(back_populates="items")

    @property
    def remaining_quantity(self) -> Decimal:
        return self.quantity - self.received_quantity

    @property
    def is_fully_received(self) -> bool:
        return self.received_quantity >= self.quantity
