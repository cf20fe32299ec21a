"""
SQLAlchemy ORM persistence models for the Sales module.

Invariants enforced
-------------------
* ``code`` is unique; ``status`` holds a ``SaleOrderStatus`` value.
* ``0 <= item.returned_quantity <= item.quantity``.
* ``item.cost_price`` is the FIFO cost per line unit, fixed on completion.
* ``refunded_amount`` is the refund value of completed returns; payments
  are accepted up to ``total - paid_amount - refunded_amount``.
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


class SaleOrderModel(TrackedBase):
    """A sale to a customer (or a walk-in cash sale without one)."""

    __tablename__ = "sale_orders"

    __table_args__ = (
        UniqueConstraint("code", name="uq_sale_order_code"),
        CheckConstraint("paid_amount >= 0", name="chk_sale_order_paid_non_negative"),
        Index("idx_sale_order_customer", "customer_id"),
        Index("idx_sale_order_status", "status"),
        Index("idx_sale_order_date", "order_date"),
    )

    code: Mapped[str] = mapped_column(String(50), nullable=False)
    customer_id: Mapped[UUID | None] = mapped_column(ForeignKey("customers.id"), nullable=True)
    warehouse_id: Mapped[UUID | None] = mapped_column(ForeignKey("warehouses.id"), nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="draft")

    order_date: Mapped[date] = mapped_column(nullable=False)
    payment_due_date: Mapped[date | None] = mapped_column(nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    subtotal: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    discount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    discount_type: Mapped[str] = mapped_column(String(20), nullable=False, default="amount")
    discount_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    total: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    payment_method: Mapped[str] = mapped_column(String(20), nullable=False, default="cash")
    paid_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    refunded_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    invoice_posted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    items: Mapped[list["SaleOrderItemModel"]] = relationship(
        "SaleOrderItemModel",
        back_populates="order",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="SaleOrderItemModel.line_number",
    )

    def __repr__(self) -> str:
        return f"<SaleOrder {self.code} [{self.status}] total={self.total}>"


class SaleOrderItemModel(TrackedBase):
    """One product line on a sale order. Quantities are in ``unit_id``."""

    __tablename__ = "sale_order_items"

    __table_args__ = (
        CheckConstraint("quantity > 0", name="chk_sale_item_quantity_positive"),
        CheckConstraint("returned_quantity >= 0", name="chk_sale_item_returned_non_negative"),
        Index("idx_sale_item_order", "sale_order_id"),
        Index("idx_sale_item_product", "product_id"),
    )

    sale_order_id: Mapped[UUID] = mapped_column(
        ForeignKey("sale_orders.id", ondelete="CASCADE"), nullable=False
    )
    line_number: Mapped[int] = mapped_column(Integer, nullable=False)
    product_id: Mapped[UUID] = mapped_column(ForeignKey("products.id"), nullable=False)
    unit_id: Mapped[UUID] = mapped_column(ForeignKey("units_of_measure.id"), nullable=False)

    quantity: Mapped[Decimal] = mapped_column(nullable=False)
    returned_quantity: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    unit_price: Mapped[Decimal] = mapped_column(nullable=False)
    cost_price: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    discount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    discount_type: Mapped[str] = mapped_column(String(20), nullable=False, default="amount")
    discount_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    total: Mapped[Decimal] = mapped_column(nullable=False)

    order: Mapped[SaleOrderModel] = relationship(back_populates="items")

    @property
    def returnable_quantity(self) -> Decimal:
        return self.quantity - self.returned_quantity
