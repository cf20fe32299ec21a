"""
SQLAlchemy ORM persistence models for the Returns module.

Invariants enforced
-------------------
* ``subtotal = total = refund_amount = sum(item.total)``; returns carry no
  header discount (item totals already reflect the sale's line discounts).
* ``payment_method`` mirrors the originating sale; ``paid_amount`` is the
  refund actually posted (receivables credit or cash) on completion.
* Each item points at the sale order item it returns.
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


class ReturnOrderModel(TrackedBase):
    """Goods returned from one completed sale order."""

    __tablename__ = "return_orders"

    __table_args__ = (
        UniqueConstraint("code", name="uq_return_order_code"),
        Index("idx_return_order_sale", "sale_order_id"),
        Index("idx_return_order_status", "status"),
    )

    code: Mapped[str] = mapped_column(String(50), nullable=False)
    sale_order_id: Mapped[UUID] = mapped_column(ForeignKey("sale_orders.id"), nullable=False)
    warehouse_id: Mapped[UUID | None] = mapped_column(ForeignKey("warehouses.id"), nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="draft")
    reason: Mapped[str | None] = mapped_column(String(500), nullable=True)

    return_date: Mapped[date] = mapped_column(nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    subtotal: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    discount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    discount_type: Mapped[str] = mapped_column(String(20), nullable=False, default="amount")
    discount_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    total: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    refund_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    refund_method: Mapped[str] = mapped_column(String(20), nullable=False, default="cash")
    payment_method: Mapped[str] = mapped_column(String(20), nullable=False, default="cash")
    paid_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    update_receivables: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    create_cashbook_entry: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    items: Mapped[list["ReturnOrderItemModel"]] = relationship(
        "ReturnOrderItemModel",
        back_populates="order",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="ReturnOrderItemModel.line_number",
    )

    def __repr__(self) -> str:
        return f"<ReturnOrder {self.code} [{self.status}] refund={self.refund_amount}>"


class ReturnOrderItemModel(TrackedBase):
    """One returned line, in the unit of the sale item it returns."""

    __tablename__ = "return_order_items"

    __table_args__ = (
        CheckConstraint("quantity > 0", name="chk_return_item_quantity_positive"),
        Index("idx_return_item_order", "return_order_id"),
        Index("idx_return_item_sale_item", "sale_order_item_id"),
    )

    return_order_id: Mapped[UUID] = mapped_column(
        ForeignKey("return_orders.id", ondelete="CASCADE"), nullable=False
    )
    line_number: Mapped[int] = mapped_column(Integer, nullable=False)
    sale_order_item_id: Mapped[UUID] = mapped_column(
        ForeignKey("sale_order_items.id"), nullable=False
    )
    product_id: Mapped[UUID] = mapped_column(ForeignKey("products.id"), nullable=False)
    unit_id: Mapped[UUID] = mapped_column(ForeignKey("units_of_measure.id"), nullable=False)

    quantity: Mapped[Decimal] = mapped_column(nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(nullable=False)
    discount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    discount_type: Mapped[str] = mapped_column(String(20), nullable=False, default="amount")
    discount_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    total: Mapped[Decimal] = mapped_column(nullable=False)

    order: Mapped[ReturnOrderModel] = relationship(back_populates="items")
