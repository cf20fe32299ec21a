"""
Module: ledger_kernel.models.stock
Responsibility: Physical stock -- per (product, warehouse) levels, FIFO lots,
    and the immutable stock movement log.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - One Stock row per (product_id, warehouse_id) (uq_stock_product_warehouse).
    - All quantities are in the product's stock unit (base unit if defined).
    - StockTransaction rows are append-only (db/immutability.py).
    - StockBatch rows are append-only except remaining_quantity.
    - sum(batch.remaining_quantity) <= max(stock.quantity, 0), checked by the
      Stock Ledger after every write.

Audit relevance:
    StockTransaction is the audit trail of every movement; the Stock row is
    the cached running level written in the same flush.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import Base, TrackedBase


class Stock(TrackedBase):
    """On-hand level of one product in one warehouse. Created on first receipt."""

    __tablename__ = "stocks"
    __table_args__ = (
        UniqueConstraint("product_id", "warehouse_id", name="uq_stock_product_warehouse"),
    )

    product_id: Mapped[UUID] = mapped_column(ForeignKey("products.id"), nullable=False)
    warehouse_id: Mapped[UUID] = mapped_column(ForeignKey("warehouses.id"), nullable=False)

    quantity: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    reserved_quantity: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    shelf_location: Mapped[str | None] = mapped_column(String(100), nullable=True)
    last_updated_at: Mapped[datetime | None] = mapped_column(nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<Stock product={self.product_id} warehouse={self.warehouse_id} qty={self.quantity}>"


class StockBatch(Base):
    """
    A lot received together, consumed oldest-first.

    Created only when a receipt carries an expiry date.
    """

    __tablename__ = "stock_batches"
    __table_args__ = (
        UniqueConstraint("batch_number", name="uq_stock_batch_number"),
        Index("idx_stock_batch_fifo", "product_id", "warehouse_id", "received_date"),
    )

    batch_number: Mapped[str] = mapped_column(String(100), nullable=False)
    product_id: Mapped[UUID] = mapped_column(ForeignKey("products.id"), nullable=False)
    warehouse_id: Mapped[UUID] = mapped_column(ForeignKey("warehouses.id"), nullable=False)

    quantity: Mapped[Decimal] = mapped_column(nullable=False)
    remaining_quantity: Mapped[Decimal] = mapped_column(nullable=False)
    # Per stock unit
    cost_price: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    manufacture_date: Mapped[date | None] = mapped_column(nullable=True)
    expiry_date: Mapped[date | None] = mapped_column(nullable=True)
    received_date: Mapped[datetime] = mapped_column(nullable=False)

    created_by_id: Mapped[UUID] = mapped_column(nullable=False)

    @property
    def is_depleted(self) -> bool:
        return self.remaining_quantity <= 0

    def __repr__(self) -> str:
        return f"<StockBatch {self.batch_number}: {self.remaining_quantity}/{self.quantity}>"


class StockTransaction(Base):
    """
    One immutable stock movement.

    ``quantity`` is signed in the stock unit: positive adds to the level,
    negative removes from it.
    """

    __tablename__ = "stock_transactions"
    __table_args__ = (
        Index("idx_stock_txn_product_wh", "product_id", "warehouse_id"),
        Index("idx_stock_txn_reference", "reference_type", "reference_id"),
    )

    type: Mapped[str] = mapped_column(String(20), nullable=False)
    product_id: Mapped[UUID] = mapped_column(ForeignKey("products.id"), nullable=False)
    warehouse_id: Mapped[UUID] = mapped_column(ForeignKey("warehouses.id"), nullable=False)
    batch_id: Mapped[UUID | None] = mapped_column(ForeignKey("stock_batches.id"), nullable=True)

    quantity: Mapped[Decimal] = mapped_column(nullable=False)
    cost_price: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    # Originating document; no FK so any document kind can be referenced
    reference_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    reference_id: Mapped[UUID | None] = mapped_column(nullable=True)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    transaction_date: Mapped[datetime] = mapped_column(nullable=False)
    created_by_id: Mapped[UUID] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return f"<StockTransaction {self.type} {self.quantity} product={self.product_id}>"
