"""
Module: ledger_kernel.models.debt
Responsibility: Append-only debt movement logs.  PayableTransaction rows
    belong to suppliers, ReceivableTransaction rows to customers; both share
    one shape.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - invoice / adjustment: balance_after = balance_before + amount
    - payment / refund:     balance_after = max(0, balance_before - amount)
    - Rows are never updated or deleted (db/immutability.py).
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, declared_attr, mapped_column

from ledger_kernel.db.base import Base


class DebtTransactionMixin:
    """Columns shared by payables and receivables transactions."""

    type: Mapped[str] = mapped_column(String(20), nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    balance_before: Mapped[Decimal] = mapped_column(nullable=False)
    balance_after: Mapped[Decimal] = mapped_column(nullable=False)

    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    payment_method: Mapped[str | None] = mapped_column(String(20), nullable=True)
    due_date: Mapped[date | None] = mapped_column(nullable=True)
    transaction_date: Mapped[datetime] = mapped_column(nullable=False)

    reference_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    reference_id: Mapped[UUID | None] = mapped_column(nullable=True)

    created_by_id: Mapped[UUID] = mapped_column(nullable=False)

    @declared_attr
    def cashbook_entry_id(cls) -> Mapped[UUID | None]:
        return mapped_column(ForeignKey("cashbook_entries.id"), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<{type(self).__name__} {self.type} {self.amount}: "
            f"{self.balance_before} -> {self.balance_after}>"
        )


class PayableTransaction(DebtTransactionMixin, Base):
    """A movement on a supplier's payables balance."""

    __tablename__ = "payable_transactions"
    __table_args__ = (
        Index("idx_payable_txn_supplier", "supplier_id", "transaction_date"),
        Index("idx_payable_txn_reference", "reference_type", "reference_id"),
    )

    supplier_id: Mapped[UUID] = mapped_column(ForeignKey("suppliers.id"), nullable=False)

    @property
    def counterparty_id(self) -> UUID:
        return self.supplier_id


class ReceivableTransaction(DebtTransactionMixin, Base):
    """A movement on a customer's receivables balance."""

    __tablename__ = "receivable_transactions"
    __table_args__ = (
        Index("idx_receivable_txn_customer", "customer_id", "transaction_date"),
        Index("idx_receivable_txn_reference", "reference_type", "reference_id"),
    )

    customer_id: Mapped[UUID] = mapped_column(ForeignKey("customers.id"), nullable=False)

    @property
    def counterparty_id(self) -> UUID:
        return self.customer_id
