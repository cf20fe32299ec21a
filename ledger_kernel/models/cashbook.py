"""
Module: ledger_kernel.models.cashbook
Responsibility: Append-only cash movements (income and expense).
Architecture position: Kernel > Models.

No running balance is stored on entries; balances are reduced at read time
by ``ledger_kernel.selectors.cashbook_selector``.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import Base


class CashbookEntry(Base):
    """One income or expense movement, optionally tagged with its source document."""

    __tablename__ = "cashbook_entries"
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_cashbook_amount_positive"),
        Index("idx_cashbook_date", "transaction_date"),
        Index("idx_cashbook_reference", "reference_type", "reference_id"),
    )

    type: Mapped[str] = mapped_column(String(20), nullable=False)
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    payment_method: Mapped[str] = mapped_column(String(20), nullable=False)

    reference_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    reference_id: Mapped[UUID | None] = mapped_column(nullable=True)
    bank_account: Mapped[str | None] = mapped_column(String(100), nullable=True)

    transaction_date: Mapped[datetime] = mapped_column(nullable=False)
    created_by_id: Mapped[UUID] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return f"<CashbookEntry {self.type} {self.category} {self.amount}>"
