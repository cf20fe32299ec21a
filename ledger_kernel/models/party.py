"""
Module: ledger_kernel.models.party
Responsibility: Counterparties -- suppliers (payables side) and customers
    (receivables side).  Each carries the running balance the Debt Ledger
    maintains and the earliest outstanding payment due date.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - ``balance`` is written only by DebtLedger, in the same flush as the
      PayableTransaction/ReceivableTransaction whose balance_after it equals.
    - ``version`` is a SQLAlchemy version counter: an UPDATE carrying a stale
      version raises StaleDataError.
"""

from datetime import date
from decimal import Decimal

from sqlalchemy import Boolean, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, declared_attr, mapped_column

from ledger_kernel.db.base import TrackedBase


class CounterpartyMixin:
    """Columns shared by Supplier and Customer."""

    code: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)

    # Running debt balance maintained by the Debt Ledger
    balance: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    payment_due_date: Mapped[date | None] = mapped_column(nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    @declared_attr.directive
    def __mapper_args__(cls):
        return {"version_id_col": cls.__table__.c.version}

    def is_overdue(self, as_of: date) -> bool:
        return (
            self.balance > 0
            and self.payment_due_date is not None
            and self.payment_due_date < as_of
        )

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.code}: balance={self.balance}>"


class Supplier(CounterpartyMixin, TrackedBase):
    """Supplier; ``balance`` is what we owe (payables)."""

    __tablename__ = "suppliers"
    __table_args__ = (UniqueConstraint("code", name="uq_supplier_code"),)


class Customer(CounterpartyMixin, TrackedBase):
    """Customer; ``balance`` is what they owe us (receivables)."""

    __tablename__ = "customers"
    __table_args__ = (UniqueConstraint("code", name="uq_customer_code"),)
