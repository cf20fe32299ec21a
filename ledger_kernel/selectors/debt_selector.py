"""
DebtSelector -- outstanding payables/receivables statistics.

Reads the counterparties' stored balances (the Debt Ledger's source of
truth) and their due dates; overdue means a positive balance whose due date
is before ``as_of``.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from sqlalchemy import select

from ledger_kernel.models.party import Customer, Supplier
from ledger_kernel.selectors.base import BaseSelector
from ledger_kernel.services.debt_ledger import DebtKind

ZERO = Decimal("0")


@dataclass(frozen=True)
class DebtStatistics:
    total_balance: Decimal
    overdue_balance: Decimal
    overdue_count: int
    current_balance: Decimal
    counterparties_with_balance: int


class DebtSelector(BaseSelector):
    """Aggregates over suppliers (payables) or customers (receivables)."""

    def _model(self, kind: DebtKind):
        return Supplier if kind is DebtKind.PAYABLES else Customer

    def with_balance(self, kind: DebtKind) -> list:
        model = self._model(kind)
        return list(
            self.session.execute(
                select(model).where(model.balance > 0).order_by(model.balance.desc())
            ).scalars()
        )

    def overdue(self, kind: DebtKind, as_of: date) -> list:
        return [c for c in self.with_balance(kind) if c.is_overdue(as_of)]

    def statistics(self, kind: DebtKind, as_of: date) -> DebtStatistics:
        owing = self.with_balance(kind)
        overdue = [c for c in owing if c.is_overdue(as_of)]
        total = sum((c.balance for c in owing), ZERO)
        overdue_total = sum((c.balance for c in overdue), ZERO)
        return DebtStatistics(
            total_balance=total,
            overdue_balance=overdue_total,
            overdue_count=len(overdue),
            current_balance=total - overdue_total,
            counterparties_with_balance=len(owing),
        )
