"""
CashbookSelector -- cash totals reduced from CashbookEntry rows at read time.

Balance = sum(income) - sum(expense) over the requested range.  Nothing is
cached; every call scans the (indexed) date range.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select

from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.values import CashbookEntryType, ReferenceType
from ledger_kernel.models.cashbook import CashbookEntry
from ledger_kernel.selectors.base import BaseSelector

ZERO = Decimal("0")


@dataclass(frozen=True)
class CashbookStatistics:
    total_income: Decimal
    total_expense: Decimal
    balance: Decimal
    today_income: Decimal
    today_expense: Decimal
    today_balance: Decimal
    transaction_count: int
    income_by_category: dict[str, Decimal] = field(default_factory=dict)
    expense_by_category: dict[str, Decimal] = field(default_factory=dict)


def _day_start(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


class CashbookSelector(BaseSelector):
    """Cashbook listing and statistics."""

    def __init__(self, session, clock: Clock | None = None):
        super().__init__(session)
        self._clock = clock or SystemClock()

    def _range(self, stmt, start: date | None, end: date | None):
        if start is not None:
            stmt = stmt.where(CashbookEntry.transaction_date >= _day_start(start))
        if end is not None:
            # End date is inclusive
            stmt = stmt.where(
                CashbookEntry.transaction_date < _day_start(end + timedelta(days=1))
            )
        return stmt

    def list_entries(
        self,
        start: date | None = None,
        end: date | None = None,
        entry_type: CashbookEntryType | None = None,
        category: str | None = None,
        reference_type: ReferenceType | None = None,
        reference_id: UUID | None = None,
    ) -> list[CashbookEntry]:
        stmt = self._range(select(CashbookEntry), start, end)
        if entry_type is not None:
            stmt = stmt.where(CashbookEntry.type == entry_type.value)
        if category is not None:
            stmt = stmt.where(CashbookEntry.category == category)
        if reference_type is not None:
            stmt = stmt.where(CashbookEntry.reference_type == reference_type.value)
        if reference_id is not None:
            stmt = stmt.where(CashbookEntry.reference_id == reference_id)
        stmt = stmt.order_by(CashbookEntry.transaction_date.desc(), CashbookEntry.id)
        return list(self.session.execute(stmt).scalars())

    def _totals_by_category(self, start, end) -> dict[tuple[str, str], tuple[Decimal, int]]:
        stmt = self._range(
            select(
                CashbookEntry.type,
                CashbookEntry.category,
                func.sum(CashbookEntry.amount),
                func.count(CashbookEntry.id),
            ),
            start,
            end,
        ).group_by(CashbookEntry.type, CashbookEntry.category)
        return {
            (row[0], row[1]): (Decimal(row[2] or 0), int(row[3]))
            for row in self.session.execute(stmt)
        }

    def balance(self, start: date | None = None, end: date | None = None) -> Decimal:
        totals = self._totals_by_category(start, end)
        income = sum(
            (v for (t, _), (v, _) in totals.items() if t == CashbookEntryType.INCOME.value),
            ZERO,
        )
        expense = sum(
            (v for (t, _), (v, _) in totals.items() if t == CashbookEntryType.EXPENSE.value),
            ZERO,
        )
        return income - expense

    def statistics(self, start: date | None = None, end: date | None = None) -> CashbookStatistics:
        """Totals over [start, end] (inclusive) plus today's figures."""
        totals = self._totals_by_category(start, end)
        income_by_category: dict[str, Decimal] = {}
        expense_by_category: dict[str, Decimal] = {}
        count = 0
        for (entry_type, category), (amount, n) in totals.items():
            count += n
            if entry_type == CashbookEntryType.INCOME.value:
                income_by_category[category] = amount
            else:
                expense_by_category[category] = amount

        today = self._clock.today()
        today_totals = self._totals_by_category(today, today)
        today_income = sum(
            (v for (t, _), (v, _) in today_totals.items() if t == CashbookEntryType.INCOME.value),
            ZERO,
        )
        today_expense = sum(
            (v for (t, _), (v, _) in today_totals.items() if t == CashbookEntryType.EXPENSE.value),
            ZERO,
        )

        total_income = sum(income_by_category.values(), ZERO)
        total_expense = sum(expense_by_category.values(), ZERO)
        return CashbookStatistics(
            total_income=total_income,
            total_expense=total_expense,
            balance=total_income - total_expense,
            today_income=today_income,
            today_expense=today_expense,
            today_balance=today_income - today_expense,
            transaction_count=count,
            income_by_category=income_by_category,
            expense_by_category=expense_by_category,
        )
