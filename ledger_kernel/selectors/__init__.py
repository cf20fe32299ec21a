"""Read-only selectors: statistics reduced from the ledgers at query time."""

from ledger_kernel.selectors.cashbook_selector import CashbookSelector, CashbookStatistics
from ledger_kernel.selectors.debt_selector import DebtSelector, DebtStatistics

__all__ = [
    "CashbookSelector",
    "CashbookStatistics",
    "DebtSelector",
    "DebtStatistics",
]
