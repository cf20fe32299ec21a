"""Kernel services: the ledgers, unit resolution and sequence allocation. Services flush; callers commit."""

from ledger_kernel.services.cash_ledger import CashLedger
from ledger_kernel.services.debt_ledger import DebtKind, DebtLedger
from ledger_kernel.services.sequence_service import SequenceService
from ledger_kernel.services.stock_ledger import StockLedger
from ledger_kernel.services.unit_resolver import UnitResolver

__all__ = [
    "CashLedger",
    "DebtKind",
    "DebtLedger",
    "SequenceService",
    "StockLedger",
    "UnitResolver",
]
