"""
Ledger Kernel - shared core of the order-to-ledger engine.

Provides the append-only ledgers every order operation writes through:
- Stock ledger with unit conversion and FIFO batches
- Debt ledger for supplier payables and customer receivables
- Cash ledger (cashbook) with read-time statistics
- Atomic units of work with row locking and version checks
"""

__version__ = "0.1.0"
