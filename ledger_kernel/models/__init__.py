"""ORM models for the ledger kernel."""

from ledger_kernel.models.cashbook import CashbookEntry
from ledger_kernel.models.catalog import Product, ProductUnitConversion, UnitOfMeasure, Warehouse
from ledger_kernel.models.debt import PayableTransaction, ReceivableTransaction
from ledger_kernel.models.party import Customer, Supplier
from ledger_kernel.models.stock import Stock, StockBatch, StockTransaction

__all__ = [
    "CashbookEntry",
    "Customer",
    "PayableTransaction",
    "Product",
    "ProductUnitConversion",
    "ReceivableTransaction",
    "Stock",
    "StockBatch",
    "StockTransaction",
    "Supplier",
    "UnitOfMeasure",
    "Warehouse",
]
