"""
Purchasing Module (``order_modules.purchasing``).

Responsibility
--------------
Purchase orders from draft to receipt: totals, supplier payables invoices,
goods receipt into stock, payments and cancellation.

Architecture position
---------------------
**Modules layer** -- workflow, config schema, ORM models and a service that
writes through the kernel Stock, Debt and Cash ledgers.

Invariants enforced
-------------------
* Transaction boundary owned by ``PurchasingService``.
* Stock, payables and cashbook rows are append-only; a cancelled invoice is
  reversed by a new adjustment row.

Failure modes
-------------
* Typed ``LedgerEngineError`` subclasses; nothing is returned as a status.
"""

from order_modules.purchasing.config import PurchasingConfig
from order_modules.purchasing.models import (
    PurchaseOrderItemView,
    PurchaseOrderLine,
    PurchaseOrderPatch,
    PurchaseOrderSpec,
    PurchaseOrderStatus,
    PurchaseOrderView,
    ReceiveLine,
)
from order_modules.purchasing.service import PurchasingService
from order_modules.purchasing.workflows import PURCHASE_ORDER_WORKFLOW

__all__ = [
    "PurchaseOrderStatus",
    "PurchaseOrderLine",
    "PurchaseOrderSpec",
    "PurchaseOrderPatch",
    "ReceiveLine",
    "PurchaseOrderView",
    "PurchaseOrderItemView",
    "PURCHASE_ORDER_WORKFLOW",
    "PurchasingConfig",
    "PurchasingService",
]
