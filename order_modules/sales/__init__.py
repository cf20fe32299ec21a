"""
Sales Module (``order_modules.sales``).

Sale orders: totals, stock issue on completion, customer receivables for
credit sales, cashbook income for paid sales, and payments.  Completed
sales are corrected by ``order_modules.returns``.
"""

from order_modules.sales.config import SalesConfig
from order_modules.sales.models import (
    SaleOrderItemView,
    SaleOrderLine,
    SaleOrderPatch,
    SaleOrderSpec,
    SaleOrderStatus,
    SaleOrderView,
)
from order_modules.sales.service import SalesService
from order_modules.sales.workflows import SALE_ORDER_WORKFLOW

__all__ = [
    "SaleOrderStatus",
    "SaleOrderLine",
    "SaleOrderSpec",
    "SaleOrderPatch",
    "SaleOrderView",
    "SaleOrderItemView",
    "SALE_ORDER_WORKFLOW",
    "SalesConfig",
    "SalesService",
]
