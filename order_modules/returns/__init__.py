"""
Returns Module (``order_modules.returns``).

Return orders against completed sales: restock, receivables refund or cash
refund, and the sale's ``refunded`` status once everything came back.
"""

from order_modules.returns.config import ReturnsConfig
from order_modules.returns.models import (
    ReturnLine,
    ReturnOrderItemView,
    ReturnOrderPatch,
    ReturnOrderSpec,
    ReturnOrderStatus,
    ReturnOrderView,
)
from order_modules.returns.service import ReturnsService
from order_modules.returns.workflows import RETURN_ORDER_WORKFLOW

__all__ = [
    "ReturnOrderStatus",
    "ReturnLine",
    "ReturnOrderSpec",
    "ReturnOrderPatch",
    "ReturnOrderView",
    "ReturnOrderItemView",
    "RETURN_ORDER_WORKFLOW",
    "ReturnsConfig",
    "ReturnsService",
]
