"""
Sales Workflows.

    draft -> completed -> refunded
    draft -> cancelled

A completed sale is corrected through return orders, never cancelled.
"""

from ledger_kernel.domain.workflow import Guard, Transition, Workflow
from ledger_kernel.logging_config import get_logger

logger = get_logger("modules.sales.workflows")


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------
# Descriptive only. SalesService._complete checks CUSTOMER_FOR_CREDIT (and
# StockLedger.issue STOCK_AVAILABLE); ReturnsService._complete checks
# FULLY_RETURNED.

STOCK_AVAILABLE = Guard(
    name="stock_available",
    description="Warehouse holds enough stock for every item",
)

CUSTOMER_FOR_CREDIT = Guard(
    name="customer_for_credit",
    description="Credit sales name a customer",
)

FULLY_RETURNED = Guard(
    name="fully_returned",
    description="Every item's returned quantity equals its sold quantity",
)

logger.info(
    "sales_workflow_guards_defined",
    extra={
        "guards": [
            STOCK_AVAILABLE.name,
            CUSTOMER_FOR_CREDIT.name,
            FULLY_RETURNED.name,
        ],
    },
)


# -----------------------------------------------------------------------------
# Sale Order Workflow
# -----------------------------------------------------------------------------

SALE_ORDER_WORKFLOW = Workflow(
    name="sale_order",
    description="Sale order lifecycle",
    initial_state="draft",
    states=(
        "draft",
        "completed",
        "cancelled",
        "refunded",
    ),
    transitions=(
        Transition("draft", "completed", action="complete", guard=STOCK_AVAILABLE, affects_ledger=True),
        Transition("draft", "cancelled", action="cancel"),
        Transition("completed", "refunded", action="refund", guard=FULLY_RETURNED),
    ),
    terminal_states=("cancelled", "refunded"),
)

EDITABLE_STATES = ("draft",)
DELETABLE_STATES = ("draft", "cancelled")

logger.info(
    "sales_workflow_registered",
    extra={
        "workflow_name": SALE_ORDER_WORKFLOW.name,
        "state_count": len(SALE_ORDER_WORKFLOW.states),
        "transition_count": len(SALE_ORDER_WORKFLOW.transitions),
        "initial_state": SALE_ORDER_WORKFLOW.initial_state,
    },
)
