"""
Purchasing Workflows.

State machine for purchase orders:

    draft -> ordered -> partial_received -> received
    ordered -> received
    draft | ordered | partial_received -> cancelled
"""

from ledger_kernel.domain.workflow import Guard, Transition, Workflow
from ledger_kernel.logging_config import get_logger

logger = get_logger("modules.purchasing.workflows")


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------
# Descriptive only. PurchasingService._place checks HAS_ITEMS and
# receive_goods checks QUANTITY_RECEIVED and ALL_LINES_RECEIVED.

HAS_ITEMS = Guard(
    name="has_items",
    description="Order has at least one item",
)

QUANTITY_RECEIVED = Guard(
    name="quantity_received",
    description="At least one line received a quantity greater than 0",
)

ALL_LINES_RECEIVED = Guard(
    name="all_lines_received",
    description="Every item's received quantity equals its ordered quantity",
)

logger.info(
    "purchasing_workflow_guards_defined",
    extra={
        "guards": [
            HAS_ITEMS.name,
            QUANTITY_RECEIVED.name,
            ALL_LINES_RECEIVED.name,
        ],
    },
)


# -----------------------------------------------------------------------------
# Purchase Order Workflow
# -----------------------------------------------------------------------------

PURCHASE_ORDER_WORKFLOW = Workflow(
    name="purchase_order",
    description="Purchase order lifecycle",
    initial_state="draft",
    states=(
        "draft",
        "ordered",
        "partial_received",
        "received",
        "cancelled",
    ),
    transitions=(
        Transition("draft", "ordered", action="place", guard=HAS_ITEMS, affects_ledger=True),
        Transition("ordered", "partial_received", action="receive", guard=QUANTITY_RECEIVED, affects_ledger=True),
        Transition("ordered", "received", action="receive", guard=ALL_LINES_RECEIVED, affects_ledger=True),
        Transition("partial_received", "partial_received", action="receive", guard=QUANTITY_RECEIVED, affects_ledger=True),
        Transition("partial_received", "received", action="receive", guard=ALL_LINES_RECEIVED, affects_ledger=True),
        Transition("draft", "cancelled", action="cancel"),
        Transition("ordered", "cancelled", action="cancel", affects_ledger=True),  # reverse unpaid invoice
        Transition("partial_received", "cancelled", action="cancel", affects_ledger=True),
    ),
    terminal_states=("received", "cancelled"),
)

# Only draft orders may be edited; draft and cancelled orders may be deleted.
EDITABLE_STATES = ("draft",)
DELETABLE_STATES = ("draft", "cancelled")

logger.info(
    "purchasing_po_workflow_registered",
    extra={
        "workflow_name": PURCHASE_ORDER_WORKFLOW.name,
        "state_count": len(PURCHASE_ORDER_WORKFLOW.states),
        "transition_count": len(PURCHASE_ORDER_WORKFLOW.transitions),
        "initial_state": PURCHASE_ORDER_WORKFLOW.initial_state,
    },
)
