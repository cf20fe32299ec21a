"""
Returns Workflows.

    draft -> completed
    draft -> cancelled
"""

from ledger_kernel.domain.workflow import Guard, Transition, Workflow
from ledger_kernel.logging_config import get_logger

logger = get_logger("modules.returns.workflows")


# Descriptive only. ReturnsService._lock_sale checks SALE_COMPLETED;
# _replace_items and _complete check WITHIN_RETURNABLE.
SALE_COMPLETED = Guard(
    name="sale_completed",
    description="The originating sale order is completed",
)

WITHIN_RETURNABLE = Guard(
    name="within_returnable",
    description="No line returns more than was sold minus already returned",
)

logger.info(
    "returns_workflow_guards_defined",
    extra={"guards": [SALE_COMPLETED.name, WITHIN_RETURNABLE.name]},
)


RETURN_ORDER_WORKFLOW = Workflow(
    name="return_order",
    description="Return order lifecycle",
    initial_state="draft",
    states=(
        "draft",
        "completed",
        "cancelled",
    ),
    transitions=(
        Transition("draft", "completed", action="complete", guard=WITHIN_RETURNABLE, affects_ledger=True),
        Transition("draft", "cancelled", action="cancel"),
    ),
    terminal_states=("completed", "cancelled"),
)

EDITABLE_STATES = ("draft",)
DELETABLE_STATES = ("draft", "cancelled")

logger.info(
    "returns_workflow_registered",
    extra={
        "workflow_name": RETURN_ORDER_WORKFLOW.name,
        "state_count": len(RETURN_ORDER_WORKFLOW.states),
        "transition_count": len(RETURN_ORDER_WORKFLOW.transitions),
        "initial_state": RETURN_ORDER_WORKFLOW.initial_state,
    },
)
