"""
Workflow definitions for the three order types.

Verifies the state machines the services consult: legal transitions,
terminal states and the Workflow value object's own validation.
"""

import pytest

from ledger_kernel.domain.workflow import Transition, Workflow
from order_modules.purchasing.workflows import (
    ALL_LINES_RECEIVED,
    HAS_ITEMS,
    PURCHASE_ORDER_WORKFLOW,
    QUANTITY_RECEIVED,
)
from order_modules.returns.workflows import RETURN_ORDER_WORKFLOW
from order_modules.sales.workflows import SALE_ORDER_WORKFLOW


class TestWorkflowValueObject:

    def test_initial_state_must_be_a_state(self):
        with pytest.raises(ValueError, match="initial state"):
            Workflow(
                name="broken",
                description="",
                initial_state="nowhere",
                states=("a",),
                transitions=(),
            )

    def test_transition_states_must_exist(self):
        with pytest.raises(ValueError, match="unknown state"):
            Workflow(
                name="broken",
                description="",
                initial_state="a",
                states=("a",),
                transitions=(Transition("a", "b", action="go"),),
            )


class TestPurchaseOrderWorkflow:

    @pytest.mark.parametrize(
        "from_state,action,to_state",
        [
            ("draft", "place", "ordered"),
            ("ordered", "receive", "partial_received"),
            ("ordered", "receive", "received"),
            ("partial_received", "receive", "partial_received"),
            ("partial_received", "receive", "received"),
            ("draft", "cancel", "cancelled"),
            ("ordered", "cancel", "cancelled"),
            ("partial_received", "cancel", "cancelled"),
        ],
    )
    def test_allowed(self, from_state, action, to_state):
        assert PURCHASE_ORDER_WORKFLOW.transition_for(from_state, action, to_state) is not None

    @pytest.mark.parametrize(
        "from_state,action",
        [
            ("received", "receive"),
            ("received", "cancel"),
            ("cancelled", "place"),
            ("draft", "receive"),
            ("ordered", "place"),
        ],
    )
    def test_rejected(self, from_state, action):
        assert PURCHASE_ORDER_WORKFLOW.transition_for(from_state, action) is None

    def test_received_cannot_revert_to_partial(self):
        assert PURCHASE_ORDER_WORKFLOW.transition_for("received", "receive", "partial_received") is None

    @pytest.mark.parametrize(
        "from_state,action,to_state,guard",
        [
            ("draft", "place", "ordered", HAS_ITEMS),
            ("ordered", "receive", "partial_received", QUANTITY_RECEIVED),
            ("ordered", "receive", "received", ALL_LINES_RECEIVED),
            ("partial_received", "receive", "received", ALL_LINES_RECEIVED),
        ],
    )
    def test_transition_carries_guard(self, from_state, action, to_state, guard):
        assert PURCHASE_ORDER_WORKFLOW.transition_for(from_state, action, to_state).guard is guard


class TestSaleOrderWorkflow:

    def test_completed_sale_cannot_be_cancelled(self):
        assert SALE_ORDER_WORKFLOW.transition_for("completed", "cancel") is None

    def test_refund_only_from_completed(self):
        assert SALE_ORDER_WORKFLOW.transition_for("completed", "refund").to_state == "refunded"
        assert SALE_ORDER_WORKFLOW.transition_for("draft", "refund") is None

    def test_complete_affects_ledger(self):
        assert SALE_ORDER_WORKFLOW.transition_for("draft", "complete").affects_ledger


class TestReturnOrderWorkflow:

    def test_allowed_actions_from_draft(self):
        assert set(RETURN_ORDER_WORKFLOW.allowed_actions("draft")) == {"complete", "cancel"}

    def test_completed_is_terminal(self):
        assert RETURN_ORDER_WORKFLOW.allowed_actions("completed") == ()
        assert "completed" in RETURN_ORDER_WORKFLOW.terminal_states
