"""
Tests for the Returns module service.

Validates:
- Completed returns restock the sale's warehouse at the sale's cost
- Refund goes to receivables for credit sales, to the cashbook otherwise
- Returnable quantity accounts for completed and pending draft returns
- The sale becomes refunded once every item is fully returned
- Payments on the sale never collect what a return already refunded
"""

from decimal import Decimal

import pytest
from sqlalchemy import select

from ledger_kernel.exceptions import (
    AmountExceedsBalanceError,
    InvalidQuantityError,
    InvalidStateTransitionError,
    ValidationFailedError,
)
from ledger_kernel.models.cashbook import CashbookEntry
from ledger_kernel.models.debt import ReceivableTransaction
from order_modules.returns import ReturnLine, ReturnOrderPatch, ReturnOrderSpec, ReturnOrderStatus
from order_modules.sales import SaleOrderLine, SaleOrderSpec, SaleOrderStatus


@pytest.fixture
def cash_sale(sales_service, stocked_product, test_actor_id):
    """Completed walk-in sale: 3 x 100, paid in full, 7 pieces left."""
    return sales_service.create_order(
        SaleOrderSpec(
            items=(SaleOrderLine(stocked_product.id, Decimal("3"), Decimal("100")),),
            status="completed",
            paid_amount=Decimal("300"),
        ),
        test_actor_id,
    )


@pytest.fixture
def credit_sale(sales_service, stocked_product, customer, test_actor_id):
    """Completed credit sale: 3 x 100 invoiced to the customer."""
    return sales_service.create_order(
        SaleOrderSpec(
            items=(SaleOrderLine(stocked_product.id, Decimal("3"), Decimal("100")),),
            customer_id=customer.id,
            status="completed",
            payment_method="credit",
        ),
        test_actor_id,
    )


def _refunds(session) -> list[CashbookEntry]:
    return list(
        session.execute(
            select(CashbookEntry).where(CashbookEntry.category == "order refund")
        ).scalars()
    )


def _spec(sale, quantity, **kwargs) -> ReturnOrderSpec:
    return ReturnOrderSpec(
        sale_order_id=sale.id,
        items=(ReturnLine(sale.items[0].id, Decimal(quantity)),),
        **kwargs,
    )


class TestCompletedReturn:

    def test_partial_return_of_cash_sale(
        self, session, returns_service, sales_service, stock_ledger, cash_sale,
        stocked_product, warehouse, test_actor_id,
    ):
        ret = returns_service.create_return(_spec(cash_sale, "1", reason="damaged box"), test_actor_id)

        assert ret.status is ReturnOrderStatus.COMPLETED
        assert ret.code == "RO-20240101-0001"
        assert ret.sale_order_code == cash_sale.code
        assert ret.refund_amount == Decimal("100")
        assert ret.paid_amount == Decimal("100")
        assert ret.refund_method == "cash"
        assert ret.warehouse_id == warehouse.id
        assert stock_ledger.on_hand(stocked_product.id, warehouse.id) == Decimal("8")

        (refund,) = _refunds(session)
        assert refund.type == "expense"
        assert refund.amount == Decimal("100")
        assert refund.reference_type == "return_order"
        assert refund.reference_id == ret.id

        sale = sales_service.get_order(cash_sale.id)
        assert sale.status is SaleOrderStatus.COMPLETED
        assert sale.items[0].returned_quantity == Decimal("1")

    def test_full_return_marks_sale_refunded(
        self, returns_service, sales_service, cash_sale, test_actor_id
    ):
        returns_service.create_return(_spec(cash_sale, "1"), test_actor_id)
        returns_service.create_return(_spec(cash_sale, "2"), test_actor_id)

        assert sales_service.get_order(cash_sale.id).status is SaleOrderStatus.REFUNDED

    def test_refunded_sale_cannot_be_returned_again(
        self, returns_service, cash_sale, test_actor_id
    ):
        returns_service.create_return(_spec(cash_sale, "3"), test_actor_id)
        with pytest.raises(InvalidStateTransitionError):
            returns_service.create_return(_spec(cash_sale, "1"), test_actor_id)

    def test_credit_sale_refund_reduces_receivables(
        self, session, returns_service, credit_sale, customer, test_actor_id
    ):
        assert customer.balance == Decimal("300")
        ret = returns_service.create_return(_spec(credit_sale, "2"), test_actor_id)

        assert customer.balance == Decimal("100")
        assert ret.payment_method == "credit"
        (refund,) = session.execute(
            select(ReceivableTransaction).where(ReceivableTransaction.type == "refund")
        ).scalars()
        assert refund.amount == Decimal("200")
        assert _refunds(session) == []

    def test_receivables_update_can_be_skipped(
        self, returns_service, credit_sale, customer, test_actor_id
    ):
        ret = returns_service.create_return(
            _spec(credit_sale, "1", update_receivables=False), test_actor_id
        )
        assert customer.balance == Decimal("300")
        assert ret.paid_amount == Decimal("0")

    def test_cashbook_entry_can_be_skipped(self, session, returns_service, cash_sale, test_actor_id):
        returns_service.create_return(_spec(cash_sale, "1", create_cashbook_entry=False), test_actor_id)
        assert _refunds(session) == []

    def test_refund_uses_discounted_price(
        self, returns_service, sales_service, stocked_product, test_actor_id
    ):
        sale = sales_service.create_order(
            SaleOrderSpec(
                items=(
                    SaleOrderLine(
                        stocked_product.id, Decimal("3"), Decimal("100"),
                        discount=Decimal("10"), discount_type="percent",
                    ),
                ),
                status="completed",
                paid_amount=Decimal("270"),
            ),
            test_actor_id,
        )
        ret = returns_service.create_return(_spec(sale, "1"), test_actor_id)
        assert ret.refund_amount == Decimal("90")

    def test_restock_into_other_warehouse(
        self, returns_service, stock_ledger, cash_sale, stocked_product, second_warehouse, test_actor_id
    ):
        returns_service.create_return(
            _spec(cash_sale, "1", warehouse_id=second_warehouse.id), test_actor_id
        )
        assert stock_ledger.on_hand(stocked_product.id, second_warehouse.id) == Decimal("1")

    def test_completion_logged(self, returns_service, cash_sale, test_actor_id, captured_logs):
        returns_service.create_return(_spec(cash_sale, "3"), test_actor_id)
        messages = [r["message"] for r in captured_logs()]
        assert "return_order_completed" in messages
        assert "sale_order_refunded" in messages


class TestReturnValidation:

    def test_over_return_rejected(
        self, returns_service, stock_ledger, cash_sale, stocked_product, warehouse, test_actor_id
    ):
        with pytest.raises(InvalidQuantityError, match="exceeds returnable"):
            returns_service.create_return(_spec(cash_sale, "4"), test_actor_id)
        assert stock_ledger.on_hand(stocked_product.id, warehouse.id) == Decimal("7")
        assert returns_service.list_returns() == []

    def test_pending_drafts_hold_quantity(self, returns_service, cash_sale, test_actor_id):
        returns_service.create_return(_spec(cash_sale, "2", complete=False), test_actor_id)
        with pytest.raises(InvalidQuantityError):
            returns_service.create_return(_spec(cash_sale, "2"), test_actor_id)

    @pytest.mark.parametrize("quantity", ["0", "-1"])
    def test_non_positive_quantity_rejected(self, returns_service, cash_sale, test_actor_id, quantity):
        with pytest.raises(InvalidQuantityError):
            returns_service.create_return(_spec(cash_sale, quantity), test_actor_id)

    def test_draft_sale_cannot_be_returned(
        self, returns_service, sales_service, stocked_product, test_actor_id
    ):
        draft = sales_service.create_order(
            SaleOrderSpec(items=(SaleOrderLine(stocked_product.id, Decimal("1"), Decimal("100")),)),
            test_actor_id,
        )
        with pytest.raises(InvalidStateTransitionError, match="return"):
            returns_service.create_return(_spec(draft, "1"), test_actor_id)

    def test_credit_refund_method_rejected(self, returns_service, cash_sale, test_actor_id):
        with pytest.raises(ValidationFailedError, match="Refunds"):
            returns_service.create_return(_spec(cash_sale, "1", refund_method="credit"), test_actor_id)

    def test_empty_items_rejected(self, returns_service, cash_sale, test_actor_id):
        with pytest.raises(ValidationFailedError, match="at least one item"):
            returns_service.create_return(
                ReturnOrderSpec(sale_order_id=cash_sale.id, items=()), test_actor_id
            )


class TestDraftReturns:

    def test_draft_has_no_ledger_effects_until_completed(
        self, session, returns_service, stock_ledger, cash_sale, stocked_product, warehouse, test_actor_id
    ):
        draft = returns_service.create_return(_spec(cash_sale, "1", complete=False), test_actor_id)
        assert draft.status is ReturnOrderStatus.DRAFT
        assert stock_ledger.on_hand(stocked_product.id, warehouse.id) == Decimal("7")
        assert _refunds(session) == []

        done = returns_service.complete_return(draft.id, test_actor_id)
        assert done.status is ReturnOrderStatus.COMPLETED
        assert stock_ledger.on_hand(stocked_product.id, warehouse.id) == Decimal("8")

    def test_update_draft_quantity(self, returns_service, cash_sale, test_actor_id):
        draft = returns_service.create_return(_spec(cash_sale, "1", complete=False), test_actor_id)
        updated = returns_service.update_return(
            draft.id,
            ReturnOrderPatch(items=(ReturnLine(cash_sale.items[0].id, Decimal("3")),), reason="recall"),
            test_actor_id,
        )
        assert updated.refund_amount == Decimal("300")
        assert updated.reason == "recall"

    def test_cancel_then_delete(self, returns_service, cash_sale, test_actor_id):
        draft = returns_service.create_return(_spec(cash_sale, "1", complete=False), test_actor_id)
        cancelled = returns_service.cancel_return(draft.id, test_actor_id)
        assert cancelled.status is ReturnOrderStatus.CANCELLED

        with pytest.raises(InvalidStateTransitionError):
            returns_service.complete_return(draft.id, test_actor_id)
        assert returns_service.delete_return(draft.id, test_actor_id) is True
        assert returns_service.list_returns(sale_order_id=cash_sale.id) == []

    def test_completed_return_cannot_be_deleted(self, returns_service, cash_sale, test_actor_id):
        ret = returns_service.create_return(_spec(cash_sale, "1"), test_actor_id)
        with pytest.raises(InvalidStateTransitionError):
            returns_service.delete_return(ret.id, test_actor_id)


class TestPaymentsAfterReturn:

    def test_fully_returned_credit_sale_accepts_no_payment(
        self, session, returns_service, sales_service, credit_sale, stocked_product,
        customer, test_actor_id,
    ):
        sales_service.create_order(
            SaleOrderSpec(
                items=(SaleOrderLine(stocked_product.id, Decimal("1"), Decimal("50")),),
                customer_id=customer.id,
                status="completed",
                payment_method="credit",
            ),
            test_actor_id,
        )
        returns_service.create_return(_spec(credit_sale, "3"), test_actor_id)
        assert customer.balance == Decimal("50")

        sale = sales_service.get_order(credit_sale.id)
        assert sale.status is SaleOrderStatus.REFUNDED
        assert sale.refunded_amount == Decimal("300")
        assert sale.remaining_amount == Decimal("0")

        with pytest.raises(AmountExceedsBalanceError):
            sales_service.create_payment(credit_sale.id, Decimal("300"), "cash", test_actor_id)

        assert customer.balance == Decimal("50")
        income = session.execute(
            select(CashbookEntry).where(CashbookEntry.type == "income")
        ).scalars().all()
        assert income == []

    def test_partial_return_lowers_collectable_amount(
        self, returns_service, sales_service, credit_sale, customer, test_actor_id
    ):
        returns_service.create_return(_spec(credit_sale, "1"), test_actor_id)
        assert customer.balance == Decimal("200")
        assert sales_service.get_order(credit_sale.id).remaining_amount == Decimal("200")

        with pytest.raises(AmountExceedsBalanceError):
            sales_service.create_payment(credit_sale.id, Decimal("250"), "cash", test_actor_id)

        view = sales_service.create_payment(credit_sale.id, Decimal("200"), "cash", test_actor_id)
        assert view.paid_amount == Decimal("200")
        assert view.remaining_amount == Decimal("0")
        assert customer.balance == Decimal("0")
