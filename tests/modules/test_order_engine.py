"""
OrderEngine facade: kind dispatch, standalone ledger operations and a full
purchase -> receive -> sell -> return -> settle cycle.
"""

from decimal import Decimal

import pytest

from ledger_kernel.exceptions import (
    AmountExceedsBalanceError,
    InsufficientStockError,
    ValidationFailedError,
)
from ledger_kernel.services.debt_ledger import DebtKind
from order_modules.engine import OrderKind
from order_modules.purchasing import PurchaseOrderLine, PurchaseOrderSpec, PurchaseOrderStatus, ReceiveLine
from order_modules.returns import ReturnLine, ReturnOrderSpec
from order_modules.sales import SaleOrderLine, SaleOrderSpec, SaleOrderStatus


class TestOrderToLedgerCycle:

    def test_full_cycle_balances(
        self, order_engine, product, supplier, customer, warehouse, test_actor_id, deterministic_clock
    ):
        purchase = order_engine.create_order(
            PurchaseOrderSpec(
                supplier_id=supplier.id,
                items=(PurchaseOrderLine(product.id, Decimal("10"), Decimal("60")),),
                status="ordered",
                payment_method="credit",
            ),
            test_actor_id,
        )
        order_engine.receive_goods(
            purchase.id, warehouse.id, [ReceiveLine(purchase.items[0].id, Decimal("10"))], test_actor_id
        )
        assert order_engine.get_order("purchase", purchase.id).status is PurchaseOrderStatus.RECEIVED

        deterministic_clock.advance(3600)
        sale = order_engine.create_order(
            SaleOrderSpec(
                items=(SaleOrderLine(product.id, Decimal("4"), Decimal("100")),),
                customer_id=customer.id,
                status="completed",
                payment_method="credit",
            ),
            test_actor_id,
        )
        order_engine.create_order(
            ReturnOrderSpec(sale_order_id=sale.id, items=(ReturnLine(sale.items[0].id, Decimal("1")),)),
            test_actor_id,
        )

        assert order_engine.stock.on_hand(product.id, warehouse.id) == Decimal("7")
        assert customer.balance == Decimal("300")
        assert supplier.balance == Decimal("600")

        order_engine.collect_from_customer(customer.id, Decimal("300"), "cash", test_actor_id)
        order_engine.pay_supplier(supplier.id, Decimal("600"), "bank_transfer", test_actor_id)

        assert order_engine.cashbook.balance() == Decimal("-300")
        today = deterministic_clock.today()
        assert order_engine.debts.statistics(DebtKind.PAYABLES, today).total_balance == Decimal("0")
        assert order_engine.debts.statistics(DebtKind.RECEIVABLES, today).total_balance == Decimal("0")
        assert order_engine.get_order(OrderKind.SALE, sale.id).status is SaleOrderStatus.COMPLETED


class TestDispatch:

    def test_unsupported_spec_rejected(self, order_engine, test_actor_id):
        with pytest.raises(ValidationFailedError, match="Unsupported"):
            order_engine.create_order({"items": []}, test_actor_id)

    def test_unknown_kind_rejected(self, order_engine, db_tables):
        from uuid import uuid4

        with pytest.raises(ValidationFailedError, match="kind"):
            order_engine.get_order("invoice", uuid4())

    def test_return_cannot_be_paid(self, order_engine, db_tables, test_actor_id):
        from uuid import uuid4

        with pytest.raises(ValidationFailedError, match="refunded on completion"):
            order_engine.create_payment("return", uuid4(), Decimal("1"), "cash", test_actor_id)

    def test_payment_by_kind(self, order_engine, supplier, product, test_actor_id):
        po = order_engine.create_order(
            PurchaseOrderSpec(
                supplier_id=supplier.id,
                items=(PurchaseOrderLine(product.id, Decimal("1"), Decimal("40")),),
                status="ordered",
            ),
            test_actor_id,
        )
        view = order_engine.create_payment("purchase", po.id, Decimal("40"), "cash", test_actor_id)
        assert view.remaining_amount == Decimal("0")

    def test_delete_and_cancel_by_kind(self, order_engine, stocked_product, test_actor_id):
        draft = order_engine.create_order(
            SaleOrderSpec(items=(SaleOrderLine(stocked_product.id, Decimal("1"), Decimal("100")),)),
            test_actor_id,
        )
        assert order_engine.cancel_order("sale", draft.id, test_actor_id).status is SaleOrderStatus.CANCELLED
        assert order_engine.delete_order("sale", draft.id, test_actor_id) is True
        assert order_engine.sales.list_orders() == []


class TestStandaloneOperations:

    def test_pay_supplier_above_balance_rolls_back(
        self, order_engine, supplier, test_actor_id
    ):
        order_engine.adjust_payables(supplier.id, Decimal("100"), test_actor_id, "opening balance")

        with pytest.raises(AmountExceedsBalanceError):
            order_engine.pay_supplier(supplier.id, Decimal("150"), "cash", test_actor_id)

        assert supplier.balance == Decimal("100")
        assert order_engine.cashbook.balance() == Decimal("0")

    def test_adjust_receivables(self, order_engine, customer, test_actor_id):
        order_engine.adjust_receivables(customer.id, Decimal("80"), test_actor_id, "migrated")
        txn = order_engine.adjust_receivables(customer.id, Decimal("-30"), test_actor_id, "discount")
        assert txn.balance_after == Decimal("50")

    def test_adjust_stock_beyond_on_hand_rolls_back(
        self, order_engine, stocked_product, warehouse, test_actor_id
    ):
        with pytest.raises(InsufficientStockError):
            order_engine.adjust_stock(stocked_product.id, warehouse.id, Decimal("-11"), test_actor_id, "lost")
        assert order_engine.stock.on_hand(stocked_product.id, warehouse.id) == Decimal("10")

    def test_adjust_then_count(self, order_engine, stocked_product, warehouse, test_actor_id):
        damaged = order_engine.adjust_stock(
            stocked_product.id, warehouse.id, Decimal("-2"), test_actor_id, "damaged"
        )
        assert damaged.quantity_after == Decimal("8")

        counted = order_engine.count_stock(stocked_product.id, warehouse.id, Decimal("5"), test_actor_id)
        assert counted.base_quantity == Decimal("-3")
        assert order_engine.stock.on_hand(stocked_product.id, warehouse.id) == Decimal("5")

    def test_transfer_stock(
        self, order_engine, stocked_product, warehouse, second_warehouse, test_actor_id
    ):
        movement = order_engine.transfer_stock(
            stocked_product.id, warehouse.id, second_warehouse.id, Decimal("4"), test_actor_id
        )
        assert movement.quantity_after == Decimal("4")
        assert order_engine.stock.on_hand(stocked_product.id) == Decimal("10")
        assert order_engine.stock.on_hand(stocked_product.id, warehouse.id) == Decimal("6")
