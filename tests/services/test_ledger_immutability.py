"""
ORM-level immutability of ledger rows.

Stock, debt and cashbook rows are append-only; a stock batch may only
change its remaining quantity.
"""

from datetime import date
from decimal import Decimal

import pytest

from ledger_kernel.exceptions import ImmutabilityViolationError
from ledger_kernel.models.stock import StockBatch, StockTransaction


class TestLedgerImmutability:

    def test_stock_transaction_update_blocked(
        self, session, stock_ledger, product, warehouse, test_actor_id
    ):
        movement = stock_ledger.receive(
            product.id, warehouse.id, Decimal("1"), None, Decimal("60"), test_actor_id
        )
        txn = session.get(StockTransaction, movement.transaction_ids[0])
        txn.quantity = Decimal("100")

        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()

    def test_debt_transaction_delete_blocked(self, session, payables, supplier, test_actor_id):
        txn = payables.record_invoice(supplier.id, Decimal("10"), test_actor_id, "PO")
        session.delete(txn)

        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()

    def test_cashbook_entry_update_blocked(self, session, cash_ledger, db_tables, test_actor_id):
        entry = cash_ledger.record("income", Decimal("5"), "sales", "cash", "sale", test_actor_id)
        entry.amount = Decimal("500")

        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()

    def test_batch_cost_is_fixed(self, session, stock_ledger, product, warehouse, test_actor_id):
        movement = stock_ledger.receive(
            product.id, warehouse.id, Decimal("3"), None, Decimal("60"), test_actor_id,
            expiry_date=date(2025, 1, 1),
        )
        batch = session.get(StockBatch, movement.batch_ids[0])
        batch.cost_price = Decimal("1")

        with pytest.raises(ImmutabilityViolationError, match="cost_price"):
            session.flush()
        session.rollback()

    def test_batch_remaining_quantity_may_change(
        self, session, stock_ledger, product, warehouse, test_actor_id
    ):
        movement = stock_ledger.receive(
            product.id, warehouse.id, Decimal("3"), None, Decimal("60"), test_actor_id,
            expiry_date=date(2025, 1, 1),
        )
        stock_ledger.issue(product.id, warehouse.id, Decimal("2"), None, test_actor_id)
        assert session.get(StockBatch, movement.batch_ids[0]).remaining_quantity == Decimal("1")
