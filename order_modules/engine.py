"""
order_modules.engine -- the Order-to-Ledger engine facade.

Responsibility:
    Builds the purchasing, sales and returns services plus the kernel
    ledgers and selectors on one session, and exposes the generic order
    operations (create / update / delete / receive goods / pay) by order
    kind.  Standalone ledger operations that do not belong to one order
    (settling a counterparty balance, manual debt or stock corrections)
    run here, each as its own unit of work.

Architecture position:
    Modules layer, top.  Nothing in ``ledger_kernel`` imports it.

Invariants enforced:
    - Every service shares the same Session, Clock and EngineConfig.
    - Every write method commits on success and rolls back on failure.

Usage:
    engine = OrderEngine(session, clock=clock)
    view = engine.create_order(PurchaseOrderSpec(...), actor_id)
    engine.receive_goods(view.id, warehouse.id, [ReceiveLine(...)], actor_id)
    engine.create_payment(OrderKind.PURCHASE, view.id, Decimal("50"), "cash", actor_id)
"""

from __future__ import annotations

from collections.abc import Sequence
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy.orm import Session

from ledger_kernel.config import EngineConfig
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.values import PaymentMethod, parse_enum
from ledger_kernel.exceptions import ValidationFailedError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.selectors.cashbook_selector import CashbookSelector
from ledger_kernel.selectors.debt_selector import DebtSelector
from ledger_kernel.services.debt_ledger import DebtLedger
from ledger_kernel.services.stock_ledger import StockLedger, StockMovement
from order_modules._order_helpers import unit_of_work
from order_modules.purchasing.models import PurchaseOrderSpec, ReceiveLine
from order_modules.purchasing.service import PurchasingService
from order_modules.returns.models import ReturnOrderSpec
from order_modules.returns.service import ReturnsService
from order_modules.sales.models import SaleOrderSpec
from order_modules.sales.service import SalesService

logger = get_logger("modules.engine")


class OrderKind(str, Enum):
    PURCHASE = "purchase"
    SALE = "sale"
    RETURN = "return"


class OrderEngine:
    """
    Single entry point over the three order services.

    Contract:
        ``purchases``, ``sales`` and ``returns`` are the module services;
        ``stock``, ``payables`` and ``receivables`` the kernel ledgers;
        ``cashbook`` and ``debts`` the read-side selectors.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: EngineConfig | None = None,
    ) -> None:
        self._session = session
        self._clock = clock or SystemClock()
        self.config = config or EngineConfig.with_defaults()

        self.purchases = PurchasingService(session, self._clock, self.config)
        self.sales = SalesService(session, self._clock, self.config)
        self.returns = ReturnsService(session, self._clock, self.config)

        self.stock = StockLedger(session, self._clock, self.config)
        self.payables = DebtLedger.payables(session, self._clock, self.config)
        self.receivables = DebtLedger.receivables(session, self._clock, self.config)

        self.cashbook = CashbookSelector(session, self._clock)
        self.debts = DebtSelector(session)

        logger.info(
            "order_engine_initialized",
            extra={"issue_method": self.config.issue_method},
        )

    # =========================================================================
    # Order operations
    # =========================================================================

    def create_order(self, spec, actor_id: UUID):
        """Dispatch on the spec type."""
        if isinstance(spec, PurchaseOrderSpec):
            return self.purchases.create_order(spec, actor_id)
        if isinstance(spec, SaleOrderSpec):
            return self.sales.create_order(spec, actor_id)
        if isinstance(spec, ReturnOrderSpec):
            return self.returns.create_return(spec, actor_id)
        raise ValidationFailedError(
            f"Unsupported order spec: {type(spec).__name__}", field="spec"
        )

    def get_order(self, kind: OrderKind | str, order_id: UUID):
        kind = parse_enum(OrderKind, kind, "kind")
        if kind is OrderKind.PURCHASE:
            return self.purchases.get_order(order_id)
        if kind is OrderKind.SALE:
            return self.sales.get_order(order_id)
        return self.returns.get_return(order_id)

    def update_order(self, kind: OrderKind | str, order_id: UUID, patch, actor_id: UUID):
        kind = parse_enum(OrderKind, kind, "kind")
        if kind is OrderKind.PURCHASE:
            return self.purchases.update_order(order_id, patch, actor_id)
        if kind is OrderKind.SALE:
            return self.sales.update_order(order_id, patch, actor_id)
        return self.returns.update_return(order_id, patch, actor_id)

    def delete_order(self, kind: OrderKind | str, order_id: UUID, actor_id: UUID) -> bool:
        kind = parse_enum(OrderKind, kind, "kind")
        if kind is OrderKind.PURCHASE:
            return self.purchases.delete_order(order_id, actor_id)
        if kind is OrderKind.SALE:
            return self.sales.delete_order(order_id, actor_id)
        return self.returns.delete_return(order_id, actor_id)

    def cancel_order(self, kind: OrderKind | str, order_id: UUID, actor_id: UUID):
        kind = parse_enum(OrderKind, kind, "kind")
        if kind is OrderKind.PURCHASE:
            return self.purchases.cancel_order(order_id, actor_id)
        if kind is OrderKind.SALE:
            return self.sales.cancel_order(order_id, actor_id)
        return self.returns.cancel_return(order_id, actor_id)

    def receive_goods(
        self,
        order_id: UUID,
        warehouse_id: UUID,
        lines: Sequence[ReceiveLine],
        actor_id: UUID,
    ):
        return self.purchases.receive_goods(order_id, warehouse_id, lines, actor_id)

    def create_payment(
        self,
        kind: OrderKind | str,
        order_id: UUID,
        amount: Decimal,
        payment_method: PaymentMethod | str,
        actor_id: UUID,
        description: str | None = None,
    ):
        kind = parse_enum(OrderKind, kind, "kind")
        if kind is OrderKind.PURCHASE:
            return self.purchases.create_payment(
                order_id, amount, payment_method, actor_id, description
            )
        if kind is OrderKind.SALE:
            return self.sales.create_payment(
                order_id, amount, payment_method, actor_id, description
            )
        raise ValidationFailedError(
            "Return orders are refunded on completion, not paid", field="kind"
        )

    # =========================================================================
    # Standalone debt operations
    # =========================================================================

    def pay_supplier(
        self,
        supplier_id: UUID,
        amount: Decimal,
        payment_method: PaymentMethod | str,
        actor_id: UUID,
        description: str | None = None,
        bank_account: str | None = None,
    ):
        """Settle part of a supplier's payables balance outside any order."""
        with unit_of_work(self._session, "pay_supplier", actor_id, "Supplier", supplier_id):
            result = self.payables.pay_balance(
                supplier_id, amount, payment_method, actor_id, description, bank_account
            )
        return result

    def collect_from_customer(
        self,
        customer_id: UUID,
        amount: Decimal,
        payment_method: PaymentMethod | str,
        actor_id: UUID,
        description: str | None = None,
        bank_account: str | None = None,
    ):
        """Receive money against a customer's receivables balance."""
        with unit_of_work(self._session, "collect_from_customer", actor_id, "Customer", customer_id):
            result = self.receivables.pay_balance(
                customer_id, amount, payment_method, actor_id, description, bank_account
            )
        return result

    def adjust_payables(
        self, supplier_id: UUID, signed_amount: Decimal, actor_id: UUID, reason: str
    ):
        with unit_of_work(self._session, "adjust_payables", actor_id, "Supplier", supplier_id):
            txn = self.payables.record_adjustment(supplier_id, signed_amount, actor_id, reason)
        return txn

    def adjust_receivables(
        self, customer_id: UUID, signed_amount: Decimal, actor_id: UUID, reason: str
    ):
        with unit_of_work(self._session, "adjust_receivables", actor_id, "Customer", customer_id):
            txn = self.receivables.record_adjustment(customer_id, signed_amount, actor_id, reason)
        return txn

    # =========================================================================
    # Standalone stock operations
    # =========================================================================

    def adjust_stock(
        self,
        product_id: UUID,
        warehouse_id: UUID,
        signed_quantity: Decimal,
        actor_id: UUID,
        reason: str,
        unit_id: UUID | None = None,
    ) -> StockMovement:
        with unit_of_work(self._session, "adjust_stock", actor_id, "Stock"):
            movement = self.stock.adjust(
                product_id, warehouse_id, signed_quantity, actor_id, reason, unit_id=unit_id
            )
        return movement

    def count_stock(
        self,
        product_id: UUID,
        warehouse_id: UUID,
        counted_quantity: Decimal,
        actor_id: UUID,
        notes: str | None = None,
    ) -> StockMovement:
        with unit_of_work(self._session, "count_stock", actor_id, "Stock"):
            movement = self.stock.count(
                product_id, warehouse_id, counted_quantity, actor_id, notes=notes
            )
        return movement

    def transfer_stock(
        self,
        product_id: UUID,
        from_warehouse_id: UUID,
        to_warehouse_id: UUID,
        quantity: Decimal,
        actor_id: UUID,
        unit_id: UUID | None = None,
        notes: str | None = None,
    ) -> StockMovement:
        with unit_of_work(self._session, "transfer_stock", actor_id, "Stock"):
            movement = self.stock.transfer(
                product_id, from_warehouse_id, to_warehouse_id, quantity, actor_id,
                unit_id=unit_id, notes=notes,
            )
        return movement
