"""
Sales Module Service (``order_modules.sales.service``).

Responsibility
--------------
Runs the sale order lifecycle.  Completing a sale issues stock (batches
first, oldest first), fixes each item's cost from the stock drawn, and
either invoices the unpaid remainder to the customer's receivables (credit)
or books the amount paid as cashbook income.

Architecture position
---------------------
**Modules layer**.  ``SalesService`` composes ``StockLedger``,
``DebtLedger.receivables`` and ``CashLedger`` on one session and owns the
commit.

Invariants enforced
-------------------
* Each public method is one unit of work.
* A credit sale names a customer.
* A completed sale is never cancelled; it is corrected by return orders
  and becomes ``refunded`` once every item is returned.

Failure modes
-------------
* ValidationFailedError, ReferenceNotFoundError, OrderNotFoundError,
  InvalidStateTransitionError, InsufficientStockError, InvalidAmountError,
  AmountExceedsBalanceError, OptimisticLockError.
"""

from __future__ import annotations

from collections.abc import Sequence
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.config import EngineConfig
from ledger_kernel.domain.clock import Clock
from ledger_kernel.domain.pricing import round_money
from ledger_kernel.domain.values import (
    CashbookEntryType,
    DocumentRef,
    PaymentMethod,
    ReferenceType,
    parse_enum,
)
from ledger_kernel.exceptions import ValidationFailedError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.party import Customer
from ledger_kernel.services.debt_ledger import DebtLedger
from order_modules._order_helpers import OrderServiceBase, PricedLine
from order_modules.sales.config import SalesConfig
from order_modules.sales.models import (
    SaleOrderItemView,
    SaleOrderPatch,
    SaleOrderSpec,
    SaleOrderStatus,
    SaleOrderView,
)
from order_modules.sales.orm import SaleOrderItemModel, SaleOrderModel
from order_modules.sales.workflows import (
    DELETABLE_STATES,
    EDITABLE_STATES,
    SALE_ORDER_WORKFLOW,
)

logger = get_logger("modules.sales.service")

_CREATABLE = (SaleOrderStatus.DRAFT, SaleOrderStatus.COMPLETED)


class SalesService(OrderServiceBase):
    """Orchestrates sale orders through the kernel ledgers."""

    order_type = "SaleOrder"
    order_model = SaleOrderModel
    workflow = SALE_ORDER_WORKFLOW

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        engine_config: EngineConfig | None = None,
        config: SalesConfig | None = None,
    ):
        super().__init__(session, clock, engine_config)
        self._config = config or SalesConfig.from_engine_config(self._engine_config)
        self._receivables = DebtLedger.receivables(session, self._clock, self._engine_config)

    # =========================================================================
    # Queries
    # =========================================================================

    def get_order(self, order_id: UUID) -> SaleOrderView:
        return self._to_view(self._find_order(order_id))

    def list_orders(
        self,
        status: SaleOrderStatus | str | None = None,
        customer_id: UUID | None = None,
    ) -> list[SaleOrderView]:
        stmt = select(SaleOrderModel)
        if status is not None:
            status = parse_enum(SaleOrderStatus, status, "status")
            stmt = stmt.where(SaleOrderModel.status == status.value)
        if customer_id is not None:
            stmt = stmt.where(SaleOrderModel.customer_id == customer_id)
        stmt = stmt.order_by(SaleOrderModel.order_date.desc(), SaleOrderModel.code.desc())
        return [self._to_view(order) for order in self._session.execute(stmt).scalars()]

    # =========================================================================
    # Create / edit / delete
    # =========================================================================

    def create_order(self, spec: SaleOrderSpec, actor_id: UUID) -> SaleOrderView:
        """Create a sale as ``draft`` or ``completed`` (completion effects included)."""
        with self._unit_of_work("create_order", actor_id):
            status = parse_enum(SaleOrderStatus, spec.status, "status")
            if status not in _CREATABLE:
                raise ValidationFailedError(
                    f"A sale order cannot be created as '{status.value}'",
                    field="status",
                )
            if spec.customer_id is not None:
                self._receivables.get_counterparty(spec.customer_id)
            if spec.warehouse_id is not None:
                self._stock.require_warehouse(spec.warehouse_id)
            method = self._parse_method(spec.payment_method)
            priced = self._price_lines(spec.items)
            totals = self._header_totals(
                [p.totals.total for p in priced],
                spec.discount, spec.discount_type, spec.paid_amount,
            )

            order = SaleOrderModel(
                id=uuid4(),
                code=self._next_code(self._config.code_prefix),
                customer_id=spec.customer_id,
                warehouse_id=spec.warehouse_id,
                status=SaleOrderStatus.DRAFT.value,
                order_date=spec.order_date or self._clock.today(),
                payment_due_date=spec.payment_due_date,
                payment_method=method.value,
                paid_amount=Decimal(spec.paid_amount or 0),
                refunded_amount=Decimal("0"),
                invoice_posted=False,
                notes=spec.notes,
                created_by_id=actor_id,
            )
            self._apply_header_totals(order, totals, spec.discount, spec.discount_type)
            self._replace_items(order, priced, actor_id)
            self._session.add(order)
            self._session.flush()

            logger.info(
                "sale_order_created",
                extra={
                    "order_id": str(order.id),
                    "order_code": order.code,
                    "customer_id": str(order.customer_id) if order.customer_id else None,
                    "item_count": len(priced),
                    "total": order.total,
                    "payment_method": order.payment_method,
                },
            )

            if status is SaleOrderStatus.COMPLETED:
                self._complete(order, actor_id)

        return self._to_view(order)

    def complete_order(self, order_id: UUID, actor_id: UUID) -> SaleOrderView:
        with self._unit_of_work("complete_order", actor_id, order_id):
            order = self._lock_order(order_id)
            self._complete(order, actor_id)
        return self._to_view(order)

    def update_order(
        self, order_id: UUID, patch: SaleOrderPatch, actor_id: UUID
    ) -> SaleOrderView:
        with self._unit_of_work("update_order", actor_id, order_id):
            order = self._lock_order(order_id)
            self._require_editable(order, "update", EDITABLE_STATES)

            if patch.customer_id is not None:
                self._receivables.get_counterparty(patch.customer_id)
                order.customer_id = patch.customer_id
            if patch.warehouse_id is not None:
                self._stock.require_warehouse(patch.warehouse_id)
                order.warehouse_id = patch.warehouse_id
            if patch.payment_method is not None:
                order.payment_method = self._parse_method(patch.payment_method).value
            if patch.payment_due_date is not None:
                order.payment_due_date = patch.payment_due_date
            if patch.notes is not None:
                order.notes = patch.notes

            if patch.items is not None:
                priced = self._price_lines(patch.items)
                item_totals = [p.totals.total for p in priced]
            else:
                priced = None
                item_totals = [item.total for item in order.items]

            discount = patch.discount if patch.discount is not None else order.discount
            discount_type = patch.discount_type or order.discount_type
            paid_amount = patch.paid_amount if patch.paid_amount is not None else order.paid_amount
            totals = self._header_totals(item_totals, discount, discount_type, paid_amount)

            if priced is not None:
                self._replace_items(order, priced, actor_id)
            self._apply_header_totals(order, totals, discount, discount_type)
            order.paid_amount = Decimal(paid_amount)
            order.updated_by_id = actor_id
            self._session.flush()

            logger.info(
                "sale_order_updated",
                extra={
                    "order_code": order.code,
                    "items_replaced": priced is not None,
                    "total": order.total,
                },
            )
        return self._to_view(order)

    def delete_order(self, order_id: UUID, actor_id: UUID) -> bool:
        with self._unit_of_work("delete_order", actor_id, order_id):
            order = self._lock_order(order_id)
            self._require_editable(order, "delete", DELETABLE_STATES)
            code = order.code
            self._session.delete(order)
            self._session.flush()
            logger.info("sale_order_deleted", extra={"order_code": code})
        return True

    def cancel_order(
        self, order_id: UUID, actor_id: UUID, reason: str | None = None
    ) -> SaleOrderView:
        """Cancel a draft sale.  Nothing was posted, so nothing is reversed."""
        with self._unit_of_work("cancel_order", actor_id, order_id):
            order = self._lock_order(order_id)
            self._move(order, "cancel", SaleOrderStatus.CANCELLED.value, actor_id)
            if reason:
                order.notes = f"{order.notes}\n{reason}" if order.notes else reason
            self._session.flush()
            logger.info("sale_order_cancelled", extra={"order_code": order.code})
        return self._to_view(order)

    # =========================================================================
    # Payments
    # =========================================================================

    def create_payment(
        self,
        order_id: UUID,
        amount: Decimal,
        payment_method: PaymentMethod | str,
        actor_id: UUID,
        description: str | None = None,
        bank_account: str | None = None,
    ) -> SaleOrderView:
        """
        Record money received against the sale.

        Books cashbook income unless paid on credit; on an invoiced credit
        sale also settles receivables.  Draft payments only raise
        ``paid_amount`` and are posted on completion.
        Completed returns lower what is still collectable, so a fully
        returned sale accepts no further payment.
        """
        with self._unit_of_work("create_payment", actor_id, order_id):
            order = self._lock_order(order_id)
            amount = self._check_payment(amount, self._outstanding(order))
            method = self._parse_method(payment_method)
            order_method = PaymentMethod(order.payment_method)
            settles_invoice = order_method.is_credit and order.invoice_posted
            if method.is_credit and not settles_invoice:
                raise ValidationFailedError(
                    "A credit payment can only settle an invoiced credit order",
                    field="payment_method",
                )

            description = description or f"Payment for sale order {order.code}"
            if order.status != SaleOrderStatus.DRAFT.value:
                reference = self._reference(order)
                entry = None
                if not method.is_credit:
                    entry = self._cash.record(
                        CashbookEntryType.INCOME,
                        amount,
                        self._config.cashbook_category,
                        method,
                        description,
                        actor_id,
                        reference=reference,
                        bank_account=bank_account,
                    )
                if settles_invoice:
                    self._receivables.record_payment(
                        order.customer_id,
                        amount,
                        actor_id,
                        description,
                        reference=reference,
                        payment_method=method,
                        cashbook_entry_id=entry.id if entry else None,
                    )

            order.paid_amount = order.paid_amount + amount
            order.updated_by_id = actor_id
            self._session.flush()

            logger.info(
                "sale_order_payment_recorded",
                extra={
                    "order_code": order.code,
                    "amount": amount,
                    "payment_method": method.value,
                    "paid_amount": order.paid_amount,
                    "remaining": self._outstanding(order),
                },
            )
        return self._to_view(order)

    # =========================================================================
    # Internals
    # =========================================================================

    @staticmethod
    def _reference(order: SaleOrderModel) -> DocumentRef:
        return DocumentRef(ReferenceType.SALE_ORDER, order.id)

    @staticmethod
    def _outstanding(order: SaleOrderModel) -> Decimal:
        return max(order.total - order.paid_amount - order.refunded_amount, Decimal("0"))

    def _replace_items(
        self, order: SaleOrderModel, priced: Sequence[PricedLine], actor_id: UUID
    ) -> None:
        order.items.clear()
        for number, p in enumerate(priced, start=1):
            order.items.append(
                SaleOrderItemModel(
                    id=uuid4(),
                    line_number=number,
                    product_id=p.product.id,
                    unit_id=p.unit_id,
                    quantity=p.quantity,
                    returned_quantity=Decimal("0"),
                    unit_price=p.unit_price,
                    cost_price=p.product.cost_price,
                    discount=p.discount,
                    discount_type=p.discount_type.value,
                    discount_amount=p.totals.discount_amount,
                    total=p.totals.total,
                    created_by_id=actor_id,
                )
            )

    def _complete(self, order: SaleOrderModel, actor_id: UUID) -> None:
        """draft -> completed: issue stock, then invoice or book the cash."""
        if not order.items:
            raise ValidationFailedError("Order must have at least one item", field="items")
        method = PaymentMethod(order.payment_method)
        if method.is_credit and order.customer_id is None:
            raise ValidationFailedError(
                "A credit sale requires a customer", field="customer_id"
            )
        self._move(order, "complete", SaleOrderStatus.COMPLETED.value, actor_id)

        warehouse = (
            self._stock.require_warehouse(order.warehouse_id)
            if order.warehouse_id is not None
            else self._stock.default_warehouse()
        )
        order.warehouse_id = warehouse.id

        reference = self._reference(order)
        for item in order.items:
            movement = self._stock.issue(
                item.product_id,
                warehouse.id,
                item.quantity,
                item.unit_id,
                actor_id,
                reference=reference,
                notes=f"Sale order {order.code}",
            )
            item.cost_price = round_money(movement.cost_amount / item.quantity)
            item.updated_by_id = actor_id

        if method.is_credit:
            debt = order.total - order.paid_amount
            if debt > 0:
                self._receivables.record_invoice(
                    order.customer_id,
                    debt,
                    actor_id,
                    description=f"Sale order {order.code}",
                    due_date=order.payment_due_date,
                    reference=reference,
                )
                order.invoice_posted = True
        elif order.paid_amount > 0:
            self._cash.record(
                CashbookEntryType.INCOME,
                order.paid_amount,
                self._config.cashbook_category,
                method,
                f"Payment for sale order {order.code}",
                actor_id,
                reference=reference,
            )

        order.completed_at = self._clock.now()
        self._session.flush()

        logger.info(
            "sale_order_completed",
            extra={
                "order_code": order.code,
                "warehouse_id": str(warehouse.id),
                "total": order.total,
                "paid_amount": order.paid_amount,
                "invoice_posted": order.invoice_posted,
            },
        )

    def _to_view(self, order: SaleOrderModel) -> SaleOrderView:
        customer = (
            self._session.get(Customer, order.customer_id)
            if order.customer_id is not None
            else None
        )
        return SaleOrderView(
            id=order.id,
            code=order.code,
            status=SaleOrderStatus(order.status),
            customer_id=order.customer_id,
            customer_name=customer.name if customer else None,
            warehouse_id=order.warehouse_id,
            warehouse_name=self._warehouse_name(order.warehouse_id),
            order_date=order.order_date,
            payment_due_date=order.payment_due_date,
            completed_at=order.completed_at,
            subtotal=order.subtotal,
            discount=order.discount,
            discount_type=order.discount_type,
            discount_amount=order.discount_amount,
            total=order.total,
            payment_method=order.payment_method,
            paid_amount=order.paid_amount,
            refunded_amount=order.refunded_amount,
            invoice_posted=order.invoice_posted,
            notes=order.notes,
            items=tuple(
                SaleOrderItemView(
                    id=item.id,
                    product_id=item.product_id,
                    product_name=self._product_name(item.product_id),
                    unit_id=item.unit_id,
                    unit_name=self._unit_name(item.unit_id),
                    quantity=item.quantity,
                    returned_quantity=item.returned_quantity,
                    unit_price=item.unit_price,
                    cost_price=item.cost_price,
                    discount=item.discount,
                    discount_type=item.discount_type,
                    discount_amount=item.discount_amount,
                    total=item.total,
                )
                for item in order.items
            ),
        )
