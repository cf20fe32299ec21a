"""
Purchasing Module Service (``order_modules.purchasing.service``).

Responsibility
--------------
Runs the purchase order lifecycle -- create, edit, place, receive goods,
pay, cancel, delete -- and turns each ledger-affecting transition into
stock, payables and cashbook writes through the kernel ledgers.

Architecture position
---------------------
**Modules layer**.  ``PurchasingService`` is the sole public entry point for
purchase orders.  It composes ``StockLedger``, ``DebtLedger.payables`` and
``CashLedger``; all of them flush into this service's session and this
service alone commits.

Invariants enforced
-------------------
* Each public method is one unit of work (``commit`` on success,
  ``rollback`` and re-raise on any exception).
* ``total = subtotal - discount_amount``; ``subtotal = sum(item.total)``.
* ``0 <= paid_amount <= total``.
* An item never receives more than its ordered quantity.
* ``received_date`` is stamped on the first receipt only.

Ledger effects
--------------
* Placing a credit order invoices ``total - paid_amount`` to the supplier's
  payables (due date = expected delivery date).
* Placing a non-credit order with ``paid_amount > 0`` records a cashbook
  expense.
* Receiving goods appends ``in`` stock movements (a batch per line that
  carries an expiry date).
* A payment records a cashbook expense unless paid on credit; on an
  invoiced credit order it also settles payables, linked to that entry.
* Cancelling an invoiced order posts a compensating payables adjustment
  for the unpaid remainder.  Received stock is not reversed.

Failure modes
-------------
* ValidationFailedError, ReferenceNotFoundError, OrderNotFoundError,
  InvalidStateTransitionError, InvalidQuantityError, InvalidAmountError,
  AmountExceedsBalanceError, OptimisticLockError.  The session is rolled
  back before any of them propagates.

Usage::

    service = PurchasingService(session, clock=clock)
    view = service.create_order(
        PurchaseOrderSpec(
            supplier_id=supplier.id,
            items=(PurchaseOrderLine(product_id=p.id, quantity=Decimal("2"),
                                     unit_price=Decimal("100")),),
            status="ordered",
            payment_method="credit",
        ),
        actor_id=actor_id,
    )
"""

from __future__ import annotations

from collections.abc import Sequence
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.config import EngineConfig
from ledger_kernel.domain.clock import Clock
from ledger_kernel.domain.values import (
    CashbookEntryType,
    DocumentRef,
    PaymentMethod,
    ReferenceType,
    parse_enum,
)
from ledger_kernel.exceptions import (
    InvalidQuantityError,
    ReferenceNotFoundError,
    ValidationFailedError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.party import Supplier
from ledger_kernel.services.debt_ledger import DebtLedger
from order_modules._order_helpers import OrderServiceBase, PricedLine
from order_modules.purchasing.config import PurchasingConfig
from order_modules.purchasing.models import (
    PurchaseOrderItemView,
    PurchaseOrderPatch,
    PurchaseOrderSpec,
    PurchaseOrderStatus,
    PurchaseOrderView,
    ReceiveLine,
)
from order_modules.purchasing.orm import PurchaseOrderItemModel, PurchaseOrderModel
from order_modules.purchasing.workflows import (
    DELETABLE_STATES,
    EDITABLE_STATES,
    PURCHASE_ORDER_WORKFLOW,
)

logger = get_logger("modules.purchasing.service")

_CREATABLE = (PurchaseOrderStatus.DRAFT, PurchaseOrderStatus.ORDERED)


class PurchasingService(OrderServiceBase):
    """
    Orchestrates purchase orders through the kernel ledgers.

    Contract
    --------
    * Every operation returns a ``PurchaseOrderView`` built after the write
      (``delete_order`` returns ``True``).
    * Clock is injectable for deterministic testing.

    Non-goals
    ---------
    * Does NOT reverse received stock on cancel; use a stock adjustment.
    """

    order_type = "PurchaseOrder"
    order_model = PurchaseOrderModel
    workflow = PURCHASE_ORDER_WORKFLOW

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        engine_config: EngineConfig | None = None,
        config: PurchasingConfig | None = None,
    ):
        super().__init__(session, clock, engine_config)
        self._config = config or PurchasingConfig.from_engine_config(self._engine_config)
        self._payables = DebtLedger.payables(session, self._clock, self._engine_config)

    # =========================================================================
    # Queries
    # =========================================================================

    def get_order(self, order_id: UUID) -> PurchaseOrderView:
        return self._to_view(self._find_order(order_id))

    def list_orders(
        self,
        status: PurchaseOrderStatus | str | None = None,
        supplier_id: UUID | None = None,
    ) -> list[PurchaseOrderView]:
        stmt = select(PurchaseOrderModel)
        if status is not None:
            status = parse_enum(PurchaseOrderStatus, status, "status")
            stmt = stmt.where(PurchaseOrderModel.status == status.value)
        if supplier_id is not None:
            stmt = stmt.where(PurchaseOrderModel.supplier_id == supplier_id)
        stmt = stmt.order_by(PurchaseOrderModel.order_date.desc(), PurchaseOrderModel.code.desc())
        return [self._to_view(order) for order in self._session.execute(stmt).scalars()]

    # =========================================================================
    # Create / edit / delete
    # =========================================================================

    def create_order(self, spec: PurchaseOrderSpec, actor_id: UUID) -> PurchaseOrderView:
        """
        Create a purchase order as ``draft`` or directly ``ordered``.

        An ``ordered`` order gets the placement ledger effects in the same
        unit of work.
        """
        with self._unit_of_work("create_order", actor_id):
            status = parse_enum(PurchaseOrderStatus, spec.status, "status")
            if status not in _CREATABLE:
                raise ValidationFailedError(
                    f"A purchase order cannot be created as '{status.value}'",
                    field="status",
                )
            self._payables.get_counterparty(spec.supplier_id)
            method = self._parse_method(spec.payment_method)
            priced = self._price_lines(spec.items)
            totals = self._header_totals(
                [p.totals.total for p in priced],
                spec.discount, spec.discount_type, spec.paid_amount,
            )

            order = PurchaseOrderModel(
                id=uuid4(),
                code=self._next_code(self._config.code_prefix),
                supplier_id=spec.supplier_id,
                status=PurchaseOrderStatus.DRAFT.value,
                order_date=spec.order_date or self._clock.today(),
                expected_delivery_date=spec.expected_delivery_date,
                payment_method=method.value,
                paid_amount=Decimal(spec.paid_amount or 0),
                invoice_posted=False,
                notes=spec.notes,
                created_by_id=actor_id,
            )
            self._apply_header_totals(order, totals, spec.discount, spec.discount_type)
            self._replace_items(order, priced, spec.items, actor_id)
            self._session.add(order)
            self._session.flush()

            logger.info(
                "purchase_order_created",
                extra={
                    "order_id": str(order.id),
                    "order_code": order.code,
                    "supplier_id": str(order.supplier_id),
                    "item_count": len(priced),
                    "total": order.total,
                    "payment_method": order.payment_method,
                },
            )

            if status is PurchaseOrderStatus.ORDERED:
                self._place(order, actor_id)

        return self._to_view(order)

    def place_order(self, order_id: UUID, actor_id: UUID) -> PurchaseOrderView:
        """Move a draft order to ``ordered`` and post its ledger effects."""
        with self._unit_of_work("place_order", actor_id, order_id):
            order = self._lock_order(order_id)
            self._place(order, actor_id)
        return self._to_view(order)

    def update_order(
        self, order_id: UUID, patch: PurchaseOrderPatch, actor_id: UUID
    ) -> PurchaseOrderView:
        """Edit a draft order; ``patch.items`` replaces the items wholesale."""
        with self._unit_of_work("update_order", actor_id, order_id):
            order = self._lock_order(order_id)
            self._require_editable(order, "update", EDITABLE_STATES)

            if patch.supplier_id is not None:
                self._payables.get_counterparty(patch.supplier_id)
                order.supplier_id = patch.supplier_id
            if patch.payment_method is not None:
                order.payment_method = self._parse_method(patch.payment_method).value
            if patch.expected_delivery_date is not None:
                order.expected_delivery_date = patch.expected_delivery_date
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
                self._replace_items(order, priced, patch.items, actor_id)
            self._apply_header_totals(order, totals, discount, discount_type)
            order.paid_amount = Decimal(paid_amount)
            order.updated_by_id = actor_id
            self._session.flush()

            logger.info(
                "purchase_order_updated",
                extra={
                    "order_code": order.code,
                    "items_replaced": priced is not None,
                    "total": order.total,
                },
            )
        return self._to_view(order)

    def delete_order(self, order_id: UUID, actor_id: UUID) -> bool:
        """Delete a draft or cancelled order.  Ledger rows it produced remain."""
        with self._unit_of_work("delete_order", actor_id, order_id):
            order = self._lock_order(order_id)
            self._require_editable(order, "delete", DELETABLE_STATES)
            code = order.code
            self._session.delete(order)
            self._session.flush()
            logger.info("purchase_order_deleted", extra={"order_code": code})
        return True

    def cancel_order(
        self, order_id: UUID, actor_id: UUID, reason: str | None = None
    ) -> PurchaseOrderView:
        """
        Cancel from draft, ordered or partial_received.

        If the unpaid remainder was invoiced, a negative payables adjustment
        reverses it (clamped to the supplier's current balance) and the
        invoice is closed, so later payments no longer touch payables.
        """
        with self._unit_of_work("cancel_order", actor_id, order_id):
            order = self._lock_order(order_id)
            self._move(order, "cancel", PurchaseOrderStatus.CANCELLED.value, actor_id)

            reversed_amount = Decimal("0")
            if order.invoice_posted:
                supplier = self._payables.get_counterparty(order.supplier_id)
                self._session.refresh(supplier, with_for_update=True)
                reversed_amount = min(order.total - order.paid_amount, supplier.balance)
                if reversed_amount > 0:
                    self._payables.record_adjustment(
                        order.supplier_id,
                        -reversed_amount,
                        actor_id,
                        description=f"Cancelled purchase order {order.code}"
                        + (f": {reason}" if reason else ""),
                        reference=self._reference(order),
                    )
                # Later payments on this order are cash only
                order.invoice_posted = False
            if reason:
                order.notes = f"{order.notes}\n{reason}" if order.notes else reason
            self._session.flush()

            logger.info(
                "purchase_order_cancelled",
                extra={
                    "order_code": order.code,
                    "payables_reversed": reversed_amount,
                },
            )
        return self._to_view(order)

    # =========================================================================
    # Receiving
    # =========================================================================

    def receive_goods(
        self,
        order_id: UUID,
        warehouse_id: UUID,
        lines: Sequence[ReceiveLine],
        actor_id: UUID,
    ) -> PurchaseOrderView:
        """
        Receive goods against an ordered or partially received order.

        Lines with a zero quantity are skipped.  Each received line is
        converted to stock units and appended to the Stock Ledger; a line
        with an expiry date opens a new batch.

        Raises:
            InvalidStateTransitionError: order is not ordered/partial_received.
            InvalidQuantityError: negative quantity, more than remaining, or
                no line with a quantity greater than 0.
            ReferenceNotFoundError: unknown warehouse or order item.
        """
        with self._unit_of_work("receive_goods", actor_id, order_id):
            order = self._lock_order(order_id)
            self._require_transition(order, "receive")
            warehouse = self._stock.require_warehouse(warehouse_id)

            items = {item.id: item for item in order.items}
            quantities = []
            for line in lines:
                item = items.get(line.item_id)
                if item is None:
                    raise ReferenceNotFoundError("PurchaseOrderItem", line.item_id)
                quantity = Decimal(line.received_quantity)
                if quantity < 0:
                    raise InvalidQuantityError(
                        f"Received quantity cannot be negative: {quantity}",
                        item_id=item.id,
                        quantity=quantity,
                    )
                quantities.append((line, item, quantity))

            if not any(quantity > 0 for _, _, quantity in quantities):
                raise InvalidQuantityError(
                    "At least one item must have received quantity greater than 0"
                )

            reference = self._reference(order)
            received_lines = 0
            for line, item, quantity in quantities:
                if quantity == 0:
                    continue
                remaining = item.remaining_quantity
                if quantity > remaining:
                    raise InvalidQuantityError(
                        f"Received quantity {quantity} exceeds remaining "
                        f"quantity {remaining}",
                        item_id=item.id,
                        quantity=quantity,
                        remaining=remaining,
                    )
                self._stock.receive(
                    item.product_id,
                    warehouse.id,
                    quantity,
                    item.unit_id,
                    item.unit_price,
                    actor_id,
                    expiry_date=line.expiry_date or item.expiry_date,
                    reference=reference,
                    notes=f"Purchase order {order.code}",
                )
                item.received_quantity = item.received_quantity + quantity
                item.updated_by_id = actor_id
                received_lines += 1

            target = (
                PurchaseOrderStatus.RECEIVED
                if all(item.is_fully_received for item in order.items)
                else PurchaseOrderStatus.PARTIAL_RECEIVED
            )
            self._move(order, "receive", target.value, actor_id)
            if order.received_date is None:
                order.received_date = self._clock.now()
            self._session.flush()

            logger.info(
                "purchase_order_goods_received",
                extra={
                    "order_code": order.code,
                    "warehouse_id": str(warehouse.id),
                    "lines_received": received_lines,
                    "status": order.status,
                },
            )
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
    ) -> PurchaseOrderView:
        """
        Record a payment against the order.

        ``0 < amount <= total - paid_amount``.  On a draft order the payment
        only raises ``paid_amount``; the ledgers see it when the order is
        placed, exactly as if it had been paid at creation.
        """
        with self._unit_of_work("create_payment", actor_id, order_id):
            order = self._lock_order(order_id)
            amount = self._check_payment(amount, order.total - order.paid_amount)
            method = self._parse_method(payment_method)
            order_method = PaymentMethod(order.payment_method)
            settles_invoice = order_method.is_credit and order.invoice_posted
            if method.is_credit and not settles_invoice:
                raise ValidationFailedError(
                    "A credit payment can only settle an invoiced credit order",
                    field="payment_method",
                )

            description = description or f"Payment for purchase order {order.code}"
            if order.status != PurchaseOrderStatus.DRAFT.value:
                reference = self._reference(order)
                entry = None
                if not method.is_credit:
                    entry = self._cash.record(
                        CashbookEntryType.EXPENSE,
                        amount,
                        self._config.cashbook_category,
                        method,
                        description,
                        actor_id,
                        reference=reference,
                        bank_account=bank_account,
                    )
                if settles_invoice:
                    self._payables.record_payment(
                        order.supplier_id,
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
                "purchase_order_payment_recorded",
                extra={
                    "order_code": order.code,
                    "amount": amount,
                    "payment_method": method.value,
                    "paid_amount": order.paid_amount,
                    "remaining": order.total - order.paid_amount,
                },
            )
        return self._to_view(order)

    # =========================================================================
    # Internals
    # =========================================================================

    @staticmethod
    def _reference(order: PurchaseOrderModel) -> DocumentRef:
        return DocumentRef(ReferenceType.PURCHASE_ORDER, order.id)

    def _replace_items(
        self,
        order: PurchaseOrderModel,
        priced: Sequence[PricedLine],
        lines,
        actor_id: UUID,
    ) -> None:
        order.items.clear()
        for number, (p, line) in enumerate(zip(priced, lines), start=1):
            order.items.append(
                PurchaseOrderItemModel(
                    id=uuid4(),
                    line_number=number,
                    product_id=p.product.id,
                    unit_id=p.unit_id,
                    quantity=p.quantity,
                    received_quantity=Decimal("0"),
                    unit_price=p.unit_price,
                    discount=p.discount,
                    discount_type=p.discount_type.value,
                    discount_amount=p.totals.discount_amount,
                    total=p.totals.total,
                    expiry_date=line.expiry_date,
                    created_by_id=actor_id,
                )
            )

    def _place(self, order: PurchaseOrderModel, actor_id: UUID) -> None:
        """draft -> ordered, posting the payables invoice or the upfront cash."""
        if not order.items:
            raise ValidationFailedError("Order must have at least one item", field="items")
        self._move(order, "place", PurchaseOrderStatus.ORDERED.value, actor_id)

        reference = self._reference(order)
        method = PaymentMethod(order.payment_method)
        if method.is_credit:
            debt = order.total - order.paid_amount
            if debt > 0:
                self._payables.record_invoice(
                    order.supplier_id,
                    debt,
                    actor_id,
                    description=f"Purchase order {order.code}",
                    due_date=order.expected_delivery_date,
                    reference=reference,
                )
                order.invoice_posted = True
        elif order.paid_amount > 0:
            self._cash.record(
                CashbookEntryType.EXPENSE,
                order.paid_amount,
                self._config.cashbook_category,
                method,
                f"Payment for purchase order {order.code}",
                actor_id,
                reference=reference,
            )
        self._session.flush()

        logger.info(
            "purchase_order_placed",
            extra={
                "order_code": order.code,
                "total": order.total,
                "paid_amount": order.paid_amount,
                "invoice_posted": order.invoice_posted,
            },
        )

    def _to_view(self, order: PurchaseOrderModel) -> PurchaseOrderView:
        supplier = self._session.get(Supplier, order.supplier_id)
        return PurchaseOrderView(
            id=order.id,
            code=order.code,
            status=PurchaseOrderStatus(order.status),
            supplier_id=order.supplier_id,
            supplier_name=supplier.name if supplier else None,
            order_date=order.order_date,
            expected_delivery_date=order.expected_delivery_date,
            received_date=order.received_date,
            subtotal=order.subtotal,
            discount=order.discount,
            discount_type=order.discount_type,
            discount_amount=order.discount_amount,
            total=order.total,
            payment_method=order.payment_method,
            paid_amount=order.paid_amount,
            invoice_posted=order.invoice_posted,
            notes=order.notes,
            items=tuple(
                PurchaseOrderItemView(
                    id=item.id,
                    product_id=item.product_id,
                    product_name=self._product_name(item.product_id),
                    unit_id=item.unit_id,
                    unit_name=self._unit_name(item.unit_id),
                    quantity=item.quantity,
                    received_quantity=item.received_quantity,
                    unit_price=item.unit_price,
                    discount=item.discount,
                    discount_type=item.discount_type,
                    discount_amount=item.discount_amount,
                    total=item.total,
                    expiry_date=item.expiry_date,
                )
                for item in order.items
            ),
        )
