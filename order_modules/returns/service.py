"""
Returns Module Service (``order_modules.returns.service``).

Responsibility
--------------
Creates and completes return orders against completed sales.  Completion
restores stock at the sale's cost, bumps ``returned_quantity`` on the sale
items, refunds the customer (receivables refund for credit sales, cashbook
expense otherwise) and marks the sale ``refunded`` once every item has
been returned.

Invariants enforced
-------------------
* The sale order is ``completed`` when the return is created and when it
  is completed.
* For every sale item: returned + pending draft returns + this return
  <= sold quantity.
* ``line total = sale_item.total / sale_item.quantity * quantity``.
* ``subtotal = total = refund_amount``.
"""

from __future__ import annotations

from collections.abc import Sequence
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import func, select
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
from ledger_kernel.exceptions import (
    InvalidQuantityError,
    InvalidStateTransitionError,
    OrderNotFoundError,
    ReferenceNotFoundError,
    ValidationFailedError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.party import Customer
from ledger_kernel.services.debt_ledger import DebtLedger
from order_modules._order_helpers import OrderServiceBase
from order_modules.returns.config import ReturnsConfig
from order_modules.returns.models import (
    ReturnLine,
    ReturnOrderItemView,
    ReturnOrderPatch,
    ReturnOrderSpec,
    ReturnOrderStatus,
    ReturnOrderView,
)
from order_modules.returns.orm import ReturnOrderItemModel, ReturnOrderModel
from order_modules.returns.workflows import (
    DELETABLE_STATES,
    EDITABLE_STATES,
    RETURN_ORDER_WORKFLOW,
)
from order_modules.sales.models import SaleOrderStatus
from order_modules.sales.orm import SaleOrderModel
from order_modules.sales.workflows import SALE_ORDER_WORKFLOW

logger = get_logger("modules.returns.service")


class ReturnsService(OrderServiceBase):
    """Orchestrates return orders through the kernel ledgers."""

    order_type = "ReturnOrder"
    order_model = ReturnOrderModel
    workflow = RETURN_ORDER_WORKFLOW

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        engine_config: EngineConfig | None = None,
        config: ReturnsConfig | None = None,
    ):
        super().__init__(session, clock, engine_config)
        self._config = config or ReturnsConfig.from_engine_config(self._engine_config)
        self._receivables = DebtLedger.receivables(session, self._clock, self._engine_config)

    # =========================================================================
    # Queries
    # =========================================================================

    def get_return(self, return_id: UUID) -> ReturnOrderView:
        return self._to_view(self._find_order(return_id))

    def list_returns(self, sale_order_id: UUID | None = None) -> list[ReturnOrderView]:
        stmt = select(ReturnOrderModel)
        if sale_order_id is not None:
            stmt = stmt.where(ReturnOrderModel.sale_order_id == sale_order_id)
        stmt = stmt.order_by(ReturnOrderModel.return_date.desc(), ReturnOrderModel.code.desc())
        return [self._to_view(ret) for ret in self._session.execute(stmt).scalars()]

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def create_return(self, spec: ReturnOrderSpec, actor_id: UUID) -> ReturnOrderView:
        """
        Create a return against a completed sale; completes it unless
        ``spec.complete`` is False.

        Raises:
            OrderNotFoundError: unknown sale order.
            InvalidStateTransitionError: the sale is not completed.
            InvalidQuantityError: a line outside ``0 < qty <= returnable``.
            ValidationFailedError: no lines or a bad refund method.
        """
        with self._unit_of_work("create_return", actor_id):
            sale = self._lock_sale(spec.sale_order_id)
            if spec.warehouse_id is not None:
                self._stock.require_warehouse(spec.warehouse_id)
            refund_method = self._refund_method(sale, spec.refund_method)

            ret = ReturnOrderModel(
                id=uuid4(),
                code=self._next_code(self._config.code_prefix),
                sale_order_id=sale.id,
                warehouse_id=spec.warehouse_id or sale.warehouse_id,
                status=ReturnOrderStatus.DRAFT.value,
                reason=spec.reason,
                return_date=spec.return_date or self._clock.today(),
                refund_method=refund_method.value,
                payment_method=sale.payment_method,
                paid_amount=Decimal("0"),
                update_receivables=spec.update_receivables,
                create_cashbook_entry=spec.create_cashbook_entry,
                notes=spec.notes,
                created_by_id=actor_id,
            )
            self._replace_items(ret, sale, spec.items, actor_id)
            self._session.add(ret)
            self._session.flush()

            logger.info(
                "return_order_created",
                extra={
                    "order_id": str(ret.id),
                    "order_code": ret.code,
                    "sale_order_code": sale.code,
                    "item_count": len(ret.items),
                    "refund_amount": ret.refund_amount,
                },
            )

            if spec.complete:
                self._complete(ret, sale, actor_id)

        return self._to_view(ret)

    def update_return(
        self, return_id: UUID, patch: ReturnOrderPatch, actor_id: UUID
    ) -> ReturnOrderView:
        with self._unit_of_work("update_return", actor_id, return_id):
            ret = self._lock_order(return_id)
            self._require_editable(ret, "update", EDITABLE_STATES)
            sale = self._lock_sale(ret.sale_order_id)

            if patch.warehouse_id is not None:
                self._stock.require_warehouse(patch.warehouse_id)
                ret.warehouse_id = patch.warehouse_id
            if patch.refund_method is not None:
                ret.refund_method = self._refund_method(sale, patch.refund_method).value
            if patch.reason is not None:
                ret.reason = patch.reason
            if patch.notes is not None:
                ret.notes = patch.notes
            if patch.items is not None:
                self._replace_items(ret, sale, patch.items, actor_id, exclude_return_id=ret.id)
            ret.updated_by_id = actor_id
            self._session.flush()

            logger.info(
                "return_order_updated",
                extra={"order_code": ret.code, "refund_amount": ret.refund_amount},
            )
        return self._to_view(ret)

    def complete_return(self, return_id: UUID, actor_id: UUID) -> ReturnOrderView:
        with self._unit_of_work("complete_return", actor_id, return_id):
            ret = self._lock_order(return_id)
            self._require_transition(ret, "complete")
            sale = self._lock_sale(ret.sale_order_id)
            self._complete(ret, sale, actor_id)
        return self._to_view(ret)

    def cancel_return(self, return_id: UUID, actor_id: UUID) -> ReturnOrderView:
        with self._unit_of_work("cancel_return", actor_id, return_id):
            ret = self._lock_order(return_id)
            self._move(ret, "cancel", ReturnOrderStatus.CANCELLED.value, actor_id)
            self._session.flush()
            logger.info("return_order_cancelled", extra={"order_code": ret.code})
        return self._to_view(ret)

    def delete_return(self, return_id: UUID, actor_id: UUID) -> bool:
        with self._unit_of_work("delete_return", actor_id, return_id):
            ret = self._lock_order(return_id)
            self._require_editable(ret, "delete", DELETABLE_STATES)
            code = ret.code
            self._session.delete(ret)
            self._session.flush()
            logger.info("return_order_deleted", extra={"order_code": code})
        return True

    # =========================================================================
    # Internals
    # =========================================================================

    @staticmethod
    def _reference(ret: ReturnOrderModel) -> DocumentRef:
        return DocumentRef(ReferenceType.RETURN_ORDER, ret.id)

    def _lock_sale(self, sale_order_id: UUID) -> SaleOrderModel:
        """Lock the originating sale; it must be completed."""
        sale = self._session.execute(
            select(SaleOrderModel)
            .where(SaleOrderModel.id == sale_order_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if sale is None:
            raise OrderNotFoundError("SaleOrder", sale_order_id)
        if sale.status != SaleOrderStatus.COMPLETED.value:
            raise InvalidStateTransitionError("SaleOrder", sale.id, sale.status, "return")
        return sale

    @staticmethod
    def _refund_method(sale: SaleOrderModel, value) -> PaymentMethod:
        if value is None:
            method = PaymentMethod(sale.payment_method)
            return PaymentMethod.CASH if method.is_credit else method
        method = parse_enum(PaymentMethod, value, "refund_method")
        if method.is_credit:
            raise ValidationFailedError(
                "Refunds are paid in cash or by transfer, not on credit",
                field="refund_method",
            )
        return method

    def _pending_quantity(self, sale_item_id: UUID, exclude_return_id: UUID | None) -> Decimal:
        """Quantity of the sale item held by other draft returns."""
        stmt = (
            select(func.coalesce(func.sum(ReturnOrderItemModel.quantity), 0))
            .join(ReturnOrderModel, ReturnOrderItemModel.return_order_id == ReturnOrderModel.id)
            .where(
                ReturnOrderItemModel.sale_order_item_id == sale_item_id,
                ReturnOrderModel.status == ReturnOrderStatus.DRAFT.value,
            )
        )
        if exclude_return_id is not None:
            stmt = stmt.where(ReturnOrderModel.id != exclude_return_id)
        return Decimal(self._session.execute(stmt).scalar_one())

    def _replace_items(
        self,
        ret: ReturnOrderModel,
        sale: SaleOrderModel,
        lines: Sequence[ReturnLine],
        actor_id: UUID,
        exclude_return_id: UUID | None = None,
    ) -> None:
        if not lines:
            raise ValidationFailedError("Return must have at least one item", field="items")
        sale_items = {item.id: item for item in sale.items}
        requested: dict[UUID, Decimal] = {}
        ret.items.clear()
        for number, line in enumerate(lines, start=1):
            sale_item = sale_items.get(line.sale_order_item_id)
            if sale_item is None:
                raise ReferenceNotFoundError("SaleOrderItem", line.sale_order_item_id)
            quantity = Decimal(line.quantity)
            if quantity <= 0:
                raise InvalidQuantityError(
                    f"Return quantity must be greater than 0, got {quantity}",
                    item_id=sale_item.id,
                    quantity=quantity,
                )
            requested[sale_item.id] = requested.get(sale_item.id, Decimal("0")) + quantity
            available = sale_item.returnable_quantity - self._pending_quantity(
                sale_item.id, exclude_return_id
            )
            if requested[sale_item.id] > available:
                raise InvalidQuantityError(
                    f"Return quantity {requested[sale_item.id]} exceeds returnable "
                    f"quantity {available}",
                    item_id=sale_item.id,
                    quantity=requested[sale_item.id],
                    remaining=available,
                )
            unit_price = sale_item.total / sale_item.quantity
            ret.items.append(
                ReturnOrderItemModel(
                    id=uuid4(),
                    line_number=number,
                    sale_order_item_id=sale_item.id,
                    product_id=sale_item.product_id,
                    unit_id=sale_item.unit_id,
                    quantity=quantity,
                    unit_price=round_money(unit_price),
                    total=round_money(unit_price * quantity),
                    created_by_id=actor_id,
                )
            )

        total = sum((item.total for item in ret.items), Decimal("0"))
        ret.subtotal = total
        ret.discount_amount = Decimal("0")
        ret.total = total
        ret.refund_amount = total

    def _complete(self, ret: ReturnOrderModel, sale: SaleOrderModel, actor_id: UUID) -> None:
        """draft -> completed: restock, bump returned quantities, refund."""
        self._move(ret, "complete", ReturnOrderStatus.COMPLETED.value, actor_id)

        warehouse = (
            self._stock.require_warehouse(ret.warehouse_id)
            if ret.warehouse_id is not None
            else self._stock.default_warehouse()
        )
        ret.warehouse_id = warehouse.id

        reference = self._reference(ret)
        sale_items = {item.id: item for item in sale.items}
        for item in ret.items:
            sale_item = sale_items[item.sale_order_item_id]
            if item.quantity > sale_item.returnable_quantity:
                raise InvalidQuantityError(
                    f"Return quantity {item.quantity} exceeds returnable "
                    f"quantity {sale_item.returnable_quantity}",
                    item_id=sale_item.id,
                    quantity=item.quantity,
                    remaining=sale_item.returnable_quantity,
                )
            self._stock.restore(
                item.product_id,
                warehouse.id,
                item.quantity,
                item.unit_id,
                sale_item.cost_price,
                actor_id,
                reference=reference,
                notes=f"Return order {ret.code} for sale {sale.code}",
            )
            sale_item.returned_quantity = sale_item.returned_quantity + item.quantity
            sale_item.updated_by_id = actor_id
        sale.refunded_amount = sale.refunded_amount + ret.refund_amount

        sale_method = PaymentMethod(sale.payment_method)
        description = f"Refund for return order {ret.code} (sale {sale.code})"
        if ret.refund_amount > 0:
            if sale_method.is_credit:
                if ret.update_receivables and sale.customer_id is not None:
                    self._receivables.record_refund(
                        sale.customer_id,
                        ret.refund_amount,
                        actor_id,
                        description,
                        reference=reference,
                    )
                    ret.paid_amount = ret.refund_amount
            elif ret.create_cashbook_entry:
                self._cash.record(
                    CashbookEntryType.EXPENSE,
                    ret.refund_amount,
                    self._config.cashbook_category,
                    ret.refund_method,
                    description,
                    actor_id,
                    reference=reference,
                )
                ret.paid_amount = ret.refund_amount

        if all(item.returned_quantity >= item.quantity for item in sale.items):
            transition = SALE_ORDER_WORKFLOW.transition_for(sale.status, "refund")
            sale.status = transition.to_state
            sale.updated_by_id = actor_id
            logger.info("sale_order_refunded", extra={"sale_order_code": sale.code})

        ret.completed_at = self._clock.now()
        self._session.flush()

        logger.info(
            "return_order_completed",
            extra={
                "order_code": ret.code,
                "sale_order_code": sale.code,
                "warehouse_id": str(warehouse.id),
                "refund_amount": ret.refund_amount,
                "refund_posted": ret.paid_amount,
            },
        )

    def _to_view(self, ret: ReturnOrderModel) -> ReturnOrderView:
        sale = self._session.get(SaleOrderModel, ret.sale_order_id)
        customer = (
            self._session.get(Customer, sale.customer_id)
            if sale is not None and sale.customer_id is not None
            else None
        )
        return ReturnOrderView(
            id=ret.id,
            code=ret.code,
            status=ReturnOrderStatus(ret.status),
            sale_order_id=ret.sale_order_id,
            sale_order_code=sale.code if sale else None,
            customer_id=customer.id if customer else None,
            customer_name=customer.name if customer else None,
            warehouse_id=ret.warehouse_id,
            warehouse_name=self._warehouse_name(ret.warehouse_id),
            reason=ret.reason,
            return_date=ret.return_date,
            completed_at=ret.completed_at,
            subtotal=ret.subtotal,
            total=ret.total,
            refund_amount=ret.refund_amount,
            refund_method=ret.refund_method,
            payment_method=ret.payment_method,
            paid_amount=ret.paid_amount,
            notes=ret.notes,
            items=tuple(
                ReturnOrderItemView(
                    id=item.id,
                    sale_order_item_id=item.sale_order_item_id,
                    product_id=item.product_id,
                    product_name=self._product_name(item.product_id),
                    unit_id=item.unit_id,
                    unit_name=self._unit_name(item.unit_id),
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                    total=item.total,
                )
                for item in ret.items
            ),
        )
