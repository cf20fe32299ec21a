"""
Shared plumbing for the order services (``order_modules._order_helpers``).

Responsibility
--------------
``OrderServiceBase`` carries what the purchase, sale and return services
have in common: the unit-of-work boundary, order row locking, workflow
transition checks, line pricing, code allocation and the lookups used to
build read views.

Architecture position
---------------------
**Modules layer**.  Imports only from ``ledger_kernel``.

Invariants enforced
-------------------
* Each public service method runs inside ``unit_of_work``: commit on
  success, rollback and re-raise on any exception.
* ``StaleDataError`` from a version-checked row is surfaced as
  ``OptimisticLockError``.
* Status changes are looked up in the module's ``Workflow``; an action with
  no transition from the current status raises
  ``InvalidStateTransitionError``.
"""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from ledger_kernel.config import EngineConfig
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.pricing import LineTotals, OrderTotals, line_totals, order_totals
from ledger_kernel.domain.values import DiscountType, PaymentMethod, parse_enum
from ledger_kernel.domain.workflow import Transition, Workflow
from ledger_kernel.exceptions import (
    AmountExceedsBalanceError,
    InvalidAmountError,
    InvalidStateTransitionError,
    OptimisticLockError,
    OrderNotFoundError,
    ValidationFailedError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.catalog import Product, UnitOfMeasure, Warehouse
from ledger_kernel.services.cash_ledger import CashLedger
from ledger_kernel.services.sequence_service import SequenceService
from ledger_kernel.services.stock_ledger import StockLedger
from ledger_kernel.services.unit_resolver import UnitResolver

logger = get_logger("modules.order_helpers")


@dataclass(frozen=True)
class PricedLine:
    """An input line after reference resolution and total calculation."""
    product: Product
    unit_id: UUID
    quantity: Decimal
    unit_price: Decimal
    discount: Decimal
    discount_type: DiscountType
    totals: LineTotals


@contextmanager
def unit_of_work(
    session: Session,
    operation: str,
    actor_id: UUID,
    entity_type: str,
    entity_id: UUID | None = None,
) -> Iterator[None]:
    """
    One atomic business operation on ``session``.

    Commits on success.  On any exception rolls back and re-raises;
    ``StaleDataError`` is re-raised as ``OptimisticLockError``.
    """
    with LogContext.bind(actor_id=actor_id, order_type=entity_type, order_id=entity_id):
        try:
            yield
            session.commit()
        except StaleDataError as exc:
            session.rollback()
            logger.warning(
                "optimistic_lock_conflict",
                extra={"operation": operation, "detail": str(exc)},
            )
            raise OptimisticLockError(
                entity_type, entity_id if entity_id is not None else "unknown"
            ) from exc
        except Exception as exc:
            session.rollback()
            logger.info(
                "operation_rolled_back",
                extra={
                    "operation": operation,
                    "error_type": type(exc).__name__,
                    "error_code": getattr(exc, "code", None),
                },
            )
            raise


class OrderServiceBase:
    """
    Base class for the three order services.

    Subclasses set ``order_type`` (used in errors and logs), ``order_model``
    (the header ORM class) and ``workflow``.
    """

    order_type: str = "Order"
    order_model: Any = None
    workflow: Workflow | None = None

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        engine_config: EngineConfig | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._engine_config = engine_config or EngineConfig.with_defaults()

        # Kernel ledgers share the session; this service owns the commit.
        self._stock = StockLedger(session, self._clock, self._engine_config)
        self._cash = CashLedger(session, self._clock)
        self._sequences = SequenceService(session)
        self._units = UnitResolver(session)

    # =========================================================================
    # Transaction boundary
    # =========================================================================

    def _unit_of_work(
        self,
        operation: str,
        actor_id: UUID,
        order_id: UUID | None = None,
    ):
        return unit_of_work(self._session, operation, actor_id, self.order_type, order_id)

    # =========================================================================
    # Order rows
    # =========================================================================

    def _find_order(self, order_id: UUID):
        order = self._session.get(self.order_model, order_id)
        if order is None:
            raise OrderNotFoundError(self.order_type, order_id)
        return order

    def _lock_order(self, order_id: UUID):
        """Load the header with a row lock and fresh column values."""
        model = self.order_model
        order = self._session.execute(
            select(model)
            .where(model.id == order_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if order is None:
            raise OrderNotFoundError(self.order_type, order_id)
        return order

    def _require_transition(
        self, order, action: str, to_state: str | None = None
    ) -> Transition:
        transition = self.workflow.transition_for(order.status, action, to_state)
        if transition is None:
            raise InvalidStateTransitionError(
                self.order_type, order.id, order.status, action
            )
        return transition

    def _move(self, order, action: str, to_state: str, actor_id: UUID) -> None:
        transition = self._require_transition(order, action, to_state)
        previous = order.status
        order.status = transition.to_state
        order.updated_by_id = actor_id
        logger.info(
            "order_status_changed",
            extra={
                "order_code": order.code,
                "action": action,
                "from_status": previous,
                "to_status": transition.to_state,
                "affects_ledger": transition.affects_ledger,
            },
        )

    def _require_editable(self, order, action: str, editable: tuple[str, ...]) -> None:
        if order.status not in editable:
            raise InvalidStateTransitionError(
                self.order_type, order.id, order.status, action
            )

    def _next_code(self, prefix: str) -> str:
        return self._sequences.next_document_code(prefix, self._clock.today())

    # =========================================================================
    # Pricing
    # =========================================================================

    def _price_lines(self, lines: Sequence[Any]) -> list[PricedLine]:
        """
        Resolve products and units and compute every line total.

        Raises:
            ValidationFailedError: no lines, or a bad quantity/price/discount.
            ReferenceNotFoundError: unknown product or unit.
        """
        if not lines:
            raise ValidationFailedError("Order must have at least one item", field="items")
        priced = []
        for line in lines:
            product = self._units.get_product(line.product_id)
            unit_id = line.unit_id or product.unit_id
            self._units.require_unit(unit_id)
            discount_type = parse_enum(DiscountType, line.discount_type, "discount_type")
            quantity = Decimal(line.quantity)
            unit_price = Decimal(line.unit_price)
            discount = Decimal(line.discount or 0)
            priced.append(
                PricedLine(
                    product=product,
                    unit_id=unit_id,
                    quantity=quantity,
                    unit_price=unit_price,
                    discount=discount,
                    discount_type=discount_type,
                    totals=line_totals(quantity, unit_price, discount, discount_type),
                )
            )
        return priced

    @staticmethod
    def _header_totals(
        item_totals: Sequence[Decimal],
        discount: Decimal,
        discount_type: DiscountType | str,
        paid_amount: Decimal,
    ) -> OrderTotals:
        """Header totals from line totals; also checks ``0 <= paid_amount <= total``."""
        discount_type = parse_enum(DiscountType, discount_type, "discount_type")
        totals = order_totals(list(item_totals), Decimal(discount or 0), discount_type)
        paid_amount = Decimal(paid_amount or 0)
        if paid_amount < 0:
            raise ValidationFailedError("paid_amount cannot be negative", field="paid_amount")
        if paid_amount > totals.total:
            raise ValidationFailedError(
                f"paid_amount {paid_amount} exceeds order total {totals.total}",
                field="paid_amount",
            )
        return totals

    @staticmethod
    def _apply_header_totals(order, totals: OrderTotals, discount, discount_type) -> None:
        order.subtotal = totals.subtotal
        order.discount = Decimal(discount or 0)
        order.discount_type = parse_enum(DiscountType, discount_type, "discount_type").value
        order.discount_amount = totals.discount_amount
        order.total = totals.total

    # =========================================================================
    # Payments
    # =========================================================================

    @staticmethod
    def _check_payment(amount: Decimal, outstanding: Decimal) -> Decimal:
        """``0 < amount <= outstanding``."""
        amount = Decimal(amount)
        if amount <= 0:
            raise InvalidAmountError(amount, "payment amount must be greater than 0")
        if amount > outstanding:
            raise AmountExceedsBalanceError(amount, outstanding)
        return amount

    @staticmethod
    def _parse_method(value: PaymentMethod | str) -> PaymentMethod:
        return parse_enum(PaymentMethod, value, "payment_method")

    # =========================================================================
    # View lookups
    # =========================================================================

    def _product_name(self, product_id: UUID) -> str | None:
        product = self._session.get(Product, product_id)
        return product.name if product else None

    def _unit_name(self, unit_id: UUID | None) -> str | None:
        if unit_id is None:
            return None
        unit = self._session.get(UnitOfMeasure, unit_id)
        return unit.name if unit else None

    def _warehouse_name(self, warehouse_id: UUID | None) -> str | None:
        if warehouse_id is None:
            return None
        warehouse = self._session.get(Warehouse, warehouse_id)
        return warehouse.name if warehouse else None
