"""
StockLedger -- physical stock levels, FIFO batches and the movement log.

Responsibility:
    Every change to on-hand quantity goes through this service: receipts,
    sale issues, return restocks, manual adjustments, counts and transfers.
    Each call converts the line quantity into the product's stock unit,
    updates the locked Stock row, draws or creates batches, and appends
    StockTransaction rows -- all in one flush.

Architecture position:
    Kernel > Services.  Called by the order modules; never commits.

Invariants enforced:
    - Stock rows are read with ``SELECT ... FOR UPDATE`` and carry a version
      counter, so concurrent writers serialize or fail with StaleDataError.
    - Outflows draw batches oldest-first (``issue_method="fifo"``) or
      earliest-expiry-first (``"fefo"``) before unbatched stock.
    - After every write, sum(batch.remaining_quantity) <= max(stock.quantity, 0);
      otherwise StockInvariantError.
    - Stock may only go negative when ``allow_negative_stock`` is configured.

Failure modes:
    - ReferenceNotFoundError: unknown product, unit or warehouse.
    - InvalidQuantityError: non-positive movement quantity.
    - InsufficientStockError: outflow larger than on-hand stock.
    - StockInvariantError: batch remaining total exceeds the stock level.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ledger_kernel.config import EngineConfig
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.units import unit_cost_in_base
from ledger_kernel.domain.values import DocumentRef, ReferenceType, StockTransactionType
from ledger_kernel.exceptions import (
    InsufficientStockError,
    InvalidQuantityError,
    ReferenceNotFoundError,
    StockInvariantError,
    ValidationFailedError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.catalog import Product, Warehouse
from ledger_kernel.models.stock import Stock, StockBatch, StockTransaction
from ledger_kernel.services.unit_resolver import UnitResolver

logger = get_logger("services.stock_ledger")

ZERO = Decimal("0")


@dataclass(frozen=True)
class StockMovement:
    """Outcome of one stock ledger call."""
    product_id: UUID
    warehouse_id: UUID
    # Signed, in the product's stock unit
    base_quantity: Decimal
    quantity_after: Decimal
    transaction_ids: tuple[UUID, ...]
    batch_ids: tuple[UUID, ...] = ()
    # Cost of goods moved (batch cost where drawn, product cost otherwise)
    cost_amount: Decimal = ZERO


class StockLedger:
    """
    Writes stock movements.

    Contract:
        Flushes but never commits; the calling order service owns the unit
        of work.  All quantities passed in are in ``unit_id`` (the product's
        default unit when omitted).
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: EngineConfig | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._config = config or EngineConfig.with_defaults()
        self._units = UnitResolver(session)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def require_warehouse(self, warehouse_id: UUID) -> Warehouse:
        warehouse = self._session.get(Warehouse, warehouse_id)
        if warehouse is None:
            raise ReferenceNotFoundError("Warehouse", warehouse_id)
        return warehouse

    def default_warehouse(self) -> Warehouse:
        """The active warehouse flagged as default."""
        warehouse = self._session.execute(
            select(Warehouse)
            .where(Warehouse.is_default.is_(True), Warehouse.is_active.is_(True))
            .order_by(Warehouse.code)
            .limit(1)
        ).scalar_one_or_none()
        if warehouse is None:
            raise ReferenceNotFoundError("Warehouse", "default")
        return warehouse

    def get_stock(self, product_id: UUID, warehouse_id: UUID) -> Stock | None:
        return self._session.execute(
            select(Stock).where(
                Stock.product_id == product_id, Stock.warehouse_id == warehouse_id
            )
        ).scalar_one_or_none()

    def on_hand(self, product_id: UUID, warehouse_id: UUID | None = None) -> Decimal:
        """Stock-unit quantity in one warehouse, or across all warehouses."""
        stmt = select(func.coalesce(func.sum(Stock.quantity), 0)).where(
            Stock.product_id == product_id
        )
        if warehouse_id is not None:
            stmt = stmt.where(Stock.warehouse_id == warehouse_id)
        return Decimal(self._session.execute(stmt).scalar_one())

    def open_batches(self, product_id: UUID, warehouse_id: UUID) -> list[StockBatch]:
        """Batches with stock left, in draw order."""
        return list(
            self._session.execute(
                self._batch_query(product_id, warehouse_id)
            ).scalars()
        )

    def _batch_query(self, product_id: UUID, warehouse_id: UUID):
        stmt = select(StockBatch).where(
            StockBatch.product_id == product_id,
            StockBatch.warehouse_id == warehouse_id,
            StockBatch.remaining_quantity > 0,
        )
        if self._config.issue_method == "fefo":
            stmt = stmt.order_by(StockBatch.expiry_date, StockBatch.received_date)
        else:
            stmt = stmt.order_by(StockBatch.received_date, StockBatch.batch_number)
        return stmt

    def _lock_stock(self, product_id: UUID, warehouse_id: UUID, actor_id: UUID) -> Stock:
        stock = self._session.execute(
            select(Stock)
            .where(Stock.product_id == product_id, Stock.warehouse_id == warehouse_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if stock is None:
            stock = Stock(
                product_id=product_id,
                warehouse_id=warehouse_id,
                quantity=ZERO,
                reserved_quantity=ZERO,
                created_by_id=actor_id,
            )
            self._session.add(stock)
            self._session.flush()
            logger.debug(
                "stock_row_created",
                extra={"product_id": str(product_id), "warehouse_id": str(warehouse_id)},
            )
        return stock

    def _prepare(
        self,
        product_id: UUID,
        warehouse_id: UUID,
        quantity: Decimal,
        unit_id: UUID | None,
    ) -> tuple[Product, Decimal]:
        quantity = Decimal(quantity)
        if quantity <= 0:
            raise InvalidQuantityError(
                f"Stock movement quantity must be greater than 0, got {quantity}",
                quantity=quantity,
            )
        product = self._units.get_product(product_id)
        self.require_warehouse(warehouse_id)
        if unit_id is not None:
            self._units.require_unit(unit_id)
        return product, self._units.to_stock_quantity(product, quantity, unit_id)

    def _product_unit_cost(self, product: Product) -> Decimal:
        """Product cost price expressed per stock unit."""
        one_default = self._units.to_stock_quantity(product, Decimal(1), product.unit_id)
        return unit_cost_in_base(product.cost_price, Decimal(1), one_default)

    # ------------------------------------------------------------------
    # Row builders
    # ------------------------------------------------------------------

    def _append(
        self,
        txn_type: StockTransactionType,
        stock: Stock,
        quantity: Decimal,
        cost_price: Decimal,
        actor_id: UUID,
        reference: DocumentRef | None,
        notes: str | None,
        batch: StockBatch | None = None,
    ) -> StockTransaction:
        txn = StockTransaction(
            id=uuid4(),
            type=txn_type.value,
            product_id=stock.product_id,
            warehouse_id=stock.warehouse_id,
            batch_id=batch.id if batch is not None else None,
            quantity=quantity,
            cost_price=cost_price,
            reference_type=reference.type.value if reference else None,
            reference_id=reference.id if reference else None,
            notes=notes,
            transaction_date=self._clock.now(),
            created_by_id=actor_id,
        )
        self._session.add(txn)
        return txn

    def _new_batch(
        self,
        stock: Stock,
        quantity: Decimal,
        cost_price: Decimal,
        expiry_date: date | None,
        manufacture_date: date | None,
        actor_id: UUID,
    ) -> StockBatch:
        now = self._clock.now()
        batch = StockBatch(
            id=uuid4(),
            batch_number=(
                f"{self._config.batch_number_prefix}-{now:%Y%m%d%H%M%S}-"
                f"{uuid4().hex[:8].upper()}"
            ),
            product_id=stock.product_id,
            warehouse_id=stock.warehouse_id,
            quantity=quantity,
            remaining_quantity=quantity,
            cost_price=cost_price,
            manufacture_date=manufacture_date,
            expiry_date=expiry_date,
            received_date=now,
            created_by_id=actor_id,
        )
        self._session.add(batch)
        self._session.flush()
        logger.info(
            "stock_batch_created",
            extra={
                "batch_number": batch.batch_number,
                "product_id": str(stock.product_id),
                "quantity": quantity,
                "expiry_date": expiry_date,
            },
        )
        return batch

    def _draw_batches(
        self, stock: Stock, quantity: Decimal
    ) -> tuple[list[tuple[StockBatch, Decimal]], Decimal]:
        """
        Take up to ``quantity`` from open batches in draw order.

        Returns the (batch, taken) pairs and the part not covered by batches.
        """
        draws: list[tuple[StockBatch, Decimal]] = []
        remaining = quantity
        batches = self._session.execute(
            self._batch_query(stock.product_id, stock.warehouse_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalars()
        for batch in batches:
            if remaining <= 0:
                break
            taken = min(batch.remaining_quantity, remaining)
            batch.remaining_quantity = batch.remaining_quantity - taken
            remaining -= taken
            draws.append((batch, taken))
        return draws, remaining

    def _take(
        self,
        txn_type: StockTransactionType,
        stock: Stock,
        product: Product,
        quantity: Decimal,
        actor_id: UUID,
        reference: DocumentRef | None,
        notes: str | None,
        allow_negative: bool,
    ) -> tuple[list[StockTransaction], list[tuple[StockBatch, Decimal]], Decimal]:
        """Shared outflow path: stock check, batch draw, one row per drawn batch."""
        if quantity > stock.quantity and not allow_negative:
            raise InsufficientStockError(
                stock.product_id, stock.warehouse_id, quantity, stock.quantity
            )
        draws, unbatched = self._draw_batches(stock, quantity)
        stock.quantity = stock.quantity - quantity
        stock.last_updated_at = self._clock.now()

        txns: list[StockTransaction] = []
        cost = ZERO
        for batch, taken in draws:
            txns.append(
                self._append(
                    txn_type, stock, -taken, batch.cost_price,
                    actor_id, reference, notes, batch=batch,
                )
            )
            cost += taken * batch.cost_price
        if unbatched > 0:
            unit_cost = self._product_unit_cost(product)
            txns.append(
                self._append(
                    txn_type, stock, -unbatched, unit_cost, actor_id, reference, notes
                )
            )
            cost += unbatched * unit_cost
        return txns, draws, cost

    def _check_batch_invariant(self, stock: Stock) -> None:
        self._session.flush()
        batch_total = Decimal(
            self._session.execute(
                select(func.coalesce(func.sum(StockBatch.remaining_quantity), 0)).where(
                    StockBatch.product_id == stock.product_id,
                    StockBatch.warehouse_id == stock.warehouse_id,
                )
            ).scalar_one()
        )
        if batch_total > max(stock.quantity, ZERO):
            logger.error(
                "stock_batch_invariant_violated",
                extra={
                    "product_id": str(stock.product_id),
                    "warehouse_id": str(stock.warehouse_id),
                    "batch_total": batch_total,
                    "stock_quantity": stock.quantity,
                },
            )
            raise StockInvariantError(
                stock.product_id, stock.warehouse_id, batch_total, stock.quantity
            )

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def receive(
        self,
        product_id: UUID,
        warehouse_id: UUID,
        quantity: Decimal,
        unit_id: UUID | None,
        cost_price: Decimal,
        actor_id: UUID,
        expiry_date: date | None = None,
        reference: DocumentRef | None = None,
        manufacture_date: date | None = None,
        notes: str | None = None,
    ) -> StockMovement:
        """
        Receive goods into a warehouse.

        Creates a batch when ``expiry_date`` is given; ``cost_price`` is per
        ``unit_id`` and is stored per stock unit.
        """
        product, base_qty = self._prepare(product_id, warehouse_id, quantity, unit_id)
        unit_cost = unit_cost_in_base(Decimal(cost_price), Decimal(quantity), base_qty)

        stock = self._lock_stock(product_id, warehouse_id, actor_id)
        stock.quantity = stock.quantity + base_qty
        stock.last_updated_at = self._clock.now()
        stock.updated_by_id = actor_id

        batch = None
        if expiry_date is not None:
            batch = self._new_batch(
                stock, base_qty, unit_cost, expiry_date, manufacture_date, actor_id
            )
        txn = self._append(
            StockTransactionType.IN, stock, base_qty, unit_cost,
            actor_id, reference, notes, batch=batch,
        )
        self._check_batch_invariant(stock)

        logger.info(
            "stock_received",
            extra={
                "product_id": str(product_id),
                "warehouse_id": str(warehouse_id),
                "quantity": quantity,
                "base_quantity": base_qty,
                "quantity_after": stock.quantity,
                "batch_id": str(batch.id) if batch else None,
            },
        )
        return StockMovement(
            product_id=product_id,
            warehouse_id=warehouse_id,
            base_quantity=base_qty,
            quantity_after=stock.quantity,
            transaction_ids=(txn.id,),
            batch_ids=(batch.id,) if batch else (),
            cost_amount=base_qty * unit_cost,
        )

    def issue(
        self,
        product_id: UUID,
        warehouse_id: UUID,
        quantity: Decimal,
        unit_id: UUID | None,
        actor_id: UUID,
        reference: DocumentRef | None = None,
        notes: str | None = None,
        allow_negative: bool | None = None,
    ) -> StockMovement:
        """Remove goods for a sale, drawing batches first."""
        product, base_qty = self._prepare(product_id, warehouse_id, quantity, unit_id)
        if allow_negative is None:
            allow_negative = self._config.allow_negative_stock

        stock = self._lock_stock(product_id, warehouse_id, actor_id)
        stock.updated_by_id = actor_id
        txns, draws, cost = self._take(
            StockTransactionType.OUT, stock, product, base_qty,
            actor_id, reference, notes, allow_negative,
        )
        self._check_batch_invariant(stock)

        logger.info(
            "stock_issued",
            extra={
                "product_id": str(product_id),
                "warehouse_id": str(warehouse_id),
                "base_quantity": base_qty,
                "quantity_after": stock.quantity,
                "batches_drawn": len(draws),
                "cost_amount": cost,
            },
        )
        return StockMovement(
            product_id=product_id,
            warehouse_id=warehouse_id,
            base_quantity=-base_qty,
            quantity_after=stock.quantity,
            transaction_ids=tuple(t.id for t in txns),
            batch_ids=tuple(b.id for b, _ in draws),
            cost_amount=cost,
        )

    def restore(
        self,
        product_id: UUID,
        warehouse_id: UUID,
        quantity: Decimal,
        unit_id: UUID | None,
        cost_price: Decimal,
        actor_id: UUID,
        reference: DocumentRef | None = None,
        notes: str | None = None,
    ) -> StockMovement:
        """Put returned goods back on hand (an unbatched ``in`` movement)."""
        return self.receive(
            product_id, warehouse_id, quantity, unit_id, cost_price, actor_id,
            reference=reference, notes=notes,
        )

    def adjust(
        self,
        product_id: UUID,
        warehouse_id: UUID,
        signed_quantity: Decimal,
        actor_id: UUID,
        reason: str,
        unit_id: UUID | None = None,
    ) -> StockMovement:
        """Manual correction (damage, loss, found stock)."""
        signed_quantity = Decimal(signed_quantity)
        if signed_quantity == 0:
            raise InvalidQuantityError("Adjustment quantity cannot be zero", quantity=signed_quantity)
        if not reason:
            raise ValidationFailedError("Adjustment reason is required", field="reason")

        product, base_qty = self._prepare(product_id, warehouse_id, abs(signed_quantity), unit_id)
        stock = self._lock_stock(product_id, warehouse_id, actor_id)
        stock.updated_by_id = actor_id
        reference = DocumentRef(ReferenceType.STOCK_ADJUSTMENT)

        if signed_quantity > 0:
            stock.quantity = stock.quantity + base_qty
            stock.last_updated_at = self._clock.now()
            unit_cost = self._product_unit_cost(product)
            txns = [
                self._append(
                    StockTransactionType.ADJUSTMENT, stock, base_qty, unit_cost,
                    actor_id, reference, reason,
                )
            ]
            signed_base = base_qty
        else:
            txns, _, _ = self._take(
                StockTransactionType.ADJUSTMENT, stock, product, base_qty,
                actor_id, reference, reason, self._config.allow_negative_stock,
            )
            signed_base = -base_qty
        self._check_batch_invariant(stock)

        logger.info(
            "stock_adjusted",
            extra={
                "product_id": str(product_id),
                "warehouse_id": str(warehouse_id),
                "base_quantity": signed_base,
                "quantity_after": stock.quantity,
                "reason": reason,
            },
        )
        return StockMovement(
            product_id=product_id,
            warehouse_id=warehouse_id,
            base_quantity=signed_base,
            quantity_after=stock.quantity,
            transaction_ids=tuple(t.id for t in txns),
        )

    def count(
        self,
        product_id: UUID,
        warehouse_id: UUID,
        counted_quantity: Decimal,
        actor_id: UUID,
        notes: str | None = None,
    ) -> StockMovement:
        """
        Record a physical count (stock-unit quantity).

        Books the difference to the system level as one ``inventory``
        movement; a matching count still records a zero row.
        """
        counted_quantity = Decimal(counted_quantity)
        if counted_quantity < 0:
            raise InvalidQuantityError("Counted quantity cannot be negative", quantity=counted_quantity)
        product = self._units.get_product(product_id)
        self.require_warehouse(warehouse_id)

        stock = self._lock_stock(product_id, warehouse_id, actor_id)
        stock.updated_by_id = actor_id
        delta = counted_quantity - stock.quantity
        reference = DocumentRef(ReferenceType.STOCK_COUNT)

        if delta < 0:
            txns, _, _ = self._take(
                StockTransactionType.INVENTORY, stock, product, -delta,
                actor_id, reference, notes, allow_negative=True,
            )
        else:
            stock.quantity = counted_quantity
            stock.last_updated_at = self._clock.now()
            txns = [
                self._append(
                    StockTransactionType.INVENTORY, stock, delta,
                    self._product_unit_cost(product), actor_id, reference, notes,
                )
            ]
        self._check_batch_invariant(stock)

        logger.info(
            "stock_counted",
            extra={
                "product_id": str(product_id),
                "warehouse_id": str(warehouse_id),
                "counted_quantity": counted_quantity,
                "difference": delta,
            },
        )
        return StockMovement(
            product_id=product_id,
            warehouse_id=warehouse_id,
            base_quantity=delta,
            quantity_after=stock.quantity,
            transaction_ids=tuple(t.id for t in txns),
        )

    def transfer(
        self,
        product_id: UUID,
        from_warehouse_id: UUID,
        to_warehouse_id: UUID,
        quantity: Decimal,
        actor_id: UUID,
        unit_id: UUID | None = None,
        notes: str | None = None,
    ) -> StockMovement:
        """
        Move stock between warehouses.

        Drawn batch portions are re-created as batches at the destination
        with the same expiry and cost.  Returns the destination movement.
        """
        if from_warehouse_id == to_warehouse_id:
            raise ValidationFailedError(
                "Source and destination warehouse must differ", field="to_warehouse_id"
            )
        product, base_qty = self._prepare(product_id, from_warehouse_id, quantity, unit_id)
        self.require_warehouse(to_warehouse_id)
        reference = DocumentRef(ReferenceType.STOCK_TRANSFER, uuid4())

        source = self._lock_stock(product_id, from_warehouse_id, actor_id)
        source.updated_by_id = actor_id
        out_txns, draws, cost = self._take(
            StockTransactionType.TRANSFER, source, product, base_qty,
            actor_id, reference, notes, allow_negative=False,
        )

        target = self._lock_stock(product_id, to_warehouse_id, actor_id)
        target.quantity = target.quantity + base_qty
        target.last_updated_at = self._clock.now()
        target.updated_by_id = actor_id

        in_txns: list[StockTransaction] = []
        new_batch_ids: list[UUID] = []
        batched = ZERO
        for batch, taken in draws:
            moved = self._new_batch(
                target, taken, batch.cost_price, batch.expiry_date,
                batch.manufacture_date, actor_id,
            )
            new_batch_ids.append(moved.id)
            batched += taken
            in_txns.append(
                self._append(
                    StockTransactionType.TRANSFER, target, taken, batch.cost_price,
                    actor_id, reference, notes, batch=moved,
                )
            )
        if base_qty > batched:
            in_txns.append(
                self._append(
                    StockTransactionType.TRANSFER, target, base_qty - batched,
                    self._product_unit_cost(product), actor_id, reference, notes,
                )
            )
        self._check_batch_invariant(source)
        self._check_batch_invariant(target)

        logger.info(
            "stock_transferred",
            extra={
                "product_id": str(product_id),
                "from_warehouse_id": str(from_warehouse_id),
                "to_warehouse_id": str(to_warehouse_id),
                "base_quantity": base_qty,
                "transfer_id": str(reference.id),
            },
        )
        return StockMovement(
            product_id=product_id,
            warehouse_id=to_warehouse_id,
            base_quantity=base_qty,
            quantity_after=target.quantity,
            transaction_ids=tuple(t.id for t in out_txns + in_txns),
            batch_ids=tuple(new_batch_ids),
            cost_amount=cost,
        )
