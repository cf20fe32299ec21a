"""
Typed Exception Hierarchy for the Ledger Engine.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from LedgerEngineError:

    LedgerEngineError (base)
    |
    +-- ValidationFailedError
    |
    +-- NotFoundError
    |   +-- ReferenceNotFoundError
    |   +-- OrderNotFoundError
    |
    +-- InvalidStateTransitionError
    |
    +-- StockError
    |   +-- InvalidQuantityError
    |   +-- InsufficientStockError
    |   +-- StockInvariantError
    |
    +-- InvalidAmountError
    |   +-- AmountExceedsBalanceError
    |
    +-- ConcurrencyError
    |   +-- OptimisticLockError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Code                      | When Raised
--------------------------|---------------------------------------------------
VALIDATION_FAILED         | Missing/invalid field, empty item list, bad enum
REFERENCE_NOT_FOUND       | Product/unit/warehouse/counterparty id unresolved
NOT_FOUND                 | Order id does not exist
INVALID_STATE_TRANSITION  | Operation attempted from a disallowed status
INVALID_QUANTITY          | Received/returned quantity exceeds what remains
INSUFFICIENT_STOCK        | Issue would take on-hand stock below zero
STOCK_INVARIANT_VIOLATED  | Batch remaining total exceeds stock on hand
INVALID_AMOUNT            | Amount <= 0 or leaves a balance negative
AMOUNT_EXCEEDS_BALANCE    | Payment exceeds the outstanding order/debt amount
OPTIMISTIC_LOCK_CONFLICT  | Row changed by another transaction (stale version)
IMMUTABILITY_VIOLATION    | Update/delete attempted on an append-only ledger row

===============================================================================
HANDLING PATTERNS
===============================================================================

Every error raised inside an order operation rolls the whole unit of work
back before it reaches the caller. Nothing is retried here; callers decide.

    try:
        view = purchase_orders.create_payment(order_id, amount, method)
    except AmountExceedsBalanceError as e:
        return {"error": e.code, "outstanding": str(e.outstanding)}
    except InvalidAmountError as e:
        return {"error": e.code, "reason": e.reason}

Structured context lives on attributes so the JSON log formatter can emit
it as ``exc_<attr>`` fields.
"""

from decimal import Decimal


class LedgerEngineError(Exception):
    """
    Base exception for all ledger engine errors.

    All subclasses carry a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "LEDGER_ENGINE_ERROR"


# Validation


class ValidationFailedError(LedgerEngineError):
    """A required field is missing or carries an invalid value."""

    code: str = "VALIDATION_FAILED"

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


# Lookup


class NotFoundError(LedgerEngineError):
    """Base exception for unresolved identifiers."""

    code: str = "NOT_FOUND"


class ReferenceNotFoundError(NotFoundError):
    """A referenced product, unit, warehouse or counterparty does not exist."""

    code: str = "REFERENCE_NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        super().__init__(f"{entity_type} not found: {entity_id}")


class OrderNotFoundError(NotFoundError):
    """The order addressed by the operation does not exist."""

    code: str = "NOT_FOUND"

    def __init__(self, order_type: str, order_id: str):
        self.order_type = order_type
        self.order_id = str(order_id)
        super().__init__(f"{order_type} not found: {order_id}")


# Lifecycle


class InvalidStateTransitionError(LedgerEngineError):
    """Operation is not allowed from the entity's current status."""

    code: str = "INVALID_STATE_TRANSITION"

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        current_state: str,
        action: str,
    ):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        self.current_state = current_state
        self.action = action
        super().__init__(
            f"Cannot {action} {entity_type} {entity_id} in status '{current_state}'"
        )


# Stock


class StockError(LedgerEngineError):
    """Base exception for stock movement errors."""

    code: str = "STOCK_ERROR"


class InvalidQuantityError(StockError):
    """Quantity is non-positive or exceeds what remains on the order line."""

    code: str = "INVALID_QUANTITY"

    def __init__(
        self,
        message: str,
        item_id: str | None = None,
        quantity: Decimal | None = None,
        remaining: Decimal | None = None,
    ):
        self.item_id = str(item_id) if item_id is not None else None
        self.quantity = quantity
        self.remaining = remaining
        super().__init__(message)


class InsufficientStockError(StockError):
    """An outbound movement needs more than is on hand."""

    code: str = "INSUFFICIENT_STOCK"

    def __init__(
        self,
        product_id: str,
        warehouse_id: str,
        requested: Decimal,
        available: Decimal,
    ):
        self.product_id = str(product_id)
        self.warehouse_id = str(warehouse_id)
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient stock for product {product_id} in warehouse "
            f"{warehouse_id}: requested {requested}, available {available}"
        )


class StockInvariantError(StockError):
    """Remaining batch quantity exceeds the stock level it belongs to."""

    code: str = "STOCK_INVARIANT_VIOLATED"

    def __init__(
        self,
        product_id: str,
        warehouse_id: str,
        batch_total: Decimal,
        stock_quantity: Decimal,
    ):
        self.product_id = str(product_id)
        self.warehouse_id = str(warehouse_id)
        self.batch_total = batch_total
        self.stock_quantity = stock_quantity
        super().__init__(
            f"Batch remaining total {batch_total} exceeds stock quantity "
            f"{stock_quantity} for product {product_id} in warehouse {warehouse_id}"
        )


# Money


class InvalidAmountError(LedgerEngineError):
    """Amount is not acceptable for the requested ledger operation."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, amount: Decimal, reason: str):
        self.amount = amount
        self.reason = reason
        super().__init__(f"Invalid amount {amount}: {reason}")


class AmountExceedsBalanceError(InvalidAmountError):
    """Payment is larger than the outstanding amount it settles."""

    code: str = "AMOUNT_EXCEEDS_BALANCE"

    def __init__(self, amount: Decimal, outstanding: Decimal):
        self.outstanding = outstanding
        super().__init__(
            amount, f"exceeds outstanding amount {outstanding}"
        )


# Concurrency


class ConcurrencyError(LedgerEngineError):
    """Base exception for concurrency errors."""

    code: str = "CONCURRENCY_ERROR"


class OptimisticLockError(ConcurrencyError):
    """Optimistic locking conflict detected."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        super().__init__(
            f"Optimistic lock conflict on {entity_type} {entity_id}: "
            "record was modified by another transaction"
        )


# Immutability


class ImmutabilityError(LedgerEngineError):
    """Base exception for immutability violations."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempted to modify or delete an append-only ledger row."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        self.reason = reason
        super().__init__(
            f"Cannot modify {entity_type} {entity_id}: {reason}"
        )
