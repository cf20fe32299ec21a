"""
ORM-Level Immutability Enforcement for ledger rows.

===============================================================================
HOW IT WORKS
===============================================================================

SQLAlchemy fires mapper events before UPDATE/DELETE statements reach the
database.  Listeners registered here intercept those events for every
ledger table and raise ImmutabilityViolationError, which aborts the flush:

    session.flush()
         |
         v
    [before_update] --> _check_*_immutability() --> ImmutabilityViolationError
    [before_delete] --> _check_*_delete() --------> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity                 | When Immutable   | Mutable fields
-----------------------|------------------|-------------------------------
StockTransaction       | ALWAYS           | none
PayableTransaction     | ALWAYS           | none
ReceivableTransaction  | ALWAYS           | none
CashbookEntry          | ALWAYS           | none
StockBatch             | ALWAYS           | remaining_quantity (FIFO draw)

Corrections are always new rows (adjustment, refund, reversal movements).

===============================================================================
USAGE
===============================================================================

    from ledger_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # Called once at startup

    # Tests that need to bypass protection:
    unregister_immutability_listeners()
"""

from sqlalchemy import event, inspect

from ledger_kernel.exceptions import ImmutabilityViolationError
from ledger_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_BATCH_MUTABLE_FIELDS = frozenset({"remaining_quantity"})


def _block(entity_type: str, target, operation: str, reason: str):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": operation,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=reason,
    )


def _check_ledger_row_immutability(mapper, connection, target):
    """Ledger rows are append-only: any UPDATE is rejected."""
    entity_type = type(target).__name__
    _block(
        entity_type,
        target,
        "UPDATE",
        f"{entity_type} rows are append-only; record a correcting entry instead",
    )


def _check_ledger_row_delete(mapper, connection, target):
    """Ledger rows can never be deleted."""
    entity_type = type(target).__name__
    _block(entity_type, target, "DELETE", f"{entity_type} rows cannot be deleted")


def _check_stock_batch_immutability(mapper, connection, target):
    """
    Only remaining_quantity may change on a batch.

    Received quantity, cost and dates are facts of the receipt.
    """
    state = inspect(target)
    changed = {
        attr.key
        for attr in state.attrs
        if attr.history.has_changes()
    }
    frozen = changed - _BATCH_MUTABLE_FIELDS
    if frozen:
        _block(
            "StockBatch",
            target,
            "UPDATE",
            f"Batch fields {sorted(frozen)} are fixed at receipt",
        )


def _check_stock_batch_delete(mapper, connection, target):
    _block("StockBatch", target, "DELETE", "Stock batches cannot be deleted")


def _ledger_models():
    from ledger_kernel.models.cashbook import CashbookEntry
    from ledger_kernel.models.debt import PayableTransaction, ReceivableTransaction
    from ledger_kernel.models.stock import StockTransaction

    return (StockTransaction, PayableTransaction, ReceivableTransaction, CashbookEntry)


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Call once after models are imported and before any database operation.
    Registration is idempotent.
    """
    from ledger_kernel.models.stock import StockBatch

    for model in _ledger_models():
        if not event.contains(model, "before_update", _check_ledger_row_immutability):
            event.listen(model, "before_update", _check_ledger_row_immutability)
        if not event.contains(model, "before_delete", _check_ledger_row_delete):
            event.listen(model, "before_delete", _check_ledger_row_delete)

    if not event.contains(StockBatch, "before_update", _check_stock_batch_immutability):
        event.listen(StockBatch, "before_update", _check_stock_batch_immutability)
    if not event.contains(StockBatch, "before_delete", _check_stock_batch_delete):
        event.listen(StockBatch, "before_delete", _check_stock_batch_delete)

    logger.debug("immutability_listeners_registered")


def _safe_remove_listener(target, event_name, listener_fn):
    """Remove an event listener, ignoring it if it was never registered."""
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests that deliberately violate the rules.
    """
    from ledger_kernel.models.stock import StockBatch

    for model in _ledger_models():
        _safe_remove_listener(model, "before_update", _check_ledger_row_immutability)
        _safe_remove_listener(model, "before_delete", _check_ledger_row_delete)

    _safe_remove_listener(StockBatch, "before_update", _check_stock_batch_immutability)
    _safe_remove_listener(StockBatch, "before_delete", _check_stock_batch_delete)
