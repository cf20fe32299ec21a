"""
CashLedger -- append-only cashbook writes.

``record`` validates and appends one CashbookEntry.  There is no running
balance on entries; see ``ledger_kernel.selectors.cashbook_selector`` for
read-time totals.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.values import (
    CashbookEntryType,
    DocumentRef,
    PaymentMethod,
    parse_enum,
)
from ledger_kernel.exceptions import InvalidAmountError, ValidationFailedError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.cashbook import CashbookEntry

logger = get_logger("services.cash_ledger")


class CashLedger:
    """Appends cashbook entries. Flushes; never commits."""

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()

    def record(
        self,
        entry_type: CashbookEntryType | str,
        amount: Decimal,
        category: str,
        payment_method: PaymentMethod | str,
        description: str,
        actor_id: UUID,
        reference: DocumentRef | None = None,
        bank_account: str | None = None,
        transaction_date: datetime | None = None,
    ) -> CashbookEntry:
        """
        Append one income or expense entry.

        Raises:
            ValidationFailedError: unknown type/method, credit method, or a
                blank category or description.
            InvalidAmountError: amount <= 0.
        """
        entry_type = parse_enum(CashbookEntryType, entry_type, "type")
        method = parse_enum(PaymentMethod, payment_method, "payment_method")
        if method.is_credit:
            raise ValidationFailedError(
                "Credit is not a cash payment method", field="payment_method"
            )
        amount = Decimal(amount)
        if amount <= 0:
            raise InvalidAmountError(amount, "cashbook amount must be greater than 0")
        if not category or not category.strip():
            raise ValidationFailedError("Category is required", field="category")
        if not description or not description.strip():
            raise ValidationFailedError("Description is required", field="description")

        entry = CashbookEntry(
            id=uuid4(),
            type=entry_type.value,
            category=category.strip(),
            amount=amount,
            description=description.strip(),
            payment_method=method.value,
            reference_type=reference.type.value if reference else None,
            reference_id=reference.id if reference else None,
            bank_account=bank_account,
            transaction_date=transaction_date or self._clock.now(),
            created_by_id=actor_id,
        )
        self._session.add(entry)
        self._session.flush()

        logger.info(
            "cashbook_entry_recorded",
            extra={
                "entry_id": str(entry.id),
                "type": entry.type,
                "category": entry.category,
                "amount": amount,
                "payment_method": entry.payment_method,
                "reference_type": entry.reference_type,
                "reference_id": str(entry.reference_id) if entry.reference_id else None,
            },
        )
        return entry
