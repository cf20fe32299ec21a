"""
DebtLedger -- running counterparty balances plus their append-only history.

Responsibility:
    One implementation serves both sides of the book:

        DebtKind.PAYABLES     Supplier.balance  / PayableTransaction
        DebtKind.RECEIVABLES  Customer.balance  / ReceivableTransaction

    Every call locks the counterparty row, reads its balance as
    ``balance_before``, appends one transaction row and writes
    ``balance_after`` back to the counterparty in the same flush.

Invariants enforced:
    - invoice / adjustment: balance_after = balance_before + amount
    - payment / refund:     balance_after = max(0, balance_before - amount)
    - The stored balance is the source of truth and always equals the
      balance_after of the counterparty's latest transaction.  It is never
      recomputed from history.
    - An invoice extends the counterparty's due date when its own due date is
      later (or none is set); a payment or refund that brings the balance to
      zero clears it.

Failure modes:
    - ReferenceNotFoundError: unknown counterparty.
    - InvalidAmountError: non-positive amount, zero adjustment, or an
      adjustment that would take the balance below zero.
    - AmountExceedsBalanceError: standalone payment above the balance.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.config import EngineConfig
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.values import (
    CashbookEntryType,
    DebtTransactionType,
    DocumentRef,
    PaymentMethod,
    ReferenceType,
    parse_enum,
)
from ledger_kernel.exceptions import (
    AmountExceedsBalanceError,
    InvalidAmountError,
    ReferenceNotFoundError,
    ValidationFailedError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.cashbook import CashbookEntry
from ledger_kernel.models.debt import PayableTransaction, ReceivableTransaction
from ledger_kernel.models.party import Customer, Supplier
from ledger_kernel.services.cash_ledger import CashLedger

logger = get_logger("services.debt_ledger")

ZERO = Decimal("0")


class DebtKind(Enum):
    PAYABLES = "payables"
    RECEIVABLES = "receivables"


@dataclass(frozen=True)
class _DebtShape:
    counterparty_model: type
    transaction_model: type
    counterparty_fk: str
    counterparty_label: str
    settlement_cash_type: CashbookEntryType
    settlement_reference: ReferenceType


_SHAPES = {
    DebtKind.PAYABLES: _DebtShape(
        Supplier, PayableTransaction, "supplier_id", "Supplier",
        CashbookEntryType.EXPENSE, ReferenceType.PAYABLE_TRANSACTION,
    ),
    DebtKind.RECEIVABLES: _DebtShape(
        Customer, ReceivableTransaction, "customer_id", "Customer",
        CashbookEntryType.INCOME, ReferenceType.RECEIVABLE_TRANSACTION,
    ),
}


class DebtLedger:
    """
    Payables or receivables ledger.

    Flushes; never commits.  The order-level "payment exceeds what this
    order still owes" check belongs to the order services.
    """

    def __init__(
        self,
        session: Session,
        kind: DebtKind,
        clock: Clock | None = None,
        config: EngineConfig | None = None,
    ):
        self._session = session
        self._kind = kind
        self._shape = _SHAPES[kind]
        self._clock = clock or SystemClock()
        self._config = config or EngineConfig.with_defaults()

    @classmethod
    def payables(cls, session: Session, clock: Clock | None = None, config=None) -> "DebtLedger":
        return cls(session, DebtKind.PAYABLES, clock, config)

    @classmethod
    def receivables(cls, session: Session, clock: Clock | None = None, config=None) -> "DebtLedger":
        return cls(session, DebtKind.RECEIVABLES, clock, config)

    @property
    def kind(self) -> DebtKind:
        return self._kind

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_counterparty(self, counterparty_id: UUID):
        counterparty = self._session.get(self._shape.counterparty_model, counterparty_id)
        if counterparty is None:
            raise ReferenceNotFoundError(self._shape.counterparty_label, counterparty_id)
        return counterparty

    def _lock(self, counterparty_id: UUID):
        model = self._shape.counterparty_model
        counterparty = self._session.execute(
            select(model)
            .where(model.id == counterparty_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if counterparty is None:
            raise ReferenceNotFoundError(self._shape.counterparty_label, counterparty_id)
        return counterparty

    def history(self, counterparty_id: UUID) -> list:
        """All transactions of a counterparty, oldest first."""
        model = self._shape.transaction_model
        fk = getattr(model, self._shape.counterparty_fk)
        return list(
            self._session.execute(
                select(model)
                .where(fk == counterparty_id)
                .order_by(model.transaction_date, model.id)
            ).scalars()
        )

    # ------------------------------------------------------------------
    # Core append
    # ------------------------------------------------------------------

    @staticmethod
    def _positive(amount: Decimal, what: str) -> Decimal:
        amount = Decimal(amount)
        if amount <= 0:
            raise InvalidAmountError(amount, f"{what} amount must be greater than 0")
        return amount

    def _append(
        self,
        counterparty,
        txn_type: DebtTransactionType,
        amount: Decimal,
        balance_after: Decimal,
        actor_id: UUID,
        description: str | None,
        reference: DocumentRef | None = None,
        payment_method: PaymentMethod | None = None,
        due_date: date | None = None,
        cashbook_entry_id: UUID | None = None,
        txn_id: UUID | None = None,
    ):
        balance_before = counterparty.balance
        txn = self._shape.transaction_model(
            id=txn_id or uuid4(),
            type=txn_type.value,
            amount=amount,
            balance_before=balance_before,
            balance_after=balance_after,
            description=description,
            payment_method=payment_method.value if payment_method else None,
            due_date=due_date,
            transaction_date=self._clock.now(),
            reference_type=reference.type.value if reference else None,
            reference_id=reference.id if reference else None,
            cashbook_entry_id=cashbook_entry_id,
            created_by_id=actor_id,
            **{self._shape.counterparty_fk: counterparty.id},
        )
        self._session.add(txn)
        counterparty.balance = balance_after
        counterparty.updated_by_id = actor_id
        self._session.flush()

        logger.info(
            f"debt_{txn_type.value}_recorded",
            extra={
                "ledger": self._kind.value,
                "counterparty_id": str(counterparty.id),
                "transaction_id": str(txn.id),
                "amount": amount,
                "balance_before": balance_before,
                "balance_after": balance_after,
                "reference_type": txn.reference_type,
                "reference_id": str(txn.reference_id) if txn.reference_id else None,
            },
        )
        return txn

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def record_invoice(
        self,
        counterparty_id: UUID,
        amount: Decimal,
        actor_id: UUID,
        description: str,
        due_date: date | None = None,
        reference: DocumentRef | None = None,
    ):
        """Increase the balance; extend the due date if this one is later."""
        amount = self._positive(amount, "Invoice")
        counterparty = self._lock(counterparty_id)
        txn = self._append(
            counterparty,
            DebtTransactionType.INVOICE,
            amount,
            counterparty.balance + amount,
            actor_id,
            description,
            reference=reference,
            due_date=due_date,
        )
        if due_date is not None and (
            counterparty.payment_due_date is None
            or due_date > counterparty.payment_due_date
        ):
            counterparty.payment_due_date = due_date
            self._session.flush()
        return txn

    def _settle(
        self,
        txn_type: DebtTransactionType,
        counterparty_id: UUID,
        amount: Decimal,
        actor_id: UUID,
        description: str,
        reference: DocumentRef | None,
        payment_method: PaymentMethod | None,
        cashbook_entry_id: UUID | None,
        txn_id: UUID | None = None,
    ):
        counterparty = self._lock(counterparty_id)
        balance_after = max(ZERO, counterparty.balance - amount)
        txn = self._append(
            counterparty,
            txn_type,
            amount,
            balance_after,
            actor_id,
            description,
            reference=reference,
            payment_method=payment_method,
            cashbook_entry_id=cashbook_entry_id,
            txn_id=txn_id,
        )
        if balance_after == 0 and counterparty.payment_due_date is not None:
            counterparty.payment_due_date = None
            self._session.flush()
        return txn

    def record_payment(
        self,
        counterparty_id: UUID,
        amount: Decimal,
        actor_id: UUID,
        description: str,
        reference: DocumentRef | None = None,
        payment_method: PaymentMethod | str | None = None,
        cashbook_entry_id: UUID | None = None,
    ):
        """Decrease the balance (floored at zero); clear the due date at zero."""
        amount = self._positive(amount, "Payment")
        method = (
            parse_enum(PaymentMethod, payment_method, "payment_method")
            if payment_method is not None
            else None
        )
        return self._settle(
            DebtTransactionType.PAYMENT, counterparty_id, amount, actor_id,
            description, reference, method, cashbook_entry_id,
        )

    def record_refund(
        self,
        counterparty_id: UUID,
        amount: Decimal,
        actor_id: UUID,
        description: str,
        reference: DocumentRef | None = None,
    ):
        """Returned goods credited against the balance; same arithmetic as a payment."""
        amount = self._positive(amount, "Refund")
        return self._settle(
            DebtTransactionType.REFUND, counterparty_id, amount, actor_id,
            description, reference, None, None,
        )

    def record_adjustment(
        self,
        counterparty_id: UUID,
        signed_amount: Decimal,
        actor_id: UUID,
        description: str,
        reference: DocumentRef | None = None,
    ):
        """Manual correction.  No effect on the due date."""
        signed_amount = Decimal(signed_amount)
        if signed_amount == 0:
            raise InvalidAmountError(signed_amount, "adjustment amount cannot be zero")
        counterparty = self._lock(counterparty_id)
        balance_after = counterparty.balance + signed_amount
        if balance_after < 0:
            raise InvalidAmountError(
                signed_amount,
                f"adjustment would make the balance negative ({balance_after})",
            )
        return self._append(
            counterparty,
            DebtTransactionType.ADJUSTMENT,
            signed_amount,
            balance_after,
            actor_id,
            description,
            reference=reference,
        )

    def pay_balance(
        self,
        counterparty_id: UUID,
        amount: Decimal,
        payment_method: PaymentMethod | str,
        actor_id: UUID,
        description: str | None = None,
        bank_account: str | None = None,
    ) -> tuple[object, CashbookEntry]:
        """
        Settle part of a counterparty's balance outside any order.

        Posts the debt payment and a linked cashbook entry (expense for
        payables, income for receivables) in one flush.
        """
        amount = self._positive(amount, "Payment")
        method = parse_enum(PaymentMethod, payment_method, "payment_method")
        if method.is_credit:
            raise ValidationFailedError(
                "A debt cannot be settled on credit", field="payment_method"
            )
        counterparty = self._lock(counterparty_id)
        if amount > counterparty.balance:
            raise AmountExceedsBalanceError(amount, counterparty.balance)

        label = self._shape.counterparty_label
        description = description or f"{label} debt payment - {counterparty.name}"
        category = (
            self._config.payable_payment_category
            if self._kind is DebtKind.PAYABLES
            else self._config.receivable_payment_category
        )
        txn_id = uuid4()
        entry = CashLedger(self._session, self._clock).record(
            self._shape.settlement_cash_type,
            amount,
            category,
            method,
            description,
            actor_id,
            reference=DocumentRef(self._shape.settlement_reference, txn_id),
            bank_account=bank_account,
        )
        txn = self._settle(
            DebtTransactionType.PAYMENT, counterparty_id, amount, actor_id,
            description, None, method, entry.id, txn_id=txn_id,
        )
        return txn, entry
