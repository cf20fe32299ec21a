"""
Values -- enumerations shared by the ledgers and order modules.

Statuses, payment methods and ledger entry types are persisted as their
string values (``str`` mixin).  Parsing from external input goes through ``parse_enum``,
which rejects unknown strings with ValidationFailedError instead of falling
back to a default member.
"""

from dataclasses import dataclass
from enum import Enum
from typing import TypeVar
from uuid import UUID

from ledger_kernel.exceptions import ValidationFailedError

E = TypeVar("E", bound=Enum)


class PaymentMethod(str, Enum):
    """How money changed hands. CREDIT means on account (no cash moved)."""
    CASH = "cash"
    BANK_TRANSFER = "bank_transfer"
    VIETQR = "vietqr"
    MOMO = "momo"
    ZALOPAY = "zalopay"
    CREDIT = "credit"

    @property
    def is_credit(self) -> bool:
        return self is PaymentMethod.CREDIT


class DiscountType(str, Enum):
    """Discount interpretation: percent of the base amount, or a flat amount."""
    PERCENT = "percent"
    AMOUNT = "amount"


class StockTransactionType(str, Enum):
    IN = "in"
    OUT = "out"
    ADJUSTMENT = "adjustment"
    TRANSFER = "transfer"
    INVENTORY = "inventory"


class DebtTransactionType(str, Enum):
    """Payables/receivables movement types."""
    INVOICE = "invoice"
    PAYMENT = "payment"
    ADJUSTMENT = "adjustment"
    REFUND = "refund"


class CashbookEntryType(str, Enum):
    INCOME = "income"
    EXPENSE = "expense"


class ReferenceType(str, Enum):
    """Kinds of document a ledger row can point back to."""
    PURCHASE_ORDER = "purchase_order"
    SALE_ORDER = "sale_order"
    RETURN_ORDER = "return_order"
    PAYABLE_TRANSACTION = "payable_transaction"
    RECEIVABLE_TRANSACTION = "receivable_transaction"
    STOCK_ADJUSTMENT = "stock_adjustment"
    STOCK_TRANSFER = "stock_transfer"
    STOCK_COUNT = "stock_count"


@dataclass(frozen=True)
class DocumentRef:
    """Pointer from a ledger row back to the document that caused it."""
    type: ReferenceType
    id: UUID | None = None


def parse_enum(enum_cls: type[E], value: "E | str | None", field: str) -> E:
    """
    Checked parse of an enum member from a member or its string value.

    Accepts the member itself, its value ("bank_transfer") or its name
    ("BANK_TRANSFER"), case-insensitively.

    Raises:
        ValidationFailedError: value is None or not a member.
    """
    if isinstance(value, enum_cls):
        return value
    if value is None:
        raise ValidationFailedError(f"{field} is required", field=field)
    text = str(value).strip()
    for member in enum_cls:
        if text.lower() == member.value or text.upper() == member.name:
            return member
    allowed = ", ".join(m.value for m in enum_cls)
    raise ValidationFailedError(
        f"Invalid {field} '{value}'; expected one of: {allowed}", field=field
    )
