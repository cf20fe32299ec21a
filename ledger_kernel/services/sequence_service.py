"""
SequenceService -- monotonic sequence allocation via locked counter rows.

Responsibility:
    Issues the running numbers inside human-readable order codes
    (``PO-20240101-0001``).  A dedicated counter table with row-level locking
    (``SELECT ... FOR UPDATE``) keeps numbers unique under concurrent
    order creation; counting existing orders and adding one is never used.

Invariants enforced:
    - Values are strictly increasing per sequence name.
    - The increment is only visible after the caller's transaction commits;
      a rollback returns the value.

Failure modes:
    - IntegrityError on a concurrent first use of a name is absorbed by a
      savepoint and the counter is re-read under lock.
"""

from datetime import date

from sqlalchemy import BigInteger, String, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Mapped, Session, mapped_column

from ledger_kernel.db.base import Base
from ledger_kernel.logging_config import get_logger

logger = get_logger("services.sequence")


class SequenceCounter(Base):
    """One named counter and its last issued value."""

    __tablename__ = "sequence_counters"

    # e.g. "PO-20240101"
    name: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    current_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)


class SequenceService:
    """
    Allocates sequence numbers inside the caller's transaction.

    Does NOT commit -- the order service owns the boundary.
    """

    def __init__(self, session: Session):
        self._session = session

    def _locked_counter(self, sequence_name: str) -> SequenceCounter | None:
        return self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def next_value(self, sequence_name: str) -> int:
        """Lock (or create) the named counter, increment it and return the new value."""
        counter = self._locked_counter(sequence_name)

        if counter is None:
            savepoint = self._session.begin_nested()
            try:
                counter = SequenceCounter(name=sequence_name, current_value=1)
                self._session.add(counter)
                self._session.flush()
                savepoint.commit()
                logger.debug(
                    "sequence_allocated",
                    extra={"sequence_name": sequence_name, "value": 1},
                )
                return 1
            except IntegrityError:
                logger.debug(
                    "sequence_counter_race_retry",
                    extra={"sequence_name": sequence_name},
                )
                savepoint.rollback()
                counter = self._locked_counter(sequence_name)
                if counter is None:
                    raise

        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": counter.current_value},
        )
        return counter.current_value

    def current_value(self, sequence_name: str) -> int | None:
        """Last issued value, or None if the sequence was never used."""
        return self._session.execute(
            select(SequenceCounter.current_value).where(SequenceCounter.name == sequence_name)
        ).scalar_one_or_none()

    def next_document_code(self, prefix: str, on: date, width: int = 4) -> str:
        """
        Allocate a daily document code: ``<PREFIX>-<yyyymmdd>-<nnnn>``.

        Numbering restarts every day per prefix.
        """
        day = on.strftime("%Y%m%d")
        value = self.next_value(f"{prefix}-{day}")
        return f"{prefix}-{day}-{value:0{width}d}"
