"""
Base class for read-only selectors.

Selectors take the caller's Session, run queries and return frozen
dataclasses or ORM rows.  They never add, flush, delete or commit.
"""

from abc import ABC

from sqlalchemy.orm import Session


class BaseSelector(ABC):
    """Holds the caller-owned session."""

    def __init__(self, session: Session):
        self.session = session
