"""
BaseService -- common constructor for write services.

Every service receives the caller's SQLAlchemy ``Session`` and persists with
``session.flush()``, never ``session.commit()``.  The caller (usually
``db.engine.session_scope()``) owns the transaction, which is what makes a
ledger insert and its bank adjustment, or every step of a consolidation,
commit or roll back together.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from agency_finance.db.base import Base
from agency_finance.domain.clock import Clock, SystemClock

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for write services.

    Guarantees:
        - The service never calls ``session.commit()`` or
          ``session.rollback()``.

    Non-goals:
        - Read-only queries live in ``agency_finance/selectors/``.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self.clock = clock or SystemClock()
