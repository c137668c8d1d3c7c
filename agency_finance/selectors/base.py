"""
Module: agency_finance.selectors.base
Responsibility: Abstract base class for the read-only query selectors.
Architecture position: Selectors.  May import from db/, domain/ and models/.
    MUST NOT import from services/.

Invariants enforced:
    - Read-only access: selectors never call session.add(), flush(),
      commit() or delete().
    - DTO return convention: selectors return frozen dataclasses, never ORM
      instances.
    - The caller owns the session and its transaction scope.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from agency_finance.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseSelector(ABC, Generic[ModelType]):
    """Abstract base class for all selectors."""

    def __init__(self, session: Session):
        self.session = session
