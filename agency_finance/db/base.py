"""
Module: agency_finance.db.base
Responsibility: Declarative base classes for all SQLAlchemy ORM models.
    Provides the UUID primary key convention, the scaled-integer money column
    type, and the TrackedBase mixin for audit timestamps.
Architecture position: DB layer.  Lowest-level import target; ALL model files
    import from here.  MUST NOT import from models/, services/ or selectors/.

Invariants enforced:
    - UUID primary keys stored as String(36) for SQLite/PostgreSQL portability.
    - Money columns are integers (value x 100,000).  ``ScaledMoney`` stores
      them as NUMERIC(38, 0) on PostgreSQL and BIGINT elsewhere; NEVER float.
    - Audit timestamps: created_at / updated_at, created_by_id required.
"""

from datetime import datetime
from typing import ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import BigInteger, DateTime, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """UUID stored as its 36-character string form."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None:
            return str(value)
        return None

    def process_result_value(self, value, dialect):
        if value is not None:
            return PyUUID(value)
        return None


class ScaledMoney(TypeDecorator):
    """
    Scaled-integer money column.

    PostgreSQL gets an arbitrary-precision NUMERIC(38, 0); other dialects a
    64-bit integer.  Python always sees ``int``.
    """

    impl = BigInteger
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(Numeric(38, 0, asdecimal=True))
        return dialect.type_descriptor(BigInteger())

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, float):
            raise TypeError("float values cannot be stored in a money column")
        return int(value)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return int(value)


class Base(DeclarativeBase):
    """
    Declarative base for all models.

    Guarantees:
        - id is a uuid4-generated UUID.
        - datetime maps to DateTime(timezone=True).
        - int maps to BigInteger.
    """

    type_annotation_map: ClassVar[dict] = {
        datetime: DateTime(timezone=True),
        PyUUID: UUIDString(),
        int: BigInteger,
    }

    id: Mapped[PyUUID] = mapped_column(
        UUIDString(),
        primary_key=True,
        default=uuid4,
    )


class TrackedBase(Base):
    """
    Abstract base with audit timestamp and actor tracking.

    ``updated_at`` / ``updated_by_id`` are audit metadata and may change even
    on records that are otherwise frozen (see db/immutability.py).
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    created_by_id: Mapped[PyUUID] = mapped_column(
        UUIDString(),
        nullable=False,
    )

    updated_by_id: Mapped[PyUUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
    )
