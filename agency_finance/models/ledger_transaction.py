"""
LedgerTransaction -- append-only record of one money movement.

Lifecycle::

    EN_MOVIMIENTO --consolidation--> CONSOLIDADO
          |
          +------reversal--------> REVERTIDO

``amount_usd`` is always positive; the sign is carried by
``transaction_type``.  Once a transaction leaves EN_MOVIMIENTO only the
reversal and consolidation bookkeeping columns may change (enforced by
db/immutability.py).  A reversal never edits the amount: it inserts a
compensating transaction of the inverse type whose ``reversal_of_id``
points at the original.  ``reversal_of_id`` is unique, so an original can
be compensated at most once even under concurrent reversal attempts.

Every row carries its signed effect on the bank's movement balance and its
consolidation stamp, which is enough to rebuild the balance from the ledger
alone (see selectors/bank_selector.py).
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import (
    JSON,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from agency_finance.db.base import ScaledMoney, TrackedBase, UUIDString


class TransactionType(str, Enum):
    INGRESO = "INGRESO"
    EGRESO = "EGRESO"

    @property
    def sign(self) -> int:
        return 1 if self is TransactionType.INGRESO else -1

    def inverse(self) -> "TransactionType":
        if self is TransactionType.INGRESO:
            return TransactionType.EGRESO
        return TransactionType.INGRESO


class TransactionOrigin(str, Enum):
    GANANCIA_MODELO = "GANANCIA_MODELO"
    COSTO_FIJO = "COSTO_FIJO"
    COSTO_VARIABLE = "COSTO_VARIABLE"
    AJUSTE_MANUAL = "AJUSTE_MANUAL"
    CONSOLIDACION_COSTOS = "CONSOLIDACION_COSTOS"
    RECALCULO_PERIODO = "RECALCULO_PERIODO"
    OTRO = "OTRO"


class TransactionStatus(str, Enum):
    EN_MOVIMIENTO = "EN_MOVIMIENTO"
    CONSOLIDADO = "CONSOLIDADO"
    REVERTIDO = "REVERTIDO"


# Columns that may still change after a transaction leaves EN_MOVIMIENTO
BOOKKEEPING_FIELDS = frozenset({
    "status",
    "consolidated_at",
    "consolidated_by_id",
    "consolidated_period_code",
    "reversed_by_id",
    "reversed_at",
    "reversal_reason",
    "updated_at",
    "updated_by_id",
})


class LedgerTransaction(TrackedBase):
    __tablename__ = "ledger_transactions"

    __table_args__ = (
        CheckConstraint("amount_usd > 0", name="ck_ledger_amount_positive"),
        UniqueConstraint("reversal_of_id", name="uq_ledger_reversal_of"),
        Index("idx_ledger_period_status", "period", "status"),
        Index("idx_ledger_origin", "origin"),
        Index("idx_ledger_reference", "reference_kind", "reference_id"),
        Index("idx_ledger_model", "model_id"),
        Index("idx_ledger_recorded_at", "recorded_at"),
    )

    # "YYYY-MM"
    period: Mapped[str] = mapped_column(String(7), nullable=False)
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)

    transaction_type: Mapped[TransactionType] = mapped_column(
        String(10),
        nullable=False,
    )

    origin: Mapped[TransactionOrigin] = mapped_column(
        String(30),
        nullable=False,
    )

    amount_usd: Mapped[int] = mapped_column(
        ScaledMoney(),
        nullable=False,
    )

    # Tagged pointer to the originating record
    reference_kind: Mapped[str] = mapped_column(String(30), nullable=False)
    reference_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    model_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    description: Mapped[str] = mapped_column(String(500), nullable=False)
    notes: Mapped[str | None] = mapped_column(String(2000), nullable=True)

    status: Mapped[TransactionStatus] = mapped_column(
        String(20),
        nullable=False,
        default=TransactionStatus.EN_MOVIMIENTO.value,
    )

    recorded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    consolidated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    consolidated_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    # Set once the transaction's balance effect has moved into consolidated capital
    consolidated_period_code: Mapped[str | None] = mapped_column(String(7), nullable=True)

    reversal_of_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("ledger_transactions.id"),
        nullable=True,
    )
    reversed_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    reversed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    reversal_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)

    meta: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)

    def __repr__(self) -> str:
        return (
            f"<LedgerTransaction {self.period} {self.transaction_type} "
            f"{self.amount_usd} {self.status}>"
        )

    @property
    def signed_amount(self) -> int:
        """Effect on the bank's movement balance."""
        return TransactionType(self.transaction_type).sign * self.amount_usd

    @property
    def is_reversal(self) -> bool:
        return self.reversal_of_id is not None

    @property
    def is_in_movement(self) -> bool:
        return self.status == TransactionStatus.EN_MOVIMIENTO

    @property
    def is_reversed(self) -> bool:
        return self.status == TransactionStatus.REVERTIDO

    def to_dto(self) -> "TransactionInfo":
        """Convert ORM model to frozen domain DTO."""
        from agency_finance.domain.dtos import TransactionInfo
        from agency_finance.domain.money import Money
        from agency_finance.domain.values import ReferenceKind, TransactionReference

        return TransactionInfo(
            id=self.id,
            period=self.period,
            transaction_type=TransactionType(self.transaction_type).value,
            origin=TransactionOrigin(self.origin).value,
            amount=Money(self.amount_usd),
            reference=TransactionReference(
                ReferenceKind(self.reference_kind), self.reference_id
            ),
            model_id=self.model_id,
            description=self.description,
            notes=self.notes,
            status=TransactionStatus(self.status).value,
            recorded_at=self.recorded_at,
            created_by_id=self.created_by_id,
            consolidated_at=self.consolidated_at,
            consolidated_period_code=self.consolidated_period_code,
            reversal_of_id=self.reversal_of_id,
            reversed_by_id=self.reversed_by_id,
            reversed_at=self.reversed_at,
            reversal_reason=self.reversal_reason,
            meta=dict(self.meta or {}),
        )
