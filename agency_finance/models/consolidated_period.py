"""
ConsolidatedPeriod -- frozen snapshot of a closed calendar month.

Lifecycle: ABIERTO -> EN_REVISION -> CONSOLIDADO -> CERRADO.  EN_REVISION is
advisory; CERRADO is archival and cannot be undone through the service API.
``period`` is unique, which is the storage-level idempotency key of
consolidation.  From CONSOLIDADO on, the totals and ``finance_ids`` are
frozen (db/immutability.py).
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import JSON, BigInteger, DateTime, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from agency_finance.db.base import ScaledMoney, TrackedBase, UUIDString


class PeriodStatus(str, Enum):
    ABIERTO = "ABIERTO"
    EN_REVISION = "EN_REVISION"
    CONSOLIDADO = "CONSOLIDADO"
    CERRADO = "CERRADO"


FROZEN_STATUSES = frozenset({PeriodStatus.CONSOLIDADO, PeriodStatus.CERRADO})

# Columns that may still change on a CONSOLIDADO period (archival close)
ARCHIVAL_FIELDS = frozenset({
    "status",
    "closed_at",
    "closed_by_id",
    "closing_notes",
    "updated_at",
    "updated_by_id",
})


class ConsolidatedPeriod(TrackedBase):
    __tablename__ = "consolidated_periods"

    __table_args__ = (
        UniqueConstraint("period", name="uq_consolidated_period"),
        Index("idx_consolidated_period_year_month", "year", "month"),
    )

    period: Mapped[str] = mapped_column(String(7), nullable=False)
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)

    total_net_sales_usd: Mapped[int] = mapped_column(ScaledMoney(), nullable=False, default=0)
    total_agency_commission_usd: Mapped[int] = mapped_column(ScaledMoney(), nullable=False, default=0)
    total_bank_fee_usd: Mapped[int] = mapped_column(ScaledMoney(), nullable=False, default=0)
    total_model_earnings_usd: Mapped[int] = mapped_column(ScaledMoney(), nullable=False, default=0)
    total_agency_profit_usd: Mapped[int] = mapped_column(ScaledMoney(), nullable=False, default=0)

    model_count: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    sales_count: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    average_sales_per_model_usd: Mapped[int] = mapped_column(ScaledMoney(), nullable=False, default=0)
    average_bank_percentage_bp: Mapped[int] = mapped_column(BigInteger, nullable=False, default=200)

    # Ledger side of the snapshot
    ledger_income_usd: Mapped[int] = mapped_column(ScaledMoney(), nullable=False, default=0)
    ledger_expense_usd: Mapped[int] = mapped_column(ScaledMoney(), nullable=False, default=0)
    transferred_usd: Mapped[int] = mapped_column(ScaledMoney(), nullable=False, default=0)

    status: Mapped[PeriodStatus] = mapped_column(
        String(20),
        nullable=False,
        default=PeriodStatus.ABIERTO.value,
    )

    consolidated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    consolidated_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    closing_notes: Mapped[str | None] = mapped_column(String(2000), nullable=True)

    closed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    closed_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    finance_ids: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    meta: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)

    def __repr__(self) -> str:
        return f"<ConsolidatedPeriod {self.period}: {self.status}>"

    @property
    def is_frozen(self) -> bool:
        return self.status in FROZEN_STATUSES

    def to_dto(self) -> "ConsolidatedPeriodInfo":
        """Convert ORM model to frozen domain DTO."""
        from agency_finance.domain.dtos import ConsolidatedPeriodInfo
        from agency_finance.domain.money import Money, Percentage

        return ConsolidatedPeriodInfo(
            id=self.id,
            period=self.period,
            month=self.month,
            year=self.year,
            status=PeriodStatus(self.status).value,
            total_net_sales=Money(self.total_net_sales_usd),
            total_agency_commission=Money(self.total_agency_commission_usd),
            total_bank_fee=Money(self.total_bank_fee_usd),
            total_model_earnings=Money(self.total_model_earnings_usd),
            total_agency_profit=Money(self.total_agency_profit_usd),
            model_count=self.model_count,
            sales_count=self.sales_count,
            average_sales_per_model=Money(self.average_sales_per_model_usd),
            average_bank_percentage=Percentage(self.average_bank_percentage_bp),
            ledger_income=Money(self.ledger_income_usd),
            ledger_expense=Money(self.ledger_expense_usd),
            transferred=Money(self.transferred_usd),
            consolidated_at=self.consolidated_at,
            consolidated_by_id=self.consolidated_by_id,
            closing_notes=self.closing_notes,
            closed_at=self.closed_at,
            finance_ids=tuple(UUID(fid) for fid in (self.finance_ids or [])),
            meta=dict(self.meta or {}),
        )
