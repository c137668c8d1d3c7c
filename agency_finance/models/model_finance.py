"""
ModelFinance -- per-model, per-period finance figures.

One row per ``(model_id, month, year)``; recalculation overwrites the row.
Once ``consolidated_period_id`` is stamped the monetary columns are frozen
and only the payment-status workflow (and notes) may change.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import (
    JSON,
    BigInteger,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from agency_finance.db.base import ScaledMoney, TrackedBase, UUIDString


class FinanceStatus(str, Enum):
    CALCULADO = "CALCULADO"
    PENDIENTE_REVISION = "PENDIENTE_REVISION"
    APROBADO = "APROBADO"
    PAGADO = "PAGADO"


# Review is optional, so CALCULADO may go straight to APROBADO.
VALID_STATUS_TRANSITIONS: dict[FinanceStatus, frozenset[FinanceStatus]] = {
    FinanceStatus.CALCULADO: frozenset(
        {FinanceStatus.PENDIENTE_REVISION, FinanceStatus.APROBADO}
    ),
    FinanceStatus.PENDIENTE_REVISION: frozenset({FinanceStatus.APROBADO}),
    FinanceStatus.APROBADO: frozenset({FinanceStatus.PAGADO}),
    FinanceStatus.PAGADO: frozenset(),
}

MONETARY_FIELDS = frozenset({
    "model_id",
    "month",
    "year",
    "period",
    "net_sales_usd",
    "agency_percentage_bp",
    "agency_commission_usd",
    "bank_percentage_bp",
    "bank_fee_usd",
    "model_earnings_usd",
    "agency_profit_usd",
    "sales_count",
    "consolidated_period_id",
})


class ModelFinance(TrackedBase):
    __tablename__ = "model_finances"

    __table_args__ = (
        UniqueConstraint("model_id", "month", "year", name="uq_model_finance_model_period"),
        Index("idx_model_finance_period", "period"),
        Index("idx_model_finance_status", "status"),
    )

    model_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    period: Mapped[str] = mapped_column(String(7), nullable=False)

    # Null until the period is consolidated
    consolidated_period_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("consolidated_periods.id"),
        nullable=True,
    )

    net_sales_usd: Mapped[int] = mapped_column(ScaledMoney(), nullable=False)
    agency_percentage_bp: Mapped[int] = mapped_column(BigInteger, nullable=False)
    agency_commission_usd: Mapped[int] = mapped_column(ScaledMoney(), nullable=False)
    bank_percentage_bp: Mapped[int] = mapped_column(BigInteger, nullable=False)
    bank_fee_usd: Mapped[int] = mapped_column(ScaledMoney(), nullable=False)
    model_earnings_usd: Mapped[int] = mapped_column(ScaledMoney(), nullable=False)
    agency_profit_usd: Mapped[int] = mapped_column(ScaledMoney(), nullable=False)

    sales_count: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    contract_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    status: Mapped[FinanceStatus] = mapped_column(
        String(30),
        nullable=False,
        default=FinanceStatus.CALCULADO.value,
    )

    calculated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )
    calculated_by_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    internal_notes: Mapped[str | None] = mapped_column(String(2000), nullable=True)

    meta: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)

    def __repr__(self) -> str:
        return f"<ModelFinance {self.model_id} {self.period}: {self.status}>"

    @property
    def is_consolidated(self) -> bool:
        return self.consolidated_period_id is not None

    def can_transition_to(self, status: FinanceStatus) -> bool:
        return FinanceStatus(status) in VALID_STATUS_TRANSITIONS[FinanceStatus(self.status)]

    def to_dto(self) -> "ModelFinanceInfo":
        """Convert ORM model to frozen domain DTO."""
        from agency_finance.domain.dtos import ModelFinanceInfo
        from agency_finance.domain.money import Money, Percentage

        return ModelFinanceInfo(
            id=self.id,
            model_id=self.model_id,
            period=self.period,
            month=self.month,
            year=self.year,
            net_sales=Money(self.net_sales_usd),
            agency_percentage=Percentage(self.agency_percentage_bp),
            agency_commission=Money(self.agency_commission_usd),
            bank_percentage=Percentage(self.bank_percentage_bp),
            bank_fee=Money(self.bank_fee_usd),
            model_earnings=Money(self.model_earnings_usd),
            agency_profit=Money(self.agency_profit_usd),
            sales_count=self.sales_count,
            status=FinanceStatus(self.status).value,
            consolidated_period_id=self.consolidated_period_id,
            contract_id=self.contract_id,
            calculated_at=self.calculated_at,
            internal_notes=self.internal_notes,
            meta=dict(self.meta or {}),
        )
