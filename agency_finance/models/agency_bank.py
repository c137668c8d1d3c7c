"""
AgencyBank -- the single process-wide balance record.

Two tiers of capital:
    consolidated_usd  frozen, historical capital; grows only by consolidation
                      (or an explicit, logged correction).
    movement_usd      running balance of the current, unconsolidated ledger
                      transactions.

Only ``BankService`` writes this row, and only through single-statement
``UPDATE ... SET col = col + :delta`` so concurrent writers never lose
updates.  ``bank_key`` is a constant discriminator with a unique constraint,
which makes a second row impossible at the storage layer.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import JSON, BigInteger, DateTime, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from agency_finance.db.base import ScaledMoney, TrackedBase

BANK_KEY = "onlytop_bank"
BANK_COMPANY = "OnlyTop"
SYSTEM_ACTOR_ID = UUID(int=0)


class AgencyBank(TrackedBase):
    __tablename__ = "agency_bank"

    __table_args__ = (
        UniqueConstraint("bank_key", name="uq_agency_bank_key"),
    )

    bank_key: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        default=BANK_KEY,
    )

    company: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        default=BANK_COMPANY,
    )

    consolidated_usd: Mapped[int] = mapped_column(
        ScaledMoney(),
        nullable=False,
        default=0,
    )

    movement_usd: Mapped[int] = mapped_column(
        ScaledMoney(),
        nullable=False,
        default=0,
    )

    # Projection of pending fixed expenses; informational until settled
    fixed_expense_projection_usd: Mapped[int] = mapped_column(
        ScaledMoney(),
        nullable=False,
        default=0,
    )

    # "YYYY-MM" of the period currently accumulating movement
    current_period: Mapped[str | None] = mapped_column(
        String(7),
        nullable=True,
    )

    last_consolidated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    consolidated_period_count: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
    )

    historic_model_count: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
    )

    historic_sales_count: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
    )

    # Bumped by every mutation; consolidation compares-and-swaps on it
    version: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=1,
    )

    meta: Mapped[dict] = mapped_column(
        JSON,
        nullable=False,
        default=dict,
    )

    def __repr__(self) -> str:
        return (
            f"<AgencyBank consolidated={self.consolidated_usd} "
            f"movement={self.movement_usd} v{self.version}>"
        )

    def to_dto(self) -> "BankState":
        """Convert ORM model to frozen domain DTO."""
        from agency_finance.domain.dtos import BankState
        from agency_finance.domain.money import Money

        return BankState(
            consolidated=Money(self.consolidated_usd),
            movement=Money(self.movement_usd),
            fixed_expense_projection=Money(self.fixed_expense_projection_usd),
            current_period=self.current_period,
            last_consolidated_at=self.last_consolidated_at,
            consolidated_period_count=self.consolidated_period_count,
            historic_model_count=self.historic_model_count,
            historic_sales_count=self.historic_sales_count,
            version=self.version,
        )
