"""
CommissionScale -- stored tier scales for sales and chatter commissions.

At most one scale per kind is active.  The service swaps activation inside
one transaction (deactivate all, then activate one); ``active_slot`` backs
that up at the storage layer: it holds the kind while the scale is active and
NULL otherwise, under a unique constraint.
"""

from uuid import UUID

from sqlalchemy import BigInteger, Boolean, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from agency_finance.db.base import Base, TrackedBase, UUIDString
from agency_finance.domain.commission import ScaleKind, ScaleRule
from agency_finance.domain.money import Percentage


class CommissionScale(TrackedBase):
    __tablename__ = "commission_scales"

    __table_args__ = (
        UniqueConstraint("active_slot", name="uq_commission_scale_active_slot"),
    )

    name: Mapped[str] = mapped_column(String(100), nullable=False)

    kind: Mapped[ScaleKind] = mapped_column(String(20), nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    active_slot: Mapped[str | None] = mapped_column(String(20), nullable=True)

    description: Mapped[str | None] = mapped_column(String(500), nullable=True)

    # PERFORMANCE scales only: fixed percent for supernumerary chatters
    flat_percentage_bp: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    rules: Mapped[list["CommissionScaleRule"]] = relationship(
        back_populates="scale",
        order_by="CommissionScaleRule.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<CommissionScale {self.name} {self.kind} active={self.is_active}>"

    def to_rules(self) -> list[ScaleRule]:
        return [rule.to_domain() for rule in self.rules]

    @property
    def flat_percentage(self) -> Percentage | None:
        if self.flat_percentage_bp is None:
            return None
        return Percentage(self.flat_percentage_bp)

    def to_dto(self) -> "CommissionScaleInfo":
        """Convert ORM model to frozen domain DTO."""
        from agency_finance.domain.dtos import CommissionScaleInfo

        return CommissionScaleInfo(
            id=self.id,
            name=self.name,
            kind=ScaleKind(self.kind),
            is_active=self.is_active,
            is_default=self.is_default,
            description=self.description,
            rules=tuple(self.to_rules()),
            flat_percentage=self.flat_percentage,
        )


class CommissionScaleRule(Base):
    __tablename__ = "commission_scale_rules"

    scale_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("commission_scales.id", ondelete="CASCADE"),
        nullable=False,
    )

    position: Mapped[int] = mapped_column(Integer, nullable=False)

    # Scaled USD (SALES_TIER) or basis points of goal completion (PERFORMANCE)
    lower_bound: Mapped[int] = mapped_column(BigInteger, nullable=False)
    upper_bound: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    percentage_bp: Mapped[int] = mapped_column(BigInteger, nullable=False)

    scale: Mapped[CommissionScale] = relationship(back_populates="rules")

    def to_domain(self) -> ScaleRule:
        return ScaleRule(
            lower_bound=self.lower_bound,
            upper_bound=self.upper_bound,
            percentage=Percentage(self.percentage_bp),
        )

    @classmethod
    def from_domain(cls, rule: ScaleRule, position: int) -> "CommissionScaleRule":
        return cls(
            position=position,
            lower_bound=rule.lower_bound,
            upper_bound=rule.upper_bound,
            percentage_bp=rule.percentage.basis_points,
        )
