"""
CommissionScaleService -- administration and use of stored commission scales.

Responsibility:
    Create, update, delete and activate SALES_TIER and PERFORMANCE scales and
    compute commissions with the active one.  Rule validation is delegated
    to the pure resolver in ``domain/commission.py``.

Invariants enforced:
    - Rules are validated (contiguous, start at 0, percentages in [0, 100])
      before anything is written.
    - At most one active scale per kind.  Activation deactivates every scale
      of the kind, flushes, then activates the target; the unique
      ``active_slot`` column rejects any interleaving that would leave two.
    - The active scale cannot be deleted.
"""

from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from agency_finance.domain.commission import (
    DEFAULT_SUPERNUMERARY_PERCENTAGE,
    CommissionQuote,
    ScaleKind,
    ScaleRule,
    chatter_commission_percentage,
    default_performance_rules,
    default_sales_tier_rules,
    quote_commission,
    validate_rules,
)
from agency_finance.domain.dtos import CommissionScaleInfo
from agency_finance.domain.money import Money, Percentage
from agency_finance.exceptions import (
    ActiveScaleDeletionError,
    CommissionScaleNotFoundError,
    InvalidScaleDefinitionError,
    NoActiveScaleError,
    ValidationError,
)
from agency_finance.logging_config import get_logger
from agency_finance.models.commission_scale import CommissionScale, CommissionScaleRule
from agency_finance.services.base import BaseService

logger = get_logger("services.commission_scale")

DEFAULT_SALES_SCALE_NAME = "Default sales tiers"
DEFAULT_PERFORMANCE_SCALE_NAME = "Default chatter performance"


class CommissionScaleService(BaseService[CommissionScale]):
    """Stored commission scales."""

    def create(
        self,
        name: str,
        kind: ScaleKind | str,
        rules: list[ScaleRule],
        actor_id: UUID,
        *,
        description: str | None = None,
        is_default: bool = False,
        activate: bool = False,
        flat_percentage: Percentage | None = None,
    ) -> CommissionScaleInfo:
        scale_kind = ScaleKind(kind)
        if not name or not name.strip():
            raise ValidationError("A scale name is required")
        ordered = validate_rules(name, scale_kind, rules)
        self._check_flat_percentage(name, scale_kind, flat_percentage)

        scale = CommissionScale(
            name=name.strip(),
            kind=scale_kind.value,
            is_active=False,
            is_default=is_default,
            active_slot=None,
            description=description,
            flat_percentage_bp=None if flat_percentage is None else flat_percentage.basis_points,
            created_by_id=actor_id,
        )
        scale.rules = [
            CommissionScaleRule.from_domain(rule, position)
            for position, rule in enumerate(ordered)
        ]
        self.session.add(scale)
        self.session.flush()

        logger.info(
            "commission_scale_created",
            extra={"scale_id": str(scale.id), "kind": scale_kind.value, "rules": len(ordered)},
        )
        if activate:
            return self.set_active(scale.id, actor_id)
        return scale.to_dto()

    def update(
        self,
        scale_id: UUID,
        actor_id: UUID,
        *,
        name: str | None = None,
        rules: list[ScaleRule] | None = None,
        description: str | None = None,
        flat_percentage: Percentage | None = None,
    ) -> CommissionScaleInfo:
        """Replace the given fields; new rules are re-validated as a whole."""
        scale = self._load(scale_id)
        kind = ScaleKind(scale.kind)

        if name is not None:
            if not name.strip():
                raise ValidationError("A scale name is required")
            scale.name = name.strip()
        if rules is not None:
            ordered = validate_rules(scale.name, kind, rules)
            scale.rules.clear()
            self.session.flush()
            scale.rules.extend(
                CommissionScaleRule.from_domain(rule, position)
                for position, rule in enumerate(ordered)
            )
        if description is not None:
            scale.description = description
        if flat_percentage is not None:
            self._check_flat_percentage(scale.name, kind, flat_percentage)
            scale.flat_percentage_bp = flat_percentage.basis_points
        scale.updated_by_id = actor_id
        self.session.flush()

        logger.info("commission_scale_updated", extra={"scale_id": str(scale.id)})
        return scale.to_dto()

    def delete(self, scale_id: UUID, actor_id: UUID) -> None:
        scale = self._load(scale_id)
        if scale.is_active:
            raise ActiveScaleDeletionError(scale.id)
        self.session.delete(scale)
        self.session.flush()
        logger.info(
            "commission_scale_deleted",
            extra={"scale_id": str(scale_id), "actor_id": str(actor_id)},
        )

    def get(self, scale_id: UUID) -> CommissionScaleInfo:
        return self._load(scale_id).to_dto()

    def list_scales(self, kind: ScaleKind | str | None = None) -> list[CommissionScaleInfo]:
        stmt = select(CommissionScale).order_by(CommissionScale.created_at, CommissionScale.name)
        if kind is not None:
            stmt = stmt.where(CommissionScale.kind == ScaleKind(kind).value)
        return [scale.to_dto() for scale in self.session.execute(stmt).scalars()]

    def get_active(self, kind: ScaleKind | str = ScaleKind.SALES_TIER) -> CommissionScaleInfo:
        """Active scale of ``kind``, else its default scale."""
        return self._active_model(ScaleKind(kind)).to_dto()

    def set_active(self, scale_id: UUID, actor_id: UUID) -> CommissionScaleInfo:
        scale = self._load(scale_id)
        kind = ScaleKind(scale.kind)

        self.session.execute(
            update(CommissionScale)
            .where(CommissionScale.kind == kind.value)
            .values(is_active=False, active_slot=None, updated_by_id=actor_id)
            .execution_options(synchronize_session="fetch")
        )
        self.session.flush()

        scale.is_active = True
        scale.active_slot = kind.value
        scale.updated_by_id = actor_id
        try:
            self.session.flush()
        except IntegrityError as exc:
            logger.warning(
                "commission_scale_activation_conflict",
                extra={"scale_id": str(scale.id), "kind": kind.value},
            )
            raise InvalidScaleDefinitionError(
                scale.name, [f"another {kind.value} scale was activated concurrently"]
            ) from exc

        logger.info(
            "commission_scale_activated",
            extra={"scale_id": str(scale.id), "kind": kind.value},
        )
        return scale.to_dto()

    def seed_defaults(self, actor_id: UUID) -> list[CommissionScaleInfo]:
        """Create and activate the default scales for every kind that has none."""
        seeded = []
        existing = {
            kind for (kind,) in self.session.execute(select(CommissionScale.kind).distinct())
        }
        if ScaleKind.SALES_TIER.value not in existing:
            seeded.append(
                self.create(
                    DEFAULT_SALES_SCALE_NAME,
                    ScaleKind.SALES_TIER,
                    default_sales_tier_rules(),
                    actor_id,
                    description="Agency commission by monthly net sales",
                    is_default=True,
                    activate=True,
                )
            )
        if ScaleKind.PERFORMANCE.value not in existing:
            seeded.append(
                self.create(
                    DEFAULT_PERFORMANCE_SCALE_NAME,
                    ScaleKind.PERFORMANCE,
                    default_performance_rules(),
                    actor_id,
                    description="Chatter commission by goal completion",
                    is_default=True,
                    activate=True,
                    flat_percentage=DEFAULT_SUPERNUMERARY_PERCENTAGE,
                )
            )
        if seeded:
            logger.info("commission_scales_seeded", extra={"count": len(seeded)})
        return seeded

    def resolve_agency_percentage(self, net_sales: Money) -> Percentage:
        return self.calculate_commission(net_sales).percentage

    def calculate_commission(
        self, amount: Money, scale_id: UUID | None = None
    ) -> CommissionQuote:
        """Apply a SALES_TIER scale (the active one by default) to ``amount``."""
        if scale_id is None:
            scale = self._active_model(ScaleKind.SALES_TIER)
        else:
            scale = self._load(scale_id)
        return quote_commission(scale.name, scale.to_rules(), amount)

    def chatter_commission(
        self,
        sales_total: Money,
        goal_completion: Percentage,
        *,
        supernumerary: bool = False,
    ) -> Money:
        """Commission owed to a chatter for ``sales_total`` at a given goal completion."""
        scale = self._active_model(ScaleKind.PERFORMANCE)
        percentage = chatter_commission_percentage(
            scale.name,
            scale.to_rules(),
            goal_completion,
            supernumerary=supernumerary,
            flat_percentage=scale.flat_percentage,
        )
        return sales_total.percentage(percentage)

    def _load(self, scale_id: UUID) -> CommissionScale:
        scale = self.session.get(CommissionScale, scale_id)
        if scale is None:
            raise CommissionScaleNotFoundError(scale_id)
        return scale

    def _active_model(self, kind: ScaleKind) -> CommissionScale:
        scale = self.session.execute(
            select(CommissionScale).where(
                CommissionScale.kind == kind.value,
                CommissionScale.is_active.is_(True),
            )
        ).scalar_one_or_none()
        if scale is not None:
            return scale
        scale = self.session.execute(
            select(CommissionScale)
            .where(
                CommissionScale.kind == kind.value,
                CommissionScale.is_default.is_(True),
            )
            .order_by(CommissionScale.created_at)
            .limit(1)
        ).scalar_one_or_none()
        if scale is None:
            raise NoActiveScaleError(kind.value)
        return scale

    @staticmethod
    def _check_flat_percentage(
        name: str, kind: ScaleKind, flat_percentage: Percentage | None
    ) -> None:
        if flat_percentage is None:
            return
        if kind != ScaleKind.PERFORMANCE:
            raise InvalidScaleDefinitionError(
                name, ["only PERFORMANCE scales carry a flat percentage"]
            )
        if flat_percentage.basis_points > 10_000:
            raise InvalidScaleDefinitionError(name, ["flat percentage must be within 0 and 100"])
