"""
ModelFinanceService -- persisted per-model finance figures.

Responsibility:
    Runs the formula chain of ``domain/finance_calculator.py`` for one model
    and period, upserts the ``ModelFinance`` row and keeps the ledger in step:
    the agency profit of the record is booked as an INGRESO GANANCIA_MODELO
    transaction, and a recalculation reverses the previous booking first.

Invariants enforced:
    - One row per (model_id, month, year); recalculation overwrites it.
    - A consolidated record (``consolidated_period_id`` set) is never
      recalculated; the monetary columns are frozen.
    - At most one live GANANCIA_MODELO transaction references a record.
    - Status only moves forward along ``VALID_STATUS_TRANSITIONS``.

Failure modes:
    - InvalidAmountError, InvalidPercentageError for bad inputs.
    - AlreadyConsolidatedError for consolidated records or periods.
    - ModelFinanceNotFoundError, InvalidFinanceStatusTransitionError.
"""

from dataclasses import dataclass
from typing import Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from agency_finance.domain.clock import Clock
from agency_finance.domain.dtos import BatchItemError, BatchResult, ModelFinanceInfo
from agency_finance.domain.finance_calculator import calculate_breakdown
from agency_finance.domain.money import BASIS_POINTS_PER_UNIT, Money, Percentage
from agency_finance.domain.periods import PeriodKey
from agency_finance.domain.values import ReferenceKind, TransactionReference, clean_meta
from agency_finance.exceptions import (
    AgencyFinanceError,
    AlreadyConsolidatedError,
    InvalidFinanceStatusTransitionError,
    InvalidPercentageError,
    ModelFinanceError,
    ModelFinanceNotFoundError,
)
from agency_finance.logging_config import get_logger
from agency_finance.models.consolidated_period import FROZEN_STATUSES, ConsolidatedPeriod
from agency_finance.models.ledger_transaction import (
    LedgerTransaction,
    TransactionOrigin,
    TransactionStatus,
    TransactionType,
)
from agency_finance.models.model_finance import FinanceStatus, ModelFinance
from agency_finance.services.base import BaseService
from agency_finance.services.commission_scale_service import CommissionScaleService
from agency_finance.services.ledger_service import LedgerService

logger = get_logger("services.model_finance")

DEFAULT_BANK_PERCENTAGE = Percentage.of(2)
RECALCULATION_REASON = "recalculation"


@dataclass(frozen=True)
class FinanceInput:
    """One model's figures for a batch recalculation."""

    model_id: UUID
    net_sales: Money
    sales_count: int = 0
    agency_percentage: Percentage | None = None
    bank_percentage: Percentage | None = None
    contract_id: UUID | None = None


class ModelFinanceService(BaseService[ModelFinance]):
    """Calculates and stores per-model finance records."""

    def __init__(
        self,
        session,
        clock: Clock | None = None,
        *,
        ledger_service: LedgerService | None = None,
        scale_service: CommissionScaleService | None = None,
        default_bank_percentage: Percentage = DEFAULT_BANK_PERCENTAGE,
    ):
        super().__init__(session, clock)
        self.ledger = ledger_service or LedgerService(session, self.clock)
        self.scales = scale_service or CommissionScaleService(session, self.clock)
        self.default_bank_percentage = default_bank_percentage

    def calculate(
        self,
        model_id: UUID,
        month: int,
        year: int,
        net_sales: Money,
        actor_id: UUID,
        *,
        agency_percentage: Percentage | None = None,
        bank_percentage: Percentage | None = None,
        sales_count: int = 0,
        contract_id: UUID | None = None,
        notes: str | None = None,
        meta: dict | None = None,
    ) -> ModelFinanceInfo:
        """
        Calculate and upsert the finance record of one model for one period.

        ``agency_percentage`` defaults to the active SALES_TIER scale applied
        to ``net_sales``; ``bank_percentage`` to the configured default.
        """
        key = PeriodKey.of(month, year)
        if agency_percentage is None:
            agency_percentage = self.scales.resolve_agency_percentage(net_sales)
        if bank_percentage is None:
            bank_percentage = self.default_bank_percentage
        for pct in (agency_percentage, bank_percentage):
            if pct.basis_points > BASIS_POINTS_PER_UNIT:
                raise InvalidPercentageError(pct.percent, "percentage cannot exceed 100")
        if sales_count < 0:
            raise ModelFinanceError("sales_count cannot be negative")

        breakdown = calculate_breakdown(net_sales, agency_percentage, bank_percentage)

        # Same lock as the ledger: consolidation cannot interleave
        self.ledger.bank.lock()
        self._ensure_period_open(key)

        now = self.clock.now()
        finance = self._find(model_id, key)
        if finance is not None:
            if finance.is_consolidated:
                raise AlreadyConsolidatedError(
                    key.code, f"finance record {finance.id} is frozen"
                )
            if finance.status == FinanceStatus.PAGADO:
                raise InvalidFinanceStatusTransitionError(
                    finance.id, FinanceStatus.PAGADO.value, FinanceStatus.CALCULADO.value
                )
            self._reverse_previous_booking(finance, actor_id)
            finance.updated_by_id = actor_id
        else:
            finance = ModelFinance(
                model_id=model_id,
                month=key.month,
                year=key.year,
                period=key.code,
                created_by_id=actor_id,
            )
            self.session.add(finance)

        finance.net_sales_usd = breakdown.net_sales.scaled
        finance.agency_percentage_bp = agency_percentage.basis_points
        finance.agency_commission_usd = breakdown.agency_commission.scaled
        finance.bank_percentage_bp = bank_percentage.basis_points
        finance.bank_fee_usd = breakdown.bank_fee.scaled
        finance.model_earnings_usd = breakdown.model_earnings.scaled
        finance.agency_profit_usd = breakdown.agency_profit.scaled
        finance.sales_count = sales_count
        finance.contract_id = contract_id
        finance.status = FinanceStatus.CALCULADO.value
        finance.calculated_at = now
        finance.calculated_by_id = actor_id
        if notes is not None:
            finance.internal_notes = notes
        if meta is not None:
            finance.meta = clean_meta(meta)
        elif finance.meta is None:
            finance.meta = {}

        try:
            self.session.flush()
        except IntegrityError as exc:
            logger.warning(
                "model_finance_conflict",
                extra={"model_id": str(model_id), "period": key.code},
            )
            raise ModelFinanceError(
                f"Finance record for model {model_id} in {key.code} was created concurrently"
            ) from exc

        if breakdown.agency_profit.is_positive:
            self.ledger.record(
                TransactionType.INGRESO,
                TransactionOrigin.GANANCIA_MODELO,
                breakdown.agency_profit,
                key,
                TransactionReference.model_finance(finance.id),
                f"Agency profit {key.code}",
                actor_id,
                model_id=model_id,
                meta={
                    "finance_id": finance.id,
                    "net_sales": breakdown.net_sales.scaled,
                    "agency_percentage_bp": agency_percentage.basis_points,
                },
            )

        logger.info(
            "model_finance_calculated",
            extra={
                "finance_id": str(finance.id),
                "model_id": str(model_id),
                "period": key.code,
                "net_sales": str(breakdown.net_sales.amount),
                "agency_profit": str(breakdown.agency_profit.amount),
            },
        )
        return finance.to_dto()

    def recalculate_period(
        self,
        month: int,
        year: int,
        items: Sequence[FinanceInput],
        actor_id: UUID,
    ) -> BatchResult:
        """
        Calculate many models of one period.

        Each item runs in its own SAVEPOINT: a failing item rolls back only
        its own writes and is reported in ``errors``.
        """
        key = PeriodKey.of(month, year)
        results: list[ModelFinanceInfo] = []
        errors: list[BatchItemError] = []

        for item in items:
            savepoint = self.session.begin_nested()
            try:
                info = self.calculate(
                    item.model_id,
                    key.month,
                    key.year,
                    item.net_sales,
                    actor_id,
                    agency_percentage=item.agency_percentage,
                    bank_percentage=item.bank_percentage,
                    sales_count=item.sales_count,
                    contract_id=item.contract_id,
                )
            except AgencyFinanceError as exc:
                savepoint.rollback()
                errors.append(
                    BatchItemError(model_id=item.model_id, error_code=exc.code, message=str(exc))
                )
                logger.warning(
                    "model_finance_batch_item_failed",
                    extra={
                        "model_id": str(item.model_id),
                        "period": key.code,
                        "error_code": exc.code,
                    },
                )
            else:
                savepoint.commit()
                results.append(info)

        logger.info(
            "model_finance_batch_completed",
            extra={
                "period": key.code,
                "processed": len(items),
                "succeeded": len(results),
                "failed": len(errors),
            },
        )
        return BatchResult(
            processed=len(items),
            succeeded=len(results),
            errors=tuple(errors),
            results=tuple(results),
        )

    def update_bank_percentage_for_period(
        self, month: int, year: int, bank_percentage: Percentage, actor_id: UUID
    ) -> BatchResult:
        """Recompute bank fee and agency profit of every open record of a period."""
        key = PeriodKey.of(month, year)
        records = self.session.execute(
            select(ModelFinance)
            .where(
                ModelFinance.period == key.code,
                ModelFinance.consolidated_period_id.is_(None),
            )
            .order_by(ModelFinance.model_id)
        ).scalars().all()
        items = [
            FinanceInput(
                model_id=record.model_id,
                net_sales=Money(record.net_sales_usd),
                sales_count=record.sales_count,
                agency_percentage=Percentage(record.agency_percentage_bp),
                bank_percentage=bank_percentage,
                contract_id=record.contract_id,
            )
            for record in records
        ]
        return self.recalculate_period(key.month, key.year, items, actor_id)

    def update_status(
        self,
        finance_id: UUID,
        status: FinanceStatus | str,
        actor_id: UUID,
        *,
        notes: str | None = None,
    ) -> ModelFinanceInfo:
        target = FinanceStatus(status)
        finance = self._load(finance_id)
        if not finance.can_transition_to(target):
            raise InvalidFinanceStatusTransitionError(
                finance.id, FinanceStatus(finance.status).value, target.value
            )
        previous = finance.status
        finance.status = target.value
        finance.updated_by_id = actor_id
        if notes is not None:
            finance.internal_notes = notes
        self.session.flush()
        logger.info(
            "model_finance_status_changed",
            extra={
                "finance_id": str(finance.id),
                "from_status": previous,
                "to_status": target.value,
            },
        )
        return finance.to_dto()

    def get(self, finance_id: UUID) -> ModelFinanceInfo:
        return self._load(finance_id).to_dto()

    def get_for_model(self, model_id: UUID, month: int, year: int) -> ModelFinanceInfo:
        finance = self._find(model_id, PeriodKey.of(month, year))
        if finance is None:
            raise ModelFinanceNotFoundError(f"{model_id}@{year:04d}-{month:02d}")
        return finance.to_dto()

    def list_period(self, month: int, year: int) -> list[ModelFinanceInfo]:
        key = PeriodKey.of(month, year)
        rows = self.session.execute(
            select(ModelFinance)
            .where(ModelFinance.period == key.code)
            .order_by(ModelFinance.agency_profit_usd.desc(), ModelFinance.model_id)
        ).scalars()
        return [row.to_dto() for row in rows]

    def _load(self, finance_id: UUID) -> ModelFinance:
        finance = self.session.get(ModelFinance, finance_id)
        if finance is None:
            raise ModelFinanceNotFoundError(finance_id)
        return finance

    def _find(self, model_id: UUID, key: PeriodKey) -> ModelFinance | None:
        return self.session.execute(
            select(ModelFinance)
            .where(
                ModelFinance.model_id == model_id,
                ModelFinance.month == key.month,
                ModelFinance.year == key.year,
            )
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _ensure_period_open(self, key: PeriodKey) -> None:
        status = self.session.execute(
            select(ConsolidatedPeriod.status).where(ConsolidatedPeriod.period == key.code)
        ).scalar_one_or_none()
        if status is not None and status in {s.value for s in FROZEN_STATUSES}:
            raise AlreadyConsolidatedError(key.code)

    def _reverse_previous_booking(self, finance: ModelFinance, actor_id: UUID) -> None:
        live = self.session.execute(
            select(LedgerTransaction.id).where(
                LedgerTransaction.reference_kind == ReferenceKind.MODEL_FINANCE.value,
                LedgerTransaction.reference_id == finance.id,
                LedgerTransaction.origin == TransactionOrigin.GANANCIA_MODELO.value,
                LedgerTransaction.status == TransactionStatus.EN_MOVIMIENTO.value,
                LedgerTransaction.reversal_of_id.is_(None),
            )
        ).scalars().all()
        for transaction_id in live:
            self.ledger.reverse(transaction_id, RECALCULATION_REASON, actor_id)
