"""
ConsolidationService -- closes a calendar month into a frozen snapshot.

Responsibility:
    Aggregates the period's finance records and ledger movements, freezes
    them in a ``ConsolidatedPeriod`` and moves the period's net movement into
    the bank's consolidated capital.

Flow (consolidate)::

    lock bank row (read version)
        |
        v
    period already CONSOLIDADO/CERRADO? -----------> AlreadyConsolidatedError
    no ModelFinance for the period? ---------------> NothingToConsolidateError
        |
        v
    upsert ConsolidatedPeriod (CONSOLIDADO, totals, finance_ids, top 10)
    stamp ModelFinance.consolidated_period_id
    flip EN_MOVIMIENTO transactions -> CONSOLIDADO
    UPDATE bank SET consolidated += net, movement -= net, version += 1
        WHERE version = :read_version --------------> ConcurrentConsolidationConflictError

Transfer amount:
    ``net`` is the signed sum of this period's unconsolidated transactions,
    not the whole movement balance.  Movement is therefore not reset to
    zero when other periods still have transactions in flight; their
    amounts stay in movement until their own consolidation.  With a single
    period in flight the two are equal and movement ends at zero.

Every step runs in the caller's transaction (``session_scope``): a failure
at any point rolls all of them back together.

Lifecycle: ABIERTO -> EN_REVISION -> CONSOLIDADO -> CERRADO, no reopening.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from agency_finance.domain.clock import Clock
from agency_finance.domain.dtos import ConsolidatedPeriodInfo, ConsolidationResult
from agency_finance.domain.money import round_half_even_div
from agency_finance.domain.periods import PeriodKey
from agency_finance.exceptions import (
    AlreadyConsolidatedError,
    ConsolidatedPeriodNotFoundError,
    InvalidPeriodTransitionError,
    NothingToConsolidateError,
)
from agency_finance.logging_config import LogContext, get_logger
from agency_finance.models.consolidated_period import ConsolidatedPeriod, PeriodStatus
from agency_finance.models.model_finance import ModelFinance
from agency_finance.services.base import BaseService
from agency_finance.services.ledger_service import LedgerService

logger = get_logger("services.consolidation")

TOP_MODELS_LIMIT = 10


class ConsolidationService(BaseService[ConsolidatedPeriod]):
    """Period consolidation orchestrator."""

    def __init__(
        self,
        session,
        clock: Clock | None = None,
        *,
        ledger_service: LedgerService | None = None,
    ):
        super().__init__(session, clock)
        self.ledger = ledger_service or LedgerService(session, self.clock)
        self.bank = self.ledger.bank

    def consolidate(
        self,
        month: int,
        year: int,
        actor_id: UUID,
        notes: str | None = None,
    ) -> ConsolidationResult:
        """
        Consolidate one period.

        Raises:
            AlreadyConsolidatedError: period is CONSOLIDADO or CERRADO.
            NothingToConsolidateError: no finance records for the period.
            ConcurrentConsolidationConflictError: the bank changed under us.
        """
        key = PeriodKey.of(month, year)
        with LogContext.bind(period=key.code, actor_id=str(actor_id), operation="consolidate"):
            return self._consolidate(key, actor_id, notes)

    def _consolidate(
        self, key: PeriodKey, actor_id: UUID, notes: str | None
    ) -> ConsolidationResult:
        bank = self.bank.lock()
        bank_before = bank.to_dto()
        expected_version = bank.version

        snapshot = self._find(key)
        if snapshot is not None and snapshot.is_frozen:
            raise AlreadyConsolidatedError(key.code)

        finances = self.session.execute(
            select(ModelFinance)
            .where(
                ModelFinance.period == key.code,
                ModelFinance.consolidated_period_id.is_(None),
            )
            .order_by(ModelFinance.agency_profit_usd.desc(), ModelFinance.model_id)
        ).scalars().all()
        if not finances:
            raise NothingToConsolidateError(key.code)

        logger.info(
            "consolidation_started",
            extra={"finance_records": len(finances), "bank_version": expected_version},
        )

        now = self.clock.now()
        summary = self.ledger.summarize_period(key)
        net = self.ledger.movement_balance(key)

        total_net_sales = sum(f.net_sales_usd for f in finances)
        model_count = len({f.model_id for f in finances})
        sales_count = sum(f.sales_count for f in finances)

        if snapshot is None:
            snapshot = ConsolidatedPeriod(
                period=key.code,
                month=key.month,
                year=key.year,
                created_by_id=actor_id,
            )
            self.session.add(snapshot)
        else:
            snapshot.updated_by_id = actor_id

        snapshot.total_net_sales_usd = total_net_sales
        snapshot.total_agency_commission_usd = sum(f.agency_commission_usd for f in finances)
        snapshot.total_bank_fee_usd = sum(f.bank_fee_usd for f in finances)
        snapshot.total_model_earnings_usd = sum(f.model_earnings_usd for f in finances)
        snapshot.total_agency_profit_usd = sum(f.agency_profit_usd for f in finances)
        snapshot.model_count = model_count
        snapshot.sales_count = sales_count
        snapshot.average_sales_per_model_usd = round_half_even_div(total_net_sales, model_count)
        snapshot.average_bank_percentage_bp = round_half_even_div(
            sum(f.bank_percentage_bp for f in finances), len(finances)
        )
        snapshot.ledger_income_usd = summary.income.scaled
        snapshot.ledger_expense_usd = summary.expense.scaled
        snapshot.transferred_usd = net.scaled
        snapshot.status = PeriodStatus.CONSOLIDADO.value
        snapshot.consolidated_at = now
        snapshot.consolidated_by_id = actor_id
        snapshot.closing_notes = notes
        snapshot.finance_ids = [str(f.id) for f in finances]
        snapshot.meta = {
            "top_models": [
                {
                    "model_id": str(f.model_id),
                    "finance_id": str(f.id),
                    "net_sales": f.net_sales_usd,
                    "agency_profit": f.agency_profit_usd,
                }
                for f in finances[:TOP_MODELS_LIMIT]
            ],
        }
        try:
            self.session.flush()
        except IntegrityError as exc:
            logger.warning("consolidation_duplicate_period", extra={"period": key.code})
            raise AlreadyConsolidatedError(key.code) from exc

        for finance in finances:
            finance.consolidated_period_id = snapshot.id
            finance.updated_by_id = actor_id
        self.session.flush()

        flipped = self.ledger.mark_period_consolidated(key, actor_id, now)

        self.bank.transfer_to_consolidated(
            net.scaled,
            expected_version=expected_version,
            period_code=key.code,
            next_period_code=key.next().code,
            model_count=model_count,
            sales_count=sales_count,
            consolidated_at=now,
        )
        bank_after = self.bank.get_state()

        logger.info(
            "period_consolidated",
            extra={
                "period": key.code,
                "transferred": str(net.amount),
                "transactions_consolidated": flipped,
                "finance_records": len(finances),
                "consolidated_before": str(bank_before.consolidated.amount),
                "consolidated_after": str(bank_after.consolidated.amount),
            },
        )
        return ConsolidationResult(
            period=snapshot.to_dto(),
            bank_before=bank_before,
            bank_after=bank_after,
            transactions_consolidated=flipped,
            finance_records_stamped=len(finances),
        )

    def begin_review(self, month: int, year: int, actor_id: UUID) -> ConsolidatedPeriodInfo:
        """Advisory ABIERTO -> EN_REVISION; creates the period row if needed."""
        key = PeriodKey.of(month, year)
        snapshot = self._find(key)
        if snapshot is None:
            snapshot = ConsolidatedPeriod(
                period=key.code,
                month=key.month,
                year=key.year,
                status=PeriodStatus.EN_REVISION.value,
                created_by_id=actor_id,
            )
            self.session.add(snapshot)
        elif snapshot.status == PeriodStatus.ABIERTO:
            snapshot.status = PeriodStatus.EN_REVISION.value
            snapshot.updated_by_id = actor_id
        elif snapshot.status != PeriodStatus.EN_REVISION:
            raise InvalidPeriodTransitionError(
                key.code, snapshot.status, PeriodStatus.EN_REVISION.value
            )
        try:
            self.session.flush()
        except IntegrityError as exc:
            logger.warning("period_review_conflict", extra={"period": key.code})
            raise InvalidPeriodTransitionError(
                key.code, PeriodStatus.ABIERTO.value, PeriodStatus.EN_REVISION.value
            ) from exc
        logger.info("period_review_started", extra={"period": key.code})
        return snapshot.to_dto()

    def close_period(
        self,
        month: int,
        year: int,
        actor_id: UUID,
        notes: str | None = None,
    ) -> ConsolidatedPeriodInfo:
        """Archive a consolidated period (CONSOLIDADO -> CERRADO)."""
        key = PeriodKey.of(month, year)
        snapshot = self._find(key)
        if snapshot is None:
            raise ConsolidatedPeriodNotFoundError(key.code)
        if snapshot.status != PeriodStatus.CONSOLIDADO:
            raise InvalidPeriodTransitionError(
                key.code, snapshot.status, PeriodStatus.CERRADO.value
            )
        snapshot.status = PeriodStatus.CERRADO.value
        snapshot.closed_at = self.clock.now()
        snapshot.closed_by_id = actor_id
        if notes is not None:
            snapshot.closing_notes = notes
        snapshot.updated_by_id = actor_id
        self.session.flush()
        logger.info("period_closed", extra={"period": key.code, "actor_id": str(actor_id)})
        return snapshot.to_dto()

    def get_period(self, month: int, year: int) -> ConsolidatedPeriodInfo:
        key = PeriodKey.of(month, year)
        snapshot = self._find(key)
        if snapshot is None:
            raise ConsolidatedPeriodNotFoundError(key.code)
        return snapshot.to_dto()

    def _find(self, key: PeriodKey) -> ConsolidatedPeriod | None:
        return self.session.execute(
            select(ConsolidatedPeriod)
            .where(ConsolidatedPeriod.period == key.code)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
