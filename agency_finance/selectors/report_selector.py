"""
Module: agency_finance.selectors.report_selector
Responsibility: Read-side reports built on the ledger summaries and the
    consolidated snapshots: consolidated period history, cash flow of a
    period, multi-period comparison and per-period finance statistics.

All figures are scaled integers; averages and ratios round half-even like
every other computation of the core.
"""

from sqlalchemy import func, select

from agency_finance.domain.dtos import (
    CashFlowLine,
    CashFlowReport,
    ComparisonRow,
    ConsolidatedPeriodInfo,
    FinanceStatistics,
    PeriodComparison,
)
from agency_finance.domain.money import BASIS_POINTS_PER_UNIT, Money, round_half_even_div
from agency_finance.domain.periods import PeriodKey
from agency_finance.exceptions import ValidationError
from agency_finance.models.consolidated_period import ConsolidatedPeriod
from agency_finance.models.ledger_transaction import TransactionStatus, TransactionType
from agency_finance.models.model_finance import ModelFinance
from agency_finance.selectors.base import BaseSelector
from agency_finance.selectors.ledger_selector import LedgerSelector

TREND_GROWING = "CRECIENTE"
TREND_STABLE = "ESTABLE"
TREND_DECLINING = "DECRECIENTE"

# Mean net of the last periods vs. the first ones, in percent
_GROWTH_THRESHOLD = 110
_DECLINE_THRESHOLD = 90
_TREND_WINDOW = 3


class ReportSelector(BaseSelector[ConsolidatedPeriod]):
    """Financial reports for the admin dashboard."""

    def __init__(self, session):
        super().__init__(session)
        self._ledger = LedgerSelector(session)

    def list_consolidated_periods(self, limit: int | None = None) -> list[ConsolidatedPeriodInfo]:
        """Snapshots, newest period first."""
        stmt = select(ConsolidatedPeriod).order_by(
            ConsolidatedPeriod.year.desc(), ConsolidatedPeriod.month.desc()
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        return [row.to_dto() for row in self.session.execute(stmt).scalars()]

    def cash_flow(self, month: int, year: int) -> CashFlowReport:
        summary = self._ledger.summarize_period(PeriodKey.of(month, year))

        def lines(txn_type: TransactionType) -> tuple[CashFlowLine, ...]:
            return tuple(
                CashFlowLine(origin=b.origin, count=b.count, total=b.total)
                for b in summary.breakdown
                if b.transaction_type == txn_type.value
            )

        if summary.income.is_positive:
            relative = round_half_even_div(
                summary.net.scaled * BASIS_POINTS_PER_UNIT, summary.income.scaled
            )
        else:
            relative = 0

        return CashFlowReport(
            period=summary.period,
            income_lines=lines(TransactionType.INGRESO),
            expense_lines=lines(TransactionType.EGRESO),
            total_income=summary.income,
            total_expense=summary.expense,
            final_balance=summary.net,
            absolute_change=summary.net,
            relative_change_bp=relative,
            consolidated=summary.status == TransactionStatus.CONSOLIDADO.value,
            consolidated_at=summary.consolidated_at,
        )

    def compare_periods(self, periods: list[str]) -> PeriodComparison:
        """
        Compare periods given as "YYYY-MM" codes, in the caller's order.

        The trend compares the mean net of the first three periods with that
        of the last three: above 110% is CRECIENTE, below 90% DECRECIENTE.
        """
        if not periods:
            raise ValidationError("At least one period is required for a comparison")

        rows = []
        for code in periods:
            summary = self._ledger.summarize_period(PeriodKey.coerce(code))
            rows.append(
                ComparisonRow(
                    period=summary.period,
                    income=summary.income,
                    expense=summary.expense,
                    net=summary.net,
                    consolidated=summary.status == TransactionStatus.CONSOLIDADO.value,
                )
            )

        count = len(rows)
        by_net = sorted(rows, key=lambda r: r.net.scaled, reverse=True)
        return PeriodComparison(
            rows=tuple(rows),
            average_income=Money(round_half_even_div(sum(r.income.scaled for r in rows), count)),
            average_expense=Money(round_half_even_div(sum(r.expense.scaled for r in rows), count)),
            average_net=Money(round_half_even_div(sum(r.net.scaled for r in rows), count)),
            best_period=by_net[0].period,
            worst_period=by_net[-1].period,
            trend=_trend([r.net.scaled for r in rows]),
        )

    def finance_statistics(self, month: int, year: int, top: int = 10) -> FinanceStatistics:
        key = PeriodKey.of(month, year)
        model_count, total_net_sales, total_profit = self.session.execute(
            select(
                func.count(func.distinct(ModelFinance.model_id)),
                func.coalesce(func.sum(ModelFinance.net_sales_usd), 0),
                func.coalesce(func.sum(ModelFinance.agency_profit_usd), 0),
            ).where(ModelFinance.period == key.code)
        ).one()
        total_net_sales = int(total_net_sales)

        top_rows = self.session.execute(
            select(ModelFinance)
            .where(ModelFinance.period == key.code)
            .order_by(ModelFinance.agency_profit_usd.desc(), ModelFinance.model_id)
            .limit(top)
        ).scalars()

        return FinanceStatistics(
            period=key.code,
            model_count=model_count,
            total_net_sales=Money(total_net_sales),
            total_agency_profit=Money(int(total_profit)),
            average_net_sales_per_model=Money(
                round_half_even_div(total_net_sales, model_count) if model_count else 0
            ),
            top_models=tuple(row.to_dto() for row in top_rows),
        )


def _trend(nets: list[int]) -> str:
    if len(nets) < 2:
        return TREND_STABLE
    window = min(_TREND_WINDOW, len(nets))
    first = sum(nets[:window])
    last = sum(nets[-window:])
    # Both windows have the same length, so the means compare like the sums
    if last * 100 > first * _GROWTH_THRESHOLD:
        return TREND_GROWING
    if last * 100 < first * _DECLINE_THRESHOLD:
        return TREND_DECLINING
    return TREND_STABLE
