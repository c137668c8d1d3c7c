"""
Module: agency_finance.selectors.ledger_selector
Responsibility: Read-only ledger queries: paginated transaction search,
    period summaries and the movement balance derived from the ledger.

Invariants enforced:
    - A reversal pair (the REVERTIDO original and its compensating entry)
      cancels out, so both are left out of the economic totals of a summary.
    - The movement balance of a period is the signed sum of its transactions
      that carry no consolidation stamp.  Reversed originals and their
      compensations are both included and net to zero.
"""

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from sqlalchemy import Select, case, func, select

from agency_finance.domain.dtos import (
    OriginBreakdown,
    PeriodSummary,
    TransactionInfo,
    TransactionPage,
)
from agency_finance.domain.money import Money
from agency_finance.domain.periods import PeriodKey
from agency_finance.domain.values import TransactionReference
from agency_finance.exceptions import TransactionNotFoundError, ValidationError
from agency_finance.models.consolidated_period import FROZEN_STATUSES, ConsolidatedPeriod
from agency_finance.models.ledger_transaction import (
    LedgerTransaction,
    TransactionOrigin,
    TransactionStatus,
    TransactionType,
)
from agency_finance.selectors.base import BaseSelector

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 500


@dataclass(frozen=True)
class TransactionFilter:
    """Optional criteria for ``LedgerSelector.query``. ``None`` means any."""

    period: str | None = None
    month: int | None = None
    year: int | None = None
    transaction_type: TransactionType | None = None
    origin: TransactionOrigin | None = None
    status: TransactionStatus | None = None
    model_id: UUID | None = None
    reference: TransactionReference | None = None
    recorded_from: datetime | None = None
    recorded_to: datetime | None = None


def _signed_amount():
    return case(
        (
            LedgerTransaction.transaction_type == TransactionType.INGRESO.value,
            LedgerTransaction.amount_usd,
        ),
        else_=-LedgerTransaction.amount_usd,
    )


class LedgerSelector(BaseSelector[LedgerTransaction]):
    """Read-side queries over ledger transactions."""

    def __init__(self, session, default_page_size: int = DEFAULT_PAGE_SIZE):
        super().__init__(session)
        self.default_page_size = default_page_size

    def get(self, transaction_id: UUID) -> TransactionInfo:
        txn = self.session.get(LedgerTransaction, transaction_id)
        if txn is None:
            raise TransactionNotFoundError(transaction_id)
        return txn.to_dto()

    def query(
        self,
        filters: TransactionFilter | None = None,
        *,
        page: int = 1,
        page_size: int | None = None,
    ) -> TransactionPage:
        """Filtered transactions, newest first."""
        if page_size is None:
            page_size = self.default_page_size
        if page < 1:
            raise ValidationError("page must be 1 or greater")
        if not 1 <= page_size <= MAX_PAGE_SIZE:
            raise ValidationError(f"page_size must be between 1 and {MAX_PAGE_SIZE}")

        stmt = self._apply_filters(select(LedgerTransaction), filters or TransactionFilter())
        total = self.session.execute(
            select(func.count()).select_from(stmt.subquery())
        ).scalar_one()

        rows = self.session.execute(
            stmt.order_by(
                LedgerTransaction.recorded_at.desc(),
                LedgerTransaction.created_at.desc(),
            )
            .limit(page_size)
            .offset((page - 1) * page_size)
        ).scalars().all()

        total_pages = (total + page_size - 1) // page_size
        return TransactionPage(
            items=tuple(row.to_dto() for row in rows),
            total=total,
            page=page,
            page_size=page_size,
            total_pages=total_pages,
        )

    def _apply_filters(self, stmt: Select, f: TransactionFilter) -> Select:
        if f.period is not None:
            stmt = stmt.where(LedgerTransaction.period == PeriodKey.coerce(f.period).code)
        if f.month is not None:
            stmt = stmt.where(LedgerTransaction.month == f.month)
        if f.year is not None:
            stmt = stmt.where(LedgerTransaction.year == f.year)
        if f.transaction_type is not None:
            stmt = stmt.where(
                LedgerTransaction.transaction_type == TransactionType(f.transaction_type).value
            )
        if f.origin is not None:
            stmt = stmt.where(LedgerTransaction.origin == TransactionOrigin(f.origin).value)
        if f.status is not None:
            stmt = stmt.where(LedgerTransaction.status == TransactionStatus(f.status).value)
        if f.model_id is not None:
            stmt = stmt.where(LedgerTransaction.model_id == f.model_id)
        if f.reference is not None:
            stmt = stmt.where(
                LedgerTransaction.reference_kind == f.reference.kind.value,
                LedgerTransaction.reference_id == f.reference.id,
            )
        if f.recorded_from is not None:
            stmt = stmt.where(LedgerTransaction.recorded_at >= f.recorded_from)
        if f.recorded_to is not None:
            stmt = stmt.where(LedgerTransaction.recorded_at <= f.recorded_to)
        return stmt

    def movement_balance(self, period: PeriodKey | str | None = None) -> Money:
        """
        Signed sum of unconsolidated transactions.

        With ``period`` the sum is restricted to that period, which is the
        amount consolidation transfers; without it the result is what the
        bank's ``movement_usd`` must equal.
        """
        stmt = select(func.coalesce(func.sum(_signed_amount()), 0)).where(
            LedgerTransaction.consolidated_period_code.is_(None)
        )
        if period is not None:
            stmt = stmt.where(LedgerTransaction.period == PeriodKey.coerce(period).code)
        return Money(int(self.session.execute(stmt).scalar_one()))

    def unconsolidated_count(self) -> int:
        return self.session.execute(
            select(func.count(LedgerTransaction.id)).where(
                LedgerTransaction.consolidated_period_code.is_(None)
            )
        ).scalar_one()

    def summarize_period(self, period: PeriodKey | str) -> PeriodSummary:
        """Economic totals of a period with reversal pairs excluded."""
        key = PeriodKey.coerce(period)

        live = (
            LedgerTransaction.period == key.code,
            LedgerTransaction.status != TransactionStatus.REVERTIDO.value,
            LedgerTransaction.reversal_of_id.is_(None),
        )
        grouped = self.session.execute(
            select(
                LedgerTransaction.origin,
                LedgerTransaction.transaction_type,
                func.count(LedgerTransaction.id),
                func.coalesce(func.sum(LedgerTransaction.amount_usd), 0),
            )
            .where(*live)
            .group_by(LedgerTransaction.origin, LedgerTransaction.transaction_type)
            .order_by(LedgerTransaction.origin, LedgerTransaction.transaction_type)
        ).all()

        income = expense = 0
        income_count = expense_count = 0
        breakdown = []
        for origin, txn_type, count, total in grouped:
            total = int(total)
            breakdown.append(
                OriginBreakdown(
                    origin=origin,
                    transaction_type=txn_type,
                    count=count,
                    total=Money(total),
                )
            )
            if txn_type == TransactionType.INGRESO.value:
                income += total
                income_count += count
            else:
                expense += total
                expense_count += count

        status_counts = dict(
            self.session.execute(
                select(LedgerTransaction.status, func.count(LedgerTransaction.id))
                .where(*live)
                .group_by(LedgerTransaction.status)
            ).all()
        )
        in_movement = status_counts.get(TransactionStatus.EN_MOVIMIENTO.value, 0)
        consolidated = status_counts.get(TransactionStatus.CONSOLIDADO.value, 0)

        reversed_count = self.session.execute(
            select(func.count(LedgerTransaction.id)).where(
                LedgerTransaction.period == key.code,
                LedgerTransaction.status == TransactionStatus.REVERTIDO.value,
            )
        ).scalar_one()

        snapshot = self.session.execute(
            select(ConsolidatedPeriod.status, ConsolidatedPeriod.consolidated_at).where(
                ConsolidatedPeriod.period == key.code
            )
        ).one_or_none()
        period_status, consolidated_at = snapshot if snapshot is not None else (None, None)

        if period_status in FROZEN_STATUSES:
            status = TransactionStatus.CONSOLIDADO.value
        else:
            status = TransactionStatus.EN_MOVIMIENTO.value

        return PeriodSummary(
            period=key.code,
            income=Money(income),
            expense=Money(expense),
            net=Money(income - expense),
            income_count=income_count,
            expense_count=expense_count,
            breakdown=tuple(breakdown),
            in_movement_count=in_movement,
            consolidated_count=consolidated,
            reversed_count=reversed_count,
            status=status,
            consolidated_at=consolidated_at,
        )
