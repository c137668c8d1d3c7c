"""
Data transfer objects returned by services and selectors.

All DTOs are frozen dataclasses holding ``Money`` / ``Percentage`` values,
never ORM instances, so callers cannot mutate persisted state through them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID

from agency_finance.domain.commission import ScaleKind, ScaleRule
from agency_finance.domain.money import Money, Percentage
from agency_finance.domain.values import Meta, TransactionReference


@dataclass(frozen=True, slots=True)
class BankState:
    consolidated: Money
    movement: Money
    fixed_expense_projection: Money
    current_period: str | None
    last_consolidated_at: datetime | None
    consolidated_period_count: int
    historic_model_count: int
    historic_sales_count: int
    version: int

    @property
    def projected_balance(self) -> Money:
        """Movement after the projected fixed expenses are paid."""
        return self.movement - self.fixed_expense_projection

    @property
    def total(self) -> Money:
        return self.consolidated + self.movement


@dataclass(frozen=True, slots=True)
class TransactionInfo:
    id: UUID
    period: str
    transaction_type: str
    origin: str
    amount: Money
    reference: TransactionReference
    model_id: UUID | None
    description: str
    notes: str | None
    status: str
    recorded_at: datetime
    created_by_id: UUID
    consolidated_at: datetime | None = None
    consolidated_period_code: str | None = None
    reversal_of_id: UUID | None = None
    reversed_by_id: UUID | None = None
    reversed_at: datetime | None = None
    reversal_reason: str | None = None
    meta: Meta = field(default_factory=dict)

    @property
    def signed_amount(self) -> Money:
        return self.amount if self.transaction_type == "INGRESO" else -self.amount


@dataclass(frozen=True, slots=True)
class ReversalResult:
    original: TransactionInfo
    compensation: TransactionInfo


@dataclass(frozen=True, slots=True)
class TransactionPage:
    items: tuple[TransactionInfo, ...]
    total: int
    page: int
    page_size: int
    total_pages: int


@dataclass(frozen=True, slots=True)
class OriginBreakdown:
    origin: str
    transaction_type: str
    count: int
    total: Money


@dataclass(frozen=True, slots=True)
class PeriodSummary:
    period: str
    income: Money
    expense: Money
    net: Money
    income_count: int
    expense_count: int
    breakdown: tuple[OriginBreakdown, ...]
    in_movement_count: int
    consolidated_count: int
    reversed_count: int
    status: str
    consolidated_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class ModelFinanceInfo:
    id: UUID
    model_id: UUID
    period: str
    month: int
    year: int
    net_sales: Money
    agency_percentage: Percentage
    agency_commission: Money
    bank_percentage: Percentage
    bank_fee: Money
    model_earnings: Money
    agency_profit: Money
    sales_count: int
    status: str
    consolidated_period_id: UUID | None
    contract_id: UUID | None
    calculated_at: datetime
    internal_notes: str | None = None
    meta: Meta = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class BatchItemError:
    model_id: UUID
    error_code: str
    message: str


@dataclass(frozen=True, slots=True)
class BatchResult:
    processed: int
    succeeded: int
    errors: tuple[BatchItemError, ...]
    results: tuple[ModelFinanceInfo, ...] = ()


@dataclass(frozen=True, slots=True)
class ConsolidatedPeriodInfo:
    id: UUID
    period: str
    month: int
    year: int
    status: str
    total_net_sales: Money
    total_agency_commission: Money
    total_bank_fee: Money
    total_model_earnings: Money
    total_agency_profit: Money
    model_count: int
    sales_count: int
    average_sales_per_model: Money
    average_bank_percentage: Percentage
    ledger_income: Money
    ledger_expense: Money
    transferred: Money
    consolidated_at: datetime | None
    consolidated_by_id: UUID | None
    closing_notes: str | None
    closed_at: datetime | None
    finance_ids: tuple[UUID, ...]
    meta: Meta = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class ConsolidationResult:
    period: ConsolidatedPeriodInfo
    bank_before: BankState
    bank_after: BankState
    transactions_consolidated: int
    finance_records_stamped: int


@dataclass(frozen=True, slots=True)
class CommissionScaleInfo:
    id: UUID
    name: str
    kind: ScaleKind
    is_active: bool
    is_default: bool
    description: str | None
    rules: tuple[ScaleRule, ...]
    flat_percentage: Percentage | None = None


@dataclass(frozen=True, slots=True)
class CashFlowLine:
    origin: str
    count: int
    total: Money


@dataclass(frozen=True, slots=True)
class CashFlowReport:
    period: str
    income_lines: tuple[CashFlowLine, ...]
    expense_lines: tuple[CashFlowLine, ...]
    total_income: Money
    total_expense: Money
    final_balance: Money
    absolute_change: Money
    # Percent of income, two decimals; zero when there is no income
    relative_change_bp: int
    consolidated: bool
    consolidated_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class ComparisonRow:
    period: str
    income: Money
    expense: Money
    net: Money
    consolidated: bool


@dataclass(frozen=True, slots=True)
class PeriodComparison:
    rows: tuple[ComparisonRow, ...]
    average_income: Money
    average_expense: Money
    average_net: Money
    best_period: str
    worst_period: str
    trend: str


@dataclass(frozen=True, slots=True)
class FinanceStatistics:
    period: str
    model_count: int
    total_net_sales: Money
    total_agency_profit: Money
    average_net_sales_per_model: Money
    top_models: tuple[ModelFinanceInfo, ...]


@dataclass(frozen=True, slots=True)
class ReconciliationReport:
    expected_movement: Money
    actual_movement: Money
    difference: Money
    unconsolidated_transactions: int

    @property
    def balanced(self) -> bool:
        return self.difference.is_zero
