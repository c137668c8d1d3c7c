"""
Per-model finance formula chain.

The order is a fixed business rule: the bank processing fee is levied on the
agency's cut only, never on the model's earnings::

    agency_commission = net_sales * agency_pct          (rounded half-even)
    model_earnings    = net_sales - agency_commission
    bank_fee          = agency_commission * bank_pct    (rounded half-even)
    agency_profit     = agency_commission - bank_fee

Only the two percentage steps round; the subtractions are exact, so
``net_sales == agency_commission + model_earnings`` and
``agency_commission == bank_fee + agency_profit`` hold for every input.
"""

from __future__ import annotations

from dataclasses import dataclass

from agency_finance.domain.money import Money, Percentage
from agency_finance.exceptions import InvalidAmountError


@dataclass(frozen=True, slots=True)
class FinanceBreakdown:
    net_sales: Money
    agency_percentage: Percentage
    bank_percentage: Percentage
    agency_commission: Money
    model_earnings: Money
    bank_fee: Money
    agency_profit: Money


def calculate_breakdown(
    net_sales: Money,
    agency_percentage: Percentage,
    bank_percentage: Percentage,
) -> FinanceBreakdown:
    if net_sales.is_negative:
        raise InvalidAmountError(
            net_sales.amount, "net sales cannot be negative; refunds are netted upstream"
        )
    agency_commission = net_sales.percentage(agency_percentage)
    bank_fee = agency_commission.percentage(bank_percentage)
    return FinanceBreakdown(
        net_sales=net_sales,
        agency_percentage=agency_percentage,
        bank_percentage=bank_percentage,
        agency_commission=agency_commission,
        model_earnings=net_sales - agency_commission,
        bank_fee=bank_fee,
        agency_profit=agency_commission - bank_fee,
    )
