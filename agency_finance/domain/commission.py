"""
Commission scale resolution -- pure functions over ordered tier rules.

Responsibility:
    Validates scale definitions before they are stored and resolves which
    rule applies to a value.  Two kinds of scale share the same rule shape:

    SALES_TIER   bounds are scaled USD amounts (agency commission by sales).
    PERFORMANCE  bounds are goal-completion percentages in basis points
                 (chatter commission by goal achievement).

Invariants enforced:
    - Rules sorted by lower bound are contiguous: ``upper + unit == next.lower``
      where ``unit`` is 1 USD (SALES_TIER) or 1 percentage point
      (PERFORMANCE).
    - The first rule starts at 0; only the last rule may be open-ended.
    - Every percentage is within [0, 100].
    - A closed rule covers ``[lower, upper + unit)``, so values falling
      between two integer bounds (19999.50) resolve to the lower tier.

Failure modes:
    - InvalidScaleDefinitionError lists every violation found.
    - NoApplicableRuleError when nothing covers the value; never defaults
      to 0%.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Iterable, Sequence

from agency_finance.domain.money import (
    BASIS_POINTS_PER_PERCENT,
    BASIS_POINTS_PER_UNIT,
    SCALE_FACTOR,
    Money,
    Percentage,
    to_scaled,
)
from agency_finance.exceptions import (
    InvalidAmountError,
    InvalidScaleDefinitionError,
    NoApplicableRuleError,
)


class ScaleKind(str, Enum):
    SALES_TIER = "SALES_TIER"
    PERFORMANCE = "PERFORMANCE"


CONTIGUITY_UNIT: dict[ScaleKind, int] = {
    ScaleKind.SALES_TIER: SCALE_FACTOR,
    ScaleKind.PERFORMANCE: BASIS_POINTS_PER_PERCENT,
}


@dataclass(frozen=True, slots=True)
class ScaleRule:
    """One tier. ``upper_bound=None`` means open-ended."""

    lower_bound: int
    upper_bound: int | None
    percentage: Percentage

    @property
    def is_open_ended(self) -> bool:
        return self.upper_bound is None

    def covers(self, value: int, unit: int) -> bool:
        if value < self.lower_bound:
            return False
        return self.upper_bound is None or value < self.upper_bound + unit


def sales_rule(
    min_usd: Decimal | str | int,
    max_usd: Decimal | str | int | None,
    percent: Decimal | str | int,
) -> ScaleRule:
    """Build a SALES_TIER rule from USD bounds and a percent value."""
    return ScaleRule(
        lower_bound=to_scaled(min_usd),
        upper_bound=None if max_usd is None else to_scaled(max_usd),
        percentage=Percentage.of(percent),
    )


def performance_rule(
    min_percent: Decimal | str | int,
    max_percent: Decimal | str | int | None,
    percent: Decimal | str | int,
) -> ScaleRule:
    """Build a PERFORMANCE rule from goal-completion bounds and a percent value."""
    return ScaleRule(
        lower_bound=Percentage.of(min_percent, maximum=None).basis_points,
        upper_bound=(
            None if max_percent is None
            else Percentage.of(max_percent, maximum=None).basis_points
        ),
        percentage=Percentage.of(percent),
    )


def sort_rules(rules: Iterable[ScaleRule]) -> list[ScaleRule]:
    return sorted(rules, key=lambda r: r.lower_bound)


def find_violations(rules: Sequence[ScaleRule], kind: ScaleKind) -> list[str]:
    """Return a human-readable list of invariant violations (empty if valid)."""
    if not rules:
        return ["scale must define at least one rule"]

    unit = CONTIGUITY_UNIT[ScaleKind(kind)]
    ordered = sort_rules(rules)
    violations: list[str] = []

    if ordered[0].lower_bound != 0:
        violations.append("first rule must start at 0")

    for index, rule in enumerate(ordered):
        label = f"rule {index + 1}"
        if rule.lower_bound < 0:
            violations.append(f"{label}: lower bound cannot be negative")
        if rule.upper_bound is not None and rule.upper_bound < rule.lower_bound:
            violations.append(f"{label}: upper bound is below lower bound")
        if rule.percentage.basis_points > BASIS_POINTS_PER_UNIT:
            violations.append(f"{label}: percentage must be within 0 and 100")

        if index + 1 == len(ordered):
            break
        following = ordered[index + 1]
        if rule.upper_bound is None:
            violations.append(f"{label}: only the last rule may be open-ended")
            continue
        expected = rule.upper_bound + unit
        if following.lower_bound < expected:
            violations.append(f"{label} overlaps rule {index + 2}")
        elif following.lower_bound > expected:
            violations.append(f"gap between rule {index + 1} and rule {index + 2}")

    return violations


def validate_rules(
    name: str, kind: ScaleKind, rules: Sequence[ScaleRule]
) -> list[ScaleRule]:
    """Validate and return the rules sorted; raise on any violation."""
    violations = find_violations(rules, kind)
    if violations:
        raise InvalidScaleDefinitionError(name, violations)
    return sort_rules(rules)


def resolve(
    name: str, kind: ScaleKind, rules: Sequence[ScaleRule], value: int
) -> ScaleRule:
    """Return the rule that covers ``value``."""
    if value < 0:
        raise InvalidAmountError(value, "scale input cannot be negative")
    unit = CONTIGUITY_UNIT[ScaleKind(kind)]
    for rule in sort_rules(rules):
        if rule.covers(value, unit):
            return rule
    raise NoApplicableRuleError(name, value)


@dataclass(frozen=True, slots=True)
class CommissionQuote:
    """Result of applying a SALES_TIER scale to an amount."""

    scale_name: str
    amount: Money
    rule: ScaleRule
    percentage: Percentage
    commission: Money
    net_amount: Money


def quote_commission(
    name: str, rules: Sequence[ScaleRule], amount: Money
) -> CommissionQuote:
    if amount.is_negative:
        raise InvalidAmountError(amount.amount, "amount cannot be negative")
    rule = resolve(name, ScaleKind.SALES_TIER, rules, amount.scaled)
    commission = amount.percentage(rule.percentage)
    return CommissionQuote(
        scale_name=name,
        amount=amount,
        rule=rule,
        percentage=rule.percentage,
        commission=commission,
        net_amount=amount - commission,
    )


def chatter_commission_percentage(
    name: str,
    rules: Sequence[ScaleRule],
    goal_completion: Percentage,
    *,
    supernumerary: bool = False,
    flat_percentage: Percentage | None = None,
) -> Percentage:
    """Commission percent for a chatter.

    Supernumerary chatters earn the scale's flat percentage regardless of
    goal completion.
    """
    if supernumerary:
        if flat_percentage is None:
            raise NoApplicableRuleError(name, goal_completion.basis_points)
        return flat_percentage
    rule = resolve(name, ScaleKind.PERFORMANCE, rules, goal_completion.basis_points)
    return rule.percentage


def default_sales_tier_rules() -> list[ScaleRule]:
    return [
        sales_rule(0, 19999, 10),
        sales_rule(20000, 25999, 20),
        sales_rule(26000, None, 30),
    ]


def default_performance_rules() -> list[ScaleRule]:
    return [
        performance_rule(0, 59, 0),
        performance_rule(60, 69, "0.5"),
        performance_rule(70, 79, 1),
        performance_rule(80, 89, "1.5"),
        performance_rule(90, None, 2),
    ]


DEFAULT_SUPERNUMERARY_PERCENTAGE = Percentage.of(1)
