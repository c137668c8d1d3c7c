"""
Money -- scaled-integer monetary values and percentages.

Responsibility:
    Single representation of money for the whole core: a signed integer
    holding the USD value multiplied by ``SCALE_FACTOR`` (100,000, i.e. five
    implied decimal digits).  Percentages are integer basis points.

Architecture position:
    Domain -- pure functional core, zero I/O.  Imported by models, services
    and selectors.

Invariants enforced:
    - No float ever enters a monetary computation: ``to_scaled`` rejects
      floats, NaN, infinities and sub-unit precision (more than five
      decimals) with ``InvalidAmountError``; input is never rounded.
    - Percentage math is ``amount * basis_points / 10000`` in integer
      arithmetic, rounded with ROUND-HALF-EVEN.  This is the only rounding
      rule in the system; per-model sums reconcile with consolidated totals
      because every derived figure after the first percentage is obtained
      by exact subtraction.

Failure modes:
    - InvalidAmountError for non-numeric, float, non-finite or over-precise
      amounts.
    - InvalidPercentageError for percentages outside the accepted range or
      with more precision than a basis point.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from agency_finance.exceptions import InvalidAmountError, InvalidPercentageError

SCALE_FACTOR = 100_000
BASIS_POINTS_PER_UNIT = 10_000
BASIS_POINTS_PER_PERCENT = 100
CURRENCY = "USD"


def round_half_even_div(numerator: int, denominator: int) -> int:
    """Integer division rounded half-to-even.

    Works for either sign of the numerator; ``denominator`` must be positive.
    """
    if denominator <= 0:
        raise ValueError("denominator must be positive")
    quotient, remainder = divmod(numerator, denominator)
    # divmod floors, so remainder is always in [0, denominator)
    twice = remainder * 2
    if twice > denominator or (twice == denominator and quotient % 2 == 1):
        quotient += 1
    return quotient


def _to_decimal(value: object) -> Decimal:
    if isinstance(value, bool) or isinstance(value, float):
        raise InvalidAmountError(value, "floating point values are not accepted")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, str)):
        try:
            result = Decimal(str(value).strip().replace(",", ""))
        except InvalidOperation as exc:
            raise InvalidAmountError(value, "not a number") from exc
    else:
        raise InvalidAmountError(value, f"unsupported type {type(value).__name__}")
    if not result.is_finite():
        raise InvalidAmountError(value, "amount must be finite")
    return result


def to_scaled(value: Decimal | str | int) -> int:
    """Convert a USD amount to its scaled-integer representation."""
    amount = _to_decimal(value)
    scaled = amount * SCALE_FACTOR
    if scaled != scaled.to_integral_value():
        raise InvalidAmountError(value, "precision finer than five decimal places")
    return int(scaled)


def from_scaled(scaled: int) -> Decimal:
    """Convert a scaled integer back to a Decimal USD amount (5 places)."""
    return Decimal(scaled).scaleb(-5)


def format_usd(scaled: int) -> str:
    """Format for display: two decimals, thousands separators, ``$`` prefix."""
    cents = round_half_even_div(scaled, SCALE_FACTOR // 100)
    sign = "-" if cents < 0 else ""
    whole, frac = divmod(abs(cents), 100)
    return f"{sign}${whole:,}.{frac:02d}"


@dataclass(frozen=True, slots=True, order=True)
class Percentage:
    """
    Percentage expressed in integer basis points (1% == 100 bp).

    ``Percentage.of("2.5")`` is 250 bp.  Values above 100% are allowed only
    where the caller says so (goal-completion ratios).
    """

    basis_points: int

    def __post_init__(self) -> None:
        if isinstance(self.basis_points, bool) or not isinstance(self.basis_points, int):
            raise InvalidPercentageError(self.basis_points, "basis points must be an integer")
        if self.basis_points < 0:
            raise InvalidPercentageError(self.basis_points, "percentage cannot be negative")

    @classmethod
    def of(
        cls,
        value: Decimal | str | int,
        *,
        maximum: Decimal | int | None = 100,
    ) -> Percentage:
        """Build from a percent value; ``maximum=None`` disables the upper bound."""
        if isinstance(value, (bool, float)):
            raise InvalidPercentageError(value, "floating point values are not accepted")
        try:
            percent = Decimal(str(value).strip())
        except InvalidOperation as exc:
            raise InvalidPercentageError(value, "not a number") from exc
        if not percent.is_finite():
            raise InvalidPercentageError(value, "percentage must be finite")
        if percent < 0:
            raise InvalidPercentageError(value, "percentage cannot be negative")
        if maximum is not None and percent > Decimal(maximum):
            raise InvalidPercentageError(value, f"percentage cannot exceed {maximum}")
        bp = percent * BASIS_POINTS_PER_PERCENT
        if bp != bp.to_integral_value():
            raise InvalidPercentageError(value, "precision finer than one basis point")
        return cls(int(bp))

    @property
    def percent(self) -> Decimal:
        return Decimal(self.basis_points) / BASIS_POINTS_PER_PERCENT

    def apply(self, scaled: int) -> int:
        """Return ``scaled * self`` rounded half-even."""
        return round_half_even_div(scaled * self.basis_points, BASIS_POINTS_PER_UNIT)

    def __str__(self) -> str:
        return f"{self.percent.normalize():f}%"


@dataclass(frozen=True, slots=True, order=True)
class Money:
    """
    USD amount held as a scaled integer.

    Contract:
        ``scaled`` is the value times 100,000.  Arithmetic never leaves
        integer space.  Only USD is supported; a record never mixes
        currencies.
    """

    scaled: int
    currency: str = CURRENCY

    def __post_init__(self) -> None:
        if isinstance(self.scaled, bool) or not isinstance(self.scaled, int):
            raise InvalidAmountError(self.scaled, "scaled amount must be an integer")
        if self.currency != CURRENCY:
            raise InvalidAmountError(self.scaled, f"unsupported currency {self.currency}")

    @classmethod
    def of(cls, value: Decimal | str | int) -> Money:
        """Build from a USD amount, e.g. ``Money.of("2500.00")``."""
        return cls(to_scaled(value))

    @classmethod
    def zero(cls) -> Money:
        return cls(0)

    @property
    def amount(self) -> Decimal:
        return from_scaled(self.scaled)

    @property
    def is_zero(self) -> bool:
        return self.scaled == 0

    @property
    def is_positive(self) -> bool:
        return self.scaled > 0

    @property
    def is_negative(self) -> bool:
        return self.scaled < 0

    def percentage(self, pct: Percentage) -> Money:
        return Money(pct.apply(self.scaled))

    def formatted(self) -> str:
        return format_usd(self.scaled)

    def __add__(self, other: Money) -> Money:
        if not isinstance(other, Money):
            return NotImplemented
        return Money(self.scaled + other.scaled)

    def __sub__(self, other: Money) -> Money:
        if not isinstance(other, Money):
            return NotImplemented
        return Money(self.scaled - other.scaled)

    def __neg__(self) -> Money:
        return Money(-self.scaled)

    def __abs__(self) -> Money:
        return Money(abs(self.scaled))

    def __str__(self) -> str:
        return f"{self.amount} {self.currency}"


def require_positive(value: Money, what: str = "amount") -> Money:
    """Raise InvalidAmountError unless ``value`` is strictly positive."""
    if not value.is_positive:
        raise InvalidAmountError(value.amount, f"{what} must be greater than zero")
    return value


def require_non_negative(value: Money, what: str = "amount") -> Money:
    if value.is_negative:
        raise InvalidAmountError(value.amount, f"{what} cannot be negative")
    return value
