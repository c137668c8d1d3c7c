"""Calendar period keys ("YYYY-MM") used by the ledger and consolidation."""

from __future__ import annotations

import re
from dataclasses import dataclass

from agency_finance.exceptions import InvalidPeriodError

_CODE_RE = re.compile(r"^(\d{4})-(\d{2})$")


@dataclass(frozen=True, slots=True, order=True)
class PeriodKey:
    """A calendar month. Ordering is chronological."""

    year: int
    month: int

    def __post_init__(self) -> None:
        if not isinstance(self.month, int) or not 1 <= self.month <= 12:
            raise InvalidPeriodError(f"{self.year}-{self.month}")
        if not isinstance(self.year, int) or not 2000 <= self.year <= 2100:
            raise InvalidPeriodError(f"{self.year}-{self.month}")

    @classmethod
    def of(cls, month: int, year: int) -> PeriodKey:
        return cls(year=year, month=month)

    @classmethod
    def parse(cls, code: str) -> PeriodKey:
        match = _CODE_RE.match(code.strip()) if isinstance(code, str) else None
        if match is None:
            raise InvalidPeriodError(code)
        return cls(year=int(match.group(1)), month=int(match.group(2)))

    @classmethod
    def coerce(cls, value: PeriodKey | str) -> PeriodKey:
        """Accept either a PeriodKey or its "YYYY-MM" code."""
        if isinstance(value, PeriodKey):
            return value
        return cls.parse(value)

    @property
    def code(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"

    def next(self) -> PeriodKey:
        if self.month == 12:
            return PeriodKey(year=self.year + 1, month=1)
        return PeriodKey(year=self.year, month=self.month + 1)

    def previous(self) -> PeriodKey:
        if self.month == 1:
            return PeriodKey(year=self.year - 1, month=12)
        return PeriodKey(year=self.year, month=self.month - 1)

    def __str__(self) -> str:
        return self.code
