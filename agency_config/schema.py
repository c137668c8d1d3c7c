"""
Settings schema.

Frozen dataclasses produced by ``agency_config.loader`` from YAML.  Values
stay plain (strings, ``Decimal``, ints); conversion into core types such as
``Percentage`` happens in ``agency_config.bridges``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal


@dataclass(frozen=True)
class DatabaseSettings:
    url: str = "sqlite+pysqlite:///:memory:"
    echo: bool = False
    pool_size: int = 10
    max_overflow: int = 10


@dataclass(frozen=True)
class LoggingSettings:
    level: str = "INFO"


@dataclass(frozen=True)
class FinanceSettings:
    """Business defaults of the finance core."""

    default_bank_percentage: Decimal = Decimal("2")
    default_page_size: int = 50


@dataclass(frozen=True)
class Settings:
    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    finance: FinanceSettings = field(default_factory=FinanceSettings)
    source: str | None = None
