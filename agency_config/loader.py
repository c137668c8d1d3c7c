"""
Settings loader (``agency_config.loader``).

Loads YAML files and parses them into the frozen dataclasses of
``agency_config.schema``.  Callers use ``agency_config.get_settings()``
rather than this module.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown keys or invalid values  -> ``ValueError``.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from agency_config.schema import (
    DatabaseSettings,
    FinanceSettings,
    LoggingSettings,
    Settings,
)

_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        ValueError: if the document is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Configuration root must be a mapping: {path}")
    return data


def merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursive dict merge; ``override`` wins on scalar conflicts."""
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _section(data: dict[str, Any], name: str, allowed: set[str]) -> dict[str, Any]:
    section = data.get(name) or {}
    if not isinstance(section, dict):
        raise ValueError(f"Section '{name}' must be a mapping")
    unknown = set(section) - allowed
    if unknown:
        raise ValueError(f"Unknown keys in section '{name}': {sorted(unknown)}")
    return section


def parse_decimal(value: Any, name: str) -> Decimal:
    if isinstance(value, float):
        # YAML reads 2.5 as float; go through its shortest repr
        value = repr(value)
    try:
        result = Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"{name} must be a number, got {value!r}") from exc
    if not result.is_finite():
        raise ValueError(f"{name} must be finite")
    return result


def parse_database(data: dict[str, Any]) -> DatabaseSettings:
    section = _section(data, "database", {"url", "echo", "pool_size", "max_overflow"})
    defaults = DatabaseSettings()
    return DatabaseSettings(
        url=str(section.get("url", defaults.url)),
        echo=bool(section.get("echo", defaults.echo)),
        pool_size=int(section.get("pool_size", defaults.pool_size)),
        max_overflow=int(section.get("max_overflow", defaults.max_overflow)),
    )


def parse_logging(data: dict[str, Any]) -> LoggingSettings:
    section = _section(data, "logging", {"level"})
    level = str(section.get("level", "INFO")).upper()
    if level not in _LOG_LEVELS:
        raise ValueError(f"Invalid log level: {level}")
    return LoggingSettings(level=level)


def parse_finance(data: dict[str, Any]) -> FinanceSettings:
    section = _section(
        data,
        "finance",
        {
            "default_bank_percentage",
            "default_page_size",
        },
    )
    defaults = FinanceSettings()
    bank_percentage = parse_decimal(
        section.get("default_bank_percentage", defaults.default_bank_percentage),
        "finance.default_bank_percentage",
    )
    if not Decimal(0) <= bank_percentage <= Decimal(100):
        raise ValueError("finance.default_bank_percentage must be within 0 and 100")
    page_size = int(section.get("default_page_size", defaults.default_page_size))
    if page_size < 1:
        raise ValueError("finance.default_page_size must be positive")
    return FinanceSettings(
        default_bank_percentage=bank_percentage,
        default_page_size=page_size,
    )


def parse_settings(data: dict[str, Any], source: str | None = None) -> Settings:
    unknown = set(data) - {"database", "logging", "finance"}
    if unknown:
        raise ValueError(f"Unknown configuration sections: {sorted(unknown)}")
    return Settings(
        database=parse_database(data),
        logging=parse_logging(data),
        finance=parse_finance(data),
        source=source,
    )
