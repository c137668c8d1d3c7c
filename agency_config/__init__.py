"""
agency_config -- single public entrypoint for runtime settings.

Responsibility:
    ``get_settings()`` is the only way to obtain configuration.  It reads the
    packaged ``defaults.yaml`` and merges an override file on top of it: the
    ``path`` argument, else the file named by the ``AGENCY_FINANCE_CONFIG``
    environment variable.

Architecture position:
    Sits above ``agency_finance``.  The finance core never imports this
    package; ``agency_config.bridges`` turns settings into constructor
    arguments for the core's services.

Failure modes:
    - ``FileNotFoundError`` -- the override file does not exist.
    - ``ValueError`` -- unknown keys or invalid values.
    - ``yaml.YAMLError`` -- malformed YAML.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from agency_config.loader import load_yaml_file, merge, parse_settings
from agency_config.schema import (
    DatabaseSettings,
    FinanceSettings,
    LoggingSettings,
    Settings,
)

_logger = logging.getLogger("agency_finance.config")

CONFIG_ENV_VAR = "AGENCY_FINANCE_CONFIG"
DEFAULTS_PATH = Path(__file__).parent / "defaults.yaml"


def get_settings(path: str | Path | None = None) -> Settings:
    """
    Load settings: packaged defaults, then the override file if any.

    Args:
        path: Override file.  When omitted, ``$AGENCY_FINANCE_CONFIG`` is
            used if set.
    """
    data = load_yaml_file(DEFAULTS_PATH)
    source = str(DEFAULTS_PATH)

    override = path if path is not None else os.environ.get(CONFIG_ENV_VAR)
    if override:
        override_path = Path(override)
        data = merge(data, load_yaml_file(override_path))
        source = str(override_path)

    settings = parse_settings(data, source=source)
    _logger.info(
        "settings_loaded",
        extra={
            "source": source,
            "database_dialect": settings.database.url.split(":", 1)[0],
            "default_bank_percentage": str(settings.finance.default_bank_percentage),
        },
    )
    return settings


__all__ = [
    "CONFIG_ENV_VAR",
    "DatabaseSettings",
    "FinanceSettings",
    "LoggingSettings",
    "Settings",
    "get_settings",
]
