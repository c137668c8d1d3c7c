"""
Config -> core bridges.

Functions that turn ``Settings`` into inputs of the finance core.  They live
here because ``agency_finance`` must never import ``agency_config``.

Usage:
    from agency_config import get_settings
    from agency_config.bridges import bootstrap, default_bank_percentage

    settings = get_settings()
    bootstrap(settings)
    service = ModelFinanceService(
        session, default_bank_percentage=default_bank_percentage(settings)
    )
"""

from __future__ import annotations

from agency_config.schema import Settings
from agency_finance.db.engine import init_engine_from_url
from agency_finance.db.immutability import register_immutability_listeners
from agency_finance.domain.money import Percentage
from agency_finance.logging_config import configure_logging
from agency_finance.selectors.ledger_selector import LedgerSelector


def default_bank_percentage(settings: Settings) -> Percentage:
    return Percentage.of(settings.finance.default_bank_percentage)


def bootstrap(settings: Settings):
    """Configure logging, initialize the engine and register ORM guards."""
    configure_logging(level=settings.logging.level)
    engine = init_engine_from_url(
        settings.database.url,
        echo=settings.database.echo,
        pool_size=settings.database.pool_size,
        max_overflow=settings.database.max_overflow,
    )
    register_immutability_listeners()
    return engine


def ledger_selector(session, settings: Settings) -> LedgerSelector:
    return LedgerSelector(session, default_page_size=settings.finance.default_page_size)
