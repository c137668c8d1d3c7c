"""Selectors for the agency finance core (read side)."""

from agency_finance.selectors.bank_selector import BankSelector
from agency_finance.selectors.ledger_selector import LedgerSelector, TransactionFilter
from agency_finance.selectors.report_selector import ReportSelector

__all__ = [
    "BankSelector",
    "LedgerSelector",
    "ReportSelector",
    "TransactionFilter",
]
