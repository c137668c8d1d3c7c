"""Agency finance core: ledger, bank singleton, commissions and period consolidation."""

__version__ = "0.1.0"
