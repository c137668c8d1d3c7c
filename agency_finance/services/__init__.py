"""Services for the agency finance core (write side)."""

from agency_finance.services.bank_service import BankService
from agency_finance.services.commission_scale_service import CommissionScaleService
from agency_finance.services.consolidation_service import ConsolidationService
from agency_finance.services.ledger_service import LedgerService
from agency_finance.services.model_finance_service import FinanceInput, ModelFinanceService

__all__ = [
    "BankService",
    "CommissionScaleService",
    "ConsolidationService",
    "FinanceInput",
    "LedgerService",
    "ModelFinanceService",
]
