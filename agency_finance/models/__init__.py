"""ORM models of the agency finance core."""

from agency_finance.models.agency_bank import BANK_KEY, SYSTEM_ACTOR_ID, AgencyBank
from agency_finance.models.commission_scale import CommissionScale, CommissionScaleRule
from agency_finance.models.consolidated_period import ConsolidatedPeriod, PeriodStatus
from agency_finance.models.ledger_transaction import (
    LedgerTransaction,
    TransactionOrigin,
    TransactionStatus,
    TransactionType,
)
from agency_finance.models.model_finance import FinanceStatus, ModelFinance

__all__ = [
    "AgencyBank",
    "BANK_KEY",
    "SYSTEM_ACTOR_ID",
    "CommissionScale",
    "CommissionScaleRule",
    "ConsolidatedPeriod",
    "PeriodStatus",
    "LedgerTransaction",
    "TransactionOrigin",
    "TransactionStatus",
    "TransactionType",
    "FinanceStatus",
    "ModelFinance",
]
