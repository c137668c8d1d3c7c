"""
Module: agency_finance.selectors.bank_selector
Responsibility: Read access to the bank singleton and the reconciliation
    check between the stored movement balance and the ledger.

The reconciliation recomputes the movement balance from the ledger alone:
the signed sum of every transaction that carries no consolidation stamp.
A non-zero difference means a write bypassed the service API (or a crash
left the two out of step) and must be investigated.
"""

from sqlalchemy import select

from agency_finance.domain.dtos import BankState, ReconciliationReport
from agency_finance.domain.money import Money
from agency_finance.logging_config import get_logger
from agency_finance.models.agency_bank import BANK_KEY, AgencyBank
from agency_finance.selectors.base import BaseSelector
from agency_finance.selectors.ledger_selector import LedgerSelector

logger = get_logger("selectors.bank")


class BankSelector(BaseSelector[AgencyBank]):
    """Read-only view of the AgencyBank singleton."""

    def get_state(self) -> BankState | None:
        """Current bank state, or None before the first write."""
        bank = self.session.execute(
            select(AgencyBank)
            .where(AgencyBank.bank_key == BANK_KEY)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        return None if bank is None else bank.to_dto()

    def reconcile_bank(self) -> ReconciliationReport:
        ledger = LedgerSelector(self.session)
        expected = ledger.movement_balance()
        state = self.get_state()
        actual = state.movement if state is not None else Money.zero()
        report = ReconciliationReport(
            expected_movement=expected,
            actual_movement=actual,
            difference=actual - expected,
            unconsolidated_transactions=ledger.unconsolidated_count(),
        )
        if report.balanced:
            logger.info(
                "bank_reconciled",
                extra={"movement": str(actual.amount)},
            )
        else:
            logger.error(
                "bank_reconciliation_mismatch",
                extra={
                    "expected": str(expected.amount),
                    "actual": str(actual.amount),
                    "difference": str(report.difference.amount),
                },
            )
        return report
