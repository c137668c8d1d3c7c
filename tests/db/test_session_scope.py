"""
session_scope tests: a service call that fails inside the scope leaves no
partial ledger, bank or snapshot write behind.

These sessions really commit, so they run against the engine's own
connections instead of the per-test rollback session.
"""

from uuid import uuid4

import pytest

from agency_finance.db.engine import session_scope
from agency_finance.domain.clock import DeterministicClock
from agency_finance.domain.money import Money, Percentage
from agency_finance.domain.values import TransactionReference
from agency_finance.exceptions import ConcurrentConsolidationConflictError, ValidationError
from agency_finance.models.ledger_transaction import (
    TransactionOrigin,
    TransactionStatus,
    TransactionType,
)
from agency_finance.selectors import BankSelector, LedgerSelector, ReportSelector
from agency_finance.services import (
    BankService,
    ConsolidationService,
    LedgerService,
    ModelFinanceService,
)

ACTOR_ID = uuid4()


def _record(session, amount, description="Scoped income"):
    return LedgerService(session).record(
        TransactionType.INGRESO,
        TransactionOrigin.AJUSTE_MANUAL,
        Money.of(amount),
        "2025-10",
        TransactionReference.manual(uuid4()),
        description,
        ACTOR_ID,
    )


class TestRecordInScope:

    def test_commit_on_success(self, committed_session_factory):
        with session_scope() as session:
            _record(session, "25")

        check = committed_session_factory()
        assert BankSelector(check).get_state().movement == Money.of("25")
        assert LedgerSelector(check).query().total == 1

    def test_rollback_on_failure(self, committed_session_factory, captured_logs):
        with pytest.raises(ValidationError):
            with session_scope() as session:
                _record(session, "25")
                _record(session, "10", description=" ")

        check = committed_session_factory()
        assert BankSelector(check).get_state() is None
        assert LedgerSelector(check).query().total == 0
        assert any(r["message"] == "transaction_rolled_back" for r in captured_logs())


class TestConsolidateInScope:

    @pytest.fixture
    def booked_october(self, committed_session_factory):
        """One committed finance record for 2025-10 (agency profit 245.00)."""
        with session_scope() as session:
            return ModelFinanceService(session, DeterministicClock()).calculate(
                uuid4(), 10, 2025, Money.of("2500"), ACTOR_ID,
                agency_percentage=Percentage.of(10),
            )

    def test_failed_transfer_leaves_nothing_behind(
        self, booked_october, committed_session_factory, monkeypatch
    ):
        before = BankSelector(committed_session_factory()).get_state()

        def conflict(self, amount, *, expected_version, period_code, **kwargs):
            raise ConcurrentConsolidationConflictError(period_code, expected_version)

        monkeypatch.setattr(BankService, "transfer_to_consolidated", conflict)

        with pytest.raises(ConcurrentConsolidationConflictError):
            with session_scope() as session:
                ConsolidationService(session).consolidate(10, 2025, ACTOR_ID)

        check = committed_session_factory()
        after = BankSelector(check).get_state()
        assert after == before
        assert after.movement == Money.of("245")
        assert after.consolidated.is_zero
        assert ReportSelector(check).list_consolidated_periods() == []
        assert ModelFinanceService(check).get(booked_october.id).consolidated_period_id is None
        page = LedgerSelector(check).query()
        assert {item.status for item in page.items} == {TransactionStatus.EN_MOVIMIENTO.value}
        assert BankSelector(check).reconcile_bank().balanced

    def test_successful_consolidation_commits_everything(
        self, booked_october, committed_session_factory
    ):
        with session_scope() as session:
            ConsolidationService(session).consolidate(10, 2025, ACTOR_ID)

        check = committed_session_factory()
        state = BankSelector(check).get_state()
        assert state.consolidated == Money.of("245")
        assert state.movement.is_zero
        assert [p.period for p in ReportSelector(check).list_consolidated_periods()] == ["2025-10"]
        assert ModelFinanceService(check).get(booked_october.id).consolidated_period_id is not None
