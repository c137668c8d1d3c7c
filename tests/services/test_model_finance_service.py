"""
ModelFinanceService tests.

Tests cover:
- Formula chain persisted on the finance record
- Agency profit booked in the ledger and rebooked on recalculation
- Scale-driven agency percentage
- Frozen records: consolidated and paid
- Batch recalculation with per-item failures
- Bank percentage update for a whole period
- Status transitions
"""

from uuid import uuid4

import pytest

from agency_finance.domain.money import Money, Percentage
from agency_finance.domain.values import ReferenceKind, TransactionReference
from agency_finance.exceptions import (
    AlreadyConsolidatedError,
    InvalidFinanceStatusTransitionError,
    ModelFinanceError,
    ModelFinanceNotFoundError,
    NoActiveScaleError,
)
from agency_finance.models.ledger_transaction import (
    TransactionOrigin,
    TransactionStatus,
    TransactionType,
)
from agency_finance.models.model_finance import FinanceStatus
from agency_finance.selectors import TransactionFilter
from agency_finance.services import FinanceInput


def live_bookings(ledger_selector, finance_id):
    page = ledger_selector.query(
        TransactionFilter(
            reference=TransactionReference.model_finance(finance_id),
            status=TransactionStatus.EN_MOVIMIENTO,
        )
    )
    return [t for t in page.items if t.reversal_of_id is None]


class TestCalculate:

    def test_reference_figures(self, finance_service, test_actor_id):
        model_id = uuid4()

        info = finance_service.calculate(
            model_id, 10, 2025, Money.of("2500"), test_actor_id,
            agency_percentage=Percentage.of(10),
            bank_percentage=Percentage.of(2),
            sales_count=7,
        )

        assert info.model_id == model_id
        assert info.period == "2025-10"
        assert info.agency_commission == Money.of("250")
        assert info.model_earnings == Money.of("2250")
        assert info.bank_fee == Money.of("5")
        assert info.agency_profit == Money.of("245")
        assert info.sales_count == 7
        assert info.status == FinanceStatus.CALCULADO.value
        assert info.consolidated_period_id is None

    def test_profit_booked_in_ledger(self, finance_service, ledger_selector, bank_service, test_actor_id):
        model_id = uuid4()
        info = finance_service.calculate(
            model_id, 10, 2025, Money.of("2500"), test_actor_id,
            agency_percentage=Percentage.of(10),
        )

        bookings = live_bookings(ledger_selector, info.id)
        assert len(bookings) == 1
        booking = bookings[0]
        assert booking.transaction_type == TransactionType.INGRESO.value
        assert booking.origin == TransactionOrigin.GANANCIA_MODELO.value
        assert booking.amount == Money.of("245")
        assert booking.model_id == model_id
        assert booking.reference.kind == ReferenceKind.MODEL_FINANCE
        assert bank_service.get_state().movement == Money.of("245")

    def test_default_bank_percentage(self, finance_service, test_actor_id):
        info = finance_service.calculate(
            uuid4(), 10, 2025, Money.of("1000"), test_actor_id,
            agency_percentage=Percentage.of(10),
        )
        assert info.bank_percentage == Percentage.of(2)

    def test_agency_percentage_from_active_scale(self, finance_service, seeded_scales, test_actor_id):
        info = finance_service.calculate(uuid4(), 10, 2025, Money.of("22000"), test_actor_id)

        assert info.agency_percentage == Percentage.of(20)
        assert info.agency_commission == Money.of("4400")

    def test_no_scale_and_no_percentage(self, finance_service, test_actor_id):
        with pytest.raises(NoActiveScaleError):
            finance_service.calculate(uuid4(), 10, 2025, Money.of("1000"), test_actor_id)

    def test_zero_sales_books_nothing(self, finance_service, ledger_selector, test_actor_id):
        info = finance_service.calculate(
            uuid4(), 10, 2025, Money.zero(), test_actor_id,
            agency_percentage=Percentage.of(10),
        )

        assert info.agency_profit.is_zero
        assert live_bookings(ledger_selector, info.id) == []

    def test_negative_sales_count_rejected(self, finance_service, test_actor_id):
        with pytest.raises(ModelFinanceError):
            finance_service.calculate(
                uuid4(), 10, 2025, Money.of("10"), test_actor_id,
                agency_percentage=Percentage.of(10),
                sales_count=-1,
            )


class TestRecalculate:

    def test_recalculation_overwrites_and_rebooks(
        self, finance_service, ledger_selector, bank_service, bank_selector, test_actor_id
    ):
        model_id = uuid4()
        first = finance_service.calculate(
            model_id, 10, 2025, Money.of("2500"), test_actor_id,
            agency_percentage=Percentage.of(10),
        )

        second = finance_service.calculate(
            model_id, 10, 2025, Money.of("20000"), test_actor_id,
            agency_percentage=Percentage.of(10),
        )

        assert second.id == first.id
        assert second.agency_profit == Money.of("1960")
        bookings = live_bookings(ledger_selector, first.id)
        assert [b.amount for b in bookings] == [Money.of("1960")]
        assert bank_service.get_state().movement == Money.of("1960")
        assert bank_selector.reconcile_bank().balanced

    def test_previous_booking_reversed(self, finance_service, ledger_selector, test_actor_id):
        model_id = uuid4()
        first = finance_service.calculate(
            model_id, 10, 2025, Money.of("2500"), test_actor_id,
            agency_percentage=Percentage.of(10),
        )
        finance_service.calculate(
            model_id, 10, 2025, Money.of("3000"), test_actor_id,
            agency_percentage=Percentage.of(10),
        )

        reversed_page = ledger_selector.query(
            TransactionFilter(status=TransactionStatus.REVERTIDO)
        )
        assert reversed_page.total == 1
        assert reversed_page.items[0].reference.id == first.id
        assert reversed_page.items[0].reversal_reason == "recalculation"

    def test_consolidated_record_frozen(self, finance_service, consolidation_service, test_actor_id):
        model_id = uuid4()
        finance_service.calculate(
            model_id, 10, 2025, Money.of("2500"), test_actor_id,
            agency_percentage=Percentage.of(10),
        )
        consolidation_service.consolidate(10, 2025, test_actor_id)

        with pytest.raises(AlreadyConsolidatedError):
            finance_service.calculate(
                model_id, 10, 2025, Money.of("9999"), test_actor_id,
                agency_percentage=Percentage.of(10),
            )

    def test_paid_record_frozen(self, finance_service, test_actor_id):
        model_id = uuid4()
        info = finance_service.calculate(
            model_id, 10, 2025, Money.of("2500"), test_actor_id,
            agency_percentage=Percentage.of(10),
        )
        finance_service.update_status(info.id, FinanceStatus.APROBADO, test_actor_id)
        finance_service.update_status(info.id, FinanceStatus.PAGADO, test_actor_id)

        with pytest.raises(InvalidFinanceStatusTransitionError):
            finance_service.calculate(
                model_id, 10, 2025, Money.of("100"), test_actor_id,
                agency_percentage=Percentage.of(10),
            )


class TestBatch:

    def test_failing_item_does_not_stop_batch(self, finance_service, bank_service, test_actor_id):
        good_a, bad, good_b = uuid4(), uuid4(), uuid4()
        items = [
            FinanceInput(good_a, Money.of("2500"), agency_percentage=Percentage.of(10)),
            FinanceInput(bad, Money.of("100"), agency_percentage=Percentage(15000)),
            FinanceInput(good_b, Money.of("20000"), agency_percentage=Percentage.of(10)),
        ]

        result = finance_service.recalculate_period(10, 2025, items, test_actor_id)

        assert result.processed == 3
        assert result.succeeded == 2
        assert [e.model_id for e in result.errors] == [bad]
        assert result.errors[0].error_code == "INVALID_PERCENTAGE"
        assert {r.model_id for r in result.results} == {good_a, good_b}
        assert bank_service.get_state().movement == Money.of("2205")

    def test_failing_item_rolls_back_only_itself(
        self, finance_service, consolidation_service, bank_service, test_actor_id
    ):
        frozen_model = uuid4()
        finance_service.calculate(
            frozen_model, 9, 2025, Money.of("1000"), test_actor_id,
            agency_percentage=Percentage.of(10),
        )
        consolidation_service.consolidate(9, 2025, test_actor_id)
        before = bank_service.get_state()

        result = finance_service.recalculate_period(
            9, 2025,
            [FinanceInput(frozen_model, Money.of("5000"), agency_percentage=Percentage.of(10))],
            test_actor_id,
        )

        assert result.succeeded == 0
        assert result.errors[0].error_code == "ALREADY_CONSOLIDATED"
        assert bank_service.get_state().movement == before.movement

    def test_update_bank_percentage_for_period(
        self, finance_service, bank_service, bank_selector, test_actor_id
    ):
        model_a, model_b = uuid4(), uuid4()
        finance_service.calculate(
            model_a, 10, 2025, Money.of("2500"), test_actor_id,
            agency_percentage=Percentage.of(10),
        )
        finance_service.calculate(
            model_b, 10, 2025, Money.of("20000"), test_actor_id,
            agency_percentage=Percentage.of(10),
        )

        result = finance_service.update_bank_percentage_for_period(
            10, 2025, Percentage.of(3), test_actor_id
        )

        assert result.succeeded == 2
        updated = {r.model_id: r for r in result.results}
        assert updated[model_a].bank_fee == Money.of("7.5")
        assert updated[model_a].agency_profit == Money.of("242.5")
        assert updated[model_b].agency_profit == Money.of("1940")
        assert bank_service.get_state().movement == Money.of("2182.5")
        assert bank_selector.reconcile_bank().balanced


class TestStatusAndQueries:

    def test_valid_transitions(self, finance_service, test_actor_id):
        info = finance_service.calculate(
            uuid4(), 10, 2025, Money.of("100"), test_actor_id,
            agency_percentage=Percentage.of(10),
        )

        reviewed = finance_service.update_status(
            info.id, FinanceStatus.PENDIENTE_REVISION, test_actor_id, notes="check sales"
        )
        approved = finance_service.update_status(info.id, FinanceStatus.APROBADO, test_actor_id)

        assert reviewed.internal_notes == "check sales"
        assert approved.status == FinanceStatus.APROBADO.value

    def test_invalid_transition(self, finance_service, test_actor_id):
        info = finance_service.calculate(
            uuid4(), 10, 2025, Money.of("100"), test_actor_id,
            agency_percentage=Percentage.of(10),
        )

        with pytest.raises(InvalidFinanceStatusTransitionError):
            finance_service.update_status(info.id, FinanceStatus.PAGADO, test_actor_id)

    def test_status_change_allowed_after_consolidation(
        self, finance_service, consolidation_service, test_actor_id
    ):
        info = finance_service.calculate(
            uuid4(), 10, 2025, Money.of("100"), test_actor_id,
            agency_percentage=Percentage.of(10),
        )
        consolidation_service.consolidate(10, 2025, test_actor_id)

        approved = finance_service.update_status(info.id, FinanceStatus.APROBADO, test_actor_id)

        assert approved.status == FinanceStatus.APROBADO.value

    def test_get_for_model(self, finance_service, test_actor_id):
        model_id = uuid4()
        info = finance_service.calculate(
            model_id, 10, 2025, Money.of("100"), test_actor_id,
            agency_percentage=Percentage.of(10),
        )

        assert finance_service.get_for_model(model_id, 10, 2025).id == info.id
        with pytest.raises(ModelFinanceNotFoundError):
            finance_service.get_for_model(model_id, 11, 2025)

    def test_list_period_orders_by_profit(self, finance_service, test_actor_id):
        small, large = uuid4(), uuid4()
        for model_id, sales in ((small, "100"), (large, "5000")):
            finance_service.calculate(
                model_id, 10, 2025, Money.of(sales), test_actor_id,
                agency_percentage=Percentage.of(10),
            )

        assert [f.model_id for f in finance_service.list_period(10, 2025)] == [large, small]
