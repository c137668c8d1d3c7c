"""Tests for agency_finance.logging_config: JSON lines, context and setup."""

import json
import logging
from datetime import UTC, datetime
from io import StringIO
from uuid import uuid4

import pytest

from agency_finance.domain.money import Money, Percentage
from agency_finance.exceptions import AlreadyConsolidatedError, InvalidAmountError
from agency_finance.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)
from agency_finance.models.ledger_transaction import TransactionType


@pytest.fixture(autouse=True)
def _isolated_logging():
    """Start from an unconfigured logger tree, then restore the suite setup."""
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()
    configure_logging(level=logging.DEBUG)


def json_handlers():
    """Handlers installed by configure_logging; pytest may attach its own as well."""
    return [
        h for h in logging.getLogger("agency_finance").handlers
        if isinstance(h.formatter, StructuredFormatter)
    ]


@pytest.fixture
def emit():
    """Configure logging into a buffer; returns (logger, read_lines)."""

    def _emit(level=logging.INFO, name="test"):
        stream = StringIO()
        configure_logging(stream=stream, level=level)

        def _lines():
            return [json.loads(line) for line in stream.getvalue().splitlines() if line]

        return get_logger(name), _lines

    return _emit


class TestJsonLines:

    def test_base_fields(self, emit):
        logger, lines = emit()
        logger.info("bank_initialized")

        (record,) = lines()
        assert record["level"] == "INFO"
        assert record["message"] == "bank_initialized"
        assert record["logger"] == "agency_finance.test"
        assert datetime.fromisoformat(record["ts"]).tzinfo == UTC

    def test_extra_fields(self, emit):
        logger, lines = emit()
        logger.info("transaction_recorded", extra={"period": "2025-10", "count": 3})

        (record,) = lines()
        assert record["period"] == "2025-10"
        assert record["count"] == 3

    def test_domain_values_serialized(self, emit):
        logger, lines = emit()
        finance_id = uuid4()
        logger.info(
            "finance_calculated",
            extra={
                "finance_id": finance_id,
                "agency_profit": Money.of("1960"),
                "bank_percentage": Percentage.of(2),
                "transaction_type": TransactionType.INGRESO,
            },
        )

        (record,) = lines()
        assert record["finance_id"] == str(finance_id)
        assert record["agency_profit"] == str(Money.of("1960"))
        assert record["bank_percentage"] == str(Percentage.of(2))
        assert record["transaction_type"] == "INGRESO"

    def test_context_merged(self, emit):
        logger, lines = emit()
        LogContext.set(correlation_id="req-1", period="2025-10")
        logger.info("period_summarized")

        (record,) = lines()
        assert record["correlation_id"] == "req-1"
        assert record["period"] == "2025-10"

    def test_extra_does_not_override_context(self, emit):
        logger, lines = emit()
        with LogContext.bind(period="2025-10"):
            logger.info("mismatch", extra={"period": "2025-09"})

        assert lines()[0]["period"] == "2025-10"

    def test_no_context_keys_without_context(self, emit):
        logger, lines = emit()
        logger.info("bare")

        record = lines()[0]
        assert "correlation_id" not in record
        assert "actor_id" not in record

    def test_plain_exception(self, emit):
        logger, lines = emit()
        try:
            raise ValueError("boom")
        except ValueError:
            logger.error("unexpected_failure", exc_info=True)

        record = lines()[0]
        assert record["exc_type"] == "ValueError"
        assert record["exc_message"] == "boom"
        assert "exc_code" not in record
        assert "Traceback" in record["traceback"]

    def test_finance_error_flattened(self, emit):
        logger, lines = emit()
        try:
            raise AlreadyConsolidatedError("2025-10", "no new transactions may be recorded")
        except AlreadyConsolidatedError:
            logger.warning("record_rejected", exc_info=True)

        record = lines()[0]
        assert record["exc_code"] == "ALREADY_CONSOLIDATED"
        assert record["exc_type"] == "AlreadyConsolidatedError"
        assert record["exc_period"] == "2025-10"
        assert record["exc_detail"] == "no new transactions may be recorded"

    def test_exc_code_for_validation_error(self, emit):
        logger, lines = emit()
        try:
            raise InvalidAmountError("0", "must be positive")
        except InvalidAmountError:
            logger.warning("invalid_input", exc_info=True)

        assert lines()[0]["exc_code"] == InvalidAmountError.code

    def test_default_level_drops_debug(self, emit):
        logger, lines = emit()
        logger.debug("bank_movement_adjusted")
        logger.warning("consolidation_version_conflict")

        assert [r["message"] for r in lines()] == ["consolidation_version_conflict"]


class TestLogContext:

    def test_set_get_clear(self):
        LogContext.set(correlation_id="x", actor_id="y")
        assert LogContext.get_all() == {"correlation_id": "x", "actor_id": "y"}
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_set_skips_none(self):
        LogContext.set(period="2025-10")
        LogContext.set(period=None, operation="consolidate")
        assert LogContext.get_all() == {"period": "2025-10", "operation": "consolidate"}

    def test_set_rejects_unknown_field(self):
        with pytest.raises(TypeError):
            LogContext.set(tenant="acme")

    def test_bind_restores_previous(self):
        LogContext.set(period="2025-09")
        with LogContext.bind(period="2025-10", operation="consolidate"):
            assert LogContext.get_all() == {"period": "2025-10", "operation": "consolidate"}
        assert LogContext.get_all() == {"period": "2025-09"}

    def test_bind_restores_on_error(self):
        with pytest.raises(RuntimeError):
            with LogContext.bind(period="2025-10"):
                raise RuntimeError("abort")
        assert LogContext.get_all() == {}

    def test_bind_stringifies_and_ignores_unknown(self):
        actor = uuid4()
        with LogContext.bind(actor_id=actor, unknown="x", transaction_id=None):
            assert LogContext.get_all() == {"actor_id": str(actor)}


class TestConfigureLogging:

    def test_first_call_wins(self):
        first, second = StringIO(), StringIO()
        configure_logging(stream=first)
        configure_logging(stream=second)

        get_logger("test").info("once")

        assert len(json_handlers()) == 1
        assert "once" in first.getvalue()
        assert second.getvalue() == ""

    def test_does_not_propagate(self):
        configure_logging(stream=StringIO())
        assert logging.getLogger("agency_finance").propagate is False

    def test_custom_handler_gets_formatter(self):
        handler = logging.StreamHandler(StringIO())
        configure_logging(handler=handler)
        assert isinstance(handler.formatter, StructuredFormatter)

    def test_child_logger_names(self):
        assert get_logger("services.ledger").name == "agency_finance.services.ledger"

    def test_nested_child_inherits_level(self, emit):
        logger, lines = emit(level=logging.DEBUG, name="deep.nested.module")
        logger.debug("hierarchy_test")

        assert lines()[0]["logger"] == "agency_finance.deep.nested.module"

    @pytest.mark.parametrize("level", ["warning", "WARNING", logging.WARNING])
    def test_level_forms(self, emit, level):
        logger, lines = emit(level=level)
        logger.info("dropped")
        logger.warning("kept")

        assert [r["message"] for r in lines()] == ["kept"]

    def test_reset_allows_reconfiguration(self):
        configure_logging(stream=StringIO())
        reset_logging()
        assert json_handlers() == []

        stream = StringIO()
        configure_logging(stream=stream)
        get_logger("test").info("again")
        assert "again" in stream.getvalue()

    def test_reset_keeps_foreign_handlers(self):
        root = logging.getLogger("agency_finance")
        foreign = logging.StreamHandler(StringIO())
        root.addHandler(foreign)
        try:
            configure_logging(stream=StringIO())
            reset_logging()
            assert foreign in root.handlers
            assert json_handlers() == []
        finally:
            root.removeHandler(foreign)
