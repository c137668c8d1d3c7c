"""
ORM-level immutability enforcement for frozen financial records.

SQLAlchemy fires ``before_update`` / ``before_delete`` mapper events before
any SQL reaches the database.  The listeners registered here inspect the
attribute history of the flushed object and raise
``ImmutabilityViolationError`` when a frozen record would change, aborting
the flush and with it the caller's transaction::

    session.flush()
         |
         v
    [before_update] --> _check_*_immutability() --> ImmutabilityViolationError
    [before_delete] --> _check_*_delete()       --/

Protected entities:

    Entity              | Frozen when                    | Still mutable
    --------------------|--------------------------------|---------------------------
    LedgerTransaction   | always for amount/type/origin; | reversal / consolidation
                        | fully once not EN_MOVIMIENTO   | bookkeeping columns
                        | never deletable                |
    ConsolidatedPeriod  | status CONSOLIDADO or CERRADO  | CONSOLIDADO -> CERRADO
    ModelFinance        | once consolidated_period_id    | status, notes, meta
                        | is stamped                     |

Bulk Core ``update()`` statements bypass mapper events.  The services use
them only for bookkeeping transitions (consolidation flip) and bank
counters, which these rules allow anyway.

Usage::

    from agency_finance.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # once at startup
"""

from sqlalchemy import event, inspect
from sqlalchemy.orm.attributes import get_history

from agency_finance.exceptions import ImmutabilityViolationError
from agency_finance.logging_config import get_logger

logger = get_logger("db.immutability")

_AUDIT_FIELDS = frozenset({"updated_at", "updated_by_id"})

# Never change after insert, whatever the status
_LEDGER_CORE_FIELDS = frozenset({
    "period",
    "month",
    "year",
    "transaction_type",
    "origin",
    "amount_usd",
    "reference_kind",
    "reference_id",
    "reversal_of_id",
    "recorded_at",
    "created_by_id",
})


def _previous_value(target, key):
    """Value the attribute had before the pending change (or its current value)."""
    hist = get_history(target, key)
    if hist.deleted:
        return hist.deleted[0]
    if hist.unchanged:
        return hist.unchanged[0]
    return getattr(target, key)


def _changed_fields(target) -> list[str]:
    insp = inspect(target)
    return [attr.key for attr in insp.attrs if attr.history.has_changes()]


def _block(entity_type: str, target, operation: str, reason: str, field: str | None = None):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": operation,
            "field": field,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=reason,
    )


# ---------------------------------------------------------------------------
# LedgerTransaction
# ---------------------------------------------------------------------------


def _check_ledger_transaction_immutability(mapper, connection, target):
    from agency_finance.models.ledger_transaction import (
        BOOKKEEPING_FIELDS,
        LedgerTransaction,
        TransactionStatus,
    )

    if not isinstance(target, LedgerTransaction):
        return

    changed = _changed_fields(target)
    for key in changed:
        if key in _LEDGER_CORE_FIELDS:
            _block(
                "LedgerTransaction", target, "UPDATE",
                f"Cannot modify field '{key}' of a ledger transaction; reverse it instead",
                key,
            )

    previous_status = _previous_value(target, "status")
    if previous_status == TransactionStatus.EN_MOVIMIENTO:
        return

    if "status" in changed:
        _block(
            "LedgerTransaction", target, "UPDATE",
            f"Cannot change status of a {previous_status} transaction",
            "status",
        )
    for key in changed:
        if key not in BOOKKEEPING_FIELDS:
            _block(
                "LedgerTransaction", target, "UPDATE",
                f"Cannot modify field '{key}' of a {previous_status} transaction",
                key,
            )


def _check_ledger_transaction_delete(mapper, connection, target):
    from agency_finance.models.ledger_transaction import LedgerTransaction

    if isinstance(target, LedgerTransaction):
        _block(
            "LedgerTransaction", target, "DELETE",
            "Ledger transactions are append-only",
        )


# ---------------------------------------------------------------------------
# ConsolidatedPeriod
# ---------------------------------------------------------------------------


def _check_consolidated_period_immutability(mapper, connection, target):
    from agency_finance.models.consolidated_period import (
        ARCHIVAL_FIELDS,
        FROZEN_STATUSES,
        ConsolidatedPeriod,
        PeriodStatus,
    )

    if not isinstance(target, ConsolidatedPeriod):
        return

    previous_status = _previous_value(target, "status")
    if previous_status not in FROZEN_STATUSES:
        return

    changed = _changed_fields(target)
    if "status" in changed:
        allowed = (
            previous_status == PeriodStatus.CONSOLIDADO
            and target.status == PeriodStatus.CERRADO
        )
        if not allowed:
            _block(
                "ConsolidatedPeriod", target, "UPDATE",
                f"Cannot move period {target.period} from {previous_status} to {target.status}",
                "status",
            )
    for key in changed:
        if key not in ARCHIVAL_FIELDS:
            _block(
                "ConsolidatedPeriod", target, "UPDATE",
                f"Cannot modify field '{key}' of consolidated period {target.period}",
                key,
            )
    if previous_status == PeriodStatus.CERRADO and changed:
        disallowed = [k for k in changed if k not in _AUDIT_FIELDS]
        if disallowed:
            _block(
                "ConsolidatedPeriod", target, "UPDATE",
                f"Period {target.period} is closed",
                disallowed[0],
            )


def _check_consolidated_period_delete(mapper, connection, target):
    from agency_finance.models.consolidated_period import ConsolidatedPeriod

    if isinstance(target, ConsolidatedPeriod) and target.is_frozen:
        _block(
            "ConsolidatedPeriod", target, "DELETE",
            f"Cannot delete consolidated period {target.period}",
        )


# ---------------------------------------------------------------------------
# ModelFinance
# ---------------------------------------------------------------------------


def _check_model_finance_immutability(mapper, connection, target):
    from agency_finance.models.model_finance import MONETARY_FIELDS, ModelFinance

    if not isinstance(target, ModelFinance):
        return

    if _previous_value(target, "consolidated_period_id") is None:
        return

    for key in _changed_fields(target):
        if key in MONETARY_FIELDS:
            _block(
                "ModelFinance", target, "UPDATE",
                f"Cannot modify field '{key}' of a consolidated finance record",
                key,
            )


def _check_model_finance_delete(mapper, connection, target):
    from agency_finance.models.model_finance import ModelFinance

    if isinstance(target, ModelFinance) and target.is_consolidated:
        _block(
            "ModelFinance", target, "DELETE",
            "Cannot delete a consolidated finance record",
        )


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


def _listeners():
    from agency_finance.models.consolidated_period import ConsolidatedPeriod
    from agency_finance.models.ledger_transaction import LedgerTransaction
    from agency_finance.models.model_finance import ModelFinance

    return [
        (LedgerTransaction, "before_update", _check_ledger_transaction_immutability),
        (LedgerTransaction, "before_delete", _check_ledger_transaction_delete),
        (ConsolidatedPeriod, "before_update", _check_consolidated_period_immutability),
        (ConsolidatedPeriod, "before_delete", _check_consolidated_period_delete),
        (ModelFinance, "before_update", _check_model_finance_immutability),
        (ModelFinance, "before_delete", _check_model_finance_delete),
    ]


def register_immutability_listeners():
    """Register all immutability listeners (idempotent)."""
    for target, event_name, listener_fn in _listeners():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove the immutability listeners.

    WARNING: Only use this in tests that need to violate the rules on purpose.
    """
    for target, event_name, listener_fn in _listeners():
        if event.contains(target, event_name, listener_fn):
            event.remove(target, event_name, listener_fn)
