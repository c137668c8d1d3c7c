"""
Typed exception hierarchy for the agency finance core.

Every error raised by the core is a subclass of ``AgencyFinanceError`` and
carries:

  1. a TYPED class, so callers catch by type rather than by message;
  2. a ``code`` class attribute, machine-readable and stable for API mapping;
  3. structured attributes describing the failed operation.

Example::

    try:
        consolidation.consolidate(month=10, year=2025, actor_id=admin_id)
    except AlreadyConsolidatedError as e:
        respond(status=409, code=e.code, period=e.period)

Hierarchy::

    AgencyFinanceError
    |
    +-- ValidationError
    |   +-- InvalidAmountError
    |   +-- InvalidPercentageError
    |   +-- InvalidPeriodError
    |   +-- InvalidMetaError
    |
    +-- CommissionError
    |   +-- InvalidScaleDefinitionError
    |   +-- NoApplicableRuleError
    |   +-- CommissionScaleNotFoundError
    |   +-- NoActiveScaleError
    |   +-- ActiveScaleDeletionError
    |
    +-- LedgerError
    |   +-- TransactionNotFoundError
    |   +-- ReversalError
    |       +-- AlreadyReversedError
    |       +-- CompensatingEntryNotReversibleError
    |
    +-- ConsolidationError
    |   +-- AlreadyConsolidatedError
    |   +-- NothingToConsolidateError
    |   +-- ConsolidatedPeriodNotFoundError
    |   +-- InvalidPeriodTransitionError
    |
    +-- ConcurrencyError
    |   +-- ConcurrentConsolidationConflictError
    |
    +-- ModelFinanceError
    |   +-- ModelFinanceNotFoundError
    |   +-- InvalidFinanceStatusTransitionError
    |
    +-- ImmutabilityViolationError

All of these are expected, recoverable rejections surfaced to the caller.
None of them is swallowed inside the core: the caller's transaction is rolled
back and no partial ledger write survives.
"""

from uuid import UUID


class AgencyFinanceError(Exception):
    """Base exception for all agency finance errors."""

    code: str = "AGENCY_FINANCE_ERROR"


# Validation


class ValidationError(AgencyFinanceError):
    """Base exception for rejected input values."""

    code: str = "VALIDATION_ERROR"


class InvalidAmountError(ValidationError):
    """Negative, zero-where-positive-required, or non-finite monetary input."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, amount: object, reason: str):
        self.amount = str(amount)
        self.reason = reason
        super().__init__(f"Invalid amount {amount!r}: {reason}")


class InvalidPercentageError(ValidationError):
    """Percentage outside the accepted range or not representable."""

    code: str = "INVALID_PERCENTAGE"

    def __init__(self, value: object, reason: str):
        self.value = str(value)
        self.reason = reason
        super().__init__(f"Invalid percentage {value!r}: {reason}")


class InvalidPeriodError(ValidationError):
    """Month/year pair or period code cannot be interpreted."""

    code: str = "INVALID_PERIOD"

    def __init__(self, value: object):
        self.value = str(value)
        super().__init__(f"Invalid period: {value!r}")


class InvalidMetaError(ValidationError):
    """Meta bag is not a mapping or holds a value outside the JSON variant."""

    code: str = "INVALID_META"

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Invalid meta at '{path}': {reason}")


# Commission scales


class CommissionError(AgencyFinanceError):
    """Base exception for commission scale errors."""

    code: str = "COMMISSION_ERROR"


class InvalidScaleDefinitionError(CommissionError):
    """Scale rules violate contiguity or bound invariants; never persisted."""

    code: str = "INVALID_SCALE_DEFINITION"

    def __init__(self, scale_name: str, violations: list[str]):
        self.scale_name = scale_name
        self.violations = list(violations)
        super().__init__(
            f"Invalid commission scale '{scale_name}': " + "; ".join(violations)
        )


class NoApplicableRuleError(CommissionError):
    """No rule of the scale covers the given value."""

    code: str = "NO_APPLICABLE_RULE"

    def __init__(self, scale_name: str, value: int):
        self.scale_name = scale_name
        self.value = value
        super().__init__(
            f"No rule of commission scale '{scale_name}' applies to value {value}"
        )


class CommissionScaleNotFoundError(CommissionError):
    """Commission scale does not exist."""

    code: str = "COMMISSION_SCALE_NOT_FOUND"

    def __init__(self, scale_id: UUID | str):
        self.scale_id = str(scale_id)
        super().__init__(f"Commission scale not found: {scale_id}")


class NoActiveScaleError(CommissionError):
    """No active and no default scale is configured for the kind."""

    code: str = "NO_ACTIVE_SCALE"

    def __init__(self, kind: str):
        self.kind = kind
        super().__init__(f"No active or default commission scale of kind {kind}")


class ActiveScaleDeletionError(CommissionError):
    """The active scale cannot be deleted."""

    code: str = "ACTIVE_SCALE_DELETION"

    def __init__(self, scale_id: UUID | str):
        self.scale_id = str(scale_id)
        super().__init__(
            f"Commission scale {scale_id} is active; activate another scale first"
        )


# Ledger


class LedgerError(AgencyFinanceError):
    """Base exception for ledger transaction errors."""

    code: str = "LEDGER_ERROR"


class TransactionNotFoundError(LedgerError):
    """Ledger transaction does not exist."""

    code: str = "TRANSACTION_NOT_FOUND"

    def __init__(self, transaction_id: UUID | str):
        self.transaction_id = str(transaction_id)
        super().__init__(f"Ledger transaction not found: {transaction_id}")


class ReversalError(LedgerError):
    """Base exception for reversal errors."""

    code: str = "REVERSAL_ERROR"


class AlreadyReversedError(ReversalError):
    """Transaction has already been reversed."""

    code: str = "ALREADY_REVERSED"

    def __init__(self, transaction_id: UUID | str, reversed_by_id: UUID | str | None = None):
        self.transaction_id = str(transaction_id)
        self.reversed_by_id = str(reversed_by_id) if reversed_by_id else None
        super().__init__(f"Ledger transaction {transaction_id} is already reversed")


class CompensatingEntryNotReversibleError(ReversalError):
    """Compensating entries are final; reverse by recording a new movement."""

    code: str = "COMPENSATING_ENTRY_NOT_REVERSIBLE"

    def __init__(self, transaction_id: UUID | str, reversal_of_id: UUID | str):
        self.transaction_id = str(transaction_id)
        self.reversal_of_id = str(reversal_of_id)
        super().__init__(
            f"Ledger transaction {transaction_id} compensates {reversal_of_id} "
            "and cannot be reversed"
        )


# Consolidation


class ConsolidationError(AgencyFinanceError):
    """Base exception for period consolidation errors."""

    code: str = "CONSOLIDATION_ERROR"


class AlreadyConsolidatedError(ConsolidationError):
    """Period (or a transaction/finance record of it) is already consolidated."""

    code: str = "ALREADY_CONSOLIDATED"

    def __init__(self, period: str, detail: str | None = None):
        self.period = period
        self.detail = detail
        message = f"Period {period} is already consolidated"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class NothingToConsolidateError(ConsolidationError):
    """Period has no per-model finance records."""

    code: str = "NOTHING_TO_CONSOLIDATE"

    def __init__(self, period: str):
        self.period = period
        super().__init__(f"Period {period} has no model finance records")


class ConsolidatedPeriodNotFoundError(ConsolidationError):
    """No consolidated period row exists for the period."""

    code: str = "CONSOLIDATED_PERIOD_NOT_FOUND"

    def __init__(self, period: str):
        self.period = period
        super().__init__(f"No consolidated period record for {period}")


class InvalidPeriodTransitionError(ConsolidationError):
    """Period state machine does not allow the transition."""

    code: str = "INVALID_PERIOD_TRANSITION"

    def __init__(self, period: str, from_status: str, to_status: str):
        self.period = period
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Period {period} cannot move from {from_status} to {to_status}"
        )


# Concurrency


class ConcurrencyError(AgencyFinanceError):
    """Base exception for concurrency conflicts."""

    code: str = "CONCURRENCY_ERROR"


class ConcurrentConsolidationConflictError(ConcurrencyError):
    """Bank record changed under a consolidation; retry the whole operation."""

    code: str = "CONCURRENT_CONSOLIDATION_CONFLICT"

    def __init__(self, period: str, expected_version: int | None = None):
        self.period = period
        self.expected_version = expected_version
        super().__init__(
            f"Concurrent modification of the bank record while consolidating {period}"
        )


# Per-model finance


class ModelFinanceError(AgencyFinanceError):
    """Base exception for per-model finance record errors."""

    code: str = "MODEL_FINANCE_ERROR"


class ModelFinanceNotFoundError(ModelFinanceError):
    """Per-model finance record does not exist."""

    code: str = "MODEL_FINANCE_NOT_FOUND"

    def __init__(self, finance_id: UUID | str):
        self.finance_id = str(finance_id)
        super().__init__(f"Model finance record not found: {finance_id}")


class InvalidFinanceStatusTransitionError(ModelFinanceError):
    """Finance record status can only move forward."""

    code: str = "INVALID_FINANCE_STATUS_TRANSITION"

    def __init__(self, finance_id: UUID | str, from_status: str, to_status: str):
        self.finance_id = str(finance_id)
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Model finance {finance_id} cannot move from {from_status} to {to_status}"
        )


# Immutability


class ImmutabilityViolationError(AgencyFinanceError):
    """Attempted to modify or delete a frozen record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
