"""
LedgerService -- append-only money movements paired with the bank balance.

Responsibility:
    Records INGRESO/EGRESO transactions and reverses them by compensating
    entry.  Each write and its movement-balance adjustment happen in the
    caller's database transaction, so the ledger and the bank can never be
    observed out of step.

Flow (record)::

    lock bank row --> period not consolidated? --> INSERT transaction
                  --> UPDATE bank SET movement_usd = movement_usd +/- amount

Invariants enforced:
    - amount > 0; the sign lives in the transaction type.
    - Transactions of a CONSOLIDADO/CERRADO period are never created or
      reversed.
    - A reversal never edits the original's amount: it inserts an
      inverse-type AJUSTE_MANUAL entry and marks the original REVERTIDO.
      ``reversal_of_id`` is unique, so an original is compensated once.

Failure modes:
    - InvalidAmountError, ValidationError for bad input.
    - AlreadyConsolidatedError, AlreadyReversedError,
      CompensatingEntryNotReversibleError, TransactionNotFoundError.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from agency_finance.domain.clock import Clock
from agency_finance.domain.dtos import PeriodSummary, ReversalResult, TransactionInfo
from agency_finance.domain.money import Money, require_positive
from agency_finance.domain.periods import PeriodKey
from agency_finance.domain.values import ReferenceKind, TransactionReference, clean_meta
from agency_finance.exceptions import (
    AlreadyConsolidatedError,
    AlreadyReversedError,
    CompensatingEntryNotReversibleError,
    TransactionNotFoundError,
    ValidationError,
)
from agency_finance.logging_config import get_logger
from agency_finance.models.consolidated_period import FROZEN_STATUSES, ConsolidatedPeriod
from agency_finance.models.ledger_transaction import (
    LedgerTransaction,
    TransactionOrigin,
    TransactionStatus,
    TransactionType,
)
from agency_finance.selectors.ledger_selector import LedgerSelector
from agency_finance.services.bank_service import BankService
from agency_finance.services.base import BaseService

logger = get_logger("services.ledger")

REVERSAL_PREFIX = "REVERSAL: "
_DESCRIPTION_MAX = 500


class LedgerService(BaseService[LedgerTransaction]):
    """
    Write side of the ledger.

    Contract:
        Every public method runs inside the caller's transaction and only
        flushes.  ``record`` and ``reverse`` lock the bank row first.
    """

    def __init__(
        self,
        session,
        clock: Clock | None = None,
        bank_service: BankService | None = None,
    ):
        super().__init__(session, clock)
        self.bank = bank_service or BankService(session, self.clock)
        self._selector = LedgerSelector(session)

    def record(
        self,
        transaction_type: TransactionType | str,
        origin: TransactionOrigin | str,
        amount: Money,
        period: PeriodKey | str,
        reference: TransactionReference,
        description: str,
        actor_id: UUID,
        *,
        model_id: UUID | None = None,
        notes: str | None = None,
        meta: dict | None = None,
    ) -> TransactionInfo:
        """
        Append an EN_MOVIMIENTO transaction and move the bank balance.

        Raises:
            InvalidAmountError: amount is zero or negative.
            AlreadyConsolidatedError: the period is already consolidated.
        """
        txn_type = TransactionType(transaction_type)
        txn_origin = TransactionOrigin(origin)
        key = PeriodKey.coerce(period)
        require_positive(amount, "transaction amount")
        if not description or not description.strip():
            raise ValidationError("A transaction description is required")
        cleaned_meta = clean_meta(meta)

        self.bank.lock()
        self._ensure_period_open(key)

        txn = LedgerTransaction(
            period=key.code,
            month=key.month,
            year=key.year,
            transaction_type=txn_type.value,
            origin=txn_origin.value,
            amount_usd=amount.scaled,
            reference_kind=reference.kind.value,
            reference_id=reference.id,
            model_id=model_id,
            description=description.strip()[:_DESCRIPTION_MAX],
            notes=notes,
            status=TransactionStatus.EN_MOVIMIENTO.value,
            recorded_at=self.clock.now(),
            meta=cleaned_meta,
            created_by_id=actor_id,
        )
        self.session.add(txn)
        self.session.flush()
        self.bank.adjust_movement(txn.signed_amount)

        logger.info(
            "transaction_recorded",
            extra={
                "transaction_id": str(txn.id),
                "period": key.code,
                "transaction_type": txn_type.value,
                "origin": txn_origin.value,
                "amount": str(amount.amount),
                "actor_id": str(actor_id),
            },
        )
        return txn.to_dto()

    def reverse(self, transaction_id: UUID, reason: str, actor_id: UUID) -> ReversalResult:
        """
        Cancel a live transaction with a compensating entry.

        Guards are checked in order: already reversed, consolidated, then
        compensating entries (which are never reversed themselves).
        """
        if not reason or not reason.strip():
            raise ValidationError("A reversal reason is required")

        self.bank.lock()
        original = self.session.get(
            LedgerTransaction, transaction_id, populate_existing=True
        )
        if original is None:
            raise TransactionNotFoundError(transaction_id)

        if original.status == TransactionStatus.REVERTIDO:
            raise AlreadyReversedError(original.id, original.reversed_by_id)
        if original.status == TransactionStatus.CONSOLIDADO:
            raise AlreadyConsolidatedError(
                original.period, f"transaction {original.id} cannot be reversed"
            )
        if original.reversal_of_id is not None:
            raise CompensatingEntryNotReversibleError(original.id, original.reversal_of_id)

        now = self.clock.now()
        compensation = LedgerTransaction(
            period=original.period,
            month=original.month,
            year=original.year,
            transaction_type=TransactionType(original.transaction_type).inverse().value,
            origin=TransactionOrigin.AJUSTE_MANUAL.value,
            amount_usd=original.amount_usd,
            reference_kind=ReferenceKind.LEDGER_TRANSACTION.value,
            reference_id=original.id,
            model_id=original.model_id,
            description=(REVERSAL_PREFIX + original.description)[:_DESCRIPTION_MAX],
            notes=reason.strip(),
            status=TransactionStatus.EN_MOVIMIENTO.value,
            recorded_at=now,
            reversal_of_id=original.id,
            meta={
                "reversed_transaction_id": str(original.id),
                "reversal_reason": reason.strip(),
            },
            created_by_id=actor_id,
        )
        self.session.add(compensation)
        try:
            self.session.flush()
        except IntegrityError as exc:
            logger.warning(
                "reversal_conflict",
                extra={"transaction_id": str(original.id)},
            )
            raise AlreadyReversedError(original.id) from exc

        original.status = TransactionStatus.REVERTIDO.value
        original.reversed_by_id = compensation.id
        original.reversed_at = now
        original.reversal_reason = reason.strip()
        original.updated_by_id = actor_id
        self.session.flush()

        self.bank.adjust_movement(compensation.signed_amount)

        logger.info(
            "transaction_reversed",
            extra={
                "transaction_id": str(original.id),
                "compensation_id": str(compensation.id),
                "period": original.period,
                "amount": str(Money(original.amount_usd).amount),
                "actor_id": str(actor_id),
            },
        )
        return ReversalResult(original=original.to_dto(), compensation=compensation.to_dto())

    def settle_fixed_expense_projection(
        self, period: PeriodKey | str, actor_id: UUID
    ) -> TransactionInfo:
        """
        Turn the bank's projected fixed expenses into a real ledger expense.

        Records one EGRESO CONSOLIDACION_COSTOS for the projected amount and
        resets the projection to zero.
        """
        bank = self.bank.lock()
        projected = Money(bank.fixed_expense_projection_usd)
        if not projected.is_positive:
            raise ValidationError("There are no projected fixed expenses to settle")

        info = self.record(
            TransactionType.EGRESO,
            TransactionOrigin.CONSOLIDACION_COSTOS,
            projected,
            period,
            TransactionReference.manual(bank.id),
            "Fixed expense settlement",
            actor_id,
            meta={"projected_amount": projected.scaled},
        )
        self.bank.adjust_fixed_expense_projection(-projected.scaled)
        logger.info(
            "fixed_expense_projection_settled",
            extra={"period": info.period, "amount": str(projected.amount)},
        )
        return info

    def get_transaction(self, transaction_id: UUID) -> TransactionInfo:
        return self._selector.get(transaction_id)

    def summarize_period(self, period: PeriodKey | str) -> PeriodSummary:
        return self._selector.summarize_period(period)

    def movement_balance(self, period: PeriodKey | str | None = None) -> Money:
        return self._selector.movement_balance(period)

    def mark_period_consolidated(
        self, period: PeriodKey | str, actor_id: UUID, consolidated_at: datetime
    ) -> int:
        """
        Flip the period's live transactions to CONSOLIDADO.

        Reversed transactions keep their status but receive the
        consolidation stamp, since their effect on the balance (cancelled by
        the compensation) has been transferred too.  Returns the number of
        transactions flipped.  Only the consolidation service calls this.
        """
        key = PeriodKey.coerce(period)
        flipped = self.session.execute(
            update(LedgerTransaction)
            .where(
                LedgerTransaction.period == key.code,
                LedgerTransaction.status == TransactionStatus.EN_MOVIMIENTO.value,
                LedgerTransaction.consolidated_period_code.is_(None),
            )
            .values(
                status=TransactionStatus.CONSOLIDADO.value,
                consolidated_at=consolidated_at,
                consolidated_by_id=actor_id,
                consolidated_period_code=key.code,
                updated_by_id=actor_id,
            )
            .execution_options(synchronize_session="fetch")
        ).rowcount
        self.session.execute(
            update(LedgerTransaction)
            .where(
                LedgerTransaction.period == key.code,
                LedgerTransaction.status == TransactionStatus.REVERTIDO.value,
                LedgerTransaction.consolidated_period_code.is_(None),
            )
            .values(consolidated_period_code=key.code, updated_by_id=actor_id)
            .execution_options(synchronize_session="fetch")
        )
        return flipped

    def _ensure_period_open(self, key: PeriodKey) -> None:
        status = self.session.execute(
            select(ConsolidatedPeriod.status).where(ConsolidatedPeriod.period == key.code)
        ).scalar_one_or_none()
        if status is not None and status in {s.value for s in FROZEN_STATUSES}:
            raise AlreadyConsolidatedError(key.code, "no new transactions may be recorded")
