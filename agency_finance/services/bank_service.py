"""
BankService -- the only writer of the AgencyBank singleton.

Responsibility:
    Exposes atomic increments of the bank's counters and the guarded
    movement -> consolidated transfer.  No caller ever assigns a balance
    field directly; every write is one ``UPDATE ... SET col = col + :delta``
    evaluated by the database against the current row value, so concurrent
    ``record`` calls cannot lose updates.

Concurrency:
    ``lock()`` takes ``SELECT ... FOR UPDATE`` on the bank row.  Ledger
    record/reverse and consolidation call it first, which serializes them
    for the rest of the caller's transaction (period-scoped state checks
    happen under the lock).  The transfer is additionally a compare-and-swap
    on ``version``.

Failure modes:
    - ConcurrentConsolidationConflictError when the version moved between
      the consolidation read and its transfer.
    - InvalidAmountError for non-positive projection amounts.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from agency_finance.domain.dtos import BankState
from agency_finance.domain.money import Money, require_positive
from agency_finance.exceptions import ConcurrentConsolidationConflictError, ValidationError
from agency_finance.logging_config import get_logger
from agency_finance.models.agency_bank import (
    BANK_COMPANY,
    BANK_KEY,
    SYSTEM_ACTOR_ID,
    AgencyBank,
)
from agency_finance.services.base import BaseService

logger = get_logger("services.bank")


class BankService(BaseService[AgencyBank]):
    """Atomic operations on the AgencyBank singleton."""

    def _select(self, *, for_update: bool):
        stmt = select(AgencyBank).where(AgencyBank.bank_key == BANK_KEY)
        if for_update:
            stmt = stmt.with_for_update()
        return stmt.execution_options(populate_existing=True)

    def ensure_bank(self, actor_id: UUID = SYSTEM_ACTOR_ID) -> AgencyBank:
        """Return the bank row, creating it on first use."""
        bank = self._existing()
        if bank is not None:
            return bank
        bank = AgencyBank(
            bank_key=BANK_KEY,
            company=BANK_COMPANY,
            consolidated_usd=0,
            movement_usd=0,
            fixed_expense_projection_usd=0,
            current_period=None,
            consolidated_period_count=0,
            historic_model_count=0,
            historic_sales_count=0,
            version=1,
            meta={},
            created_by_id=actor_id,
        )
        try:
            with self.session.begin_nested():
                self.session.add(bank)
        except IntegrityError:
            # uq_agency_bank_key: another transaction created the row first
            existing = self.session.execute(self._select(for_update=False)).scalar_one_or_none()
            if existing is None:
                raise
            logger.info("bank_initialized_concurrently", extra={"bank_key": BANK_KEY})
            return existing
        logger.info("bank_initialized", extra={"bank_key": BANK_KEY})
        return bank

    def _existing(self) -> AgencyBank | None:
        return self.session.execute(self._select(for_update=False)).scalar_one_or_none()

    def lock(self) -> AgencyBank:
        """Lock the bank row for the rest of the caller's transaction."""
        bank = self.session.execute(self._select(for_update=True)).scalar_one_or_none()
        if bank is None:
            self.ensure_bank()
            bank = self.session.execute(self._select(for_update=True)).scalar_one()
        return bank

    def get_state(self) -> BankState:
        """Fresh read of the bank row, bypassing the identity map."""
        bank = self.session.execute(self._select(for_update=False)).scalar_one_or_none()
        if bank is None:
            bank = self.ensure_bank()
        return bank.to_dto()

    def adjust_movement(self, delta: int) -> None:
        """Atomically add ``delta`` (scaled, signed) to the movement balance."""
        self._increment(movement_usd=AgencyBank.movement_usd + delta)
        logger.debug("bank_movement_adjusted", extra={"delta": delta})

    def adjust_fixed_expense_projection(self, delta: int) -> None:
        self._increment(
            fixed_expense_projection_usd=AgencyBank.fixed_expense_projection_usd + delta
        )

    def apply_fixed_expense_projection(self, amount: Money, actor_id: UUID) -> BankState:
        """Add a projected fixed expense to the simulation field."""
        require_positive(amount, "projected fixed expense")
        self.lock()
        self.adjust_fixed_expense_projection(amount.scaled)
        logger.info(
            "fixed_expense_projection_applied",
            extra={"amount": str(amount.amount), "actor_id": str(actor_id)},
        )
        return self.get_state()

    def correct_consolidated(self, delta: Money, reason: str, actor_id: UUID) -> BankState:
        """Explicit correction of consolidated capital (audited by logging)."""
        if not reason or not reason.strip():
            raise ValidationError("A correction reason is required")
        self.lock()
        self._increment(consolidated_usd=AgencyBank.consolidated_usd + delta.scaled)
        logger.warning(
            "bank_consolidated_corrected",
            extra={
                "delta": str(delta.amount),
                "reason": reason,
                "actor_id": str(actor_id),
            },
        )
        return self.get_state()

    def transfer_to_consolidated(
        self,
        amount: int,
        *,
        expected_version: int,
        period_code: str,
        next_period_code: str,
        model_count: int,
        sales_count: int,
        consolidated_at: datetime,
    ) -> None:
        """
        Move ``amount`` from movement to consolidated capital in one statement.

        The WHERE clause compares ``version`` with the value read when the
        consolidation started; zero affected rows means another writer got in
        between and the whole consolidation must be retried.
        """
        result = self.session.execute(
            update(AgencyBank)
            .where(AgencyBank.bank_key == BANK_KEY)
            .where(AgencyBank.version == expected_version)
            .values(
                consolidated_usd=AgencyBank.consolidated_usd + amount,
                movement_usd=AgencyBank.movement_usd - amount,
                current_period=next_period_code,
                last_consolidated_at=consolidated_at,
                consolidated_period_count=AgencyBank.consolidated_period_count + 1,
                historic_model_count=AgencyBank.historic_model_count + model_count,
                historic_sales_count=AgencyBank.historic_sales_count + sales_count,
                version=AgencyBank.version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.warning(
                "consolidation_version_conflict",
                extra={"period": period_code, "expected_version": expected_version},
            )
            raise ConcurrentConsolidationConflictError(period_code, expected_version)

    def _increment(self, **values) -> None:
        self.ensure_bank()
        self.session.execute(
            update(AgencyBank)
            .where(AgencyBank.bank_key == BANK_KEY)
            .values(version=AgencyBank.version + 1, **values)
            .execution_options(synchronize_session=False)
        )
