"""
Small value types shared by ledger and finance records.

``TransactionReference`` is the tagged pointer from a ledger transaction to
the record that caused it.  ``MetaValue`` is the closed JSON variant allowed
in the ``meta`` bags: scalars, lists and string-keyed dicts of the same.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Mapping, Union
from uuid import UUID

from agency_finance.exceptions import InvalidMetaError

MetaScalar = Union[str, int, bool, None]
MetaValue = Union[MetaScalar, list["MetaValue"], dict[str, "MetaValue"]]
Meta = dict[str, MetaValue]


class ReferenceKind(str, Enum):
    MODEL_FINANCE = "MODEL_FINANCE"
    FIXED_EXPENSE = "FIXED_EXPENSE"
    EMPLOYEE = "EMPLOYEE"
    MANUAL_ADJUSTMENT = "MANUAL_ADJUSTMENT"
    LEDGER_TRANSACTION = "LEDGER_TRANSACTION"


@dataclass(frozen=True, slots=True)
class TransactionReference:
    kind: ReferenceKind
    id: UUID

    @classmethod
    def model_finance(cls, finance_id: UUID) -> TransactionReference:
        return cls(ReferenceKind.MODEL_FINANCE, finance_id)

    @classmethod
    def fixed_expense(cls, expense_id: UUID) -> TransactionReference:
        return cls(ReferenceKind.FIXED_EXPENSE, expense_id)

    @classmethod
    def employee(cls, employee_id: UUID) -> TransactionReference:
        return cls(ReferenceKind.EMPLOYEE, employee_id)

    @classmethod
    def manual(cls, adjustment_id: UUID) -> TransactionReference:
        return cls(ReferenceKind.MANUAL_ADJUSTMENT, adjustment_id)

    @classmethod
    def transaction(cls, transaction_id: UUID) -> TransactionReference:
        return cls(ReferenceKind.LEDGER_TRANSACTION, transaction_id)


def clean_meta(meta: Mapping[str, object] | None) -> Meta:
    """Validate a meta bag, converting UUIDs and enums to strings.

    Raises:
        InvalidMetaError: If a value falls outside the JSON variant (floats included).
    """
    if meta is None:
        return {}
    if not isinstance(meta, Mapping):
        raise InvalidMetaError("<root>", f"must be a mapping, got {type(meta).__name__}")
    return {str(k): _clean_value(v, str(k)) for k, v in meta.items()}


def _clean_value(value: object, path: str) -> MetaValue:
    if isinstance(value, Enum):
        return value.value
    if value is None or isinstance(value, (str, bool, int)):
        return value
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, (list, tuple)):
        return [_clean_value(v, f"{path}[{i}]") for i, v in enumerate(value)]
    if isinstance(value, Mapping):
        return {str(k): _clean_value(v, f"{path}.{k}") for k, v in value.items()}
    raise InvalidMetaError(path, f"unsupported type {type(value).__name__}")
