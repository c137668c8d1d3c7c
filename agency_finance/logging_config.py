"""
Structured logging for the agency finance core.

Every record leaves the ``agency_finance`` logger tree as one JSON object:

    {"ts": "...", "level": "INFO", "logger": "agency_finance.services.ledger",
     "message": "transaction_recorded", "period": "2025-10", "amount": "250.00000"}

Messages are snake_case event names; details travel in ``extra={...}``.
Fields bound through ``LogContext`` (correlation id, actor, period,
transaction, operation) are merged into every record emitted while they are
bound, including records from nested service calls.

When a record carries an ``AgencyFinanceError``, its ``code`` and public
attributes are flattened into ``exc_*`` keys so failures can be filtered by
code without parsing the message.
"""

__all__ = [
    "StructuredFormatter",
    "LogContext",
    "get_logger",
    "configure_logging",
    "reset_logging",
]

import json
import logging
import sys
import threading
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Iterator
from uuid import UUID

ROOT_LOGGER_NAME = "agency_finance"

CONTEXT_FIELDS = (
    "correlation_id",
    "actor_id",
    "period",
    "transaction_id",
    "operation",
)

_context: ContextVar[dict[str, str]] = ContextVar("agency_finance_log_context", default={})


class LogContext:
    """Log fields scoped to the current thread or task."""

    @staticmethod
    def set(**fields: str | None) -> None:
        """Update the known fields that are not None; unknown names raise."""
        unknown = set(fields) - set(CONTEXT_FIELDS)
        if unknown:
            raise TypeError(f"Unknown log context fields: {sorted(unknown)}")
        current = dict(_context.get())
        current.update({k: v for k, v in fields.items() if v is not None})
        _context.set(current)

    @staticmethod
    def get_all() -> dict[str, str]:
        return dict(_context.get())

    @staticmethod
    def clear() -> None:
        _context.set({})

    @staticmethod
    @contextmanager
    def bind(**fields: Any) -> Iterator[None]:
        """
        Bind fields for the duration of a ``with`` block.

        Values are stringified; names outside the known field set and None
        values are ignored.  The previous context is restored on exit.
        """
        bound = dict(_context.get())
        for name in CONTEXT_FIELDS:
            value = fields.get(name)
            if value is not None:
                bound[name] = str(value)
        token = _context.set(bound)
        try:
            yield
        finally:
            _context.reset(token)


_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _to_json(value: Any) -> Any:
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    # Money, Percentage, PeriodKey render through __str__
    return str(value)


class StructuredFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }
        for key, value in vars(record).items():
            if key not in _RESERVED_ATTRS:
                payload.setdefault(key, value)

        if record.exc_info and record.exc_info[1] is not None:
            payload.update(self._exception_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_to_json)

    @staticmethod
    def _exception_fields(exc: BaseException) -> dict[str, Any]:
        fields: dict[str, Any] = {
            "exc_type": type(exc).__name__,
            "exc_message": str(exc),
        }
        code = getattr(exc, "code", None)
        if code is not None:
            fields["exc_code"] = code
        for name, value in vars(exc).items():
            if name.startswith("_") or name == "code":
                continue
            fields[f"exc_{name}"] = value
        return fields


def get_logger(name: str) -> logging.Logger:
    """Logger named ``agency_finance.<name>``."""
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


_configured = False
_configure_lock = threading.Lock()


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Attach a JSON handler to the ``agency_finance`` logger.

    Only the first call has an effect until ``reset_logging()`` runs.
    Records do not propagate to the root logger, so host applications keep
    their own formatting for everything else.
    """
    global _configured
    with _configure_lock:
        if _configured:
            return
        _configured = True

        root = logging.getLogger(ROOT_LOGGER_NAME)
        root.setLevel(level.upper() if isinstance(level, str) else level)
        root.propagate = False
        if handler is None:
            handler = logging.StreamHandler(stream or sys.stderr)
        handler.setFormatter(StructuredFormatter())
        root.addHandler(handler)


def reset_logging() -> None:
    """Drop the JSON handlers and allow ``configure_logging`` again. Tests only."""
    global _configured
    with _configure_lock:
        _configured = False
        root = logging.getLogger(ROOT_LOGGER_NAME)
        for handler in list(root.handlers):
            if isinstance(handler.formatter, StructuredFormatter):
                root.removeHandler(handler)
        root.setLevel(logging.WARNING)
