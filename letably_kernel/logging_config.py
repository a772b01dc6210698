"""
Ledger logging -- one JSON object per log line.

Every record under the ``letably_kernel`` logger tree is written as::

    {"ts": "2025-08-13T09:30:00.123456+00:00", "level": "INFO",
     "logger": "letably_kernel.services.ledger", "event": "payment_recorded",
     "operation": "record_payment", "agency_id": "...", "schedule_id": "...",
     "payment_id": "...", "data": {"amount": "10.00", "total_paid": "10.00"}}

The identifiers an operator filters by (operation, agency, tenancy,
schedule, payment) sit at the top level.  Anything else a call site passes
in ``extra`` lands under ``data``.  A logged exception becomes an ``error``
object carrying the LetablyError ``code`` and its context attributes.

``operation`` comes from ``operation_scope``, entered by the transaction
runner for the duration of one PaymentLedger call.  The agency id is never
ambient: call sites always pass it in ``extra``.
"""

import json
import logging
import sys
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

__all__ = [
    "LedgerFormatter",
    "configure_logging",
    "get_logger",
    "operation_scope",
    "reset_logging",
]

ROOT_LOGGER = "letably_kernel"

ENVELOPE_KEYS = ("operation", "agency_id", "tenancy_id", "schedule_id", "payment_id")

# Attributes every LogRecord has; anything else on a record came from ``extra``
_RECORD_ATTRS = frozenset(logging.makeLogRecord({}).__dict__) | {
    "message",
    "asctime",
    "taskName",
}

_operation: ContextVar[str | None] = ContextVar("ledger_operation", default=None)


@contextmanager
def operation_scope(operation: str) -> Iterator[None]:
    """Tag every record logged inside the block with ``operation``."""
    token = _operation.set(operation)
    try:
        yield
    finally:
        _operation.reset(token)


def _jsonable(value: Any) -> Any:
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (tuple, set, frozenset)):
        return list(value)
    return str(value)


def _error(exc: BaseException) -> dict[str, Any]:
    error: dict[str, Any] = {"type": type(exc).__name__, "message": str(exc)}
    code = getattr(exc, "code", None)
    if code is not None:
        error["code"] = code
    context = {k: v for k, v in vars(exc).items() if not k.startswith("_")}
    if context:
        error["context"] = context
    return error


class LedgerFormatter(logging.Formatter):
    """Renders a record as the ledger's JSON envelope."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "event": record.getMessage(),
        }
        operation = _operation.get()
        if operation is not None:
            entry["operation"] = operation

        data: dict[str, Any] = {}
        for key, value in record.__dict__.items():
            if key in _RECORD_ATTRS:
                continue
            if key in ENVELOPE_KEYS:
                entry[key] = value
            else:
                data[key] = value
        if data:
            entry["data"] = data

        if record.exc_info and record.exc_info[1] is not None:
            entry["error"] = _error(record.exc_info[1])
            entry["error"]["traceback"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=_jsonable, ensure_ascii=False)


def get_logger(name: str) -> logging.Logger:
    """``get_logger("services.ledger")`` -> ``letably_kernel.services.ledger``."""
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


_lock = threading.Lock()
_handler: logging.Handler | None = None


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Attach the JSON handler to the ledger's logger tree.

    Only the first call has any effect; the engine calls this on start-up
    and an application that configured logging earlier keeps its choice.
    """
    global _handler
    with _lock:
        if _handler is not None:
            return
        _handler = handler or logging.StreamHandler(stream or sys.stderr)
        _handler.setFormatter(LedgerFormatter())
        root = logging.getLogger(ROOT_LOGGER)
        root.setLevel(level)
        root.propagate = False
        root.addHandler(_handler)


def reset_logging() -> None:
    """Detach the handler installed by configure_logging.  Tests only."""
    global _handler
    with _lock:
        root = logging.getLogger(ROOT_LOGGER)
        if _handler is not None:
            root.removeHandler(_handler)
            _handler = None
        root.setLevel(logging.WARNING)
        root.propagate = True
