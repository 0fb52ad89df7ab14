"""
Structured JSON logging for the billing kernel.

Every record under the ``billing_kernel`` logger is written as one JSON
object per line.  Besides the message and any ``extra`` fields, a record
carries the billing context bound by the caller: which property, utility
bill, billing period and billing month the work belongs to.

    with LogContext.bind(property_id=prop.id, billing_month=BillingMonth(2024, 6)):
        logger.info("billing_period_calculated", extra={"tenant_count": 3})

    {"ts": "...", "level": "INFO", "logger": "billing_kernel.services.billing_period",
     "message": "billing_period_calculated", "property_id": "...",
     "billing_month": "2024-06", "tenant_count": 3}
"""

__all__ = [
    "CONTEXT_FIELDS",
    "StructuredFormatter",
    "LogContext",
    "get_logger",
    "configure_logging",
    "reset_logging",
]

import contextlib
import json
import logging
import sys
import threading
from collections.abc import Iterator
from contextvars import ContextVar
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

# ---------------------------------------------------------------------------
# Billing context
# ---------------------------------------------------------------------------

CONTEXT_FIELDS: tuple[str, ...] = (
    "correlation_id",
    "actor_id",
    "property_id",
    "billing_month",
    "utility_entry_id",
    "billing_period_id",
)

_context_vars: dict[str, ContextVar[str | None]] = {
    name: ContextVar(f"billing_log_{name}", default=None) for name in CONTEXT_FIELDS
}


def _context_value(value: Any) -> str:
    # BillingMonth and similar value objects log as their label
    label = getattr(value, "label", None)
    if isinstance(label, str):
        return label
    return str(value)


class LogContext:
    """
    Billing context attached to every record, held in ``ContextVar``s so
    threads and tasks each see their own values.
    """

    @staticmethod
    def set(**fields: Any) -> None:
        """Set context fields; None values are left untouched."""
        unknown = set(fields) - set(CONTEXT_FIELDS)
        if unknown:
            raise TypeError(f"unknown log context field(s): {', '.join(sorted(unknown))}")
        for name, value in fields.items():
            if value is not None:
                _context_vars[name].set(_context_value(value))

    @staticmethod
    def get_all() -> dict[str, str]:
        """Bound fields, in CONTEXT_FIELDS order."""
        ctx: dict[str, str] = {}
        for name in CONTEXT_FIELDS:
            value = _context_vars[name].get()
            if value is not None:
                ctx[name] = value
        return ctx

    @staticmethod
    def clear() -> None:
        for var in _context_vars.values():
            var.set(None)

    @staticmethod
    @contextlib.contextmanager
    def bind(**fields: Any) -> Iterator[type["LogContext"]]:
        """
        Bind fields for the duration of a block and restore the previous
        values on exit.  Unknown names and None values are skipped, so
        callers can pass ids that may not exist yet.
        """
        tokens = [
            (_context_vars[name], _context_vars[name].set(_context_value(value)))
            for name, value in fields.items()
            if name in _context_vars and value is not None
        ]
        try:
            yield LogContext
        finally:
            for var, token in reversed(tokens):
                var.reset(token)


# ---------------------------------------------------------------------------
# JSON formatter
# ---------------------------------------------------------------------------

_STDLIB_KEYS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None)).keys()
) | {"message", "taskName"}


def _json_default(obj: Any) -> Any:
    """Money stays exact: Decimals are written as strings, never floats."""
    if isinstance(obj, Decimal):
        return str(obj)
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, UUID):
        return str(obj)
    return _context_value(obj)


def _error_fields(exc: BaseException) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    code = getattr(exc, "code", None)
    if code is not None:
        fields["exc_code"] = code
    # Context attributes of BillingKernelError subclasses (field, value, operation, ...)
    for key, value in vars(exc).items():
        if not key.startswith("_") and key != "code":
            fields[f"exc_{key}"] = value
    return fields


class StructuredFormatter(logging.Formatter):
    """One JSON object per record: core fields, billing context, extras, error."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(LogContext.get_all())

        for key, value in vars(record).items():
            if key not in _STDLIB_KEYS and key not in payload:
                payload[key] = value

        if record.exc_info and record.exc_info[1] is not None:
            payload.update(_error_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_json_default)


# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------

_LOGGER_PREFIX = "billing_kernel"

_configured = False
_lock = threading.Lock()


def get_logger(name: str) -> logging.Logger:
    """Logger ``billing_kernel.<name>``."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """Attach a JSON handler to the billing_kernel logger; later calls are no-ops."""
    global _configured
    with _lock:
        if _configured:
            return
        _configured = True

    billing_logger = logging.getLogger(_LOGGER_PREFIX)
    billing_logger.setLevel(level)
    billing_logger.propagate = False

    target = handler if handler is not None else logging.StreamHandler(stream or sys.stderr)
    target.setFormatter(StructuredFormatter())
    billing_logger.addHandler(target)


def reset_logging() -> None:
    """Drop handlers and the configured flag. Tests only."""
    global _configured
    with _lock:
        _configured = False
    billing_logger = logging.getLogger(_LOGGER_PREFIX)
    billing_logger.handlers.clear()
    billing_logger.setLevel(logging.WARNING)
