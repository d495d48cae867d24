"""
Structured JSON logging for the commerce kernel.

Every kernel logger lives under the ``commerce_kernel`` namespace and emits
one JSON object per line.  Request-scoped fields (correlation id, actor,
transaction kind, transaction id, document number) are held in a
context variable so threads serving different calls never mix them.

    with LogContext.bind(correlation_id=cid, actor_id=str(actor), kind="sale"):
        logger.info("sale_create_started", extra={"line_count": 2})

produces::

    {"ts": "...", "level": "INFO", "logger": "commerce_kernel.services.transaction",
     "message": "sale_create_started", "correlation_id": "...", "actor_id": "...",
     "kind": "sale", "line_count": 2}
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
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Any
from uuid import UUID

ROOT_LOGGER_NAME = "commerce_kernel"

CONTEXT_FIELDS: tuple[str, ...] = (
    "correlation_id",
    "actor_id",
    "kind",
    "transaction_id",
    "document_number",
)

_EMPTY: Mapping[str, str] = MappingProxyType({})
_context: ContextVar[Mapping[str, str]] = ContextVar(
    "commerce_log_context", default=_EMPTY
)


def _checked(fields: Mapping[str, Any]) -> dict[str, str]:
    unknown = set(fields) - set(CONTEXT_FIELDS)
    if unknown:
        raise ValueError(f"Unknown log context fields: {sorted(unknown)}")
    return {key: str(val) for key, val in fields.items() if val is not None}


class LogContext:
    """Call-scoped log fields backed by a single ContextVar."""

    @staticmethod
    def set(**fields: Any) -> None:
        """Merge fields into the current context.  ``None`` values are ignored."""
        merged = dict(_context.get())
        merged.update(_checked(fields))
        _context.set(MappingProxyType(merged))

    @staticmethod
    def get_all() -> dict[str, str]:
        return dict(_context.get())

    @staticmethod
    def clear() -> None:
        _context.set(_EMPTY)

    @staticmethod
    @contextmanager
    def bind(**fields: Any) -> Iterator[None]:
        """Set fields for the duration of the block, then restore the previous context."""
        merged = dict(_context.get())
        merged.update(_checked(fields))
        token = _context.set(MappingProxyType(merged))
        try:
            yield
        finally:
            _context.reset(token)


# Attributes every LogRecord carries; anything else came in through ``extra``.
_RECORD_ATTRS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "asctime", "taskName"}


def _json_default(obj: Any) -> Any:
    if isinstance(obj, (UUID, Decimal)):
        return str(obj)
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, Enum):
        return obj.value
    return str(obj)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    code = getattr(exc, "code", None)
    if code is not None:
        fields["exc_code"] = code
    # Kernel errors expose their structured attributes (field, item_id, ...)
    for name, value in vars(exc).items():
        if not name.startswith("_") and name != "code":
            fields[f"exc_{name}"] = value
    return fields


class StructuredFormatter(logging.Formatter):
    """One JSON object per record: base fields, context, extras, exception."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **_context.get(),
        }
        for key, value in vars(record).items():
            if key not in _RECORD_ATTRS:
                payload.setdefault(key, value)

        if record.exc_info and record.exc_info[1] is not None:
            payload.update(_exception_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_json_default)


def get_logger(name: str) -> logging.Logger:
    """Logger named ``commerce_kernel.<name>``."""
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


_configure_lock = threading.Lock()


def _installed_handlers(root: logging.Logger) -> list[logging.Handler]:
    return [h for h in root.handlers if getattr(h, "_commerce_kernel", False)]


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Attach the JSON handler to the ``commerce_kernel`` logger.

    Idempotent: a second call leaves the existing handler in place.  The
    kernel logger does not propagate, so host applications that configure
    the root logger are unaffected.
    """
    root = logging.getLogger(ROOT_LOGGER_NAME)
    with _configure_lock:
        if _installed_handlers(root):
            return
        installed = handler or logging.StreamHandler(stream or sys.stderr)
        installed._commerce_kernel = True
        installed.setFormatter(StructuredFormatter())
        root.addHandler(installed)
        root.setLevel(level)
        root.propagate = False


def reset_logging() -> None:
    """Remove the installed handler.  Tests only."""
    root = logging.getLogger(ROOT_LOGGER_NAME)
    with _configure_lock:
        for h in _installed_handlers(root):
            root.removeHandler(h)
        root.setLevel(logging.WARNING)
