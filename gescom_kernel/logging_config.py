"""
Structured JSON logging for the document engine.

Every record is one JSON line.  Fields bound through LogContext (the
correlation id of a save, the document being worked on) are merged into
each record emitted while they are bound, so a save or an amendment can be
followed across the allocator, the calculator and the stock ledger.
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
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Iterator
from uuid import UUID

_LOGGER_PREFIX = "gescom_kernel"


class LogContext:
    """
    Log fields scoped to the current thread or task.

    Known fields: correlation_id, document_type, document_id,
    document_number.  Values are stored as strings.
    """

    _vars: dict[str, ContextVar[str | None]] = {
        name: ContextVar(f"gescom_log_{name}", default=None)
        for name in ("correlation_id", "document_type", "document_id", "document_number")
    }

    @classmethod
    def _var(cls, name: str) -> ContextVar[str | None]:
        try:
            return cls._vars[name]
        except KeyError:
            raise TypeError(f"Unknown log context field: {name}") from None

    @classmethod
    def set(cls, **fields: Any) -> None:
        """Set fields for the rest of the current context.  None values are skipped."""
        for name, value in fields.items():
            var = cls._var(name)
            if value is not None:
                var.set(str(value))

    @classmethod
    def get_all(cls) -> dict[str, str]:
        return {name: var.get() for name, var in cls._vars.items() if var.get() is not None}

    @classmethod
    def clear(cls) -> None:
        for var in cls._vars.values():
            var.set(None)

    @classmethod
    @contextmanager
    def bind(cls, **fields: Any) -> Iterator[type["LogContext"]]:
        """Set fields for the duration of a ``with`` block, then restore them."""
        tokens = [
            (cls._var(name), cls._var(name).set(str(value)))
            for name, value in fields.items()
            if value is not None
        ]
        try:
            yield cls
        finally:
            for var, token in reversed(tokens):
                var.reset(token)


_STDLIB_KEYS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None)).keys()
) | {"message", "taskName"}


def _json_default(obj: Any) -> Any:
    # Amounts keep their scale: Decimal("1.000") logs as "1.000"
    if isinstance(obj, (Decimal, UUID)):
        return str(obj)
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, Enum):
        return obj.value
    return str(obj)


class StructuredFormatter(logging.Formatter):
    """Formats each log record as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(LogContext.get_all())

        for key, val in vars(record).items():
            if key not in _STDLIB_KEYS and key not in payload:
                payload[key] = val

        if record.exc_info and record.exc_info[1] is not None:
            exc = record.exc_info[1]
            payload["exc_type"] = type(exc).__name__
            payload["exc_message"] = str(exc)
            if hasattr(exc, "code"):
                payload["exc_code"] = exc.code
            # GescomError subclasses keep their arguments as attributes
            for k, v in vars(exc).items():
                if not k.startswith("_") and k not in ("args", "code"):
                    payload[f"exc_{k}"] = v
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_json_default)


def get_logger(name: str) -> logging.Logger:
    """Logger under the gescom_kernel namespace, e.g. ``services.stock_ledger``."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


_configured = False
_lock = threading.Lock()


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Attach a JSON handler to the gescom_kernel logger.

    Only the first call has an effect; init_engine_from_url() calls this
    with the defaults, so configure earlier to choose the level or handler.
    ``level`` accepts a logging constant or its name ("DEBUG").
    """
    global _configured
    with _lock:
        if _configured:
            return
        _configured = True

    if isinstance(level, str):
        level = logging.getLevelName(level.upper())

    root_logger = logging.getLogger(_LOGGER_PREFIX)
    root_logger.setLevel(level)
    root_logger.propagate = False

    h = handler if handler is not None else logging.StreamHandler(stream or sys.stderr)
    h.setFormatter(StructuredFormatter())
    root_logger.addHandler(h)


def reset_logging() -> None:
    """Forget the configuration and drop handlers. For tests."""
    global _configured
    with _lock:
        _configured = False
    logger = logging.getLogger(_LOGGER_PREFIX)
    logger.handlers.clear()
    logger.setLevel(logging.WARNING)
