"""
gescom_engines.tracer -- Engine invocation tracer emitting ENGINE_TRACE.

Responsibility:
    ``@traced_engine`` wraps pure engine invocations with one structured log
    record carrying engine_name, engine_version, an input fingerprint
    (SHA-256 of selected keyword arguments) and duration_ms.  An auditor
    recomputing a document's totals from its stored inputs gets the same
    fingerprint.

Architecture position:
    Engines -- infrastructure support for the pure calculation layer.  Emits a
    log record only; never mutates inputs.

Usage:
    @traced_engine("totals", "1.0", fingerprint_fields=("lines", "taxes"))
    def compute(self, *, lines, taxes):
        ...
"""

from __future__ import annotations

import dataclasses
import functools
import hashlib
import time
from collections.abc import Callable
from decimal import Decimal
from enum import Enum
from typing import Any

from gescom_kernel.logging_config import get_logger

_logger = get_logger("engines.tracer")


def _canonicalize(value: Any) -> str:
    """Stable string form of a value for fingerprinting."""
    if value is None:
        return "null"
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, Decimal):
        # 1.0 and 1.000 are the same input
        return str(value.normalize()) if value else "0"
    if isinstance(value, (int, str)):
        return str(value)
    if isinstance(value, dict):
        items = sorted(value.items())
        return "{" + ",".join(f"{k}:{_canonicalize(v)}" for k, v in items) + "}"
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(_canonicalize(v) for v in value) + "]"
    if isinstance(value, (set, frozenset)):
        return "[" + ",".join(sorted(_canonicalize(v) for v in value)) + "]"
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        fields = {f.name: getattr(value, f.name) for f in dataclasses.fields(value)}
        return type(value).__name__ + _canonicalize(fields)
    return str(value)


def compute_input_fingerprint(
    fingerprint_fields: tuple[str, ...],
    kwargs: dict[str, Any],
) -> str:
    """
    Deterministic 16-hex-char SHA-256 prefix of the selected input fields.

    Missing fields are recorded as "null".
    """
    parts: list[str] = []
    for field in fingerprint_fields:
        parts.append(f"{field}={_canonicalize(kwargs.get(field))}")
    canonical = "|".join(parts)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
) -> Callable:
    """Decorator that emits ENGINE_TRACE for pure engine invocations."""

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            fp = ""
            if fingerprint_fields:
                fp = compute_input_fingerprint(fingerprint_fields, kwargs)

            t0 = time.monotonic()
            result = func(*args, **kwargs)
            duration_ms = round((time.monotonic() - t0) * 1000, 2)

            _logger.info(
                "ENGINE_TRACE",
                extra={
                    "trace_type": "ENGINE_TRACE",
                    "engine_name": engine_name,
                    "engine_version": engine_version,
                    "input_fingerprint": fp,
                    "duration_ms": duration_ms,
                    "function": func.__qualname__,
                },
            )
            return result

        return wrapper

    return decorator
