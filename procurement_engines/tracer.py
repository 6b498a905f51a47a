"""
procurement_engines.tracer -- engine invocation tracer emitting PROCUREMENT_ENGINE_TRACE.

Responsibility:
    ``@traced_engine`` wraps a pure engine entry point and emits one
    structured record per call carrying the engine name, version, a
    deterministic fingerprint of selected keyword inputs and the duration.

Architecture position:
    Engines -- infrastructure support.  Emits a log record only; inputs are
    read, never mutated.

Failure modes:
    - A fingerprint field missing from kwargs is recorded as "null".
    - Unknown value types fall back to ``str(value)``; dataclasses are
      expanded field by field so frozen DTOs fingerprint stably.

Usage:
    from procurement_engines.tracer import traced_engine

    @traced_engine("comparison", "1.0", fingerprint_fields=("base_currency",))
    def compare(self, *, baseline, quotations, base_currency): ...
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

from procurement_kernel.logging_config import get_logger

_logger = get_logger("engines.tracer")

TRACE_TYPE = "PROCUREMENT_ENGINE_TRACE"


def _canonicalize(value: Any) -> str:
    """Stable string form of ``value`` for fingerprinting."""
    if value is None:
        return "null"
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, (bool, int, float, Decimal)):
        return str(value)
    if isinstance(value, str):
        return value
    if isinstance(value, dict):
        items = sorted(value.items(), key=lambda kv: str(kv[0]))
        return "{" + ",".join(f"{k}:{_canonicalize(v)}" for k, v in items) + "}"
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(_canonicalize(v) for v in value) + "]"
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        fields = {f.name: getattr(value, f.name) for f in dataclasses.fields(value)}
        return type(value).__name__ + _canonicalize(fields)
    return str(value)


def compute_input_fingerprint(
    fingerprint_fields: tuple[str, ...],
    kwargs: dict[str, Any],
) -> str:
    """SHA-256 prefix (16 hex chars) over the canonicalized selected kwargs."""
    parts = [f"{name}={_canonicalize(kwargs.get(name))}" for name in fingerprint_fields]
    canonical = "|".join(parts)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
) -> Callable:
    """Decorator that emits PROCUREMENT_ENGINE_TRACE for engine invocations."""

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
                TRACE_TYPE,
                extra={
                    "trace_type": TRACE_TYPE,
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
