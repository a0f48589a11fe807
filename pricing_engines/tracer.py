"""
pricing_engines.tracer -- Engine invocation tracer emitting PRICING_ENGINE_TRACE.

Responsibility:
    ``@traced_engine`` wraps an engine entry point and logs one
    PRICING_ENGINE_TRACE record per call with the engine name and version,
    a fingerprint of selected keyword inputs, the outcome and duration_ms.

Architecture position:
    Engines -- support for the pure calculation layer. The decorator reads
    keyword arguments and writes a log record; it never alters inputs or
    results.

Fingerprints:
    The selected inputs are reduced to plain JSON values (objects exposing
    ``to_dict`` are expanded, anything else unknown becomes ``str(value)``)
    and hashed with the kernel's canonical JSON, so ``Decimal("1.50")`` and
    ``Decimal("1.5")`` fingerprint alike. Missing fields count as null.

Usage:
    from pricing_engines.tracer import traced_engine

    @traced_engine("pricing", "1.0", fingerprint_fields=("request",))
    def calculate(self, *, request, ...):
        ...
"""

from __future__ import annotations

import functools
import hashlib
import time
from collections.abc import Callable
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any

from pricing_kernel.logging_config import get_logger
from pricing_kernel.utils.hashing import canonicalize_json

_logger = get_logger("engines.tracer")

_PLAIN_TYPES = (bool, int, str, Decimal, date, Enum)


def _plain(value: Any) -> Any:
    """Reduce a value to something ``canonicalize_json`` can render stably."""
    if value is None or isinstance(value, _PLAIN_TYPES):
        return value
    to_dict = getattr(value, "to_dict", None)
    if callable(to_dict):
        return _plain(to_dict())
    if isinstance(value, dict):
        return {str(k): _plain(v) for k, v in value.items()}
    if isinstance(value, (set, frozenset)):
        return sorted((_plain(v) for v in value), key=canonicalize_json)
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    return str(value)


def compute_input_fingerprint(
    fingerprint_fields: tuple[str, ...],
    kwargs: dict[str, Any],
) -> str:
    """16-hex-char SHA-256 prefix of the named keyword inputs."""
    selected = {name: _plain(kwargs.get(name)) for name in fingerprint_fields}
    digest = hashlib.sha256(canonicalize_json(selected).encode("utf-8"))
    return digest.hexdigest()[:16]


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
) -> Callable:
    """Decorator that emits PRICING_ENGINE_TRACE for each engine invocation.

    Failures are traced with ``outcome="error"`` and re-raised unchanged.
    """

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            fingerprint = (
                compute_input_fingerprint(fingerprint_fields, kwargs) if fingerprint_fields else ""
            )
            started = time.monotonic()
            outcome = "error"
            try:
                result = func(*args, **kwargs)
                outcome = "ok"
                return result
            finally:
                _logger.info(
                    "PRICING_ENGINE_TRACE",
                    extra={
                        "trace_type": "PRICING_ENGINE_TRACE",
                        "engine_name": engine_name,
                        "engine_version": engine_version,
                        "input_fingerprint": fingerprint,
                        "outcome": outcome,
                        "function": func.__qualname__,
                        "duration_ms": round((time.monotonic() - started) * 1000, 2),
                    },
                )

        return wrapper

    return decorator
