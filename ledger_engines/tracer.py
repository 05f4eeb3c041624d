"""
ledger_engines.tracer -- ``engine_invoked`` log records for pure engines.

Responsibility:
    ``@traced_engine`` wraps an engine entry point and, after it returns,
    logs which engine ran, its version, how long it took and a short
    fingerprint of the inputs named in ``fingerprint_fields``.  Two calls
    with equal inputs produce equal fingerprints, which makes engine runs
    comparable across log lines without logging the inputs themselves.

Architecture position:
    Engines.  Uses ``ledger_kernel.logging_config`` only; adds no I/O to
    the engines beyond the log record.
"""

from __future__ import annotations

import functools
import hashlib
import inspect
import json
import time
from collections.abc import Callable, Mapping
from typing import Any

from ledger_kernel.logging_config import get_logger

logger = get_logger("engines")


def compute_input_fingerprint(fields: tuple[str, ...], arguments: Mapping[str, Any]) -> str:
    """First 16 hex chars of SHA-256 over the named arguments (sorted keys, str() leaves)."""
    selected = {name: arguments.get(name) for name in fields}
    canonical = json.dumps(selected, sort_keys=True, default=str, separators=(",", ":"))
    return hashlib.sha256(canonical.encode()).hexdigest()[:16]


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
) -> Callable:
    def decorator(func: Callable) -> Callable:
        signature = inspect.signature(func)

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            started = time.perf_counter()
            result = func(*args, **kwargs)
            elapsed_ms = (time.perf_counter() - started) * 1000

            fingerprint = None
            if fingerprint_fields:
                arguments = signature.bind_partial(*args, **kwargs).arguments
                fingerprint = compute_input_fingerprint(fingerprint_fields, arguments)
            logger.debug(
                "engine_invoked",
                extra={
                    "engine_name": engine_name,
                    "engine_version": engine_version,
                    "function": func.__qualname__,
                    "input_fingerprint": fingerprint,
                    "duration_ms": round(elapsed_ms, 2),
                },
            )
            return result

        return wrapper

    return decorator
