"""
ledger_kernel.logging_config -- JSON log lines for ledger events.

Responsibility:
    Every ledger logger lives under the ``ledger_kernel`` namespace and
    writes one JSON object per record: timestamp, level, logger name, the
    snake_case event name as ``message``, the request context (owner,
    actor, correlation and entry ids) and whatever the caller passed in
    ``extra``.  Ledger errors add their ``code`` and structured attributes
    as ``exc_*`` keys.

Architecture position:
    Kernel leaf module.  Imported by every layer; imports nothing from the
    ledger.

Invariants:
    - ``configure_logging`` installs exactly one handler no matter how many
      times it is called; ``reset_logging`` undoes it (tests only).
    - Money is serialized as ``str(Decimal)``, never as a float.
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

LEDGER_LOGGER = "ledger_kernel"

CONTEXT_FIELDS = ("correlation_id", "owner_id", "actor_id", "entry_id")

_context: dict[str, ContextVar[str | None]] = {
    name: ContextVar(f"ledger_log_{name}", default=None) for name in CONTEXT_FIELDS
}


class LogContext:
    """
    Request-scoped fields stamped on every record.

    Backed by ``contextvars`` so values follow the current thread or task.
    Ids may be passed as UUIDs; they are stored as strings.
    """

    @staticmethod
    def set(**fields: Any) -> None:
        """Set the given fields; ``None`` values leave a field unchanged."""
        for name, value in fields.items():
            if value is not None:
                _context[name].set(str(value))

    @staticmethod
    def get_all() -> dict[str, str]:
        values = {name: var.get() for name, var in _context.items()}
        return {name: value for name, value in values.items() if value is not None}

    @staticmethod
    def clear() -> None:
        for var in _context.values():
            var.set(None)

    @staticmethod
    @contextmanager
    def bind(**fields: Any) -> Iterator[type["LogContext"]]:
        """Set fields for the duration of a ``with`` block, then restore them."""
        tokens = [
            (_context[name], _context[name].set(str(value)))
            for name, value in fields.items()
            if value is not None and name in _context
        ]
        try:
            yield LogContext
        finally:
            for var, token in reversed(tokens):
                var.reset(token)


# Attributes every LogRecord has; anything else on a record came from ``extra``.
_RESERVED = frozenset(vars(logging.makeLogRecord({}))) | {"message", "taskName"}


def _json_default(value: Any) -> Any:
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    return str(value)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    code = getattr(exc, "code", None)
    if code is not None:
        fields["exc_code"] = code
    for name, value in vars(exc).items():
        if name.startswith("_") or name in ("args", "code"):
            continue
        fields[f"exc_{name}"] = value
    return fields


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
        payload.update(
            (key, value)
            for key, value in vars(record).items()
            if key not in _RESERVED and key not in payload
        )
        if record.exc_info and record.exc_info[1] is not None:
            payload.update(_exception_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=_json_default)


def get_logger(name: str) -> logging.Logger:
    """Logger ``ledger_kernel.<name>``."""
    return logging.getLogger(f"{LEDGER_LOGGER}.{name}")


_state_lock = threading.Lock()
_installed: logging.Handler | None = None


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """Attach a JSON handler to the ``ledger_kernel`` logger once."""
    global _installed
    with _state_lock:
        if _installed is not None:
            return
        _installed = handler or logging.StreamHandler(stream or sys.stderr)

    _installed.setFormatter(StructuredFormatter())
    ledger_logger = logging.getLogger(LEDGER_LOGGER)
    ledger_logger.setLevel(level)
    ledger_logger.propagate = False
    ledger_logger.addHandler(_installed)


def reset_logging() -> None:
    """Drop all ledger handlers so the next ``configure_logging`` takes effect."""
    global _installed
    with _state_lock:
        _installed = None
    ledger_logger = logging.getLogger(LEDGER_LOGGER)
    for existing in list(ledger_logger.handlers):
        ledger_logger.removeHandler(existing)
    ledger_logger.setLevel(logging.WARNING)
