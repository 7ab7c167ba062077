"""
Structured JSON logging for the approval kernel.

Every record under the ``approval_kernel`` logger renders as one JSON
line: timestamp, level, logger, message, the fields bound in
``LogContext`` for the current operation, any ``extra`` fields, and the
structured attributes of a raised kernel exception.
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
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

_LOGGER_PREFIX = "approval_kernel"


class LogContext:
    """Operation-scoped fields stamped on every record.

    The workflow engine binds the acting user and the entity for the
    duration of each operation; values are stored as strings.
    """

    FIELDS = ("actor_id", "entity_type", "entity_id", "department")

    _vars: dict[str, ContextVar[str | None]] = {
        name: ContextVar(f"approval_log_{name}", default=None) for name in FIELDS
    }

    @classmethod
    def get_all(cls) -> dict[str, str]:
        return {
            name: value
            for name, var in cls._vars.items()
            if (value := var.get()) is not None
        }

    @classmethod
    def clear(cls) -> None:
        for var in cls._vars.values():
            var.set(None)

    @classmethod
    @contextmanager
    def bind(cls, **fields: Any) -> Iterator[None]:
        """Bind fields for the enclosed block; None and unknown names are skipped."""
        tokens = [
            (cls._vars[name], cls._vars[name].set(str(value)))
            for name, value in fields.items()
            if value is not None and name in cls._vars
        ]
        try:
            yield
        finally:
            for var, token in reversed(tokens):
                var.reset(token)


_RESERVED = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _json_default(obj: Any) -> Any:
    if isinstance(obj, datetime):
        return obj.isoformat()
    # UUID, Decimal and anything else JSON lacks
    return str(obj)


class StructuredFormatter(logging.Formatter):
    """One JSON object per record; bound context beats ``extra`` on clashes."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }
        for key, value in vars(record).items():
            if key not in _RESERVED:
                payload.setdefault(key, value)

        if record.exc_info and record.exc_info[1] is not None:
            exc = record.exc_info[1]
            payload["exc_type"] = type(exc).__name__
            payload["exc_message"] = str(exc)
            code = getattr(exc, "code", None)
            if code is not None:
                payload["exc_code"] = code
            # ApprovalKernelError subclasses keep their details as attributes
            for key, value in vars(exc).items():
                if not key.startswith("_"):
                    payload[f"exc_{key}"] = value
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_json_default)


def get_logger(name: str) -> logging.Logger:
    """Logger under the approval_kernel namespace, e.g. ``services.flow``."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


_configured = False
_lock = threading.Lock()


def configure_logging(
    *,
    level: int = logging.INFO,
    handler: logging.Handler | None = None,
) -> None:
    """Attach a JSON handler (stderr unless given) to approval_kernel, once."""
    global _configured
    with _lock:
        if _configured:
            return
        _configured = True

    kernel_logger = logging.getLogger(_LOGGER_PREFIX)
    kernel_logger.setLevel(level)
    kernel_logger.propagate = False

    if handler is None:
        handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(StructuredFormatter())
    kernel_logger.addHandler(handler)


def reset_logging() -> None:
    """Undo configure_logging. FOR TESTING ONLY."""
    global _configured
    with _lock:
        _configured = False
    kernel_logger = logging.getLogger(_LOGGER_PREFIX)
    kernel_logger.handlers.clear()
    kernel_logger.setLevel(logging.WARNING)
