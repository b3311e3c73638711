"""
Structured logging for ClinicFlow.

Every record is written as a single JSON line on stdout and carries the
request id, the clinic (tenant) and the acting user of the request that
produced it. Those three live in context vars set by the request middleware,
``get_current_user`` and ``set_tenant_context``.

    setup_json_logging()            # once, at process start
    log.info("prescription activated", extra={"prescription_id": str(p.id)})
"""
from __future__ import annotations

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any

from clinicflow.config import get_settings

__all__ = [
    "JsonFormatter",
    "request_id_ctx",
    "tenant_id_ctx",
    "user_id_ctx",
    "setup_json_logging",
]

request_id_ctx: ContextVar[str] = ContextVar("request_id", default="")
tenant_id_ctx: ContextVar[str] = ContextVar("tenant_id", default="")
user_id_ctx: ContextVar[str] = ContextVar("user_id", default="")

# attributes every LogRecord has; anything else came in through ``extra=``
_RESERVED = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "asctime"}

# third-party loggers that are too chatty at INFO
_NOISY = ("uvicorn.access", "sqlalchemy.engine", "aiosqlite")


class JsonFormatter(logging.Formatter):
    """One JSON object per record.

    Always present: timestamp (UTC, millisecond precision), level, logger,
    message, request_id, tenant_id, user_id. Keys passed through ``extra=``
    are merged in without overriding those. Exceptions are reduced to their
    type and text; tracebacks stay out of the log stream.
    """

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc)
            .isoformat(timespec="milliseconds")
            .replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "request_id": request_id_ctx.get(),
            "tenant_id": tenant_id_ctx.get(),
            "user_id": user_id_ctx.get(),
        }
        payload.update(
            (key, value) for key, value in record.__dict__.items() if key not in _RESERVED and key not in payload
        )

        if record.exc_info and record.exc_info[0] is not None:
            exc_type, exc_val, _ = record.exc_info
            payload["exc"] = {"type": exc_type.__name__, "detail": str(exc_val)}

        return json.dumps(payload, ensure_ascii=False, default=str)


def setup_json_logging(level: str | None = None) -> None:
    """Install the JSON handler on the root logger. Calling it again is a no-op."""
    root = logging.getLogger()
    if any(isinstance(h.formatter, JsonFormatter) for h in root.handlers):
        return

    root.setLevel((level or get_settings().LOG_LEVEL).upper())
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())
    root.addHandler(handler)

    for name in _NOISY:
        logging.getLogger(name).setLevel(logging.WARNING)
