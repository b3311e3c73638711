"""
Per-request context for ClinicFlow.

Every request gets an id (the client's X-Request-ID when it looks sane,
otherwise a fresh UUID4). The id, the authenticated user and the clinic are
exposed to log records through context vars, and one access line is written
per request with the user taken from request.state.
"""
from __future__ import annotations

import logging
import re
import time
import uuid
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from clinicflow.core.logging import request_id_ctx, tenant_id_ctx, user_id_ctx

_log = logging.getLogger("clinicflow.access")

_CLIENT_ID = re.compile(r"^[A-Za-z0-9._\-]{1,64}$")
_QUIET_PATHS = ("/health",)


def pick_request_id(raw: str | None) -> str:
    raw = (raw or "").strip()
    if _CLIENT_ID.match(raw):
        return raw
    return str(uuid.uuid4())


def _level_for(status_code: int, path: str) -> int:
    if status_code >= 500:
        return logging.ERROR
    if status_code >= 400:
        return logging.WARNING
    if path.startswith(_QUIET_PATHS):
        return logging.DEBUG
    return logging.INFO


class RequestIDMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = pick_request_id(request.headers.get("X-Request-ID"))
        request.state.request_id = request_id

        tokens = (
            (request_id_ctx, request_id_ctx.set(request_id)),
            (tenant_id_ctx, tenant_id_ctx.set("")),
            (user_id_ctx, user_id_ctx.set("")),
        )
        path = request.url.path
        started = time.perf_counter()
        try:
            response: Response = await call_next(request)
        except Exception:
            _log.exception(
                "request crashed",
                extra={
                    "method": request.method,
                    "path": path,
                    "duration_ms": round((time.perf_counter() - started) * 1000.0, 2),
                },
            )
            raise
        finally:
            for var, token in reversed(tokens):
                var.reset(token)

        elapsed_ms = round((time.perf_counter() - started) * 1000.0, 2)
        response.headers["X-Request-ID"] = request_id

        _log.log(
            _level_for(response.status_code, path),
            "%s %s %d %.2fms",
            request.method,
            path,
            response.status_code,
            elapsed_ms,
            extra={
                "request_id": request_id,
                "user_id": getattr(request.state, "user_id", ""),
                "path": path,
                "status_code": response.status_code,
                "duration_ms": elapsed_ms,
            },
        )
        return response
