"""
Exception handlers shared by every ClinicFlow router.

Whatever goes wrong, the client gets the same body:

    {"error": "<short message>", "request_id": "<id | null>", "code": <status>}

Domain errors carry their own status. Database unique-constraint races
become 409. Anything unexpected is a 500 with a generic message; the
traceback only goes to the server log.
"""
from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError
from starlette.exceptions import HTTPException as StarletteHTTPException

from clinicflow.config import get_settings
from clinicflow.core.errors import ClinicFlowError

_log = logging.getLogger("clinicflow.errors")


def error_response(
    request: Request,
    status_code: int,
    message: str,
    *,
    headers: dict[str, str] | None = None,
    **extra,
) -> JSONResponse:
    body = {
        "error": message,
        "request_id": getattr(request.state, "request_id", None),
        "code": status_code,
        **extra,
    }
    return JSONResponse(status_code=status_code, content=body, headers=headers)


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    # custom validators leave the raw exception object in ctx
    errors = []
    for err in exc.errors():
        err = dict(err)
        if "ctx" in err:
            err["ctx"] = {k: str(v) for k, v in err["ctx"].items()}
        errors.append(err)
    return errors


async def _domain_error(request: Request, exc: ClinicFlowError) -> JSONResponse:
    _log.info("%s: %s", type(exc).__name__, exc.message, extra={"path": request.url.path, "status_code": exc.status_code})
    return error_response(request, exc.status_code, exc.message)


async def _integrity_error(request: Request, exc: IntegrityError) -> JSONResponse:
    _log.warning("integrity error", extra={"path": request.url.path, "detail": str(exc.orig)})
    return error_response(request, 409, "Conflicting record already exists")


async def _http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    message = str(exc.detail) if exc.detail else "Request error"
    if exc.status_code >= 500:
        _log.error("HTTP %d %s", exc.status_code, message, extra={"path": request.url.path})
    return error_response(request, exc.status_code, message, headers=getattr(exc, "headers", None))


async def _validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    _log.warning("validation error", extra={"path": request.url.path})
    if get_settings().is_production:
        return error_response(request, 422, "Invalid request body or parameters")
    return error_response(request, 422, "Invalid request body or parameters", detail=jsonable_errors(exc))


async def _unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    _log.exception("unhandled exception", extra={"path": request.url.path})
    return error_response(request, 500, "Unexpected server error")


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ClinicFlowError, _domain_error)
    app.add_exception_handler(IntegrityError, _integrity_error)
    app.add_exception_handler(StarletteHTTPException, _http_error)
    app.add_exception_handler(RequestValidationError, _validation_error)
    app.add_exception_handler(Exception, _unexpected_error)
