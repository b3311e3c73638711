"""
Probes for the orchestrator, served without auth or rate limiting.

    GET /health/live    process is up
    GET /health/ready   database answers SELECT 1 within the timeout, else 503
    GET /version        API version
"""
from __future__ import annotations

import asyncio
import logging
import time

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import text

import clinicflow.db as _db_module
from clinicflow import __version__

_log = logging.getLogger("clinicflow.health")

router = APIRouter(tags=["health"])

DB_PING_TIMEOUT = 3.0


def _probe(status_code: int, **fields) -> JSONResponse:
    status = "ok" if status_code == 200 else "error"
    return JSONResponse(status_code=status_code, content={"status": status, **fields})


@router.get("/health/live")
async def health_live() -> JSONResponse:
    return _probe(200, probe="live")


@router.get("/health/ready")
async def health_ready() -> JSONResponse:
    # looked up per call so tests can swap the engine
    engine = _db_module.engine
    started = time.perf_counter()
    try:
        async with asyncio.timeout(DB_PING_TIMEOUT):
            async with engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
    except TimeoutError:
        _log.error("database ping timed out", extra={"timeout_s": DB_PING_TIMEOUT})
        return _probe(503, probe="ready", db="timeout")
    except Exception as exc:
        _log.error("database unreachable: %s", exc)
        return _probe(503, probe="ready", db="unreachable")

    return _probe(
        200,
        probe="ready",
        db="reachable",
        dialect=engine.dialect.name,
        latency_ms=round((time.perf_counter() - started) * 1000.0, 2),
    )


@router.get("/version")
async def version() -> dict:
    return {"api_version": __version__}
