"""
tests/test_prod_hardening.py

Request IDs, the unified error shape, per-user rate limiting and the
health probes.
"""
from __future__ import annotations

import uuid
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi import FastAPI, HTTPException
from httpx import ASGITransport, AsyncClient
from pydantic import BaseModel
from sqlalchemy.exc import IntegrityError

from clinicflow.core.errors import ConflictError, LimitExceededError, NotFoundError
from clinicflow.core.error_handlers import register_error_handlers
from clinicflow.core.health import router as health_router
from clinicflow.core.middleware import RequestIDMiddleware
from clinicflow.core.rate_limit import UserRateLimiter, reset_limiter


class Payload(BaseModel):
    value: int


def _probe_app() -> FastAPI:
    """Tiny app whose routes fail in every way the handlers know about."""
    app = FastAPI()
    app.add_middleware(RequestIDMiddleware)
    register_error_handlers(app)
    app.include_router(health_router)

    @app.get("/missing")
    async def missing():
        raise NotFoundError("Patient not found")

    @app.get("/conflict")
    async def conflict():
        raise ConflictError("Already there")

    @app.get("/limit")
    async def limit():
        raise LimitExceededError("You have reached the limit of 1 patients for your plan")

    @app.get("/dupe")
    async def dupe():
        raise IntegrityError("INSERT INTO users", {}, Exception("UNIQUE constraint failed: users.email"))

    @app.get("/forbidden")
    async def forbidden():
        raise HTTPException(status_code=403, detail="Access denied")

    @app.post("/typed")
    async def typed(body: Payload):
        return body

    @app.get("/boom")
    async def boom():
        raise RuntimeError("intentional crash")

    return app


async def _call(app: FastAPI, method: str, path: str, **kwargs):
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://testserver") as c:
        return await c.request(method, path, **kwargs)


# ── request id ────────────────────────────────────────────────────────────────

async def test_request_id_generated(client):
    resp = await client.get("/health/live")

    assert resp.status_code == 200
    assert uuid.UUID(resp.headers["x-request-id"]).version == 4


async def test_request_id_echoed_from_client(client):
    resp = await client.get("/health/live", headers={"X-Request-ID": "edge-7f3a"})

    assert resp.headers["x-request-id"] == "edge-7f3a"


# ── error shape ───────────────────────────────────────────────────────────────

@pytest.mark.parametrize(
    ("method", "path", "kwargs", "status", "message"),
    [
        ("GET", "/missing", {}, 404, "Patient not found"),
        ("GET", "/conflict", {}, 409, "Already there"),
        ("GET", "/limit", {}, 402, "You have reached the limit of 1 patients for your plan"),
        ("GET", "/dupe", {}, 409, "Conflicting record already exists"),
        ("GET", "/forbidden", {}, 403, "Access denied"),
        ("POST", "/typed", {"json": {"value": "not-an-int"}}, 422, "Invalid request body or parameters"),
        ("GET", "/boom", {}, 500, "Unexpected server error"),
    ],
)
async def test_errors_share_one_shape(method, path, kwargs, status, message):
    resp = await _call(_probe_app(), method, path, headers={"X-Request-ID": "rid-1"}, **kwargs)

    assert resp.status_code == status
    body = resp.json()
    assert body["error"] == message
    assert body["code"] == status
    assert body["request_id"] == "rid-1"


async def test_internal_details_stay_out_of_responses():
    app = _probe_app()

    crash = await _call(app, "GET", "/boom")
    dupe = await _call(app, "GET", "/dupe")

    assert "intentional crash" not in crash.text
    assert "Traceback" not in crash.text
    assert "users.email" not in dupe.text


async def test_validation_detail_outside_production():
    resp = await _call(_probe_app(), "POST", "/typed", json={"value": "x"})

    assert resp.json()["detail"][0]["loc"] == ["body", "value"]


async def test_missing_token_is_401(client):
    resp = await client.get("/auth/me")

    assert resp.status_code == 401
    assert resp.json()["code"] == 401


async def test_garbage_token_is_401(client):
    resp = await client.get("/clinic", headers={"Authorization": "Bearer not-a-jwt"})

    assert resp.status_code == 401


# ── rate limiting ─────────────────────────────────────────────────────────────

async def test_limiter_counts_per_user():
    limiter = UserRateLimiter(limit=2, window_seconds=60.0)

    results = [await limiter.is_allowed("user-a") for _ in range(3)]

    assert results == [True, True, False]
    assert await limiter.is_allowed("user-b") is True


async def test_window_slides_with_the_clock():
    now = [100.0]
    limiter = UserRateLimiter(limit=2, window_seconds=60.0, clock=lambda: now[0])
    await limiter.hit("user-a")
    now[0] = 130.0
    await limiter.hit("user-a")

    blocked = await limiter.hit("user-a")
    assert blocked.allowed is False
    assert blocked.retry_after == 30.0

    now[0] = 160.5
    assert (await limiter.hit("user-a")).remaining == 0


async def test_evict_inactive_forgets_idle_users():
    limiter = UserRateLimiter(limit=1, window_seconds=60.0)
    await limiter.hit("user-a")

    assert await limiter.evict_inactive(idle_seconds=0.0) == 1
    assert await limiter.is_allowed("user-a") is True


async def test_authenticated_routes_return_429(client, doctor):
    reset_limiter(UserRateLimiter(limit=2, window_seconds=60.0))

    statuses = [(await client.get("/clinic", headers=doctor.headers)) for _ in range(3)]

    assert [r.status_code for r in statuses] == [200, 200, 429]
    assert statuses[-1].json()["code"] == 429
    assert int(statuses[-1].headers["retry-after"]) >= 1


async def test_probes_are_never_limited(client):
    reset_limiter(UserRateLimiter(limit=1, window_seconds=60.0))

    statuses = {(await client.get("/health/live")).status_code for _ in range(5)}

    assert statuses == {200}


# ── health ────────────────────────────────────────────────────────────────────

async def test_ready_reports_database(client):
    resp = await client.get("/health/ready")

    assert resp.status_code == 200
    body = resp.json()
    assert (body["db"], body["dialect"]) == ("reachable", "sqlite")
    assert body["latency_ms"] >= 0


async def test_ready_is_503_when_database_down():
    broken = AsyncMock()
    broken.__aenter__ = AsyncMock(side_effect=OSError("Connection refused"))
    broken.__aexit__ = AsyncMock(return_value=False)
    fake_engine = MagicMock()
    fake_engine.connect = MagicMock(return_value=broken)

    with patch("clinicflow.db.engine", fake_engine):
        resp = await _call(_probe_app(), "GET", "/health/ready")

    assert resp.status_code == 503
    assert resp.json() == {"status": "error", "probe": "ready", "db": "unreachable"}


async def test_version(client):
    resp = await client.get("/version")

    assert resp.status_code == 200
    assert resp.json()["api_version"]
