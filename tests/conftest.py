import os

# must be set before clinicflow is imported: the engine is built at import time
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["BOOTSTRAP_TOKEN"] = "test-bootstrap-token"
os.environ["JWT_SECRET"] = "test-jwt-secret"
os.environ["RATE_LIMIT_PER_MINUTE"] = "10000"
os.environ["APP_URL"] = "http://clinic.test"

import uuid
from dataclasses import dataclass

import pytest
from httpx import ASGITransport, AsyncClient

from clinicflow.api.main import app
from clinicflow.core.rate_limit import reset_limiter
from clinicflow.db import engine, session_scope
from clinicflow.models import Base
from clinicflow.services.subscriptions import create_plan


@dataclass
class Account:
    id: str
    email: str
    password: str
    token: str

    @property
    def headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.token}"}


def unique_email(prefix: str = "user") -> str:
    return f"{prefix}-{uuid.uuid4().hex[:8]}@example.com"


@pytest.fixture(autouse=True)
async def database():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    reset_limiter()
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    # in-memory sqlite: disposing drops the connection, next test starts clean
    await engine.dispose()


@pytest.fixture
async def client():
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as c:
        yield c


@pytest.fixture
async def default_plan():
    async with session_scope() as session:
        plan = await create_plan(
            session,
            {
                "name": "Starter",
                "max_doctors": 3,
                "max_patients": 50,
                "max_protocols": 20,
                "max_courses": 10,
                "trial_days": 14,
                "is_default": True,
            },
        )
    return plan


@pytest.fixture
def register_doctor(client, default_plan):
    async def _register(name: str = "Alice Smith", email: str | None = None, password: str = "secret123") -> Account:
        email = email or unique_email("doctor")
        resp = await client.post(
            "/auth/register/doctor",
            json={"name": name, "email": email, "password": password},
        )
        assert resp.status_code == 201, resp.text
        body = resp.json()
        return Account(id=body["user"]["id"], email=email, password=password, token=body["token"])

    return _register


@pytest.fixture
def register_patient(client):
    async def _register(name: str = "Pat Jones", email: str | None = None, password: str = "secret123") -> Account:
        email = email or unique_email("patient")
        resp = await client.post(
            "/auth/register/patient",
            json={"name": name, "email": email, "password": password},
        )
        assert resp.status_code == 201, resp.text
        body = resp.json()
        return Account(id=body["user"]["id"], email=email, password=password, token=body["token"])

    return _register


@pytest.fixture
def linked_patient(client, register_patient):
    """Self-registered patient, then adopted by ``doctor`` (role PATIENT)."""

    async def _link(doctor: Account, name: str = "Pat Jones") -> Account:
        patient = await register_patient(name=name)
        resp = await client.post(
            "/patients",
            json={"name": name, "email": patient.email},
            headers=doctor.headers,
        )
        assert resp.status_code == 201, resp.text
        assert resp.json()["role"] == "PATIENT"
        return patient

    return _link


@pytest.fixture
async def doctor(register_doctor) -> Account:
    return await register_doctor()


@pytest.fixture
def sample_protocol() -> dict:
    return {
        "name": "Sleep reset",
        "description": "Two days of better sleep",
        "duration": 3,
        "days": [
            {"title": "Wind down", "tasks": [{"title": "No screens after 9pm"}, {"title": "Read 10 pages"}]},
            {
                "title": "Morning light",
                "sessions": [
                    {"title": "Morning", "tasks": [{"title": "10 minutes outside"}]},
                ],
            },
        ],
    }
