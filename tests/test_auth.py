from __future__ import annotations

from sqlalchemy import select

from clinicflow.db import session_scope
from clinicflow.models import EmailOutbox
from clinicflow.security import (
    create_access_token,
    decode_access_token,
    hash_password,
    hash_token,
    verify_password,
)
from clinicflow.services.auth import get_user_by_email, issue_password_token
from conftest import unique_email


def test_password_hash_roundtrip():
    hashed = hash_password("secret123")

    assert hashed != "secret123"
    assert verify_password("secret123", hashed) is True
    assert verify_password("wrong-one", hashed) is False
    assert verify_password("secret123", None) is False
    assert verify_password("secret123", "not-a-bcrypt-hash") is False


def test_hash_token_is_stable_sha256():
    assert hash_token("abc") == hash_token("abc")
    assert len(hash_token("abc")) == 64


async def test_register_doctor_creates_clinic(client, register_doctor):
    doctor = await register_doctor(name="Dr Who", email="Dr.Who@Example.com")

    resp = await client.get("/auth/me", headers=doctor.headers)

    assert resp.status_code == 200
    body = resp.json()
    assert body["email"] == "dr.who@example.com"
    assert body["role"] == "DOCTOR"
    assert body["clinic"] is not None
    assert body["clinic"]["slug"]
    assert body["referral_code"]
    assert body["needs_clinic"] is False


async def test_token_claims(doctor):
    claims = decode_access_token(doctor.token)

    assert claims["sub"] == doctor.id
    assert claims["role"] == "DOCTOR"
    assert claims["exp"] > claims["iat"]


async def test_register_patient_needs_clinic(client):
    resp = await client.post(
        "/auth/register/patient",
        json={"name": "Pat", "email": unique_email("pat"), "password": "secret123"},
    )

    assert resp.status_code == 201
    body = resp.json()
    assert body["user"]["role"] == "PATIENT_NOCLINIC"
    assert body["needs_clinic"] is True
    assert body["token_type"] == "bearer"


async def test_duplicate_email_is_409(client, doctor):
    resp = await client.post(
        "/auth/register/patient",
        json={"name": "Copy", "email": doctor.email.upper(), "password": "secret123"},
    )

    assert resp.status_code == 409


async def test_short_password_is_400(client, default_plan):
    resp = await client.post(
        "/auth/register/doctor",
        json={"name": "Short", "email": unique_email(), "password": "123"},
    )

    assert resp.status_code == 400
    assert "at least 6" in resp.json()["error"]


async def test_login(client, doctor):
    resp = await client.post("/auth/login", json={"email": doctor.email, "password": doctor.password})

    assert resp.status_code == 200
    assert resp.json()["user"]["id"] == doctor.id


async def test_login_wrong_password_is_401(client, doctor):
    resp = await client.post("/auth/login", json={"email": doctor.email, "password": "nope-nope"})

    assert resp.status_code == 401
    assert resp.json()["error"] == "Invalid credentials"


async def test_login_unknown_email_is_401(client):
    resp = await client.post("/auth/login", json={"email": unique_email(), "password": "secret123"})

    assert resp.status_code == 401


async def test_forgot_password_unknown_email_reveals_nothing(client):
    resp = await client.post("/auth/forgot-password", json={"email": unique_email()})

    assert resp.status_code == 200
    async with session_scope() as session:
        rows = (await session.execute(select(EmailOutbox))).scalars().all()
    assert rows == []


async def test_forgot_password_queues_email(client, doctor):
    resp = await client.post("/auth/forgot-password", json={"email": doctor.email})

    assert resp.status_code == 200
    async with session_scope() as session:
        rows = (await session.execute(select(EmailOutbox))).scalars().all()
    assert len(rows) == 1
    assert rows[0].to_email == doctor.email
    assert rows[0].template == "reset_password"
    assert "http://clinic.test/auth/reset-password?token=" in rows[0].html_body


async def test_reset_password_flow(client, doctor):
    async with session_scope() as session:
        user = await get_user_by_email(session, doctor.email)
        raw = await issue_password_token(session, user, hours=1)

    valid = await client.get("/auth/reset-password/validate", params={"token": raw})
    assert valid.json() == {"valid": True}

    resp = await client.post("/auth/reset-password", json={"token": raw, "password": "brand-new-pw"})
    assert resp.status_code == 200

    # one-time token
    again = await client.get("/auth/reset-password/validate", params={"token": raw})
    assert again.json() == {"valid": False}

    old = await client.post("/auth/login", json={"email": doctor.email, "password": doctor.password})
    new = await client.post("/auth/login", json={"email": doctor.email, "password": "brand-new-pw"})
    assert old.status_code == 401
    assert new.status_code == 200


async def test_reset_password_bad_token_is_400(client, doctor):
    resp = await client.post("/auth/reset-password", json={"token": "made-up", "password": "brand-new-pw"})

    assert resp.status_code == 400


async def test_expired_reset_token_is_invalid(client, doctor):
    async with session_scope() as session:
        user = await get_user_by_email(session, doctor.email)
        raw = await issue_password_token(session, user, hours=-1)

    resp = await client.get("/auth/reset-password/validate", params={"token": raw})

    assert resp.json() == {"valid": False}


async def test_token_for_inactive_user_is_401(client, doctor):
    async with session_scope() as session:
        user = await get_user_by_email(session, doctor.email)
        user.is_active = False
        token = create_access_token(user)

    resp = await client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})

    assert resp.status_code == 401


async def test_login_of_inactive_user_is_403(client, doctor):
    async with session_scope() as session:
        user = await get_user_by_email(session, doctor.email)
        user.is_active = False

    resp = await client.post("/auth/login", json={"email": doctor.email, "password": doctor.password})

    assert resp.status_code == 403
