from __future__ import annotations

from uuid import UUID

from clinicflow.db import session_scope
from clinicflow.services.clinics import generate_slug
from clinicflow.services.membership import get_user_clinic
from clinicflow.services.subscriptions import update_clinic_subscription, update_plan


def test_generate_slug():
    assert generate_slug("Clínica São José!") == "clinica-sao-jose"
    assert generate_slug("  Multiple   spaces -- here ") == "multiple-spaces-here"
    assert generate_slug("Dr. O'Neil & Partners") == "dr-oneil-partners"
    assert generate_slug("") == ""


async def _clinic_id(doctor) -> UUID:
    async with session_scope() as session:
        clinic = await get_user_clinic(session, UUID(doctor.id))
        return clinic.id


async def test_get_my_clinic(client, doctor):
    resp = await client.get("/clinic", headers=doctor.headers)

    assert resp.status_code == 200
    body = resp.json()
    assert body["clinic"]["name"] == "Alice Smith Clinic"
    assert body["clinic"]["slug"] == "alice-smith-clinic"
    assert body["is_admin"] is True
    assert [m["user_id"] for m in body["members"]] == [doctor.id]
    assert body["members"][0]["is_owner"] is True
    assert body["subscription"]["status"] == "TRIAL"
    assert body["subscription"]["plan"]["name"] == "Starter"
    assert body["subscription"]["trial_end_date"] is not None


async def test_slug_collision_gets_suffix(client, register_doctor):
    first = await register_doctor(name="Alice Smith")
    second = await register_doctor(name="Alice Smith")

    r1 = await client.get("/clinic", headers=first.headers)
    r2 = await client.get("/clinic", headers=second.headers)

    assert r1.json()["clinic"]["slug"] == "alice-smith-clinic"
    assert r2.json()["clinic"]["slug"] == "alice-smith-clinic-1"


async def test_second_clinic_is_409(client, doctor):
    resp = await client.post("/clinic", json={"name": "Another"}, headers=doctor.headers)

    assert resp.status_code == 409


async def test_update_clinic_regenerates_slug(client, doctor):
    resp = await client.patch(
        "/clinic",
        json={"name": "Bright Health", "city": "Lisbon"},
        headers=doctor.headers,
    )

    assert resp.status_code == 200
    clinic = resp.json()["clinic"]
    assert clinic["slug"] == "bright-health"
    assert clinic["city"] == "Lisbon"


async def test_patient_cannot_read_clinic(client, register_patient):
    patient = await register_patient()

    resp = await client.get("/clinic", headers=patient.headers)

    assert resp.status_code == 403


async def test_add_and_remove_member(client, doctor, register_doctor):
    colleague = await register_doctor(name="Bob Jones")

    added = await client.post("/clinic/members", json={"email": colleague.email}, headers=doctor.headers)
    assert added.status_code == 201
    assert added.json()["role"] == "DOCTOR"
    assert added.json()["is_owner"] is False

    dup = await client.post("/clinic/members", json={"email": colleague.email}, headers=doctor.headers)
    assert dup.status_code == 409

    members = (await client.get("/clinic", headers=doctor.headers)).json()["members"]
    assert {m["user_id"] for m in members} == {doctor.id, colleague.id}

    removed = await client.delete(f"/clinic/members/{colleague.id}", headers=doctor.headers)
    assert removed.status_code == 204
    members = (await client.get("/clinic", headers=doctor.headers)).json()["members"]
    assert [m["user_id"] for m in members] == [doctor.id]

    # re-adding reactivates the old membership
    again = await client.post(
        "/clinic/members", json={"email": colleague.email, "role": "ADMIN"}, headers=doctor.headers
    )
    assert again.status_code == 201
    assert again.json()["role"] == "ADMIN"


async def test_add_member_requires_existing_doctor(client, doctor, register_patient):
    patient = await register_patient()

    unknown = await client.post("/clinic/members", json={"email": "nobody@example.com"}, headers=doctor.headers)
    not_doctor = await client.post("/clinic/members", json={"email": patient.email}, headers=doctor.headers)

    assert unknown.status_code == 404
    assert not_doctor.status_code == 404


async def test_owner_cannot_be_removed(client, doctor):
    resp = await client.delete(f"/clinic/members/{doctor.id}", headers=doctor.headers)

    assert resp.status_code == 400


async def test_doctor_limit(client, doctor, register_doctor):
    clinic_id = await _clinic_id(doctor)
    async with session_scope() as session:
        await update_clinic_subscription(session, clinic_id, status="ACTIVE", max_doctors=2)

    colleague = await register_doctor(name="Bob Jones")
    third = await register_doctor(name="Carol King")

    ok = await client.post("/clinic/members", json={"email": colleague.email}, headers=doctor.headers)
    blocked = await client.post("/clinic/members", json={"email": third.email}, headers=doctor.headers)

    assert ok.status_code == 201
    assert blocked.status_code == 402


async def test_stats(client, doctor, linked_patient, sample_protocol):
    await linked_patient(doctor)
    await client.post("/protocols", json=sample_protocol, headers=doctor.headers)

    resp = await client.get("/clinic/stats", headers=doctor.headers)

    assert resp.json() == {"doctors": 1, "patients": 1, "protocols": 1, "courses": 0}


async def test_audit_log_newest_first(client, doctor, linked_patient):
    await linked_patient(doctor)

    resp = await client.get("/clinic/audit-log", headers=doctor.headers)

    assert resp.status_code == 200
    actions = [row["action"] for row in resp.json()]
    assert actions[0] == "patient.created"
    assert actions[-1] == "clinic.created"


async def test_subscription_endpoint(client, doctor):
    resp = await client.get("/clinic/subscription", headers=doctor.headers)

    assert resp.status_code == 200
    assert resp.json()["max_doctors"] == 3
    assert resp.json()["auto_renew"] is True


async def test_limits(client, doctor):
    resp = await client.get("/clinic/limits/patients", headers=doctor.headers)

    assert resp.status_code == 200
    assert resp.json() == {"allowed": True, "current": 0, "limit": 50, "message": None}


async def test_unknown_limit_kind_is_400(client, doctor):
    resp = await client.get("/clinic/limits/rockets", headers=doctor.headers)

    assert resp.status_code == 400


async def test_unlimited_plan_field(client, doctor, default_plan):
    async with session_scope() as session:
        await update_plan(session, default_plan.id, {"max_courses": None})

    resp = await client.get("/clinic/limits/courses", headers=doctor.headers)

    assert resp.json()["allowed"] is True
    assert resp.json()["limit"] is None


async def test_patient_limit_blocks_creation(client, doctor, default_plan):
    async with session_scope() as session:
        await update_plan(session, default_plan.id, {"max_patients": 1})

    first = await client.post("/patients", json={"name": "One", "email": "one@example.com"}, headers=doctor.headers)
    second = await client.post("/patients", json={"name": "Two", "email": "two@example.com"}, headers=doctor.headers)

    assert first.status_code == 201
    assert second.status_code == 402
    assert "limit of 1 patients" in second.json()["error"]


async def test_expired_subscription_blocks_everything(client, doctor):
    clinic_id = await _clinic_id(doctor)
    async with session_scope() as session:
        await update_clinic_subscription(session, clinic_id, status="EXPIRED")

    resp = await client.get("/clinic/limits/protocols", headers=doctor.headers)

    assert resp.json()["allowed"] is False
    assert resp.json()["message"] == "No active subscription"


async def test_public_clinic_page(client, doctor):
    resp = await client.get("/clinics/alice-smith-clinic")

    assert resp.status_code == 200
    body = resp.json()
    assert body["name"] == "Alice Smith Clinic"
    assert [d["id"] for d in body["doctors"]] == [doctor.id]
    assert "owner_id" not in body


async def test_public_clinic_unknown_slug_is_404(client):
    resp = await client.get("/clinics/does-not-exist")

    assert resp.status_code == 404


async def test_public_plans(client, default_plan):
    resp = await client.get("/plans")

    assert resp.status_code == 200
    assert [p["name"] for p in resp.json()] == ["Starter"]
