from __future__ import annotations

from sqlalchemy import select

from clinicflow.db import session_scope
from clinicflow.models import EmailOutbox


async def _create(client, doctor, name="Jane Roe", email="jane@example.com", **extra):
    return await client.post("/patients", json={"name": name, "email": email, **extra}, headers=doctor.headers)


async def test_create_patient_sends_set_password_email(client, doctor):
    resp = await _create(client, doctor, phone="+351 900 000 000")

    assert resp.status_code == 201
    body = resp.json()
    assert body["role"] == "PATIENT"
    assert body["doctor_id"] == doctor.id
    assert body["referral_code"]
    assert body["is_active"] is True

    async with session_scope() as session:
        emails = (await session.execute(select(EmailOutbox))).scalars().all()
    assert [e.template for e in emails] == ["set_password"]
    assert emails[0].to_email == "jane@example.com"


async def test_create_patient_twice_is_409(client, doctor):
    await _create(client, doctor)

    resp = await _create(client, doctor, email="JANE@example.com")

    assert resp.status_code == 409


async def test_doctor_email_cannot_become_patient(client, doctor, register_doctor):
    other = await register_doctor(name="Bob Jones")

    resp = await _create(client, doctor, email=other.email)

    assert resp.status_code == 409


async def test_adopting_self_registered_patient(client, doctor, register_patient):
    patient = await register_patient(name="Sam Lee")

    resp = await _create(client, doctor, name="Ignored", email=patient.email)

    assert resp.status_code == 201
    assert resp.json()["id"] == patient.id
    assert resp.json()["name"] == "Sam Lee"

    me = await client.get("/auth/me", headers=patient.headers)
    assert me.json()["role"] == "PATIENT"
    assert me.json()["needs_clinic"] is False

    doctors = await client.get("/patients/me/doctors", headers=patient.headers)
    assert doctors.status_code == 200
    assert [(d["doctor_id"], d["is_primary"]) for d in doctors.json()] == [(doctor.id, True)]


async def test_second_doctor_gets_secondary_relationship(client, doctor, register_doctor, linked_patient):
    patient = await linked_patient(doctor)
    other = await register_doctor(name="Bob Jones")

    resp = await _create(client, other, email=patient.email)

    assert resp.status_code == 201
    assert resp.json()["doctor_id"] == doctor.id

    doctors = (await client.get("/patients/me/doctors", headers=patient.headers)).json()
    assert [(d["doctor_id"], d["is_primary"]) for d in doctors] == [(doctor.id, True), (other.id, False)]

    listed = await client.get("/patients", headers=other.headers)
    assert [p["id"] for p in listed.json()] == [patient.id]


async def test_list_search_and_active_filter(client, doctor):
    jane = (await _create(client, doctor, name="Jane Roe", email="jane@example.com")).json()
    await _create(client, doctor, name="John Doe", email="john@example.com")
    await client.delete(f"/patients/{jane['id']}", headers=doctor.headers)

    everyone = await client.get("/patients", headers=doctor.headers)
    search = await client.get("/patients", params={"search": "JOHN"}, headers=doctor.headers)
    active = await client.get("/patients", params={"active": "true"}, headers=doctor.headers)

    assert [p["name"] for p in everyone.json()] == ["Jane Roe", "John Doe"]
    assert [p["name"] for p in search.json()] == ["John Doe"]
    assert [p["name"] for p in active.json()] == ["John Doe"]


async def test_other_doctors_patient_is_404(client, doctor, register_doctor):
    patient = (await _create(client, doctor)).json()
    other = await register_doctor(name="Bob Jones")

    resp = await client.get(f"/patients/{patient['id']}", headers=other.headers)

    assert resp.status_code == 404


async def test_update_patient(client, doctor):
    patient = (await _create(client, doctor)).json()

    resp = await client.patch(
        f"/patients/{patient['id']}",
        json={"name": "Jane Q. Roe", "phone": "123", "email": "jane.roe@example.com"},
        headers=doctor.headers,
    )

    assert resp.status_code == 200
    body = resp.json()
    assert body["name"] == "Jane Q. Roe"
    assert body["phone"] == "123"
    assert body["email"] == "jane.roe@example.com"


async def test_update_patient_email_conflict(client, doctor):
    patient = (await _create(client, doctor)).json()

    resp = await client.patch(f"/patients/{patient['id']}", json={"email": doctor.email}, headers=doctor.headers)

    assert resp.status_code == 409


async def test_deactivate_patient(client, doctor):
    patient = (await _create(client, doctor)).json()

    resp = await client.delete(f"/patients/{patient['id']}", headers=doctor.headers)

    assert resp.status_code == 200
    assert resp.json()["is_active"] is False


async def test_patient_routes_are_doctor_only(client, doctor, linked_patient):
    patient = await linked_patient(doctor)

    resp = await client.get("/patients", headers=patient.headers)

    assert resp.status_code == 403


# ── relationships ─────────────────────────────────────────────────────────────

async def test_switch_primary_doctor(client, doctor, register_doctor, linked_patient):
    patient = await linked_patient(doctor)
    other = await register_doctor(name="Bob Jones")
    await _create(client, other, email=patient.email)

    rels = (await client.get("/relationships", params={"patient_id": patient.id}, headers=other.headers)).json()
    mine = next(r for r in rels if r["doctor_id"] == other.id)

    resp = await client.patch(f"/relationships/{mine['id']}", json={"is_primary": True}, headers=other.headers)
    assert resp.status_code == 200
    assert resp.json()["is_primary"] is True

    rels = (await client.get("/relationships", params={"patient_id": patient.id}, headers=doctor.headers)).json()
    primaries = [r["doctor_id"] for r in rels if r["is_primary"]]
    assert primaries == [other.id]


async def test_upsert_relationship_updates_details(client, doctor, linked_patient):
    patient = await linked_patient(doctor)

    resp = await client.post(
        "/relationships",
        json={"patient_id": patient.id, "speciality": "Nutrition"},
        headers=doctor.headers,
    )

    assert resp.status_code == 201
    assert resp.json()["speciality"] == "Nutrition"
    # existing primary flag survives an upsert without is_primary
    assert resp.json()["is_primary"] is True

    rels = (await client.get("/relationships", headers=doctor.headers)).json()
    assert len(rels) == 1


async def test_end_relationship(client, doctor, register_doctor, linked_patient):
    patient = await linked_patient(doctor)
    other = await register_doctor(name="Bob Jones")
    await _create(client, other, email=patient.email)
    rels = (await client.get("/relationships", headers=other.headers)).json()

    resp = await client.patch(f"/relationships/{rels[0]['id']}", json={"is_active": False}, headers=other.headers)

    assert resp.status_code == 200
    assert resp.json()["is_active"] is False
    assert resp.json()["end_date"] is not None
    doctors = (await client.get("/patients/me/doctors", headers=patient.headers)).json()
    assert [d["doctor_id"] for d in doctors] == [doctor.id]


async def test_reactivated_relationship_has_no_end_date(client, doctor, register_doctor, linked_patient):
    patient = await linked_patient(doctor)
    other = await register_doctor(name="Bob Jones")
    await _create(client, other, email=patient.email)
    rel_id = (await client.get("/relationships", headers=other.headers)).json()[0]["id"]
    await client.patch(f"/relationships/{rel_id}", json={"is_active": False}, headers=other.headers)

    resp = await client.patch(f"/relationships/{rel_id}", json={"is_active": True}, headers=other.headers)

    assert resp.status_code == 200
    assert resp.json()["is_active"] is True
    assert resp.json()["end_date"] is None
    doctors = (await client.get("/patients/me/doctors", headers=patient.headers)).json()
    assert sorted(d["doctor_id"] for d in doctors) == sorted([doctor.id, other.id])


async def test_relationship_of_other_doctor_is_404(client, doctor, register_doctor, linked_patient):
    await linked_patient(doctor)
    other = await register_doctor(name="Bob Jones")
    rels = (await client.get("/relationships", headers=doctor.headers)).json()

    resp = await client.patch(f"/relationships/{rels[0]['id']}", json={"notes": "x"}, headers=other.headers)

    assert resp.status_code == 404
