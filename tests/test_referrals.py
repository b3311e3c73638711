from __future__ import annotations

from sqlalchemy import select

from clinicflow.db import session_scope
from clinicflow.models import EmailOutbox


async def _lead(client, doctor, name="Lead One", email="lead1@example.com", **extra):
    return await client.post(
        "/referrals/leads", json={"name": name, "email": email, "doctor_id": doctor.id, **extra}
    )


async def test_submit_lead_is_public(client, doctor):
    resp = await _lead(client, doctor, phone="555-0100")

    assert resp.status_code == 201
    body = resp.json()
    assert body["status"] == "PENDING"
    assert len(body["referral_code"]) == 8
    assert body["referrer_id"] is None

    async with session_scope() as session:
        emails = (await session.execute(select(EmailOutbox))).scalars().all()
    assert [(e.to_email, e.template) for e in emails] == [(doctor.email, "referral_notification")]
    assert "555-0100" in emails[0].html_body


async def test_unknown_doctor_is_404(client, register_patient):
    patient = await register_patient()

    resp = await client.post(
        "/referrals/leads", json={"name": "X", "email": "x@example.com", "doctor_id": patient.id}
    )

    assert resp.status_code == 404


async def test_duplicate_open_lead_is_400(client, doctor):
    await _lead(client, doctor)

    resp = await _lead(client, doctor, email="LEAD1@example.com")

    assert resp.status_code == 400


async def test_existing_patient_cannot_be_referred(client, doctor, linked_patient):
    patient = await linked_patient(doctor)

    resp = await _lead(client, doctor, email=patient.email)

    assert resp.status_code == 400


async def test_referrer_code(client, doctor, linked_patient, register_patient):
    referrer = await linked_patient(doctor)
    code = (await client.get("/auth/me", headers=referrer.headers)).json()["referral_code"]
    outsider = await register_patient()
    outsider_code = (await client.get("/auth/me", headers=outsider.headers)).json()["referral_code"]

    ok = await _lead(client, doctor, referrer_code=code.lower())
    bogus = await _lead(client, doctor, email="lead2@example.com", referrer_code="NOPE00")
    foreign = await _lead(client, doctor, email="lead3@example.com", referrer_code=outsider_code)

    assert ok.status_code == 201
    assert ok.json()["referrer_id"] == referrer.id
    assert bogus.status_code == 400
    assert foreign.status_code == 400


async def test_list_leads_paginates(client, doctor):
    for i in range(3):
        await _lead(client, doctor, name=f"Lead {i}", email=f"lead{i}@example.com")

    resp = await client.get("/referrals/leads", params={"limit": 2}, headers=doctor.headers)

    assert resp.status_code == 200
    body = resp.json()
    assert len(body["leads"]) == 2
    assert body["pagination"] == {"page": 1, "limit": 2, "total": 3, "pages": 2}
    assert body["stats"]["PENDING"] == 3
    assert body["stats"]["CONVERTED"] == 0

    page2 = await client.get("/referrals/leads", params={"limit": 2, "page": 2}, headers=doctor.headers)
    assert len(page2.json()["leads"]) == 1


async def test_converting_a_lead_credits_the_referrer(client, doctor, linked_patient):
    referrer = await linked_patient(doctor)
    code = (await client.get("/auth/me", headers=referrer.headers)).json()["referral_code"]
    lead = (await _lead(client, doctor, referrer_code=code)).json()

    contacted = await client.patch(
        f"/referrals/leads/{lead['id']}", json={"status": "CONTACTED", "notes": "Called"}, headers=doctor.headers
    )
    assert contacted.json()["notes"] == "Called"

    for _ in range(2):
        converted = await client.patch(
            f"/referrals/leads/{lead['id']}", json={"status": "CONVERTED"}, headers=doctor.headers
        )
        assert converted.json()["status"] == "CONVERTED"

    summary = await client.get("/referrals/me", headers=referrer.headers)
    assert summary.status_code == 200
    body = summary.json()
    assert body["credits_balance"] == 1
    assert body["referral_code"] == code
    assert body["referral_link"] == f"http://clinic.test/referral/{doctor.id}?code={code}"
    assert [item["id"] for item in body["leads"]] == [lead["id"]]


async def test_other_doctor_cannot_update_lead(client, doctor, register_doctor):
    lead = (await _lead(client, doctor)).json()
    other = await register_doctor(name="Bob Jones")

    resp = await client.patch(f"/referrals/leads/{lead['id']}", json={"status": "REJECTED"}, headers=other.headers)

    assert resp.status_code == 404


async def test_unlinked_patient_summary_has_no_link(client, register_patient):
    patient = await register_patient()

    resp = await client.get("/referrals/me", headers=patient.headers)

    assert resp.json()["referral_link"] is None
    assert resp.json()["credits_balance"] == 0
