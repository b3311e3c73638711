from __future__ import annotations

from datetime import date
from types import SimpleNamespace

import pytest


@pytest.fixture
async def setup(client, doctor, linked_patient, sample_protocol):
    patient = await linked_patient(doctor)
    protocol = (await client.post("/protocols", json=sample_protocol, headers=doctor.headers)).json()
    rx = await client.post(
        "/prescriptions",
        json={"protocol_id": protocol["id"], "patient_id": patient.id, "planned_start_date": date.today().isoformat()},
        headers=doctor.headers,
    )
    assert rx.status_code == 201, rx.text
    return SimpleNamespace(
        doctor=doctor, patient=patient, protocol_id=protocol["id"], prescription_id=rx.json()["prescription"]["id"]
    )


async def _report(client, s, **fields):
    payload = {"protocol_id": s.protocol_id, "day_number": 1, "symptoms": "Headache", **fields}
    resp = await client.post("/symptom-reports", json=payload, headers=s.patient.headers)
    assert resp.status_code == 201, resp.text
    return resp.json()


async def test_patient_files_report(client, setup):
    body = await _report(client, setup, severity=7, description="Started after lunch")

    assert body["status"] == "PENDING"
    assert body["title"] == "Symptom report"
    assert (body["day_number"], body["severity"]) == (1, 7)
    assert body["patient_id"] == setup.patient.id
    assert body["report_time"] is not None
    assert body["reviewed_at"] is None


async def test_explicit_report_time_is_kept(client, setup):
    body = await _report(client, setup, report_time="2026-03-02T08:30:00Z")

    assert body["report_time"].startswith("2026-03-02T08:30:00")


# 0 fails the schema, 4 is past the 3 day duration
@pytest.mark.parametrize(("day", "status"), [(0, 422), (4, 400)])
async def test_day_outside_protocol_is_rejected(client, setup, day, status):
    resp = await client.post(
        "/symptom-reports",
        json={"protocol_id": setup.protocol_id, "day_number": day, "symptoms": "Nausea"},
        headers=setup.patient.headers,
    )

    assert resp.status_code == status


async def test_severity_is_bounded(client, setup):
    resp = await client.post(
        "/symptom-reports",
        json={"protocol_id": setup.protocol_id, "day_number": 1, "symptoms": "Nausea", "severity": 11},
        headers=setup.patient.headers,
    )

    assert resp.status_code == 422


async def test_unprescribed_protocol_is_403(client, setup, sample_protocol):
    other = (await client.post("/protocols", json={**sample_protocol, "name": "Other"}, headers=setup.doctor.headers)).json()

    resp = await client.post(
        "/symptom-reports",
        json={"protocol_id": other["id"], "day_number": 1, "symptoms": "Nausea"},
        headers=setup.patient.headers,
    )

    assert resp.status_code == 403


async def test_abandoned_protocol_is_403(client, setup):
    await client.post(f"/prescriptions/{setup.prescription_id}/abandon", json={}, headers=setup.patient.headers)

    resp = await client.post(
        "/symptom-reports",
        json={"protocol_id": setup.protocol_id, "day_number": 1, "symptoms": "Nausea"},
        headers=setup.patient.headers,
    )

    assert resp.status_code == 403


async def test_patient_lists_own_reports_with_filters(client, setup):
    first = await _report(client, setup, day_number=1)
    second = await _report(client, setup, day_number=2, symptoms="Tired")

    mine = (await client.get("/symptom-reports/me", headers=setup.patient.headers)).json()
    assert {r["id"] for r in mine} == {first["id"], second["id"]}

    by_day = await client.get("/symptom-reports/me", params={"day_number": 2}, headers=setup.patient.headers)
    assert [r["id"] for r in by_day.json()] == [second["id"]]

    by_protocol = await client.get(
        "/symptom-reports/me", params={"protocol_id": setup.protocol_id, "status": "REVIEWED"}, headers=setup.patient.headers
    )
    assert by_protocol.json() == []


async def test_doctor_reviews_report(client, setup):
    report = await _report(client, setup)

    listed = (await client.get("/symptom-reports", headers=setup.doctor.headers)).json()
    assert [r["id"] for r in listed] == [report["id"]]

    resp = await client.patch(
        f"/symptom-reports/{report['id']}/status",
        json={"status": "REQUIRES_ATTENTION", "doctor_notes": "Call me tomorrow"},
        headers=setup.doctor.headers,
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "REQUIRES_ATTENTION"
    assert body["doctor_notes"] == "Call me tomorrow"
    assert body["reviewed_by"] == setup.doctor.id
    assert body["reviewed_at"] is not None

    pending = await client.get("/symptom-reports", params={"status": "PENDING"}, headers=setup.doctor.headers)
    assert pending.json() == []
    mine = await client.get("/symptom-reports/me", params={"status": "REQUIRES_ATTENTION"}, headers=setup.patient.headers)
    assert [r["id"] for r in mine.json()] == [report["id"]]


async def test_unknown_status_is_422(client, setup):
    report = await _report(client, setup)

    resp = await client.patch(
        f"/symptom-reports/{report['id']}/status", json={"status": "ARCHIVED"}, headers=setup.doctor.headers
    )

    assert resp.status_code == 422


async def test_other_doctor_cannot_see_or_review(client, setup, register_doctor):
    report = await _report(client, setup)
    other = await register_doctor(name="Bob Jones")

    assert (await client.get("/symptom-reports", headers=other.headers)).json() == []
    filtered = await client.get("/symptom-reports", params={"patient_id": setup.patient.id}, headers=other.headers)
    assert filtered.status_code == 404
    resp = await client.patch(
        f"/symptom-reports/{report['id']}/status", json={"status": "RESOLVED"}, headers=other.headers
    )
    assert resp.status_code == 404


async def test_doctor_filters_by_patient(client, setup, linked_patient):
    report = await _report(client, setup)
    await linked_patient(setup.doctor, name="Quiet Patient")

    resp = await client.get("/symptom-reports", params={"patient_id": setup.patient.id}, headers=setup.doctor.headers)

    assert [r["id"] for r in resp.json()] == [report["id"]]


async def test_report_routes_are_role_checked(client, setup):
    as_doctor = await client.post(
        "/symptom-reports",
        json={"protocol_id": setup.protocol_id, "day_number": 1, "symptoms": "x"},
        headers=setup.doctor.headers,
    )
    as_patient = await client.get("/symptom-reports", headers=setup.patient.headers)

    assert as_doctor.status_code == 403
    assert as_patient.status_code == 403


async def test_deleting_protocol_removes_reports(client, setup):
    await _report(client, setup)

    resp = await client.delete(f"/protocols/{setup.protocol_id}", headers=setup.doctor.headers)

    assert resp.status_code == 204
    assert (await client.get("/symptom-reports/me", headers=setup.patient.headers)).json() == []
