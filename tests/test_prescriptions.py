from __future__ import annotations

from datetime import date, timedelta
from types import SimpleNamespace

import pytest

from clinicflow.core.errors import InvalidTransitionError
from clinicflow.services.prescriptions import adherence_rate, current_day, ensure_transition


@pytest.mark.parametrize(
    ("completed", "total", "expected"),
    [(0, 0, 0), (0, 3, 0), (1, 3, 33), (2, 3, 67), (1, 8, 13), (3, 3, 100)],
)
def test_adherence_rate(completed, total, expected):
    assert adherence_rate(completed, total) == expected


def test_transitions():
    ensure_transition("PRESCRIBED", "ACTIVE")
    ensure_transition("ACTIVE", "PAUSED")
    ensure_transition("PAUSED", "ABANDONED")

    with pytest.raises(InvalidTransitionError):
        ensure_transition("PRESCRIBED", "PAUSED")
    with pytest.raises(InvalidTransitionError):
        ensure_transition("COMPLETED", "ACTIVE")
    with pytest.raises(InvalidTransitionError):
        ensure_transition("ABANDONED", "ACTIVE")


def test_current_day_is_clamped_to_duration():
    start = date(2026, 1, 1)
    p = SimpleNamespace(actual_start_date=start, protocol=SimpleNamespace(duration=3))

    assert current_day(p, today=start) == 1
    assert current_day(p, today=start + timedelta(days=1)) == 2
    assert current_day(p, today=start + timedelta(days=30)) == 3
    assert current_day(p, today=start - timedelta(days=2)) == 1
    assert current_day(SimpleNamespace(actual_start_date=None), today=start) == 0


# ── flows ─────────────────────────────────────────────────────────────────────

@pytest.fixture
async def setup(client, doctor, linked_patient, sample_protocol):
    patient = await linked_patient(doctor)
    protocol = await client.post("/protocols", json=sample_protocol, headers=doctor.headers)
    return SimpleNamespace(doctor=doctor, patient=patient, protocol_id=protocol.json()["id"])


async def _prescribe(client, s, start: date | None = None, **extra):
    start = start or date.today()
    resp = await client.post(
        "/prescriptions",
        json={
            "protocol_id": s.protocol_id,
            "patient_id": s.patient.id,
            "planned_start_date": start.isoformat(),
            **extra,
        },
        headers=s.doctor.headers,
    )
    return resp


async def _activate(client, s, prescription_id, start: date | None = None):
    payload = {"actual_start_date": start.isoformat()} if start else {}
    return await client.post(f"/prescriptions/{prescription_id}/activate", json=payload, headers=s.patient.headers)


async def test_prescribe(client, setup):
    start = date(2026, 3, 2)

    resp = await _prescribe(client, setup, start)

    assert resp.status_code == 201
    body = resp.json()
    assert body["updated"] is False
    rx = body["prescription"]
    assert rx["status"] == "PRESCRIBED"
    assert rx["planned_end_date"] == "2026-03-04"
    assert rx["prescribed_by"] == setup.doctor.id
    assert rx["adherence_rate"] == 0


async def test_prescribe_again_updates_pending_one(client, setup):
    first = await _prescribe(client, setup, date(2026, 3, 2))

    again = await _prescribe(client, setup, date(2026, 4, 1), consultation_date="2026-03-20")

    assert again.status_code == 201
    assert again.json()["updated"] is True
    assert again.json()["prescription"]["id"] == first.json()["prescription"]["id"]
    assert again.json()["prescription"]["planned_start_date"] == "2026-04-01"
    assert again.json()["prescription"]["consultation_date"] == "2026-03-20"


async def test_end_before_start_is_400(client, setup):
    resp = await _prescribe(client, setup, date(2026, 3, 2), planned_end_date="2026-03-01")

    assert resp.status_code == 400


async def test_prescribe_while_active_is_409(client, setup):
    rx = (await _prescribe(client, setup)).json()["prescription"]
    await _activate(client, setup, rx["id"])

    resp = await _prescribe(client, setup)

    assert resp.status_code == 409


async def test_prescribing_unlinked_patient_creates_relationship(client, doctor, register_patient, sample_protocol):
    patient = await register_patient()
    protocol = (await client.post("/protocols", json=sample_protocol, headers=doctor.headers)).json()

    resp = await client.post(
        "/prescriptions",
        json={"protocol_id": protocol["id"], "patient_id": patient.id, "planned_start_date": "2026-05-01"},
        headers=doctor.headers,
    )

    assert resp.status_code == 201
    doctors = (await client.get("/patients/me/doctors", headers=patient.headers)).json()
    assert [(d["doctor_id"], d["is_primary"]) for d in doctors] == [(doctor.id, True)]


async def test_activate_schedules_every_task(client, setup):
    rx = (await _prescribe(client, setup)).json()["prescription"]
    start = date(2026, 3, 2)

    resp = await _activate(client, setup, rx["id"], start)

    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "ACTIVE"
    assert body["actual_start_date"] == "2026-03-02"
    assert sorted(p["scheduled_date"] for p in body["progress"]) == ["2026-03-02", "2026-03-02", "2026-03-03"]
    assert {p["status"] for p in body["progress"]} == {"PENDING"}


async def test_activate_again_reschedules(client, setup):
    rx = (await _prescribe(client, setup)).json()["prescription"]
    await _activate(client, setup, rx["id"], date(2026, 3, 2))

    resp = await _activate(client, setup, rx["id"], date(2026, 3, 10))

    body = resp.json()
    assert body["status"] == "ACTIVE"
    assert sorted(p["scheduled_date"] for p in body["progress"]) == ["2026-03-10", "2026-03-10", "2026-03-11"]


async def test_doctor_cannot_activate(client, setup):
    rx = (await _prescribe(client, setup)).json()["prescription"]

    resp = await client.post(f"/prescriptions/{rx['id']}/activate", json={}, headers=setup.doctor.headers)

    assert resp.status_code == 403


async def test_toggle_tasks_until_completed(client, setup):
    rx = (await _prescribe(client, setup)).json()["prescription"]
    progress = (await _activate(client, setup, rx["id"])).json()["progress"]
    url = f"/prescriptions/{rx['id']}/tasks/{{}}/toggle"

    r1 = await client.post(url.format(progress[0]["id"]), headers=setup.patient.headers)
    assert r1.status_code == 200
    assert r1.json()["progress"]["status"] == "COMPLETED"
    assert r1.json()["progress"]["completed_at"] is not None
    assert r1.json()["prescription"]["adherence_rate"] == 33

    undo = await client.post(url.format(progress[0]["id"]), headers=setup.patient.headers)
    assert undo.json()["progress"]["status"] == "PENDING"
    assert undo.json()["prescription"]["adherence_rate"] == 0

    for row in progress:
        last = await client.post(url.format(row["id"]), headers=setup.patient.headers)

    assert last.json()["prescription"]["status"] == "COMPLETED"
    assert last.json()["prescription"]["adherence_rate"] == 100
    assert last.json()["prescription"]["actual_end_date"] == date.today().isoformat()


async def test_toggle_requires_active(client, setup):
    rx = (await _prescribe(client, setup)).json()["prescription"]
    progress = (await _activate(client, setup, rx["id"])).json()["progress"]
    await client.post(f"/prescriptions/{rx['id']}/pause", headers=setup.patient.headers)

    resp = await client.post(
        f"/prescriptions/{rx['id']}/tasks/{progress[0]['id']}/toggle", headers=setup.patient.headers
    )

    assert resp.status_code == 409


async def test_pause_resume(client, setup):
    rx = (await _prescribe(client, setup)).json()["prescription"]

    early = await client.post(f"/prescriptions/{rx['id']}/pause", headers=setup.patient.headers)
    assert early.status_code == 409

    await _activate(client, setup, rx["id"])
    paused = await client.post(f"/prescriptions/{rx['id']}/pause", headers=setup.doctor.headers)
    assert paused.json()["status"] == "PAUSED"

    resumed = await client.post(f"/prescriptions/{rx['id']}/resume", headers=setup.patient.headers)
    assert resumed.json()["status"] == "ACTIVE"

    twice = await client.post(f"/prescriptions/{rx['id']}/resume", headers=setup.patient.headers)
    assert twice.status_code == 409


async def test_abandon_is_terminal(client, setup):
    rx = (await _prescribe(client, setup)).json()["prescription"]

    resp = await client.post(
        f"/prescriptions/{rx['id']}/abandon", json={"reason": "Travelling"}, headers=setup.patient.headers
    )
    assert resp.status_code == 200
    assert resp.json()["status"] == "ABANDONED"
    assert resp.json()["abandon_reason"] == "Travelling"

    again = await _activate(client, setup, rx["id"])
    assert again.status_code == 409


async def test_manual_complete(client, setup):
    rx = (await _prescribe(client, setup)).json()["prescription"]
    await _activate(client, setup, rx["id"])

    resp = await client.post(f"/prescriptions/{rx['id']}/complete", headers=setup.doctor.headers)

    assert resp.json()["status"] == "COMPLETED"


async def test_reset_returns_to_prescribed(client, setup):
    rx = (await _prescribe(client, setup)).json()["prescription"]
    await _activate(client, setup, rx["id"])
    await client.post(f"/prescriptions/{rx['id']}/abandon", json={}, headers=setup.patient.headers)

    resp = await client.post(f"/prescriptions/{rx['id']}/reset", headers=setup.doctor.headers)

    assert resp.status_code == 200
    assert resp.json()["status"] == "PRESCRIBED"
    assert resp.json()["actual_start_date"] is None
    detail = await client.get(f"/prescriptions/{rx['id']}", headers=setup.doctor.headers)
    assert detail.json()["progress"] == []


async def test_patient_cannot_reset(client, setup):
    rx = (await _prescribe(client, setup)).json()["prescription"]

    resp = await client.post(f"/prescriptions/{rx['id']}/reset", headers=setup.patient.headers)

    assert resp.status_code == 403


async def test_visibility(client, setup, register_doctor, register_patient):
    rx = (await _prescribe(client, setup)).json()["prescription"]
    stranger_doctor = await register_doctor(name="Bob Jones")
    stranger_patient = await register_patient(name="Other")

    own = await client.get(f"/prescriptions/{rx['id']}", headers=setup.patient.headers)
    prescriber = await client.get(f"/prescriptions/{rx['id']}", headers=setup.doctor.headers)
    doc = await client.get(f"/prescriptions/{rx['id']}", headers=stranger_doctor.headers)
    pat = await client.get(f"/prescriptions/{rx['id']}", headers=stranger_patient.headers)
    change = await client.post(f"/prescriptions/{rx['id']}/abandon", json={}, headers=stranger_patient.headers)

    assert own.status_code == 200
    assert own.json()["protocol"]["name"] == "Sleep reset"
    assert prescriber.status_code == 200
    assert doc.status_code == 404
    assert pat.status_code == 404
    assert change.status_code == 403


async def test_listings(client, setup):
    rx = (await _prescribe(client, setup)).json()["prescription"]
    await _activate(client, setup, rx["id"])

    mine = await client.get("/prescriptions/me", headers=setup.patient.headers)
    active = await client.get("/prescriptions", params={"status": "ACTIVE"}, headers=setup.doctor.headers)
    paused = await client.get("/prescriptions", params={"status": "PAUSED"}, headers=setup.doctor.headers)

    assert [p["id"] for p in mine.json()] == [rx["id"]]
    assert mine.json()[0]["current_day"] == 1
    assert len(mine.json()[0]["progress"]) == 3
    assert [p["id"] for p in active.json()] == [rx["id"]]
    assert paused.json() == []


async def test_audit_trail(client, setup):
    rx = (await _prescribe(client, setup)).json()["prescription"]
    await _activate(client, setup, rx["id"])

    log = await client.get("/clinic/audit-log", headers=setup.doctor.headers)

    actions = [row["action"] for row in log.json()]
    assert actions[:2] == ["prescription.activated", "prescription.prescribed"]
