from __future__ import annotations

from datetime import date, timedelta


async def _habit(client, patient, title, **extra):
    resp = await client.post("/habits", json={"title": title, **extra}, headers=patient.headers)
    assert resp.status_code == 201, resp.text
    return resp.json()


async def test_create_appends_order(client, register_patient):
    patient = await register_patient()

    first = await _habit(client, patient, "Drink water")
    second = await _habit(client, patient, "Stretch", category="fitness")

    assert (first["order"], second["order"]) == (0, 1)
    assert first["category"] == "personal"
    assert second["category"] == "fitness"


async def test_doctors_have_no_habits(client, doctor):
    resp = await client.get("/habits", headers=doctor.headers)

    assert resp.status_code == 403


async def test_toggle_progress(client, register_patient):
    patient = await register_patient()
    habit = await _habit(client, patient, "Walk")
    day = date(2026, 2, 10)

    first = await client.post(f"/habits/{habit['id']}/toggle", json={"date": day.isoformat()}, headers=patient.headers)
    second = await client.post(f"/habits/{habit['id']}/toggle", json={"date": day.isoformat()}, headers=patient.headers)

    assert first.json() == {"date": "2026-02-10", "is_checked": True, "is_update": False}
    assert second.json() == {"date": "2026-02-10", "is_checked": False, "is_update": True}


async def test_list_with_progress_window(client, register_patient):
    patient = await register_patient()
    walk = await _habit(client, patient, "Walk")
    read = await _habit(client, patient, "Read")
    today = date.today()
    for offset in (0, 2, 10):
        day = (today - timedelta(days=offset)).isoformat()
        await client.post(f"/habits/{walk['id']}/toggle", json={"date": day}, headers=patient.headers)

    resp = await client.get("/habits", headers=patient.headers)

    assert resp.status_code == 200
    body = resp.json()
    assert [h["habit"]["title"] for h in body] == ["Walk", "Read"]
    assert [p["date"] for p in body[0]["progress"]] == [
        (today - timedelta(days=2)).isoformat(),
        today.isoformat(),
    ]
    assert body[1]["progress"] == []
    assert read["is_active"] is True


async def test_bad_window_is_400(client, register_patient):
    patient = await register_patient()
    await _habit(client, patient, "Walk")

    resp = await client.get(
        "/habits", params={"start": "2026-02-10", "end": "2026-02-01"}, headers=patient.headers
    )

    assert resp.status_code == 400


async def test_update_and_delete(client, register_patient):
    patient = await register_patient()
    habit = await _habit(client, patient, "Walk")

    patched = await client.patch(f"/habits/{habit['id']}", json={"title": "Walk 30 min", "order": 5}, headers=patient.headers)
    assert patched.json()["title"] == "Walk 30 min"
    assert patched.json()["order"] == 5

    deleted = await client.delete(f"/habits/{habit['id']}", headers=patient.headers)
    assert deleted.status_code == 204
    assert (await client.get("/habits", headers=patient.headers)).json() == []

    gone = await client.post(f"/habits/{habit['id']}/toggle", json={"date": "2026-02-10"}, headers=patient.headers)
    assert gone.status_code == 404


async def test_habits_are_private(client, register_patient):
    owner = await register_patient()
    other = await register_patient(name="Other")
    habit = await _habit(client, owner, "Walk")

    resp = await client.patch(f"/habits/{habit['id']}", json={"title": "Mine"}, headers=other.headers)

    assert resp.status_code == 404
