from __future__ import annotations

from clinicflow.db import session_scope
from clinicflow.services.subscriptions import update_plan

COURSE = {
    "title": "Healthy sleep",
    "description": "Short video lessons",
    "modules": [
        {"title": "Basics", "lessons": [{"title": "Why sleep matters"}, {"title": "Circadian rhythm", "duration_minutes": 7}]},
        {"title": "Practice", "lessons": [{"title": "Evening routine"}]},
    ],
}


async def _course(client, doctor, payload=COURSE, publish=True):
    resp = await client.post("/courses", json=payload, headers=doctor.headers)
    assert resp.status_code == 201, resp.text
    course = resp.json()
    if publish:
        course = (await client.post(f"/courses/{course['id']}/publish", headers=doctor.headers)).json()
    return course


def _lesson_ids(course):
    return [lesson["id"] for module in course["modules"] for lesson in module["lessons"]]


async def test_create_course_numbers_modules_and_lessons(client, doctor):
    course = await _course(client, doctor, publish=False)

    assert course["status"] == "DRAFT"
    assert [m["order"] for m in course["modules"]] == [0, 1]
    assert [lesson["order"] for lesson in course["modules"][0]["lessons"]] == [0, 1]
    assert course["modules"][0]["lessons"][1]["duration_minutes"] == 7


async def test_publish_requires_a_lesson(client, doctor):
    empty = await _course(client, doctor, {"title": "Empty", "modules": [{"title": "Nothing yet"}]}, publish=False)

    resp = await client.post(f"/courses/{empty['id']}/publish", headers=doctor.headers)

    assert resp.status_code == 400


async def test_publish_and_unpublish(client, doctor):
    course = await _course(client, doctor)
    assert course["status"] == "PUBLISHED"
    assert course["published_at"] is not None

    draft = await client.post(f"/courses/{course['id']}/unpublish", headers=doctor.headers)
    assert draft.json()["status"] == "DRAFT"
    assert draft.json()["published_at"] is None

    listed = await client.get("/courses", params={"status": "DRAFT"}, headers=doctor.headers)
    assert [c["id"] for c in listed.json()] == [course["id"]]


async def test_update_replaces_modules(client, doctor):
    course = await _course(client, doctor, publish=False)

    resp = await client.patch(
        f"/courses/{course['id']}",
        json={"title": None, "description": "New", "modules": [{"title": "Only", "lessons": [{"title": "One"}]}]},
        headers=doctor.headers,
    )

    body = resp.json()
    assert body["title"] == "Healthy sleep"
    assert body["description"] == "New"
    assert [m["title"] for m in body["modules"]] == ["Only"]


async def test_other_doctor_cannot_touch_course(client, doctor, register_doctor):
    course = await _course(client, doctor)
    other = await register_doctor(name="Bob Jones")

    assert (await client.get(f"/courses/{course['id']}", headers=other.headers)).status_code == 404
    assert (await client.delete(f"/courses/{course['id']}", headers=other.headers)).status_code == 404


async def test_course_limit(client, doctor, default_plan):
    async with session_scope() as session:
        await update_plan(session, default_plan.id, {"max_courses": 1})

    await _course(client, doctor, publish=False)
    resp = await client.post("/courses", json=COURSE, headers=doctor.headers)

    assert resp.status_code == 402


async def test_only_published_courses_can_be_assigned(client, doctor, linked_patient):
    patient = await linked_patient(doctor)
    draft = await _course(client, doctor, publish=False)

    resp = await client.post(f"/courses/{draft['id']}/assign", json={"patient_id": patient.id}, headers=doctor.headers)

    assert resp.status_code == 400


async def test_assign_requires_relationship(client, doctor, register_patient):
    stranger = await register_patient()
    course = await _course(client, doctor)

    resp = await client.post(f"/courses/{course['id']}/assign", json={"patient_id": stranger.id}, headers=doctor.headers)

    assert resp.status_code == 404


async def test_assign_is_idempotent(client, doctor, linked_patient):
    patient = await linked_patient(doctor)
    course = await _course(client, doctor)

    first = await client.post(f"/courses/{course['id']}/assign", json={"patient_id": patient.id}, headers=doctor.headers)
    second = await client.post(f"/courses/{course['id']}/assign", json={"patient_id": patient.id}, headers=doctor.headers)

    assert first.status_code == 201
    assert first.json()["status"] == "ACTIVE"
    assert second.json()["id"] == first.json()["id"]


async def test_lesson_progress(client, doctor, linked_patient):
    patient = await linked_patient(doctor)
    course = await _course(client, doctor)
    await client.post(f"/courses/{course['id']}/assign", json={"patient_id": patient.id}, headers=doctor.headers)
    lessons = _lesson_ids(course)
    base = f"/courses/me/{course['id']}/lessons"

    mine = await client.get("/courses/me", headers=patient.headers)
    assert mine.json()[0]["total_lessons"] == 3
    assert mine.json()[0]["progress"] == 0

    await client.post(f"{base}/{lessons[0]}/complete", headers=patient.headers)
    # completing twice does not double count
    await client.post(f"{base}/{lessons[0]}/complete", headers=patient.headers)
    detail = await client.get(f"/courses/me/{course['id']}", headers=patient.headers)
    assert detail.json()["completed_lesson_ids"] == [lessons[0]]
    assert detail.json()["progress"] == 33

    await client.post(f"{base}/{lessons[1]}/complete", headers=patient.headers)
    done = await client.post(f"{base}/{lessons[2]}/complete", headers=patient.headers)
    assert done.json()["status"] == "COMPLETED"
    assert done.json()["completed_at"] is not None

    undone = await client.delete(f"{base}/{lessons[2]}/complete", headers=patient.headers)
    assert undone.json()["status"] == "ACTIVE"
    assert undone.json()["completed_at"] is None


async def test_progress_rounds_half_up(client, doctor, linked_patient):
    patient = await linked_patient(doctor)
    eight = {"title": "Long course", "modules": [{"title": "All", "lessons": [{"title": f"L{i}"} for i in range(8)]}]}
    course = await _course(client, doctor, eight)
    await client.post(f"/courses/{course['id']}/assign", json={"patient_id": patient.id}, headers=doctor.headers)

    first = _lesson_ids(course)[0]
    await client.post(f"/courses/me/{course['id']}/lessons/{first}/complete", headers=patient.headers)

    # 12.5%
    detail = await client.get(f"/courses/me/{course['id']}", headers=patient.headers)
    assert detail.json()["progress"] == 13


async def test_unassigned_course_is_403(client, doctor, linked_patient):
    patient = await linked_patient(doctor)
    course = await _course(client, doctor)

    resp = await client.get(f"/courses/me/{course['id']}", headers=patient.headers)

    assert resp.status_code == 403


async def test_lesson_from_other_course_is_404(client, doctor, linked_patient):
    patient = await linked_patient(doctor)
    course = await _course(client, doctor)
    other = await _course(client, doctor, {**COURSE, "title": "Other"})
    await client.post(f"/courses/{course['id']}/assign", json={"patient_id": patient.id}, headers=doctor.headers)

    resp = await client.post(
        f"/courses/me/{course['id']}/lessons/{_lesson_ids(other)[0]}/complete", headers=patient.headers
    )

    assert resp.status_code == 404


async def test_delete_course_removes_assignments(client, doctor, linked_patient):
    patient = await linked_patient(doctor)
    course = await _course(client, doctor)
    await client.post(f"/courses/{course['id']}/assign", json={"patient_id": patient.id}, headers=doctor.headers)

    resp = await client.delete(f"/courses/{course['id']}", headers=doctor.headers)

    assert resp.status_code == 204
    assert (await client.get("/courses/me", headers=patient.headers)).json() == []
