from app.api.routes import schedules
from app.core.security import create_access_token


def auth_headers(user_id):
    return {"Authorization": f"Bearer {create_access_token(user_id)}"}


def schedule_payload(catalog, start="09:00", end="10:00", **overrides):
    payload = {
        "room_id": catalog.room_id,
        "course_id": catalog.course_id,
        "instructor_id": catalog.instructor_id,
        "date": "2026-11-02",
        "start_time": start,
        "end_time": end,
    }
    payload.update(overrides)
    return payload


def create_schedule(client, catalog, **kwargs):
    response = client.post("/api/schedules", json=schedule_payload(catalog, **kwargs), headers=auth_headers(catalog.admin_id))
    assert response.status_code == 201, response.text
    return response.json()


def test_create_schedule(client, catalog):
    body = create_schedule(client, catalog)

    assert body["room_id"] == catalog.room_id
    assert body["date"] == "2026-11-02"
    assert body["start_time"] == "09:00:00"
    assert body["status"] == "active"
    assert body["created_by"] == catalog.admin_id

    fetched = client.get(f"/api/schedules/{body['id']}", headers=auth_headers(catalog.instructor_id))
    assert fetched.status_code == 200
    assert fetched.json()["id"] == body["id"]


def test_schedule_writes_require_editor_role(client, catalog):
    anonymous = client.post("/api/schedules", json=schedule_payload(catalog))
    assert anonymous.status_code == 401

    instructor = client.post(
        "/api/schedules", json=schedule_payload(catalog), headers=auth_headers(catalog.instructor_id)
    )
    assert instructor.status_code == 403

    coordinator = client.post(
        "/api/schedules", json=schedule_payload(catalog), headers=auth_headers(catalog.coordinator_id)
    )
    assert coordinator.status_code == 201


def test_invalid_token_is_rejected(client, catalog):
    response = client.get("/api/schedules", headers={"Authorization": "Bearer not-a-token"})
    assert response.status_code == 401


def test_conflicting_schedule_returns_409_with_violations(client, catalog):
    existing = create_schedule(client, catalog)

    response = client.post(
        "/api/schedules",
        json=schedule_payload(catalog, "09:30", "10:30", instructor_id=catalog.other_instructor_id),
        headers=auth_headers(catalog.admin_id),
    )

    assert response.status_code == 409
    body = response.json()
    assert body["message"] == "Schedule validation failed"
    assert [item["kind"] for item in body["details"]["violations"]] == ["RoomConflict"]
    assert body["details"]["violations"][0]["schedule_id"] == existing["id"]
    assert body["details"]["errors"][0].startswith("Room conflict detected: R-101")


def test_reversed_times_are_a_violation_not_a_payload_error(client, catalog):
    response = client.post(
        "/api/schedules",
        json=schedule_payload(catalog, "10:00", "09:00"),
        headers=auth_headers(catalog.admin_id),
    )
    assert response.status_code == 409
    assert response.json()["details"]["errors"] == ["End time must be after start time"]


def test_malformed_payload_returns_400(client, catalog):
    response = client.post(
        "/api/schedules",
        json=schedule_payload(catalog, start="25:00"),
        headers=auth_headers(catalog.admin_id),
    )
    assert response.status_code == 400
    assert response.json()["message"] == "Invalid request payload"

    missing_field = schedule_payload(catalog)
    del missing_field["room_id"]
    response = client.post("/api/schedules", json=missing_field, headers=auth_headers(catalog.admin_id))
    assert response.status_code == 400


def test_unknown_room_returns_404(client, catalog):
    response = client.post(
        "/api/schedules",
        json=schedule_payload(catalog, room_id="missing-room"),
        headers=auth_headers(catalog.admin_id),
    )
    assert response.status_code == 404
    assert response.json() == {
        "message": "Room with id missing-room not found",
        "details": {"resource": "Room", "id": "missing-room"},
    }


def test_bulk_create_is_all_or_nothing(client, catalog):
    payload = [
        schedule_payload(catalog, "08:00", "09:00"),
        schedule_payload(catalog, "08:30", "09:30", instructor_id=catalog.other_instructor_id),
        schedule_payload(catalog, "12:00", "13:00"),
    ]

    response = client.post("/api/schedules/bulk", json=payload, headers=auth_headers(catalog.admin_id))

    assert response.status_code == 409
    body = response.json()
    assert body["message"] == "1 schedule(s) failed validation. Transaction not executed."
    entry = body["details"]["entries"][0]
    assert entry["line"] == 2
    assert entry["violations"][0]["entry"] == 1
    assert entry["schedule"]["start_time"] == "08:30:00"

    listing = client.get("/api/schedules", headers=auth_headers(catalog.admin_id))
    assert listing.json()["pagination"]["total"] == 0


def test_bulk_create_inserts_all(client, catalog):
    payload = [schedule_payload(catalog, "08:00", "09:00"), schedule_payload(catalog, "09:00", "10:00")]

    response = client.post("/api/schedules/bulk", json=payload, headers=auth_headers(catalog.admin_id))

    assert response.status_code == 201
    assert response.json()["created"] == 2
    assert len(response.json()["ids"]) == 2


def test_bulk_create_rejects_empty_list(client, catalog):
    response = client.post("/api/schedules/bulk", json=[], headers=auth_headers(catalog.admin_id))
    assert response.status_code == 400


def test_update_schedule(client, catalog):
    schedule = create_schedule(client, catalog)

    response = client.put(
        f"/api/schedules/{schedule['id']}",
        json={"room_id": catalog.other_room_id, "end_time": "11:00"},
        headers=auth_headers(catalog.coordinator_id),
    )

    assert response.status_code == 200
    assert response.json()["room_id"] == catalog.other_room_id
    assert response.json()["end_time"] == "11:00:00"


def test_update_rejects_empty_and_null_changes(client, catalog):
    schedule = create_schedule(client, catalog)
    headers = auth_headers(catalog.admin_id)

    assert client.put(f"/api/schedules/{schedule['id']}", json={}, headers=headers).status_code == 400
    assert client.put(f"/api/schedules/{schedule['id']}", json={"room_id": None}, headers=headers).status_code == 400


def test_update_into_conflict_returns_409(client, catalog):
    create_schedule(client, catalog, start="09:00", end="10:00")
    other = create_schedule(client, catalog, start="11:00", end="12:00", room_id=catalog.other_room_id)

    response = client.put(
        f"/api/schedules/{other['id']}",
        json={"start_time": "09:30"},
        headers=auth_headers(catalog.admin_id),
    )

    assert response.status_code == 409
    assert response.json()["message"] == "Schedule update validation failed"
    assert [item["kind"] for item in response.json()["details"]["violations"]] == ["InstructorConflict"]


def test_cancel_schedule_frees_slot(client, catalog):
    schedule = create_schedule(client, catalog)
    headers = auth_headers(catalog.admin_id)

    response = client.delete(f"/api/schedules/{schedule['id']}", headers=headers)
    assert response.status_code == 200
    assert response.json() == {"success": True, "message": "Schedule cancelled successfully"}

    cancelled = client.get("/api/schedules", params={"status": "cancelled"}, headers=headers)
    assert cancelled.json()["pagination"]["total"] == 1

    updated = client.put(f"/api/schedules/{schedule['id']}", json={"end_time": "11:00"}, headers=headers)
    assert updated.status_code == 409

    create_schedule(client, catalog)


def test_missing_schedule_returns_404(client, catalog):
    headers = auth_headers(catalog.admin_id)
    assert client.get("/api/schedules/missing", headers=headers).status_code == 404
    assert client.delete("/api/schedules/missing", headers=headers).status_code == 404


def test_list_schedules_filters_and_paginates(client, catalog):
    create_schedule(client, catalog, start="08:00", end="09:00")
    create_schedule(client, catalog, start="09:00", end="10:00")
    create_schedule(client, catalog, start="10:00", end="11:00", room_id=catalog.other_room_id)
    headers = auth_headers(catalog.admin_id)

    page = client.get("/api/schedules", params={"limit": 2, "page": 2}, headers=headers)
    assert page.status_code == 200
    assert page.json()["pagination"] == {"page": 2, "limit": 2, "total": 3, "pages": 2}
    assert len(page.json()["data"]) == 1

    by_room = client.get("/api/schedules", params={"room_id": catalog.room_id}, headers=headers)
    assert [item["start_time"] for item in by_room.json()["data"]] == ["08:00:00", "09:00:00"]

    by_date = client.get("/api/schedules", params={"start_date": "2026-11-03"}, headers=headers)
    assert by_date.json()["pagination"]["total"] == 0


def test_upsert_creates_then_updates(client, catalog):
    headers = auth_headers(catalog.admin_id)

    created = client.post("/api/schedules/upsert", json=schedule_payload(catalog), headers=headers)
    assert created.status_code == 201

    updated = client.post(
        "/api/schedules/upsert",
        json=schedule_payload(catalog, end="10:30", instructor_id=catalog.other_instructor_id),
        headers=headers,
    )
    assert updated.status_code == 200
    assert updated.json()["id"] == created.json()["id"]
    assert updated.json()["instructor_id"] == catalog.other_instructor_id


def test_validate_endpoint_is_a_dry_run(client, catalog):
    headers = auth_headers(catalog.admin_id)

    response = client.post(
        "/api/schedules/validate",
        json=schedule_payload(catalog, room_id=catalog.small_room_id, instructor_id=catalog.unassigned_instructor_id),
        headers=headers,
    )

    assert response.status_code == 200
    body = response.json()
    assert body["accepted"] is False
    assert [item["kind"] for item in body["violations"]] == ["CapacityViolation", "InstructorNotAssigned"]
    assert client.get("/api/schedules", headers=headers).json()["pagination"]["total"] == 0


def test_catalog_endpoints(client, catalog):
    headers = auth_headers(catalog.instructor_id)

    rooms = client.get("/api/rooms", headers=headers)
    assert [room["code"] for room in rooms.json()] == ["R-101", "R-102", "R-201"]

    course = client.get(f"/api/courses/{catalog.course_id}", headers=headers)
    assert course.status_code == 200
    assert sorted(course.json()["instructor_ids"]) == sorted([catalog.instructor_id, catalog.other_instructor_id])

    assert client.get("/api/rooms/missing", headers=headers).status_code == 404


def test_times_with_utc_offset_are_rejected(client, catalog):
    headers = auth_headers(catalog.admin_id)
    schedule = create_schedule(client, catalog)

    validate = client.post(
        "/api/schedules/validate",
        json=schedule_payload(catalog, start="09:00:00Z", end="10:00:00"),
        headers=headers,
    )
    assert validate.status_code == 400
    assert validate.json()["message"] == "Invalid request payload"

    create = client.post(
        "/api/schedules",
        json=schedule_payload(catalog, start="09:30:00Z", end="10:30:00Z"),
        headers=headers,
    )
    assert create.status_code == 400

    update = client.put(f"/api/schedules/{schedule['id']}", json={"end_time": "11:00:00+02:00"}, headers=headers)
    assert update.status_code == 400
    assert client.get(f"/api/schedules/{schedule['id']}", headers=headers).json()["end_time"] == "10:00:00"


def test_bulk_size_errors_use_the_error_envelope(client, catalog, monkeypatch):
    headers = auth_headers(catalog.admin_id)

    empty = client.post("/api/schedules/bulk", json=[], headers=headers)
    assert empty.status_code == 400
    assert empty.json() == {"message": "At least one schedule is required", "details": {"count": 0}}

    monkeypatch.setattr(schedules.settings, "bulk_schedule_max_items", 1)
    payload = [schedule_payload(catalog, "08:00", "09:00"), schedule_payload(catalog, "09:00", "10:00")]
    oversized = client.post("/api/schedules/bulk", json=payload, headers=headers)
    assert oversized.status_code == 400
    assert oversized.json()["details"] == {"count": 2, "limit": 1}
    assert client.get("/api/schedules", headers=headers).json()["pagination"]["total"] == 0
