"""
HTTP contract of the /api/sessions endpoints.
"""

from speddy.models import ScheduleSession
from tests.factories import (
    FRIDAY,
    MONDAY,
    NEXT_WEDNESDAY,
    NINE_THIRTY,
    OTHER_PROVIDER_ID,
    PROVIDER_ID,
    STUDENT_B,
    TUESDAY,
    WEDNESDAY,
    make_profile,
)

WEEK = {"startDate": MONDAY.isoformat(), "endDate": FRIDAY.isoformat()}


def _week(client):
    response = client.get("/api/sessions", params=WEEK)
    assert response.status_code == 200
    return response.json()["sessions"]


# =============================================================================
# GET /api/sessions
# =============================================================================


class TestGetSessions:
    def test_returns_virtual_instance(self, client, make_template):
        template = make_template()

        [session] = _week(client)

        assert session["id"] is None
        assert session["ref"] == {
            "kind": "ephemeral",
            "templateId": template.id,
            "sessionDate": WEDNESDAY.isoformat(),
        }
        assert session["session_date"] == WEDNESDAY.isoformat()
        assert session["start_time"] == "09:00:00"
        assert session["day_of_week"] == 3

    def test_orphans_are_dispatched_after_response(self, client, make_instance):
        orphan = make_instance(FRIDAY, day_of_week=5)

        assert _week(client) == []
        assert client.dispatched == [[orphan.id]]

    def test_nothing_dispatched_without_orphans(self, client, make_template):
        make_template()

        _week(client)

        assert client.dispatched == []

    def test_reversed_range(self, client):
        response = client.get(
            "/api/sessions", params={"startDate": FRIDAY.isoformat(), "endDate": MONDAY.isoformat()}
        )

        assert response.status_code == 400
        assert "error" in response.json()

    def test_missing_dates(self, client):
        response = client.get("/api/sessions")

        assert response.status_code == 400
        assert response.json()["error"] == "Invalid request body"


# =============================================================================
# POST /api/sessions/instances
# =============================================================================


class TestSaveInstance:
    def test_completing_virtual_instance_stores_it(self, client, db, make_template):
        make_template()
        [session] = _week(client)
        session["completed_at"] = "2025-03-12T09:35:00"
        session["completed_by"] = "provider-1"

        response = client.post("/api/sessions/instances", json=session)

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["session"]["ref"]["kind"] == "durable"
        assert body["session"]["id"] == body["session"]["ref"]["id"]

        [reloaded] = _week(client)
        assert reloaded["id"] == body["session"]["id"]
        assert reloaded["completed_at"].startswith("2025-03-12T09:35")

    def test_updating_stored_instance(self, client, make_template, make_instance):
        make_template()
        stored = make_instance(WEDNESDAY)
        [session] = _week(client)
        session["session_notes"] = "Used visuals"

        response = client.post("/api/sessions/instances", json=session)

        assert response.status_code == 200
        assert response.json()["session"]["id"] == stored.id
        assert response.json()["session"]["session_notes"] == "Used visuals"

    def test_other_providers_template_is_forbidden(self, client, db, make_template):
        make_template(provider_id=OTHER_PROVIDER_ID)
        client.login(make_profile(db, id=OTHER_PROVIDER_ID))
        [session] = _week(client)
        client.login(make_profile(db, id="intruder"))

        response = client.post("/api/sessions/instances", json=session)

        assert response.status_code == 403
        assert response.json() == {"error": "You can only update your own sessions"}

    def test_sea_cannot_move_instance_to_another_date(self, client, db, make_template):
        make_template(assigned_to_sea_id="sea-1")
        client.login(make_profile(db, id="sea-1", role="sea"))
        [session] = _week(client)
        session["session_date"] = TUESDAY.isoformat()

        response = client.post("/api/sessions/instances", json=session)

        assert response.status_code == 400
        assert db.query(ScheduleSession).filter(ScheduleSession.session_date.isnot(None)).count() == 0

    def test_sea_cannot_rewrite_template_fields(self, client, db, provider, make_template):
        make_template(assigned_to_sea_id="sea-1")
        client.login(make_profile(db, id="sea-1", role="sea"))
        [session] = _week(client)
        session.update(
            provider_id="sea-1",
            end_time="11:00:00",
            service_type="forged",
            session_notes="Worked on /r/",
        )

        response = client.post("/api/sessions/instances", json=session)

        assert response.status_code == 200
        row = db.query(ScheduleSession).filter(ScheduleSession.session_date.isnot(None)).one()
        assert row.session_date == WEDNESDAY
        assert row.provider_id == PROVIDER_ID
        assert row.end_time == NINE_THIRTY
        assert row.service_type == "speech"
        assert row.session_notes == "Worked on /r/"

        client.login(provider)
        [owner_view] = _week(client)
        assert owner_view["id"] == row.id

    def test_template_payload_is_refused(self, client, make_template):
        template = make_template()
        payload = {
            "ref": {"kind": "durable", "id": template.id},
            "provider_id": template.provider_id,
            "student_id": template.student_id,
            "day_of_week": 3,
            "start_time": "09:00:00",
            "end_time": "09:30:00",
        }

        response = client.post("/api/sessions/instances", json=payload)

        assert response.status_code == 400

    def test_invalid_day_of_week(self, client, make_template):
        make_template()
        [session] = _week(client)
        session["day_of_week"] = 0

        response = client.post("/api/sessions/instances", json=session)

        assert response.status_code == 400
        assert response.json()["error"] == "Invalid request body"


# =============================================================================
# POST /api/sessions/instances/persist
# =============================================================================


class TestPersistSessions:
    def test_persists_every_virtual_session(self, client, db, make_template):
        make_template()
        make_template(student_id=STUDENT_B)
        sessions = _week(client)

        response = client.post("/api/sessions/instances/persist", json={"sessions": sessions})

        assert response.status_code == 200
        persisted = response.json()["sessions"]
        assert all(s["ref"]["kind"] == "durable" for s in persisted)
        assert db.query(ScheduleSession).filter(ScheduleSession.session_date.isnot(None)).count() == 2


# =============================================================================
# POST /api/sessions/templates/{id}/instances
# =============================================================================


class TestGenerateTemplateInstances:
    def test_generates_weeks_ahead(self, client, make_template):
        template = make_template()

        response = client.post(
            f"/api/sessions/templates/{template.id}/instances", json={"weeksAhead": 1}
        )

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["instancesCreated"] == 2
        assert [i["session_date"] for i in body["instances"]] == [
            WEDNESDAY.isoformat(),
            NEXT_WEDNESDAY.isoformat(),
        ]

    def test_unknown_template(self, client):
        response = client.post("/api/sessions/templates/missing/instances", json={})

        assert response.status_code == 404

    def test_foreign_template(self, client, make_template):
        template = make_template(provider_id=OTHER_PROVIDER_ID)

        response = client.post(f"/api/sessions/templates/{template.id}/instances", json={})

        assert response.status_code == 403

    def test_instance_is_not_a_template(self, client, make_instance):
        instance = make_instance(WEDNESDAY)

        response = client.post(f"/api/sessions/templates/{instance.id}/instances", json={})

        assert response.status_code == 400
        assert response.json() == {"error": "Session already has a date - not a template"}

    def test_weeks_ahead_bounds(self, client, make_template):
        template = make_template()

        response = client.post(
            f"/api/sessions/templates/{template.id}/instances", json={"weeksAhead": 0}
        )

        assert response.status_code == 400


# =============================================================================
# Grouping
# =============================================================================


class TestGroupEndpoints:
    def test_group_and_ungroup(self, client, make_template):
        first = make_template()
        second = make_template(student_id=STUDENT_B)
        ids = [first.id, second.id]

        grouped = client.post("/api/sessions/group", json={"sessionIds": ids, "groupName": "Pair"})

        assert grouped.status_code == 200
        body = grouped.json()
        assert body["success"] is True
        assert {s["group_id"] for s in body["sessions"]} == {body["groupId"]}

        ungrouped = client.post("/api/sessions/ungroup", json={"sessionIds": ids})

        assert ungrouped.status_code == 200
        assert {s["group_id"] for s in ungrouped.json()["sessions"]} == {None}

    def test_group_needs_two_ids(self, client, make_template):
        response = client.post(
            "/api/sessions/group", json={"sessionIds": [make_template().id], "groupName": "Solo"}
        )

        assert response.status_code == 400
        assert response.json() == {"error": "At least 2 session IDs are required to create a group"}

    def test_group_needs_name(self, client, make_template):
        ids = [make_template().id, make_template(student_id=STUDENT_B).id]

        response = client.post("/api/sessions/group", json={"sessionIds": ids, "groupName": " "})

        assert response.status_code == 400
        assert response.json() == {"error": "Group name is required"}

    def test_group_forbidden(self, client, make_template):
        ids = [make_template().id, make_template(provider_id=OTHER_PROVIDER_ID, student_id=STUDENT_B).id]

        response = client.post("/api/sessions/group", json={"sessionIds": ids, "groupName": "Pair"})

        assert response.status_code == 403
        assert "error" in response.json()

    def test_ungroup_needs_an_id(self, client):
        response = client.post("/api/sessions/ungroup", json={})

        assert response.status_code == 400
        assert response.json() == {"error": "At least 1 session ID is required"}


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
