"""
HTTP-level tests: routing, auth dependencies and response envelopes
"""
from datetime import timedelta

from database import utcnow


class TestServiceRoutes:
    """Unauthenticated service endpoints"""

    def test_health(self, client):
        response = client.get("/api/health")

        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_unknown_route_envelope(self, client):
        response = client.get("/api/nothing-here")

        assert response.status_code == 404
        assert response.json() == {
            "success": False,
            "error": "not_found",
            "message": "Route /api/nothing-here not found",
        }


class TestAuthRoutes:
    """Register, login and the bearer dependency"""

    def test_register_then_login(self, client):
        response = client.post("/api/auth/register", json={
            "name": "Kiran Kumar",
            "email": "kiran@campus.edu",
            "password": "secret123",
        })
        assert response.status_code == 201
        assert response.json()["user"]["email"] == "kiran@campus.edu"

        response = client.post("/api/auth/login", json={"email": "kiran@campus.edu", "password": "secret123"})
        assert response.status_code == 200
        token = response.json()["token"]

        response = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 200
        assert response.json()["user"]["name"] == "Kiran Kumar"

    def test_missing_token(self, client):
        response = client.get("/api/auth/me")

        assert response.status_code == 401
        body = response.json()
        assert body["success"] is False
        assert body["error"] == "unauthorized"
        assert body["message"] == "Access denied. No token provided."

    def test_bad_token(self, client):
        response = client.get("/api/auth/me", headers={"Authorization": "Bearer nonsense"})

        assert response.status_code == 401

    def test_request_validation_envelope(self, client):
        response = client.post("/api/auth/register", json={"name": "K", "email": "not-an-email"})

        assert response.status_code == 422
        body = response.json()
        assert body["error"] == "validation"
        fields = {e["field"] for e in body["errors"]}
        assert {"name", "email", "password"} <= fields

    def test_duplicate_email_is_409(self, client, leader):
        response = client.post("/api/auth/register", json={
            "name": "Asha Again",
            "email": "asha@campus.edu",
            "password": "secret123",
        })

        assert response.status_code == 409
        assert response.json()["error"] == "conflict"

    def test_search(self, client, leader, teammate, auth):
        response = client.get("/api/auth/search", params={"query": "rav"}, headers=auth(leader))

        assert response.status_code == 200
        assert [u["id"] for u in response.json()["users"]] == [teammate.id]


class TestSocietyRoutes:
    """Admin-only creation"""

    def test_student_forbidden(self, client, leader, organizer, auth):
        response = client.post("/api/societies", headers=auth(leader), json={
            "name": "Chess Club",
            "head_id": organizer.id,
            "contact_email": "chess@campus.edu",
        })

        assert response.status_code == 403
        assert response.json()["message"] == "Access denied. Insufficient permissions."

    def test_admin_creates_and_lists(self, client, admin, organizer, auth):
        response = client.post("/api/societies", headers=auth(admin), json={
            "name": "Chess Club",
            "head_id": organizer.id,
            "contact_email": "chess@campus.edu",
        })
        assert response.status_code == 201
        assert response.json()["society"]["head"]["id"] == organizer.id

        response = client.get("/api/societies")
        assert [s["name"] for s in response.json()["societies"]] == ["Chess Club"]


class TestEventRoutes:
    """Event endpoints"""

    def _payload(self, **overrides):
        now = utcnow()
        data = {
            "title": "Design Sprint",
            "description": "Two days of product design",
            "event_type": "workshop",
            "start_datetime": (now + timedelta(days=5)).isoformat(),
            "end_datetime": (now + timedelta(days=6)).isoformat(),
            "venue": "Studio 2",
            "registration_start_datetime": now.isoformat(),
            "registration_end_datetime": (now + timedelta(days=4)).isoformat(),
            "event_status": "published",
        }
        data.update(overrides)
        return data

    def test_student_cannot_create(self, client, leader, auth):
        response = client.post("/api/events", headers=auth(leader), json=self._payload())

        assert response.status_code == 403

    def test_create_and_fetch(self, client, organizer, auth):
        response = client.post("/api/events", headers=auth(organizer), json=self._payload())
        assert response.status_code == 201
        event_id = response.json()["event"]["id"]

        response = client.get(f"/api/events/{event_id}")
        assert response.status_code == 200
        assert response.json()["event"]["title"] == "Design Sprint"

        response = client.get("/api/events/my-events", headers=auth(organizer))
        assert [e["id"] for e in response.json()["events"]] == [event_id]

    def test_schedule_errors_are_field_keyed(self, client, organizer, auth):
        now = utcnow()
        response = client.post("/api/events", headers=auth(organizer), json=self._payload(
            end_datetime=(now + timedelta(days=1)).isoformat(),
        ))

        assert response.status_code == 422
        assert response.json()["errors"][0]["field"] == "end_datetime"

    def test_publication_guard_is_400(self, client, organizer, team_event, auth):
        response = client.put(f"/api/events/{team_event}", headers=auth(organizer), json={"event_type": "seminar"})

        assert response.status_code == 400
        assert response.json()["error"] == "invalid_state"

    def test_cancel(self, client, organizer, team_event, auth):
        response = client.delete(f"/api/events/{team_event}", headers=auth(organizer))
        assert response.status_code == 200

        response = client.get("/api/events")
        assert response.json()["events"] == []


class TestRegistrationFlow:
    """A team registering, accepting and being listed over HTTP"""

    def test_full_team_flow(self, client, leader, teammate, outsider, organizer, team_event, auth):
        response = client.post("/api/registrations", headers=auth(leader), json={
            "event_id": team_event,
            "team_name": "Alpha",
            "team_members": [teammate.id],
            "form_answers": [{"field_id": "year", "value": 3}],
        })
        assert response.status_code == 201
        registration = response.json()["registration"]
        assert registration["status"] == "pending"
        registration_id = registration["id"]

        response = client.get("/api/registrations/invitations/pending", headers=auth(teammate))
        assert [r["id"] for r in response.json()["invitations"]] == [registration_id]

        # invited members cannot read the registration until they accept
        response = client.get(f"/api/registrations/{registration_id}", headers=auth(teammate))
        assert response.status_code == 403

        response = client.put(
            f"/api/registrations/{registration_id}/invitation",
            headers=auth(teammate),
            json={"action": "accept"},
        )
        assert response.status_code == 200
        assert response.json()["registration"]["status"] == "confirmed"

        response = client.get(f"/api/registrations/{registration_id}", headers=auth(teammate))
        assert response.status_code == 200

        response = client.get("/api/registrations", params={"event_id": team_event}, headers=auth(organizer))
        assert response.json()["total"] == 1

        response = client.get("/api/registrations", params={"event_id": team_event}, headers=auth(outsider))
        assert response.json()["total"] == 0

        response = client.delete(f"/api/registrations/{registration_id}", headers=auth(outsider))
        assert response.status_code == 403

        response = client.delete(f"/api/registrations/{registration_id}", headers=auth(leader))
        assert response.status_code == 200

    def test_too_small_team_is_422(self, client, leader, team_event, auth):
        response = client.post("/api/registrations", headers=auth(leader), json={
            "event_id": team_event,
            "team_name": "Solo",
        })

        assert response.status_code == 422
        assert response.json()["message"] == "Team must have at least 2 members"

    def test_malformed_event_id_is_404(self, client, leader, auth):
        response = client.post("/api/registrations", headers=auth(leader), json={"event_id": "not-an-id"})

        assert response.status_code == 404
        assert response.json()["message"] == "Event not found"

    def test_unstorable_number_answer_is_422(self, client, leader, teammate, team_event, auth):
        response = client.post("/api/registrations", headers=auth(leader), json={
            "event_id": team_event,
            "team_name": "Alpha",
            "team_members": [teammate.id],
            "form_answers": [{"field_id": "year", "value": 10 ** 400}],
        })

        assert response.status_code == 422
        assert response.json()["errors"][0]["field"] == "answers.year"

    def test_invalid_action_rejected_by_schema(self, client, teammate, auth):
        response = client.put(
            "/api/registrations/65a000000000000000000000/invitation",
            headers=auth(teammate),
            json={"action": "maybe"},
        )

        assert response.status_code == 422

    def test_add_members_route(self, client, leader, teammate, third_member, team_event, auth):
        response = client.post("/api/registrations", headers=auth(leader), json={
            "event_id": team_event,
            "team_name": "Alpha",
            "team_members": [teammate.id],
        })
        registration_id = response.json()["registration"]["id"]

        response = client.post(
            f"/api/registrations/{registration_id}/members",
            headers=auth(leader),
            json={"members_to_add": [{"_id": third_member.id, "name": "Meera", "email": "meera@campus.edu"}]},
        )

        assert response.status_code == 200
        assert len(response.json()["registration"]["members"]) == 3


class TestBookmarkRoutes:
    """Bookmark endpoints"""

    def test_bookmark_cycle(self, client, leader, team_event, auth):
        response = client.post("/api/bookmarks", headers=auth(leader), json={"event_id": team_event})
        assert response.status_code == 201

        response = client.get(f"/api/bookmarks/check/{team_event}", headers=auth(leader))
        assert response.json()["isBookmarked"] is True

        response = client.post("/api/bookmarks", headers=auth(leader), json={"event_id": team_event})
        assert response.status_code == 409

        response = client.delete(f"/api/bookmarks/{team_event}", headers=auth(leader))
        assert response.status_code == 200

        response = client.get("/api/bookmarks", headers=auth(leader))
        assert response.json()["count"] == 0
