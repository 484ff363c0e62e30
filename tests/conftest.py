"""
Campus Events - Test Configuration and Fixtures
"""
import os
from datetime import timedelta

import mongomock
import pytest

# Set testing environment before the app modules read it
os.environ["DATABASE_URL"] = ""
os.environ["DATABASE_NAME"] = ""
os.environ["JWT_SECRET_KEY"] = "test-jwt-secret-key-for-testing"
os.environ["BCRYPT_ROUNDS"] = "4"

from fastapi.testclient import TestClient

from database import create_document, ensure_indexes, get_db, utcnow
from main import app
from schemas import Event, FormField, User
from security import CurrentUser, create_access_token, get_password_hash

PASSWORD = "testpassword123"


@pytest.fixture
def db():
    """Fresh in-memory database per test, with the production indexes."""
    client = mongomock.MongoClient(tz_aware=True)
    database = client["campus_events_test"]
    ensure_indexes(database)
    return database


@pytest.fixture
def client(db):
    """Test client wired to the in-memory database"""
    app.dependency_overrides[get_db] = lambda: db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db):
    def factory(name: str, email: str, role: str = "student", is_active: bool = True) -> CurrentUser:
        user = User(
            name=name,
            email=email,
            password_hash=get_password_hash(PASSWORD),
            role=role,
            is_active=is_active,
        )
        user_id = create_document(db, "user", user)
        return CurrentUser(id=user_id, role=role, email=email)

    return factory


@pytest.fixture
def leader(make_user):
    return make_user("Asha Leader", "asha@campus.edu")


@pytest.fixture
def teammate(make_user):
    return make_user("Ravi Teammate", "ravi@campus.edu")


@pytest.fixture
def third_member(make_user):
    return make_user("Meera Third", "meera@campus.edu")


@pytest.fixture
def outsider(make_user):
    return make_user("Olu Outsider", "olu@campus.edu")


@pytest.fixture
def organizer(make_user):
    return make_user("Sana Head", "sana@campus.edu", role="society_head")


@pytest.fixture
def admin(make_user):
    return make_user("Ada Admin", "ada@campus.edu", role="admin")


@pytest.fixture
def make_event(db, organizer):
    """Insert an event directly, open for registration unless overridden."""

    def factory(**overrides) -> str:
        now = utcnow()
        data = {
            "title": "Campus Hackathon",
            "description": "Twenty-four hours of building things",
            "event_type": "hackathon",
            "start_datetime": now + timedelta(days=7),
            "end_datetime": now + timedelta(days=7, hours=24),
            "venue": "Main Auditorium",
            "organizer_id": organizer.id,
            "event_status": "published",
            "registration_start_datetime": now - timedelta(days=1),
            "registration_end_datetime": now + timedelta(days=3),
            "registration_mode": "team",
            "min_team_size": 2,
            "max_team_size": 4,
            "form_fields": [
                FormField(field_id="college", label="College", field_type="short_text", order_index=0),
                FormField(field_id="year", label="Year", field_type="number", order_index=1),
                FormField(field_id="dob", label="Date of birth", field_type="date", order_index=2,
                          is_required=False),
                FormField(field_id="track", label="Track", field_type="select", order_index=3,
                          options=["web", "ml"]),
            ],
        }
        data.update(overrides)
        return create_document(db, "event", Event(**data))

    return factory


@pytest.fixture
def team_event(make_event):
    return make_event()


def auth_headers(user: CurrentUser) -> dict:
    token = create_access_token({"sub": user.id, "email": user.email, "role": user.role})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth():
    return auth_headers
