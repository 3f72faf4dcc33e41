from datetime import datetime, timezone

import mongomock
import pytest
from fastapi.testclient import TestClient

from gymmini.auth import issue_token
from gymmini.db import get_db
from gymmini.db.identities import get_identity
from gymmini.db_init import ensure_indexes
from gymmini.main import app
from gymmini.services import reconciler, sessions

UTC = timezone.utc


@pytest.fixture
def mock_db():
    # in-memory MongoDB with the same indexes as production
    mock_client = mongomock.MongoClient(tz_aware=True)
    database = mock_client["test_db"]
    ensure_indexes(database)
    yield database


@pytest.fixture
def client(mock_db):
    app.dependency_overrides[get_db] = lambda: mock_db
    yield TestClient(app)
    app.dependency_overrides.clear()


def _make_member(db, email="ana@gym.com", name="Ana", **role_over):
    role_data = {
        "membership_start_date": datetime(2024, 1, 1, tzinfo=UTC),
        "membership_end_date": datetime(2099, 1, 1, tzinfo=UTC),
        "plan": "Gold",
    }
    role_data.update(role_over)
    return reconciler.create_with_projection(
        db,
        {"name": name, "email": email, "phone": "555-0100", "role": "member"},
        role_data,
        send_credentials=False,
    )


def _make_trainer(db, email="tom@gym.com", name="Tom", **role_over):
    role_data = {"specialization": "Yoga", "bio": "Ten years on the mat", "experience": "10"}
    role_data.update(role_over)
    return reconciler.create_with_projection(
        db,
        {"name": name, "email": email, "phone": "555-0200", "role": "trainer"},
        role_data,
        send_credentials=False,
    )


def _bearer(identity):
    return {"Authorization": f"Bearer {issue_token(identity)}"}


@pytest.fixture
def admin_user(mock_db):
    return reconciler.create_with_projection(
        mock_db,
        {"name": "Admin", "email": "admin@gym.com", "password": "admin123", "role": "admin"},
        send_credentials=False,
    )


@pytest.fixture
def admin_headers(admin_user):
    return _bearer(admin_user)


@pytest.fixture
def trainer_headers(mock_db):
    trainer = _make_trainer(mock_db, email="coach@gym.com", name="Coach")
    return _bearer(get_identity(mock_db, trainer["identity_id"]))


@pytest.fixture
def member_headers(mock_db):
    member = _make_member(mock_db, email="mia@gym.com", name="Mia")
    return _bearer(get_identity(mock_db, member["identity_id"]))


@pytest.fixture
def make_member(mock_db):
    return lambda **kw: _make_member(mock_db, **kw)


@pytest.fixture
def make_trainer(mock_db):
    return lambda **kw: _make_trainer(mock_db, **kw)


@pytest.fixture
def make_session(mock_db):
    """Session factory; `trainer` is an email, the trainer projection must exist."""
    def _make(trainer="coach@gym.com", **over):
        data = {
            "name": "Morning Yoga",
            "trainer_id": mock_db.trainers.find_one({"email": trainer})["_id"],
            "date": datetime(2024, 6, 1, tzinfo=UTC),
            "start_time": "07:30",
            "capacity": 12,
            "location": "Studio A",
        }
        data.update(over)
        return sessions.create_session(mock_db, data)
    return _make
