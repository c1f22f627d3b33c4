import os
import uuid

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["JWT_SECRET_KEY"] = "test-secret"
os.environ["AUTO_CREATE_SCHEMA"] = "1"
os.environ["LOG_LEVEL"] = "WARNING"

import pytest  # noqa: E402

from habit_tracker import app as flask_app, db  # noqa: E402
from habit_tracker.progress import current_day  # noqa: E402
from habit_tracker.realtime import registry  # noqa: E402


@pytest.fixture
def app():
    flask_app.config["TESTING"] = True
    with flask_app.app_context():
        db.drop_all()
        db.create_all()
    registry.clear()
    yield flask_app
    with flask_app.app_context():
        db.session.remove()
        db.drop_all()
    registry.clear()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def today():
    return current_day()


@pytest.fixture
def make_user(client):
    """Register a fresh user and return (headers, user dict, token)."""

    def _make(username=None, password="secret123"):
        username = username or f"user_{uuid.uuid4().hex[:8]}"
        response = client.post(
            "/api/auth/register",
            json={"username": username, "email": f"{username}@example.com", "password": password},
        )
        assert response.status_code == 201, response.get_json()
        body = response.get_json()
        headers = {"Authorization": f"Bearer {body['token']}"}
        return headers, body["user"], body["token"]

    return _make


@pytest.fixture
def make_habit(client):
    def _make(headers, **fields):
        payload = {"name": "Read", **fields}
        response = client.post("/api/habits", json=payload, headers=headers)
        assert response.status_code == 201, response.get_json()
        return response.get_json()["habit"]

    return _make
