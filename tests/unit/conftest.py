"""Shared pytest configuration for unit tests."""
from datetime import datetime, timezone

import mongomock
import pytest

from taskmanager.app import create_app
from taskmanager.services.auth_service import AuthService

TEST_CONFIG = {
    "TESTING": True,
    "SECRET_KEY": "unit-test-secret-key-0123456789abcdef",
    "JWT_SECRET": "unit-test-jwt-secret-0123456789abcdef",
    "JWT_EXPIRES_DAYS": 7,
    "BCRYPT_ROUNDS": 4,
    "GOOGLE_CLIENT_ID": "test-client.apps.googleusercontent.com",
    "FIREBASE_PROJECT_ID": "test-project",
    "CORS_ORIGINS": ["http://localhost:3000"],
    "LOG_LEVEL": "WARNING",
    "TIMER_LOCK_TTL_SECONDS": 30,
    "LOGIN_STATS_DAYS": 30,
    "RATELIMIT_ENABLED": False,
}

# whole seconds: MongoDB keeps millisecond precision only
T0 = datetime(2024, 1, 15, 9, 0, 0, tzinfo=timezone.utc)

DEFAULT_PASSWORD = "Secret123"


@pytest.fixture
def mock_db():
    """Fresh in-memory MongoDB database per test."""
    return mongomock.MongoClient().taskmanager_test


@pytest.fixture
def app(mock_db):
    return create_app(test_config=TEST_CONFIG, db=mock_db)


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def auth_service(mock_db):
    return AuthService(mock_db, TEST_CONFIG)


@pytest.fixture
def make_user(auth_service):
    """Factory creating local accounts; extra fields are written after signup."""
    def _make(username="alice", email=None, password=DEFAULT_PASSWORD, **fields):
        result = auth_service.signup(username, email or f"{username}@example.com", password)
        user = result["user"]
        if fields:
            user = auth_service.user_model.update_user(user["_id"], fields)
        return user
    return _make


@pytest.fixture
def auth_headers(auth_service):
    def _headers(user):
        return {"Authorization": f"Bearer {auth_service.generate_token(user['_id'])}"}
    return _headers


@pytest.fixture
def user(make_user):
    return make_user("alice")


@pytest.fixture
def admin(make_user):
    return make_user("root_admin", email="admin@example.com", role="admin")
