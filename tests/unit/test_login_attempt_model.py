"""Unit tests for the login attempt audit log."""
from datetime import timedelta
from unittest.mock import patch

import pytest
from pymongo.errors import PyMongoError

from taskmanager.models.login_attempt_model import LoginAttemptModel, attempt_to_json, parse_device_info

from conftest import T0


@pytest.fixture
def model(mock_db):
    return LoginAttemptModel(mock_db)


@pytest.mark.parametrize("user_agent,expected", [
    ("Mozilla/5.0 (Windows NT 10.0; Win64) AppleWebKit/537.36 Chrome/120.0 Safari/537.36",
     {"browser": "Chrome", "os": "Windows", "device": "Desktop"}),
    ("Mozilla/5.0 (Macintosh; Intel Mac OS X 14_0) AppleWebKit/605.1.15 Version/17.0 Safari/605.1.15",
     {"browser": "Safari", "os": "macOS", "device": "Desktop"}),
    ("Mozilla/5.0 (Linux; Android 14) Chrome/120.0 Mobile Safari/537.36",
     {"browser": "Chrome", "os": "Android", "device": "Mobile"}),
    ("Mozilla/5.0 (iPad; CPU OS 17_0 like Mac OS X) Safari/604.1",
     {"browser": "Safari", "os": "iOS", "device": "Tablet"}),
    ("Mozilla/5.0 (Windows NT 10.0) Chrome/120.0 Edg/120.0",
     {"browser": "Edge", "os": "Windows", "device": "Desktop"}),
    (None, {"browser": "Other", "os": "Other", "device": "Desktop"}),
])
def test_parse_device_info(user_agent, expected):
    assert parse_device_info(user_agent) == expected


def test_log_attempt_defaults(model, mock_db):
    model.log_attempt(" Bob@Example.com ", success=False, ip_address=None, user_agent=None,
                      login_method="carrier-pigeon", failure_reason="User not found", now=T0)

    stored = mock_db.login_attempts.find_one()
    assert stored["email"] == "bob@example.com"
    assert stored["ip_address"] == "unknown"
    assert stored["login_method"] == "email"
    assert stored["user_id"] is None


def test_log_attempt_never_raises(model):
    with patch.object(model.collection, "insert_one", side_effect=PyMongoError("down")):
        assert model.log_attempt("bob@example.com", success=True) is None


def test_stats_window(model):
    model.log_attempt("a@example.com", True, now=T0 - timedelta(days=40))
    model.log_attempt("a@example.com", True, now=T0 - timedelta(days=1))
    model.log_attempt("a@example.com", False, now=T0 - timedelta(days=2))
    model.log_attempt("b@example.com", False, now=T0 - timedelta(days=3))

    stats = model.get_stats(days=30, now=T0)

    assert stats == {
        "total_attempts": 3,
        "successful_logins": 1,
        "failed_logins": 2,
        "unique_users": 2,
        "success_rate": 33.3,
    }


def test_empty_stats(model):
    assert model.get_stats(now=T0)["success_rate"] == 0


def test_find_for_user(model):
    model.log_attempt("a@example.com", True, user_id="u1", now=T0)
    model.log_attempt("a@example.com", False, user_id="u1", now=T0 + timedelta(minutes=1))
    model.log_attempt("b@example.com", True, user_id="u2", now=T0)

    history = model.find_for_user("u1", limit=1)

    assert history["total"] == 2
    assert history["successful"] == 1
    assert history["failed"] == 1
    assert [a["success"] for a in history["attempts"]] == [False]


def test_attempt_to_json(model):
    attempt = model.log_attempt("a@example.com", True, now=T0)

    data = attempt_to_json(attempt)

    assert data["id"] == attempt["_id"]
    assert "_id" not in data
    assert data["created_at"] == "2024-01-15T09:00:00Z"
