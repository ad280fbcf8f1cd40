"""Unit tests for input validators and response helpers."""
from datetime import datetime, timezone

import pytest

from taskmanager.utils.errors import ValidationError
from taskmanager.utils.validators import Helpers, Validators


class TestFieldValidators:
    @pytest.mark.parametrize("email,valid", [
        ("user@example.com", True),
        ("first.last+tag@sub.example.org", True),
        ("user@example", False),
        ("no-at-sign.com", False),
        (None, False),
    ])
    def test_email(self, email, valid):
        assert Validators.validate_email(email) is valid

    @pytest.mark.parametrize("username,valid", [
        ("bob", True),
        ("user_name_123", True),
        ("ab", False),
        ("a" * 21, False),
        ("has space", False),
        ("dash-ed", False),
    ])
    def test_username(self, username, valid):
        assert Validators.validate_username(username) is valid

    @pytest.mark.parametrize("password,valid", [
        ("Secret1", True),
        ("Sec1", False),
        ("secret123", False),
        ("SECRET123", False),
        ("SecretPass", False),
    ])
    def test_password(self, password, valid):
        assert Validators.validate_password(password) is valid


class TestTaskPayload:
    def test_full_payload(self):
        cleaned = Validators.validate_task_payload({
            "title": "  Plan sprint ",
            "description": " notes ",
            "status": "in-progress",
            "priority": "high",
            "category": "work",
            "assignee": "sam",
            "tags": ["a", "  b  ", ""],
            "due_date": "2024-03-01T10:00:00+02:00",
        })

        assert cleaned["title"] == "Plan sprint"
        assert cleaned["description"] == "notes"
        assert cleaned["tags"] == ["a", "b"]
        assert cleaned["due_date"] == datetime(2024, 3, 1, 8, 0, tzinfo=timezone.utc)

    def test_collects_every_error(self):
        with pytest.raises(ValidationError) as exc_info:
            Validators.validate_task_payload({
                "title": "x" * 201,
                "description": "d" * 1001,
                "status": "done",
                "priority": "urgent",
                "due_date": "tomorrow",
                "tags": "not-a-list",
            })

        assert len(exc_info.value.details) == 6
        assert exc_info.value.status_code == 400

    def test_partial_allows_missing_title(self):
        assert Validators.validate_task_payload({"priority": "low"}, partial=True) == {"priority": "low"}

    def test_empty_due_date_clears(self):
        assert Validators.validate_task_payload({"due_date": ""}, partial=True) == {"due_date": None}

    def test_unknown_fields_dropped(self):
        cleaned = Validators.validate_task_payload({"title": "t", "user_id": "intruder", "time_spent": 999})
        assert cleaned == {"title": "t"}

    def test_non_object_body(self):
        with pytest.raises(ValidationError):
            Validators.validate_task_payload(None)

    def test_due_date_out_of_range(self):
        with pytest.raises(ValidationError) as exc_info:
            Validators.validate_task_payload({"title": "t", "due_date": "9999-12-31T23:59:59-14:00"})

        assert len(exc_info.value.details) == 1


class TestAccountPayloads:
    def test_signup_normalizes_email(self):
        data = Validators.validate_signup({"username": " bob ", "email": " Bob@Example.COM", "password": "Secret1"})
        assert data == {"username": "bob", "email": "bob@example.com", "password": "Secret1"}

    def test_profile_update_partial(self):
        assert Validators.validate_profile_update({"email": "New@Example.com"}) == {"email": "new@example.com"}
        with pytest.raises(ValidationError):
            Validators.validate_profile_update({"username": "x"})


class TestHelpers:
    def test_timestamps(self):
        aware = datetime(2024, 1, 15, 9, 30, tzinfo=timezone.utc)

        assert Helpers.format_timestamp(aware) == "2024-01-15T09:30:00Z"
        assert Helpers.parse_timestamp("2024-01-15T09:30:00Z") == aware
        assert Helpers.parse_timestamp("2024-01-15T09:30:00") == aware
        assert Helpers.parse_timestamp("garbage") is None
        assert Helpers.parse_timestamp("9999-12-31T23:59:59-14:00") is None
        assert Helpers.to_storage(aware).tzinfo is None
        assert Helpers.ensure_utc(datetime(2024, 1, 15, 9, 30)) == aware

    @pytest.mark.parametrize("value,expected", [
        ("5", 5), ("0", 1), ("abc", 10), (None, 10), ("500", 200),
    ])
    def test_parse_int(self, value, expected):
        assert Helpers.parse_int(value, 10, maximum=200) == expected

    @pytest.mark.parametrize("value,expected", [
        ("true", True), ("FALSE", False), ("yes", None), (None, None), (True, True),
    ])
    def test_parse_bool(self, value, expected):
        assert Helpers.parse_bool(value) is expected

    def test_completion_rate(self):
        assert Helpers.completion_rate(1, 3) == 33.3
        assert Helpers.completion_rate(0, 0) == 0

    def test_pagination(self):
        assert Helpers.build_pagination(2, 10, 25) == {
            "page": 2, "limit": 10, "total": 25, "pages": 3, "has_next": True, "has_prev": True,
        }

    def test_error_response(self):
        body = Helpers.build_error_response("Bad", "VALIDATION_ERROR", details=["x"])
        assert body["success"] is False
        assert body["details"] == ["x"]
        assert body["timestamp"].endswith("Z")
