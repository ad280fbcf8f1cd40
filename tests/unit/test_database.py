"""Unit tests for MongoDB connection helpers."""
from unittest.mock import MagicMock

import pytest
from flask import Flask
from pymongo.errors import DuplicateKeyError, ServerSelectionTimeoutError

from taskmanager.database import ensure_indexes, get_mongo_uri, init_database, ping

ENV_VARS = ("MONGODB_URI", "MONGODB_URI_FILE", "MONGODB_HOST", "MONGODB_PORT",
            "MONGODB_USER", "MONGODB_PASSWORD", "FLASK_ENV")


@pytest.fixture
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestGetMongoUri:
    def test_uri_wins(self, clean_env):
        clean_env.setenv("MONGODB_URI", "mongodb://db.example.com/app")
        clean_env.setenv("MONGODB_HOST", "ignored")
        assert get_mongo_uri() == "mongodb://db.example.com/app"

    def test_uri_file(self, clean_env, tmp_path):
        secret = tmp_path / "mongo_uri"
        secret.write_text("mongodb://from-file:27017\n")
        clean_env.setenv("MONGODB_URI_FILE", str(secret))
        assert get_mongo_uri() == "mongodb://from-file:27017"

    def test_individual_vars_are_escaped(self, clean_env):
        clean_env.setenv("MONGODB_HOST", "db")
        clean_env.setenv("MONGODB_USER", "app")
        clean_env.setenv("MONGODB_PASSWORD", "p@ss:word")
        assert get_mongo_uri() == "mongodb://app:p%40ss%3Aword@db:27017"

    def test_development_default(self, clean_env):
        assert get_mongo_uri() == "mongodb://localhost:27017"

    def test_required_in_production(self, clean_env):
        clean_env.setenv("FLASK_ENV", "production")
        with pytest.raises(ValueError, match="MONGODB_URI"):
            get_mongo_uri()


def test_unique_indexes(mock_db):
    ensure_indexes(mock_db)
    ensure_indexes(mock_db)

    mock_db.users.insert_one({"_id": "1", "email": "a@example.com"})
    mock_db.users.insert_one({"_id": "2", "email": "b@example.com"})
    with pytest.raises(DuplicateKeyError):
        mock_db.users.insert_one({"_id": "3", "email": "a@example.com"})


def test_ping(mock_db):
    assert ping(mock_db) is True

    broken = MagicMock()
    broken.command.side_effect = ServerSelectionTimeoutError("no servers")
    assert ping(broken) is False


def test_init_database_reports_failure():
    app = Flask(__name__)
    db = MagicMock()
    db.users.create_index.side_effect = ServerSelectionTimeoutError("no servers")

    assert init_database(app, db) is False
    assert app.extensions["mongo_db"] is db
