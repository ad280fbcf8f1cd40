"""MongoDB connection utilities for loading settings from various sources."""
import os
import logging
from typing import Optional
from urllib.parse import quote_plus

from flask import current_app
from pymongo import MongoClient, ASCENDING, DESCENDING
from pymongo.errors import PyMongoError

logger = logging.getLogger(__name__)

DEFAULT_DEV_URI = 'mongodb://localhost:27017'


def get_mongo_uri() -> str:
    """
    Load the MongoDB connection string from environment variables or file.

    Supports three methods:
    1. MONGODB_URI - full connection string
    2. MONGODB_URI_FILE - path to a file holding the connection string
    3. Individual environment variables (MONGODB_HOST, MONGODB_PORT, ...)

    Outside development one of them is required.

    Raises:
        ValueError: If no connection settings are found
    """
    # Option 1: MONGODB_URI
    uri = os.getenv('MONGODB_URI')
    if uri:
        return uri

    # Option 2: MONGODB_URI_FILE (docker/k8s secrets)
    uri_file = os.getenv('MONGODB_URI_FILE')
    if uri_file and os.path.exists(uri_file):
        with open(uri_file, 'r') as f:
            return f.read().strip()

    # Option 3: Individual environment variables
    host = os.getenv('MONGODB_HOST')
    if host:
        port = os.getenv('MONGODB_PORT', '27017')
        user = os.getenv('MONGODB_USER')
        password = os.getenv('MONGODB_PASSWORD')
        if user:
            credentials = f"{quote_plus(user)}:{quote_plus(password or '')}@"
        else:
            credentials = ''
        return f"mongodb://{credentials}{host}:{port}"

    if os.getenv('FLASK_ENV', 'development') == 'development':
        return DEFAULT_DEV_URI

    raise ValueError(
        "MongoDB connection settings not found. Please set one of:\n"
        "1. MONGODB_URI (connection string)\n"
        "2. MONGODB_URI_FILE (path to a file holding the connection string)\n"
        "3. Individual env vars (MONGODB_HOST, MONGODB_PORT, MONGODB_USER, MONGODB_PASSWORD)"
    )


def connect(uri: Optional[str] = None, db_name: str = 'taskmanager'):
    """Open a client and return the database handle"""
    client = MongoClient(uri or get_mongo_uri(), serverSelectionTimeoutMS=5000, tz_aware=False)
    return client[db_name]


def ensure_indexes(db) -> None:
    """Create the indexes the application relies on (idempotent)"""
    db.users.create_index('email', unique=True)
    db.users.create_index('username', unique=True, sparse=True)
    db.users.create_index('google_id', unique=True, sparse=True)

    db.tasks.create_index([('user_id', ASCENDING), ('created_at', DESCENDING)])
    db.tasks.create_index([('user_id', ASCENDING), ('status', ASCENDING)])
    db.tasks.create_index([('user_id', ASCENDING), ('is_active', ASCENDING)])

    db.login_attempts.create_index([('created_at', DESCENDING)])
    db.login_attempts.create_index([('email', ASCENDING), ('created_at', DESCENDING)])
    db.login_attempts.create_index([('user_id', ASCENDING), ('created_at', DESCENDING)])


def ping(db) -> bool:
    """Return True when the database answers a ping"""
    try:
        db.command('ping')
        return True
    except PyMongoError as e:
        logger.warning(f"Database ping failed: {e}")
        return False


def init_database(app, db=None):
    """Attach a database handle to the app, connecting if none is given.

    Returns True when the database is reachable and indexed.
    """
    if db is None:
        db = connect(app.config.get('MONGODB_URI'), app.config.get('MONGODB_DB_NAME', 'taskmanager'))

    app.extensions['mongo_db'] = db

    try:
        ensure_indexes(db)
    except PyMongoError as e:
        logger.error(f"Database initialization failed: {e}")
        return False

    logger.info(f"Database ready: {db.name}")
    return True


def get_db():
    """Database handle of the current app"""
    return current_app.extensions['mongo_db']
