import re
from typing import Dict, Any, Optional, List, Tuple
from datetime import datetime

from pymongo import DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from ..utils.errors import ConflictError, PersistenceError
from ..utils.validators import Helpers

DATETIME_FIELDS = ('last_login', 'created_at', 'updated_at')
PRIVATE_FIELDS = ('password_hash',)


def from_storage(document: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if document is None:
        return None
    user = dict(document)
    for key in DATETIME_FIELDS:
        if isinstance(user.get(key), datetime):
            user[key] = Helpers.ensure_utc(user[key])
    return user


def user_to_json(user: Dict[str, Any]) -> Dict[str, Any]:
    """Public representation of a user document"""
    data = {key: value for key, value in user.items() if key not in PRIVATE_FIELDS and key != '_id'}
    data['id'] = user['_id']
    for key in DATETIME_FIELDS:
        if key in data:
            data[key] = Helpers.format_timestamp(data[key])
    return data


class UserModel:
    """User data model for MongoDB operations"""

    def __init__(self, db):
        self.collection = db.users

    def create_user(self, user_doc: Dict[str, Any]) -> Dict[str, Any]:
        """Insert a prepared user document"""
        user_doc = {
            key: Helpers.to_storage(value) if isinstance(value, datetime) else value
            for key, value in user_doc.items() if value is not None
        }
        user_doc.setdefault('_id', Helpers.generate_id())
        now = Helpers.to_storage(Helpers.get_current_timestamp())
        user_doc.setdefault('role', 'user')
        user_doc.setdefault('is_active', True)
        user_doc.setdefault('auth_provider', 'local')
        user_doc.setdefault('created_at', now)
        user_doc.setdefault('updated_at', now)

        try:
            self.collection.insert_one(user_doc)
        except DuplicateKeyError:
            raise ConflictError('User already exists with this email or username')
        except PyMongoError as e:
            raise PersistenceError(f"Failed to create user: {str(e)}")

        return self.get_user(user_doc['_id'])

    def get_user(self, user_id: str) -> Optional[Dict[str, Any]]:
        """Get user by ID"""
        return self._find_one({'_id': user_id})

    def get_user_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        """Get user by email"""
        return self._find_one({'email': email.lower().strip()})

    def get_user_by_google_id(self, google_id: str) -> Optional[Dict[str, Any]]:
        return self._find_one({'google_id': google_id})

    def get_user_by_identifier(self, identifier: str) -> Optional[Dict[str, Any]]:
        """Get user by email or username"""
        identifier = identifier.strip()
        return self._find_one({'$or': [{'email': identifier.lower()}, {'username': identifier}]})

    def find_existing(self, email: Optional[str] = None, username: Optional[str] = None,
                      exclude_id: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """First user holding the given email or username"""
        clauses = []
        if email:
            clauses.append({'email': email.lower().strip()})
        if username:
            clauses.append({'username': username})
        if not clauses:
            return None

        query = {'$or': clauses}
        if exclude_id:
            query['_id'] = {'$ne': exclude_id}
        return self._find_one(query)

    def update_user(self, user_id: str, fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Update user data"""
        update_doc = dict(fields)
        update_doc['updated_at'] = Helpers.get_current_timestamp()
        update_doc = {
            key: Helpers.to_storage(value) if isinstance(value, datetime) else value
            for key, value in update_doc.items()
        }

        try:
            updated = self.collection.find_one_and_update(
                {'_id': user_id}, {'$set': update_doc}, return_document=ReturnDocument.AFTER
            )
        except DuplicateKeyError:
            raise ConflictError('Email or username already taken')
        except PyMongoError as e:
            raise PersistenceError(f"Failed to update user: {str(e)}")

        return from_storage(updated)

    def delete_user(self, user_id: str) -> bool:
        try:
            return self.collection.delete_one({'_id': user_id}).deleted_count > 0
        except PyMongoError as e:
            raise PersistenceError(f"Failed to delete user: {str(e)}")

    def list_users(self, query: Optional[Dict[str, Any]] = None, page: int = 1,
                   limit: Optional[int] = None) -> Tuple[List[Dict[str, Any]], int]:
        """Users matching query, newest first, with the total match count"""
        query = query or {}
        try:
            cursor = self.collection.find(query, {'password_hash': 0}).sort('created_at', DESCENDING)
            if limit:
                cursor = cursor.skip((page - 1) * limit).limit(limit)
            users = [from_storage(doc) for doc in cursor]
            return users, self.collection.count_documents(query)
        except PyMongoError as e:
            raise PersistenceError(f"Failed to get users: {str(e)}")

    def count_users(self, query: Optional[Dict[str, Any]] = None) -> int:
        query = {
            key: Helpers.to_storage(value) if isinstance(value, datetime) else value
            for key, value in (query or {}).items()
        }
        try:
            return self.collection.count_documents(query)
        except PyMongoError as e:
            raise PersistenceError(f"Failed to count users: {str(e)}")

    def count_created_since(self, since: datetime) -> int:
        return self.count_users({'created_at': {'$gte': Helpers.to_storage(since)}})

    @staticmethod
    def build_search_query(search: Optional[str] = None, auth_provider: Optional[str] = None,
                           is_active: Optional[bool] = None) -> Dict[str, Any]:
        """Admin user-list filter; search is a case-insensitive substring match"""
        query = {}
        if search:
            pattern = {'$regex': re.escape(search.strip()), '$options': 'i'}
            query['$or'] = [{'name': pattern}, {'email': pattern}, {'username': pattern}]
        if auth_provider:
            query['auth_provider'] = auth_provider
        if is_active is not None:
            query['is_active'] = is_active
        return query

    def _find_one(self, query: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        try:
            return from_storage(self.collection.find_one(query))
        except PyMongoError as e:
            raise PersistenceError(f"Failed to get user: {str(e)}")
