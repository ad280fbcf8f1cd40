import re
import logging
from typing import Dict, Any, Optional, List, Tuple
from datetime import datetime, timedelta

from pymongo import DESCENDING
from pymongo.errors import PyMongoError

from ..utils.errors import PersistenceError
from ..utils.validators import Helpers

logger = logging.getLogger(__name__)

LOGIN_METHODS = ('email', 'google-signup', 'google-signin', 'google')


def parse_device_info(user_agent: Optional[str]) -> Dict[str, str]:
    """Coarse browser / os / device classification of a User-Agent header"""
    ua = (user_agent or '').lower()

    if 'edg/' in ua:
        browser = 'Edge'
    elif 'opr/' in ua or 'opera' in ua:
        browser = 'Opera'
    elif 'chrome/' in ua:
        browser = 'Chrome'
    elif 'firefox/' in ua:
        browser = 'Firefox'
    elif 'safari/' in ua:
        browser = 'Safari'
    else:
        browser = 'Other'

    if 'android' in ua:
        os_name = 'Android'
    elif 'iphone' in ua or 'ipad' in ua:
        os_name = 'iOS'
    elif 'windows' in ua:
        os_name = 'Windows'
    elif 'mac os' in ua:
        os_name = 'macOS'
    elif 'linux' in ua:
        os_name = 'Linux'
    else:
        os_name = 'Other'

    if 'ipad' in ua or 'tablet' in ua:
        device = 'Tablet'
    elif 'mobi' in ua or 'iphone' in ua or 'android' in ua:
        device = 'Mobile'
    else:
        device = 'Desktop'

    return {'browser': browser, 'os': os_name, 'device': device}


def attempt_to_json(attempt: Dict[str, Any]) -> Dict[str, Any]:
    data = {key: value for key, value in attempt.items() if key != '_id'}
    data['id'] = attempt['_id']
    data['created_at'] = Helpers.format_timestamp(Helpers.ensure_utc(attempt.get('created_at')))
    return data


class LoginAttemptModel:
    """Append-only audit log of sign-in attempts"""

    def __init__(self, db):
        self.collection = db.login_attempts

    def log_attempt(self, email: str, success: bool, ip_address: str = 'unknown',
                    user_agent: str = 'unknown', login_method: str = 'email',
                    user_id: Optional[str] = None, failure_reason: Optional[str] = None,
                    now: Optional[datetime] = None) -> Optional[Dict[str, Any]]:
        """Record an attempt. Never raises: a failed write is only logged."""
        attempt = {
            '_id': Helpers.generate_id(),
            'email': (email or '').strip().lower(),
            'success': bool(success),
            'ip_address': ip_address or 'unknown',
            'user_agent': user_agent or 'unknown',
            'login_method': login_method if login_method in LOGIN_METHODS else 'email',
            'user_id': user_id,
            'failure_reason': failure_reason,
            'device_info': parse_device_info(user_agent),
            'created_at': Helpers.to_storage(now or Helpers.get_current_timestamp()),
        }
        try:
            self.collection.insert_one(attempt)
            return attempt
        except PyMongoError as e:
            logger.error(f"Error logging login attempt for {attempt['email']}: {e}")
            return None

    def get_stats(self, days: int = 30, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Attempt totals over the last `days` days"""
        since = Helpers.to_storage((now or Helpers.get_current_timestamp()) - timedelta(days=days))
        window = {'created_at': {'$gte': since}}

        try:
            total = self.collection.count_documents(window)
            successful = self.collection.count_documents(dict(window, success=True))
            unique_users = len(self.collection.distinct('email', window))
        except PyMongoError as e:
            raise PersistenceError(f"Failed to get login statistics: {str(e)}")

        return {
            'total_attempts': total,
            'successful_logins': successful,
            'failed_logins': total - successful,
            'unique_users': unique_users,
            'success_rate': Helpers.completion_rate(successful, total),
        }

    def find_attempts(self, success: Optional[bool] = None, email: Optional[str] = None,
                      days: Optional[int] = None, page: int = 1, limit: int = 50,
                      now: Optional[datetime] = None) -> Tuple[List[Dict[str, Any]], int]:
        """Newest attempts first, with the total match count"""
        query = {}
        if success is not None:
            query['success'] = success
        if email:
            query['email'] = {'$regex': re.escape(email.strip()), '$options': 'i'}
        if days:
            since = (now or Helpers.get_current_timestamp()) - timedelta(days=days)
            query['created_at'] = {'$gte': Helpers.to_storage(since)}

        return self._page(query, page, limit)

    def find_for_user(self, user_id: str, page: int = 1, limit: int = 20) -> Dict[str, Any]:
        """Login history of one user with success counts"""
        attempts, total = self._page({'user_id': user_id}, page, limit)
        try:
            successful = self.collection.count_documents({'user_id': user_id, 'success': True})
        except PyMongoError as e:
            raise PersistenceError(f"Failed to get login history: {str(e)}")

        return {
            'attempts': attempts,
            'total': total,
            'successful': successful,
            'failed': total - successful,
        }

    def recent_successful(self, user_id: str, limit: int = 10) -> List[Dict[str, Any]]:
        attempts, _ = self._page({'user_id': user_id, 'success': True}, 1, limit)
        return attempts

    def _page(self, query: Dict[str, Any], page: int, limit: int) -> Tuple[List[Dict[str, Any]], int]:
        try:
            total = self.collection.count_documents(query)
            cursor = (
                self.collection.find(query)
                .sort('created_at', DESCENDING)
                .skip((page - 1) * limit)
                .limit(limit)
            )
            attempts = []
            for doc in cursor:
                doc['created_at'] = Helpers.ensure_utc(doc.get('created_at'))
                attempts.append(doc)
            return attempts, total
        except PyMongoError as e:
            raise PersistenceError(f"Failed to get login attempts: {str(e)}")
