from datetime import datetime, timezone
from typing import Dict, Any, Optional, List
import re
import uuid

from .errors import ValidationError

TASK_STATUSES = ('todo', 'in-progress', 'completed')
TASK_PRIORITIES = ('low', 'medium', 'high')

TITLE_MAX_LENGTH = 200
DESCRIPTION_MAX_LENGTH = 1000
CATEGORY_MAX_LENGTH = 100
ASSIGNEE_MAX_LENGTH = 100
TAG_MAX_LENGTH = 50

_MISSING = object()


class Validators:
    """Input validation utilities"""

    @staticmethod
    def validate_email(email: str) -> bool:
        """Validate email format"""
        pattern = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'
        return isinstance(email, str) and bool(re.match(pattern, email))

    @staticmethod
    def validate_username(username: str) -> bool:
        """Validate username format (3-20 chars, alphanumeric + underscore)"""
        return isinstance(username, str) and bool(re.match(r'^[a-zA-Z0-9_]{3,20}$', username))

    @staticmethod
    def validate_password(password: str) -> bool:
        """At least 6 chars with a lower-case letter, an upper-case letter and a digit"""
        if not isinstance(password, str) or len(password) < 6:
            return False
        return bool(re.search(r'[a-z]', password) and re.search(r'[A-Z]', password) and re.search(r'\d', password))

    @staticmethod
    def validate_status(status: str) -> bool:
        """Validate task status"""
        return status in TASK_STATUSES

    @staticmethod
    def validate_priority(priority: str) -> bool:
        """Validate task priority"""
        return priority in TASK_PRIORITIES

    @staticmethod
    def validate_task_payload(payload: Dict[str, Any], partial: bool = False) -> Dict[str, Any]:
        """Validate a task create (or, with partial=True, update) payload.

        Returns the cleaned fields present in the payload. Raises
        ValidationError listing every problem found.
        """
        if not isinstance(payload, dict):
            raise ValidationError('Request body must be a JSON object')

        errors = []
        cleaned = {}

        title = payload.get('title', _MISSING)
        if title is _MISSING:
            if not partial:
                errors.append('Task title is required')
        elif not isinstance(title, str) or not title.strip():
            errors.append('Task title is required' if not partial else 'Task title cannot be empty')
        elif len(title.strip()) > TITLE_MAX_LENGTH:
            errors.append(f'Task title must be between 1 and {TITLE_MAX_LENGTH} characters')
        else:
            cleaned['title'] = title.strip()

        for field, limit, label in (
            ('description', DESCRIPTION_MAX_LENGTH, 'Task description'),
            ('category', CATEGORY_MAX_LENGTH, 'Category'),
            ('assignee', ASSIGNEE_MAX_LENGTH, 'Assignee name'),
        ):
            value = payload.get(field, _MISSING)
            if value is _MISSING:
                continue
            if value is None:
                cleaned[field] = None
            elif not isinstance(value, str):
                errors.append(f'{label} must be a string')
            elif len(value.strip()) > limit:
                errors.append(f'{label} cannot exceed {limit} characters')
            else:
                cleaned[field] = value.strip()

        status = payload.get('status', _MISSING)
        if status is not _MISSING:
            if not Validators.validate_status(status):
                errors.append(f"Status must be one of: {', '.join(TASK_STATUSES)}")
            else:
                cleaned['status'] = status

        priority = payload.get('priority', _MISSING)
        if priority is not _MISSING:
            if not Validators.validate_priority(priority):
                errors.append(f"Priority must be one of: {', '.join(TASK_PRIORITIES)}")
            else:
                cleaned['priority'] = priority

        due_date = payload.get('due_date', _MISSING)
        if due_date is not _MISSING:
            if due_date is None or due_date == '':
                cleaned['due_date'] = None
            else:
                parsed = Helpers.parse_timestamp(due_date) if isinstance(due_date, str) else None
                if parsed is None:
                    errors.append('Due date must be a valid date')
                else:
                    cleaned['due_date'] = parsed

        tags = payload.get('tags', _MISSING)
        if tags is not _MISSING:
            if not isinstance(tags, list):
                errors.append('Tags must be an array')
            elif any(not isinstance(tag, str) or len(tag.strip()) > TAG_MAX_LENGTH for tag in tags):
                errors.append(f'Each tag must be a string with maximum {TAG_MAX_LENGTH} characters')
            else:
                cleaned['tags'] = [tag.strip() for tag in tags if tag.strip()]

        if errors:
            raise ValidationError(errors)
        return cleaned

    @staticmethod
    def validate_bulk_payload(payload: Dict[str, Any]) -> tuple:
        """Validate a bulk update payload, returning (task_ids, cleaned_updates)"""
        if not isinstance(payload, dict):
            raise ValidationError('Request body must be a JSON object')

        task_ids = payload.get('task_ids')
        if not isinstance(task_ids, list) or not task_ids:
            raise ValidationError('Task IDs array is required and must contain at least one ID')
        if any(not isinstance(task_id, str) or not task_id for task_id in task_ids):
            raise ValidationError('Task IDs must be non-empty strings')

        updates = payload.get('updates')
        if not isinstance(updates, dict):
            raise ValidationError('Updates object is required')

        return task_ids, Validators.validate_task_payload(updates, partial=True)

    @staticmethod
    def validate_signup(payload: Dict[str, Any]) -> Dict[str, str]:
        """Validate signup payload"""
        payload = payload if isinstance(payload, dict) else {}
        errors = []

        username = (payload.get('username') or '').strip()
        email = (payload.get('email') or '').strip().lower()
        password = payload.get('password') or ''

        if not Validators.validate_username(username):
            errors.append('Username must be 3-20 characters and contain only letters, numbers, and underscores')
        if not Validators.validate_email(email):
            errors.append('Please provide a valid email')
        if not Validators.validate_password(password):
            errors.append('Password must be at least 6 characters long and contain at least one '
                          'lowercase letter, one uppercase letter, and one number')

        if errors:
            raise ValidationError(errors)
        return {'username': username, 'email': email, 'password': password}

    @staticmethod
    def validate_login(payload: Dict[str, Any]) -> Dict[str, str]:
        """Validate login payload (identifier is an email or a username)"""
        payload = payload if isinstance(payload, dict) else {}
        errors = []

        identifier = (payload.get('identifier') or '').strip()
        password = payload.get('password') or ''

        if not identifier:
            errors.append('Email or username is required')
        if not password:
            errors.append('Password is required')

        if errors:
            raise ValidationError(errors)
        return {'identifier': identifier, 'password': password}

    @staticmethod
    def validate_profile_update(payload: Dict[str, Any]) -> Dict[str, str]:
        """Validate profile update payload; both fields are optional"""
        payload = payload if isinstance(payload, dict) else {}
        errors = []
        cleaned = {}

        if payload.get('username') is not None:
            username = str(payload['username']).strip()
            if not Validators.validate_username(username):
                errors.append('Username must be 3-20 characters and contain only letters, numbers, and underscores')
            else:
                cleaned['username'] = username

        if payload.get('email') is not None:
            email = str(payload['email']).strip().lower()
            if not Validators.validate_email(email):
                errors.append('Please provide a valid email')
            else:
                cleaned['email'] = email

        if errors:
            raise ValidationError(errors)
        return cleaned


class Helpers:
    """Utility helper functions"""

    @staticmethod
    def generate_id() -> str:
        """Generate a unique ID"""
        return str(uuid.uuid4())

    @staticmethod
    def get_current_timestamp() -> datetime:
        """Get current timestamp (timezone-aware UTC)"""
        return datetime.now(timezone.utc)

    @staticmethod
    def ensure_utc(timestamp: Optional[datetime]) -> Optional[datetime]:
        """Treat naive datetimes as UTC and convert aware ones to UTC"""
        if timestamp is None:
            return None
        if timestamp.tzinfo is None:
            return timestamp.replace(tzinfo=timezone.utc)
        return timestamp.astimezone(timezone.utc)

    @staticmethod
    def to_storage(timestamp: Optional[datetime]) -> Optional[datetime]:
        """Naive UTC datetime, the form MongoDB stores and returns"""
        if timestamp is None:
            return None
        return Helpers.ensure_utc(timestamp).replace(tzinfo=None)

    @staticmethod
    def format_timestamp(timestamp: Optional[datetime]) -> Optional[str]:
        """Format timestamp for API response"""
        if timestamp is None:
            return None
        return Helpers.to_storage(timestamp).isoformat() + 'Z'

    @staticmethod
    def parse_timestamp(timestamp_str: str) -> Optional[datetime]:
        """Parse an ISO-8601 string to an aware UTC datetime"""
        try:
            if timestamp_str.endswith('Z'):
                timestamp_str = timestamp_str[:-1] + '+00:00'
            return Helpers.ensure_utc(datetime.fromisoformat(timestamp_str))
        except (ValueError, TypeError, AttributeError, OverflowError):
            return None

    @staticmethod
    def parse_int(value: Any, default: int, minimum: int = 1, maximum: Optional[int] = None) -> int:
        """Parse a query-string integer, falling back to default"""
        try:
            number = int(value)
        except (TypeError, ValueError):
            return default
        number = max(number, minimum)
        if maximum is not None:
            number = min(number, maximum)
        return number

    @staticmethod
    def parse_bool(value: Any) -> Optional[bool]:
        """Parse 'true'/'false' query-string values; anything else is None"""
        if isinstance(value, bool):
            return value
        if value is None:
            return None
        lowered = str(value).strip().lower()
        if lowered == 'true':
            return True
        if lowered == 'false':
            return False
        return None

    @staticmethod
    def completion_rate(completed: int, total: int) -> float:
        """Percentage of completed items, one decimal place"""
        return round(completed / total * 100, 1) if total > 0 else 0

    @staticmethod
    def build_pagination(page: int, limit: int, total: int) -> Dict[str, Any]:
        """Pagination block for list responses"""
        return {
            'page': page,
            'limit': limit,
            'total': total,
            'pages': (total + limit - 1) // limit if limit else 0,
            'has_next': page * limit < total,
            'has_prev': page > 1,
        }

    @staticmethod
    def build_error_response(message: str, code: Any = 400, details: Optional[List[str]] = None) -> Dict[str, Any]:
        """Build standardized error response"""
        response = {
            'success': False,
            'error': message,
            'code': code,
            'timestamp': Helpers.format_timestamp(Helpers.get_current_timestamp())
        }

        if details:
            response['details'] = details

        return response

    @staticmethod
    def build_success_response(data: Any = None, message: str = None, **extra: Any) -> Dict[str, Any]:
        """Build standardized success response"""
        response = {
            'success': True,
            'timestamp': Helpers.format_timestamp(Helpers.get_current_timestamp())
        }

        if data is not None:
            response['data'] = data

        if message:
            response['message'] = message

        response.update(extra)
        return response
