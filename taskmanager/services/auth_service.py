import re
import logging
import secrets
from typing import Dict, Any, Optional, Mapping
from datetime import timedelta

import bcrypt
import jwt

from ..models.login_attempt_model import LoginAttemptModel
from ..models.user_model import UserModel
from ..utils.errors import AuthenticationError, ConflictError, NotFoundError
from ..utils.validators import Helpers
from . import google_auth

logger = logging.getLogger(__name__)

JWT_ALGORITHM = 'HS256'
BCRYPT_MAX_BYTES = 72


class AuthService:
    """Authentication service: local accounts, Google sign-in and session tokens"""

    def __init__(self, db, config: Mapping[str, Any]):
        self.user_model = UserModel(db)
        self.login_attempts = LoginAttemptModel(db)
        self.config = config

    # Passwords and tokens

    def hash_password(self, password: str) -> str:
        rounds = int(self.config.get('BCRYPT_ROUNDS') or 12)
        return bcrypt.hashpw(password.encode('utf-8')[:BCRYPT_MAX_BYTES], bcrypt.gensalt(rounds)).decode('utf-8')

    @staticmethod
    def check_password(password_hash: Optional[str], password: str) -> bool:
        if not password_hash or not password:
            return False
        try:
            return bcrypt.checkpw(password.encode('utf-8')[:BCRYPT_MAX_BYTES], password_hash.encode('utf-8'))
        except ValueError:
            return False

    def _jwt_secret(self) -> str:
        secret = self.config.get('JWT_SECRET') or self.config.get('SECRET_KEY')
        if not secret:
            raise RuntimeError('JWT_SECRET or SECRET_KEY must be configured')
        return secret

    def generate_token(self, user_id: str) -> str:
        """Signed session token for user_id"""
        now = Helpers.get_current_timestamp()
        days = int(self.config.get('JWT_EXPIRES_DAYS') or 7)
        claims = {'sub': user_id, 'iat': now, 'exp': now + timedelta(days=days)}
        return jwt.encode(claims, self._jwt_secret(), algorithm=JWT_ALGORITHM)

    def decode_token(self, token: str) -> Dict[str, Any]:
        try:
            return jwt.decode(token, self._jwt_secret(), algorithms=[JWT_ALGORITHM])
        except jwt.ExpiredSignatureError:
            raise AuthenticationError('Token has expired')
        except jwt.InvalidTokenError:
            raise AuthenticationError('Invalid token')

    def authenticate(self, token: str) -> Dict[str, Any]:
        """User behind a session token; unknown or deactivated users are rejected"""
        claims = self.decode_token(token)
        user = self.user_model.get_user(claims.get('sub') or '')
        if not user:
            raise AuthenticationError('User not found')
        if not user.get('is_active', True):
            raise AuthenticationError('Account is deactivated')
        return user

    # Local accounts

    def signup(self, username: str, email: str, password: str) -> Dict[str, Any]:
        """Register a local account from validated input"""
        existing = self.user_model.find_existing(email=email, username=username)
        if existing:
            field = 'email' if existing.get('email') == email.lower() else 'username'
            raise ConflictError(f"User with this {field} already exists")

        now = Helpers.get_current_timestamp()
        user = self.user_model.create_user({
            'username': username,
            'email': email.lower(),
            'password_hash': self.hash_password(password),
            'auth_provider': 'local',
            'last_login': now,
        })

        logger.info(f"User {user['_id']} signed up")
        return {'user': user, 'token': self.generate_token(user['_id'])}

    def login(self, identifier: str, password: str,
              client_info: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        """Check credentials; every outcome is recorded as a login attempt"""
        client_info = client_info or {}
        user = self.user_model.get_user_by_identifier(identifier)

        if not user:
            self._record(identifier, False, client_info, failure_reason='User not found')
            raise AuthenticationError('Invalid credentials')

        if not user.get('is_active', True):
            self._record(user['email'], False, client_info, user_id=user['_id'],
                         failure_reason='Account deactivated')
            raise AuthenticationError('Account is deactivated. Please contact support.')

        if not self.check_password(user.get('password_hash'), password):
            self._record(user['email'], False, client_info, user_id=user['_id'],
                         failure_reason='Invalid password')
            raise AuthenticationError('Invalid credentials')

        user = self.user_model.update_user(user['_id'], {'last_login': Helpers.get_current_timestamp()})
        self._record(user['email'], True, client_info, user_id=user['_id'])

        logger.info(f"User {user['_id']} logged in")
        return {'user': user, 'token': self.generate_token(user['_id'])}

    # Google accounts

    def _verify_google(self, id_token: str) -> Dict[str, Any]:
        return google_auth.verify_google_token(
            id_token,
            google_client_id=self.config.get('GOOGLE_CLIENT_ID'),
            firebase_project_id=self.config.get('FIREBASE_PROJECT_ID'),
        )

    def google_signup(self, id_token: str, client_info: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        """Create an account from a Google identity; existing accounts must sign in"""
        identity = self._verify_google(id_token)

        if (self.user_model.get_user_by_google_id(identity['sub'])
                or self.user_model.get_user_by_email(identity['email'])):
            self._record(identity['email'], False, client_info, login_method='google-signup',
                         failure_reason='User already exists')
            raise ConflictError('User already exists. Please use Sign In instead.')

        user = self._create_google_user(identity)
        self._record(user['email'], True, client_info, login_method='google-signup', user_id=user['_id'])
        logger.info(f"User {user['_id']} signed up with Google")
        return {'user': user, 'token': self.generate_token(user['_id'])}

    def google_signin(self, id_token: str, client_info: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        """Sign in an existing Google account"""
        identity = self._verify_google(id_token)

        user = self.user_model.get_user_by_google_id(identity['sub'])
        if not user:
            user = self.user_model.get_user_by_email(identity['email'])
            if user and (user.get('auth_provider') != 'google' or not identity.get('email_verified')):
                user = None

        if not user:
            self._record(identity['email'], False, client_info, login_method='google-signin',
                         failure_reason='User not found')
            raise NotFoundError('Account')

        if not user.get('is_active', True):
            self._record(user['email'], False, client_info, login_method='google-signin',
                         user_id=user['_id'], failure_reason='Account deactivated')
            raise AuthenticationError('Account is deactivated. Please contact support.')

        fields = {'last_login': Helpers.get_current_timestamp()}
        if identity.get('picture'):
            fields['picture'] = identity['picture']
        user = self.user_model.update_user(user['_id'], fields)

        self._record(user['email'], True, client_info, login_method='google-signin', user_id=user['_id'])
        return {'user': user, 'token': self.generate_token(user['_id'])}

    def google_auth(self, id_token: str, client_info: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        """Find or create the account of a Google identity, linking a matching email"""
        identity = self._verify_google(id_token)

        user = self.user_model.get_user_by_google_id(identity['sub'])
        if not user:
            user = self.user_model.get_user_by_email(identity['email'])
            if user and not identity.get('email_verified'):
                self._record(user['email'], False, client_info, login_method='google',
                             user_id=user['_id'], failure_reason='Email not verified')
                raise AuthenticationError('Google email is not verified. Please sign in with your password.')
            if user:
                user = self.user_model.update_user(user['_id'], {
                    'google_id': identity['sub'],
                    'picture': identity.get('picture') or user.get('picture'),
                })
                logger.info(f"Linked Google identity to user {user['_id']}")

        if not user:
            user = self._create_google_user(identity)
        elif not user.get('is_active', True):
            self._record(user['email'], False, client_info, login_method='google',
                         user_id=user['_id'], failure_reason='Account deactivated')
            raise AuthenticationError('Account is deactivated. Please contact support.')
        else:
            user = self.user_model.update_user(user['_id'], {'last_login': Helpers.get_current_timestamp()})

        self._record(user['email'], True, client_info, login_method='google', user_id=user['_id'])
        return {'user': user, 'token': self.generate_token(user['_id'])}

    def _create_google_user(self, identity: Dict[str, Any]) -> Dict[str, Any]:
        name = identity.get('name') or identity['email'].split('@')[0]
        return self.user_model.create_user({
            'email': identity['email'],
            'google_id': identity['sub'],
            'name': name,
            'username': generate_username(name),
            'picture': identity.get('picture'),
            'auth_provider': 'google',
            'last_login': Helpers.get_current_timestamp(),
        })

    # Profile

    def get_profile(self, user_id: str) -> Dict[str, Any]:
        user = self.user_model.get_user(user_id)
        if not user:
            raise NotFoundError('User')
        return user

    def update_profile(self, user_id: str, username: Optional[str] = None,
                       email: Optional[str] = None) -> Dict[str, Any]:
        fields = {}
        if username:
            fields['username'] = username
        if email:
            fields['email'] = email.lower()
        if not fields:
            return self.get_profile(user_id)

        existing = self.user_model.find_existing(email=email, username=username, exclude_id=user_id)
        if existing:
            field = 'email' if email and existing.get('email') == email.lower() else 'username'
            raise ConflictError(f"This {field} is already taken")

        user = self.user_model.update_user(user_id, fields)
        if not user:
            raise NotFoundError('User')
        return user

    # Administration

    def create_admin(self, email: str, password: str, name: str = 'System Administrator',
                     username: str = 'admin') -> Dict[str, Any]:
        """Create an admin account, or promote and reset the account holding email"""
        email = email.strip().lower()
        fields = {
            'password_hash': self.hash_password(password),
            'name': name,
            'role': 'admin',
            'is_active': True,
        }

        existing = self.user_model.get_user_by_email(email)
        if existing:
            user = self.user_model.update_user(existing['_id'], fields)
            logger.info(f"Promoted user {user['_id']} to admin")
            return {'user': user, 'created': False}

        fields.update({'email': email, 'username': username, 'auth_provider': 'local'})
        user = self.user_model.create_user(fields)
        logger.info(f"Created admin user {user['_id']}")
        return {'user': user, 'created': True}

    def _record(self, email: str, success: bool, client_info: Optional[Dict[str, str]],
                login_method: str = 'email', user_id: Optional[str] = None,
                failure_reason: Optional[str] = None) -> None:
        client_info = client_info or {}
        if not success:
            logger.warning(f"Login failed ({login_method}): {failure_reason}")
        self.login_attempts.log_attempt(
            email=email,
            success=success,
            ip_address=client_info.get('ip_address'),
            user_agent=client_info.get('user_agent'),
            login_method=login_method,
            user_id=user_id,
            failure_reason=failure_reason,
        )


def generate_username(name: str) -> str:
    """Username derived from a display name plus a random suffix"""
    base = re.sub(r'[^a-z0-9_]', '', name.lower())[:14] or 'user'
    return f"{base}{secrets.token_hex(3)[:5]}"
