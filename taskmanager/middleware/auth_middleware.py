from functools import wraps
from flask import request, jsonify, current_app

from ..database import get_db
from ..services.auth_service import AuthService
from ..utils.errors import AuthenticationError
from ..utils.validators import Helpers


def _unauthorized(message: str):
    return jsonify(Helpers.build_error_response(message, 'AUTHENTICATION_ERROR')), 401


class AuthMiddleware:
    """Authentication middleware for bearer session tokens"""

    @staticmethod
    def verify_token(f):
        """Decorator to verify the session token and load the user"""
        @wraps(f)
        def decorated_function(*args, **kwargs):
            token = None

            # Get token from Authorization header
            if 'Authorization' in request.headers:
                auth_header = request.headers['Authorization']
                parts = auth_header.split(" ")
                if len(parts) != 2 or parts[0].lower() != 'bearer':
                    return _unauthorized('Invalid token format')
                token = parts[1]  # Bearer <token>

            if not token:
                return _unauthorized('Access denied. No token provided.')

            try:
                user = AuthService(get_db(), current_app.config).authenticate(token)
            except AuthenticationError as e:
                return _unauthorized(e.message)

            request.current_user = user
            return f(*args, **kwargs)

        return decorated_function

    @staticmethod
    def get_current_user():
        """Get current user from request"""
        return getattr(request, 'current_user', None)

    @staticmethod
    def get_current_user_id():
        user = AuthMiddleware.get_current_user()
        return user['_id'] if user else None

    @staticmethod
    def client_info():
        """Caller address and agent, recorded with login attempts"""
        forwarded = request.headers.get('X-Forwarded-For', '')
        return {
            'ip_address': forwarded.split(',')[0].strip() or request.remote_addr or 'unknown',
            'user_agent': request.headers.get('User-Agent') or 'unknown',
        }


class RoleMiddleware:
    """Role-based access control middleware"""

    @staticmethod
    def require_role(required_role: str):
        """Decorator to require a specific role; apply after verify_token"""
        def decorator(f):
            @wraps(f)
            def decorated_function(*args, **kwargs):
                current_user = AuthMiddleware.get_current_user()

                if not current_user:
                    return _unauthorized('Access denied. Authentication required.')

                if current_user.get('role', 'user') != required_role:
                    return jsonify(Helpers.build_error_response(
                        'Access denied. Admin privileges required.' if required_role == 'admin'
                        else 'Insufficient permissions',
                        'AUTHORIZATION_ERROR'
                    )), 403

                return f(*args, **kwargs)

            return decorated_function
        return decorator

    @staticmethod
    def require_admin():
        """Require admin role"""
        return RoleMiddleware.require_role('admin')
