"""
Authentication endpoints.
Local accounts (username/email + password) and Google / Firebase sign-in,
all answering with the user profile and a session token.
"""
from flask import request, jsonify, current_app
from . import auth_bp
from ..database import get_db
from ..middleware.auth_middleware import AuthMiddleware
from ..models.user_model import user_to_json
from ..services.auth_service import AuthService
from ..utils.errors import ValidationError
from ..utils.validators import Validators, Helpers


def _service():
    return AuthService(get_db(), current_app.config)


def _session_payload(result):
    user = user_to_json(result['user'])
    user['is_admin'] = user.get('role') == 'admin'
    return {'user': user, 'token': result['token']}


def _id_token(payload):
    token = (payload.get('id_token') or payload.get('idToken') or '').strip()
    if not token:
        raise ValidationError('Google ID token is required')
    return token


@auth_bp.post("/signup")
def signup():
    """
    Register a local account.
    Expected payload: {username, email, password}
    """
    data = Validators.validate_signup(request.get_json(silent=True))
    result = _service().signup(data['username'], data['email'], data['password'])
    return jsonify(Helpers.build_success_response(
        _session_payload(result), 'User registered successfully'
    )), 201


@auth_bp.post("/login")
def login():
    """
    Log in with email or username.
    Expected payload: {identifier, password}
    """
    data = Validators.validate_login(request.get_json(silent=True))
    result = _service().login(data['identifier'], data['password'], AuthMiddleware.client_info())
    return jsonify(Helpers.build_success_response(_session_payload(result), 'Login successful')), 200


@auth_bp.get("/profile")
@AuthMiddleware.verify_token
def get_profile():
    user = _service().get_profile(AuthMiddleware.get_current_user_id())
    return jsonify(Helpers.build_success_response({'user': user_to_json(user)})), 200


@auth_bp.put("/profile")
@AuthMiddleware.verify_token
def update_profile():
    """
    Update username and/or email of the current user.
    Expected payload: {username?, email?}
    """
    data = Validators.validate_profile_update(request.get_json(silent=True))
    user = _service().update_profile(AuthMiddleware.get_current_user_id(), **data)
    return jsonify(Helpers.build_success_response(
        {'user': user_to_json(user)}, 'Profile updated successfully'
    )), 200


@auth_bp.get("/verify")
@AuthMiddleware.verify_token
def verify():
    """Confirm that the bearer token is valid"""
    user = user_to_json(AuthMiddleware.get_current_user())
    user['is_admin'] = user.get('role') == 'admin'
    return jsonify(Helpers.build_success_response({'user': user}, 'Token is valid')), 200


@auth_bp.post("/google")
def google_auth():
    """
    Sign in with Google, creating the account on first use.
    Expected payload: {id_token}
    """
    token = _id_token(request.get_json(silent=True) or {})
    result = _service().google_auth(token, AuthMiddleware.client_info())
    return jsonify(Helpers.build_success_response(
        _session_payload(result), 'Google authentication successful'
    )), 200


@auth_bp.post("/google-signup")
def google_signup():
    """
    Create an account from a Google identity (409 if it already exists).
    Expected payload: {id_token}
    """
    token = _id_token(request.get_json(silent=True) or {})
    result = _service().google_signup(token, AuthMiddleware.client_info())
    return jsonify(Helpers.build_success_response(
        _session_payload(result), 'Google signup successful'
    )), 201


@auth_bp.post("/google-signin")
def google_signin():
    """
    Sign in an existing Google account (404 if there is none).
    Expected payload: {id_token}
    """
    token = _id_token(request.get_json(silent=True) or {})
    result = _service().google_signin(token, AuthMiddleware.client_info())
    return jsonify(Helpers.build_success_response(
        _session_payload(result), 'Google signin successful'
    )), 200
