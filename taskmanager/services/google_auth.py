"""Verification of Google sign-in and Firebase ID tokens."""
import logging
from typing import Dict, Any, Optional

from google.auth import exceptions as google_exceptions
from google.auth import jwt as google_jwt
from google.auth.transport import requests as google_requests
from google.oauth2 import id_token

from ..utils.errors import AuthenticationError

logger = logging.getLogger(__name__)

FIREBASE_ISSUER_HOST = 'securetoken.google.com'

_transport = None


def _get_transport():
    """Shared HTTP transport for fetching Google's signing certificates"""
    global _transport
    if _transport is None:
        _transport = google_requests.Request()
    return _transport


def peek_claims(token: str) -> Dict[str, Any]:
    """Claims of a token without verifying its signature"""
    try:
        return google_jwt.decode(token, verify=False)
    except (ValueError, google_exceptions.GoogleAuthError) as e:
        raise AuthenticationError(f"Invalid Google token: {str(e)}")


def verify_google_token(token: str, google_client_id: Optional[str] = None,
                        firebase_project_id: Optional[str] = None) -> Dict[str, Any]:
    """Verify a Google ID token and return the identity it carries.

    Tokens issued by Firebase Authentication are checked against the
    Firebase project, every other token against the OAuth client id.

    Raises:
        AuthenticationError: if the token is malformed, expired, has the
            wrong audience or cannot be verified
    """
    if not token or not isinstance(token, str):
        raise AuthenticationError('Google token is required')

    issuer = peek_claims(token).get('iss') or ''

    try:
        if FIREBASE_ISSUER_HOST in issuer:
            if not firebase_project_id:
                raise AuthenticationError('Firebase sign-in is not configured')
            claims = id_token.verify_firebase_token(token, _get_transport(), audience=firebase_project_id)
            subject = claims.get('user_id') or claims.get('sub')
        else:
            if not google_client_id:
                raise AuthenticationError('Google sign-in is not configured')
            claims = id_token.verify_oauth2_token(token, _get_transport(), audience=google_client_id)
            subject = claims.get('sub')
    except (ValueError, google_exceptions.GoogleAuthError) as e:
        logger.warning(f"Google token verification failed: {e}")
        raise AuthenticationError(f"Invalid Google token: {str(e)}")

    if not claims.get('email'):
        raise AuthenticationError('Google token does not include an email address')

    return {
        'sub': subject,
        'email': claims['email'].lower(),
        'name': claims.get('name'),
        'picture': claims.get('picture'),
        'email_verified': bool(claims.get('email_verified')),
        'aud': claims.get('aud'),
        'iss': claims.get('iss'),
    }
