"""Application exception hierarchy.

Every error the services raise carries the HTTP status and machine-readable
code the error middleware turns into a response.
"""
from typing import List, Optional


class AppError(Exception):
    """Base class for errors surfaced to API clients"""

    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message: str, details: Optional[List[str]] = None):
        super().__init__(message)
        self.message = message
        self.details = details


class NotFoundError(AppError):
    status_code = 404
    code = "NOT_FOUND"

    def __init__(self, resource: str = "Resource"):
        super().__init__(f"{resource} not found")
        self.resource = resource


class ValidationError(AppError):
    status_code = 400
    code = "VALIDATION_ERROR"

    def __init__(self, errors, message: str = "Validation failed"):
        if isinstance(errors, str):
            errors = [errors]
        super().__init__(message, details=list(errors))
        self.errors = self.details


class PersistenceError(AppError):
    status_code = 500
    code = "DATABASE_ERROR"


class AuthenticationError(AppError):
    status_code = 401
    code = "AUTHENTICATION_ERROR"


class AuthorizationError(AppError):
    status_code = 403
    code = "AUTHORIZATION_ERROR"


class ConflictError(AppError):
    status_code = 409
    code = "CONFLICT"
