"""
Error Handling Middleware
Centralized error handling and logging
"""
import logging
import traceback
from flask import request, jsonify
from pymongo.errors import PyMongoError
from werkzeug.exceptions import HTTPException

from ..utils.errors import AppError
from ..utils.validators import Helpers

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

logger = logging.getLogger(__name__)


def configure_logging(level: str = 'INFO') -> None:
    """Configure root logging once for the process"""
    logging.basicConfig(level=getattr(logging, str(level).upper(), logging.INFO), format=LOG_FORMAT)
    logging.getLogger().setLevel(getattr(logging, str(level).upper(), logging.INFO))


class ErrorHandler:
    """Centralized error handling service"""

    @staticmethod
    def handle_app_error(error: AppError) -> tuple:
        """Handle errors raised by services and models"""
        if error.status_code >= 500:
            logger.error(f"{error.code}: {error.message}")
            message = 'Database operation failed' if error.code == 'DATABASE_ERROR' else 'An unexpected error occurred'
            return jsonify(Helpers.build_error_response(message=message, code=error.code)), error.status_code

        logger.warning(f"{error.code} on {request.method} {request.path}: {error.message}")
        return jsonify(Helpers.build_error_response(
            message=error.message,
            code=error.code,
            details=error.details
        )), error.status_code

    @staticmethod
    def handle_validation_error(message: str = "Bad request") -> tuple:
        """Handle malformed requests"""
        logger.warning(f"Validation error: {message}")

        return jsonify(Helpers.build_error_response(
            message=message,
            code="VALIDATION_ERROR"
        )), 400

    @staticmethod
    def handle_not_found_error(resource: str = "Resource") -> tuple:
        """Handle not found errors"""
        logger.info(f"Not found error: {resource}")

        return jsonify(Helpers.build_error_response(
            message=f"{resource} not found",
            code="NOT_FOUND"
        )), 404

    @staticmethod
    def handle_database_error(error: Exception) -> tuple:
        """Handle database errors"""
        logger.error(f"Database error: {str(error)}")

        return jsonify(Helpers.build_error_response(
            message="Database operation failed",
            code="DATABASE_ERROR"
        )), 500

    @staticmethod
    def handle_http_error(error: HTTPException) -> tuple:
        """Handle any other werkzeug HTTP error"""
        logger.warning(f"HTTP {error.code} on {request.method} {request.path}")

        return jsonify(Helpers.build_error_response(
            message=error.description or error.name,
            code=error.name.upper().replace(' ', '_')
        )), error.code

    @staticmethod
    def handle_rate_limit_error(error: HTTPException) -> tuple:
        """Handle requests rejected by the rate limiter"""
        logger.warning(f"Rate limit exceeded on {request.method} {request.path}: {error.description}")

        if request.blueprint == 'auth':
            message = "Too many authentication attempts, please try again later."
        else:
            message = "Too many requests from this IP, please try again later."
        return jsonify(Helpers.build_error_response(
            message=message,
            code="RATE_LIMIT_EXCEEDED"
        )), 429

    @staticmethod
    def handle_generic_error(error: Exception) -> tuple:
        """Handle generic errors"""
        logger.error(f"Unexpected error: {str(error)}")
        logger.error(f"Traceback: {traceback.format_exc()}")

        return jsonify(Helpers.build_error_response(
            message="An unexpected error occurred",
            code="INTERNAL_ERROR"
        )), 500


def register_error_handlers(app):
    """Register error handlers with Flask app"""

    @app.errorhandler(AppError)
    def handle_app_error(error):
        return ErrorHandler.handle_app_error(error)

    @app.errorhandler(PyMongoError)
    def handle_database_error(error):
        return ErrorHandler.handle_database_error(error)

    @app.errorhandler(400)
    def handle_bad_request(error):
        return ErrorHandler.handle_validation_error("Bad request")

    @app.errorhandler(404)
    def handle_not_found(error):
        return ErrorHandler.handle_not_found_error("Endpoint")

    @app.errorhandler(405)
    def handle_method_not_allowed(error):
        return jsonify(Helpers.build_error_response(
            message="Method not allowed",
            code="METHOD_NOT_ALLOWED"
        )), 405

    @app.errorhandler(429)
    def handle_rate_limited(error):
        return ErrorHandler.handle_rate_limit_error(error)

    @app.errorhandler(500)
    def handle_internal_error(error):
        return ErrorHandler.handle_generic_error(error)

    @app.errorhandler(Exception)
    def handle_unhandled_exception(error):
        if isinstance(error, HTTPException):
            return ErrorHandler.handle_http_error(error)
        return ErrorHandler.handle_generic_error(error)
