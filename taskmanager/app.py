import logging
from flask import Flask, jsonify
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

from .api import auth_bp, tasks_bp, admin_bp
from .config.settings import Settings
from .database import init_database, get_db, ping
from .middleware.error_middleware import configure_logging, register_error_handlers

logger = logging.getLogger(__name__)


def create_app(test_config=None, db=None):
    """Create and configure the Flask application.

    Args:
        test_config: mapping that overrides the environment settings.
        db: database handle to use instead of connecting to MONGODB_URI
            (tests pass a mongomock database).
    """
    app = Flask(__name__)
    app.config.update(Settings.as_dict())
    if test_config:
        app.config.update(test_config)

    configure_logging(app.config.get("LOG_LEVEL", "INFO"))

    # Configure CORS - MUST be before routes
    CORS(app,
         resources={r"/api/*": {"origins": app.config.get("CORS_ORIGINS") or "*"}},
         allow_headers=["Content-Type", "Authorization"],
         methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
         supports_credentials=True)

    # Per-client request limits; auth routes get the stricter RATELIMIT_AUTH
    limiter = Limiter(get_remote_address, app=app)
    limiter.limit(app.config["RATELIMIT_AUTH"])(auth_bp)

    # Allow the app to start even if the database is unreachable
    database_ready = init_database(app, db)
    if not database_ready:
        logger.warning("Starting without a reachable database")

    @app.get("/")
    @limiter.exempt
    def index():
        return jsonify({
            "status": "ok",
            "service": "task-manager-api",
            "version": "1.0.0",
        }), 200

    @app.get("/health")
    @limiter.exempt
    def health():
        connected = ping(get_db())
        return jsonify({
            "status": "ok" if connected else "degraded",
            "service": "task-manager-api",
            "database": "connected" if connected else "unavailable",
            "environment": app.config.get("FLASK_ENV"),
        }), 200 if connected else 503

    register_error_handlers(app)

    # Register all blueprints
    app.register_blueprint(auth_bp)
    app.register_blueprint(tasks_bp)
    app.register_blueprint(admin_bp)

    return app


def main():
    """Main entry point for running the application."""
    Settings.validate()
    app = create_app()
    port = int(app.config.get("PORT", 5000))
    logger.info(f"Task manager API listening on port {port} ({app.config.get('FLASK_ENV')})")
    app.run(host="0.0.0.0", port=port, debug=app.config.get("DEBUG", False))


if __name__ == "__main__":  # pragma: no cover
    main()
