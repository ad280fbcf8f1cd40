import os
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value not in (None, '') else default


class Settings:
    # Flask settings
    SECRET_KEY = os.getenv('SECRET_KEY')  # MUST be set via environment variable
    FLASK_ENV = os.getenv('FLASK_ENV', 'development')
    DEBUG = FLASK_ENV == 'development'
    PORT = _env_int('PORT', 5000)

    # CORS settings
    CORS_ORIGINS = os.getenv('CORS_ORIGINS', 'http://localhost:3000,http://127.0.0.1:3000').split(',')

    # JWT settings
    JWT_SECRET = os.getenv('JWT_SECRET') or SECRET_KEY
    JWT_EXPIRES_DAYS = _env_int('JWT_EXPIRES_DAYS', 7)

    # MongoDB settings
    MONGODB_URI = os.getenv('MONGODB_URI')
    MONGODB_DB_NAME = os.getenv('MONGODB_DB_NAME', 'taskmanager')

    # Google / Firebase identity settings
    GOOGLE_CLIENT_ID = os.getenv('GOOGLE_CLIENT_ID')
    FIREBASE_PROJECT_ID = os.getenv('FIREBASE_PROJECT_ID')

    # Rate limiting; RATELIMIT_AUTH covers /api/auth, Flask-Limiter reads the others
    RATELIMIT_ENABLED = os.getenv('RATELIMIT_ENABLED', 'true').lower() == 'true'
    RATELIMIT_DEFAULT = os.getenv('RATELIMIT_DEFAULT', '100 per 15 minutes')
    RATELIMIT_AUTH = os.getenv('RATELIMIT_AUTH', '50 per 15 minutes')
    RATELIMIT_STORAGE_URI = os.getenv('RATELIMIT_STORAGE_URI', 'memory://')
    RATELIMIT_HEADERS_ENABLED = True

    # Application settings
    BCRYPT_ROUNDS = _env_int('BCRYPT_ROUNDS', 12)
    TIMER_LOCK_TTL_SECONDS = _env_int('TIMER_LOCK_TTL_SECONDS', 30)
    LOGIN_STATS_DAYS = _env_int('LOGIN_STATS_DAYS', 30)
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
    MAX_CONTENT_LENGTH = 1 * 1024 * 1024  # JSON bodies only

    @classmethod
    def as_dict(cls):
        """Upper-case settings, ready for app.config.update()"""
        return {key: getattr(cls, key) for key in dir(cls) if key.isupper()}

    @classmethod
    def validate(cls):
        """Validate required settings"""
        missing_vars = []
        if not cls.SECRET_KEY:
            missing_vars.append('SECRET_KEY')
        if cls.FLASK_ENV != 'development' and not cls.MONGODB_URI:
            missing_vars.append('MONGODB_URI')

        if missing_vars:
            raise ValueError(f"Missing required environment variables: {', '.join(missing_vars)}")

        # Validate SECRET_KEY strength
        if len(cls.SECRET_KEY) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters long")

        return True
