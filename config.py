import os
import secrets
import warnings

import redis
from dotenv import load_dotenv

basedir = os.path.abspath(os.path.dirname(__file__))
load_dotenv(os.path.join(basedir, ".env"))


class Config:
    # Generate a secure key if not provided (with warning)
    _secret_key = os.environ.get("SECRET_KEY")

    if not _secret_key:
        _secret_key = secrets.token_urlsafe(32)
        warnings.warn(
            "🔐 SECRET_KEY not set! Using auto-generated key. "
            "Set SECRET_KEY in .env to keep it stable across restarts.",
            UserWarning,
        )

    SECRET_KEY = _secret_key

    # Bearer tokens for the activity API and the cron endpoints
    API_TOKEN = os.environ.get("API_TOKEN")
    CRON_SECRET = os.environ.get("CRON_SECRET")

    # Database configuration - built from environment at initialization
    def __init__(self):
        """Initialize configuration with dynamic database URI"""
        self.SQLALCHEMY_DATABASE_URI = self._build_database_uri()

    def _build_database_uri(self):
        """Build database URI from environment variables"""
        database_url = os.environ.get("DATABASE_URL")

        if database_url:
            if database_url.startswith("postgres://"):
                database_url = database_url.replace(
                    "postgres://", "postgresql+psycopg://", 1
                )
            return database_url

        db_type = os.environ.get("DB_TYPE", "sqlite")

        if db_type.lower() == "postgresql":
            db_host = os.environ.get("DB_HOST") or "localhost"
            db_port = os.environ.get("DB_PORT") or "5432"
            db_name = os.environ.get("DB_NAME") or "fitcomp_db"
            db_user = os.environ.get("DB_USER") or "fitcomp_user"
            db_password = os.environ.get("DB_PASSWORD") or "fitcomp_password"

            return f"postgresql+psycopg://{db_user}:{db_password}@{db_host}:{db_port}/{db_name}"
        else:
            # Default to SQLite for development
            return "sqlite:///" + os.path.join(basedir, "fitcomp.db")

    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Application settings
    TIMEZONE = os.environ.get("TIMEZONE", "UTC")  # Default to UTC if not specified
    RECALCULATION_DELAY_SECONDS = float(
        os.environ.get("RECALCULATION_DELAY_SECONDS", "1")
    )  # lets the activity commit land before scoring
    ACTIVITY_LIST_LIMIT = int(os.environ.get("ACTIVITY_LIST_LIMIT") or 100)

    # Caching configuration
    CACHE_TYPE = os.environ.get("CACHE_TYPE", "RedisCache")
    CACHE_DEFAULT_TIMEOUT = int(
        os.environ.get("CACHE_DEFAULT_TIMEOUT", 300)
    )  # 5 minutes
    CACHE_REDIS_URL = os.environ.get("CACHE_REDIS_URL", "redis://localhost:6379/0")
    CACHE_KEY_PREFIX = "fitcomp:"
    LEADERBOARD_CACHE_TIMEOUT = int(os.environ.get("LEADERBOARD_CACHE_TIMEOUT", 120))

    # Rate limiting
    RATELIMIT_STORAGE_URI = os.environ.get("RATELIMIT_STORAGE_URI", "memory://")
    ACTIVITY_RATE_LIMIT = os.environ.get("ACTIVITY_RATE_LIMIT", "120 per minute")

    # Scheduler configuration
    SCHEDULER_ENABLED = os.environ.get("SCHEDULER_ENABLED", "True").lower() == "true"
    START_COMPETITIONS_CRON_HOUR = int(
        os.environ.get("START_COMPETITIONS_CRON_HOUR", 0)
    )  # midnight UTC
    FINALIZE_COMPETITIONS_INTERVAL_MINUTES = int(
        os.environ.get("FINALIZE_COMPETITIONS_INTERVAL_MINUTES", 60)
    )
    RECALCULATE_ALL_INTERVAL_MINUTES = int(
        os.environ.get("RECALCULATE_ALL_INTERVAL_MINUTES", 30)
    )

    # Logging configuration
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
    LOG_TO_CONSOLE = os.environ.get("LOG_TO_CONSOLE", "True").lower() == "true"
    LOG_TO_FILE = os.environ.get("LOG_TO_FILE", "True").lower() == "true"
    LOG_DIR = os.environ.get("LOG_DIR", "logs")
    SLOW_FUNCTION_THRESHOLD = float(os.environ.get("SLOW_FUNCTION_THRESHOLD", "2.0"))

    # Environment detection
    FLASK_ENV = os.environ.get("FLASK_ENV", "development")
    DEBUG = FLASK_ENV == "development"
    TESTING = False


class DevelopmentConfig(Config):
    """Development configuration with helpful defaults"""

    DEBUG = True
    SQLALCHEMY_ECHO = os.environ.get("SQLALCHEMY_ECHO", "False").lower() == "true"

    def __init__(self):
        super().__init__()
        # Fallback to SimpleCache if Redis isn't available in development
        try:
            redis_client = redis.Redis.from_url(self.CACHE_REDIS_URL)
            redis_client.ping()
        except (redis.exceptions.ConnectionError, redis.exceptions.TimeoutError):
            self.CACHE_TYPE = "SimpleCache"
            warnings.warn(
                "🔶 Redis not available, falling back to SimpleCache for development.",
                UserWarning,
            )


class ProductionConfig(Config):
    """Production configuration with security focus"""

    DEBUG = False

    REQUIRED_SETTINGS = {
        "SECRET_KEY": "auto-generated keys change on every restart",
        "API_TOKEN": "the activity API will reject all requests",
        "CRON_SECRET": "cron endpoints will reject all requests",
    }

    def __init__(self):
        super().__init__()

        for name, consequence in self.REQUIRED_SETTINGS.items():
            if not os.environ.get(name):
                warnings.warn(
                    f"🚨 PRODUCTION WARNING: {name} not set, {consequence}.",
                    UserWarning,
                )


class TestingConfig(Config):
    """Testing configuration"""

    TESTING = True
    DEBUG = False
    CACHE_TYPE = "SimpleCache"
    SCHEDULER_ENABLED = False
    LOG_TO_FILE = False
    LOG_TO_CONSOLE = False
    API_TOKEN = "test-api-token"
    CRON_SECRET = "test-cron-secret"
    RECALCULATION_DELAY_SECONDS = 0
    RATELIMIT_ENABLED = False

    def __init__(self):
        super().__init__()
        self.SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"


# Configuration mapping
config = {
    "development": DevelopmentConfig,
    "production": ProductionConfig,
    "testing": TestingConfig,
    "default": DevelopmentConfig,
}
