import logging
import os

from flask import Flask, jsonify, request
from flask_caching import Cache
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy
from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError

from config import config

logger = logging.getLogger(__name__)

db = SQLAlchemy()
cache = Cache()
migrate = Migrate()


def get_real_ip():
    """
    Get the real client IP address, accounting for reverse proxies.
    Checks X-Forwarded-For, X-Real-IP, and falls back to remote_addr.
    """
    # X-Forwarded-For: client, proxy1, proxy2, ...
    if request.headers.get("X-Forwarded-For"):
        return request.headers.get("X-Forwarded-For").split(",")[0].strip()
    if request.headers.get("X-Real-IP"):
        return request.headers.get("X-Real-IP")
    return get_remote_address()


limiter = Limiter(
    key_func=get_real_ip,
    default_limits=["10000 per day", "1000 per hour"],
)


def create_app(config_name=None):
    app = Flask(__name__)

    # Determine configuration
    if config_name is None:
        config_name = os.environ.get("FLASK_CONFIG", "default")

    app.config.from_object(config[config_name]())

    # Initialize extensions
    db.init_app(app)
    cache.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)

    # Import and register blueprints
    from fitcomp.routes.api import bp as api_bp

    app.register_blueprint(api_bp, url_prefix="/api")

    from fitcomp.routes.cron import bp as cron_bp

    app.register_blueprint(cron_bp, url_prefix="/api/cron")

    # Register error handlers
    register_error_handlers(app)

    # Setup logging
    from fitcomp.utils.logging_config import setup_logging

    setup_logging(app)

    # Show configuration warnings
    show_config_warnings(app, config_name)

    # Create database tables
    with app.app_context():
        db.create_all()

    # Initialize and start background scheduler
    if not app.config.get("TESTING", False):
        from fitcomp.services.scheduler_service import scheduler_service

        scheduler_service.init_app(app)

    return app


def describe_database(url):
    """Human-readable database target without credentials"""
    try:
        parsed = make_url(url)
    except ArgumentError:
        return "unknown database"

    if parsed.get_backend_name() == "sqlite":
        return f"SQLite ({parsed.database or 'in-memory'})"
    port = parsed.port or 5432
    return f"{parsed.get_backend_name()} database {parsed.database} at {parsed.host}:{port}"


def show_config_warnings(app, config_name):
    """Log configuration warnings and status"""
    logger.info(f"fitcomp starting with '{config_name}' configuration")

    if config_name == "production" and app.config.get("DEBUG"):
        logger.warning("DEBUG mode is enabled in production!")

    for key, locked in (
        ("API_TOKEN", "activity and recalculation API"),
        ("CRON_SECRET", "cron endpoints"),
    ):
        if not app.config.get(key):
            logger.warning(f"{key} not set: {locked} will reject every request")

    logger.info(f"Using {describe_database(app.config.get('SQLALCHEMY_DATABASE_URI', ''))}")


ERROR_MESSAGES = {
    400: "Bad request",
    401: "Unauthorized",
    403: "Access forbidden",
    404: "Resource not found",
    405: "Method not allowed",
    429: "Too many requests",
    500: "Internal server error",
    503: "Service unavailable",
}


def register_error_handlers(app):
    """JSON bodies for HTTP errors plus security headers on every response"""

    @app.after_request
    def add_security_headers(response):
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"

        if not app.config.get("DEBUG"):
            response.headers["Strict-Transport-Security"] = (
                "max-age=31536000; includeSubDomains"
            )

        return response

    def handle_http_error(error):
        code = getattr(error, "code", 500)
        if code == 500:
            db.session.rollback()
        elif code == 400:
            app.logger.warning(
                f"400 Bad Request: {error} - Path: {request.path} - Method: {request.method}"
            )
        return jsonify({"error": ERROR_MESSAGES[code]}), code

    for code in ERROR_MESSAGES:
        app.register_error_handler(code, handle_http_error)


from fitcomp import models  # noqa: F401, E402 - imported for model registration
