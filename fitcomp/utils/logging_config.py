"""
Logging setup for the fitcomp service

Root logger handlers are configured once per app from config; modules log
through `logging.getLogger(__name__)` and the scoring engine through a
`ContextualLogger` bound to the competition it is working on.
"""

import logging
import logging.handlers
import os

from flask import has_request_context, request

BASE_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class RequestContextFilter(logging.Filter):
    """Attach url, method and remote address ("N/A" outside a request)"""

    def filter(self, record):
        in_request = has_request_context()
        record.url = request.url if in_request else "N/A"
        record.method = request.method if in_request else "N/A"
        record.remote_addr = request.remote_addr if in_request else "N/A"
        return True


# name -> (level or None for LOG_LEVEL, format suffix, max MB, backups)
LOG_FILES = {
    "fitcomp.log": (None, " [%(url)s] [%(remote_addr)s] [%(method)s]", 10, 5),
    "errors.log": (
        logging.ERROR,
        " [%(pathname)s:%(lineno)d] [%(url)s] [%(remote_addr)s]",
        5,
        3,
    ),
}

QUIET_LOGGERS = ("werkzeug", "urllib3", "flask_limiter", "apscheduler")


class LevelColorFormatter(logging.Formatter):
    """Console formatter that colors the level name (debug mode only)"""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record):
        color = self.COLORS.get(record.levelname)
        if color is None:
            return super().format(record)

        # Color a copy so file handlers keep the plain level name
        record = logging.makeLogRecord(record.__dict__)
        record.levelname = f"{color}{record.levelname}{self.RESET}"
        return super().format(record)


def _rotating_handler(path, level, fmt, max_mb, backups):
    handler = logging.handlers.RotatingFileHandler(
        path, maxBytes=max_mb * 1024 * 1024, backupCount=backups
    )
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt, datefmt=DATE_FORMAT))
    handler.addFilter(RequestContextFilter())
    return handler


def setup_logging(app):
    """
    Configure the root logger from the app config

    Console output is colored when the app runs in debug mode. File logs
    rotate under LOG_DIR; background recalculation jobs also get their own
    scheduler.log.
    """
    log_level = getattr(logging, app.config.get("LOG_LEVEL", "INFO").upper())

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    if app.config.get("LOG_TO_CONSOLE", True):
        console_handler = logging.StreamHandler()
        console_handler.setLevel(log_level)
        if app.debug:
            formatter = LevelColorFormatter(
                BASE_FORMAT + " [%(filename)s:%(lineno)d]", datefmt="%H:%M:%S"
            )
        else:
            formatter = logging.Formatter(BASE_FORMAT, datefmt=DATE_FORMAT)
        console_handler.setFormatter(formatter)
        console_handler.addFilter(RequestContextFilter())
        root_logger.addHandler(console_handler)

    if app.config.get("LOG_TO_FILE", True):
        log_dir = app.config.get("LOG_DIR", "logs")
        os.makedirs(log_dir, exist_ok=True)

        for filename, (level, extra, max_mb, backups) in LOG_FILES.items():
            root_logger.addHandler(
                _rotating_handler(
                    os.path.join(log_dir, filename),
                    level or log_level,
                    BASE_FORMAT + extra,
                    max_mb,
                    backups,
                )
            )

        logging.getLogger("fitcomp.services.scheduler_service").addHandler(
            _rotating_handler(
                os.path.join(log_dir, "scheduler.log"), logging.INFO, BASE_FORMAT, 5, 3
            )
        )

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    app.logger.info(f"Logging configured - Level: {logging.getLevelName(log_level)}")


def get_logger(name):
    """Module logger, usually called with __name__"""
    return logging.getLogger(name)


class ContextualLogger:
    """
    Wraps a logger and appends `key=value` context to every message

    Example:
        log = ContextualLogger(__name__).bind(competition_id=competition.id)
        log.info("Ranks updated")  # "Ranks updated [competition_id=...]"
    """

    def __init__(self, name, context=None):
        self.logger = get_logger(name)
        self.context = context or {}

    def bind(self, **extra):
        """Return a new logger with additional context"""
        return ContextualLogger(self.logger.name, {**self.context, **extra})

    def _format_message(self, message):
        if self.context:
            context_str = " ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{message} [{context_str}]"
        return message

    def debug(self, message, **kwargs):
        self.logger.debug(self._format_message(message), **kwargs)

    def info(self, message, **kwargs):
        self.logger.info(self._format_message(message), **kwargs)

    def warning(self, message, **kwargs):
        self.logger.warning(self._format_message(message), **kwargs)

    def error(self, message, **kwargs):
        self.logger.error(self._format_message(message), **kwargs)

    def exception(self, message, **kwargs):
        self.logger.exception(self._format_message(message), **kwargs)
