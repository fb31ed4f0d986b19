# logger.py - Centralized logging configuration
import os
import logging
from logging.handlers import RotatingFileHandler

LOGS_DIR = os.environ.get("LOGS_DIR", "logs")


def setup_logger(name, log_file=None, level=logging.INFO):
    """Set up a logger with file rotation"""
    if not os.path.exists(LOGS_DIR):
        os.makedirs(LOGS_DIR, exist_ok=True)

    if not log_file:
        log_file = os.path.join(LOGS_DIR, f"{name}.log")

    logger = logging.getLogger(name)

    # Avoid adding handlers multiple times
    if not logger.handlers:
        logger.setLevel(level)

        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=1024 * 1024,
            backupCount=10,
            encoding="utf-8",
        )
        file_handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]"
        ))
        file_handler.setLevel(level)
        logger.addHandler(file_handler)

        # Console handler for development
        if os.environ.get("FLASK_ENV") != "production":
            console_handler = logging.StreamHandler()
            console_handler.setLevel(logging.DEBUG)
            console_handler.setFormatter(logging.Formatter(
                "%(name)s - %(levelname)s - %(message)s"
            ))
            logger.addHandler(console_handler)

    return logger


def configure_app_logging(app):
    """Route the Flask app logger through the shared handlers."""
    level = logging.DEBUG if app.debug else logging.INFO
    app.logger.handlers.clear()
    for handler in app_logger.handlers:
        app.logger.addHandler(handler)
    app.logger.setLevel(level)
    app.logger.propagate = False

    # module loggers (logging.getLogger(__name__)) write to the same files
    for name in ("wallet", "blueprints"):
        package_logger = logging.getLogger(name)
        if not package_logger.handlers:
            for handler in app_logger.handlers:
                package_logger.addHandler(handler)
        package_logger.setLevel(level)
        package_logger.propagate = False


# Create global loggers
app_logger = setup_logger("app")
ledger_logger = setup_logger("ledger")
