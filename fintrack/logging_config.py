import logging
import logging.handlers
import os
import sys
from pathlib import Path
from typing import Optional

APP_LOGGER_NAME = "fintrack"

# Libraries that are chatty at INFO; held at THIRD_PARTY_LOG_LEVEL
THIRD_PARTY_LOGGERS = (
    "sqlalchemy.engine",
    "sqlalchemy.engine.Engine",
    "sqlalchemy.dialects",
    "sqlalchemy.pool",
    "sqlalchemy.orm",
    "uvicorn.access",
    "uvicorn.error",
    "faker",
)


def _level(value: Optional[str], env_var: str, default: str) -> int:
    name = (value or os.getenv(env_var, default)).upper()
    return getattr(logging, name, getattr(logging, default))


def setup_logging(
    app_log_level: Optional[str] = None,
    third_party_log_level: Optional[str] = None,
    log_file: Optional[str] = None,
    job_name: Optional[str] = None,
    max_file_size: int = 10 * 1024 * 1024,  # 10MB
    backup_count: int = 5,
) -> logging.Logger:
    """
    Configure logging for the API process or one of the scheduled jobs.

    Args:
        app_log_level: Level for fintrack loggers (default: APP_LOG_LEVEL or INFO)
        third_party_log_level: Level for library loggers (default: THIRD_PARTY_LOG_LEVEL or WARNING)
        log_file: Rotating log file path (default: LOG_FILE); console only when unset
        job_name: Tag added to every line, so cron output from several jobs can share a file
        max_file_size: Maximum size of log file before rotation (bytes)
        backup_count: Number of backup log files to keep

    Returns:
        The root fintrack logger
    """
    app_level = _level(app_log_level, "APP_LOG_LEVEL", "INFO")
    third_party_level = _level(third_party_log_level, "THIRD_PARTY_LOG_LEVEL", "WARNING")
    log_file = log_file or os.getenv("LOG_FILE")

    app_logger = logging.getLogger(APP_LOGGER_NAME)
    app_logger.setLevel(app_level)
    app_logger.handlers.clear()

    tag = f"[{job_name}] " if job_name else ""
    formatter = logging.Formatter(
        fmt=f"%(asctime)s - {tag}%(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=max_file_size,
            backupCount=backup_count
        ))

    for handler in handlers:
        handler.setLevel(app_level)
        handler.setFormatter(formatter)
        app_logger.addHandler(handler)

    for logger_name in THIRD_PARTY_LOGGERS:
        logging.getLogger(logger_name).setLevel(third_party_level)

    # Handlers live on the fintrack logger; keep records off the root logger
    app_logger.propagate = False

    return app_logger


def get_logger(name: str = APP_LOGGER_NAME) -> logging.Logger:
    """
    Get a logger under the fintrack namespace.

    Module loggers pass __name__, which already starts with "fintrack.";
    scripts pass a short name such as "jobs.recurring".
    """
    if name == APP_LOGGER_NAME or name.startswith(f"{APP_LOGGER_NAME}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{APP_LOGGER_NAME}.{name}")
