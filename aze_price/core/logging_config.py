"""
Logging configuration for AZE Price Service.
Service loggers live under the ``aze_price`` namespace and write to stdout,
either as JSON lines or as plain text.
"""

import logging
import logging.config
import sys
from typing import Dict, Any, Optional
from pythonjsonlogger import jsonlogger

from .config import settings

JSON_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s %(module)s %(funcName)s %(lineno)d"
TEXT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s (%(filename)s:%(lineno)d)"

# Third-party loggers kept at WARNING
QUIET_LOGGERS = ("httpx", "httpcore", "sqlalchemy.engine", "uvicorn.access")


def build_logging_config(log_format: str, log_level: str) -> Dict[str, Any]:
    """dictConfig for the given format ("json" or "text") and level."""
    if log_format == "json":
        formatter = {"()": jsonlogger.JsonFormatter, "format": JSON_FORMAT}
    else:
        formatter = {"format": TEXT_FORMAT}
    formatter["datefmt"] = "%Y-%m-%d %H:%M:%S"

    loggers = {name: {"level": "WARNING"} for name in QUIET_LOGGERS}
    loggers["aze_price"] = {"level": log_level}

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {log_format: formatter},
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": log_format,
                "stream": sys.stdout
            }
        },
        "root": {"handlers": ["console"], "level": log_level},
        "loggers": loggers,
    }


def setup_logging(log_format: Optional[str] = None, log_level: Optional[str] = None) -> None:
    """Setup structured logging for the application."""
    logging.config.dictConfig(build_logging_config(
        log_format or settings.log_format,
        log_level or settings.log_level,
    ))


def create_logger(module_name: str) -> logging.Logger:
    """Create a logger for a specific module under the service namespace."""
    if module_name.startswith("aze_price"):
        return logging.getLogger(module_name)
    return logging.getLogger(f"aze_price.{module_name}")
