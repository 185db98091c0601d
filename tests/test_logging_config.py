"""
Tests for the logging setup.
"""

import logging

from pythonjsonlogger import jsonlogger

from aze_price.core.logging_config import build_logging_config, create_logger


def test_json_format_uses_json_formatter():
    config = build_logging_config("json", "INFO")

    assert config["formatters"]["json"]["()"] is jsonlogger.JsonFormatter
    assert config["handlers"]["console"]["formatter"] == "json"
    assert config["root"]["level"] == "INFO"


def test_text_format_and_service_level():
    config = build_logging_config("text", "DEBUG")

    assert "()" not in config["formatters"]["text"]
    assert config["loggers"]["aze_price"]["level"] == "DEBUG"
    assert config["loggers"]["httpx"]["level"] == "WARNING"
    assert config["loggers"]["sqlalchemy.engine"]["level"] == "WARNING"


def test_create_logger_namespaces_module_names():
    assert create_logger("aze_price.services.ingestor").name == "aze_price.services.ingestor"
    assert create_logger("scripts").name == "aze_price.scripts"
    assert isinstance(create_logger("scripts"), logging.Logger)
