"""
test_logging_config.py — Tests for app/logging_config.py

Verifies Loguru setup, stdlib logging interception, and request
context binding. Uses loguru's sink capture for assertions.

Called by: pytest
Depends on: app/logging_config.py
"""

import logging
import os
from unittest.mock import patch

import pytest
from loguru import logger

from app.logging_config import setup_logging


@pytest.fixture(autouse=True)
def _clean_loguru():
    """Remove all handlers before/after each test for isolation."""
    logger.remove()
    yield
    logger.remove()


def test_setup_logging_adds_handler():
    """setup_logging() should add at least one Loguru handler."""
    assert len(logger._core.handlers) == 0
    setup_logging()
    assert len(logger._core.handlers) > 0


def test_stdlib_logging_intercepted():
    """After setup, logging.getLogger() messages from services go through Loguru."""
    setup_logging()

    # Add test sink AFTER setup (setup calls logger.remove() internally)
    messages = []
    logger.add(lambda m: messages.append(str(m)), format="{message}")

    logging.getLogger("vantage.sync").warning("intercepted message")

    assert any("intercepted message" in m for m in messages)


def test_noisy_loggers_quieted():
    setup_logging()
    assert logging.getLogger("httpx").level == logging.WARNING
    assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING


def test_log_level_from_env():
    """LOG_LEVEL env var controls minimum log level."""
    with patch.dict(os.environ, {"LOG_LEVEL": "WARNING"}):
        with patch("loguru.logger.add") as mock_add:
            setup_logging()
    assert mock_add.call_args_list[0].kwargs["level"] == "WARNING"


def test_default_request_id_placeholder():
    """Records logged outside a request still have a request_id for the format."""
    setup_logging()
    records = []
    logger.add(lambda m: records.append(m.record), format="{message}")

    logger.info("startup line")

    assert records[-1]["extra"]["request_id"] == "-"


def test_context_binding():
    """logger.contextualize() adds fields to log records."""
    records = []
    logger.add(lambda m: records.append(m.record), format="{message}")

    with logger.contextualize(request_id="abc123"):
        logger.info("request log")

    assert records[-1]["extra"].get("request_id") == "abc123"


def test_context_not_leaked():
    """Context fields should not persist after contextualize block exits."""
    records = []
    logger.add(lambda m: records.append(m.record), format="{message}")

    with logger.contextualize(request_id="abc123"):
        logger.info("inside")
    logger.info("outside")

    assert records[-1]["extra"].get("request_id") != "abc123"


def test_json_mode_uses_serialize():
    """LOG_JSON=1 switches the stdout sink to serialized JSON lines."""
    with patch.dict(os.environ, {"LOG_JSON": "1"}):
        with patch("loguru.logger.add") as mock_add:
            setup_logging()
    serialize_calls = [c for c in mock_add.call_args_list if c.kwargs.get("serialize") is True]
    assert len(serialize_calls) == 1
