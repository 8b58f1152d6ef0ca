"""
logging_config.py — Centralized Logging Configuration for Vantage

Sets up Loguru as the single logging backend. Intercepts Python's stdlib
logging module so all getLogger() calls in services and connectors route
through Loguru with the request id bound by main.py's middleware.

Business Rules:
- All logs go through Loguru (no direct print())
- JSON lines when LOG_JSON is set, human-readable otherwise
- Never log OAuth tokens or the encryption key

Called by: app/main.py (on startup)
Depends on: LOG_LEVEL, LOG_JSON environment variables
"""

import logging
import os
import sys

from loguru import logger

_NOISY = ("httpx", "httpcore", "uvicorn.access", "sqlalchemy.engine")


def setup_logging() -> None:
    """Configure Loguru and intercept stdlib logging.

    Call once at app startup, before any other imports that log.
    """
    logger.remove()
    logger.configure(extra={"request_id": "-"})

    log_level = os.getenv("LOG_LEVEL", "INFO").upper()
    as_json = os.getenv("LOG_JSON", "").lower() in ("1", "true", "yes")

    if as_json:
        logger.add(sys.stdout, level=log_level, format="{message}", serialize=True)
    else:
        logger.add(
            sys.stdout,
            level=log_level,
            format=(
                "<green>{time:HH:mm:ss}</green> | "
                "<level>{level: <8}</level> | "
                "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
                "{extra[request_id]} | {message}"
            ),
            colorize=True,
        )

    logging.basicConfig(handlers=[_InterceptHandler()], level=0, force=True)

    for noisy in _NOISY:
        logging.getLogger(noisy).setLevel(logging.WARNING)

    logger.info("Logging configured", level=log_level, json=as_json)


class _InterceptHandler(logging.Handler):
    """Route stdlib logging records to Loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Skip frames from stdlib logging internals
        frame, depth = logging.currentframe(), 0
        while frame and (depth == 0 or frame.f_code.co_filename == logging.__file__):
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )
