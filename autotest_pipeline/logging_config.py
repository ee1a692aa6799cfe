"""
Logging configuration using structlog.

The log level is driven by environment variables so that a deployment can
switch the pipeline to alert-only output without touching code.
"""

import logging
import os
import sys
from typing import Optional

import structlog
from structlog.stdlib import LoggerFactory

VALID_LEVELS = ("fatal", "error", "warn", "info", "debug", "trace", "silent")

_STDLIB_LEVELS = {
    "fatal": logging.CRITICAL,
    "error": logging.ERROR,
    "warn": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
    "trace": logging.DEBUG,
    # Above CRITICAL so nothing gets through
    "silent": logging.CRITICAL + 10,
}


def resolve_log_mode() -> str:
    """Return the active log mode: an explicit mode, "alerts_only" or "default"."""
    mode = os.getenv("LOG_MODE") or os.getenv("MASTRA_LOG_MODE")
    if mode:
        return mode
    if os.getenv("ALERTS_ONLY") == "true":
        return "alerts_only"
    return "default"


def is_alerts_only() -> bool:
    return resolve_log_mode() == "alerts_only"


def resolve_log_level() -> str:
    """Return the level name; alerts-only mode always silences logs."""
    if is_alerts_only():
        return "silent"
    level = os.getenv("MASTRA_LOG_LEVEL")
    if level in VALID_LEVELS:
        return level
    return "debug"


def configure_logging(debug: bool = False, level: Optional[str] = None):
    """
    Configure structured logging.

    Args:
        debug: Force debug logging regardless of the environment
        level: Explicit level name, overrides the environment
    """
    level_name = "debug" if debug else (level or resolve_log_level())
    stdlib_level = _STDLIB_LEVELS.get(level_name, logging.DEBUG)

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=stdlib_level,
        force=True,
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer(),
        ],
        context_class=dict,
        logger_factory=LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    return level_name


def get_logger(name: str = None):
    """Get a configured logger."""
    return structlog.get_logger(name)
