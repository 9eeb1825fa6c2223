"""Centralized logging configuration for the application."""

import logging
import sys
from typing import Any, Mapping

# Processor request fields that must never reach a log line
_DROPPED_FIELDS = frozenset({"password", "ccnumber", "cvv"})
_MASKED_FIELDS = frozenset({"security_key"})


def setup_logging(level: str = "INFO") -> logging.Logger:
    """Configure and return the application logger.

    Sets up a consistent log format across the entire application
    with timestamps, log level, module name, and the message.

    Args:
        level: The log level string (DEBUG, INFO, WARNING, ERROR, CRITICAL).

    Returns:
        The configured root application logger.
    """
    log_format = "%(asctime)s | %(levelname)-8s | %(name)-30s | %(message)s"
    date_format = "%Y-%m-%d %H:%M:%S"

    logger = logging.getLogger("splitpay")
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Prevent duplicate handlers if called multiple times
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(log_format, datefmt=date_format))
        logger.addHandler(handler)
    logger.propagate = False

    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a child logger under the splitpay namespace.

    Usage:
        from splitpay.core.logging import get_logger
        logger = get_logger(__name__)
        logger.info("Settling order %s", order_id)

    Args:
        name: Usually __name__ of the calling module.

    Returns:
        A child logger with the given name.
    """
    return logging.getLogger(f"splitpay.{name}")


def redact_fields(data: Mapping[str, Any]) -> dict[str, Any]:
    """Return a copy of a processor payload that is safe to log.

    Card number, CVV and password are removed outright; the API security
    key is replaced with a mask so its presence is still visible.
    """
    clean: dict[str, Any] = {}
    for key, value in data.items():
        if key in _DROPPED_FIELDS:
            continue
        if key in _MASKED_FIELDS:
            clean[key] = "***"
            continue
        clean[key] = value
    return clean
