"""
Module: logger.py
Description: Structured logging configuration for the SQS wrapper.

Configures structlog for JSON output optimized for CloudWatch Logs.
Provides consistent logging across all modules with proper context
and structured data.

Key Components:
- JSON output for CloudWatch compatibility
- Timestamp and log level processors
- Level filtering driven by settings.log_level
- get_logger() helper function

Dependencies: structlog, datetime, logging
"""

import logging
from datetime import datetime, timezone

import structlog

from ..config.settings import settings


def _add_timestamp(logger, method_name, event_dict):
    """
    Add ISO 8601 timestamp to log entries.

    Args:
        logger: Logger instance
        method_name: Log method name (info, error, etc.)
        event_dict: Current log event dictionary

    Returns:
        Updated event dictionary with timestamp
    """
    event_dict["timestamp"] = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
    return event_dict


def _add_log_level(logger, method_name, event_dict):
    """Add log level to event dictionary."""
    event_dict["level"] = method_name.upper()
    return event_dict


def configure_logging(level: str = settings.log_level) -> None:
    """
    Configure structlog for JSON output at the given level.

    Called once at import with the configured level; call again to
    change the level at runtime (e.g. DEBUG while troubleshooting).

    Args:
        level: Name of the minimum level to emit (DEBUG, INFO, ...)
    """
    structlog.configure(
        processors=[
            _add_timestamp,
            _add_log_level,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        logger_factory=structlog.WriteLoggerFactory(),
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(level.upper())
        ),
        cache_logger_on_first_use=False,
    )


configure_logging()


def get_logger(name: str) -> structlog.BoundLogger:
    """
    Get a configured structlog logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured structlog logger instance

    Example:
        >>> logger = get_logger(__name__)
        >>> logger.info("Message sent to SQS", queue_name="orders", message_id="abc")
        {"queue_name": "orders", "message_id": "abc", "event": "Message sent to SQS", "timestamp": "...", "level": "INFO"}
    """
    return structlog.get_logger(name)
