"""
Module: logger.py
Description: Structured logging configuration for the Push Queue API.

Configures structlog for JSON output optimized for CloudWatch Logs.
Provides consistent logging across all modules with proper context
and structured data.

Key Components:
- JSON output for CloudWatch compatibility
- Timestamp and log level processors
- configure_logging() for applying the configured level
- get_logger() helper function

Dependencies: structlog, logging, datetime
Author: Push Queue Team
"""

import logging

import structlog
from datetime import datetime, timezone


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
    event_dict["timestamp"] = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")
    return event_dict


def _add_log_level(logger, method_name, event_dict):
    """
    Add log level to event dictionary.

    Args:
        logger: Logger instance
        method_name: Log method name (info, error, etc.)
        event_dict: Current log event dictionary

    Returns:
        Updated event dictionary with level
    """
    event_dict["level"] = method_name.upper()
    return event_dict


def configure_logging(level: str = "INFO") -> None:
    """
    Configure structlog for JSON output at the given level.

    The filtering bound logger supports ``log(level, msg, *args)`` so
    tenacity's before/after log hooks can write through it.

    Args:
        level: Standard logging level name (DEBUG, INFO, ...)
    """
    structlog.configure(
        processors=[
            # Add timestamp and log level
            _add_timestamp,
            _add_log_level,
            # Add exception information
            structlog.processors.format_exc_info,
            # Render as JSON for CloudWatch compatibility
            structlog.processors.JSONRenderer(),
        ],
        logger_factory=structlog.WriteLoggerFactory(),
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(level.upper())
        ),
        cache_logger_on_first_use=False,
    )


configure_logging()


def get_logger(name: str) -> structlog.typing.FilteringBoundLogger:
    """
    Get a configured structlog logger instance.

    Creates a logger with the specified name that outputs JSON
    formatted logs suitable for CloudWatch Logs ingestion.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured structlog logger instance

    Example:
        >>> logger = get_logger(__name__)
        >>> logger.info("Queue item claimed", item_id="wq_123", attempts=1)
        {"event": "Queue item claimed", "item_id": "wq_123", "attempts": 1, "timestamp": "...", "level": "INFO"}
    """
    return structlog.get_logger(name)
