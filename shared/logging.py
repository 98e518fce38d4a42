"""
Shared logging configuration for the decision engine.
"""

import sys
import structlog
import logging
import time
from typing import Any, Dict, Optional
from contextvars import ContextVar

# Context variables for evaluation correlation
feature_key_var: ContextVar[Optional[str]] = ContextVar('feature_key', default=None)
user_id_var: ContextVar[Optional[str]] = ContextVar('user_id', default=None)
api_var: ContextVar[Optional[str]] = ContextVar('api', default=None)


def configure_logging(service_name: str, log_level: str = "info") -> None:
    """Configure structured logging for the engine."""

    # Configure structlog
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
            add_service_context,
            add_correlation_context,
            add_timestamp,
            structlog.processors.JSONRenderer()
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    # Configure standard library logging
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper()),
    )

    structlog.get_logger(service_name).debug("Logging configured", log_level=log_level)


def add_service_context(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Add service context to log events."""
    # Extract component name from logger name
    logger_name = event_dict.get("logger", "")
    if "." in logger_name:
        service_name = logger_name.split(".")[0]
        event_dict["service"] = service_name

    return event_dict


def add_correlation_context(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Add evaluation correlation context to log events."""
    feature_key = feature_key_var.get()
    if feature_key:
        event_dict.setdefault("feature_key", feature_key)

    user_id = user_id_var.get()
    if user_id:
        event_dict.setdefault("user_id", user_id)

    api = api_var.get()
    if api:
        event_dict.setdefault("api", api)

    return event_dict


def add_timestamp(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Add high-precision timestamp to log events."""
    event_dict["timestamp"] = time.time()
    return event_dict


def bind_evaluation_context(api: str, user_id: Optional[str] = None, feature_key: Optional[str] = None):
    """Set evaluation context for the current call."""
    api_var.set(api)
    if user_id:
        user_id_var.set(str(user_id))
    if feature_key:
        feature_key_var.set(feature_key)


def clear_context():
    """Clear all context variables."""
    api_var.set(None)
    user_id_var.set(None)
    feature_key_var.set(None)


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)
