"""Structured logging utilities for request correlation and event logging."""

import logging
from typing import Any, Optional

from flask import g, has_request_context, request

from .logging_config import STRUCTURED_FIELDS_ATTR


logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


def get_correlation_id() -> str:
    """Get the correlation ID for the current request.

    Uses the ``X-Request-ID`` header set by the ingress; no ID is generated
    when the header is absent.
    """
    if not hasattr(g, "correlation_id"):
        g.correlation_id = request.headers.get(REQUEST_ID_HEADER, "")
    return g.correlation_id


def _resolve_correlation_id(explicit: Optional[str]) -> str:
    if explicit is not None:
        return explicit or "none"
    if not has_request_context():
        # Background telemetry threads run outside the request context
        return "none"
    return get_correlation_id() or "none"


def log_event(
    event_type: str,
    severity: str = "INFO",
    correlation_id: Optional[str] = None,
    **context: Any,
) -> None:
    """Log a structured event with correlation ID and context.

    The payload travels on the record, see ``logging_config.STRUCTURED_FIELDS_ATTR``.

    Args:
        event_type: Name of the event (e.g., "check_upgrade_request")
        severity: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        correlation_id: Explicit ID for callers running outside the request context
        **context: Additional context fields to include in the event
    """
    level = getattr(logging, severity.upper(), logging.INFO)
    if not logger.isEnabledFor(level):
        return

    event_payload = {
        "event_type": event_type,
        "correlation_id": _resolve_correlation_id(correlation_id),
        **context,
    }
    logger.log(level, "event=%s", event_type, extra={STRUCTURED_FIELDS_ATTR: event_payload})


def log_error(
    operation: str,
    error_type: str,
    message: str,
    resource_id: Optional[str] = None,
    severity: str = "ERROR",
    correlation_id: Optional[str] = None,
    **context: Any,
) -> None:
    """Log a structured error with full context.

    Args:
        operation: The operation being performed (e.g., "record_request")
        error_type: Category of error (e.g., "lookup_failed", "InfluxDBClientError")
        message: Human-readable error message
        resource_id: Optional resource the error concerns
        severity: Log level
        correlation_id: Explicit ID for callers running outside the request context
        **context: Additional context fields
    """
    error_payload = {
        "operation": operation,
        "error_type": error_type,
        "correlation_id": _resolve_correlation_id(correlation_id),
    }

    if resource_id:
        error_payload["resource_id"] = resource_id

    error_payload.update(context)

    level = getattr(logging, severity.upper(), logging.ERROR)
    logger.log(
        level,
        "error operation=%s type=%s: %s",
        operation,
        error_type,
        message,
        extra={STRUCTURED_FIELDS_ATTR: error_payload},
    )
