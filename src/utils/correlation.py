"""
Correlation ID Utility for Audit Forensics

Provides request-scoped correlation IDs for log tracing across an audit
export, and the derivation of per-event correlation IDs used to group audit
events that belong to one logical operation.
"""

import uuid
import contextvars
from typing import Any, Mapping, Optional
import logging

logger = logging.getLogger(__name__)

# Context variable for the correlation ID of the current export request
_correlation_id: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    'correlation_id',
    default=None
)


def generate_correlation_id() -> str:
    """
    Generate a new correlation ID using UUID4.

    Returns:
        String representation of a UUID4
    """
    correlation_id = str(uuid.uuid4())
    logger.debug(f"Generated correlation ID: {correlation_id}")
    return correlation_id


def get_correlation_id() -> Optional[str]:
    """
    Get the current correlation ID from context.

    Returns:
        Current correlation ID or None if not set
    """
    return _correlation_id.get()


def set_correlation_id(correlation_id: str) -> None:
    """
    Set the correlation ID in the current context.

    Args:
        correlation_id: Correlation ID to set

    Raises:
        ValueError: If correlation_id is empty or invalid
    """
    if not correlation_id or not isinstance(correlation_id, str):
        raise ValueError("Correlation ID must be a non-empty string")

    _correlation_id.set(correlation_id)


def clear_correlation_id() -> None:
    """Clear the correlation ID from context."""
    _correlation_id.set(None)


class CorrelationContext:
    """
    Context manager scoping a correlation ID to one export request.

    Restores the previous ID on exit.
    """

    def __init__(self, correlation_id: Optional[str] = None):
        """
        Initialize correlation context.

        Args:
            correlation_id: Optional correlation ID to use. If not provided,
                          a new one will be generated.
        """
        self.correlation_id = correlation_id
        self._token = None

    def __enter__(self) -> str:
        if not self.correlation_id:
            self.correlation_id = generate_correlation_id()

        if not isinstance(self.correlation_id, str):
            raise ValueError("Correlation ID must be a non-empty string")

        self._token = _correlation_id.set(self.correlation_id)
        logger.debug(f"Entered correlation context: {self.correlation_id}")
        return self.correlation_id

    def __exit__(self, exc_type, exc_val, exc_tb):
        _correlation_id.reset(self._token)
        logger.debug(f"Left correlation context: {self.correlation_id}")


def correlation_id_filter(record):
    """
    Logging filter to add correlation ID to log records.

    Args:
        record: Log record to augment

    Returns:
        True (always allow record)
    """
    record.correlation_id = get_correlation_id() or "N/A"
    return True


def setup_correlation_logging(logger_instance: logging.Logger) -> None:
    """
    Configure a logger's handlers to include correlation IDs.

    The filter goes on each handler rather than the logger, since logger
    filters only see records logged directly on that logger and not those
    propagated from child loggers.

    Args:
        logger_instance: Logger whose handlers should be configured
    """
    for handler in logger_instance.handlers:
        if correlation_id_filter not in handler.filters:
            handler.addFilter(correlation_id_filter)


def _text(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    trimmed = value.strip()
    return trimmed or None


def extract_correlation_id_from_event(event: Mapping[str, Any]) -> str:
    """
    Derive the correlation ID of an audit event.

    Checks metadata.correlation_id, then metadata.event_id, and falls back
    to "<source>:<id>", which is always derivable.

    Args:
        event: Audit event mapping with source, id and metadata

    Returns:
        Correlation ID
    """
    metadata = event.get("metadata")
    if isinstance(metadata, Mapping):
        correlation_id = _text(metadata.get("correlation_id")) or _text(metadata.get("event_id"))
        if correlation_id:
            return correlation_id

    return f"{event.get('source')}:{event.get('id')}"
