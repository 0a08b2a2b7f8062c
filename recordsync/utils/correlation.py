"""
Correlation ID Utility for Record Sync

Tags every log line of one pipeline operation (an upload, a sync, an export)
with a shared correlation ID and the domain it acts on, so the lines of one
cycle can be pulled out of interleaved logs.
"""

import contextvars
import logging
import uuid
from typing import Dict, Optional

logger = logging.getLogger(__name__)

_correlation_id: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "correlation_id",
    default=None
)
_domain: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "domain",
    default=None
)
_operation: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "operation",
    default=None
)


def generate_correlation_id() -> str:
    """
    Generate a new correlation ID using UUID4.

    Returns:
        String representation of a UUID4
    """
    return str(uuid.uuid4())


def get_correlation_id() -> Optional[str]:
    """Get the current correlation ID, or None outside any operation."""
    return _correlation_id.get()


def set_correlation_id(correlation_id: str) -> None:
    """
    Set the correlation ID in the current context.

    Args:
        correlation_id: Correlation ID to set

    Raises:
        ValueError: If correlation_id is empty or not a string
    """
    if not correlation_id or not isinstance(correlation_id, str):
        raise ValueError("Correlation ID must be a non-empty string")

    _correlation_id.set(correlation_id)


def get_or_create_correlation_id() -> str:
    """Get the current correlation ID, creating and setting one if unset."""
    correlation_id = get_correlation_id()

    if not correlation_id:
        correlation_id = generate_correlation_id()
        set_correlation_id(correlation_id)
        logger.debug(f"Created new correlation ID: {correlation_id}")

    return correlation_id


def clear_correlation_id() -> None:
    """Clear the correlation ID, domain and operation from context."""
    _correlation_id.set(None)
    _domain.set(None)
    _operation.set(None)


def get_context() -> Dict[str, Optional[str]]:
    """Current correlation ID, domain and operation."""
    return {
        "correlation_id": _correlation_id.get(),
        "domain": _domain.get(),
        "operation": _operation.get(),
    }


class CorrelationContext:
    """
    Context manager scoping one pipeline operation.

    Sets the correlation ID (generating one when not given) together with
    the domain and operation name, and restores the enclosing values on exit.

    Example:
        >>> with CorrelationContext(domain="invoices", operation="sync") as cid:
        ...     reconciler.sync("invoices")
    """

    def __init__(
        self,
        correlation_id: Optional[str] = None,
        domain: Optional[str] = None,
        operation: Optional[str] = None
    ):
        """
        Initialize correlation context.

        Args:
            correlation_id: Correlation ID to use; generated when omitted
            domain: Domain the operation acts on
            operation: Operation name (upload, sync, annotate, ...)
        """
        self.correlation_id = correlation_id
        self.domain = domain
        self.operation = operation
        self._tokens = []

    def __enter__(self) -> str:
        if not self.correlation_id:
            self.correlation_id = get_correlation_id() or generate_correlation_id()

        self._tokens = [
            (_correlation_id, _correlation_id.set(self.correlation_id)),
            (_domain, _domain.set(self.domain or _domain.get())),
            (_operation, _operation.set(self.operation or _operation.get())),
        ]

        logger.debug(f"Entered correlation context: {self.correlation_id}")
        return self.correlation_id

    def __exit__(self, exc_type, exc_val, exc_tb):
        for var, token in reversed(self._tokens):
            var.reset(token)
        self._tokens = []


def correlation_id_filter(record):
    """
    Logging filter to add correlation ID, domain and operation to log records.

    Returns:
        True (always allow record)
    """
    record.correlation_id = get_correlation_id() or "N/A"
    record.domain = _domain.get() or "-"
    record.operation = _operation.get() or "-"
    return True


def setup_correlation_logging(handler: logging.Handler) -> None:
    """
    Configure a handler to stamp records with the correlation context.

    Args:
        handler: Handler to configure
    """
    handler.addFilter(correlation_id_filter)
