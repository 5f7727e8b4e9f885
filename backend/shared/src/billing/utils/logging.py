"""Structured logging utilities with correlation ID support.

Provides:
- Correlation ID context management for request tracing
- Structured logging formatter for consistent log output
- Helper functions for payment, webhook and subscription logging

Usage:
    from billing.utils.logging import get_logger, set_correlation_id

    # In middleware/request handler:
    set_correlation_id(request.headers.get("X-Correlation-ID"))

    # In service code:
    logger = get_logger(__name__)
    logger.info("Verifying payment", extra={"order_id": "order_NkT3pQ8ZxY2abc"})
"""

import logging
import uuid
from contextvars import ContextVar
from typing import Any

# Context variable for correlation ID - thread-safe and async-safe
_correlation_id: ContextVar[str | None] = ContextVar("correlation_id", default=None)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def generate_correlation_id() -> str:
    """Generate a new correlation ID.

    Returns:
        UUID-based correlation ID string
    """
    return str(uuid.uuid4())


def set_correlation_id(correlation_id: str | None = None) -> str:
    """Set the correlation ID for the current request context.

    Args:
        correlation_id: Optional existing correlation ID. If None, generates new one.

    Returns:
        The correlation ID that was set
    """
    cid = correlation_id or generate_correlation_id()
    _correlation_id.set(cid)
    return cid


def get_correlation_id() -> str | None:
    """Get the current correlation ID."""
    return _correlation_id.get()


def clear_correlation_id() -> None:
    """Clear the correlation ID context."""
    _correlation_id.set(None)


class CorrelationIdFilter(logging.Filter):
    """Logging filter that adds correlation_id to log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = get_correlation_id() or "no-correlation-id"
        return True


class StructuredFormatter(logging.Formatter):
    """Formatter for structured log output with correlation ID."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record with a correlation ID prefix.

        Args:
            record: Log record to format

        Returns:
            Formatted log string
        """
        if not hasattr(record, "correlation_id"):
            record.correlation_id = get_correlation_id() or "no-correlation-id"

        base = super().format(record)
        return f"[{record.correlation_id}] {base}"


def configure_logging(level: int | str = logging.INFO) -> None:
    """Install the structured formatter on the root logger.

    Safe to call more than once; the handler is only added the first time.

    Args:
        level: Root log level
    """
    root = logging.getLogger()
    root.setLevel(level)
    for handler in root.handlers:
        if isinstance(handler.formatter, StructuredFormatter):
            return

    handler = logging.StreamHandler()
    handler.setFormatter(StructuredFormatter(LOG_FORMAT))
    handler.addFilter(CorrelationIdFilter())
    root.addHandler(handler)


def get_logger(name: str) -> logging.Logger:
    """Get a logger with correlation ID support.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    if not any(isinstance(f, CorrelationIdFilter) for f in logger.filters):
        logger.addFilter(CorrelationIdFilter())

    return logger


def _render(prefix: str, context: dict[str, Any], skip: set[str]) -> str:
    parts = [prefix]
    for key, value in context.items():
        if key not in skip:
            parts.append(f"{key}={value}")
    return " | ".join(parts)


def log_payment_operation(
    logger: logging.Logger,
    operation: str,
    *,
    order_id: str | None = None,
    payment_id: str | None = None,
    user_id: str | None = None,
    amount: int | None = None,
    status: str | None = None,
    error: str | None = None,
    **extra: Any,
) -> None:
    """Log a payment operation with structured context.

    Args:
        logger: Logger instance
        operation: Operation name (e.g., "verify_payment", "activate_order")
        order_id: Order ID if available
        payment_id: Gateway payment ID if available
        user_id: Paying user if available
        amount: Amount in smallest currency unit if relevant
        status: Resulting status
        error: Error message if the operation failed
        **extra: Additional context fields
    """
    context: dict[str, Any] = {"operation": operation}

    if order_id:
        context["order_id"] = order_id
    if payment_id:
        context["payment_id"] = payment_id
    if user_id:
        context["user_id"] = user_id
    if amount is not None:
        context["amount"] = amount
    if status:
        context["status"] = status
    if error:
        context["error"] = error

    context.update(extra)
    message = _render(f"Payment operation: {operation}", context, {"operation"})

    if error:
        logger.error(message, extra=context)
    else:
        logger.info(message, extra=context)


def log_webhook_event(
    logger: logging.Logger,
    event_type: str,
    event_id: str,
    *,
    order_id: str | None = None,
    payment_id: str | None = None,
    result: str | None = None,
    error: str | None = None,
    **extra: Any,
) -> None:
    """Log a webhook event with structured context.

    Args:
        logger: Logger instance
        event_type: Gateway event type (e.g., "payment.captured")
        event_id: Gateway event ID
        order_id: Associated order ID if available
        payment_id: Associated payment ID if available
        result: Processing result (received, completed, duplicate, ignored, error)
        error: Error message if processing failed
        **extra: Additional context fields
    """
    context: dict[str, Any] = {
        "event_type": event_type,
        "event_id": event_id,
    }

    if order_id:
        context["order_id"] = order_id
    if payment_id:
        context["payment_id"] = payment_id
    if result:
        context["result"] = result
    if error:
        context["error"] = error

    context.update(extra)

    msg_parts = [f"Webhook event: {event_type} ({event_id})"]
    if result:
        msg_parts.append(f"result={result}")
    if order_id:
        msg_parts.append(f"order={order_id}")
    if error:
        msg_parts.append(f"error={error}")

    message = " | ".join(msg_parts)

    if result == "error":
        logger.error(message, extra=context)
    elif result in ("duplicate", "ignored"):
        logger.warning(message, extra=context)
    else:
        logger.info(message, extra=context)


def log_subscription_event(
    logger: logging.Logger,
    event_type: str,
    user_id: str,
    *,
    subscription_id: str | None = None,
    plan: str | None = None,
    status: str | None = None,
    error: str | None = None,
    **extra: Any,
) -> None:
    """Log a subscription lifecycle transition with structured context.

    Args:
        logger: Logger instance
        event_type: Lifecycle event (e.g., "activated", "suspended")
        user_id: Subscription owner
        subscription_id: Subscription lineage ID if known
        plan: Plan name if relevant
        status: Resulting subscription status
        error: Error message if the transition failed
        **extra: Additional context fields
    """
    context: dict[str, Any] = {"event_type": event_type, "user_id": user_id}

    if subscription_id:
        context["subscription_id"] = subscription_id
    if plan:
        context["plan"] = plan
    if status:
        context["status"] = status
    if error:
        context["error"] = error

    context.update(extra)
    message = _render(f"Subscription event: {event_type}", context, {"event_type"})

    if error:
        logger.error(message, extra=context)
    else:
        logger.info(message, extra=context)
