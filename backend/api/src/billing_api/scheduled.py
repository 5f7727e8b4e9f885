"""Scheduled Lambda entry point for the renewal sweep.

Invoked by an EventBridge schedule rule. Each invocation gets its own
correlation ID so the sweep's log lines and lifecycle events can be
traced together.
"""

import logging
import os
from typing import Any

from billing.utils.logging import clear_correlation_id, configure_logging, set_correlation_id
from billing_api.dependencies import get_renewal_sweeper

configure_logging(os.getenv("LOG_LEVEL", "INFO"))
logger = logging.getLogger(__name__)


def renewal_sweep_handler(event: dict[str, Any], context: Any) -> dict[str, int]:
    """Run one renewal sweep.

    Args:
        event: EventBridge scheduled event (unused beyond its ID)
        context: Lambda context

    Returns:
        Sweep counters: processed, errors, skipped, expired
    """
    correlation_id = set_correlation_id(
        str(event.get("id")) if isinstance(event, dict) and event.get("id") else None
    )
    try:
        logger.info("Scheduled renewal sweep started (correlation %s)", correlation_id)
        result = get_renewal_sweeper().run()
        return result.to_dict()
    finally:
        clear_correlation_id()
