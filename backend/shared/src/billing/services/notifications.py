"""Delivery of subscription lifecycle events to users.

Message content and delivery channels belong to the consumer; the engine
only hands over typed LifecycleEvent objects. Dispatch is best-effort.
"""

import json
import logging
from typing import Any, Protocol

import boto3

from billing.models import LifecycleEvent
from billing.utils.dates import to_iso

logger = logging.getLogger(__name__)


class NotificationDispatcher(Protocol):
    """Consumer of lifecycle events."""

    def dispatch(self, event: LifecycleEvent) -> None:
        """Deliver one lifecycle event. May raise; callers treat it as best-effort."""
        ...


class LoggingNotificationDispatcher:
    """Dispatcher that only logs events (local development and tests)."""

    def __init__(self) -> None:
        self.sent: list[LifecycleEvent] = []

    def dispatch(self, event: LifecycleEvent) -> None:
        self.sent.append(event)
        logger.info(
            "Notification %s for user %s (%s)",
            event.event_type.value,
            event.user_id,
            event.event_id,
        )


class SnsNotificationDispatcher:
    """Publishes lifecycle events to an SNS topic for downstream delivery."""

    def __init__(self, topic_arn: str, client: Any | None = None) -> None:
        """Initialize the SNS dispatcher.

        Args:
            topic_arn: Topic that receives lifecycle events
            client: boto3 SNS client, created lazily if omitted
        """
        self.topic_arn = topic_arn
        self._client = client

    def _get_client(self) -> Any:
        if self._client is None:
            self._client = boto3.client("sns")
        return self._client

    def dispatch(self, event: LifecycleEvent) -> None:
        message = {
            "event_id": event.event_id,
            "event_type": event.event_type.value,
            "user_id": event.user_id,
            "subscription_id": event.subscription_id,
            "plan": event.plan,
            "occurred_at": to_iso(event.occurred_at),
            "details": event.details,
        }
        self._get_client().publish(
            TopicArn=self.topic_arn,
            Message=json.dumps(message, default=str),
            MessageAttributes={
                "event_type": {
                    "DataType": "String",
                    "StringValue": event.event_type.value,
                }
            },
        )
        logger.info(
            "Published %s notification for user %s", event.event_type.value, event.user_id
        )


def build_dispatcher(topic_arn: str | None) -> NotificationDispatcher:
    """SNS dispatcher when a topic is configured, logging dispatcher otherwise."""
    if topic_arn:
        return SnsNotificationDispatcher(topic_arn)
    return LoggingNotificationDispatcher()
