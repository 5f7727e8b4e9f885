"""Idempotent ingestion log for asynchronous gateway events.

Status flow: received -> processing -> completed | failed, and
failed -> processing when an operator or a re-delivery retries. A
stalled ``received`` row can be claimed the same way. The
conditional insert on ``event_id`` rejects duplicates; the conditional
claim to ``processing`` ensures only one worker runs the side effects.
"""

import datetime as dt
import json
import logging
from typing import TYPE_CHECKING, Any

from billing.models import WebhookEvent, WebhookEventStatus
from billing.services.schema import WEBHOOK_EVENTS_TABLE
from billing.utils.dates import from_iso, to_iso, utcnow

if TYPE_CHECKING:
    from .dynamodb import DynamoDBService

logger = logging.getLogger(__name__)


class WebhookEventLog:
    """Store for WebhookEvent rows."""

    TABLE = WEBHOOK_EVENTS_TABLE

    def __init__(self, db: "DynamoDBService") -> None:
        """Initialize the webhook event log.

        Args:
            db: DynamoDB service instance
        """
        self.db = db

    def record_received(
        self,
        event_id: str,
        event_type: str,
        payload: dict[str, Any],
        order_id: str | None = None,
        payment_id: str | None = None,
        now: dt.datetime | None = None,
    ) -> bool:
        """Insert the event with status ``received``.

        Returns:
            True if inserted, False if the event ID was already seen
        """
        event = WebhookEvent(
            event_id=event_id,
            event_type=event_type,
            status=WebhookEventStatus.RECEIVED,
            payload=payload,
            order_id=order_id,
            payment_id=payment_id,
            received_at=now or utcnow(),
        )
        return self.db.put_item(
            self.TABLE,
            self._event_to_item(event),
            condition_expression="attribute_not_exists(event_id)",
        )

    def get(self, event_id: str) -> WebhookEvent | None:
        """Get an event by gateway event ID."""
        item = self.db.get_item(self.TABLE, {"event_id": event_id}, consistent_read=True)
        return self._item_to_event(item) if item else None

    def claim(self, event_id: str, now: dt.datetime | None = None) -> WebhookEvent | None:
        """Move a received or failed event to ``processing``.

        Returns:
            The claimed event, or None if it is completed or already claimed
        """
        attrs = self.db.update_item(
            self.TABLE,
            {"event_id": event_id},
            "SET #status = :processing, updated_at = :now ADD attempts :one",
            {
                ":processing": WebhookEventStatus.PROCESSING.value,
                ":received": WebhookEventStatus.RECEIVED.value,
                ":failed": WebhookEventStatus.FAILED.value,
                ":now": to_iso(now or utcnow()),
                ":one": 1,
            },
            {"#status": "status"},
            condition_expression="#status = :received OR #status = :failed",
        )
        return self._item_to_event(attrs) if attrs else None

    def mark_completed(self, event_id: str, now: dt.datetime | None = None) -> bool:
        """Record the terminal ``completed`` status for a processing event."""
        attrs = self.db.update_item(
            self.TABLE,
            {"event_id": event_id},
            "SET #status = :completed, processed_at = :now, updated_at = :now "
            "REMOVE error_message",
            {
                ":completed": WebhookEventStatus.COMPLETED.value,
                ":processing": WebhookEventStatus.PROCESSING.value,
                ":now": to_iso(now or utcnow()),
            },
            {"#status": "status"},
            condition_expression="#status = :processing",
        )
        return attrs is not None

    def mark_failed(
        self, event_id: str, error_message: str, now: dt.datetime | None = None
    ) -> bool:
        """Record the ``failed`` status and error for a processing event."""
        attrs = self.db.update_item(
            self.TABLE,
            {"event_id": event_id},
            "SET #status = :failed, processed_at = :now, updated_at = :now, "
            "error_message = :error",
            {
                ":failed": WebhookEventStatus.FAILED.value,
                ":processing": WebhookEventStatus.PROCESSING.value,
                ":now": to_iso(now or utcnow()),
                ":error": error_message[:1000],
            },
            {"#status": "status"},
            condition_expression="#status = :processing",
        )
        return attrs is not None

    def list_events(
        self, status: WebhookEventStatus | None = None, limit: int | None = 50
    ) -> list[WebhookEvent]:
        """Events newest first, optionally restricted to one status."""
        statuses = [status] if status else list(WebhookEventStatus)
        events: list[WebhookEvent] = []
        for s in statuses:
            items = self.db.query_by_gsi(
                self.TABLE,
                "status-index",
                "status",
                s.value,
                limit=limit,
                scan_index_forward=False,
            )
            events.extend(self._item_to_event(item) for item in items)
        events.sort(key=lambda e: e.received_at, reverse=True)
        return events[:limit] if limit else events

    def _event_to_item(self, event: WebhookEvent) -> dict[str, Any]:
        """Convert WebhookEvent model to DynamoDB item.

        The raw payload is stored as JSON text so arbitrary gateway bodies
        (including floats) round-trip unchanged.
        """
        item: dict[str, Any] = {
            "event_id": event.event_id,
            "event_type": event.event_type,
            "status": event.status.value,
            "payload": json.dumps(event.payload, sort_keys=True),
            "received_at": to_iso(event.received_at),
            "attempts": event.attempts,
        }
        if event.order_id:
            item["order_id"] = event.order_id
        if event.payment_id:
            item["payment_id"] = event.payment_id
        if event.processed_at:
            item["processed_at"] = to_iso(event.processed_at)
        if event.error_message:
            item["error_message"] = event.error_message
        return item

    def _item_to_event(self, item: dict[str, Any]) -> WebhookEvent:
        """Convert DynamoDB item to WebhookEvent model."""
        return WebhookEvent(
            event_id=item["event_id"],
            event_type=item["event_type"],
            status=WebhookEventStatus(item["status"]),
            payload=json.loads(item.get("payload") or "{}"),
            order_id=item.get("order_id"),
            payment_id=item.get("payment_id"),
            received_at=from_iso(item.get("received_at")) or utcnow(),
            processed_at=from_iso(item.get("processed_at")),
            error_message=item.get("error_message"),
            attempts=int(item.get("attempts", 0)),
        )
