"""API models for webhook, scheduler and operator endpoints."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from billing.models import WebhookEvent


class WebhookResponse(BaseModel):
    """Acknowledgement returned to the gateway."""

    received: bool
    event_id: Optional[str] = None
    event_type: Optional[str] = None
    processing_result: str  # received, redelivered, duplicate
    message: Optional[str] = None


class WebhookRetryResponse(BaseModel):
    event_id: str
    processing_result: str  # completed, ignored, duplicate, error
    message: Optional[str] = None


class WebhookEventSummary(BaseModel):
    """Operator view of one webhook event (payload omitted)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    event_id: str
    event_type: str
    status: str
    order_id: Optional[str] = None
    payment_id: Optional[str] = None
    received_at: datetime
    processed_at: Optional[datetime] = None
    error_message: Optional[str] = None
    attempts: int = 0

    @classmethod
    def from_event(cls, event: WebhookEvent) -> "WebhookEventSummary":
        return cls(
            event_id=event.event_id,
            event_type=event.event_type,
            status=event.status.value,
            order_id=event.order_id,
            payment_id=event.payment_id,
            received_at=event.received_at,
            processed_at=event.processed_at,
            error_message=event.error_message,
            attempts=event.attempts,
        )


class SweepResponse(BaseModel):
    processed: int
    errors: int
    skipped: int = 0
    expired: int = 0
