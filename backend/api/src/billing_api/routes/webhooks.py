"""Webhook endpoint for gateway events.

Does NOT require a bearer token: the gateway signs the raw body with the
shared webhook secret (HMAC-SHA256, hex, in X-Webhook-Signature).

The response is sent once the event row is ``received``; the business
effect runs in a background task so slow processing never triggers
gateway-side retries.
"""

from fastapi import APIRouter, BackgroundTasks, Depends, Request

from billing.services.webhook_processor import WebhookProcessor
from billing.utils.logging import get_logger
from billing_api.dependencies import get_webhook_processor
from billing_api.models.operations import WebhookResponse

logger = get_logger(__name__)

router = APIRouter(tags=["webhooks"])

SIGNATURE_HEADER = "X-Webhook-Signature"
EVENT_ID_HEADER = "X-Webhook-Event-Id"


@router.post(
    "/webhooks/gateway",
    summary="Gateway webhook",
    description="""
Receives payment gateway events: payment.captured, payment.failed,
refund.processed and order.paid. Other event types are acknowledged and
recorded without effect.

**Idempotent**: a re-delivered event ID returns 200 with result
`duplicate`, unless its earlier processing failed (`redelivered`).
""",
    response_model=WebhookResponse,
    responses={
        200: {"description": "Event recorded (or already seen)"},
        400: {"description": "Invalid signature or malformed body"},
    },
)
async def handle_gateway_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    processor: WebhookProcessor = Depends(get_webhook_processor),
) -> WebhookResponse:
    body = await request.body()
    receipt = processor.ingest(
        body,
        request.headers.get(SIGNATURE_HEADER),
        request.headers.get(EVENT_ID_HEADER),
    )
    if receipt.should_process:
        background_tasks.add_task(processor.process, receipt.event_id)

    return WebhookResponse(
        received=True,
        event_id=receipt.event_id,
        event_type=receipt.event_type,
        processing_result=receipt.result,
        message="Event already processed" if receipt.result == "duplicate" else None,
    )
