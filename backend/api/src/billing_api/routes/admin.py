"""Operator endpoints: webhook inspection and re-drive, revenue and metrics.

All routes require the bearer token.
"""

from fastapi import APIRouter, Depends, Query

from billing.models import RevenueSummary, SubscriptionMetrics, WebhookEventStatus
from billing.services.revenue_ledger import RevenueLedger
from billing.services.subscription_lifecycle import SubscriptionLifecycleManager
from billing.services.webhook_log import WebhookEventLog
from billing.services.webhook_processor import WebhookProcessor
from billing_api.dependencies import (
    get_lifecycle_manager,
    get_revenue_ledger,
    get_webhook_event_log,
    get_webhook_processor,
)
from billing_api.models.operations import WebhookEventSummary, WebhookRetryResponse
from billing_api.security import require_bearer_token

router = APIRouter(
    prefix="/admin",
    tags=["admin"],
    dependencies=[Depends(require_bearer_token)],
)


@router.get(
    "/webhooks",
    summary="List webhook events",
    response_model=list[WebhookEventSummary],
)
async def list_webhook_events(
    status: WebhookEventStatus | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=500),
    events: WebhookEventLog = Depends(get_webhook_event_log),
) -> list[WebhookEventSummary]:
    return [WebhookEventSummary.from_event(e) for e in events.list_events(status, limit)]


@router.post(
    "/webhooks/{event_id}/retry",
    summary="Re-drive a webhook event",
    description="Reprocesses a `failed` event, or a `received` event that was never processed.",
    response_model=WebhookRetryResponse,
    responses={404: {"description": "Unknown event ID"}},
)
async def retry_webhook_event(
    event_id: str,
    processor: WebhookProcessor = Depends(get_webhook_processor),
) -> WebhookRetryResponse:
    result, error = processor.retry(event_id)
    return WebhookRetryResponse(event_id=event_id, processing_result=result, message=error)


@router.get(
    "/revenue/summary",
    summary="Revenue summary",
    response_model=RevenueSummary,
)
async def revenue_summary(
    ledger: RevenueLedger = Depends(get_revenue_ledger),
) -> RevenueSummary:
    return ledger.summary()


@router.get(
    "/subscriptions/metrics",
    summary="Subscription metrics",
    response_model=SubscriptionMetrics,
)
async def subscription_metrics(
    lifecycle: SubscriptionLifecycleManager = Depends(get_lifecycle_manager),
) -> SubscriptionMetrics:
    return lifecycle.metrics()
