"""Business logic for gateway webhook events.

Kept apart from HTTP routing so events can be processed from a
background task, re-driven by an operator, or exercised in unit tests.
Ingestion and processing are split: the HTTP handler acknowledges once
the event row is ``received`` and processing runs afterwards.
"""

import datetime as dt
import json
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from billing.models import (
    BillingError,
    ErrorCode,
    LedgerSource,
    LedgerStatus,
    LifecycleEventType,
    OrderPaid,
    OrderStatus,
    PaymentCaptured,
    PaymentFailed,
    PaymentStateStatus,
    RefundProcessed,
    RevenueLedgerEntry,
    WebhookEvent,
    WebhookEventStatus,
    parse_gateway_event,
)
from billing.models.webhook import event_type_of, linked_ids
from billing.services.signature import verify_webhook_signature
from billing.utils.dates import utcnow
from billing.utils.logging import log_webhook_event

if TYPE_CHECKING:
    from .activation import ActivationService
    from .order_store import OrderStore
    from .payment_state_store import PaymentStateStore
    from .revenue_ledger import RevenueLedger
    from .subscription_lifecycle import SubscriptionLifecycleManager
    from .webhook_log import WebhookEventLog

logger = logging.getLogger(__name__)

# A delivery that never left ``received`` this long ago is treated as lost
STALLED_RECEIVED_AFTER = dt.timedelta(minutes=5)


@dataclass(frozen=True)
class WebhookReceipt:
    """Outcome of ingesting one delivery."""

    event_id: str
    event_type: str
    result: str  # received, redelivered, duplicate

    @property
    def should_process(self) -> bool:
        return self.result in ("received", "redelivered")


class WebhookProcessor:
    """Verifies, records and applies gateway webhook events."""

    def __init__(
        self,
        webhook_secret: str,
        events: "WebhookEventLog",
        orders: "OrderStore",
        states: "PaymentStateStore",
        ledger: "RevenueLedger",
        activation: "ActivationService",
        lifecycle: "SubscriptionLifecycleManager",
    ) -> None:
        """Initialize the webhook processor.

        Args:
            webhook_secret: Shared secret for the webhook HMAC
            events: Webhook event log
            orders: Order store
            states: Payment session store
            ledger: Revenue ledger
            activation: Atomic activation service
            lifecycle: Subscription lifecycle manager (payment-failure events)

        Raises:
            ValueError: If ``webhook_secret`` is empty
        """
        if not webhook_secret:
            raise ValueError("webhook_secret is required")
        self._webhook_secret = webhook_secret
        self.events = events
        self.orders = orders
        self.states = states
        self.ledger = ledger
        self.activation = activation
        self.lifecycle = lifecycle

    # === Ingestion ===

    def ingest(
        self,
        body: bytes,
        signature: str | None,
        event_id: str | None = None,
        now: dt.datetime | None = None,
    ) -> WebhookReceipt:
        """Verify a delivery and record it as ``received``.

        Args:
            body: Raw request body, exactly as signed
            signature: Hex HMAC-SHA256 from the signature header
            event_id: Event ID from the delivery header, used when the
                body carries none
            now: Receipt time, defaults to the current UTC time

        Returns:
            WebhookReceipt; ``should_process`` is False for duplicates

        Raises:
            BillingError: INVALID_WEBHOOK_SIGNATURE or INVALID_REQUEST
        """
        if not verify_webhook_signature(body, signature, self._webhook_secret):
            logger.warning("Rejected webhook with invalid signature")
            raise BillingError(ErrorCode.INVALID_WEBHOOK_SIGNATURE)

        try:
            payload: dict[str, Any] = json.loads(body)
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise BillingError(ErrorCode.INVALID_REQUEST, {"body": "not valid JSON"}) from e
        if not isinstance(payload, dict):
            raise BillingError(ErrorCode.INVALID_REQUEST, {"body": "expected a JSON object"})

        resolved_id = str(payload.get("id") or event_id or "")
        if not resolved_id:
            raise BillingError(ErrorCode.INVALID_REQUEST, {"event_id": "missing"})

        event_type = event_type_of(payload)
        order_id, payment_id = linked_ids(payload)
        if self.events.record_received(
            resolved_id, event_type, payload, order_id, payment_id, now
        ):
            log_webhook_event(
                logger,
                event_type,
                resolved_id,
                order_id=order_id,
                payment_id=payment_id,
                result="received",
            )
            return WebhookReceipt(resolved_id, event_type, "received")

        existing = self.events.get(resolved_id)
        if existing is not None and self._is_recoverable(existing, now or utcnow()):
            log_webhook_event(
                logger, event_type, resolved_id, order_id=order_id, result="redelivered"
            )
            return WebhookReceipt(resolved_id, event_type, "redelivered")

        log_webhook_event(
            logger,
            event_type,
            resolved_id,
            order_id=order_id,
            result="duplicate",
            prior_status=existing.status.value if existing else None,
        )
        return WebhookReceipt(resolved_id, event_type, "duplicate")

    # === Processing ===

    def process(self, event_id: str, now: dt.datetime | None = None) -> tuple[str, str | None]:
        """Claim a recorded event and apply its business effect.

        Returns:
            Tuple of (processing_result, error_message). The result is one
            of completed, ignored, duplicate or error.
        """
        now = now or utcnow()
        event = self.events.claim(event_id, now)
        if event is None:
            log_webhook_event(logger, "unknown", event_id, result="duplicate")
            return "duplicate", None

        try:
            parsed = parse_gateway_event(event.event_id, event.payload)
            if isinstance(parsed, PaymentCaptured):
                result = self.handle_payment_captured(parsed, now)
            elif isinstance(parsed, PaymentFailed):
                result = self.handle_payment_failed(parsed, now)
            elif isinstance(parsed, RefundProcessed):
                result = self.handle_refund_processed(parsed, now)
            elif isinstance(parsed, OrderPaid):
                # Captured payments drive activation; this one is informational
                result = "ignored"
            else:
                result = "ignored"
        except Exception as e:
            error = f"{type(e).__name__}: {e}"
            self.events.mark_failed(event.event_id, error, now)
            log_webhook_event(
                logger,
                event.event_type,
                event.event_id,
                order_id=event.order_id,
                payment_id=event.payment_id,
                result="error",
                error=error,
            )
            return "error", error

        self.events.mark_completed(event.event_id, now)
        log_webhook_event(
            logger,
            event.event_type,
            event.event_id,
            order_id=event.order_id,
            payment_id=event.payment_id,
            result=result if result == "ignored" else "completed",
            effect=result,
        )
        return ("ignored" if result == "ignored" else "completed"), None

    def retry(self, event_id: str, now: dt.datetime | None = None) -> tuple[str, str | None]:
        """Re-drive a ``failed`` event, or a ``received`` one that was never processed.

        Raises:
            BillingError: WEBHOOK_EVENT_NOT_FOUND if the event is unknown
        """
        event = self.events.get(event_id)
        if event is None:
            raise BillingError(ErrorCode.WEBHOOK_EVENT_NOT_FOUND, {"event_id": event_id})
        if event.status not in (WebhookEventStatus.FAILED, WebhookEventStatus.RECEIVED):
            logger.info("Event %s is %s, not retried", event_id, event.status.value)
            return "duplicate", None
        return self.process(event_id, now)

    def _is_recoverable(self, event: WebhookEvent, now: dt.datetime) -> bool:
        if event.status is WebhookEventStatus.FAILED:
            return True
        return (
            event.status is WebhookEventStatus.RECEIVED
            and now - event.received_at >= STALLED_RECEIVED_AFTER
        )

    # === Event handlers ===

    def handle_payment_captured(self, event: PaymentCaptured, now: dt.datetime) -> str:
        """Record the captured payment and activate if the browser never returned."""
        order = self.orders.get(event.order_id)
        if order is None:
            raise LookupError(f"Order {event.order_id} not found")
        if event.amount != order.amount:
            logger.warning(
                "Captured amount %d differs from order %s amount %d",
                event.amount,
                order.order_id,
                order.amount,
            )

        self.ledger.append(
            RevenueLedgerEntry(
                payment_id=event.payment_id,
                order_id=order.order_id,
                user_id=order.user_id,
                amount=order.amount,
                currency=order.currency,
                plan=order.plan,
                status=LedgerStatus.PENDING,
                source=LedgerSource.WEBHOOK,
                created_at=now,
            )
        )

        if order.status is OrderStatus.CREATED:
            outcome = self.activation.activate_order(
                order,
                event.payment_id,
                LedgerSource.WEBHOOK,
                payment_method=event.method,
                now=now,
            )
            if not outcome.success:
                raise RuntimeError(outcome.error or "Activation failed")
            return "activated" if outcome.activated else "already_paid"

        if order.status is OrderStatus.PAID and order.payment_id != event.payment_id:
            # A second capture for a paid order stays pending for reconciliation
            logger.warning(
                "Order %s already paid by %s; capture %s left pending",
                order.order_id,
                order.payment_id,
                event.payment_id,
            )
        return "already_paid"

    def handle_payment_failed(self, event: PaymentFailed, now: dt.datetime) -> str:
        """Fail the pending session and any pending ledger entry."""
        reason = event.error_description or "Payment failed"
        self.states.transition(
            event.order_id,
            PaymentStateStatus.FAILED,
            {"error_message": reason, "payment_id": event.payment_id},
            now,
        )

        order = self.orders.get(event.order_id)
        if self.ledger.mark_failed(event.payment_id, reason, now) is None:
            if order is not None and self.ledger.get(event.payment_id) is None:
                self.ledger.append(
                    RevenueLedgerEntry(
                        payment_id=event.payment_id,
                        order_id=order.order_id,
                        user_id=order.user_id,
                        amount=order.amount,
                        currency=order.currency,
                        plan=order.plan,
                        status=LedgerStatus.FAILED,
                        source=LedgerSource.WEBHOOK,
                        created_at=now,
                        failure_reason=reason,
                    )
                )

        if order is not None:
            self.lifecycle.emit(
                LifecycleEventType.PAYMENT_FAILED,
                details={
                    "order_id": order.order_id,
                    "payment_id": event.payment_id,
                    "reason": reason,
                },
                user_id=order.user_id,
            )
        return "payment_failed"

    def handle_refund_processed(self, event: RefundProcessed, now: dt.datetime) -> str:
        """Refund the confirmed ledger entry and its order."""
        entry = self.ledger.mark_refunded(event.payment_id, event.refund_id, now)
        if entry is None:
            existing = self.ledger.get(event.payment_id)
            if existing is None:
                raise LookupError(f"No ledger entry for payment {event.payment_id}")
            if existing.status is not LedgerStatus.REFUNDED:
                raise ValueError(
                    f"Ledger entry {event.payment_id} is {existing.status.value}, not confirmed"
                )
            return "already_refunded"

        self.orders.transition(entry.order_id, OrderStatus.REFUNDED)
        return "refunded"
