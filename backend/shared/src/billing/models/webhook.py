"""Webhook event log records and typed gateway events.

Gateway payloads arrive as loosely typed JSON. ``parse_gateway_event``
narrows them into one of the event variants below; event types the engine
does not act on become ``UnknownGatewayEvent`` and are acknowledged only.
"""

from datetime import datetime
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from .enums import WebhookEventStatus


class WebhookEvent(BaseModel):
    """Ingestion record for one gateway event, keyed by the gateway event ID.

    The conditional insert on ``event_id`` is the idempotency boundary for
    all asynchronous side effects.
    """

    model_config = ConfigDict(strict=True)

    event_id: str = Field(
        ...,
        description="Gateway event ID",
        examples=["evt_NkT5zz9QwErty1"],
    )
    event_type: str = Field(
        ...,
        description="Gateway event type",
        examples=["payment.captured", "payment.failed"],
    )
    status: WebhookEventStatus = Field(..., description="Processing status")
    payload: dict[str, Any] = Field(default_factory=dict, description="Raw payload")
    order_id: Optional[str] = Field(default=None, description="Linked order ID")
    payment_id: Optional[str] = Field(default=None, description="Linked payment ID")
    received_at: datetime = Field(..., description="When the event was first recorded")
    processed_at: Optional[datetime] = Field(
        default=None, description="When the event reached a terminal status"
    )
    error_message: Optional[str] = Field(default=None, description="Failure detail")
    attempts: int = Field(default=0, ge=0, description="Processing attempts so far")


class PaymentCaptured(BaseModel):
    """Gateway captured a payment for an order."""

    kind: Literal["payment.captured"] = "payment.captured"
    event_id: str
    payment_id: str
    order_id: str
    amount: int
    currency: str = "INR"
    method: Optional[str] = None
    plan: Optional[str] = None


class PaymentFailed(BaseModel):
    """Gateway reported a failed payment attempt."""

    kind: Literal["payment.failed"] = "payment.failed"
    event_id: str
    payment_id: str
    order_id: str
    error_description: Optional[str] = None


class OrderPaid(BaseModel):
    """Gateway reported that an order is fully paid."""

    kind: Literal["order.paid"] = "order.paid"
    event_id: str
    order_id: str
    payment_id: Optional[str] = None
    amount_paid: Optional[int] = None


class RefundProcessed(BaseModel):
    """Gateway processed a refund against a payment."""

    kind: Literal["refund.processed"] = "refund.processed"
    event_id: str
    refund_id: str
    payment_id: str
    amount: int


class UnknownGatewayEvent(BaseModel):
    """Any event type the engine does not act on."""

    kind: Literal["unknown"] = "unknown"
    event_id: str
    event_type: str


GatewayEvent = Union[
    PaymentCaptured, PaymentFailed, OrderPaid, RefundProcessed, UnknownGatewayEvent
]


def _entity(payload: dict[str, Any], name: str) -> dict[str, Any]:
    """Extract ``payload.<name>.entity`` from a gateway event body."""
    entity = payload.get("payload", {}).get(name, {}).get("entity")
    if not isinstance(entity, dict):
        raise ValueError(f"Event payload is missing the {name} entity")
    return entity


def event_type_of(payload: dict[str, Any]) -> str:
    """Return the event type of a raw gateway body."""
    return str(payload.get("event") or payload.get("type") or "unknown")


def parse_gateway_event(event_id: str, payload: dict[str, Any]) -> GatewayEvent:
    """Narrow a raw gateway body into a typed event.

    Args:
        event_id: Gateway event ID (the idempotency key)
        payload: Decoded JSON body

    Returns:
        The matching event variant, or UnknownGatewayEvent

    Raises:
        ValueError: If a known event type lacks its entity
        KeyError: If the entity lacks a field the engine needs
    """
    event_type = event_type_of(payload)

    if event_type == "payment.captured":
        entity = _entity(payload, "payment")
        notes = entity.get("notes") or {}
        return PaymentCaptured(
            event_id=event_id,
            payment_id=entity["id"],
            order_id=entity["order_id"],
            amount=int(entity["amount"]),
            currency=str(entity.get("currency", "INR")).upper(),
            method=entity.get("method"),
            plan=notes.get("plan") if isinstance(notes, dict) else None,
        )
    if event_type == "payment.failed":
        entity = _entity(payload, "payment")
        return PaymentFailed(
            event_id=event_id,
            payment_id=entity["id"],
            order_id=entity["order_id"],
            error_description=entity.get("error_description"),
        )
    if event_type == "order.paid":
        order = _entity(payload, "order")
        payment = payload.get("payload", {}).get("payment", {}).get("entity") or {}
        return OrderPaid(
            event_id=event_id,
            order_id=order["id"],
            payment_id=payment.get("id"),
            amount_paid=int(order["amount_paid"]) if "amount_paid" in order else None,
        )
    if event_type == "refund.processed":
        entity = _entity(payload, "refund")
        return RefundProcessed(
            event_id=event_id,
            refund_id=entity["id"],
            payment_id=entity["payment_id"],
            amount=int(entity["amount"]),
        )
    return UnknownGatewayEvent(event_id=event_id, event_type=event_type)


def linked_ids(payload: dict[str, Any]) -> tuple[Optional[str], Optional[str]]:
    """Best-effort (order_id, payment_id) for indexing the raw event row."""
    body = payload.get("payload", {})
    payment = (body.get("payment") or {}).get("entity") or {}
    order = (body.get("order") or {}).get("entity") or {}
    refund = (body.get("refund") or {}).get("entity") or {}
    order_id = payment.get("order_id") or order.get("id")
    payment_id = payment.get("id") or refund.get("payment_id")
    return order_id, payment_id
