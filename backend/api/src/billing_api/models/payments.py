"""API models for checkout and payment session endpoints."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from billing.models import PaymentOrder, PaymentState, SessionAction


class CreateOrderRequest(BaseModel):
    """Request to register a gateway order for a plan purchase.

    The amount is taken from the plan catalog, never from the client.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        json_schema_extra={
            "examples": [
                {
                    "userId": "5b0c2d4e-8f1a-4c3b-9d2e-7a6f5e4d3c2b",
                    "plan": "pro",
                    "orderId": "order_NkT5zz9QwErty1",
                }
            ]
        },
    )

    user_id: str = Field(..., min_length=1, description="Paying user")
    plan: str = Field(..., min_length=1, description="Plan name", examples=["pro"])
    order_id: str = Field(..., min_length=1, description="Gateway-assigned order ID")
    currency: Optional[str] = Field(default=None, description="Expected currency")
    device_fingerprint: Optional[str] = Field(default=None)
    gateway_customer_id: Optional[str] = Field(default=None)
    payment_method_id: Optional[str] = Field(
        default=None, description="Saved payment method for renewal charges"
    )


class SessionActionRequest(BaseModel):
    """Cancel the pending session, or open a new one after a failed attempt."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    user_id: str = Field(..., min_length=1)
    action: SessionAction


class PaymentSessionResponse(BaseModel):
    """Order plus its current payment session."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    order_id: str
    order_status: str
    plan: str
    amount: int
    currency: str
    session_id: Optional[str] = None
    status: Optional[str] = None
    expires_at: Optional[datetime] = None
    payment_id: Optional[str] = None
    error_message: Optional[str] = None

    @classmethod
    def build(
        cls, order: PaymentOrder, session: Optional[PaymentState]
    ) -> "PaymentSessionResponse":
        return cls(
            order_id=order.order_id,
            order_status=order.status.value,
            plan=order.plan,
            amount=order.amount,
            currency=order.currency,
            session_id=session.session_id if session else None,
            status=session.status.value if session else None,
            expires_at=session.expires_at if session else None,
            payment_id=(session.payment_id if session else None) or order.payment_id,
            error_message=session.error_message if session else None,
        )
