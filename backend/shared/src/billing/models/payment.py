"""Payment order, payment session and verification models.

Amounts are integers in the currency's smallest unit (paise for INR).
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .enums import OrderStatus, PaymentStateStatus


class PaymentOrder(BaseModel):
    """Canonical record of one checkout attempt.

    Created before the user is redirected to the gateway and moved to
    ``paid`` exactly once, by whichever activation path commits first.
    """

    model_config = ConfigDict(strict=True)

    order_id: str = Field(
        ...,
        description="Gateway-assigned order ID",
        examples=["order_NkT3pQ8ZxY2abc"],
    )
    user_id: str = Field(..., description="Owner of the order")
    plan: str = Field(..., description="Plan being purchased", examples=["pro"])
    amount: int = Field(..., ge=0, description="Amount in smallest currency unit")
    currency: str = Field(default="INR", description="ISO currency code")
    status: OrderStatus = Field(..., description="Order status")
    created_at: datetime = Field(..., description="Creation timestamp")
    paid_at: Optional[datetime] = Field(default=None, description="When the order was paid")
    payment_id: Optional[str] = Field(
        default=None,
        description="Gateway payment ID that settled the order",
        examples=["pay_NkT4aB1cD2efgh"],
    )
    device_fingerprint: Optional[str] = Field(
        default=None, description="Client device fingerprint at checkout"
    )
    gateway_customer_id: Optional[str] = Field(
        default=None, description="Saved customer reference for renewal charges"
    )
    payment_method_id: Optional[str] = Field(
        default=None,
        description="Saved payment method to charge on renewal",
        examples=["pm_1QwErTyUiOpAsD"],
    )


class PaymentState(BaseModel):
    """Client-facing payment session for an order.

    A new session is opened on every retry; the order itself never changes.
    Once a session leaves ``pending`` it never returns to it.
    """

    model_config = ConfigDict(strict=True)

    session_id: str = Field(..., description="Unique payment session ID")
    order_id: str = Field(..., description="Order this session pays for")
    user_id: str = Field(..., description="Session owner")
    plan: str = Field(..., description="Plan being purchased")
    amount: int = Field(..., ge=0, description="Amount in smallest currency unit")
    currency: str = Field(default="INR", description="ISO currency code")
    status: PaymentStateStatus = Field(..., description="Session status")
    created_at: datetime = Field(..., description="Creation timestamp")
    expires_at: datetime = Field(..., description="When a pending session lapses")
    updated_at: Optional[datetime] = Field(default=None, description="Last transition")
    payment_id: Optional[str] = Field(default=None, description="Gateway payment ID")
    error_message: Optional[str] = Field(default=None, description="Failure detail")

    def is_past_expiry(self, now: datetime) -> bool:
        """Whether a pending session should be treated as expired at ``now``."""
        return self.status is PaymentStateStatus.PENDING and now >= self.expires_at


class FraudCheckResult(BaseModel):
    """Outcome of one fraud heuristic."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    check: str = Field(..., description="Check name", examples=["email_domain"])
    passed: bool = Field(..., description="Whether the check passed")
    score: float = Field(..., ge=0.0, le=1.0, description="Risk contribution")
    details: str = Field(..., description="Human-readable detail")


class FraudAssessment(BaseModel):
    """Aggregate fraud score over all evaluable checks."""

    risk_score: float = Field(..., ge=0.0, le=1.0)
    is_high_risk: bool
    checks: list[FraudCheckResult] = Field(default_factory=list)


class VerificationRequest(BaseModel):
    """Inputs of the synchronous "user just paid" path."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    order_id: str = ""
    payment_id: str = ""
    signature: str = ""
    user_id: str = ""
    user_email: str = ""
    user_agent: Optional[str] = None
    ip_address: Optional[str] = None
    device_fingerprint: Optional[str] = None


class SubscriptionSummary(BaseModel):
    """Subscription snapshot returned by a successful verification."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    plan: str
    status: str
    end_date: datetime
    days_remaining: int
    payment_id: Optional[str] = None
    order_id: Optional[str] = None


class VerificationDetails(BaseModel):
    """Which verification stages succeeded."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    signature_verified: bool = False
    user_verified: bool = False
    order_verified: bool = False
    subscription_activated: bool = False
    risk_score: float = 0.0
    fraud_checks: list[FraudCheckResult] = Field(default_factory=list)


class VerificationResult(BaseModel):
    """Outcome of PaymentVerifier.verify; never raised, always returned."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    success: bool
    message: str
    subscription: Optional[SubscriptionSummary] = None
    verification: Optional[VerificationDetails] = None
    error: Optional[str] = None
    code: Optional[str] = None
