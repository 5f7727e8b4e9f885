"""Subscription and lifecycle event models."""

import math
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .enums import LifecycleEventType, SubscriptionStatus


class Subscription(BaseModel):
    """A user's current subscription lineage.

    One row per user. Cancellation and expiry are status changes only;
    rows are never deleted.
    """

    model_config = ConfigDict(strict=True)

    user_id: str = Field(..., description="Subscription owner")
    subscription_id: str = Field(
        ...,
        description="ID of the current subscription period lineage",
        examples=["SUB-3F9A1C2B7D4E"],
    )
    plan: str = Field(..., description="Subscribed plan", examples=["pro"])
    status: SubscriptionStatus = Field(..., description="Lifecycle status")
    start_date: datetime = Field(..., description="Start of the current lineage")
    end_date: datetime = Field(..., description="End of paid or trial access")
    auto_renew: bool = Field(default=True, description="Renew automatically at end_date")
    is_trial: bool = Field(default=False, description="Whether this is a trial period")
    last_payment_date: Optional[datetime] = Field(default=None)
    next_billing_date: Optional[datetime] = Field(default=None)
    next_payment_amount: int = Field(default=0, ge=0, description="Smallest currency unit")
    currency: str = Field(default="INR")
    payment_method: Optional[str] = Field(
        default=None, description="Saved payment method for renewal charges"
    )
    gateway_customer_id: Optional[str] = Field(
        default=None, description="Saved customer reference for renewal charges"
    )
    order_id: Optional[str] = Field(default=None, description="Order that last paid")
    payment_id: Optional[str] = Field(default=None, description="Payment that last paid")
    cancelled_at: Optional[datetime] = Field(default=None)
    cancellation_reason: Optional[str] = Field(default=None)
    cancelled_immediately: bool = Field(default=False)
    suspended_at: Optional[datetime] = Field(default=None)
    created_at: datetime = Field(..., description="Row creation timestamp")
    updated_at: datetime = Field(..., description="Last mutation timestamp")

    def has_access(self, now: datetime) -> bool:
        """Whether the user is entitled to the plan at ``now``.

        A cancelled subscription keeps access until its end date unless it
        was cancelled immediately.
        """
        if self.status is SubscriptionStatus.ACTIVE:
            return now < self.end_date
        if self.status is SubscriptionStatus.CANCELLED:
            return not self.cancelled_immediately and now < self.end_date
        return False

    def days_remaining(self, now: datetime) -> int:
        """Whole days of access left, rounded up, never negative."""
        seconds = (self.end_date - now).total_seconds()
        return max(0, math.ceil(seconds / 86400))


class SubscriptionSnapshot(BaseModel):
    """Client-facing view of a subscription."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    user_id: str
    plan: str
    status: SubscriptionStatus
    start_date: datetime
    end_date: datetime
    days_remaining: int
    has_access: bool
    auto_renew: bool
    is_trial: bool
    next_billing_date: Optional[datetime] = None
    next_payment_amount: int = 0
    currency: str = "INR"
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None

    @classmethod
    def from_subscription(cls, sub: Subscription, now: datetime) -> "SubscriptionSnapshot":
        """Build a snapshot of ``sub`` as seen at ``now``."""
        return cls(
            user_id=sub.user_id,
            plan=sub.plan,
            status=sub.status,
            start_date=sub.start_date,
            end_date=sub.end_date,
            days_remaining=sub.days_remaining(now),
            has_access=sub.has_access(now),
            auto_renew=sub.auto_renew,
            is_trial=sub.is_trial,
            next_billing_date=sub.next_billing_date,
            next_payment_amount=sub.next_payment_amount,
            currency=sub.currency,
            cancelled_at=sub.cancelled_at,
            cancellation_reason=sub.cancellation_reason,
        )


class LifecycleEvent(BaseModel):
    """A subscription lifecycle transition, for notifications and audit."""

    event_id: str
    event_type: LifecycleEventType
    user_id: str
    occurred_at: datetime
    subscription_id: Optional[str] = None
    plan: Optional[str] = None
    details: dict[str, Any] = Field(default_factory=dict)


class LifecycleResult(BaseModel):
    """Outcome of a user-initiated lifecycle operation.

    Illegal transitions return ``success=False``; they are not exceptions.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    success: bool
    message: str
    effective_date: Optional[datetime] = None


class SubscriptionMetrics(BaseModel):
    """Aggregate subscription counts for operators."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    total_subscriptions: int = 0
    active_subscriptions: int = 0
    cancelled_this_month: int = 0
    suspended_subscriptions: int = 0
    auto_renew_enabled: int = 0
    renewal_rate: float = 0.0
