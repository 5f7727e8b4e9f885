"""API models for subscription lifecycle endpoints."""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from billing.models import SubscriptionSnapshot


class CancelSubscriptionRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    user_id: str = Field(..., min_length=1)
    reason: Optional[str] = Field(default=None, max_length=500)
    immediate: bool = False


class ReactivateSubscriptionRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    user_id: str = Field(..., min_length=1)


class AutoRenewRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    user_id: str = Field(..., min_length=1)
    enabled: bool


class SubscriptionStatusResponse(BaseModel):
    """Snapshot of a user's subscription, or a not-found message."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    success: bool
    message: Optional[str] = None
    subscription: Optional[SubscriptionSnapshot] = None
