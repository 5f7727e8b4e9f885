"""Revenue ledger models."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .enums import LedgerSource, LedgerStatus


class RevenueLedgerEntry(BaseModel):
    """Append-only record of money that moved or is expected to move.

    Keyed by gateway payment ID. Only the status ever advances:
    pending -> confirmed | failed, confirmed -> refunded.
    """

    model_config = ConfigDict(strict=True)

    payment_id: str = Field(..., description="Gateway payment ID")
    order_id: str = Field(..., description="Order the payment settles")
    user_id: str = Field(..., description="Paying user")
    amount: int = Field(..., ge=0, description="Amount in smallest currency unit")
    currency: str = Field(default="INR")
    plan: str = Field(..., description="Plan paid for")
    status: LedgerStatus = Field(..., description="Ledger status")
    source: LedgerSource = Field(..., description="Path that recorded the entry")
    created_at: datetime = Field(..., description="When the entry was appended")
    confirmed_at: Optional[datetime] = Field(default=None)
    updated_at: Optional[datetime] = Field(default=None)
    failure_reason: Optional[str] = Field(default=None)
    refund_id: Optional[str] = Field(default=None)


class RevenueSummary(BaseModel):
    """Ledger totals by status."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    total_revenue: int = 0
    pending_revenue: int = 0
    refunded_revenue: int = 0
    total_transactions: int = 0
    confirmed_transactions: int = 0
    pending_transactions: int = 0
    failed_transactions: int = 0
    refunded_transactions: int = 0
