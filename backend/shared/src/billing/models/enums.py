"""Enumeration types for billing data models."""

from enum import Enum


class OrderStatus(str, Enum):
    """Status of a canonical payment order."""

    CREATED = "created"
    PAID = "paid"
    REFUNDED = "refunded"


class PaymentStateStatus(str, Enum):
    """Status of a client-facing payment session."""

    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"

    @property
    def is_terminal(self) -> bool:
        """Whether the session can no longer change status."""
        return self is not PaymentStateStatus.PENDING


class SubscriptionStatus(str, Enum):
    """Status of a user's subscription lineage."""

    ACTIVE = "active"
    CANCELLED = "cancelled"
    EXPIRED = "expired"
    SUSPENDED = "suspended"


class WebhookEventStatus(str, Enum):
    """Processing status of an inbound gateway event."""

    RECEIVED = "received"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class LedgerStatus(str, Enum):
    """Status of a revenue ledger entry."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"
    REFUNDED = "refunded"


class LedgerSource(str, Enum):
    """Path that produced a revenue ledger entry."""

    WEBHOOK = "webhook"
    MANUAL = "manual"
    VERIFICATION = "verification"
    RENEWAL = "renewal"


class LifecycleEventType(str, Enum):
    """Subscription lifecycle events handed to notification delivery."""

    ACTIVATED = "activated"
    CANCELLED = "cancelled"
    REACTIVATED = "reactivated"
    RENEWED = "renewed"
    SUSPENDED = "suspended"
    EXPIRED = "expired"
    AUTO_RENEW_UPDATED = "auto_renew_updated"
    PAYMENT_CONFIRMED = "payment_confirmed"
    PAYMENT_FAILED = "payment_failed"


class AuditRecordType(str, Enum):
    """Kinds of security audit records."""

    FRAUD_ATTEMPT = "fraud_attempt"
    SECURITY_VIOLATION = "security_violation"
    PAYMENT_FAILURE = "payment_failure"
    SYSTEM_ERROR = "system_error"


class SessionAction(str, Enum):
    """Client actions on a payment session."""

    CANCEL = "cancel"
    RETRY = "retry"
