"""Pydantic models for billing data entities."""

from .enums import (
    AuditRecordType,
    LedgerSource,
    LedgerStatus,
    LifecycleEventType,
    OrderStatus,
    PaymentStateStatus,
    SessionAction,
    SubscriptionStatus,
    WebhookEventStatus,
)
from .errors import (
    ERROR_MESSAGES,
    ERROR_RECOVERY,
    BillingError,
    ConfigurationError,
    ErrorCode,
    ErrorResponse,
)
from .ledger import RevenueLedgerEntry, RevenueSummary
from .payment import (
    FraudAssessment,
    FraudCheckResult,
    PaymentOrder,
    PaymentState,
    SubscriptionSummary,
    VerificationDetails,
    VerificationRequest,
    VerificationResult,
)
from .subscription import (
    LifecycleEvent,
    LifecycleResult,
    Subscription,
    SubscriptionMetrics,
    SubscriptionSnapshot,
)
from .webhook import (
    GatewayEvent,
    OrderPaid,
    PaymentCaptured,
    PaymentFailed,
    RefundProcessed,
    UnknownGatewayEvent,
    WebhookEvent,
    parse_gateway_event,
)

__all__ = [
    # Enums
    "AuditRecordType",
    "LedgerSource",
    "LedgerStatus",
    "LifecycleEventType",
    "OrderStatus",
    "PaymentStateStatus",
    "SessionAction",
    "SubscriptionStatus",
    "WebhookEventStatus",
    # Errors
    "ERROR_MESSAGES",
    "ERROR_RECOVERY",
    "BillingError",
    "ConfigurationError",
    "ErrorCode",
    "ErrorResponse",
    # Ledger
    "RevenueLedgerEntry",
    "RevenueSummary",
    # Payment
    "FraudAssessment",
    "FraudCheckResult",
    "PaymentOrder",
    "PaymentState",
    "SubscriptionSummary",
    "VerificationDetails",
    "VerificationRequest",
    "VerificationResult",
    # Subscription
    "LifecycleEvent",
    "LifecycleResult",
    "Subscription",
    "SubscriptionMetrics",
    "SubscriptionSnapshot",
    # Webhook
    "GatewayEvent",
    "OrderPaid",
    "PaymentCaptured",
    "PaymentFailed",
    "RefundProcessed",
    "UnknownGatewayEvent",
    "WebhookEvent",
    "parse_gateway_event",
]
