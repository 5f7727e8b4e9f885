"""Billing engine services."""

from .activation import ActivationOutcome, ActivationService
from .audit import SecurityAuditLog
from .checkout import CheckoutService
from .dynamodb import DynamoDBService, get_dynamodb_service, reset_dynamodb_service
from .fraud import FraudScorer, RecentAttemptsLookup
from .notifications import (
    LoggingNotificationDispatcher,
    NotificationDispatcher,
    SnsNotificationDispatcher,
    build_dispatcher,
)
from .order_store import OrderStore
from .payment_state_store import PaymentStateStore
from .payment_verifier import PaymentVerifier
from .renewal import ChargeResult, RenewalCharger, RenewalSweeper, SweepResult
from .revenue_ledger import RevenueLedger
from .ssm_service import SSMService, SSMServiceError, get_ssm_service
from .stripe_service import StripeRenewalCharger, StripeServiceError
from .subscription_lifecycle import SubscriptionLifecycleManager
from .user_directory import UserDirectory
from .webhook_log import WebhookEventLog
from .webhook_processor import WebhookProcessor, WebhookReceipt

__all__ = [
    "ActivationOutcome",
    "ActivationService",
    "ChargeResult",
    "CheckoutService",
    "DynamoDBService",
    "FraudScorer",
    "LoggingNotificationDispatcher",
    "NotificationDispatcher",
    "OrderStore",
    "PaymentStateStore",
    "PaymentVerifier",
    "RecentAttemptsLookup",
    "RenewalCharger",
    "RenewalSweeper",
    "RevenueLedger",
    "SSMService",
    "SSMServiceError",
    "SecurityAuditLog",
    "SnsNotificationDispatcher",
    "StripeRenewalCharger",
    "StripeServiceError",
    "SubscriptionLifecycleManager",
    "SweepResult",
    "UserDirectory",
    "WebhookEventLog",
    "WebhookProcessor",
    "WebhookReceipt",
    "build_dispatcher",
    "get_dynamodb_service",
    "get_ssm_service",
    "reset_dynamodb_service",
]
