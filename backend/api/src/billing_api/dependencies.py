"""FastAPI dependency injection providers for billing services.

This module is the composition root: it builds every service with its
collaborators and caches instances with @lru_cache. Secrets are resolved
when the first service that needs them is built, so a missing secret
fails the request (ConfigurationError) rather than the import.

Service Dependency Graph:
    DynamoDBService (singleton via get_dynamodb_service)
        ├── OrderStore ── FraudScorer
        ├── PaymentStateStore
        ├── RevenueLedger
        ├── WebhookEventLog
        ├── SubscriptionLifecycleManager ── NotificationDispatcher
        └── ActivationService
                ├── PaymentVerifier (+ gateway key secret)
                └── WebhookProcessor (+ webhook secret)
    RenewalSweeper ── StripeRenewalCharger (+ Stripe secret key)

Testing:
    Use reset_services() to clear cached instances between tests.
"""

import datetime as dt
from functools import lru_cache

from billing.config import Settings, get_secret_store, get_settings
from billing.services.activation import ActivationService
from billing.services.audit import SecurityAuditLog
from billing.services.checkout import CheckoutService
from billing.services.dynamodb import DynamoDBService, get_dynamodb_service
from billing.services.fraud import FraudScorer
from billing.services.notifications import NotificationDispatcher, build_dispatcher
from billing.services.order_store import OrderStore
from billing.services.payment_state_store import PaymentStateStore
from billing.services.payment_verifier import PaymentVerifier
from billing.services.renewal import RenewalCharger, RenewalSweeper
from billing.services.revenue_ledger import RevenueLedger
from billing.services.stripe_service import StripeRenewalCharger
from billing.services.subscription_lifecycle import SubscriptionLifecycleManager
from billing.services.user_directory import UserDirectory
from billing.services.webhook_log import WebhookEventLog
from billing.services.webhook_processor import WebhookProcessor


def get_app_settings() -> Settings:
    return get_settings()


def get_db() -> DynamoDBService:
    return get_dynamodb_service(get_settings().environment)


@lru_cache
def get_order_store() -> OrderStore:
    return OrderStore(db=get_db())


@lru_cache
def get_payment_state_store() -> PaymentStateStore:
    return PaymentStateStore(
        db=get_db(),
        session_ttl=dt.timedelta(minutes=get_settings().payment_session_ttl_minutes),
    )


@lru_cache
def get_revenue_ledger() -> RevenueLedger:
    return RevenueLedger(db=get_db())


@lru_cache
def get_webhook_event_log() -> WebhookEventLog:
    return WebhookEventLog(db=get_db())


@lru_cache
def get_notification_dispatcher() -> NotificationDispatcher:
    return build_dispatcher(get_settings().notification_topic_arn)


@lru_cache
def get_lifecycle_manager() -> SubscriptionLifecycleManager:
    """Get cached SubscriptionLifecycleManager instance."""
    return SubscriptionLifecycleManager(
        db=get_db(),
        dispatcher=get_notification_dispatcher(),
        default_trial_days=get_settings().default_trial_days,
    )


@lru_cache
def get_activation_service() -> ActivationService:
    return ActivationService(
        db=get_db(),
        orders=get_order_store(),
        states=get_payment_state_store(),
        lifecycle=get_lifecycle_manager(),
        ledger=get_revenue_ledger(),
    )


@lru_cache
def get_checkout_service() -> CheckoutService:
    return CheckoutService(
        orders=get_order_store(),
        states=get_payment_state_store(),
        plan_catalog=get_settings().plan_catalog,
    )


@lru_cache
def get_security_audit_log() -> SecurityAuditLog:
    return SecurityAuditLog(db=get_db())


@lru_cache
def get_payment_verifier() -> PaymentVerifier:
    """Get cached PaymentVerifier instance.

    Raises:
        ConfigurationError: If the gateway key secret is not configured
    """
    db = get_db()
    return PaymentVerifier(
        key_secret=get_secret_store().gateway_key_secret,
        fraud=FraudScorer(attempts=get_order_store()),
        users=UserDirectory(db),
        orders=get_order_store(),
        activation=get_activation_service(),
        audit=get_security_audit_log(),
    )


@lru_cache
def get_webhook_processor() -> WebhookProcessor:
    """Get cached WebhookProcessor instance.

    Raises:
        ConfigurationError: If the webhook secret is not configured
    """
    return WebhookProcessor(
        webhook_secret=get_secret_store().webhook_secret,
        events=get_webhook_event_log(),
        orders=get_order_store(),
        states=get_payment_state_store(),
        ledger=get_revenue_ledger(),
        activation=get_activation_service(),
        lifecycle=get_lifecycle_manager(),
    )


@lru_cache
def get_renewal_charger() -> RenewalCharger:
    return StripeRenewalCharger(get_secret_store().stripe_secret_key)


@lru_cache
def get_renewal_sweeper() -> RenewalSweeper:
    """Get cached RenewalSweeper instance.

    Raises:
        ConfigurationError: If the Stripe secret key is not configured
    """
    return RenewalSweeper(
        lifecycle=get_lifecycle_manager(),
        ledger=get_revenue_ledger(),
        charger=get_renewal_charger(),
        states=get_payment_state_store(),
        audit=get_security_audit_log(),
    )


def get_renewal_trigger_token() -> str:
    return get_secret_store().renewal_trigger_token


def reset_services() -> None:
    """Clear all cached service instances, settings and secrets.

    Also resets the underlying DynamoDB singleton.

    Example:
        @pytest.fixture(autouse=True)
        def reset_state():
            yield
            reset_services()
    """
    from billing.services.dynamodb import reset_dynamodb_service

    for provider in (
        get_order_store,
        get_payment_state_store,
        get_revenue_ledger,
        get_webhook_event_log,
        get_notification_dispatcher,
        get_lifecycle_manager,
        get_activation_service,
        get_checkout_service,
        get_security_audit_log,
        get_payment_verifier,
        get_webhook_processor,
        get_renewal_charger,
        get_renewal_sweeper,
        get_settings,
        get_secret_store,
    ):
        provider.cache_clear()

    reset_dynamodb_service()
