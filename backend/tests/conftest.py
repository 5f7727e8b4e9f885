"""Pytest configuration and fixtures for the billing engine tests.

This module provides reusable fixtures for testing:
- DynamoDB mocking with moto (all billing tables created from the schema)
- Store and service instances wired the way the API wires them
- Sample data factories (users, orders with an open payment session)
"""

import os
import datetime as dt
from typing import Any, Callable, Generator

import boto3
import pytest
from moto import mock_aws

# === Environment Setup ===

# Set environment variables for testing before imports
os.environ.setdefault("AWS_DEFAULT_REGION", "ap-south-1")
os.environ.setdefault("DYNAMODB_TABLE_PREFIX", "test-billing")
os.environ.setdefault("ENVIRONMENT", "test")

# Only set fake credentials for moto if no real credentials are present
if not os.environ.get("AWS_PROFILE") and not os.environ.get("AWS_ACCESS_KEY_ID"):
    os.environ.setdefault("AWS_ACCESS_KEY_ID", "testing")
    os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "testing")

# Secrets resolve from the environment before SSM
os.environ.setdefault("GATEWAY_KEY_SECRET", "test_gateway_key_secret")
os.environ.setdefault("GATEWAY_WEBHOOK_SECRET", "test_gateway_webhook_secret")
os.environ.setdefault("RENEWAL_TRIGGER_TOKEN", "test_renewal_trigger_token")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_billing123")

from billing.config import get_secret_store, get_settings  # noqa: E402
from billing.models import PaymentOrder, PaymentState  # noqa: E402
from billing.services.activation import ActivationService  # noqa: E402
from billing.services.audit import SecurityAuditLog  # noqa: E402
from billing.services.checkout import CheckoutService  # noqa: E402
from billing.services.dynamodb import DynamoDBService, reset_dynamodb_service  # noqa: E402
from billing.services.fraud import FraudScorer  # noqa: E402
from billing.services.notifications import LoggingNotificationDispatcher  # noqa: E402
from billing.services.order_store import OrderStore  # noqa: E402
from billing.services.payment_state_store import PaymentStateStore  # noqa: E402
from billing.services.payment_verifier import PaymentVerifier  # noqa: E402
from billing.services.revenue_ledger import RevenueLedger  # noqa: E402
from billing.services.schema import USERS_TABLE, create_tables  # noqa: E402
from billing.services.subscription_lifecycle import SubscriptionLifecycleManager  # noqa: E402
from billing.services.user_directory import UserDirectory  # noqa: E402
from billing.services.webhook_log import WebhookEventLog  # noqa: E402
from billing.services.webhook_processor import WebhookProcessor  # noqa: E402
from billing.utils.dates import utcnow  # noqa: E402

TABLE_PREFIX = os.environ["DYNAMODB_TABLE_PREFIX"]
REGION = os.environ["AWS_DEFAULT_REGION"]

TEST_USER_ID = "5b0c2d4e-8f1a-4c3b-9d2e-7a6f5e4d3c2b"
TEST_USER_EMAIL = "priya.sharma@example.com"
TEST_OTHER_USER_ID = "9e8d7c6b-5a4f-4e3d-8c2b-1a0f9e8d7c6b"


# === Singleton Reset ===


@pytest.fixture(autouse=True)
def reset_singletons() -> Generator[None, None, None]:
    """Reset the DynamoDB singleton and cached settings around each test.

    Ensures tests using mock_aws get a fresh service instance inside the
    mock context rather than one created by a previous test.
    """
    reset_dynamodb_service()
    get_settings.cache_clear()
    get_secret_store.cache_clear()
    yield
    reset_dynamodb_service()
    get_settings.cache_clear()
    get_secret_store.cache_clear()


# === DynamoDB Fixtures ===


@pytest.fixture
def dynamodb_client() -> Generator[Any, None, None]:
    """Mocked DynamoDB client with every billing table created."""
    with mock_aws():
        client = boto3.client("dynamodb", region_name=REGION)
        create_tables(client, TABLE_PREFIX)
        yield client


@pytest.fixture
def db(dynamodb_client: Any) -> DynamoDBService:
    """DynamoDBService bound to the mocked tables."""
    return DynamoDBService(environment="test")


@pytest.fixture
def table(dynamodb_client: Any) -> Callable[[str], Any]:
    """Return a boto3 Table resource for an unprefixed table name."""
    resource = boto3.resource("dynamodb", region_name=REGION)

    def _table(name: str) -> Any:
        return resource.Table(f"{TABLE_PREFIX}-{name}")

    return _table


# === Service Fixtures ===


@pytest.fixture
def now() -> dt.datetime:
    return utcnow()


@pytest.fixture
def dispatcher() -> LoggingNotificationDispatcher:
    return LoggingNotificationDispatcher()


@pytest.fixture
def orders(db: DynamoDBService) -> OrderStore:
    return OrderStore(db)


@pytest.fixture
def states(db: DynamoDBService) -> PaymentStateStore:
    return PaymentStateStore(db)


@pytest.fixture
def ledger(db: DynamoDBService) -> RevenueLedger:
    return RevenueLedger(db)


@pytest.fixture
def events(db: DynamoDBService) -> WebhookEventLog:
    return WebhookEventLog(db)


@pytest.fixture
def lifecycle(
    db: DynamoDBService, dispatcher: LoggingNotificationDispatcher
) -> SubscriptionLifecycleManager:
    return SubscriptionLifecycleManager(db, dispatcher)


@pytest.fixture
def activation(
    db: DynamoDBService,
    orders: OrderStore,
    states: PaymentStateStore,
    lifecycle: SubscriptionLifecycleManager,
    ledger: RevenueLedger,
) -> ActivationService:
    return ActivationService(db, orders, states, lifecycle, ledger)


@pytest.fixture
def checkout(orders: OrderStore, states: PaymentStateStore) -> CheckoutService:
    return CheckoutService(orders, states, get_settings().plan_catalog)


@pytest.fixture
def verifier(
    db: DynamoDBService,
    orders: OrderStore,
    activation: ActivationService,
) -> PaymentVerifier:
    return PaymentVerifier(
        key_secret=os.environ["GATEWAY_KEY_SECRET"],
        fraud=FraudScorer(attempts=orders),
        users=UserDirectory(db),
        orders=orders,
        activation=activation,
        audit=SecurityAuditLog(db),
    )


@pytest.fixture
def processor(
    events: WebhookEventLog,
    orders: OrderStore,
    states: PaymentStateStore,
    ledger: RevenueLedger,
    activation: ActivationService,
    lifecycle: SubscriptionLifecycleManager,
) -> WebhookProcessor:
    return WebhookProcessor(
        webhook_secret=os.environ["GATEWAY_WEBHOOK_SECRET"],
        events=events,
        orders=orders,
        states=states,
        ledger=ledger,
        activation=activation,
        lifecycle=lifecycle,
    )


# === Sample Data Fixtures ===


@pytest.fixture
def seed_user(table: Callable[[str], Any]) -> Callable[..., dict[str, Any]]:
    """Insert an account into the users table."""

    def _seed(user_id: str = TEST_USER_ID, email: str = TEST_USER_EMAIL) -> dict[str, Any]:
        item = {"user_id": user_id, "email": email, "name": "Test User"}
        table(USERS_TABLE).put_item(Item=item)
        return item

    return _seed


@pytest.fixture
def make_order(
    checkout: CheckoutService,
) -> Callable[..., tuple[PaymentOrder, PaymentState]]:
    """Create an order for the pro plan with its first payment session."""
    counter = {"n": 0}

    def _make(
        user_id: str = TEST_USER_ID,
        order_id: str | None = None,
        created_at: dt.datetime | None = None,
        **kwargs: Any,
    ) -> tuple[PaymentOrder, PaymentState]:
        counter["n"] += 1
        return checkout.create_order(
            user_id=user_id,
            plan="pro",
            order_id=order_id or f"order_TEST{counter['n']:04d}",
            now=created_at,
            **kwargs,
        )

    return _make


# === API Fixtures ===


@pytest.fixture
def api_client(dynamodb_client: Any) -> Generator[Any, None, None]:
    """TestClient for the billing API, wired to the mocked tables."""
    from fastapi.testclient import TestClient

    from billing_api.dependencies import reset_services
    from billing_api.main import app

    reset_services()
    with TestClient(app) as client:
        yield client
    reset_services()


@pytest.fixture
def auth_headers() -> dict[str, str]:
    """Bearer token accepted by the cron and admin endpoints."""
    return {"Authorization": f"Bearer {os.environ['RENEWAL_TRIGGER_TOKEN']}"}
