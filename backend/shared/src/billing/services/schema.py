"""DynamoDB table definitions for the billing engine.

Table names are unprefixed here; ``create_tables`` applies the
environment prefix. Used by the provisioning script and test fixtures.
"""

from typing import Any

ORDERS_TABLE = "payment-orders"
PAYMENT_STATES_TABLE = "payment-states"
SUBSCRIPTIONS_TABLE = "subscriptions"
WEBHOOK_EVENTS_TABLE = "webhook-events"
REVENUE_LEDGER_TABLE = "revenue-ledger"
SUBSCRIPTION_EVENTS_TABLE = "subscription-events"
SECURITY_AUDIT_TABLE = "security-audit"
USERS_TABLE = "users"


def _gsi(name: str, hash_key: str, range_key: str | None = None) -> dict[str, Any]:
    key_schema = [{"AttributeName": hash_key, "KeyType": "HASH"}]
    if range_key:
        key_schema.append({"AttributeName": range_key, "KeyType": "RANGE"})
    return {
        "IndexName": name,
        "KeySchema": key_schema,
        "Projection": {"ProjectionType": "ALL"},
    }


def _attrs(*names: str) -> list[dict[str, str]]:
    return [{"AttributeName": n, "AttributeType": "S"} for n in names]


TABLE_DEFINITIONS: dict[str, dict[str, Any]] = {
    ORDERS_TABLE: {
        "KeySchema": [{"AttributeName": "order_id", "KeyType": "HASH"}],
        "AttributeDefinitions": _attrs(
            "order_id", "user_id", "device_fingerprint", "created_at"
        ),
        "GlobalSecondaryIndexes": [
            _gsi("user_id-index", "user_id", "created_at"),
            _gsi("device_fingerprint-index", "device_fingerprint", "created_at"),
        ],
    },
    PAYMENT_STATES_TABLE: {
        "KeySchema": [{"AttributeName": "session_id", "KeyType": "HASH"}],
        "AttributeDefinitions": _attrs(
            "session_id", "order_id", "user_id", "created_at", "status", "expires_at"
        ),
        "GlobalSecondaryIndexes": [
            _gsi("order_id-index", "order_id", "created_at"),
            _gsi("user_id-index", "user_id", "created_at"),
            _gsi("status-index", "status", "expires_at"),
        ],
    },
    SUBSCRIPTIONS_TABLE: {
        "KeySchema": [{"AttributeName": "user_id", "KeyType": "HASH"}],
        "AttributeDefinitions": _attrs("user_id", "status", "end_date"),
        "GlobalSecondaryIndexes": [_gsi("status-index", "status", "end_date")],
    },
    WEBHOOK_EVENTS_TABLE: {
        "KeySchema": [{"AttributeName": "event_id", "KeyType": "HASH"}],
        "AttributeDefinitions": _attrs("event_id", "status", "received_at"),
        "GlobalSecondaryIndexes": [_gsi("status-index", "status", "received_at")],
    },
    REVENUE_LEDGER_TABLE: {
        "KeySchema": [{"AttributeName": "payment_id", "KeyType": "HASH"}],
        "AttributeDefinitions": _attrs("payment_id", "status", "created_at"),
        "GlobalSecondaryIndexes": [_gsi("status-index", "status", "created_at")],
    },
    SUBSCRIPTION_EVENTS_TABLE: {
        "KeySchema": [{"AttributeName": "event_id", "KeyType": "HASH"}],
        "AttributeDefinitions": _attrs("event_id", "user_id", "occurred_at"),
        "GlobalSecondaryIndexes": [_gsi("user_id-index", "user_id", "occurred_at")],
    },
    SECURITY_AUDIT_TABLE: {
        "KeySchema": [{"AttributeName": "audit_id", "KeyType": "HASH"}],
        "AttributeDefinitions": _attrs("audit_id"),
    },
    USERS_TABLE: {
        "KeySchema": [{"AttributeName": "user_id", "KeyType": "HASH"}],
        "AttributeDefinitions": _attrs("user_id"),
    },
}


def create_tables(client: Any, prefix: str) -> list[str]:
    """Create every billing table that does not exist yet.

    Args:
        client: boto3 DynamoDB client
        prefix: Table name prefix (e.g. ``billing-dev``)

    Returns:
        Full names of the tables that were created
    """
    existing = set(client.list_tables().get("TableNames", []))
    created: list[str] = []
    for table, definition in TABLE_DEFINITIONS.items():
        name = f"{prefix}-{table}"
        if name in existing:
            continue
        client.create_table(
            TableName=name,
            BillingMode="PAY_PER_REQUEST",
            **definition,
        )
        created.append(name)
    return created
