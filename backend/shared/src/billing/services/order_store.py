"""Persistence and state transitions for canonical payment orders."""

import datetime as dt
import logging
from typing import TYPE_CHECKING, Any

from boto3.dynamodb.conditions import Attr, Key

from billing.models import OrderStatus, PaymentOrder
from billing.services.schema import ORDERS_TABLE
from billing.utils.dates import from_iso, to_iso, utcnow

if TYPE_CHECKING:
    from .dynamodb import DynamoDBService

logger = logging.getLogger(__name__)

# Required predecessor status for each target status
ORDER_TRANSITIONS: dict[OrderStatus, OrderStatus] = {
    OrderStatus.PAID: OrderStatus.CREATED,
    OrderStatus.REFUNDED: OrderStatus.PAID,
}


class OrderStore:
    """Store for PaymentOrder records.

    Also serves as the fraud scorer's view of recent payment attempts,
    since every checkout attempt creates an order.
    """

    TABLE = ORDERS_TABLE

    def __init__(self, db: "DynamoDBService") -> None:
        """Initialize order store.

        Args:
            db: DynamoDB service instance
        """
        self.db = db

    def create(self, order: PaymentOrder) -> bool:
        """Persist a new order.

        Args:
            order: Order to store

        Returns:
            True if created, False if an order with this ID already exists
        """
        created = self.db.put_item(
            self.TABLE,
            self._order_to_item(order),
            condition_expression="attribute_not_exists(order_id)",
        )
        if not created:
            logger.warning("Order %s already exists", order.order_id)
        return created

    def get(self, order_id: str) -> PaymentOrder | None:
        """Get an order by ID."""
        item = self.db.get_item(self.TABLE, {"order_id": order_id}, consistent_read=True)
        return self._item_to_order(item) if item else None

    def get_for_user(self, order_id: str, user_id: str) -> PaymentOrder | None:
        """Get an order only if it belongs to ``user_id``."""
        order = self.get(order_id)
        if order is None or order.user_id != user_id:
            return None
        return order

    def list_for_user(self, user_id: str, limit: int | None = None) -> list[PaymentOrder]:
        """Orders for a user, newest first."""
        items = self.db.query_by_gsi(
            self.TABLE,
            "user_id-index",
            "user_id",
            user_id,
            limit=limit,
            scan_index_forward=False,
        )
        return [self._item_to_order(item) for item in items]

    def transition(
        self,
        order_id: str,
        new_status: OrderStatus,
        fields: dict[str, Any] | None = None,
    ) -> PaymentOrder | None:
        """Move an order to ``new_status`` if its current status allows it.

        Args:
            order_id: Order to update
            new_status: Target status
            fields: Extra attributes to set in the same write

        Returns:
            The updated order, or None if the order is missing or the
            transition is not allowed from its current status
        """
        required = ORDER_TRANSITIONS.get(new_status)
        if required is None:
            logger.warning("No transition into order status %s", new_status.value)
            return None

        names = {"#status": "status"}
        values: dict[str, Any] = {":status": new_status.value, ":from": required.value}
        assignments = ["#status = :status"]
        for i, (name, value) in enumerate((fields or {}).items()):
            names[f"#f{i}"] = name
            values[f":f{i}"] = to_iso(value) if isinstance(value, dt.datetime) else value
            assignments.append(f"#f{i} = :f{i}")

        attrs = self.db.update_item(
            self.TABLE,
            {"order_id": order_id},
            "SET " + ", ".join(assignments),
            values,
            names,
            condition_expression="attribute_exists(order_id) AND #status = :from",
        )
        if attrs is None:
            logger.info(
                "Rejected order transition %s -> %s", order_id, new_status.value
            )
            return None
        return self._item_to_order(attrs)

    def mark_paid_transact_item(
        self, order_id: str, payment_id: str, now: dt.datetime
    ) -> dict[str, Any]:
        """Transaction item moving an order from created to paid.

        The ``created`` condition makes concurrent activations of the same
        order mutually exclusive.
        """
        return {
            "Update": {
                "TableName": self.db.table_name(self.TABLE),
                "Key": {"order_id": {"S": order_id}},
                "UpdateExpression": (
                    "SET #status = :paid, payment_id = :payment_id, paid_at = :now"
                ),
                "ConditionExpression": "#status = :created",
                "ExpressionAttributeNames": {"#status": "status"},
                "ExpressionAttributeValues": {
                    ":paid": {"S": OrderStatus.PAID.value},
                    ":created": {"S": OrderStatus.CREATED.value},
                    ":payment_id": {"S": payment_id},
                    ":now": {"S": to_iso(now)},
                },
            }
        }

    # Recent attempt lookups used by the fraud scorer

    def count_attempts_since(self, user_id: str, since: dt.datetime) -> int:
        items = self.db.query_by_gsi(
            self.TABLE,
            "user_id-index",
            "user_id",
            user_id,
            sort_key_condition=Key("created_at").gte(to_iso(since)),
        )
        return len(items)

    def fingerprint_used_by_other_user(
        self, fingerprint: str, user_id: str, since: dt.datetime
    ) -> bool:
        items = self.db.query_by_gsi(
            self.TABLE,
            "device_fingerprint-index",
            "device_fingerprint",
            fingerprint,
            sort_key_condition=Key("created_at").gte(to_iso(since)),
            filter_expression=Attr("user_id").ne(user_id),
            limit=1,
        )
        return bool(items)

    def _order_to_item(self, order: PaymentOrder) -> dict[str, Any]:
        """Convert PaymentOrder model to DynamoDB item."""
        item: dict[str, Any] = {
            "order_id": order.order_id,
            "user_id": order.user_id,
            "plan": order.plan,
            "amount": order.amount,
            "currency": order.currency,
            "status": order.status.value,
            "created_at": to_iso(order.created_at),
        }
        if order.paid_at:
            item["paid_at"] = to_iso(order.paid_at)
        if order.payment_id:
            item["payment_id"] = order.payment_id
        if order.device_fingerprint:
            item["device_fingerprint"] = order.device_fingerprint
        if order.gateway_customer_id:
            item["gateway_customer_id"] = order.gateway_customer_id
        if order.payment_method_id:
            item["payment_method_id"] = order.payment_method_id
        return item

    def _item_to_order(self, item: dict[str, Any]) -> PaymentOrder:
        """Convert DynamoDB item to PaymentOrder model."""
        return PaymentOrder(
            order_id=item["order_id"],
            user_id=item["user_id"],
            plan=item["plan"],
            amount=int(item["amount"]),
            currency=item.get("currency", "INR"),
            status=OrderStatus(item["status"]),
            created_at=from_iso(item["created_at"]) or utcnow(),
            paid_at=from_iso(item.get("paid_at")),
            payment_id=item.get("payment_id"),
            device_fingerprint=item.get("device_fingerprint"),
            gateway_customer_id=item.get("gateway_customer_id"),
            payment_method_id=item.get("payment_method_id"),
        )
