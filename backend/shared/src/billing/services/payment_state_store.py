"""Persistence and state transitions for client-facing payment sessions.

Each order has one or more sessions; only the newest one is current.
Retrying opens a new session instead of mutating the order. A session
leaves ``pending`` at most once, and ``expired`` is reachable only from
``pending`` after ``expires_at`` has passed. Expiry is applied lazily on
read as well as in batch by ``expire_stale``.
"""

import datetime as dt
import logging
import uuid
from typing import TYPE_CHECKING, Any

from boto3.dynamodb.conditions import Key

from billing.models import PaymentOrder, PaymentState, PaymentStateStatus
from billing.services.schema import PAYMENT_STATES_TABLE
from billing.utils.dates import from_iso, to_iso, utcnow

if TYPE_CHECKING:
    from .dynamodb import DynamoDBService

logger = logging.getLogger(__name__)

DEFAULT_SESSION_TTL = dt.timedelta(minutes=10)

RETRYABLE_STATUSES = frozenset(
    {
        PaymentStateStatus.FAILED,
        PaymentStateStatus.EXPIRED,
        PaymentStateStatus.CANCELLED,
    }
)


class PaymentStateStore:
    """Store for PaymentState sessions."""

    TABLE = PAYMENT_STATES_TABLE

    def __init__(
        self,
        db: "DynamoDBService",
        session_ttl: dt.timedelta = DEFAULT_SESSION_TTL,
    ) -> None:
        """Initialize payment state store.

        Args:
            db: DynamoDB service instance
            session_ttl: How long a new session stays pending
        """
        self.db = db
        self.session_ttl = session_ttl

    def _generate_session_id(self) -> str:
        return f"PS-{uuid.uuid4().hex[:16].upper()}"

    def create(self, state: PaymentState) -> bool:
        """Persist a new session.

        Returns:
            True if created, False if the session ID already exists
        """
        return self.db.put_item(
            self.TABLE,
            self._state_to_item(state),
            condition_expression="attribute_not_exists(session_id)",
        )

    def open_session(
        self, order: PaymentOrder, now: dt.datetime | None = None
    ) -> PaymentState:
        """Create a new pending session for ``order``.

        Args:
            order: Canonical order the session pays for
            now: Creation time, defaults to the current UTC time

        Returns:
            The new pending session
        """
        now = now or utcnow()
        state = PaymentState(
            session_id=self._generate_session_id(),
            order_id=order.order_id,
            user_id=order.user_id,
            plan=order.plan,
            amount=order.amount,
            currency=order.currency,
            status=PaymentStateStatus.PENDING,
            created_at=now,
            expires_at=now + self.session_ttl,
        )
        self.create(state)
        logger.info("Opened payment session %s for order %s", state.session_id, order.order_id)
        return state

    def get_session(self, session_id: str) -> PaymentState | None:
        """Get a session by its own ID, without applying expiry."""
        item = self.db.get_item(self.TABLE, {"session_id": session_id}, consistent_read=True)
        return self._item_to_state(item) if item else None

    def latest(self, order_id: str) -> PaymentState | None:
        """Newest session for an order, without applying expiry."""
        items = self.db.query_by_gsi(
            self.TABLE,
            "order_id-index",
            "order_id",
            order_id,
            limit=1,
            scan_index_forward=False,
        )
        if not items:
            return None
        # Re-read the base table for a consistent view of the status
        return self.get_session(items[0]["session_id"])

    def get(self, order_id: str, now: dt.datetime | None = None) -> PaymentState | None:
        """Current session for an order, lazily expiring it if overdue.

        Args:
            order_id: Order whose current session to read
            now: Evaluation time, defaults to the current UTC time

        Returns:
            The current session, or None if the order has no sessions
        """
        state = self.latest(order_id)
        if state is None:
            return None
        return self._apply_expiry(state, now or utcnow())

    def transition(
        self,
        order_id: str,
        new_status: PaymentStateStatus,
        fields: dict[str, Any] | None = None,
        now: dt.datetime | None = None,
    ) -> PaymentState | None:
        """Move the current session of an order out of ``pending``.

        Transitions out of a terminal status, back into ``pending``, or to
        ``expired`` before the expiry time are rejected and return None.

        Args:
            order_id: Order whose current session to update
            new_status: Target status
            fields: Extra attributes to set (e.g. payment_id, error_message)
            now: Transition time, defaults to the current UTC time

        Returns:
            The updated session, or None if the transition was rejected
        """
        state = self.latest(order_id)
        if state is None:
            logger.warning("No payment session for order %s", order_id)
            return None
        return self.transition_session(state.session_id, new_status, fields, now)

    def transition_session(
        self,
        session_id: str,
        new_status: PaymentStateStatus,
        fields: dict[str, Any] | None = None,
        now: dt.datetime | None = None,
    ) -> PaymentState | None:
        """Guarded transition of a specific session; see ``transition``."""
        if new_status is PaymentStateStatus.PENDING:
            logger.warning("Rejected transition of session %s back to pending", session_id)
            return None

        now = now or utcnow()
        names = {"#status": "status"}
        values: dict[str, Any] = {
            ":status": new_status.value,
            ":pending": PaymentStateStatus.PENDING.value,
            ":now": to_iso(now),
        }
        assignments = ["#status = :status", "updated_at = :now"]
        for i, (name, value) in enumerate((fields or {}).items()):
            names[f"#f{i}"] = name
            values[f":f{i}"] = to_iso(value) if isinstance(value, dt.datetime) else value
            assignments.append(f"#f{i} = :f{i}")

        condition = "attribute_exists(session_id) AND #status = :pending"
        if new_status is PaymentStateStatus.EXPIRED:
            condition += " AND expires_at <= :now"

        attrs = self.db.update_item(
            self.TABLE,
            {"session_id": session_id},
            "SET " + ", ".join(assignments),
            values,
            names,
            condition_expression=condition,
        )
        if attrs is None:
            logger.info(
                "Rejected payment session transition %s -> %s",
                session_id,
                new_status.value,
            )
            return None
        return self._item_to_state(attrs)

    def success_transact_item(
        self, session_id: str, payment_id: str, now: dt.datetime
    ) -> dict[str, Any]:
        """Transaction item moving a pending session to success."""
        return {
            "Update": {
                "TableName": self.db.table_name(self.TABLE),
                "Key": {"session_id": {"S": session_id}},
                "UpdateExpression": (
                    "SET #status = :success, payment_id = :payment_id, updated_at = :now"
                ),
                "ConditionExpression": "#status = :pending",
                "ExpressionAttributeNames": {"#status": "status"},
                "ExpressionAttributeValues": {
                    ":success": {"S": PaymentStateStatus.SUCCESS.value},
                    ":pending": {"S": PaymentStateStatus.PENDING.value},
                    ":payment_id": {"S": payment_id},
                    ":now": {"S": to_iso(now)},
                },
            }
        }

    def retry(
        self, order: PaymentOrder, now: dt.datetime | None = None
    ) -> PaymentState | None:
        """Open a new session for an order whose current session ended unpaid.

        A still-pending, unexpired session is returned as is.

        Returns:
            The session to pay with, or None if the order's payment
            already succeeded
        """
        now = now or utcnow()
        current = self.get(order.order_id, now)
        if current is None or current.status in RETRYABLE_STATUSES:
            return self.open_session(order, now)
        if current.status is PaymentStateStatus.PENDING:
            return current
        logger.info("Order %s already has a successful payment session", order.order_id)
        return None

    def cancel(self, order_id: str, now: dt.datetime | None = None) -> PaymentState | None:
        """Cancel the current pending session of an order."""
        return self.transition(order_id, PaymentStateStatus.CANCELLED, now=now)

    def history(self, user_id: str, limit: int | None = None) -> list[PaymentState]:
        """All sessions of a user, newest first, with expiry applied."""
        now = utcnow()
        items = self.db.query_by_gsi(
            self.TABLE,
            "user_id-index",
            "user_id",
            user_id,
            limit=limit,
            scan_index_forward=False,
        )
        return [self._apply_expiry(self._item_to_state(item), now) for item in items]

    def pending_for_user(self, user_id: str) -> list[PaymentState]:
        """Sessions of a user that are still pending and unexpired."""
        return [s for s in self.history(user_id) if s.status is PaymentStateStatus.PENDING]

    def expire_stale(self, now: dt.datetime | None = None) -> int:
        """Expire every overdue pending session.

        Returns:
            Number of sessions moved to ``expired``
        """
        now = now or utcnow()
        items = self.db.query_by_gsi(
            self.TABLE,
            "status-index",
            "status",
            PaymentStateStatus.PENDING.value,
            sort_key_condition=Key("expires_at").lte(to_iso(now)),
        )
        expired = 0
        for item in items:
            if self.transition_session(
                item["session_id"], PaymentStateStatus.EXPIRED, now=now
            ):
                expired += 1
        if expired:
            logger.info("Expired %d stale payment sessions", expired)
        return expired

    def _apply_expiry(self, state: PaymentState, now: dt.datetime) -> PaymentState:
        if not state.is_past_expiry(now):
            return state
        updated = self.transition_session(
            state.session_id, PaymentStateStatus.EXPIRED, now=now
        )
        if updated is not None:
            return updated
        # Lost a race with another transition; report what is stored now
        return self.get_session(state.session_id) or state

    def _state_to_item(self, state: PaymentState) -> dict[str, Any]:
        """Convert PaymentState model to DynamoDB item."""
        item: dict[str, Any] = {
            "session_id": state.session_id,
            "order_id": state.order_id,
            "user_id": state.user_id,
            "plan": state.plan,
            "amount": state.amount,
            "currency": state.currency,
            "status": state.status.value,
            "created_at": to_iso(state.created_at),
            "expires_at": to_iso(state.expires_at),
        }
        if state.updated_at:
            item["updated_at"] = to_iso(state.updated_at)
        if state.payment_id:
            item["payment_id"] = state.payment_id
        if state.error_message:
            item["error_message"] = state.error_message
        return item

    def _item_to_state(self, item: dict[str, Any]) -> PaymentState:
        """Convert DynamoDB item to PaymentState model."""
        return PaymentState(
            session_id=item["session_id"],
            order_id=item["order_id"],
            user_id=item["user_id"],
            plan=item["plan"],
            amount=int(item["amount"]),
            currency=item.get("currency", "INR"),
            status=PaymentStateStatus(item["status"]),
            created_at=from_iso(item["created_at"]) or utcnow(),
            expires_at=from_iso(item["expires_at"]) or utcnow(),
            updated_at=from_iso(item.get("updated_at")),
            payment_id=item.get("payment_id"),
            error_message=item.get("error_message"),
        )
