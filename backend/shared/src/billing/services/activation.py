"""Atomic payment-to-subscription activation.

Both the synchronous verifier and the webhook fallback activate through
``ActivationService.activate_order``. The order moving from ``created`` to
``paid`` is committed in the same DynamoDB transaction as the session,
subscription and ledger writes, and that conditional update is what keeps
the two paths from activating the same order twice.
"""

import datetime as dt
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from billing.models import (
    LedgerSource,
    LedgerStatus,
    LifecycleEventType,
    OrderStatus,
    PaymentOrder,
    PaymentStateStatus,
    RevenueLedgerEntry,
    Subscription,
)
from billing.utils.dates import utcnow
from billing.utils.logging import log_payment_operation

if TYPE_CHECKING:
    from .dynamodb import DynamoDBService
    from .order_store import OrderStore
    from .payment_state_store import PaymentStateStore
    from .revenue_ledger import RevenueLedger
    from .subscription_lifecycle import SubscriptionLifecycleManager

logger = logging.getLogger(__name__)

# A cancelled transaction whose order is still ``created`` lost a race on
# the subscription row; it is rebuilt from a fresh read this many times.
MAX_ATTEMPTS = 2


@dataclass(frozen=True)
class ActivationOutcome:
    """Result of one activation attempt."""

    activated: bool
    already_paid: bool = False
    subscription: Subscription | None = None
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.activated or self.already_paid


class ActivationService:
    """Commits order, session, subscription and ledger changes together."""

    def __init__(
        self,
        db: "DynamoDBService",
        orders: "OrderStore",
        states: "PaymentStateStore",
        lifecycle: "SubscriptionLifecycleManager",
        ledger: "RevenueLedger",
    ) -> None:
        """Initialize the activation service.

        Args:
            db: DynamoDB service instance (runs the transaction)
            orders: Order store
            states: Payment session store
            lifecycle: Subscription lifecycle manager
            ledger: Revenue ledger
        """
        self.db = db
        self.orders = orders
        self.states = states
        self.lifecycle = lifecycle
        self.ledger = ledger

    def activate_order(
        self,
        order: PaymentOrder,
        payment_id: str,
        source: LedgerSource,
        *,
        payment_method: str | None = None,
        now: dt.datetime | None = None,
    ) -> ActivationOutcome:
        """Mark ``order`` paid and activate the owner's subscription.

        Args:
            order: Order being paid, as last read
            payment_id: Gateway payment ID
            source: Path that confirmed the payment (ledger source)
            payment_method: Payment method reported by the gateway, used
                when the order carries no saved method
            now: Activation time, defaults to the current UTC time

        Returns:
            ActivationOutcome; ``already_paid`` is set when another path
            committed the activation first

        Raises:
            ClientError: If DynamoDB fails for a reason other than a
                cancelled transaction
        """
        now = now or utcnow()
        if order.status is OrderStatus.PAID:
            return self._already_paid(order)
        if order.status is not OrderStatus.CREATED:
            return ActivationOutcome(
                activated=False, error=f"Order is {order.status.value}"
            )

        for attempt in range(1, MAX_ATTEMPTS + 1):
            existing = self.lifecycle.get(order.user_id)
            subscription = self.lifecycle.build_activation(
                order.user_id,
                order.plan,
                order.amount,
                order.currency,
                payment_method=order.payment_method_id or payment_method,
                gateway_customer_id=order.gateway_customer_id,
                order_id=order.order_id,
                payment_id=payment_id,
                existing=existing,
                now=now,
            )
            items = self._transaction_items(order, payment_id, source, subscription, existing, now)

            if self.db.transact_write(items):
                log_payment_operation(
                    logger,
                    "activate_order",
                    order_id=order.order_id,
                    payment_id=payment_id,
                    user_id=order.user_id,
                    amount=order.amount,
                    status="activated",
                    source=source.value,
                )
                self.lifecycle.emit(
                    LifecycleEventType.ACTIVATED,
                    subscription,
                    {"amount": order.amount, "order_id": order.order_id},
                )
                self.lifecycle.emit(
                    LifecycleEventType.PAYMENT_CONFIRMED,
                    subscription,
                    {"payment_id": payment_id, "amount": order.amount},
                )
                return ActivationOutcome(activated=True, subscription=subscription)

            current = self.orders.get(order.order_id)
            if current is not None and current.status is OrderStatus.PAID:
                logger.info(
                    "Order %s was activated concurrently (payment %s)",
                    order.order_id,
                    current.payment_id,
                )
                return self._already_paid(current)
            if current is None or current.status is not OrderStatus.CREATED:
                break
            logger.warning(
                "Activation transaction for order %s cancelled (attempt %d/%d)",
                order.order_id,
                attempt,
                MAX_ATTEMPTS,
            )

        log_payment_operation(
            logger,
            "activate_order",
            order_id=order.order_id,
            payment_id=payment_id,
            user_id=order.user_id,
            error="activation transaction cancelled",
        )
        return ActivationOutcome(activated=False, error="Activation transaction cancelled")

    def _transaction_items(
        self,
        order: PaymentOrder,
        payment_id: str,
        source: LedgerSource,
        subscription: Subscription,
        existing: Subscription | None,
        now: dt.datetime,
    ) -> list[dict[str, Any]]:
        entry = RevenueLedgerEntry(
            payment_id=payment_id,
            order_id=order.order_id,
            user_id=order.user_id,
            amount=order.amount,
            currency=order.currency,
            plan=order.plan,
            status=LedgerStatus.CONFIRMED,
            source=source,
            created_at=now,
            confirmed_at=now,
        )
        items = [
            self.orders.mark_paid_transact_item(order.order_id, payment_id, now),
            self.lifecycle.activation_transact_item(subscription, existing),
            self.ledger.confirm_transact_item(entry, now),
        ]

        session = self.states.latest(order.order_id)
        if session is not None and session.status is PaymentStateStatus.PENDING:
            items.append(self.states.success_transact_item(session.session_id, payment_id, now))
        else:
            # The money was captured; a closed session does not block activation
            logger.warning(
                "Order %s has no pending payment session (latest: %s)",
                order.order_id,
                session.status.value if session else None,
            )
        return items

    def _already_paid(self, order: PaymentOrder) -> ActivationOutcome:
        return ActivationOutcome(
            activated=False,
            already_paid=True,
            subscription=self.lifecycle.get(order.user_id),
        )
