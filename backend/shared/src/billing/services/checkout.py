"""Checkout: canonical order creation for a plan purchase."""

import datetime as dt
import logging
from typing import TYPE_CHECKING

from billing.models import BillingError, ErrorCode, OrderStatus, PaymentOrder, PaymentState
from billing.utils.dates import utcnow
from billing.utils.logging import log_payment_operation

if TYPE_CHECKING:
    from billing.config import PlanPrice

    from .order_store import OrderStore
    from .payment_state_store import PaymentStateStore

logger = logging.getLogger(__name__)


class CheckoutService:
    """Creates the PaymentOrder and its first PaymentState session."""

    def __init__(
        self,
        orders: "OrderStore",
        states: "PaymentStateStore",
        plan_catalog: dict[str, "PlanPrice"],
    ) -> None:
        """Initialize the checkout service.

        Args:
            orders: Order store
            states: Payment session store
            plan_catalog: Plan name to price of one billing period
        """
        self.orders = orders
        self.states = states
        self.plan_catalog = plan_catalog

    def create_order(
        self,
        user_id: str,
        plan: str,
        order_id: str,
        currency: str | None = None,
        device_fingerprint: str | None = None,
        gateway_customer_id: str | None = None,
        payment_method_id: str | None = None,
        now: dt.datetime | None = None,
    ) -> tuple[PaymentOrder, PaymentState]:
        """Persist a new order and open its first payment session.

        The amount always comes from the plan catalog, never from the client.

        Args:
            user_id: Paying user
            plan: Plan name from the catalog
            order_id: Order ID assigned by the gateway
            currency: Must match the plan's currency when given
            device_fingerprint: Client fingerprint, used by fraud scoring
            gateway_customer_id: Gateway customer reference for renewals
            payment_method_id: Saved payment method charged on renewal
            now: Creation time, defaults to the current UTC time

        Returns:
            Tuple of (order, session)

        Raises:
            BillingError: INVALID_REQUEST for an unknown plan, a currency
                mismatch or a duplicate order ID
        """
        price = self.plan_catalog.get(plan)
        if price is None:
            raise BillingError(ErrorCode.INVALID_REQUEST, {"plan": f"Unknown plan: {plan}"})
        if currency and currency.upper() != price.currency:
            raise BillingError(
                ErrorCode.INVALID_REQUEST,
                {"currency": f"Plan {plan} is billed in {price.currency}"},
            )

        now = now or utcnow()
        order = PaymentOrder(
            order_id=order_id,
            user_id=user_id,
            plan=plan,
            amount=price.amount,
            currency=price.currency,
            status=OrderStatus.CREATED,
            created_at=now,
            device_fingerprint=device_fingerprint,
            gateway_customer_id=gateway_customer_id,
            payment_method_id=payment_method_id,
        )
        if not self.orders.create(order):
            raise BillingError(ErrorCode.INVALID_REQUEST, {"order_id": "Order already exists"})

        session = self.states.open_session(order, now)
        log_payment_operation(
            logger,
            "create_order",
            order_id=order_id,
            user_id=user_id,
            amount=price.amount,
            status=OrderStatus.CREATED.value,
            plan=plan,
        )
        return order, session
