"""Stripe-backed renewal charges.

Uses the v8+ StripeClient pattern. Renewals are off-session PaymentIntents
against the customer's saved payment method, confirmed immediately. The
idempotency key is derived from the subscription and the period start,
so a sweep that re-runs after a crash never charges the same period twice.
"""

import datetime as dt
import logging

import stripe
from stripe import StripeClient

from billing.models import Subscription

from .renewal import ChargeResult, RenewalCharger

logger = logging.getLogger(__name__)

SAVED_METHOD_PREFIX = "pm_"


class StripeServiceError(Exception):
    """Raised when a Stripe operation fails for a reason other than a decline."""

    def __init__(self, message: str, stripe_error_code: str | None = None) -> None:
        """Initialize with message and optional Stripe error code.

        Args:
            message: Human-readable error message.
            stripe_error_code: Stripe-specific error code if available.
        """
        super().__init__(message)
        self.stripe_error_code = stripe_error_code


def renewal_idempotency_key(subscription: Subscription, period_start: dt.datetime) -> str:
    return f"renewal_{subscription.subscription_id}_{period_start.strftime('%Y%m%dT%H%M%S')}"


class StripeRenewalCharger(RenewalCharger):
    """Charges renewals through Stripe PaymentIntents.

    Usage:
        charger = StripeRenewalCharger(secret_store.stripe_secret_key)
        result = charger.charge(subscription, subscription.end_date)
    """

    def __init__(self, secret_key: str, client: StripeClient | None = None) -> None:
        """Initialize the charger.

        Args:
            secret_key: Stripe secret API key
            client: Preconfigured client, created lazily if omitted

        Raises:
            ValueError: If ``secret_key`` is empty and no client is given
        """
        if not secret_key and client is None:
            raise ValueError("secret_key is required")
        self._secret_key = secret_key
        self._client = client

    def _get_client(self) -> StripeClient:
        if self._client is None:
            self._client = StripeClient(self._secret_key)
            logger.info("Stripe client initialized")
        return self._client

    def charge(self, subscription: Subscription, period_start: dt.datetime) -> ChargeResult:
        """Charge one renewal period.

        Raises:
            StripeServiceError: On API, network or authentication errors,
                which leave the subscription untouched for the next sweep
        """
        method = subscription.payment_method or ""
        if not subscription.gateway_customer_id or not method.startswith(SAVED_METHOD_PREFIX):
            logger.warning(
                "Subscription %s has no saved payment method", subscription.subscription_id
            )
            return ChargeResult(success=False, error="No saved payment method")

        idempotency_key = renewal_idempotency_key(subscription, period_start)
        try:
            logger.info(
                "Charging renewal for subscription %s, amount %d",
                subscription.subscription_id,
                subscription.next_payment_amount,
            )
            intent = self._get_client().payment_intents.create(
                params={
                    "amount": subscription.next_payment_amount,
                    "currency": subscription.currency.lower(),
                    "customer": subscription.gateway_customer_id,
                    "payment_method": method,
                    "off_session": True,
                    "confirm": True,
                    "metadata": {
                        "subscription_id": subscription.subscription_id,
                        "user_id": subscription.user_id,
                        "plan": subscription.plan,
                    },
                },
                options={"idempotency_key": idempotency_key},
            )
        except stripe.CardError as e:
            error_code = getattr(e, "code", None)
            logger.warning(
                "Renewal charge declined for subscription %s: %s (code: %s)",
                subscription.subscription_id,
                e.user_message or str(e),
                error_code,
            )
            return ChargeResult(success=False, error=e.user_message or "Card declined")
        except stripe.StripeError as e:
            error_code = getattr(e, "code", None)
            logger.error(
                "Stripe renewal charge failed: %s (code: %s)",
                str(e),
                error_code,
            )
            raise StripeServiceError(
                f"Failed to charge renewal: {e}",
                stripe_error_code=error_code,
            ) from e

        if intent.status != "succeeded":
            logger.warning(
                "Renewal PaymentIntent %s ended in status %s", intent.id, intent.status
            )
            return ChargeResult(
                success=False, payment_id=intent.id, error=f"Payment {intent.status}"
            )

        logger.info(
            "Renewal charged: %s for subscription %s", intent.id, subscription.subscription_id
        )
        return ChargeResult(success=True, payment_id=intent.id)
