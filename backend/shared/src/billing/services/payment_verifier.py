"""Synchronous verification of a gateway redirect.

The checks run in a fixed order and stop at the first failure: request
shape, fraud score, signature, account match, order lookup, then the
atomic activation. Fraud scoring runs before the signature check so a
high-risk caller learns nothing about signature validity.

``PaymentVerifier.verify`` never raises. Every outcome, including
unexpected errors, is returned as a VerificationResult carrying an
ErrorCode.
"""

import datetime as dt
import logging
import re
from typing import TYPE_CHECKING

from billing.models import (
    ERROR_MESSAGES,
    AuditRecordType,
    ErrorCode,
    LedgerSource,
    OrderStatus,
    Subscription,
    SubscriptionSummary,
    VerificationDetails,
    VerificationRequest,
    VerificationResult,
)
from billing.services.signature import verify_payment_signature
from billing.utils.dates import utcnow
from billing.utils.logging import log_payment_operation

if TYPE_CHECKING:
    from .activation import ActivationService
    from .audit import SecurityAuditLog
    from .fraud import FraudScorer
    from .order_store import OrderStore
    from .user_directory import UserDirectory

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
USER_ID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE
)

MSG_ACTIVATED = "Payment verified and {plan} subscription activated successfully!"
MSG_ALREADY_VERIFIED = "Payment already verified and subscription is active."


def validate_request(request: VerificationRequest) -> str | None:
    """Return a description of the first malformed field, or None."""
    required = {
        "orderId": request.order_id,
        "paymentId": request.payment_id,
        "signature": request.signature,
        "userId": request.user_id,
        "userEmail": request.user_email,
    }
    missing = [name for name, value in required.items() if not value or not value.strip()]
    if missing:
        return f"Missing required fields: {', '.join(missing)}"
    if not EMAIL_PATTERN.match(request.user_email):
        return "Invalid email format"
    if not USER_ID_PATTERN.match(request.user_id):
        return "Invalid user ID format"
    return None


def summarize(sub: Subscription, now: dt.datetime) -> SubscriptionSummary:
    """Client-facing summary of an activated subscription."""
    return SubscriptionSummary(
        plan=sub.plan,
        status=sub.status.value,
        end_date=sub.end_date,
        days_remaining=sub.days_remaining(now),
        payment_id=sub.payment_id,
        order_id=sub.order_id,
    )


class PaymentVerifier:
    """Verifies a client-reported payment and activates the subscription."""

    def __init__(
        self,
        key_secret: str,
        fraud: "FraudScorer",
        users: "UserDirectory",
        orders: "OrderStore",
        activation: "ActivationService",
        audit: "SecurityAuditLog",
    ) -> None:
        """Initialize the verifier.

        Args:
            key_secret: Gateway key secret used to sign redirect payloads
            fraud: Fraud scorer
            users: Account directory
            orders: Order store
            activation: Atomic activation service
            audit: Security audit log

        Raises:
            ValueError: If ``key_secret`` is empty
        """
        if not key_secret:
            raise ValueError("key_secret is required")
        self._key_secret = key_secret
        self.fraud = fraud
        self.users = users
        self.orders = orders
        self.activation = activation
        self.audit = audit

    def verify(
        self, request: VerificationRequest, now: dt.datetime | None = None
    ) -> VerificationResult:
        """Verify a payment and activate the owner's subscription.

        Args:
            request: Redirect payload plus client metadata
            now: Evaluation time, defaults to the current UTC time

        Returns:
            VerificationResult; ``code`` is set on failure
        """
        try:
            return self._verify(request, now or utcnow())
        except Exception as e:
            logger.exception("Unexpected error verifying order %s", request.order_id)
            self.audit.record(
                AuditRecordType.SYSTEM_ERROR,
                request,
                reason="unexpected_error",
                details={"error": str(e), "stage": "verification"},
            )
            return self._failure(ErrorCode.SYSTEM_ERROR, "Internal error")

    def _verify(self, request: VerificationRequest, now: dt.datetime) -> VerificationResult:
        problem = validate_request(request)
        if problem:
            log_payment_operation(
                logger, "verify_payment", order_id=request.order_id or None, error=problem
            )
            return self._failure(ErrorCode.INVALID_REQUEST, problem)

        details = VerificationDetails()

        assessment = self.fraud.score(
            user_id=request.user_id,
            email=request.user_email,
            user_agent=request.user_agent,
            ip_address=request.ip_address,
            device_fingerprint=request.device_fingerprint,
            now=now,
        )
        details.risk_score = assessment.risk_score
        details.fraud_checks = assessment.checks
        if assessment.is_high_risk:
            self.audit.record(
                AuditRecordType.FRAUD_ATTEMPT,
                request,
                reason="high_risk_score",
                risk_score=assessment.risk_score,
                fraud_checks=assessment.checks,
            )
            return self._failure(
                ErrorCode.HIGH_RISK_PAYMENT,
                f"Risk score {assessment.risk_score} exceeds threshold",
                details,
            )

        if not verify_payment_signature(
            request.order_id, request.payment_id, request.signature, self._key_secret
        ):
            self.audit.record(
                AuditRecordType.SECURITY_VIOLATION,
                request,
                reason="invalid_signature",
                risk_score=assessment.risk_score,
            )
            return self._failure(ErrorCode.INVALID_SIGNATURE, "Signature mismatch", details)
        details.signature_verified = True

        if not self.users.matches(request.user_id, request.user_email):
            self.audit.record(
                AuditRecordType.PAYMENT_FAILURE, request, reason="user_verification_failed"
            )
            return self._failure(
                ErrorCode.USER_VERIFICATION_FAILED, "User not found or email mismatch", details
            )
        details.user_verified = True

        # From here on the gateway has taken the money; datastore errors
        # need manual reconciliation.
        try:
            return self._activate(request, details, now)
        except Exception as e:
            logger.exception(
                "Activation failed for order %s payment %s",
                request.order_id,
                request.payment_id,
            )
            self.audit.record(
                AuditRecordType.SYSTEM_ERROR,
                request,
                reason="activation_error",
                details={"error": str(e), "stage": "activation"},
            )
            return self._failure(ErrorCode.ACTIVATION_FAILED, "Datastore error", details)

    def _activate(
        self,
        request: VerificationRequest,
        details: VerificationDetails,
        now: dt.datetime,
    ) -> VerificationResult:
        order = self.orders.get_for_user(request.order_id, request.user_id)
        if order is None or order.status is OrderStatus.REFUNDED:
            self.audit.record(
                AuditRecordType.PAYMENT_FAILURE, request, reason="order_not_found"
            )
            return self._failure(ErrorCode.ORDER_NOT_FOUND, "Order not found", details)
        details.order_verified = True

        outcome = self.activation.activate_order(
            order, request.payment_id, LedgerSource.VERIFICATION, now=now
        )
        if not outcome.success:
            self.audit.record(
                AuditRecordType.PAYMENT_FAILURE,
                request,
                reason="activation_failed",
                details={"error": outcome.error or "unknown"},
            )
            log_payment_operation(
                logger,
                "verify_payment",
                order_id=order.order_id,
                payment_id=request.payment_id,
                user_id=order.user_id,
                error=outcome.error or "activation failed",
            )
            return self._failure(
                ErrorCode.ACTIVATION_FAILED, outcome.error or "Activation failed", details
            )

        details.subscription_activated = True
        summary = summarize(outcome.subscription, now) if outcome.subscription else None
        message = (
            MSG_ALREADY_VERIFIED
            if outcome.already_paid
            else MSG_ACTIVATED.format(plan=order.plan.title())
        )
        log_payment_operation(
            logger,
            "verify_payment",
            order_id=order.order_id,
            payment_id=request.payment_id,
            user_id=order.user_id,
            amount=order.amount,
            status="already_paid" if outcome.already_paid else "activated",
        )
        return VerificationResult(
            success=True, message=message, subscription=summary, verification=details
        )

    def _failure(
        self,
        code: ErrorCode,
        error: str,
        details: VerificationDetails | None = None,
    ) -> VerificationResult:
        return VerificationResult(
            success=False,
            message=ERROR_MESSAGES[code],
            verification=details,
            error=error,
            code=code.value,
        )
