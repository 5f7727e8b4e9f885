"""Unit tests for PaymentVerifier.

Tests run against moto DynamoDB with real stores so the atomic activation
and audit writes are exercised end to end.

Test categories:
- Request validation
- Ordered checks: fraud before signature before account match
- Idempotent re-verification
- Error mapping and audit records
"""

import datetime as dt
import os
from unittest.mock import patch

import pytest

from billing.models import (
    ERROR_MESSAGES,
    ErrorCode,
    LedgerSource,
    LedgerStatus,
    OrderStatus,
    VerificationRequest,
)
from billing.services.audit import SecurityAuditLog
from billing.services.payment_verifier import (
    MSG_ALREADY_VERIFIED,
    PaymentVerifier,
    validate_request,
)
from billing.services.schema import SECURITY_AUDIT_TABLE
from billing.services.signature import compute_payment_signature

# === Test Configuration ===

TEST_USER_ID = "5b0c2d4e-8f1a-4c3b-9d2e-7a6f5e4d3c2b"
TEST_OTHER_USER_ID = "9e8d7c6b-5a4f-4e3d-8c2b-1a0f9e8d7c6b"
TEST_USER_EMAIL = "priya.sharma@example.com"
TEST_PAYMENT_ID = "pay_NkT4aB1cD2efgh"


def _request(order_id: str, **overrides) -> VerificationRequest:
    payment_id = overrides.pop("payment_id", TEST_PAYMENT_ID)
    fields = {
        "order_id": order_id,
        "payment_id": payment_id,
        "signature": compute_payment_signature(
            order_id, payment_id, os.environ["GATEWAY_KEY_SECRET"]
        ),
        "user_id": TEST_USER_ID,
        "user_email": TEST_USER_EMAIL,
        "user_agent": "Mozilla/5.0 (Macintosh)",
        "ip_address": "49.36.12.7",
    }
    fields.update(overrides)
    return VerificationRequest(**fields)


def _audit_records(table) -> list[dict]:
    return table(SECURITY_AUDIT_TABLE).scan()["Items"]


# === Test Fixtures ===


@pytest.fixture
def paid_setup(seed_user, make_order):
    seed_user()
    order, _ = make_order()
    return order


# === Validation ===


class TestValidation:
    def test_valid_request(self):
        assert validate_request(_request("order_1")) is None

    def test_missing_fields_are_listed(self):
        problem = validate_request(VerificationRequest(order_id="order_1"))
        assert problem == "Missing required fields: paymentId, signature, userId, userEmail"

    def test_invalid_email(self):
        assert validate_request(_request("order_1", user_email="not-an-email")) == (
            "Invalid email format"
        )

    def test_user_id_must_be_uuid(self):
        assert validate_request(_request("order_1", user_id="user-123")) == (
            "Invalid user ID format"
        )

    def test_invalid_request_result(self, verifier):
        result = verifier.verify(VerificationRequest(order_id="order_1"))
        assert result.success is False
        assert result.code == ErrorCode.INVALID_REQUEST.value
        assert result.message == ERROR_MESSAGES[ErrorCode.INVALID_REQUEST]

    def test_empty_secret_is_rejected(self, db, orders, activation):
        with pytest.raises(ValueError):
            PaymentVerifier("", None, None, orders, activation, SecurityAuditLog(db))  # type: ignore[arg-type]


# === Happy Path ===


class TestSuccessfulVerification:
    def test_activates_subscription(self, verifier, paid_setup, orders, ledger, now):
        result = verifier.verify(_request(paid_setup.order_id), now=now)

        assert result.success is True, result.error
        assert result.message == "Payment verified and Pro subscription activated successfully!"
        assert result.code is None
        assert result.subscription.plan == "pro"
        assert result.subscription.status == "active"
        assert 28 <= result.subscription.days_remaining <= 31
        assert result.subscription.payment_id == TEST_PAYMENT_ID
        details = result.verification
        assert details.signature_verified
        assert details.user_verified
        assert details.order_verified
        assert details.subscription_activated
        assert details.risk_score < 0.7

        assert orders.get(paid_setup.order_id).status is OrderStatus.PAID
        entry = ledger.get(TEST_PAYMENT_ID)
        assert entry.status is LedgerStatus.CONFIRMED
        assert entry.source is LedgerSource.VERIFICATION

    def test_email_match_is_case_insensitive(self, verifier, paid_setup, now):
        result = verifier.verify(
            _request(paid_setup.order_id, user_email=TEST_USER_EMAIL.upper()), now=now
        )
        assert result.success is True

    def test_second_verification_is_idempotent(self, verifier, paid_setup, ledger, now):
        first = verifier.verify(_request(paid_setup.order_id), now=now)
        second = verifier.verify(_request(paid_setup.order_id), now=now + dt.timedelta(seconds=5))

        assert first.success is True
        assert second.success is True
        assert second.message == MSG_ALREADY_VERIFIED
        assert second.subscription.end_date == first.subscription.end_date
        assert ledger.summary().confirmed_transactions == 1


# === Rejections ===


class TestRejections:
    def test_high_risk_is_rejected_before_signature(
        self, verifier, seed_user, make_order, table, now
    ):
        seed_user(email="someone@tempmail.com")
        for _ in range(3):
            order, _ = make_order()

        result = verifier.verify(
            _request(
                order.order_id,
                user_email="someone@tempmail.com",
                user_agent="python-bot/1.0",
                ip_address=None,
                signature="not-a-valid-signature",
            ),
            now=now,
        )

        assert result.success is False
        assert result.code == ErrorCode.HIGH_RISK_PAYMENT.value
        assert result.verification.risk_score == 0.8
        assert result.verification.signature_verified is False
        records = _audit_records(table)
        assert [r["record_type"] for r in records] == ["fraud_attempt"]

    def test_invalid_signature(self, verifier, paid_setup, orders, table, now):
        result = verifier.verify(
            _request(paid_setup.order_id, signature="0" * 64), now=now
        )

        assert result.code == ErrorCode.INVALID_SIGNATURE.value
        assert result.verification.signature_verified is False
        assert orders.get(paid_setup.order_id).status is OrderStatus.CREATED
        records = _audit_records(table)
        assert [r["record_type"] for r in records] == ["security_violation"]
        assert records[0]["order_id"] == paid_setup.order_id

    def test_email_mismatch(self, verifier, paid_setup, now):
        result = verifier.verify(
            _request(paid_setup.order_id, user_email="someone.else@example.com"), now=now
        )
        assert result.code == ErrorCode.USER_VERIFICATION_FAILED.value
        assert result.verification.signature_verified is True
        assert result.verification.user_verified is False

    def test_unknown_user(self, verifier, make_order, now):
        order, _ = make_order()
        result = verifier.verify(_request(order.order_id), now=now)
        assert result.code == ErrorCode.USER_VERIFICATION_FAILED.value

    def test_unknown_order(self, verifier, seed_user, now):
        seed_user()
        result = verifier.verify(_request("order_doesnotexist"), now=now)
        assert result.code == ErrorCode.ORDER_NOT_FOUND.value
        assert result.verification.user_verified is True

    def test_order_of_another_user(self, verifier, seed_user, make_order, now):
        seed_user()
        order, _ = make_order(user_id=TEST_OTHER_USER_ID)
        result = verifier.verify(_request(order.order_id), now=now)
        assert result.code == ErrorCode.ORDER_NOT_FOUND.value

    def test_refunded_order(self, verifier, paid_setup, orders, now):
        orders.transition(paid_setup.order_id, OrderStatus.PAID)
        orders.transition(paid_setup.order_id, OrderStatus.REFUNDED)
        result = verifier.verify(_request(paid_setup.order_id), now=now)
        assert result.code == ErrorCode.ORDER_NOT_FOUND.value


# === Unexpected Errors ===


class TestErrorMapping:
    def test_datastore_error_during_activation(self, verifier, paid_setup, table, now):
        with patch.object(
            verifier.activation, "activate_order", side_effect=RuntimeError("throttled")
        ):
            result = verifier.verify(_request(paid_setup.order_id), now=now)

        assert result.success is False
        assert result.code == ErrorCode.ACTIVATION_FAILED.value
        assert result.verification.order_verified is True
        assert result.verification.subscription_activated is False
        records = _audit_records(table)
        assert records[0]["record_type"] == "system_error"
        assert records[0]["details"]["stage"] == "activation"

    def test_unexpected_error_never_raises(self, verifier, paid_setup, now):
        with patch.object(verifier.fraud, "score", side_effect=RuntimeError("boom")):
            result = verifier.verify(_request(paid_setup.order_id), now=now)

        assert result.success is False
        assert result.code == ErrorCode.SYSTEM_ERROR.value
