"""Unit tests for OrderStore against moto DynamoDB.

Test categories:
- Create / read / ownership
- Guarded status transitions
- Recent-attempt lookups used by fraud scoring
"""

import datetime as dt

import pytest

from billing.models import OrderStatus, PaymentOrder

TEST_USER_ID = "5b0c2d4e-8f1a-4c3b-9d2e-7a6f5e4d3c2b"
TEST_OTHER_USER_ID = "9e8d7c6b-5a4f-4e3d-8c2b-1a0f9e8d7c6b"


def _order(order_id: str, created_at: dt.datetime, **overrides) -> PaymentOrder:
    fields = {
        "order_id": order_id,
        "user_id": TEST_USER_ID,
        "plan": "pro",
        "amount": 99900,
        "currency": "INR",
        "status": OrderStatus.CREATED,
        "created_at": created_at,
    }
    fields.update(overrides)
    return PaymentOrder(**fields)


class TestCreateAndGet:
    def test_create_and_get_round_trip(self, orders, now):
        order = _order("order_A1", now, device_fingerprint="fp-1")
        assert orders.create(order) is True

        stored = orders.get("order_A1")
        assert stored == order

    def test_duplicate_order_id_is_rejected(self, orders, now):
        assert orders.create(_order("order_A1", now)) is True
        assert orders.create(_order("order_A1", now, amount=1)) is False
        assert orders.get("order_A1").amount == 99900

    def test_get_missing_order_returns_none(self, orders):
        assert orders.get("order_missing") is None

    def test_get_for_user_hides_other_users_orders(self, orders, now):
        orders.create(_order("order_A1", now))
        assert orders.get_for_user("order_A1", TEST_USER_ID) is not None
        assert orders.get_for_user("order_A1", TEST_OTHER_USER_ID) is None

    def test_list_for_user_is_newest_first(self, orders, now):
        orders.create(_order("order_old", now - dt.timedelta(minutes=5)))
        orders.create(_order("order_new", now))
        assert [o.order_id for o in orders.list_for_user(TEST_USER_ID)] == [
            "order_new",
            "order_old",
        ]


class TestTransitions:
    def test_created_to_paid(self, orders, now):
        orders.create(_order("order_A1", now))
        paid = orders.transition(
            "order_A1", OrderStatus.PAID, {"payment_id": "pay_1", "paid_at": now}
        )
        assert paid is not None
        assert paid.status is OrderStatus.PAID
        assert paid.payment_id == "pay_1"
        assert paid.paid_at == now

    def test_paid_twice_is_rejected(self, orders, now):
        orders.create(_order("order_A1", now))
        assert orders.transition("order_A1", OrderStatus.PAID) is not None
        assert orders.transition("order_A1", OrderStatus.PAID) is None

    def test_refund_requires_paid(self, orders, now):
        orders.create(_order("order_A1", now))
        assert orders.transition("order_A1", OrderStatus.REFUNDED) is None

        orders.transition("order_A1", OrderStatus.PAID)
        refunded = orders.transition("order_A1", OrderStatus.REFUNDED)
        assert refunded is not None
        assert refunded.status is OrderStatus.REFUNDED

    def test_no_transition_back_to_created(self, orders, now):
        orders.create(_order("order_A1", now))
        assert orders.transition("order_A1", OrderStatus.CREATED) is None

    def test_transition_of_missing_order(self, orders):
        assert orders.transition("order_missing", OrderStatus.PAID) is None


class TestAttemptLookups:
    def test_count_attempts_since(self, orders, now):
        for i in range(3):
            orders.create(_order(f"order_recent{i}", now - dt.timedelta(minutes=10 * i)))
        orders.create(_order("order_old", now - dt.timedelta(hours=2)))
        orders.create(_order("order_other", now, user_id=TEST_OTHER_USER_ID))

        assert orders.count_attempts_since(TEST_USER_ID, now - dt.timedelta(hours=1)) == 3

    @pytest.mark.parametrize(
        "owner,age,expected",
        [
            (TEST_OTHER_USER_ID, dt.timedelta(hours=1), True),
            (TEST_USER_ID, dt.timedelta(hours=1), False),
            (TEST_OTHER_USER_ID, dt.timedelta(hours=30), False),
        ],
    )
    def test_fingerprint_used_by_other_user(self, orders, now, owner, age, expected):
        orders.create(
            _order("order_fp", now - age, user_id=owner, device_fingerprint="fp-shared")
        )
        assert (
            orders.fingerprint_used_by_other_user(
                "fp-shared", TEST_USER_ID, now - dt.timedelta(hours=24)
            )
            is expected
        )
