"""Unit tests for PaymentStateStore against moto DynamoDB.

Test categories:
- Session creation and lookup
- One-way transitions out of pending
- Lazy and batch expiry
- Retry and cancel
"""

import datetime as dt

from billing.models import OrderStatus, PaymentOrder, PaymentStateStatus

TEST_USER_ID = "5b0c2d4e-8f1a-4c3b-9d2e-7a6f5e4d3c2b"


def _order(order_id: str = "order_PS1", created_at: dt.datetime | None = None) -> PaymentOrder:
    return PaymentOrder(
        order_id=order_id,
        user_id=TEST_USER_ID,
        plan="pro",
        amount=99900,
        currency="INR",
        status=OrderStatus.CREATED,
        created_at=created_at or dt.datetime(2026, 1, 1, tzinfo=dt.UTC),
    )


class TestOpenSession:
    def test_new_session_is_pending_until_ttl(self, states, now):
        session = states.open_session(_order(), now)
        assert session.status is PaymentStateStatus.PENDING
        assert session.expires_at == now + dt.timedelta(minutes=10)
        assert session.session_id.startswith("PS-")
        assert states.get_session(session.session_id) == session

    def test_get_returns_latest_session(self, states, now):
        order = _order()
        first = states.open_session(order, now)
        states.cancel(order.order_id, now)
        second = states.open_session(order, now + dt.timedelta(seconds=1))

        current = states.get(order.order_id, now + dt.timedelta(seconds=2))
        assert current is not None
        assert current.session_id == second.session_id != first.session_id

    def test_get_without_sessions(self, states):
        assert states.get("order_none") is None


class TestTransitions:
    def test_pending_to_failed_with_details(self, states, now):
        order = _order()
        states.open_session(order, now)
        failed = states.transition(
            order.order_id,
            PaymentStateStatus.FAILED,
            {"error_message": "Card declined", "payment_id": "pay_1"},
            now,
        )
        assert failed is not None
        assert failed.status is PaymentStateStatus.FAILED
        assert failed.error_message == "Card declined"
        assert failed.payment_id == "pay_1"
        assert failed.updated_at == now

    def test_terminal_status_never_changes(self, states, now):
        order = _order()
        states.open_session(order, now)
        states.transition(order.order_id, PaymentStateStatus.FAILED, now=now)

        assert states.transition(order.order_id, PaymentStateStatus.SUCCESS, now=now) is None
        assert states.get(order.order_id, now).status is PaymentStateStatus.FAILED

    def test_transition_back_to_pending_is_rejected(self, states, now):
        order = _order()
        states.open_session(order, now)
        assert states.transition(order.order_id, PaymentStateStatus.PENDING, now=now) is None

    def test_expired_only_after_expiry_time(self, states, now):
        order = _order()
        session = states.open_session(order, now)
        early = now + dt.timedelta(minutes=1)
        assert (
            states.transition_session(session.session_id, PaymentStateStatus.EXPIRED, now=early)
            is None
        )
        late = now + dt.timedelta(minutes=11)
        expired = states.transition_session(
            session.session_id, PaymentStateStatus.EXPIRED, now=late
        )
        assert expired is not None
        assert expired.status is PaymentStateStatus.EXPIRED


class TestExpiry:
    def test_overdue_pending_session_reads_as_expired_and_persists(self, states, now):
        order = _order()
        session = states.open_session(order, now - dt.timedelta(minutes=20))

        current = states.get(order.order_id, now)
        assert current.status is PaymentStateStatus.EXPIRED
        assert states.get_session(session.session_id).status is PaymentStateStatus.EXPIRED

    def test_expire_stale_expires_only_overdue_sessions(self, states, now):
        states.open_session(_order("order_old1"), now - dt.timedelta(minutes=30))
        states.open_session(_order("order_old2"), now - dt.timedelta(minutes=15))
        fresh = states.open_session(_order("order_fresh"), now)

        assert states.expire_stale(now) == 2
        assert states.get_session(fresh.session_id).status is PaymentStateStatus.PENDING
        assert states.expire_stale(now) == 0


class TestRetryAndCancel:
    def test_retry_after_failure_opens_new_session(self, states, now):
        order = _order()
        first = states.open_session(order, now)
        states.transition(order.order_id, PaymentStateStatus.FAILED, now=now)

        retried = states.retry(order, now + dt.timedelta(seconds=1))
        assert retried is not None
        assert retried.session_id != first.session_id
        assert retried.status is PaymentStateStatus.PENDING
        assert states.get_session(first.session_id).status is PaymentStateStatus.FAILED

    def test_retry_while_pending_returns_current_session(self, states, now):
        order = _order()
        session = states.open_session(order, now)
        assert states.retry(order, now).session_id == session.session_id

    def test_retry_after_success_returns_none(self, states, now):
        order = _order()
        states.open_session(order, now)
        states.transition(order.order_id, PaymentStateStatus.SUCCESS, now=now)
        assert states.retry(order, now) is None

    def test_cancel_only_from_pending(self, states, now):
        order = _order()
        states.open_session(order, now)
        cancelled = states.cancel(order.order_id, now)
        assert cancelled is not None
        assert cancelled.status is PaymentStateStatus.CANCELLED
        assert states.cancel(order.order_id, now) is None

    def test_pending_for_user_excludes_closed_sessions(self, states, now):
        open_order = _order("order_open")
        closed_order = _order("order_closed")
        states.open_session(open_order, now)
        states.open_session(closed_order, now)
        states.cancel(closed_order.order_id, now)

        pending = states.pending_for_user(TEST_USER_ID)
        assert [s.order_id for s in pending] == ["order_open"]
        assert len(states.history(TEST_USER_ID)) == 2
