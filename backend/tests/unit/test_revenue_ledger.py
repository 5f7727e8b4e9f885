"""Unit tests for RevenueLedger.

Test categories:
- Append-only inserts keyed by payment ID
- Forward-only status changes
- Transactional confirm that converges webhook and verification entries
- Summary
"""

import datetime as dt

from billing.models import LedgerSource, LedgerStatus, RevenueLedgerEntry

TEST_USER_ID = "5b0c2d4e-8f1a-4c3b-9d2e-7a6f5e4d3c2b"


def _entry(
    payment_id: str,
    created_at: dt.datetime,
    status: LedgerStatus = LedgerStatus.PENDING,
    source: LedgerSource = LedgerSource.WEBHOOK,
    amount: int = 99900,
) -> RevenueLedgerEntry:
    return RevenueLedgerEntry(
        payment_id=payment_id,
        order_id=f"order_for_{payment_id}",
        user_id=TEST_USER_ID,
        amount=amount,
        currency="INR",
        plan="pro",
        status=status,
        source=source,
        created_at=created_at,
    )


class TestAppend:
    def test_append_and_get(self, ledger, now):
        entry = _entry("pay_1", now)
        assert ledger.append(entry) is True
        assert ledger.get("pay_1") == entry

    def test_second_append_for_same_payment_is_rejected(self, ledger, now):
        ledger.append(_entry("pay_1", now))
        assert ledger.append(_entry("pay_1", now, status=LedgerStatus.CONFIRMED)) is False
        assert ledger.get("pay_1").status is LedgerStatus.PENDING


class TestStatusChanges:
    def test_confirm_pending(self, ledger, now):
        ledger.append(_entry("pay_1", now))
        confirmed = ledger.confirm("pay_1", now)
        assert confirmed.status is LedgerStatus.CONFIRMED
        assert confirmed.confirmed_at == now
        assert ledger.confirm("pay_1", now) is None

    def test_fail_only_pending(self, ledger, now):
        ledger.append(_entry("pay_1", now))
        failed = ledger.mark_failed("pay_1", "insufficient funds", now)
        assert failed.status is LedgerStatus.FAILED
        assert failed.failure_reason == "insufficient funds"

        ledger.append(_entry("pay_2", now, status=LedgerStatus.CONFIRMED))
        assert ledger.mark_failed("pay_2", now=now) is None

    def test_refund_only_confirmed(self, ledger, now):
        ledger.append(_entry("pay_1", now))
        assert ledger.mark_refunded("pay_1", "rfnd_1", now) is None

        ledger.confirm("pay_1", now)
        refunded = ledger.mark_refunded("pay_1", "rfnd_1", now)
        assert refunded.status is LedgerStatus.REFUNDED
        assert refunded.refund_id == "rfnd_1"
        assert ledger.mark_refunded("pay_1", "rfnd_1", now) is None

    def test_missing_entry_is_not_advanced(self, ledger, now):
        assert ledger.confirm("pay_missing", now) is None


class TestConfirmTransactItem:
    def test_creates_confirmed_entry(self, db, ledger, now):
        entry = _entry(
            "pay_1", now, status=LedgerStatus.CONFIRMED, source=LedgerSource.VERIFICATION
        )
        assert db.transact_write([ledger.confirm_transact_item(entry, now)]) is True

        stored = ledger.get("pay_1")
        assert stored.status is LedgerStatus.CONFIRMED
        assert stored.source is LedgerSource.VERIFICATION
        assert stored.confirmed_at == now

    def test_confirms_webhook_entry_keeping_its_source(self, db, ledger, now):
        earlier = now - dt.timedelta(seconds=5)
        ledger.append(_entry("pay_1", earlier))
        entry = _entry(
            "pay_1", now, status=LedgerStatus.CONFIRMED, source=LedgerSource.VERIFICATION
        )

        assert db.transact_write([ledger.confirm_transact_item(entry, now)]) is True

        stored = ledger.get("pay_1")
        assert stored.status is LedgerStatus.CONFIRMED
        assert stored.source is LedgerSource.WEBHOOK
        assert stored.created_at == earlier

    def test_does_not_touch_confirmed_entry(self, db, ledger, now):
        ledger.append(_entry("pay_1", now, status=LedgerStatus.CONFIRMED))
        entry = _entry("pay_1", now, status=LedgerStatus.CONFIRMED)
        assert db.transact_write([ledger.confirm_transact_item(entry, now)]) is False


class TestReporting:
    def test_summary(self, ledger, now):
        ledger.append(_entry("pay_1", now, status=LedgerStatus.CONFIRMED, amount=99900))
        ledger.append(_entry("pay_2", now, status=LedgerStatus.CONFIRMED, amount=49900))
        ledger.append(_entry("pay_3", now, amount=10000))
        ledger.append(_entry("pay_4", now, status=LedgerStatus.FAILED))
        ledger.append(_entry("pay_5", now, status=LedgerStatus.REFUNDED, amount=5000))

        summary = ledger.summary()
        assert summary.total_revenue == 149800
        assert summary.pending_revenue == 10000
        assert summary.refunded_revenue == 5000
        assert summary.total_transactions == 5
        assert summary.confirmed_transactions == 2
        assert summary.pending_transactions == 1
        assert summary.failed_transactions == 1
        assert summary.refunded_transactions == 1

    def test_list_entries_by_status(self, ledger, now):
        ledger.append(_entry("pay_1", now - dt.timedelta(minutes=1)))
        ledger.append(_entry("pay_2", now))
        ledger.append(_entry("pay_3", now, status=LedgerStatus.CONFIRMED))

        pending = ledger.list_entries(LedgerStatus.PENDING)
        assert [e.payment_id for e in pending] == ["pay_2", "pay_1"]
        assert len(ledger.list_entries()) == 3
