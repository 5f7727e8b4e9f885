"""Unit tests for billing date helpers and subscription access windows."""

import datetime as dt

import pytest

from billing.models import Subscription, SubscriptionStatus
from billing.utils.dates import add_months, from_iso, start_of_month, to_iso


class TestAddMonths:
    @pytest.mark.parametrize(
        "start,expected",
        [
            (dt.datetime(2026, 1, 15, tzinfo=dt.UTC), dt.datetime(2026, 2, 15, tzinfo=dt.UTC)),
            (dt.datetime(2026, 1, 31, tzinfo=dt.UTC), dt.datetime(2026, 2, 28, tzinfo=dt.UTC)),
            (dt.datetime(2028, 1, 31, tzinfo=dt.UTC), dt.datetime(2028, 2, 29, tzinfo=dt.UTC)),
            (dt.datetime(2026, 12, 31, tzinfo=dt.UTC), dt.datetime(2027, 1, 31, tzinfo=dt.UTC)),
        ],
    )
    def test_one_month(self, start, expected):
        assert add_months(start) == expected

    def test_keeps_time_of_day(self):
        start = dt.datetime(2026, 3, 10, 17, 45, 12, tzinfo=dt.UTC)
        assert add_months(start, 2) == dt.datetime(2026, 5, 10, 17, 45, 12, tzinfo=dt.UTC)


class TestIsoTimestamps:
    def test_to_iso_is_utc_with_microseconds(self):
        ist = dt.timezone(dt.timedelta(hours=5, minutes=30))
        value = dt.datetime(2026, 3, 10, 15, 0, tzinfo=ist)
        assert to_iso(value) == "2026-03-10T09:30:00.000000+00:00"

    def test_naive_datetime_is_treated_as_utc(self):
        assert to_iso(dt.datetime(2026, 3, 10, 9, 30)) == "2026-03-10T09:30:00.000000+00:00"

    def test_from_iso_accepts_z_suffix(self):
        assert from_iso("2026-03-10T09:30:00Z") == dt.datetime(2026, 3, 10, 9, 30, tzinfo=dt.UTC)

    def test_from_iso_empty(self):
        assert from_iso(None) is None
        assert from_iso("") is None

    def test_string_order_matches_time_order(self):
        earlier = dt.datetime(2026, 3, 10, 9, 30, 0, 5, tzinfo=dt.UTC)
        later = dt.datetime(2026, 3, 10, 9, 30, 1, tzinfo=dt.UTC)
        assert to_iso(earlier) < to_iso(later)

    def test_start_of_month(self):
        value = dt.datetime(2026, 3, 17, 8, 1, 2, 3, tzinfo=dt.UTC)
        assert start_of_month(value) == dt.datetime(2026, 3, 1, tzinfo=dt.UTC)


class TestAccessWindow:
    NOW = dt.datetime(2026, 3, 10, 12, 0, tzinfo=dt.UTC)

    def _sub(self, status, end_date, cancelled_immediately=False) -> Subscription:
        return Subscription(
            user_id="5b0c2d4e-8f1a-4c3b-9d2e-7a6f5e4d3c2b",
            subscription_id="SUB-3F9A1C2B7D4E",
            plan="pro",
            status=status,
            start_date=self.NOW - dt.timedelta(days=20),
            end_date=end_date,
            cancelled_immediately=cancelled_immediately,
            created_at=self.NOW - dt.timedelta(days=20),
            updated_at=self.NOW,
        )

    def test_cancelled_keeps_access_until_end_date(self):
        sub = self._sub(SubscriptionStatus.CANCELLED, self.NOW + dt.timedelta(days=3))
        assert sub.has_access(self.NOW) is True

    def test_immediate_cancel_has_no_access(self):
        sub = self._sub(
            SubscriptionStatus.CANCELLED, self.NOW + dt.timedelta(days=3), cancelled_immediately=True
        )
        assert sub.has_access(self.NOW) is False

    def test_suspended_has_no_access(self):
        sub = self._sub(SubscriptionStatus.SUSPENDED, self.NOW + dt.timedelta(days=3))
        assert sub.has_access(self.NOW) is False

    def test_days_remaining_rounds_up_and_never_negative(self):
        sub = self._sub(SubscriptionStatus.ACTIVE, self.NOW + dt.timedelta(days=2, hours=1))
        assert sub.days_remaining(self.NOW) == 3
        expired = self._sub(SubscriptionStatus.ACTIVE, self.NOW - dt.timedelta(days=1))
        assert expired.days_remaining(self.NOW) == 0
