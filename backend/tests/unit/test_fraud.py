"""Unit tests for FraudScorer.

Test categories:
- Individual heuristics (email, user agent, IP, attempts, fingerprint)
- Aggregation over evaluable checks only
- High-risk threshold
"""

import datetime as dt

import pytest

from billing.services.fraud import FraudScorer, is_internal_ip

NOW = dt.datetime(2026, 3, 15, 12, 0, tzinfo=dt.UTC)


class StubAttempts:
    """In-memory stand-in for the recent-attempts lookup."""

    def __init__(self, count: int = 0, reused: bool = False, fail: bool = False) -> None:
        self.count = count
        self.reused = reused
        self.fail = fail
        self.since: dt.datetime | None = None

    def count_attempts_since(self, user_id: str, since: dt.datetime) -> int:
        if self.fail:
            raise RuntimeError("lookup unavailable")
        self.since = since
        return self.count

    def fingerprint_used_by_other_user(
        self, fingerprint: str, user_id: str, since: dt.datetime
    ) -> bool:
        if self.fail:
            raise RuntimeError("lookup unavailable")
        return self.reused


def _checks(assessment) -> dict[str, float]:
    return {c.check: c.score for c in assessment.checks}


class TestIndividualChecks:
    def test_disposable_email_domain_fails(self):
        result = FraudScorer(StubAttempts()).check_email_domain("user@TempMail.com")
        assert result.passed is False
        assert result.score == 0.8

    def test_regular_email_domain_passes(self):
        result = FraudScorer(StubAttempts()).check_email_domain("user@example.com")
        assert result.passed is True
        assert result.score == 0.1

    @pytest.mark.parametrize("agent", ["Googlebot/2.1", "my-crawler", "Spider", "web scraper"])
    def test_automation_user_agents_fail(self, agent):
        assert FraudScorer(StubAttempts()).check_user_agent(agent).score == 0.7

    @pytest.mark.parametrize(
        "address,internal",
        [
            ("10.0.0.1", True),
            ("192.168.1.20", True),
            ("127.0.0.1", True),
            ("not-an-ip", True),
            ("8.8.8.8", False),
        ],
    )
    def test_internal_ip_detection(self, address, internal):
        assert is_internal_ip(address) is internal

    def test_recent_attempt_window_is_one_hour(self):
        attempts = StubAttempts(count=3)
        result = FraudScorer(attempts).check_recent_attempts("u1", NOW)
        assert result is not None
        assert result.score == 0.9
        assert attempts.since == NOW - dt.timedelta(hours=1)

    def test_two_recent_attempts_pass(self):
        result = FraudScorer(StubAttempts(count=2)).check_recent_attempts("u1", NOW)
        assert result is not None and result.passed

    def test_reused_fingerprint_fails(self):
        result = FraudScorer(StubAttempts(reused=True)).check_device_fingerprint(
            "fp-1", "u1", NOW
        )
        assert result is not None
        assert result.score == 0.5


class TestAggregation:
    def test_clean_request_scores_low(self):
        assessment = FraudScorer(StubAttempts(count=1)).score(
            user_id="u1",
            email="user@example.com",
            user_agent="Mozilla/5.0",
            ip_address="8.8.8.8",
            now=NOW,
        )
        assert assessment.risk_score == 0.1
        assert assessment.is_high_risk is False
        assert set(_checks(assessment)) == {
            "email_domain",
            "user_agent",
            "ip_address",
            "recent_attempts",
        }

    def test_disposable_email_bot_agent_and_repeat_attempts_is_high_risk(self):
        """Three failing checks with no IP or fingerprint: (0.8 + 0.7 + 0.9) / 3."""
        assessment = FraudScorer(StubAttempts(count=5)).score(
            user_id="u1",
            email="someone@tempmail.com",
            user_agent="python-bot/1.0",
            now=NOW,
        )
        assert assessment.risk_score == 0.8
        assert assessment.is_high_risk is True

    def test_score_is_mean_over_all_evaluated_checks(self):
        """Passing IP and fingerprint checks dilute the same three failures."""
        assessment = FraudScorer(StubAttempts(count=5)).score(
            user_id="u1",
            email="someone@tempmail.com",
            user_agent="python-bot/1.0",
            ip_address="8.8.8.8",
            device_fingerprint="fp-1",
            now=NOW,
        )
        assert assessment.risk_score == 0.52
        assert assessment.is_high_risk is False

    def test_failed_lookups_are_skipped_not_scored(self):
        assessment = FraudScorer(StubAttempts(fail=True)).score(
            user_id="u1",
            email="someone@tempmail.com",
            device_fingerprint="fp-1",
            now=NOW,
        )
        assert list(_checks(assessment)) == ["email_domain"]
        assert assessment.risk_score == 0.8
        assert assessment.is_high_risk is True

    def test_threshold_is_inclusive(self):
        assessment = FraudScorer(StubAttempts(), threshold=0.1).score(
            user_id="u1", email="user@example.com", now=NOW
        )
        assert assessment.risk_score == 0.1
        assert assessment.is_high_risk is True
