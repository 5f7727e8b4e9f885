"""Heuristic fraud scoring for payment verification.

A deterministic rule engine: each check yields a score in [0, 1] and the
aggregate is the mean over the checks that could be evaluated. Checks
whose optional input is absent, or whose lookup fails, are skipped rather
than scored as zero.
"""

import datetime as dt
import ipaddress
import logging
from typing import Protocol

from billing.models import FraudAssessment, FraudCheckResult

logger = logging.getLogger(__name__)

HIGH_RISK_THRESHOLD = 0.7

DISPOSABLE_EMAIL_DOMAINS = frozenset(
    {"tempmail.com", "10minutemail.com", "guerrillamail.com"}
)
AUTOMATION_USER_AGENT_MARKERS = ("bot", "crawler", "spider", "scraper")

RECENT_ATTEMPT_WINDOW = dt.timedelta(hours=1)
RECENT_ATTEMPT_LIMIT = 3
FINGERPRINT_REUSE_WINDOW = dt.timedelta(hours=24)

# (score when the check fails, score when it passes)
CHECK_SCORES: dict[str, tuple[float, float]] = {
    "email_domain": (0.8, 0.1),
    "user_agent": (0.7, 0.1),
    "ip_address": (0.6, 0.1),
    "recent_attempts": (0.9, 0.1),
    "device_fingerprint": (0.5, 0.1),
}


class RecentAttemptsLookup(Protocol):
    """Read access to recent payment attempts."""

    def count_attempts_since(self, user_id: str, since: dt.datetime) -> int:
        """Number of payment attempts by ``user_id`` created at or after ``since``."""
        ...

    def fingerprint_used_by_other_user(
        self, fingerprint: str, user_id: str, since: dt.datetime
    ) -> bool:
        """Whether another user paid from ``fingerprint`` at or after ``since``."""
        ...


def _result(check: str, passed: bool, details: str) -> FraudCheckResult:
    fail_score, pass_score = CHECK_SCORES[check]
    return FraudCheckResult(
        check=check,
        passed=passed,
        score=pass_score if passed else fail_score,
        details=details,
    )


def is_internal_ip(address: str) -> bool:
    """Whether ``address`` is private, loopback, link-local or otherwise non-public.

    Unparseable addresses count as internal.
    """
    try:
        ip = ipaddress.ip_address(address.strip())
    except ValueError:
        return True
    return (
        ip.is_private
        or ip.is_loopback
        or ip.is_link_local
        or ip.is_reserved
        or ip.is_unspecified
    )


class FraudScorer:
    """Scores a verification request against the fraud heuristics."""

    def __init__(
        self,
        attempts: RecentAttemptsLookup,
        threshold: float = HIGH_RISK_THRESHOLD,
    ) -> None:
        """Initialize the scorer.

        Args:
            attempts: Lookup over recent payment attempts
            threshold: Aggregate score at or above which a request is high risk
        """
        self.attempts = attempts
        self.threshold = threshold

    def check_email_domain(self, email: str) -> FraudCheckResult:
        domain = email.rsplit("@", 1)[-1].strip().lower()
        disposable = domain in DISPOSABLE_EMAIL_DOMAINS
        return _result(
            "email_domain",
            not disposable,
            f"Email domain: {domain}" + (" (disposable)" if disposable else ""),
        )

    def check_user_agent(self, user_agent: str) -> FraudCheckResult:
        lowered = user_agent.lower()
        markers = [m for m in AUTOMATION_USER_AGENT_MARKERS if m in lowered]
        if markers:
            return _result("user_agent", False, f"Automation markers: {', '.join(markers)}")
        return _result("user_agent", True, "User agent looks interactive")

    def check_ip_address(self, ip_address: str) -> FraudCheckResult:
        internal = is_internal_ip(ip_address)
        return _result(
            "ip_address",
            not internal,
            f"IP {ip_address} is {'internal or invalid' if internal else 'public'}",
        )

    def check_recent_attempts(
        self, user_id: str, now: dt.datetime
    ) -> FraudCheckResult | None:
        try:
            count = self.attempts.count_attempts_since(user_id, now - RECENT_ATTEMPT_WINDOW)
        except Exception:
            logger.exception("Recent attempt lookup failed for user %s", user_id)
            return None
        return _result(
            "recent_attempts",
            count < RECENT_ATTEMPT_LIMIT,
            f"Recent payment attempts: {count}",
        )

    def check_device_fingerprint(
        self, fingerprint: str, user_id: str, now: dt.datetime
    ) -> FraudCheckResult | None:
        try:
            reused = self.attempts.fingerprint_used_by_other_user(
                fingerprint, user_id, now - FINGERPRINT_REUSE_WINDOW
            )
        except Exception:
            logger.exception("Fingerprint lookup failed for user %s", user_id)
            return None
        return _result(
            "device_fingerprint",
            not reused,
            "Device fingerprint used by another user recently"
            if reused
            else "Device fingerprint validated",
        )

    def score(
        self,
        *,
        user_id: str,
        email: str,
        user_agent: str | None = None,
        ip_address: str | None = None,
        device_fingerprint: str | None = None,
        now: dt.datetime | None = None,
    ) -> FraudAssessment:
        """Run every evaluable check and aggregate the result.

        Args:
            user_id: Paying user
            email: Paying user's email
            user_agent: Client user agent, skipped if absent
            ip_address: Client IP address, skipped if absent
            device_fingerprint: Client device fingerprint, skipped if absent
            now: Evaluation time, defaults to the current UTC time

        Returns:
            FraudAssessment with per-check results
        """
        now = now or dt.datetime.now(dt.UTC)
        checks: list[FraudCheckResult | None] = [self.check_email_domain(email)]
        if user_agent:
            checks.append(self.check_user_agent(user_agent))
        if ip_address:
            checks.append(self.check_ip_address(ip_address))
        checks.append(self.check_recent_attempts(user_id, now))
        if device_fingerprint:
            checks.append(self.check_device_fingerprint(device_fingerprint, user_id, now))

        evaluated = [c for c in checks if c is not None]
        risk = sum(c.score for c in evaluated) / len(evaluated) if evaluated else 0.0
        risk = round(risk, 4)
        return FraudAssessment(
            risk_score=risk,
            is_high_risk=risk >= self.threshold,
            checks=evaluated,
        )
