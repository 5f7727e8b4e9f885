"""Periodic renewal sweep.

Each run lapses subscriptions that will not renew, then charges every
active, auto-renewing subscription whose end date has passed. Every
write re-checks the status it read, so a user cancelling mid-sweep wins
and the sweep skips that row. A failure on one subscription never stops
the rest of the batch.
"""

import datetime as dt
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING

from billing.models import (
    AuditRecordType,
    LedgerSource,
    LedgerStatus,
    LifecycleEventType,
    RevenueLedgerEntry,
    Subscription,
    SubscriptionStatus,
    VerificationRequest,
)
from billing.utils.dates import to_iso, utcnow

if TYPE_CHECKING:
    from .audit import SecurityAuditLog
    from .payment_state_store import PaymentStateStore
    from .revenue_ledger import RevenueLedger
    from .subscription_lifecycle import SubscriptionLifecycleManager

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChargeResult:
    """Outcome of one renewal charge attempt."""

    success: bool
    payment_id: str | None = None
    error: str | None = None


class RenewalCharger(ABC):
    """Charges a subscription's saved payment method for one period."""

    @abstractmethod
    def charge(self, subscription: Subscription, period_start: dt.datetime) -> ChargeResult:
        """Attempt the renewal charge.

        Args:
            subscription: Subscription being renewed
            period_start: Start of the period being paid for (the old end date)

        Returns:
            ChargeResult; declines are returned, not raised
        """


@dataclass
class SweepResult:
    """Counters for one sweep run."""

    processed: int = 0
    errors: int = 0
    skipped: int = 0
    expired: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "processed": self.processed,
            "errors": self.errors,
            "skipped": self.skipped,
            "expired": self.expired,
        }


class RenewalSweeper:
    """Renews, suspends and expires subscriptions in one batch."""

    def __init__(
        self,
        lifecycle: "SubscriptionLifecycleManager",
        ledger: "RevenueLedger",
        charger: RenewalCharger,
        states: "PaymentStateStore | None" = None,
        audit: "SecurityAuditLog | None" = None,
    ) -> None:
        """Initialize the sweeper.

        Args:
            lifecycle: Subscription lifecycle manager
            ledger: Revenue ledger for renewal payments
            charger: Renewal charge collaborator
            states: Payment session store; stale sessions are expired
                during the sweep when given
            audit: Security audit log for charges that need reconciling
        """
        self.lifecycle = lifecycle
        self.ledger = ledger
        self.charger = charger
        self.states = states
        self.audit = audit

    def run(self, now: dt.datetime | None = None) -> SweepResult:
        """Run one sweep.

        Returns:
            SweepResult. ``processed`` counts successful renewals and
            ``errors`` counts failed charges and unexpected exceptions.
        """
        now = now or utcnow()
        result = SweepResult()

        for sub in self.lifecycle.lapsed(now):
            try:
                if self.lifecycle.expire(sub, now):
                    result.expired += 1
            except Exception:
                logger.exception("Failed to expire subscription for user %s", sub.user_id)
                result.errors += 1

        due = self.lifecycle.due_for_renewal(now)
        logger.info("Renewal sweep found %d due subscriptions", len(due))
        for sub in due:
            try:
                self._renew_one(sub, now, result)
            except Exception:
                logger.exception("Renewal failed for user %s", sub.user_id)
                result.errors += 1

        if self.states is not None:
            try:
                self.states.expire_stale(now)
            except Exception:
                logger.exception("Failed to expire stale payment sessions")

        logger.info(
            "Renewal sweep done: processed=%d errors=%d skipped=%d expired=%d",
            result.processed,
            result.errors,
            result.skipped,
            result.expired,
        )
        return result

    def _renew_one(self, sub: Subscription, now: dt.datetime, result: SweepResult) -> None:
        # The query result may be stale; do not charge a row the user just cancelled
        current = self.lifecycle.get(sub.user_id)
        if (
            current is None
            or current.status is not SubscriptionStatus.ACTIVE
            or not current.auto_renew
            or current.end_date != sub.end_date
        ):
            logger.info("Subscription for user %s changed before charge, skipping", sub.user_id)
            result.skipped += 1
            return

        charge = self.charger.charge(current, current.end_date)
        if not charge.success:
            reason = charge.error or "Renewal charge failed"
            if self.lifecycle.suspend(current, reason, now) is None:
                result.skipped += 1
                return
            self.lifecycle.emit(
                LifecycleEventType.PAYMENT_FAILED,
                current,
                {"reason": reason, "amount": current.next_payment_amount},
            )
            result.errors += 1
            return

        payment_id = charge.payment_id or (
            f"renewal-{current.subscription_id}-{to_iso(current.end_date)}"
        )
        renewed = self.lifecycle.renew(current, charge.payment_id, now)
        if renewed is None:
            # Money moved but the period was not extended
            self._record_unapplied_charge(current, payment_id, now)
            result.skipped += 1
            return

        self.ledger.append(
            self._renewal_entry(current, payment_id, LedgerStatus.CONFIRMED, now)
        )
        result.processed += 1

    def _record_unapplied_charge(
        self, sub: Subscription, payment_id: str, now: dt.datetime
    ) -> None:
        reason = "Renewal charged after subscription changed"
        logger.error("%s: user %s, payment %s", reason, sub.user_id, payment_id)
        self.ledger.append(
            self._renewal_entry(
                sub,
                payment_id,
                LedgerStatus.PENDING,
                now,
                failure_reason=f"{reason}; needs reconciliation",
            )
        )
        if self.audit is not None:
            self.audit.record(
                AuditRecordType.PAYMENT_FAILURE,
                VerificationRequest(
                    order_id=sub.order_id or "",
                    payment_id=payment_id,
                    user_id=sub.user_id,
                ),
                reason="renewal_not_applied",
                details={
                    "subscription_id": sub.subscription_id,
                    "amount": sub.next_payment_amount,
                    "period_start": to_iso(sub.end_date),
                },
            )

    def _renewal_entry(
        self,
        sub: Subscription,
        payment_id: str,
        status: LedgerStatus,
        now: dt.datetime,
        failure_reason: str | None = None,
    ) -> RevenueLedgerEntry:
        return RevenueLedgerEntry(
            payment_id=payment_id,
            order_id=sub.order_id or sub.subscription_id,
            user_id=sub.user_id,
            amount=sub.next_payment_amount,
            currency=sub.currency,
            plan=sub.plan,
            status=status,
            source=LedgerSource.RENEWAL,
            created_at=now,
            confirmed_at=now if status is LedgerStatus.CONFIRMED else None,
            failure_reason=failure_reason,
        )
