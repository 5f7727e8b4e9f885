"""Subscription lifecycle state machine and billing-date arithmetic.

States: active, cancelled, suspended, expired (terminal). Each user has a
single subscription row, so at most one subscription per user can be
active. Every transition is a conditional write on the expected current
status, which lets user actions and the renewal sweep run concurrently
without locks. Each transition emits a LifecycleEvent; emission is
best-effort and never rolls back the transition.
"""

import datetime as dt
import logging
import uuid
from typing import TYPE_CHECKING, Any

from boto3.dynamodb.conditions import Attr, Key

from billing.models import (
    LifecycleEvent,
    LifecycleEventType,
    LifecycleResult,
    Subscription,
    SubscriptionMetrics,
    SubscriptionSnapshot,
    SubscriptionStatus,
)
from billing.services.dynamodb import serialize
from billing.services.schema import SUBSCRIPTION_EVENTS_TABLE, SUBSCRIPTIONS_TABLE
from billing.utils.dates import add_months, from_iso, start_of_month, to_iso, utcnow
from billing.utils.logging import log_subscription_event

if TYPE_CHECKING:
    from .dynamodb import DynamoDBService
    from .notifications import NotificationDispatcher

logger = logging.getLogger(__name__)

DEFAULT_TRIAL_DAYS = 7
PAID_BILLING_GRACE = dt.timedelta(days=30)

MSG_NOT_FOUND = "No active subscription found"
MSG_ALREADY_CANCELLED = "Subscription is already cancelled"
MSG_CANCELLED_NOW = "Your subscription has been cancelled immediately."
MSG_CANCELLED_AT = (
    "Your subscription will be cancelled on {date}. You'll retain access until then."
)
MSG_NOT_CANCELLED = "Subscription is not cancelled"
MSG_REACTIVATED = "Your subscription has been reactivated successfully!"
MSG_AUTO_RENEW_ON = (
    "Auto-renewal has been enabled. Your subscription will automatically renew."
)
MSG_AUTO_RENEW_OFF = (
    "Auto-renewal has been disabled. You will need to manually renew your subscription."
)


class SubscriptionLifecycleManager:
    """Creates, activates, cancels, reactivates, renews and lapses subscriptions."""

    TABLE = SUBSCRIPTIONS_TABLE
    EVENTS_TABLE = SUBSCRIPTION_EVENTS_TABLE

    def __init__(
        self,
        db: "DynamoDBService",
        dispatcher: "NotificationDispatcher",
        default_trial_days: int = DEFAULT_TRIAL_DAYS,
    ) -> None:
        """Initialize the lifecycle manager.

        Args:
            db: DynamoDB service instance
            dispatcher: Consumer of lifecycle events
            default_trial_days: Trial length when none is given
        """
        self.db = db
        self.dispatcher = dispatcher
        self.default_trial_days = default_trial_days

    def _generate_subscription_id(self) -> str:
        return f"SUB-{uuid.uuid4().hex[:12].upper()}"

    # === Reads ===

    def get(self, user_id: str) -> Subscription | None:
        """Get a user's subscription row, whatever its status."""
        item = self.db.get_item(self.TABLE, {"user_id": user_id}, consistent_read=True)
        return self._item_to_subscription(item) if item else None

    def get_status(
        self, user_id: str, now: dt.datetime | None = None
    ) -> SubscriptionSnapshot | None:
        """Client-facing snapshot of a user's subscription, or None."""
        sub = self.get(user_id)
        if sub is None:
            return None
        return SubscriptionSnapshot.from_subscription(sub, now or utcnow())

    # === Activation ===

    def build_activation(
        self,
        user_id: str,
        plan: str,
        amount: int,
        currency: str,
        *,
        is_trial: bool = False,
        trial_days: int | None = None,
        payment_method: str | None = None,
        gateway_customer_id: str | None = None,
        order_id: str | None = None,
        payment_id: str | None = None,
        existing: Subscription | None = None,
        now: dt.datetime | None = None,
    ) -> Subscription:
        """Compute the subscription row an activation would write.

        An active subscription is updated in place (same lineage ID and
        start date); any other prior row starts a new lineage.

        End date is now + trial days for a trial, else now + one calendar
        month. Next billing is the end date for a trial, else end date
        plus 30 days.
        """
        now = now or utcnow()
        if is_trial:
            days = self.default_trial_days if trial_days is None else trial_days
            end_date = now + dt.timedelta(days=days)
            next_billing = end_date
        else:
            end_date = add_months(now, 1)
            next_billing = end_date + PAID_BILLING_GRACE

        in_place = existing is not None and existing.status is SubscriptionStatus.ACTIVE
        return Subscription(
            user_id=user_id,
            subscription_id=(
                existing.subscription_id
                if in_place and existing
                else self._generate_subscription_id()
            ),
            plan=plan,
            status=SubscriptionStatus.ACTIVE,
            start_date=existing.start_date if in_place and existing else now,
            end_date=end_date,
            auto_renew=True,
            is_trial=is_trial,
            last_payment_date=now,
            next_billing_date=next_billing,
            next_payment_amount=amount,
            currency=currency,
            payment_method=payment_method or (existing.payment_method if existing else None),
            gateway_customer_id=gateway_customer_id
            or (existing.gateway_customer_id if existing else None),
            order_id=order_id,
            payment_id=payment_id,
            created_at=existing.created_at if existing else now,
            updated_at=now,
        )

    def activation_transact_item(
        self, sub: Subscription, existing: Subscription | None
    ) -> dict[str, Any]:
        """Transaction item writing an activated subscription.

        Guarded on the row being unchanged since it was read, so a
        concurrent cancel is never silently overwritten.
        """
        put: dict[str, Any] = {
            "TableName": self.db.table_name(self.TABLE),
            "Item": serialize(self._subscription_to_item(sub)),
        }
        if existing is None:
            put["ConditionExpression"] = "attribute_not_exists(user_id)"
        else:
            put["ConditionExpression"] = "updated_at = :prev_updated"
            put["ExpressionAttributeValues"] = serialize(
                {":prev_updated": to_iso(existing.updated_at)}
            )
        return {"Put": put}

    def activate(
        self,
        user_id: str,
        plan: str,
        amount: int,
        currency: str = "INR",
        is_trial: bool = False,
        trial_days: int | None = None,
        *,
        payment_method: str | None = None,
        gateway_customer_id: str | None = None,
        order_id: str | None = None,
        payment_id: str | None = None,
        now: dt.datetime | None = None,
    ) -> Subscription | None:
        """Activate (or re-activate in place) a user's subscription.

        Returns:
            The active subscription, or None if the row changed concurrently
        """
        now = now or utcnow()
        existing = self.get(user_id)
        sub = self.build_activation(
            user_id,
            plan,
            amount,
            currency,
            is_trial=is_trial,
            trial_days=trial_days,
            payment_method=payment_method,
            gateway_customer_id=gateway_customer_id,
            order_id=order_id,
            payment_id=payment_id,
            existing=existing,
            now=now,
        )
        item = self._subscription_to_item(sub)
        if existing is None:
            written = self.db.put_item(
                self.TABLE, item, condition_expression="attribute_not_exists(user_id)"
            )
        else:
            written = self.db.put_item(
                self.TABLE,
                item,
                condition_expression="updated_at = :prev_updated",
                expression_attribute_values={":prev_updated": to_iso(existing.updated_at)},
            )
        if not written:
            logger.warning("Subscription for user %s changed during activation", user_id)
            return None

        self.emit(LifecycleEventType.ACTIVATED, sub, {"amount": amount, "is_trial": is_trial})
        return sub

    # === User-initiated transitions ===

    def cancel(
        self,
        user_id: str,
        reason: str | None = None,
        immediate: bool = False,
        now: dt.datetime | None = None,
    ) -> LifecycleResult:
        """Cancel an active subscription.

        Immediate cancellation ends access now; otherwise access continues
        until the existing end date. Auto-renew is always switched off.
        """
        now = now or utcnow()
        sub = self.get(user_id)
        if sub is None:
            return LifecycleResult(success=False, message=MSG_NOT_FOUND)
        if sub.status is SubscriptionStatus.CANCELLED:
            return LifecycleResult(success=False, message=MSG_ALREADY_CANCELLED)
        if sub.status is not SubscriptionStatus.ACTIVE:
            return LifecycleResult(success=False, message=MSG_NOT_FOUND)

        effective = now if immediate else sub.end_date
        values: dict[str, Any] = {
            ":cancelled": SubscriptionStatus.CANCELLED.value,
            ":active": SubscriptionStatus.ACTIVE.value,
            ":false": False,
            ":now": to_iso(now),
            ":reason": reason or "user_requested",
            ":immediate": immediate,
            ":end": to_iso(effective),
        }
        attrs = self.db.update_item(
            self.TABLE,
            {"user_id": user_id},
            "SET #status = :cancelled, auto_renew = :false, cancelled_at = :now, "
            "cancellation_reason = :reason, cancelled_immediately = :immediate, "
            "end_date = :end, updated_at = :now REMOVE next_billing_date",
            values,
            {"#status": "status"},
            condition_expression="#status = :active",
        )
        if attrs is None:
            return LifecycleResult(success=False, message=MSG_NOT_FOUND)

        cancelled = self._item_to_subscription(attrs)
        self.emit(
            LifecycleEventType.CANCELLED,
            cancelled,
            {"immediate": immediate, "reason": reason, "effective_date": to_iso(effective)},
        )
        message = (
            MSG_CANCELLED_NOW
            if immediate
            else MSG_CANCELLED_AT.format(date=effective.date().isoformat())
        )
        return LifecycleResult(success=True, message=message, effective_date=effective)

    def reactivate(self, user_id: str, now: dt.datetime | None = None) -> LifecycleResult:
        """Reactivate a cancelled subscription for one month from now."""
        now = now or utcnow()
        sub = self.get(user_id)
        if sub is None:
            return LifecycleResult(success=False, message=MSG_NOT_FOUND)
        if sub.status is not SubscriptionStatus.CANCELLED:
            return LifecycleResult(success=False, message=MSG_NOT_CANCELLED)

        end_date = add_months(now, 1)
        attrs = self.db.update_item(
            self.TABLE,
            {"user_id": user_id},
            "SET #status = :active, end_date = :end, next_billing_date = :end, "
            "auto_renew = :true, cancelled_immediately = :false, updated_at = :now "
            "REMOVE cancelled_at, cancellation_reason",
            {
                ":active": SubscriptionStatus.ACTIVE.value,
                ":cancelled": SubscriptionStatus.CANCELLED.value,
                ":end": to_iso(end_date),
                ":true": True,
                ":false": False,
                ":now": to_iso(now),
            },
            {"#status": "status"},
            condition_expression="#status = :cancelled",
        )
        if attrs is None:
            return LifecycleResult(success=False, message=MSG_NOT_CANCELLED)

        self.emit(
            LifecycleEventType.REACTIVATED,
            self._item_to_subscription(attrs),
            {"end_date": to_iso(end_date)},
        )
        return LifecycleResult(success=True, message=MSG_REACTIVATED, effective_date=end_date)

    def set_auto_renew(
        self, user_id: str, enabled: bool, now: dt.datetime | None = None
    ) -> LifecycleResult:
        """Toggle auto-renew without changing status."""
        now = now or utcnow()
        attrs = self.db.update_item(
            self.TABLE,
            {"user_id": user_id},
            "SET auto_renew = :enabled, updated_at = :now",
            {":enabled": enabled, ":now": to_iso(now)},
            condition_expression="attribute_exists(user_id)",
        )
        if attrs is None:
            return LifecycleResult(success=False, message=MSG_NOT_FOUND)

        self.emit(
            LifecycleEventType.AUTO_RENEW_UPDATED,
            self._item_to_subscription(attrs),
            {"enabled": enabled},
        )
        return LifecycleResult(
            success=True, message=MSG_AUTO_RENEW_ON if enabled else MSG_AUTO_RENEW_OFF
        )

    # === Sweep transitions ===

    def due_for_renewal(self, now: dt.datetime | None = None) -> list[Subscription]:
        """Active, auto-renewing subscriptions whose end date has passed."""
        now = now or utcnow()
        items = self.db.query_by_gsi(
            self.TABLE,
            "status-index",
            "status",
            SubscriptionStatus.ACTIVE.value,
            sort_key_condition=Key("end_date").lte(to_iso(now)),
            filter_expression=Attr("auto_renew").eq(True),
        )
        return [self._item_to_subscription(item) for item in items]

    def lapsed(self, now: dt.datetime | None = None) -> list[Subscription]:
        """Subscriptions past their end date that will not renew."""
        now = now or utcnow()
        active = self.db.query_by_gsi(
            self.TABLE,
            "status-index",
            "status",
            SubscriptionStatus.ACTIVE.value,
            sort_key_condition=Key("end_date").lte(to_iso(now)),
            filter_expression=Attr("auto_renew").eq(False),
        )
        cancelled = self.db.query_by_gsi(
            self.TABLE,
            "status-index",
            "status",
            SubscriptionStatus.CANCELLED.value,
            sort_key_condition=Key("end_date").lte(to_iso(now)),
        )
        return [self._item_to_subscription(item) for item in active + cancelled]

    def renew(
        self,
        sub: Subscription,
        payment_id: str | None = None,
        now: dt.datetime | None = None,
    ) -> Subscription | None:
        """Extend an active subscription by one calendar month.

        The period extends from the previous end date, or from now if
        that is still in the past. The write only applies if the row is
        still active with the end date that was read.

        Returns:
            The renewed subscription, or None if the row changed
        """
        now = now or utcnow()
        base = sub.end_date if sub.end_date > now else now
        new_end = add_months(base, 1)
        values: dict[str, Any] = {
            ":active": SubscriptionStatus.ACTIVE.value,
            ":prev_end": to_iso(sub.end_date),
            ":end": to_iso(new_end),
            ":now": to_iso(now),
            ":false": False,
        }
        update = (
            "SET end_date = :end, next_billing_date = :end, last_payment_date = :now, "
            "is_trial = :false, updated_at = :now"
        )
        if payment_id:
            update += ", payment_id = :payment_id"
            values[":payment_id"] = payment_id

        attrs = self.db.update_item(
            self.TABLE,
            {"user_id": sub.user_id},
            update,
            values,
            {"#status": "status"},
            condition_expression="#status = :active AND end_date = :prev_end",
        )
        if attrs is None:
            return None

        renewed = self._item_to_subscription(attrs)
        self.emit(
            LifecycleEventType.RENEWED,
            renewed,
            {"amount": sub.next_payment_amount, "end_date": to_iso(new_end)},
        )
        return renewed

    def suspend(
        self, sub: Subscription, reason: str, now: dt.datetime | None = None
    ) -> Subscription | None:
        """Suspend an active subscription after a failed renewal charge.

        Returns:
            The suspended subscription, or None if it was no longer active
        """
        now = now or utcnow()
        attrs = self.db.update_item(
            self.TABLE,
            {"user_id": sub.user_id},
            "SET #status = :suspended, suspended_at = :now, updated_at = :now",
            {
                ":suspended": SubscriptionStatus.SUSPENDED.value,
                ":active": SubscriptionStatus.ACTIVE.value,
                ":prev_end": to_iso(sub.end_date),
                ":now": to_iso(now),
            },
            {"#status": "status"},
            condition_expression="#status = :active AND end_date = :prev_end",
        )
        if attrs is None:
            return None

        suspended = self._item_to_subscription(attrs)
        self.emit(LifecycleEventType.SUSPENDED, suspended, {"reason": reason})
        return suspended

    def expire(self, sub: Subscription, now: dt.datetime | None = None) -> Subscription | None:
        """Move a lapsed active or cancelled subscription to expired."""
        now = now or utcnow()
        attrs = self.db.update_item(
            self.TABLE,
            {"user_id": sub.user_id},
            "SET #status = :expired, auto_renew = :false, updated_at = :now",
            {
                ":expired": SubscriptionStatus.EXPIRED.value,
                ":prior": sub.status.value,
                ":false": False,
                ":now": to_iso(now),
            },
            {"#status": "status"},
            condition_expression="#status = :prior AND end_date <= :now",
        )
        if attrs is None:
            return None

        expired = self._item_to_subscription(attrs)
        self.emit(LifecycleEventType.EXPIRED, expired, {"previous_status": sub.status.value})
        return expired

    # === Reporting ===

    def metrics(self, now: dt.datetime | None = None) -> SubscriptionMetrics:
        """Counts by status, cancellations this month and renewal rate."""
        now = now or utcnow()
        by_status: dict[SubscriptionStatus, list[dict[str, Any]]] = {
            status: self.db.query_by_gsi(self.TABLE, "status-index", "status", status.value)
            for status in SubscriptionStatus
        }
        active = by_status[SubscriptionStatus.ACTIVE]
        month_start = to_iso(start_of_month(now))
        cancelled_this_month = sum(
            1
            for item in by_status[SubscriptionStatus.CANCELLED]
            if item.get("cancelled_at", "") >= month_start
        )
        auto_renew = sum(1 for item in active if item.get("auto_renew"))
        return SubscriptionMetrics(
            total_subscriptions=sum(len(items) for items in by_status.values()),
            active_subscriptions=len(active),
            cancelled_this_month=cancelled_this_month,
            suspended_subscriptions=len(by_status[SubscriptionStatus.SUSPENDED]),
            auto_renew_enabled=auto_renew,
            renewal_rate=round(auto_renew / len(active), 4) if active else 0.0,
        )

    def history(self, user_id: str, limit: int | None = None) -> list[dict[str, Any]]:
        """Recorded lifecycle events for a user, newest first."""
        return self.db.query_by_gsi(
            self.EVENTS_TABLE,
            "user_id-index",
            "user_id",
            user_id,
            limit=limit,
            scan_index_forward=False,
        )

    # === Events ===

    def emit(
        self,
        event_type: LifecycleEventType,
        sub: Subscription | None = None,
        details: dict[str, Any] | None = None,
        *,
        user_id: str | None = None,
    ) -> LifecycleEvent:
        """Record and dispatch a lifecycle event. Never raises."""
        event = LifecycleEvent(
            event_id=f"SEV-{uuid.uuid4().hex[:16].upper()}",
            event_type=event_type,
            user_id=sub.user_id if sub else (user_id or ""),
            subscription_id=sub.subscription_id if sub else None,
            plan=sub.plan if sub else None,
            occurred_at=utcnow(),
            details={k: v for k, v in (details or {}).items() if v is not None},
        )
        log_subscription_event(
            logger,
            event_type.value,
            event.user_id,
            subscription_id=event.subscription_id,
            plan=event.plan,
            status=sub.status.value if sub else None,
        )

        try:
            item: dict[str, Any] = {
                "event_id": event.event_id,
                "event_type": event.event_type.value,
                "user_id": event.user_id,
                "occurred_at": to_iso(event.occurred_at),
                "details": {k: str(v) for k, v in event.details.items()},
            }
            if event.subscription_id:
                item["subscription_id"] = event.subscription_id
            if event.plan:
                item["plan"] = event.plan
            self.db.put_item(self.EVENTS_TABLE, item)
        except Exception:
            logger.exception("Failed to record lifecycle event %s", event.event_id)

        try:
            self.dispatcher.dispatch(event)
        except Exception:
            logger.exception("Failed to dispatch lifecycle event %s", event.event_id)

        return event

    # === Item conversion ===

    def _subscription_to_item(self, sub: Subscription) -> dict[str, Any]:
        """Convert Subscription model to DynamoDB item."""
        item: dict[str, Any] = {
            "user_id": sub.user_id,
            "subscription_id": sub.subscription_id,
            "plan": sub.plan,
            "status": sub.status.value,
            "start_date": to_iso(sub.start_date),
            "end_date": to_iso(sub.end_date),
            "auto_renew": sub.auto_renew,
            "is_trial": sub.is_trial,
            "next_payment_amount": sub.next_payment_amount,
            "currency": sub.currency,
            "cancelled_immediately": sub.cancelled_immediately,
            "created_at": to_iso(sub.created_at),
            "updated_at": to_iso(sub.updated_at),
        }
        optional_dates = {
            "last_payment_date": sub.last_payment_date,
            "next_billing_date": sub.next_billing_date,
            "cancelled_at": sub.cancelled_at,
            "suspended_at": sub.suspended_at,
        }
        for name, value in optional_dates.items():
            if value:
                item[name] = to_iso(value)
        optional_strings = {
            "payment_method": sub.payment_method,
            "gateway_customer_id": sub.gateway_customer_id,
            "order_id": sub.order_id,
            "payment_id": sub.payment_id,
            "cancellation_reason": sub.cancellation_reason,
        }
        for name, value in optional_strings.items():
            if value:
                item[name] = value
        return item

    def _item_to_subscription(self, item: dict[str, Any]) -> Subscription:
        """Convert DynamoDB item to Subscription model."""
        now = utcnow()
        return Subscription(
            user_id=item["user_id"],
            subscription_id=item["subscription_id"],
            plan=item["plan"],
            status=SubscriptionStatus(item["status"]),
            start_date=from_iso(item["start_date"]) or now,
            end_date=from_iso(item["end_date"]) or now,
            auto_renew=bool(item.get("auto_renew", False)),
            is_trial=bool(item.get("is_trial", False)),
            last_payment_date=from_iso(item.get("last_payment_date")),
            next_billing_date=from_iso(item.get("next_billing_date")),
            next_payment_amount=int(item.get("next_payment_amount", 0)),
            currency=item.get("currency", "INR"),
            payment_method=item.get("payment_method"),
            gateway_customer_id=item.get("gateway_customer_id"),
            order_id=item.get("order_id"),
            payment_id=item.get("payment_id"),
            cancelled_at=from_iso(item.get("cancelled_at")),
            cancellation_reason=item.get("cancellation_reason"),
            cancelled_immediately=bool(item.get("cancelled_immediately", False)),
            suspended_at=from_iso(item.get("suspended_at")),
            created_at=from_iso(item.get("created_at")) or now,
            updated_at=from_iso(item.get("updated_at")) or now,
        )
