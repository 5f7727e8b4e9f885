"""Append-only revenue ledger, one entry per gateway payment.

Entries are never deleted and only their status advances:
pending -> confirmed | failed, and confirmed -> refunded. Keying by the
gateway payment ID means the webhook and synchronous paths converge on a
single entry for the same payment.
"""

import datetime as dt
import logging
from typing import TYPE_CHECKING, Any

from billing.models import LedgerSource, LedgerStatus, RevenueLedgerEntry, RevenueSummary
from billing.services.dynamodb import serialize
from billing.services.schema import REVENUE_LEDGER_TABLE
from billing.utils.dates import from_iso, to_iso, utcnow

if TYPE_CHECKING:
    from .dynamodb import DynamoDBService

logger = logging.getLogger(__name__)


class RevenueLedger:
    """Store for RevenueLedgerEntry records."""

    TABLE = REVENUE_LEDGER_TABLE

    def __init__(self, db: "DynamoDBService") -> None:
        """Initialize the ledger.

        Args:
            db: DynamoDB service instance
        """
        self.db = db

    def get(self, payment_id: str) -> RevenueLedgerEntry | None:
        """Get the entry for a gateway payment."""
        item = self.db.get_item(self.TABLE, {"payment_id": payment_id}, consistent_read=True)
        return self._item_to_entry(item) if item else None

    def append(self, entry: RevenueLedgerEntry) -> bool:
        """Append a new entry.

        Returns:
            True if appended, False if the payment already has an entry
        """
        appended = self.db.put_item(
            self.TABLE,
            self._entry_to_item(entry),
            condition_expression="attribute_not_exists(payment_id)",
        )
        if appended:
            logger.info(
                "Ledger entry %s appended (%s, %s)",
                entry.payment_id,
                entry.status.value,
                entry.source.value,
            )
        return appended

    def confirm_transact_item(
        self, entry: RevenueLedgerEntry, now: dt.datetime
    ) -> dict[str, Any]:
        """Transaction item that creates a confirmed entry or confirms a pending one.

        An entry first recorded by the webhook path keeps its original
        source and creation time.
        """
        return {
            "Update": {
                "TableName": self.db.table_name(self.TABLE),
                "Key": {"payment_id": {"S": entry.payment_id}},
                "UpdateExpression": (
                    "SET #status = :confirmed, confirmed_at = :now, updated_at = :now, "
                    "order_id = :order_id, user_id = :user_id, #amount = :amount, "
                    "#currency = :currency, #plan = :plan, "
                    "#source = if_not_exists(#source, :source), "
                    "created_at = if_not_exists(created_at, :now)"
                ),
                "ConditionExpression": (
                    "attribute_not_exists(payment_id) OR #status = :pending"
                ),
                "ExpressionAttributeNames": {
                    "#status": "status",
                    "#source": "source",
                    "#amount": "amount",
                    "#currency": "currency",
                    "#plan": "plan",
                },
                "ExpressionAttributeValues": serialize(
                    {
                        ":confirmed": LedgerStatus.CONFIRMED.value,
                        ":pending": LedgerStatus.PENDING.value,
                        ":now": to_iso(now),
                        ":order_id": entry.order_id,
                        ":user_id": entry.user_id,
                        ":amount": entry.amount,
                        ":currency": entry.currency,
                        ":plan": entry.plan,
                        ":source": entry.source.value,
                    }
                ),
            }
        }

    def _advance(
        self,
        payment_id: str,
        from_status: LedgerStatus,
        to_status: LedgerStatus,
        fields: dict[str, Any] | None = None,
        now: dt.datetime | None = None,
    ) -> RevenueLedgerEntry | None:
        now = now or utcnow()
        values: dict[str, Any] = {
            ":to": to_status.value,
            ":from": from_status.value,
            ":now": to_iso(now),
        }
        names = {"#status": "status"}
        assignments = ["#status = :to", "updated_at = :now"]
        for i, (name, value) in enumerate((fields or {}).items()):
            names[f"#f{i}"] = name
            values[f":f{i}"] = value
            assignments.append(f"#f{i} = :f{i}")

        attrs = self.db.update_item(
            self.TABLE,
            {"payment_id": payment_id},
            "SET " + ", ".join(assignments),
            values,
            names,
            condition_expression="#status = :from",
        )
        if attrs is None:
            logger.info(
                "Ledger entry %s not advanced %s -> %s",
                payment_id,
                from_status.value,
                to_status.value,
            )
            return None
        return self._item_to_entry(attrs)

    def confirm(self, payment_id: str, now: dt.datetime | None = None) -> RevenueLedgerEntry | None:
        """Confirm a pending entry."""
        now = now or utcnow()
        return self._advance(
            payment_id,
            LedgerStatus.PENDING,
            LedgerStatus.CONFIRMED,
            {"confirmed_at": to_iso(now)},
            now,
        )

    def mark_failed(
        self, payment_id: str, reason: str | None = None, now: dt.datetime | None = None
    ) -> RevenueLedgerEntry | None:
        """Fail a pending entry."""
        return self._advance(
            payment_id,
            LedgerStatus.PENDING,
            LedgerStatus.FAILED,
            {"failure_reason": reason or "payment_failed"},
            now,
        )

    def mark_refunded(
        self, payment_id: str, refund_id: str, now: dt.datetime | None = None
    ) -> RevenueLedgerEntry | None:
        """Refund a confirmed entry."""
        return self._advance(
            payment_id,
            LedgerStatus.CONFIRMED,
            LedgerStatus.REFUNDED,
            {"refund_id": refund_id},
            now,
        )

    def list_entries(
        self, status: LedgerStatus | None = None, limit: int | None = 100
    ) -> list[RevenueLedgerEntry]:
        """Entries, newest first, optionally restricted to one status."""
        statuses = [status] if status else list(LedgerStatus)
        entries: list[RevenueLedgerEntry] = []
        for s in statuses:
            items = self.db.query_by_gsi(
                self.TABLE,
                "status-index",
                "status",
                s.value,
                limit=limit,
                scan_index_forward=False,
            )
            entries.extend(self._item_to_entry(item) for item in items)
        entries.sort(key=lambda e: e.created_at, reverse=True)
        return entries[:limit] if limit else entries

    def summary(self) -> RevenueSummary:
        """Totals and counts by status across the whole ledger."""
        totals: dict[LedgerStatus, tuple[int, int]] = {}
        for status in LedgerStatus:
            items = self.db.query_by_gsi(self.TABLE, "status-index", "status", status.value)
            totals[status] = (len(items), sum(int(item.get("amount", 0)) for item in items))

        return RevenueSummary(
            total_revenue=totals[LedgerStatus.CONFIRMED][1],
            pending_revenue=totals[LedgerStatus.PENDING][1],
            refunded_revenue=totals[LedgerStatus.REFUNDED][1],
            total_transactions=sum(count for count, _ in totals.values()),
            confirmed_transactions=totals[LedgerStatus.CONFIRMED][0],
            pending_transactions=totals[LedgerStatus.PENDING][0],
            failed_transactions=totals[LedgerStatus.FAILED][0],
            refunded_transactions=totals[LedgerStatus.REFUNDED][0],
        )

    def _entry_to_item(self, entry: RevenueLedgerEntry) -> dict[str, Any]:
        """Convert RevenueLedgerEntry model to DynamoDB item."""
        item: dict[str, Any] = {
            "payment_id": entry.payment_id,
            "order_id": entry.order_id,
            "user_id": entry.user_id,
            "amount": entry.amount,
            "currency": entry.currency,
            "plan": entry.plan,
            "status": entry.status.value,
            "source": entry.source.value,
            "created_at": to_iso(entry.created_at),
        }
        if entry.confirmed_at:
            item["confirmed_at"] = to_iso(entry.confirmed_at)
        if entry.updated_at:
            item["updated_at"] = to_iso(entry.updated_at)
        if entry.failure_reason:
            item["failure_reason"] = entry.failure_reason
        if entry.refund_id:
            item["refund_id"] = entry.refund_id
        return item

    def _item_to_entry(self, item: dict[str, Any]) -> RevenueLedgerEntry:
        """Convert DynamoDB item to RevenueLedgerEntry model."""
        return RevenueLedgerEntry(
            payment_id=item["payment_id"],
            order_id=item["order_id"],
            user_id=item["user_id"],
            amount=int(item["amount"]),
            currency=item.get("currency", "INR"),
            plan=item["plan"],
            status=LedgerStatus(item["status"]),
            source=LedgerSource(item["source"]),
            created_at=from_iso(item.get("created_at")) or utcnow(),
            confirmed_at=from_iso(item.get("confirmed_at")),
            updated_at=from_iso(item.get("updated_at")),
            failure_reason=item.get("failure_reason"),
            refund_id=item.get("refund_id"),
        )
