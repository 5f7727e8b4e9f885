"""Security audit records, kept apart from application logs.

Fraud rejections, signature violations, failed activations and unexpected
system errors on the payment path are persisted with the request metadata
for later investigation. Writing an audit record never changes the
outcome returned to the caller.
"""

import logging
import uuid
from typing import TYPE_CHECKING, Any

from billing.models import AuditRecordType, FraudCheckResult, VerificationRequest
from billing.services.schema import SECURITY_AUDIT_TABLE
from billing.utils.dates import to_iso, utcnow
from billing.utils.logging import get_correlation_id

if TYPE_CHECKING:
    from .dynamodb import DynamoDBService

logger = logging.getLogger(__name__)


class SecurityAuditLog:
    """Writes security-audit records."""

    TABLE = SECURITY_AUDIT_TABLE

    def __init__(self, db: "DynamoDBService") -> None:
        """Initialize the audit log.

        Args:
            db: DynamoDB service instance
        """
        self.db = db

    def record(
        self,
        record_type: AuditRecordType,
        request: VerificationRequest,
        *,
        reason: str,
        risk_score: float | None = None,
        fraud_checks: list[FraudCheckResult] | None = None,
        details: dict[str, Any] | None = None,
    ) -> str | None:
        """Persist one audit record.

        Args:
            record_type: Kind of record
            request: Verification request that triggered it
            reason: Short machine-readable reason
            risk_score: Aggregate fraud score, if computed
            fraud_checks: Per-check fraud results, if computed
            details: Extra context (error text, stage)

        Returns:
            The audit ID, or None if the write failed
        """
        audit_id = f"AUD-{uuid.uuid4().hex[:16].upper()}"
        item: dict[str, Any] = {
            "audit_id": audit_id,
            "record_type": record_type.value,
            "reason": reason,
            "created_at": to_iso(utcnow()),
            "order_id": request.order_id or "",
            "payment_id": request.payment_id or "",
            "user_id": request.user_id or "",
            "user_email": request.user_email or "",
        }
        if request.user_agent:
            item["user_agent"] = request.user_agent
        if request.ip_address:
            item["ip_address"] = request.ip_address
        if request.device_fingerprint:
            item["device_fingerprint"] = request.device_fingerprint
        if risk_score is not None:
            item["risk_score"] = str(risk_score)
        if fraud_checks:
            item["fraud_checks"] = [
                {
                    "check": c.check,
                    "passed": c.passed,
                    "score": str(c.score),
                    "details": c.details,
                }
                for c in fraud_checks
            ]
        if details:
            item["details"] = {k: str(v) for k, v in details.items()}
        correlation_id = get_correlation_id()
        if correlation_id:
            item["correlation_id"] = correlation_id

        try:
            self.db.put_item(self.TABLE, item)
        except Exception:
            logger.exception(
                "Failed to write %s audit record for order %s",
                record_type.value,
                request.order_id,
            )
            return None

        logger.warning(
            "Security audit %s: %s (order=%s user=%s)",
            record_type.value,
            reason,
            request.order_id,
            request.user_id,
        )
        return audit_id
