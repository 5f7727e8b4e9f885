"""Bearer-token guard for scheduler and operator endpoints."""

import hmac
import logging

from fastapi import Depends, Header

from billing.models.errors import BillingError, ErrorCode
from billing_api.dependencies import get_renewal_trigger_token

logger = logging.getLogger(__name__)


def _bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        return None
    return token.strip()


def require_bearer_token(
    authorization: str | None = Header(default=None),
    expected: str = Depends(get_renewal_trigger_token),
) -> None:
    """Reject the request unless it carries the shared bearer token.

    Raises:
        BillingError: UNAUTHORIZED on a missing or wrong token
    """
    token = _bearer_token(authorization)
    if token is None or not hmac.compare_digest(
        token.encode("utf-8"), expected.encode("utf-8")
    ):
        logger.warning("Rejected request with missing or invalid bearer token")
        raise BillingError(ErrorCode.UNAUTHORIZED)
