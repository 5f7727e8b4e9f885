"""Standard error codes for the billing engine.

Codes are surfaced verbatim in API responses (the ``code`` field), so their
values are the public identifiers clients match on.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict


class ErrorCode(str, Enum):
    """Error taxonomy shared by the verification path and the HTTP layer."""

    # Caller errors
    INVALID_REQUEST = "INVALID_REQUEST"

    # Security-relevant rejections (never auto-retried, always audited)
    HIGH_RISK_PAYMENT = "HIGH_RISK_PAYMENT"
    INVALID_SIGNATURE = "INVALID_SIGNATURE"
    INVALID_WEBHOOK_SIGNATURE = "INVALID_WEBHOOK_SIGNATURE"
    UNAUTHORIZED = "UNAUTHORIZED"

    # Data-integrity errors
    USER_VERIFICATION_FAILED = "USER_VERIFICATION_FAILED"
    ORDER_NOT_FOUND = "ORDER_NOT_FOUND"
    SUBSCRIPTION_NOT_FOUND = "SUBSCRIPTION_NOT_FOUND"
    WEBHOOK_EVENT_NOT_FOUND = "WEBHOOK_EVENT_NOT_FOUND"

    # System errors
    ACTIVATION_FAILED = "ACTIVATION_FAILED"
    SYSTEM_ERROR = "SYSTEM_ERROR"


# Human-readable error messages
ERROR_MESSAGES: dict[ErrorCode, str] = {
    ErrorCode.INVALID_REQUEST: "Missing or malformed payment verification parameters.",
    ErrorCode.HIGH_RISK_PAYMENT: (
        "Payment verification failed due to security concerns. Please contact support."
    ),
    ErrorCode.INVALID_SIGNATURE: (
        "Invalid payment signature. This could be a security issue. "
        "Please contact support immediately."
    ),
    ErrorCode.INVALID_WEBHOOK_SIGNATURE: "Invalid webhook signature",
    ErrorCode.UNAUTHORIZED: "Unauthorized",
    ErrorCode.USER_VERIFICATION_FAILED: "User verification failed. Please contact support.",
    ErrorCode.ORDER_NOT_FOUND: (
        "Payment order not found. Please contact support with your payment ID."
    ),
    ErrorCode.SUBSCRIPTION_NOT_FOUND: "No active subscription found",
    ErrorCode.WEBHOOK_EVENT_NOT_FOUND: "Webhook event not found",
    ErrorCode.ACTIVATION_FAILED: (
        "Payment verification succeeded but subscription activation failed. "
        "Please contact support."
    ),
    ErrorCode.SYSTEM_ERROR: (
        "Payment verification failed due to a system error. "
        "Please contact support immediately."
    ),
}

# Support pointers returned alongside the message
ERROR_RECOVERY: dict[ErrorCode, str] = {
    ErrorCode.INVALID_REQUEST: "Check the request fields and try again",
    ErrorCode.HIGH_RISK_PAYMENT: "Contact support; do not retry the payment",
    ErrorCode.INVALID_SIGNATURE: "Contact support; do not retry the verification",
    ErrorCode.INVALID_WEBHOOK_SIGNATURE: "Verify webhook secret configuration",
    ErrorCode.UNAUTHORIZED: "Provide a valid bearer token",
    ErrorCode.USER_VERIFICATION_FAILED: "Contact support with your account email",
    ErrorCode.ORDER_NOT_FOUND: "Contact support with your payment ID",
    ErrorCode.SUBSCRIPTION_NOT_FOUND: "Subscribe to a plan first",
    ErrorCode.WEBHOOK_EVENT_NOT_FOUND: "Verify the event ID",
    ErrorCode.ACTIVATION_FAILED: "Contact support; the payment will be reconciled manually",
    ErrorCode.SYSTEM_ERROR: "Contact support with your payment ID",
}


class ErrorResponse(BaseModel):
    """Standard error body for billing failures."""

    model_config = ConfigDict(strict=True)

    success: bool = False
    code: ErrorCode
    message: str
    recovery: str
    details: Optional[dict[str, str]] = None

    @classmethod
    def from_code(
        cls,
        code: ErrorCode,
        details: Optional[dict[str, str]] = None,
    ) -> "ErrorResponse":
        """Create an ErrorResponse from an error code.

        Args:
            code: The error code
            details: Optional additional context about the error

        Returns:
            An ErrorResponse with the message and recovery hint for the code.
        """
        return cls(
            code=code,
            message=ERROR_MESSAGES[code],
            recovery=ERROR_RECOVERY[code],
            details=details,
        )


class BillingError(Exception):
    """Exception raised by billing operations at the HTTP boundary.

    Converted to an ErrorResponse by the API exception handlers.
    """

    def __init__(
        self,
        code: ErrorCode,
        details: Optional[dict[str, str]] = None,
    ):
        self.code = code
        self.message = ERROR_MESSAGES[code]
        self.recovery = ERROR_RECOVERY[code]
        self.details = details
        super().__init__(self.message)

    def to_error_response(self) -> ErrorResponse:
        """Convert this exception to an ErrorResponse."""
        return ErrorResponse.from_code(self.code, self.details)


class ConfigurationError(Exception):
    """Raised when a required setting or secret is missing."""

    pass
