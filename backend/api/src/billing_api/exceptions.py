"""FastAPI exception handlers for converting billing errors to HTTP responses.

The ErrorCode-to-HTTP status mapping:
- 400 Bad Request: malformed input (including request-body validation), bad signatures
- 401 Unauthorized: missing or wrong bearer token
- 403 Forbidden: fraud and account-match rejections
- 404 Not Found: unknown order, subscription or webhook event
- 500 Internal Server Error: activation and system failures

Usage:
    from billing_api.exceptions import register_exception_handlers
    register_exception_handlers(app)
"""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.status import (
    HTTP_400_BAD_REQUEST,
    HTTP_401_UNAUTHORIZED,
    HTTP_403_FORBIDDEN,
    HTTP_404_NOT_FOUND,
    HTTP_500_INTERNAL_SERVER_ERROR,
)

from billing.models import VerificationResult
from billing.models.errors import (
    ERROR_MESSAGES,
    BillingError,
    ConfigurationError,
    ErrorCode,
    ErrorResponse,
)

logger = logging.getLogger(__name__)

# Map ErrorCode to HTTP status codes
ERROR_CODE_TO_HTTP_STATUS: dict[ErrorCode, int] = {
    ErrorCode.INVALID_REQUEST: HTTP_400_BAD_REQUEST,
    ErrorCode.INVALID_SIGNATURE: HTTP_400_BAD_REQUEST,
    ErrorCode.INVALID_WEBHOOK_SIGNATURE: HTTP_400_BAD_REQUEST,
    ErrorCode.UNAUTHORIZED: HTTP_401_UNAUTHORIZED,
    ErrorCode.HIGH_RISK_PAYMENT: HTTP_403_FORBIDDEN,
    ErrorCode.USER_VERIFICATION_FAILED: HTTP_403_FORBIDDEN,
    ErrorCode.ORDER_NOT_FOUND: HTTP_404_NOT_FOUND,
    ErrorCode.SUBSCRIPTION_NOT_FOUND: HTTP_404_NOT_FOUND,
    ErrorCode.WEBHOOK_EVENT_NOT_FOUND: HTTP_404_NOT_FOUND,
    ErrorCode.ACTIVATION_FAILED: HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorCode.SYSTEM_ERROR: HTTP_500_INTERNAL_SERVER_ERROR,
}


def get_http_status_for_error(code: ErrorCode | str) -> int:
    """Get HTTP status code for an ErrorCode (or its string value).

    Returns:
        HTTP status code, defaults to 400 if not explicitly mapped.
    """
    try:
        return ERROR_CODE_TO_HTTP_STATUS.get(ErrorCode(code), HTTP_400_BAD_REQUEST)
    except ValueError:
        return HTTP_400_BAD_REQUEST


async def billing_error_handler(request: Request, exc: BillingError) -> JSONResponse:
    """Convert a BillingError to a JSON ErrorResponse with a mapped status."""
    return JSONResponse(
        status_code=get_http_status_for_error(exc.code),
        content=exc.to_error_response().model_dump(mode="json"),
    )


VERIFY_PATH_SUFFIX = "/payments/verify"


def _validation_details(exc: RequestValidationError) -> dict[str, str]:
    details: dict[str, str] = {}
    for error in exc.errors():
        loc = [str(part) for part in error.get("loc", ())]
        field = ".".join(loc[1:]) or (loc[0] if loc else "body")
        details[field] = error.get("msg", "Invalid value")
    return details


async def validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Malformed request bodies answer 400 INVALID_REQUEST.

    The verify endpoint keeps its VerificationResult shape for every failure.
    """
    details = _validation_details(exc)
    logger.info("Rejected malformed request on %s: %s", request.url.path, details)
    if request.url.path.endswith(VERIFY_PATH_SUFFIX):
        result = VerificationResult(
            success=False,
            message=ERROR_MESSAGES[ErrorCode.INVALID_REQUEST],
            error="; ".join(f"{field}: {msg}" for field, msg in details.items()),
            code=ErrorCode.INVALID_REQUEST.value,
        )
        return JSONResponse(
            status_code=HTTP_400_BAD_REQUEST,
            content=result.model_dump(mode="json", by_alias=True, exclude_none=True),
        )
    return JSONResponse(
        status_code=HTTP_400_BAD_REQUEST,
        content=ErrorResponse.from_code(ErrorCode.INVALID_REQUEST, details).model_dump(
            mode="json"
        ),
    )


async def configuration_error_handler(
    request: Request, exc: ConfigurationError
) -> JSONResponse:
    """Missing settings or secrets: log the cause, hide it from the client."""
    logger.error("Configuration error on %s: %s", request.url.path, exc)
    return JSONResponse(
        status_code=HTTP_500_INTERNAL_SERVER_ERROR,
        content=ErrorResponse.from_code(ErrorCode.SYSTEM_ERROR).model_dump(mode="json"),
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Fallback for uncaught exceptions; never exposes internal details."""
    logger.exception("Unhandled exception: %s", exc)
    return JSONResponse(
        status_code=HTTP_500_INTERNAL_SERVER_ERROR,
        content=ErrorResponse.from_code(ErrorCode.SYSTEM_ERROR).model_dump(mode="json"),
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI app.

    Args:
        app: The FastAPI application instance.
    """
    app.add_exception_handler(BillingError, billing_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, validation_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(ConfigurationError, configuration_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, generic_exception_handler)
