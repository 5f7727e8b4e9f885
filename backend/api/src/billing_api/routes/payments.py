"""Payment endpoints.

Provides REST endpoints for:
- Registering a gateway order for a plan purchase
- Reading the client-visible payment session status
- Cancelling or retrying a payment session
- Synchronous verification of the gateway redirect
"""

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from starlette.status import HTTP_200_OK, HTTP_201_CREATED

from billing.models import (
    BillingError,
    ErrorCode,
    OrderStatus,
    SessionAction,
    VerificationRequest,
    VerificationResult,
)
from billing.services.checkout import CheckoutService
from billing.services.order_store import OrderStore
from billing.services.payment_state_store import PaymentStateStore
from billing.services.payment_verifier import PaymentVerifier
from billing_api.dependencies import (
    get_checkout_service,
    get_order_store,
    get_payment_state_store,
    get_payment_verifier,
)
from billing_api.exceptions import get_http_status_for_error
from billing_api.models.payments import (
    CreateOrderRequest,
    PaymentSessionResponse,
    SessionActionRequest,
)

router = APIRouter(tags=["payments"])


def client_ip(request: Request) -> str | None:
    """First hop of X-Forwarded-For, else the socket peer."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    return request.client.host if request.client else None


@router.post(
    "/payments/orders",
    summary="Create payment order",
    description="""
Register the gateway order for a plan purchase and open its first payment
session. The amount comes from the plan catalog.
""",
    response_model=PaymentSessionResponse,
    status_code=HTTP_201_CREATED,
    responses={400: {"description": "Unknown plan or duplicate order ID"}},
)
async def create_order(
    body: CreateOrderRequest,
    checkout: CheckoutService = Depends(get_checkout_service),
) -> PaymentSessionResponse:
    order, session = checkout.create_order(
        user_id=body.user_id,
        plan=body.plan,
        order_id=body.order_id,
        currency=body.currency,
        device_fingerprint=body.device_fingerprint,
        gateway_customer_id=body.gateway_customer_id,
        payment_method_id=body.payment_method_id,
    )
    return PaymentSessionResponse.build(order, session)


@router.get(
    "/payments/orders/{order_id}/status",
    summary="Get payment status",
    description="Current payment session of an order. Overdue pending sessions read as expired.",
    response_model=PaymentSessionResponse,
    responses={404: {"description": "Order not found for this user"}},
)
async def get_payment_status(
    order_id: str,
    user_id: str = Query(..., min_length=1),
    orders: OrderStore = Depends(get_order_store),
    states: PaymentStateStore = Depends(get_payment_state_store),
) -> PaymentSessionResponse:
    order = orders.get_for_user(order_id, user_id)
    if order is None:
        raise BillingError(ErrorCode.ORDER_NOT_FOUND, {"order_id": order_id})
    return PaymentSessionResponse.build(order, states.get(order_id))


@router.post(
    "/payments/orders/{order_id}/session",
    summary="Cancel or retry payment session",
    description="""
`cancel` closes the pending session. `retry` opens a new session after a
failed, expired or cancelled one, without creating a new order.
""",
    response_model=PaymentSessionResponse,
    responses={
        400: {"description": "No session in a state that allows the action"},
        404: {"description": "Order not found for this user"},
    },
)
async def update_payment_session(
    order_id: str,
    body: SessionActionRequest,
    orders: OrderStore = Depends(get_order_store),
    states: PaymentStateStore = Depends(get_payment_state_store),
) -> PaymentSessionResponse:
    order = orders.get_for_user(order_id, body.user_id)
    if order is None:
        raise BillingError(ErrorCode.ORDER_NOT_FOUND, {"order_id": order_id})

    if body.action is SessionAction.CANCEL:
        session = states.cancel(order_id)
        if session is None:
            raise BillingError(
                ErrorCode.INVALID_REQUEST, {"session": "No pending session to cancel"}
            )
        return PaymentSessionResponse.build(order, session)

    if order.status is not OrderStatus.CREATED:
        raise BillingError(
            ErrorCode.INVALID_REQUEST, {"order": f"Order is {order.status.value}"}
        )
    session = states.retry(order)
    if session is None:
        raise BillingError(
            ErrorCode.INVALID_REQUEST, {"session": "Payment already succeeded"}
        )
    return PaymentSessionResponse.build(order, session)


@router.get(
    "/payments/sessions",
    summary="List payment sessions",
    description="A user's payment sessions, newest first.",
    response_model=list[PaymentSessionResponse],
)
async def list_payment_sessions(
    user_id: str = Query(..., min_length=1),
    pending_only: bool = Query(default=False),
    orders: OrderStore = Depends(get_order_store),
    states: PaymentStateStore = Depends(get_payment_state_store),
) -> list[PaymentSessionResponse]:
    sessions = states.pending_for_user(user_id) if pending_only else states.history(user_id)
    responses = []
    for session in sessions:
        order = orders.get(session.order_id)
        if order is not None:
            responses.append(PaymentSessionResponse.build(order, session))
    return responses


@router.post(
    "/payments/verify",
    summary="Verify payment",
    description="""
Verify the signed gateway redirect and activate the subscription.

**Idempotent**: verifying an order that is already paid returns success
with the existing subscription.

Failures carry a `code`: INVALID_REQUEST, HIGH_RISK_PAYMENT,
INVALID_SIGNATURE, USER_VERIFICATION_FAILED, ORDER_NOT_FOUND,
ACTIVATION_FAILED or SYSTEM_ERROR.
""",
    response_model=VerificationResult,
    response_model_exclude_none=True,
    responses={
        400: {"description": "Malformed request or invalid signature"},
        403: {"description": "High-risk payment or account mismatch"},
        404: {"description": "Order not found"},
        500: {"description": "Activation or system failure"},
    },
)
async def verify_payment(
    request: Request,
    body: VerificationRequest,
    verifier: PaymentVerifier = Depends(get_payment_verifier),
) -> JSONResponse:
    if not body.user_agent:
        body.user_agent = request.headers.get("User-Agent")
    if not body.ip_address:
        body.ip_address = client_ip(request)

    result = verifier.verify(body)
    status_code = HTTP_200_OK if result.success else get_http_status_for_error(result.code or "")
    return JSONResponse(
        status_code=status_code,
        content=result.model_dump(mode="json", by_alias=True, exclude_none=True),
    )
