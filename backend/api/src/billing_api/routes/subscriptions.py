"""Subscription lifecycle endpoints.

Illegal transitions (cancelling a cancelled subscription, reactivating an
active one) are answered with 400 and ``success: false``, not errors.
"""

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from starlette.status import HTTP_200_OK, HTTP_400_BAD_REQUEST

from billing.models import BillingError, ErrorCode, LifecycleResult
from billing.services.subscription_lifecycle import SubscriptionLifecycleManager
from billing_api.dependencies import get_lifecycle_manager
from billing_api.models.subscriptions import (
    AutoRenewRequest,
    CancelSubscriptionRequest,
    ReactivateSubscriptionRequest,
    SubscriptionStatusResponse,
)

router = APIRouter(tags=["subscriptions"])


def _result_response(result: LifecycleResult) -> JSONResponse:
    return JSONResponse(
        status_code=HTTP_200_OK if result.success else HTTP_400_BAD_REQUEST,
        content=result.model_dump(mode="json", by_alias=True, exclude_none=True),
    )


@router.post(
    "/subscriptions/cancel",
    summary="Cancel subscription",
    description="""
Cancel an active subscription. Without `immediate`, access continues until
the current end date; auto-renew is switched off either way.
""",
    response_model=LifecycleResult,
)
async def cancel_subscription(
    body: CancelSubscriptionRequest,
    lifecycle: SubscriptionLifecycleManager = Depends(get_lifecycle_manager),
) -> JSONResponse:
    return _result_response(lifecycle.cancel(body.user_id, body.reason, body.immediate))


@router.post(
    "/subscriptions/reactivate",
    summary="Reactivate subscription",
    description="Reactivate a cancelled subscription for one month from now.",
    response_model=LifecycleResult,
)
async def reactivate_subscription(
    body: ReactivateSubscriptionRequest,
    lifecycle: SubscriptionLifecycleManager = Depends(get_lifecycle_manager),
) -> JSONResponse:
    return _result_response(lifecycle.reactivate(body.user_id))


@router.post(
    "/subscriptions/auto-renew",
    summary="Toggle auto-renewal",
    response_model=LifecycleResult,
)
async def set_auto_renew(
    body: AutoRenewRequest,
    lifecycle: SubscriptionLifecycleManager = Depends(get_lifecycle_manager),
) -> JSONResponse:
    return _result_response(lifecycle.set_auto_renew(body.user_id, body.enabled))


@router.get(
    "/subscriptions/status",
    summary="Get subscription status",
    response_model=SubscriptionStatusResponse,
    response_model_exclude_none=True,
    responses={404: {"description": "No subscription for this user"}},
)
async def get_subscription_status(
    user_id: str = Query(..., alias="userId", min_length=1),
    lifecycle: SubscriptionLifecycleManager = Depends(get_lifecycle_manager),
) -> SubscriptionStatusResponse:
    snapshot = lifecycle.get_status(user_id)
    if snapshot is None:
        raise BillingError(ErrorCode.SUBSCRIPTION_NOT_FOUND, {"user_id": user_id})
    return SubscriptionStatusResponse(success=True, subscription=snapshot)
