"""Manual trigger for the renewal sweep.

The sweep normally runs from the scheduled handler in
``billing_api.scheduled``; this endpoint is the operator/test override,
guarded by the same bearer token as the admin endpoints.
"""

import logging

from fastapi import APIRouter, Depends

from billing.services.renewal import RenewalSweeper
from billing_api.dependencies import get_renewal_sweeper
from billing_api.models.operations import SweepResponse
from billing_api.security import require_bearer_token

logger = logging.getLogger(__name__)

router = APIRouter(tags=["cron"], dependencies=[Depends(require_bearer_token)])


@router.post(
    "/cron/process-renewals",
    summary="Run renewal sweep",
    description="Renew, suspend and expire due subscriptions. Requires the bearer token.",
    response_model=SweepResponse,
    responses={401: {"description": "Missing or invalid bearer token"}},
)
async def process_renewals(
    sweeper: RenewalSweeper = Depends(get_renewal_sweeper),
) -> SweepResponse:
    logger.info("Renewal sweep triggered over HTTP")
    return SweepResponse(**sweeper.run().to_dict())
