"""Health check endpoint."""

from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter, Depends

from billing import __version__
from billing.config import Settings
from billing_api.dependencies import get_app_settings

router = APIRouter(tags=["health"])


@router.get("/health", summary="Health check")
async def health(settings: Settings = Depends(get_app_settings)) -> dict[str, Any]:
    """Liveness probe; does not touch DynamoDB or secrets."""
    return {
        "status": "ok",
        "service": "billing-api",
        "version": __version__,
        "environment": settings.environment,
        "timestamp": datetime.now(UTC).isoformat(),
    }
