"""FastAPI application for the billing REST API.

Serves payment verification, webhook ingestion, subscription lifecycle
operations and operator endpoints under /api. Wrapped by Mangum for
AWS Lambda + API Gateway; ``run_server`` runs it locally under uvicorn.
"""

import logging
import os
from datetime import UTC, datetime
from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from mangum import Mangum

from billing import __version__
from billing.utils.logging import configure_logging
from billing_api.exceptions import register_exception_handlers
from billing_api.middleware.correlation import CORRELATION_ID_HEADER, CorrelationIdMiddleware
from billing_api.routes import (
    admin_router,
    cron_router,
    health_router,
    payments_router,
    subscriptions_router,
    webhooks_router,
)

configure_logging(os.getenv("LOG_LEVEL", "INFO"))
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Subscription Billing API",
    description="Payment verification and subscription lifecycle operations",
    version=__version__,
)

# Configure CORS for local development
app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv(
        "CORS_ALLOW_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000"
    ).split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=[CORRELATION_ID_HEADER],
)
app.add_middleware(CorrelationIdMiddleware)

register_exception_handlers(app)

app.include_router(health_router, prefix="/api")
app.include_router(payments_router, prefix="/api")
app.include_router(webhooks_router, prefix="/api")
app.include_router(subscriptions_router, prefix="/api")
app.include_router(cron_router, prefix="/api")
app.include_router(admin_router, prefix="/api")


@app.get("/api/ping")
async def ping() -> dict[str, Any]:
    """Root health check endpoint at /api/ping."""
    return {
        "status": "ok",
        "timestamp": datetime.now(UTC).isoformat(),
        "service": "billing-api",
    }


# Lambda handler - Mangum wraps FastAPI for AWS Lambda + API Gateway
handler = Mangum(app, lifespan="off")


def run_server(host: str = "0.0.0.0", port: int = 8080, reload: bool = True) -> None:
    """Run the FastAPI server.

    Args:
        host: Host to bind to (default: 0.0.0.0)
        port: Port to listen on (default: 8080)
        reload: Enable hot reload for development (default: True)
    """
    import uvicorn

    if reload:
        # Use string reference for reload mode (uvicorn requirement)
        uvicorn.run(
            "billing_api.main:app",
            host=host,
            port=port,
            reload=True,
            reload_dirs=["backend/api/src", "backend/shared/src"],
        )
    else:
        uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    run_server()
