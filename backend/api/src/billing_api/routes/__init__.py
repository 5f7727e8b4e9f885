"""API routes package.

Routers are organized by domain:

- health: Health check
- payments: Checkout, payment sessions and synchronous verification
- webhooks: Gateway webhook ingestion
- subscriptions: Cancel, reactivate, auto-renew and status
- cron: Manual renewal sweep trigger
- admin: Operator endpoints

All routers are registered in main.py with /api prefix.
"""

from billing_api.routes.admin import router as admin_router
from billing_api.routes.cron import router as cron_router
from billing_api.routes.health import router as health_router
from billing_api.routes.payments import router as payments_router
from billing_api.routes.subscriptions import router as subscriptions_router
from billing_api.routes.webhooks import router as webhooks_router

__all__ = [
    "admin_router",
    "cron_router",
    "health_router",
    "payments_router",
    "subscriptions_router",
    "webhooks_router",
]
