"""Contract tests for the health, cron and admin endpoints.

Test categories:
- Health and ping (no auth)
- Bearer token guard (401)
- Renewal sweep trigger
- Webhook inspection and re-drive, revenue summary, metrics
"""

import datetime as dt
import json
import os

import pytest
from starlette.status import HTTP_200_OK, HTTP_401_UNAUTHORIZED, HTTP_404_NOT_FOUND

from billing.services.signature import compute_webhook_signature
from billing.utils.dates import utcnow

TEST_USER_ID = "5b0c2d4e-8f1a-4c3b-9d2e-7a6f5e4d3c2b"


class TestHealth:
    def test_health(self, api_client):
        response = api_client.get("/api/health")
        assert response.status_code == HTTP_200_OK
        data = response.json()
        assert data["status"] == "ok"
        assert data["environment"] == "test"

    def test_ping(self, api_client):
        assert api_client.get("/api/ping").json()["status"] == "ok"

    def test_correlation_id_is_echoed(self, api_client):
        response = api_client.get("/api/health", headers={"X-Correlation-ID": "corr-123"})
        assert response.headers["X-Correlation-ID"] == "corr-123"


class TestBearerToken:
    @pytest.mark.parametrize(
        "method,path",
        [
            ("post", "/api/cron/process-renewals"),
            ("get", "/api/admin/webhooks"),
            ("get", "/api/admin/revenue/summary"),
            ("get", "/api/admin/subscriptions/metrics"),
        ],
    )
    def test_missing_token_returns_401(self, api_client, method, path):
        response = getattr(api_client, method)(path)
        assert response.status_code == HTTP_401_UNAUTHORIZED
        assert response.json()["code"] == "UNAUTHORIZED"

    def test_wrong_token_returns_401(self, api_client):
        response = api_client.post(
            "/api/cron/process-renewals", headers={"Authorization": "Bearer not-the-token"}
        )
        assert response.status_code == HTTP_401_UNAUTHORIZED

    def test_non_bearer_scheme_returns_401(self, api_client):
        token = os.environ["RENEWAL_TRIGGER_TOKEN"]
        response = api_client.get("/api/admin/webhooks", headers={"Authorization": f"Basic {token}"})
        assert response.status_code == HTTP_401_UNAUTHORIZED


class TestRenewalTrigger:
    def test_sweep_suspends_subscription_without_saved_method(
        self, api_client, auth_headers, lifecycle
    ):
        lifecycle.activate(
            TEST_USER_ID, "pro", 99900, now=utcnow() - dt.timedelta(days=40)
        )

        response = api_client.post("/api/cron/process-renewals", headers=auth_headers)

        assert response.status_code == HTTP_200_OK
        assert response.json() == {"processed": 0, "errors": 1, "skipped": 0, "expired": 0}
        assert lifecycle.get(TEST_USER_ID).status.value == "suspended"

    def test_empty_sweep(self, api_client, auth_headers):
        response = api_client.post("/api/cron/process-renewals", headers=auth_headers)
        assert response.json()["processed"] == 0


class TestAdmin:
    def test_retry_unknown_event_returns_404(self, api_client, auth_headers):
        response = api_client.post("/api/admin/webhooks/evt_missing/retry", headers=auth_headers)
        assert response.status_code == HTTP_404_NOT_FOUND
        assert response.json()["code"] == "WEBHOOK_EVENT_NOT_FOUND"

    def test_failed_event_is_listed_and_retried(self, api_client, auth_headers):
        payload = {
            "id": "evt_early01",
            "event": "payment.captured",
            "payload": {
                "payment": {
                    "entity": {
                        "id": "pay_early01",
                        "order_id": "order_early01",
                        "amount": 99900,
                        "currency": "INR",
                    }
                }
            },
        }
        body = json.dumps(payload).encode("utf-8")
        api_client.post(
            "/api/webhooks/gateway",
            content=body,
            headers={
                "X-Webhook-Signature": compute_webhook_signature(
                    body, os.environ["GATEWAY_WEBHOOK_SECRET"]
                )
            },
        )

        failed = api_client.get(
            "/api/admin/webhooks", params={"status": "failed"}, headers=auth_headers
        ).json()
        assert [e["eventId"] for e in failed] == ["evt_early01"]
        assert "order_early01" in failed[0]["errorMessage"]

        api_client.post(
            "/api/payments/orders",
            json={"userId": TEST_USER_ID, "plan": "pro", "orderId": "order_early01"},
        )
        response = api_client.post("/api/admin/webhooks/evt_early01/retry", headers=auth_headers)

        assert response.status_code == HTTP_200_OK
        assert response.json()["processing_result"] == "completed"

    def test_revenue_summary_and_metrics(self, api_client, auth_headers, lifecycle):
        lifecycle.activate(TEST_USER_ID, "pro", 99900)

        summary = api_client.get("/api/admin/revenue/summary", headers=auth_headers)
        metrics = api_client.get("/api/admin/subscriptions/metrics", headers=auth_headers)

        assert summary.status_code == HTTP_200_OK
        assert summary.json()["totalRevenue"] == 0
        assert metrics.json()["totalSubscriptions"] == 1
        assert metrics.json()["activeSubscriptions"] == 1


class TestScheduledHandler:
    def test_scheduled_sweep_returns_counters(self, api_client, lifecycle):
        from billing_api.scheduled import renewal_sweep_handler

        lifecycle.activate(
            TEST_USER_ID, "pro", 99900, now=utcnow() - dt.timedelta(days=40)
        )

        result = renewal_sweep_handler({"id": "schedule-event-1"}, None)

        assert result == {"processed": 0, "errors": 1, "skipped": 0, "expired": 0}
