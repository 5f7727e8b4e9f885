"""Contract tests for POST /api/webhooks/gateway.

Test categories:
- Signature validation (400)
- Acknowledgement and background processing (200)
- Idempotent duplicate handling (200)
"""

import json
import os
from typing import Any

from starlette.status import HTTP_200_OK, HTTP_400_BAD_REQUEST

from billing.services.signature import compute_webhook_signature

# === Test Configuration ===

TEST_USER_ID = "5b0c2d4e-8f1a-4c3b-9d2e-7a6f5e4d3c2b"
TEST_ORDER_ID = "order_NkT5zz9QwErty1"
TEST_PAYMENT_ID = "pay_NkT4aB1cD2efgh"
WEBHOOK_URL = "/api/webhooks/gateway"


# === Helper Functions ===


def _captured_event(event_id: str = "evt_NkT6captured01") -> dict[str, Any]:
    return {
        "id": event_id,
        "event": "payment.captured",
        "payload": {
            "payment": {
                "entity": {
                    "id": TEST_PAYMENT_ID,
                    "order_id": TEST_ORDER_ID,
                    "amount": 99900,
                    "currency": "INR",
                    "method": "upi",
                }
            }
        },
    }


def _post_signed(client, payload: dict[str, Any], headers: dict[str, str] | None = None):
    body = json.dumps(payload).encode("utf-8")
    signature = compute_webhook_signature(body, os.environ["GATEWAY_WEBHOOK_SECRET"])
    return client.post(
        WEBHOOK_URL,
        content=body,
        headers={
            "Content-Type": "application/json",
            "X-Webhook-Signature": signature,
            **(headers or {}),
        },
    )


def _create_order(client) -> None:
    client.post(
        "/api/payments/orders",
        json={"userId": TEST_USER_ID, "plan": "pro", "orderId": TEST_ORDER_ID},
    )


# === Signature Validation ===


class TestWebhookSignature:
    def test_missing_signature_returns_400(self, api_client):
        response = api_client.post(WEBHOOK_URL, json=_captured_event())
        assert response.status_code == HTTP_400_BAD_REQUEST
        assert response.json()["code"] == "INVALID_WEBHOOK_SIGNATURE"

    def test_wrong_signature_returns_400(self, api_client):
        response = api_client.post(
            WEBHOOK_URL,
            content=json.dumps(_captured_event()).encode("utf-8"),
            headers={"X-Webhook-Signature": "0" * 64},
        )
        assert response.status_code == HTTP_400_BAD_REQUEST

    def test_tampered_body_returns_400(self, api_client):
        body = json.dumps(_captured_event()).encode("utf-8")
        signature = compute_webhook_signature(body, os.environ["GATEWAY_WEBHOOK_SECRET"])
        response = api_client.post(
            WEBHOOK_URL,
            content=body.replace(b"99900", b"100"),
            headers={"X-Webhook-Signature": signature},
        )
        assert response.status_code == HTTP_400_BAD_REQUEST


# === Processing ===


class TestWebhookProcessing:
    def test_captured_payment_activates_subscription(self, api_client, auth_headers):
        _create_order(api_client)

        response = _post_signed(api_client, _captured_event())

        assert response.status_code == HTTP_200_OK
        assert response.json() == {
            "received": True,
            "event_id": "evt_NkT6captured01",
            "event_type": "payment.captured",
            "processing_result": "received",
            "message": None,
        }

        # TestClient runs background tasks before returning
        status = api_client.get(
            "/api/subscriptions/status", params={"userId": TEST_USER_ID}
        ).json()
        assert status["subscription"]["status"] == "active"
        events = api_client.get("/api/admin/webhooks", headers=auth_headers).json()
        assert [(e["eventId"], e["status"]) for e in events] == [
            ("evt_NkT6captured01", "completed")
        ]

    def test_event_id_from_header(self, api_client):
        payload = _captured_event()
        del payload["id"]
        _create_order(api_client)

        response = _post_signed(api_client, payload, {"X-Webhook-Event-Id": "evt_header01"})

        assert response.status_code == HTTP_200_OK
        assert response.json()["event_id"] == "evt_header01"

    def test_duplicate_delivery_is_acknowledged(self, api_client, auth_headers):
        _create_order(api_client)
        _post_signed(api_client, _captured_event())

        response = _post_signed(api_client, _captured_event())

        assert response.status_code == HTTP_200_OK
        assert response.json()["processing_result"] == "duplicate"
        summary = api_client.get("/api/admin/revenue/summary", headers=auth_headers).json()
        assert summary["confirmedTransactions"] == 1

    def test_unhandled_event_type_is_acknowledged(self, api_client):
        response = _post_signed(
            api_client, {"id": "evt_misc01", "event": "payment.authorized", "payload": {}}
        )
        assert response.status_code == HTTP_200_OK
        assert response.json()["processing_result"] == "received"
