import json

from storefront.config import settings
from storefront.services.webhook_service import WEBHOOK_SIGNATURE_HEADER, sign_webhook_payload


def _create_order(client, auth_headers) -> dict:
    response = client.post(
        "/api/v1/checkout",
        json={"items": [{"product_id": "sku-9", "quantity": 1, "unit_price": "25.00"}]},
        headers={**auth_headers["customer_a"], "Idempotency-Key": "chk_webhook"},
    )
    assert response.status_code == 201
    return response.json()


def _post_event(client, event: dict, *, tenant_id="tenant-a", signature=None, extra_headers=None):
    raw = json.dumps(event).encode("utf-8")
    headers = {
        "Content-Type": "application/json",
        "X-Tenant-ID": tenant_id,
        WEBHOOK_SIGNATURE_HEADER: signature
        or sign_webhook_payload(raw, settings.webhook_signing_secret),
        **(extra_headers or {}),
    }
    return client.post("/api/v1/webhooks/stripe", content=raw, headers=headers)


def test_payment_webhook_marks_order_paid_once(client, tenants, auth_headers):
    order = _create_order(client, auth_headers)
    event = {
        "event_id": "evt_1",
        "type": "payment.succeeded",
        "order_id": order["id"],
        "payment_reference": "pi_hook",
    }

    first = _post_event(client, event)
    redelivered = _post_event(client, event)
    fetched = client.get(f"/api/v1/orders/{order['id']}", headers=auth_headers["customer_a"])

    assert first.status_code == 200
    assert first.json() == {
        "event_id": "evt_1",
        "provider": "stripe",
        "handled": True,
        "order_id": order["id"],
    }
    assert first.headers["Idempotency-Key"] == "stripe:evt_1"
    assert redelivered.status_code == 200
    assert redelivered.headers["Idempotent-Replayed"] == "true"
    assert fetched.json()["status"] == "paid"
    assert fetched.json()["payment_reference"] == "pi_hook"


def test_webhook_prefers_explicit_idempotency_key_header(client, tenants):
    event = {"event_id": "evt_2", "type": "customer.created"}

    response = _post_event(client, event, extra_headers={"Idempotency-Key": "hook-key-1"})

    assert response.status_code == 200
    assert response.json()["handled"] is False
    assert response.headers["Idempotency-Key"] == "hook-key-1"


def test_webhook_rejects_bad_signature(client, tenants):
    response = _post_event(client, {"event_id": "evt_3", "type": "x"}, signature="deadbeef")

    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid webhook signature"


def test_webhook_rejects_malformed_event(client, tenants):
    response = _post_event(client, {"type": "payment.succeeded"})

    assert response.status_code == 422


def test_webhook_requires_known_tenant(client, tenants):
    response = _post_event(client, {"event_id": "evt_4", "type": "x"}, tenant_id="nope")

    assert response.status_code == 404
    assert response.json()["detail"]["code"] == "TENANT_NOT_FOUND"


def test_same_event_id_is_tracked_per_tenant(client, tenants):
    event = {"event_id": "evt_5", "type": "customer.created"}

    a = _post_event(client, event, tenant_id="tenant-a")
    b = _post_event(client, event, tenant_id="tenant-b")

    assert "Idempotent-Replayed" not in a.headers
    assert "Idempotent-Replayed" not in b.headers
