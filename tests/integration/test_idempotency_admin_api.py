from datetime import datetime, timedelta, timezone

from sqlalchemy import update

from storefront.models import IdempotencyRecord

CHECKOUT_BODY = {"items": [{"product_id": "sku-1", "quantity": 1, "unit_price": "10.00"}]}


def _checkout(client, headers, key):
    response = client.post(
        "/api/v1/checkout", json=CHECKOUT_BODY, headers={**headers, "Idempotency-Key": key}
    )
    assert response.status_code == 201
    return response


def test_tenant_admin_lists_only_own_records(client, tenants, auth_headers):
    _checkout(client, auth_headers["customer_a"], "chk_a1")
    _checkout(client, auth_headers["customer_a"], "chk_a2")
    _checkout(client, auth_headers["customer_b"], "chk_b1")

    response = client.get("/api/v1/admin/idempotency", headers=auth_headers["admin_a"])

    assert response.status_code == 200
    body = response.json()
    assert {item["idempotency_key"] for item in body["items"]} == {"chk_a1", "chk_a2"}
    assert all(item["status"] == "completed" for item in body["items"])
    assert all(item["request_type"] == "checkout" for item in body["items"])
    assert "request_fingerprint" not in body["items"][0]


def test_inspect_record_reports_attempts(client, tenants, auth_headers):
    _checkout(client, auth_headers["customer_a"], "chk_inspect")
    _checkout(client, auth_headers["customer_a"], "chk_inspect")

    response = client.get("/api/v1/admin/idempotency/chk_inspect", headers=auth_headers["admin_a"])

    assert response.status_code == 200
    body = response.json()
    assert body["attempts"] == 2
    assert body["response_status"] == 201
    assert body["request_method"] == "POST"
    assert body["request_path"] == "/api/v1/checkout"


def test_inspect_unknown_record_is_not_found(client, tenants, auth_headers):
    response = client.get("/api/v1/admin/idempotency/missing", headers=auth_headers["admin_a"])

    assert response.status_code == 404


def test_customer_cannot_read_ledger(client, tenants, auth_headers):
    response = client.get("/api/v1/admin/idempotency", headers=auth_headers["customer_a"])

    assert response.status_code == 403


def test_sweep_purges_expired_records_and_frees_key(client, tenants, auth_headers, db_session):
    _checkout(client, auth_headers["customer_a"], "chk_old")
    _checkout(client, auth_headers["customer_a"], "chk_live")
    db_session.execute(
        update(IdempotencyRecord)
        .where(IdempotencyRecord.idempotency_key == "chk_old")
        .values(expires_at=datetime.now(timezone.utc) - timedelta(seconds=1))
    )
    db_session.commit()

    forbidden = client.post("/api/v1/admin/idempotency/sweep", headers=auth_headers["admin_a"])
    swept = client.post("/api/v1/admin/idempotency/sweep", headers=auth_headers["platform"])
    reused = _checkout(client, auth_headers["customer_a"], "chk_old")
    metrics = client.get("/metrics").json()

    assert forbidden.status_code == 403
    assert swept.status_code == 200
    assert swept.json() == {"purged": 1}
    assert "Idempotent-Replayed" not in reused.headers
    assert metrics["counters"]["idempotency_purged_total"] == 1
    assert metrics["idempotency"]["purged"] == 1
