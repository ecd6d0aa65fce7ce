CHECKOUT_BODY = {"items": [{"product_id": "sku-1", "quantity": 1, "unit_price": "10.00"}]}


def test_customer_cannot_act_in_another_tenant(client, tenants, auth_headers):
    response = client.post(
        "/api/v1/checkout",
        json=CHECKOUT_BODY,
        headers={
            **auth_headers["customer_a"],
            "Idempotency-Key": "chk_cross",
            "X-Tenant-ID": "tenant-b",
        },
    )

    assert response.status_code == 403
    assert response.json()["detail"] == "Cross-tenant access denied"


def test_orders_are_invisible_across_tenants(client, tenants, auth_headers):
    order = client.post(
        "/api/v1/checkout",
        json=CHECKOUT_BODY,
        headers={**auth_headers["customer_a"], "Idempotency-Key": "chk_private"},
    ).json()

    response = client.get(f"/api/v1/orders/{order['id']}", headers=auth_headers["customer_b"])

    assert response.status_code == 404


def test_suspended_tenant_is_rejected(client, tenants):
    response = client.post(
        "/api/v1/checkout",
        json=CHECKOUT_BODY,
        headers={"Idempotency-Key": "chk_suspended", "X-Tenant-ID": "tenant-c"},
    )

    assert response.status_code == 404
    assert response.json()["detail"]["code"] == "TENANT_INACTIVE"


def test_platform_admin_can_select_tenant_by_slug(client, tenants, auth_headers):
    response = client.post(
        "/api/v1/checkout",
        json=CHECKOUT_BODY,
        headers={
            **auth_headers["platform"],
            "Idempotency-Key": "chk_platform",
            "X-Tenant-Slug": "globex",
        },
    )

    assert response.status_code == 201
    assert response.json()["tenant_id"] == "tenant-b"


def test_missing_or_invalid_token_is_unauthorized(client, tenants, monkeypatch):
    from storefront.config import settings

    monkeypatch.setattr(settings, "enable_test_auth_bypass", False)

    missing = client.post("/api/v1/checkout", json=CHECKOUT_BODY)
    invalid = client.post(
        "/api/v1/checkout",
        json=CHECKOUT_BODY,
        headers={"Authorization": "Bearer not.a.jwt"},
    )

    assert missing.status_code == 401
    assert invalid.status_code == 401
