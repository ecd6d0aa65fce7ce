from sqlalchemy.exc import SQLAlchemyError

from storefront.config import settings
from storefront.routers import health


class _BrokenSession:
    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def execute(self, _statement):
        raise SQLAlchemyError("down")


def test_health_check(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_readiness_check(client):
    response = client.get("/ready")

    assert response.status_code == 200
    assert response.json() == {
        "status": "ok",
        "dependencies": [
            {"name": "database", "status": "ok"},
            {"name": "idempotency_store", "status": "ok"},
        ],
        "ledger": {
            "concurrency_policy": settings.idempotency_concurrency_policy,
            "ttl_s": settings.idempotency_ttl_s,
            "in_flight_keys": 0,
        },
    }


def test_readiness_degrades_when_database_check_fails(client, monkeypatch):
    monkeypatch.setattr(health, "database_dependency_status", lambda *_args: "error")

    response = client.get("/ready")

    assert response.status_code == 503
    assert response.json()["status"] == "degraded"


def test_readiness_degrades_when_ledger_table_is_unreadable(client, monkeypatch):
    monkeypatch.setattr(health, "ledger_table_status", lambda *_args: "error")

    response = client.get("/ready")

    assert response.status_code == 503
    assert {"name": "idempotency_store", "status": "error"} in response.json()["dependencies"]


def test_readiness_fails_closed_on_unexpected_errors(client, monkeypatch):
    def explode(*_args):
        raise RuntimeError("unexpected")

    monkeypatch.setattr(health, "database_dependency_status", explode)

    response = client.get("/ready")

    assert response.status_code == 503
    assert response.json()["dependencies"][0] == {"name": "database", "status": "error"}


def test_dependency_checks_report_sqlalchemy_errors():
    assert health.database_dependency_status(_BrokenSession) == "error"
    assert health.ledger_table_status(_BrokenSession) == "error"


def test_health_endpoint_exposes_explicit_response_schema(client):
    openapi = client.get("/openapi.json").json()

    schema = openapi["paths"]["/health"]["get"]["responses"]["200"]["content"]["application/json"]
    assert schema["schema"]["$ref"] == "#/components/schemas/HealthResponse"
    assert "BearerAuth" in openapi["components"]["securitySchemes"]
