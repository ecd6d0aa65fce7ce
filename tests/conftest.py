from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

import storefront.models  # noqa: F401
from storefront.auth.jwt import issue_jwt
from storefront.config import settings
from storefront.db.base import Base
from storefront.db.session import Database
from storefront.ledger import ConcurrencyArbiter, IdempotencyLedger, KeyStore
from storefront.main import app
from storefront.models import Tenant, TenantStatus
from storefront.observability import metrics_store


class FrozenClock:
    def __init__(self, start: datetime) -> None:
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current = self.current + timedelta(seconds=seconds)


@pytest.fixture(scope="session", autouse=True)
def enable_testing_mode():
    original = settings.testing
    settings.testing = True
    yield
    settings.testing = original


@pytest.fixture(scope="session", autouse=True)
def enable_test_auth_bypass():
    original = settings.enable_test_auth_bypass
    settings.enable_test_auth_bypass = True
    yield
    settings.enable_test_auth_bypass = original


@pytest.fixture(autouse=True)
def reset_metrics_store():
    metrics_store.reset()
    yield


@pytest.fixture
def database_url(tmp_path: Path) -> str:
    # file-backed so concurrent threads get separate connections
    return f"sqlite+pysqlite:///{tmp_path / 'storefront.db'}"


@pytest.fixture
def database(database_url):
    db = Database(database_url)
    Base.metadata.create_all(bind=db.engine)
    try:
        yield db
    finally:
        db.dispose()


@pytest.fixture
def db_session(database):
    with database.session() as db:
        yield db


@pytest.fixture
def tenants(database):
    with database.session() as db:
        db.add_all(
            [
                Tenant(id="tenant-a", slug="acme", name="Acme Outfitters"),
                Tenant(id="tenant-b", slug="globex", name="Globex Goods"),
                Tenant(
                    id="tenant-c",
                    slug="initech",
                    name="Initech Supplies",
                    status=TenantStatus.SUSPENDED,
                ),
            ]
        )
        db.commit()
    return {"a": "tenant-a", "b": "tenant-b", "suspended": "tenant-c"}


@pytest.fixture
def clock():
    return FrozenClock(datetime(2026, 10, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def store(database, clock):
    return KeyStore(database.session_factory, clock=clock)


@pytest.fixture
def arbiter(store):
    return ConcurrencyArbiter(store, wait_timeout_s=2.0, poll_interval_s=0.02)


@pytest.fixture
def ledger(store, arbiter):
    return IdempotencyLedger(store, arbiter, ttl_s=1800)


@pytest.fixture
def client(database, database_url, monkeypatch):
    monkeypatch.setattr(settings, "database_url", database_url)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def auth_headers():
    def _headers(role: str, sub: str, tenant_id: str | None) -> dict[str, str]:
        claims = {"sub": sub, "role": role}
        if tenant_id is not None:
            claims["tenant_id"] = tenant_id
        token = issue_jwt(claims, settings.jwt_secret)
        return {"Authorization": f"Bearer {token}"}

    return {
        "customer_a": _headers("CUSTOMER", "customer-a", "tenant-a"),
        "customer_b": _headers("CUSTOMER", "customer-b", "tenant-b"),
        "staff_a": _headers("STAFF", "staff-a", "tenant-a"),
        "admin_a": _headers("TENANT_ADMIN", "admin-a", "tenant-a"),
        "platform": _headers("PLATFORM_ADMIN", "platform-1", None),
    }
