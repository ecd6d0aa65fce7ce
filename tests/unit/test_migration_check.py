from __future__ import annotations

from pathlib import Path

import pytest
from alembic import command
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, inspect, text

import storefront.models  # noqa: F401
from storefront.config import settings
from storefront.db.base import Base
from storefront.db.migration_check import (
    alembic_config,
    assert_db_is_up_to_date,
    assert_ledger_constraint,
    get_alembic_head_revision,
    get_current_db_revision,
    maybe_create_schema,
)
from storefront.main import app


@pytest.fixture
def sqlite_engine(tmp_path: Path):
    db_path = tmp_path / "migration-check.db"
    engine = create_engine(f"sqlite+pysqlite:///{db_path}")
    try:
        yield engine
    finally:
        engine.dispose()


def test_head_revision_is_the_idempotency_table_migration():
    assert get_alembic_head_revision() == "20261002_0002"


def test_assert_db_is_up_to_date_fails_when_alembic_version_missing(sqlite_engine):
    with pytest.raises(RuntimeError, match="Database schema not up to date"):
        assert_db_is_up_to_date(sqlite_engine)


def test_assert_db_is_up_to_date_passes_at_head(sqlite_engine):
    head = get_alembic_head_revision()
    Base.metadata.create_all(bind=sqlite_engine)
    with sqlite_engine.begin() as connection:
        connection.execute(text("CREATE TABLE alembic_version (version_num VARCHAR(32) NOT NULL)"))
        connection.execute(
            text("INSERT INTO alembic_version (version_num) VALUES (:rev)"), {"rev": head}
        )

    assert get_current_db_revision(sqlite_engine) == head
    assert_db_is_up_to_date(sqlite_engine)


def test_ledger_table_without_unique_key_constraint_is_rejected(sqlite_engine):
    with sqlite_engine.begin() as connection:
        connection.execute(
            text(
                "CREATE TABLE idempotency_records ("
                "id CHAR(32) PRIMARY KEY, tenant_id VARCHAR(64), idempotency_key VARCHAR(255))"
            )
        )

    with pytest.raises(RuntimeError, match="uq_idem_tenant_key"):
        assert_ledger_constraint(sqlite_engine)


def test_missing_ledger_table_is_rejected(sqlite_engine):
    with pytest.raises(RuntimeError, match="idempotency_records is missing"):
        assert_ledger_constraint(sqlite_engine)


def test_upgrade_head_creates_ledger_schema(tmp_path: Path, monkeypatch):
    database_url = f"sqlite+pysqlite:///{tmp_path / 'alembic.db'}"
    monkeypatch.setattr(settings, "database_url", database_url)
    config = alembic_config()

    command.upgrade(config, "head")

    engine = create_engine(database_url)
    try:
        inspector = inspect(engine)
        assert {"tenants", "orders", "idempotency_records"} <= set(inspector.get_table_names())
        unique_names = {
            constraint["name"]
            for constraint in inspector.get_unique_constraints("idempotency_records")
        }
        assert "uq_idem_tenant_key" in unique_names
        assert_db_is_up_to_date(engine)
    finally:
        engine.dispose()


def test_maybe_create_schema_creates_tables_when_enabled(sqlite_engine, monkeypatch):
    monkeypatch.setattr(settings, "auto_create_schema", True)
    monkeypatch.setattr(settings, "app_mode", "development")

    maybe_create_schema(sqlite_engine)

    assert "idempotency_records" in inspect(sqlite_engine).get_table_names()


def test_maybe_create_schema_refuses_production(sqlite_engine, monkeypatch):
    monkeypatch.setattr(settings, "auto_create_schema", True)
    monkeypatch.setattr(settings, "app_mode", "production")

    with pytest.raises(RuntimeError, match="AUTO_CREATE_SCHEMA"):
        maybe_create_schema(sqlite_engine)


def test_app_startup_fails_fast_when_revision_missing(tmp_path: Path, monkeypatch):
    monkeypatch.setattr(settings, "database_url", f"sqlite+pysqlite:///{tmp_path / 'fail.db'}")
    monkeypatch.setattr(settings, "auto_create_schema", False)
    monkeypatch.setattr(settings, "require_migrations", True)

    with pytest.raises(RuntimeError, match="Database schema not up to date"):
        with TestClient(app):
            pass
