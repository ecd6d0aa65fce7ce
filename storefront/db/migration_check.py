from __future__ import annotations

from pathlib import Path

from alembic.config import Config
from alembic.runtime.migration import MigrationContext
from alembic.script import ScriptDirectory
from sqlalchemy import inspect
from sqlalchemy.engine import Engine

from storefront.config import is_production_mode, settings
from storefront.db.base import Base

LEDGER_TABLE = "idempotency_records"
# The key store relies on this constraint to pick a single winner per key.
LEDGER_UNIQUE_CONSTRAINT = "uq_idem_tenant_key"


def _alembic_ini_path() -> Path:
    return Path(__file__).resolve().parents[2] / "alembic.ini"


def _migrations_path() -> Path:
    return Path(__file__).resolve().parent / "migrations"


def alembic_config() -> Config:
    config = Config(str(_alembic_ini_path()))
    config.set_main_option("script_location", str(_migrations_path()))
    return config


def get_alembic_head_revision() -> str | None:
    return ScriptDirectory.from_config(alembic_config()).get_current_head()


def get_current_db_revision(engine: Engine) -> str | None:
    with engine.connect() as connection:
        return MigrationContext.configure(connection).get_current_revision()


def assert_ledger_constraint(engine: Engine) -> None:
    inspector = inspect(engine)
    if not inspector.has_table(LEDGER_TABLE):
        raise RuntimeError(f"Table {LEDGER_TABLE} is missing. Run: alembic upgrade head")

    names = {constraint["name"] for constraint in inspector.get_unique_constraints(LEDGER_TABLE)}
    names.update(
        index["name"] for index in inspector.get_indexes(LEDGER_TABLE) if index.get("unique")
    )
    if LEDGER_UNIQUE_CONSTRAINT not in names:
        raise RuntimeError(
            f"Table {LEDGER_TABLE} lacks unique constraint {LEDGER_UNIQUE_CONSTRAINT}; "
            "concurrent requests could both claim one idempotency key"
        )


def assert_db_is_up_to_date(engine: Engine) -> None:
    current = get_current_db_revision(engine)
    head = get_alembic_head_revision()
    if current != head:
        raise RuntimeError(
            f"Database schema not up to date (at {current or 'no revision'}, head {head}). "
            "Run: alembic upgrade head"
        )
    assert_ledger_constraint(engine)


def maybe_create_schema(engine: Engine) -> None:
    if not settings.auto_create_schema:
        return
    if is_production_mode():
        raise RuntimeError("AUTO_CREATE_SCHEMA must be disabled in STOREFRONT_APP_MODE=production")

    import storefront.models  # noqa: F401 (register all SQLAlchemy models)

    Base.metadata.create_all(bind=engine)
    assert_ledger_constraint(engine)
