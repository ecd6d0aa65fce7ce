"""Ledger sweeper: deletes expired idempotency records straight from the store.

Runs next to the API against the same database. Readers already ignore
expired rows, so the sweeper only reclaims space and can fall behind safely.
"""

from __future__ import annotations

import logging
import threading

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from storefront.config import settings as app_settings
from storefront.db.session import Database
from storefront.ledger import KeyStore, StorageUnavailable
from storefront.observability import configure_logging, log_event
from storefront.services.sweep_service import SweepReport, purge_expired_batches


class LedgerSweeperSettings(BaseSettings):
    database_url: str | None = None
    interval_s: float = Field(default=60.0, gt=0)
    batch_size: int = Field(default=1000, ge=1)
    max_batches: int = Field(default=100, ge=1)
    tenant_id: str | None = None

    model_config = SettingsConfigDict(
        env_prefix="STOREFRONT_LEDGER_SWEEPER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def resolved_database_url(self) -> str:
        return self.database_url or app_settings.database_url


def sweep_once(store: KeyStore, settings: LedgerSweeperSettings) -> SweepReport | None:
    """One sweep pass; a store outage is logged and left for the next tick."""
    try:
        return purge_expired_batches(
            store,
            batch_size=settings.batch_size,
            max_batches=settings.max_batches,
            tenant_id=settings.tenant_id,
        )
    except StorageUnavailable as err:
        log_event(
            f"idempotency_sweep_failed:{err.message}",
            tenant_id=settings.tenant_id,
            level=logging.WARNING,
        )
        return None


def run_forever(
    settings: LedgerSweeperSettings,
    *,
    store: KeyStore | None = None,
    stop: threading.Event | None = None,
) -> None:
    stop_event = stop or threading.Event()
    database: Database | None = None
    if store is None:
        database = Database(settings.resolved_database_url())
        store = KeyStore(database.session_factory)

    try:
        while not stop_event.is_set():
            report = sweep_once(store, settings)
            # A full final batch means a backlog: go again without sleeping.
            if report is not None and not report.exhausted:
                continue
            stop_event.wait(settings.interval_s)
    finally:
        if database is not None:
            database.dispose()


def main() -> None:
    configure_logging()
    run_forever(LedgerSweeperSettings())


if __name__ == "__main__":
    main()
