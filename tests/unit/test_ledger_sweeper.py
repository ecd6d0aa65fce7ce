import threading

import pytest
from pydantic import ValidationError

from storefront.config import settings as app_settings
from storefront.ledger import StorageUnavailable
from workers.ledger_sweeper import worker


class _ScriptedStore:
    def __init__(self, results, stop=None):
        self.results = list(results)
        self.calls = []
        self.stop = stop

    def purge_expired(self, *, tenant_id=None, limit=None):
        self.calls.append((tenant_id, limit))
        result = self.results.pop(0)
        if not self.results and self.stop is not None:
            self.stop.set()
        if isinstance(result, Exception):
            raise result
        return result


def test_settings_defaults(monkeypatch):
    monkeypatch.delenv("STOREFRONT_LEDGER_SWEEPER_DATABASE_URL", raising=False)
    settings = worker.LedgerSweeperSettings(_env_file=None)

    assert settings.interval_s == 60.0
    assert settings.batch_size == 1000
    assert settings.max_batches == 100
    assert settings.tenant_id is None
    assert settings.resolved_database_url() == app_settings.database_url


def test_settings_read_prefixed_environment(monkeypatch):
    monkeypatch.setenv("STOREFRONT_LEDGER_SWEEPER_DATABASE_URL", "sqlite+pysqlite:///./sweep.db")
    monkeypatch.setenv("STOREFRONT_LEDGER_SWEEPER_BATCH_SIZE", "250")
    monkeypatch.setenv("STOREFRONT_LEDGER_SWEEPER_TENANT_ID", "tenant-a")

    settings = worker.LedgerSweeperSettings(_env_file=None)

    assert settings.resolved_database_url() == "sqlite+pysqlite:///./sweep.db"
    assert settings.batch_size == 250
    assert settings.tenant_id == "tenant-a"


@pytest.mark.parametrize(
    ("name", "value"),
    [("INTERVAL_S", "0"), ("BATCH_SIZE", "0"), ("MAX_BATCHES", "0")],
)
def test_settings_reject_invalid_values(monkeypatch, name, value):
    monkeypatch.setenv(f"STOREFRONT_LEDGER_SWEEPER_{name}", value)

    with pytest.raises(ValidationError):
        worker.LedgerSweeperSettings(_env_file=None)


def test_sweep_once_passes_batch_settings_to_store():
    store = _ScriptedStore([3])
    settings = worker.LedgerSweeperSettings(
        _env_file=None, batch_size=10, max_batches=5, tenant_id="tenant-a"
    )

    report = worker.sweep_once(store, settings)

    assert report.purged == 3
    assert report.exhausted is True
    assert store.calls == [("tenant-a", 10)]


def test_sweep_once_survives_storage_outage():
    store = _ScriptedStore([StorageUnavailable("database is locked")])
    settings = worker.LedgerSweeperSettings(_env_file=None)

    assert worker.sweep_once(store, settings) is None


def test_run_forever_drains_backlog_before_sleeping():
    stop = threading.Event()
    store = _ScriptedStore([2, 2, 1], stop=stop)
    settings = worker.LedgerSweeperSettings(
        _env_file=None, batch_size=2, max_batches=1, interval_s=30
    )

    worker.run_forever(settings, store=store, stop=stop)

    assert store.calls == [(None, 2), (None, 2), (None, 2)]


def test_run_forever_keeps_going_after_outage():
    stop = threading.Event()
    store = _ScriptedStore([StorageUnavailable(), 0], stop=stop)
    settings = worker.LedgerSweeperSettings(_env_file=None, interval_s=0.01)

    worker.run_forever(settings, store=store, stop=stop)

    assert len(store.calls) == 2
