from fastapi import Request

from storefront.config import Settings, fingerprint_headers_list
from storefront.db.session import Database
from storefront.ledger import ConcurrencyArbiter, ConcurrencyPolicy, IdempotencyLedger, KeyStore


def build_ledger(database: Database, app_settings: Settings) -> IdempotencyLedger:
    store = KeyStore(database.session_factory)
    arbiter = ConcurrencyArbiter(
        store,
        policy=ConcurrencyPolicy(app_settings.idempotency_concurrency_policy),
        wait_timeout_s=app_settings.idempotency_wait_timeout_s,
        poll_interval_s=app_settings.idempotency_poll_interval_s,
        retry_after_s=app_settings.idempotency_retry_after_s,
    )
    return IdempotencyLedger(
        store,
        arbiter,
        ttl_s=app_settings.idempotency_ttl_s,
        fingerprint_headers=fingerprint_headers_list(),
    )


def get_ledger(request: Request) -> IdempotencyLedger:
    return request.app.state.ledger
