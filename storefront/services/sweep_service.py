from dataclasses import dataclass

from storefront.ledger import KeyStore
from storefront.observability import log_event, metrics_store, observe_timing


@dataclass(frozen=True)
class SweepReport:
    purged: int
    batches: int
    exhausted: bool


def purge_expired_batches(
    store: KeyStore,
    *,
    batch_size: int,
    max_batches: int = 1,
    tenant_id: str | None = None,
) -> SweepReport:
    """Delete expired ledger rows in bounded batches.

    Stops at the first short batch, or after ``max_batches``; ``exhausted`` is
    True when no expired rows were left behind.
    """
    if batch_size < 1 or max_batches < 1:
        raise ValueError("batch_size and max_batches must be >= 1")

    purged = 0
    batches = 0
    exhausted = False
    with observe_timing("idempotency_sweep_duration_seconds"):
        while batches < max_batches:
            deleted = store.purge_expired(tenant_id=tenant_id, limit=batch_size)
            purged += deleted
            batches += 1
            if deleted < batch_size:
                exhausted = True
                break

    if purged:
        metrics_store.increment("idempotency_purged_total", purged)
    log_event(f"idempotency_sweep_purged:{purged}", tenant_id=tenant_id)
    return SweepReport(purged=purged, batches=batches, exhausted=exhausted)
