from fastapi import APIRouter, Depends

from storefront.auth.capabilities import Capability
from storefront.auth.dependencies import AuthContext, require_capabilities
from storefront.observability import metrics_store
from storefront.schemas.metrics import IdempotencySummary, MetricsResponse

router = APIRouter(prefix="/metrics", tags=["metrics"])


def idempotency_summary(counters: dict[str, int]) -> IdempotencySummary:
    created = counters.get("idempotency_created_total", 0)
    replayed = counters.get("idempotency_replay_total", 0)
    seen = created + replayed
    return IdempotencySummary(
        created=created,
        replayed=replayed,
        conflicts=counters.get("idempotency_conflict_total", 0),
        in_flight=counters.get("idempotency_in_flight_total", 0),
        wait_timeouts=counters.get("idempotency_wait_timeout_total", 0),
        storage_errors=counters.get("idempotency_storage_error_total", 0),
        purged=counters.get("idempotency_purged_total", 0),
        replay_ratio=round(replayed / seen, 4) if seen else 0.0,
    )


@router.get("", summary="Observability metrics", response_model=MetricsResponse)
def metrics_endpoint(
    _auth: AuthContext = Depends(require_capabilities(Capability.METRICS_READ)),
) -> MetricsResponse:
    """Platform-admin only view of the in-process counters and timings."""
    snapshot = metrics_store.snapshot()
    counters = snapshot.counters or {}

    return MetricsResponse(
        counters=counters,
        timings=snapshot.timings or {},
        idempotency=idempotency_summary(counters),
    )
