from pydantic import BaseModel


class TimingMetricStats(BaseModel):
    count: int
    avg_s: float
    max_s: float


class IdempotencySummary(BaseModel):
    """Ledger counters folded into one view; ``replay_ratio`` is replays per key seen."""

    created: int
    replayed: int
    conflicts: int
    in_flight: int
    wait_timeouts: int
    storage_errors: int
    purged: int
    replay_ratio: float


class MetricsResponse(BaseModel):
    counters: dict[str, int]
    timings: dict[str, TimingMetricStats]
    idempotency: IdempotencySummary
