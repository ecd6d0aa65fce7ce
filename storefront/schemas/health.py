from typing import Literal

from pydantic import BaseModel


class HealthResponse(BaseModel):
    status: Literal["ok"]


class ReadinessDependency(BaseModel):
    name: Literal["database", "idempotency_store"]
    status: Literal["ok", "error"]


class LedgerReadiness(BaseModel):
    concurrency_policy: Literal["wait", "reject"]
    ttl_s: int
    in_flight_keys: int


class ReadinessResponse(BaseModel):
    status: Literal["ok", "degraded"]
    dependencies: list[ReadinessDependency]
    ledger: LedgerReadiness
