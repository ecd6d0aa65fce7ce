from collections.abc import Callable
from typing import Literal

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy import select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from storefront.db.session import Database, get_database
from storefront.dependencies import get_ledger
from storefront.ledger import IdempotencyLedger
from storefront.models.idempotency_record import IdempotencyRecord
from storefront.observability import log_event, metrics_store
from storefront.schemas.health import (
    HealthResponse,
    LedgerReadiness,
    ReadinessDependency,
    ReadinessResponse,
)

ReadinessStatus = Literal["ok", "error"]

router = APIRouter(tags=["health"])


@router.get("/health", summary="Health check", response_model=HealthResponse)
def health() -> HealthResponse:
    return HealthResponse(status="ok")


@router.get(
    "/ready",
    summary="Readiness check",
    response_model=ReadinessResponse,
    responses={status.HTTP_503_SERVICE_UNAVAILABLE: {"model": ReadinessResponse}},
)
def readiness(
    response: Response,
    database: Database = Depends(get_database),
    ledger: IdempotencyLedger = Depends(get_ledger),
) -> ReadinessResponse:
    dependencies = [
        ReadinessDependency(
            name="database",
            status=_safe_dependency_status(
                "database", lambda: database_dependency_status(database.session_factory)
            ),
        ),
        ReadinessDependency(
            name="idempotency_store",
            status=_safe_dependency_status(
                "idempotency_store", lambda: ledger_table_status(database.session_factory)
            ),
        ),
    ]

    readiness_status = "ok" if all(dep.status == "ok" for dep in dependencies) else "degraded"
    if readiness_status != "ok":
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return ReadinessResponse(
        status=readiness_status,
        dependencies=dependencies,
        ledger=LedgerReadiness(
            concurrency_policy=ledger.arbiter.policy.value,
            ttl_s=int(ledger.ttl.total_seconds()),
            in_flight_keys=ledger.arbiter.active_keys(),
        ),
    )


def _safe_dependency_status(
    dependency_name: str,
    checker: Callable[[], ReadinessStatus],
) -> ReadinessStatus:
    metrics_store.increment("readiness_dependency_checked_total")
    try:
        result = checker()
    except Exception as exc:  # readiness must fail closed to degraded
        log_event(f"readiness_dependency_check_failed:{dependency_name}:{type(exc).__name__}")
        result = "error"
    if result != "ok":
        metrics_store.increment("readiness_dependency_error_total")
    return result


def database_dependency_status(
    session_factory: Callable[[], Session],
) -> ReadinessStatus:
    try:
        with session_factory() as db:
            db.execute(text("SELECT 1"))
    except SQLAlchemyError:
        return "error"
    return "ok"


def ledger_table_status(
    session_factory: Callable[[], Session],
) -> ReadinessStatus:
    try:
        with session_factory() as db:
            db.execute(select(IdempotencyRecord.id).limit(1))
    except SQLAlchemyError:
        return "error"
    return "ok"
