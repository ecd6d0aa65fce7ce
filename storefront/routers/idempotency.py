from fastapi import APIRouter, Depends, HTTPException, Query, status
from starlette.concurrency import run_in_threadpool

from storefront.auth.capabilities import Capability
from storefront.auth.dependencies import (
    AuthContext,
    TenantContext,
    require_capabilities,
    tenant_scope,
)
from storefront.config import settings
from storefront.dependencies import get_ledger
from storefront.ledger import IdempotencyLedger, LedgerError
from storefront.models.idempotency_record import IdempotencyStatus
from storefront.schemas.idempotency import (
    IdempotencyRecordList,
    IdempotencyRecordResponse,
    SweepResponse,
)
from storefront.services.idempotency_service import translate_ledger_error
from storefront.services.sweep_service import purge_expired_batches

router = APIRouter(prefix="/api/v1/admin/idempotency", tags=["admin"])


@router.get("", response_model=IdempotencyRecordList, summary="List idempotency records")
def list_idempotency_records(
    status_filter: IdempotencyStatus | None = Query(default=None, alias="status"),
    include_expired: bool = Query(default=False),
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    ledger: IdempotencyLedger = Depends(get_ledger),
    tenant: TenantContext = Depends(tenant_scope(Capability.IDEMPOTENCY_READ)),
) -> IdempotencyRecordList:
    try:
        records = ledger.store.list_records(
            tenant.tenant_id,
            status=status_filter,
            include_expired=include_expired,
            limit=limit,
            offset=offset,
        )
    except LedgerError as err:
        raise translate_ledger_error(err) from err

    return IdempotencyRecordList(
        items=[IdempotencyRecordResponse.model_validate(record) for record in records],
        limit=limit,
        offset=offset,
    )


@router.get(
    "/{idempotency_key}",
    response_model=IdempotencyRecordResponse,
    summary="Inspect a live idempotency record",
)
def get_idempotency_record(
    idempotency_key: str,
    ledger: IdempotencyLedger = Depends(get_ledger),
    tenant: TenantContext = Depends(tenant_scope(Capability.IDEMPOTENCY_READ)),
) -> IdempotencyRecordResponse:
    try:
        record = ledger.store.get(tenant.tenant_id, idempotency_key)
    except LedgerError as err:
        raise translate_ledger_error(err) from err

    if record is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Idempotency record not found"
        )
    return IdempotencyRecordResponse.model_validate(record)


@router.post("/sweep", response_model=SweepResponse, summary="Purge expired idempotency records")
async def sweep_expired_records(
    limit: int | None = Query(default=None, ge=1),
    ledger: IdempotencyLedger = Depends(get_ledger),
    _auth: AuthContext = Depends(require_capabilities(Capability.IDEMPOTENCY_SWEEP)),
) -> SweepResponse:
    batch = limit or settings.idempotency_sweep_batch_size
    try:
        report = await run_in_threadpool(purge_expired_batches, ledger.store, batch_size=batch)
    except LedgerError as err:
        raise translate_ledger_error(err) from err

    return SweepResponse(purged=report.purged)
