from uuid import UUID

from fastapi import APIRouter, Depends, Header, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from storefront.auth.capabilities import Capability
from storefront.auth.dependencies import TenantContext, tenant_scope
from storefront.db.session import get_db
from storefront.dependencies import get_ledger
from storefront.ledger import IdempotencyLedger
from storefront.models.idempotency_record import IdempotencyRequestType
from storefront.schemas.checkout import (
    CheckoutRequest,
    OrderResponse,
    OrderUpdateRequest,
    PaymentCaptureRequest,
)
from storefront.services.idempotency_service import run_idempotent, validate_idempotency_key
from storefront.services.order_service import (
    capture_payment,
    create_checkout_order,
    get_order_for_tenant,
    update_order_status,
)

router = APIRouter(prefix="/api/v1", tags=["checkout"])

_IDEMPOTENT_RESPONSES = {
    409: {"description": "Request with this key is still being processed"},
    422: {"description": "Idempotency key reused with a different request"},
}


@router.post(
    "/checkout",
    response_model=OrderResponse,
    status_code=201,
    summary="Initiate checkout",
    responses=_IDEMPOTENT_RESPONSES,
)
async def checkout_endpoint(
    request: Request,
    payload: CheckoutRequest,
    db: Session = Depends(get_db),
    ledger: IdempotencyLedger = Depends(get_ledger),
    idempotency_key: str | None = Header(default=None, alias="Idempotency-Key"),
    tenant: TenantContext = Depends(tenant_scope(Capability.CHECKOUT_CREATE)),
) -> JSONResponse:
    key = validate_idempotency_key(idempotency_key, required=True)
    raw_body = await request.body()

    def operation() -> tuple[int, dict]:
        order = create_checkout_order(
            db,
            tenant_id=tenant.tenant_id,
            customer_id=tenant.auth.user_id,
            payload=payload,
        )
        return 201, order

    return await run_in_threadpool(
        run_idempotent,
        ledger=ledger,
        tenant_id=tenant.tenant_id,
        idempotency_key=key,
        request_type=IdempotencyRequestType.CHECKOUT,
        method=request.method,
        path=request.url.path,
        raw_body=raw_body,
        headers=request.headers,
        operation=operation,
    )


@router.post(
    "/payments/{order_id}/capture",
    response_model=OrderResponse,
    summary="Capture payment for an order",
    responses=_IDEMPOTENT_RESPONSES,
)
async def capture_payment_endpoint(
    order_id: UUID,
    request: Request,
    payload: PaymentCaptureRequest,
    db: Session = Depends(get_db),
    ledger: IdempotencyLedger = Depends(get_ledger),
    idempotency_key: str | None = Header(default=None, alias="Idempotency-Key"),
    tenant: TenantContext = Depends(tenant_scope(Capability.PAYMENT_CAPTURE)),
) -> JSONResponse:
    key = validate_idempotency_key(idempotency_key, required=True)
    raw_body = await request.body()

    def operation() -> tuple[int, dict]:
        order = capture_payment(
            db,
            tenant_id=tenant.tenant_id,
            order_id=order_id,
            amount=payload.amount,
            payment_reference=payload.payment_reference,
        )
        return 200, order

    return await run_in_threadpool(
        run_idempotent,
        ledger=ledger,
        tenant_id=tenant.tenant_id,
        idempotency_key=key,
        request_type=IdempotencyRequestType.PAYMENT,
        method=request.method,
        path=request.url.path,
        raw_body=raw_body,
        headers=request.headers,
        operation=operation,
    )


@router.patch(
    "/orders/{order_id}",
    response_model=OrderResponse,
    summary="Update order status",
    responses=_IDEMPOTENT_RESPONSES,
)
async def update_order_endpoint(
    order_id: UUID,
    request: Request,
    payload: OrderUpdateRequest,
    db: Session = Depends(get_db),
    ledger: IdempotencyLedger = Depends(get_ledger),
    idempotency_key: str | None = Header(default=None, alias="Idempotency-Key"),
    tenant: TenantContext = Depends(tenant_scope(Capability.ORDER_UPDATE)),
) -> JSONResponse:
    key = validate_idempotency_key(idempotency_key)
    raw_body = await request.body()

    def operation() -> tuple[int, dict]:
        order = update_order_status(
            db,
            tenant_id=tenant.tenant_id,
            order_id=order_id,
            next_status=payload.status,
        )
        return 200, order

    return await run_in_threadpool(
        run_idempotent,
        ledger=ledger,
        tenant_id=tenant.tenant_id,
        idempotency_key=key,
        request_type=IdempotencyRequestType.ORDER_UPDATE,
        method=request.method,
        path=request.url.path,
        raw_body=raw_body,
        headers=request.headers,
        operation=operation,
    )


@router.get("/orders/{order_id}", response_model=OrderResponse, summary="Get order")
def get_order_endpoint(
    order_id: UUID,
    db: Session = Depends(get_db),
    tenant: TenantContext = Depends(tenant_scope(Capability.ORDER_READ)),
) -> OrderResponse:
    order = get_order_for_tenant(db, tenant_id=tenant.tenant_id, order_id=order_id)
    return OrderResponse.model_validate(order)
