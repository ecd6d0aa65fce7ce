from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from storefront.auth.dependencies import load_active_tenant
from storefront.config import settings
from storefront.db.session import get_db
from storefront.dependencies import get_ledger
from storefront.ledger import IdempotencyLedger
from storefront.models.idempotency_record import IdempotencyRequestType
from storefront.schemas.checkout import WebhookEventRequest, WebhookReceipt
from storefront.services.idempotency_service import run_idempotent, validate_idempotency_key
from storefront.services.webhook_service import handle_webhook_event, verify_webhook_signature

router = APIRouter(prefix="/api/v1/webhooks", tags=["webhooks"])


@router.post(
    "/{provider}",
    response_model=WebhookReceipt,
    summary="Receive a payment provider webhook",
)
async def webhook_endpoint(
    provider: str,
    request: Request,
    db: Session = Depends(get_db),
    ledger: IdempotencyLedger = Depends(get_ledger),
    x_tenant_id: str | None = Header(default=None),
    x_webhook_signature: str | None = Header(default=None),
    idempotency_key: str | None = Header(default=None, alias="Idempotency-Key"),
) -> JSONResponse:
    raw_body = await request.body()
    verify_webhook_signature(raw_body, x_webhook_signature, settings.webhook_signing_secret)

    try:
        event = WebhookEventRequest.model_validate_json(raw_body)
    except ValidationError as err:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=err.errors(include_url=False, include_context=False),
        ) from err

    tenant = load_active_tenant(db, tenant_id=x_tenant_id)
    # providers resend the same event id on retry
    key = validate_idempotency_key(idempotency_key or f"{provider}:{event.event_id}")

    def operation() -> tuple[int, dict]:
        return 200, handle_webhook_event(db, tenant_id=tenant.id, provider=provider, event=event)

    return await run_in_threadpool(
        run_idempotent,
        ledger=ledger,
        tenant_id=tenant.id,
        idempotency_key=key,
        request_type=IdempotencyRequestType.WEBHOOK,
        method=request.method,
        path=request.url.path,
        raw_body=raw_body,
        headers=request.headers,
        operation=operation,
    )
