import hashlib
import hmac

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from storefront.models.order import OrderStatus
from storefront.observability import log_event, metrics_store
from storefront.schemas.checkout import WebhookEventRequest, WebhookReceipt
from storefront.services.order_service import get_order_for_tenant
from storefront.services.state_machine import ensure_valid_transition

WEBHOOK_SIGNATURE_HEADER = "X-Webhook-Signature"

_EVENT_TARGET_STATUS = {
    "payment.succeeded": OrderStatus.PAID,
    "payment.refunded": OrderStatus.REFUNDED,
    "payment.cancelled": OrderStatus.CANCELLED,
}


def sign_webhook_payload(raw_body: bytes, secret: str) -> str:
    return hmac.new(secret.encode(), raw_body, hashlib.sha256).hexdigest()


def verify_webhook_signature(raw_body: bytes, signature: str | None, secret: str) -> None:
    expected = sign_webhook_payload(raw_body, secret)
    if not signature or not hmac.compare_digest(expected, signature.strip().lower()):
        metrics_store.increment("webhook_signature_rejected_total")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid webhook signature",
        )


def handle_webhook_event(
    db: Session,
    *,
    tenant_id: str,
    provider: str,
    event: WebhookEventRequest,
) -> dict:
    target = _EVENT_TARGET_STATUS.get(event.type)
    if target is None or event.order_id is None:
        log_event("webhook_event_ignored", tenant_id=tenant_id, idempotency_key=event.event_id)
        return WebhookReceipt(
            event_id=event.event_id, provider=provider, handled=False, order_id=event.order_id
        ).model_dump(mode="json")

    order = get_order_for_tenant(db, tenant_id=tenant_id, order_id=event.order_id)
    ensure_valid_transition(order.status, target)
    order.status = target
    if event.payment_reference:
        order.payment_reference = event.payment_reference
    db.commit()

    metrics_store.increment("webhook_events_handled_total")
    log_event("webhook_event_handled", tenant_id=tenant_id, idempotency_key=event.event_id)
    return WebhookReceipt(
        event_id=event.event_id, provider=provider, handled=True, order_id=order.id
    ).model_dump(mode="json")
