import uuid
from decimal import Decimal

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from storefront.models.order import Order, OrderStatus
from storefront.observability import log_event, metrics_store
from storefront.schemas.checkout import CheckoutRequest, OrderResponse
from storefront.services.state_machine import ensure_valid_transition


def _order_payload(order: Order) -> dict:
    return OrderResponse.model_validate(order).model_dump(mode="json")


def get_order_for_tenant(db: Session, *, tenant_id: str, order_id: uuid.UUID) -> Order:
    order = db.scalar(select(Order).where(Order.id == order_id, Order.tenant_id == tenant_id))
    if order is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found")
    return order


def create_checkout_order(
    db: Session,
    *,
    tenant_id: str,
    customer_id: str | None,
    payload: CheckoutRequest,
) -> dict:
    items = [item.model_dump(mode="json") for item in payload.items]
    total = sum((item.unit_price * item.quantity for item in payload.items), Decimal("0"))

    order = Order(
        tenant_id=tenant_id,
        customer_id=payload.customer_id or customer_id,
        status=OrderStatus.PENDING_PAYMENT,
        total_amount=total,
        currency=payload.currency.upper(),
        items=items,
    )
    db.add(order)
    db.commit()
    db.refresh(order)

    metrics_store.increment("checkout_orders_created_total")
    log_event("checkout_order_created", tenant_id=tenant_id)
    return _order_payload(order)


def capture_payment(
    db: Session,
    *,
    tenant_id: str,
    order_id: uuid.UUID,
    amount: Decimal,
    payment_reference: str,
) -> dict:
    order = get_order_for_tenant(db, tenant_id=tenant_id, order_id=order_id)
    if order.status != OrderStatus.PENDING_PAYMENT:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Order is {order.status.value}; payment cannot be captured",
        )
    if Decimal(amount) != Decimal(order.total_amount):
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Captured amount does not match order total",
        )

    ensure_valid_transition(order.status, OrderStatus.PAID)
    order.status = OrderStatus.PAID
    order.payment_reference = payment_reference
    db.commit()
    db.refresh(order)

    metrics_store.increment("payments_captured_total")
    log_event("payment_captured", tenant_id=tenant_id)
    return _order_payload(order)


def update_order_status(
    db: Session,
    *,
    tenant_id: str,
    order_id: uuid.UUID,
    next_status: OrderStatus,
) -> dict:
    order = get_order_for_tenant(db, tenant_id=tenant_id, order_id=order_id)
    ensure_valid_transition(order.status, next_status)
    order.status = next_status
    db.commit()
    db.refresh(order)

    log_event("order_status_updated", tenant_id=tenant_id)
    return _order_payload(order)
