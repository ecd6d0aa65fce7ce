from storefront.schemas.checkout import (
    CheckoutItem,
    CheckoutRequest,
    OrderResponse,
    OrderUpdateRequest,
    PaymentCaptureRequest,
    WebhookEventRequest,
    WebhookReceipt,
)
from storefront.schemas.health import (
    HealthResponse,
    LedgerReadiness,
    ReadinessDependency,
    ReadinessResponse,
)
from storefront.schemas.idempotency import (
    IdempotencyRecordList,
    IdempotencyRecordResponse,
    SweepResponse,
)
from storefront.schemas.metrics import IdempotencySummary, MetricsResponse, TimingMetricStats

__all__ = [
    "CheckoutItem",
    "CheckoutRequest",
    "HealthResponse",
    "IdempotencyRecordList",
    "IdempotencyRecordResponse",
    "IdempotencySummary",
    "LedgerReadiness",
    "MetricsResponse",
    "OrderResponse",
    "OrderUpdateRequest",
    "PaymentCaptureRequest",
    "ReadinessDependency",
    "ReadinessResponse",
    "SweepResponse",
    "TimingMetricStats",
    "WebhookEventRequest",
    "WebhookReceipt",
]
