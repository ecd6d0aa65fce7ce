# Import SQLAlchemy models so they register on Base.metadata
from storefront.models.idempotency_record import (  # noqa: F401
    IdempotencyRecord,
    IdempotencyRequestType,
    IdempotencyStatus,
)
from storefront.models.order import Order, OrderStatus  # noqa: F401
from storefront.models.tenant import Tenant, TenantStatus  # noqa: F401
