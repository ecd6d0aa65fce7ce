import enum


class Role(str, enum.Enum):
    CUSTOMER = "CUSTOMER"
    STAFF = "STAFF"
    TENANT_ADMIN = "TENANT_ADMIN"
    PLATFORM_ADMIN = "PLATFORM_ADMIN"


class Capability(str, enum.Enum):
    CHECKOUT_CREATE = "checkout:create"
    PAYMENT_CAPTURE = "payment:capture"
    ORDER_READ = "order:read"
    ORDER_UPDATE = "order:update"
    IDEMPOTENCY_READ = "idempotency:read"
    IDEMPOTENCY_SWEEP = "idempotency:sweep"
    METRICS_READ = "metrics:read"
    CROSS_TENANT = "tenant:any"


_CUSTOMER = frozenset(
    {Capability.CHECKOUT_CREATE, Capability.PAYMENT_CAPTURE, Capability.ORDER_READ}
)
_STAFF = _CUSTOMER | {Capability.ORDER_UPDATE}
_TENANT_ADMIN = _STAFF | {Capability.IDEMPOTENCY_READ}

ROLE_CAPABILITIES: dict[Role, frozenset[Capability]] = {
    Role.CUSTOMER: _CUSTOMER,
    Role.STAFF: frozenset(_STAFF),
    Role.TENANT_ADMIN: frozenset(_TENANT_ADMIN),
    Role.PLATFORM_ADMIN: frozenset(Capability),
}


def capabilities_for(role: Role) -> frozenset[Capability]:
    return ROLE_CAPABILITIES.get(role, frozenset())
