from dataclasses import dataclass
from typing import Callable

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from storefront.auth.capabilities import Capability, Role, capabilities_for
from storefront.auth.jwt import JwtError, decode_jwt, jwt_http_exception
from storefront.config import settings
from storefront.db.session import get_db
from storefront.models.tenant import Tenant, TenantStatus


@dataclass(frozen=True)
class AuthContext:
    """Caller identity resolved once per request, passed down to handlers."""

    user_id: str
    role: Role
    tenant_id: str | None
    capabilities: frozenset[Capability]
    source: str | None = None

    def can(self, capability: Capability) -> bool:
        return capability in self.capabilities


@dataclass(frozen=True)
class TenantContext:
    tenant_id: str
    slug: str
    auth: AuthContext


def _test_bypass_context() -> AuthContext:
    return AuthContext(
        user_id="test-admin",
        role=Role.PLATFORM_ADMIN,
        tenant_id=None,
        capabilities=capabilities_for(Role.PLATFORM_ADMIN),
        source="test",
    )


def get_auth_context(authorization: str | None = Header(default=None)) -> AuthContext:
    if not authorization and settings.enable_test_auth_bypass:
        return _test_bypass_context()

    if not authorization or not authorization.startswith("Bearer "):
        raise jwt_http_exception("Missing bearer token")

    token = authorization.removeprefix("Bearer ").strip()
    try:
        payload = decode_jwt(token, settings.jwt_secret)
    except JwtError as err:
        raise jwt_http_exception("Invalid JWT") from err

    user_id = payload.get("sub")
    try:
        role = Role(payload.get("role"))
    except ValueError as err:
        raise jwt_http_exception("Invalid JWT claims") from err
    tenant_id = payload.get("tenant_id")
    if not isinstance(user_id, str) or (tenant_id is not None and not isinstance(tenant_id, str)):
        raise jwt_http_exception("Invalid JWT claims")
    if tenant_id is None and role != Role.PLATFORM_ADMIN:
        raise jwt_http_exception("Invalid JWT claims")

    return AuthContext(
        user_id=user_id,
        role=role,
        tenant_id=tenant_id,
        capabilities=capabilities_for(role),
        source=payload.get("source"),
    )


def require_capabilities(*required: Capability) -> Callable[[AuthContext], AuthContext]:
    def dependency(auth: AuthContext = Depends(get_auth_context)) -> AuthContext:
        if not all(auth.can(capability) for capability in required):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient role")
        return auth

    return dependency


def load_active_tenant(
    db: Session,
    *,
    tenant_id: str | None = None,
    slug: str | None = None,
) -> Tenant:
    if tenant_id:
        tenant = db.get(Tenant, tenant_id)
    elif slug:
        tenant = db.scalar(select(Tenant).where(Tenant.slug == slug))
    else:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"code": "TENANT_NOT_SPECIFIED", "message": "Tenant not specified"},
        )

    if tenant is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"code": "TENANT_NOT_FOUND", "message": "Tenant not found"},
        )
    if tenant.status != TenantStatus.ACTIVE:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"code": "TENANT_INACTIVE", "message": "Tenant is not active"},
        )
    return tenant


def tenant_scope(*required: Capability) -> Callable[..., TenantContext]:
    """Resolve the target tenant and check the caller may act inside it."""

    def dependency(
        db: Session = Depends(get_db),
        auth: AuthContext = Depends(require_capabilities(*required)),
        x_tenant_id: str | None = Header(default=None),
        x_tenant_slug: str | None = Header(default=None),
    ) -> TenantContext:
        requested_id = x_tenant_id or (None if x_tenant_slug else auth.tenant_id)
        tenant = load_active_tenant(db, tenant_id=requested_id, slug=x_tenant_slug)

        if tenant.id != auth.tenant_id and not auth.can(Capability.CROSS_TENANT):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Cross-tenant access denied",
            )
        return TenantContext(tenant_id=tenant.id, slug=tenant.slug, auth=auth)

    return dependency
