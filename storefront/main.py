import time
from contextlib import asynccontextmanager
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.openapi.utils import get_openapi
from fastapi.responses import Response

from storefront.config import allowed_origins, ensure_secure_runtime_settings, settings
from storefront.db.migration_check import assert_db_is_up_to_date, maybe_create_schema
from storefront.db.session import Database
from storefront.dependencies import build_ledger
from storefront.observability import configure_logging, log_event, metrics_store, set_request_id
from storefront.routers.checkout import router as checkout_router
from storefront.routers.health import router as health_router
from storefront.routers.idempotency import router as idempotency_router
from storefront.routers.metrics import router as metrics_router
from storefront.routers.webhooks import router as webhooks_router


@asynccontextmanager
async def lifespan(app: FastAPI):
    if not settings.testing:
        configure_logging()
    ensure_secure_runtime_settings()

    database = Database(
        settings.database_url,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
    )
    try:
        if settings.require_migrations:
            assert_db_is_up_to_date(database.engine)
        else:
            maybe_create_schema(database.engine)

        app.state.database = database
        app.state.ledger = build_ledger(database, settings)
        log_event("storefront_started")
        yield
    finally:
        database.dispose()


app = FastAPI(
    title=settings.app_name,
    version="0.1.0",
    description="Multi-tenant storefront checkout, payment and webhook API",
    lifespan=lifespan,
)


def custom_openapi():
    """
    Adds HTTP Bearer (JWT) auth to the OpenAPI schema so Swagger UI shows an
    'Authorize' button and sends the Authorization: Bearer <token> header.
    """
    if app.openapi_schema:
        return app.openapi_schema

    openapi_schema = get_openapi(
        title=app.title,
        version=app.version,
        description=app.description,
        routes=app.routes,
    )

    components = openapi_schema.setdefault("components", {})
    security_schemes = components.setdefault("securitySchemes", {})
    security_schemes["BearerAuth"] = {
        "type": "http",
        "scheme": "bearer",
        "bearerFormat": "JWT",
    }
    openapi_schema["security"] = [{"BearerAuth": []}]

    app.openapi_schema = openapi_schema
    return app.openapi_schema


app.openapi = custom_openapi

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Idempotency-Key", "Idempotent-Replayed", "Retry-After", "X-Request-ID"],
)


@app.middleware("http")
async def request_context_middleware(request: Request, call_next) -> Response:
    request_id = request.headers.get("X-Request-ID") or str(uuid4())
    set_request_id(request_id)

    start = time.perf_counter()
    response = await call_next(request)
    elapsed = time.perf_counter() - start

    response.headers["X-Request-ID"] = request_id
    metrics_store.increment("http_requests_total")
    metrics_store.observe("http_request_duration_seconds", elapsed)
    log_event(
        "http_request",
        tenant_id=request.headers.get("X-Tenant-ID"),
        idempotency_key=request.headers.get("Idempotency-Key"),
    )
    return response


app.include_router(health_router)
app.include_router(checkout_router)
app.include_router(webhooks_router)
app.include_router(idempotency_router)
app.include_router(metrics_router)
