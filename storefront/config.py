from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_JWT_SECRET = "storefront-jwt-secret"
DEFAULT_WEBHOOK_SIGNING_SECRET = "storefront-webhook-secret"
ALLOWED_CONCURRENCY_POLICIES = {"wait", "reject"}
ALLOWED_APP_MODES = {"development", "staging", "production"}
MIN_SECRET_LENGTH = 32


class Settings(BaseSettings):
    app_name: str = "Storefront Commerce API"
    app_mode: str = Field(default="development", validation_alias="STOREFRONT_APP_MODE")

    database_url: str = Field(
        default="sqlite+pysqlite:///./storefront.db",
        validation_alias="STOREFRONT_DATABASE_URL",
    )
    database_pool_size: int = 5
    database_max_overflow: int = 15
    auto_create_schema: bool = Field(
        default=True, validation_alias="STOREFRONT_AUTO_CREATE_SCHEMA"
    )
    require_migrations: bool = Field(
        default=False, validation_alias="STOREFRONT_REQUIRE_MIGRATIONS"
    )
    cors_allowed_origins: str = "http://localhost:3000"

    jwt_secret: str = DEFAULT_JWT_SECRET
    webhook_signing_secret: str = Field(
        default=DEFAULT_WEBHOOK_SIGNING_SECRET,
        validation_alias="STOREFRONT_WEBHOOK_SIGNING_SECRET",
    )
    enable_test_auth_bypass: bool = False
    testing: bool = Field(default=False, validation_alias="STOREFRONT_TESTING")

    idempotency_ttl_s: int = Field(
        default=30 * 60, validation_alias="STOREFRONT_IDEMPOTENCY_TTL_S"
    )
    idempotency_concurrency_policy: str = Field(
        default="wait", validation_alias="STOREFRONT_IDEMPOTENCY_CONCURRENCY_POLICY"
    )
    idempotency_wait_timeout_s: float = Field(
        default=10.0, validation_alias="STOREFRONT_IDEMPOTENCY_WAIT_TIMEOUT_S"
    )
    idempotency_poll_interval_s: float = Field(
        default=0.2, validation_alias="STOREFRONT_IDEMPOTENCY_POLL_INTERVAL_S"
    )
    idempotency_retry_after_s: int = 1
    idempotency_fingerprint_headers: str = Field(
        default="", validation_alias="STOREFRONT_IDEMPOTENCY_FINGERPRINT_HEADERS"
    )
    idempotency_sweep_batch_size: int = 1000

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", populate_by_name=True
    )

    @field_validator("idempotency_concurrency_policy")
    @classmethod
    def validate_concurrency_policy(cls, value: str) -> str:
        policy = value.lower().strip()
        if policy not in ALLOWED_CONCURRENCY_POLICIES:
            allowed = ", ".join(sorted(ALLOWED_CONCURRENCY_POLICIES))
            raise ValueError(
                f"STOREFRONT_IDEMPOTENCY_CONCURRENCY_POLICY must be one of: {allowed}"
            )
        return policy

    @field_validator("app_mode")
    @classmethod
    def validate_app_mode(cls, value: str) -> str:
        mode = value.lower().strip()
        if mode not in ALLOWED_APP_MODES:
            allowed = ", ".join(sorted(ALLOWED_APP_MODES))
            raise ValueError(f"STOREFRONT_APP_MODE must be one of: {allowed}")
        return mode

    @field_validator("idempotency_wait_timeout_s", "idempotency_poll_interval_s")
    @classmethod
    def validate_positive_interval(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("idempotency wait and poll intervals must be > 0")
        return value

    @field_validator("idempotency_ttl_s")
    @classmethod
    def validate_ttl(cls, value: int) -> int:
        if value < 1:
            raise ValueError("STOREFRONT_IDEMPOTENCY_TTL_S must be >= 1")
        return value


settings = Settings()


def is_production_mode() -> bool:
    return settings.app_mode == "production"


def allowed_origins() -> list[str]:
    return [origin.strip() for origin in settings.cors_allowed_origins.split(",") if origin.strip()]


def fingerprint_headers_list() -> list[str]:
    return [
        value.strip().lower()
        for value in settings.idempotency_fingerprint_headers.split(",")
        if value.strip()
    ]


def ensure_secure_runtime_settings() -> None:
    """Fail fast when production-like runtime uses insecure defaults."""
    if settings.testing:
        return
    if settings.jwt_secret == DEFAULT_JWT_SECRET:
        raise RuntimeError(
            "JWT_SECRET must be set to a non-default value when STOREFRONT_TESTING is false"
        )
    if len(settings.jwt_secret) < MIN_SECRET_LENGTH:
        raise RuntimeError(
            "JWT_SECRET must be at least "
            f"{MIN_SECRET_LENGTH} characters when STOREFRONT_TESTING is false"
        )
    if settings.webhook_signing_secret == DEFAULT_WEBHOOK_SIGNING_SECRET:
        raise RuntimeError(
            "STOREFRONT_WEBHOOK_SIGNING_SECRET must be set to a non-default value "
            "when STOREFRONT_TESTING is false"
        )
    if settings.enable_test_auth_bypass:
        raise RuntimeError(
            "ENABLE_TEST_AUTH_BYPASS must be disabled when STOREFRONT_TESTING is false"
        )
    if is_production_mode() and _is_sqlite_url(settings.database_url):
        raise RuntimeError(
            "STOREFRONT_DATABASE_URL must use postgres in STOREFRONT_APP_MODE=production"
        )


def _is_sqlite_url(database_url: str) -> bool:
    value = database_url.strip().lower()
    return value.startswith("sqlite")
