from collections.abc import Callable, Mapping
from typing import Any

from fastapi import HTTPException, status
from fastapi.responses import JSONResponse

from storefront.ledger import (
    ExecutionTimeout,
    IdempotencyLedger,
    KeyConflict,
    LedgerError,
    RequestInProgress,
    StorageUnavailable,
)
from storefront.ledger.fingerprint import canonical_body
from storefront.models.idempotency_record import IdempotencyRequestType
from storefront.observability import metrics_store

IDEMPOTENCY_KEY_MAX_LENGTH = 255
IDEMPOTENCY_REPLAY_HEADER = "Idempotent-Replayed"

Operation = Callable[[], tuple[int, dict[str, Any]]]


def validate_idempotency_key(idempotency_key: str | None, *, required: bool = False) -> str | None:
    if idempotency_key is None:
        if required:
            metrics_store.increment("idempotency_invalid_key_total")
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail={
                    "code": "IDEMPOTENCY_KEY_REQUIRED",
                    "message": "Idempotency-Key header is required",
                },
            )
        return None

    normalized_key = idempotency_key.strip()
    if not normalized_key:
        metrics_store.increment("idempotency_invalid_key_total")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "code": "IDEMPOTENCY_KEY_INVALID",
                "message": "Idempotency-Key must not be empty",
            },
        )

    if len(normalized_key) > IDEMPOTENCY_KEY_MAX_LENGTH:
        metrics_store.increment("idempotency_invalid_key_total")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "code": "IDEMPOTENCY_KEY_INVALID",
                "message": f"Idempotency-Key exceeds max length {IDEMPOTENCY_KEY_MAX_LENGTH}",
            },
        )

    return normalized_key


def translate_ledger_error(err: LedgerError, *, retry_after_s: int = 1) -> HTTPException:
    detail = {"code": err.code, "message": err.message}
    if isinstance(err, KeyConflict):
        return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=detail)
    if isinstance(err, (RequestInProgress, ExecutionTimeout)):
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail,
            headers={"Retry-After": str(retry_after_s)},
        )
    if isinstance(err, StorageUnavailable):
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=detail,
            headers={"Retry-After": str(retry_after_s)},
        )
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=detail)


def http_error_mapper(exc: Exception) -> tuple[int, dict[str, Any]]:
    if isinstance(exc, HTTPException):
        return exc.status_code, {"detail": exc.detail}
    return status.HTTP_500_INTERNAL_SERVER_ERROR, {"detail": "Request failed"}


def request_fingerprint_body(
    method: str, path: str, raw_body: bytes | str | None
) -> dict[str, Any]:
    """Request content that a reused key must reproduce exactly."""
    return {
        "method": method.upper(),
        "path": path,
        "body": canonical_body(raw_body) if raw_body else None,
    }


def run_idempotent(
    *,
    ledger: IdempotencyLedger,
    tenant_id: str,
    idempotency_key: str | None,
    request_type: IdempotencyRequestType,
    method: str,
    path: str,
    raw_body: bytes | str | None,
    headers: Mapping[str, Any] | None,
    operation: Operation,
) -> JSONResponse:
    if idempotency_key is None:
        status_code, payload = operation()
        return JSONResponse(status_code=status_code, content=payload)

    try:
        outcome = ledger.execute(
            tenant_id,
            idempotency_key,
            request_type,
            request_fingerprint_body(method, path, raw_body),
            operation,
            headers=headers,
            path=path,
            method=method.upper(),
            error_mapper=http_error_mapper,
        )
    except LedgerError as err:
        raise translate_ledger_error(err, retry_after_s=ledger.arbiter.retry_after_s) from err

    response_headers = {"Idempotency-Key": idempotency_key}
    if outcome.replayed:
        response_headers[IDEMPOTENCY_REPLAY_HEADER] = "true"

    return JSONResponse(
        status_code=outcome.response_status,
        content=outcome.response_data,
        headers=response_headers,
    )
