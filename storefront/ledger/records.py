from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from storefront.models.idempotency_record import (
    IdempotencyRecord,
    IdempotencyRequestType,
    IdempotencyStatus,
)


@dataclass(frozen=True)
class LedgerRecord:
    """Read-only snapshot of one ``idempotency_records`` row."""

    id: uuid.UUID
    tenant_id: str
    idempotency_key: str
    request_type: IdempotencyRequestType
    request_path: str | None
    request_method: str | None
    request_fingerprint: str
    response_data: dict[str, Any] | None
    response_status: int | None
    attempts: int
    status: IdempotencyStatus
    expires_at: datetime
    created_at: datetime
    updated_at: datetime

    @property
    def is_terminal(self) -> bool:
        return self.status in (IdempotencyStatus.COMPLETED, IdempotencyStatus.FAILED)

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at <= now

    @classmethod
    def from_row(cls, row: IdempotencyRecord) -> LedgerRecord:
        return cls(
            id=row.id,
            tenant_id=row.tenant_id,
            idempotency_key=row.idempotency_key,
            request_type=IdempotencyRequestType(row.request_type),
            request_path=row.request_path,
            request_method=row.request_method,
            request_fingerprint=row.request_fingerprint,
            response_data=row.response_data,
            response_status=row.response_status,
            attempts=row.attempts,
            status=IdempotencyStatus(row.status),
            expires_at=row.expires_at,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )
