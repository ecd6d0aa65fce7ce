from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from storefront.models.idempotency_record import IdempotencyRequestType, IdempotencyStatus


class IdempotencyRecordResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    tenant_id: str
    idempotency_key: str
    request_type: IdempotencyRequestType
    request_path: str | None
    request_method: str | None
    response_status: int | None
    response_data: dict[str, Any] | None
    attempts: int
    status: IdempotencyStatus
    expires_at: datetime
    created_at: datetime
    updated_at: datetime


class IdempotencyRecordList(BaseModel):
    items: list[IdempotencyRecordResponse]
    limit: int
    offset: int


class SweepResponse(BaseModel):
    purged: int
