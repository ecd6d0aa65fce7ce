from __future__ import annotations

import uuid
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from storefront.ledger.errors import RecordNotFound, RecordRejected, StorageUnavailable
from storefront.ledger.records import LedgerRecord
from storefront.ledger.state_machine import ensure_terminal_payload, ensure_valid_transition
from storefront.models.idempotency_record import (
    IdempotencyRecord,
    IdempotencyRequestType,
    IdempotencyStatus,
)
from storefront.observability import log_event, metrics_store


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class KeyStore:
    """Durable (tenant, idempotency key) -> ledger record mapping.

    Every method runs in its own short transaction. Expired rows are invisible
    to readers whether or not the sweeper has deleted them yet.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        *,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock

    def now(self) -> datetime:
        return self._clock()

    @contextmanager
    def _session(self) -> Iterator[Session]:
        db = self._session_factory()
        try:
            yield db
        except IntegrityError:
            db.rollback()
            raise
        except SQLAlchemyError as exc:
            db.rollback()
            metrics_store.increment("idempotency_storage_error_total")
            log_event("idempotency_storage_error")
            reason = type(getattr(exc, "orig", None) or exc).__name__
            raise StorageUnavailable(f"Idempotency store unavailable: {reason}") from exc
        finally:
            db.close()

    def get(self, tenant_id: str, key: str) -> LedgerRecord | None:
        with self._session() as db:
            row = db.scalar(
                select(IdempotencyRecord).where(
                    IdempotencyRecord.tenant_id == tenant_id,
                    IdempotencyRecord.idempotency_key == key,
                    IdempotencyRecord.expires_at > self.now(),
                )
            )
            return LedgerRecord.from_row(row) if row is not None else None

    def create_if_absent(
        self,
        tenant_id: str,
        key: str,
        request_type: IdempotencyRequestType,
        fingerprint: str,
        expires_at: datetime,
        *,
        request_path: str | None = None,
        request_method: str | None = None,
    ) -> tuple[LedgerRecord, bool]:
        now = self.now()
        if expires_at <= now:
            raise ValueError("expires_at must be after the record creation time")

        try:
            with self._session() as db:
                existing = db.scalar(
                    select(IdempotencyRecord).where(
                        IdempotencyRecord.tenant_id == tenant_id,
                        IdempotencyRecord.idempotency_key == key,
                    )
                )
                if existing is not None and existing.expires_at > now:
                    return LedgerRecord.from_row(existing), False

                if existing is not None:
                    # Same transaction as the insert: an expired row is
                    # replaced, never reset in place.
                    db.execute(
                        delete(IdempotencyRecord).where(
                            IdempotencyRecord.id == existing.id,
                            IdempotencyRecord.expires_at <= now,
                        )
                    )

                row = IdempotencyRecord(
                    id=uuid.uuid4(),
                    tenant_id=tenant_id,
                    idempotency_key=key,
                    request_type=request_type,
                    request_path=request_path,
                    request_method=request_method,
                    request_fingerprint=fingerprint,
                    attempts=1,
                    status=IdempotencyStatus.PROCESSING,
                    expires_at=expires_at,
                    created_at=now,
                    updated_at=now,
                )
                db.add(row)
                db.flush()
                record = LedgerRecord.from_row(row)
                db.commit()
                return record, True
        except IntegrityError as exc:
            winner = self.get(tenant_id, key)
            if winner is None:
                # Not a lost race: some other constraint (unknown tenant) failed.
                log_event("idempotency_record_rejected", tenant_id=tenant_id, idempotency_key=key)
                reason = type(exc.orig).__name__
                raise RecordRejected(f"Idempotency record rejected by storage: {reason}") from exc

        metrics_store.increment("idempotency_create_race_total")
        return winner, False

    def complete(
        self,
        record_id: uuid.UUID,
        status: IdempotencyStatus,
        response_data: dict[str, Any] | None,
        response_status: int | None,
    ) -> LedgerRecord:
        ensure_terminal_payload(status, response_data, response_status)

        with self._session() as db:
            result = db.execute(
                update(IdempotencyRecord)
                .where(
                    IdempotencyRecord.id == record_id,
                    IdempotencyRecord.status == IdempotencyStatus.PROCESSING,
                )
                .values(
                    status=status,
                    response_data=response_data,
                    response_status=response_status,
                    updated_at=self.now(),
                )
            )
            if result.rowcount == 0:
                current = db.scalar(
                    select(IdempotencyRecord.status).where(IdempotencyRecord.id == record_id)
                )
                db.rollback()
                if current is None:
                    raise RecordNotFound(record_id)
                ensure_valid_transition(IdempotencyStatus(current), status)

            db.commit()
            return self._reload(db, record_id)

    def increment_attempt(self, record_id: uuid.UUID) -> LedgerRecord:
        with self._session() as db:
            result = db.execute(
                update(IdempotencyRecord)
                .where(IdempotencyRecord.id == record_id)
                .values(attempts=IdempotencyRecord.attempts + 1, updated_at=self.now())
            )
            if result.rowcount == 0:
                db.rollback()
                raise RecordNotFound(record_id)

            db.commit()
            return self._reload(db, record_id)

    def purge_expired(self, *, tenant_id: str | None = None, limit: int | None = None) -> int:
        now = self.now()
        conditions = [IdempotencyRecord.expires_at <= now]
        if tenant_id is not None:
            conditions.append(IdempotencyRecord.tenant_id == tenant_id)

        with self._session() as db:
            statement = delete(IdempotencyRecord).where(*conditions)
            if limit is not None:
                expired_ids = select(IdempotencyRecord.id).where(*conditions).limit(limit)
                statement = delete(IdempotencyRecord).where(
                    IdempotencyRecord.id.in_(list(db.scalars(expired_ids)))
                )
            result = db.execute(statement)
            db.commit()
            return int(result.rowcount or 0)

    def list_records(
        self,
        tenant_id: str,
        *,
        status: IdempotencyStatus | None = None,
        include_expired: bool = False,
        limit: int = 50,
        offset: int = 0,
    ) -> list[LedgerRecord]:
        query = select(IdempotencyRecord).where(IdempotencyRecord.tenant_id == tenant_id)
        if status is not None:
            query = query.where(IdempotencyRecord.status == status)
        if not include_expired:
            query = query.where(IdempotencyRecord.expires_at > self.now())
        query = query.order_by(IdempotencyRecord.created_at.desc()).limit(limit).offset(offset)

        with self._session() as db:
            return [LedgerRecord.from_row(row) for row in db.scalars(query)]

    @staticmethod
    def _reload(db: Session, record_id: uuid.UUID) -> LedgerRecord:
        row = db.scalar(
            select(IdempotencyRecord)
            .where(IdempotencyRecord.id == record_id)
            .execution_options(populate_existing=True)
        )
        if row is None:
            raise RecordNotFound(record_id)
        return LedgerRecord.from_row(row)
