from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from storefront.ledger.arbiter import ConcurrencyArbiter
from storefront.ledger.errors import ExecutionTimeout, KeyConflict, LedgerError
from storefront.ledger.fingerprint import compute_fingerprint, select_headers
from storefront.ledger.records import LedgerRecord
from storefront.ledger.state_machine import Decision, DecisionKind, decide
from storefront.ledger.store import KeyStore
from storefront.models.idempotency_record import IdempotencyRequestType, IdempotencyStatus
from storefront.observability import log_event, metrics_store

MAX_BEGIN_ROUNDS = 3
DEFAULT_FAILURE_STATUS = 500
DEFAULT_FAILURE_PAYLOAD = {"detail": "Request failed"}

Operation = Callable[[], tuple[int, dict[str, Any]]]
ErrorMapper = Callable[[Exception], tuple[int, dict[str, Any]]]


@dataclass(frozen=True)
class LedgerOutcome:
    record: LedgerRecord
    replayed: bool

    @property
    def should_execute(self) -> bool:
        return not self.replayed and self.record.status == IdempotencyStatus.PROCESSING

    @property
    def response_data(self) -> dict[str, Any] | None:
        return self.record.response_data

    @property
    def response_status(self) -> int | None:
        return self.record.response_status


def _default_error_mapper(_exc: Exception) -> tuple[int, dict[str, Any]]:
    return DEFAULT_FAILURE_STATUS, dict(DEFAULT_FAILURE_PAYLOAD)


class IdempotencyLedger:
    """Maps a tenant-scoped idempotency key to at most one logical outcome.

    Handlers call ``begin`` and run their side effect only when the outcome
    says so, then report back through ``complete`` or ``fail``. ``execute``
    wraps that protocol around a callable.
    """

    def __init__(
        self,
        store: KeyStore,
        arbiter: ConcurrencyArbiter,
        *,
        ttl_s: int,
        fingerprint_headers: Sequence[str] = (),
    ) -> None:
        if ttl_s < 1:
            raise ValueError("ttl_s must be >= 1")
        self.store = store
        self.arbiter = arbiter
        self.ttl = timedelta(seconds=ttl_s)
        self.fingerprint_headers = [name.lower() for name in fingerprint_headers]

    def fingerprint(self, body: Any, headers: Mapping[str, Any] | None = None) -> str:
        relevant = select_headers(headers or {}, self.fingerprint_headers)
        return compute_fingerprint(body, relevant)

    def begin(
        self,
        tenant_id: str,
        key: str,
        request_type: IdempotencyRequestType,
        body: Any,
        *,
        headers: Mapping[str, Any] | None = None,
        path: str | None = None,
        method: str | None = None,
    ) -> LedgerOutcome:
        fingerprint = self.fingerprint(body, headers)
        waited_s = 0.0

        for _ in range(MAX_BEGIN_ROUNDS):
            with self.arbiter.guard(tenant_id, key):
                now = self.store.now()
                current = self.store.get(tenant_id, key)
                decision = self._decide_or_conflict(current, fingerprint, now)

                if decision.kind == DecisionKind.EXECUTE:
                    record, created = self.store.create_if_absent(
                        tenant_id,
                        key,
                        IdempotencyRequestType(request_type),
                        fingerprint,
                        now + self.ttl,
                        request_path=path,
                        request_method=method,
                    )
                    if created:
                        metrics_store.increment("idempotency_created_total")
                        log_event(
                            "idempotency_record_created",
                            tenant_id=tenant_id,
                            idempotency_key=key,
                            record_id=str(record.id),
                        )
                        return LedgerOutcome(record=record, replayed=False)
                    # another process won the insert
                    decision = self._decide_or_conflict(record, fingerprint, now)

                record = self.store.increment_attempt(decision.record.id)
                if decision.kind == DecisionKind.REPLAY:
                    metrics_store.increment("idempotency_replay_total")
                    log_event(
                        "idempotency_replay",
                        tenant_id=tenant_id,
                        idempotency_key=key,
                        record_id=str(record.id),
                    )
                    return LedgerOutcome(record=record, replayed=True)

            waited = self.arbiter.on_in_flight(record)
            waited_s += waited.waited_s
            if waited.record is not None:
                metrics_store.increment("idempotency_replay_total")
                return LedgerOutcome(record=waited.record, replayed=True)

        raise ExecutionTimeout(waited_s)

    def _decide_or_conflict(
        self, record: LedgerRecord | None, fingerprint: str, now: datetime
    ) -> Decision:
        try:
            return decide(record, fingerprint, now)
        except KeyConflict:
            self._record_conflict(record)
            raise

    def _record_conflict(self, record: LedgerRecord) -> None:
        metrics_store.increment("idempotency_conflict_total")
        log_event(
            "idempotency_key_conflict",
            tenant_id=record.tenant_id,
            idempotency_key=record.idempotency_key,
            record_id=str(record.id),
        )

    def complete(
        self,
        record: LedgerRecord,
        response_data: dict[str, Any],
        response_status: int,
    ) -> LedgerRecord:
        return self._finish(record, IdempotencyStatus.COMPLETED, response_data, response_status)

    def fail(
        self,
        record: LedgerRecord,
        response_data: dict[str, Any] | None = None,
        response_status: int = DEFAULT_FAILURE_STATUS,
    ) -> LedgerRecord:
        payload = response_data if response_data is not None else dict(DEFAULT_FAILURE_PAYLOAD)
        return self._finish(record, IdempotencyStatus.FAILED, payload, response_status)

    def _finish(
        self,
        record: LedgerRecord,
        status: IdempotencyStatus,
        response_data: dict[str, Any] | None,
        response_status: int | None,
    ) -> LedgerRecord:
        try:
            finished = self.store.complete(record.id, status, response_data, response_status)
        finally:
            self.arbiter.notify(record.tenant_id, record.idempotency_key)

        metrics_store.increment(f"idempotency_{status.value}_total")
        log_event(
            f"idempotency_record_{status.value}",
            tenant_id=record.tenant_id,
            idempotency_key=record.idempotency_key,
            record_id=str(record.id),
        )
        return finished

    def execute(
        self,
        tenant_id: str,
        key: str,
        request_type: IdempotencyRequestType,
        body: Any,
        operation: Operation,
        *,
        headers: Mapping[str, Any] | None = None,
        path: str | None = None,
        method: str | None = None,
        error_mapper: ErrorMapper = _default_error_mapper,
    ) -> LedgerOutcome:
        outcome = self.begin(
            tenant_id, key, request_type, body, headers=headers, path=path, method=method
        )
        if not outcome.should_execute:
            return outcome

        try:
            response_status, response_data = operation()
        except Exception as exc:
            failure_status, failure_payload = error_mapper(exc)
            try:
                self.fail(outcome.record, failure_payload, failure_status)
            except LedgerError:
                log_event(
                    "idempotency_fail_not_recorded",
                    tenant_id=tenant_id,
                    idempotency_key=key,
                    record_id=str(outcome.record.id),
                )
            raise

        record = self.complete(outcome.record, response_data, response_status)
        return LedgerOutcome(record=record, replayed=False)
