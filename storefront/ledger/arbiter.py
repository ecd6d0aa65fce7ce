from __future__ import annotations

import enum
import threading
import time
import uuid
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass

from storefront.ledger.errors import ExecutionTimeout, RequestInProgress
from storefront.ledger.records import LedgerRecord
from storefront.ledger.store import KeyStore
from storefront.observability import log_event, metrics_store


class ConcurrencyPolicy(str, enum.Enum):
    WAIT = "wait"
    REJECT = "reject"


class _KeyLatch:
    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.condition = threading.Condition()
        self.users = 0


@dataclass(frozen=True)
class WaitResult:
    """Outcome of waiting on an in-flight execution.

    ``record`` is the terminal record to replay, or None when the owner's
    record expired and the caller must start over as a first sighting.
    """

    record: LedgerRecord | None
    waited_s: float


class ConcurrencyArbiter:
    """Keeps at most one execution per live (tenant, key) in flight.

    Within a process, ``guard`` serializes the decide/create step for a single
    key and ``notify`` wakes duplicates parked on that key. Across processes
    the store's unique constraint is authoritative and waiters fall back to
    polling.
    """

    def __init__(
        self,
        store: KeyStore,
        *,
        policy: ConcurrencyPolicy = ConcurrencyPolicy.WAIT,
        wait_timeout_s: float = 10.0,
        poll_interval_s: float = 0.2,
        retry_after_s: int = 1,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        if wait_timeout_s <= 0:
            raise ValueError("wait_timeout_s must be > 0")
        if poll_interval_s <= 0:
            raise ValueError("poll_interval_s must be > 0")

        self.store = store
        self.policy = ConcurrencyPolicy(policy)
        self.wait_timeout_s = wait_timeout_s
        self.poll_interval_s = poll_interval_s
        self.retry_after_s = retry_after_s
        self._monotonic = monotonic
        self._registry_lock = threading.Lock()
        self._latches: dict[tuple[str, str], _KeyLatch] = {}

    @contextmanager
    def _latch(self, tenant_id: str, key: str) -> Iterator[_KeyLatch]:
        scope = (tenant_id, key)
        with self._registry_lock:
            latch = self._latches.get(scope)
            if latch is None:
                latch = _KeyLatch()
                self._latches[scope] = latch
            latch.users += 1
        try:
            yield latch
        finally:
            with self._registry_lock:
                latch.users -= 1
                if latch.users == 0:
                    self._latches.pop(scope, None)

    def active_keys(self) -> int:
        with self._registry_lock:
            return len(self._latches)

    @contextmanager
    def guard(self, tenant_id: str, key: str) -> Iterator[None]:
        with self._latch(tenant_id, key) as latch:
            with latch.lock:
                yield

    def notify(self, tenant_id: str, key: str) -> None:
        with self._registry_lock:
            latch = self._latches.get((tenant_id, key))
        if latch is None:
            return
        with latch.condition:
            latch.condition.notify_all()

    def on_in_flight(self, record: LedgerRecord) -> WaitResult:
        """Handle a duplicate that found ``record`` still processing."""
        metrics_store.increment("idempotency_in_flight_total")
        if self.policy == ConcurrencyPolicy.REJECT:
            metrics_store.increment("idempotency_in_flight_rejected_total")
            log_event(
                "idempotency_in_flight_rejected",
                tenant_id=record.tenant_id,
                idempotency_key=record.idempotency_key,
                record_id=str(record.id),
            )
            raise RequestInProgress()
        return self.wait_for_outcome(record.tenant_id, record.idempotency_key, record.id)

    def wait_for_outcome(
        self,
        tenant_id: str,
        key: str,
        record_id: uuid.UUID,
        *,
        timeout_s: float | None = None,
    ) -> WaitResult:
        timeout = self.wait_timeout_s if timeout_s is None else timeout_s
        started = self._monotonic()
        deadline = started + timeout

        with self._latch(tenant_id, key) as latch:
            while True:
                current = self.store.get(tenant_id, key)
                waited = self._monotonic() - started
                if current is None or current.id != record_id:
                    return WaitResult(record=None, waited_s=waited)
                if current.is_terminal:
                    metrics_store.observe("idempotency_wait_seconds", waited)
                    return WaitResult(record=current, waited_s=waited)

                remaining = deadline - self._monotonic()
                if remaining <= 0:
                    metrics_store.increment("idempotency_wait_timeout_total")
                    log_event(
                        "idempotency_wait_timeout",
                        tenant_id=tenant_id,
                        idempotency_key=key,
                        record_id=str(record_id),
                    )
                    raise ExecutionTimeout(waited)

                with latch.condition:
                    latch.condition.wait(timeout=min(self.poll_interval_s, remaining))
