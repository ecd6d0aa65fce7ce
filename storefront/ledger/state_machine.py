from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from storefront.ledger.errors import InvalidTransition, KeyConflict
from storefront.ledger.fingerprint import matches
from storefront.ledger.records import LedgerRecord
from storefront.models.idempotency_record import IdempotencyStatus

LEDGER_STATE_TRANSITIONS: dict[IdempotencyStatus, set[IdempotencyStatus]] = {
    IdempotencyStatus.PROCESSING: {IdempotencyStatus.COMPLETED, IdempotencyStatus.FAILED},
    IdempotencyStatus.COMPLETED: set(),
    IdempotencyStatus.FAILED: set(),
}


class DecisionKind(str, enum.Enum):
    EXECUTE = "execute"
    IN_FLIGHT = "in_flight"
    REPLAY = "replay"


@dataclass(frozen=True)
class Decision:
    kind: DecisionKind
    record: LedgerRecord | None = None


def ensure_valid_transition(current: IdempotencyStatus, next_status: IdempotencyStatus) -> None:
    allowed = LEDGER_STATE_TRANSITIONS.get(current, set())
    if next_status not in allowed:
        raise InvalidTransition(current.value, next_status.value)


def ensure_terminal_payload(
    status: IdempotencyStatus,
    response_data: dict[str, Any] | None,
    response_status: int | None,
) -> None:
    if status == IdempotencyStatus.PROCESSING:
        raise InvalidTransition(IdempotencyStatus.PROCESSING.value, status.value)
    if status == IdempotencyStatus.COMPLETED and (response_data is None or response_status is None):
        raise ValueError("completed records require response_data and response_status")


def decide(record: LedgerRecord | None, fingerprint: str, now: datetime) -> Decision:
    """Pick what a request presenting ``fingerprint`` must do with ``record``.

    A fingerprint mismatch raises KeyConflict whatever the record state, and
    the record is left untouched.
    """
    if record is None or record.is_expired(now):
        return Decision(kind=DecisionKind.EXECUTE)

    if not matches(record.request_fingerprint, fingerprint):
        raise KeyConflict()

    if record.status == IdempotencyStatus.PROCESSING:
        return Decision(kind=DecisionKind.IN_FLIGHT, record=record)
    return Decision(kind=DecisionKind.REPLAY, record=record)
