import uuid
from datetime import datetime, timedelta, timezone

import pytest

from storefront.ledger.errors import InvalidTransition, KeyConflict
from storefront.ledger.fingerprint import compute_fingerprint
from storefront.ledger.records import LedgerRecord
from storefront.ledger.state_machine import (
    DecisionKind,
    decide,
    ensure_terminal_payload,
    ensure_valid_transition,
)
from storefront.models.idempotency_record import IdempotencyRequestType, IdempotencyStatus

NOW = datetime(2026, 10, 1, 12, 0, tzinfo=timezone.utc)


def _record(status: IdempotencyStatus, *, body=None, expires_in_s: int = 600) -> LedgerRecord:
    return LedgerRecord(
        id=uuid.uuid4(),
        tenant_id="tenant-a",
        idempotency_key="chk_abc123",
        request_type=IdempotencyRequestType.CHECKOUT,
        request_path="/api/v1/checkout",
        request_method="POST",
        request_fingerprint=compute_fingerprint(body if body is not None else {"total": 100}),
        response_data=None if status == IdempotencyStatus.PROCESSING else {"order_id": "o1"},
        response_status=None if status == IdempotencyStatus.PROCESSING else 200,
        attempts=1,
        status=status,
        expires_at=NOW + timedelta(seconds=expires_in_s),
        created_at=NOW,
        updated_at=NOW,
    )


def test_processing_can_finish_either_way():
    ensure_valid_transition(IdempotencyStatus.PROCESSING, IdempotencyStatus.COMPLETED)
    ensure_valid_transition(IdempotencyStatus.PROCESSING, IdempotencyStatus.FAILED)


@pytest.mark.parametrize("terminal", [IdempotencyStatus.COMPLETED, IdempotencyStatus.FAILED])
def test_terminal_states_have_no_outgoing_transition(terminal):
    for target in IdempotencyStatus:
        with pytest.raises(InvalidTransition):
            ensure_valid_transition(terminal, target)


def test_completed_requires_response_payload():
    with pytest.raises(ValueError):
        ensure_terminal_payload(IdempotencyStatus.COMPLETED, None, 200)
    with pytest.raises(ValueError):
        ensure_terminal_payload(IdempotencyStatus.COMPLETED, {"ok": True}, None)
    with pytest.raises(InvalidTransition):
        ensure_terminal_payload(IdempotencyStatus.PROCESSING, {"ok": True}, 200)

    ensure_terminal_payload(IdempotencyStatus.FAILED, None, None)


def test_decide_executes_without_live_record():
    fingerprint = compute_fingerprint({"total": 100})

    assert decide(None, fingerprint, NOW).kind == DecisionKind.EXECUTE
    expired = _record(IdempotencyStatus.COMPLETED, expires_in_s=-1)
    assert decide(expired, fingerprint, NOW).kind == DecisionKind.EXECUTE


def test_decide_in_flight_and_replay():
    fingerprint = compute_fingerprint({"total": 100})

    in_flight = decide(_record(IdempotencyStatus.PROCESSING), fingerprint, NOW)
    replay = decide(_record(IdempotencyStatus.FAILED), fingerprint, NOW)

    assert in_flight.kind == DecisionKind.IN_FLIGHT
    assert replay.kind == DecisionKind.REPLAY
    assert replay.record.status == IdempotencyStatus.FAILED


@pytest.mark.parametrize("status", list(IdempotencyStatus))
def test_decide_raises_conflict_on_mismatch_in_any_state(status):
    with pytest.raises(KeyConflict) as exc_info:
        decide(_record(status), compute_fingerprint({"total": 999}), NOW)

    assert exc_info.value.code == "IDEMPOTENCY_KEY_REUSED"
    assert exc_info.value.retryable is False
