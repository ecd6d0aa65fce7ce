from storefront.ledger.arbiter import ConcurrencyArbiter, ConcurrencyPolicy
from storefront.ledger.errors import (
    ExecutionTimeout,
    InvalidTransition,
    KeyConflict,
    LedgerError,
    RecordNotFound,
    RecordRejected,
    RequestInProgress,
    StorageUnavailable,
)
from storefront.ledger.fingerprint import compute_fingerprint, matches
from storefront.ledger.ledger import IdempotencyLedger, LedgerOutcome
from storefront.ledger.records import LedgerRecord
from storefront.ledger.store import KeyStore

__all__ = [
    "ConcurrencyArbiter",
    "ConcurrencyPolicy",
    "ExecutionTimeout",
    "IdempotencyLedger",
    "InvalidTransition",
    "KeyConflict",
    "KeyStore",
    "LedgerError",
    "LedgerOutcome",
    "LedgerRecord",
    "RecordNotFound",
    "RecordRejected",
    "RequestInProgress",
    "StorageUnavailable",
    "compute_fingerprint",
    "matches",
]
