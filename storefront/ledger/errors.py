from dataclasses import dataclass


@dataclass
class LedgerError(Exception):
    code: str
    message: str
    retryable: bool = False

    def __str__(self) -> str:
        return f"{self.code}:{self.message}"


class StorageUnavailable(LedgerError):
    def __init__(self, message: str = "Idempotency store unavailable") -> None:
        super().__init__(code="STORAGE_UNAVAILABLE", message=message, retryable=True)


class KeyConflict(LedgerError):
    def __init__(
        self,
        message: str = "Idempotency key already used with different request parameters",
    ) -> None:
        super().__init__(code="IDEMPOTENCY_KEY_REUSED", message=message, retryable=False)


class RecordNotFound(LedgerError):
    def __init__(self, record_id: object) -> None:
        super().__init__(
            code="IDEMPOTENCY_RECORD_NOT_FOUND",
            message=f"Idempotency record {record_id} not found",
            retryable=False,
        )


class RecordRejected(LedgerError):
    def __init__(self, message: str = "Idempotency record rejected by storage") -> None:
        super().__init__(code="IDEMPOTENCY_RECORD_REJECTED", message=message, retryable=False)


class InvalidTransition(LedgerError):
    def __init__(self, current: str, next_status: str) -> None:
        super().__init__(
            code="IDEMPOTENCY_INVALID_TRANSITION",
            message=f"Invalid ledger transition: {current} -> {next_status}",
            retryable=False,
        )


class ExecutionTimeout(LedgerError):
    def __init__(self, waited_s: float) -> None:
        super().__init__(
            code="IDEMPOTENCY_WAIT_TIMEOUT",
            message=f"Request with this key still processing after {waited_s:.1f}s",
            retryable=True,
        )


class RequestInProgress(LedgerError):
    def __init__(self, message: str = "Request is currently being processed") -> None:
        super().__init__(code="REQUEST_IN_PROGRESS", message=message, retryable=True)
