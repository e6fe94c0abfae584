"""
Operation Results Module

Explicit outcome values returned by every public directory, ledger and audit
operation. Callers branch on the status instead of catching exceptions.
"""

from dataclasses import dataclass
from typing import Generic, Optional, TypeVar
from enum import Enum


T = TypeVar("T")


class OperationStatus(Enum):
    """Outcome of a public operation"""
    SUCCESS = "success"
    INVALID = "invalid"                        # Rejected before touching storage
    NOT_FOUND = "not_found"                    # Customer or account missing
    INSUFFICIENT_FUNDS = "insufficient_funds"  # Business rule decline
    CONFLICT = "conflict"                      # Lock conflict, retries exhausted
    TIMEOUT = "timeout"                        # Lock wait exceeded
    STORAGE_ERROR = "storage_error"            # Connectivity, constraint, driver fault


DECLINED_STATUSES = {
    OperationStatus.INVALID,
    OperationStatus.NOT_FOUND,
    OperationStatus.INSUFFICIENT_FUNDS,
}

RETRYABLE_STATUSES = {
    OperationStatus.CONFLICT,
    OperationStatus.TIMEOUT,
}


@dataclass(frozen=True)
class OperationResult(Generic[T]):
    """
    Success/failure outcome carrying an optional value.

    Declined operations (invalid input, missing entity, insufficient funds)
    are normal results. Faults (storage, conflict, timeout) are failures
    the caller may retry when `retryable` is set.
    """
    status: OperationStatus
    value: Optional[T] = None
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.status == OperationStatus.SUCCESS

    @property
    def declined(self) -> bool:
        return self.status in DECLINED_STATUSES

    @property
    def retryable(self) -> bool:
        return self.status in RETRYABLE_STATUSES

    @property
    def is_not_found(self) -> bool:
        return self.status == OperationStatus.NOT_FOUND

    def __bool__(self) -> bool:
        return self.ok

    @classmethod
    def success(cls, value: Optional[T] = None, message: str = "") -> 'OperationResult[T]':
        return cls(status=OperationStatus.SUCCESS, value=value, message=message)

    @classmethod
    def failure(cls, status: OperationStatus, message: str) -> 'OperationResult[T]':
        if status == OperationStatus.SUCCESS:
            raise ValueError("failure() requires a non-success status")
        return cls(status=status, message=message)

    @classmethod
    def from_error(cls, error: Exception) -> 'OperationResult[T]':
        """Convert a ledger exception into a failure result"""
        status = getattr(error, "status", OperationStatus.STORAGE_ERROR)
        return cls.failure(status, str(error))
