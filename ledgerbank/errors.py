"""
Ledger Error Taxonomy

Exceptions raised inside the storage gateway and the ledger services. Each
class names the OperationStatus it becomes at the public boundary, where
services convert them into OperationResult values.
"""

from .results import OperationStatus


class LedgerError(Exception):
    """Base class for all ledger errors"""
    status = OperationStatus.STORAGE_ERROR


class ValidationError(LedgerError):
    """Malformed input or non-positive amount"""
    status = OperationStatus.INVALID


class NotFoundError(LedgerError):
    """Referenced entity does not exist"""
    status = OperationStatus.NOT_FOUND


class CustomerNotFoundError(NotFoundError):

    def __init__(self, customer_id):
        super().__init__(f"Customer {customer_id} not found")
        self.customer_id = customer_id


class AccountNotFoundError(NotFoundError):

    def __init__(self, account_id):
        super().__init__(f"Account {account_id} not found")
        self.account_id = account_id


class InsufficientFundsError(LedgerError):
    """Debit would drive the balance below zero"""
    status = OperationStatus.INSUFFICIENT_FUNDS

    def __init__(self, account_id, available, requested):
        super().__init__(
            f"Insufficient funds in account {account_id}: "
            f"available {available}, requested {requested}"
        )
        self.account_id = account_id
        self.available = available
        self.requested = requested


class StorageError(LedgerError):
    """Storage fault: connectivity loss, driver error, failed commit"""
    status = OperationStatus.STORAGE_ERROR


class StorageIntegrityError(StorageError):
    """Constraint violation reported by the database"""


class StorageConflictError(StorageError):
    """Concurrent modification detected; the atomic unit may be retried"""
    status = OperationStatus.CONFLICT


class StorageTimeoutError(StorageError):
    """Lock wait exceeded the configured timeout"""
    status = OperationStatus.TIMEOUT
