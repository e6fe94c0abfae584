"""
Directory Module

Customer and account records: creation, lookup and listing. The ledger
engine relies on the accounts kept here for existence and balance checks.
"""

from decimal import Decimal
from datetime import datetime
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
import re

from .errors import (
    LedgerError, ValidationError, CustomerNotFoundError, AccountNotFoundError
)
from .logging_config import get_logger, log_action
from .money import from_storage
from .results import OperationResult
from .storage import StorageInterface, parse_timestamp, utc_now_iso


EMAIL_PATTERN = re.compile(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$')

# Identifiers are 64-bit signed integers in both backends
MAX_ID = 2 ** 63 - 1

# Column widths of the customers and accounts tables
NAME_MAX_LENGTH = 100
EMAIL_MAX_LENGTH = 100
PHONE_MAX_LENGTH = 20
ACCOUNT_TYPE_MAX_LENGTH = 20

CUSTOMER_COLUMNS = "customer_id, name, email, phone, created_at"
ACCOUNT_COLUMNS = "account_id, customer_id, account_type, balance, created_at"


@dataclass(frozen=True)
class Customer:
    """Customer identity record"""
    customer_id: int
    name: str
    email: Optional[str]
    phone: Optional[str]
    created_at: datetime

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> 'Customer':
        return cls(
            customer_id=int(row["customer_id"]),
            name=row["name"],
            email=row.get("email"),
            phone=row.get("phone"),
            created_at=parse_timestamp(row["created_at"])
        )


@dataclass(frozen=True)
class Account:
    """
    Account owned by exactly one customer.
    The balance is a snapshot taken when the row was read.
    """
    account_id: int
    customer_id: int
    account_type: str
    balance: Decimal
    created_at: datetime

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> 'Account':
        return cls(
            account_id=int(row["account_id"]),
            customer_id=int(row["customer_id"]),
            account_type=row["account_type"],
            balance=from_storage(row["balance"]),
            created_at=parse_timestamp(row["created_at"])
        )


def require_id(value: Any, label: str) -> int:
    """Validate a system-assigned identifier"""
    if isinstance(value, bool) or not isinstance(value, int) or not 0 < value <= MAX_ID:
        raise ValidationError(f"{label} must be a positive 64-bit integer, got {value!r}")
    return value


def check_length(value: Optional[str], label: str, max_length: int) -> Optional[str]:
    if value is not None and len(value) > max_length:
        raise ValidationError(f"{label} exceeds {max_length} characters")
    return value


def _required_text(value: Optional[str], label: str) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(f"{label} is required")
    return str(value).strip()


def _optional_text(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


class DirectoryService:
    """
    Manages customers and their accounts.

    Every public method returns an OperationResult; storage faults are
    reported as failures and never raised.
    """

    def __init__(self, storage: StorageInterface):
        self.storage = storage
        self.logger = get_logger("ledgerbank.directory")

    def create_customer(
        self,
        name: str,
        email: Optional[str] = None,
        phone: Optional[str] = None
    ) -> OperationResult[int]:
        """
        Create a new customer

        Args:
            name: Customer name (required)
            email: Optional email address
            phone: Optional phone number

        Returns:
            Result carrying the new customer id
        """
        try:
            name = check_length(_required_text(name, "Customer name"), "Customer name", NAME_MAX_LENGTH)
            email = check_length(_optional_text(email), "Email", EMAIL_MAX_LENGTH)
            phone = check_length(_optional_text(phone), "Phone", PHONE_MAX_LENGTH)

            if email is not None and not EMAIL_PATTERN.match(email):
                raise ValidationError(f"Invalid email format: {email}")

            customer_id = self.storage.insert(
                "INSERT INTO customers (name, email, phone, created_at) VALUES (?, ?, ?, ?)",
                (name, email, phone, utc_now_iso()),
                id_column="customer_id"
            )
        except LedgerError as e:
            return self._failure("create_customer", "customer", e)

        log_action(
            self.logger, "info", "Customer created",
            action="create_customer", resource=f"customer:{customer_id}"
        )
        return OperationResult.success(customer_id)

    def get_customer(self, customer_id: int) -> OperationResult[Customer]:
        """Get customer by ID"""
        try:
            require_id(customer_id, "Customer id")
            row = self.storage.query_one(
                f"SELECT {CUSTOMER_COLUMNS} FROM customers WHERE customer_id = ?",
                (customer_id,)
            )
            if row is None:
                raise CustomerNotFoundError(customer_id)
        except LedgerError as e:
            return self._failure("get_customer", f"customer:{customer_id}", e)

        return OperationResult.success(Customer.from_row(row))

    def list_customers(self) -> OperationResult[List[Customer]]:
        """List all customers in id order"""
        try:
            rows = self.storage.query(
                f"SELECT {CUSTOMER_COLUMNS} FROM customers ORDER BY customer_id"
            )
        except LedgerError as e:
            return self._failure("list_customers", "customer", e)

        return OperationResult.success([Customer.from_row(row) for row in rows])

    def delete_customer(self, customer_id: int) -> OperationResult[int]:
        """
        Delete a customer together with its accounts and their transactions.

        Returns:
            Result carrying the number of accounts removed by the cascade
        """
        try:
            require_id(customer_id, "Customer id")
            with self.storage.atomic():
                row = self.storage.query_one(
                    "SELECT COUNT(*) AS account_count FROM accounts WHERE customer_id = ?",
                    (customer_id,)
                )
                deleted = self.storage.execute(
                    "DELETE FROM customers WHERE customer_id = ?", (customer_id,)
                )
                if deleted == 0:
                    raise CustomerNotFoundError(customer_id)
        except LedgerError as e:
            return self._failure("delete_customer", f"customer:{customer_id}", e)

        account_count = int(row["account_count"])
        log_action(
            self.logger, "info", "Customer deleted",
            action="delete_customer", resource=f"customer:{customer_id}",
            extra={"accounts_removed": account_count}
        )
        return OperationResult.success(account_count)

    def create_account(self, customer_id: int, account_type: str) -> OperationResult[int]:
        """
        Open an account with a zero balance for an existing customer

        Args:
            customer_id: ID of account owner
            account_type: Free-form label such as SAVINGS or CURRENT

        Returns:
            Result carrying the new account id
        """
        try:
            require_id(customer_id, "Customer id")
            account_type = check_length(
                _required_text(account_type, "Account type"), "Account type", ACCOUNT_TYPE_MAX_LENGTH
            )

            with self.storage.atomic():
                owner = self.storage.query_one(
                    "SELECT customer_id FROM customers WHERE customer_id = ?",
                    (customer_id,)
                )
                if owner is None:
                    raise CustomerNotFoundError(customer_id)

                account_id = self.storage.insert(
                    "INSERT INTO accounts (customer_id, account_type, balance, created_at) "
                    "VALUES (?, ?, ?, ?)",
                    (customer_id, account_type, "0.00", utc_now_iso()),
                    id_column="account_id"
                )
        except LedgerError as e:
            return self._failure("create_account", f"customer:{customer_id}", e)

        log_action(
            self.logger, "info", "Account created",
            action="create_account", resource=f"account:{account_id}",
            extra={"customer_id": customer_id, "account_type": account_type}
        )
        return OperationResult.success(account_id)

    def get_account(self, account_id: int) -> OperationResult[Account]:
        """Get account by ID"""
        try:
            require_id(account_id, "Account id")
            row = self.storage.query_one(
                f"SELECT {ACCOUNT_COLUMNS} FROM accounts WHERE account_id = ?",
                (account_id,)
            )
            if row is None:
                raise AccountNotFoundError(account_id)
        except LedgerError as e:
            return self._failure("get_account", f"account:{account_id}", e)

        return OperationResult.success(Account.from_row(row))

    def list_accounts_by_customer(self, customer_id: int) -> OperationResult[List[Account]]:
        """List a customer's accounts in id order (empty for unknown customers)"""
        try:
            require_id(customer_id, "Customer id")
            rows = self.storage.query(
                f"SELECT {ACCOUNT_COLUMNS} FROM accounts WHERE customer_id = ? ORDER BY account_id",
                (customer_id,)
            )
        except LedgerError as e:
            return self._failure("list_accounts_by_customer", f"customer:{customer_id}", e)

        return OperationResult.success([Account.from_row(row) for row in rows])

    def _failure(self, action: str, resource: str, error: LedgerError) -> OperationResult:
        result = OperationResult.from_error(error)
        if result.declined:
            log_action(self.logger, "info", f"{action} declined: {error}",
                       action=action, resource=resource)
        else:
            log_action(self.logger, "error", f"{action} failed: {error}",
                       action=action, resource=resource, exc_info=True)
        return result
