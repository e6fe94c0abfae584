"""
Ledger Engine

Money-movement operations: deposit, withdraw and transfer. Each runs as one
atomic unit against the storage gateway: the affected account rows are read
under a lock, balances are checked, rewritten with a compare-and-set update,
and the matching transaction records are appended. Either every effect
commits or none does.
"""

from decimal import Decimal
from datetime import datetime
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple
from enum import Enum

from .directory import check_length, require_id
from .errors import (
    LedgerError, ValidationError, AccountNotFoundError, InsufficientFundsError,
    StorageConflictError
)
from .logging_config import get_logger, log_action
from .money import MAX_AMOUNT, AmountLike, parse_amount, from_storage, to_storage
from .results import OperationResult
from .storage import StorageInterface, parse_timestamp, utc_now_iso


DETAILS_MAX_LENGTH = 255


class TransactionKind(Enum):
    """Kinds of transaction records"""
    DEPOSIT = "DEPOSIT"    # Credit
    WITHDRAW = "WITHDRAW"  # Debit
    TRANSFER = "TRANSFER"  # Debit leg of a transfer; the credit leg is a DEPOSIT

    @property
    def is_credit(self) -> bool:
        return self == TransactionKind.DEPOSIT


@dataclass(frozen=True)
class TransactionRecord:
    """Append-only audit entry for one balance change"""
    transaction_id: int
    account_id: int
    kind: TransactionKind
    amount: Decimal
    details: Optional[str]
    created_at: datetime

    @property
    def signed_amount(self) -> Decimal:
        """Effect on the balance: credits positive, debits negative"""
        return self.amount if self.kind.is_credit else -self.amount

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> 'TransactionRecord':
        return cls(
            transaction_id=int(row["transaction_id"]),
            account_id=int(row["account_id"]),
            kind=TransactionKind(row["type"]),
            amount=from_storage(row["amount"]),
            details=row.get("details"),
            created_at=parse_timestamp(row["created_at"])
        )


@dataclass(frozen=True)
class LedgerReceipt:
    """What a committed operation wrote"""
    transaction_ids: Tuple[int, ...]
    balances: Dict[int, Decimal] = field(default_factory=dict)

    def balance_of(self, account_id: int) -> Decimal:
        return self.balances[account_id]


class LedgerEngine:
    """
    Applies balance-affecting operations with all-or-nothing semantics.

    Isolation: SQLite units begin with BEGIN IMMEDIATE (writers serialized);
    PostgreSQL units lock account rows with SELECT ... FOR UPDATE in
    ascending id order. In both cases the balance write only succeeds if
    the balance still holds the value read, otherwise the unit is retried.
    """

    def __init__(self, storage: StorageInterface, max_conflict_retries: int = 2):
        if max_conflict_retries < 0:
            raise ValueError("max_conflict_retries must be >= 0")
        self.storage = storage
        self.max_conflict_retries = max_conflict_retries
        self.logger = get_logger("ledgerbank.ledger")

    def deposit(
        self,
        account_id: int,
        amount: AmountLike,
        details: Optional[str] = None
    ) -> OperationResult[LedgerReceipt]:
        """
        Credit an account

        Args:
            account_id: Account to credit
            amount: Positive amount with at most two decimal places
            details: Free-text description stored on the record

        Returns:
            Result carrying a LedgerReceipt on success; INVALID, NOT_FOUND or
            a storage failure otherwise
        """
        resource = f"account:{account_id}"
        try:
            require_id(account_id, "Account id")
            value = parse_amount(amount)
            check_length(details, "Details", DETAILS_MAX_LENGTH)
        except ValidationError as e:
            return self._failure("deposit", resource, e, {"amount": str(amount)})

        def unit() -> LedgerReceipt:
            balances = self._lock_accounts([account_id])
            new_balance = self._credited(account_id, balances[account_id], value)
            self._write_balance(account_id, balances[account_id], new_balance)
            record_id = self._append_record(
                account_id, TransactionKind.DEPOSIT, value, details or "Deposit via app"
            )
            return LedgerReceipt((record_id,), {account_id: new_balance})

        return self._run_atomic("deposit", resource, unit, {"amount": str(value)})

    def withdraw(
        self,
        account_id: int,
        amount: AmountLike,
        details: Optional[str] = None
    ) -> OperationResult[LedgerReceipt]:
        """
        Debit an account if it holds enough funds

        The balance check happens on the locked row inside the same atomic
        unit as the write, so two concurrent withdrawals cannot both pass it.

        Returns:
            Result carrying a LedgerReceipt on success; INVALID, NOT_FOUND,
            INSUFFICIENT_FUNDS or a storage failure otherwise
        """
        resource = f"account:{account_id}"
        try:
            require_id(account_id, "Account id")
            value = parse_amount(amount)
            check_length(details, "Details", DETAILS_MAX_LENGTH)
        except ValidationError as e:
            return self._failure("withdraw", resource, e, {"amount": str(amount)})

        def unit() -> LedgerReceipt:
            balances = self._lock_accounts([account_id])
            current = balances[account_id]
            if current < value:
                raise InsufficientFundsError(account_id, current, value)

            new_balance = current - value
            self._write_balance(account_id, current, new_balance)
            record_id = self._append_record(
                account_id, TransactionKind.WITHDRAW, value, details or "Withdrawal via app"
            )
            return LedgerReceipt((record_id,), {account_id: new_balance})

        return self._run_atomic("withdraw", resource, unit, {"amount": str(value)})

    def transfer(
        self,
        from_account_id: int,
        to_account_id: int,
        amount: AmountLike,
        details: Optional[str] = None
    ) -> OperationResult[LedgerReceipt]:
        """
        Move funds between two distinct accounts

        Debits the source, credits the destination, and appends a TRANSFER
        record on the source and a DEPOSIT record on the destination, all in
        one atomic unit. Transfers from an account to itself are rejected.

        Returns:
            Result carrying a LedgerReceipt (debit record id first) on
            success; INVALID, NOT_FOUND, INSUFFICIENT_FUNDS or a storage
            failure otherwise
        """
        resource = f"account:{from_account_id}"
        extra = {"amount": str(amount), "to_account": to_account_id}
        try:
            require_id(from_account_id, "Source account id")
            require_id(to_account_id, "Destination account id")
            value = parse_amount(amount)
            check_length(details, "Details", DETAILS_MAX_LENGTH)
            if from_account_id == to_account_id:
                raise ValidationError("Cannot transfer from an account to itself")
        except ValidationError as e:
            return self._failure("transfer", resource, e, extra)

        def unit() -> LedgerReceipt:
            balances = self._lock_accounts([from_account_id, to_account_id])
            source_balance = balances[from_account_id]
            if source_balance < value:
                raise InsufficientFundsError(from_account_id, source_balance, value)

            new_source = source_balance - value
            new_destination = self._credited(to_account_id, balances[to_account_id], value)
            self._write_balance(from_account_id, source_balance, new_source)
            self._write_balance(to_account_id, balances[to_account_id], new_destination)

            debit_id = self._append_record(
                from_account_id, TransactionKind.TRANSFER, value,
                details or f"Transfer to account {to_account_id}"
            )
            credit_id = self._append_record(
                to_account_id, TransactionKind.DEPOSIT, value,
                details or f"Transfer from account {from_account_id}"
            )
            return LedgerReceipt(
                (debit_id, credit_id),
                {from_account_id: new_source, to_account_id: new_destination}
            )

        extra["amount"] = str(value)
        return self._run_atomic("transfer", resource, unit, extra)

    def _run_atomic(
        self,
        action: str,
        resource: str,
        unit: Callable[[], LedgerReceipt],
        extra: Dict[str, Any]
    ) -> OperationResult[LedgerReceipt]:
        """Run `unit` in an atomic unit, retrying on lock conflicts"""
        attempts = self.max_conflict_retries + 1

        for attempt in range(1, attempts + 1):
            try:
                with self.storage.atomic():
                    receipt = unit()
            except StorageConflictError as e:
                if attempt < attempts:
                    log_action(
                        self.logger, "warning", f"{action} conflict, retrying: {e}",
                        action=action, resource=resource,
                        extra={**extra, "attempt": attempt}
                    )
                    continue
                return self._failure(action, resource, e, {**extra, "attempts": attempt})
            except LedgerError as e:
                return self._failure(action, resource, e, extra)

            log_action(
                self.logger, "info", f"{action} committed",
                action=action, resource=resource,
                extra={
                    **extra,
                    "transaction_ids": list(receipt.transaction_ids),
                    "balances": {str(k): str(v) for k, v in receipt.balances.items()}
                }
            )
            return OperationResult.success(receipt)

    def _lock_accounts(self, account_ids: List[int]) -> Dict[int, Decimal]:
        """
        Read and lock the balances of the given accounts.

        Rows are locked in ascending id order so two opposite transfers
        cannot deadlock.

        Raises:
            AccountNotFoundError: for the first missing id, in argument order
        """
        placeholders = ", ".join("?" for _ in account_ids)
        rows = self.storage.query(
            f"SELECT account_id, balance FROM accounts "
            f"WHERE account_id IN ({placeholders}) "
            f"ORDER BY account_id{self.storage.row_lock_clause}",
            tuple(account_ids)
        )
        balances = {int(row["account_id"]): from_storage(row["balance"]) for row in rows}

        for account_id in account_ids:
            if account_id not in balances:
                raise AccountNotFoundError(account_id)

        return balances

    def _credited(self, account_id: int, balance: Decimal, amount: Decimal) -> Decimal:
        """Balance after a credit; must still fit DECIMAL(15,2)"""
        new_balance = balance + amount
        if new_balance > MAX_AMOUNT:
            raise ValidationError(
                f"Credit of {amount} would take account {account_id} above the maximum balance {MAX_AMOUNT}"
            )
        return new_balance

    def _write_balance(self, account_id: int, expected: Decimal, new_balance: Decimal) -> None:
        """Compare-and-set the balance; raises on a concurrent change"""
        updated = self.storage.execute(
            "UPDATE accounts SET balance = ? WHERE account_id = ? AND balance = ?",
            (to_storage(new_balance), account_id, to_storage(expected))
        )
        if updated != 1:
            raise StorageConflictError(
                f"Balance of account {account_id} changed during the operation"
            )

    def _append_record(
        self,
        account_id: int,
        kind: TransactionKind,
        amount: Decimal,
        details: str
    ) -> int:
        return self.storage.insert(
            "INSERT INTO transactions (account_id, type, amount, details, created_at) "
            "VALUES (?, ?, ?, ?, ?)",
            (account_id, kind.value, to_storage(amount), details, utc_now_iso()),
            id_column="transaction_id"
        )

    def _failure(
        self,
        action: str,
        resource: str,
        error: LedgerError,
        extra: Dict[str, Any]
    ) -> OperationResult[LedgerReceipt]:
        result = OperationResult.from_error(error)
        fields = {**extra, "status": result.status.value}
        if result.declined:
            log_action(self.logger, "info", f"{action} declined: {error}",
                       action=action, resource=resource, extra=fields)
        else:
            log_action(self.logger, "error", f"{action} failed: {error}",
                       action=action, resource=resource, extra=fields, exc_info=True)
        return result
