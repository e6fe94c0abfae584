"""
Audit Reader Module

Read side of the transaction log: recent history for an account and
reconciliation of the stored balance against the records that produced it.
"""

from decimal import Decimal
from dataclasses import dataclass
from typing import List, Optional

from .directory import require_id
from .errors import LedgerError, ValidationError, AccountNotFoundError
from .ledger import TransactionRecord
from .logging_config import get_logger, log_action
from .money import ZERO, from_storage
from .results import OperationResult
from .storage import StorageInterface


RECORD_COLUMNS = "transaction_id, account_id, type, amount, details, created_at"


@dataclass(frozen=True)
class ReconciliationReport:
    """Stored balance versus the signed sum of an account's records"""
    account_id: int
    balance: Decimal
    ledger_total: Decimal
    record_count: int

    @property
    def difference(self) -> Decimal:
        return self.balance - self.ledger_total

    @property
    def balanced(self) -> bool:
        return self.difference == 0


class AuditReader:
    """Queries the append-only transaction log"""

    def __init__(self, storage: StorageInterface, default_limit: int = 10, max_limit: int = 100):
        self.storage = storage
        self.default_limit = default_limit
        self.max_limit = max_limit
        self.logger = get_logger("ledgerbank.audit")

    def recent_transactions(
        self,
        account_id: int,
        limit: Optional[int] = None
    ) -> OperationResult[List[TransactionRecord]]:
        """
        Get an account's most recent transactions, newest first

        Args:
            account_id: Account to read
            limit: Maximum number of records, default_limit when omitted.
                A limit above max_limit is reduced to max_limit, so callers
                asking for more receive at most max_limit records.

        Returns:
            Result carrying the records; an empty list when the account has
            no history or does not exist
        """
        try:
            require_id(account_id, "Account id")
            if limit is None:
                limit = self.default_limit
            if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
                raise ValidationError(f"Limit must be a positive integer, got {limit!r}")
            limit = min(limit, self.max_limit)

            rows = self.storage.query(
                f"SELECT {RECORD_COLUMNS} FROM transactions WHERE account_id = ? "
                "ORDER BY created_at DESC, transaction_id DESC LIMIT ?",
                (account_id, limit)
            )
        except LedgerError as e:
            return self._failure("recent_transactions", f"account:{account_id}", e)

        return OperationResult.success([TransactionRecord.from_row(row) for row in rows])

    def reconcile(self, account_id: int) -> OperationResult[ReconciliationReport]:
        """
        Compare an account's balance with the sum of its transaction records

        Both reads happen inside one atomic unit with the account row locked,
        so no concurrent operation can land between them.
        """
        try:
            require_id(account_id, "Account id")
            with self.storage.atomic():
                account = self.storage.query_one(
                    f"SELECT balance FROM accounts WHERE account_id = ?{self.storage.row_lock_clause}",
                    (account_id,)
                )
                if account is None:
                    raise AccountNotFoundError(account_id)

                rows = self.storage.query(
                    f"SELECT {RECORD_COLUMNS} FROM transactions WHERE account_id = ?",
                    (account_id,)
                )
        except LedgerError as e:
            return self._failure("reconcile", f"account:{account_id}", e)

        records = [TransactionRecord.from_row(row) for row in rows]
        report = ReconciliationReport(
            account_id=account_id,
            balance=from_storage(account["balance"]),
            ledger_total=sum((r.signed_amount for r in records), ZERO),
            record_count=len(records)
        )

        if not report.balanced:
            log_action(
                self.logger, "warning", "Balance does not match transaction log",
                action="reconcile", resource=f"account:{account_id}",
                extra={
                    "balance": str(report.balance),
                    "ledger_total": str(report.ledger_total),
                    "difference": str(report.difference)
                }
            )
        return OperationResult.success(report)

    def _failure(self, action: str, resource: str, error: LedgerError) -> OperationResult:
        result = OperationResult.from_error(error)
        if result.declined:
            log_action(self.logger, "info", f"{action} declined: {error}",
                       action=action, resource=resource)
        else:
            log_action(self.logger, "error", f"{action} failed: {error}",
                       action=action, resource=resource, exc_info=True)
        return result
