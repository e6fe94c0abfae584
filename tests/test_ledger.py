"""
Test suite for the ledger engine

CRITICAL: Validates that every operation is all-or-nothing, that balances
never go negative, and that concurrent withdrawals cannot both succeed.
"""

import pytest
import tempfile
import threading
import time
from decimal import Decimal
from pathlib import Path

from ledgerbank.audit import AuditReader
from ledgerbank.directory import DirectoryService
from ledgerbank.errors import StorageError
from ledgerbank.ledger import LedgerEngine, LedgerReceipt, TransactionKind
from ledgerbank.migrations import MigrationManager
from ledgerbank.money import MAX_AMOUNT
from ledgerbank.results import OperationStatus
from ledgerbank.storage import SQLiteStorage


class FaultyStorage(SQLiteStorage):
    """Fails the Nth balance update once armed"""

    def __init__(self, *args, fail_on_update: int = 2, **kwargs):
        super().__init__(*args, **kwargs)
        self.fail_on_update = fail_on_update
        self.armed = False
        self._updates = 0

    def execute(self, statement, params=()):
        if self.armed and statement.startswith("UPDATE accounts"):
            self._updates += 1
            if self._updates == self.fail_on_update:
                raise StorageError("Simulated connection loss")
        return super().execute(statement, params)


class InterferingStorage(SQLiteStorage):
    """Changes the balance right before the compare-and-set, `interferences` times"""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.interferences = 0

    def execute(self, statement, params=()):
        if self.interferences and statement.startswith("UPDATE accounts SET balance"):
            self.interferences -= 1
            super().execute(
                "UPDATE accounts SET balance = ? WHERE account_id = ?", ("999.00", params[1])
            )
        return super().execute(statement, params)


class SlowStorage(SQLiteStorage):
    """Pauses after reading balances to widen the race window"""

    def query(self, statement, params=()):
        rows = super().query(statement, params)
        if statement.startswith("SELECT account_id, balance"):
            time.sleep(0.05)
        return rows


def build(storage):
    MigrationManager(storage).migrate_up()
    directory = DirectoryService(storage)
    customer_id = directory.create_customer("Alice", "a@x.com", "555-0100").value
    return directory, customer_id


class LedgerTestBase:

    def setup_method(self):
        self.storage = SQLiteStorage(":memory:")
        self.directory, self.customer_id = build(self.storage)
        self.ledger = LedgerEngine(self.storage)
        self.audit = AuditReader(self.storage)
        self.account = self.directory.create_account(self.customer_id, "SAVINGS").value
        self.other = self.directory.create_account(self.customer_id, "CURRENT").value

    def teardown_method(self):
        self.storage.close()

    def balance(self, account_id):
        return self.directory.get_account(account_id).value.balance

    def record_count(self):
        return self.storage.query_one("SELECT COUNT(*) AS n FROM transactions")["n"]


class TestDeposit(LedgerTestBase):

    def test_deposit_credits_and_records(self):
        result = self.ledger.deposit(self.account, Decimal("50.00"))

        assert result.ok
        assert isinstance(result.value, LedgerReceipt)
        assert result.value.balance_of(self.account) == Decimal("50.00")
        assert self.balance(self.account) == Decimal("50.00")

        records = self.audit.recent_transactions(self.account).value
        assert len(records) == 1
        assert records[0].transaction_id == result.value.transaction_ids[0]
        assert records[0].kind == TransactionKind.DEPOSIT
        assert records[0].amount == Decimal("50.00")
        assert records[0].details == "Deposit via app"

    def test_deposit_accepts_strings_and_custom_details(self):
        self.ledger.deposit(self.account, "12.5", details="Salary")

        record = self.audit.recent_transactions(self.account).value[0]
        assert record.amount == Decimal("12.50")
        assert record.details == "Salary"

    @pytest.mark.parametrize("amount", [0, "-5", "10.005", "abc", None])
    def test_invalid_amount(self, amount):
        result = self.ledger.deposit(self.account, amount)

        assert result.status == OperationStatus.INVALID
        assert self.balance(self.account) == Decimal("0.00")
        assert self.record_count() == 0

    def test_unknown_account(self):
        result = self.ledger.deposit(999, "10.00")

        assert result.is_not_found
        assert self.record_count() == 0

    def test_bad_account_id(self):
        assert self.ledger.deposit(-1, "10.00").status == OperationStatus.INVALID

    def test_oversized_account_id(self):
        """Ids beyond 64 bits are declined, not raised from the driver"""
        assert self.ledger.deposit(2 ** 63, "1.00").status == OperationStatus.INVALID
        assert self.ledger.withdraw(2 ** 63, "1.00").status == OperationStatus.INVALID
        assert self.ledger.transfer(self.account, 2 ** 63, "1.00").status == OperationStatus.INVALID
        assert self.record_count() == 0

    def test_over_long_details(self):
        result = self.ledger.deposit(self.account, "1.00", details="x" * 256)

        assert result.status == OperationStatus.INVALID
        assert self.record_count() == 0
        assert self.ledger.deposit(self.account, "1.00", details="x" * 255).ok

    def test_balance_cannot_exceed_column_range(self):
        assert self.ledger.deposit(self.account, MAX_AMOUNT).ok

        result = self.ledger.deposit(self.account, MAX_AMOUNT)

        assert result.status == OperationStatus.INVALID
        assert self.balance(self.account) == MAX_AMOUNT
        assert self.record_count() == 1


class TestWithdraw(LedgerTestBase):

    def setup_method(self):
        super().setup_method()
        self.ledger.deposit(self.account, "50.00")

    def test_withdraw_debits_and_records(self):
        result = self.ledger.withdraw(self.account, "20.00")

        assert result.ok
        assert self.balance(self.account) == Decimal("30.00")

        latest = self.audit.recent_transactions(self.account, 1).value[0]
        assert latest.kind == TransactionKind.WITHDRAW
        assert latest.amount == Decimal("20.00")
        assert latest.signed_amount == Decimal("-20.00")
        assert latest.details == "Withdrawal via app"

    def test_withdraw_entire_balance(self):
        assert self.ledger.withdraw(self.account, "50.00").ok
        assert self.balance(self.account) == Decimal("0.00")

    def test_insufficient_funds_leaves_state_unchanged(self):
        result = self.ledger.withdraw(self.account, "50.01")

        assert result.status == OperationStatus.INSUFFICIENT_FUNDS
        assert result.declined
        assert self.balance(self.account) == Decimal("50.00")
        assert self.record_count() == 1

    def test_invalid_amount(self):
        assert self.ledger.withdraw(self.account, "0.00").status == OperationStatus.INVALID
        assert self.balance(self.account) == Decimal("50.00")

    def test_unknown_account(self):
        assert self.ledger.withdraw(999, "1.00").is_not_found


class TestTransfer(LedgerTestBase):

    def setup_method(self):
        super().setup_method()
        self.ledger.deposit(self.account, "30.00")

    def test_transfer_moves_funds_with_two_records(self):
        result = self.ledger.transfer(self.account, self.other, "10.00")

        assert result.ok
        assert self.balance(self.account) == Decimal("20.00")
        assert self.balance(self.other) == Decimal("10.00")
        assert result.value.balances == {
            self.account: Decimal("20.00"),
            self.other: Decimal("10.00"),
        }

        debit_id, credit_id = result.value.transaction_ids
        debit = self.audit.recent_transactions(self.account, 1).value[0]
        credit = self.audit.recent_transactions(self.other, 1).value[0]

        assert debit.transaction_id == debit_id
        assert debit.kind == TransactionKind.TRANSFER
        assert debit.details == f"Transfer to account {self.other}"
        assert credit.transaction_id == credit_id
        assert credit.kind == TransactionKind.DEPOSIT
        assert credit.details == f"Transfer from account {self.account}"
        assert debit.amount == credit.amount == Decimal("10.00")

    def test_transfer_in_either_direction(self):
        assert self.ledger.transfer(self.account, self.other, "30.00").ok
        assert self.ledger.transfer(self.other, self.account, "5.00").ok

        assert self.balance(self.account) == Decimal("5.00")
        assert self.balance(self.other) == Decimal("25.00")

    def test_insufficient_funds(self):
        result = self.ledger.transfer(self.account, self.other, "30.01")

        assert result.status == OperationStatus.INSUFFICIENT_FUNDS
        assert self.balance(self.account) == Decimal("30.00")
        assert self.balance(self.other) == Decimal("0.00")
        assert self.record_count() == 1

    def test_unknown_destination(self):
        result = self.ledger.transfer(self.account, 999, "10.00")

        assert result.is_not_found
        assert "999" in result.message
        assert self.balance(self.account) == Decimal("30.00")
        assert self.record_count() == 1

    def test_unknown_source_reported_first(self):
        result = self.ledger.transfer(998, 999, "10.00")

        assert result.is_not_found
        assert "998" in result.message

    def test_self_transfer_rejected(self):
        result = self.ledger.transfer(self.account, self.account, "10.00")

        assert result.status == OperationStatus.INVALID
        assert self.balance(self.account) == Decimal("30.00")
        assert self.record_count() == 1

    def test_invalid_amount(self):
        result = self.ledger.transfer(self.account, self.other, "-10")
        assert result.status == OperationStatus.INVALID

    def test_credit_leg_cannot_exceed_column_range(self):
        self.ledger.deposit(self.other, MAX_AMOUNT - Decimal("5.00"))

        result = self.ledger.transfer(self.account, self.other, "10.00")

        assert result.status == OperationStatus.INVALID
        assert self.balance(self.account) == Decimal("30.00")
        assert self.balance(self.other) == MAX_AMOUNT - Decimal("5.00")
        assert self.record_count() == 2


class TestAtomicity:
    """A fault midway through an operation leaves no partial effect"""

    def setup_method(self):
        self.storage = FaultyStorage(":memory:")
        self.directory, customer_id = build(self.storage)
        self.ledger = LedgerEngine(self.storage)
        self.source = self.directory.create_account(customer_id, "SAVINGS").value
        self.destination = self.directory.create_account(customer_id, "CURRENT").value
        self.ledger.deposit(self.source, "100.00")

    def teardown_method(self):
        self.storage.close()

    def test_fault_after_debit_rolls_back_transfer(self):
        self.storage.armed = True

        result = self.ledger.transfer(self.source, self.destination, "40.00")

        assert result.status == OperationStatus.STORAGE_ERROR
        assert not result.retryable
        assert self.directory.get_account(self.source).value.balance == Decimal("100.00")
        assert self.directory.get_account(self.destination).value.balance == Decimal("0.00")
        assert self.storage.query_one("SELECT COUNT(*) AS n FROM transactions")["n"] == 1

    def test_storage_usable_after_fault(self):
        self.storage.armed = True
        self.ledger.transfer(self.source, self.destination, "40.00")
        self.storage.armed = False

        assert self.ledger.transfer(self.source, self.destination, "40.00").ok
        assert self.directory.get_account(self.destination).value.balance == Decimal("40.00")


class TestConflictRetry:
    """Balance writes are compare-and-set; a lost race is retried"""

    def setup_method(self):
        self.storage = InterferingStorage(":memory:")
        self.directory, customer_id = build(self.storage)
        self.account = self.directory.create_account(customer_id, "SAVINGS").value

    def teardown_method(self):
        self.storage.close()

    def test_conflict_is_retried(self):
        ledger = LedgerEngine(self.storage, max_conflict_retries=2)
        self.storage.interferences = 2

        result = ledger.deposit(self.account, "10.00")

        assert result.ok
        assert self.directory.get_account(self.account).value.balance == Decimal("10.00")

    def test_conflict_reported_when_retries_exhausted(self):
        ledger = LedgerEngine(self.storage, max_conflict_retries=0)
        self.storage.interferences = 1

        result = ledger.deposit(self.account, "10.00")

        assert result.status == OperationStatus.CONFLICT
        assert result.retryable
        assert self.directory.get_account(self.account).value.balance == Decimal("0.00")
        assert self.storage.query_one("SELECT COUNT(*) AS n FROM transactions")["n"] == 0

    def test_negative_retries_rejected(self):
        with pytest.raises(ValueError):
            LedgerEngine(self.storage, max_conflict_retries=-1)


class TestConcurrency:
    """No two operations on one account may both observe the pre-mutation balance"""

    def _race(self, withdraw_a, withdraw_b):
        results = []
        barrier = threading.Barrier(2)

        def worker(withdraw):
            barrier.wait()
            results.append(withdraw())

        threads = [
            threading.Thread(target=worker, args=(withdraw_a,)),
            threading.Thread(target=worker, args=(withdraw_b,)),
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        return sorted(r.status.value for r in results)

    def test_shared_connection(self):
        storage = SlowStorage(":memory:")
        directory, customer_id = build(storage)
        ledger = LedgerEngine(storage)
        account = directory.create_account(customer_id, "SAVINGS").value
        ledger.deposit(account, "100.00")

        try:
            statuses = self._race(
                lambda: ledger.withdraw(account, "100.00"),
                lambda: ledger.withdraw(account, "100.00")
            )

            assert statuses == ["insufficient_funds", "success"]
            assert directory.get_account(account).value.balance == Decimal("0.00")
        finally:
            storage.close()

    def test_separate_connections(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            db_path = Path(temp_dir) / "ledger.db"
            first = SlowStorage(db_path)
            directory, customer_id = build(first)
            account = directory.create_account(customer_id, "SAVINGS").value
            LedgerEngine(first).deposit(account, "100.00")
            second = SlowStorage(db_path)

            try:
                statuses = self._race(
                    lambda: LedgerEngine(first).withdraw(account, "100.00"),
                    lambda: LedgerEngine(second).withdraw(account, "100.00")
                )

                assert statuses == ["insufficient_funds", "success"]
                assert directory.get_account(account).value.balance == Decimal("0.00")
            finally:
                first.close()
                second.close()

    def test_opposite_transfers_do_not_lose_updates(self):
        storage = SQLiteStorage(":memory:")
        directory, customer_id = build(storage)
        ledger = LedgerEngine(storage)
        a = directory.create_account(customer_id, "SAVINGS").value
        b = directory.create_account(customer_id, "CURRENT").value
        ledger.deposit(a, "100.00")
        ledger.deposit(b, "100.00")

        results = []

        def mover(source, destination):
            for _ in range(20):
                results.append(ledger.transfer(source, destination, "1.00"))

        try:
            threads = [
                threading.Thread(target=mover, args=(a, b)),
                threading.Thread(target=mover, args=(b, a)),
            ]
            for thread in threads:
                thread.start()
            for thread in threads:
                thread.join()

            assert len(results) == 40
            assert all(r.ok for r in results)
            assert directory.get_account(a).value.balance == Decimal("100.00")
            assert directory.get_account(b).value.balance == Decimal("100.00")
        finally:
            storage.close()

    def test_lock_wait_timeout(self):
        storage = SQLiteStorage(":memory:", timeout=0.1)
        directory, customer_id = build(storage)
        ledger = LedgerEngine(storage)
        account = directory.create_account(customer_id, "SAVINGS").value
        results = []

        storage.begin_transaction()
        try:
            thread = threading.Thread(target=lambda: results.append(ledger.deposit(account, "1.00")))
            thread.start()
            thread.join()
        finally:
            storage.rollback()

        assert results[0].status == OperationStatus.TIMEOUT
        assert results[0].retryable
        assert directory.get_account(account).value.balance == Decimal("0.00")
        storage.close()


class TestEndToEnd(LedgerTestBase):
    """Deposit, withdraw and transfer for one customer with two accounts"""

    def test_full_flow(self):
        assert self.ledger.deposit(self.account, Decimal("50.00")).ok
        assert self.balance(self.account) == Decimal("50.00")

        assert self.ledger.withdraw(self.account, Decimal("20.00")).ok
        assert self.balance(self.account) == Decimal("30.00")

        assert self.ledger.transfer(self.account, self.other, Decimal("10.00")).ok
        assert self.balance(self.account) == Decimal("20.00")
        assert self.balance(self.other) == Decimal("10.00")

        history = self.audit.recent_transactions(self.account, 10).value
        assert [(r.kind, r.amount) for r in history] == [
            (TransactionKind.TRANSFER, Decimal("10.00")),
            (TransactionKind.WITHDRAW, Decimal("20.00")),
            (TransactionKind.DEPOSIT, Decimal("50.00")),
        ]

        for account_id in (self.account, self.other):
            report = self.audit.reconcile(account_id).value
            assert report.balanced
