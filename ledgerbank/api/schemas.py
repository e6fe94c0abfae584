"""
Pydantic schemas for API requests and responses
"""

from typing import Dict, List, Optional
from pydantic import BaseModel, Field

from ..audit import ReconciliationReport
from ..directory import Account, Customer
from ..ledger import LedgerReceipt, TransactionRecord


# Customer schemas
class CreateCustomerRequest(BaseModel):
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None


class CustomerResponse(BaseModel):
    customer_id: int
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    created_at: str

    @classmethod
    def from_customer(cls, customer: Customer) -> 'CustomerResponse':
        return cls(
            customer_id=customer.customer_id,
            name=customer.name,
            email=customer.email,
            phone=customer.phone,
            created_at=customer.created_at.isoformat()
        )


# Account schemas
class CreateAccountRequest(BaseModel):
    customer_id: int
    account_type: str = Field(..., description="Free-form label, e.g. SAVINGS or CURRENT")


class AccountResponse(BaseModel):
    account_id: int
    customer_id: int
    account_type: str
    balance: str = Field(..., description="Decimal amount as string")
    created_at: str

    @classmethod
    def from_account(cls, account: Account) -> 'AccountResponse':
        return cls(
            account_id=account.account_id,
            customer_id=account.customer_id,
            account_type=account.account_type,
            balance=str(account.balance),
            created_at=account.created_at.isoformat()
        )


# Transaction schemas
class DepositRequest(BaseModel):
    account_id: int
    amount: str = Field(..., description="Decimal amount as string")
    details: Optional[str] = None


class WithdrawRequest(BaseModel):
    account_id: int
    amount: str = Field(..., description="Decimal amount as string")
    details: Optional[str] = None


class TransferRequest(BaseModel):
    from_account_id: int
    to_account_id: int
    amount: str = Field(..., description="Decimal amount as string")
    details: Optional[str] = None


class ReceiptResponse(BaseModel):
    transaction_ids: List[int]
    balances: Dict[str, str]

    @classmethod
    def from_receipt(cls, receipt: LedgerReceipt) -> 'ReceiptResponse':
        return cls(
            transaction_ids=list(receipt.transaction_ids),
            balances={str(k): str(v) for k, v in receipt.balances.items()}
        )


class TransactionResponse(BaseModel):
    transaction_id: int
    account_id: int
    type: str
    amount: str
    details: Optional[str] = None
    created_at: str

    @classmethod
    def from_record(cls, record: TransactionRecord) -> 'TransactionResponse':
        return cls(
            transaction_id=record.transaction_id,
            account_id=record.account_id,
            type=record.kind.value,
            amount=str(record.amount),
            details=record.details,
            created_at=record.created_at.isoformat()
        )


class ReconciliationResponse(BaseModel):
    account_id: int
    balance: str
    ledger_total: str
    record_count: int
    balanced: bool

    @classmethod
    def from_report(cls, report: ReconciliationReport) -> 'ReconciliationResponse':
        return cls(
            account_id=report.account_id,
            balance=str(report.balance),
            ledger_total=str(report.ledger_total),
            record_count=report.record_count,
            balanced=report.balanced
        )
