"""
Account endpoints
"""

from typing import Optional

from fastapi import APIRouter, Depends, status

from .dependencies import get_bank, unwrap
from .schemas import (
    AccountResponse, CreateAccountRequest, ReconciliationResponse, TransactionResponse
)
from ..bank import Bank


router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
def create_account(request: CreateAccountRequest, bank: Bank = Depends(get_bank)):
    """Open an account for an existing customer"""
    account_id = unwrap(bank.directory.create_account(
        customer_id=request.customer_id,
        account_type=request.account_type
    ))
    return {"account_id": account_id, "message": "Account created successfully"}


@router.get("/{account_id}", response_model=AccountResponse)
def get_account(account_id: int, bank: Bank = Depends(get_bank)):
    """Get account by ID"""
    return AccountResponse.from_account(unwrap(bank.directory.get_account(account_id)))


@router.get("/{account_id}/transactions")
def get_account_transactions(
    account_id: int,
    limit: Optional[int] = None,
    bank: Bank = Depends(get_bank)
):
    """Most recent transactions first"""
    records = unwrap(bank.audit.recent_transactions(account_id, limit))
    return {"transactions": [TransactionResponse.from_record(r) for r in records]}


@router.get("/{account_id}/reconciliation", response_model=ReconciliationResponse)
def reconcile_account(account_id: int, bank: Bank = Depends(get_bank)):
    """Check the balance against the transaction log"""
    return ReconciliationResponse.from_report(unwrap(bank.audit.reconcile(account_id)))
