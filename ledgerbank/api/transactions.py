"""
Transaction endpoints
"""

from fastapi import APIRouter, Depends

from .dependencies import get_bank, unwrap
from .schemas import DepositRequest, ReceiptResponse, TransferRequest, WithdrawRequest
from ..bank import Bank


router = APIRouter()


@router.post("/deposit", response_model=ReceiptResponse)
def deposit(request: DepositRequest, bank: Bank = Depends(get_bank)):
    """Make a deposit"""
    receipt = unwrap(bank.ledger.deposit(
        account_id=request.account_id,
        amount=request.amount,
        details=request.details
    ))
    return ReceiptResponse.from_receipt(receipt)


@router.post("/withdraw", response_model=ReceiptResponse)
def withdraw(request: WithdrawRequest, bank: Bank = Depends(get_bank)):
    """Make a withdrawal"""
    receipt = unwrap(bank.ledger.withdraw(
        account_id=request.account_id,
        amount=request.amount,
        details=request.details
    ))
    return ReceiptResponse.from_receipt(receipt)


@router.post("/transfer", response_model=ReceiptResponse)
def transfer(request: TransferRequest, bank: Bank = Depends(get_bank)):
    """Make a transfer between accounts"""
    receipt = unwrap(bank.ledger.transfer(
        from_account_id=request.from_account_id,
        to_account_id=request.to_account_id,
        amount=request.amount,
        details=request.details
    ))
    return ReceiptResponse.from_receipt(receipt)
