"""
Customer management endpoints
"""

from fastapi import APIRouter, Depends, status

from .dependencies import get_bank, unwrap
from .schemas import AccountResponse, CreateCustomerRequest, CustomerResponse
from ..bank import Bank


router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
def create_customer(request: CreateCustomerRequest, bank: Bank = Depends(get_bank)):
    """Create a new customer"""
    customer_id = unwrap(bank.directory.create_customer(
        name=request.name,
        email=request.email,
        phone=request.phone
    ))
    return {"customer_id": customer_id, "message": "Customer created successfully"}


@router.get("")
def list_customers(bank: Bank = Depends(get_bank)):
    """List all customers"""
    customers = unwrap(bank.directory.list_customers())
    return {"customers": [CustomerResponse.from_customer(c) for c in customers]}


@router.get("/{customer_id}", response_model=CustomerResponse)
def get_customer(customer_id: int, bank: Bank = Depends(get_bank)):
    """Get customer by ID"""
    customer = unwrap(bank.directory.get_customer(customer_id))
    return CustomerResponse.from_customer(customer)


@router.delete("/{customer_id}")
def delete_customer(customer_id: int, bank: Bank = Depends(get_bank)):
    """Delete a customer with its accounts and their transactions"""
    removed = unwrap(bank.directory.delete_customer(customer_id))
    return {"message": "Customer deleted", "accounts_removed": removed}


@router.get("/{customer_id}/accounts")
def get_customer_accounts(customer_id: int, bank: Bank = Depends(get_bank)):
    """Get all accounts for a customer"""
    accounts = unwrap(bank.directory.list_accounts_by_customer(customer_id))
    return {"accounts": [AccountResponse.from_account(a) for a in accounts]}
