"""
Shared API dependencies
"""

from fastapi import HTTPException, Request, status

from ..bank import Bank
from ..results import OperationResult, OperationStatus


STATUS_CODES = {
    OperationStatus.INVALID: status.HTTP_400_BAD_REQUEST,
    OperationStatus.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    OperationStatus.INSUFFICIENT_FUNDS: status.HTTP_409_CONFLICT,
    OperationStatus.CONFLICT: status.HTTP_503_SERVICE_UNAVAILABLE,
    OperationStatus.TIMEOUT: status.HTTP_503_SERVICE_UNAVAILABLE,
    OperationStatus.STORAGE_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def get_bank(request: Request) -> Bank:
    """Dependency returning the Bank attached to the application"""
    return request.app.state.bank


def unwrap(result: OperationResult):
    """Return the value of a successful result or raise the matching HTTP error"""
    if result.ok:
        return result.value

    headers = {"Retry-After": "1"} if result.retryable else None
    raise HTTPException(
        status_code=STATUS_CODES[result.status],
        detail={"status": result.status.value, "message": result.message},
        headers=headers
    )
