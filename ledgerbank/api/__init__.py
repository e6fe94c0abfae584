"""
LedgerBank API Application Factory
"""

from typing import Optional

from fastapi import FastAPI

from .customers import router as customers_router
from .accounts import router as accounts_router
from .transactions import router as transactions_router
from .. import __version__
from ..bank import Bank


def create_app(bank: Optional[Bank] = None) -> FastAPI:
    """
    Create and configure the FastAPI application

    Args:
        bank: Ledger system to serve; built from configuration when omitted
    """
    app = FastAPI(
        title="LedgerBank API",
        description="Customers, accounts and atomic money movement",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc"
    )
    app.state.bank = bank or Bank.from_config()

    # Include routers
    app.include_router(customers_router, prefix="/customers", tags=["Customers"])
    app.include_router(accounts_router, prefix="/accounts", tags=["Accounts"])
    app.include_router(transactions_router, prefix="/transactions", tags=["Transactions"])

    # Health check endpoint
    @app.get("/health")
    def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "ledgerbank_api",
            "version": __version__
        }

    return app
