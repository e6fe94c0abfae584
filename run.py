#!/usr/bin/env python3
"""
LedgerBank Entry Point

Starts the FastAPI server with the ledger system built from configuration
(LEDGERBANK_* environment variables or a .env file).
"""

import sys

import uvicorn

from ledgerbank.api import create_app
from ledgerbank.bank import Bank
from ledgerbank.config import get_config
from ledgerbank.errors import LedgerError
from ledgerbank.logging_config import setup_logging


def main() -> int:
    config = get_config()
    logger = setup_logging(
        level=config.log_level,
        log_format=config.log_format,
        log_file=config.log_file
    )

    try:
        bank = Bank.from_config(config)
    except (LedgerError, RuntimeError, ValueError, ImportError) as e:
        logger.error(f"Error starting LedgerBank: {e}")
        return 1

    logger.info(f"API available at: http://{config.api_host}:{config.api_port}")
    try:
        uvicorn.run(create_app(bank), host=config.api_host, port=config.api_port)
    finally:
        bank.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
