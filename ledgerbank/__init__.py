"""
LedgerBank

A minimal consistent ledger: customers, accounts, and atomic deposits,
withdrawals and transfers over a relational store, with Decimal money and
an append-only transaction log.
"""

__version__ = "1.0.0"
