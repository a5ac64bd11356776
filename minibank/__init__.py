"""
Minibank

A small banking ledger service: accounts with exact decimal balances,
deposits, withdrawals and atomic transfers recorded in an append-only
transaction journal.
"""

__version__ = "1.0.0"
