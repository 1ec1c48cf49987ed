"""
Finance Ledger

A personal-finance backend with user accounts, peer-to-peer balance
transfers, expense logging and a hash-chained audit trail.
"""

__version__ = "1.0.0"
