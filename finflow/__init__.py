"""
FinFlow Ledger

Simulated bank-account ledger: authenticated sessions, a single Decimal
balance per account, and an append-only transaction history kept
consistent with that balance under concurrent access.
"""

__version__ = "1.0.0"
