"""
Exception Hierarchy

Domain errors raised by the account repository, session manager, ledger
engine and storage layer. Callers catch FinFlowError for any of them.

    FinFlowError
    ├── InvalidCredentials
    ├── InvalidUsername
    ├── WeakCredential
    ├── DuplicateUsername
    ├── NotFound
    ├── InvalidAmount
    ├── InsufficientFunds
    ├── MissingCounterparty
    ├── MissingFund
    ├── BelowMinimumInvestment
    ├── OperationCancelled
    └── StorageUnavailable   (the only retryable error)
"""

from decimal import Decimal
from typing import Optional


class FinFlowError(Exception):
    """Base class for all FinFlow domain errors"""

    retryable = False

    def __init__(self, detail: str = "An error occurred"):
        self.detail = detail
        super().__init__(self.detail)


class InvalidCredentials(FinFlowError):
    """Username/credential pair did not match any account"""

    def __init__(self, detail: str = "Invalid username or password"):
        super().__init__(detail)


class InvalidUsername(FinFlowError, ValueError):
    """Username is empty or not a string"""

    def __init__(self, username: object):
        self.username = username
        super().__init__(f"Invalid username: {username!r}")


class WeakCredential(FinFlowError, ValueError):
    """New credential violates the credential policy"""


class DuplicateUsername(FinFlowError):
    """Raised when registering a username that is already taken"""

    def __init__(self, username: str):
        self.username = username
        super().__init__(f"Username already exists: {username}")


class NotFound(FinFlowError):
    """Account (or the target of a session pointer) does not exist"""

    def __init__(self, entity: str, entity_id: str):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found")


class InvalidAmount(FinFlowError, ValueError):
    """Amount is not a positive number of whole cents"""

    def __init__(self, amount: object, reason: str = "must be a positive number"):
        self.amount = amount
        self.reason = reason
        super().__init__(f"Invalid amount: {amount!r} ({reason})")


class InsufficientFunds(FinFlowError):
    """
    Raised when a withdrawal, transfer or investment purchase would take
    the balance below zero.
    """

    def __init__(self, account_id: str, requested: Decimal, available: Decimal):
        self.account_id = account_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient funds: requested {requested}, available {available}"
        )


class MissingCounterparty(FinFlowError, ValueError):
    """Transfer without a destination account"""

    def __init__(self):
        super().__init__("Transfer requires a recipient account")


class MissingFund(FinFlowError, ValueError):
    """Investment purchase without a fund identifier"""

    def __init__(self):
        super().__init__("Investment purchase requires a fund")


class BelowMinimumInvestment(FinFlowError):
    """Investment amount is below the fund's minimum"""

    def __init__(self, fund_id: str, amount: Decimal, minimum: Decimal):
        self.fund_id = fund_id
        self.amount = amount
        self.minimum = minimum
        super().__init__(
            f"Minimum investment for fund {fund_id} is {minimum}, got {amount}"
        )


class OperationCancelled(FinFlowError):
    """A pending operation was cancelled before anything was committed"""

    def __init__(self, operation: Optional[str] = None):
        self.operation = operation
        super().__init__(f"Operation cancelled: {operation}" if operation else "Operation cancelled")


class StorageUnavailable(FinFlowError):
    """Persistent store call failed; safe for the caller to retry"""

    retryable = True
