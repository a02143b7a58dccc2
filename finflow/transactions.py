"""
Transaction Records

Immutable records of balance-affecting events. A transaction's amount is
always a positive magnitude; its direction is implied by its kind.
"""

from decimal import Decimal
from datetime import datetime
from dataclasses import dataclass
from typing import Any, Dict, Optional
from enum import Enum


class TransactionKind(Enum):
    """Kinds of ledger transactions"""
    DEPOSIT = "deposit"        # Credits the account
    WITHDRAWAL = "withdrawal"  # Debits the account
    TRANSFER = "transfer"      # Debits the account towards a counterparty

    @property
    def is_debit(self) -> bool:
        return self is not TransactionKind.DEPOSIT


@dataclass(frozen=True)
class Transaction:
    """
    One entry in an account's ledger

    `id` is unique within the owning account and increases with insertion
    order, so (timestamp, id) gives a stable recency order.
    """
    id: int
    kind: TransactionKind
    amount: Decimal
    description: str
    timestamp: datetime
    counterparty: Optional[str] = None

    def __post_init__(self):
        if not self.amount > Decimal('0'):
            raise ValueError("Transaction amount must be positive")
        if self.kind == TransactionKind.TRANSFER and not self.counterparty:
            raise ValueError("Transfer transaction requires a counterparty")
        if self.kind != TransactionKind.TRANSFER and self.counterparty is not None:
            raise ValueError("Only transfers carry a counterparty")

    @property
    def signed_amount(self) -> Decimal:
        """Effect of this transaction on the balance"""
        return -self.amount if self.kind.is_debit else self.amount

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for storage"""
        data = {
            'id': self.id,
            'kind': self.kind.value,
            'amount': str(self.amount),
            'description': self.description,
            'timestamp': self.timestamp.isoformat(),
        }
        if self.counterparty is not None:
            data['counterparty'] = self.counterparty
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Transaction':
        """Create instance from dictionary"""
        return cls(
            id=int(data['id']),
            kind=TransactionKind(data['kind']),
            amount=Decimal(data['amount']),
            description=data.get('description', ''),
            timestamp=datetime.fromisoformat(data['timestamp']),
            counterparty=data.get('counterparty'),
        )
