"""
Read-only projections over an account's transaction history.

Results are recomputed on every call from the latest committed account
document; nothing here writes to the store.
"""

from decimal import Decimal
from datetime import datetime, timezone
from dataclasses import dataclass, field
from typing import Dict, List, Sequence, TypeVar, Union
from enum import Enum
import math

from .accounts import AccountRepository
from .transactions import Transaction, TransactionKind


T = TypeVar("T")


class TransactionFilter(Enum):
    """History filter: one kind, or everything"""
    ALL = "all"
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    TRANSFER = "transfer"

    def matches(self, transaction: Transaction) -> bool:
        return self is TransactionFilter.ALL or transaction.kind.value == self.value


@dataclass(frozen=True)
class Page:
    """One page of a paginated sequence"""
    items: List
    page_number: int
    page_size: int
    total_items: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total_items / self.page_size)

    @property
    def has_next(self) -> bool:
        return self.page_number < self.total_pages

    @property
    def has_previous(self) -> bool:
        return self.page_number > 1


@dataclass(frozen=True)
class MonthlyStatement:
    """Transactions of one calendar month (UTC) with per-kind totals"""
    account_id: str
    year: int
    month: int
    transactions: List[Transaction]
    totals: Dict[TransactionKind, Decimal] = field(default_factory=dict)

    @property
    def net_movement(self) -> Decimal:
        return sum((t.signed_amount for t in self.transactions), Decimal('0'))


def recency_sorted(transactions: Sequence[Transaction]) -> List[Transaction]:
    """Most recent first; equal timestamps fall back to the later id"""
    return sorted(transactions, key=lambda t: (t.timestamp, t.id), reverse=True)


def _coerce_filter(filter: Union[TransactionFilter, TransactionKind, str, None]) -> TransactionFilter:
    if filter is None:
        return TransactionFilter.ALL
    if isinstance(filter, TransactionKind):
        return TransactionFilter(filter.value)
    return TransactionFilter(filter)


def list_transactions(
    repository: AccountRepository,
    account_id: str,
    filter: Union[TransactionFilter, TransactionKind, str, None] = None
) -> List[Transaction]:
    """
    An account's transactions, most recent first

    Args:
        repository: Account repository to read from
        account_id: Account whose history to list
        filter: A single kind, or "all"/None for everything

    Raises:
        NotFound: account does not exist
        ValueError: unknown filter
    """
    selected = _coerce_filter(filter)
    account = repository.load(account_id)
    return recency_sorted([t for t in account.transactions if selected.matches(t)])


def paginate(items: Sequence[T], page_size: int, page_number: int) -> Page:
    """
    Slice a sequence into 1-indexed pages. A page past the end is empty.
    """
    if page_size < 1:
        raise ValueError("page_size must be at least 1")
    if page_number < 1:
        raise ValueError("page_number must be at least 1")

    start = (page_number - 1) * page_size
    return Page(
        items=list(items[start:start + page_size]),
        page_number=page_number,
        page_size=page_size,
        total_items=len(items)
    )


def monthly_statement(
    repository: AccountRepository,
    account_id: str,
    year: int,
    month: int,
    filter: Union[TransactionFilter, TransactionKind, str, None] = None
) -> MonthlyStatement:
    """Transactions dated within the given calendar month, with totals by kind"""
    if not 1 <= month <= 12:
        raise ValueError("month must be between 1 and 12")

    start = datetime(year, month, 1, tzinfo=timezone.utc)
    end = datetime(year + 1, 1, 1, tzinfo=timezone.utc) if month == 12 \
        else datetime(year, month + 1, 1, tzinfo=timezone.utc)

    in_month = [
        t for t in list_transactions(repository, account_id, filter)
        if start <= _as_utc(t.timestamp) < end
    ]

    totals = {kind: Decimal('0.00') for kind in TransactionKind}
    for transaction in in_month:
        totals[transaction.kind] += transaction.amount

    return MonthlyStatement(
        account_id=account_id,
        year=year,
        month=month,
        transactions=in_month,
        totals=totals
    )


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)
