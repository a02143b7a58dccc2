"""
Tests for transaction history queries: ordering, filtering, pagination
and monthly statements
"""

import pytest
from decimal import Decimal
from datetime import datetime, timezone

from finflow.storage import InMemoryStorage
from finflow.accounts import AccountRepository
from finflow.exceptions import NotFound
from finflow.queries import (
    TransactionFilter, list_transactions, monthly_statement, paginate, recency_sorted
)
from finflow.transactions import Transaction, TransactionKind


def make_transaction(id, kind, amount, when, counterparty=None):
    if kind == TransactionKind.TRANSFER and counterparty is None:
        counterparty = "ACC-1"
    return Transaction(
        id=id,
        kind=kind,
        amount=Decimal(amount),
        description=kind.value,
        timestamp=when,
        counterparty=counterparty
    )


@pytest.fixture
def repository():
    return AccountRepository(InMemoryStorage(), scrypt_n=1024)


@pytest.fixture
def account_id(repository):
    """Account with a hand-built history spanning two months"""
    account = repository.create_account("demo", "demo")
    account.transactions = [
        make_transaction(1, TransactionKind.DEPOSIT, "500.00",
                         datetime(2025, 3, 5, 9, 0, tzinfo=timezone.utc)),
        make_transaction(2, TransactionKind.WITHDRAWAL, "20.00",
                         datetime(2025, 3, 31, 23, 59, tzinfo=timezone.utc)),
        make_transaction(3, TransactionKind.TRANSFER, "75.50",
                         datetime(2025, 4, 1, 0, 0, tzinfo=timezone.utc)),
        make_transaction(4, TransactionKind.DEPOSIT, "10.00",
                         datetime(2025, 4, 1, 0, 0, tzinfo=timezone.utc)),
        make_transaction(5, TransactionKind.WITHDRAWAL, "5.00",
                         datetime(2025, 4, 15, 12, 0, tzinfo=timezone.utc)),
    ]
    repository.save(account)
    return account.id


class TestListTransactions:
    """Recency order and kind filters"""

    def test_most_recent_first(self, repository, account_id):
        """Test history is listed newest first"""
        ids = [t.id for t in list_transactions(repository, account_id)]
        assert ids == [5, 4, 3, 2, 1]

    def test_equal_timestamps_ordered_by_id(self):
        """Test ties on timestamp fall back to id"""
        moment = datetime(2025, 1, 1, tzinfo=timezone.utc)
        items = [make_transaction(i, TransactionKind.DEPOSIT, "1", moment) for i in (2, 7, 4)]
        assert [t.id for t in recency_sorted(items)] == [7, 4, 2]

    def test_filter_by_kind(self, repository, account_id):
        """Test filtering by a single kind"""
        deposits = list_transactions(repository, account_id, TransactionFilter.DEPOSIT)
        assert [t.id for t in deposits] == [4, 1]

    @pytest.mark.parametrize("filter,expected", [
        ("withdrawal", [5, 2]),
        (TransactionKind.TRANSFER, [3]),
        ("all", [5, 4, 3, 2, 1]),
        (None, [5, 4, 3, 2, 1]),
    ])
    def test_filter_forms(self, repository, account_id, filter, expected):
        """Test the accepted filter forms"""
        assert [t.id for t in list_transactions(repository, account_id, filter)] == expected

    def test_unknown_filter(self, repository, account_id):
        """Test unknown filters are rejected"""
        with pytest.raises(ValueError):
            list_transactions(repository, account_id, "refund")

    def test_unknown_account(self, repository):
        """Test listing a missing account raises NotFound"""
        with pytest.raises(NotFound):
            list_transactions(repository, "missing")

    def test_empty_history(self, repository):
        """Test a fresh account has no transactions"""
        account = repository.create_account("fresh", "pw")
        assert list_transactions(repository, account.id) == []


class TestPaginate:
    """1-indexed pages over a sequence"""

    def test_pages(self):
        """Test page contents and navigation flags"""
        items = list(range(1, 8))

        first = paginate(items, 3, 1)
        assert first.items == [1, 2, 3]
        assert first.total_items == 7
        assert first.total_pages == 3
        assert first.has_next
        assert not first.has_previous

        last = paginate(items, 3, 3)
        assert last.items == [7]
        assert not last.has_next
        assert last.has_previous

    def test_page_past_the_end_is_empty(self):
        """Test a page beyond the last is empty"""
        page = paginate([1, 2], 5, 4)
        assert page.items == []
        assert page.total_pages == 1

    def test_empty_sequence(self):
        """Test paginating nothing"""
        page = paginate([], 10, 1)
        assert page.items == []
        assert page.total_pages == 0
        assert not page.has_next

    @pytest.mark.parametrize("page_size,page_number", [(0, 1), (10, 0), (-1, 2)])
    def test_invalid_arguments(self, page_size, page_number):
        """Test page size and number must be positive"""
        with pytest.raises(ValueError):
            paginate([1, 2, 3], page_size, page_number)


class TestMonthlyStatement:
    """Calendar-month views of the history"""

    def test_month_boundaries(self, repository, account_id):
        """Test statements split on calendar months"""
        march = monthly_statement(repository, account_id, 2025, 3)
        april = monthly_statement(repository, account_id, 2025, 4)

        assert [t.id for t in march.transactions] == [2, 1]
        assert [t.id for t in april.transactions] == [5, 4, 3]

    def test_totals_and_net_movement(self, repository, account_id):
        """Test per-kind totals and net movement"""
        april = monthly_statement(repository, account_id, 2025, 4)

        assert april.totals[TransactionKind.DEPOSIT] == Decimal("10.00")
        assert april.totals[TransactionKind.WITHDRAWAL] == Decimal("5.00")
        assert april.totals[TransactionKind.TRANSFER] == Decimal("75.50")
        assert april.net_movement == Decimal("-70.50")

    def test_filtered_statement(self, repository, account_id):
        """Test a statement restricted to one kind"""
        statement = monthly_statement(repository, account_id, 2025, 3, "deposit")
        assert [t.id for t in statement.transactions] == [1]
        assert statement.totals[TransactionKind.WITHDRAWAL] == Decimal("0.00")

    def test_december_rolls_into_next_year(self, repository, account_id):
        """Test the December window ends at the new year"""
        statement = monthly_statement(repository, account_id, 2025, 12)
        assert statement.transactions == []
        assert statement.net_movement == Decimal("0")

    @pytest.mark.parametrize("month", [0, 13])
    def test_invalid_month(self, repository, account_id, month):
        """Test months outside 1-12 are rejected"""
        with pytest.raises(ValueError):
            monthly_statement(repository, account_id, 2025, month)
