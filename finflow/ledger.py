"""
Ledger Engine

Balance-mutation and transaction-recording logic. Every committed
deposit, withdrawal or transfer changes the balance and appends exactly
one Transaction in a single write of the account document, so readers
never observe one without the other.

Investment purchases deduct the balance under the same funds rule but
append no Transaction. After a purchase the balance and the sum of the
ledger's effects legitimately diverge.
"""

from decimal import Decimal, InvalidOperation
from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Optional, Union

from .accounts import AccountRepository
from .exceptions import (
    BelowMinimumInvestment, InsufficientFunds, InvalidAmount, MissingCounterparty, MissingFund
)
from .latency import DelayPolicy, ProcessingDelay
from .logging_config import get_logger, log_action
from .transactions import Transaction, TransactionKind


TWO_PLACES = Decimal('0.01')

AmountLike = Union[Decimal, int, float, str]


def parse_amount(value: AmountLike) -> Decimal:
    """
    Convert user input to a positive two-place Decimal

    Values are never rounded: anything finer than a cent is rejected.

    Raises:
        InvalidAmount: not a finite number greater than zero, or more
            than two decimal places
    """
    if isinstance(value, bool) or not isinstance(value, (Decimal, int, float, str)):
        raise InvalidAmount(value)
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value).strip())
        if not amount.is_finite():
            raise InvalidAmount(value)
        quantized = amount.quantize(TWO_PLACES)
    except InvalidOperation:
        raise InvalidAmount(value) from None
    if quantized != amount:
        raise InvalidAmount(value, "must not have more than two decimal places")
    if quantized <= Decimal('0'):
        raise InvalidAmount(value)
    return quantized


@dataclass(frozen=True)
class InvestmentReceipt:
    """Outcome of an investment purchase (not stored anywhere)"""
    account_id: str
    fund_id: str
    amount: Decimal
    balance: Decimal
    timestamp: datetime


class LedgerEngine:
    """
    Applies balance-affecting operations to accounts, at most one
    concurrent mutation per account
    """

    DEFAULT_DESCRIPTIONS = {
        TransactionKind.DEPOSIT: "Cash Deposit",
        TransactionKind.WITHDRAWAL: "Cash Withdrawal",
        TransactionKind.TRANSFER: "Money Transfer",
    }

    def __init__(self, repository: AccountRepository, delays: Optional[DelayPolicy] = None):
        self.repository = repository
        self.delays = delays or DelayPolicy()
        self.logger = get_logger("finflow.ledger")

    def apply_transaction(
        self,
        account_id: str,
        kind: Union[TransactionKind, str],
        amount: AmountLike,
        description: Optional[str] = None,
        counterparty: Optional[str] = None,
        delay: Optional[ProcessingDelay] = None
    ) -> Transaction:
        """
        Apply a deposit, withdrawal or transfer and record it

        Args:
            account_id: Account to mutate
            kind: Transaction kind (enum or its string value)
            amount: Positive amount in whole cents
            description: Free text; defaults per kind
            counterparty: Destination for transfers (not validated against the directory)
            delay: Processing delay to honour; cancel it to abandon the operation

        Returns:
            The committed Transaction

        Raises:
            InvalidAmount: amount is not a positive number
            MissingCounterparty: transfer without a destination
            InsufficientFunds: withdrawal/transfer larger than the balance
            NotFound: account does not exist
            OperationCancelled: delay was cancelled; nothing was committed
        """
        kind = TransactionKind(kind)
        amount = parse_amount(amount)

        if kind == TransactionKind.TRANSFER:
            counterparty = (counterparty or "").strip()
            if not counterparty:
                raise MissingCounterparty()
        else:
            counterparty = None

        (delay or self.delays.for_operation(kind.value)).wait()

        with self.repository.locked(account_id):
            account = self.repository.load(account_id)

            if kind.is_debit and amount > account.balance:
                log_action(
                    self.logger, "warning", f"{kind.value.capitalize()} declined: insufficient funds",
                    user_id=account_id, action=f"ledger.{kind.value}_declined", resource="account",
                    extra={"amount": str(amount), "balance": str(account.balance)}
                )
                raise InsufficientFunds(account_id, amount, account.balance)

            now = datetime.now(timezone.utc)
            transaction = Transaction(
                id=account.next_transaction_id,
                kind=kind,
                amount=amount,
                description=description or self.DEFAULT_DESCRIPTIONS[kind],
                timestamp=now,
                counterparty=counterparty
            )
            account.balance = account.balance + transaction.signed_amount
            account.transactions.append(transaction)
            account.updated_at = now
            self.repository.save(account)

        log_action(
            self.logger, "info", f"Transaction committed: {kind.value}",
            user_id=account_id, action=f"ledger.{kind.value}", resource="transaction",
            extra={
                "transaction_id": transaction.id,
                "amount": str(amount),
                "balance": str(account.balance),
                "counterparty": counterparty,
            }
        )
        return transaction

    def deposit(self, account_id: str, amount: AmountLike, description: Optional[str] = None,
                delay: Optional[ProcessingDelay] = None) -> Transaction:
        return self.apply_transaction(account_id, TransactionKind.DEPOSIT, amount,
                                      description=description, delay=delay)

    def withdraw(self, account_id: str, amount: AmountLike, description: Optional[str] = None,
                 delay: Optional[ProcessingDelay] = None) -> Transaction:
        return self.apply_transaction(account_id, TransactionKind.WITHDRAWAL, amount,
                                      description=description, delay=delay)

    def transfer(self, account_id: str, amount: AmountLike, counterparty: str,
                 description: Optional[str] = None,
                 delay: Optional[ProcessingDelay] = None) -> Transaction:
        return self.apply_transaction(account_id, TransactionKind.TRANSFER, amount,
                                      description=description, counterparty=counterparty,
                                      delay=delay)

    def apply_investment_purchase(
        self,
        account_id: str,
        amount: AmountLike,
        fund_id: str,
        minimum_investment: Optional[AmountLike] = None,
        delay: Optional[ProcessingDelay] = None
    ) -> InvestmentReceipt:
        """
        Deduct an investment purchase from the balance.

        No Transaction is appended for the purchase.

        Raises:
            InvalidAmount: amount is not a positive number
            MissingFund: fund_id is empty
            BelowMinimumInvestment: amount is below minimum_investment
            InsufficientFunds: amount larger than the balance
            NotFound: account does not exist
            OperationCancelled: delay was cancelled; nothing was committed
        """
        amount = parse_amount(amount)
        fund_id = str(fund_id).strip() if fund_id is not None else ""
        if not fund_id:
            raise MissingFund()
        if minimum_investment is not None:
            minimum = parse_amount(minimum_investment)
            if amount < minimum:
                raise BelowMinimumInvestment(fund_id, amount, minimum)

        (delay or self.delays.for_operation("investment")).wait()

        with self.repository.locked(account_id):
            account = self.repository.load(account_id)
            if amount > account.balance:
                raise InsufficientFunds(account_id, amount, account.balance)

            now = datetime.now(timezone.utc)
            account.balance = account.balance - amount
            account.updated_at = now
            self.repository.save(account)

        log_action(
            self.logger, "info", "Investment purchased",
            user_id=account_id, action="ledger.investment", resource="account",
            extra={"fund_id": fund_id, "amount": str(amount), "balance": str(account.balance)}
        )
        return InvestmentReceipt(
            account_id=account_id,
            fund_id=fund_id,
            amount=amount,
            balance=account.balance,
            timestamp=now
        )
