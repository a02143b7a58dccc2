"""
FinFlow Bank

Composition root wiring storage, account repository, session manager,
ledger engine and query layer. Presentation code talks to this object:
every operation returns plain data and signals failure with a
FinFlowError subclass.
"""

from decimal import Decimal
from typing import List, Optional, Union

from .accounts import Account, AccountRepository
from .config import FinFlowConfig, get_config
from .latency import DelayPolicy, ProcessingDelay
from .ledger import AmountLike, InvestmentReceipt, LedgerEngine
from .logging_config import get_logger, setup_logging
from .queries import (
    MonthlyStatement, Page, TransactionFilter, list_transactions, monthly_statement, paginate
)
from .sessions import Session, SessionManager, SessionState
from .storage import StorageInterface, create_storage
from .transactions import Transaction, TransactionKind


FilterLike = Union[TransactionFilter, TransactionKind, str, None]


class FinFlowBank:
    """
    Session-gated facade over the ledger core
    """

    def __init__(self, storage: StorageInterface, config: Optional[FinFlowConfig] = None):
        self.config = config or get_config()
        self.storage = storage
        self.repository = AccountRepository(
            storage,
            initial_balance=Decimal(self.config.initial_balance),
            password_min_length=self.config.password_min_length,
            scrypt_n=self.config.scrypt_n,
            scrypt_r=self.config.scrypt_r,
            scrypt_p=self.config.scrypt_p
        )
        self.delays = DelayPolicy(
            login=self.config.login_delay_seconds,
            register=self.config.register_delay_seconds,
            transaction=self.config.transaction_delay_seconds
        )
        self.sessions = SessionManager(self.repository, self.delays)
        self.ledger = LedgerEngine(self.repository, self.delays)
        self.logger = get_logger("finflow.bank")

        if self.config.seed_demo_accounts:
            self.repository.seed_default_accounts()

        # Resume a session persisted by a previous run
        self.sessions.restore()

    @classmethod
    def from_config(cls, config: Optional[FinFlowConfig] = None,
                    configure_logging: bool = True) -> 'FinFlowBank':
        """Build the bank with the storage backend and logging named by config"""
        config = config or get_config()
        if configure_logging:
            setup_logging(config.log_level, "finflow", config.log_format, config.log_file)
        storage = create_storage(config.storage_backend, config.database_path)
        return cls(storage, config)

    def close(self) -> None:
        self.storage.close()

    # Session

    @property
    def state(self) -> SessionState:
        return self.sessions.state

    @property
    def session(self) -> Optional[Session]:
        return self.sessions.session

    def register(self, username: str, credential: str, email: Optional[str] = None,
                 delay: Optional[ProcessingDelay] = None) -> Account:
        return self.sessions.register(username, credential, email, delay=delay)

    def login(self, username: str, credential: str,
              delay: Optional[ProcessingDelay] = None) -> Session:
        return self.sessions.login(username, credential, delay=delay)

    def logout(self, session: Optional[Session] = None) -> None:
        self.sessions.logout(session)

    def current_account(self, session: Optional[Session] = None) -> Optional[Account]:
        return self.sessions.current_account(session)

    def change_credential(self, session: Session, current: str, new: str) -> None:
        self.sessions.change_credential(session, current, new)

    # Ledger

    def apply_transaction(self, session: Session, kind: Union[TransactionKind, str],
                          amount: AmountLike, description: Optional[str] = None,
                          counterparty: Optional[str] = None,
                          delay: Optional[ProcessingDelay] = None) -> Transaction:
        account_id = self.sessions.require(session)
        return self.ledger.apply_transaction(
            account_id, kind, amount, description=description,
            counterparty=counterparty, delay=delay
        )

    def deposit(self, session: Session, amount: AmountLike,
                delay: Optional[ProcessingDelay] = None) -> Transaction:
        return self.apply_transaction(session, TransactionKind.DEPOSIT, amount, delay=delay)

    def withdraw(self, session: Session, amount: AmountLike,
                 delay: Optional[ProcessingDelay] = None) -> Transaction:
        return self.apply_transaction(session, TransactionKind.WITHDRAWAL, amount, delay=delay)

    def transfer(self, session: Session, amount: AmountLike, counterparty: str,
                 delay: Optional[ProcessingDelay] = None) -> Transaction:
        return self.apply_transaction(session, TransactionKind.TRANSFER, amount,
                                      counterparty=counterparty, delay=delay)

    def invest(self, session: Session, amount: AmountLike, fund_id: str,
               minimum_investment: Optional[AmountLike] = None,
               delay: Optional[ProcessingDelay] = None) -> InvestmentReceipt:
        account_id = self.sessions.require(session)
        return self.ledger.apply_investment_purchase(
            account_id, amount, fund_id,
            minimum_investment=minimum_investment, delay=delay
        )

    # Queries

    def list_transactions(self, session: Session, filter: FilterLike = None) -> List[Transaction]:
        account_id = self.sessions.require(session)
        return list_transactions(self.repository, account_id, filter)

    def transactions_page(self, session: Session, page_size: int, page_number: int,
                          filter: FilterLike = None) -> Page:
        return paginate(self.list_transactions(session, filter), page_size, page_number)

    def monthly_statement(self, session: Session, year: int, month: int,
                          filter: FilterLike = None) -> MonthlyStatement:
        account_id = self.sessions.require(session)
        return monthly_statement(self.repository, account_id, year, month, filter)
