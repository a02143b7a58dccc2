"""
Account Repository Module

Owns the directory of accounts (credentials, balance and transaction
history) and mediates every read and write of account state to the
persistent store. Usernames are unique and case-sensitive.

Store layout:
    accounts_directory   ordered list of {"id", "username"} entries
    account:<id>         full account document, credentials included
    active_session       credential-stripped mirror of the signed-in account
"""

from decimal import Decimal
from datetime import datetime, timezone
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from contextlib import contextmanager
import hashlib
import hmac
import secrets
import threading
import uuid

from .exceptions import (
    DuplicateUsername, InvalidCredentials, InvalidUsername, NotFound, WeakCredential
)
from .logging_config import get_logger, log_action
from .storage import StorageInterface, StorageRecord
from .transactions import Transaction


INITIAL_BALANCE = Decimal('10000.00')

# Demo users created on first start of an empty store
DEFAULT_ACCOUNTS = [
    ("user1", "password1", "user1@example.com"),
    ("user2", "password2", "user2@example.com"),
    ("demo", "demo", "demo@example.com"),
]


@dataclass
class Account(StorageRecord):
    """
    A user's identity, credential, balance and transaction history.
    The balance is authoritative; it is never recomputed from history.
    """
    username: str
    balance: Decimal
    email: Optional[str] = None
    transactions: List[Transaction] = field(default_factory=list)
    credential_hash: Optional[str] = field(default=None, repr=False)
    credential_salt: Optional[str] = field(default=None, repr=False)

    @property
    def next_transaction_id(self) -> int:
        if not self.transactions:
            return 1
        return max(t.id for t in self.transactions) + 1

    def to_public_dict(self) -> Dict[str, Any]:
        """Dictionary without credential material"""
        data = self.to_dict()
        data.pop('credential_hash', None)
        data.pop('credential_salt', None)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Account':
        data = dict(data)
        data['balance'] = Decimal(data['balance'])
        data['transactions'] = [Transaction.from_dict(t) for t in data.get('transactions') or []]
        return super().from_dict(data)


def generate_salt() -> str:
    """Generate random salt for credential hashing"""
    return secrets.token_hex(16)


def hash_credential(credential: str, salt: str, n: int = 16384, r: int = 8, p: int = 1) -> str:
    """Hash a credential with salt using scrypt"""
    return hashlib.scrypt(
        credential.encode(),
        salt=salt.encode(),
        n=n, r=r, p=p
    ).hex()


def verify_credential(credential: str, salt: str, expected_hash: str,
                      n: int = 16384, r: int = 8, p: int = 1) -> bool:
    """Constant-time comparison of a credential against its stored hash"""
    candidate = hash_credential(credential, salt, n=n, r=r, p=p)
    return hmac.compare_digest(candidate, expected_hash)


class AccountLocks:
    """
    One mutex per account id. Holding it makes load -> mutate -> save a
    critical section; unrelated accounts never contend.
    """

    def __init__(self):
        self._locks: Dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    def for_account(self, account_id: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(account_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[account_id] = lock
            return lock

    @contextmanager
    def hold(self, account_id: str):
        lock = self.for_account(account_id)
        with lock:
            yield


class AccountRepository:
    """
    Directory of accounts backed by a key-value store
    """

    DIRECTORY_KEY = "accounts_directory"
    SESSION_KEY = "active_session"
    ACCOUNT_PREFIX = "account:"

    def __init__(
        self,
        storage: StorageInterface,
        initial_balance: Decimal = INITIAL_BALANCE,
        password_min_length: int = 8,
        scrypt_n: int = 16384,
        scrypt_r: int = 8,
        scrypt_p: int = 1
    ):
        self.storage = storage
        self.initial_balance = Decimal(initial_balance)
        self.password_min_length = password_min_length
        self._scrypt = {'n': scrypt_n, 'r': scrypt_r, 'p': scrypt_p}
        self._directory_lock = threading.Lock()
        self.locks = AccountLocks()
        self.logger = get_logger("finflow.accounts")

    def locked(self, account_id: str):
        """Critical section for a load -> mutate -> save sequence on one account"""
        return self.locks.hold(account_id)

    def _account_key(self, account_id: str) -> str:
        return f"{self.ACCOUNT_PREFIX}{account_id}"

    def _load_directory(self) -> List[Dict[str, str]]:
        return self.storage.get(self.DIRECTORY_KEY) or []

    def _set_credential(self, account: Account, credential: str) -> None:
        account.credential_salt = generate_salt()
        account.credential_hash = hash_credential(credential, account.credential_salt, **self._scrypt)

    def _check_credential(self, account: Account, credential: str) -> bool:
        if not account.credential_hash or not account.credential_salt:
            return False
        if not isinstance(credential, str):
            return False
        return verify_credential(credential, account.credential_salt, account.credential_hash, **self._scrypt)

    # Directory

    def create_account(self, username: str, credential: str, email: Optional[str] = None) -> Account:
        """
        Create a new account with the onboarding balance and empty history

        Args:
            username: Unique, case-sensitive login name
            credential: Plain credential; only its salted hash is stored
            email: Optional informational email address

        Returns:
            Created Account object

        Raises:
            InvalidUsername: username is empty or not a string
            DuplicateUsername: username is already taken
        """
        if not isinstance(username, str) or not username:
            raise InvalidUsername(username)
        if not isinstance(credential, str) or not credential:
            raise WeakCredential("Credential must be a non-empty string")

        now = datetime.now(timezone.utc)
        account = Account(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            username=username,
            balance=self.initial_balance,
            email=email or None
        )
        self._set_credential(account, credential)

        with self._directory_lock:
            with self.storage.atomic():
                directory = self._load_directory()
                if any(entry['username'] == username for entry in directory):
                    raise DuplicateUsername(username)

                self.storage.put(self._account_key(account.id), account.to_dict())
                directory.append({'id': account.id, 'username': username})
                self.storage.put(self.DIRECTORY_KEY, directory)

        log_action(
            self.logger, "info", "Account created",
            user_id=account.id, action="account.create", resource="account",
            extra={"username": username}
        )
        return account

    def username_exists(self, username: str) -> bool:
        """Check whether a username is taken"""
        return any(entry['username'] == username for entry in self._load_directory())

    def find_by_username(self, username: str) -> Optional[Account]:
        """Get account by exact username"""
        for entry in self._load_directory():
            if entry['username'] == username:
                data = self.storage.get(self._account_key(entry['id']))
                return Account.from_dict(data) if data else None
        return None

    def find_by_credentials(self, username: str, credential: str) -> Account:
        """
        Get the account matching both username and credential exactly

        Raises:
            NotFound: no account has this username/credential pair
        """
        account = self.find_by_username(username)
        if account is None or not self._check_credential(account, credential):
            raise NotFound("account", username)
        return account

    def load(self, account_id: str) -> Account:
        """
        Load an account by id

        Raises:
            NotFound: account does not exist
        """
        data = self.storage.get(self._account_key(account_id))
        if data is None:
            raise NotFound("account", account_id)
        return Account.from_dict(data)

    def list_accounts(self) -> List[Account]:
        """All accounts in directory (creation) order"""
        accounts = []
        for entry in self._load_directory():
            data = self.storage.get(self._account_key(entry['id']))
            if data is not None:
                accounts.append(Account.from_dict(data))
        return accounts

    def save(self, account: Account) -> None:
        """
        Replace the stored record for account.id wholesale.

        Callers must hold the account's ledger lock and have loaded the
        account in the same logical operation. The active-session mirror is
        rewritten in the same atomic block when it points at this account.

        Raises:
            NotFound: account was never created
        """
        key = self._account_key(account.id)
        with self.storage.atomic():
            if not self.storage.exists(key):
                raise NotFound("account", account.id)
            self.storage.put(key, account.to_dict())

            session = self.storage.get(self.SESSION_KEY)
            if session and session.get('account_id') == account.id:
                session['account'] = account.to_public_dict()
                self.storage.put(self.SESSION_KEY, session)

    def seed_default_accounts(self) -> List[Account]:
        """Create the demo users when the directory is empty"""
        if self._load_directory():
            return []
        created = []
        for username, credential, email in DEFAULT_ACCOUNTS:
            try:
                created.append(self.create_account(username, credential, email))
            except DuplicateUsername:
                # Another process seeded concurrently
                continue
        return created

    # Credentials

    def change_credential(self, account_id: str, current: str, new: str) -> None:
        """
        Replace an account's credential

        Raises:
            InvalidCredentials: current credential does not verify
            WeakCredential: new credential too short or unchanged
        """
        with self.locked(account_id):
            account = self.load(account_id)
            if not self._check_credential(account, current):
                raise InvalidCredentials("Current password is incorrect")
            if not isinstance(new, str) or len(new) < self.password_min_length:
                raise WeakCredential(
                    f"New password must be at least {self.password_min_length} characters long"
                )
            if new == current:
                raise WeakCredential("New password must differ from the current password")

            self._set_credential(account, new)
            account.updated_at = datetime.now(timezone.utc)
            self.save(account)

        log_action(
            self.logger, "info", "Credential changed",
            user_id=account_id, action="account.change_credential", resource="account"
        )

    # Session pointer

    def read_session_pointer(self) -> Optional[Dict[str, Any]]:
        """The persisted active-session document, if any"""
        return self.storage.get(self.SESSION_KEY)

    def write_session_pointer(self, session_id: str, account: Account, started_at: datetime) -> None:
        """Persist the active-session pointer with a credential-stripped snapshot"""
        self.storage.put(self.SESSION_KEY, {
            'session_id': session_id,
            'account_id': account.id,
            'started_at': started_at.isoformat(),
            'account': account.to_public_dict(),
        })

    def clear_session_pointer(self) -> bool:
        """Remove the active-session pointer"""
        return self.storage.delete(self.SESSION_KEY)
