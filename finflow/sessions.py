"""
Session Management Module

Authenticates logins and binds the client context to one account. The
session never owns account state: every read goes back through the
account repository, so the persistent store stays the source of truth.
A durable pointer lets a session survive a restart.
"""

from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Optional
from enum import Enum
import threading
import uuid

from .accounts import Account, AccountRepository
from .exceptions import InvalidCredentials, NotFound
from .latency import DelayPolicy, ProcessingDelay
from .logging_config import get_logger, log_action


class SessionState(Enum):
    """Session lifecycle states"""
    ANONYMOUS = "anonymous"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"


@dataclass(frozen=True)
class Session:
    """Binding between the client context and one account"""
    session_id: str
    account_id: str
    username: str
    started_at: datetime


class SessionManager:
    """
    Login/logout lifecycle for a single client context
    """

    def __init__(self, repository: AccountRepository, delays: Optional[DelayPolicy] = None):
        self.repository = repository
        self.delays = delays or DelayPolicy()
        self._state = SessionState.ANONYMOUS
        self._session: Optional[Session] = None
        self._lock = threading.RLock()
        self.logger = get_logger("finflow.sessions")

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def session(self) -> Optional[Session]:
        return self._session

    def _enter(self, session: Optional[Session]) -> None:
        self._session = session
        self._state = SessionState.AUTHENTICATED if session else SessionState.ANONYMOUS

    def restore(self) -> Optional[Session]:
        """
        Restore the session persisted by a previous login.

        Returns the restored Session, or None when there is no pointer or
        the account it points to no longer exists (the stale pointer is
        cleared).
        """
        with self._lock:
            pointer = self.repository.read_session_pointer()
            if not pointer:
                self._enter(None)
                return None

            try:
                account = self.repository.load(pointer['account_id'])
            except NotFound:
                self.repository.clear_session_pointer()
                self._enter(None)
                log_action(
                    self.logger, "warning", "Discarded session pointing at missing account",
                    user_id=pointer.get('account_id'), action="session.restore_failed",
                    resource="session"
                )
                return None

            session = Session(
                session_id=pointer['session_id'],
                account_id=account.id,
                username=account.username,
                started_at=datetime.fromisoformat(pointer['started_at'])
            )
            self._enter(session)
            log_action(
                self.logger, "info", "Session restored",
                user_id=account.id, action="session.restore", resource="session"
            )
            return session

    def login(self, username: str, credential: str,
              delay: Optional[ProcessingDelay] = None) -> Session:
        """
        Authenticate and establish the current session

        Any existing session is ended first. Unknown usernames and wrong
        credentials fail the same way.

        Raises:
            InvalidCredentials: username/credential pair does not match
            OperationCancelled: the processing delay was cancelled
        """
        with self._lock:
            if self._session is not None:
                self.logout()

            self._state = SessionState.AUTHENTICATING
            try:
                (delay or self.delays.for_operation("login")).wait()
                account = self.repository.find_by_credentials(username, credential)

                now = datetime.now(timezone.utc)
                session = Session(
                    session_id=str(uuid.uuid4()),
                    account_id=account.id,
                    username=account.username,
                    started_at=now
                )
                self.repository.write_session_pointer(session.session_id, account, now)
            except NotFound:
                self._enter(None)
                log_action(
                    self.logger, "warning", "Login failed",
                    action="session.login_failed", resource="session",
                    extra={"username": username}
                )
                raise InvalidCredentials() from None
            except Exception:
                self._enter(None)
                raise

            self._enter(session)
            log_action(
                self.logger, "info", "Login succeeded",
                user_id=account.id, action="session.login", resource="session"
            )
            return session

    def logout(self, session: Optional[Session] = None) -> None:
        """End the current session and clear the durable pointer"""
        with self._lock:
            ended = session or self._session
            self.repository.clear_session_pointer()
            self._enter(None)
            if ended:
                log_action(
                    self.logger, "info", "Logged out",
                    user_id=ended.account_id, action="session.logout", resource="session"
                )

    def register(self, username: str, credential: str, email: Optional[str] = None,
                 delay: Optional[ProcessingDelay] = None) -> Account:
        """
        Create an account. Does not sign the new user in.

        Raises:
            DuplicateUsername: username is already taken
            OperationCancelled: the processing delay was cancelled
        """
        (delay or self.delays.for_operation("register")).wait()
        return self.repository.create_account(username, credential, email)

    def require(self, session: Optional[Session]) -> str:
        """
        Check that session is the live session of this context.

        Returns:
            The account id the caller may act on

        Raises:
            InvalidCredentials: no session, or a session that has ended
        """
        current = self._session
        if session is None or current is None or session.session_id != current.session_id:
            raise InvalidCredentials("Not signed in")
        return session.account_id

    def current_account(self, session: Optional[Session] = None) -> Optional[Account]:
        """
        Re-read the signed-in account from the repository.

        Returns None when nobody is signed in.

        Raises:
            NotFound: the session's account no longer exists
        """
        session = session or self._session
        if session is None:
            return None
        return self.repository.load(session.account_id)

    def change_credential(self, session: Session, current: str, new: str) -> None:
        """Change the signed-in account's credential"""
        account_id = self.require(session)
        self.repository.change_credential(account_id, current, new)
