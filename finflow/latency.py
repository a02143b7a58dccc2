"""
Simulated processing latency.

Login, registration and balance-moving operations wait a short, bounded
time before doing any work. A waiting operation can be cancelled from
another thread; it then raises OperationCancelled and commits nothing.
"""

import threading
from typing import Optional

from .exceptions import OperationCancelled


class ProcessingDelay:
    """Bounded, cancellable wait"""

    def __init__(self, seconds: float = 0.0, operation: Optional[str] = None):
        if seconds < 0:
            raise ValueError("Delay cannot be negative")
        self.seconds = seconds
        self.operation = operation
        self._cancelled = threading.Event()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        """Abandon the pending operation"""
        self._cancelled.set()

    def wait(self) -> None:
        """
        Block for up to `seconds`.

        Raises:
            OperationCancelled: cancel() was called before or during the wait
        """
        if self.seconds > 0:
            self._cancelled.wait(self.seconds)
        if self._cancelled.is_set():
            raise OperationCancelled(self.operation)


class DelayPolicy:
    """Per-operation delay durations; hands out a fresh ProcessingDelay per call"""

    def __init__(self, login: float = 0.0, register: float = 0.0, transaction: float = 0.0):
        self.login = login
        self.register = register
        self.transaction = transaction

    def for_operation(self, operation: str) -> ProcessingDelay:
        seconds = {
            "login": self.login,
            "register": self.register,
        }.get(operation, self.transaction)
        return ProcessingDelay(seconds, operation)
