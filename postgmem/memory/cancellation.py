"""
Cancellation tokens shared between a caller and an in-flight memory operation.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Callable, Iterator, List, Optional

from .errors import OperationCancelledError

logger = logging.getLogger(__name__)


class CancellationToken:
    """
    Thread-safe cancellation signal.

    The caller keeps a reference and calls ``cancel()`` from any thread.
    Operations poll ``raise_if_cancelled()`` between steps and register
    callbacks (such as ``connection.cancel``) that abort blocking calls.
    """

    def __init__(self):
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: List[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self):
        """Trigger cancellation and run every registered callback once."""
        with self._lock:
            if self._event.is_set():
                return
            self._event.set()
            callbacks = list(self._callbacks)

        for callback in callbacks:
            try:
                callback()
            except Exception as e:
                # best effort: the operation still reports its own outcome
                logger.warning(f"Cancellation callback failed: {e}")

    def raise_if_cancelled(self, operation: str = "operation"):
        if self._event.is_set():
            raise OperationCancelledError(f"{operation} was cancelled")

    @contextmanager
    def register(self, callback: Callable[[], None]) -> Iterator[None]:
        """
        Run ``callback`` on cancellation while the block executes.

        If the token is already cancelled the callback runs immediately.
        """
        with self._lock:
            already_cancelled = self._event.is_set()
            if not already_cancelled:
                self._callbacks.append(callback)

        if already_cancelled:
            callback()

        try:
            yield
        finally:
            with self._lock:
                if callback in self._callbacks:
                    self._callbacks.remove(callback)


def check_cancelled(cancellation: Optional[CancellationToken], operation: str):
    """Raise OperationCancelledError when ``cancellation`` has been triggered."""
    if cancellation is not None:
        cancellation.raise_if_cancelled(operation)
