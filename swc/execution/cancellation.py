"""
Cooperative cancellation token.

A token is shared between the Scheduler, a Job Pipeline and the Process
Runner invocation currently executing for that job.

- Pipelines check `is_cancelled` at stage boundaries
- The runner registers a callback that terminates its live subprocess,
  so a job blocked inside a long-running process is interrupted promptly
"""

import logging
import threading
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)


class CancellationToken:
    """Thread-safe, one-shot cancellation flag with callbacks."""

    def __init__(self):
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: List[Callable[[], None]] = []
        self.reason = ""

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "cancelled") -> bool:
        """
        Request cancellation.

        Returns:
            True if this call cancelled the token, False if already cancelled
        """
        with self._lock:
            if self._event.is_set():
                return False
            self.reason = reason
            self._event.set()
            callbacks = list(self._callbacks)
            self._callbacks.clear()

        for callback in callbacks:
            try:
                callback()
            except Exception:
                logger.exception("[Cancellation] Callback raised during cancel")
        return True

    def add_callback(self, callback: Callable[[], None]) -> None:
        """
        Register a callback to run on cancellation.

        If the token is already cancelled the callback runs immediately.
        """
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)
                return
        callback()

    def remove_callback(self, callback: Callable[[], None]) -> None:
        with self._lock:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until cancelled or timeout elapses."""
        return self._event.wait(timeout)
