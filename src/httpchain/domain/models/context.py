"""RequestContext - cancellation and deadline signal carried by a request"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, List, Optional

from httpchain.domain.errors import ContextError, RequestCancelledError, RequestTimeoutError

logger = logging.getLogger(__name__)

CancelCallback = Callable[[], None]


class RequestContext:
    """Cancellation/deadline signal for a single request.

    A context is either cancelled explicitly via ``cancel()`` (from any thread)
    or expires when its monotonic deadline passes. Waits performed through
    ``sleep()`` return as soon as either happens. Blocking I/O registers a
    cancel callback so that ``cancel()`` can interrupt it.
    """

    def __init__(self, deadline: Optional[float] = None):
        """Initialize context

        Args:
            deadline: Absolute ``time.monotonic()`` value after which the
                context is done (None = no deadline)
        """
        self._deadline = deadline
        self._cancelled = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: List[CancelCallback] = []

    @classmethod
    def background(cls) -> "RequestContext":
        """Context that never expires on its own"""
        return cls()

    @classmethod
    def with_timeout(cls, timeout: Optional[float]) -> "RequestContext":
        """Context expiring ``timeout`` seconds from now (None = no deadline)"""
        if timeout is None:
            return cls()
        return cls(deadline=time.monotonic() + timeout)

    @property
    def deadline(self) -> Optional[float]:
        return self._deadline

    def cancel(self) -> None:
        """Cancel the context, waking up any pending ``sleep()`` and running cancel callbacks"""
        with self._lock:
            if self._cancelled.is_set():
                return
            self._cancelled.set()
            callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            self._run_callback(callback)

    def add_cancel_callback(self, callback: CancelCallback) -> Callable[[], None]:
        """Register ``callback`` to run (in the cancelling thread) when the context is cancelled

        A callback added to an already cancelled context runs immediately.

        Returns:
            Function that unregisters the callback
        """
        with self._lock:
            if not self._cancelled.is_set():
                self._callbacks.append(callback)
                return lambda: self._remove_callback(callback)
        self._run_callback(callback)
        return lambda: None

    def _remove_callback(self, callback: CancelCallback) -> None:
        with self._lock:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

    @staticmethod
    def _run_callback(callback: CancelCallback) -> None:
        try:
            callback()
        except Exception as e:
            logger.warning(f"Cancel callback {callback!r} failed: {e}")

    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline (None = no deadline, never negative)"""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def expired(self) -> bool:
        return self._deadline is not None and time.monotonic() >= self._deadline

    def done(self) -> bool:
        return self.cancelled() or self.expired()

    def error(self) -> Optional[ContextError]:
        """Error describing why the context is done, or None if still active"""
        if self.cancelled():
            return RequestCancelledError()
        if self.expired():
            return RequestTimeoutError()
        return None

    def raise_if_done(self) -> None:
        err = self.error()
        if err is not None:
            raise err

    def sleep(self, seconds: float) -> None:
        """Wait ``seconds`` unless the context ends first

        Raises:
            RequestCancelledError: If cancelled while waiting
            RequestTimeoutError: If the deadline falls inside the wait
        """
        self.raise_if_done()
        remaining = self.remaining()
        wait_for = max(0.0, seconds)
        if remaining is not None and remaining < wait_for:
            wait_for = remaining
        if self._cancelled.wait(wait_for):
            raise RequestCancelledError()
        if remaining is not None and remaining <= seconds:
            raise RequestTimeoutError()
