"""Cooperative cancellation scopes for sync passes.

This module provides:
- CancelReason: Why a scope was cancelled
- CancelScope: Thread-safe cancellation token with child scopes, deadlines and callbacks
- SyncGeneration: Root scope covering every download issued by one sync pass

A new sync pass cancels the previous generation before starting its own work.
Downloads observe their scope at every blocking boundary (before each write,
before publishing the file); cancel callbacks let a scope close an in-flight
HTTP response so that a blocked read is interrupted too.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from enum import Enum

logger = logging.getLogger(__name__)


class CancelReason(Enum):
    """Why a scope was cancelled."""

    SUPERSEDED = "superseded"
    TIMEOUT = "timeout"
    SHUTDOWN = "shutdown"


class CancelScope:
    """Cancellation token, optionally bounded by a deadline.

    A child scope is cancelled whenever its parent is, with the parent's reason.
    Cancelling a child never affects the parent.

    Usage:
        scope = generation.child(timeout=30.0)
        try:
            unregister = scope.on_cancel(response.close)
            for chunk in response.iter_bytes():
                if scope.cancelled:
                    break
                ...
        finally:
            scope.close()
    """

    def __init__(
        self,
        parent: CancelScope | None = None,
        timeout: float | None = None,
    ) -> None:
        """Initialize the scope.

        Args:
            parent: Scope whose cancellation propagates to this one.
            timeout: Seconds until the scope cancels itself with TIMEOUT.
                None or 0 means no deadline.
        """
        self._lock = threading.Lock()
        self._event = threading.Event()
        self._reason: CancelReason | None = None
        self._callbacks: list[Callable[[], None]] = []
        self._timer: threading.Timer | None = None
        self._detach: Callable[[], None] | None = None

        if parent is not None:
            self._detach = parent.on_cancel(self._cancel_from_parent(parent))

        if timeout and not self.cancelled:
            self._timer = threading.Timer(timeout, self.cancel, args=(CancelReason.TIMEOUT,))
            self._timer.daemon = True
            self._timer.start()

    def _cancel_from_parent(self, parent: CancelScope) -> Callable[[], None]:
        def propagate() -> None:
            self.cancel(parent.reason or CancelReason.SUPERSEDED)

        return propagate

    @property
    def cancelled(self) -> bool:
        """Check if cancellation was requested."""
        return self._event.is_set()

    @property
    def reason(self) -> CancelReason | None:
        """Reason for the cancellation, None while still active."""
        return self._reason

    def cancel(self, reason: CancelReason = CancelReason.SUPERSEDED) -> bool:
        """Cancel the scope and run its callbacks.

        Args:
            reason: Why the scope is being cancelled.

        Returns:
            True if this call cancelled the scope, False if it already was.
        """
        with self._lock:
            if self._event.is_set():
                return False
            self._reason = reason
            self._event.set()
            callbacks, self._callbacks = self._callbacks, []

        for callback in callbacks:
            try:
                callback()
            except Exception:
                logger.exception("Cancel callback failed")
        return True

    def on_cancel(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Register a callback to run when the scope is cancelled.

        If the scope is already cancelled the callback runs immediately.

        Args:
            callback: Function to call on cancellation (from the cancelling thread).

        Returns:
            Function that unregisters the callback.
        """
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)

                def unregister() -> None:
                    with self._lock:
                        if callback in self._callbacks:
                            self._callbacks.remove(callback)

                return unregister

        callback()
        return lambda: None

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the scope is cancelled or the timeout elapses.

        Returns:
            True if the scope was cancelled.
        """
        return self._event.wait(timeout)

    def child(self, timeout: float | None = None) -> CancelScope:
        """Create a child scope, optionally with its own deadline."""
        return CancelScope(parent=self, timeout=timeout)

    def close(self) -> None:
        """Stop the deadline timer and detach from the parent."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._detach is not None:
            self._detach()
            self._detach = None


class SyncGeneration(CancelScope):
    """Cancellation scope covering all downloads issued within one sync pass."""

    def __init__(self, number: int) -> None:
        super().__init__()
        self.number = number

    def __repr__(self) -> str:
        state = f"cancelled:{self.reason.value}" if self.reason else "active"
        return f"SyncGeneration({self.number}, {state})"
