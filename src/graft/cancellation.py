"""
Cancellation signal shared by every blocking call in a review.

A :class:`CancellationToken` is created once per invocation (optionally
with a deadline) and handed down to git subprocesses, provider HTTP
requests and the orchestrator's join point. Child tokens let the
orchestrator abandon its background call without cancelling the whole
review.
"""

from __future__ import annotations

import threading
import time
from typing import Optional


class ReviewCancelled(Exception):
    """Raised when a review operation stops because its token fired."""

    pass


class CancellationToken:
    """Thread-safe, one-way cancellation flag with an optional deadline.

    Parameters
    ----------
    timeout : float, optional
        Seconds from now after which the token counts as cancelled.
    parent : CancellationToken, optional
        A token whose cancellation also cancels this one.
    """

    def __init__(self, timeout: Optional[float] = None, parent: Optional["CancellationToken"] = None) -> None:
        self._event = threading.Event()
        self._deadline = time.monotonic() + timeout if timeout is not None else None
        self._parent = parent
        self._reason = "operation cancelled"

    def child(self) -> "CancellationToken":
        """Return a token that is cancelled when this one is."""
        return CancellationToken(parent=self)

    def cancel(self, reason: str = "operation cancelled") -> None:
        self._reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        if self._deadline is not None and time.monotonic() >= self._deadline:
            self._reason = "operation timed out"
            return True
        return self._parent is not None and self._parent.cancelled

    @property
    def reason(self) -> str:
        if not self._event.is_set() and self._parent is not None and self._parent.cancelled:
            return self._parent.reason
        return self._reason

    def remaining(self) -> Optional[float]:
        """Seconds left before the nearest deadline, or ``None`` if unbounded."""
        candidates = []
        if self._deadline is not None:
            candidates.append(max(0.0, self._deadline - time.monotonic()))
        if self._parent is not None:
            parent_remaining = self._parent.remaining()
            if parent_remaining is not None:
                candidates.append(parent_remaining)
        return min(candidates) if candidates else None

    def clamp(self, timeout: Optional[float]) -> Optional[float]:
        """Limit ``timeout`` to the time left on this token."""
        remaining = self.remaining()
        if remaining is None:
            return timeout
        if timeout is None:
            return remaining
        return min(timeout, remaining)

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise ReviewCancelled(self.reason)
