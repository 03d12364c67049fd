from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field

from ..errors import OperationCancelled


@dataclass
class CancelToken:
    """Cancellation flag with an optional monotonic deadline.

    Passed to every blocking call (model requests, tool-server requests, tool
    execution). A token never becomes un-cancelled.
    """

    deadline: float | None = None
    _event: threading.Event = field(default_factory=threading.Event, repr=False)

    @staticmethod
    def with_timeout(seconds: float | None) -> "CancelToken":
        if seconds is None:
            return CancelToken()
        return CancelToken(deadline=time.monotonic() + seconds)

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        return self.deadline is not None and time.monotonic() >= self.deadline

    def remaining(self, default: float | None = None) -> float | None:
        """Seconds left before the deadline, capped by ``default``."""
        if self.deadline is None:
            return default
        left = max(0.0, self.deadline - time.monotonic())
        if default is None:
            return left
        return min(left, default)

    def wait(self, seconds: float) -> bool:
        """Sleep up to ``seconds``; returns True if cancelled meanwhile."""
        timeout = self.remaining(seconds)
        self._event.wait(timeout)
        return self.cancelled

    def raise_if_cancelled(self, what: str = "operation") -> None:
        if self._event.is_set():
            raise OperationCancelled(f"{what} cancelled")
        if self.cancelled:
            raise OperationCancelled(f"{what} deadline exceeded")


def ensure_token(cancel: CancelToken | None) -> CancelToken:
    return cancel if cancel is not None else CancelToken()
