"""Cancellation context for blocking acquire loops."""

from __future__ import annotations

import threading
import time
from datetime import timedelta
from typing import Callable, Optional

from .errors import Cancelled, ContextError, DeadlineExceeded


_MIN_WAIT = 0.0005


class CancelContext:
    """Thread-safe cancellation signal with an optional deadline.

    A context completes either when :meth:`cancel` is called or when its
    deadline passes. Once complete it stays complete, and :attr:`error`
    reports why.
    """

    def __init__(
        self, timeout: Optional[timedelta] = None, *, clock: Callable[[], float] = time.monotonic
    ) -> None:
        self._event = threading.Event()
        self._clock = clock
        self._deadline: Optional[float] = None
        if timeout is not None:
            self._deadline = clock() + timeout.total_seconds()

    @classmethod
    def with_timeout(cls, timeout: timedelta, **kwargs) -> "CancelContext":
        return cls(timeout=timeout, **kwargs)

    @property
    def deadline(self) -> Optional[float]:
        """Monotonic timestamp after which the context is done, if any."""
        return self._deadline

    def cancel(self) -> None:
        self._event.set()

    def _expired(self) -> bool:
        return self._deadline is not None and self._clock() >= self._deadline

    def done(self) -> bool:
        return self._event.is_set() or self._expired()

    @property
    def error(self) -> Optional[ContextError]:
        if self._event.is_set():
            return Cancelled()
        if self._expired():
            return DeadlineExceeded()
        return None

    def wait(self, seconds: float) -> bool:
        """Block for up to ``seconds``; return True early if the context completes."""
        if self.done():
            return True
        if self._deadline is not None:
            remaining = self._deadline - self._clock()
            if remaining <= seconds:
                # a timed wait can wake a hair before the deadline reads as passed
                while not self.done():
                    self._event.wait(max(self._deadline - self._clock(), _MIN_WAIT))
                return True
        return self._event.wait(seconds)


class _Background(CancelContext):
    """Context that never completes."""

    def cancel(self) -> None:  # pragma: no cover
        return None


BACKGROUND: CancelContext = _Background()
