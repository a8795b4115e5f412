"""Backoff policies for the acquire loop."""

from __future__ import annotations

import abc
from datetime import timedelta


_ZERO = timedelta(0)
_MAX_SHIFT = 25


class RetryStrategy(abc.ABC):
    """Produces successive backoff durations.

    A non-positive duration means "do not retry again". Implementations may
    keep counters and are not safe to share between concurrent acquire calls;
    build one instance per :meth:`LockManager.obtain` call.
    """

    @abc.abstractmethod
    def next_backoff(self) -> timedelta:  # pragma: no cover - interface
        raise NotImplementedError


class LinearBackoff(RetryStrategy):
    """Retry at a fixed interval."""

    def __init__(self, backoff: timedelta) -> None:
        self._backoff = backoff

    def next_backoff(self) -> timedelta:
        return self._backoff

    def __repr__(self) -> str:
        return f"LinearBackoff({self._backoff!r})"


class NoRetry(LinearBackoff):
    """Attempt the lock exactly once."""

    def __init__(self) -> None:
        super().__init__(_ZERO)

    def __repr__(self) -> str:
        return "NoRetry()"


class LimitedRetry(RetryStrategy):
    """Caps the number of retries issued by ``strategy`` at ``max_retries``."""

    def __init__(self, strategy: RetryStrategy, max_retries: int) -> None:
        self._strategy = strategy
        self._max = max_retries
        self._count = 0

    def next_backoff(self) -> timedelta:
        if self._count >= self._max:
            return _ZERO
        self._count += 1
        return self._strategy.next_backoff()

    def __repr__(self) -> str:
        return f"LimitedRetry({self._strategy!r}, max_retries={self._max})"


class ExponentialBackoff(RetryStrategy):
    """Backoff of ``2**(n+1)`` milliseconds on the n-th call, clamped to ``[min_backoff, max_backoff]``.

    The exponent stops growing at 25, so the raw value plateaus at ``2**26`` ms.
    A zero ``max_backoff`` disables the upper clamp. A minimum of at least 16ms
    is recommended.
    """

    def __init__(self, min_backoff: timedelta, max_backoff: timedelta = _ZERO) -> None:
        self._min = min_backoff
        self._max = max_backoff
        self._count = 0

    def next_backoff(self) -> timedelta:
        self._count += 1
        backoff = timedelta(milliseconds=2 << min(self._count, _MAX_SHIFT))
        if backoff < self._min:
            return self._min
        if self._max != _ZERO and backoff > self._max:
            return self._max
        return backoff

    def __repr__(self) -> str:
        return f"ExponentialBackoff(min_backoff={self._min!r}, max_backoff={self._max!r})"
