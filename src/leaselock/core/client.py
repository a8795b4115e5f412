"""Lock manager and lock handles built on a :class:`LockBackend`."""

from __future__ import annotations

import base64
import os
import threading
import time
from contextlib import contextmanager
from datetime import timedelta
from typing import Callable, Iterator, Optional

from leaselock.utils.logging import get_logger

from .context import BACKGROUND, CancelContext
from .errors import LockNotHeld, NotObtained
from .locks import LockBackend, to_millis
from .retry import NoRetry, RetryStrategy


TOKEN_BYTES = 16
TOKEN_LENGTH = 22

RandomSource = Callable[[int], bytes]


class LockManager:
    """Mints lock tokens and drives the acquire loop.

    One manager may be shared by many threads; the only state it mutates is
    the token scratch buffer, which is filled under a mutex.
    """

    def __init__(self, backend: LockBackend, *, random_source: RandomSource = os.urandom) -> None:
        self._backend = backend
        self._random = random_source
        self._tmp = bytearray(TOKEN_BYTES)
        self._tmp_lock = threading.Lock()
        self.logger = get_logger("LockManager")

    @property
    def backend(self) -> LockBackend:
        return self._backend

    def _random_token(self) -> str:
        with self._tmp_lock:
            data = self._random(TOKEN_BYTES)
            if len(data) != TOKEN_BYTES:
                raise OSError(f"random source returned {len(data)} bytes, expected {TOKEN_BYTES}")
            self._tmp[:] = data
            return base64.urlsafe_b64encode(self._tmp).rstrip(b"=").decode("ascii")

    def obtain(
        self,
        key: str,
        ttl: timedelta,
        *,
        metadata: str = "",
        retry_strategy: Optional[RetryStrategy] = None,
        context: Optional[CancelContext] = None,
    ) -> "Lock":
        """Obtain the lock on ``key`` for ``ttl``.

        ``ttl`` is both the lease set on the store and the upper bound on how
        long this call keeps retrying. Without a ``retry_strategy`` a single
        attempt is made.

        Raises:
            NotObtained: the key stayed held until the deadline or the
                strategy stopped retrying.
            ContextError: ``context`` completed while waiting out a backoff.
        """
        if not key:
            raise ValueError("lock key must not be empty")
        if ttl <= timedelta(0):
            raise ValueError(f"lock ttl must be positive, got {ttl!r}")

        token = self._random_token()
        value = token + metadata
        ctx = context or BACKGROUND
        retry = retry_strategy or NoRetry()

        attempts = 0
        deadline = time.monotonic() + ttl.total_seconds()
        while time.monotonic() < deadline:
            attempts += 1
            if self._backend.set_nx(key, value, ttl):
                if attempts > 1:
                    self.logger.debug("Obtained lock %s after %d attempts", key, attempts)
                return Lock(self, key, value)

            backoff = retry.next_backoff()
            if backoff <= timedelta(0):
                break

            self.logger.debug("Lock %s is held; retrying in %s", key, backoff)
            if ctx.wait(backoff.total_seconds()):
                raise ctx.error

        self.logger.debug("Could not obtain lock %s after %d attempts", key, attempts)
        raise NotObtained()

    @contextmanager
    def lock(self, key: str, ttl: timedelta, **kwargs) -> Iterator["Lock"]:
        """Hold ``key`` for the duration of the ``with`` block.

        Release on exit is best-effort: a lease that already lapsed is not an error.
        """
        held = self.obtain(key, ttl, **kwargs)
        with held:
            yield held


def obtain(backend: LockBackend, key: str, ttl: timedelta, **kwargs) -> "Lock":
    """Shortcut for ``LockManager(backend).obtain(key, ttl, ...)``."""
    return LockManager(backend).obtain(key, ttl, **kwargs)


class Lock:
    """One successful acquisition of a key.

    The stored value (token plus metadata) is the proof of ownership; every
    operation is checked against it by the store, so a handle whose lease
    lapsed or was taken over simply stops having any effect.
    """

    __slots__ = ("_manager", "_key", "_value")

    def __init__(self, manager: LockManager, key: str, value: str) -> None:
        self._manager = manager
        self._key = key
        self._value = value

    @property
    def key(self) -> str:
        return self._key

    @property
    def value(self) -> str:
        return self._value

    @property
    def token(self) -> str:
        return self._value[:TOKEN_LENGTH]

    @property
    def metadata(self) -> str:
        return self._value[TOKEN_LENGTH:]

    def ttl(self) -> timedelta:
        """Remaining lease, or zero if the lock is no longer held by this handle."""
        remaining = self._manager.backend.pttl(self._key, self._value)
        if remaining > 0:
            return timedelta(milliseconds=remaining)
        return timedelta(0)

    def refresh(self, ttl: timedelta) -> None:
        """Extend the lease to ``ttl`` from now.

        Raises:
            NotObtained: the lock expired or now belongs to someone else.
        """
        self._manager.backend.refresh(self._key, self._value, to_millis(ttl))
        self._manager.logger.debug("Refreshed lock %s for %s", self._key, ttl)

    def release(self) -> None:
        """Release the lock.

        Raises:
            LockNotHeld: the lock was already released, expired or taken over.
        """
        self._manager.backend.release(self._key, self._value)
        self._manager.logger.debug("Released lock %s", self._key)

    def __enter__(self) -> "Lock":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        try:
            self.release()
        except LockNotHeld:
            self._manager.logger.debug("Lock %s was no longer held on exit", self._key)

    def __repr__(self) -> str:
        return f"Lock(key={self._key!r}, token={self.token!r})"
