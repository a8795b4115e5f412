"""Capability contract a backing store must satisfy to host lease locks."""

from __future__ import annotations

import abc
from datetime import timedelta


# Script bodies for stores with Lua scripting. KEYS[1] is the lock key,
# ARGV[1] the expected value, ARGV[2] the new expiry in milliseconds.
LUA_REFRESH = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("pexpire", KEYS[1], ARGV[2])
else
    return 0
end
"""

LUA_RELEASE = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""

LUA_PTTL = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("pttl", KEYS[1])
else
    return -3
end
"""

PTTL_MISMATCH = -3


def to_millis(duration: timedelta) -> int:
    """Whole milliseconds in ``duration``, rounded down."""
    return duration // timedelta(milliseconds=1)


class LockBackend(abc.ABC):
    """Four atomic operations over a key/value pair.

    Every method is a single round trip that the store executes atomically:
    the comparison against ``value`` and the action that follows must not be
    separable by another client's write. Transport failures are raised as-is.
    """

    @abc.abstractmethod
    def set_nx(self, key: str, value: str, ttl: timedelta) -> bool:  # pragma: no cover - interface
        """Store ``value`` under ``key`` with expiry ``ttl`` only if ``key`` is absent."""
        raise NotImplementedError

    @abc.abstractmethod
    def refresh(self, key: str, value: str, ttl_ms: int) -> None:  # pragma: no cover - interface
        """Set the expiry of ``key`` to ``ttl_ms`` if it still holds ``value``.

        Raises:
            NotObtained: the key is absent or holds another value.
        """
        raise NotImplementedError

    @abc.abstractmethod
    def release(self, key: str, value: str) -> None:  # pragma: no cover - interface
        """Delete ``key`` if it still holds ``value``.

        Raises:
            LockNotHeld: the key is absent or holds another value.
        """
        raise NotImplementedError

    @abc.abstractmethod
    def pttl(self, key: str, value: str) -> int:  # pragma: no cover - interface
        """Milliseconds left on ``key`` if it holds ``value``, else :data:`PTTL_MISMATCH`."""
        raise NotImplementedError
