"""Exception taxonomy for lease locks."""

from __future__ import annotations


class LockError(Exception):
    """Base exception for lock protocol failures."""


class NotObtained(LockError):
    """The lock could not be obtained, or a refresh found it no longer owned."""

    def __init__(self, message: str = "leaselock: not obtained") -> None:
        super().__init__(message)


class LockNotHeld(LockError):
    """The stored value no longer matches the handle; the lock is already gone."""

    def __init__(self, message: str = "leaselock: lock not held") -> None:
        super().__init__(message)


class ContextError(Exception):
    """Completion reason of a :class:`~leaselock.core.context.CancelContext`."""


class Cancelled(ContextError):
    def __init__(self, message: str = "context canceled") -> None:
        super().__init__(message)


class DeadlineExceeded(ContextError):
    def __init__(self, message: str = "context deadline exceeded") -> None:
        super().__init__(message)
