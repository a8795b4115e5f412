"""Core lease-lock primitives."""

from .client import Lock, LockManager, obtain
from .context import BACKGROUND, CancelContext
from .errors import Cancelled, ContextError, DeadlineExceeded, LockError, LockNotHeld, NotObtained
from .locks import LockBackend
from .locks_memory import InMemoryLockBackend
from .retry import ExponentialBackoff, LimitedRetry, LinearBackoff, NoRetry, RetryStrategy

__all__ = [
    "BACKGROUND",
    "CancelContext",
    "Cancelled",
    "ContextError",
    "DeadlineExceeded",
    "ExponentialBackoff",
    "InMemoryLockBackend",
    "LimitedRetry",
    "LinearBackoff",
    "Lock",
    "LockBackend",
    "LockError",
    "LockManager",
    "LockNotHeld",
    "NoRetry",
    "NotObtained",
    "RetryStrategy",
    "obtain",
]
