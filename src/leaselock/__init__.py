"""Lease-based distributed mutual exclusion over a single key-value store."""

from .core import (
    BACKGROUND,
    CancelContext,
    Cancelled,
    ContextError,
    DeadlineExceeded,
    ExponentialBackoff,
    InMemoryLockBackend,
    LimitedRetry,
    LinearBackoff,
    Lock,
    LockBackend,
    LockError,
    LockManager,
    LockNotHeld,
    NoRetry,
    NotObtained,
    RetryStrategy,
    obtain,
)
from .core.locks_redis import RedisLockBackend
from .core.settings import LockSettings, RetrySettings

__all__ = [
    "__version__",
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
    "LockSettings",
    "NoRetry",
    "NotObtained",
    "RedisLockBackend",
    "RetrySettings",
    "RetryStrategy",
    "obtain",
]

__version__ = "0.1.0"
