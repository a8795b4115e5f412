"""In-process lock backend."""

from __future__ import annotations

import math
import threading
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Callable, Dict, Optional

from .errors import LockNotHeld, NotObtained
from .locks import PTTL_MISMATCH, LockBackend


Clock = Callable[[], float]


@dataclass(slots=True)
class _Entry:
    value: str
    expires_at: float


class InMemoryLockBackend(LockBackend):
    """Dictionary-backed store with lazy expiry, for tests and single-process use.

    All four operations run under one mutex, so each is atomic with respect to
    the others. ``clock`` returns seconds and must be monotonic.
    """

    def __init__(self, *, clock: Clock = time.monotonic) -> None:
        self._clock = clock
        self._entries: Dict[str, _Entry] = {}
        self._lock = threading.Lock()

    def _live(self, key: str, now: float) -> Optional[_Entry]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expires_at <= now:
            del self._entries[key]
            return None
        return entry

    def _held(self, key: str, value: str, now: float) -> Optional[_Entry]:
        entry = self._live(key, now)
        if entry is None or entry.value != value:
            return None
        return entry

    def set_nx(self, key: str, value: str, ttl: timedelta) -> bool:
        with self._lock:
            now = self._clock()
            if self._live(key, now) is not None:
                return False
            self._entries[key] = _Entry(value=value, expires_at=now + ttl.total_seconds())
            return True

    def refresh(self, key: str, value: str, ttl_ms: int) -> None:
        with self._lock:
            now = self._clock()
            entry = self._held(key, value, now)
            if entry is None:
                raise NotObtained()
            if ttl_ms <= 0:
                # pexpire with a non-positive ttl deletes the key
                del self._entries[key]
                return
            entry.expires_at = now + ttl_ms / 1000.0

    def release(self, key: str, value: str) -> None:
        with self._lock:
            if self._held(key, value, self._clock()) is None:
                raise LockNotHeld()
            del self._entries[key]

    def pttl(self, key: str, value: str) -> int:
        with self._lock:
            now = self._clock()
            entry = self._held(key, value, now)
            if entry is None:
                return PTTL_MISMATCH
            return math.ceil(round((entry.expires_at - now) * 1000, 6))

    def __len__(self) -> int:
        with self._lock:
            now = self._clock()
            return sum(1 for key in list(self._entries) if self._live(key, now) is not None)
