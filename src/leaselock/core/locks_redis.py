"""Redis-based lock backend using SET NX PX and compare-then-act Lua scripts."""

from __future__ import annotations

import os
from datetime import timedelta
from typing import TYPE_CHECKING, Any, Optional

from redis import Redis

from .errors import LockNotHeld, NotObtained
from .locks import LUA_PTTL, LUA_REFRESH, LUA_RELEASE, LockBackend, to_millis

if TYPE_CHECKING:
    from .settings import LockSettings


DEFAULT_REDIS_URL = "redis://localhost:6379/0"


class RedisLockBackend(LockBackend):
    """Lock backend for a single authoritative Redis instance.

    The three ownership-checked operations run as registered scripts, so each
    comparison and its follow-up command execute as one atomic step on the
    server. Connection handling, pooling and socket timeouts belong to the
    supplied client.
    """

    def __init__(self, redis: Redis) -> None:
        self._redis = redis
        self._refresh = redis.register_script(LUA_REFRESH)
        self._release = redis.register_script(LUA_RELEASE)
        self._pttl = redis.register_script(LUA_PTTL)

    @classmethod
    def from_url(cls, url: Optional[str] = None, **kwargs: Any) -> "RedisLockBackend":
        return cls(Redis.from_url(url or os.getenv("REDIS_URL", DEFAULT_REDIS_URL), **kwargs))

    @classmethod
    def from_settings(cls, settings: "LockSettings") -> "RedisLockBackend":
        return cls.from_url(
            settings.redis_url,
            socket_timeout=settings.socket_timeout_seconds,
            socket_connect_timeout=settings.socket_connect_timeout_seconds,
        )

    @property
    def redis(self) -> Redis:
        return self._redis

    def set_nx(self, key: str, value: str, ttl: timedelta) -> bool:
        # PX rejects 0, so sub-millisecond leases round up to 1ms
        return bool(self._redis.set(key, value, px=max(1, to_millis(ttl)), nx=True))

    def refresh(self, key: str, value: str, ttl_ms: int) -> None:
        status = self._refresh(keys=[key], args=[value, ttl_ms])
        if status != 1:
            # value mismatch or key gone
            raise NotObtained()

    def release(self, key: str, value: str) -> None:
        status = self._release(keys=[key], args=[value])
        if status != 1:
            raise LockNotHeld()

    def pttl(self, key: str, value: str) -> int:
        return int(self._pttl(keys=[key], args=[value]))

    def close(self) -> None:
        self._redis.close()
