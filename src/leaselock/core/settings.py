"""Lock settings loader."""

from __future__ import annotations

import os
from datetime import timedelta
from pathlib import Path
from typing import Literal, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError

from leaselock.utils.env import get_float_env, get_int_env

from .locks_redis import DEFAULT_REDIS_URL
from .retry import ExponentialBackoff, LimitedRetry, LinearBackoff, NoRetry, RetryStrategy


class RetrySettings(BaseModel):
    """Describes how the acquire loop backs off while a key is held."""

    strategy: Literal["none", "linear", "exponential"] = "none"
    backoff_ms: int = Field(default=100, ge=0)  # linear only
    min_backoff_ms: int = Field(default=16, ge=0)
    max_backoff_ms: int = Field(default=0, ge=0)  # 0 disables the upper clamp
    max_retries: Optional[int] = Field(default=None, ge=0)

    def build(self) -> RetryStrategy:
        """Return a fresh strategy; strategies are stateful, so build one per obtain call."""
        if self.strategy == "linear":
            strategy: RetryStrategy = LinearBackoff(timedelta(milliseconds=self.backoff_ms))
        elif self.strategy == "exponential":
            strategy = ExponentialBackoff(
                timedelta(milliseconds=self.min_backoff_ms),
                timedelta(milliseconds=self.max_backoff_ms),
            )
        else:
            return NoRetry()
        if self.max_retries is not None:
            strategy = LimitedRetry(strategy, self.max_retries)
        return strategy


class LockSettings(BaseModel):
    redis_url: str = DEFAULT_REDIS_URL
    socket_timeout_seconds: Optional[float] = Field(default=5.0, gt=0)
    socket_connect_timeout_seconds: Optional[float] = Field(default=5.0, gt=0)
    default_ttl_ms: int = Field(default=30000, gt=0)
    metadata: str = ""
    retry: RetrySettings = Field(default_factory=RetrySettings)

    @property
    def default_ttl(self) -> timedelta:
        return timedelta(milliseconds=self.default_ttl_ms)

    @classmethod
    def from_file(cls, path: Path) -> "LockSettings":
        data = yaml.safe_load(path.read_text()) or {}
        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            raise ValueError(f"Invalid lock settings: {exc}") from exc

    @classmethod
    def from_env(cls) -> "LockSettings":
        """Build settings from ``REDIS_URL`` and ``LEASELOCK_*`` variables; unset ones keep defaults."""
        data: dict = {}
        retry: dict = {}
        if os.getenv("REDIS_URL"):
            data["redis_url"] = os.environ["REDIS_URL"]
        for field, name in (
            ("socket_timeout_seconds", "LEASELOCK_SOCKET_TIMEOUT"),
            ("socket_connect_timeout_seconds", "LEASELOCK_SOCKET_CONNECT_TIMEOUT"),
        ):
            value = get_float_env(name)
            if value is not None:
                data[field] = value
        ttl = get_int_env("LEASELOCK_DEFAULT_TTL_MS")
        if ttl is not None:
            data["default_ttl_ms"] = ttl
        if os.getenv("LEASELOCK_METADATA") is not None:
            data["metadata"] = os.environ["LEASELOCK_METADATA"]
        if os.getenv("LEASELOCK_RETRY_STRATEGY"):
            retry["strategy"] = os.environ["LEASELOCK_RETRY_STRATEGY"].strip().lower()
        for field, name in (
            ("backoff_ms", "LEASELOCK_RETRY_BACKOFF_MS"),
            ("min_backoff_ms", "LEASELOCK_RETRY_MIN_BACKOFF_MS"),
            ("max_backoff_ms", "LEASELOCK_RETRY_MAX_BACKOFF_MS"),
            ("max_retries", "LEASELOCK_RETRY_MAX_RETRIES"),
        ):
            value = get_int_env(name)
            if value is not None:
                retry[field] = value
        if retry:
            data["retry"] = retry
        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            raise ValueError(f"Invalid lock settings: {exc}") from exc
