"""CLI walk-through of a lease lock's lifecycle against Redis."""

from __future__ import annotations

import argparse
import sys
import time
from datetime import timedelta
from pathlib import Path

from leaselock import LockManager, LockNotHeld, LockSettings, NotObtained, RedisLockBackend
from leaselock.utils.logging import configure_logging, get_logger


logger = get_logger("LockDemo")


def _load_settings(path: Path | None) -> LockSettings:
    if path is None:
        return LockSettings.from_env()
    if not path.exists():
        raise SystemExit(f"Config file not found: {path}")
    return LockSettings.from_file(path)


def main() -> int:
    parser = argparse.ArgumentParser(description="Obtain, inspect, refresh and outlive a lease lock.")
    parser.add_argument("--config", type=Path, default=None, help="Path to settings YAML (defaults to environment)")
    parser.add_argument("--key", default="my-key", help="Lock key")
    args = parser.parse_args()
    configure_logging()

    settings = _load_settings(args.config)
    backend = RedisLockBackend.from_settings(settings)
    locker = LockManager(backend)
    ttl = settings.default_ttl

    try:
        lock = locker.obtain(
            args.key,
            ttl,
            metadata=settings.metadata,
            retry_strategy=settings.retry.build(),
        )
    except NotObtained:
        logger.warning("Could not obtain lock %s", args.key)
        return 1

    logger.info("I have a lock! token=%s", lock.token)
    try:
        time.sleep(ttl.total_seconds() / 2)
        if lock.ttl() > timedelta(0):
            logger.info("Yay, I still have my lock! (%s left)", lock.ttl())

        lock.refresh(ttl)

        time.sleep(ttl.total_seconds())
        if lock.ttl() == timedelta(0):
            logger.info("Now, my lock has expired!")
    finally:
        try:
            lock.release()
        except LockNotHeld:
            logger.info("Release reported the lock as no longer held")
        backend.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
