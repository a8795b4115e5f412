from __future__ import annotations

import base64
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import timedelta
from typing import List

import pytest

from leaselock import (
    CancelContext,
    Cancelled,
    DeadlineExceeded,
    InMemoryLockBackend,
    LimitedRetry,
    LinearBackoff,
    Lock,
    LockManager,
    LockNotHeld,
    NotObtained,
    obtain,
)


def ms(value: int) -> timedelta:
    return timedelta(milliseconds=value)


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class CountingBackend(InMemoryLockBackend):
    """In-memory backend that records how often set_nx is attempted."""

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self.set_nx_calls = 0

    def set_nx(self, key, value, ttl):
        self.set_nx_calls += 1
        return super().set_nx(key, value, ttl)


class BrokenBackend(InMemoryLockBackend):
    def __init__(self) -> None:
        super().__init__()
        self.calls = 0

    def set_nx(self, key, value, ttl):
        self.calls += 1
        raise ConnectionError("store unreachable")


# -------- token and handle accessors --------


def test_token_is_22_url_safe_characters():
    manager = LockManager(InMemoryLockBackend())
    lock = manager.obtain("k", timedelta(seconds=1), metadata="worker-7")
    assert len(lock.token) == 22
    assert "=" not in lock.token
    assert set(lock.token) <= set("ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-_")
    assert lock.metadata == "worker-7"
    assert lock.value == lock.token + "worker-7"
    assert lock.key == "k"


def test_token_encodes_random_source_bytes():
    raw = bytes(range(16))
    manager = LockManager(InMemoryLockBackend(), random_source=lambda n: raw[:n])
    lock = manager.obtain("k", timedelta(seconds=1))
    assert lock.token == "AAECAwQFBgcICQoLDA0ODw"
    assert base64.urlsafe_b64decode(lock.token + "==") == raw
    assert lock.metadata == ""


def test_each_obtain_uses_a_fresh_token():
    manager = LockManager(InMemoryLockBackend())
    first = manager.obtain("a", timedelta(seconds=1))
    second = manager.obtain("b", timedelta(seconds=1))
    assert first.token != second.token


def test_random_source_failure_propagates_without_touching_store():
    def failing(n: int) -> bytes:
        raise OSError("entropy exhausted")

    backend = CountingBackend()
    manager = LockManager(backend, random_source=failing)
    with pytest.raises(OSError, match="entropy exhausted"):
        manager.obtain("k", timedelta(seconds=1))
    assert backend.set_nx_calls == 0


def test_short_random_read_is_an_error():
    manager = LockManager(InMemoryLockBackend(), random_source=lambda n: b"\x00" * (n - 1))
    with pytest.raises(OSError):
        manager.obtain("k", timedelta(seconds=1))


@pytest.mark.parametrize("key, ttl", [("", timedelta(seconds=1)), ("k", timedelta(0)), ("k", ms(-5))])
def test_obtain_rejects_invalid_arguments(key, ttl):
    with pytest.raises(ValueError):
        LockManager(InMemoryLockBackend()).obtain(key, ttl)


def test_repr_does_not_leak_metadata():
    lock = LockManager(InMemoryLockBackend()).obtain("k", timedelta(seconds=1), metadata="secret")
    assert "secret" not in repr(lock)
    assert lock.token in repr(lock)


# -------- acquire loop --------


def test_obtain_without_retry_makes_single_attempt():
    backend = CountingBackend()
    backend.set_nx("k", "someone-else", timedelta(seconds=10))
    backend.set_nx_calls = 0
    manager = LockManager(backend)
    with pytest.raises(NotObtained):
        manager.obtain("k", timedelta(seconds=5))
    assert backend.set_nx_calls == 1


def test_obtain_stops_when_retry_budget_is_exhausted():
    backend = CountingBackend()
    backend.set_nx("k", "someone-else", timedelta(seconds=10))
    backend.set_nx_calls = 0
    manager = LockManager(backend)
    with pytest.raises(NotObtained):
        manager.obtain("k", timedelta(seconds=5), retry_strategy=LimitedRetry(LinearBackoff(ms(1)), 3))
    assert backend.set_nx_calls == 4


def test_obtain_gives_up_at_ttl_deadline():
    backend = CountingBackend()
    backend.set_nx("k", "someone-else", timedelta(seconds=10))
    backend.set_nx_calls = 0
    manager = LockManager(backend)
    started = time.monotonic()
    with pytest.raises(NotObtained):
        manager.obtain("k", ms(50), retry_strategy=LinearBackoff(ms(10)))
    elapsed = time.monotonic() - started
    assert 0.05 <= elapsed < 1.0
    assert 1 <= backend.set_nx_calls <= 7


def test_obtain_retries_until_lock_is_released():
    backend = InMemoryLockBackend()
    manager = LockManager(backend)
    holder = manager.obtain("k", timedelta(seconds=5))
    timer = threading.Timer(0.03, holder.release)
    timer.start()
    try:
        lock = manager.obtain("k", timedelta(seconds=2), retry_strategy=LinearBackoff(ms(5)))
    finally:
        timer.cancel()
    assert lock.token != holder.token
    assert lock.ttl() > timedelta(0)


def test_store_errors_are_not_retried():
    backend = BrokenBackend()
    manager = LockManager(backend)
    with pytest.raises(ConnectionError):
        manager.obtain("k", timedelta(seconds=1), retry_strategy=LinearBackoff(ms(1)))
    assert backend.calls == 1


def test_cancelled_context_surfaces_its_own_error():
    backend = InMemoryLockBackend()
    backend.set_nx("k", "someone-else", timedelta(seconds=10))
    ctx = CancelContext()
    ctx.cancel()
    with pytest.raises(Cancelled):
        LockManager(backend).obtain(
            "k", timedelta(seconds=5), retry_strategy=LinearBackoff(timedelta(seconds=1)), context=ctx
        )


def test_cancel_during_backoff_aborts_wait():
    backend = InMemoryLockBackend()
    backend.set_nx("k", "someone-else", timedelta(seconds=10))
    ctx = CancelContext()
    timer = threading.Timer(0.02, ctx.cancel)
    timer.start()
    started = time.monotonic()
    try:
        with pytest.raises(Cancelled):
            LockManager(backend).obtain(
                "k", timedelta(seconds=10), retry_strategy=LinearBackoff(timedelta(seconds=5)), context=ctx
            )
    finally:
        timer.cancel()
    assert time.monotonic() - started < 2.0


def test_context_deadline_is_distinct_from_not_obtained():
    backend = InMemoryLockBackend()
    backend.set_nx("k", "someone-else", timedelta(seconds=10))
    ctx = CancelContext.with_timeout(ms(20))
    with pytest.raises(DeadlineExceeded):
        LockManager(backend).obtain(
            "k", timedelta(seconds=5), retry_strategy=LinearBackoff(ms(50)), context=ctx
        )


def test_cancelled_context_does_not_block_first_attempt():
    ctx = CancelContext()
    ctx.cancel()
    lock = LockManager(InMemoryLockBackend()).obtain("k", timedelta(seconds=1), context=ctx)
    assert lock.ttl() > timedelta(0)


def test_module_level_obtain_shortcut():
    backend = InMemoryLockBackend()
    lock = obtain(backend, "k", timedelta(seconds=1), metadata="m")
    assert isinstance(lock, Lock)
    assert lock.metadata == "m"
    assert backend.pttl("k", lock.value) > 0


def test_only_one_of_many_concurrent_obtains_succeeds():
    backend = InMemoryLockBackend()
    manager = LockManager(backend)
    barrier = threading.Barrier(10)

    def attempt():
        barrier.wait()
        return manager.obtain(
            "shared", timedelta(seconds=2), retry_strategy=LimitedRetry(LinearBackoff(ms(2)), 3)
        )

    won: List[Lock] = []
    lost = 0
    with ThreadPoolExecutor(max_workers=10) as executor:
        futures = [executor.submit(attempt) for _ in range(10)]
        for future in as_completed(futures):
            try:
                won.append(future.result())
            except NotObtained:
                lost += 1

    assert len(won) == 1
    assert lost == 9
    assert won[0].ttl() > timedelta(0)


def test_concurrent_obtains_on_different_keys_all_succeed():
    manager = LockManager(InMemoryLockBackend())
    with ThreadPoolExecutor(max_workers=8) as executor:
        locks = list(executor.map(lambda i: manager.obtain(f"key-{i}", timedelta(seconds=2)), range(32)))
    assert len({lock.token for lock in locks}) == 32


# -------- handle operations --------


def test_release_succeeds_once():
    manager = LockManager(InMemoryLockBackend())
    lock = manager.obtain("k", timedelta(seconds=1))
    lock.release()
    assert lock.ttl() == timedelta(0)
    with pytest.raises(LockNotHeld):
        lock.release()


def test_refresh_extends_remaining_ttl():
    clock = FakeClock()
    manager = LockManager(InMemoryLockBackend(clock=clock))
    lock = manager.obtain("k", ms(100))
    clock.advance(0.06)
    before = lock.ttl()
    assert before == ms(40)
    lock.refresh(ms(100))
    assert lock.ttl() == ms(100)
    assert lock.ttl() > before


def test_refresh_after_expiry_is_not_obtained():
    clock = FakeClock()
    manager = LockManager(InMemoryLockBackend(clock=clock))
    lock = manager.obtain("k", ms(100))
    clock.advance(0.2)
    with pytest.raises(NotObtained):
        lock.refresh(ms(100))


def test_stale_handle_cannot_touch_new_holder():
    clock = FakeClock()
    backend = InMemoryLockBackend(clock=clock)
    manager = LockManager(backend)
    stale = manager.obtain("k", ms(100))
    clock.advance(0.15)
    current = manager.obtain("k", ms(100))

    assert stale.ttl() == timedelta(0)
    with pytest.raises(NotObtained):
        stale.refresh(timedelta(seconds=10))
    with pytest.raises(LockNotHeld):
        stale.release()

    assert current.ttl() == ms(100)
    current.release()


def test_ttl_reports_zero_for_missing_key():
    backend = InMemoryLockBackend()
    manager = LockManager(backend)
    lock = manager.obtain("k", timedelta(seconds=1))
    backend.release("k", lock.value)
    assert lock.ttl() == timedelta(0)


def test_with_block_releases_lock():
    backend = InMemoryLockBackend()
    manager = LockManager(backend)
    with manager.lock("k", timedelta(seconds=1), metadata="job-1") as lock:
        assert lock.metadata == "job-1"
        assert len(backend) == 1
    assert len(backend) == 0


def test_with_block_tolerates_lapsed_lease():
    clock = FakeClock()
    backend = InMemoryLockBackend(clock=clock)
    lock = LockManager(backend).obtain("k", ms(100))
    with lock:
        clock.advance(1.0)
    assert len(backend) == 0


def test_with_block_propagates_body_errors_and_still_releases():
    backend = InMemoryLockBackend()
    manager = LockManager(backend)
    with pytest.raises(RuntimeError):
        with manager.lock("k", timedelta(seconds=1)):
            raise RuntimeError("boom")
    assert len(backend) == 0


def test_end_to_end_lease_lifecycle():
    manager = LockManager(InMemoryLockBackend())
    lock = manager.obtain("k", ms(100))

    remaining = lock.ttl()
    assert timedelta(0) < remaining <= ms(100)

    time.sleep(0.05)
    lock.refresh(ms(100))

    time.sleep(0.12)
    assert lock.ttl() == timedelta(0)
    with pytest.raises(LockNotHeld):
        lock.release()


def test_failed_obtain_is_logged_at_debug_through_host_logging(caplog):
    backend = InMemoryLockBackend()
    backend.set_nx("k", "someone-else", timedelta(seconds=10))
    with caplog.at_level(logging.DEBUG, logger="leaselock"):
        with pytest.raises(NotObtained):
            LockManager(backend).obtain("k", timedelta(seconds=1))
    failures = [r for r in caplog.records if r.name == "leaselock.LockManager" and "Could not obtain" in r.getMessage()]
    assert len(failures) == 1
    assert failures[0].levelno == logging.DEBUG
