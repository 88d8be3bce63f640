from __future__ import annotations

import os
import threading
import time

import pytest
from filelock import FileLock

from cookiejar.errors import LockTimeoutError
from cookiejar.locking import (
    PosixLockStrategy,
    WindowsLockStrategy,
    default_strategy,
)


def test_artifact_path_is_derived_from_protected_path(cookie_file):
    strategy = default_strategy()
    assert strategy.artifact_path_for(cookie_file) == cookie_file + ".lock"
    assert strategy.artifact_path_for(cookie_file) == strategy.artifact_path_for(cookie_file)


def test_default_strategy_per_platform():
    assert isinstance(default_strategy(platform="nt"), WindowsLockStrategy)
    assert isinstance(default_strategy(platform="posix"), PosixLockStrategy)


def test_rejects_non_positive_configuration():
    with pytest.raises(ValueError):
        PosixLockStrategy(timeout=0)
    with pytest.raises(ValueError):
        PosixLockStrategy(poll_interval=-1.0)


def test_mutual_exclusion_across_threads(cookie_file):
    strategy = PosixLockStrategy(timeout=2.0)
    holders = 0
    max_seen = 0
    guard = threading.Lock()
    errors = []

    def locker():
        nonlocal holders, max_seen
        try:
            with strategy.hold(cookie_file):
                with guard:
                    holders += 1
                    max_seen = max(max_seen, holders)
                time.sleep(0.01)
                with guard:
                    holders -= 1
        except Exception as ex:  # surfaced below
            errors.append(ex)

    threads = [threading.Thread(target=locker) for _ in range(6)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert max_seen == 1
    assert holders == 0


def test_timeout_is_distinct_from_io_errors(cookie_file):
    strategy = PosixLockStrategy(timeout=0.05, poll_interval=0.001)
    external = FileLock(strategy.artifact_path_for(cookie_file), thread_local=False)
    external.acquire()
    try:
        started = time.monotonic()
        with pytest.raises(LockTimeoutError) as exc_info:
            strategy.acquire(cookie_file)
        assert time.monotonic() - started < 1.0
    finally:
        external.release()
    assert not isinstance(exc_info.value, OSError)
    assert exc_info.value.path == cookie_file

    # Free again once the external holder is gone
    handle = strategy.acquire(cookie_file)
    strategy.release(handle)


def test_posix_release_unlocks(cookie_file):
    strategy = PosixLockStrategy()
    handle = strategy.acquire(cookie_file)
    strategy.release(handle)
    assert not handle.lock.is_locked
    assert handle.artifact == cookie_file + ".lock"


def test_windows_release_removes_artifact(cookie_file):
    strategy = WindowsLockStrategy()
    with strategy.hold(cookie_file) as handle:
        assert handle.lock.is_locked
    assert not os.path.exists(handle.artifact)


def test_windows_release_ignores_missing_artifact(cookie_file):
    strategy = WindowsLockStrategy()
    handle = strategy.acquire(cookie_file)
    strategy.release(handle)
    # Second cleanup finds nothing to remove and must not raise
    strategy.release(handle)


def test_hold_releases_on_error(cookie_file):
    strategy = PosixLockStrategy(timeout=0.05)
    with pytest.raises(RuntimeError):
        with strategy.hold(cookie_file):
            raise RuntimeError("boom")
    handle = strategy.acquire(cookie_file)
    strategy.release(handle)
