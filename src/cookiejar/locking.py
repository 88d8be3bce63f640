from __future__ import annotations

import logging
import os
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, Optional

from filelock import FileLock, Timeout

from .errors import LockTimeoutError


logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 0.1  # seconds
DEFAULT_POLL_INTERVAL = 0.0001  # seconds
LOCK_SUFFIX = ".lock"


@dataclass
class LockHandle:
    path: str
    artifact: str
    lock: FileLock


class LockStrategy:
    """
    Cross-process advisory exclusive lock over a cookie file.

    - `acquire(path)` retries a non-blocking attempt every `poll_interval`
      seconds until it succeeds or `timeout` seconds have elapsed.
    - A missed deadline raises `LockTimeoutError`; any other failure surfaces
      as the underlying `OSError`.
    - Subclasses decide where the lock artifact lives and how it is cleaned up.
      Pick one with `default_strategy()` and pass it to the store explicitly.
    """

    def __init__(self, *, timeout: float = DEFAULT_TIMEOUT, poll_interval: float = DEFAULT_POLL_INTERVAL) -> None:
        if timeout <= 0:
            raise ValueError("timeout must be > 0")
        if poll_interval <= 0:
            raise ValueError("poll_interval must be > 0")
        self.timeout = timeout
        self.poll_interval = poll_interval

    def artifact_path_for(self, path: str) -> str:
        return os.fspath(path) + LOCK_SUFFIX

    def acquire(self, path: str) -> LockHandle:
        path = os.fspath(path)
        artifact = self.artifact_path_for(path)
        lock = FileLock(artifact, mode=0o600, thread_local=False)
        try:
            lock.acquire(timeout=self.timeout, poll_interval=self.poll_interval)
        except Timeout as ex:
            raise LockTimeoutError(
                f"try lock timeout after {self.timeout:.3f}s on {artifact}", path=path
            ) from ex
        return LockHandle(path=path, artifact=artifact, lock=lock)

    def release(self, handle: LockHandle) -> None:
        handle.lock.release(force=True)

    @contextmanager
    def hold(self, path: str) -> Iterator[LockHandle]:
        """Context manager form of acquire/release; release always runs."""
        handle = self.acquire(path)
        try:
            yield handle
        finally:
            self.release(handle)


class PosixLockStrategy(LockStrategy):
    """flock-based lock; the artifact is left in place after release."""


class WindowsLockStrategy(LockStrategy):
    """
    Lock for platforms that cannot delete a file while it is open.

    Release closes the handle first and then removes the artifact. Removal is
    best-effort: another process may already have recreated it, which is the
    accepted race for short critical sections.
    """

    def release(self, handle: LockHandle) -> None:
        try:
            handle.lock.release(force=True)
        finally:
            try:
                os.remove(handle.artifact)
            except FileNotFoundError:
                pass
            except OSError as ex:
                logger.debug("cannot remove lock file %s: %s", handle.artifact, ex)


def default_strategy(
    *,
    timeout: float = DEFAULT_TIMEOUT,
    poll_interval: float = DEFAULT_POLL_INTERVAL,
    platform: Optional[str] = None,
) -> LockStrategy:
    """Return the lock strategy for `platform` (defaults to `os.name`)."""
    name = platform or os.name
    cls = WindowsLockStrategy if name == "nt" else PosixLockStrategy
    return cls(timeout=timeout, poll_interval=poll_interval)


__all__ = [
    "DEFAULT_TIMEOUT",
    "DEFAULT_POLL_INTERVAL",
    "LockHandle",
    "LockStrategy",
    "PosixLockStrategy",
    "WindowsLockStrategy",
    "default_strategy",
]
