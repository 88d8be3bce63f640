from __future__ import annotations

import base64
import binascii
import os
import threading
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from . import codec
from .errors import InvalidKeyError
from .locking import DEFAULT_POLL_INTERVAL, DEFAULT_TIMEOUT, LockStrategy, default_strategy
from .models import ZERO_TIME, Entry, as_utc
from .persist import DecryptPolicy, PersistStore, Reporter, dump_entries


# Environment variable names for convenience configuration
ENV_FILE = "COOKIEJAR_FILE"
ENV_KEY = "COOKIEJAR_KEY"
ENV_LOCK_TIMEOUT = "COOKIEJAR_LOCK_TIMEOUT"
ENV_LOCK_POLL_INTERVAL = "COOKIEJAR_LOCK_POLL_INTERVAL"
ENV_DECRYPT = "COOKIEJAR_DECRYPT"

DEFAULT_FILE_NAME = ".cookiejar.json"


def _getenv(name: str) -> Optional[str]:
    val = os.environ.get(name)
    return val if val not in (None, "") else None


def default_cookie_file() -> str:
    # Prefer explicit env var, else a dot-file in the home directory
    explicit = _getenv(ENV_FILE)
    if explicit:
        return explicit
    return str(Path.home() / DEFAULT_FILE_NAME)


def _env_float(name: str, default: float) -> float:
    raw = _getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError as ex:
        raise RuntimeError(f"Invalid value for {name}: {raw!r} is not a number") from ex


@dataclass
class JarOptions:
    """
    Jar configuration.

    - filename: cookie file; None means `default_cookie_file()`.
    - encryption_key: raw AES key (16, 24 or 32 bytes) to encrypt values at rest.
    - no_persist: never load or save.
    - decrypt_policy: see `DecryptPolicy`.
    - lock: locking strategy; None picks the platform default.
    - reporter: receives warnings about discarded on-disk data.
    """

    filename: Optional[str] = None
    encryption_key: Optional[bytes] = None
    no_persist: bool = False
    decrypt_policy: DecryptPolicy = DecryptPolicy.EAGER
    lock: Optional[LockStrategy] = None
    reporter: Optional[Reporter] = None

    @classmethod
    def from_env(cls) -> "JarOptions":
        key: Optional[bytes] = None
        raw_key = _getenv(ENV_KEY)
        if raw_key is not None:
            try:
                key = base64.b64decode(raw_key, validate=True)
                codec.check_key(key)
            except (binascii.Error, InvalidKeyError) as ex:
                raise RuntimeError(f"Invalid value for {ENV_KEY}: expected base64 of a 16, 24 or 32 byte key") from ex

        raw_policy = _getenv(ENV_DECRYPT) or DecryptPolicy.EAGER.value
        try:
            policy = DecryptPolicy(raw_policy.lower())
        except ValueError as ex:
            raise RuntimeError(f"Invalid value for {ENV_DECRYPT}: {raw_policy!r}") from ex

        timeout = _env_float(ENV_LOCK_TIMEOUT, DEFAULT_TIMEOUT)
        poll = _env_float(ENV_LOCK_POLL_INTERVAL, DEFAULT_POLL_INTERVAL)
        try:
            lock = default_strategy(timeout=timeout, poll_interval=poll)
        except ValueError as ex:
            raise RuntimeError(f"Invalid lock configuration ({ENV_LOCK_TIMEOUT}/{ENV_LOCK_POLL_INTERVAL}): {ex}") from ex

        return cls(
            filename=default_cookie_file(),
            encryption_key=key,
            decrypt_policy=policy,
            lock=lock,
        )


class Jar:
    """
    In-memory cookie entries keyed by canonical host, persisted to one file.

    The jar does no request matching; it only holds entries and merges them.
    `lock` serializes every mutation and every load/save inside the process.
    Creating a jar with a filename loads the file straight away.
    """

    def __init__(self, options: Optional[JarOptions] = None) -> None:
        opts = options or JarOptions()
        self.lock = threading.RLock()
        self._entries: Dict[str, Dict[str, Entry]] = {}
        self._filename: Optional[str] = None
        if not opts.no_persist:
            self._filename = os.fspath(opts.filename) if opts.filename else default_cookie_file()
        self._store = PersistStore(
            self,
            lock=opts.lock,
            encryption_key=opts.encryption_key,
            decrypt_policy=opts.decrypt_policy,
            reporter=opts.reporter,
        )
        if self._filename:
            self._store.load(self._filename)

    @property
    def filename(self) -> Optional[str]:
        return self._filename

    @property
    def store(self) -> PersistStore:
        return self._store

    def __len__(self) -> int:
        with self.lock:
            return sum(len(submap) for submap in self._entries.values())

    # -------- Entry store --------
    def add(self, entry: Entry) -> None:
        with self.lock:
            self._entries.setdefault(entry.canonical_host, {})[entry.id] = entry

    def merge(self, entries: Iterable[Entry]) -> int:
        """Fold `entries` into the jar; the most recently updated copy wins.

        Returns the number of entries that replaced or added to the jar.
        """
        applied = 0
        with self.lock:
            for e in entries:
                if not e.canonical_host:
                    continue
                submap = self._entries.setdefault(e.canonical_host, {})
                old = submap.get(e.id)
                if old is None or e.updated > old.updated:
                    submap[e.id] = e
                    applied += 1
        return applied

    def delete_expired(self, now: datetime) -> int:
        now = as_utc(now)
        removed = 0
        with self.lock:
            for host in list(self._entries):
                submap = self._entries[host]
                for id_, e in list(submap.items()):
                    if e.is_expired(now):
                        del submap[id_]
                        removed += 1
                if not submap:
                    del self._entries[host]
        return removed

    def remove_all(self, now: Optional[datetime] = None) -> None:
        """Expire every entry so the next save drops them from the file too."""
        now = as_utc(now) if now else datetime.now(UTC)
        with self.lock:
            for submap in self._entries.values():
                for id_, e in list(submap.items()):
                    submap[id_] = e.model_copy(update={"expires": ZERO_TIME, "updated": now})

    def all_entries(self) -> List[Entry]:
        with self.lock:
            return [e for submap in self._entries.values() for e in submap.values()]

    def persistent_entries(self) -> List[Entry]:
        with self.lock:
            return [e for submap in self._entries.values() for e in submap.values() if e.persistent]

    def value_of(self, entry: Entry) -> str:
        """Plaintext value of `entry`, decrypting lazily held ciphertext."""
        key = self._store.encryption_key
        if entry.encrypted_value and not entry.value and key:
            return codec.decrypt_text(entry.encrypted_value, key)
        return entry.value

    def to_json(self) -> str:
        """Persistent entries in on-disk form, encrypted when a key is set."""
        with self.lock:
            return dump_entries(self.persistent_entries(), encryption_key=self._store.encryption_key)

    # -------- Persistence --------
    def load(self) -> int:
        if not self._filename:
            return 0
        return self._store.load(self._filename)

    def save(self, now: Optional[datetime] = None) -> int:
        """Merge the cookie file into the jar and rewrite it; no-op without a file."""
        if not self._filename:
            return 0
        return self._store.save(self._filename, now)


__all__ = [
    "ENV_FILE",
    "ENV_KEY",
    "ENV_LOCK_TIMEOUT",
    "ENV_LOCK_POLL_INTERVAL",
    "ENV_DECRYPT",
    "Jar",
    "JarOptions",
    "default_cookie_file",
]
