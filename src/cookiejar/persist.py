from __future__ import annotations

import json
import logging
import os
from datetime import UTC, datetime
from enum import Enum
from typing import IO, Any, Callable, Dict, Iterable, List, Optional, Protocol

from pydantic import ValidationError

from . import codec
from .errors import CookieFileError, CookieFileFormatError, CryptoError
from .locking import LockStrategy, default_strategy
from .models import Entry, as_utc, parse_entries


logger = logging.getLogger(__name__)

Reporter = Callable[[str], None]


class DecryptPolicy(str, Enum):
    """When stored ciphertext is turned back into a plaintext value.

    - EAGER: decrypt while merging the file into the jar.
    - LAZY: keep `encrypted_value` in memory; decrypt on access.
    """

    EAGER = "eager"
    LAZY = "lazy"


class EntryStore(Protocol):
    """The part of the jar the persistence transaction relies on."""

    lock: Any

    def merge(self, entries: Iterable[Entry]) -> int: ...

    def delete_expired(self, now: datetime) -> int: ...

    def persistent_entries(self) -> List[Entry]: ...


def log_reporter(message: str) -> None:
    logger.warning("%s", message)


def _sort_key(e: Entry):
    # Host ascending, then longer (more specific) paths first.
    return (e.canonical_host, -len(e.path), e.creation, e.id)


def serialize_entries(entries: Iterable[Entry], *, encryption_key: Optional[bytes] = None) -> List[Dict[str, Any]]:
    """Return the on-disk records for `entries` in deterministic order.

    With a key, each plaintext value is replaced by its ciphertext in
    `EncryptedValue` and `Value` is cleared. An entry that only holds
    ciphertext (lazy decryption) is written unchanged. The input entries are
    never modified.
    """
    records: List[Dict[str, Any]] = []
    for e in sorted(entries, key=_sort_key):
        if encryption_key and (e.value or not e.encrypted_value):
            e = e.model_copy(update={"encrypted_value": codec.encrypt(e.value, encryption_key), "value": ""})
        records.append(e.to_record())
    return records


def dump_entries(entries: Iterable[Entry], *, encryption_key: Optional[bytes] = None) -> str:
    return json.dumps(serialize_entries(entries, encryption_key=encryption_key), separators=(",", ":"))


class PersistStore:
    """
    Load/Save transactions between a jar and its cookie file.

    Usage
    - `load(path)` merges the file's entries into the jar. A missing parent
      directory or file means "nothing saved yet" and is not an error.
    - `save(path)` merges the file into the jar, purges expired entries and
      rewrites the file with every persistent entry, all under one file lock.

    Errors
    - LockTimeoutError when the file lock is not acquired in time.
    - CookieFileFormatError when `load` finds content that is not JSON.
      During `save` the same problem is reported and ignored.
    - OSError (CookieFileError for the truncate step) for filesystem failures.
    """

    def __init__(
        self,
        jar: EntryStore,
        *,
        lock: Optional[LockStrategy] = None,
        encryption_key: Optional[bytes] = None,
        decrypt_policy: DecryptPolicy | str = DecryptPolicy.EAGER,
        reporter: Optional[Reporter] = None,
    ) -> None:
        if encryption_key:
            codec.check_key(encryption_key)
        self._jar = jar
        self._lock = lock or default_strategy()
        self._key = bytes(encryption_key) if encryption_key else None
        self._policy = DecryptPolicy(decrypt_policy)
        self._report = reporter or log_reporter

    @property
    def lock_strategy(self) -> LockStrategy:
        return self._lock

    @property
    def encryption_key(self) -> Optional[bytes]:
        return self._key

    @property
    def decrypt_policy(self) -> DecryptPolicy:
        return self._policy

    # -------- Core operations --------
    def load(self, path: str) -> int:
        """Merge the entries stored at `path` into the jar.

        Returns the number of entries the jar accepted. Entries that cannot be
        decrypted are reported and left out.
        """
        path = os.fspath(path)
        parent = os.path.dirname(os.path.abspath(path))
        if not os.path.isdir(parent):
            # Never saved; skip the lock entirely.
            return 0
        with self._jar.lock, self._lock.hold(path):
            try:
                f = open(path, "rb")
            except FileNotFoundError:
                return 0
            with f:
                return self._merge_from(f, path)

    def save(self, path: str, now: Optional[datetime] = None) -> int:
        """Merge, purge and rewrite the cookie file at `path`.

        Returns the number of entries written.
        """
        path = os.fspath(path)
        now = as_utc(now) if now else datetime.now(UTC)
        with self._jar.lock, self._lock.hold(path):
            fd = os.open(path, os.O_RDWR | os.O_CREAT | getattr(os, "O_BINARY", 0), 0o600)
            with os.fdopen(fd, "r+b") as f:
                try:
                    self._merge_from(f, path, keep_undecryptable=True)
                except CookieFileFormatError as ex:
                    self._report(f"cannot read cookie file {path} to merge it; ignoring it: {ex}")
                self._jar.delete_expired(now)
                try:
                    f.truncate(0)
                except OSError as ex:
                    raise CookieFileError(ex.errno, f"cannot truncate file: {ex.strerror}", path) from ex
                f.seek(0)
                entries = self._jar.persistent_entries()
                f.write((dump_entries(entries, encryption_key=self._key) + "\n").encode("utf-8"))
                f.flush()
                os.fsync(f.fileno())
                return len(entries)

    # -------- Internal --------
    def _merge_from(self, f: IO[bytes], path: str, *, keep_undecryptable: bool = False) -> int:
        raw = f.read()
        try:
            text = raw.decode("utf-8")
        except UnicodeDecodeError as ex:
            raise CookieFileFormatError(f"cookie file is not UTF-8: {ex}", path=path) from ex
        entries = self._decode(text, path)
        if not entries:
            return 0
        return self._jar.merge(self._prepare(entries, keep_undecryptable=keep_undecryptable))

    def _decode(self, text: str, path: str) -> List[Entry]:
        body = text.lstrip()
        if not body:
            return []
        try:
            # Only the first JSON value counts; trailing bytes are ignored.
            data, _ = json.JSONDecoder().raw_decode(body)
        except json.JSONDecodeError as ex:
            raise CookieFileFormatError(f"invalid cookie file: {ex}", path=path) from ex
        if data is None:
            return []
        try:
            return parse_entries(data)
        except ValidationError as ex:
            self._report(
                f"discarding cookies in invalid format from {path} "
                f"({ex.error_count()} validation errors)"
            )
            return []

    def _prepare(self, entries: List[Entry], *, keep_undecryptable: bool = False) -> List[Entry]:
        """Apply the decrypt policy to entries read from disk.

        An entry that cannot be decrypted is reported and skipped, or with
        `keep_undecryptable` kept as ciphertext only so a rewrite of the file
        still carries it.
        """
        if not self._key or self._policy is DecryptPolicy.LAZY:
            return entries
        out: List[Entry] = []
        for e in entries:
            if not e.encrypted_value:
                out.append(e)
                continue
            try:
                plain = codec.decrypt_text(e.encrypted_value, self._key)
            except CryptoError as ex:
                if keep_undecryptable:
                    self._report(f"keeping undecryptable cookie {e.id!r} for {e.canonical_host} as stored: {ex}")
                    out.append(e.model_copy(update={"value": ""}) if e.value else e)
                else:
                    self._report(f"skipping cookie {e.id!r} for {e.canonical_host}: {ex}")
                continue
            out.append(e.model_copy(update={"value": plain, "encrypted_value": ""}))
        return out


__all__ = [
    "DecryptPolicy",
    "EntryStore",
    "PersistStore",
    "Reporter",
    "dump_entries",
    "log_reporter",
    "serialize_entries",
]
