"""
Persistent cookie jar backed by a shared JSON file.

Modules:
- codec: versioned AES-GCM encryption of cookie values
- locking: cross-process file lock strategies
- persist: load/save transactions (merge, purge, rewrite)
- jar: in-memory entry store and its configuration
"""

from .errors import (
    CookieFileError,
    CookieFileFormatError,
    CookieJarError,
    CryptoError,
    DecryptionError,
    InvalidKeyError,
    InvalidValueError,
    LockTimeoutError,
)
from .jar import Jar, JarOptions, default_cookie_file
from .locking import LockStrategy, PosixLockStrategy, WindowsLockStrategy, default_strategy
from .models import Entry
from .persist import DecryptPolicy, PersistStore

__all__ = [
    "CookieFileError",
    "CookieFileFormatError",
    "CookieJarError",
    "CryptoError",
    "DecryptPolicy",
    "DecryptionError",
    "Entry",
    "InvalidKeyError",
    "InvalidValueError",
    "Jar",
    "JarOptions",
    "LockStrategy",
    "LockTimeoutError",
    "PersistStore",
    "PosixLockStrategy",
    "WindowsLockStrategy",
    "default_cookie_file",
    "default_strategy",
]
