"""Exception hierarchy for the cookie persistence layer."""

from __future__ import annotations

from typing import Optional


class CookieJarError(RuntimeError):
    """Base error that carries the path of the cookie file when known."""

    def __init__(self, message: str, *, path: Optional[str] = None) -> None:
        super().__init__(message)
        self.path = path


class LockTimeoutError(CookieJarError):
    """The file lock could not be acquired before the deadline."""


class CookieFileFormatError(CookieJarError, ValueError):
    """The cookie file does not contain valid JSON."""


class CookieFileError(OSError):
    """Filesystem failure while rewriting the cookie file."""


class CryptoError(CookieJarError):
    pass


class InvalidKeyError(CryptoError):
    pass


class InvalidValueError(CryptoError):
    pass


class DecryptionError(CryptoError):
    pass


__all__ = [
    "CookieJarError",
    "LockTimeoutError",
    "CookieFileFormatError",
    "CookieFileError",
    "CryptoError",
    "InvalidKeyError",
    "InvalidValueError",
    "DecryptionError",
]
