from __future__ import annotations

import base64
import binascii
import os
from typing import Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .errors import DecryptionError, InvalidKeyError, InvalidValueError


VERSION_TAG = "v01"
NONCE_SIZE = 12  # AES-GCM standard nonce length
TAG_SIZE = 16
KEY_SIZES = (16, 24, 32)


def _to_aesgcm(key: bytes) -> AESGCM:
    """Construct an AES-GCM cipher, rejecting keys that are not AES-sized.

    The key must be raw bytes of length 16, 24 or 32 (AES-128/192/256).
    """
    if not isinstance(key, (bytes, bytearray)) or len(key) not in KEY_SIZES:
        size = len(key) if isinstance(key, (bytes, bytearray)) else type(key).__name__
        raise InvalidKeyError(f"invalid encryption key size: {size} (expected 16, 24 or 32 bytes)")
    return AESGCM(bytes(key))


def check_key(key: bytes) -> None:
    """Raise InvalidKeyError unless `key` is a usable AES key."""
    _to_aesgcm(key)


def generate_key(size: int = 32) -> bytes:
    if size not in KEY_SIZES:
        raise InvalidKeyError(f"invalid encryption key size: {size}")
    return os.urandom(size)


def encrypt(plaintext: Union[str, bytes], key: bytes) -> str:
    """Encrypt a cookie value and return its text form.

    Layout: ``"v01" + base64(nonce || ciphertext || tag)`` using the standard
    base64 alphabet. A fresh random nonce is drawn for every call.
    """
    aead = _to_aesgcm(key)
    data = plaintext.encode("utf-8") if isinstance(plaintext, str) else bytes(plaintext)
    nonce = os.urandom(NONCE_SIZE)
    sealed = aead.encrypt(nonce, data, None)
    return VERSION_TAG + base64.b64encode(nonce + sealed).decode("ascii")


def decrypt(text: str, key: bytes) -> bytes:
    """Authenticate and decrypt a value produced by :func:`encrypt`.

    Raises:
    - InvalidValueError if the version tag is missing or the payload is malformed.
    - InvalidKeyError if the key is not a valid AES key size.
    - DecryptionError if authentication fails (wrong key or tampered data).
    """
    if not isinstance(text, str) or not text.startswith(VERSION_TAG):
        raise InvalidValueError("invalid value")
    try:
        raw = base64.b64decode(text[len(VERSION_TAG):].encode("ascii"), validate=True)
    except (binascii.Error, UnicodeEncodeError) as ex:
        raise InvalidValueError("base64 decode error") from ex
    if len(raw) < NONCE_SIZE + TAG_SIZE:
        raise InvalidValueError("encrypted value too short")

    aead = _to_aesgcm(key)
    nonce, sealed = raw[:NONCE_SIZE], raw[NONCE_SIZE:]
    try:
        return aead.decrypt(nonce, sealed, None)
    except InvalidTag as ex:
        raise DecryptionError("failed to decrypt value: authentication failed") from ex


def decrypt_text(text: str, key: bytes) -> str:
    try:
        return decrypt(text, key).decode("utf-8")
    except UnicodeDecodeError as ex:
        raise InvalidValueError("decrypted value is not valid UTF-8") from ex


__all__ = [
    "VERSION_TAG",
    "NONCE_SIZE",
    "KEY_SIZES",
    "check_key",
    "generate_key",
    "encrypt",
    "decrypt",
    "decrypt_text",
]
