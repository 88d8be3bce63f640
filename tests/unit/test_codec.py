from __future__ import annotations

import base64

import pytest

from cookiejar import codec
from cookiejar.errors import CryptoError, DecryptionError, InvalidKeyError, InvalidValueError


PLAINTEXTS = [b"", b"session=abc123", bytes(range(256)) * 3]


@pytest.mark.parametrize("size", [16, 24, 32])
@pytest.mark.parametrize("plaintext", PLAINTEXTS)
def test_roundtrip_all_key_sizes(size, plaintext):
    key = codec.generate_key(size)
    text = codec.encrypt(plaintext, key)
    assert codec.decrypt(text, key) == plaintext


def test_encrypt_accepts_str_and_decrypt_text_returns_str():
    key = b"k" * 16
    text = codec.encrypt("héllo wörld", key)
    assert codec.decrypt_text(text, key) == "héllo wörld"


def test_output_layout_is_version_tag_plus_base64():
    key = b"k" * 32
    text = codec.encrypt(b"value", key)
    assert text.startswith("v01")
    raw = base64.b64decode(text[3:])
    # nonce || ciphertext || tag
    assert len(raw) == codec.NONCE_SIZE + len(b"value") + 16


def test_fresh_nonce_per_call():
    key = b"k" * 32
    a = codec.encrypt(b"same", key)
    b = codec.encrypt(b"same", key)
    assert a != b
    nonce_a = base64.b64decode(a[3:])[: codec.NONCE_SIZE]
    nonce_b = base64.b64decode(b[3:])[: codec.NONCE_SIZE]
    assert nonce_a != nonce_b


def test_wrong_key_fails_with_crypto_error():
    text = codec.encrypt(b"secret", b"a" * 32)
    with pytest.raises(DecryptionError):
        codec.decrypt(text, b"b" * 32)


def test_tampered_ciphertext_fails():
    key = b"a" * 24
    text = codec.encrypt(b"secret", key)
    raw = bytearray(base64.b64decode(text[3:]))
    raw[-1] ^= 0x01
    tampered = "v01" + base64.b64encode(bytes(raw)).decode("ascii")
    with pytest.raises(DecryptionError):
        codec.decrypt(tampered, key)


@pytest.mark.parametrize("text", ["", "v02AAAA", "V01AAAA", "plain-cookie-value"])
def test_missing_version_tag_is_invalid_value(text):
    with pytest.raises(InvalidValueError):
        codec.decrypt(text, b"a" * 16)


def test_invalid_value_is_a_crypto_error():
    with pytest.raises(CryptoError):
        codec.decrypt("nope", b"a" * 16)


def test_malformed_payload_is_invalid_value():
    with pytest.raises(InvalidValueError):
        codec.decrypt("v01!!not-base64!!", b"a" * 16)
    short = "v01" + base64.b64encode(b"abc").decode("ascii")
    with pytest.raises(InvalidValueError):
        codec.decrypt(short, b"a" * 16)


@pytest.mark.parametrize("size", [0, 8, 15, 17, 31, 33, 64])
def test_bad_key_size_rejected_on_encrypt(size):
    with pytest.raises(InvalidKeyError):
        codec.encrypt(b"x", b"k" * size)


def test_bad_key_size_rejected_on_decrypt():
    text = codec.encrypt(b"x", b"k" * 16)
    with pytest.raises(InvalidKeyError):
        codec.decrypt(text, b"k" * 10)


def test_generate_key_sizes():
    assert len(codec.generate_key()) == 32
    assert len(codec.generate_key(16)) == 16
    with pytest.raises(InvalidKeyError):
        codec.generate_key(20)
