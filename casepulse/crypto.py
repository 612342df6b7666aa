"""Helpers for encrypting/decrypting stored account secrets.

Secrets are stored as ``salt:iv:tag:ciphertext`` with every component
hex-encoded. The key is derived per value from ``ENCRYPTION_KEY`` and the
embedded salt, so encrypting the same plaintext twice never yields the same
bundle.
"""

from __future__ import annotations

import os
import re

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from casepulse.errors import ConfigurationError, DecryptionError

__all__ = ["encrypt_secret", "decrypt_secret", "is_encrypted", "seal_secret", "require_secret_key", "MIN_KEY_LENGTH"]

SALT_LENGTH = 64
IV_LENGTH = 16
TAG_LENGTH = 16
KEY_LENGTH = 32
KDF_ITERATIONS = 100_000
MIN_KEY_LENGTH = 32

_HEX_SEGMENT = re.compile(r"[0-9a-f]+", re.IGNORECASE)


def require_secret_key(secret_key: str | None) -> str:
    if not secret_key:
        raise ConfigurationError("ENCRYPTION_KEY is not set")
    if len(secret_key) < MIN_KEY_LENGTH:
        raise ConfigurationError(f"ENCRYPTION_KEY must be at least {MIN_KEY_LENGTH} characters long")
    return secret_key


def _derived_key(secret_key: str, salt: bytes) -> bytes:
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=salt,
        iterations=KDF_ITERATIONS,
    )
    return kdf.derive(secret_key.encode("utf-8"))


def encrypt_secret(secret_key: str, plaintext: str) -> str:
    secret_key = require_secret_key(secret_key)
    salt = os.urandom(SALT_LENGTH)
    iv = os.urandom(IV_LENGTH)
    sealed = AESGCM(_derived_key(secret_key, salt)).encrypt(iv, plaintext.encode("utf-8"), None)
    # AESGCM appends the tag to the ciphertext.
    ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
    return ":".join(part.hex() for part in (salt, iv, tag, ciphertext))


def decrypt_secret(secret_key: str, ciphertext: str) -> str:
    secret_key = require_secret_key(secret_key)
    parts = (ciphertext or "").split(":")
    if len(parts) != 4:
        raise DecryptionError("Invalid encrypted value format")

    try:
        salt, iv, tag, data = (bytes.fromhex(part) for part in parts)
    except ValueError as exc:
        raise DecryptionError("Encrypted value is not hex-encoded") from exc
    if len(tag) != TAG_LENGTH:
        raise DecryptionError("Encrypted value has an invalid authentication tag")

    try:
        plain_bytes = AESGCM(_derived_key(secret_key, salt)).decrypt(iv, data + tag, None)
        return plain_bytes.decode("utf-8")
    except InvalidTag as exc:
        raise DecryptionError("Failed to decrypt value (tampered data or wrong key)") from exc
    except (ValueError, UnicodeDecodeError) as exc:
        raise DecryptionError("Failed to decrypt value") from exc


def is_encrypted(value: str | None) -> bool:
    """Return True when ``value`` already has the ``salt:iv:tag:ciphertext`` shape."""

    if not value:
        return False
    parts = value.split(":")
    return len(parts) == 4 and all(_HEX_SEGMENT.fullmatch(part) for part in parts)


def seal_secret(secret_key: str, value: str) -> str:
    """Encrypt ``value`` unless it is already an encrypted bundle.

    An empty value means "not set" and is returned unchanged.
    """

    if not value or is_encrypted(value):
        return value
    return encrypt_secret(secret_key, value)
