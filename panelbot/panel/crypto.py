"""
AES-256-GCM encryption for panel tokens stored at rest.

The key is a 32-byte secret configured as a 64-character hex string.
Stored blobs are base64(nonce (16 bytes) + tag (16 bytes) + ciphertext).
"""

from __future__ import annotations

import base64
import binascii
import re
import secrets

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .errors import ConfigurationError, DecryptionError, EncryptionError

NONCE_LENGTH = 16
TAG_LENGTH = 16
KEY_LENGTH = 32

_HEX_KEY_RE = re.compile(r"^[0-9a-fA-F]{64}$")


def parse_key(hex_key: str) -> bytes:
    """Validate a 64-char hex key and return its 32 raw bytes."""
    if not isinstance(hex_key, str) or not _HEX_KEY_RE.match(hex_key):
        raise ConfigurationError(
            "ENCRYPTION_KEY must be a 64-character hex string (32 bytes). "
            "Generate with: openssl rand -hex 32",
            "ENCRYPTION_KEY",
        )
    return bytes.fromhex(hex_key)


def encrypt(plaintext: str, key: bytes) -> str:
    """Encrypt plaintext and return a base64 string safe for a text column."""
    if len(key) != KEY_LENGTH:
        raise EncryptionError(f"Encryption key must be {KEY_LENGTH} bytes, got {len(key)}")
    try:
        nonce = secrets.token_bytes(NONCE_LENGTH)
        sealed = AESGCM(key).encrypt(nonce, plaintext.encode("utf-8"), None)
    except (ValueError, TypeError) as e:
        raise EncryptionError(f"Encryption failed: {e}") from e
    # AESGCM appends the tag; stored layout puts it right after the nonce.
    ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
    return base64.b64encode(nonce + tag + ciphertext).decode("ascii")


def decrypt(blob: str, key: bytes) -> str:
    """Decrypt a blob produced by encrypt(). Raises DecryptionError on any tampering."""
    if len(key) != KEY_LENGTH:
        raise DecryptionError(f"Decryption key must be {KEY_LENGTH} bytes, got {len(key)}")
    try:
        data = base64.b64decode(blob, validate=True)
    except (binascii.Error, ValueError, TypeError) as e:
        raise DecryptionError("Decryption failed: malformed ciphertext") from e

    if len(data) < NONCE_LENGTH + TAG_LENGTH:
        raise DecryptionError("Decryption failed: ciphertext too short")

    nonce = data[:NONCE_LENGTH]
    tag = data[NONCE_LENGTH:NONCE_LENGTH + TAG_LENGTH]
    ciphertext = data[NONCE_LENGTH + TAG_LENGTH:]
    try:
        plaintext = AESGCM(key).decrypt(nonce, ciphertext + tag, None)
        return plaintext.decode("utf-8")
    except InvalidTag as e:
        raise DecryptionError("Decryption failed: authentication tag mismatch") from e
    except UnicodeDecodeError as e:
        raise DecryptionError("Decryption failed: plaintext is not valid UTF-8") from e
