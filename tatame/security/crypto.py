"""
TATAME Security - Secret encryption at rest.

WordPress application passwords and third-party API keys are stored as
AES-256-GCM tokens. Each token carries its own salt so the per-value key
can be derived from the master ENCRYPTION_KEY with PBKDF2.

Token layout (base64): salt(64) | iv(16) | tag(16) | ciphertext
"""

from __future__ import annotations

import base64
import binascii
import logging
import os
import re
import secrets

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from tatame.shared.errors import (
    ConfigurationError,
    CryptoError,
    MissingEnvironmentVariableError,
)

logger = logging.getLogger("tatame.security.crypto")

SALT_LENGTH = 64
IV_LENGTH = 16
TAG_LENGTH = 16
KEY_LENGTH = 32
PBKDF2_ITERATIONS = 100_000

_TAG_POSITION = SALT_LENGTH + IV_LENGTH
_ENCRYPTED_POSITION = _TAG_POSITION + TAG_LENGTH
_HEX_KEY_RE = re.compile(r"^[0-9a-f]{64}$", re.IGNORECASE)


def _derive_key(master_key: str, salt: bytes) -> bytes:
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=salt,
        iterations=PBKDF2_ITERATIONS,
    )
    return kdf.derive(master_key.encode("utf-8"))


def encrypt(text: str, master_key: str) -> str:
    """Encrypt text with a key derived from master_key; returns base64."""
    try:
        salt = secrets.token_bytes(SALT_LENGTH)
        iv = secrets.token_bytes(IV_LENGTH)
        key = _derive_key(master_key, salt)
        sealed = AESGCM(key).encrypt(iv, text.encode("utf-8"), None)
    except (TypeError, ValueError) as exc:
        logger.error(f"Encryption error: {exc}")
        raise CryptoError("Failed to encrypt data") from exc

    # AESGCM appends the tag; the stored layout keeps it ahead of the data.
    ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
    return base64.b64encode(salt + iv + tag + ciphertext).decode("ascii")


def decrypt(token: str, master_key: str) -> str:
    """Inverse of encrypt(). Any tampering or wrong key raises CryptoError."""
    try:
        combined = base64.b64decode(token.encode("ascii"), validate=True)
        if len(combined) < _ENCRYPTED_POSITION:
            raise ValueError("token too short")
        salt = combined[:SALT_LENGTH]
        iv = combined[SALT_LENGTH:_TAG_POSITION]
        tag = combined[_TAG_POSITION:_ENCRYPTED_POSITION]
        ciphertext = combined[_ENCRYPTED_POSITION:]

        key = _derive_key(master_key, salt)
        plain = AESGCM(key).decrypt(iv, ciphertext + tag, None)
        return plain.decode("utf-8")
    except (InvalidTag, binascii.Error, UnicodeError, TypeError, ValueError) as exc:
        logger.error(f"Decryption error: {type(exc).__name__}")
        raise CryptoError("Failed to decrypt data") from exc


def mask_api_key(api_key: str | None) -> str:
    """Show only the first 7 and last 4 characters, e.g. ``sk-proj...4a3b``."""
    if not api_key or len(api_key) < 15:
        return "***"
    return f"{api_key[:7]}...{api_key[-4:]}"


def generate_encryption_key() -> str:
    """Return a fresh 32-byte key as hex, suitable for ENCRYPTION_KEY."""
    return secrets.token_hex(32)


def validate_encryption_key(key: str | None) -> bool:
    return bool(key) and bool(_HEX_KEY_RE.match(key))


def is_encrypted(text: str | None) -> bool:
    """Heuristic: base64 long enough to hold salt, iv, tag and one byte."""
    if not text:
        return False
    try:
        decoded = base64.b64decode(text.encode("ascii"), validate=True)
    except (binascii.Error, UnicodeError, ValueError):
        return False
    return len(decoded) >= _ENCRYPTED_POSITION + 1


def get_encryption_key() -> str:
    """Read and validate ENCRYPTION_KEY from the environment."""
    key = os.getenv("ENCRYPTION_KEY", "").strip()
    if not key:
        raise MissingEnvironmentVariableError("ENCRYPTION_KEY")
    if not validate_encryption_key(key):
        raise ConfigurationError(
            "ENCRYPTION_KEY is invalid. It should be a 64-character hex string."
        )
    return key
