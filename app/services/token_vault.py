"""
token_vault.py — Encryption at rest for QuickBooks OAuth tokens.

Tokens are encrypted with AES-256-GCM. Each call draws a fresh 16-byte IV;
the stored form is base64(IV || auth tag || ciphertext).

Business Rules:
- The key comes from QBO_ENCRYPTION_KEY (base64 of 32 bytes), loaded once
- A missing or malformed key raises ConfigurationError
- A failed tag check raises IntegrityError; a tampered token is never used
- Plaintext tokens never leave the sync / OAuth call sites

Called by: routers/qbo.py (callback), services/qbo_sync.py
Depends on: config.py (qbo_encryption_key)
"""

import base64
import binascii
import os
from functools import lru_cache

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ..config import settings
from ..exceptions import ConfigurationError, IntegrityError

IV_LENGTH = 16
AUTH_TAG_LENGTH = 16
KEY_LENGTH = 32


@lru_cache(maxsize=4)
def _load_key(encoded: str) -> bytes:
    if not encoded:
        raise ConfigurationError("QBO_ENCRYPTION_KEY is not set")
    try:
        key = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError):
        raise ConfigurationError("QBO_ENCRYPTION_KEY is not valid base64") from None
    if len(key) != KEY_LENGTH:
        raise ConfigurationError(f"QBO_ENCRYPTION_KEY must decode to {KEY_LENGTH} bytes")
    return key


def _cipher() -> AESGCM:
    return AESGCM(_load_key(settings.qbo_encryption_key))


def encrypt_token(plaintext: str) -> str:
    """Encrypt a token. Returns one opaque base64 string."""
    iv = os.urandom(IV_LENGTH)
    # AESGCM appends the tag to the ciphertext
    sealed = _cipher().encrypt(iv, plaintext.encode("utf-8"), None)
    ciphertext, tag = sealed[:-AUTH_TAG_LENGTH], sealed[-AUTH_TAG_LENGTH:]
    return base64.b64encode(iv + tag + ciphertext).decode("ascii")


def decrypt_token(encoded: str) -> str:
    """Decrypt a token produced by encrypt_token()."""
    cipher = _cipher()
    try:
        combined = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError, TypeError):
        raise IntegrityError("Token ciphertext is not valid base64") from None
    if len(combined) < IV_LENGTH + AUTH_TAG_LENGTH:
        raise IntegrityError("Token ciphertext is truncated")

    iv = combined[:IV_LENGTH]
    tag = combined[IV_LENGTH:IV_LENGTH + AUTH_TAG_LENGTH]
    ciphertext = combined[IV_LENGTH + AUTH_TAG_LENGTH:]
    try:
        plaintext = cipher.decrypt(iv, ciphertext + tag, None)
    except InvalidTag:
        raise IntegrityError("Token failed authentication") from None
    return plaintext.decode("utf-8")


def generate_encryption_key() -> str:
    """Return a fresh base64 key suitable for QBO_ENCRYPTION_KEY."""
    return base64.b64encode(os.urandom(KEY_LENGTH)).decode("ascii")
