"""
End-to-end encryption helpers for clipboard payloads.

Runs only on participating devices: the ledger and relay handle the
opaque output and never see plaintext or the secret.

Blob format: base64(nonce[12] || AES-256-GCM ciphertext+tag).
Key derivation: PBKDF2-HMAC-SHA256 over the shared secret with a fixed
application salt, so every device holding the same code and link token
derives the same key.
"""

from __future__ import annotations

import base64
import binascii
import logging
import os
from functools import lru_cache

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from .id_utils import derive_secret

logger = logging.getLogger(__name__)

KDF_SALT = b"online-clipboard-v1"
KDF_ITERATIONS = 150_000
KEY_BYTES = 32
NONCE_BYTES = 12


@lru_cache(maxsize=32)
def derive_key(secret: str) -> bytes:
    """Derive the AES key for a shared secret.

    PBKDF2 is deliberately slow; results are cached per secret.
    """
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_BYTES,
        salt=KDF_SALT,
        iterations=KDF_ITERATIONS,
    )
    return kdf.derive(secret.encode("utf-8"))


def encrypt(secret: str, plaintext: str) -> str:
    """Encrypt text with a fresh nonce.

    Args:
        secret: Shared secret (see derive_secret)
        plaintext: Text to encrypt

    Returns:
        Base64 blob safe to persist and broadcast
    """
    nonce = os.urandom(NONCE_BYTES)
    sealed = AESGCM(derive_key(secret)).encrypt(nonce, plaintext.encode("utf-8"), None)
    return base64.b64encode(nonce + sealed).decode("ascii")


def decrypt(secret: str, blob: str) -> str | None:
    """Decrypt a blob produced by encrypt().

    Returns None for a wrong secret, tampered data or a malformed blob;
    never returns incorrect plaintext.
    """
    try:
        raw = base64.b64decode(blob, validate=True)
    except (binascii.Error, ValueError):
        logger.debug("Rejected blob that is not valid base64")
        return None

    if len(raw) <= NONCE_BYTES:
        return None

    nonce, sealed = raw[:NONCE_BYTES], raw[NONCE_BYTES:]
    try:
        plain = AESGCM(derive_key(secret)).decrypt(nonce, sealed, None)
    except InvalidTag:
        return None

    try:
        return plain.decode("utf-8")
    except UnicodeDecodeError:
        return None


class SessionCipher:
    """Encryption bound to one session's identifiers.

    Example:
        >>> cipher = SessionCipher.for_session("AB12C", "Q1W2E3R4T5Y6U7I8")
        >>> blob = cipher.encrypt("hello")
        >>> cipher.decrypt(blob)
        'hello'
    """

    def __init__(self, secret: str) -> None:
        self._secret = secret

    @classmethod
    def for_session(cls, code: str, link_token: str) -> SessionCipher:
        return cls(derive_secret(code, link_token))

    def encrypt(self, plaintext: str) -> str:
        return encrypt(self._secret, plaintext)

    def decrypt(self, blob: str) -> str | None:
        return decrypt(self._secret, blob)
