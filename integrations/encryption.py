"""
Secret encryption — encrypt / decrypt OAuth client secrets and tokens at rest.

Uses AES-256-GCM from the ``cryptography`` library.  The 32-byte key is the
SHA-256 digest of the configured ``ENCRYPTION_KEY``, so the operational
secret can be any length.

Stored format (three hex fields, colon-joined)::

    <iv>:<auth tag>:<ciphertext>
"""

from __future__ import annotations

import hashlib
import logging
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from integrations.errors import CryptoError

logger = logging.getLogger(__name__)

_IV_BYTES = 16
_TAG_BYTES = 16


class SecretCipher:
    """Authenticated symmetric cipher for secrets stored in the database."""

    def __init__(self, secret: str):
        if not secret:
            raise ValueError("SecretCipher requires a non-empty secret")
        self._aesgcm = AESGCM(hashlib.sha256(secret.encode("utf-8")).digest())

    def encrypt(self, plaintext: str) -> str:
        """Encrypt *plaintext* with a fresh random IV."""
        iv = os.urandom(_IV_BYTES)
        sealed = self._aesgcm.encrypt(iv, plaintext.encode("utf-8"), None)
        ciphertext, tag = sealed[:-_TAG_BYTES], sealed[-_TAG_BYTES:]
        return f"{iv.hex()}:{tag.hex()}:{ciphertext.hex()}"

    def decrypt(self, ciphertext: str) -> str:
        """
        Decrypt a value produced by :meth:`encrypt`.

        Raises ``CryptoError`` if the payload is malformed, was tampered
        with, or was encrypted under a different key.
        """
        parts = ciphertext.split(":") if isinstance(ciphertext, str) else []
        if len(parts) != 3:
            raise CryptoError("Encrypted payload must have exactly 3 fields")

        try:
            iv, tag, body = (bytes.fromhex(p) for p in parts)
        except ValueError as exc:
            raise CryptoError("Encrypted payload is not valid hex") from exc

        if len(iv) != _IV_BYTES or len(tag) != _TAG_BYTES:
            raise CryptoError("Encrypted payload has an invalid IV or tag length")

        try:
            plaintext = self._aesgcm.decrypt(iv, body + tag, None)
        except InvalidTag as exc:
            logger.warning("Secret decryption failed: authentication tag mismatch")
            raise CryptoError("Authentication tag mismatch") from exc

        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise CryptoError("Decrypted payload is not UTF-8") from exc

    def encrypt_optional(self, plaintext: str | None) -> str | None:
        return self.encrypt(plaintext) if plaintext else None

    def decrypt_optional(self, ciphertext: str | None) -> str | None:
        return self.decrypt(ciphertext) if ciphertext else None
