"""Symmetric cipher for the filer identifier stored in the identity store."""

import hashlib
import logging
import os
from functools import lru_cache

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ..core.config import Settings, get_settings
from ..core.exceptions import DecryptionError

logger = logging.getLogger(__name__)

KEY_LENGTH = 32  # AES-256
NONCE_LENGTH = 12


class CipherService:
    """
    AES-256-GCM encryption with a fresh random nonce per call.

    Ciphertext blobs are self-describing: ``<nonce hex>:<ciphertext hex>``.
    The key is handed in at construction and never changes afterwards, so
    concurrent calls need no locking.
    """

    def __init__(self, key: bytes):
        if len(key) != KEY_LENGTH:
            raise ValueError(f"Cipher key must be {KEY_LENGTH} bytes, got {len(key)}")
        self._aead = AESGCM(key)

    @classmethod
    def from_settings(cls, settings: Settings) -> "CipherService":
        return cls(settings.encryption_key_bytes)

    def encrypt(self, plaintext: str) -> str:
        nonce = os.urandom(NONCE_LENGTH)
        sealed = self._aead.encrypt(nonce, plaintext.encode("utf-8"), None)
        return f"{nonce.hex()}:{sealed.hex()}"

    def decrypt(self, blob: str) -> str:
        """Open a blob produced by ``encrypt``.

        Raises DecryptionError for malformed blobs, a wrong key or tampered data.
        """
        if not isinstance(blob, str) or blob.count(":") != 1:
            raise DecryptionError("Malformed ciphertext blob")

        nonce_hex, sealed_hex = blob.split(":")
        try:
            nonce = bytes.fromhex(nonce_hex)
            sealed = bytes.fromhex(sealed_hex)
        except ValueError as e:
            raise DecryptionError("Ciphertext blob is not valid hex") from e

        if len(nonce) != NONCE_LENGTH or not sealed:
            raise DecryptionError("Malformed ciphertext blob")

        try:
            plaintext = self._aead.decrypt(nonce, sealed, None)
        except InvalidTag as e:
            raise DecryptionError("Ciphertext failed authentication (wrong key or tampered)") from e

        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecryptionError("Decrypted payload is not valid UTF-8") from e

    @staticmethod
    def hash(data: str) -> str:
        """SHA-256 digest for auxiliary integrity checks. Not reversible."""
        return hashlib.sha256(data.encode("utf-8")).hexdigest()


@lru_cache
def get_cipher() -> CipherService:
    """Process-wide cipher built once from settings."""
    return CipherService.from_settings(get_settings())
