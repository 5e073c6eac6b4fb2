"""
Tests for the identity cipher.

Blobs are "<nonce hex>:<ciphertext hex>" and must fail loudly on any damage.
"""

import os
from uuid import uuid4

import pytest

from grievance_desk.core.exceptions import DecryptionError
from grievance_desk.services.cipher import NONCE_LENGTH, CipherService


@pytest.fixture
def other_cipher() -> CipherService:
    return CipherService(os.urandom(32))


class TestCipher:

    def test_round_trip(self, cipher: CipherService):
        filer_id = str(uuid4())
        assert cipher.decrypt(cipher.encrypt(filer_id)) == filer_id

    def test_blob_format(self, cipher: CipherService):
        blob = cipher.encrypt("hello")
        nonce_hex, sealed_hex = blob.split(":")

        assert len(bytes.fromhex(nonce_hex)) == NONCE_LENGTH
        assert bytes.fromhex(sealed_hex)
        assert "hello" not in blob

    def test_fresh_nonce_per_call(self, cipher: CipherService):
        """Encrypting the same identifier twice never yields the same blob."""
        filer_id = str(uuid4())
        assert cipher.encrypt(filer_id) != cipher.encrypt(filer_id)

    def test_rejects_wrong_key_length(self):
        with pytest.raises(ValueError):
            CipherService(b"too short")

    def test_wrong_key_fails(self, cipher: CipherService, other_cipher: CipherService):
        blob = cipher.encrypt(str(uuid4()))
        with pytest.raises(DecryptionError):
            other_cipher.decrypt(blob)

    def test_tampered_ciphertext_fails(self, cipher: CipherService):
        blob = cipher.encrypt(str(uuid4()))
        nonce_hex, sealed_hex = blob.split(":")
        flipped = f"{int(sealed_hex[0], 16) ^ 1:x}" + sealed_hex[1:]

        with pytest.raises(DecryptionError):
            cipher.decrypt(f"{nonce_hex}:{flipped}")

    @pytest.mark.parametrize(
        "blob",
        [
            "",
            "no-separator",
            "a:b:c",
            "zz:zz",
            "00:ff",                      # nonce too short
            "00" * NONCE_LENGTH + ":",    # empty ciphertext
        ],
    )
    def test_malformed_blobs_fail(self, cipher: CipherService, blob: str):
        with pytest.raises(DecryptionError):
            cipher.decrypt(blob)

    def test_hash_is_stable_sha256(self):
        digest = CipherService.hash("abc")
        assert digest == CipherService.hash("abc")
        assert len(digest) == 64
        assert digest != CipherService.hash("abd")
