# tracesdk/crypto/cipher.py
import os
from typing import Optional

from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from tracesdk.core.encoding import b64_decode, b64_encode

NONCE_SIZE = 12


class SymmetricKey:
    """AES-256-GCM key used to encrypt file contents before upload."""

    def __init__(self, raw: Optional[bytes] = None):
        self._raw = raw if raw is not None else AESGCM.generate_key(bit_length=256)
        if len(self._raw) != 32:
            raise ValueError("AES-256 keys must be 32 bytes")

    @classmethod
    def from_b64(cls, value: str) -> "SymmetricKey":
        return cls(b64_decode(value))

    def export(self) -> str:
        return b64_encode(self._raw)

    def encrypt(self, plaintext: bytes) -> bytes:
        """Returns nonce || ciphertext || tag."""
        nonce = os.urandom(NONCE_SIZE)
        return nonce + AESGCM(self._raw).encrypt(nonce, plaintext, None)

    def decrypt(self, blob: bytes) -> bytes:
        nonce, ciphertext = blob[:NONCE_SIZE], blob[NONCE_SIZE:]
        return AESGCM(self._raw).decrypt(nonce, ciphertext, None)
