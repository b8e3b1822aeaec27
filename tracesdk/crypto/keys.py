# tracesdk/crypto/keys.py
import base64
import re
from typing import Optional, Union

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)

from tracesdk.core.encoding import b64url_encode

SIGNATURE_TYPE = "ed25519"

_PEM_BLOCK = re.compile(
    r"-----BEGIN ([A-Z0-9 ]+)-----(.*?)-----END \1-----", re.DOTALL
)


def _normalize_pem(pem: Union[str, bytes]) -> str:
    """Strip indentation so keys pasted into config files still load."""
    if isinstance(pem, bytes):
        pem = pem.decode("ascii")
    return "\n".join(line.strip() for line in pem.strip().splitlines() if line.strip())


class SigningKeyPair:
    """
    Ed25519 key pair used to sign links and authentication payloads.
    A verify-only instance (no private key) is obtained from a public key.
    """

    def __init__(
        self,
        private_key: Optional[Ed25519PrivateKey] = None,
        public_key: Optional[Ed25519PublicKey] = None,
    ):
        if private_key is None and public_key is None:
            raise ValueError("A private or a public key is required")
        self._private_key = private_key
        self._public_key = public_key or private_key.public_key()

    @classmethod
    def generate(cls) -> "SigningKeyPair":
        return cls(private_key=Ed25519PrivateKey.generate())

    @classmethod
    def from_pem(cls, pem: Union[str, bytes]) -> "SigningKeyPair":
        """
        Load a private key from PEM. Standard PKCS#8 blocks are accepted, as
        well as the legacy "ED25519 PRIVATE KEY" block whose payload ends
        with the 32 byte seed followed by the 32 byte public key.
        """
        text = _normalize_pem(pem)
        match = _PEM_BLOCK.search(text)
        if match and match.group(1) == "ED25519 PRIVATE KEY":
            der = base64.b64decode("".join(match.group(2).split()))
            if len(der) < 64:
                raise ValueError("Malformed ED25519 PRIVATE KEY block")
            seed = der[-64:-32]
            return cls(private_key=Ed25519PrivateKey.from_private_bytes(seed))

        key = serialization.load_pem_private_key(text.encode("ascii"), password=None)
        if not isinstance(key, Ed25519PrivateKey):
            raise ValueError("Only Ed25519 private keys are supported")
        return cls(private_key=key)

    @classmethod
    def from_public_pem(cls, pem: Union[str, bytes]) -> "SigningKeyPair":
        text = _normalize_pem(pem)
        match = _PEM_BLOCK.search(text)
        if match is None:
            raise ValueError("Not a PEM encoded public key")
        # the legacy ED25519 PUBLIC KEY block carries a plain SubjectPublicKeyInfo
        der = base64.b64decode("".join(match.group(2).split()))
        key = serialization.load_der_public_key(der)
        if not isinstance(key, Ed25519PublicKey):
            raise ValueError("Only Ed25519 public keys are supported")
        return cls(public_key=key)

    @property
    def can_sign(self) -> bool:
        return self._private_key is not None

    def private_pem(self) -> str:
        if self._private_key is None:
            raise ValueError("Verify-only key pair has no private key")
        return self._private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        ).decode("ascii")

    def public_pem(self) -> str:
        return self._public_key.public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        ).decode("ascii")

    def public_key_b64url(self) -> str:
        raw = self._public_key.public_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PublicFormat.Raw,
        )
        return b64url_encode(raw)

    def sign_bytes(self, payload: bytes) -> bytes:
        if self._private_key is None:
            raise ValueError("Verify-only key pair cannot sign")
        return self._private_key.sign(payload)

    def verify_bytes(self, signature: bytes, payload: bytes) -> bool:
        try:
            self._public_key.verify(signature, payload)
        except InvalidSignature:
            return False
        return True
