# tracesdk/client/auth.py
import base64
import json
import time
from dataclasses import dataclass
from typing import Any, Mapping, Union

from tracesdk.core.encoding import b64_encode
from tracesdk.core.errors import UnsupportedSecretError
from tracesdk.crypto.keys import SigningKeyPair

AUTH_PAYLOAD_TTL_S = 60 * 5


@dataclass(frozen=True)
class CredentialSecret:
    """Authenticate with email + password."""
    email: str
    password: str


@dataclass(frozen=True)
class PrivateKeySecret:
    """Authenticate by signing a challenge with the PEM private key."""
    private_key: str


@dataclass(frozen=True)
class ProtectedKeySecret:
    """Password protected signing key. Not supported yet."""
    public_key: str
    password: str


Secret = Union[CredentialSecret, PrivateKeySecret, ProtectedKeySecret]


def secret_from_mapping(obj: Mapping[str, Any]) -> Secret:
    """Accept the plain-dict secret shapes: {email, password}, {privateKey}, {publicKey, password}."""
    if "email" in obj:
        return CredentialSecret(obj["email"], obj["password"])
    if "privateKey" in obj or "private_key" in obj:
        return PrivateKeySecret(obj.get("privateKey") or obj["private_key"])
    if "publicKey" in obj or "public_key" in obj:
        return ProtectedKeySecret(obj.get("publicKey") or obj["public_key"], obj["password"])
    raise UnsupportedSecretError("The provided secret does not have the right format")


def make_auth_payload(key: SigningKeyPair, now: float = None) -> str:
    """
    Signed token exchanged for a long lived bearer token on GET /login.
    Format: base64(JSON{signature, message, public_key}) where message is
    the base64 of {"iat", "exp"}.
    """
    iat = time.time() if now is None else now
    message = json.dumps({"iat": iat, "exp": iat + AUTH_PAYLOAD_TTL_S}).encode("utf-8")
    signature = key.sign_bytes(message)
    envelope = {
        "public_key": b64_encode(key.public_pem().encode("ascii")),
        "signature": b64_encode(signature),
        "message": b64_encode(message),
    }
    return base64.b64encode(json.dumps(envelope).encode("utf-8")).decode("ascii")
