# tracesdk/crypto/hashing.py
import hashlib
from typing import Any, Dict

from tracesdk.core.canon import canonical_json
from tracesdk.core.encoding import b64_encode

DIGEST_ALGORITHM = "sha256"


def sha256_b64(payload: bytes) -> str:
    return b64_encode(hashlib.sha256(payload).digest())


def data_digest(data: Any) -> Dict[str, str]:
    """
    Digest descriptor stored in place of form data. Logically equal
    payloads hash identically whatever their key insertion order.
    """
    return {
        "algorithm": DIGEST_ALGORITHM,
        "digest": sha256_b64(canonical_json(data)),
    }


def link_hash(link) -> str:
    """Hash of a link: sha256 over its canonical form without signatures."""
    return sha256_b64(canonical_json(link.hashable_object()))
