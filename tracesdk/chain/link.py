# tracesdk/chain/link.py
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Tuple

from tracesdk.core.canon import canonical_json, to_plain
from tracesdk.core.encoding import b64_decode, b64_encode
from tracesdk.core.types import TraceLinkType
from tracesdk.crypto.hashing import link_hash
from tracesdk.crypto.keys import SIGNATURE_TYPE, SigningKeyPair

LINK_VERSION = "1.0.0"
SIGNATURE_VERSION = "1.0.0"
CLIENT_ID = "github.com/tracesdk/tracesdk-python"
SIGNED_PAYLOAD_PATH = "[version,data,meta]"


@dataclass(frozen=True)
class Signature:
    """Ed25519 signature over canonical [version, data, metadata]."""
    public_key: str                 # PEM encoded public key
    signature: str                  # base64 signature bytes
    type: str = SIGNATURE_TYPE
    version: str = SIGNATURE_VERSION
    payload_path: str = SIGNED_PAYLOAD_PATH

    def to_dict(self) -> dict:
        return {
            "version": self.version,
            "type": self.type,
            "publicKey": self.public_key,
            "signature": self.signature,
            "payloadPath": self.payload_path,
        }

    @classmethod
    def from_object(cls, obj: Mapping[str, Any]) -> "Signature":
        return cls(
            public_key=obj["publicKey"],
            signature=obj["signature"],
            type=obj.get("type", SIGNATURE_TYPE),
            version=obj.get("version", SIGNATURE_VERSION),
            payload_path=obj.get("payloadPath", SIGNED_PAYLOAD_PATH),
        )


@dataclass(frozen=True)
class TraceLink:
    """
    One immutable record of a trace. Every transition produces a new
    TraceLink; signing returns a copy carrying the extra signature.

    ``form_data`` holds the raw payload when ``data`` only carries its
    digest. It takes no part in hashing or signing.
    """
    process_id: str
    map_id: str
    priority: float
    action: str
    process_state: str
    data: Any = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    parent_hash: str = ""
    out_degree: int = 1
    version: str = LINK_VERSION
    client_id: str = CLIENT_ID
    signatures: Tuple[Signature, ...] = ()
    form_data: Any = field(default=None, compare=False)

    # ── hashing / signing ────────────────────────────────────────────

    def meta_object(self) -> dict:
        return {
            "clientId": self.client_id,
            "mapId": self.map_id,
            "outDegree": self.out_degree,
            "priority": self.priority,
            "prevLinkHash": self.parent_hash,
            "action": self.action,
            "process": {"name": self.process_id, "state": self.process_state},
            "data": self.metadata,
        }

    def hashable_object(self) -> dict:
        return {"version": self.version, "data": self.data, "meta": self.meta_object()}

    def hash(self) -> str:
        return link_hash(self)

    def signed_bytes(self) -> bytes:
        """The signed payload: positional chain fields are left out."""
        return canonical_json([self.version, self.data, self.metadata])

    def sign(self, key: SigningKeyPair) -> "TraceLink":
        sig = Signature(
            public_key=key.public_pem(),
            signature=b64_encode(key.sign_bytes(self.signed_bytes())),
        )
        return replace(self, signatures=self.signatures + (sig,))

    def without_signatures(self) -> "TraceLink":
        return replace(self, signatures=())

    def verify_signatures(self) -> bool:
        """True when the link is signed and every signature checks out."""
        if not self.signatures:
            return False
        payload = self.signed_bytes()
        for sig in self.signatures:
            if sig.payload_path != SIGNED_PAYLOAD_PATH:
                return False
            verifier = SigningKeyPair.from_public_pem(sig.public_key)
            if not verifier.verify_bytes(b64_decode(sig.signature), payload):
                return False
        return True

    # ── serialization ────────────────────────────────────────────────

    def to_object(self) -> dict:
        obj = to_plain(self.hashable_object())
        obj["signatures"] = [s.to_dict() for s in self.signatures]
        return obj

    to_dict = to_object

    @classmethod
    def from_object(cls, raw: Mapping[str, Any], form_data: Any = None) -> "TraceLink":
        meta = raw.get("meta") or {}
        process = meta.get("process") or {}
        return cls(
            process_id=process.get("name", ""),
            map_id=meta.get("mapId", ""),
            priority=meta.get("priority", 0),
            action=meta.get("action", ""),
            process_state=process.get("state", ""),
            data=raw.get("data"),
            metadata=dict(meta.get("data") or {}),
            parent_hash=meta.get("prevLinkHash") or "",
            out_degree=meta.get("outDegree", 1),
            version=raw.get("version", LINK_VERSION),
            client_id=meta.get("clientId", CLIENT_ID),
            signatures=tuple(Signature.from_object(s) for s in raw.get("signatures") or []),
            form_data=form_data,
        )

    # ── trace accessors ──────────────────────────────────────────────

    def payload(self) -> Any:
        """The raw payload: the retained form data, else ``data`` itself."""
        return self.form_data if self.form_data is not None else self.data

    def trace_id(self) -> str:
        return self.map_id

    def workflow_id(self) -> str:
        return self.process_id

    def type(self) -> TraceLinkType:
        return TraceLinkType(self.process_state)

    def created_by(self) -> Optional[str]:
        return self.metadata.get("createdById")

    def created_at(self) -> Optional[datetime]:
        value = self.metadata.get("createdAt")
        if isinstance(value, str):
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        return value

    def group(self) -> Optional[str]:
        return self.metadata.get("groupId")

    def form(self) -> Optional[str]:
        return self.metadata.get("formId")

    def last_form(self) -> Optional[str]:
        return self.metadata.get("lastFormId")

    def inputs(self) -> Optional[List[str]]:
        return self.metadata.get("inputs")

    def config_id(self) -> Optional[str]:
        return self.metadata.get("configId")


def from_object(raw: Mapping[str, Any], form_data: Any = None) -> TraceLink:
    """Convert a raw link object returned by the service into a TraceLink."""
    return TraceLink.from_object(raw, form_data)
