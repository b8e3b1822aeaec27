# tracesdk/verify/verifier.py
from dataclasses import dataclass
from typing import Dict, List, Optional

from tracesdk.chain.link import SIGNED_PAYLOAD_PATH, TraceLink
from tracesdk.core.encoding import b64_decode
from tracesdk.crypto.keys import SigningKeyPair


@dataclass
class VerificationFailure:
    index: int
    message: str
    category: str = "general"  # e.g. "trace", "priority", "hash_chain", "signature"


@dataclass
class VerificationResult:
    is_valid: bool
    message: str = ""
    failures: List[VerificationFailure] = None

    def __post_init__(self):
        if self.failures is None:
            self.failures = []

    @property
    def first_failure(self) -> Optional[VerificationFailure]:
        return self.failures[0] if self.failures else None

    def fail(self, index: int, message: str, category: str) -> None:
        self.failures.append(VerificationFailure(index, message, category))
        self.is_valid = False

    def __bool__(self):
        return self.is_valid

    def __str__(self):
        if self.is_valid:
            return "Chain is valid ✓"
        lines = [f"Verification FAILED ({len(self.failures)} issues):"]
        for f in self.failures:
            lines.append(f"  • [{f.index}] {f.category}: {f.message}")
        return "\n".join(lines)


class ChainVerifier:
    """
    Offline verifier for the links of one trace, ordered root first
    (e.g. an exported trace).
    """

    def __init__(self, trusted_keys: Optional[Dict[str, str]] = None):
        """
        trusted_keys: account id → PEM public key. When given, every
        signature must come from the key trusted for the link's creator.
        Without it, signatures are checked against their embedded key.
        """
        self.trusted_keys = trusted_keys or {}

    def _check_signatures(self, i: int, link: TraceLink, result: VerificationResult) -> None:
        if not link.signatures:
            result.fail(i, "Missing signature", "signature")
            return

        trusted_pem = None
        if self.trusted_keys:
            trusted_pem = self.trusted_keys.get(link.created_by() or "")
            if trusted_pem is None:
                result.fail(i, f"No trusted key for account '{link.created_by()}'", "signature")
                return

        payload = link.signed_bytes()
        for sig in link.signatures:
            if sig.payload_path != SIGNED_PAYLOAD_PATH:
                result.fail(i, f"Unsupported payload path {sig.payload_path}", "signature")
                continue
            try:
                verifier = SigningKeyPair.from_public_pem(trusted_pem or sig.public_key)
                ok = verifier.verify_bytes(b64_decode(sig.signature), payload)
            except ValueError as e:
                result.fail(i, f"Key loading failed: {e}", "signature")
                continue
            if not ok:
                result.fail(i, "Invalid signature", "signature")

    def verify(self, chain: List[TraceLink]) -> VerificationResult:
        if not chain:
            return VerificationResult(True, "Empty chain is valid")

        result = VerificationResult(True)

        # 1. Trace & priority consistency
        trace_id = chain[0].trace_id()
        first_priority = chain[0].priority
        for i, link in enumerate(chain):
            if link.trace_id() != trace_id:
                result.fail(i, f"Trace mismatch: {link.trace_id()}", "trace")
            expected = first_priority + i
            if link.priority != expected:
                result.fail(i, f"Priority mismatch: expected {expected}, got {link.priority}", "priority")

        if chain[0].priority == 1 and chain[0].parent_hash:
            result.fail(0, "Root link must not reference a parent", "hash_chain")

        # 2. Hash chain
        for i in range(1, len(chain)):
            if chain[i].parent_hash != chain[i - 1].hash():
                result.fail(i, "prevLinkHash does not match previous link hash", "hash_chain")

        # 3. Signatures
        for i, link in enumerate(chain):
            self._check_signatures(i, link, result)

        result.message = "Valid chain" if result.is_valid else f"Failed with {len(result.failures)} issues"
        return result
