# tracesdk/__init__.py
"""
tracesdk: client SDK for workflows made of hash-chained, signed trace links.
Every state change of a trace (attestation, ownership transfer) is a new
Ed25519-signed link pointing at the hash of its parent.

Files placed in link data are encrypted, uploaded and replaced by
references before the link is signed.
"""

from tracesdk.chain.builder import TraceLinkBuilder
from tracesdk.chain.link import TraceLink
from tracesdk.client.auth import CredentialSecret, PrivateKeySecret, ProtectedKeySecret
from tracesdk.files.record import FileRecord
from tracesdk.files.wrapper import FileWrapper
from tracesdk.sdk import Sdk
from tracesdk.settings import SdkOptions

__version__ = "0.1.0-dev"

__all__ = [
    "Sdk",
    "SdkOptions",
    "TraceLink",
    "TraceLinkBuilder",
    "FileWrapper",
    "FileRecord",
    "CredentialSecret",
    "PrivateKeySecret",
    "ProtectedKeySecret",
]
