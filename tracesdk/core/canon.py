# tracesdk/core/canon.py
from dataclasses import asdict, is_dataclass
from datetime import datetime
from typing import Any

try:
    import jcs
except ImportError:
    raise ImportError("Please install jcs: pip install jcs")


def to_plain(obj: Any) -> Any:
    """
    Convert a value tree into JSON-compatible primitives.
    Objects exposing ``to_dict()`` (file records, links) are flattened,
    datetimes become ISO 8601 strings, tuples become lists.
    """
    if hasattr(obj, "to_dict") and callable(obj.to_dict):
        return to_plain(obj.to_dict())
    if isinstance(obj, dict):
        return {str(k): to_plain(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [to_plain(v) for v in obj]
    if isinstance(obj, datetime):
        return obj.isoformat()
    if is_dataclass(obj) and not isinstance(obj, type):
        return to_plain(asdict(obj))
    return obj


def canonical_json(obj: Any) -> bytes:
    """
    Produce deterministic UTF-8 bytes according to RFC 8785 (JSON Canonicalization Scheme).
    Returns bytes ready for hashing or signing.
    """
    return jcs.canonicalize(to_plain(obj))


def canonical_json_str(obj: Any) -> str:
    """Same as above, but returns string (mostly for debugging)."""
    return canonical_json(obj).decode("utf-8")
