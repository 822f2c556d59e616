"""
vaultharness: Canonical JSON Encoding - RFC 8785 (JCS)

Every structured payload that travels as opaque bytes (account packets,
soak reports) is serialised here. Nothing else builds JSON bytes by hand.

RFC 8785: https://www.rfc-editor.org/rfc/rfc8785
"""

import hashlib
import json
from typing import Any, Dict

try:
    import jcs as _jcs
except ImportError as exc:
    raise ImportError(
        "vaultharness requires the 'jcs' package for RFC 8785 compliance.\n"
        "Install with: pip install jcs\n"
        f"Original error: {exc}"
    ) from exc


def serialise(obj: Dict[str, Any]) -> bytes:
    """
    Encode a dict to RFC 8785 canonical JSON bytes.

    Output is deterministic regardless of key insertion order.
    Values must be JSON-primitive; encode raw bytes as hex first.
    """
    return _jcs.canonicalize(obj)


def deserialise(data: bytes) -> Dict[str, Any]:
    """Decode bytes produced by serialise(). Raises ValueError on garbage."""
    try:
        obj = json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ValueError(f"not canonical JSON: {exc}") from exc
    if not isinstance(obj, dict):
        raise ValueError(f"expected a JSON object, got {type(obj).__name__}")
    return obj


def canonical_hash(obj: Dict[str, Any]) -> str:
    """SHA-256 of the canonical form, lowercase hex (64 characters)."""
    return hashlib.sha256(serialise(obj)).hexdigest()
