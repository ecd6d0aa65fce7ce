import hashlib
import hmac
import json
from collections.abc import Mapping
from typing import Any


def canonical_body(body: Any) -> dict[str, Any]:
    """Tag the body with its kind so JSON and non-JSON text never share a form."""
    if isinstance(body, (bytes, bytearray)):
        body = bytes(body).decode("utf-8", errors="surrogateescape")
    if isinstance(body, str):
        try:
            return {"kind": "json", "body": json.loads(body)}
        except ValueError:
            return {"kind": "text", "body": body}
    return {"kind": "json", "body": body}


def _canonical_headers(headers: Mapping[str, Any] | None) -> dict[str, str]:
    if not headers:
        return {}
    return {
        str(name).strip().lower(): str(value).strip()
        for name, value in headers.items()
        if value is not None
    }


def compute_fingerprint(body: Any, relevant_headers: Mapping[str, Any] | None = None) -> str:
    """SHA-256 over the canonical JSON form of the request body and headers.

    Key order and insignificant whitespace never change the result: text and
    bytes bodies are parsed as JSON first and the payload is re-serialized
    with sorted keys and compact separators. Non-JSON text is hashed as-is
    under its own kind.
    """
    canonical = json.dumps(
        {"body": canonical_body(body), "headers": _canonical_headers(relevant_headers)},
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=str,
    )
    return hashlib.sha256(canonical.encode("utf-8", errors="surrogateescape")).hexdigest()


def matches(stored_hash: str, recomputed_hash: str) -> bool:
    return hmac.compare_digest(stored_hash.encode(), recomputed_hash.encode())


def select_headers(headers: Mapping[str, Any], names: list[str]) -> dict[str, str]:
    lowered = {str(name).lower(): value for name, value in headers.items()}
    return {name: lowered[name] for name in names if lowered.get(name) is not None}
