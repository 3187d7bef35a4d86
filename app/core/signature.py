"""HMAC-SHA256 verification of webhook bodies."""

import hashlib
import hmac
from collections.abc import Mapping

# Gateways disagree on where the signature goes; first present header wins
SIGNATURE_HEADERS = (
    "x-webhook-signature",
    "x-hub-signature-256",
    "x-signature",
    "x-waha-signature",
)


def compute_signature(secret: str, raw_body: bytes) -> str:
    """Hex HMAC-SHA256 of the raw request body."""
    return hmac.new(secret.encode(), raw_body, hashlib.sha256).hexdigest()


def extract_signature(headers: Mapping[str, str]) -> str | None:
    """Pull the supplied signature out of whichever accepted header carries it.

    Strips an optional "sha256=" prefix and lowercases the hex digest.
    """
    lowered = {key.lower(): value for key, value in headers.items()}
    for name in SIGNATURE_HEADERS:
        value = lowered.get(name)
        if value:
            value = value.strip()
            if value.lower().startswith("sha256="):
                value = value[len("sha256="):]
            return value.lower()
    return None


def verify_signature(secret: str, raw_body: bytes, headers: Mapping[str, str]) -> bool:
    """Constant-time comparison of the supplied signature against the body's HMAC."""
    supplied = extract_signature(headers)
    if not supplied:
        return False
    # Compare bytes: str comparison raises on non-ASCII header values
    expected = compute_signature(secret, raw_body).encode()
    return hmac.compare_digest(expected, supplied.encode("utf-8", "surrogateescape"))
