"""HMAC-SHA256 signatures over raw webhook bodies."""

from __future__ import annotations

import hashlib
import hmac

SIGNATURE_PREFIX = "sha256="


def compute_signature(secret: str, body: bytes) -> str:
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


def verify_signature(secret: str, body: bytes, signature: str | None) -> bool:
    """Constant-time check of a hex digest, with or without a ``sha256=`` prefix."""
    if not signature:
        return False
    candidate = signature.strip()
    if candidate.startswith(SIGNATURE_PREFIX):
        candidate = candidate[len(SIGNATURE_PREFIX):]
    expected = compute_signature(secret, body)
    return hmac.compare_digest(candidate.lower().encode(), expected.encode())
