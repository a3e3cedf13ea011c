"""HMAC-SHA256 verification of provider callback bodies."""

from __future__ import annotations

import hashlib
import hmac
import time
from typing import Callable

from ..exceptions import SignatureVerificationError

SIGNATURE_HEADER = "X-Webhook-Signature"
SIGNATURE_PREFIX = "sha256="
DEFAULT_TOLERANCE_SECONDS = 300


def compute_signature(body: bytes, secret: str) -> str:
    """Return the hex HMAC-SHA256 digest of ``body``."""

    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def verify_signature(
    body: bytes,
    signature: str | None,
    secret: str,
    *,
    timestamp: float | None = None,
    tolerance_seconds: int = DEFAULT_TOLERANCE_SECONDS,
    clock: Callable[[], float] = time.time,
) -> None:
    """Raise :class:`SignatureVerificationError` unless ``signature`` matches.

    The signature may carry a ``sha256=`` prefix. When the payload has a
    ``timestamp`` (epoch seconds) it must be within ``tolerance_seconds``
    of the current time.
    """

    if not signature:
        raise SignatureVerificationError("missing callback signature")
    received = signature.strip()
    if received.startswith(SIGNATURE_PREFIX):
        received = received[len(SIGNATURE_PREFIX):]
    expected = compute_signature(body, secret)
    if not hmac.compare_digest(received.lower(), expected):
        raise SignatureVerificationError("invalid callback signature")
    if timestamp is not None and tolerance_seconds:
        if abs(clock() - float(timestamp)) > tolerance_seconds:
            raise SignatureVerificationError("callback timestamp outside tolerance window")


__all__ = [
    "DEFAULT_TOLERANCE_SECONDS",
    "SIGNATURE_HEADER",
    "compute_signature",
    "verify_signature",
]
