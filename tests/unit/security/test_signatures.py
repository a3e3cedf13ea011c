from __future__ import annotations

import pytest

from mediagen.exceptions import SignatureVerificationError
from mediagen.security.signatures import compute_signature, verify_signature

SECRET = "whsec-test"
BODY = b'{"external_job_ref":"ext-1","status":"completed"}'


def test_valid_signature_passes_with_and_without_prefix():
    signature = compute_signature(BODY, SECRET)

    verify_signature(BODY, signature, SECRET)
    verify_signature(BODY, f"sha256={signature}", SECRET)
    verify_signature(BODY, signature.upper(), SECRET)


def test_tampered_body_is_rejected():
    signature = compute_signature(BODY, SECRET)

    with pytest.raises(SignatureVerificationError):
        verify_signature(BODY + b" ", signature, SECRET)


def test_wrong_secret_is_rejected():
    signature = compute_signature(BODY, "other-secret")

    with pytest.raises(SignatureVerificationError):
        verify_signature(BODY, signature, SECRET)


@pytest.mark.parametrize("signature", [None, ""])
def test_missing_signature_is_rejected(signature):
    with pytest.raises(SignatureVerificationError):
        verify_signature(BODY, signature, SECRET)


def test_timestamp_must_be_within_tolerance():
    signature = compute_signature(BODY, SECRET)

    verify_signature(BODY, signature, SECRET, timestamp=1_000, tolerance_seconds=300, clock=lambda: 1_200)
    with pytest.raises(SignatureVerificationError):
        verify_signature(BODY, signature, SECRET, timestamp=1_000, tolerance_seconds=300, clock=lambda: 1_301)


def test_zero_tolerance_disables_timestamp_check():
    signature = compute_signature(BODY, SECRET)

    verify_signature(BODY, signature, SECRET, timestamp=0, tolerance_seconds=0, clock=lambda: 10_000)
