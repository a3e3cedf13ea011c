"""Callback authentication helpers."""

from .signatures import SIGNATURE_HEADER, compute_signature, verify_signature

__all__ = ["SIGNATURE_HEADER", "compute_signature", "verify_signature"]
