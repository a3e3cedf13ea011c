"""Provider error taxonomy.

Adapters raise :class:`ProviderError` with a :class:`ProviderErrorKind`. The
job manager only looks at :attr:`ProviderError.failure_class` to decide
between fallback and terminal failure, and converts the error into a
client-facing :class:`~mediagen.domain.models.JobError`.
"""

from __future__ import annotations

from enum import Enum

from ..domain.models import FailureCode, JobError


class ProviderErrorKind(str, Enum):
    AUTHENTICATION = "authentication"
    RATE_LIMITED = "rate_limited"
    INVALID_PARAMETERS = "invalid_parameters"
    UNSUPPORTED_FEATURE = "unsupported_feature"
    INSUFFICIENT_CREDITS = "insufficient_credits"
    PROCESSING = "processing"
    TIMEOUT = "timeout"
    NETWORK = "network"
    UNAVAILABLE = "unavailable"
    INVALID_REQUEST = "invalid_request"


class FailureClass(str, Enum):
    """How an attempt failure affects the rest of the ranked list."""

    RETRYABLE = "retryable"
    PROVIDER_SPECIFIC = "provider_specific"
    STRUCTURAL = "structural"


_FAILURE_CLASS: dict[ProviderErrorKind, FailureClass] = {
    ProviderErrorKind.RATE_LIMITED: FailureClass.RETRYABLE,
    ProviderErrorKind.PROCESSING: FailureClass.RETRYABLE,
    ProviderErrorKind.TIMEOUT: FailureClass.RETRYABLE,
    ProviderErrorKind.NETWORK: FailureClass.RETRYABLE,
    ProviderErrorKind.UNAVAILABLE: FailureClass.RETRYABLE,
    ProviderErrorKind.AUTHENTICATION: FailureClass.PROVIDER_SPECIFIC,
    ProviderErrorKind.INSUFFICIENT_CREDITS: FailureClass.PROVIDER_SPECIFIC,
    ProviderErrorKind.INVALID_PARAMETERS: FailureClass.PROVIDER_SPECIFIC,
    ProviderErrorKind.UNSUPPORTED_FEATURE: FailureClass.PROVIDER_SPECIFIC,
    ProviderErrorKind.INVALID_REQUEST: FailureClass.STRUCTURAL,
}

_FAILURE_CODE: dict[ProviderErrorKind, FailureCode] = {
    ProviderErrorKind.AUTHENTICATION: FailureCode.AUTHENTICATION,
    ProviderErrorKind.RATE_LIMITED: FailureCode.RATE_LIMITED,
    ProviderErrorKind.INVALID_PARAMETERS: FailureCode.INVALID_PARAMETERS,
    ProviderErrorKind.UNSUPPORTED_FEATURE: FailureCode.UNSUPPORTED_FEATURE,
    ProviderErrorKind.INSUFFICIENT_CREDITS: FailureCode.INSUFFICIENT_CREDITS,
    ProviderErrorKind.PROCESSING: FailureCode.PROVIDER_ERROR,
    ProviderErrorKind.TIMEOUT: FailureCode.PROVIDER_TIMEOUT,
    ProviderErrorKind.NETWORK: FailureCode.NETWORK_ERROR,
    ProviderErrorKind.UNAVAILABLE: FailureCode.PROVIDER_UNAVAILABLE,
    ProviderErrorKind.INVALID_REQUEST: FailureCode.INVALID_PARAMETERS,
}

_FALLBACK_MESSAGES: dict[ProviderErrorKind, str] = {
    ProviderErrorKind.AUTHENTICATION: "Provider rejected the configured credentials",
    ProviderErrorKind.RATE_LIMITED: "Provider rate limit exceeded",
    ProviderErrorKind.INVALID_PARAMETERS: "Provider rejected the generation parameters",
    ProviderErrorKind.UNSUPPORTED_FEATURE: "Provider does not support a requested feature",
    ProviderErrorKind.INSUFFICIENT_CREDITS: "Provider account has insufficient credits",
    ProviderErrorKind.PROCESSING: "Provider failed to generate the media",
    ProviderErrorKind.TIMEOUT: "Provider did not finish in time",
    ProviderErrorKind.NETWORK: "Provider could not be reached",
    ProviderErrorKind.UNAVAILABLE: "Provider is temporarily unavailable",
    ProviderErrorKind.INVALID_REQUEST: "Generation request is invalid",
}


class ProviderError(Exception):
    """Raised by adapters for any provider-side failure."""

    def __init__(
        self,
        kind: ProviderErrorKind,
        message: str,
        *,
        provider_id: str | None = None,
        detail: object | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.provider_id = provider_id
        self.detail = detail

    @property
    def failure_class(self) -> FailureClass:
        return _FAILURE_CLASS[self.kind]

    @property
    def retryable(self) -> bool:
        return self.failure_class is FailureClass.RETRYABLE

    def to_job_error(self) -> JobError:
        """Return the normalized error; provider payloads stay server-side."""

        return JobError(
            code=_FAILURE_CODE[self.kind],
            message=_FALLBACK_MESSAGES[self.kind],
            retryable=self.retryable,
        )

    def __repr__(self) -> str:
        return (
            f"ProviderError(kind={self.kind.value!r}, provider_id={self.provider_id!r},"
            f" message={self.message!r})"
        )


def failure_class_for_code(code: FailureCode) -> FailureClass:
    """Classify a normalized failure code reported by a provider status."""

    for kind, mapped in _FAILURE_CODE.items():
        if mapped is code:
            return _FAILURE_CLASS[kind]
    return FailureClass.RETRYABLE


def error_kind_from_code(raw: str | None) -> ProviderErrorKind:
    """Map a provider error code string onto :class:`ProviderErrorKind`."""

    if not raw:
        return ProviderErrorKind.PROCESSING
    value = raw.strip().lower()
    aliases = {
        "auth": ProviderErrorKind.AUTHENTICATION,
        "unauthorized": ProviderErrorKind.AUTHENTICATION,
        "authentication_error": ProviderErrorKind.AUTHENTICATION,
        "rate_limit": ProviderErrorKind.RATE_LIMITED,
        "rate_limit_exceeded": ProviderErrorKind.RATE_LIMITED,
        "too_many_requests": ProviderErrorKind.RATE_LIMITED,
        "quota_exceeded": ProviderErrorKind.RATE_LIMITED,
        "invalid_params": ProviderErrorKind.INVALID_PARAMETERS,
        "bad_request": ProviderErrorKind.INVALID_PARAMETERS,
        "unsupported": ProviderErrorKind.UNSUPPORTED_FEATURE,
        "payment_required": ProviderErrorKind.INSUFFICIENT_CREDITS,
        "timeout_error": ProviderErrorKind.TIMEOUT,
        "network_error": ProviderErrorKind.NETWORK,
        "provider_unavailable": ProviderErrorKind.UNAVAILABLE,
        "processing_error": ProviderErrorKind.PROCESSING,
    }
    if value in aliases:
        return aliases[value]
    try:
        return ProviderErrorKind(value)
    except ValueError:
        return ProviderErrorKind.PROCESSING


__all__ = [
    "FailureClass",
    "ProviderError",
    "ProviderErrorKind",
    "error_kind_from_code",
    "failure_class_for_code",
]
