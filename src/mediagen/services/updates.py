"""Attempt updates forwarded to the lifecycle manager."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from ..domain.models import JobResult
from ..providers.base import ProviderJobStatus, ProviderStatus
from ..providers.errors import ProviderError, ProviderErrorKind


class UpdateKind(str, Enum):
    ACKNOWLEDGED = "acknowledged"
    PROGRESS = "progress"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(slots=True, frozen=True)
class AttemptUpdate:
    """One observation about the current attempt of a job."""

    kind: UpdateKind
    progress: int | None = None
    result: JobResult | None = None
    error: ProviderError | None = None
    timed_out: bool = False

    @property
    def is_terminal(self) -> bool:
        return self.kind in (UpdateKind.COMPLETED, UpdateKind.FAILED)

    @classmethod
    def acknowledged(cls) -> "AttemptUpdate":
        return cls(kind=UpdateKind.ACKNOWLEDGED)

    @classmethod
    def progressed(cls, progress: int) -> "AttemptUpdate":
        return cls(kind=UpdateKind.PROGRESS, progress=progress)

    @classmethod
    def completed(cls, result: JobResult) -> "AttemptUpdate":
        return cls(kind=UpdateKind.COMPLETED, progress=100, result=result)

    @classmethod
    def failed(cls, error: ProviderError) -> "AttemptUpdate":
        return cls(
            kind=UpdateKind.FAILED,
            error=error,
            timed_out=error.kind is ProviderErrorKind.TIMEOUT,
        )

    @classmethod
    def timeout(cls, provider_id: str, waited_seconds: float) -> "AttemptUpdate":
        error = ProviderError(
            ProviderErrorKind.TIMEOUT,
            f"no progress from provider within {waited_seconds:.0f}s",
            provider_id=provider_id,
        )
        return cls(kind=UpdateKind.FAILED, error=error, timed_out=True)

    @classmethod
    def from_status(cls, status: ProviderStatus, *, progress: int | None = None) -> "AttemptUpdate":
        """Translate a provider status; ``progress`` overrides the reported value."""

        reported = progress if progress is not None else status.progress
        if status.status is ProviderJobStatus.COMPLETED:
            if status.result is None:
                return cls.failed(
                    ProviderError(ProviderErrorKind.PROCESSING, "completed status without a result")
                )
            return cls.completed(status.result)
        if status.status is ProviderJobStatus.FAILED:
            error = status.error or ProviderError(
                ProviderErrorKind.PROCESSING,
                "provider reported failure without details",
            )
            return cls.failed(error)
        if status.status is ProviderJobStatus.QUEUED and reported is None:
            return cls.acknowledged()
        return cls.progressed(reported or 0)


__all__ = ["AttemptUpdate", "UpdateKind"]
