"""Abstract provider adapter definition."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping

from ..domain.models import DurationClass, GenerationRequirements, JobKind, JobResult, QualityTier
from .errors import ProviderError


class ProviderJobStatus(str, Enum):
    """Normalized status reported by a provider for one external job."""

    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (ProviderJobStatus.COMPLETED, ProviderJobStatus.FAILED)


@dataclass(slots=True)
class ProviderStatus:
    """Standard response from ``query_status`` and parsed callbacks."""

    status: ProviderJobStatus
    progress: int | None = None
    result: JobResult | None = None
    error: ProviderError | None = None
    external_ref: str | None = None


@dataclass(slots=True)
class JobSpec:
    """Payload handed to ``ProviderAdapter.submit``."""

    job_id: str
    attempt_id: str
    kind: JobKind
    duration_seconds: int
    quality: QualityTier
    style: str
    features: frozenset[str] = field(default_factory=frozenset)
    industry: str | None = None
    template: str | None = None
    script: str | None = None
    options: Mapping[str, Any] = field(default_factory=dict)
    callback_url: str | None = None

    @classmethod
    def from_requirements(
        cls,
        requirements: GenerationRequirements,
        *,
        job_id: str,
        attempt_id: str,
        callback_url: str | None = None,
    ) -> "JobSpec":
        return cls(
            job_id=job_id,
            attempt_id=attempt_id,
            kind=requirements.kind,
            duration_seconds=requirements.duration_seconds,
            quality=requirements.quality,
            style=requirements.style,
            features=frozenset(requirements.features),
            industry=requirements.industry,
            template=requirements.template,
            script=requirements.script,
            options=dict(requirements.options),
            callback_url=callback_url,
        )

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "client_reference": self.job_id,
            "attempt": self.attempt_id,
            "type": self.kind.value,
            "duration_seconds": self.duration_seconds,
            "quality": self.quality.value,
            "style": self.style,
            "features": sorted(self.features),
        }
        for key in ("industry", "template", "script", "callback_url"):
            value = getattr(self, key)
            if value:
                payload[key] = value
        if self.options:
            payload["options"] = dict(self.options)
        return payload


_DURATION_FACTOR = {
    DurationClass.SHORT: 0.8,
    DurationClass.MEDIUM: 1.0,
    DurationClass.LONG: 1.5,
}
_PREMIUM_FACTOR = 1.3
_CUSTOM_AVATAR_FACTOR = 1.4


def estimate_cost(requirements: GenerationRequirements, base_cost: float) -> float:
    """Estimate the cost of one attempt from the provider's base cost."""

    cost = base_cost * _DURATION_FACTOR[requirements.duration]
    if requirements.quality is QualityTier.PREMIUM:
        cost *= _PREMIUM_FACTOR
    if "custom_avatar" in requirements.features:
        cost *= _CUSTOM_AVATAR_FACTOR
    return round(cost, 4)


class ProviderAdapter(ABC):
    """Base interface for provider adapters.

    Adapters translate the provider's own API into :class:`ProviderStatus`
    values and raise :class:`~mediagen.providers.errors.ProviderError` for
    every failure. They hold no job state.
    """

    provider_id: str
    supports_callbacks: bool = False

    @abstractmethod
    async def submit(self, spec: JobSpec) -> str:
        """Submit a generation job and return the provider's job reference."""

    @abstractmethod
    async def query_status(self, reference: str) -> ProviderStatus:
        """Return the current status of a previously submitted job."""

    async def cancel(self, reference: str) -> None:
        """Ask the provider to stop work; best effort, default is a no-op."""

    def parse_callback(self, payload: Mapping[str, Any]) -> ProviderStatus:
        """Translate a webhook body into a :class:`ProviderStatus`."""

        raise NotImplementedError(f"provider '{self.provider_id}' does not accept callbacks")

    def estimate_cost(self, requirements: GenerationRequirements, base_cost: float) -> float:
        return estimate_cost(requirements, base_cost)

    async def aclose(self) -> None:
        """Release network resources held by the adapter."""


__all__ = [
    "JobSpec",
    "ProviderAdapter",
    "ProviderJobStatus",
    "ProviderStatus",
    "estimate_cost",
]
