"""Deterministic provider mocks for unit and integration tests."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping

from mediagen.domain.models import (
    CostTier,
    JobKind,
    JobResult,
    Provider,
    ProviderCapabilities,
    QualityTier,
)
from mediagen.providers.base import JobSpec, ProviderAdapter, ProviderJobStatus, ProviderStatus
from mediagen.providers.errors import ProviderError, ProviderErrorKind

CDN_BASE_URL = "https://cdn.mediagen.test"


class MockProviderScenario(str, Enum):
    """Available behaviours for provider mocks."""

    SUCCESS = "success"
    STALL = "stall"
    SUBMIT_ERROR = "submit_error"
    REPORT_FAILURE = "report_failure"
    QUERY_ERROR = "query_error"
    CALLBACK = "callback"


@dataclass(slots=True)
class MockProviderState:
    """Internal state tracked for submitted jobs."""

    spec: JobSpec
    polls: int = 0
    cancelled: bool = False


@dataclass(slots=True)
class MockProviderConfig:
    """Behaviour shared by provider mocks."""

    scenario: MockProviderScenario = MockProviderScenario.SUCCESS
    polls_to_complete: int = 2
    error_kind: ProviderErrorKind = ProviderErrorKind.PROCESSING
    quality_score: float | None = 8.5
    submit_delay: float = 0.0
    stall_progress: int = 10

    def __post_init__(self) -> None:
        if self.polls_to_complete < 1:
            raise ValueError("polls_to_complete must be at least 1")


def make_artifact_url(reference: str) -> str:
    return f"{CDN_BASE_URL}/{reference}.mp4"


class MockProvider(ProviderAdapter):
    """Scripted adapter recording every call in ``events``."""

    def __init__(
        self,
        provider_id: str,
        config: MockProviderConfig | None = None,
        *,
        supports_callbacks: bool = False,
    ) -> None:
        self.provider_id = provider_id
        self.config = config or MockProviderConfig()
        self.supports_callbacks = supports_callbacks
        self.events: list[str] = []
        self.submitted: list[JobSpec] = []
        self._state: Dict[str, MockProviderState] = {}
        self._counter = 0

    def _record_event(self, event: str) -> None:
        self.events.append(event)

    def _error(self, message: str) -> ProviderError:
        return ProviderError(self.config.error_kind, message, provider_id=self.provider_id)

    async def submit(self, spec: JobSpec) -> str:
        self._record_event("submit")
        self.submitted.append(spec)
        if self.config.submit_delay:
            await asyncio.sleep(self.config.submit_delay)
        if self.config.scenario is MockProviderScenario.SUBMIT_ERROR:
            raise self._error("submission rejected")
        self._counter += 1
        reference = f"{self.provider_id}-{self._counter}"
        self._state[reference] = MockProviderState(spec=spec)
        return reference

    async def query_status(self, reference: str) -> ProviderStatus:
        self._record_event("poll")
        state = self._state[reference]
        state.polls += 1
        scenario = self.config.scenario
        if scenario is MockProviderScenario.QUERY_ERROR:
            raise self._error("status endpoint failed")
        if scenario is MockProviderScenario.REPORT_FAILURE:
            return ProviderStatus(
                status=ProviderJobStatus.FAILED,
                error=self._error("generation failed"),
                external_ref=reference,
            )
        if scenario in (MockProviderScenario.STALL, MockProviderScenario.CALLBACK):
            return ProviderStatus(
                status=ProviderJobStatus.PROCESSING,
                progress=self.config.stall_progress,
                external_ref=reference,
            )
        if state.polls >= self.config.polls_to_complete:
            return self.completed_status(reference)
        progress = int(100 * state.polls / (self.config.polls_to_complete + 1))
        return ProviderStatus(
            status=ProviderJobStatus.PROCESSING,
            progress=progress,
            external_ref=reference,
        )

    async def cancel(self, reference: str) -> None:
        self._record_event("cancel")
        state = self._state.get(reference)
        if state is not None:
            state.cancelled = True

    def parse_callback(self, payload: Mapping[str, Any]) -> ProviderStatus:
        self._record_event("callback")
        reference = str(payload["external_job_ref"])
        status = str(payload.get("status"))
        if status == "completed":
            return self.completed_status(reference)
        if status == "failed":
            return ProviderStatus(
                status=ProviderJobStatus.FAILED,
                error=self._error("generation failed"),
                external_ref=reference,
            )
        if status == "processing":
            return ProviderStatus(
                status=ProviderJobStatus.PROCESSING,
                progress=int(payload.get("progress") or 0),
                external_ref=reference,
            )
        raise ProviderError(
            ProviderErrorKind.PROCESSING,
            f"unknown callback status '{status}'",
            provider_id=self.provider_id,
        )

    def completed_status(self, reference: str) -> ProviderStatus:
        return ProviderStatus(
            status=ProviderJobStatus.COMPLETED,
            progress=100,
            result=JobResult(
                artifact_url=make_artifact_url(reference),
                duration_seconds=60.0,
                quality_score=self.config.quality_score,
            ),
            external_ref=reference,
        )

    def references(self) -> list[str]:
        return list(self._state)

    def is_cancelled(self, reference: str) -> bool:
        return self._state[reference].cancelled


def make_provider(
    provider_id: str,
    *,
    kinds: tuple[JobKind, ...] = (JobKind.VIDEO, JobKind.PODCAST),
    max_duration_seconds: int = 600,
    quality_tiers: tuple[QualityTier, ...] = (QualityTier.BASIC, QualityTier.STANDARD, QualityTier.PREMIUM),
    features: tuple[str, ...] = (),
    supports_callbacks: bool = False,
    expected_seconds: float = 60.0,
    cost_tier: CostTier = CostTier.MEDIUM,
    base_cost: float = 0.5,
) -> Provider:
    """Build a provider descriptor with permissive defaults."""

    return Provider(
        id=provider_id,
        display_name=provider_id.title(),
        capabilities=ProviderCapabilities(
            kinds=frozenset(kinds),
            max_duration_seconds=max_duration_seconds,
            quality_tiers=frozenset(quality_tiers),
            features=frozenset(features),
            supports_callbacks=supports_callbacks,
            expected_seconds=expected_seconds,
        ),
        cost_tier=cost_tier,
        base_cost=base_cost,
    )


__all__ = [
    "CDN_BASE_URL",
    "MockProvider",
    "MockProviderConfig",
    "MockProviderScenario",
    "MockProviderState",
    "make_artifact_url",
    "make_provider",
]
