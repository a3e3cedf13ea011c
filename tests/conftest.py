from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable

import pytest

from mediagen.domain.models import DurationClass, GenerationRequirements, JobKind, Provider, QualityTier
from mediagen.providers.base import ProviderAdapter
from mediagen.providers.registry import ProviderRegistry
from mediagen.repositories.job_repository import InMemoryJobRepository
from mediagen.repositories.outcome_repository import InMemoryOutcomeStore
from mediagen.repositories.provider_stats_repository import InMemoryProviderStatsRepository
from mediagen.services.job_manager import JobLifecycleManager
from mediagen.services.recorder import QualityRecorder
from mediagen.services.selector import ProviderSelector


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def video_requirements() -> GenerationRequirements:
    return GenerationRequirements(
        kind=JobKind.VIDEO,
        duration=DurationClass.MEDIUM,
        quality=QualityTier.STANDARD,
        industry="fintech",
        template="explainer",
    )


@pytest.fixture
def outcome_store() -> InMemoryOutcomeStore:
    return InMemoryOutcomeStore()


@pytest.fixture
def job_repository() -> InMemoryJobRepository:
    return InMemoryJobRepository()


@pytest.fixture
def make_manager(
    outcome_store: InMemoryOutcomeStore,
    job_repository: InMemoryJobRepository,
) -> Callable[..., JobLifecycleManager]:
    """Build a lifecycle manager with fast polling over the given providers."""

    def factory(
        providers: Iterable[tuple[Provider, ProviderAdapter]],
        **overrides,
    ) -> JobLifecycleManager:
        registry = ProviderRegistry()
        for provider, adapter in providers:
            registry.register(provider, adapter)
        recorder = QualityRecorder(
            outcome_store,
            registry,
            stats_repository=InMemoryProviderStatsRepository(),
        )
        options = {
            "poll_interval_seconds": 0.01,
            "poll_jitter_ratio": 0.0,
            "request_timeout_seconds": 1.0,
            "timeout_multiplier": 1.5,
        }
        options.update(overrides)
        return JobLifecycleManager(
            registry=registry,
            selector=ProviderSelector(registry),
            repository=job_repository,
            recorder=recorder,
            **options,
        )

    return factory
