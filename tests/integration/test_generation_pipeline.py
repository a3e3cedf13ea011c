from __future__ import annotations

import asyncio
import json
from collections import defaultdict
from typing import Callable

import httpx
import pytest

from mediagen.config import AppConfig, ProviderSettings
from mediagen.domain.models import (
    AttemptOutcome,
    DurationClass,
    FailureCode,
    GenerationRequirements,
    JobKind,
    JobState,
    QualityTier,
)
from mediagen.providers.http import HttpProviderAdapter
from mediagen.providers.registry import ProviderRegistry
from mediagen.repositories.job_repository import SqlAlchemyJobRepository
from mediagen.services.container import build_services


class FakeProviderApi:
    """Serves ``/jobs`` endpoints for several providers keyed by host."""

    def __init__(self, *, failing_hosts: set[str], polls_to_complete: int = 2) -> None:
        self.failing_hosts = failing_hosts
        self.polls_to_complete = polls_to_complete
        self.requests: list[tuple[str, str, str]] = []
        self.polls: dict[str, int] = defaultdict(int)
        self.payloads: list[dict] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        host = request.url.host
        self.requests.append((host, request.method, request.url.path))
        if host in self.failing_hosts:
            return httpx.Response(503, json={"detail": "maintenance"})
        if request.method == "POST":
            self.payloads.append(json.loads(request.content))
            return httpx.Response(201, json={"id": f"{host}-job", "status": "queued"})
        if request.method == "GET":
            reference = request.url.path.rsplit("/", 1)[-1]
            self.polls[reference] += 1
            if self.polls[reference] >= self.polls_to_complete:
                return httpx.Response(
                    200,
                    json={
                        "status": "succeeded",
                        "result": {
                            "video_url": f"https://cdn.{host}/{reference}.mp4",
                            "duration": 58.0,
                            "quality_score": 8.8,
                        },
                    },
                )
            return httpx.Response(200, json={"status": "generating", "progress": 50})
        return httpx.Response(204)


def _settings(provider_id: str) -> ProviderSettings:
    return ProviderSettings(
        id=provider_id,
        base_url=f"https://{provider_id}.test/v1",
        api_key=f"{provider_id}-key",
        kinds=["video"],
        quality_tiers=["standard", "premium"],
        features=["subtitles"],
        expected_seconds=5,
        base_cost=0.8,
    )


def _adapter_factory(transport: httpx.MockTransport) -> Callable[[ProviderSettings], HttpProviderAdapter]:
    def factory(settings: ProviderSettings) -> HttpProviderAdapter:
        return HttpProviderAdapter(
            provider_id=settings.id,
            base_url=settings.base_url,
            api_key=settings.api_key,
            transport=transport,
        )

    return factory


async def _wait_for(predicate: Callable[[], bool], timeout: float = 3.0) -> None:
    async def _loop() -> None:
        while not predicate():
            await asyncio.sleep(0.01)

    await asyncio.wait_for(_loop(), timeout=timeout)


@pytest.mark.integration
@pytest.mark.asyncio
async def test_unavailable_provider_falls_back_and_everything_is_persisted():
    api = FakeProviderApi(failing_hosts={"alpha.test"})
    config = AppConfig(
        database_url="sqlite:///:memory:",
        poll_interval_seconds=0.01,
        poll_jitter_ratio=0.0,
        providers=[_settings("alpha"), _settings("beta")],
    )
    registry = ProviderRegistry.from_settings(
        config.provider_catalogue(),
        config,
        adapter_factory=_adapter_factory(httpx.MockTransport(api)),
    )
    services = build_services(config, registry=registry)
    manager = services.manager
    requirements = GenerationRequirements(
        kind=JobKind.VIDEO,
        duration=DurationClass.SHORT,
        quality=QualityTier.PREMIUM,
        industry="healthcare",
        template="testimonial",
        features=frozenset({"subtitles"}),
        script="Hello, I am a nurse.",
    )

    try:
        job_id = await manager.submit(JobKind.VIDEO, requirements)
        job = await manager.get_status(job_id)
        assert job.ranked_provider_ids == ["alpha", "beta"]

        async def _until_finished() -> None:
            while not (await manager.get_status(job_id)).is_terminal:
                await asyncio.sleep(0.01)

        await asyncio.wait_for(_until_finished(), timeout=3.0)
        await _wait_for(lambda: len(services.outcome_store.list()) == 2)

        job = await manager.get_status(job_id)
        assert job.state is JobState.COMPLETED
        assert job.selected_provider_id == "beta"
        assert job.attempt_count == 2
        assert job.result.artifact_url == "https://cdn.beta.test/beta.test-job.mp4"
        assert job.result.quality_score == 8.8
        assert [attempt.outcome for attempt in job.attempts] == [
            AttemptOutcome.FAILURE,
            AttemptOutcome.SUCCESS,
        ]
        assert job.attempts[0].error.code is FailureCode.PROVIDER_UNAVAILABLE

        assert ("alpha.test", "POST", "/v1/jobs") in api.requests
        assert api.payloads[0]["industry"] == "healthcare"
        assert api.payloads[0]["features"] == ["subtitles"]

        records = {record.provider_id: record for record in services.outcome_store.list()}
        assert records["alpha"].outcome is AttemptOutcome.FAILURE
        assert records["beta"].outcome is AttemptOutcome.SUCCESS
        assert records["beta"].template == "testimonial"

        stored = SqlAlchemyJobRepository(services.session_factory).get(job_id)
        assert stored.state is JobState.COMPLETED
        assert stored.attempt_count == 2

        assert services.flush_provider_stats() == 2
        persisted = services.stats_repository.load_all()
        assert persisted["beta"].successes == 1
        assert persisted["alpha"].reliability < persisted["beta"].reliability

        report = services.recorder.report()
        assert report.summary.attempts == 2
        assert report.by_industry["healthcare"].success_rate == 0.5
    finally:
        await services.aclose()


@pytest.mark.integration
@pytest.mark.asyncio
async def test_every_provider_unavailable_exhausts_the_ranking():
    api = FakeProviderApi(failing_hosts={"alpha.test", "beta.test"})
    config = AppConfig(
        database_url="sqlite:///:memory:",
        poll_interval_seconds=0.01,
        poll_jitter_ratio=0.0,
        providers=[_settings("alpha"), _settings("beta")],
    )
    registry = ProviderRegistry.from_settings(
        config.provider_catalogue(),
        config,
        adapter_factory=_adapter_factory(httpx.MockTransport(api)),
    )
    services = build_services(config, registry=registry)

    try:
        job_id = await services.manager.submit(JobKind.VIDEO, GenerationRequirements(kind=JobKind.VIDEO))

        async def _until_failed() -> None:
            while (await services.manager.get_status(job_id)).state is not JobState.FAILED:
                await asyncio.sleep(0.01)

        await asyncio.wait_for(_until_failed(), timeout=3.0)
        job = await services.manager.get_status(job_id)

        assert job.attempt_count == 2
        assert job.error.code is FailureCode.PROVIDER_UNAVAILABLE
        assert job.error.retryable is True
        assert [host for host, method, _ in api.requests if method == "POST"] == ["alpha.test", "beta.test"]
    finally:
        await services.aclose()
