from __future__ import annotations

import json

import httpx
import pytest

from mediagen.domain.models import DurationClass, GenerationRequirements, JobKind, QualityTier
from mediagen.providers.base import JobSpec, ProviderJobStatus
from mediagen.providers.errors import FailureClass, ProviderError, ProviderErrorKind
from mediagen.providers.http import HttpProviderAdapter, error_kind_for_status_code

BASE_URL = "https://provider.test/v1"


def _adapter(handler) -> HttpProviderAdapter:
    return HttpProviderAdapter(
        provider_id="studio",
        base_url=BASE_URL,
        api_key="secret-key",
        transport=httpx.MockTransport(handler),
    )


def _spec() -> JobSpec:
    requirements = GenerationRequirements(
        kind=JobKind.VIDEO,
        duration=DurationClass.SHORT,
        quality=QualityTier.PREMIUM,
        industry="healthcare",
        features=frozenset({"subtitles", "name_card"}),
        script="Hello, I am a nurse.",
    )
    return JobSpec.from_requirements(
        requirements,
        job_id="job-1",
        attempt_id="attempt-1",
        callback_url="https://orchestrator.test/api/providers/studio/callbacks",
    )


@pytest.mark.asyncio
async def test_submit_posts_payload_and_returns_reference():
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(201, json={"id": "ext-123", "status": "queued"})

    reference = await _adapter(handler).submit(_spec())

    assert reference == "ext-123"
    request = requests[0]
    assert request.method == "POST"
    assert str(request.url) == f"{BASE_URL}/jobs"
    assert request.headers["Authorization"] == "Bearer secret-key"
    body = json.loads(request.content)
    assert body["type"] == "video"
    assert body["duration_seconds"] == 30
    assert body["quality"] == "premium"
    assert body["features"] == ["name_card", "subtitles"]
    assert body["industry"] == "healthcare"
    assert body["callback_url"].endswith("/studio/callbacks")
    assert "template" not in body


@pytest.mark.asyncio
async def test_submit_without_reference_is_a_processing_error():
    adapter = _adapter(lambda request: httpx.Response(200, json={"status": "queued"}))

    with pytest.raises(ProviderError) as excinfo:
        await adapter.submit(_spec())

    assert excinfo.value.kind is ProviderErrorKind.PROCESSING
    assert excinfo.value.provider_id == "studio"


@pytest.mark.parametrize(
    ("status_code", "kind", "failure_class"),
    [
        (401, ProviderErrorKind.AUTHENTICATION, FailureClass.PROVIDER_SPECIFIC),
        (402, ProviderErrorKind.INSUFFICIENT_CREDITS, FailureClass.PROVIDER_SPECIFIC),
        (422, ProviderErrorKind.INVALID_PARAMETERS, FailureClass.PROVIDER_SPECIFIC),
        (429, ProviderErrorKind.RATE_LIMITED, FailureClass.RETRYABLE),
        (503, ProviderErrorKind.UNAVAILABLE, FailureClass.RETRYABLE),
    ],
)
@pytest.mark.asyncio
async def test_error_status_codes_are_classified(status_code, kind, failure_class):
    adapter = _adapter(lambda request: httpx.Response(status_code, json={"detail": "nope"}))

    with pytest.raises(ProviderError) as excinfo:
        await adapter.submit(_spec())

    assert excinfo.value.kind is kind
    assert excinfo.value.failure_class is failure_class
    assert excinfo.value.to_job_error().message != "nope"


@pytest.mark.asyncio
async def test_transport_failures_map_to_network_and_timeout():
    def refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    def stall(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("read timed out", request=request)

    with pytest.raises(ProviderError) as network:
        await _adapter(refuse).query_status("ext-1")
    with pytest.raises(ProviderError) as timeout:
        await _adapter(stall).query_status("ext-1")

    assert network.value.kind is ProviderErrorKind.NETWORK
    assert timeout.value.kind is ProviderErrorKind.TIMEOUT
    assert network.value.retryable and timeout.value.retryable


@pytest.mark.asyncio
async def test_query_status_reports_progress():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.method == "GET"
        assert request.url.path == "/v1/jobs/ext-1"
        return httpx.Response(200, json={"status": "generating", "progress": 42.7})

    status = await _adapter(handler).query_status("ext-1")

    assert status.status is ProviderJobStatus.PROCESSING
    assert status.progress == 42
    assert status.external_ref == "ext-1"


@pytest.mark.asyncio
async def test_query_status_parses_completed_result():
    payload = {
        "status": "succeeded",
        "result": {
            "video_url": "https://cdn.provider.test/ext-1.mp4",
            "duration": 31.5,
            "transcript": "Hello",
            "thumbnail_url": "https://cdn.provider.test/ext-1.jpg",
            "quality_score": 8.9,
        },
    }
    status = await _adapter(lambda request: httpx.Response(200, json=payload)).query_status("ext-1")

    assert status.status is ProviderJobStatus.COMPLETED
    assert status.progress == 100
    assert status.result.artifact_url == "https://cdn.provider.test/ext-1.mp4"
    assert status.result.duration_seconds == 31.5
    assert status.result.quality_score == 8.9


@pytest.mark.asyncio
async def test_completed_without_artifact_is_rejected():
    adapter = _adapter(lambda request: httpx.Response(200, json={"status": "completed", "result": {}}))

    with pytest.raises(ProviderError) as excinfo:
        await adapter.query_status("ext-1")

    assert excinfo.value.kind is ProviderErrorKind.PROCESSING


@pytest.mark.asyncio
async def test_failed_status_carries_classified_error():
    payload = {"status": "failed", "error": {"code": "rate_limit_exceeded", "message": "slow down"}}
    status = await _adapter(lambda request: httpx.Response(200, json=payload)).query_status("ext-1")

    assert status.status is ProviderJobStatus.FAILED
    assert status.error.kind is ProviderErrorKind.RATE_LIMITED
    assert status.error.detail == {"code": "rate_limit_exceeded", "message": "slow down"}


@pytest.mark.asyncio
async def test_unknown_status_and_invalid_json_are_processing_errors():
    unknown = _adapter(lambda request: httpx.Response(200, json={"status": "teleporting"}))
    garbage = _adapter(lambda request: httpx.Response(200, content=b"<html>", headers={"Content-Type": "text/html"}))

    with pytest.raises(ProviderError) as first:
        await unknown.query_status("ext-1")
    with pytest.raises(ProviderError) as second:
        await garbage.query_status("ext-1")

    assert first.value.kind is ProviderErrorKind.PROCESSING
    assert second.value.kind is ProviderErrorKind.PROCESSING


@pytest.mark.asyncio
async def test_cancel_sends_delete():
    seen: list[tuple[str, str]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append((request.method, request.url.path))
        return httpx.Response(204)

    await _adapter(handler).cancel("ext-9")

    assert seen == [("DELETE", "/v1/jobs/ext-9")]


def test_parse_callback_uses_same_status_mapping():
    adapter = _adapter(lambda request: httpx.Response(500))

    status = adapter.parse_callback(
        {"external_job_ref": "ext-5", "status": "in_progress", "progress": 140}
    )

    assert status.status is ProviderJobStatus.PROCESSING
    assert status.progress == 100
    assert status.external_ref == "ext-5"


def test_status_code_mapping_defaults_to_processing():
    assert error_kind_for_status_code(418) is ProviderErrorKind.PROCESSING
    assert error_kind_for_status_code(403) is ProviderErrorKind.AUTHENTICATION
    assert error_kind_for_status_code(408) is ProviderErrorKind.TIMEOUT
