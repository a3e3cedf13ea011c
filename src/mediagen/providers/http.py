"""Generic JSON/REST provider adapter."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping

import httpx

from ..domain.models import JobResult
from .base import JobSpec, ProviderAdapter, ProviderJobStatus, ProviderStatus
from .errors import ProviderError, ProviderErrorKind, error_kind_from_code

logger = logging.getLogger(__name__)

_STATUS_ALIASES: dict[str, ProviderJobStatus] = {
    "pending": ProviderJobStatus.QUEUED,
    "queued": ProviderJobStatus.QUEUED,
    "accepted": ProviderJobStatus.QUEUED,
    "processing": ProviderJobStatus.PROCESSING,
    "generating": ProviderJobStatus.PROCESSING,
    "running": ProviderJobStatus.PROCESSING,
    "in_progress": ProviderJobStatus.PROCESSING,
    "succeeded": ProviderJobStatus.COMPLETED,
    "completed": ProviderJobStatus.COMPLETED,
    "done": ProviderJobStatus.COMPLETED,
    "failed": ProviderJobStatus.FAILED,
    "error": ProviderJobStatus.FAILED,
}


def error_kind_for_status_code(status_code: int) -> ProviderErrorKind:
    if status_code == 401 or status_code == 403:
        return ProviderErrorKind.AUTHENTICATION
    if status_code == 402:
        return ProviderErrorKind.INSUFFICIENT_CREDITS
    if status_code in (400, 422):
        return ProviderErrorKind.INVALID_PARAMETERS
    if status_code == 408:
        return ProviderErrorKind.TIMEOUT
    if status_code == 429:
        return ProviderErrorKind.RATE_LIMITED
    if status_code >= 500:
        return ProviderErrorKind.UNAVAILABLE
    return ProviderErrorKind.PROCESSING


@dataclass(slots=True)
class HttpProviderAdapter(ProviderAdapter):
    """Talk to a provider exposing ``/jobs`` style endpoints.

    ``POST {base_url}/jobs`` creates a job and returns its id,
    ``GET {base_url}/jobs/{ref}`` reports status and
    ``DELETE {base_url}/jobs/{ref}`` cancels it.
    """

    provider_id: str
    base_url: str
    api_key: str = ""
    supports_callbacks: bool = False
    timeout_seconds: float = 15.0
    transport: httpx.AsyncBaseTransport | None = None
    log: logging.Logger = field(default_factory=lambda: logger)

    async def submit(self, spec: JobSpec) -> str:
        body = await self._request("POST", "/jobs", json=spec.to_payload())
        reference = body.get("id") or body.get("job_id") or body.get("external_job_ref")
        if not reference:
            raise ProviderError(
                ProviderErrorKind.PROCESSING,
                "provider response did not contain a job id",
                provider_id=self.provider_id,
            )
        self.log.info(
            "provider.http.submitted",
            extra={"provider_id": self.provider_id, "job_id": spec.job_id, "reference": reference},
        )
        return str(reference)

    async def query_status(self, reference: str) -> ProviderStatus:
        body = await self._request("GET", f"/jobs/{reference}")
        return self._parse_status(body, reference=reference)

    async def cancel(self, reference: str) -> None:
        await self._request("DELETE", f"/jobs/{reference}")

    def parse_callback(self, payload: Mapping[str, Any]) -> ProviderStatus:
        reference = payload.get("external_job_ref") or payload.get("id")
        return self._parse_status(payload, reference=str(reference) if reference else None)

    async def _request(self, method: str, path: str, *, json: Any = None) -> dict[str, Any]:
        url = self.base_url.rstrip("/") + path
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self.transport) as client:
                response = await client.request(method, url, headers=headers, json=json)
        except httpx.TimeoutException as exc:
            raise ProviderError(
                ProviderErrorKind.TIMEOUT,
                f"{method} {path} timed out",
                provider_id=self.provider_id,
            ) from exc
        except httpx.TransportError as exc:
            raise ProviderError(
                ProviderErrorKind.NETWORK,
                f"{method} {path} failed: {exc}",
                provider_id=self.provider_id,
            ) from exc

        if response.status_code >= 400:
            kind = error_kind_for_status_code(response.status_code)
            self.log.warning(
                "provider.http.error_status",
                extra={
                    "provider_id": self.provider_id,
                    "method": method,
                    "path": path,
                    "status_code": response.status_code,
                },
            )
            raise ProviderError(
                kind,
                f"{method} {path} failed with status {response.status_code}",
                provider_id=self.provider_id,
                detail=response.text[:500],
            )
        if response.status_code == 204 or not response.content:
            return {}
        try:
            body = response.json()
        except ValueError as exc:
            raise ProviderError(
                ProviderErrorKind.PROCESSING,
                f"{method} {path} returned invalid JSON",
                provider_id=self.provider_id,
            ) from exc
        if not isinstance(body, dict):
            raise ProviderError(
                ProviderErrorKind.PROCESSING,
                f"{method} {path} returned unexpected payload",
                provider_id=self.provider_id,
            )
        return body

    def _parse_status(self, body: Mapping[str, Any], *, reference: str | None) -> ProviderStatus:
        raw_status = str(body.get("status") or "").strip().lower()
        status = _STATUS_ALIASES.get(raw_status)
        if status is None:
            raise ProviderError(
                ProviderErrorKind.PROCESSING,
                f"unknown provider status '{raw_status}'",
                provider_id=self.provider_id,
            )

        progress = _coerce_progress(body.get("progress"))
        result = None
        error = None
        if status is ProviderJobStatus.COMPLETED:
            result = _parse_result(body.get("result") or {})
            if result is None:
                raise ProviderError(
                    ProviderErrorKind.PROCESSING,
                    "completed job without artifact url",
                    provider_id=self.provider_id,
                )
            progress = 100
        elif status is ProviderJobStatus.FAILED:
            error_payload = body.get("error") or {}
            if isinstance(error_payload, str):
                error_payload = {"message": error_payload}
            error = ProviderError(
                error_kind_from_code(error_payload.get("code")),
                str(error_payload.get("message") or "provider reported failure"),
                provider_id=self.provider_id,
                detail=dict(error_payload),
            )
        return ProviderStatus(
            status=status,
            progress=progress,
            result=result,
            error=error,
            external_ref=reference,
        )


def _coerce_progress(value: Any) -> int | None:
    if value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return max(0, min(100, int(number)))


def _parse_result(payload: Mapping[str, Any]) -> JobResult | None:
    url = payload.get("artifact_url") or payload.get("url") or payload.get("video_url") or payload.get("audio_url")
    if not url:
        return None
    duration = payload.get("duration_seconds", payload.get("duration"))
    quality = payload.get("quality_score")
    return JobResult(
        artifact_url=str(url),
        duration_seconds=float(duration) if duration is not None else None,
        transcript=payload.get("transcript") or payload.get("script"),
        thumbnail_url=payload.get("thumbnail_url"),
        quality_score=float(quality) if quality is not None else None,
    )


__all__ = ["HttpProviderAdapter", "error_kind_for_status_code"]
